"""
Unit Tests -- Gumbel MDA Speed of Convergence
===============================================
Tests the normalizing sequences of the parent catalogue and the
parametric / nonparametric densities of normalised block maxima.

Author: Jose Orlando Bobadilla Fuentes, CQF
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import numpy as np
import pytest
from scipy.integrate import quad, trapezoid
from scipy.special import gammaln

from evt_risk.config import SimulationConfig
from evt_risk.exceptions import InvalidBlockSizeError, UnsupportedDistributionError
from evt_risk.models.distributions import (
    DistributionFamily, ParentDistribution, normalizing_sequence,
    study_distributions)
from evt_risk.models.block_maxima import (
    DEFAULT_BLOCK_SIZES, DensityMode, block_maxima_density, convergence_table,
    gumbel_density, kernel_density, matched_uniforms, normalized_block_maxima,
    parametric_density)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def parents():
    """Exp(2), Gamma(2, 2), N(1, 4), LN(1, 4)."""
    return study_distributions()


@pytest.fixture
def grid():
    return np.linspace(-3.0, 10.0, 257)


# ---------------------------------------------------------------------------
# Parent distributions
# ---------------------------------------------------------------------------
class TestParentDistribution:

    def test_from_name(self):
        dist = ParentDistribution.from_name("Gamma", shape=2.0, rate=3.0)
        assert dist.family is DistributionFamily.GAMMA
        assert dist.params == (2.0, 3.0)

    @pytest.mark.parametrize("name", ["weibull", "cauchy", ""])
    def test_unsupported_name(self, name):
        with pytest.raises(UnsupportedDistributionError):
            ParentDistribution.from_name(name)

    def test_parameterisation(self):
        """Rate parameterisation for Exp / Gamma, (meanlog, sdlog) for LN."""
        np.testing.assert_allclose(ParentDistribution.exponential(2.0).cdf(1.0),
                                   1 - np.exp(-2.0))
        np.testing.assert_allclose(ParentDistribution.gamma(1.0, 2.0).cdf(1.0),
                                   1 - np.exp(-2.0))
        np.testing.assert_allclose(ParentDistribution.lognormal(1.0, 2.0).quantile(0.5),
                                   np.exp(1.0))
        np.testing.assert_allclose(ParentDistribution.normal(1.0, 2.0).quantile(0.5), 1.0)

    def test_logcdf_accurate_in_upper_tail(self):
        """log F = log1p(-S) keeps precision where F rounds to 1."""
        dist = ParentDistribution.normal(0.0, 1.0)
        np.testing.assert_allclose(dist.logcdf(10.0), -dist.frozen.sf(10.0),
                                   rtol=1e-10)
        assert dist.logcdf(10.0) < 0

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            ParentDistribution.normal(0.0, -1.0)
        with pytest.raises(ValueError):
            ParentDistribution.from_name("exponential", mean=1.0)

    def test_labels(self, parents):
        assert [d.label for d in parents] == [
            "Exp(2)", "Gamma(2, 2)", "N(1, 4)", "LN(1, 4)"]


# ---------------------------------------------------------------------------
# Normalizing sequences
# ---------------------------------------------------------------------------
class TestNormalizingSequence:

    def test_exponential(self):
        c_n, d_n = normalizing_sequence("exponential", n=100, rate=2)
        assert c_n == 0.5
        np.testing.assert_allclose(d_n, 2.302585, rtol=1e-6)
        np.testing.assert_allclose(d_n, np.log(100) / 2, rtol=1e-15)

    def test_gamma(self):
        n = 1000
        c_n, d_n = normalizing_sequence(ParentDistribution.gamma(3.0, 2.0), n)
        expected = (np.log(n) + 2.0 * np.log(np.log(n)) - gammaln(3.0)) / 2.0
        assert c_n == 0.5
        np.testing.assert_allclose(d_n, expected, rtol=1e-14)

    def test_normal(self):
        n = 1000
        L = np.log(n)
        b = np.sqrt(2 * L) - (np.log(4 * np.pi) + np.log(L)) / (2 * np.sqrt(2 * L))
        c_n, d_n = normalizing_sequence(ParentDistribution.normal(1.0, 2.0), n)
        np.testing.assert_allclose(c_n, 2.0 / np.sqrt(2 * L), rtol=1e-14)
        np.testing.assert_allclose(d_n, 1.0 + 2.0 * b, rtol=1e-14)

    def test_lognormal_from_normal(self):
        """d_n(LN) = exp(d_n(N)), c_n(LN) = sigma d_n(LN) / sqrt(2 log n)."""
        n = 500
        _, d_norm = normalizing_sequence("normal", n, mean=1.0, sd=2.0)
        c_n, d_n = normalizing_sequence("lognormal", n, meanlog=1.0, sdlog=2.0)
        np.testing.assert_allclose(d_n, np.exp(d_norm), rtol=1e-14)
        np.testing.assert_allclose(c_n, 2.0 * d_n / np.sqrt(2 * np.log(n)),
                                   rtol=1e-14)

    def test_deterministic(self, parents):
        for dist in parents:
            assert dist.normalizing_sequence(1000) == normalizing_sequence(dist, 1000)

    @pytest.mark.parametrize("n", [1, 0, -5, 2.5, np.nan, "ten"])
    def test_invalid_block_size(self, n):
        with pytest.raises(InvalidBlockSizeError):
            normalizing_sequence("normal", n)

    def test_smallest_block_size(self, parents):
        for dist in parents:
            c_n, d_n = dist.normalizing_sequence(2)
            assert np.isfinite(c_n) and c_n > 0 and np.isfinite(d_n)

    def test_unsupported(self):
        with pytest.raises(UnsupportedDistributionError):
            normalizing_sequence("frechet", 100)


# ---------------------------------------------------------------------------
# Parametric block-maxima densities
# ---------------------------------------------------------------------------
class TestParametricDensity:

    def test_gumbel_density_integrates_to_one(self):
        total, _ = quad(gumbel_density, -10, 40)
        np.testing.assert_allclose(total, 1.0, rtol=1e-8)

    def test_matches_direct_formula_small_n(self, parents, grid):
        """For small n the direct-space formula is still accurate."""
        n = 10
        for dist in parents:
            c_n, d_n = dist.normalizing_sequence(n)
            y = d_n + c_n * grid
            direct = n * c_n * dist.pdf(y) * dist.cdf(y) ** (n - 1)
            np.testing.assert_allclose(parametric_density(dist, n, grid), direct,
                                       rtol=1e-8, atol=1e-300)

    def test_exponential_is_gumbel_fast(self, grid):
        """Exp maxima: F^n(d_n + c_n x) = (1 - e^{-x}/n)^n -> Lambda(x)."""
        curve = block_maxima_density("exponential", 1000, grid=grid, rate=2.0)
        assert curve.sup_distance() < 1e-3

    def test_large_n_finite(self, parents, grid):
        for dist in parents:
            h = parametric_density(dist, 100000, grid)
            assert np.all(np.isfinite(h)) and np.all(h >= 0)
            assert h.max() > 0.1

    def test_sup_distance_decreases(self, parents, grid):
        """Convergence to the Gumbel density as n runs through 10, 1e3, 1e5."""
        for dist in parents:
            sups = [block_maxima_density(dist, n, grid=grid).sup_distance()
                    for n in DEFAULT_BLOCK_SIZES]
            assert sups[0] > sups[1] > sups[2], dist.label

    def test_sup_distance_levels_at_largest_n(self, parents, grid):
        """
        Exponential maxima are essentially Gumbel at n = 1e5; the Gaussian
        parents converge only at rate 1 / log n.
        """
        exp_, _, normal_, lognormal_ = parents
        assert block_maxima_density(exp_, 100000, grid=grid).sup_distance() < 0.02
        assert block_maxima_density(normal_, 100000, grid=grid).sup_distance() < 0.05
        assert block_maxima_density(lognormal_, 100000, grid=grid).sup_distance() < 0.1

    def test_curve_metadata(self, grid):
        dist = ParentDistribution.normal(1.0, 2.0)
        curve = block_maxima_density(dist, 1000, mode="parametric", grid=grid)
        assert curve.mode is DensityMode.PARAMETRIC
        assert curve.n == 1000
        assert curve.normalizing == dist.normalizing_sequence(1000)
        df = curve.to_frame()
        assert list(df.columns) == ["x", "density"]
        assert len(df) == len(grid)

    def test_default_grid(self):
        curve = block_maxima_density(ParentDistribution.gamma(2.0, 2.0), 100)
        assert curve.x[0] == -3.0 and curve.x[-1] == 10.0
        assert len(curve.x) == 257

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            block_maxima_density("normal", 100, mode="semiparametric")


# ---------------------------------------------------------------------------
# Nonparametric block-maxima densities
# ---------------------------------------------------------------------------
class TestNonparametricDensity:

    def test_block_partition(self):
        """Consecutive blocks of size n; maxima mapped through F^{-1}."""
        u = np.array([0.1, 0.5, 0.9, 0.2, 0.3, 0.4, 0.99])
        dist = ParentDistribution.exponential(rate=2.0)
        maxima = normalized_block_maxima(dist, 2, 3, u)
        c_n, d_n = dist.normalizing_sequence(2)
        expected = (-np.log(1 - np.array([0.5, 0.9, 0.4])) / 2.0 - d_n) / c_n
        np.testing.assert_allclose(maxima, expected)

    def test_too_few_uniforms(self):
        with pytest.raises(ValueError):
            normalized_block_maxima(ParentDistribution.normal(), 10, 5, np.zeros(49))

    def test_matched_stream_location_scale(self):
        """N(1, 4) and N(0, 1) maxima coincide after normalisation on a shared stream."""
        u = matched_uniforms(100 * 50, seed=271)
        a = normalized_block_maxima(ParentDistribution.normal(1.0, 2.0), 100, 50, u)
        b = normalized_block_maxima(ParentDistribution.normal(0.0, 1.0), 100, 50, u)
        np.testing.assert_allclose(a, b, rtol=1e-10, atol=1e-12)

    def test_matched_stream_ordering(self):
        """One stream, same order: block maxima rank identically across parents."""
        u = matched_uniforms(50 * 40, seed=5)
        ranks = [np.argsort(normalized_block_maxima(d, 50, 40, u))
                 for d in study_distributions()]
        for r in ranks[1:]:
            np.testing.assert_array_equal(r, ranks[0])

    def test_reproducible_with_seed(self):
        a = block_maxima_density("gamma", 100, mode="nonparametric", n_blocks=200,
                                 seed=11, shape=2.0, rate=2.0)
        b = block_maxima_density("gamma", 100, mode="nonparametric", n_blocks=200,
                                 seed=11, shape=2.0, rate=2.0)
        c = block_maxima_density("gamma", 100, mode="nonparametric", n_blocks=200,
                                 seed=12, shape=2.0, rate=2.0)
        np.testing.assert_array_equal(a.density, b.density)
        assert not np.array_equal(a.density, c.density)

    def test_requires_seed_or_stream(self):
        with pytest.raises(ValueError):
            block_maxima_density("normal", 100, mode="nonparametric")

    def test_kde_is_a_density(self):
        curve = block_maxima_density(ParentDistribution.exponential(2.0), 1000,
                                     mode=DensityMode.NONPARAMETRIC,
                                     n_blocks=500, seed=271)
        assert len(curve.x) == 512
        assert np.all(np.diff(curve.x) > 0)
        assert np.all(curve.density >= 0)
        np.testing.assert_allclose(trapezoid(curve.density, curve.x), 1.0, atol=0.01)
        # Gumbel mode is at 0
        assert -0.75 < curve.x[np.argmax(curve.density)] < 0.75

    def test_bandwidth_adjust_smooths(self):
        sample = np.random.default_rng(1).gumbel(size=500)
        grid = np.linspace(-3, 10, 257)
        _, narrow = kernel_density(sample, adjust=0.5, grid=grid)
        _, wide = kernel_density(sample, adjust=3.0, grid=grid)
        assert wide.max() < narrow.max()

    def test_caller_grid(self, grid):
        curve = block_maxima_density("lognormal", 50, mode="nonparametric",
                                     grid=grid, n_blocks=100, seed=3,
                                     meanlog=1.0, sdlog=2.0)
        np.testing.assert_array_equal(curve.x, grid)


# ---------------------------------------------------------------------------
# Convergence study
# ---------------------------------------------------------------------------
class TestConvergenceTable:

    def test_parametric_table(self, parents, grid):
        table = convergence_table(parents, grid=grid)
        assert len(table) == len(parents) * len(DEFAULT_BLOCK_SIZES)
        assert table["sup_distance"].notna().all()
        for _, group in table.groupby("distribution"):
            assert group.sort_values("n")["sup_distance"].is_monotonic_decreasing

    def test_nonparametric_table(self, parents):
        table = convergence_table(parents, block_sizes=(10, 50), mode="nonparametric",
                                  n_blocks=200, seed=1)
        assert len(table) == 8
        assert (table["mode"] == "nonparametric").all()
        assert np.all(np.isfinite(table["sup_distance"]))

    def test_failing_unit_isolated(self, parents, grid):
        table = convergence_table(parents, block_sizes=(1, 100), grid=grid)
        bad = table[table["n"] == 1]
        good = table[table["n"] == 100]
        assert bad["sup_distance"].isna().all()
        assert good["sup_distance"].notna().all()

    def test_simulation_config_passed_through(self, parents):
        cfg = SimulationConfig(n_blocks=100, seed=9, kde_points=64)
        from_config = convergence_table(parents[:2], block_sizes=(10, 20),
                                        mode="nonparametric", config=cfg)
        explicit = convergence_table(parents[:2], block_sizes=(10, 20),
                                     mode="nonparametric", n_blocks=100, seed=9,
                                     config=SimulationConfig(kde_points=64))
        default_kde = convergence_table(parents[:2], block_sizes=(10, 20),
                                        mode="nonparametric", n_blocks=100, seed=9)
        np.testing.assert_array_equal(from_config["sup_distance"],
                                      explicit["sup_distance"])
        assert not np.array_equal(from_config["sup_distance"],
                                  default_kde["sup_distance"])
