"""
Generalized Pareto Distribution
=================================

Closed-form distribution function, quantile function and (log-)density of
the GPD G_{xi,beta} used to model threshold excesses:

    G(x) = 1 - (1 + xi*x/beta)^(-1/xi)     xi != 0
    G(x) = 1 - exp(-x/beta)                xi == 0

Support is [0, inf) for xi >= 0 and [0, -beta/xi] for xi < 0.

All functions are vectorised in their first argument; shape and scale are
scalars. With ``check=True`` (default) out-of-domain arguments raise
DomainError; with ``check=False`` they propagate NaN.

Reference:
    Embrechts, Klueppelberg & Mikosch (1997), Section 3.4.

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

import numpy as np
from typing import Optional

from evt_risk.exceptions import DomainError
from evt_risk.utils import as_float_array, scalar_or_array


def _valid_params(shape: float, scale: float) -> bool:
    return bool(np.isfinite(shape) and np.isfinite(scale) and scale > 0)


def _check_params(shape: float, scale: float) -> None:
    if not np.isfinite(shape):
        raise DomainError(f"shape must be finite, got {shape}")
    if not (np.isfinite(scale) and scale > 0):
        raise DomainError(f"scale must be positive, got {scale}")


def gpd_upper_endpoint(shape: float, scale: float) -> float:
    """Right endpoint of the support: -scale/shape for shape < 0, else inf."""
    _check_params(shape, scale)
    return -scale / shape if shape < 0 else np.inf


def _beyond_support(x: np.ndarray, shape: float, scale: float) -> np.ndarray:
    if shape >= 0:
        return np.zeros(x.shape, dtype=bool)
    return x > -scale / shape


def gpd_cdf(q, shape: float, scale: float, check: bool = True):
    """
    Distribution function G_{xi,beta}(q).

    Values below 0 map to 0. For shape < 0, q beyond the upper endpoint
    raises DomainError (check=True) or maps to 1 (check=False).
    """
    x = as_float_array(q)
    if not _valid_params(shape, scale):
        if check:
            _check_params(shape, scale)
        return scalar_or_array(np.full(x.shape, np.nan), q)

    beyond = _beyond_support(x, shape, scale)
    if check and beyond.any():
        raise DomainError(
            f"argument outside the support [0, {-scale / shape:.6g}] "
            f"for shape={shape}")

    z = np.maximum(x, 0.0) / scale
    with np.errstate(divide="ignore", invalid="ignore"):
        if shape == 0:
            out = -np.expm1(-z)
        else:
            out = -np.expm1(-np.log1p(shape * np.where(beyond, 0.0, z)) / shape)
    out = np.where(beyond, 1.0, out)
    out = np.where(x < 0, 0.0, out)
    out = np.where(np.isnan(x), np.nan, out)
    return scalar_or_array(out, q)


def gpd_quantile(p, shape: float, scale: float, check: bool = True):
    """
    Quantile function G^{-1}(p) for p in [0, 1).

        xi != 0:  (beta/xi) * ((1-p)^(-xi) - 1)
        xi == 0:  -beta * log(1-p)
    """
    u = as_float_array(p)
    if not _valid_params(shape, scale):
        if check:
            _check_params(shape, scale)
        return scalar_or_array(np.full(u.shape, np.nan), p)

    bad = ~((u >= 0) & (u < 1))
    if check and bad.any():
        raise DomainError(f"probabilities must lie in [0, 1), got {u[bad][:5]}")

    with np.errstate(divide="ignore", invalid="ignore"):
        log_sf = np.log1p(-np.where(bad, 0.0, u))
        if shape == 0:
            out = -scale * log_sf
        else:
            out = scale / shape * np.expm1(-shape * log_sf)
    out = np.where(bad, np.nan, out)
    return scalar_or_array(out, p)


def gpd_logpdf(x, shape: float, scale: float, check: bool = True):
    """
    Log-density log g_{xi,beta}(x).

        xi != 0:  -log(beta) - (1/xi + 1) * log(1 + xi*x/beta)
        xi == 0:  -log(beta) - x/beta

    Returns -inf below 0. Evaluated in log-space so that likelihoods and
    block-maxima densities stay finite far in the tail.
    """
    z_in = as_float_array(x)
    if not _valid_params(shape, scale):
        if check:
            _check_params(shape, scale)
        return scalar_or_array(np.full(z_in.shape, np.nan), x)

    beyond = _beyond_support(z_in, shape, scale)
    if check and beyond.any():
        raise DomainError(
            f"argument outside the support [0, {-scale / shape:.6g}] "
            f"for shape={shape}")

    outside = (z_in < 0) | beyond
    z = np.where(outside, 0.0, z_in) / scale
    with np.errstate(divide="ignore", invalid="ignore"):
        if shape == 0:
            out = -np.log(scale) - z
        elif shape == -1:
            out = np.full(z.shape, -np.log(scale))   # uniform on [0, scale]
        else:
            out = -np.log(scale) - (1.0 / shape + 1.0) * np.log1p(shape * z)
    out = np.where(outside, -np.inf, out)
    out = np.where(np.isnan(z_in), np.nan, out)
    return scalar_or_array(out, x)


def gpd_density(x, shape: float, scale: float, log: bool = False,
                check: bool = True):
    """Density g_{xi,beta}(x); ``log=True`` returns the log-density."""
    ld = gpd_logpdf(x, shape, scale, check=check)
    if log:
        return ld
    return scalar_or_array(np.exp(as_float_array(ld)), x)


def gpd_random(size: int, shape: float, scale: float,
               rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Draw GPD variates by inversion of uniforms."""
    _check_params(shape, scale)
    rng = rng if rng is not None else np.random.default_rng()
    return np.asarray(gpd_quantile(rng.uniform(size=size), shape, scale))
