"""
Peaks-Over-Threshold Tail Risk
=================================

Semi-parametric tail estimators built on a GPD fitted to the excesses
over a threshold u (Smith, 1987). With p = P(X > u) estimated by the
empirical exceedance rate, for alpha > 1 - p:

    VaR_alpha = u + (beta/xi) * (((1-alpha)/p)^(-xi) - 1)      xi != 0
              = u - beta * log((1-alpha)/p)                    xi == 0

    ES_alpha  = VaR_alpha/(1-xi) + (beta - xi*u)/(1-xi)        xi < 1

Also provides the threshold-selection diagnostics (sample mean excess
function, shape stability across thresholds) and the Smith tail
probability estimator.

Reference:
    McNeil, Frey & Embrechts (2015), Section 5.2.

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from evt_risk.config import DEFAULT_CONFIG
from evt_risk.exceptions import (
    DomainError, EVTError, InsufficientDataError, InvalidConfidenceError,
    ModelDegenerateError)
from evt_risk.models.gpd import gpd_cdf
from evt_risk.models.gpd_fitter import FitResult, GPDParameters, Optimizer, fit_gpd
from evt_risk.utils import as_float_array, get_logger, scalar_or_array

log = get_logger(__name__, DEFAULT_CONFIG.log.log_dir, DEFAULT_CONFIG.log.level)

LossSeries = Union[np.ndarray, pd.Series, Sequence[float]]


# ---------------------------------------------------------------------------
# Exceedances
# ---------------------------------------------------------------------------
@dataclass
class ExceedanceSet:
    """Observations above a threshold and their excesses."""
    threshold: float
    exceedances: Union[np.ndarray, pd.Series]
    excesses: Union[np.ndarray, pd.Series]
    n_total: int

    @property
    def n_exceed(self) -> int:
        return len(self.exceedances)

    @property
    def p_exceed(self) -> float:
        """Empirical exceedance probability |{x > u}| / |losses|."""
        return self.n_exceed / self.n_total


def _clean_losses(losses: LossSeries) -> Union[np.ndarray, pd.Series]:
    if isinstance(losses, pd.Series):
        return losses.astype(float).dropna()
    x = np.asarray(losses, dtype=float).ravel()
    return x[~np.isnan(x)]


def exceedances(losses: LossSeries, threshold: float) -> ExceedanceSet:
    """
    Split a loss series at threshold u.

    A pandas Series keeps its index on the exceedances and excesses.
    Raises InsufficientDataError if no loss exceeds u.
    """
    x = _clean_losses(losses)
    if len(x) == 0:
        raise InsufficientDataError("empty loss series")
    exceed = x[x > threshold]
    if len(exceed) == 0:
        raise InsufficientDataError(f"no losses exceed the threshold {threshold}")
    return ExceedanceSet(threshold=float(threshold), exceedances=exceed,
                         excesses=exceed - threshold, n_total=len(x))


def mean_excess(losses: LossSeries, omit: int = 3) -> pd.DataFrame:
    """
    Sample mean excess function e(u) = mean(x - u | x > u).

    Evaluated at every distinct observation used as threshold; thresholds
    with fewer than ``omit`` observations above them are dropped, since the
    largest points give very noisy averages.
    """
    xs = np.sort(np.asarray(_clean_losses(losses), dtype=float))
    if len(xs) < 2:
        raise InsufficientDataError(f"need at least 2 losses, got {len(xs)}")
    u = np.unique(xs)
    idx = np.searchsorted(xs, u, side="right")
    csum = np.concatenate([[0.0], np.cumsum(xs)])
    n_above = len(xs) - idx
    keep = n_above >= max(omit, 1)
    sum_above = csum[-1] - csum[idx[keep]]
    return pd.DataFrame({
        "threshold": u[keep],
        "mean_excess": sum_above / n_above[keep] - u[keep],
        "n_exceed": n_above[keep],
    })


# ---------------------------------------------------------------------------
# Risk measures
# ---------------------------------------------------------------------------
def _check_tail_model(threshold: float, p_exceed: float,
                      shape: float, scale: float) -> None:
    if not np.isfinite(threshold):
        raise DomainError(f"threshold must be finite, got {threshold}")
    if not (0 < p_exceed <= 1):
        raise DomainError(f"p_exceed must lie in (0, 1], got {p_exceed}")
    if not np.isfinite(shape):
        raise DomainError(f"shape must be finite, got {shape}")
    if not (np.isfinite(scale) and scale > 0):
        raise DomainError(f"scale must be positive, got {scale}")


def _outside_pot_regime(a: np.ndarray, p_exceed: float) -> np.ndarray:
    return ~((a > 1.0 - p_exceed) & (a < 1.0))


def var_gpd_tail(alphas, threshold: float, p_exceed: float,
                 shape: float, scale: float, check: bool = True):
    """
    GPD-tail Value-at-Risk for one or more confidence levels.

    Raises InvalidConfidenceError for any alpha <= 1 - p_exceed (or
    alpha >= 1); with ``check=False`` those entries are NaN instead.
    """
    _check_tail_model(threshold, p_exceed, shape, scale)
    a = as_float_array(alphas)
    bad = _outside_pot_regime(a, p_exceed)
    if check and bad.any():
        raise InvalidConfidenceError(
            f"confidence levels {a[bad]} outside the POT regime "
            f"(1 - p_exceed, 1) = ({1.0 - p_exceed:.6g}, 1)")

    with np.errstate(divide="ignore", invalid="ignore"):
        log_ratio = np.log((1.0 - a) / p_exceed)
        if shape == 0:
            var = threshold - scale * log_ratio
        else:
            var = threshold + scale / shape * np.expm1(-shape * log_ratio)
    var = np.where(bad, np.nan, var)
    return scalar_or_array(var, alphas)


def es_gpd_tail(alphas, threshold: float, p_exceed: float,
                shape: float, scale: float, check: bool = True):
    """
    GPD-tail Expected Shortfall for one or more confidence levels.

    Defined only for shape < 1; otherwise raises ModelDegenerateError
    (``check=False`` returns +inf).
    """
    if shape >= 1:
        if check:
            raise ModelDegenerateError(
                f"expected shortfall is infinite for shape={shape} >= 1")
        _check_tail_model(threshold, p_exceed, shape, scale)
        a = as_float_array(alphas)
        es = np.where(_outside_pot_regime(a, p_exceed), np.nan, np.inf)
        return scalar_or_array(es, alphas)

    var = as_float_array(var_gpd_tail(alphas, threshold, p_exceed, shape,
                                      scale, check=check))
    es = var / (1.0 - shape) + (scale - shape * threshold) / (1.0 - shape)
    return scalar_or_array(es, alphas)


def tail_probability(x, threshold: float, p_exceed: float,
                     shape: float, scale: float, check: bool = True):
    """
    Smith tail estimator  P(X > x) = p_exceed * (1 - G_{xi,beta}(x - u))
    for x >= u.
    """
    _check_tail_model(threshold, p_exceed, shape, scale)
    q = as_float_array(x)
    below = q < threshold
    if check and below.any():
        raise DomainError(f"tail estimator defined for x >= {threshold}")
    g = np.asarray(gpd_cdf(np.where(below, 0.0, q - threshold), shape, scale,
                           check=False), dtype=float)
    out = np.where(below, np.nan, p_exceed * (1.0 - g))
    return scalar_or_array(out, x)


@dataclass
class RiskMeasureResult:
    """VaR and ES at a set of confidence levels for one tail model."""
    alphas: np.ndarray
    var: np.ndarray
    es: np.ndarray
    threshold: float
    p_exceed: float
    params: GPDParameters

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"alpha": self.alphas, "VaR": self.var,
                             "ES": self.es})


def risk_measures(alphas, threshold: float, p_exceed: float,
                  params: GPDParameters, check: bool = True) -> RiskMeasureResult:
    """VaR and ES for each alpha, from explicitly passed GPD parameters."""
    a = as_float_array(alphas)
    var = as_float_array(var_gpd_tail(a, threshold, p_exceed, params.shape,
                                      params.scale, check=check))
    es = as_float_array(es_gpd_tail(a, threshold, p_exceed, params.shape,
                                    params.scale, check=check))
    return RiskMeasureResult(alphas=a, var=var, es=es, threshold=threshold,
                             p_exceed=p_exceed, params=params)


# ---------------------------------------------------------------------------
# Threshold models
# ---------------------------------------------------------------------------
@dataclass
class POTFit:
    """Exceedances over one threshold together with their GPD fit."""
    exceedance_set: ExceedanceSet
    fit: FitResult

    @property
    def threshold(self) -> float:
        return self.exceedance_set.threshold

    @property
    def p_exceed(self) -> float:
        return self.exceedance_set.p_exceed

    def var(self, alphas, check: bool = True):
        return var_gpd_tail(alphas, self.threshold, self.p_exceed,
                            self.fit.shape, self.fit.scale, check=check)

    def es(self, alphas, check: bool = True):
        return es_gpd_tail(alphas, self.threshold, self.p_exceed,
                           self.fit.shape, self.fit.scale, check=check)

    def tail_probability(self, x, check: bool = True):
        return tail_probability(x, self.threshold, self.p_exceed,
                                self.fit.shape, self.fit.scale, check=check)

    def risk_measures(self, alphas, check: bool = True) -> RiskMeasureResult:
        return risk_measures(alphas, self.threshold, self.p_exceed,
                             self.fit.params, check=check)


def fit_pot(losses: LossSeries, threshold: float,
            optimizer: Optional[Optimizer] = None) -> POTFit:
    """Extract the excesses over ``threshold`` and fit a GPD to them."""
    ex = exceedances(losses, threshold)
    fit = fit_gpd(np.asarray(ex.excesses, dtype=float), optimizer=optimizer)
    log.info("u=%.4g: %d exceedances (p=%.4f), shape=%.4f, scale=%.4f",
             threshold, ex.n_exceed, ex.p_exceed, fit.shape, fit.scale)
    return POTFit(exceedance_set=ex, fit=fit)


def shape_by_threshold(losses: LossSeries, thresholds: Sequence[float],
                       optimizer: Optional[Optimizer] = None) -> pd.DataFrame:
    """
    Refit the GPD for each threshold to check stability of the shape.

    A threshold whose fit fails is logged and reported with NaN
    parameters; the remaining thresholds are still fitted.
    """
    rows = []
    for u in thresholds:
        row = {"threshold": float(u), "n_exceed": 0, "shape": np.nan,
               "scale": np.nan, "shape_se": np.nan, "converged": False}
        try:
            pot = fit_pot(losses, u, optimizer=optimizer)
        except EVTError as e:
            log.warning("GPD fit failed at threshold %.4g: %s", u, e)
            row["n_exceed"] = int(np.sum(np.asarray(_clean_losses(losses)) > u))
        else:
            row.update(n_exceed=pot.exceedance_set.n_exceed,
                       shape=pot.fit.shape, scale=pot.fit.scale,
                       shape_se=pot.fit.se[0], converged=pot.fit.converged)
        rows.append(row)
    return pd.DataFrame(rows)


def risk_table(fits: Sequence[POTFit], alphas) -> pd.DataFrame:
    """
    Compare VaR/ES across threshold models.

    ES is reported as +inf for models with shape >= 1.
    """
    rows = []
    for pot in fits:
        a_arr = as_float_array(alphas)
        var = as_float_array(pot.var(a_arr))
        es = as_float_array(pot.es(a_arr, check=pot.fit.shape < 1))
        for a, v, e in zip(a_arr, var, es):
            rows.append({
                "threshold": pot.threshold,
                "n_exceed": pot.exceedance_set.n_exceed,
                "p_exceed": pot.p_exceed,
                "shape": pot.fit.shape,
                "scale": pot.fit.scale,
                "alpha": a,
                "VaR": v,
                "ES": e,
            })
    return pd.DataFrame(rows)
