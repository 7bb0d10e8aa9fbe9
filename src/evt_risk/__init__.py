"""
EVT Risk Engine
===============
Peaks-over-threshold GPD tail risk (VaR / Expected Shortfall) and the
speed of convergence of normalised block maxima to the Gumbel law.

Author: Jose Orlando Bobadilla Fuentes, CQF
"""

from evt_risk.exceptions import (
    EVTError, DomainError, InsufficientDataError, NonConvergenceError,
    DegenerateFitError, InvalidConfidenceError, ModelDegenerateError,
    UnsupportedDistributionError, InvalidBlockSizeError,
)
from evt_risk.models.gpd import (
    gpd_cdf, gpd_quantile, gpd_density, gpd_logpdf, gpd_random,
    gpd_upper_endpoint,
)
from evt_risk.models.gpd_fitter import (
    GPDParameters, FitResult, OptimizerResult, fit_gpd, scipy_optimizer,
)
from evt_risk.models.pot import (
    ExceedanceSet, POTFit, RiskMeasureResult, exceedances, mean_excess,
    shape_by_threshold, fit_pot, var_gpd_tail, es_gpd_tail,
    tail_probability, risk_measures, risk_table,
)
from evt_risk.models.distributions import (
    DistributionFamily, ParentDistribution, NormalizingSequence,
    normalizing_sequence, study_distributions,
)
from evt_risk.models.block_maxima import (
    DensityMode, BlockMaximaDensityCurve, block_maxima_density,
    gumbel_density, matched_uniforms, normalized_block_maxima,
    convergence_table,
)

__version__ = "1.0.0"
__author__ = "Jose Orlando Bobadilla Fuentes"

__all__ = [
    "EVTError", "DomainError", "InsufficientDataError", "NonConvergenceError",
    "DegenerateFitError", "InvalidConfidenceError", "ModelDegenerateError",
    "UnsupportedDistributionError", "InvalidBlockSizeError",
    "gpd_cdf", "gpd_quantile", "gpd_density", "gpd_logpdf", "gpd_random",
    "gpd_upper_endpoint",
    "GPDParameters", "FitResult", "OptimizerResult", "fit_gpd",
    "scipy_optimizer",
    "ExceedanceSet", "POTFit", "RiskMeasureResult", "exceedances",
    "mean_excess", "shape_by_threshold", "fit_pot", "var_gpd_tail",
    "es_gpd_tail", "tail_probability", "risk_measures", "risk_table",
    "DistributionFamily", "ParentDistribution", "NormalizingSequence",
    "normalizing_sequence", "study_distributions",
    "DensityMode", "BlockMaximaDensityCurve", "block_maxima_density",
    "gumbel_density", "matched_uniforms", "normalized_block_maxima",
    "convergence_table",
]
