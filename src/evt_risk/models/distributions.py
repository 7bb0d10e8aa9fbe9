"""
Parent Distributions in the Gumbel MDA
=========================================

Closed catalogue of parent distributions F whose normalised block maxima
(M_n - d_n)/c_n converge in law to the standard Gumbel distribution
Lambda(x) = exp(-exp(-x)), together with their normalizing sequences:

    Exp(lambda):       d_n = log(n)/lambda,                    c_n = 1/lambda
    Gamma(a, rate):    d_n = (log n + (a-1) log log n - log Gamma(a))/rate,
                       c_n = 1/rate
    N(mu, sigma^2):    d_n = mu + sigma * b_n,                 c_n = sigma/sqrt(2 log n)
    LN(mu, sigma^2):   d_n = exp(mu + sigma * b_n),            c_n = sigma d_n/sqrt(2 log n)

with b_n = sqrt(2 log n) - (log 4pi + log log n)/(2 sqrt(2 log n)).

Distribution primitives are scipy.stats frozen distributions.

Reference:
    Embrechts, Klueppelberg & Mikosch (1997), pp. 155-157.

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from scipy import stats
from scipy.special import gammaln
from typing import NamedTuple, Tuple

from evt_risk.exceptions import (
    DomainError, InvalidBlockSizeError, UnsupportedDistributionError)


class DistributionFamily(Enum):
    EXPONENTIAL = "exponential"
    GAMMA = "gamma"
    NORMAL = "normal"
    LOGNORMAL = "lognormal"


PARAMETER_NAMES = {
    DistributionFamily.EXPONENTIAL: ("rate",),
    DistributionFamily.GAMMA:       ("shape", "rate"),
    DistributionFamily.NORMAL:      ("mean", "sd"),
    DistributionFamily.LOGNORMAL:   ("meanlog", "sdlog"),
}

_DEFAULT_PARAMS = {
    DistributionFamily.EXPONENTIAL: (1.0,),
    DistributionFamily.GAMMA:       (1.0, 1.0),
    DistributionFamily.NORMAL:      (0.0, 1.0),
    DistributionFamily.LOGNORMAL:   (0.0, 1.0),
}

# Parameters that must be strictly positive
_POSITIVE = {"rate", "shape", "sd", "sdlog"}


class NormalizingSequence(NamedTuple):
    """Scale c_n and location d_n for block size n."""
    c_n: float
    d_n: float


def validate_block_size(n) -> int:
    """Block size must be an integer n >= 2 so that log log n is defined."""
    try:
        n_int = int(n)
    except (TypeError, ValueError, OverflowError):
        raise InvalidBlockSizeError(f"block size must be an integer, got {n!r}")
    if n_int != n:
        raise InvalidBlockSizeError(f"block size must be an integer, got {n!r}")
    if n_int < 2:
        raise InvalidBlockSizeError(f"block size must be >= 2, got {n_int}")
    return n_int


def _gaussian_b_n(log_n: float) -> float:
    root = np.sqrt(2.0 * log_n)
    return root - (np.log(4.0 * np.pi) + np.log(log_n)) / (2.0 * root)


@dataclass(frozen=True)
class ParentDistribution:
    """
    A parent distribution from the Gumbel-MDA catalogue.

    Usage:
        >>> dist = ParentDistribution.normal(mean=1.0, sd=2.0)
        >>> c_n, d_n = dist.normalizing_sequence(1000)
    """
    family: DistributionFamily
    params: Tuple[float, ...]

    def __post_init__(self):
        if not isinstance(self.family, DistributionFamily):
            raise UnsupportedDistributionError(
                f"Unsupported distribution: {self.family!r}")
        names = PARAMETER_NAMES[self.family]
        if len(self.params) != len(names):
            raise DomainError(
                f"{self.family.value} takes parameters {names}, "
                f"got {self.params}")
        for name, value in zip(names, self.params):
            if not np.isfinite(value):
                raise DomainError(f"{name} must be finite, got {value}")
            if name in _POSITIVE and value <= 0:
                raise DomainError(f"{name} must be positive, got {value}")

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def exponential(cls, rate: float = 1.0) -> "ParentDistribution":
        return cls(DistributionFamily.EXPONENTIAL, (float(rate),))

    @classmethod
    def gamma(cls, shape: float = 1.0, rate: float = 1.0) -> "ParentDistribution":
        return cls(DistributionFamily.GAMMA, (float(shape), float(rate)))

    @classmethod
    def normal(cls, mean: float = 0.0, sd: float = 1.0) -> "ParentDistribution":
        return cls(DistributionFamily.NORMAL, (float(mean), float(sd)))

    @classmethod
    def lognormal(cls, meanlog: float = 0.0,
                  sdlog: float = 1.0) -> "ParentDistribution":
        return cls(DistributionFamily.LOGNORMAL, (float(meanlog), float(sdlog)))

    @classmethod
    def from_name(cls, name: str, **params) -> "ParentDistribution":
        """Build from a tag such as 'normal' and keyword parameters."""
        try:
            family = DistributionFamily(str(name).lower())
        except ValueError:
            raise UnsupportedDistributionError(
                f"Unsupported distribution: {name!r}; expected one of "
                f"{[f.value for f in DistributionFamily]}") from None
        names = PARAMETER_NAMES[family]
        unknown = set(params) - set(names)
        if unknown:
            raise DomainError(f"{family.value} has no parameters {sorted(unknown)}")
        defaults = _DEFAULT_PARAMS[family]
        values = tuple(float(params.get(k, d)) for k, d in zip(names, defaults))
        return cls(family, values)

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------
    @property
    def label(self) -> str:
        fam = self.family
        p = self.params
        if fam is DistributionFamily.EXPONENTIAL:
            return f"Exp({p[0]:g})"
        if fam is DistributionFamily.GAMMA:
            return f"Gamma({p[0]:g}, {p[1]:g})"
        if fam is DistributionFamily.NORMAL:
            return f"N({p[0]:g}, {p[1] ** 2:g})"
        if fam is DistributionFamily.LOGNORMAL:
            return f"LN({p[0]:g}, {p[1] ** 2:g})"
        raise UnsupportedDistributionError(f"Unsupported distribution: {fam!r}")

    @property
    def frozen(self):
        """scipy.stats frozen distribution with the catalogue parameterisation."""
        fam = self.family
        p = self.params
        if fam is DistributionFamily.EXPONENTIAL:
            return stats.expon(scale=1.0 / p[0])
        if fam is DistributionFamily.GAMMA:
            return stats.gamma(a=p[0], scale=1.0 / p[1])
        if fam is DistributionFamily.NORMAL:
            return stats.norm(loc=p[0], scale=p[1])
        if fam is DistributionFamily.LOGNORMAL:
            return stats.lognorm(s=p[1], scale=np.exp(p[0]))
        raise UnsupportedDistributionError(f"Unsupported distribution: {fam!r}")

    def cdf(self, x) -> np.ndarray:
        return self.frozen.cdf(x)

    def logcdf(self, x) -> np.ndarray:
        """
        log F(x). Near the upper tail F is computed as 1 - S(x) through
        log1p so that (n - 1) * log F stays accurate for large n.
        """
        dist = self.frozen
        x = np.asarray(x, dtype=float)
        sf = dist.sf(x)
        with np.errstate(divide="ignore"):
            return np.where(sf < 0.5, np.log1p(-sf), dist.logcdf(x))

    def pdf(self, x) -> np.ndarray:
        return self.frozen.pdf(x)

    def logpdf(self, x) -> np.ndarray:
        return self.frozen.logpdf(x)

    def quantile(self, p) -> np.ndarray:
        return self.frozen.ppf(p)

    def normalizing_sequence(self, n: int) -> NormalizingSequence:
        return normalizing_sequence(self, n)


def normalizing_sequence(distribution, n: int, **params) -> NormalizingSequence:
    """
    Closed-form (c_n, d_n) such that (M_n - d_n)/c_n -> Gumbel.

    Parameters
    ----------
    distribution : ParentDistribution | str
        A catalogue distribution, or its tag ('exponential', 'gamma',
        'normal', 'lognormal') together with keyword parameters.
    n            : int  Block size, n >= 2.

    Raises
    ------
    UnsupportedDistributionError  distribution outside the catalogue.
    InvalidBlockSizeError         n not an integer >= 2.
    """
    if not isinstance(distribution, ParentDistribution):
        distribution = ParentDistribution.from_name(distribution, **params)
    n = validate_block_size(n)

    log_n = np.log(n)
    fam = distribution.family
    p = distribution.params

    if fam is DistributionFamily.EXPONENTIAL:
        rate, = p
        return NormalizingSequence(c_n=1.0 / rate, d_n=log_n / rate)
    if fam is DistributionFamily.GAMMA:
        shape, rate = p
        d_n = (log_n + (shape - 1.0) * np.log(log_n) - gammaln(shape)) / rate
        return NormalizingSequence(c_n=1.0 / rate, d_n=float(d_n))
    if fam is DistributionFamily.NORMAL:
        mu, sigma = p
        return NormalizingSequence(c_n=sigma / np.sqrt(2.0 * log_n),
                                   d_n=mu + sigma * _gaussian_b_n(log_n))
    if fam is DistributionFamily.LOGNORMAL:
        mu, sigma = p
        d_n = np.exp(mu + sigma * _gaussian_b_n(log_n))
        return NormalizingSequence(c_n=sigma * d_n / np.sqrt(2.0 * log_n),
                                   d_n=d_n)
    raise UnsupportedDistributionError(f"Unsupported distribution: {fam!r}")


def study_distributions() -> Tuple[ParentDistribution, ...]:
    """Exp(2), Gamma(2, 2), N(1, 2^2), LN(1, 2^2): the convergence-study parents."""
    return (
        ParentDistribution.exponential(rate=2.0),
        ParentDistribution.gamma(shape=2.0, rate=2.0),
        ParentDistribution.normal(mean=1.0, sd=2.0),
        ParentDistribution.lognormal(meanlog=1.0, sdlog=2.0),
    )
