"""
Typed errors for the EVT risk engine.

Value errors (bad inputs) also derive from ValueError; numerical failures
derive from RuntimeError.
"""


class EVTError(Exception):
    """Base class for all errors raised by evt_risk."""


class DomainError(EVTError, ValueError):
    """Argument outside the domain of a GPD function (scale, probability or support)."""


class InsufficientDataError(EVTError, ValueError):
    """Too few observations (or exceedances) to fit a model."""


class NonConvergenceError(EVTError, RuntimeError):
    """The optimizer did not meet its stopping criterion within the iteration budget."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class DegenerateFitError(EVTError, RuntimeError):
    """The fitted scale is non-positive or non-finite."""


class InvalidConfidenceError(EVTError, ValueError):
    """Confidence level outside the POT extrapolation regime (alpha <= 1 - p_exceed)."""


class ModelDegenerateError(EVTError, RuntimeError):
    """Risk measure undefined for the fitted model (ES with shape >= 1)."""


class UnsupportedDistributionError(EVTError, ValueError):
    """Parent distribution outside the supported catalogue."""


class InvalidBlockSizeError(EVTError, ValueError):
    """Block size too small for the normalizing-sequence formulas."""
