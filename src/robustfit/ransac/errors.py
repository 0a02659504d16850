# Andy Zhao
"""
Exceptions raised by the robust estimation engine.

Invalid configuration values are not listed here: they raise ValueError at the
setter that received them, like the rest of the package.
"""


class EstimatorError(Exception):
    """Base class for estimator failures."""


class LockedError(EstimatorError):
    """The estimator is running; configuration and nested estimate() are rejected."""

    def __init__(self, message: str = "Estimator is locked while estimating"):
        super().__init__(message)


class NotReadyError(EstimatorError):
    """estimate() was called without enough data (or without required quality scores)."""

    def __init__(self, message: str = "Estimator is not ready: not enough data"):
        super().__init__(message)


class RobustEstimatorError(EstimatorError):
    """No consensus model could be found within the iteration limit."""


class RefinementError(EstimatorError):
    """Non-linear or least-squares refinement of the best model failed."""
