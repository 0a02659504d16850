# Andy Zhao

"""
Shared typed primitives for the robust estimation engine.

Defines:
- Typed NumPy aliases for observations
    - Correspondence sets are tuples of arrays sharing their first axis (N)
    - Masks are (N,) bool arrays, residuals are (N,) float arrays
- Model fitter protocols (minimal fit, least-squares refit, residuals, refinement hooks)
- Listener protocol for estimation progress notifications
- Estimator state enum
- Structured result containers (inliers data, RANSAC result)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, TypeVar, Generic, Optional, TypeAlias, TYPE_CHECKING

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    from .core import RobustEstimator

# ---------- Numpy typing aliases ----------
# - float64 for observations / model parameters (more stable for linear algebra)
# - bool_ for masks

FloatArray: TypeAlias = npt.NDArray[np.float64]
BoolArray: TypeAlias = npt.NDArray[np.bool_]
IndexArray: TypeAlias = npt.NDArray[np.intp]

# 3D points, e.g. samples on a sphere or the object side of a pose problem.
Points3D: TypeAlias = FloatArray      # shape: (N, 3)

# 2D image points (pixels).
Points2D: TypeAlias = FloatArray      # shape: (N, 2)

# Boolean inlier mask: True as inlier, False as outlier
Mask: TypeAlias = BoolArray           # shape: (N,)

# Correspondence set: every array is indexed by observation along axis 0.
#   sphere: (points,)
#   camera: (points3d, points2d)
Correspondences: TypeAlias = tuple[FloatArray, ...]

# ---------- Generic model typing ----------
# Sphere, PinholeCamera, ... the engine never looks inside a model.
M = TypeVar("M")


class ModelFitter(Protocol[M]):
    """
    Interface that a model must implement to be usable by the robust estimator.

    Consensus steps:
    1) Fit a model from a minimal sample
    2) Score all observations with a per-observation residual
    3) Refit a better model from all inliers (least squares)
    """

    # Number of observations in a minimal sample (sphere=4, EPnP=6)
    min_samples: int

    def fit_minimal(self, *data: FloatArray) -> Optional[M]:
        """
        Fit from exactly min_samples observations.
        Return None if the sample is degenerate (e.g., coplanar points for a sphere).
        """
        ...

    def fit_least_squares(self, *data: FloatArray) -> Optional[M]:
        """
        Refit the model using all inliers.
        Return None if the set is degenerate or the solve fails.
        """
        ...

    def residuals(self, model: M, *data: FloatArray) -> FloatArray:
        """
        Return a vector of non-negative residuals, one per observation.
        Shape: (N,). Smaller = better. Same units as the inlier threshold.
        """
        ...


class RefinableModelFitter(ModelFitter[M], Protocol[M]):
    """
    A fitter that can also be refined by non-linear least squares.

    The model is flattened into a parameter vector, and error_vector returns the
    signed error components minimized during refinement (e.g. dx, dy per point).
    """

    def to_params(self, model: M) -> FloatArray:
        ...

    def from_params(self, params: FloatArray) -> M:
        ...

    def error_vector(self, model: M, *data: FloatArray) -> FloatArray:
        ...


class EstimatorListener(Protocol):
    """
    Receives synchronous notifications from RobustEstimator.estimate().

    Callbacks run on the calling thread while the estimator is locked, so any
    attempt to reconfigure or re-run the estimator from here raises LockedError.
    """

    def on_estimate_start(self, estimator: "RobustEstimator") -> None:
        ...

    def on_estimate_next_iteration(self, estimator: "RobustEstimator", iteration: int) -> None:
        ...

    def on_estimate_progress_change(self, estimator: "RobustEstimator", progress: float) -> None:
        ...

    def on_estimate_end(self, estimator: "RobustEstimator") -> None:
        ...


class EstimatorState(Enum):
    IDLE = "idle"          # no (or not enough) data
    READY = "ready"        # estimate() may be called
    RUNNING = "running"    # locked inside estimate()


# ---------- Output containers ----------
@dataclass(frozen=True)
class InliersData:
    inliers: Optional[Mask]             # inlier mask of the best model, None unless kept
    residuals: Optional[FloatArray]     # residuals of the best model, None unless kept
    num_inliers: int                    # count of True values in the inlier mask
    threshold: float                    # effective inlier threshold used to classify


# A typed result struct returned by the ransac() convenience function
@dataclass(frozen=True)
class RansacResult(Generic[M]):
    model: M                                # best model found (refined if enabled)
    inliers: Mask                           # boolean mask of inliers under the best model
    num_inliers: int                        # count of True values in inliers
    rms_error: float                        # RMS error of inliers under the final model
    iterations: int                         # how many iterations were actually run
    threshold: float                        # the effective inlier threshold
    covariance: Optional[FloatArray] = None # parameter covariance, if refinement kept one


# ---------- Helper Function ----------
def as_correspondences(*data: npt.ArrayLike) -> Correspondences:
    """
    Convert caller arrays into a read-only float64 correspondence set.

    All arrays must be at least 1-D, finite, and share their first axis.
    A copy is taken so the caller's arrays are never touched.
    """
    if not data:
        raise ValueError("At least one observation array is required")

    arrays = []
    for a in data:
        arr = np.array(a, dtype=np.float64, copy=True)
        if arr.ndim < 1:
            raise ValueError(f"Observation arrays must be at least 1-D, got shape {arr.shape}")
        if not np.isfinite(arr).all():
            raise ValueError("Observation arrays must contain finite values only")
        arr.flags.writeable = False
        arrays.append(arr)

    n = arrays[0].shape[0]
    for arr in arrays[1:]:
        if arr.shape[0] != n:
            raise ValueError(
                f"All observation arrays must have the same length, got {[a.shape[0] for a in arrays]}")
    return tuple(arrays)


def subset(data: Correspondences, idx: npt.ArrayLike) -> Correspondences:
    """
    Select the same observations (indices or bool mask) from every array.
    """
    return tuple(a[idx] for a in data)
