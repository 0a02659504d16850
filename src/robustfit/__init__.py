"""
robustfit: robust fitting of geometric models (spheres, pinhole camera poses)
to outlier-contaminated observations with RANSAC-family estimators.
"""
from .ransac import (
    EstimatorParams, EstimatorState, InliersData, RansacResult,
    EstimatorError, LockedError, NotReadyError, RobustEstimatorError, RefinementError,
    RobustEstimator, ransac,
)
from .sphere import Sphere, SphereFitter
from .camera import PinholeCamera, EPnPFitter, intrinsic_matrix
from .estimators import create_sphere_estimator, create_pinhole_camera_estimator

__all__ = [
    "EstimatorParams", "EstimatorState", "InliersData", "RansacResult",
    "EstimatorError", "LockedError", "NotReadyError", "RobustEstimatorError", "RefinementError",
    "RobustEstimator", "ransac",
    "Sphere", "SphereFitter",
    "PinholeCamera", "EPnPFitter", "intrinsic_matrix",
    "create_sphere_estimator", "create_pinhole_camera_estimator",
]
