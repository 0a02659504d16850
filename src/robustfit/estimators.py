# Andy Zhao
"""
Ready-made robust estimators.

Each one is the generic RobustEstimator configured with a concrete fitter,
not a subclass of it:

    est = create_sphere_estimator(points, method="prosac", quality_scores=scores, threshold=1e-6)
    sphere = est.estimate()

    est = create_pinhole_camera_estimator(pts3d, pts2d, intrinsics=K, threshold=2.0)
    camera = est.estimate()
"""

from __future__ import annotations

from typing import Optional

import numpy.typing as npt

from .camera.epnp_fitter import EPnPFitter
from .camera.pinhole import Mat3x3, PinholeCamera
from .ransac.core import RobustEstimator
from .ransac.params import RobustMethod
from .ransac.types import EstimatorListener
from .sphere.sphere import Sphere
from .sphere.sphere_fitter import SphereFitter

# Residuals are distances in the points' units
DEFAULT_SPHERE_THRESHOLD = 1e-6
DEFAULT_SPHERE_STOP_THRESHOLD = 1e-6

# Residuals are reprojection errors in pixels
DEFAULT_CAMERA_THRESHOLD = 1.0
DEFAULT_CAMERA_STOP_THRESHOLD = 1.0


def create_sphere_estimator(
        points: Optional[npt.ArrayLike] = None,
        quality_scores: Optional[npt.ArrayLike] = None,
        *,
        method: RobustMethod = "ransac",
        listener: Optional[EstimatorListener] = None,
        **params: object,
) -> RobustEstimator[Sphere]:
    """
    Robust sphere estimator from (N,3) points, N >= 4.

    Extra keyword arguments override EstimatorParams fields (threshold, confidence, ...).
    """
    params.setdefault("threshold", DEFAULT_SPHERE_THRESHOLD)
    params.setdefault("stop_threshold", DEFAULT_SPHERE_STOP_THRESHOLD)
    return RobustEstimator(
        SphereFitter(),
        None if points is None else (points,),
        method=method,
        quality_scores=quality_scores,
        listener=listener,
        **params,
    )


def create_pinhole_camera_estimator(
        points3d: Optional[npt.ArrayLike] = None,
        points2d: Optional[npt.ArrayLike] = None,
        quality_scores: Optional[npt.ArrayLike] = None,
        *,
        intrinsics: Mat3x3,
        method: RobustMethod = "ransac",
        listener: Optional[EstimatorListener] = None,
        **params: object,
) -> RobustEstimator[PinholeCamera]:
    """
    Robust camera pose estimator (EPnP) from (N,3) world points and (N,2) pixels, N >= 6.

    Extra keyword arguments override EstimatorParams fields (threshold, confidence, ...).
    """
    if (points3d is None) != (points2d is None):
        raise ValueError("points3d and points2d must be given together")
    params.setdefault("threshold", DEFAULT_CAMERA_THRESHOLD)
    params.setdefault("stop_threshold", DEFAULT_CAMERA_STOP_THRESHOLD)
    return RobustEstimator(
        EPnPFitter(intrinsics),
        None if points3d is None else (points3d, points2d),
        method=method,
        quality_scores=quality_scores,
        listener=listener,
        **params,
    )
