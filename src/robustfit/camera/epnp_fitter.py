# Andy Zhao
"""
Adapter class for EPnP camera pose estimation to match the ModelFitter protocol.

This allows using the generic robust estimator without modification.
Intrinsics are known and fixed; only the pose [rvec, tvec] is estimated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional

import numpy as np

from ..ransac.types import Points2D, Points3D, FloatArray, RefinableModelFitter
from .pinhole import (
    Mat3x3,
    PinholeCamera,
    fit_pose_epnp,
    is_valid_intrinsics,
    reprojection_errors,
    reprojection_residuals,
)


@dataclass(frozen=True, eq=False)
class EPnPFitter(RefinableModelFitter[PinholeCamera]):
    """
    Pinhole camera pose from 3D-2D point correspondences.

    This class plugs into the robust estimator.
    """
    intrinsics: Mat3x3
    min_samples: ClassVar[int] = 6

    def __post_init__(self) -> None:
        K = np.asarray(self.intrinsics, dtype=np.float64)
        if not is_valid_intrinsics(K):
            raise ValueError(f"Invalid intrinsic matrix:\n{K}")
        object.__setattr__(self, "intrinsics", K)

    def fit_minimal(
        self,
        points3d: Points3D,
        points2d: Points2D
    ) -> Optional[PinholeCamera]:
        """
        Called during hypothesis generation.

        Uses EPnP on the minimal sample.
        """
        return fit_pose_epnp(points3d, points2d, self.intrinsics)

    def fit_least_squares(
        self,
        points3d: Points3D,
        points2d: Points2D
    ) -> Optional[PinholeCamera]:
        """
        Called for fast refinement, after inliers are selected.

        EPnP is closed-form, so it is reused over all inliers.
        """
        return fit_pose_epnp(points3d, points2d, self.intrinsics)

    def residuals(
        self,
        model: PinholeCamera,
        points3d: Points3D,
        points2d: Points2D
    ) -> FloatArray:
        """
        Reprojection error per correspondence, in pixels.
        """
        return reprojection_residuals(model, points3d, points2d)

    def to_params(self, model: PinholeCamera) -> FloatArray:
        return np.concatenate([model.rvec, model.tvec]).astype(np.float64)

    def from_params(self, params: FloatArray) -> PinholeCamera:
        return PinholeCamera(intrinsics=self.intrinsics, rvec=params[:3], tvec=params[3:6])

    def error_vector(
        self,
        model: PinholeCamera,
        points3d: Points3D,
        points2d: Points2D
    ) -> FloatArray:
        return reprojection_errors(model, points3d, points2d)
