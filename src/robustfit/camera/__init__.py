"""
Camera package
"""
from .pinhole import (
    PinholeCamera, intrinsic_matrix, is_valid_intrinsics, fit_pose_epnp,
    reprojection_errors, reprojection_residuals,
)
from .epnp_fitter import EPnPFitter

__all__ = [
    "PinholeCamera", "intrinsic_matrix", "is_valid_intrinsics", "fit_pose_epnp",
    "reprojection_errors", "reprojection_residuals",
    "EPnPFitter",
]
