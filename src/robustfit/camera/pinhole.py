# Andy Zhao
"""
Pinhole camera model with known intrinsics.

A 3D point X (world frame) projects to pixel coordinates through

    x_cam = R @ X + t
    [u, v, w]^T = K @ x_cam
    (u / w, v / w)

where:
    K = [[fx, s,  cx],
         [0,  fy, cy],
         [0,  0,  1 ]]

R is stored as a Rodrigues rotation vector (rvec, OpenCV convention), so the
pose has 6 unknowns: rvec (3) + tvec (3).

The minimal pose fit uses OpenCV's EPnP (Efficient Perspective-n-Point).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import cv2

from ..ransac.types import Points2D, Points3D, FloatArray

# Mat3x3 is a (3,3) float64 array
Mat3x3 = FloatArray


def intrinsic_matrix(fx: float, fy: float, cx: float, cy: float, skew: float = 0.0) -> Mat3x3:
    """
    Build the 3x3 intrinsic matrix K from focal lengths, principal point and skew.
    """
    return np.array(
        [
            [fx, skew, cx],
            [0.0, fy, cy],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )


def is_valid_intrinsics(K: Mat3x3) -> bool:
    """
    Verify a 3x3 intrinsic matrix: finite, upper triangular, non-zero focal lengths.
    """
    return (
            isinstance(K, np.ndarray) and K.shape == (3, 3) and bool(np.isfinite(K).all())
            and K[1, 0] == 0.0 and K[2, 0] == 0.0 and K[2, 1] == 0.0
            and K[0, 0] != 0.0 and K[1, 1] != 0.0 and K[2, 2] != 0.0
    )


@dataclass(frozen=True, eq=False)
class PinholeCamera:
    intrinsics: Mat3x3      # K, shape (3,3)
    rvec: FloatArray        # Rodrigues rotation vector, shape (3,)
    tvec: FloatArray        # translation, shape (3,)

    def __post_init__(self) -> None:
        K = np.asarray(self.intrinsics, dtype=np.float64)
        if not is_valid_intrinsics(K):
            raise ValueError(f"Invalid intrinsic matrix:\n{K}")
        r = np.asarray(self.rvec, dtype=np.float64).reshape(-1)
        t = np.asarray(self.tvec, dtype=np.float64).reshape(-1)
        if r.shape != (3,) or t.shape != (3,):
            raise ValueError(f"rvec and tvec must have 3 components, got {r.shape} and {t.shape}")
        object.__setattr__(self, "intrinsics", K)
        object.__setattr__(self, "rvec", r)
        object.__setattr__(self, "tvec", t)

    @property
    def rotation(self) -> Mat3x3:
        R, _ = cv2.Rodrigues(self.rvec)
        return R.astype(np.float64)

    @property
    def center(self) -> FloatArray:
        """Camera center in world coordinates: C = -R^T t."""
        return -self.rotation.T @ self.tvec

    @property
    def matrix(self) -> FloatArray:
        """3x4 projection matrix P = K [R | t]."""
        return self.intrinsics @ np.hstack([self.rotation, self.tvec.reshape(3, 1)])

    def project(self, points3d: Points3D) -> Points2D:
        """
        Project (N,3) world points to (N,2) pixels.

        Points at or behind the camera plane (depth <= 0) project to inf.
        """
        pts = np.asarray(points3d, dtype=np.float64)
        if pts.ndim != 2 or pts.shape[1] != 3:
            raise ValueError(f"Expected points shape (N,3), got {pts.shape}")

        # Each point is a row, so multiply by R^T
        x_cam = pts @ self.rotation.T + self.tvec
        uvw = x_cam @ self.intrinsics.T

        depth = x_cam[:, 2]
        out = np.full((pts.shape[0], 2), np.inf, dtype=np.float64)
        front = depth > 0.0
        out[front] = uvw[front, :2] / uvw[front, 2:3]
        return out


# ---------- Pose Fitting ----------
def _check_pair(points3d: Points3D, points2d: Points2D) -> tuple[np.ndarray, np.ndarray]:
    p3 = np.ascontiguousarray(points3d, dtype=np.float64)
    p2 = np.ascontiguousarray(points2d, dtype=np.float64)
    if p3.ndim != 2 or p3.shape[1] != 3:
        raise ValueError(f"Expected points3d shape (N,3), got {p3.shape}")
    if p2.ndim != 2 or p2.shape[1] != 2:
        raise ValueError(f"Expected points2d shape (N,2), got {p2.shape}")
    if p3.shape[0] != p2.shape[0]:
        raise ValueError(f"points3d and points2d must have same length, got {p3.shape[0]} vs {p2.shape[0]}")
    return p3, p2


def fit_pose_epnp(points3d: Points3D, points2d: Points2D, K: Mat3x3) -> Optional[PinholeCamera]:
    """
    Estimate the camera pose from N >= 4 3D-2D correspondences with EPnP.

    Returns:
      PinholeCamera, or None if the configuration is degenerate / the solve fails.
    """
    p3, p2 = _check_pair(points3d, points2d)
    if p3.shape[0] < 4:
        return None

    # OpenCV raises cv2.error on degenerate input; that's a failed sample, not a crash
    try:
        ok, rvec, tvec = cv2.solvePnP(p3, p2, K, None, flags=cv2.SOLVEPNP_EPNP)
    except cv2.error:
        return None

    if not ok or rvec is None or tvec is None:
        return None
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3)
    tvec = np.asarray(tvec, dtype=np.float64).reshape(3)
    if not (np.isfinite(rvec).all() and np.isfinite(tvec).all()):
        return None
    return PinholeCamera(intrinsics=K, rvec=rvec, tvec=tvec)


# ---------- Residuals ----------
def reprojection_errors(camera: PinholeCamera, points3d: Points3D, points2d: Points2D) -> FloatArray:
    """
    Signed reprojection error components, flattened:

        [du_0, dv_0, du_1, dv_1, ...]   shape (2N,)
    """
    p3, p2 = _check_pair(points3d, points2d)
    return (camera.project(p3) - p2).reshape(-1)


def reprojection_residuals(camera: PinholeCamera, points3d: Points3D, points2d: Points2D) -> FloatArray:
    """
    Compute per-correspondence L2 reprojection residuals in pixels:

        e_i = || project(X_i) - x_i ||_2

    Returns shape (N,). Points behind the camera give inf.
    """
    p3, p2 = _check_pair(points3d, points2d)
    return np.linalg.norm(camera.project(p3) - p2, axis=1)
