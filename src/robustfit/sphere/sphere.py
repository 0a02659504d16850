# Andy Zhao
"""
Sphere model utilities.

A sphere with center c = (cx, cy, cz) and radius r is the locus of points p with

    ||p - c|| = r

Expanding gives an equation that is linear in (D, E, F, G):

    x^2 + y^2 + z^2 + D*x + E*y + F*z + G = 0

    c = -(D, E, F) / 2
    r^2 = ||c||^2 - G

Four non-coplanar points determine the sphere exactly; more points give a
linear least-squares fit. Points are centered on their mean before solving to
keep the system well conditioned far from the origin.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..ransac.types import Points3D, FloatArray


@dataclass(frozen=True, eq=False)
class Sphere:
    center: FloatArray      # shape (3,)
    radius: float

    def __post_init__(self) -> None:
        c = np.asarray(self.center, dtype=np.float64).reshape(-1)
        if c.shape != (3,):
            raise ValueError(f"Sphere center must have 3 coordinates, got {c.shape}")
        if not (np.isfinite(c).all() and np.isfinite(self.radius)) or self.radius < 0.0:
            raise ValueError(f"Invalid sphere: center={c}, radius={self.radius}")
        object.__setattr__(self, "center", c)
        object.__setattr__(self, "radius", float(self.radius))

    def signed_distance(self, points: Points3D) -> FloatArray:
        """
        ||p - c|| - r for every point: negative inside, positive outside.
        """
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return np.linalg.norm(pts - self.center, axis=1) - self.radius

    def distance(self, points: Points3D) -> FloatArray:
        return np.abs(self.signed_distance(points))

    def is_locus(self, point: FloatArray, tol: float = 1e-9) -> bool:
        return bool(self.distance(point)[0] <= tol)


# ---------- Degeneracy Check Helpers ----------
def _tetrahedron_volume(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> float:
    """
    Return 6x the tetrahedron volume formed by (p0, p1, p2, p3):

        vol6 = |det([p1 - p0, p2 - p0, p3 - p0])|

    If vol6 is near 0, the four points are coplanar (degenerate for a minimal sphere fit).
    """
    return float(abs(np.linalg.det(np.stack([p1 - p0, p2 - p0, p3 - p0]))))


def _is_degenerate_quadruplet(pts: Points3D, eps_volume: float = 1e-9) -> bool:
    """
    Check whether 4 points (shape (4,3)) are nearly coplanar.

    The volume is compared relative to the cube of the sample's spread, so the
    check does not depend on the units of the points.
    """
    if pts.shape != (4, 3):
        raise ValueError(f"Expected (4,3) quadruplet, got {pts.shape}")

    scale = float(np.max(np.linalg.norm(pts - pts.mean(axis=0), axis=1)))
    if scale <= 0.0:
        # All four points coincide
        return True

    vol = _tetrahedron_volume(pts[0], pts[1], pts[2], pts[3])
    return vol / scale ** 3 < eps_volume


# ---------- Sphere Fitting ----------
def _solve_to_sphere(theta: np.ndarray, offset: np.ndarray) -> Optional[Sphere]:
    """
    Convert theta = [D, E, F, G] (solved on centered points) into a Sphere.
    """
    d = theta[:3]
    g = float(theta[3])
    c_local = -0.5 * d
    r2 = float(c_local @ c_local) - g
    if not np.isfinite(r2) or r2 <= 0.0:
        return None
    return Sphere(center=c_local + offset, radius=float(np.sqrt(r2)))


def _design_matrix(pts: Points3D) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    # Center points: conditioning of the linear system
    offset = pts.mean(axis=0)
    q = pts - offset

    # For each point (x, y, z):
    #   A row = [x, y, z, 1], b = -(x^2 + y^2 + z^2)
    A = np.hstack([q, np.ones((q.shape[0], 1), dtype=np.float64)])
    b_vec = -np.sum(q * q, axis=1)
    return A, b_vec, offset


def fit_sphere_minimal(points: Points3D, eps_volume: float = 1e-9) -> Optional[Sphere]:
    """
    Fit a sphere through exactly 4 points.

    points: (4,3)

    Returns:
      Sphere, or None if the points are (nearly) coplanar or the solve fails.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.shape != (4, 3):
        raise ValueError(f"fit_sphere_minimal expects (4,3) input, got {pts.shape}")

    if _is_degenerate_quadruplet(pts, eps_volume):
        return None

    A, b_vec, offset = _design_matrix(pts)

    # A is square (4x4); singular A means degenerate points
    try:
        theta = np.linalg.solve(A, b_vec)
    except np.linalg.LinAlgError:
        return None

    return _solve_to_sphere(theta, offset)


def fit_sphere_least_squares(points: Points3D) -> Optional[Sphere]:
    """
    Fit a sphere to N >= 4 points by linear least squares (algebraic distance).

    This is used after consensus picks inliers: refit with all inliers for a better estimate.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"Expected points shape (N,3), got {pts.shape}")
    if pts.shape[0] < 4:
        return None

    A, b_vec, offset = _design_matrix(pts)
    try:
        theta, _, rank, _ = np.linalg.lstsq(A, b_vec, rcond=None)
    except np.linalg.LinAlgError:
        return None

    # 4 unknowns: coplanar / repeated points leave the system rank deficient
    if rank < 4:
        return None

    return _solve_to_sphere(theta, offset)


# ---------- Residuals ----------
def sphere_residuals(sphere: Sphere, points: Points3D) -> FloatArray:
    """
    Euclidean distance of every point to the sphere surface:

        e_i = | ||p_i - c|| - r |

    Returns shape (N,)
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"Expected points shape (N,3), got {pts.shape}")
    return sphere.distance(pts)
