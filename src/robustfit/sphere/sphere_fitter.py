# Andy Zhao
"""
Adapter: makes sphere functions conform to the ModelFitter protocol.

This keeps ransac/core.py generic and reusable. Parameters for non-linear
refinement are [cx, cy, cz, r].
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional

import numpy as np

from ..ransac.types import Points3D, FloatArray, RefinableModelFitter
from .sphere import Sphere, fit_sphere_minimal, fit_sphere_least_squares, sphere_residuals


@dataclass(frozen=True)
class SphereFitter(RefinableModelFitter[Sphere]):
    min_samples: ClassVar[int] = 4
    eps_volume: float = 1e-9

    def fit_minimal(self, points: Points3D) -> Optional[Sphere]:
        return fit_sphere_minimal(points, eps_volume=self.eps_volume)

    def fit_least_squares(self, points: Points3D) -> Optional[Sphere]:
        return fit_sphere_least_squares(points)

    def residuals(self, model: Sphere, points: Points3D) -> FloatArray:
        return sphere_residuals(model, points)

    def to_params(self, model: Sphere) -> FloatArray:
        return np.append(model.center, model.radius).astype(np.float64)

    def from_params(self, params: FloatArray) -> Sphere:
        # LM may step through a negative radius; the sphere is the same
        return Sphere(center=params[:3], radius=abs(float(params[3])))

    def error_vector(self, model: Sphere, points: Points3D) -> FloatArray:
        return model.signed_distance(points)
