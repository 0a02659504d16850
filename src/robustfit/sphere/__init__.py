"""
Sphere package
"""
from .sphere import Sphere, fit_sphere_minimal, fit_sphere_least_squares, sphere_residuals
from .sphere_fitter import SphereFitter

__all__ = [
    "Sphere", "fit_sphere_minimal", "fit_sphere_least_squares", "sphere_residuals",
    "SphereFitter",
]
