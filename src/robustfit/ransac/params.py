# Andy Zhao
"""
Configuration for the robust estimator.

EstimatorParams is frozen and validated on construction. Changing one value
goes through dataclasses.replace(), which validates again, so a rejected value
never leaves the estimator half-updated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, get_args

import numpy as np

# ---------- Robust methods ----------
# ransac  : uniform sampling, inlier count score
# msac    : uniform sampling, capped residual score
# prosac  : quality-ordered progressive sampling, inlier count score
# lmeds   : uniform sampling, least median of residuals
# promeds : quality-ordered progressive sampling, least median of residuals
RobustMethod = Literal["ransac", "msac", "prosac", "lmeds", "promeds"]

ROBUST_METHODS: tuple[str, ...] = get_args(RobustMethod)
QUALITY_METHODS: tuple[str, ...] = ("prosac", "promeds")
MEDIAN_METHODS: tuple[str, ...] = ("lmeds", "promeds")


def _is_integer(value: object) -> bool:
    # bool is an int subclass, floats such as 1.0 are rejected too
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def check_method(method: str) -> RobustMethod:
    if method not in ROBUST_METHODS:
        raise ValueError(f"Unknown robust method {method!r}, expected one of {ROBUST_METHODS}")
    return method  # type: ignore[return-value]


@dataclass(frozen=True)
class EstimatorParams:
    """
    Parameters for a robust estimation run.

    threshold:
      - Inlier cutoff for ransac / msac / prosac, in residual units
        (distance for spheres, pixels for cameras).

    stop_threshold:
      - lmeds / promeds stop as soon as the best median residual is <= this value.

    inlier_factor:
      - lmeds / promeds: multiplier of the robust standard deviation used to
        classify inliers once the median residual is known.

    confidence:
      - Target probability of having drawn at least one all-inlier sample.

    max_iterations:
      - Hard cap on the number of samples drawn.

    progress_delta:
      - Minimum progress increment between two progress notifications.

    refine_result / use_fast_refinement / keep_covariance:
      - Refit the best model on its inliers. Fast = closed-form refit,
        otherwise Levenberg-Marquardt, optionally keeping the parameter covariance.

    compute_and_keep_inliers / compute_and_keep_residuals:
      - Keep the inlier mask / residuals of the best model after estimate().

    seed:
      - RNG seed; a fresh generator is created for every estimate() call.
    """
    threshold: float = 1.0
    stop_threshold: float = 1e-3
    inlier_factor: float = 1.5
    confidence: float = 0.99
    max_iterations: int = 5000
    progress_delta: float = 0.05
    refine_result: bool = True
    use_fast_refinement: bool = False
    keep_covariance: bool = False
    compute_and_keep_inliers: bool = False
    compute_and_keep_residuals: bool = False
    seed: Optional[int] = 0

    def __post_init__(self) -> None:
        if not self.threshold > 0.0:
            raise ValueError(f"threshold must be > 0, got {self.threshold}")
        if not self.stop_threshold > 0.0:
            raise ValueError(f"stop_threshold must be > 0, got {self.stop_threshold}")
        if not self.inlier_factor > 0.0:
            raise ValueError(f"inlier_factor must be > 0, got {self.inlier_factor}")
        if not 0.0 < self.confidence < 1.0:
            raise ValueError(f"confidence must be in (0, 1), got {self.confidence}")
        if not _is_integer(self.max_iterations) or self.max_iterations < 1:
            raise ValueError(f"max_iterations must be an integer >= 1, got {self.max_iterations}")
        if not 0.0 < self.progress_delta <= 1.0:
            raise ValueError(f"progress_delta must be in (0, 1], got {self.progress_delta}")
        if self.seed is not None and (not _is_integer(self.seed) or self.seed < 0):
            raise ValueError(f"seed must be a non-negative integer or None, got {self.seed}")
