# Andy Zhao
"""
Scoring rules for candidate models.

Every scorer turns the residuals of one candidate into a Score, and decides
whether a new Score beats the current best:

- RansacScorer: inlier count (residual <= threshold), ties broken by lower sum
  of inlier residuals
- MsacScorer: sum of residuals capped at the threshold (lower is better),
  ties broken by inlier count
- LMedSScorer: median residual (lower is better), inliers classified with a
  robust threshold derived from the median, ties broken by inlier count
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np

from .types import FloatArray, Mask

# Consistency constant of the median absolute deviation for Gaussian noise
MAD_SCALE = 1.4826


@dataclass(frozen=True, eq=False)
class Score:
    inliers: Mask           # residual classification under the candidate
    residuals: FloatArray   # residual per observation, shape (N,)
    num_inliers: int        # count of True values in inliers
    cost: float             # scorer-specific quality metric, lower is better
    threshold: float        # effective inlier threshold used to classify


class Scorer(Protocol):
    def score(self, residuals: FloatArray) -> Optional[Score]:
        """Score a candidate; None when the candidate is not meaningful."""
        ...

    def is_better(self, candidate: Score, best: Optional[Score]) -> bool:
        ...

    def should_stop(self, best: Score) -> bool:
        ...


def _as_residuals(residuals: FloatArray) -> FloatArray:
    err = np.asarray(residuals, dtype=np.float64).reshape(-1)
    # Non-finite residuals (e.g. a point projected behind the camera) never count as inliers
    return np.where(np.isfinite(err), err, np.inf)


@dataclass(frozen=True)
class RansacScorer:
    threshold: float
    min_inliers: int = 1

    def score(self, residuals: FloatArray) -> Optional[Score]:
        err = _as_residuals(residuals)

        # Inliers are those with error <= threshold
        inliers: Mask = err <= self.threshold
        num_inliers = int(np.count_nonzero(inliers))
        if num_inliers < self.min_inliers:
            # Not enough inliers to be meaningful
            return None

        return Score(
            inliers=inliers,
            residuals=err,
            num_inliers=num_inliers,
            cost=float(np.sum(err[inliers])),
            threshold=float(self.threshold),
        )

    def is_better(self, candidate: Score, best: Optional[Score]) -> bool:
        # Primary criterion: more inliers
        # If tie: lower residual sum over inliers
        if best is None:
            return True
        return (candidate.num_inliers > best.num_inliers) or (
                candidate.num_inliers == best.num_inliers and candidate.cost < best.cost
        )

    def should_stop(self, best: Score) -> bool:
        return False


@dataclass(frozen=True)
class MsacScorer:
    threshold: float
    min_inliers: int = 1

    def score(self, residuals: FloatArray) -> Optional[Score]:
        err = _as_residuals(residuals)
        inliers: Mask = err <= self.threshold
        num_inliers = int(np.count_nonzero(inliers))
        if num_inliers < self.min_inliers:
            return None

        # Each observation contributes at most `threshold`
        capped = np.minimum(err, self.threshold)
        return Score(
            inliers=inliers,
            residuals=err,
            num_inliers=num_inliers,
            cost=float(np.sum(capped)),
            threshold=float(self.threshold),
        )

    def is_better(self, candidate: Score, best: Optional[Score]) -> bool:
        if best is None:
            return True
        return (candidate.cost < best.cost) or (
                candidate.cost == best.cost and candidate.num_inliers > best.num_inliers
        )

    def should_stop(self, best: Score) -> bool:
        return False


@dataclass(frozen=True)
class LMedSScorer:
    """
    Least median of residuals.

    No threshold is needed to rank candidates. Once the median residual is
    known, inliers are classified with a robust estimate of the noise level:

        sigma = 1.4826 * (1 + 5 / (N - m)) * median
        inlier  <=>  residual <= max(inlier_factor * sigma, stop_threshold)

    The stop_threshold floor keeps exact data (median == 0) from classifying
    every observation as an outlier.
    """
    sample_size: int
    stop_threshold: float
    inlier_factor: float

    def robust_threshold(self, median: float, num_samples: int) -> float:
        dof = max(num_samples - self.sample_size, 1)
        sigma = MAD_SCALE * (1.0 + 5.0 / dof) * median
        return float(max(self.inlier_factor * sigma, self.stop_threshold))

    def score(self, residuals: FloatArray) -> Optional[Score]:
        err = _as_residuals(residuals)
        median = float(np.median(err))
        if not np.isfinite(median):
            # More than half of the observations have no finite residual
            return None

        threshold = self.robust_threshold(median, err.shape[0])
        inliers: Mask = err <= threshold
        return Score(
            inliers=inliers,
            residuals=err,
            num_inliers=int(np.count_nonzero(inliers)),
            cost=median,
            threshold=threshold,
        )

    def is_better(self, candidate: Score, best: Optional[Score]) -> bool:
        if best is None:
            return True
        return (candidate.cost < best.cost) or (
                candidate.cost == best.cost and candidate.num_inliers > best.num_inliers
        )

    def should_stop(self, best: Score) -> bool:
        return best.cost <= self.stop_threshold
