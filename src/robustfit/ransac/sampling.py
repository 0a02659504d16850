# Andy Zhao
"""
Minimal-sample generators for the consensus loop.

UniformSampler (RANSAC, MSAC, LMedS):
- Draw m distinct indices uniformly from [0, N)

ProsacSampler (PROSAC, PROMedS):
- Observations are ordered once by descending quality score
- Early samples come from a small pool of the best observations
- The pool grows following the PROSAC growth function until it covers all N,
  after which sampling is plain uniform RANSAC sampling

Reference: Chum & Matas, "Matching with PROSAC - Progressive Sample Consensus", CVPR 2005.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import numpy.typing as npt

from .types import FloatArray, IndexArray

# Number of samples after which PROSAC is expected to behave like RANSAC (T_N in the paper).
# RobustEstimator passes its max_iterations instead.
DEFAULT_PROSAC_MAX_DRAWS = 200000


def prosac_growth_schedule(
        num_samples: int,
        sample_size: int,
        max_draws: int = DEFAULT_PROSAC_MAX_DRAWS,
) -> npt.NDArray[np.int64]:
    """
    Compute the PROSAC growth function T'_n for n = m, m+1, ..., N.

    Element k of the returned array is the last (1-based) draw that still uses
    a pool of size m + k. Pure function of its arguments.

    T_m      = max_draws * prod_{i=0}^{m-1} (m - i) / (N - i)
    T_{n+1}  = T_n * (n + 1) / (n + 1 - m)
    T'_m     = 1
    T'_{n+1} = T'_n + ceil(T_{n+1} - T_n)
    """
    n_total = int(num_samples)
    m = int(sample_size)
    if m < 1:
        raise ValueError("sample_size must be >= 1")
    if n_total < m:
        raise ValueError(f"num_samples ({n_total}) must be >= sample_size ({m})")
    if max_draws < 1:
        raise ValueError("max_draws must be >= 1")

    t_n = float(max_draws)
    for i in range(m):
        t_n *= (m - i) / (n_total - i)

    schedule = np.empty((n_total - m + 1,), dtype=np.int64)
    schedule[0] = 1
    t_prime = 1
    for k, n in enumerate(range(m, n_total), start=1):
        t_next = t_n * (n + 1) / (n + 1 - m)
        t_prime += int(math.ceil(t_next - t_n))
        schedule[k] = t_prime
        t_n = t_next
    return schedule


def prosac_pool_size(iteration: int, schedule: npt.NDArray[np.int64], sample_size: int) -> Optional[int]:
    """
    Pool size n used at 0-based iteration `iteration`.

    Returns the smallest n with T'_n >= iteration + 1, or None once the schedule
    is exhausted (sample uniformly from all observations from then on).
    """
    k = int(np.searchsorted(schedule, iteration + 1, side="left"))
    if k >= schedule.shape[0]:
        return None
    return int(sample_size) + k


def quality_order(quality_scores: FloatArray) -> IndexArray:
    """
    Indices sorting observations by descending quality.

    Stable: equal scores keep their original relative order.
    """
    return np.argsort(-np.asarray(quality_scores, dtype=np.float64), kind="stable")


@dataclass(frozen=True)
class UniformSampler:
    num_samples: int
    sample_size: int

    def __post_init__(self) -> None:
        if self.sample_size < 1 or self.num_samples < self.sample_size:
            raise ValueError(
                f"Cannot draw {self.sample_size} distinct indices from {self.num_samples} observations")

    def draw(self, iteration: int, rng: np.random.Generator) -> IndexArray:
        # Unique indices, no replacement. Iteration is unused for uniform sampling.
        return rng.choice(self.num_samples, size=self.sample_size, replace=False)


@dataclass(frozen=True, eq=False)
class ProsacSampler:
    """
    Progressive sampler biased toward high-quality observations.

    Quality scores are only used to order sampling; they never affect scoring.
    """
    quality_scores: FloatArray
    sample_size: int
    max_draws: int = DEFAULT_PROSAC_MAX_DRAWS

    # Computed once from quality_scores
    _order: IndexArray = field(init=False, repr=False)
    _schedule: npt.NDArray[np.int64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        scores = np.asarray(self.quality_scores, dtype=np.float64)
        if scores.ndim != 1:
            raise ValueError(f"quality_scores must be 1-D, got shape {scores.shape}")
        # frozen dataclass: derived fields are set through object.__setattr__
        object.__setattr__(self, "_order", quality_order(scores))
        object.__setattr__(
            self, "_schedule",
            prosac_growth_schedule(scores.shape[0], self.sample_size, self.max_draws))

    @property
    def num_samples(self) -> int:
        return int(self._order.shape[0])

    @property
    def order(self) -> IndexArray:
        return self._order

    @property
    def schedule(self) -> npt.NDArray[np.int64]:
        return self._schedule

    def pool_size(self, iteration: int) -> Optional[int]:
        return prosac_pool_size(iteration, self._schedule, self.sample_size)

    def draw(self, iteration: int, rng: np.random.Generator) -> IndexArray:
        m = self.sample_size
        n = self.pool_size(iteration)

        if n is None:
            # Schedule exhausted: plain uniform sampling over all observations
            return rng.choice(self.num_samples, size=m, replace=False)

        # m-1 ranks uniformly from the top n-1, plus the n-th ranked observation
        ranks = np.empty((m,), dtype=np.intp)
        ranks[:m - 1] = rng.choice(n - 1, size=m - 1, replace=False)
        ranks[m - 1] = n - 1
        return self._order[ranks]
