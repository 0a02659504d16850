# Andy Zhao
"""
Adaptive stopping for the consensus loop.

Shared by every robust method: each time a new best model is found, the
required number of iterations is recomputed from its inlier ratio.
"""

from __future__ import annotations

import math


def required_iterations(
        *,
        confidence: float,
        inlier_ratio: float,
        sample_size: int,
        max_iterations: int,
) -> int:
    """
    Compute the number of iterations needed so that the probability
    of having drawn at least ONE all-inlier minimal sample is >= confidence.

    inlier ratio w = (# inliers) / N, minimal sample size m,
    - P(all-inliers) = w^m
    - P(not-all-inliers) = 1 - w^m
    - P(not-all-inliers-for-k-times) = (1 - w^m)^k
    - P(at-least-once-all-inliers) = 1 - (1 - w^m)^k >= p

    Formula:
       k = ceil( log(1 - p) / log(1 - w^m) )

    clamped to [1, max_iterations].

    Edge cases:
     - w <= 0 -> an all-inlier sample is impossible, use max_iterations
     - w >= 1 -> 1 iteration is enough
     - w^m underflows to 0 -> same as w == 0
    """
    if sample_size < 1:
        raise ValueError("sample_size must be >= 1")
    if max_iterations < 1:
        raise ValueError("max_iterations must be >= 1")
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")

    w = float(inlier_ratio)
    if w >= 1.0:
        return 1
    if w <= 0.0:
        return int(max_iterations)

    # Probability a minimal sample is all inliers
    w_to_m = w ** sample_size
    if w_to_m <= 0.0:
        return int(max_iterations)

    # log1p keeps precision when w^m is tiny
    denominator = math.log1p(-w_to_m)
    if denominator == 0.0:
        return int(max_iterations)
    numerator = math.log1p(-confidence)

    k = math.ceil(numerator / denominator)
    return int(min(max(1, k), max_iterations))
