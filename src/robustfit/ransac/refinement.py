# Andy Zhao
"""
Refinement of the best consensus model using all of its inliers.

Two modes:
- fast: closed-form refit (fitter.fit_least_squares) restricted to inliers, no covariance
- full: Levenberg-Marquardt over the model parameters (scipy.optimize.least_squares),
        minimizing the signed error vector of the inliers, optionally returning
        the parameter covariance

The inlier classification is an input here and is never recomputed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

import numpy as np
from scipy.optimize import least_squares

from .errors import RefinementError
from .types import Correspondences, FloatArray, Mask, ModelFitter, subset

logger = logging.getLogger(__name__)

M = TypeVar("M")


@dataclass(frozen=True, eq=False)
class RefinementResult(Generic[M]):
    model: M                            # refined model, or the input model if not improved
    covariance: Optional[FloatArray]    # (P,P) parameter covariance, full mode only
    improved: bool                      # True when the refined model replaced the input


def is_refinable(fitter: ModelFitter[M]) -> bool:
    return all(callable(getattr(fitter, name, None)) for name in ("to_params", "from_params", "error_vector"))


def _inlier_cost(fitter: ModelFitter[M], model: M, data: Correspondences) -> float:
    err = np.asarray(fitter.residuals(model, *data), dtype=np.float64)
    if not np.isfinite(err).all():
        return float("inf")
    return float(np.sum(err * err))


def covariance_from_jacobian(jac: FloatArray, standard_deviation: float) -> FloatArray:
    """
    Gauss-Newton approximation of the parameter covariance:

        cov = (J^T J)^-1 * sigma^2

    sigma is the expected standard deviation of each residual component.
    """
    jtj = jac.T @ jac
    try:
        cov = np.linalg.inv(jtj) * float(standard_deviation) ** 2
    except np.linalg.LinAlgError as e:
        raise RefinementError("Singular normal equations, covariance is undefined") from e
    if not np.isfinite(cov).all():
        raise RefinementError("Covariance is not finite")
    return cov


def refine_fast(fitter: ModelFitter[M], inlier_data: Correspondences) -> M:
    refit = fitter.fit_least_squares(*inlier_data)
    if refit is None:
        raise RefinementError("Least-squares refit on inliers failed")
    return refit


def refine_full(
        fitter: ModelFitter[M],
        model: M,
        inlier_data: Correspondences,
        *,
        keep_covariance: bool,
        standard_deviation: float,
) -> tuple[M, Optional[FloatArray]]:
    x0 = np.asarray(fitter.to_params(model), dtype=np.float64)

    def fun(params: FloatArray) -> FloatArray:
        return np.asarray(fitter.error_vector(fitter.from_params(params), *inlier_data), dtype=np.float64)

    n_res = fun(x0).shape[0]
    # MINPACK's LM needs at least as many residuals as parameters
    method = "lm" if n_res >= x0.shape[0] else "trf"

    try:
        result = least_squares(fun, x0, method=method)
    except (ValueError, np.linalg.LinAlgError) as e:
        raise RefinementError(f"Non-linear refinement failed: {e}") from e

    if not result.success or not np.isfinite(result.x).all():
        raise RefinementError(f"Non-linear refinement did not converge: {result.message}")

    refined = fitter.from_params(result.x)
    cov = covariance_from_jacobian(result.jac, standard_deviation) if keep_covariance else None
    return refined, cov


def refine_model(
        fitter: ModelFitter[M],
        model: M,
        data: Correspondences,
        inliers: Mask,
        *,
        fast: bool,
        keep_covariance: bool,
        standard_deviation: float,
) -> RefinementResult[M]:
    """
    Refine `model` on the observations selected by `inliers`.

    Raises RefinementError when the refit cannot be computed. The refined model
    is only kept if its squared residual sum over the inliers is not worse than
    the input model's.
    """
    inlier_data = subset(data, inliers)
    if inlier_data[0].shape[0] < fitter.min_samples:
        raise RefinementError(
            f"Not enough inliers to refine: {inlier_data[0].shape[0]} < {fitter.min_samples}")

    covariance: Optional[FloatArray] = None
    if fast:
        refined = refine_fast(fitter, inlier_data)
    elif is_refinable(fitter):
        refined, covariance = refine_full(
            fitter, model, inlier_data,
            keep_covariance=keep_covariance,
            standard_deviation=standard_deviation,
        )
    else:
        logger.debug("%s has no refinement hooks, using fast refinement", type(fitter).__name__)
        refined = refine_fast(fitter, inlier_data)

    before = _inlier_cost(fitter, model, inlier_data)
    after = _inlier_cost(fitter, refined, inlier_data)
    if after <= before:
        return RefinementResult(model=refined, covariance=covariance, improved=True)
    # The covariance was computed at the rejected parameters
    return RefinementResult(model=model, covariance=None, improved=False)
