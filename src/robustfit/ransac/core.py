# Andy Zhao
"""
Generic robust estimator (model-agnostic).

Consensus overview:
- Draw a *minimal* sample of observations (uniformly, or PROSAC-ordered)
- Fit a candidate model from that sample (delegated to a ModelFitter)
- Score all observations by computing residual errors
- Keep the candidate with the best score (inlier count, capped cost or median)
- Recompute the number of iterations needed for the requested confidence
- Optionally refine the best model using all of its inliers

RobustEstimator is a small state machine:

    IDLE --set_data()--> READY --estimate()--> RUNNING --> READY

While RUNNING every setter and nested estimate() raise LockedError. The lock is
always released when estimate() exits, whatever the exit path.

Concrete estimators (sphere, pinhole camera) are configurations of this class:
a ModelFitter plus observations, see robustfit.estimators.
"""
from __future__ import annotations

import logging
import os
from dataclasses import replace
from typing import Generic, Optional, TypeVar, Union

import numpy as np
import numpy.typing as npt

from .errors import LockedError, NotReadyError, RobustEstimatorError, RefinementError
from .params import EstimatorParams, RobustMethod, QUALITY_METHODS, MEDIAN_METHODS, check_method
from .refinement import refine_model
from .sampling import UniformSampler, ProsacSampler
from .scoring import Score, Scorer, RansacScorer, MsacScorer, LMedSScorer
from .termination import required_iterations
from .types import (
    Correspondences, EstimatorListener, EstimatorState, FloatArray, InliersData,
    ModelFitter, RansacResult, as_correspondences, subset,
)

M = TypeVar("M")

logger = logging.getLogger(__name__)
_RANSAC_DEBUG = os.environ.get("ROBUSTFIT_RANSAC_DEBUG", "0") == "1"


def _param_property(name: str, doc: str) -> property:
    """
    Expose one EstimatorParams field as a locked, validated property.
    """

    def fget(self: "RobustEstimator") -> object:
        return getattr(self._params, name)

    def fset(self: "RobustEstimator", value: object) -> None:
        self._check_unlocked()
        # replace() re-runs validation, so an invalid value leaves params untouched
        self._params = replace(self._params, **{name: value})

    return property(fget, fset, doc=doc)


class RobustEstimator(Generic[M]):
    """
    Robustly fit a model to outlier-contaminated observations.

    - fitter: provides min_samples, fit_minimal, fit_least_squares, residuals
      (and to_params / from_params / error_vector for full refinement)
    - data: correspondence set, one or more arrays sharing their first axis
    - method: "ransac", "msac", "prosac", "lmeds" or "promeds"
    - quality_scores: (N,) scores, higher = more likely inlier (prosac / promeds)
    - listener: optional EstimatorListener
    - params: EstimatorParams, or keyword overrides of its fields

    Example:
        est = RobustEstimator(SphereFitter(), (points,), method="prosac",
                              quality_scores=scores, threshold=1e-6)
        sphere = est.estimate()
    """

    def __init__(
            self,
            fitter: ModelFitter[M],
            data: Optional[tuple[npt.ArrayLike, ...]] = None,
            *,
            method: RobustMethod = "ransac",
            quality_scores: Optional[npt.ArrayLike] = None,
            listener: Optional[EstimatorListener] = None,
            params: Optional[EstimatorParams] = None,
            **overrides: object,
    ) -> None:
        if int(fitter.min_samples) < 1:
            raise ValueError(f"fitter.min_samples must be >= 1, got {fitter.min_samples}")

        self._fitter = fitter
        self._method: RobustMethod = check_method(method)
        self._listener = listener
        base = params if params is not None else EstimatorParams()
        self._params = replace(base, **overrides) if overrides else base

        self._data: Optional[Correspondences] = None
        self._quality_scores: Optional[FloatArray] = None
        self._state = EstimatorState.IDLE

        # Results of the last successful estimate()
        self._inliers_data: Optional[InliersData] = None
        self._covariance: Optional[FloatArray] = None
        self._iterations = 0
        self._iteration_bound = 0

        if data is not None:
            # A bare array is a single-array correspondence set, not a tuple of rows
            self._set_data((data,) if isinstance(data, np.ndarray) else tuple(data))
        if quality_scores is not None:
            self._set_quality_scores(quality_scores)
        self._refresh_state()

    # ---------- Configuration surface ----------
    threshold = _param_property("threshold", "Inlier threshold (ransac / msac / prosac).")
    stop_threshold = _param_property("stop_threshold", "Median residual that stops lmeds / promeds.")
    inlier_factor = _param_property("inlier_factor", "Robust threshold multiplier (lmeds / promeds).")
    confidence = _param_property("confidence", "Target confidence in (0, 1).")
    max_iterations = _param_property("max_iterations", "Maximum number of iterations (>= 1).")
    progress_delta = _param_property("progress_delta", "Progress notification granularity in (0, 1].")
    refine_result = _param_property("refine_result", "Refine the best model on its inliers.")
    use_fast_refinement = _param_property("use_fast_refinement", "Closed-form instead of LM refinement.")
    keep_covariance = _param_property("keep_covariance", "Keep parameter covariance after full refinement.")
    compute_and_keep_inliers = _param_property("compute_and_keep_inliers", "Keep the inlier mask.")
    compute_and_keep_residuals = _param_property("compute_and_keep_residuals", "Keep the residuals.")
    seed = _param_property("seed", "RNG seed, None for a non-deterministic run.")

    @property
    def params(self) -> EstimatorParams:
        return self._params

    @params.setter
    def params(self, params: EstimatorParams) -> None:
        self._check_unlocked()
        if not isinstance(params, EstimatorParams):
            raise ValueError(f"Expected EstimatorParams, got {type(params).__name__}")
        self._params = params

    @property
    def fitter(self) -> ModelFitter[M]:
        return self._fitter

    @property
    def min_samples(self) -> int:
        return int(self._fitter.min_samples)

    @property
    def method(self) -> RobustMethod:
        return self._method

    @method.setter
    def method(self, method: RobustMethod) -> None:
        self._check_unlocked()
        self._method = check_method(method)
        self._refresh_state()

    @property
    def requires_quality_scores(self) -> bool:
        return self._method in QUALITY_METHODS

    @property
    def listener(self) -> Optional[EstimatorListener]:
        return self._listener

    @listener.setter
    def listener(self, listener: Optional[EstimatorListener]) -> None:
        self._check_unlocked()
        self._listener = listener

    @property
    def data(self) -> Optional[Correspondences]:
        return self._data

    def set_data(self, *data: npt.ArrayLike) -> None:
        """
        Set the correspondence set, e.g. set_data(points) or set_data(points3d, points2d).
        """
        self._check_unlocked()
        self._set_data(data)
        self._refresh_state()

    @property
    def num_samples(self) -> int:
        return 0 if self._data is None else int(self._data[0].shape[0])

    @property
    def quality_scores(self) -> Optional[FloatArray]:
        return self._quality_scores

    @quality_scores.setter
    def quality_scores(self, quality_scores: Optional[npt.ArrayLike]) -> None:
        self._check_unlocked()
        if quality_scores is None:
            self._quality_scores = None
        else:
            self._set_quality_scores(quality_scores)
        self._refresh_state()

    # ---------- State ----------
    @property
    def state(self) -> EstimatorState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state is EstimatorState.RUNNING

    @property
    def is_ready(self) -> bool:
        return self._state is EstimatorState.READY

    # ---------- Results ----------
    @property
    def inliers_data(self) -> Optional[InliersData]:
        return self._inliers_data

    @property
    def covariance(self) -> Optional[FloatArray]:
        return self._covariance

    @property
    def iterations(self) -> int:
        return self._iterations

    @property
    def iteration_bound(self) -> int:
        """
        Adaptive iteration bound of the current (or last) run.

        Starts at max_iterations and never increases while estimate() runs.
        """
        return self._iteration_bound

    # ---------- Internal helpers ----------
    def _check_unlocked(self) -> None:
        if self._state is EstimatorState.RUNNING:
            raise LockedError()

    def _set_data(self, data: tuple[npt.ArrayLike, ...]) -> None:
        arrays = as_correspondences(*data)
        n = arrays[0].shape[0]
        if n < self.min_samples:
            raise ValueError(f"At least {self.min_samples} observations are required, got {n}")
        if self._quality_scores is not None and self._quality_scores.shape[0] != n:
            if self.requires_quality_scores:
                raise ValueError(
                    f"Observation count ({n}) does not match quality scores ({self._quality_scores.shape[0]})")
            # Scores are unused by this method: stale ones are dropped with the old data
            logger.debug("Dropping %d quality scores that do not match %d observations",
                         self._quality_scores.shape[0], n)
            self._quality_scores = None
        self._data = arrays

    def _set_quality_scores(self, quality_scores: npt.ArrayLike) -> None:
        scores = np.array(quality_scores, dtype=np.float64, copy=True)
        if scores.ndim != 1:
            raise ValueError(f"quality_scores must be 1-D, got shape {scores.shape}")
        if not np.isfinite(scores).all():
            raise ValueError("quality_scores must be finite")
        if scores.shape[0] < self.min_samples:
            raise ValueError(f"At least {self.min_samples} quality scores are required, got {scores.shape[0]}")
        if self._data is not None and scores.shape[0] != self.num_samples:
            raise ValueError(
                f"Quality scores ({scores.shape[0]}) do not match observation count ({self.num_samples})")
        scores.flags.writeable = False
        self._quality_scores = scores

    def _refresh_state(self) -> None:
        ready = self._data is not None and self.num_samples >= self.min_samples
        if ready and self.requires_quality_scores:
            ready = self._quality_scores is not None and self._quality_scores.shape[0] == self.num_samples
        self._state = EstimatorState.READY if ready else EstimatorState.IDLE

    def _make_sampler(self) -> Union[UniformSampler, ProsacSampler]:
        if self._method in QUALITY_METHODS:
            # The pool grows to N over the iteration budget (T_N = max_iterations)
            return ProsacSampler(
                self._quality_scores, self.min_samples, max_draws=int(self._params.max_iterations))
        return UniformSampler(self.num_samples, self.min_samples)

    def _make_scorer(self) -> Scorer:
        p = self._params
        if self._method in MEDIAN_METHODS:
            return LMedSScorer(
                sample_size=self.min_samples,
                stop_threshold=p.stop_threshold,
                inlier_factor=p.inlier_factor,
            )
        if self._method == "msac":
            return MsacScorer(threshold=p.threshold, min_inliers=self.min_samples)
        return RansacScorer(threshold=p.threshold, min_inliers=self.min_samples)

    def _notify(self, event: str, *args: object) -> None:
        if self._listener is not None:
            getattr(self._listener, event)(self, *args)

    # ---------- Estimation ----------
    def estimate(self) -> M:
        """
        Run the consensus loop and return the best (optionally refined) model.

        Raises:
        - LockedError if already running
        - NotReadyError without enough data / required quality scores
        - RobustEstimatorError if no model was found within the iteration limit
        """
        if self.is_locked:
            raise LockedError()
        if not self.is_ready:
            raise NotReadyError()

        self._state = EstimatorState.RUNNING
        try:
            self._inliers_data = None
            self._covariance = None
            self._iterations = 0
            self._iteration_bound = 0

            self._notify("on_estimate_start")

            model, best_score = self._run_consensus()

            if self._params.refine_result:
                model = self._attempt_refine(model, best_score)

            self._keep_inliers_data(best_score)
            self._notify("on_estimate_end")
            return model
        finally:
            self._refresh_state()

    def _run_consensus(self) -> tuple[M, Score]:
        p = self._params
        data = self._data
        assert data is not None
        n = self.num_samples
        m = self.min_samples

        sampler = self._make_sampler()
        scorer = self._make_scorer()

        # RNG: reproducible sampling, a fresh generator per run
        rng = np.random.default_rng(p.seed)

        # Track the best hypothesis
        best_model: Optional[M] = None
        best_score: Optional[Score] = None

        # ---------- Adaptive Stopping ----------
        max_iters = int(p.max_iterations)
        target_iters = max_iters
        self._iteration_bound = target_iters
        last_progress = 0.0

        # ---------- Main Loop ----------
        # Keep looping until min(target_iters, max_iters)
        i = 0
        while i < max_iters and i < target_iters:
            self._iterations = i + 1

            # Sample a minimal subset of observations (unique indices, no replacement)
            sample_idx = sampler.draw(i, rng)

            # Fit model from minimal set, None if degenerate
            model = self._fitter.fit_minimal(*subset(data, sample_idx))
            if model is not None:
                # Compute residuals for all observations (shape: (N,))
                err = self._fitter.residuals(model, *data)
                score = scorer.score(err)

                if score is not None and scorer.is_better(score, best_score):
                    best_model = model
                    best_score = score

                    # Inlier ratio from current best
                    w = best_score.num_inliers / float(n)

                    # Compute iterations needed to reach the confidence
                    iter_needed = required_iterations(
                        confidence=p.confidence,
                        inlier_ratio=w,
                        sample_size=m,
                        max_iterations=max_iters,
                    )
                    # Never increases, and never stops before the current iteration completes
                    target_iters = min(target_iters, max(iter_needed, i + 1))
                    self._iteration_bound = target_iters
                    if _RANSAC_DEBUG:
                        logger.debug(
                            "[%s] better model: inliers=%d/%d, w=%.3f, cost=%.6g, target_iters=%d",
                            self._method, best_score.num_inliers, n, w, best_score.cost, target_iters)

            self._notify("on_estimate_next_iteration", i)

            progress = min(1.0, (i + 1) / float(min(target_iters, max_iters)))
            if progress - last_progress >= p.progress_delta:
                last_progress = progress
                self._notify("on_estimate_progress_change", progress)

            i += 1

            if best_score is not None and scorer.should_stop(best_score):
                break

        # If valid model not found, fail
        if best_model is None or best_score is None:
            raise RobustEstimatorError(
                f"{self._method}: no valid model found after {self._iterations} iterations")

        logger.debug(
            "%s finished: %d iterations, %d/%d inliers, cost=%.6g",
            self._method, self._iterations, best_score.num_inliers, n, best_score.cost)
        return best_model, best_score

    def _attempt_refine(self, model: M, best_score: Score) -> M:
        """
        Refine the best model; on failure keep the unrefined model and drop covariance.
        """
        p = self._params
        assert self._data is not None
        try:
            result = refine_model(
                self._fitter, model, self._data, best_score.inliers,
                fast=p.use_fast_refinement,
                keep_covariance=p.keep_covariance,
                standard_deviation=best_score.threshold,
            )
        except (RefinementError, np.linalg.LinAlgError, ValueError) as e:
            logger.warning("Refinement failed, keeping unrefined model: %s", e)
            self._covariance = None
            return model

        if p.keep_covariance:
            self._covariance = result.covariance
        return result.model

    def _keep_inliers_data(self, best_score: Score) -> None:
        p = self._params
        if not (p.compute_and_keep_inliers or p.compute_and_keep_residuals):
            self._inliers_data = None
            return
        self._inliers_data = InliersData(
            inliers=best_score.inliers.copy() if p.compute_and_keep_inliers else None,
            residuals=best_score.residuals.copy() if p.compute_and_keep_residuals else None,
            num_inliers=best_score.num_inliers,
            threshold=best_score.threshold,
        )


def ransac(
        model_fitter: ModelFitter[M],
        *data: npt.ArrayLike,
        min_samples: Optional[int] = None,
        tau: float = 3.0,
        max_iters: int = 2000,
        seed: int = 0,
        method: RobustMethod = "ransac",
        quality_scores: Optional[npt.ArrayLike] = None,
        confidence: float = 0.99,
        refine: bool = True,
        fast_refinement: bool = True,
) -> Optional[RansacResult[M]]:
    """
    Run a robust fit in one call.

    Inputs:
    - model_fitter: provides fit_minimal, fit_least_squares, residuals
    - data: observation arrays sharing their first axis, e.g. (points,) or (pts3d, pts2d)
    - min_samples: must match model_fitter.min_samples if given
    - tau: inlier threshold (default 3.0)
    - max_iters: upper bound of number of iterations
    - seed: RNG seed for reproducibility

    Returns:
    - RansacResult with final model + inlier mask, or None if it fails.
    """
    if min_samples is not None and min_samples != model_fitter.min_samples:
        raise ValueError(f"min_samples={min_samples} does not match fitter ({model_fitter.min_samples})")

    arrays = as_correspondences(*data)
    if arrays[0].shape[0] < model_fitter.min_samples:
        # Not enough observations to fit the model
        return None

    estimator: RobustEstimator[M] = RobustEstimator(
        model_fitter, arrays,
        method=method,
        quality_scores=quality_scores,
        threshold=float(tau),
        confidence=confidence,
        max_iterations=max_iters,
        seed=seed,
        refine_result=refine,
        use_fast_refinement=fast_refinement,
        keep_covariance=refine and not fast_refinement,
        compute_and_keep_inliers=True,
        compute_and_keep_residuals=True,
    )
    try:
        final_model = estimator.estimate()
    except RobustEstimatorError:
        return None

    inliers_data = estimator.inliers_data
    assert inliers_data is not None and inliers_data.inliers is not None
    best_inliers = inliers_data.inliers

    # Recompute RMS on inliers for the final model
    final_err = np.asarray(model_fitter.residuals(final_model, *arrays), dtype=np.float64)
    final_inlier_err = final_err[best_inliers]
    final_rms = float(np.sqrt(np.mean(final_inlier_err * final_inlier_err)))

    return RansacResult(
        model=final_model,
        inliers=best_inliers,
        num_inliers=int(np.count_nonzero(best_inliers)),
        rms_error=final_rms,
        iterations=estimator.iterations,
        threshold=inliers_data.threshold,
        covariance=estimator.covariance,
    )
