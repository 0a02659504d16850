# Andy Zhao
"""
Robust estimation package

This module provides:
- A reusable generic robust estimator (RANSAC, MSAC, PROSAC, LMedS, PROMedS)
- Typed observation primitives
- Model fitter and listener interface definitions
- Adaptive termination, sampling, scoring and refinement building blocks
"""

from .types import (
    FloatArray, BoolArray, IndexArray, Points2D, Points3D, Mask, Correspondences,
    ModelFitter, RefinableModelFitter, EstimatorListener, EstimatorState,
    InliersData, RansacResult, as_correspondences, subset,
)

from .errors import (
    EstimatorError, LockedError, NotReadyError, RobustEstimatorError, RefinementError,
)

from .params import EstimatorParams, RobustMethod, ROBUST_METHODS

from .termination import required_iterations

from .sampling import (
    UniformSampler, ProsacSampler, prosac_growth_schedule, prosac_pool_size, quality_order,
)

from .scoring import Score, RansacScorer, MsacScorer, LMedSScorer

from .refinement import RefinementResult, refine_model

from .core import RobustEstimator, ransac

__all__ = [
    "FloatArray", "BoolArray", "IndexArray", "Points2D", "Points3D", "Mask", "Correspondences",
    "ModelFitter", "RefinableModelFitter", "EstimatorListener", "EstimatorState",
    "InliersData", "RansacResult", "as_correspondences", "subset",
    "EstimatorError", "LockedError", "NotReadyError", "RobustEstimatorError", "RefinementError",
    "EstimatorParams", "RobustMethod", "ROBUST_METHODS",
    "required_iterations",
    "UniformSampler", "ProsacSampler", "prosac_growth_schedule", "prosac_pool_size", "quality_order",
    "Score", "RansacScorer", "MsacScorer", "LMedSScorer",
    "RefinementResult", "refine_model",
    "RobustEstimator", "ransac",
]
