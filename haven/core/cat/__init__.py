"""
CAT (Computerized Adaptive Testing) engine for Haven.

3PL item response model, ability estimation, maximum-information item
selection and the NCLEX-style confidence-interval stopping rule.
"""

from .ability_estimation import (
    AbilityEstimate,
    estimate_ability,
    estimate_ability_eap,
    estimate_ability_mle,
)
from .answer_scoring import is_answer_correct
from .content_balancing import (
    BlueprintConstraints,
    is_content_balanced,
    track_category_coverage,
)
from .engine import (
    CATConfig,
    CATSessionManager,
    CATStepResult,
    NextItemResult,
    compute_prior_theta,
)
from .errors import (
    CATError,
    EstimationNonConvergenceError,
    InvalidItemParametersError,
    ItemNotFoundError,
    SessionNotFoundError,
    SessionStateError,
)
from .exposure_control import ExposureMonitor, apply_randomesque
from .irt_model import (
    Item,
    compute_information,
    compute_probability,
    fisher_information,
    probability_correct,
)
from .item_bank import (
    InMemoryItemBank,
    ItemBank,
    default_item_parameters,
    difficulty_level,
)
from .item_selection import select_next_item
from .readiness import (
    CategoryReadiness,
    PoolReadinessResult,
    evaluate_pool_readiness,
)
from .score_report import CATReport, CategoryPerformance, build_report
from .session import CATSession, Response
from .session_store import InMemorySessionStore, SessionStore
from .stopping_rules import StopDecision, evaluate_stop, passing_probability

__all__ = [
    "Item",
    "compute_probability",
    "compute_information",
    "probability_correct",
    "fisher_information",
    "AbilityEstimate",
    "estimate_ability",
    "estimate_ability_mle",
    "estimate_ability_eap",
    "select_next_item",
    "BlueprintConstraints",
    "track_category_coverage",
    "is_content_balanced",
    "ExposureMonitor",
    "apply_randomesque",
    "StopDecision",
    "evaluate_stop",
    "passing_probability",
    "CATConfig",
    "CATSessionManager",
    "CATStepResult",
    "NextItemResult",
    "compute_prior_theta",
    "CATSession",
    "Response",
    "ItemBank",
    "InMemoryItemBank",
    "difficulty_level",
    "default_item_parameters",
    "SessionStore",
    "InMemorySessionStore",
    "is_answer_correct",
    "CATReport",
    "CategoryPerformance",
    "build_report",
    "evaluate_pool_readiness",
    "PoolReadinessResult",
    "CategoryReadiness",
    "CATError",
    "InvalidItemParametersError",
    "EstimationNonConvergenceError",
    "ItemNotFoundError",
    "SessionNotFoundError",
    "SessionStateError",
]
