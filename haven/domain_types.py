"""Shared domain types for the Haven CAT engine.

This module is the single source of truth for domain enums used by the
engine, the session schemas and (indirectly) the web application that
persists sessions.

Usage:
    from haven.domain_types import NclexCategory, SessionStatus
"""

import enum


class NclexCategory(str, enum.Enum):
    """NCLEX-RN client-need categories (content blueprint)."""

    MANAGEMENT_OF_CARE = "management-of-care"
    SAFETY_INFECTION_CONTROL = "safety-infection-control"
    HEALTH_PROMOTION_MAINTENANCE = "health-promotion-maintenance"
    PSYCHOSOCIAL_INTEGRITY = "psychosocial-integrity"
    BASIC_CARE_COMFORT = "basic-care-comfort"
    PHARMACOLOGICAL_THERAPIES = "pharmacological-therapies"
    REDUCTION_RISK_POTENTIAL = "reduction-risk-potential"
    PHYSIOLOGICAL_ADAPTATION = "physiological-adaptation"


class DifficultyLevel(str, enum.Enum):
    """Difficulty labels derived from the IRT b parameter."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionFormat(str, enum.Enum):
    """NCLEX item formats (traditional and Next Generation)."""

    MULTIPLE_CHOICE = "multiple_choice"
    SELECT_ALL = "select_all"
    ORDERED_RESPONSE = "ordered_response"
    CLOZE_DROPDOWN = "cloze_dropdown"
    MATRIX = "matrix"
    HIGHLIGHT = "highlight"
    BOW_TIE = "bow_tie"
    HOT_SPOT = "hot_spot"
    CASE_STUDY = "case_study"


class SessionStatus(str, enum.Enum):
    """CAT session status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ClassificationResult(str, enum.Enum):
    """Terminal pass/fail classification of a CAT session."""

    PASS = "pass"
    FAIL = "fail"
    UNDETERMINED = "undetermined"


class StopReason(str, enum.Enum):
    """Why a CAT session stopped."""

    CONFIDENCE_PASS = "confidence_pass"
    CONFIDENCE_FAIL = "confidence_fail"
    PRECISION_REACHED = "precision_reached"
    MAX_QUESTIONS = "max_questions"
    TIME_LIMIT = "time_limit"
    POOL_EXHAUSTED = "pool_exhausted"


class StepOutcome(str, enum.Enum):
    """Outcome of asking the controller for the next item."""

    ITEM_SELECTED = "item_selected"
    COMPLETED_POOL_EXHAUSTED = "completed_pool_exhausted"
    COMPLETED_TIME_LIMIT = "completed_time_limit"


class EstimationMethod(str, enum.Enum):
    """Ability estimation methods."""

    MLE = "mle"
    EAP = "eap"
