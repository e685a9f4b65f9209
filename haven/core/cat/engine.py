"""
CATSessionManager: orchestrator for adaptive test sessions.

Drives one session through

    not_started -> in_progress (select -> await -> update -> evaluate)
                -> completed (pass | fail | undetermined)

Each public call performs exactly one step: load the session from the
session store, mutate it, save it back. The manager itself keeps no
per-session state, so any number of managers can serve the same store as
long as calls for one session are serialized by the caller.
"""
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from haven.core.cat.ability_estimation import (
    AbilityEstimate,
    estimate_ability_from_parameters,
)
from haven.core.cat.content_balancing import BlueprintConstraints
from haven.core.cat.errors import SessionNotFoundError, SessionStateError
from haven.core.cat.exposure_control import ExposureMonitor
from haven.core.cat.irt_model import Item
from haven.core.cat.item_bank import ItemBank
from haven.core.cat.item_selection import select_next_item
from haven.core.cat.score_report import CATReport, build_report
from haven.core.cat.session import CATSession, Response
from haven.core.cat.session_store import SessionStore
from haven.core.cat.stopping_rules import (
    classify_by_point_estimate,
    evaluate_stop,
    passing_probability,
)
from haven.core.config import Settings, settings
from haven.core.datetime_utils import utc_now
from haven.core.logging_config import session_id_context
from haven.domain_types import (
    ClassificationResult,
    EstimationMethod,
    SessionStatus,
    StepOutcome,
    StopReason,
)

logger = logging.getLogger(__name__)

# Bounds applied to a prior derived from earlier attempts
PRIOR_THETA_BOUND = 3.0
PRIOR_SD_MIN = 0.1
PRIOR_SD_MAX = 1.0


def compute_prior_theta(
    previous_thetas: List[float],
    previous_ses: List[float],
) -> Tuple[float, float]:
    """
    Compute a prior ability estimate from a candidate's previous attempts.

    Uses precision-weighted averaging of previous theta estimates, where
    precision = 1/SE². Attempts with lower SE (longer, more precise tests)
    count for more.

    Args:
        previous_thetas: Final theta estimates from past sessions.
        previous_ses: Corresponding SE values, same length as previous_thetas.

    Returns:
        Tuple of (prior_mean, prior_sd). The population prior (0.0, 1.0) when
        there is no usable history.
    """
    if not previous_thetas or not previous_ses:
        return (0.0, 1.0)

    if len(previous_thetas) != len(previous_ses):
        raise ValueError(
            f"previous_thetas length ({len(previous_thetas)}) must match "
            f"previous_ses length ({len(previous_ses)})"
        )

    total_precision = 0.0
    weighted_sum = 0.0
    for theta, se in zip(previous_thetas, previous_ses):
        if se <= 0:
            logger.warning(f"Skipping session with non-positive SE: {se}")
            continue
        precision = 1.0 / (se**2)
        total_precision += precision
        weighted_sum += theta * precision

    if total_precision == 0:
        return (0.0, 1.0)

    prior_mean = weighted_sum / total_precision
    prior_sd = 1.0 / math.sqrt(total_precision)

    prior_mean = max(-PRIOR_THETA_BOUND, min(PRIOR_THETA_BOUND, prior_mean))
    prior_sd = max(PRIOR_SD_MIN, min(PRIOR_SD_MAX, prior_sd))

    return (prior_mean, prior_sd)


@dataclass
class CATConfig:
    """Engine configuration. Build from application settings with from_settings()."""

    min_questions: int = 85
    max_questions: int = 150
    time_limit_seconds: Optional[float] = 18000.0
    passing_threshold: float = 0.0
    confidence_z: float = 1.96
    se_threshold: Optional[float] = None
    estimation_method: EstimationMethod = EstimationMethod.MLE
    prior_theta: float = 0.0
    prior_se: float = 1.0
    max_iterations: int = 50
    tolerance: float = 1e-4
    theta_bound: float = 4.0
    # Empty disables blueprint constraints and the coverage gate
    blueprint_weights: Dict[str, float] = field(default_factory=dict)
    min_items_per_category: int = 1
    content_balance_tolerance: float = 0.10
    randomesque_k: int = 1
    max_exposure_rate: Optional[float] = None

    def __post_init__(self) -> None:
        if self.min_questions > self.max_questions:
            raise ValueError(
                f"min_questions ({self.min_questions}) must not exceed "
                f"max_questions ({self.max_questions})"
            )
        if self.prior_se <= 0:
            raise ValueError(f"prior_se must be positive, got {self.prior_se}")

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "CATConfig":
        s = source if source is not None else settings
        return cls(
            min_questions=s.CAT_MIN_QUESTIONS,
            max_questions=s.CAT_MAX_QUESTIONS,
            time_limit_seconds=s.CAT_TIME_LIMIT_SECONDS,
            passing_threshold=s.CAT_PASSING_THRESHOLD,
            confidence_z=s.CAT_CONFIDENCE_Z,
            se_threshold=s.CAT_SE_THRESHOLD,
            estimation_method=s.CAT_ESTIMATION_METHOD,
            prior_theta=s.CAT_PRIOR_THETA,
            prior_se=s.CAT_PRIOR_SE,
            max_iterations=s.CAT_MLE_MAX_ITERATIONS,
            tolerance=s.CAT_MLE_TOLERANCE,
            theta_bound=s.CAT_THETA_BOUND,
            blueprint_weights=dict(s.CAT_BLUEPRINT_WEIGHTS),
            min_items_per_category=s.CAT_MIN_ITEMS_PER_CATEGORY,
            content_balance_tolerance=s.CAT_CONTENT_BALANCE_TOLERANCE,
            randomesque_k=s.CAT_RANDOMESQUE_K,
            max_exposure_rate=s.CAT_MAX_EXPOSURE_RATE,
        )

    def blueprint_constraints(self) -> Optional[BlueprintConstraints]:
        if not self.blueprint_weights:
            return None
        return BlueprintConstraints(
            target_weights=self.blueprint_weights,
            min_items_per_category=self.min_items_per_category,
            tolerance=self.content_balance_tolerance,
            max_items=self.max_questions,
        )


@dataclass
class NextItemResult:
    """Result of asking for the next item."""

    outcome: StepOutcome
    item: Optional[Item]
    status: SessionStatus
    theta: float
    standard_error: float
    passing_probability: float
    result: Optional[ClassificationResult] = None
    stop_reason: Optional[StopReason] = None


@dataclass
class CATStepResult:
    """Result after processing a single response."""

    item_id: str
    is_correct: bool
    theta: float
    standard_error: float
    converged: bool
    regularized: bool
    items_administered: int
    correct_count: int
    stop: bool
    status: SessionStatus
    passing_probability: float
    result: Optional[ClassificationResult] = None
    stop_reason: Optional[StopReason] = None


class CATSessionManager:
    """
    Orchestrator for NCLEX-style adaptive test sessions.

    Manages:
    - Session initialization with a prior ability
    - Maximum-information item selection under blueprint and exposure
      constraints, with forced completion when the pool is exhausted
    - Response processing and ability re-estimation after every answer
    - Confidence-interval stopping and pass/fail classification
    """

    def __init__(
        self,
        item_bank: ItemBank,
        session_store: SessionStore,
        config: Optional[CATConfig] = None,
        exposure_monitor: Optional[ExposureMonitor] = None,
        rng: Optional[random.Random] = None,
    ):
        self.item_bank = item_bank
        self.session_store = session_store
        self.config = config if config is not None else CATConfig.from_settings()
        self.exposure_monitor = exposure_monitor
        self.rng = rng
        self._blueprint = self.config.blueprint_constraints()

        logger.info(
            f"CATSessionManager initialized: length=[{self.config.min_questions}, "
            f"{self.config.max_questions}], cut={self.config.passing_threshold}, "
            f"method={self.config.estimation_method.value}"
        )

    def start_session(
        self,
        session_id: str,
        user_id: str,
        prior_theta: Optional[float] = None,
        prior_se: Optional[float] = None,
    ) -> CATSession:
        """
        Create and persist a new in-progress session.

        Args:
            session_id: Unique session ID.
            user_id: Candidate ID.
            prior_theta: Starting ability (e.g. from compute_prior_theta).
                Defaults to the configured prior.
            prior_se: Starting SE. Defaults to the configured prior SE.

        Raises:
            SessionStateError: If a session with this ID already exists.
        """
        try:
            self.session_store.get(session_id)
        except SessionNotFoundError:
            pass
        else:
            raise SessionStateError(
                "Session already exists", context={"session_id": session_id}
            )

        bound = self.config.theta_bound
        theta = prior_theta if prior_theta is not None else self.config.prior_theta
        theta = max(-bound, min(bound, theta))
        se = prior_se if prior_se is not None else self.config.prior_se
        if se <= 0:
            raise ValueError(f"prior_se must be positive, got {se}")

        session = CATSession(
            session_id=session_id,
            user_id=user_id,
            theta=theta,
            standard_error=se,
            prior_theta=theta,
            prior_se=se,
            category_coverage={c: 0 for c in self.config.blueprint_weights},
            started_at=utc_now(),
        )
        self.session_store.save(session)

        logger.info(
            f"Started CAT session {session_id} for user {user_id} "
            f"with prior theta={theta:.3f}, SE={se:.3f}"
        )
        return session

    def get_session(self, session_id: str) -> CATSession:
        return self.session_store.get(session_id)

    def select_next_item(self, session_id: str) -> NextItemResult:
        """
        Choose the next item for a session.

        Asking again before the pending item is answered returns the same
        item. When no eligible item remains the session is completed with
        StopReason.POOL_EXHAUSTED and classified from the current estimate.
        A session whose recorded time has already reached the time limit is
        completed with StopReason.TIME_LIMIT instead of receiving an item.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionStateError: Session already completed.
        """
        token = session_id_context.set(session_id)
        try:
            session = self._load_in_progress(session_id)

            limit = self.config.time_limit_seconds
            if limit is not None and session.time_spent_seconds >= limit:
                return self._force_complete(
                    session, StopReason.TIME_LIMIT, StepOutcome.COMPLETED_TIME_LIMIT
                )

            if session.pending_item_id is not None:
                return self._item_result(
                    session, self.item_bank.get_item(session.pending_item_id)
                )

            administered = session.administered_item_ids
            candidates = self.item_bank.get_candidates(exclude_ids=administered)
            item = select_next_item(
                session.theta,
                candidates,
                administered,
                blueprint_constraints=self._blueprint,
                category_coverage=session.category_coverage,
                exposure_monitor=self.exposure_monitor,
                max_exposure_rate=self.config.max_exposure_rate,
                randomesque_k=self.config.randomesque_k,
                rng=self.rng,
            )

            if item is None:
                return self._force_complete(
                    session,
                    StopReason.POOL_EXHAUSTED,
                    StepOutcome.COMPLETED_POOL_EXHAUSTED,
                )

            session.pending_item_id = item.id
            self.session_store.save(session)
            return self._item_result(session, item)
        finally:
            session_id_context.reset(token)

    def process_response(
        self,
        session_id: str,
        item_id: str,
        is_correct: bool,
        time_spent_seconds: float = 0.0,
    ) -> CATStepResult:
        """
        Record an answer, re-estimate ability and evaluate the stopping rule.

        Args:
            session_id: Session being answered.
            item_id: Must be the item returned by select_next_item.
            is_correct: Dichotomous score (see answer_scoring.is_answer_correct).
            time_spent_seconds: Time spent on this item.

        Returns:
            CATStepResult with updated estimates and the stop decision.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionStateError: Session completed, or item_id is not pending.
            ValueError: Negative time_spent_seconds.
        """
        token = session_id_context.set(session_id)
        try:
            session = self._load_in_progress(session_id)
            if session.pending_item_id is None or session.pending_item_id != item_id:
                raise SessionStateError(
                    "Response does not match the pending item",
                    context={
                        "session_id": session_id,
                        "item_id": item_id,
                        "pending_item_id": session.pending_item_id,
                    },
                )
            if time_spent_seconds < 0:
                raise ValueError(
                    f"time_spent_seconds must be non-negative, got {time_spent_seconds}"
                )

            item = self.item_bank.get_item(item_id)
            ability_before = session.theta
            estimate = self._estimate(session, item, bool(is_correct))

            session.responses.append(
                Response(
                    item_id=item.id,
                    is_correct=bool(is_correct),
                    sequence_number=len(session.responses) + 1,
                    ability_before=ability_before,
                    ability_after=estimate.theta,
                    standard_error_after=estimate.standard_error,
                    discrimination=item.discrimination,
                    difficulty=item.difficulty,
                    guessing=item.guessing,
                    category_id=item.category_id,
                    time_spent_seconds=time_spent_seconds,
                )
            )
            session.administered_item_ids.append(item.id)
            if item.category_id is not None:
                session.category_coverage[item.category_id] = (
                    session.category_coverage.get(item.category_id, 0) + 1
                )
            session.theta = estimate.theta
            session.standard_error = estimate.standard_error
            session.converged = estimate.converged
            session.theta_history.append(estimate.theta)
            session.time_spent_seconds += time_spent_seconds
            session.pending_item_id = None

            gate = self._coverage_gate(session)
            decision = evaluate_stop(
                theta=session.theta,
                standard_error=session.standard_error,
                responses_count=len(session.responses),
                min_questions=self.config.min_questions,
                max_questions=self.config.max_questions,
                passing_threshold=self.config.passing_threshold,
                z=self.config.confidence_z,
                se_threshold=self.config.se_threshold,
                time_spent_seconds=session.time_spent_seconds,
                time_limit_seconds=self.config.time_limit_seconds,
                category_coverage={
                    c: session.category_coverage.get(c, 0) for c in gate
                },
                target_weights=gate or None,
                min_items_per_category=(
                    self.config.min_items_per_category if gate else 0
                ),
            )
            session.passing_probability = decision.passing_probability

            if decision.stop:
                assert decision.result is not None
                assert decision.reason is not None
                self._complete(session, decision.result, decision.reason)

            self.session_store.save(session)

            logger.debug(
                f"Session {session_id}: response #{len(session.responses)} "
                f"({item.id}, correct={is_correct}) -> theta={session.theta:.3f}, "
                f"SE={session.standard_error:.3f}, stop={decision.stop}",
                extra={
                    "theta": session.theta,
                    "standard_error": session.standard_error,
                    "items_administered": len(session.responses),
                },
            )

            return CATStepResult(
                item_id=item.id,
                is_correct=bool(is_correct),
                theta=session.theta,
                standard_error=session.standard_error,
                converged=estimate.converged,
                regularized=estimate.regularized,
                items_administered=len(session.responses),
                correct_count=session.correct_count,
                stop=decision.stop,
                status=session.status,
                passing_probability=decision.passing_probability,
                result=session.result,
                stop_reason=session.stop_reason,
            )
        finally:
            session_id_context.reset(token)

    def get_report(self, session_id: str) -> CATReport:
        """
        Score report for a completed session.

        Raises:
            SessionStateError: Session still in progress.
        """
        session = self.session_store.get(session_id)
        if not session.is_completed:
            raise SessionStateError(
                "Report is only available for completed sessions",
                context={"session_id": session_id},
            )
        return build_report(
            session,
            passing_threshold=self.config.passing_threshold,
            z=self.config.confidence_z,
            theta_bound=self.config.theta_bound,
        )

    def _load_in_progress(self, session_id: str) -> CATSession:
        session = self.session_store.get(session_id)
        if session.is_completed:
            raise SessionStateError(
                "Session is already completed",
                context={"session_id": session_id, "result": session.result},
            )
        return session

    def _coverage_gate(self, session: CATSession) -> Dict[str, float]:
        """
        Blueprint weights of the categories that still gate a confidence stop.

        A category below the per-category minimum drops out of the gate once
        the bank has no unadministered item left in it.
        """
        gate: Dict[str, float] = {}
        minimum = self.config.min_items_per_category
        for category, weight in self.config.blueprint_weights.items():
            count = session.category_coverage.get(category, 0)
            if count < minimum and not self.item_bank.get_candidates(
                category_id=category, exclude_ids=session.administered_item_ids
            ):
                logger.info(
                    f"Session {session.session_id}: category '{category}' has "
                    f"{count}/{minimum} items and none left in the bank; "
                    "relaxing the coverage gate"
                )
                continue
            gate[category] = weight
        return gate

    def _estimate(
        self, session: CATSession, item: Item, is_correct: bool
    ) -> AbilityEstimate:
        params = [
            (r.discrimination, r.difficulty, r.guessing, r.is_correct)
            for r in session.responses
        ]
        params.append((item.discrimination, item.difficulty, item.guessing, is_correct))
        return estimate_ability_from_parameters(
            params,
            prior_theta=session.prior_theta,
            prior_sd=session.prior_se,
            method=self.config.estimation_method,
            initial_theta=session.theta,
            max_iterations=self.config.max_iterations,
            tolerance=self.config.tolerance,
            theta_bound=self.config.theta_bound,
        )

    def _complete(
        self,
        session: CATSession,
        result: ClassificationResult,
        reason: StopReason,
    ) -> None:
        session.status = SessionStatus.COMPLETED
        session.result = result
        session.stop_reason = reason
        session.pending_item_id = None
        session.completed_at = utc_now()
        logger.info(
            f"Session {session.session_id} completed: result={result.value}, "
            f"reason={reason.value}, theta={session.theta:.3f}, "
            f"SE={session.standard_error:.3f}, items={len(session.responses)}",
            extra={
                "theta": session.theta,
                "standard_error": session.standard_error,
                "items_administered": len(session.responses),
                "stop_reason": reason.value,
            },
        )

    def _force_complete(
        self, session: CATSession, reason: StopReason, outcome: StepOutcome
    ) -> NextItemResult:
        """Complete a session from select_next_item, classifying like the time rule."""
        if len(session.responses) >= max(self.config.min_questions, 1):
            result = classify_by_point_estimate(
                session.theta, self.config.passing_threshold
            )
        else:
            result = ClassificationResult.UNDETERMINED
        probability = passing_probability(
            session.theta, session.standard_error, self.config.passing_threshold
        )
        session.passing_probability = probability

        logger.warning(
            f"Forcing completion of session {session.session_id} after "
            f"{len(session.responses)} responses: {reason.value}"
        )
        self._complete(session, result, reason)
        self.session_store.save(session)

        return NextItemResult(
            outcome=outcome,
            item=None,
            status=session.status,
            theta=session.theta,
            standard_error=session.standard_error,
            passing_probability=probability,
            result=result,
            stop_reason=reason,
        )

    def _item_result(self, session: CATSession, item: Item) -> NextItemResult:
        probability = passing_probability(
            session.theta, session.standard_error, self.config.passing_threshold
        )
        return NextItemResult(
            outcome=StepOutcome.ITEM_SELECTED,
            item=item,
            status=session.status,
            theta=session.theta,
            standard_error=session.standard_error,
            passing_probability=probability,
        )
