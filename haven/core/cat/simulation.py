"""
CAT simulation for validating the adaptive testing engine.

Simulates N examinees with known ability taking full adaptive tests through
CATSessionManager, then checks how often the pass/fail decision matches the
examinee's true standing relative to the passing standard.

Key Features:
- Monte Carlo simulation with configurable N and theta distribution
- Synthetic 3PL item bank across the NCLEX client-need categories
- Classification accuracy, test length, bias/RMSE and stop-reason metrics

References:
    - Weiss, D. J. (2004). Computerized adaptive testing for effective and
      efficient measurement in counseling and education. Measurement and
      Evaluation in Counseling and Development, 37(2), 70-84.
    - Eggen, T. J. H. M. (1999). Item selection in adaptive testing with the
      sequential probability ratio test. Applied Psychological Measurement,
      23(3), 249-261.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from haven.core.cat.engine import CATConfig, CATSessionManager
from haven.core.cat.irt_model import Item, compute_probability
from haven.core.cat.item_bank import InMemoryItemBank
from haven.core.cat.session_store import InMemorySessionStore
from haven.domain_types import ClassificationResult, QuestionFormat
from haven.core.config import settings

logger = logging.getLogger(__name__)

# Synthetic item parameter distributions (Lord, 1980)
DISCRIMINATION_LOGNORMAL_MEAN = 0.0
DISCRIMINATION_LOGNORMAL_SD = 0.3
DISCRIMINATION_MIN = 0.5
DISCRIMINATION_MAX = 2.5
DIFFICULTY_NORMAL_MEAN = 0.0
DIFFICULTY_NORMAL_SD = 1.0
DIFFICULTY_MIN = -3.0
DIFFICULTY_MAX = 3.0
GUESSING_MAX = 0.25

# Target proportion of correct pass/fail decisions
CLASSIFICATION_ACCURACY_TARGET = 0.90


@dataclass
class SimulationConfig:
    """Configuration for a CAT simulation run."""

    n_examinees: int = 200
    theta_mean: float = 0.0
    theta_sd: float = 1.0
    n_items_per_category: int = 60
    passing_threshold: float = 0.0
    min_questions: int = 85
    max_questions: int = 150
    seed: int = 42
    # randomesque_k=1 keeps runs reproducible for a given seed
    deterministic_selection: bool = True
    blueprint_weights: Dict[str, float] = field(
        default_factory=lambda: dict(settings.CAT_BLUEPRINT_WEIGHTS)
    )

    def to_cat_config(self) -> CATConfig:
        return CATConfig(
            min_questions=self.min_questions,
            max_questions=self.max_questions,
            time_limit_seconds=None,
            passing_threshold=self.passing_threshold,
            blueprint_weights=dict(self.blueprint_weights),
            randomesque_k=1 if self.deterministic_selection else 5,
        )


@dataclass
class ExamineeResult:
    """Per-examinee simulation results."""

    true_theta: float
    estimated_theta: float
    final_se: float
    bias: float  # estimated_theta - true_theta
    items_administered: int
    result: Optional[ClassificationResult]
    stop_reason: Optional[str]
    correctly_classified: bool
    category_coverage: Dict[str, int] = field(default_factory=dict)


@dataclass
class SimulationResult:
    """Aggregate simulation results."""

    config: SimulationConfig
    examinee_results: List[ExamineeResult]
    classification_accuracy: float
    mean_items: float
    median_items: float
    mean_se: float
    mean_bias: float
    rmse: float
    stop_reason_counts: Dict[str, int]


def generate_item_bank(
    n_items_per_category: int = 60,
    categories: Optional[List[str]] = None,
    seed: int = 42,
) -> List[Item]:
    """
    Generate a synthetic item bank with realistic 3PL parameters.

    Item parameters are drawn from distributions that match typical
    operational item banks (Lord, 1980):
        - Discrimination (a) ~ LogNormal(0.0, 0.3), clipped to [0.5, 2.5]
        - Difficulty (b) ~ Normal(0.0, 1.0), clipped to [-3.0, 3.0]
        - Guessing (c) ~ Uniform(0.0, 0.25)

    Args:
        n_items_per_category: Number of items to generate per category.
        categories: Category IDs. Defaults to the configured blueprint.
        seed: Random seed for reproducibility.

    Returns:
        List of Items with IDs of the form "<category>-<nnnn>".
    """
    if categories is None:
        categories = list(settings.CAT_BLUEPRINT_WEIGHTS.keys())

    rng = np.random.default_rng(seed)
    items: List[Item] = []

    for category in categories:
        for n in range(1, n_items_per_category + 1):
            a = rng.lognormal(
                mean=DISCRIMINATION_LOGNORMAL_MEAN, sigma=DISCRIMINATION_LOGNORMAL_SD
            )
            a = float(np.clip(a, DISCRIMINATION_MIN, DISCRIMINATION_MAX))

            b = rng.normal(loc=DIFFICULTY_NORMAL_MEAN, scale=DIFFICULTY_NORMAL_SD)
            b = float(np.clip(b, DIFFICULTY_MIN, DIFFICULTY_MAX))

            c = float(rng.uniform(0.0, GUESSING_MAX))

            items.append(
                Item(
                    id=f"{category}-{n:04d}",
                    discrimination=a,
                    difficulty=b,
                    guessing=c,
                    category_id=category,
                    question_format=QuestionFormat.MULTIPLE_CHOICE,
                )
            )

    logger.info(
        f"Generated item bank: {len(items)} items across {len(categories)} "
        f"categories ({n_items_per_category} per category)"
    )

    return items


def simulate_response(true_theta: float, item: Item, rng: random.Random) -> bool:
    """Draw a correct/incorrect response from the 3PL model."""
    return rng.random() < compute_probability(true_theta, item)


def simulate_examinee(
    true_theta: float,
    manager: CATSessionManager,
    session_id: str,
    rng: random.Random,
    passing_threshold: float = 0.0,
) -> ExamineeResult:
    """
    Run one full adaptive session for an examinee of known ability.

    Loop: select_next_item -> simulate_response -> process_response, until
    the session completes (stopping rule or pool exhaustion).
    """
    manager.start_session(session_id=session_id, user_id=f"sim-{session_id}")

    while True:
        selection = manager.select_next_item(session_id)
        if selection.item is None:
            break

        is_correct = simulate_response(true_theta, selection.item, rng)
        step = manager.process_response(session_id, selection.item.id, is_correct)
        if step.stop:
            break

    session = manager.get_session(session_id)
    truly_passing = true_theta >= passing_threshold
    correctly_classified = (
        session.result == ClassificationResult.PASS and truly_passing
    ) or (session.result == ClassificationResult.FAIL and not truly_passing)

    return ExamineeResult(
        true_theta=true_theta,
        estimated_theta=session.theta,
        final_se=session.standard_error,
        bias=session.theta - true_theta,
        items_administered=len(session.responses),
        result=session.result,
        stop_reason=session.stop_reason.value if session.stop_reason else None,
        correctly_classified=correctly_classified,
        category_coverage=dict(session.category_coverage),
    )


def run_simulation(
    config: SimulationConfig,
    item_bank: Optional[List[Item]] = None,
) -> SimulationResult:
    """
    Simulate ``config.n_examinees`` adaptive tests and aggregate the results.

    Args:
        config: Simulation configuration.
        item_bank: Items to use. Generated from the config when omitted.

    Returns:
        SimulationResult with per-examinee and aggregate metrics.
    """
    if config.n_examinees <= 0:
        raise ValueError(f"n_examinees must be positive, got {config.n_examinees}")

    if item_bank is None:
        item_bank = generate_item_bank(
            n_items_per_category=config.n_items_per_category,
            categories=list(config.blueprint_weights.keys()),
            seed=config.seed,
        )

    logger.info(
        f"Starting CAT simulation: N={config.n_examinees}, "
        f"theta ~ N({config.theta_mean}, {config.theta_sd}^2), "
        f"bank={len(item_bank)} items"
    )

    rng = random.Random(config.seed)
    np_rng = np.random.default_rng(config.seed)
    manager = CATSessionManager(
        item_bank=InMemoryItemBank(item_bank),
        session_store=InMemorySessionStore(),
        config=config.to_cat_config(),
        rng=rng,
    )

    examinee_results: List[ExamineeResult] = []
    for examinee_id in range(1, config.n_examinees + 1):
        true_theta = float(np_rng.normal(loc=config.theta_mean, scale=config.theta_sd))
        examinee_results.append(
            simulate_examinee(
                true_theta,
                manager,
                session_id=f"sim-{examinee_id:05d}",
                rng=rng,
                passing_threshold=config.passing_threshold,
            )
        )
        if examinee_id % 100 == 0:
            logger.info(f"Completed {examinee_id}/{config.n_examinees} examinees")

    return _aggregate_results(config, examinee_results)


def _aggregate_results(
    config: SimulationConfig, examinee_results: List[ExamineeResult]
) -> SimulationResult:
    items = [r.items_administered for r in examinee_results]
    ses = [r.final_se for r in examinee_results]
    biases = [r.bias for r in examinee_results]

    stop_reason_counts: Dict[str, int] = {}
    for r in examinee_results:
        reason = r.stop_reason or "unknown"
        stop_reason_counts[reason] = stop_reason_counts.get(reason, 0) + 1

    accuracy = sum(1 for r in examinee_results if r.correctly_classified) / len(
        examinee_results
    )
    result = SimulationResult(
        config=config,
        examinee_results=examinee_results,
        classification_accuracy=accuracy,
        mean_items=float(np.mean(items)),
        median_items=float(np.median(items)),
        mean_se=float(np.mean(ses)),
        mean_bias=float(np.mean(biases)),
        rmse=float(np.sqrt(np.mean(np.square(biases)))),
        stop_reason_counts=stop_reason_counts,
    )

    logger.info(
        f"Simulation complete: accuracy={result.classification_accuracy:.1%}, "
        f"mean_items={result.mean_items:.1f}, mean_SE={result.mean_se:.3f}, "
        f"RMSE={result.rmse:.3f}"
    )
    return result


def generate_report(result: SimulationResult) -> str:
    """Render a simulation result as a markdown report."""
    cfg = result.config
    lines = [
        "# CAT Simulation Report",
        "",
        "## Simulation Configuration",
        "",
        f"- **N Examinees**: {cfg.n_examinees:,}",
        f"- **Theta Distribution**: N({cfg.theta_mean}, {cfg.theta_sd}^2)",
        f"- **Passing Threshold**: {cfg.passing_threshold}",
        f"- **Test Length**: {cfg.min_questions}-{cfg.max_questions} items",
        f"- **Items per Category**: {cfg.n_items_per_category}",
        f"- **Random Seed**: {cfg.seed}",
        "",
        "## Overall Metrics",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Classification Accuracy | {result.classification_accuracy:.1%} |",
        f"| Mean Items | {result.mean_items:.2f} |",
        f"| Median Items | {result.median_items:.1f} |",
        f"| Mean SE | {result.mean_se:.3f} |",
        f"| Mean Bias | {result.mean_bias:.3f} |",
        f"| RMSE | {result.rmse:.3f} |",
        "",
        "## Stop Reason Distribution",
        "",
        "| Reason | Count | Percentage |",
        "|--------|-------|------------|",
    ]

    total = sum(result.stop_reason_counts.values())
    for reason, count in sorted(result.stop_reason_counts.items(), key=lambda x: -x[1]):
        pct = count / total if total > 0 else 0.0
        lines.append(f"| {reason} | {count:,} | {pct:.1%} |")

    accuracy_ok = result.classification_accuracy >= CLASSIFICATION_ACCURACY_TARGET
    lines.extend(
        [
            "",
            "## Exit Criteria Validation",
            "",
            f"- **Classification accuracy >= {CLASSIFICATION_ACCURACY_TARGET:.0%}**: "
            f"{'PASS' if accuracy_ok else 'FAIL'} ({result.classification_accuracy:.1%})",
            "",
        ]
    )
    return "\n".join(lines)
