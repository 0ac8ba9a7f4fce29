"""Adaptive testing algorithm (Item Response Theory).

Pure functions over questions and responses:
- Response probability (3PL with default 1PL parameters)
- Ability estimation (Newton-Raphson maximum likelihood)
- Standard error and item information
- Next question selection (maximum information with constraints)
- Stopping rule
- Post-test metrics and question bank analysis

Difficulty levels are placed on the ability scale at 0.2, 0.4, 0.6 and 0.8.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any

import structlog

from examprep.core.question_bank import (
    DIFFICULTY_LEVELS,
    DIFFICULTY_SCORES,
    AdaptiveQuestion,
    difficulty_index,
)
from examprep.core.test_repository import TestResponse, now_iso

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

MIN_PROBABILITY = 0.01
MAX_PROBABILITY = 0.99

MAX_ITERATIONS = 50
CONVERGENCE_TOLERANCE = 0.001
ABILITY_BOUND = 4.0

DEFAULT_MIN_QUESTIONS = 5
DEFAULT_TARGET_STANDARD_ERROR = 0.3
DEFAULT_STABILITY_THRESHOLD = 0.1
STABILITY_MIN_RESPONSES = 10
STABILITY_WINDOW = 5

RECENT_TOPIC_WINDOW = 3
OVERREPRESENTED_FACTOR = 0.8
UNDERREPRESENTED_FACTOR = 1.5

FATIGUE_THRESHOLD = 1.3
FATIGUE_RECENT = 3

PROGRESSION_WINDOW = 3
PROGRESSION_STEP_UP = 0.8
PROGRESSION_STEP_DOWN = 0.4
FAST_RESPONSE_MS = 30_000

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class SelectionConstraints:
    """Optional filters applied before maximum-information selection."""

    allowed_difficulties: list[str] | None = None
    avoid_recent_topics: bool = False
    subject_distribution: dict[str, float] | None = None


@dataclass
class AbilityEstimate:
    """Ability estimate after a given number of responses."""

    timestamp: str
    estimate: float
    standard_error: float
    question_number: int


@dataclass
class AdaptiveMetrics:
    """How the algorithm behaved over a completed test."""

    algorithm_type: str
    convergence_history: list[AbilityEstimate] = field(default_factory=list)
    algorithm_efficiency: float = 0.0
    question_utilization: float = 0.0
    ability_estimate_stability: float = 0.0
    mission_difficulty_adjustment: float = 0.0
    journey_goal_update: float = 0.0
    track_progress_contribution: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TestEfficiencyReport:
    """Summary of how efficiently a test measured the learner."""

    __test__ = False

    efficiency: float
    accuracy: float
    recommendations: list[str] = field(default_factory=list)


# =============================================================================
# CORE IRT
# =============================================================================


def _logistic(x: float) -> float:
    # Bounded exponent keeps math.exp finite for extreme discriminations
    x = max(-30.0, min(30.0, x))
    return 1.0 / (1.0 + math.exp(-x))


def response_probability(
    ability: float,
    difficulty: float,
    discrimination: float = 1.0,
    guessing: float = 0.0,
) -> float:
    """Probability of a correct answer, clamped to [0.01, 0.99].

    P = c + (1 - c) / (1 + e^(-a(theta - b)))
    """
    p = guessing + (1.0 - guessing) * _logistic(discrimination * (ability - difficulty))
    return max(MIN_PROBABILITY, min(MAX_PROBABILITY, p))


def _probability_slope(ability: float, question: AdaptiveQuestion) -> float:
    """dP/dtheta for a question at the given ability."""
    s = _logistic(question.discrimination * (ability - question.difficulty_score))
    return question.discrimination * (1.0 - question.guessing) * s * (1.0 - s)


def item_information(ability: float, question: AdaptiveQuestion) -> float:
    """Fisher information of a question: a^2 * P * (1 - P)."""
    p = response_probability(
        ability,
        question.difficulty_score,
        question.discrimination,
        question.guessing,
    )
    return question.discrimination**2 * p * (1.0 - p)


def _pair_responses(
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
) -> list[tuple[TestResponse, AdaptiveQuestion]]:
    """Pair responses with their questions; unknown IDs are skipped."""
    by_id = {q.question_id: q for q in questions}
    return [(r, by_id[r.question_id]) for r in responses if r.question_id in by_id]


def estimate_ability(
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
) -> float:
    """Maximum likelihood ability estimate via Newton-Raphson.

    Starts at 0, runs at most 50 iterations and stops when the update is
    below 0.001. The estimate is kept within [-4, 4] so that all-correct
    or all-wrong response sets stay finite.

    Returns:
        Ability estimate (0.0 when no response matches a known question)
    """
    items = _pair_responses(responses, questions)
    if not items:
        return 0.0

    ability = 0.0
    for _ in range(MAX_ITERATIONS):
        gradient = 0.0
        information = 0.0

        for response, question in items:
            p = response_probability(
                ability,
                question.difficulty_score,
                question.discrimination,
                question.guessing,
            )
            slope = _probability_slope(ability, question)
            if response.is_correct:
                gradient += slope / p
            else:
                gradient -= slope / (1.0 - p)
            information += slope * slope / (p * (1.0 - p))

        if information <= 0:
            break

        update = gradient / information
        ability = max(-ABILITY_BOUND, min(ABILITY_BOUND, ability + update))
        if abs(update) < CONVERGENCE_TOLERANCE:
            break

    return ability


def standard_error(
    ability: float,
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
) -> float:
    """Standard error 1 / sqrt(total information) of the answered items.

    Returns 1.0 when there is no information yet.
    """
    total = sum(item_information(ability, q) for _, q in _pair_responses(responses, questions))
    if total <= 0:
        return 1.0
    return 1.0 / math.sqrt(total)


# =============================================================================
# QUESTION SELECTION
# =============================================================================


def _recent_topics(previous: list[TestResponse]) -> set[str]:
    return {r.topic for r in previous[-RECENT_TOPIC_WINDOW:] if r.topic}


def _apply_constraints(
    candidates: list[AdaptiveQuestion],
    previous: list[TestResponse],
    constraints: SelectionConstraints,
) -> list[AdaptiveQuestion]:
    result = candidates

    if constraints.allowed_difficulties:
        allowed = set(constraints.allowed_difficulties)
        result = [q for q in result if q.difficulty in allowed]

    if constraints.avoid_recent_topics:
        recent = _recent_topics(previous)
        result = [q for q in result if q.topic not in recent]

    return result


def _subject_weight(
    question: AdaptiveQuestion,
    previous: list[TestResponse],
    distribution: dict[str, float] | None,
) -> float:
    """Favor subjects below their target share, damp those above it."""
    if not distribution or not previous or question.subject not in distribution:
        return 1.0

    asked = sum(1 for r in previous if r.subject == question.subject)
    share = asked / len(previous)
    target = distribution[question.subject]
    if share < target:
        return UNDERREPRESENTED_FACTOR
    if share > target:
        return OVERREPRESENTED_FACTOR
    return 1.0


def select_next_question(
    available: list[AdaptiveQuestion],
    ability: float,
    previous: list[TestResponse] | None = None,
    constraints: SelectionConstraints | None = None,
) -> AdaptiveQuestion | None:
    """Pick the unanswered question with maximum information.

    Ties are broken by distance between question difficulty and ability,
    then by pool order. When constraints exclude every candidate the
    unconstrained pool is used.

    Returns:
        Selected question, or None when no unanswered question remains
    """
    previous = previous or []
    answered = {r.question_id for r in previous}
    pool = [q for q in available if q.question_id not in answered]
    if not pool:
        return None

    candidates = pool
    if constraints is not None:
        candidates = _apply_constraints(pool, previous, constraints) or pool

    distribution = constraints.subject_distribution if constraints else None

    def rank(indexed: tuple[int, AdaptiveQuestion]) -> tuple[float, float, int]:
        index, question = indexed
        score = item_information(ability, question)
        score *= _subject_weight(question, previous, distribution)
        return (-score, abs(question.difficulty_score - ability), index)

    _, best = min(enumerate(candidates), key=rank)
    return best


def _level_for_ability(ability: float) -> str:
    """Difficulty level whose position is closest to the ability."""
    return min(DIFFICULTY_LEVELS, key=lambda level: abs(DIFFICULTY_SCORES[level] - ability))


def journey_focused_selection(
    available: list[AdaptiveQuestion],
    ability: float,
    journey_subjects: list[str],
    previous: list[TestResponse] | None = None,
) -> AdaptiveQuestion | None:
    """Prefer questions from journey subjects, else fall back to the full pool."""
    wanted = {s.casefold() for s in journey_subjects}
    focused = [q for q in available if q.subject.casefold() in wanted]
    choice = select_next_question(focused, ability, previous)
    if choice is not None:
        return choice
    return select_next_question(available, ability, previous)


def progressive_difficulty_selection(
    available: list[AdaptiveQuestion],
    ability: float,
    previous: list[TestResponse] | None = None,
) -> AdaptiveQuestion | None:
    """Start at beginner, then follow the accuracy of the last three answers.

    At least 80% correct steps one level above the last question, at most
    40% steps one level below, anything in between stays put.
    """
    previous = previous or []
    if not previous:
        beginner = [q for q in available if q.difficulty == "beginner"]
        if beginner:
            return beginner[0]
        return available[0] if available else None

    recent = previous[-PROGRESSION_WINDOW:]
    accuracy = sum(1 for r in recent if r.is_correct) / len(recent)
    last_level = difficulty_index(previous[-1].question_difficulty)
    if accuracy >= PROGRESSION_STEP_UP:
        target = min(last_level + 1, len(DIFFICULTY_LEVELS) - 1)
    elif accuracy <= PROGRESSION_STEP_DOWN:
        target = max(last_level - 1, 0)
    else:
        target = last_level

    constraints = SelectionConstraints(allowed_difficulties=[DIFFICULTY_LEVELS[target]])
    return select_next_question(available, ability, previous, constraints)


def fatigue_level(fatigue_indicators: list[float]) -> float:
    """Mean of the last three response times over the mean of the window."""
    if len(fatigue_indicators) < 2:
        return 1.0
    average = sum(fatigue_indicators) / len(fatigue_indicators)
    if average <= 0:
        return 1.0
    recent = fatigue_indicators[-FATIGUE_RECENT:]
    return sum(recent) / len(recent) / average


def fatigue_aware_selection(
    available: list[AdaptiveQuestion],
    ability: float,
    previous: list[TestResponse] | None = None,
    fatigue_indicators: list[float] | None = None,
) -> AdaptiveQuestion | None:
    """Ease off one difficulty level when response times show fatigue."""
    if fatigue_level(fatigue_indicators or []) <= FATIGUE_THRESHOLD:
        return select_next_question(available, ability, previous)

    ceiling = max(difficulty_index(_level_for_ability(ability)) - 1, 0)
    constraints = SelectionConstraints(allowed_difficulties=list(DIFFICULTY_LEVELS[: ceiling + 1]))
    logger.debug("fatigue_detected", ceiling=DIFFICULTY_LEVELS[ceiling])
    return select_next_question(available, ability, previous, constraints)


def confidence_based_selection(
    available: list[AdaptiveQuestion],
    ability: float,
    previous: list[TestResponse] | None = None,
) -> AdaptiveQuestion | None:
    """Challenge over-confidence with harder items, reassure under-confidence.

    Confidence is self-reported on a 1-5 scale.
    """
    previous = previous or []
    rated = [r for r in previous if r.confidence is not None]
    over = sum(1 for r in rated if not r.is_correct and r.confidence >= 4)
    under = sum(1 for r in rated if r.is_correct and r.confidence <= 2)

    constraints = None
    if over > under:
        constraints = SelectionConstraints(allowed_difficulties=["advanced", "expert"])
    elif under > over:
        constraints = SelectionConstraints(allowed_difficulties=["beginner", "intermediate"])

    return select_next_question(available, ability, previous, constraints)


def mission_aligned_selection(
    available: list[AdaptiveQuestion],
    ability: float,
    target_difficulties: list[str],
    previous: list[TestResponse] | None = None,
) -> AdaptiveQuestion | None:
    """Restrict selection to the difficulties a mission calls for."""
    constraints = SelectionConstraints(allowed_difficulties=target_difficulties)
    return select_next_question(available, ability, previous, constraints)


# =============================================================================
# STOPPING RULE
# =============================================================================


def should_continue_testing(
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
    ability: float,
    max_questions: int,
    target_standard_error: float = DEFAULT_TARGET_STANDARD_ERROR,
    min_questions: int = DEFAULT_MIN_QUESTIONS,
    stability_threshold: float = DEFAULT_STABILITY_THRESHOLD,
) -> bool:
    """Decide whether another question should be asked.

    Stops at max_questions. Below min_questions always continues. Otherwise
    stops when the standard error reaches the target, or (after 10
    responses) when the last 5 partial ability estimates vary by less than
    the stability threshold.
    """
    count = len(responses)
    if count >= max_questions:
        return False
    if count < min_questions:
        return True

    if standard_error(ability, responses, questions) <= target_standard_error:
        return False

    if count >= STABILITY_MIN_RESPONSES:
        estimates = [
            estimate_ability(responses[: count - STABILITY_WINDOW + 1 + i], questions)
            for i in range(STABILITY_WINDOW)
        ]
        if max(estimates) - min(estimates) < stability_threshold:
            return False

    return True


# =============================================================================
# METRICS AND ANALYSIS
# =============================================================================


def generate_adaptive_metrics(
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
    final_ability: float,
    algorithm_type: str = "HYBRID",
) -> AdaptiveMetrics:
    """Summarize convergence and efficiency of a finished test."""
    metrics = AdaptiveMetrics(algorithm_type=algorithm_type)
    count = len(responses)
    if count == 0:
        return metrics

    for number in range(1, count + 1):
        partial = responses[:number]
        estimate = estimate_ability(partial, questions)
        metrics.convergence_history.append(
            AbilityEstimate(
                timestamp=partial[-1].timestamp or now_iso(),
                estimate=estimate,
                standard_error=standard_error(estimate, partial, questions),
                question_number=number,
            )
        )

    optimal = max(5.0, min(30.0, 15.0 - abs(final_ability) * 5.0))
    metrics.algorithm_efficiency = min(1.0, optimal / count)
    metrics.question_utilization = sum(r.information_gained for r in responses) / (count * 2.0)

    if len(metrics.convergence_history) > 1:
        last = [e.estimate for e in metrics.convergence_history[-3:]]
        metrics.ability_estimate_stability = 1.0 - (max(last) - min(last))

    accuracy = sum(1 for r in responses if r.is_correct) / count
    metrics.mission_difficulty_adjustment = max(-0.2, min(0.2, final_ability * 0.1))
    metrics.journey_goal_update = max(0.0, min(1.0, accuracy * 1.2 - 0.1))
    contribution = sum(
        (1.0 if r.is_correct else 0.0) + (0.1 if r.response_time_ms < FAST_RESPONSE_MS else 0.0)
        for r in responses
    )
    metrics.track_progress_contribution = contribution / (count * 1.1)

    return metrics


def analyze_question_bank(questions: list[AdaptiveQuestion]) -> list[str]:
    """Recommendations about coverage of a question pool."""
    if not questions:
        return ["Question bank is empty; generate questions before testing"]

    recommendations = []
    per_level = {level: 0 for level in DIFFICULTY_LEVELS}
    for question in questions:
        per_level[question.difficulty] = per_level.get(question.difficulty, 0) + 1

    for level, count in per_level.items():
        if count < 3:
            recommendations.append(f"Add more {level} questions ({count} available)")

    low_discrimination = sum(1 for q in questions if q.discrimination < 0.5)
    if low_discrimination / len(questions) > 0.2:
        recommendations.append("Review questions with low discrimination")

    if len({q.subject for q in questions}) == 1 and len(questions) > 20:
        recommendations.append("Consider adding questions from related subjects")

    return recommendations


def analyze_test_performance(responses: list[TestResponse]) -> TestEfficiencyReport:
    """Efficiency and accuracy of a response set with follow-up advice."""
    if not responses:
        return TestEfficiencyReport(efficiency=0.0, accuracy=0.0)

    count = len(responses)
    accuracy = sum(1 for r in responses if r.is_correct) / count
    efficiency = min(1.0, sum(r.information_gained for r in responses) / count)

    recommendations = []
    if accuracy < 0.5:
        recommendations.append("Review fundamentals before the next test")
    elif accuracy > 0.85:
        recommendations.append("Move on to harder material")

    average_time = sum(r.response_time_ms for r in responses) / count
    if average_time > 2 * FAST_RESPONSE_MS:
        recommendations.append("Practice timed questions to improve pace")

    return TestEfficiencyReport(
        efficiency=efficiency,
        accuracy=accuracy,
        recommendations=recommendations,
    )
