"""Adaptive test recommendation engine.

Ranks candidate adaptive tests for a learner with a weighted linear score:

    score = weak_area_focus * weak-area overlap
          + journey_alignment * overlap with active journey subjects
          + journey_progression * remaining progress of matching journeys
          + difficulty_progression * fit with the preferred difficulty
          + variety_bonus * (new subjects vs the last 5 completed tests)
          + freshness_bonus * (not tested in the last 3 completed tests)

capped at 1.0. Candidates come from the LLM when enabled, falling back to
heuristic candidates built from stored progress, journeys and tests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from examprep.config.app_config import load_app_config
from examprep.core.journeys import Journey, infer_journey_difficulty, journey_subjects, list_journeys
from examprep.core.progress import ProgressSummary, get_user_progress
from examprep.core.question_bank import DIFFICULTY_LEVELS, difficulty_index, normalize_difficulty
from examprep.core.test_repository import AdaptiveTest, list_tests
from examprep.llm.client import LLMClient, LLMError
from examprep.prompts.registry import get_prompt
from examprep.utils.validators import generate_id

logger = structlog.get_logger(__name__)

# =============================================================================
# WEIGHTS
# =============================================================================

WEIGHT_KEYS = (
    "weak_area_focus",
    "journey_alignment",
    "journey_progression",
    "difficulty_progression",
    "variety_bonus",
    "freshness_bonus",
)

# Overrides applied on top of the configured default weights
WEIGHT_PRESETS: dict[str, dict[str, float]] = {
    "weak_area": {
        "weak_area_focus": 0.7,
        "journey_alignment": 0.15,
        "journey_progression": 0.1,
        "difficulty_progression": 0.05,
    },
    "journey": {
        "weak_area_focus": 0.2,
        "journey_alignment": 0.5,
        "journey_progression": 0.2,
        "difficulty_progression": 0.1,
    },
    "quick": {
        "weak_area_focus": 0.5,
        "journey_alignment": 0.2,
        "journey_progression": 0.1,
        "difficulty_progression": 0.1,
        "variety_bonus": 0.05,
        "freshness_bonus": 0.05,
    },
}

WEAK_TRACK_THRESHOLD = 70.0
WEAK_SUBJECT_THRESHOLD = 65.0
STRONG_SUBJECT_THRESHOLD = 85.0
MAX_WEAK_AREAS = 5
MAX_STRONG_AREAS = 3
DEFAULT_ACCURACY = 70.0
NEUTRAL_JOURNEY_SCORE = 0.5

SYSTEM_PROMPT = "You are an academic advisor. Reply with a JSON array only."

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class TestRecommendation:
    """A suggested adaptive test with its ranking."""

    __test__ = False

    recommendation_id: str
    title: str
    description: str
    subjects: list[str]
    difficulty: str = "intermediate"
    question_count: int = 20
    estimated_minutes: int = 30
    priority: str = "medium"
    category: str = "weak_area"
    reasons: list[str] = field(default_factory=list)
    expected_benefit: str = ""
    tags: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    track: str | None = None
    journey_alignment: float = 0.0
    estimated_accuracy: float = DEFAULT_ACCURACY
    algorithm_type: str = "CAT"
    difficulty_range: tuple[str, str] = ("beginner", "expert")
    min_questions: int = 8
    target_standard_error: float = 0.3
    linked_journey_id: str | None = None
    ai_generated: bool = False
    score: float = 0.0
    confidence: float = 0.0
    score_breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "recommendation_id": self.recommendation_id,
            "title": self.title,
            "description": self.description,
            "subjects": self.subjects,
            "difficulty": self.difficulty,
            "question_count": self.question_count,
            "estimated_minutes": self.estimated_minutes,
            "priority": self.priority,
            "category": self.category,
            "reasons": self.reasons,
            "expected_benefit": self.expected_benefit,
            "tags": self.tags,
            "topics": self.topics,
            "track": self.track,
            "journey_alignment": self.journey_alignment,
            "estimated_accuracy": self.estimated_accuracy,
            "algorithm_type": self.algorithm_type,
            "difficulty_range": list(self.difficulty_range),
            "min_questions": self.min_questions,
            "target_standard_error": self.target_standard_error,
            "linked_journey_id": self.linked_journey_id,
            "ai_generated": self.ai_generated,
            "score": round(self.score, 4),
            "confidence": round(self.confidence, 4),
            "score_breakdown": self.score_breakdown,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestRecommendation:
        low, high = data.get("difficulty_range", ["beginner", "expert"])
        return cls(
            recommendation_id=data.get("recommendation_id") or generate_id("rec"),
            title=data["title"],
            description=data.get("description", ""),
            subjects=list(data["subjects"]),
            difficulty=normalize_difficulty(data.get("difficulty", "intermediate")),
            question_count=int(data.get("question_count", 20)),
            estimated_minutes=int(data.get("estimated_minutes", 30)),
            priority=data.get("priority", "medium"),
            category=data.get("category", "weak_area"),
            reasons=list(data.get("reasons", [])),
            expected_benefit=data.get("expected_benefit", ""),
            tags=list(data.get("tags", [])),
            topics=list(data.get("topics", [])),
            track=data.get("track"),
            journey_alignment=float(data.get("journey_alignment", 0.0)),
            estimated_accuracy=float(data.get("estimated_accuracy", DEFAULT_ACCURACY)),
            algorithm_type=data.get("algorithm_type", "CAT"),
            difficulty_range=(low, high),
            min_questions=int(data.get("min_questions", 8)),
            target_standard_error=float(data.get("target_standard_error", 0.3)),
            linked_journey_id=data.get("linked_journey_id"),
            ai_generated=bool(data.get("ai_generated", False)),
        )


@dataclass
class RecommendationContext:
    """Everything the scorer knows about a learner."""

    user_id: str
    progress: ProgressSummary
    journeys: list[Journey]
    completed_tests: list[AdaptiveTest]
    weak_areas: list[str]
    strong_areas: list[str]
    preferred_difficulty: str
    learning_goals: list[str]


@dataclass
class CandidateConstraints:
    max_questions: int = 25
    max_minutes: int = 45


class RecommendationError(Exception):
    """Error building recommendations."""

    pass


# =============================================================================
# CONTEXT ANALYSIS
# =============================================================================


def identify_weak_areas(progress: ProgressSummary) -> list[str]:
    """Subjects under 65% inside tracks averaging under 70% (at most 5)."""
    weak: list[str] = []
    for track in progress.tracks:
        if track.average_score >= WEAK_TRACK_THRESHOLD:
            continue
        for subject in track.subjects:
            if subject.average_score < WEAK_SUBJECT_THRESHOLD and subject.subject not in weak:
                weak.append(subject.subject)
    return weak[:MAX_WEAK_AREAS]


def identify_strong_areas(progress: ProgressSummary) -> list[str]:
    """Subjects at or above 85% (at most 3)."""
    strong: list[str] = []
    for track in progress.tracks:
        for subject in track.subjects:
            if subject.average_score >= STRONG_SUBJECT_THRESHOLD and subject.subject not in strong:
                strong.append(subject.subject)
    return strong[:MAX_STRONG_AREAS]


def infer_preferred_difficulty(progress: ProgressSummary, completed_tests: list[AdaptiveTest]) -> str:
    if not completed_tests:
        return "intermediate"
    if progress.overall_average >= 85:
        return "advanced"
    if progress.overall_average >= 70:
        return "intermediate"
    return "beginner"


def _progressive_difficulty(current: str) -> str:
    return {"beginner": "intermediate", "intermediate": "intermediate", "advanced": "advanced"}.get(
        current, "intermediate"
    )


def _advanced_difficulty(current: str) -> str:
    return {"beginner": "intermediate", "intermediate": "advanced", "advanced": "expert"}.get(
        current, "advanced"
    )


def _estimate_accuracy(subject: str, context: RecommendationContext) -> float:
    if subject == "overall":
        return context.progress.overall_average
    for track in context.progress.tracks:
        for progress in track.subjects:
            if progress.subject == subject:
                return progress.average_score
    return DEFAULT_ACCURACY


def _journey_alignment(subjects: list[str], journeys: list[Journey]) -> float:
    if not journeys:
        return 0.0
    linked = {s for j in journeys for s in journey_subjects(j)}
    overlap = sum(1 for s in subjects if s in linked)
    return overlap / max(len(subjects), 1)


def _related_journey(subjects: list[str], journeys: list[Journey]) -> str | None:
    for journey in journeys:
        if any(s in journey_subjects(journey) for s in subjects):
            return journey.journey_id
    return None


def _bounded_count(value: Any, default: int, limit: int) -> int:
    """Positive whole number from LLM output, capped at ``limit``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value < 1:
        value = default
    return min(int(value), limit)


# =============================================================================
# SCORING
# =============================================================================


def weak_area_score(candidate: TestRecommendation, context: RecommendationContext) -> float:
    overlap = sum(1 for s in candidate.subjects if s in context.weak_areas)
    return overlap / max(len(candidate.subjects), 1)


def journey_progression_score(candidate: TestRecommendation, context: RecommendationContext) -> float:
    """Remaining completion of journeys sharing a subject (0.5 with no journeys)."""
    if not context.journeys:
        return NEUTRAL_JOURNEY_SCORE
    matching = [
        j for j in context.journeys if any(s in journey_subjects(j) for s in candidate.subjects)
    ]
    if not matching:
        return 0.0
    average = sum(j.overall_completion for j in matching) / len(matching)
    return 1.0 - average / 100.0


def difficulty_score(candidate: TestRecommendation, context: RecommendationContext) -> float:
    difference = abs(
        difficulty_index(candidate.difficulty) - difficulty_index(context.preferred_difficulty)
    )
    return max(0.0, 1.0 - difference / 3)


def variety_score(candidate: TestRecommendation, context: RecommendationContext) -> float:
    recent = {s for t in context.completed_tests[:5] for s in t.subjects}
    return 1.0 if any(s not in recent for s in candidate.subjects) else 0.3


def freshness_score(candidate: TestRecommendation, context: RecommendationContext) -> float:
    recent = {s for t in context.completed_tests[:3] for s in t.subjects}
    return 0.2 if any(s in recent for s in candidate.subjects) else 1.0


def recommendation_confidence(candidate: TestRecommendation, context: RecommendationContext) -> float:
    confidence = 0.7
    if len(context.completed_tests) >= 3:
        confidence += 0.1
    if context.journeys:
        confidence += 0.1
    if candidate.journey_alignment > 0.5:
        confidence += 0.1
    return min(confidence, 1.0)


def score_recommendations(
    candidates: list[TestRecommendation],
    context: RecommendationContext,
    weights: dict[str, float],
) -> list[TestRecommendation]:
    """Fill score, confidence and score_breakdown in place; returns candidates."""
    for candidate in candidates:
        components = {
            "weak_area_focus": weak_area_score(candidate, context),
            "journey_alignment": candidate.journey_alignment,
            "journey_progression": journey_progression_score(candidate, context),
            "difficulty_progression": difficulty_score(candidate, context),
            "variety_bonus": variety_score(candidate, context),
            "freshness_bonus": freshness_score(candidate, context),
        }
        total = sum(components[key] * weights.get(key, 0.0) for key in WEIGHT_KEYS)
        candidate.score = min(total, 1.0)
        candidate.confidence = recommendation_confidence(candidate, context)
        candidate.score_breakdown = {k: round(v, 4) for k, v in components.items()}
    return candidates


# =============================================================================
# ENGINE
# =============================================================================


class RecommendationEngine:
    """Builds learner context and ranks adaptive test suggestions."""

    def __init__(
        self,
        data_dir: Path | None = None,
        llm_client: LLMClient | None = None,
        use_llm: bool | None = None,
    ):
        config = load_app_config().recommendations
        self.data_dir = data_dir
        self.default_weights = config.weights()
        self.use_llm = config.use_llm if use_llm is None else use_llm
        self._llm_client = llm_client

    def weights_for(self, preset: str | None = None) -> dict[str, float]:
        """Configured default weights, with a named preset applied on top."""
        weights = dict(self.default_weights)
        if preset is not None:
            if preset not in WEIGHT_PRESETS:
                raise RecommendationError(f"Unknown weight preset: {preset}")
            weights.update(WEIGHT_PRESETS[preset])
        return weights

    def build_context(self, user_id: str) -> RecommendationContext:
        """Gather progress, journeys and completed tests for a user.

        Raises:
            RecommendationError: If stored data cannot be read
        """
        try:
            progress = get_user_progress(user_id, data_dir=self.data_dir)
            journeys = [
                j
                for j in list_journeys(user_id, data_dir=self.data_dir)
                if j.status in ("planning", "active")
            ]
            completed = list_tests(user_id, status="completed", data_dir=self.data_dir)
        except Exception as e:
            raise RecommendationError(f"Could not build context for {user_id}: {e}") from e

        goals: list[str] = []
        for journey in journeys:
            for subject in journey_subjects(journey):
                if subject not in goals:
                    goals.append(subject)

        return RecommendationContext(
            user_id=user_id,
            progress=progress,
            journeys=journeys,
            completed_tests=completed,
            weak_areas=identify_weak_areas(progress),
            strong_areas=identify_strong_areas(progress),
            preferred_difficulty=infer_preferred_difficulty(progress, completed),
            learning_goals=goals[:5],
        )

    # -------------------------------------------------------------------------
    # Candidates
    # -------------------------------------------------------------------------

    def generate_candidates(
        self,
        context: RecommendationContext,
        constraints: CandidateConstraints | None = None,
    ) -> list[TestRecommendation]:
        """Heuristic candidates: weak areas, journeys, review and a challenge."""
        limits = constraints or CandidateConstraints()
        max_q = limits.max_questions
        max_min = limits.max_minutes
        preferred = context.preferred_difficulty
        candidates = []

        for subject in context.weak_areas[:3]:
            candidates.append(
                TestRecommendation(
                    recommendation_id=generate_id("rec"),
                    title=f"Master {subject}",
                    description=f"Focused assessment to improve your {subject} skills",
                    subjects=[subject],
                    difficulty=_progressive_difficulty(preferred),
                    question_count=min(max_q, 20),
                    estimated_minutes=min(max_min, 30),
                    priority="high",
                    category="weak_area",
                    reasons=[f"Identified weakness in {subject}", "Targeted skill improvement"],
                    expected_benefit="Strengthen weak areas",
                    tags=["weakness-focus", "skill-building"],
                    journey_alignment=_journey_alignment([subject], context.journeys),
                    estimated_accuracy=_estimate_accuracy(subject, context),
                    algorithm_type="CAT",
                    difficulty_range=("beginner", preferred),
                    min_questions=8,
                    target_standard_error=0.3,
                    linked_journey_id=_related_journey([subject], context.journeys),
                )
            )

        for journey in context.journeys[:2]:
            subjects = journey_subjects(journey)
            if not subjects:
                continue
            level = infer_journey_difficulty(journey)
            candidates.append(
                TestRecommendation(
                    recommendation_id=generate_id("rec"),
                    title=f"{journey.title} Assessment",
                    description=f"Test your readiness for journey: {journey.title}",
                    subjects=subjects,
                    difficulty=level,
                    question_count=min(max_q, 18),
                    estimated_minutes=min(max_min, 35),
                    priority="medium",
                    category="journey",
                    reasons=[f"Supports active journey: {journey.title}", "Journey preparation"],
                    expected_benefit="Journey readiness verification",
                    tags=["journey-prep", "goal-aligned"],
                    track=journey.track,
                    journey_alignment=1.0,
                    estimated_accuracy=_estimate_accuracy(subjects[0], context),
                    algorithm_type="HYBRID",
                    difficulty_range=("beginner", level),
                    min_questions=10,
                    target_standard_error=0.25,
                    linked_journey_id=journey.journey_id,
                )
            )

        if len(context.weak_areas) >= 2:
            subjects = context.weak_areas[:4]
            candidates.append(
                TestRecommendation(
                    recommendation_id=generate_id("rec"),
                    title="Comprehensive Skills Assessment",
                    description="Multi-subject assessment covering your key learning areas",
                    subjects=subjects,
                    difficulty=preferred,
                    question_count=max_q,
                    estimated_minutes=max_min,
                    priority="medium",
                    category="review",
                    reasons=["Comprehensive skill evaluation", "Multi-subject integration"],
                    expected_benefit="Overall progress assessment",
                    tags=["comprehensive", "multi-subject"],
                    journey_alignment=_journey_alignment(subjects, context.journeys),
                    estimated_accuracy=_estimate_accuracy("overall", context),
                    algorithm_type="CAT",
                    difficulty_range=("beginner", "advanced"),
                    min_questions=15,
                    target_standard_error=0.35,
                )
            )

        if context.strong_areas:
            subject = context.strong_areas[0]
            candidates.append(
                TestRecommendation(
                    recommendation_id=generate_id("rec"),
                    title=f"Advanced {subject} Challenge",
                    description=f"Challenge yourself with advanced {subject} problems",
                    subjects=[subject],
                    difficulty=_advanced_difficulty(preferred),
                    question_count=min(max_q, 15),
                    estimated_minutes=min(max_min, 25),
                    priority="low",
                    category="challenge",
                    reasons=[f"Build on strength in {subject}", "Advanced skill development"],
                    expected_benefit="Strength reinforcement",
                    tags=["strength-building", "advanced"],
                    journey_alignment=_journey_alignment([subject], context.journeys),
                    estimated_accuracy=min(100.0, _estimate_accuracy(subject, context) + 10),
                    algorithm_type="CAT",
                    difficulty_range=("intermediate", "expert"),
                    min_questions=8,
                    target_standard_error=0.2,
                )
            )

        return candidates

    def _describe_context(self, context: RecommendationContext) -> str:
        lines = [
            f"- Weak areas: {', '.join(context.weak_areas) or 'none identified'}",
            f"- Strong areas: {', '.join(context.strong_areas) or 'none identified'}",
            f"- Preferred difficulty: {context.preferred_difficulty}",
            f"- Journey subjects: {', '.join(context.learning_goals) or 'none'}",
            f"- Overall average score: {context.progress.overall_average:.0f}%",
        ]
        for test in context.completed_tests[:5]:
            accuracy = (test.performance or {}).get("accuracy", 0.0)
            lines.append(f"- Completed '{test.title}' ({', '.join(test.subjects)}): {accuracy:.0f}%")
        return "\n".join(lines)

    def generate_llm_candidates(
        self,
        context: RecommendationContext,
        count: int,
        constraints: CandidateConstraints | None = None,
    ) -> list[TestRecommendation]:
        """Ask the LLM for candidates.

        Question counts and durations are capped at ``constraints``.

        Raises:
            LLMError: If the LLM call fails
        """
        if self._llm_client is None:
            self._llm_client = LLMClient()
        limits = constraints or CandidateConstraints()

        prompt = get_prompt(
            "recommendations/generate_tests",
            count=str(count),
            context=self._describe_context(context),
            max_questions=str(limits.max_questions),
            max_minutes=str(limits.max_minutes),
        )
        raw = self._llm_client.simple_json(system_prompt=SYSTEM_PROMPT, user_message=prompt)
        if isinstance(raw, dict):
            raw = raw.get("recommendations", [])
        if not isinstance(raw, list):
            return []

        candidates = []
        for item in raw:
            if not isinstance(item, dict) or not item.get("title") or not item.get("subjects"):
                continue
            subjects = item["subjects"]
            if isinstance(subjects, str):
                subjects = [subjects]
            difficulty = normalize_difficulty(item.get("difficulty", context.preferred_difficulty))
            candidates.append(
                TestRecommendation(
                    recommendation_id=generate_id("rec"),
                    title=str(item["title"]),
                    description=str(item.get("description", "")),
                    subjects=[str(s) for s in subjects],
                    difficulty=difficulty,
                    question_count=_bounded_count(item.get("question_count"), 20, limits.max_questions),
                    estimated_minutes=_bounded_count(item.get("estimated_minutes"), 30, limits.max_minutes),
                    priority=item.get("priority", "medium")
                    if item.get("priority") in ("high", "medium", "low")
                    else "medium",
                    category="llm",
                    reasons=[str(item["reason"])] if item.get("reason") else [],
                    expected_benefit=str(item.get("expected_benefit", "")),
                    journey_alignment=_journey_alignment(subjects, context.journeys),
                    linked_journey_id=_related_journey(subjects, context.journeys),
                    difficulty_range=("beginner", DIFFICULTY_LEVELS[-1]),
                    ai_generated=True,
                )
            )
        return candidates

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def generate_recommendations(
        self,
        user_id: str,
        max_recommendations: int = 5,
        preset: str | None = None,
        constraints: CandidateConstraints | None = None,
    ) -> list[TestRecommendation]:
        """Ranked recommendations, best first.

        The LLM is tried first when enabled; heuristic candidates are used
        when it fails or returns nothing usable.
        """
        context = self.build_context(user_id)
        weights = self.weights_for(preset)

        candidates: list[TestRecommendation] = []
        if self.use_llm:
            try:
                candidates = self.generate_llm_candidates(context, max_recommendations, constraints)
            except LLMError as e:
                logger.warning("llm_recommendations_failed", user_id=user_id, error=str(e))
        if not candidates:
            candidates = self.generate_candidates(context, constraints)

        scored = score_recommendations(candidates, context, weights)
        ranked = sorted(scored, key=lambda r: r.score, reverse=True)[:max_recommendations]

        logger.info(
            "recommendations_generated",
            user_id=user_id,
            preset=preset or "default",
            count=len(ranked),
            ai_generated=any(r.ai_generated for r in ranked),
        )
        return ranked

    def generate_weak_area_recommendations(self, user_id: str, max_recommendations: int = 3):
        return self.generate_recommendations(user_id, max_recommendations, preset="weak_area")

    def generate_journey_aligned_recommendations(self, user_id: str, max_recommendations: int = 3):
        return self.generate_recommendations(user_id, max_recommendations, preset="journey")

    def generate_quick_assessment_recommendations(self, user_id: str, max_recommendations: int = 3):
        """Short, high-impact tests (at most 15 questions, 20 minutes)."""
        return self.generate_recommendations(
            user_id,
            max_recommendations,
            preset="quick",
            constraints=CandidateConstraints(max_questions=15, max_minutes=20),
        )
