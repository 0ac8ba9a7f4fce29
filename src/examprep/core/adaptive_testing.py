"""Adaptive testing service.

Orchestrates the computerized adaptive test flow:
- Create tests (manual, from a journey, from a recommendation, retakes)
- Build each test's question pool from the stored bank or the LLM
- Run sessions: start, submit responses, pause, resume, recover
- On completion compute performance and adaptive metrics, then update
  topic progress and the linked journey

Tests and sessions are JSON documents (see test_repository). Active
sessions are also kept in an in-memory registry.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from examprep.config.app_config import AdaptiveConfig, load_app_config
from examprep.core.adaptive_algorithm import (
    confidence_based_selection,
    estimate_ability,
    fatigue_aware_selection,
    generate_adaptive_metrics,
    journey_focused_selection,
    progressive_difficulty_selection,
    select_next_question,
    should_continue_testing,
    standard_error,
)
from examprep.core.journeys import (
    JourneyNotFoundError,
    apply_goal_progress,
    infer_journey_difficulty,
    journey_subjects,
    load_journey,
    save_journey,
)
from examprep.core.missions import update_mission_difficulty_from_test
from examprep.core.progress import update_progress_from_adaptive_test
from examprep.core.question_bank import (
    BLOOMS_LEVELS,
    DIFFICULTY_LEVELS,
    AdaptiveQuestion,
    difficulty_index,
    load_question_bank,
    resolve_option,
    save_questions,
)
from examprep.core.question_generator import (
    QuestionGenerationError,
    QuestionGenerationRequest,
    generate_adaptive_questions,
)
from examprep.core.test_repository import (
    AdaptiveTest,
    TestResponse,
    TestSession,
    find_session_for_test,
    find_test,
    list_tests,
    load_session,
    load_test,
    now_iso,
    save_session,
    save_test,
)
from examprep.llm.client import LLMClient, LLMError
from examprep.utils.validators import generate_id

if TYPE_CHECKING:
    from examprep.core.recommendation_engine import TestRecommendation

logger = structlog.get_logger(__name__)

FATIGUE_WINDOW = 5
MINUTES_PER_QUESTION = 2
CONFIDENCE_Z = 1.96

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class CreateTestRequest:
    """Parameters for a new adaptive test."""

    title: str
    subjects: list[str]
    description: str = ""
    topics: list[str] = field(default_factory=list)
    track: str | None = None
    question_count: int | None = None
    difficulty_range: tuple[str, str] = ("beginner", "expert")
    initial_difficulty: str | None = None
    algorithm_type: str | None = None
    linked_journey_id: str | None = None
    exam_context: str = ""
    learning_objectives: list[str] = field(default_factory=list)


@dataclass
class TestCreationResult:
    """Result of test creation."""

    __test__ = False

    success: bool
    test: AdaptiveTest | None
    message: str
    warnings: list[str] = field(default_factory=list)


@dataclass
class TestPerformance:
    """Final scoring of a completed test."""

    __test__ = False

    total_questions: int
    correct_answers: int
    accuracy: float
    average_response_time_ms: float
    total_time_ms: int
    subject_performance: dict[str, dict[str, Any]]
    difficulty_performance: dict[str, dict[str, Any]]
    blooms_performance: dict[str, float]
    final_ability_estimate: float
    ability_confidence_interval: tuple[float, float]
    standard_error: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "accuracy": self.accuracy,
            "average_response_time_ms": self.average_response_time_ms,
            "total_time_ms": self.total_time_ms,
            "subject_performance": self.subject_performance,
            "difficulty_performance": self.difficulty_performance,
            "blooms_performance": self.blooms_performance,
            "final_ability_estimate": self.final_ability_estimate,
            "ability_confidence_interval": list(self.ability_confidence_interval),
            "standard_error": self.standard_error,
        }


@dataclass
class SubmitResult:
    """Outcome of one submitted response."""

    is_correct: bool
    correct_answer: str | list[str]
    explanation: str
    test_completed: bool
    next_question: AdaptiveQuestion | None = None
    performance: TestPerformance | None = None
    ability_estimate: float = 0.0
    standard_error: float = 1.0


class AdaptiveTestingError(Exception):
    """Error in the adaptive testing flow."""

    pass


class AdaptiveTestNotFoundError(AdaptiveTestingError):
    """Raised when a test does not exist."""

    pass


class SessionNotFoundError(AdaptiveTestingError):
    """Raised when a session does not exist for the user."""

    pass


class UnauthorizedTestAccessError(AdaptiveTestingError):
    """Raised when a user touches another user's test."""

    pass


# =============================================================================
# SCORING HELPERS
# =============================================================================


def _canonical(answer: Any, options: list[str]) -> str:
    resolved = resolve_option(answer, options) if options else None
    return (resolved if resolved is not None else str(answer)).strip().casefold()


def evaluate_answer(question: AdaptiveQuestion, answer: str | list[str]) -> bool:
    """True when the answer set equals the question's correct answer set.

    Option letters and indexes are accepted in place of option text.
    """
    expected = question.accepted_answers()
    if not expected:
        return False

    given = answer if isinstance(answer, list) else [answer]
    return sorted(_canonical(a, question.options) for a in given) == sorted(
        _canonical(c, question.options) for c in expected
    )


def _breakdown(responses: list[TestResponse]) -> dict[str, Any]:
    correct = sum(1 for r in responses if r.is_correct)
    return {
        "total": len(responses),
        "correct": correct,
        "accuracy": correct / len(responses) * 100,
        "average_time_ms": sum(r.response_time_ms for r in responses) / len(responses),
    }


def calculate_test_performance(
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
) -> TestPerformance:
    """Totals, accuracy and per-subject/difficulty/Bloom breakdowns."""
    by_id = {q.question_id: q for q in questions}
    count = len(responses)
    correct = sum(1 for r in responses if r.is_correct)
    total_time = sum(r.response_time_ms for r in responses)

    subject_performance: dict[str, dict[str, Any]] = {}
    for subject in dict.fromkeys(q.subject for q in questions):
        subject_responses = [
            r for r in responses if r.question_id in by_id and by_id[r.question_id].subject == subject
        ]
        if subject_responses:
            stats = _breakdown(subject_responses)
            stats["ability_estimate"] = estimate_ability(subject_responses, questions)
            subject_performance[subject] = stats

    difficulty_performance: dict[str, dict[str, Any]] = {}
    for level in DIFFICULTY_LEVELS:
        level_responses = [
            r for r in responses if r.question_id in by_id and by_id[r.question_id].difficulty == level
        ]
        if level_responses:
            difficulty_performance[level] = _breakdown(level_responses)

    blooms_performance: dict[str, float] = {}
    for level in BLOOMS_LEVELS:
        level_responses = [
            r for r in responses if r.question_id in by_id and by_id[r.question_id].blooms_level == level
        ]
        if level_responses:
            blooms_performance[level] = _breakdown(level_responses)["accuracy"]

    ability = estimate_ability(responses, questions)
    error = standard_error(ability, responses, questions)

    return TestPerformance(
        total_questions=count,
        correct_answers=correct,
        accuracy=correct / count * 100 if count else 0.0,
        average_response_time_ms=total_time / count if count else 0.0,
        total_time_ms=total_time,
        subject_performance=subject_performance,
        difficulty_performance=difficulty_performance,
        blooms_performance=blooms_performance,
        final_ability_estimate=ability,
        ability_confidence_interval=(ability - CONFIDENCE_Z * error, ability + CONFIDENCE_Z * error),
        standard_error=error,
    )


def select_first_question(test: AdaptiveTest) -> AdaptiveQuestion | None:
    """First question at the initial difficulty, else the first question.

    Progressive tests always open with a beginner question.
    """
    if test.algorithm_type == "PROGRESSIVE":
        return progressive_difficulty_selection(test.questions, 0.0)
    for question in test.questions:
        if question.difficulty == test.initial_difficulty:
            return question
    return test.questions[0] if test.questions else None


# =============================================================================
# SERVICE
# =============================================================================


class AdaptiveTestingService:
    """Creates adaptive tests and runs their sessions."""

    def __init__(
        self,
        data_dir: Path | None = None,
        llm_client: LLMClient | None = None,
        config: AdaptiveConfig | None = None,
    ):
        """Initialize the service.

        Args:
            data_dir: Base data directory (EXAMPREP_DATA_DIR or ./data if None)
            llm_client: Client for question generation (created lazily if None)
            config: Adaptive settings (from app config if None)
        """
        self.data_dir = data_dir
        self.config = config or load_app_config().adaptive
        self._llm_client = llm_client
        self._active_sessions: dict[str, TestSession] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Test creation
    # -------------------------------------------------------------------------

    def create_adaptive_test(self, user_id: str, request: CreateTestRequest) -> TestCreationResult:
        """Create a test and build its question pool.

        Returns:
            TestCreationResult; success is False when no questions could be
            found or generated.
        """
        if not request.subjects:
            return TestCreationResult(
                success=False, test=None, message="At least one subject is required"
            )

        low, high = request.difficulty_range
        if difficulty_index(low) > difficulty_index(high):
            return TestCreationResult(
                success=False,
                test=None,
                message=f"Invalid difficulty range: {low} > {high}",
            )

        test = AdaptiveTest(
            test_id=generate_id("test"),
            user_id=user_id,
            title=request.title,
            description=request.description,
            subjects=list(request.subjects),
            topics=list(request.topics),
            track=request.track,
            total_questions=request.question_count or self.config.max_questions,
            difficulty_range=(low, high),
            algorithm_type=request.algorithm_type or self.config.algorithm_type,
            convergence_threshold=self.config.target_standard_error,
            initial_difficulty=request.initial_difficulty or self.config.initial_difficulty,
            linked_journey_id=request.linked_journey_id,
        )

        warnings: list[str] = []
        try:
            test.questions = self._build_question_pool(test, request, warnings)
        except AdaptiveTestingError as e:
            logger.error("question_pool_failed", user_id=user_id, error=str(e))
            return TestCreationResult(success=False, test=None, message=str(e), warnings=warnings)

        test.status = "active"
        save_test(test, self.data_dir)

        logger.info(
            "adaptive_test_created",
            test_id=test.test_id,
            user_id=user_id,
            questions=len(test.questions),
        )
        return TestCreationResult(
            success=True,
            test=test,
            message=f"Test created with {len(test.questions)} questions",
            warnings=warnings,
        )

    def _get_llm_client(self) -> LLMClient:
        if self._llm_client is None:
            self._llm_client = LLMClient()
        return self._llm_client

    def _build_question_pool(
        self,
        test: AdaptiveTest,
        request: CreateTestRequest,
        warnings: list[str],
    ) -> list[AdaptiveQuestion]:
        """Stored questions first, then LLM generation, then whatever is stored.

        Raises:
            AdaptiveTestingError: If no question is available at all
        """
        low, high = test.difficulty_range
        levels = list(DIFFICULTY_LEVELS[difficulty_index(low) : difficulty_index(high) + 1])

        stored = load_question_bank(
            test.user_id,
            subjects=test.subjects,
            difficulties=levels,
            limit=test.total_questions * 3,
            data_dir=self.data_dir,
        )
        if len(stored) >= test.total_questions:
            return stored

        generation_request = QuestionGenerationRequest(
            subjects=test.subjects,
            topics=test.topics,
            difficulty=test.initial_difficulty,
            question_count=test.total_questions * 2,
            exam_context=request.exam_context,
            learning_objectives=request.learning_objectives,
        )
        try:
            generated = generate_adaptive_questions(generation_request, self._get_llm_client())
        except (QuestionGenerationError, LLMError) as e:
            logger.warning("question_generation_failed", test_id=test.test_id, error=str(e))
            warnings.append(f"Question generation failed: {e}")
        else:
            for question in generated:
                question.created_by = test.user_id
            save_questions(test.user_id, generated, self.data_dir)
            in_range = [q for q in generated if q.difficulty in levels]
            return stored + (in_range or generated)

        if stored:
            warnings.append(f"Only {len(stored)} stored questions available")
            return stored

        raise AdaptiveTestingError("Unable to generate questions. Please try again later.")

    def create_test_from_journey(
        self,
        user_id: str,
        journey_id: str,
        title: str | None = None,
        question_count: int | None = None,
    ) -> TestCreationResult:
        """Create a test over the subjects linked by a journey's goals."""
        try:
            journey = load_journey(user_id, journey_id, self.data_dir)
        except JourneyNotFoundError as e:
            return TestCreationResult(success=False, test=None, message=str(e))

        subjects = journey_subjects(journey)
        if not subjects:
            return TestCreationResult(
                success=False,
                test=None,
                message=f"Journey {journey_id} has no linked subjects",
            )

        result = self.create_adaptive_test(
            user_id,
            CreateTestRequest(
                title=title or f"{journey.title} - Adaptive Assessment",
                description=f"Adaptive test for {journey.title} journey",
                subjects=subjects,
                track=journey.track,
                question_count=question_count,
                initial_difficulty=infer_journey_difficulty(journey),
                linked_journey_id=journey.journey_id,
            ),
        )
        if result.test is not None:
            result.test.created_from = "journey"
            save_test(result.test, self.data_dir)
        return result

    def create_test_from_recommendation(
        self,
        user_id: str,
        recommendation: TestRecommendation,
    ) -> TestCreationResult:
        result = self.create_adaptive_test(
            user_id,
            CreateTestRequest(
                title=recommendation.title,
                description=recommendation.description,
                subjects=recommendation.subjects,
                topics=recommendation.topics,
                track=recommendation.track,
                question_count=recommendation.question_count,
                difficulty_range=recommendation.difficulty_range,
                initial_difficulty=recommendation.difficulty,
                algorithm_type=recommendation.algorithm_type,
                linked_journey_id=recommendation.linked_journey_id,
            ),
        )
        if result.test is not None:
            result.test.created_from = "recommendation"
            save_test(result.test, self.data_dir)
        return result

    def create_retake(self, user_id: str, test_id: str) -> TestCreationResult:
        """Create a fresh test with the same configuration as an earlier one."""
        original = self.get_test(user_id, test_id)
        result = self.create_adaptive_test(
            user_id,
            CreateTestRequest(
                title=f"{original.title} (Retake)",
                description=original.description,
                subjects=original.subjects,
                topics=original.topics,
                track=original.track,
                question_count=original.total_questions,
                difficulty_range=original.difficulty_range,
                initial_difficulty=original.initial_difficulty,
                algorithm_type=original.algorithm_type,
                linked_journey_id=original.linked_journey_id,
            ),
        )
        if result.test is not None:
            result.test.created_from = "retake"
            save_test(result.test, self.data_dir)
        return result

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_test(self, user_id: str, test_id: str) -> AdaptiveTest:
        """Load a test owned by the user.

        Raises:
            AdaptiveTestNotFoundError: If no such test exists
            UnauthorizedTestAccessError: If the test belongs to someone else
        """
        test = load_test(user_id, test_id, self.data_dir)
        if test is None:
            test = find_test(test_id, self.data_dir)
        if test is None:
            raise AdaptiveTestNotFoundError(f"Test not found: {test_id}")
        if test.user_id != user_id:
            raise UnauthorizedTestAccessError(f"Unauthorized access to test {test_id}")
        return test

    def get_user_tests(self, user_id: str, status: str | None = None) -> list[AdaptiveTest]:
        return list_tests(user_id, status=status, data_dir=self.data_dir)

    def get_session(self, user_id: str, session_id: str) -> TestSession:
        with self._lock:
            session = self._active_sessions.get(session_id)
        if session is None:
            session = load_session(user_id, session_id, self.data_dir)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        if session.user_id != user_id:
            raise UnauthorizedTestAccessError(f"Invalid session {session_id}")
        return session

    def _register(self, session: TestSession) -> None:
        with self._lock:
            self._active_sessions[session.session_id] = session

    def _unregister(self, session_id: str) -> None:
        with self._lock:
            self._active_sessions.pop(session_id, None)

    def get_current_question(self, user_id: str, session_id: str) -> AdaptiveQuestion | None:
        """Question the session is waiting on (None once completed)."""
        session = self.get_session(user_id, session_id)
        if session.next_question_id is None:
            return None
        return self.get_test(user_id, session.test_id).question_by_id(session.next_question_id)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def start_test_session(self, user_id: str, test_id: str) -> TestSession:
        """Open a session on a test and pick its first question.

        On a partly answered test the session carries on from the stored
        responses: ability, standard error and fatigue are recomputed and the
        next question comes from the unanswered pool. When nothing is left
        to ask the test is completed instead.

        Raises:
            AdaptiveTestNotFoundError: If the test does not exist
            UnauthorizedTestAccessError: If the test belongs to someone else
            AdaptiveTestingError: If the test is already completed
        """
        test = self.get_test(user_id, test_id)
        if test.status == "completed":
            raise AdaptiveTestingError(f"Test {test_id} is already completed")

        session = TestSession(
            session_id=generate_id("sess"),
            test_id=test.test_id,
            user_id=user_id,
            current_question_index=len(test.responses),
            time_remaining_ms=test.total_questions * MINUTES_PER_QUESTION * 60 * 1000,
        )

        if test.responses:
            ability = estimate_ability(test.responses, test.questions)
            session.current_ability = ability
            session.current_standard_error = standard_error(ability, test.responses, test.questions)
            session.questions_answered = len(test.responses)
            session.fatigue_indicators = [
                float(r.response_time_ms) for r in test.responses[-FATIGUE_WINDOW:]
            ]
            session.average_response_time_ms = sum(session.fatigue_indicators) / len(
                session.fatigue_indicators
            )
            upcoming = self._select_next(test, session, ability)
            if upcoming is None:
                self._complete_test(test, session, ability)
                save_test(test, self.data_dir)
                save_session(session, self.data_dir)
                logger.info("test_completed_on_restart", test_id=test_id)
                return session
        else:
            upcoming = select_first_question(test)
        session.next_question_id = upcoming.question_id if upcoming else None

        if test.status != "active":
            test.status = "active"
            save_test(test, self.data_dir)

        save_session(session, self.data_dir)
        self._register(session)

        logger.info("test_session_started", session_id=session.session_id, test_id=test_id)
        return session

    def submit_response(
        self,
        user_id: str,
        session_id: str,
        question_id: str,
        answer: str | list[str],
        response_time_ms: int,
        confidence: int | None = None,
    ) -> SubmitResult:
        """Score an answer, update the ability estimate and pick what comes next.

        Raises:
            SessionNotFoundError: If the session does not exist
            AdaptiveTestingError: If the session is not accepting answers or
                the question is unknown or already answered
        """
        session = self.get_session(user_id, session_id)
        if session.status == "completed":
            raise AdaptiveTestingError(f"Session {session_id} is already completed")
        if session.is_paused:
            raise AdaptiveTestingError(f"Session {session_id} is paused")

        test = self.get_test(user_id, session.test_id)
        question = test.question_by_id(question_id)
        if question is None:
            raise AdaptiveTestingError(f"Question not found: {question_id}")
        if question_id in test.answered_ids:
            raise AdaptiveTestingError(f"Question already answered: {question_id}")

        is_correct = evaluate_answer(question, answer)
        response = TestResponse(
            question_id=question_id,
            user_answer=answer,
            is_correct=is_correct,
            response_time_ms=response_time_ms,
            question_difficulty=question.difficulty,
            subject=question.subject,
            topic=question.topic,
            estimated_ability=session.current_ability,
            confidence=confidence,
        )
        test.responses.append(response)

        ability = estimate_ability(test.responses, test.questions)
        error = standard_error(ability, test.responses, test.questions)
        response.information_gained = abs(ability - session.current_ability)

        session.current_ability = ability
        session.current_standard_error = error
        session.questions_answered += 1
        session.current_question_index += 1
        session.fatigue_indicators = (session.fatigue_indicators + [float(response_time_ms)])[
            -FATIGUE_WINDOW:
        ]
        session.average_response_time_ms = sum(session.fatigue_indicators) / len(
            session.fatigue_indicators
        )
        test.current_question = len(test.responses)

        next_question = None
        if should_continue_testing(
            test.responses,
            test.questions,
            ability,
            test.total_questions,
            target_standard_error=test.convergence_threshold,
            min_questions=self.config.min_questions,
            stability_threshold=self.config.stability_threshold,
        ):
            next_question = self._select_next(test, session, ability)

        performance = None
        if next_question is None:
            performance = self._complete_test(test, session, ability)
        session.next_question_id = next_question.question_id if next_question else None

        save_test(test, self.data_dir)
        save_session(session, self.data_dir)

        logger.info(
            "response_submitted",
            session_id=session_id,
            question_id=question_id,
            correct=is_correct,
            ability=round(ability, 3),
            completed=performance is not None,
        )

        return SubmitResult(
            is_correct=is_correct,
            correct_answer=question.correct_answers or question.correct_answer,
            explanation=question.explanation,
            test_completed=performance is not None,
            next_question=next_question,
            performance=performance,
            ability_estimate=ability,
            standard_error=error,
        )

    def _select_next(
        self,
        test: AdaptiveTest,
        session: TestSession,
        ability: float,
    ) -> AdaptiveQuestion | None:
        answered = test.answered_ids
        available = [q for q in test.questions if q.question_id not in answered]

        if test.algorithm_type == "CAT":
            return select_next_question(available, ability, test.responses)
        if test.algorithm_type == "PROGRESSIVE":
            return progressive_difficulty_selection(available, ability, test.responses)
        if test.algorithm_type == "CONFIDENCE":
            return confidence_based_selection(available, ability, test.responses)

        if test.linked_journey_id:
            try:
                journey = load_journey(test.user_id, test.linked_journey_id, self.data_dir)
            except JourneyNotFoundError:
                logger.warning("linked_journey_missing", journey_id=test.linked_journey_id)
            else:
                return journey_focused_selection(
                    available, ability, journey_subjects(journey), test.responses
                )

        return fatigue_aware_selection(
            available, ability, test.responses, session.fatigue_indicators
        )

    def _complete_test(
        self,
        test: AdaptiveTest,
        session: TestSession,
        ability: float,
    ) -> TestPerformance:
        performance = calculate_test_performance(test.responses, test.questions)
        metrics = generate_adaptive_metrics(
            test.responses, test.questions, ability, test.algorithm_type
        )

        test.status = "completed"
        test.completed_at = now_iso()
        test.performance = performance.to_dict()
        test.adaptive_metrics = metrics.to_dict()
        session.status = "completed"
        self._unregister(session.session_id)

        try:
            update_progress_from_adaptive_test(test, self.data_dir)
            update_mission_difficulty_from_test(test.user_id, test.performance, self.data_dir)
        except sqlite3.Error as e:
            logger.warning("progress_update_failed", test_id=test.test_id, error=str(e))

        if test.linked_journey_id:
            try:
                journey = load_journey(test.user_id, test.linked_journey_id, self.data_dir)
            except JourneyNotFoundError:
                logger.warning("linked_journey_missing", journey_id=test.linked_journey_id)
            else:
                apply_goal_progress(journey, test.subjects, metrics.journey_goal_update)
                save_journey(journey, self.data_dir)

        logger.info(
            "adaptive_test_completed",
            test_id=test.test_id,
            accuracy=round(performance.accuracy, 1),
            ability=round(ability, 3),
        )
        return performance

    def pause_test_session(self, user_id: str, session_id: str, reason: str = "user") -> TestSession:
        session = self.get_session(user_id, session_id)
        if session.status == "completed":
            raise AdaptiveTestingError(f"Session {session_id} is already completed")

        session.is_paused = True
        session.status = "paused"
        session.pause_reasons.append(reason)
        save_session(session, self.data_dir)

        test = self.get_test(user_id, session.test_id)
        test.status = "paused"
        save_test(test, self.data_dir)

        logger.info("test_session_paused", session_id=session_id, reason=reason)
        return session

    def resume_test_session(self, user_id: str, session_id: str) -> TestSession:
        session = self.get_session(user_id, session_id)
        if session.status == "completed":
            raise AdaptiveTestingError(f"Session {session_id} is already completed")

        session.is_paused = False
        session.status = "active"
        save_session(session, self.data_dir)
        self._register(session)

        test = self.get_test(user_id, session.test_id)
        test.status = "active"
        save_test(test, self.data_dir)

        logger.info("test_session_resumed", session_id=session_id)
        return session

    def recover_active_session(self, user_id: str, test_id: str) -> TestSession | None:
        """Reload the latest unfinished session of a test into memory."""
        session = find_session_for_test(user_id, test_id, data_dir=self.data_dir)
        if session is not None:
            self._register(session)
            logger.info("test_session_recovered", session_id=session.session_id)
        return session


# Global instance for the web app and CLI
_service: AdaptiveTestingService | None = None


def get_adaptive_testing_service() -> AdaptiveTestingService:
    global _service
    if _service is None:
        _service = AdaptiveTestingService()
    return _service


def reset_adaptive_testing_service() -> None:
    """Drop the global service (tests use this after changing data dirs)."""
    global _service
    _service = None
