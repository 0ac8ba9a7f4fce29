"""Pydantic schemas for the Web API.

Request bodies and response models for tests, sessions, recommendations,
missions and personas.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# HEALTH
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    timestamp: str


# =============================================================================
# PERSONA SCHEMAS
# =============================================================================


class PersonaResponse(BaseModel):
    """Study-time bounds and mission pacing of a persona."""

    id: str
    name: str
    study_goal_minutes: int
    min_goal_minutes: int
    max_goal_minutes: int
    tips: list[str] = Field(default_factory=list)
    time_slots: list[str] = Field(default_factory=list)
    preferred_mission_minutes: int
    max_mission_minutes: int

    model_config = {"from_attributes": True}


class PersonaListResponse(BaseModel):
    personas: list[PersonaResponse]
    count: int


class WorkScheduleModel(BaseModel):
    start: str = "09:00"
    end: str = "18:00"
    working_days: list[str] = Field(
        default_factory=lambda: ["monday", "tuesday", "wednesday", "thursday", "friday"]
    )
    commute_minutes: int = Field(default=60, ge=0)
    lunch_break_minutes: int = Field(default=60, ge=0)
    flexibility: str = "flexible"


class StudyGoalRequest(BaseModel):
    """Persona, optional schedule and an optional goal to validate."""

    persona: str = "student"
    work_schedule: WorkScheduleModel | None = None
    goal_minutes: int | None = Field(default=None, ge=0)


class StudyGoalResponse(BaseModel):
    recommended_goal: int
    min_goal: int
    max_goal: int
    validated_goal: int | None = None
    tips: list[str]
    time_slots: list[str]


# =============================================================================
# TEST SCHEMAS
# =============================================================================


class QuestionResponse(BaseModel):
    """A question as shown to the learner (no answer key)."""

    question_id: str
    question: str
    subject: str
    difficulty: str
    type: str
    options: list[str]
    topics: list[str] = Field(default_factory=list)
    time_limit_seconds: int | None = None


class CreateTestBody(BaseModel):
    """Request body for creating an adaptive test."""

    title: str = Field(..., min_length=1, max_length=200)
    subjects: list[str] = Field(..., min_length=1)
    description: str = ""
    topics: list[str] = Field(default_factory=list)
    track: str | None = None
    question_count: int | None = Field(default=None, ge=1, le=100)
    difficulty_range: tuple[str, str] = ("beginner", "expert")
    initial_difficulty: str | None = None
    linked_journey_id: str | None = None
    exam_context: str = ""


class TestSummaryResponse(BaseModel):
    __test__ = False

    test_id: str
    title: str
    subjects: list[str]
    status: str
    total_questions: int
    answered: int
    accuracy: float | None = None
    created_at: str
    completed_at: str | None = None


class TestDetailResponse(TestSummaryResponse):
    description: str = ""
    track: str | None = None
    difficulty_range: tuple[str, str]
    algorithm_type: str
    linked_journey_id: str | None = None
    performance: dict[str, Any] | None = None
    adaptive_metrics: dict[str, Any] | None = None


class TestCreatedResponse(BaseModel):
    __test__ = False

    test: TestDetailResponse
    message: str
    warnings: list[str] = Field(default_factory=list)


class TestListResponse(BaseModel):
    __test__ = False

    tests: list[TestSummaryResponse]
    count: int


# =============================================================================
# SESSION SCHEMAS
# =============================================================================


class SessionStartRequest(BaseModel):
    test_id: str


class SessionResponse(BaseModel):
    """Session state and the question it is waiting on."""

    session_id: str
    test_id: str
    status: str
    is_paused: bool
    questions_answered: int
    current_ability: float
    current_standard_error: float
    current_question: QuestionResponse | None = None


class AnswerRequest(BaseModel):
    question_id: str
    answer: str | list[str]
    response_time_ms: int = Field(..., ge=0)
    confidence: int | None = Field(default=None, ge=1, le=5)


class AnswerResponse(BaseModel):
    is_correct: bool
    correct_answer: str | list[str]
    explanation: str
    test_completed: bool
    ability_estimate: float
    standard_error: float
    next_question: QuestionResponse | None = None
    performance: dict[str, Any] | None = None


class PauseRequest(BaseModel):
    reason: str = "user"


# =============================================================================
# RECOMMENDATION SCHEMAS
# =============================================================================


class RecommendationListResponse(BaseModel):
    recommendations: list[dict[str, Any]]
    count: int


class AcceptRecommendationRequest(BaseModel):
    """A recommendation (as returned by the list endpoint) to turn into a test."""

    recommendation: dict[str, Any]


# =============================================================================
# MISSION SCHEMAS
# =============================================================================


class MissionCreateRequest(BaseModel):
    track: str = "exam"
    frequency: str = Field(default="daily", pattern="^(daily|weekly|monthly)$")
    difficulty: str | None = None
    persona: str | None = None
    subjects: list[str] = Field(default_factory=list)
    duration_minutes: int | None = Field(default=None, ge=1)


class MissionSubmissionModel(BaseModel):
    step: int = Field(..., ge=0)
    is_correct: bool = False
    time_spent_seconds: float = Field(default=0.0, ge=0)
    subject: str = ""
    score: float | None = Field(default=None, ge=0, le=100)


class MissionProgressRequest(BaseModel):
    submissions: list[MissionSubmissionModel]


class MissionResponse(BaseModel):
    mission: dict[str, Any]
    message: str = ""
    warnings: list[str] = Field(default_factory=list)


class MissionListResponse(BaseModel):
    missions: list[dict[str, Any]]
    count: int
