"""Persona and study-goal endpoints."""

from fastapi import APIRouter, HTTPException, status

from examprep.config.personas import (
    LearnerPersona,
    PersonaProfile,
    WorkSchedule,
    get_study_time_recommendations,
    list_personas,
    load_personas,
    validate_study_goal,
)
from examprep.web.schemas import (
    PersonaListResponse,
    PersonaResponse,
    StudyGoalRequest,
    StudyGoalResponse,
)

router = APIRouter(prefix="/api/personas", tags=["personas"])
study_goal_router = APIRouter(prefix="/api/study-goal", tags=["personas"])


def _persona_to_response(profile: PersonaProfile) -> PersonaResponse:
    return PersonaResponse.model_validate(profile)


@router.get("", response_model=PersonaListResponse)
async def list_all_personas() -> PersonaListResponse:
    """List all learner personas."""
    responses = [_persona_to_response(p) for p in list_personas()]
    return PersonaListResponse(personas=responses, count=len(responses))


@router.get("/{persona_id}", response_model=PersonaResponse)
async def get_persona_by_id(persona_id: str) -> PersonaResponse:
    profile = load_personas().get(persona_id)

    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Persona '{persona_id}' not found",
        )

    return _persona_to_response(profile)


@study_goal_router.post("", response_model=StudyGoalResponse)
async def recommend_study_goal(request: StudyGoalRequest) -> StudyGoalResponse:
    """Realistic daily study time for a persona, validating a proposed goal."""
    schedule = WorkSchedule(**request.work_schedule.model_dump()) if request.work_schedule else None
    persona = LearnerPersona(type=request.persona, work_schedule=schedule)
    recommendation = get_study_time_recommendations(persona)

    validated = None
    if request.goal_minutes is not None:
        validated = validate_study_goal(request.goal_minutes, persona)

    return StudyGoalResponse(
        recommended_goal=recommendation.recommended_goal,
        min_goal=recommendation.min_goal,
        max_goal=recommendation.max_goal,
        validated_goal=validated,
        tips=recommendation.tips,
        time_slots=recommendation.time_slots,
    )
