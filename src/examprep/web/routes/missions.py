"""Mission endpoints."""

from fastapi import APIRouter, status

from examprep.core.missions import (
    MissionError,
    MissionSubmission,
    complete_mission,
    generate_mission,
    list_missions,
    load_mission,
    update_mission_progress,
)
from examprep.web.errors import http_error
from examprep.web.schemas import (
    MissionCreateRequest,
    MissionListResponse,
    MissionProgressRequest,
    MissionResponse,
)

router = APIRouter(prefix="/api/users/{user_id}/missions", tags=["missions"])


def _submissions(request: MissionProgressRequest) -> list[MissionSubmission]:
    return [MissionSubmission(**s.model_dump()) for s in request.submissions]


@router.post("", response_model=MissionResponse, status_code=status.HTTP_201_CREATED)
async def create_mission(user_id: str, request: MissionCreateRequest) -> MissionResponse:
    """Generate a mission from the best matching template."""
    result = generate_mission(
        user_id,
        track=request.track,
        frequency=request.frequency,
        difficulty=request.difficulty,
        persona=request.persona,
        subjects=request.subjects or None,
        duration_override=request.duration_minutes,
    )
    if not result.success or result.mission is None:
        raise http_error(MissionError(result.message))
    return MissionResponse(
        mission=result.mission.to_dict(),
        message=result.message,
        warnings=result.warnings,
    )


@router.get("", response_model=MissionListResponse)
async def get_missions(user_id: str, status: str | None = None) -> MissionListResponse:
    missions = list_missions(user_id, status=status)
    return MissionListResponse(missions=[m.to_dict() for m in missions], count=len(missions))


@router.get("/{mission_id}", response_model=MissionResponse)
async def get_mission(user_id: str, mission_id: str) -> MissionResponse:
    try:
        mission = load_mission(user_id, mission_id)
    except MissionError as e:
        raise http_error(e) from e
    return MissionResponse(mission=mission.to_dict())


@router.post("/{mission_id}/progress", response_model=MissionResponse)
async def record_progress(
    user_id: str,
    mission_id: str,
    request: MissionProgressRequest,
) -> MissionResponse:
    """Append submitted steps to a mission."""
    try:
        update_mission_progress(user_id, mission_id, _submissions(request))
        mission = load_mission(user_id, mission_id)
    except MissionError as e:
        raise http_error(e) from e
    return MissionResponse(mission=mission.to_dict())


@router.post("/{mission_id}/complete", response_model=MissionResponse)
async def finish_mission(
    user_id: str,
    mission_id: str,
    request: MissionProgressRequest,
) -> MissionResponse:
    """Score and complete a mission (body may carry final submissions)."""
    try:
        results = complete_mission(user_id, mission_id, _submissions(request))
        mission = load_mission(user_id, mission_id)
    except MissionError as e:
        raise http_error(e) from e
    verdict = "passed" if results.passed else "not passed"
    return MissionResponse(
        mission=mission.to_dict(),
        message=f"Mission {verdict} with {results.percentage:.0f}%",
    )
