"""Adaptive test session endpoints."""

from fastapi import APIRouter, HTTPException, status

from examprep.core.adaptive_testing import (
    AdaptiveTestingError,
    AdaptiveTestingService,
    get_adaptive_testing_service,
)
from examprep.core.test_repository import TestSession
from examprep.web.errors import http_error
from examprep.web.routes.tests import question_to_response
from examprep.web.schemas import (
    AnswerRequest,
    AnswerResponse,
    PauseRequest,
    SessionResponse,
    SessionStartRequest,
)

router = APIRouter(prefix="/api/users/{user_id}/sessions", tags=["sessions"])


def _session_to_response(
    service: AdaptiveTestingService,
    user_id: str,
    session: TestSession,
) -> SessionResponse:
    question = service.get_current_question(user_id, session.session_id)
    return SessionResponse(
        session_id=session.session_id,
        test_id=session.test_id,
        status=session.status,
        is_paused=session.is_paused,
        questions_answered=session.questions_answered,
        current_ability=session.current_ability,
        current_standard_error=session.current_standard_error,
        current_question=question_to_response(question) if question else None,
    )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_session(user_id: str, request: SessionStartRequest) -> SessionResponse:
    """Start a session on one of the user's tests."""
    service = get_adaptive_testing_service()
    try:
        session = service.start_test_session(user_id, request.test_id)
        return _session_to_response(service, user_id, session)
    except AdaptiveTestingError as e:
        raise http_error(e) from e


@router.post("/recover", response_model=SessionResponse)
async def recover_session(user_id: str, request: SessionStartRequest) -> SessionResponse:
    """Reattach to the unfinished session of a test."""
    service = get_adaptive_testing_service()
    session = service.recover_active_session(user_id, request.test_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No unfinished session for test '{request.test_id}'",
        )
    try:
        return _session_to_response(service, user_id, session)
    except AdaptiveTestingError as e:
        raise http_error(e) from e


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(user_id: str, session_id: str) -> SessionResponse:
    service = get_adaptive_testing_service()
    try:
        session = service.get_session(user_id, session_id)
        return _session_to_response(service, user_id, session)
    except AdaptiveTestingError as e:
        raise http_error(e) from e


@router.post("/{session_id}/answers", response_model=AnswerResponse)
async def submit_answer(user_id: str, session_id: str, request: AnswerRequest) -> AnswerResponse:
    """Score an answer and return the next question or final performance."""
    service = get_adaptive_testing_service()
    try:
        result = service.submit_response(
            user_id,
            session_id,
            request.question_id,
            request.answer,
            request.response_time_ms,
            confidence=request.confidence,
        )
    except AdaptiveTestingError as e:
        raise http_error(e) from e

    return AnswerResponse(
        is_correct=result.is_correct,
        correct_answer=result.correct_answer,
        explanation=result.explanation,
        test_completed=result.test_completed,
        ability_estimate=result.ability_estimate,
        standard_error=result.standard_error,
        next_question=question_to_response(result.next_question) if result.next_question else None,
        performance=result.performance.to_dict() if result.performance else None,
    )


@router.post("/{session_id}/pause", response_model=SessionResponse)
async def pause_session(user_id: str, session_id: str, request: PauseRequest) -> SessionResponse:
    service = get_adaptive_testing_service()
    try:
        session = service.pause_test_session(user_id, session_id, reason=request.reason)
        return _session_to_response(service, user_id, session)
    except AdaptiveTestingError as e:
        raise http_error(e) from e


@router.post("/{session_id}/resume", response_model=SessionResponse)
async def resume_session(user_id: str, session_id: str) -> SessionResponse:
    service = get_adaptive_testing_service()
    try:
        session = service.resume_test_session(user_id, session_id)
        return _session_to_response(service, user_id, session)
    except AdaptiveTestingError as e:
        raise http_error(e) from e
