"""Adaptive test endpoints."""

from fastapi import APIRouter, status

from examprep.core.adaptive_testing import (
    AdaptiveTestingError,
    CreateTestRequest,
    TestCreationResult,
    get_adaptive_testing_service,
)
from examprep.core.question_bank import AdaptiveQuestion
from examprep.core.test_repository import AdaptiveTest
from examprep.web.errors import http_error
from examprep.web.schemas import (
    CreateTestBody,
    QuestionResponse,
    TestCreatedResponse,
    TestDetailResponse,
    TestListResponse,
    TestSummaryResponse,
)

router = APIRouter(prefix="/api/users/{user_id}/tests", tags=["tests"])


def question_to_response(question: AdaptiveQuestion) -> QuestionResponse:
    """Learner-facing view of a question (answer key stripped)."""
    return QuestionResponse(
        question_id=question.question_id,
        question=question.question,
        subject=question.subject,
        difficulty=question.difficulty,
        type=question.type,
        options=question.options,
        topics=question.topics,
        time_limit_seconds=question.time_limit_seconds,
    )


def _accuracy(test: AdaptiveTest) -> float | None:
    if test.performance:
        return test.performance.get("accuracy")
    return None


def _test_to_summary(test: AdaptiveTest) -> TestSummaryResponse:
    return TestSummaryResponse(
        test_id=test.test_id,
        title=test.title,
        subjects=test.subjects,
        status=test.status,
        total_questions=test.total_questions,
        answered=len(test.responses),
        accuracy=_accuracy(test),
        created_at=test.created_at,
        completed_at=test.completed_at,
    )


def _test_to_detail(test: AdaptiveTest) -> TestDetailResponse:
    return TestDetailResponse(
        **_test_to_summary(test).model_dump(),
        description=test.description,
        track=test.track,
        difficulty_range=test.difficulty_range,
        algorithm_type=test.algorithm_type,
        linked_journey_id=test.linked_journey_id,
        performance=test.performance,
        adaptive_metrics=test.adaptive_metrics,
    )


def created_response(result: TestCreationResult) -> TestCreatedResponse:
    """Response for a creation result; 400 when creation failed."""
    if not result.success or result.test is None:
        raise http_error(AdaptiveTestingError(result.message))
    return TestCreatedResponse(
        test=_test_to_detail(result.test),
        message=result.message,
        warnings=result.warnings,
    )


@router.post("", response_model=TestCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_test(user_id: str, body: CreateTestBody) -> TestCreatedResponse:
    """Create an adaptive test and build its question pool."""
    service = get_adaptive_testing_service()
    result = service.create_adaptive_test(
        user_id,
        CreateTestRequest(
            title=body.title,
            subjects=body.subjects,
            description=body.description,
            topics=body.topics,
            track=body.track,
            question_count=body.question_count,
            difficulty_range=body.difficulty_range,
            initial_difficulty=body.initial_difficulty,
            linked_journey_id=body.linked_journey_id,
            exam_context=body.exam_context,
        ),
    )
    return created_response(result)


@router.post(
    "/from-journey/{journey_id}",
    response_model=TestCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_test_from_journey(user_id: str, journey_id: str) -> TestCreatedResponse:
    """Create a test over the subjects of one of the user's journeys."""
    service = get_adaptive_testing_service()
    return created_response(service.create_test_from_journey(user_id, journey_id))


@router.get("", response_model=TestListResponse)
async def list_tests(user_id: str, status: str | None = None) -> TestListResponse:
    """List the user's tests, newest first."""
    tests = get_adaptive_testing_service().get_user_tests(user_id, status=status)
    return TestListResponse(tests=[_test_to_summary(t) for t in tests], count=len(tests))


@router.get("/{test_id}", response_model=TestDetailResponse)
async def get_test(user_id: str, test_id: str) -> TestDetailResponse:
    try:
        test = get_adaptive_testing_service().get_test(user_id, test_id)
    except AdaptiveTestingError as e:
        raise http_error(e) from e
    return _test_to_detail(test)


@router.post(
    "/{test_id}/retake",
    response_model=TestCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def retake_test(user_id: str, test_id: str) -> TestCreatedResponse:
    """Create a new test with the same configuration."""
    try:
        result = get_adaptive_testing_service().create_retake(user_id, test_id)
    except AdaptiveTestingError as e:
        raise http_error(e) from e
    return created_response(result)
