"""Test recommendation endpoints."""

from fastapi import APIRouter, Query, status

from examprep.core.adaptive_testing import get_adaptive_testing_service
from examprep.core.recommendation_engine import (
    RecommendationEngine,
    RecommendationError,
    TestRecommendation,
)
from examprep.web.errors import http_error
from examprep.web.routes.tests import created_response
from examprep.web.schemas import (
    AcceptRecommendationRequest,
    RecommendationListResponse,
    TestCreatedResponse,
)

router = APIRouter(prefix="/api/users/{user_id}/recommendations", tags=["recommendations"])


@router.get("", response_model=RecommendationListResponse)
async def list_recommendations(
    user_id: str,
    preset: str | None = Query(default=None, description="weak_area, journey or quick"),
    max_recommendations: int = Query(default=5, ge=1, le=20),
) -> RecommendationListResponse:
    """Ranked test recommendations for the user."""
    engine = RecommendationEngine()
    try:
        if preset == "quick":
            recommendations = engine.generate_quick_assessment_recommendations(
                user_id, max_recommendations
            )
        else:
            recommendations = engine.generate_recommendations(
                user_id, max_recommendations, preset=preset
            )
    except RecommendationError as e:
        raise http_error(e) from e

    return RecommendationListResponse(
        recommendations=[r.to_dict() for r in recommendations],
        count=len(recommendations),
    )


@router.post("/accept", response_model=TestCreatedResponse, status_code=status.HTTP_201_CREATED)
async def accept_recommendation(
    user_id: str,
    request: AcceptRecommendationRequest,
) -> TestCreatedResponse:
    """Turn a recommendation into an adaptive test."""
    try:
        recommendation = TestRecommendation.from_dict(request.recommendation)
    except (KeyError, TypeError, ValueError) as e:
        raise http_error(ValueError(f"Invalid recommendation: {e}")) from e

    service = get_adaptive_testing_service()
    return created_response(service.create_test_from_recommendation(user_id, recommendation))
