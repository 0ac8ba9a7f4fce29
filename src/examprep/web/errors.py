"""Map core exceptions onto HTTP errors."""

from fastapi import HTTPException, status

from examprep.core.adaptive_testing import (
    AdaptiveTestNotFoundError,
    SessionNotFoundError,
    UnauthorizedTestAccessError,
)
from examprep.core.journeys import JourneyNotFoundError
from examprep.core.missions import MissionNotFoundError


def http_error(exc: Exception) -> HTTPException:
    """404 for missing resources, 403 for foreign tests, 400 otherwise."""
    if isinstance(
        exc,
        (AdaptiveTestNotFoundError, SessionNotFoundError, JourneyNotFoundError, MissionNotFoundError),
    ):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, UnauthorizedTestAccessError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
