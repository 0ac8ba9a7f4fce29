"""Route handlers for the Web API."""

from examprep.web.routes.health import router as health_router
from examprep.web.routes.missions import router as missions_router
from examprep.web.routes.personas import router as personas_router
from examprep.web.routes.personas import study_goal_router
from examprep.web.routes.recommendations import router as recommendations_router
from examprep.web.routes.sessions import router as sessions_router
from examprep.web.routes.tests import router as tests_router

__all__ = [
    "health_router",
    "missions_router",
    "personas_router",
    "recommendations_router",
    "sessions_router",
    "study_goal_router",
    "tests_router",
]
