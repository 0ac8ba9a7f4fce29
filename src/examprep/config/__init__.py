"""Configuration package for the exam strategy engine."""

from examprep.config.app_config import (
    AdaptiveConfig,
    AppConfig,
    LLMSettings,
    ProviderConfig,
    RecommendationConfig,
    get_data_dir,
    get_provider_config,
    load_app_config,
)
from examprep.config.personas import (
    LearnerPersona,
    MissionOptimizations,
    PersonaProfile,
    WorkSchedule,
    calculate_realistic_study_goal,
    get_mission_optimizations,
    get_persona_profile,
    get_study_time_recommendations,
    list_personas,
    load_personas,
    validate_study_goal,
)

__all__ = [
    "AdaptiveConfig",
    "AppConfig",
    "LLMSettings",
    "ProviderConfig",
    "RecommendationConfig",
    "get_data_dir",
    "get_provider_config",
    "load_app_config",
    "LearnerPersona",
    "MissionOptimizations",
    "PersonaProfile",
    "WorkSchedule",
    "calculate_realistic_study_goal",
    "get_mission_optimizations",
    "get_persona_profile",
    "get_study_time_recommendations",
    "list_personas",
    "load_personas",
    "validate_study_goal",
]
