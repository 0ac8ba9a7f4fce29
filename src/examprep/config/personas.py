"""Learner persona configuration and study-time goals.

Personas are coarse learner archetypes (student, working professional,
freelancer) used to default daily study-time goals and mission pacing.
Profile overrides are loaded from data/config/personas_v1.yaml.

Usage:
    from examprep.config.personas import LearnerPersona, calculate_realistic_study_goal

    persona = LearnerPersona(type="student")
    minutes = calculate_realistic_study_goal(persona)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

import structlog
import yaml

from examprep.config.app_config import get_data_dir

logger = structlog.get_logger(__name__)

# Config file path (relative to the data directory)
PERSONAS_FILE = "config/personas_v1.yaml"

PersonaType = Literal["student", "working_professional", "freelancer"]

WEEKEND_DAYS = ("saturday", "sunday")


@dataclass
class WorkSchedule:
    """Working hours of a learner with a job."""

    start: str = "09:00"
    end: str = "18:00"
    working_days: list[str] = field(
        default_factory=lambda: ["monday", "tuesday", "wednesday", "thursday", "friday"]
    )
    commute_minutes: int = 60
    lunch_break_minutes: int = 60
    flexibility: Literal["rigid", "flexible", "very_flexible"] = "flexible"

    @property
    def works_weekends(self) -> bool:
        return any(day in self.working_days for day in WEEKEND_DAYS)


@dataclass
class LearnerPersona:
    """A learner archetype, optionally with a work schedule."""

    type: str
    work_schedule: WorkSchedule | None = None


@dataclass
class PersonaProfile:
    """Study-time bounds and mission pacing for a persona type."""

    id: str
    name: str
    study_goal_minutes: int
    min_goal_minutes: int
    max_goal_minutes: int
    tips: list[str] = field(default_factory=list)
    time_slots: list[str] = field(default_factory=list)
    preferred_mission_minutes: int = 25
    max_mission_minutes: int = 45
    break_intervals: list[int] = field(default_factory=list)
    explanation_level: str = "detailed"
    feedback_frequency: str = "end_of_mission"
    challenge_preference: str = "steady"


@dataclass
class StudyTimeRecommendation:
    """Recommended daily study time for a learner."""

    recommended_goal: int
    min_goal: int
    max_goal: int
    tips: list[str]
    time_slots: list[str]


# Module-level cache
_cached_profiles: dict[str, PersonaProfile] | None = None


def _get_default_profiles() -> dict[str, PersonaProfile]:
    """Get default persona profiles when config file is missing."""
    return {
        "student": PersonaProfile(
            id="student",
            name="Full-time student",
            study_goal_minutes=480,
            min_goal_minutes=240,
            max_goal_minutes=720,
            tips=[
                "Take regular breaks to maintain focus",
                "Use deep work blocks for complex topics",
                "Schedule lighter topics during low-energy periods",
            ],
            time_slots=["Morning (6-12)", "Afternoon (2-6)", "Evening (7-11)"],
            preferred_mission_minutes=30,
            max_mission_minutes=60,
            break_intervals=[15, 30],
            explanation_level="detailed",
            feedback_frequency="step_by_step",
            challenge_preference="increasing",
        ),
        "working_professional": PersonaProfile(
            id="working_professional",
            name="Working professional",
            study_goal_minutes=120,
            min_goal_minutes=60,
            max_goal_minutes=300,
            tips=[
                "Utilize commute time for audio learning",
                "Use lunch breaks for quick reviews",
                "Focus on high-impact topics during limited time",
                "Dedicate weekends for intensive study sessions",
            ],
            time_slots=["Early Morning", "Evening After Work"],
            preferred_mission_minutes=20,
            max_mission_minutes=30,
            break_intervals=[10, 20],
            explanation_level="brief",
            feedback_frequency="end_of_mission",
            challenge_preference="steady",
        ),
        "freelancer": PersonaProfile(
            id="freelancer",
            name="Freelancer",
            study_goal_minutes=360,
            min_goal_minutes=120,
            max_goal_minutes=600,
            tips=[
                "Block time slots like client work",
                "Use project gaps for study sessions",
                "Maintain consistent daily study routine",
                "Track time to ensure progress",
            ],
            time_slots=["Early Morning", "Mid-day Break", "Evening Wind-down"],
            preferred_mission_minutes=25,
            max_mission_minutes=45,
            break_intervals=[15, 25],
            explanation_level="comprehensive",
            feedback_frequency="immediate",
            challenge_preference="variable",
        ),
    }


# Used for persona types that have no profile
FALLBACK_PROFILE = PersonaProfile(
    id="default",
    name="Learner",
    study_goal_minutes=240,
    min_goal_minutes=60,
    max_goal_minutes=480,
    tips=["Start with small, consistent goals", "Build study habits gradually"],
    time_slots=["Morning", "Evening"],
)


def load_personas(force_reload: bool = False) -> dict[str, PersonaProfile]:
    """Load persona profiles, overlaying the YAML file on the defaults.

    Args:
        force_reload: If True, ignore cache and reload from file.

    Returns:
        Dictionary mapping persona type to PersonaProfile.
    """
    global _cached_profiles

    if _cached_profiles is not None and not force_reload:
        return _cached_profiles

    profiles = _get_default_profiles()
    personas_path = get_data_dir() / PERSONAS_FILE

    if not personas_path.exists():
        logger.debug("personas_file_not_found", path=str(personas_path))
        _cached_profiles = profiles
        return _cached_profiles

    try:
        data = yaml.safe_load(personas_path.read_text(encoding="utf-8")) or {}
        for pid, pdata in data.get("personas", {}).items():
            base = profiles.get(pid, FALLBACK_PROFILE)
            profiles[pid] = PersonaProfile(
                id=pid,
                name=pdata.get("name", base.name),
                study_goal_minutes=pdata.get("study_goal_minutes", base.study_goal_minutes),
                min_goal_minutes=pdata.get("min_goal_minutes", base.min_goal_minutes),
                max_goal_minutes=pdata.get("max_goal_minutes", base.max_goal_minutes),
                tips=pdata.get("tips", base.tips),
                time_slots=pdata.get("time_slots", base.time_slots),
                preferred_mission_minutes=pdata.get(
                    "preferred_mission_minutes", base.preferred_mission_minutes
                ),
                max_mission_minutes=pdata.get("max_mission_minutes", base.max_mission_minutes),
                break_intervals=pdata.get("break_intervals", base.break_intervals),
                explanation_level=pdata.get("explanation_level", base.explanation_level),
                feedback_frequency=pdata.get("feedback_frequency", base.feedback_frequency),
                challenge_preference=pdata.get("challenge_preference", base.challenge_preference),
            )
        logger.debug("loaded_personas", count=len(profiles))
    except (yaml.YAMLError, AttributeError) as e:
        logger.error("failed_to_load_personas", error=str(e))
        profiles = _get_default_profiles()

    _cached_profiles = profiles
    return _cached_profiles


def get_persona_profile(persona_type: str) -> PersonaProfile:
    """Get the profile for a persona type (fallback profile if unknown)."""
    return load_personas().get(persona_type, FALLBACK_PROFILE)


def list_personas() -> list[PersonaProfile]:
    """List all available persona profiles."""
    return list(load_personas().values())


def clear_personas_cache() -> None:
    """Clear the personas cache."""
    global _cached_profiles
    _cached_profiles = None


# =============================================================================
# STUDY-TIME GOALS
# =============================================================================


def _parse_hour(time_string: str) -> int:
    """Parse "HH:MM" into the hour (0-23)."""
    return int(time_string.split(":")[0])


def _weekday_availability(schedule: WorkSchedule) -> int:
    """Minutes available to study on a working day.

    Early morning (from 6:00) plus evening (until 23:00), minus commute and
    a 30 minute transition buffer. Never less than one hour.
    """
    morning = max(0, _parse_hour(schedule.start) - 6) * 60
    evening = max(0, 23 - _parse_hour(schedule.end)) * 60
    total = morning + evening - schedule.commute_minutes - 30
    return max(60, total)


def _weekend_availability(schedule: WorkSchedule) -> int:
    """Minutes available to study on a weekend day."""
    rigid = schedule.flexibility == "rigid"
    if schedule.works_weekends:
        return 240 if rigid else 360
    return 360 if rigid else 480


def calculate_realistic_study_goal(persona: LearnerPersona) -> int:
    """Daily study goal in minutes for a persona.

    Working professionals with a schedule get the weekly average of their
    weekday and weekend availability; everyone else gets the profile default.
    """
    if persona.type == "working_professional" and persona.work_schedule is not None:
        weekday = _weekday_availability(persona.work_schedule)
        weekend = _weekend_availability(persona.work_schedule)
        return (weekday * 5 + weekend * 2) // 7

    return get_persona_profile(persona.type).study_goal_minutes


def _working_professional_time_slots(schedule: WorkSchedule | None) -> list[str]:
    """Suggested study slots around a work schedule."""
    if schedule is None:
        return ["Early Morning", "Evening After Work"]

    slots: list[str] = []
    work_start = _parse_hour(schedule.start)
    work_end = _parse_hour(schedule.end)

    if work_start > 7:
        slots.append(f"Early Morning (6:00-{schedule.start})")
    if schedule.lunch_break_minutes >= 30:
        slots.append("Lunch Break (Quick Review)")
    if work_end < 22:
        slots.append(f"Evening ({work_end + 1:02d}:00-23:00)")
    if not schedule.works_weekends:
        slots.append("Weekend Intensive Sessions")

    return slots or ["Evening After Work", "Weekends"]


def get_study_time_recommendations(persona: LearnerPersona) -> StudyTimeRecommendation:
    """Recommended, minimum and maximum daily study time with tips."""
    profile = get_persona_profile(persona.type)

    if persona.type == "working_professional":
        time_slots = _working_professional_time_slots(persona.work_schedule)
    else:
        time_slots = list(profile.time_slots)

    return StudyTimeRecommendation(
        recommended_goal=calculate_realistic_study_goal(persona),
        min_goal=profile.min_goal_minutes,
        max_goal=profile.max_goal_minutes,
        tips=list(profile.tips),
        time_slots=time_slots,
    )


def validate_study_goal(goal: int, persona: LearnerPersona) -> int:
    """Clamp a proposed daily goal into the persona's realistic bounds."""
    recommendations = get_study_time_recommendations(persona)
    if goal < recommendations.min_goal:
        return recommendations.min_goal
    if goal > recommendations.max_goal:
        return recommendations.max_goal
    return goal


# =============================================================================
# MISSION PACING
# =============================================================================


@dataclass
class MissionOptimizations:
    """How missions are paced and explained for a persona."""

    preferred_duration: int
    max_duration: int
    break_intervals: list[int]
    explanation_level: str
    feedback_frequency: str
    challenge_preference: str


def get_mission_optimizations(persona_type: str) -> MissionOptimizations:
    """Mission pacing preferences for a persona type."""
    profile = get_persona_profile(persona_type)
    return MissionOptimizations(
        preferred_duration=profile.preferred_mission_minutes,
        max_duration=profile.max_mission_minutes,
        break_intervals=list(profile.break_intervals),
        explanation_level=profile.explanation_level,
        feedback_frequency=profile.feedback_frequency,
        challenge_preference=profile.challenge_preference,
    )
