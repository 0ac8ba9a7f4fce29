"""Learning journeys module.

A journey is a user-defined learning goal set (e.g. "Pass the CPA exam by
June") split into goals linked to subjects. Adaptive tests linked to a
journey focus on its subjects and move its goals forward.

Storage (JSON):
- data/users/{user_id}/journeys/{journey_id}.json (journey_v1 schema)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import structlog

from examprep.config.app_config import get_data_dir
from examprep.core.test_repository import now_iso
from examprep.utils.validators import generate_id

logger = structlog.get_logger(__name__)

JourneyStatus = Literal["planning", "active", "paused", "completed"]

MILESTONES = (25, 50, 75, 100)

# Share of a goal's target one fully successful test contributes
GOAL_STEP = 0.1

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class JourneyGoal:
    """One measurable goal inside a journey."""

    goal_id: str
    title: str
    linked_subjects: list[str] = field(default_factory=list)
    target_value: float = 100.0
    current_value: float = 0.0

    @property
    def completion(self) -> float:
        """Completion percentage (0-100)."""
        if self.target_value <= 0:
            return 100.0
        return min(100.0, self.current_value / self.target_value * 100.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal_id": self.goal_id,
            "title": self.title,
            "linked_subjects": self.linked_subjects,
            "target_value": self.target_value,
            "current_value": self.current_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JourneyGoal:
        return cls(
            goal_id=data.get("goal_id") or generate_id("goal"),
            title=data.get("title", ""),
            linked_subjects=list(data.get("linked_subjects", [])),
            target_value=float(data.get("target_value", 100.0)),
            current_value=float(data.get("current_value", 0.0)),
        )


@dataclass
class Journey:
    """A user's learning journey."""

    journey_id: str
    user_id: str
    title: str
    description: str = ""
    track: str = "exam"
    priority: str = "medium"
    status: JourneyStatus = "planning"
    goals: list[JourneyGoal] = field(default_factory=list)
    target_completion_date: str | None = None
    milestones: list[int] = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    @property
    def overall_completion(self) -> float:
        """Average completion of all goals (0-100)."""
        if not self.goals:
            return 0.0
        return sum(g.completion for g in self.goals) / len(self.goals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "$schema": "journey_v1",
            "journey_id": self.journey_id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "track": self.track,
            "priority": self.priority,
            "status": self.status,
            "goals": [g.to_dict() for g in self.goals],
            "target_completion_date": self.target_completion_date,
            "overall_completion": round(self.overall_completion, 2),
            "milestones": self.milestones,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Journey:
        return cls(
            journey_id=data["journey_id"],
            user_id=data["user_id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            track=data.get("track", "exam"),
            priority=data.get("priority", "medium"),
            status=data.get("status", "planning"),
            goals=[JourneyGoal.from_dict(g) for g in data.get("goals", [])],
            target_completion_date=data.get("target_completion_date"),
            milestones=list(data.get("milestones", [])),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


class JourneyNotFoundError(Exception):
    """Raised when a journey does not exist for the user."""

    def __init__(self, user_id: str, journey_id: str):
        self.user_id = user_id
        self.journey_id = journey_id
        super().__init__(f"Journey not found: {journey_id}")


# =============================================================================
# PERSISTENCE
# =============================================================================


def _journeys_dir(user_id: str, data_dir: Path | None) -> Path:
    return (data_dir or get_data_dir()) / "users" / user_id / "journeys"


def save_journey(journey: Journey, data_dir: Path | None = None) -> Path:
    """Write a journey document, refreshing updated_at."""
    journey.updated_at = now_iso()
    path = _journeys_dir(journey.user_id, data_dir) / f"{journey.journey_id}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(journey.to_dict(), f, indent=2, ensure_ascii=False)
    return path


def load_journey(user_id: str, journey_id: str, data_dir: Path | None = None) -> Journey:
    """Load a journey.

    Raises:
        JourneyNotFoundError: If the journey file does not exist or is unreadable
    """
    path = _journeys_dir(user_id, data_dir) / f"{journey_id}.json"
    if not path.exists():
        raise JourneyNotFoundError(user_id, journey_id)

    try:
        with open(path, encoding="utf-8") as f:
            return Journey.from_dict(json.load(f))
    except (json.JSONDecodeError, OSError, KeyError) as e:
        logger.error("journey_unreadable", journey_id=journey_id, error=str(e))
        raise JourneyNotFoundError(user_id, journey_id) from e


def list_journeys(
    user_id: str,
    status: str | None = None,
    data_dir: Path | None = None,
) -> list[Journey]:
    """All journeys of a user, optionally filtered by status."""
    journeys_dir = _journeys_dir(user_id, data_dir)
    if not journeys_dir.exists():
        return []

    journeys = []
    for path in sorted(journeys_dir.glob("*.json")):
        try:
            with open(path, encoding="utf-8") as f:
                journey = Journey.from_dict(json.load(f))
        except (json.JSONDecodeError, OSError, KeyError):
            logger.warning("journey_skipped", path=str(path))
            continue
        if status is None or journey.status == status:
            journeys.append(journey)
    return journeys


def create_journey(
    user_id: str,
    title: str,
    goals: list[dict[str, Any]],
    description: str = "",
    track: str = "exam",
    priority: str = "medium",
    target_completion_date: str | None = None,
    data_dir: Path | None = None,
) -> Journey:
    """Create and persist a new journey in planning status."""
    journey = Journey(
        journey_id=generate_id("journey"),
        user_id=user_id,
        title=title,
        description=description,
        track=track,
        priority=priority,
        goals=[JourneyGoal.from_dict(g) for g in goals],
        target_completion_date=target_completion_date,
    )
    save_journey(journey, data_dir)
    logger.info("journey_created", journey_id=journey.journey_id, goals=len(journey.goals))
    return journey


def update_journey_status(
    user_id: str,
    journey_id: str,
    status: JourneyStatus,
    data_dir: Path | None = None,
) -> Journey:
    journey = load_journey(user_id, journey_id, data_dir)
    journey.status = status
    save_journey(journey, data_dir)
    return journey


# =============================================================================
# DERIVED VALUES
# =============================================================================


def journey_subjects(journey: Journey) -> list[str]:
    """Unique subjects linked by the journey's goals, in goal order."""
    subjects: list[str] = []
    for goal in journey.goals:
        for subject in goal.linked_subjects:
            if subject not in subjects:
                subjects.append(subject)
    return subjects


def infer_journey_difficulty(journey: Journey) -> str:
    """Test difficulty that matches how far the journey has progressed."""
    completion = journey.overall_completion
    if completion < 25:
        return "beginner"
    if completion < 50:
        return "intermediate"
    if completion < 75:
        return "advanced"
    return "expert"


def apply_goal_progress(
    journey: Journey,
    tested_subjects: list[str],
    goal_update: float,
) -> list[int]:
    """Advance goals linked to the tested subjects.

    Each linked goal gains goal_update (0-1) times 10% of its target.
    Goals without linked subjects advance on every test.

    Returns:
        Milestones (25/50/75/100) newly reached by the journey
    """
    tested = {s.casefold() for s in tested_subjects}
    step = max(0.0, min(1.0, goal_update)) * GOAL_STEP

    for goal in journey.goals:
        linked = {s.casefold() for s in goal.linked_subjects}
        if linked and not linked & tested:
            continue
        goal.current_value = min(goal.target_value, goal.current_value + goal.target_value * step)

    if journey.status == "planning":
        journey.status = "active"

    completion = journey.overall_completion
    reached = [m for m in MILESTONES if completion >= m and m not in journey.milestones]
    journey.milestones.extend(reached)
    if completion >= 100:
        journey.status = "completed"

    if reached:
        logger.info("journey_milestones_reached", journey_id=journey.journey_id, milestones=reached)
    return reached
