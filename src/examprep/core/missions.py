"""Gamified study missions.

Responsibilities:
- Mission templates (built-in set, overridable from YAML)
- Template selection by track, frequency, persona and difficulty
- Mission generation with frequency-based deadlines and persona pacing
- Progress updates and completion scoring with template weights
- Difficulty adjustment from adaptive test results

Storage:
- data/config/mission_templates_v1.yaml (optional overrides)
- data/users/{user_id}/missions/{mission_id}.json (mission_v1 schema)
"""

from __future__ import annotations

import json
import statistics
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Literal

import structlog
import yaml

from examprep.config.app_config import get_data_dir
from examprep.config.personas import get_mission_optimizations
from examprep.core.question_bank import DIFFICULTY_LEVELS, difficulty_index
from examprep.core.test_repository import now_iso
from examprep.db.progress_repository import get_user_profile, set_mission_difficulty
from examprep.utils.validators import generate_id

logger = structlog.get_logger(__name__)

TEMPLATES_FILE = "config/mission_templates_v1.yaml"

Frequency = Literal["daily", "weekly", "monthly"]
MissionStatus = Literal["not_started", "in_progress", "completed"]

DEADLINE_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}

# Adjustment beyond which the mission difficulty moves one level
LEVEL_SHIFT_THRESHOLD = 0.15

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class ScoringRules:
    """How a mission's submissions turn into a score."""

    max_score: int = 100
    min_completion_score: int = 60
    method: str = "percentage"
    weights: dict[str, float] = field(default_factory=lambda: {"accuracy": 1.0})
    early_completion_bonus: int = 0
    perfect_score_bonus: int = 0


@dataclass
class MissionTemplate:
    """Blueprint for missions of one track and frequency."""

    template_id: str
    track: str
    frequency: str
    name: str
    description: str
    estimated_minutes: int
    total_steps: int
    supported_difficulties: list[str] = field(default_factory=lambda: list(DIFFICULTY_LEVELS))
    supported_personas: list[str] = field(
        default_factory=lambda: ["student", "working_professional", "freelancer"]
    )
    subject_areas: list[str] = field(default_factory=list)
    content_type: str = "mock_questions"
    scoring: ScoringRules = field(default_factory=ScoringRules)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MissionSubmission:
    """One completed step of a mission."""

    step: int
    is_correct: bool = False
    time_spent_seconds: float = 0.0
    subject: str = ""
    score: float | None = None

    @property
    def step_score(self) -> float:
        """Score of this step on a 0-100 scale."""
        if self.score is not None:
            return max(0.0, min(100.0, self.score))
        return 100.0 if self.is_correct else 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MissionSubmission:
        return cls(
            step=int(data.get("step", 0)),
            is_correct=bool(data.get("is_correct", False)),
            time_spent_seconds=float(data.get("time_spent_seconds", 0.0)),
            subject=data.get("subject", ""),
            score=data.get("score"),
        )


@dataclass
class MissionProgress:
    completion_percentage: float = 0.0
    current_step: int = 0
    total_steps: int = 1
    time_spent_minutes: float = 0.0
    submissions: list[MissionSubmission] = field(default_factory=list)


@dataclass
class MissionResults:
    """Scored outcome of a completed mission."""

    final_score: float
    max_score: int
    percentage: float
    passed: bool
    total_minutes: float
    metrics: dict[str, float]
    breakdown: list[dict[str, Any]]
    strengths: list[str] = field(default_factory=list)
    improvements: list[str] = field(default_factory=list)
    achievements: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Mission:
    """A mission instance assigned to a user."""

    mission_id: str
    user_id: str
    template_id: str
    track: str
    frequency: str
    title: str
    description: str
    difficulty: str
    estimated_minutes: int
    deadline: str
    persona: str
    persona_optimizations: dict[str, Any] = field(default_factory=dict)
    subjects: list[str] = field(default_factory=list)
    status: MissionStatus = "not_started"
    progress: MissionProgress = field(default_factory=MissionProgress)
    results: MissionResults | None = None
    scheduled_at: str = field(default_factory=now_iso)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["$schema"] = "mission_v1"
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Mission:
        progress_data = data.get("progress") or {}
        progress = MissionProgress(
            completion_percentage=progress_data.get("completion_percentage", 0.0),
            current_step=progress_data.get("current_step", 0),
            total_steps=progress_data.get("total_steps", 1),
            time_spent_minutes=progress_data.get("time_spent_minutes", 0.0),
            submissions=[MissionSubmission.from_dict(s) for s in progress_data.get("submissions", [])],
        )
        results = MissionResults(**data["results"]) if data.get("results") else None
        return cls(
            mission_id=data["mission_id"],
            user_id=data["user_id"],
            template_id=data["template_id"],
            track=data["track"],
            frequency=data["frequency"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            difficulty=data.get("difficulty", "intermediate"),
            estimated_minutes=data.get("estimated_minutes", 30),
            deadline=data["deadline"],
            persona=data.get("persona", "student"),
            persona_optimizations=data.get("persona_optimizations", {}),
            subjects=list(data.get("subjects", [])),
            status=data.get("status", "not_started"),
            progress=progress,
            results=results,
            scheduled_at=data.get("scheduled_at", ""),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class MissionGenerationResult:
    """Result of mission generation."""

    success: bool
    mission: Mission | None
    message: str
    template_used: str = ""
    warnings: list[str] = field(default_factory=list)


class MissionError(Exception):
    """Error in mission templates, generation or progress."""

    pass


class MissionNotFoundError(MissionError):
    """Raised when a mission does not exist for the user."""

    pass


# =============================================================================
# TEMPLATES
# =============================================================================

# Module-level cache
_cached_templates: list[MissionTemplate] | None = None


def _get_default_templates() -> list[MissionTemplate]:
    """Built-in templates when no override file exists."""
    return [
        MissionTemplate(
            template_id="exam_daily_mock_questions",
            track="exam",
            frequency="daily",
            name="Daily Mock Questions",
            description="Quick daily practice with 10-15 questions from recent exam patterns",
            estimated_minutes=15,
            total_steps=12,
            supported_difficulties=["beginner", "intermediate", "advanced"],
            subject_areas=["general_studies", "mathematics", "reasoning", "english"],
            content_type="mock_questions",
            scoring=ScoringRules(
                min_completion_score=40,
                weights={"accuracy": 0.7, "speed": 0.3},
                early_completion_bonus=5,
                perfect_score_bonus=10,
            ),
        ),
        MissionTemplate(
            template_id="exam_weekly_revision_cycle",
            track="exam",
            frequency="weekly",
            name="Weekly Revision Cycle",
            description="Structured revision of the week's topics with spaced practice",
            estimated_minutes=60,
            total_steps=25,
            supported_difficulties=["intermediate", "advanced"],
            subject_areas=["all"],
            content_type="revision_cycle",
            scoring=ScoringRules(
                min_completion_score=50,
                weights={"accuracy": 0.6, "speed": 0.2, "efficiency": 0.2},
                perfect_score_bonus=15,
            ),
        ),
        MissionTemplate(
            template_id="exam_monthly_full_test",
            track="exam",
            frequency="monthly",
            name="Monthly Full Test",
            description="Full-length mock exam under real conditions",
            estimated_minutes=120,
            total_steps=100,
            supported_difficulties=["intermediate", "advanced", "expert"],
            subject_areas=["all"],
            content_type="full_test",
            scoring=ScoringRules(
                min_completion_score=60,
                weights={"accuracy": 0.8, "speed": 0.2},
                perfect_score_bonus=20,
            ),
        ),
        MissionTemplate(
            template_id="tech_daily_coding_challenge",
            track="course_tech",
            frequency="daily",
            name="Daily Coding Challenge",
            description="One algorithmic problem solved end to end",
            estimated_minutes=20,
            total_steps=1,
            supported_difficulties=["beginner", "intermediate", "advanced"],
            subject_areas=["algorithms", "data_structures", "programming"],
            content_type="coding_challenge",
            scoring=ScoringRules(
                method="rubric",
                min_completion_score=60,
                weights={"accuracy": 0.4, "efficiency": 0.3, "quality": 0.3},
                early_completion_bonus=10,
            ),
        ),
        MissionTemplate(
            template_id="tech_weekly_assignment",
            track="course_tech",
            frequency="weekly",
            name="Weekly Assignment",
            description="Build a small feature with code, documentation and tests",
            estimated_minutes=90,
            total_steps=3,
            supported_difficulties=["intermediate", "advanced"],
            subject_areas=["web_development", "system_design", "databases"],
            content_type="assignment",
            scoring=ScoringRules(
                method="rubric",
                min_completion_score=70,
                weights={"accuracy": 0.3, "quality": 0.4, "creativity": 0.3},
            ),
        ),
        MissionTemplate(
            template_id="tech_monthly_project",
            track="course_tech",
            frequency="monthly",
            name="Monthly Project",
            description="Design, build, test and deploy a complete project",
            estimated_minutes=240,
            total_steps=4,
            supported_difficulties=["advanced", "expert"],
            supported_personas=["working_professional", "freelancer"],
            subject_areas=["full_stack", "system_architecture", "deployment"],
            content_type="project",
            scoring=ScoringRules(
                method="rubric",
                min_completion_score=75,
                weights={"accuracy": 0.25, "quality": 0.35, "creativity": 0.25, "efficiency": 0.15},
            ),
        ),
    ]


def _parse_template(data: dict[str, Any]) -> MissionTemplate:
    scoring = ScoringRules(**data.get("scoring", {}))
    fields = {k: v for k, v in data.items() if k != "scoring"}
    return MissionTemplate(scoring=scoring, **fields)


def load_mission_templates(force_reload: bool = False) -> list[MissionTemplate]:
    """Built-in templates merged with data/config/mission_templates_v1.yaml.

    Entries in the file replace built-in templates with the same
    template_id; new IDs are appended.
    """
    global _cached_templates

    if _cached_templates is not None and not force_reload:
        return _cached_templates

    templates = {t.template_id: t for t in _get_default_templates()}
    templates_path = get_data_dir() / TEMPLATES_FILE

    if templates_path.exists():
        try:
            data = yaml.safe_load(templates_path.read_text(encoding="utf-8")) or {}
            for item in data.get("templates", []):
                template = _parse_template(item)
                templates[template.template_id] = template
            logger.debug("mission_templates_loaded", source=str(templates_path))
        except (yaml.YAMLError, TypeError, AttributeError) as e:
            logger.error("failed_to_load_mission_templates", error=str(e))

    _cached_templates = list(templates.values())
    return _cached_templates


def clear_mission_templates_cache() -> None:
    """Clear the templates cache."""
    global _cached_templates
    _cached_templates = None


def select_best_template(
    templates: list[MissionTemplate],
    track: str,
    frequency: str,
    persona: str | None = None,
    difficulty: str | None = None,
) -> MissionTemplate:
    """Pick the template for a track and frequency.

    Prefers templates supporting both the persona and the difficulty, then
    the difficulty alone, then any template of the track and frequency.

    Raises:
        MissionError: If no template matches the track and frequency
    """
    matching = [t for t in templates if t.track == track and t.frequency == frequency]
    if not matching:
        raise MissionError(f"No templates found for {track} {frequency} missions")

    def supports_difficulty(t: MissionTemplate) -> bool:
        return difficulty is None or difficulty in t.supported_difficulties

    def supports_persona(t: MissionTemplate) -> bool:
        return persona is None or persona in t.supported_personas

    for candidate in matching:
        if supports_difficulty(candidate) and supports_persona(candidate):
            return candidate
    for candidate in matching:
        if supports_difficulty(candidate):
            return candidate
    return matching[0]


# =============================================================================
# PERSISTENCE
# =============================================================================


def _missions_dir(user_id: str, data_dir: Path | None) -> Path:
    return (data_dir or get_data_dir()) / "users" / user_id / "missions"


def save_mission(mission: Mission, data_dir: Path | None = None) -> Path:
    mission.updated_at = now_iso()
    path = _missions_dir(mission.user_id, data_dir) / f"{mission.mission_id}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(mission.to_dict(), f, indent=2, ensure_ascii=False)
    return path


def load_mission(user_id: str, mission_id: str, data_dir: Path | None = None) -> Mission:
    """Load a mission.

    Raises:
        MissionNotFoundError: If the mission does not exist
    """
    path = _missions_dir(user_id, data_dir) / f"{mission_id}.json"
    if not path.exists():
        raise MissionNotFoundError(f"Mission not found: {mission_id}")
    with open(path, encoding="utf-8") as f:
        return Mission.from_dict(json.load(f))


def list_missions(
    user_id: str,
    status: str | None = None,
    data_dir: Path | None = None,
) -> list[Mission]:
    """A user's missions, newest first."""
    missions_dir = _missions_dir(user_id, data_dir)
    if not missions_dir.exists():
        return []

    missions = []
    for path in missions_dir.glob("*.json"):
        with open(path, encoding="utf-8") as f:
            mission = Mission.from_dict(json.load(f))
        if status is None or mission.status == status:
            missions.append(mission)
    return sorted(missions, key=lambda m: m.created_at, reverse=True)


# =============================================================================
# GENERATION
# =============================================================================


def calculate_deadline(
    frequency: str,
    start: datetime | None = None,
    custom_deadline: datetime | None = None,
) -> datetime:
    """Deadline 1, 7 or 30 days out for daily, weekly or monthly missions."""
    if custom_deadline is not None:
        return custom_deadline
    start = start or datetime.now(timezone.utc)
    return start + timedelta(days=DEADLINE_DAYS.get(frequency, 1))


def _profile_defaults(
    user_id: str,
    persona: str | None,
    difficulty: str | None,
    data_dir: Path | None,
) -> tuple[str, str]:
    """Persona and difficulty, falling back to the stored profile."""
    if persona and difficulty:
        return persona, difficulty
    profile = get_user_profile(user_id, data_dir)
    stored_persona = profile.persona if profile else "student"
    stored_difficulty = profile.mission_difficulty if profile else None
    return persona or stored_persona, difficulty or stored_difficulty or "intermediate"


def generate_mission(
    user_id: str,
    track: str,
    frequency: str,
    difficulty: str | None = None,
    persona: str | None = None,
    subjects: list[str] | None = None,
    duration_override: int | None = None,
    deadline: datetime | None = None,
    data_dir: Path | None = None,
) -> MissionGenerationResult:
    """Create a mission from the best matching template and persist it.

    Args:
        user_id: Mission owner
        track: Learning track ("exam", "course_tech")
        frequency: "daily", "weekly" or "monthly"
        difficulty: Requested difficulty (profile preference, else "intermediate")
        persona: Persona type (read from the user profile if None)
        subjects: Subjects to focus on (template subject areas if None)
        duration_override: Minutes, replacing the template estimate
        deadline: Custom deadline, replacing the frequency-based one
        data_dir: Base data directory
    """
    persona_type, level = _profile_defaults(user_id, persona, difficulty, data_dir)

    try:
        template = select_best_template(
            load_mission_templates(), track, frequency, persona_type, level
        )
    except MissionError as e:
        logger.warning("mission_template_not_found", track=track, frequency=frequency)
        return MissionGenerationResult(success=False, mission=None, message=str(e))

    warnings = []
    if level not in template.supported_difficulties:
        warnings.append(f"Template {template.template_id} does not list difficulty {level}")

    optimizations = get_mission_optimizations(persona_type)
    mission = Mission(
        mission_id=generate_id("mission"),
        user_id=user_id,
        template_id=template.template_id,
        track=template.track,
        frequency=template.frequency,
        title=template.name,
        description=template.description,
        difficulty=level,
        estimated_minutes=duration_override or template.estimated_minutes,
        deadline=calculate_deadline(template.frequency, custom_deadline=deadline).isoformat(),
        persona=persona_type,
        persona_optimizations=asdict(optimizations),
        subjects=list(subjects) if subjects else list(template.subject_areas),
        progress=MissionProgress(total_steps=max(1, template.total_steps)),
    )
    save_mission(mission, data_dir)

    logger.info(
        "mission_generated",
        mission_id=mission.mission_id,
        template_id=template.template_id,
        persona=persona_type,
    )
    return MissionGenerationResult(
        success=True,
        mission=mission,
        message=f"Mission created from {template.name}",
        template_used=template.template_id,
        warnings=warnings,
    )


# =============================================================================
# PROGRESS AND COMPLETION
# =============================================================================


def update_mission_progress(
    user_id: str,
    mission_id: str,
    submissions: list[MissionSubmission],
    data_dir: Path | None = None,
) -> MissionProgress:
    """Record submitted steps and recompute completion.

    Raises:
        MissionNotFoundError: If the mission does not exist
        MissionError: If the mission is already completed
    """
    mission = load_mission(user_id, mission_id, data_dir)
    if mission.status == "completed":
        raise MissionError(f"Mission {mission_id} is already completed")

    progress = mission.progress
    progress.submissions.extend(submissions)
    progress.current_step = min(len(progress.submissions), progress.total_steps)
    progress.completion_percentage = progress.current_step / progress.total_steps * 100
    progress.time_spent_minutes = sum(s.time_spent_seconds for s in progress.submissions) / 60
    mission.status = "in_progress"

    save_mission(mission, data_dir)
    logger.debug("mission_progress_updated", mission_id=mission_id, step=progress.current_step)
    return progress


def _metric_label(name: str) -> str:
    return name.replace("_", " ").capitalize()


def calculate_mission_results(
    mission: Mission,
    template: MissionTemplate,
) -> MissionResults:
    """Score a mission's submissions with the template's weights.

    Metrics (0-100): accuracy is the mean step score, speed compares the
    estimated time with the time spent, efficiency is accuracy scaled by
    completion, consistency falls with the spread of step scores. Rubric
    metrics (quality, creativity) use the mean submitted score.
    """
    submissions = mission.progress.submissions
    rules = template.scoring
    if not submissions:
        return MissionResults(
            final_score=0.0,
            max_score=rules.max_score,
            percentage=0.0,
            passed=False,
            total_minutes=0.0,
            metrics={name: 0.0 for name in rules.weights},
            breakdown=[],
            improvements=["Submit at least one step before completing the mission"],
        )

    scores = [s.step_score for s in submissions]
    accuracy = statistics.fmean(scores)
    total_seconds = sum(s.time_spent_seconds for s in submissions)
    expected_seconds = mission.estimated_minutes * 60
    speed = 100.0 if total_seconds <= 0 else min(100.0, expected_seconds / total_seconds * 100)
    completion = min(1.0, len(submissions) / mission.progress.total_steps)

    metrics = {
        "accuracy": accuracy,
        "speed": speed,
        "efficiency": accuracy * completion,
        "consistency": max(0.0, 100.0 - statistics.pstdev(scores)),
        "quality": accuracy,
        "creativity": accuracy,
    }

    weighted = sum(metrics.get(name, 0.0) * weight for name, weight in rules.weights.items())
    final_score = weighted / 100 * rules.max_score

    achievements = []
    if accuracy >= 100:
        final_score += rules.perfect_score_bonus
        achievements.append("Perfect Score")
    if 0 < total_seconds < expected_seconds:
        final_score += rules.early_completion_bonus
        achievements.append("Early Finisher")
    if speed >= 90:
        achievements.append("Speed Demon")
    final_score = min(final_score, float(rules.max_score))

    percentage = final_score / rules.max_score * 100
    used = {name: round(metrics[name], 2) for name in rules.weights if name in metrics}
    strengths = [_metric_label(n) for n, v in used.items() if v >= 80]
    improvements = [_metric_label(n) for n, v in used.items() if v < 60]

    by_subject: dict[str, list[MissionSubmission]] = {}
    for submission in submissions:
        by_subject.setdefault(submission.subject or "General", []).append(submission)
    breakdown = [
        {
            "subject": subject,
            "score": round(statistics.fmean(s.step_score for s in items), 2),
            "max_score": 100,
            "time_spent_minutes": round(sum(s.time_spent_seconds for s in items) / 60, 2),
        }
        for subject, items in by_subject.items()
    ]

    return MissionResults(
        final_score=round(final_score, 2),
        max_score=rules.max_score,
        percentage=round(percentage, 2),
        passed=percentage >= rules.min_completion_score,
        total_minutes=round(total_seconds / 60, 2),
        metrics=used,
        breakdown=breakdown,
        strengths=strengths,
        improvements=improvements,
        achievements=achievements,
        recommendations=[f"Work on {name.lower()} in the next mission" for name in improvements],
    )


def complete_mission(
    user_id: str,
    mission_id: str,
    final_submissions: list[MissionSubmission] | None = None,
    data_dir: Path | None = None,
) -> MissionResults:
    """Record final submissions, score the mission and mark it completed.

    Raises:
        MissionNotFoundError: If the mission does not exist
        MissionError: If the mission is already completed or its template is gone
    """
    mission = load_mission(user_id, mission_id, data_dir)
    if mission.status == "completed":
        raise MissionError(f"Mission {mission_id} is already completed")

    templates = {t.template_id: t for t in load_mission_templates()}
    template = templates.get(mission.template_id)
    if template is None:
        raise MissionError(f"Template not found: {mission.template_id}")

    if final_submissions:
        mission.progress.submissions.extend(final_submissions)
    mission.progress.current_step = min(len(mission.progress.submissions), mission.progress.total_steps)
    mission.progress.completion_percentage = (
        mission.progress.current_step / mission.progress.total_steps * 100
    )

    results = calculate_mission_results(mission, template)
    mission.progress.time_spent_minutes = results.total_minutes
    mission.results = results
    mission.status = "completed"
    save_mission(mission, data_dir)

    logger.info(
        "mission_completed",
        mission_id=mission_id,
        percentage=results.percentage,
        passed=results.passed,
    )
    return results


# =============================================================================
# DIFFICULTY ADJUSTMENT
# =============================================================================


def difficulty_adjustment_from_performance(performance: dict[str, Any]) -> float:
    """Signed adjustment (-0.2..0.2) derived from an adaptive test performance.

    A confident estimate (1 - standard error > 0.8) far from the middle
    moves by 0.2; otherwise high or low accuracy moves by 0.1.
    """
    ability = performance.get("final_ability_estimate", 0.0)
    confidence = 1.0 - performance.get("standard_error", 1.0)
    accuracy = performance.get("accuracy", 0.0)

    if ability > 0.5 and confidence > 0.8:
        return 0.2
    if ability < -0.5 and confidence > 0.8:
        return -0.2
    if accuracy > 85:
        return 0.1
    if accuracy < 60:
        return -0.1
    return 0.0


def adjust_mission_difficulty(current: str, adjustment: float) -> str:
    """Move one difficulty level when |adjustment| exceeds 0.15."""
    index = difficulty_index(current)
    if adjustment > LEVEL_SHIFT_THRESHOLD:
        index = min(len(DIFFICULTY_LEVELS) - 1, index + 1)
    elif adjustment < -LEVEL_SHIFT_THRESHOLD:
        index = max(0, index - 1)
    return DIFFICULTY_LEVELS[index]


def update_mission_difficulty_from_test(
    user_id: str,
    performance: dict[str, Any],
    data_dir: Path | None = None,
) -> str:
    """Move the user's preferred mission difficulty after an adaptive test.

    Returns:
        The stored difficulty level
    """
    profile = get_user_profile(user_id, data_dir)
    current = (profile.mission_difficulty if profile else None) or "intermediate"
    adjustment = difficulty_adjustment_from_performance(performance)
    level = adjust_mission_difficulty(current, adjustment)
    set_mission_difficulty(user_id, level, data_dir)

    logger.info(
        "mission_difficulty_updated",
        user_id=user_id,
        previous=current,
        difficulty=level,
        adjustment=adjustment,
    )
    return level
