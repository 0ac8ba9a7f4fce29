"""Topic progress tracking.

Per user, track and subject running averages stored in SQLite, fed by
completed adaptive tests and read by the recommendation engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from examprep.core.test_repository import AdaptiveTest, now_iso
from examprep.db.progress_repository import (
    TopicProgressRecord,
    get_topic_progress,
    record_subject_result,
)

logger = structlog.get_logger(__name__)

DEFAULT_TRACK = "general"


@dataclass
class SubjectProgress:
    subject: str
    average_score: float
    attempts: int
    questions_answered: int
    correct_answers: int
    last_ability: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "average_score": round(self.average_score, 2),
            "attempts": self.attempts,
            "questions_answered": self.questions_answered,
            "correct_answers": self.correct_answers,
            "last_ability": self.last_ability,
        }


@dataclass
class TrackProgress:
    track: str
    average_score: float
    subjects: list[SubjectProgress] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "track": self.track,
            "average_score": round(self.average_score, 2),
            "subjects": [s.to_dict() for s in self.subjects],
        }


@dataclass
class ProgressSummary:
    """Overall and per-track progress of one user."""

    user_id: str
    overall_average: float
    tracks: list[TrackProgress] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return bool(self.tracks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "overall_average": round(self.overall_average, 2),
            "tracks": [t.to_dict() for t in self.tracks],
        }


def record_topic_result(
    user_id: str,
    subject: str,
    questions_answered: int,
    correct_answers: int,
    track: str = DEFAULT_TRACK,
    ability: float | None = None,
    data_dir: Path | None = None,
) -> TopicProgressRecord:
    """Record a scored attempt at a subject (score = accuracy %)."""
    score = correct_answers / questions_answered * 100 if questions_answered else 0.0
    return record_subject_result(
        user_id=user_id,
        track=track,
        subject=subject,
        questions_answered=questions_answered,
        correct_answers=correct_answers,
        score=score,
        ability=ability,
        tested_at=now_iso(),
        data_dir=data_dir,
    )


def get_user_progress(user_id: str, data_dir: Path | None = None) -> ProgressSummary:
    """Aggregate stored topic progress into per-track averages."""
    records = get_topic_progress(user_id, data_dir=data_dir)

    by_track: dict[str, list[TopicProgressRecord]] = {}
    for record in records:
        by_track.setdefault(record.track, []).append(record)

    tracks = []
    for track, rows in by_track.items():
        subjects = [
            SubjectProgress(
                subject=r.subject,
                average_score=r.average_score,
                attempts=r.attempts,
                questions_answered=r.questions_answered,
                correct_answers=r.correct_answers,
                last_ability=r.last_ability,
            )
            for r in rows
        ]
        average = sum(s.average_score for s in subjects) / len(subjects)
        tracks.append(TrackProgress(track=track, average_score=average, subjects=subjects))

    overall = sum(t.average_score for t in tracks) / len(tracks) if tracks else 0.0
    return ProgressSummary(user_id=user_id, overall_average=overall, tracks=tracks)


def update_progress_from_adaptive_test(
    test: AdaptiveTest,
    data_dir: Path | None = None,
) -> list[TopicProgressRecord]:
    """Record each subject of a completed test into topic progress.

    Uses the subject breakdown of the test's performance.
    """
    if not test.performance:
        return []

    ability = test.performance.get("final_ability_estimate")
    track = test.track or DEFAULT_TRACK
    records = []
    for subject, stats in test.performance.get("subject_performance", {}).items():
        records.append(
            record_topic_result(
                user_id=test.user_id,
                subject=subject,
                questions_answered=stats["total"],
                correct_answers=stats["correct"],
                track=track,
                ability=ability,
                data_dir=data_dir,
            )
        )

    logger.info("progress_updated_from_test", test_id=test.test_id, subjects=len(records))
    return records
