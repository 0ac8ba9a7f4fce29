"""Repository functions for user_profile and topic_progress tables."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from examprep.db.database import get_db

logger = structlog.get_logger(__name__)


@dataclass
class UserProfileRecord:
    """User profile record from database."""

    user_id: str
    display_name: str | None
    persona: str
    study_goal_minutes: int | None
    selected_track: str | None
    created_at: str
    updated_at: str
    mission_difficulty: str | None = None


@dataclass
class TopicProgressRecord:
    """Topic progress record from database."""

    user_id: str
    track: str
    subject: str
    attempts: int
    questions_answered: int
    correct_answers: int
    average_score: float
    last_ability: float | None
    last_tested_at: str | None


def upsert_user_profile(
    user_id: str,
    persona: str = "student",
    display_name: str | None = None,
    study_goal_minutes: int | None = None,
    selected_track: str | None = None,
    data_dir: Path | None = None,
) -> None:
    """Insert a profile or overwrite the existing one.

    Args:
        user_id: User identifier
        persona: Persona type (student, working_professional, freelancer)
        display_name: Name shown in the CLI
        study_goal_minutes: Daily study goal
        selected_track: Exam track the user prepares for
        data_dir: Data directory holding the database (default if None)
    """
    with get_db(data_dir) as conn:
        conn.execute(
            """
            INSERT INTO user_profile (
                user_id, display_name, persona, study_goal_minutes, selected_track
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                display_name = excluded.display_name,
                persona = excluded.persona,
                study_goal_minutes = excluded.study_goal_minutes,
                selected_track = excluded.selected_track,
                updated_at = datetime('now')
            """,
            (user_id, display_name, persona, study_goal_minutes, selected_track),
        )

    logger.debug("user_profile.upserted", user_id=user_id, persona=persona)


def get_user_profile(user_id: str, data_dir: Path | None = None) -> UserProfileRecord | None:
    """Get a user profile by ID, or None if not found."""
    with get_db(data_dir) as conn:
        row = conn.execute(
            "SELECT * FROM user_profile WHERE user_id = ?", (user_id,)
        ).fetchone()

    if row is None:
        return None

    return UserProfileRecord(
        user_id=row["user_id"],
        display_name=row["display_name"],
        persona=row["persona"],
        study_goal_minutes=row["study_goal_minutes"],
        selected_track=row["selected_track"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        mission_difficulty=row["mission_difficulty"],
    )


def set_mission_difficulty(user_id: str, difficulty: str, data_dir: Path | None = None) -> None:
    """Store the preferred mission difficulty, creating a default profile if needed."""
    with get_db(data_dir) as conn:
        conn.execute(
            """
            INSERT INTO user_profile (user_id, mission_difficulty) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                mission_difficulty = excluded.mission_difficulty,
                updated_at = datetime('now')
            """,
            (user_id, difficulty),
        )

    logger.debug("user_profile.mission_difficulty_set", user_id=user_id, difficulty=difficulty)


def record_subject_result(
    user_id: str,
    track: str,
    subject: str,
    questions_answered: int,
    correct_answers: int,
    score: float,
    ability: float | None,
    tested_at: str,
    data_dir: Path | None = None,
) -> TopicProgressRecord:
    """Fold one test result for a subject into its running average.

    Returns:
        The updated record
    """
    with get_db(data_dir) as conn:
        row = conn.execute(
            "SELECT * FROM topic_progress WHERE user_id = ? AND track = ? AND subject = ?",
            (user_id, track, subject),
        ).fetchone()

        if row is None:
            attempts = 1
            average = score
            answered = questions_answered
            correct = correct_answers
        else:
            attempts = row["attempts"] + 1
            average = (row["average_score"] * row["attempts"] + score) / attempts
            answered = row["questions_answered"] + questions_answered
            correct = row["correct_answers"] + correct_answers

        conn.execute(
            """
            INSERT INTO topic_progress (
                user_id, track, subject, attempts, questions_answered,
                correct_answers, average_score, last_ability, last_tested_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, track, subject) DO UPDATE SET
                attempts = excluded.attempts,
                questions_answered = excluded.questions_answered,
                correct_answers = excluded.correct_answers,
                average_score = excluded.average_score,
                last_ability = excluded.last_ability,
                last_tested_at = excluded.last_tested_at
            """,
            (user_id, track, subject, attempts, answered, correct, average, ability, tested_at),
        )

    logger.debug("topic_progress.recorded", user_id=user_id, subject=subject, average=average)

    return TopicProgressRecord(
        user_id=user_id,
        track=track,
        subject=subject,
        attempts=attempts,
        questions_answered=answered,
        correct_answers=correct,
        average_score=average,
        last_ability=ability,
        last_tested_at=tested_at,
    )


def get_topic_progress(
    user_id: str,
    track: str | None = None,
    data_dir: Path | None = None,
) -> list[TopicProgressRecord]:
    """All progress rows of a user, optionally for one track."""
    query = "SELECT * FROM topic_progress WHERE user_id = ?"
    params: tuple = (user_id,)
    if track is not None:
        query += " AND track = ?"
        params = (user_id, track)

    with get_db(data_dir) as conn:
        rows = conn.execute(query + " ORDER BY track, subject", params).fetchall()

    return [_row_to_progress(row) for row in rows]


def _row_to_progress(row) -> TopicProgressRecord:
    """Convert database row to TopicProgressRecord."""
    return TopicProgressRecord(
        user_id=row["user_id"],
        track=row["track"],
        subject=row["subject"],
        attempts=row["attempts"],
        questions_answered=row["questions_answered"],
        correct_answers=row["correct_answers"],
        average_score=row["average_score"],
        last_ability=row["last_ability"],
        last_tested_at=row["last_tested_at"],
    )
