"""Question bank repository.

Responsibilities:
- AdaptiveQuestion data shape and difficulty levels
- Load questions from the shared bank and the user's private bank
- Persist generated questions to the user's private bank

Storage (JSON):
- data/question_bank/shared.json
- data/question_bank/users/{user_id}.json
Both use the question_bank_v1 schema with a "questions" array.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from examprep.config.app_config import get_data_dir

logger = structlog.get_logger(__name__)

# =============================================================================
# DIFFICULTY LEVELS
# =============================================================================

DIFFICULTY_LEVELS = ("beginner", "intermediate", "advanced", "expert")

# Position of each level on the ability scale
DIFFICULTY_SCORES: dict[str, float] = {
    "beginner": 0.2,
    "intermediate": 0.4,
    "advanced": 0.6,
    "expert": 0.8,
}

BLOOMS_LEVELS = ("remember", "understand", "apply", "analyze", "evaluate", "create")


def normalize_difficulty(value: Any) -> str:
    """Map a level name or a numeric difficulty (1-4) to a level name.

    Anything else (unknown strings, lists, NaN, booleans) maps to
    "intermediate".
    """
    if isinstance(value, str):
        if value.lower() in DIFFICULTY_SCORES:
            return value.lower()
        try:
            value = float(value)
        except ValueError:
            return "intermediate"

    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return "intermediate"
    if value <= 1:
        return "beginner"
    if value <= 2:
        return "intermediate"
    if value <= 3:
        return "advanced"
    return "expert"


def difficulty_index(level: str) -> int:
    """Position of a level in DIFFICULTY_LEVELS (intermediate if unknown)."""
    try:
        return DIFFICULTY_LEVELS.index(level)
    except ValueError:
        return 1


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class AdaptiveQuestion:
    """A question usable by the adaptive test engine."""

    question_id: str
    question: str
    subject: str
    difficulty: str = "intermediate"
    type: str = "multiple_choice"
    options: list[str] = field(default_factory=list)
    correct_answer: str = ""
    correct_answers: list[str] = field(default_factory=list)
    explanation: str = ""
    topics: list[str] = field(default_factory=list)
    discrimination: float = 1.0
    guessing: float = 0.0
    blooms_level: str | None = None
    time_limit_seconds: int | None = None
    created_by: str = "system"

    @property
    def topic(self) -> str:
        """Primary topic (first listed), or empty string."""
        return self.topics[0] if self.topics else ""

    @property
    def difficulty_score(self) -> float:
        return DIFFICULTY_SCORES.get(self.difficulty, DIFFICULTY_SCORES["intermediate"])

    def accepted_answers(self) -> list[str]:
        """All answers that must be given for a correct response."""
        if self.correct_answers:
            return list(self.correct_answers)
        if self.correct_answer != "":
            return [self.correct_answer]
        return []

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "question_id": self.question_id,
            "question": self.question,
            "subject": self.subject,
            "difficulty": self.difficulty,
            "type": self.type,
            "options": self.options,
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
            "topics": self.topics,
            "discrimination": self.discrimination,
            "guessing": self.guessing,
            "created_by": self.created_by,
        }
        if self.correct_answers:
            result["correct_answers"] = self.correct_answers
        if self.blooms_level is not None:
            result["blooms_level"] = self.blooms_level
        if self.time_limit_seconds is not None:
            result["time_limit_seconds"] = self.time_limit_seconds
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdaptiveQuestion:
        """Build from a stored document, defaulting optional fields."""
        topics = data.get("topics")
        if topics is None:
            topics = [data["topic"]] if data.get("topic") else []

        return cls(
            question_id=data["question_id"],
            question=data.get("question", data.get("content", "")),
            subject=data.get("subject", ""),
            difficulty=normalize_difficulty(data.get("difficulty")),
            type=data.get("type", "multiple_choice"),
            options=list(data.get("options", [])),
            correct_answer=str(data.get("correct_answer", "")),
            correct_answers=[str(a) for a in data.get("correct_answers", [])],
            explanation=data.get("explanation", ""),
            topics=list(topics),
            discrimination=float(data.get("discrimination", 1.0)),
            guessing=float(data.get("guessing", 0.0)),
            blooms_level=data.get("blooms_level"),
            time_limit_seconds=data.get("time_limit_seconds"),
            created_by=data.get("created_by", "system"),
        )


class QuestionBankError(Exception):
    """Error reading or writing the question bank."""

    pass


# =============================================================================
# PATHS
# =============================================================================


def _bank_dir(data_dir: Path | None) -> Path:
    return (data_dir or get_data_dir()) / "question_bank"


def _shared_bank_path(data_dir: Path | None) -> Path:
    return _bank_dir(data_dir) / "shared.json"


def _user_bank_path(user_id: str, data_dir: Path | None) -> Path:
    return _bank_dir(data_dir) / "users" / f"{user_id}.json"


def _read_bank(path: Path) -> list[AdaptiveQuestion]:
    """Read a bank file; a missing file is an empty bank."""
    if not path.exists():
        return []

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise QuestionBankError(f"Could not read question bank {path}: {e}") from e

    questions = []
    for item in data.get("questions", []):
        try:
            questions.append(AdaptiveQuestion.from_dict(item))
        except KeyError:
            logger.warning("question_without_id_skipped", path=str(path))
    return questions


def _write_bank(path: Path, questions: list[AdaptiveQuestion]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "$schema": "question_bank_v1",
        "questions": [q.to_dict() for q in questions],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


# =============================================================================
# PUBLIC API
# =============================================================================


def load_question_bank(
    user_id: str | None,
    subjects: list[str] | None = None,
    difficulties: list[str] | None = None,
    limit: int | None = None,
    data_dir: Path | None = None,
) -> list[AdaptiveQuestion]:
    """Load questions from the shared bank plus the user's private bank.

    Args:
        user_id: Owner of the private bank (None = shared bank only)
        subjects: Keep only these subjects (case-insensitive); empty = all
        difficulties: Keep only these difficulty levels; empty = all
        limit: Maximum number of questions returned
        data_dir: Base data directory

    Returns:
        Matching questions, shared bank first, de-duplicated by question_id.
    """
    questions = _read_bank(_shared_bank_path(data_dir))
    if user_id:
        questions += _read_bank(_user_bank_path(user_id, data_dir))

    wanted_subjects = {s.casefold() for s in subjects or []}
    wanted_difficulties = set(difficulties or [])

    seen: set[str] = set()
    result: list[AdaptiveQuestion] = []
    for question in questions:
        if question.question_id in seen:
            continue
        if wanted_subjects and question.subject.casefold() not in wanted_subjects:
            continue
        if wanted_difficulties and question.difficulty not in wanted_difficulties:
            continue
        seen.add(question.question_id)
        result.append(question)
        if limit is not None and len(result) >= limit:
            break

    logger.debug(
        "question_bank_loaded",
        user_id=user_id,
        subjects=subjects,
        count=len(result),
    )
    return result


def save_questions(
    user_id: str,
    questions: list[AdaptiveQuestion],
    data_dir: Path | None = None,
) -> int:
    """Append questions to the user's private bank.

    Returns:
        Number of questions added (existing IDs are skipped).
    """
    path = _user_bank_path(user_id, data_dir)
    existing = _read_bank(path)
    known_ids = {q.question_id for q in existing}

    added = [q for q in questions if q.question_id not in known_ids]
    if added:
        _write_bank(path, existing + added)

    logger.info("questions_saved", user_id=user_id, added=len(added))
    return len(added)


def resolve_option(raw: Any, options: list[str]) -> str | None:
    """Return the option text designated by raw, or None if it matches none.

    Accepts the option text itself (case-insensitive), a letter A-Z or a
    zero-based index.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return options[raw] if 0 <= raw < len(options) else None

    text = str(raw).strip()
    for option in options:
        if option.strip().casefold() == text.casefold():
            return option

    if len(text) == 1 and text.isalpha():
        index = ord(text.upper()) - ord("A")
        if 0 <= index < len(options):
            return options[index]

    if text.isascii() and text.isdigit() and int(text) < len(options):
        return options[int(text)]

    return None
