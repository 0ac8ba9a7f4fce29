"""Adaptive question generator module.

Responsibilities:
- Build the question generation prompt from a request
- Call the LLM and parse its JSON array of questions
- Validate and normalize each item into an AdaptiveQuestion

Items without text, with fewer than two options, or whose correct answer
is neither an option nor an option letter/index are dropped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import structlog

from examprep.core.question_bank import (
    BLOOMS_LEVELS,
    AdaptiveQuestion,
    normalize_difficulty,
    resolve_option,
)
from examprep.llm.client import LLMClient, LLMError
from examprep.prompts.registry import get_prompt
from examprep.utils.validators import generate_id

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You write exam questions for adaptive tests. "
    "Reply with a JSON array only, no commentary."
)

DIFFICULTY_DESCRIPTIONS = {
    "beginner": "basic recall and simple application",
    "intermediate": "application of concepts to familiar problems",
    "advanced": "analysis across several concepts",
    "expert": "evaluation and synthesis in unfamiliar situations",
}

# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class QuestionGenerationRequest:
    """What to ask the LLM for."""

    subjects: list[str]
    difficulty: str = "intermediate"
    question_count: int = 10
    topics: list[str] = field(default_factory=list)
    question_type: str = "multiple_choice"
    blooms_levels: list[str] = field(default_factory=lambda: ["understand", "apply"])
    exam_context: str = ""
    learning_objectives: list[str] = field(default_factory=list)


class QuestionGenerationError(Exception):
    """Error generating questions with the LLM."""

    pass


# =============================================================================
# PARSING
# =============================================================================


def _parse_item(
    item: dict[str, Any],
    request: QuestionGenerationRequest,
    default_subject: str,
) -> AdaptiveQuestion | None:
    """One generated question, or None when a required field is unusable."""
    text = str(item.get("question", "")).strip()
    raw_options = item.get("options")
    if not isinstance(raw_options, list):
        return None
    options = [str(o) for o in raw_options if str(o).strip()]
    if not text or len(options) < 2:
        return None

    correct = resolve_option(item.get("correct_answer", ""), options)
    if correct is None:
        return None

    topics = item.get("topics") or request.topics[:1]
    if isinstance(topics, str):
        topics = [topics]

    blooms = item.get("blooms_level")
    if blooms not in BLOOMS_LEVELS:
        blooms = request.blooms_levels[0] if request.blooms_levels else None

    estimated = item.get("estimated_time")
    time_limit = None
    if isinstance(estimated, (int, float)) and not isinstance(estimated, bool) and math.isfinite(estimated):
        time_limit = int(estimated)

    return AdaptiveQuestion(
        question_id=generate_id("q"),
        question=text,
        subject=str(item.get("subject") or default_subject),
        difficulty=normalize_difficulty(item.get("difficulty", request.difficulty)),
        type=request.question_type,
        options=options,
        correct_answer=correct,
        explanation=str(item.get("explanation", "")),
        topics=[str(t) for t in topics],
        blooms_level=blooms,
        time_limit_seconds=time_limit,
        created_by="llm",
    )


def parse_generated_questions(
    raw_data: Any,
    request: QuestionGenerationRequest,
) -> list[AdaptiveQuestion]:
    """Turn the LLM's JSON into validated questions.

    Items with missing or malformed fields are skipped.
    """
    if isinstance(raw_data, dict):
        raw_data = raw_data.get("questions", [])

    if not isinstance(raw_data, list):
        logger.warning("generated_questions_not_list", received_type=type(raw_data).__name__)
        return []

    default_subject = request.subjects[0] if request.subjects else "General"
    questions = []

    for index, item in enumerate(raw_data, 1):
        if not isinstance(item, dict):
            logger.warning("generated_question_not_dict", index=index)
            continue
        try:
            question = _parse_item(item, request, default_subject)
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning("generated_question_invalid", index=index, error=str(e))
            continue
        if question is None:
            logger.warning("generated_question_incomplete", index=index)
            continue
        questions.append(question)

    return questions


# =============================================================================
# MAIN FUNCTION
# =============================================================================


def generate_adaptive_questions(
    request: QuestionGenerationRequest,
    client: LLMClient | None = None,
) -> list[AdaptiveQuestion]:
    """Generate questions for an adaptive test.

    Args:
        request: Subjects, difficulty and count to generate
        client: Optional pre-configured LLM client (for testing)

    Returns:
        Validated questions

    Raises:
        QuestionGenerationError: If the LLM fails or returns nothing usable
    """
    prompt = get_prompt(
        "questions/generate_adaptive",
        question_count=str(request.question_count),
        question_type=request.question_type.replace("_", " "),
        subjects=", ".join(request.subjects),
        topics=", ".join(request.topics) or "any topic within the subjects",
        difficulty=request.difficulty,
        difficulty_description=DIFFICULTY_DESCRIPTIONS.get(request.difficulty, ""),
        blooms_levels=", ".join(request.blooms_levels),
        exam_context=request.exam_context or "general exam preparation",
        learning_objectives="; ".join(request.learning_objectives) or "not specified",
    )

    try:
        if client is None:
            client = LLMClient()
        raw = client.simple_json(system_prompt=SYSTEM_PROMPT, user_message=prompt, temperature=0.5)
    except LLMError as e:
        raise QuestionGenerationError(f"LLM question generation failed: {e}") from e

    questions = parse_generated_questions(raw, request)
    if not questions:
        raise QuestionGenerationError("LLM returned no valid questions")

    logger.info(
        "questions_generated",
        requested=request.question_count,
        generated=len(questions),
        subjects=request.subjects,
    )
    return questions
