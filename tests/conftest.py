"""Pytest configuration for phased testing.

Tests are organized by phase (f1, f2, ..., f6).
Only tests for the current phase and completed phases should run.
Future phase tests are automatically skipped.

Every test runs against a fresh data directory (EXAMPREP_DATA_DIR).
"""

from unittest.mock import MagicMock

import pytest

from examprep.config.app_config import DATA_DIR_ENV, clear_config_cache
from examprep.config.personas import clear_personas_cache
from examprep.core.adaptive_testing import reset_adaptive_testing_service
from examprep.core.missions import clear_mission_templates_cache
from examprep.core.question_bank import AdaptiveQuestion
from examprep.db.database import reset_db
from examprep.prompts.registry import clear_cache as clear_prompt_cache

# Current implementation phase
CURRENT_PHASE = 6


def pytest_collection_modifyitems(config, items):
    """Skip tests from phases that haven't been implemented yet."""
    for item in items:
        # Extract phase from path (tests/f2/... -> 2)
        parts = item.fspath.strpath.split("/")
        for part in parts:
            if part.startswith("f") and part[1:].isdigit():
                test_phase = int(part[1:])
                if test_phase > CURRENT_PHASE:
                    item.add_marker(
                        pytest.mark.skip(
                            reason=f"Phase F{test_phase} not yet implemented (current: F{CURRENT_PHASE})"
                        )
                    )
                break


def _clear_caches() -> None:
    clear_config_cache()
    clear_personas_cache()
    clear_mission_templates_cache()
    clear_prompt_cache()
    reset_db()
    reset_adaptive_testing_service()


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Isolated data directory with all module caches cleared."""
    directory = tmp_path / "data"
    directory.mkdir()
    monkeypatch.setenv(DATA_DIR_ENV, str(directory))
    _clear_caches()
    yield directory
    _clear_caches()


def make_question(
    question_id: str,
    difficulty: str = "intermediate",
    subject: str = "Mathematics",
    topic: str = "algebra",
    **kwargs,
) -> AdaptiveQuestion:
    """Four-option question whose correct answer is the first option."""
    options = kwargs.pop(
        "options",
        [f"{question_id} right", f"{question_id} wrong 1", f"{question_id} wrong 2", f"{question_id} wrong 3"],
    )
    return AdaptiveQuestion(
        question_id=question_id,
        question=f"Question {question_id}?",
        subject=subject,
        difficulty=difficulty,
        options=options,
        correct_answer=options[0],
        explanation=f"Because {options[0]}",
        topics=[topic],
        **kwargs,
    )


@pytest.fixture
def question_pool() -> list[AdaptiveQuestion]:
    """Twelve questions, three per difficulty level, over two subjects."""
    questions = []
    for level in ("beginner", "intermediate", "advanced", "expert"):
        for index in range(3):
            subject = "Mathematics" if index < 2 else "Physics"
            questions.append(
                make_question(f"{level[:3]}{index}", difficulty=level, subject=subject, topic=f"t{index}")
            )
    return questions


@pytest.fixture
def mock_llm() -> MagicMock:
    """LLM client double; set simple_json.return_value per test."""
    client = MagicMock()
    client.simple_json.return_value = []
    return client


@pytest.fixture
def question_factory():
    """The make_question helper, for tests that build their own pools."""
    return make_question
