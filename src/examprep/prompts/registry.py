"""Markdown prompt templates for question and recommendation generation.

Templates live under ``templates/`` and are addressed by their relative
path without the extension, e.g. ``questions/generate_adaptive``.
Placeholders use ``{name}``; JSON examples in the templates are left
alone because only bare identifiers in braces count as placeholders.

Usage:
    from examprep.prompts.registry import get_prompt

    prompt = get_prompt("recommendations/generate_tests", count="3", context="...", max_questions="15", max_minutes="20")
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

_PLACEHOLDER = re.compile(r"\{([a-z_][a-z0-9_]*)\}")


class PromptNotFoundError(FileNotFoundError):
    """No template exists for the requested key."""

    pass


@dataclass(frozen=True)
class PromptTemplate:
    key: str
    text: str

    @property
    def placeholders(self) -> set[str]:
        return set(_PLACEHOLDER.findall(self.text))

    def render(self, **variables: object) -> str:
        """Fill placeholders; unknown ones stay as written."""
        missing = self.placeholders - variables.keys()
        if missing:
            logger.warning("prompt_placeholders_unfilled", key=self.key, missing=sorted(missing))

        return _PLACEHOLDER.sub(
            lambda m: str(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
            self.text,
        )


@lru_cache(maxsize=32)
def load_template(key: str) -> PromptTemplate:
    """Read a template from disk (cached per key).

    Raises:
        PromptNotFoundError: If there is no ``{key}.md`` under the templates dir
    """
    path = TEMPLATES_DIR / f"{key}.md"
    if not path.is_file():
        raise PromptNotFoundError(f"Prompt not found: {key} ({path})")
    return PromptTemplate(key=key, text=path.read_text(encoding="utf-8"))


def get_prompt(key: str, **variables: object) -> str:
    """Render the template ``key`` with the given variables."""
    return load_template(key).render(**variables)


def list_prompts() -> list[str]:
    if not TEMPLATES_DIR.is_dir():
        logger.warning("prompt_templates_missing", path=str(TEMPLATES_DIR))
        return []
    return sorted(path.relative_to(TEMPLATES_DIR).with_suffix("").as_posix() for path in TEMPLATES_DIR.rglob("*.md"))


def clear_cache() -> None:
    load_template.cache_clear()
