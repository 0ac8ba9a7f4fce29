"""ID helpers.

ID conventions:
- Entities use "{prefix}_{10 hex chars}" (test_, sess_, q_, mission_, journey_)
- The CLI accepts any unique prefix of a test_id

Functions:
- generate_id(prefix) -> str: New random ID with the given prefix
- resolve_test_id(prefix, candidates) -> str: Resolve prefix to unique test_id
- get_available_test_ids(user_id, data_dir) -> list[str]
"""

import uuid
from pathlib import Path

from examprep.config.app_config import get_data_dir


class AmbiguousIdError(Exception):
    """Raised when an ID prefix matches multiple entities."""

    def __init__(self, prefix: str, candidates: list[str]):
        self.prefix = prefix
        self.candidates = candidates
        super().__init__(
            f"Prefix '{prefix}' is ambiguous. Candidates:\n"
            + "\n".join(f"  - {c}" for c in candidates)
        )


class IdNotFoundError(Exception):
    """Raised when no entity matches the given prefix."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(f"No test found with prefix '{prefix}'")


def generate_id(prefix: str) -> str:
    """Generate a new random ID, e.g. generate_id("test") -> "test_3f9a1c0b2d"."""
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


def resolve_test_id(prefix: str, candidates: list[str]) -> str:
    """Resolve a test_id prefix to a unique full test_id.

    Args:
        prefix: Partial or full test_id (e.g., "test_3f9" or "3f9")
        candidates: List of all available test_ids

    Returns:
        The unique matching test_id

    Raises:
        IdNotFoundError: If no candidates match the prefix
        AmbiguousIdError: If multiple candidates match the prefix
    """
    # Exact match first
    if prefix in candidates:
        return prefix

    matches = [c for c in candidates if c.startswith(prefix) or c.startswith(f"test_{prefix}")]

    if len(matches) == 0:
        raise IdNotFoundError(prefix)
    elif len(matches) == 1:
        return matches[0]
    else:
        raise AmbiguousIdError(prefix, matches)


def get_available_test_ids(user_id: str, data_dir: Path | None = None) -> list[str]:
    """List test_ids stored for a user under data/users/{user_id}/adaptive_tests/."""
    if data_dir is None:
        data_dir = get_data_dir()

    tests_dir = data_dir / "users" / user_id / "adaptive_tests"
    if not tests_dir.exists():
        return []

    return sorted(p.stem for p in tests_dir.glob("*.json"))
