"""Prompt Registry - Load prompts from external files.

Prompts live as Markdown files under ``prompts/templates`` and support
``{variable}`` substitution.

Usage:
    from tailoredu.prompts.registry import get_prompt

    prompt = get_prompt(
        "digest/teacher_user",
        class_name="Algebra I",
        subject="Math",
    )
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

PROMPTS_DIR = Path(__file__).parent / "templates"


def _get_prompt_uncached(key: str) -> str:
    """Load raw prompt from file without caching.

    Args:
        key: Path-like key, e.g., "analysis/system"

    Returns:
        Raw prompt content

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    file_path = PROMPTS_DIR / f"{key}.md"
    if not file_path.exists():
        logger.warning("prompt_not_found", key=key, path=str(file_path))
        raise FileNotFoundError(f"Prompt not found: {key} (looked at {file_path})")

    return file_path.read_text(encoding="utf-8").strip()


@lru_cache(maxsize=64)
def _get_cached_prompt(key: str) -> str:
    """Cached version of prompt loading."""
    return _get_prompt_uncached(key)


def get_prompt(key: str, use_cache: bool = True, **variables: object) -> str:
    """Load prompt from file and substitute variables.

    Variables are substituted using {variable_name} syntax; other braces
    (JSON examples in the templates) are left alone.

    Args:
        key: Path-like key, e.g., "analysis/system"
        use_cache: Whether to use cached version (default True)
        **variables: Variables to substitute

    Returns:
        Prompt string with variables substituted

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    if use_cache:
        content = _get_cached_prompt(key)
    else:
        content = _get_prompt_uncached(key)

    for var_name, var_value in variables.items():
        content = content.replace(f"{{{var_name}}}", str(var_value))

    return content


def clear_cache() -> None:
    """Clear the prompt cache."""
    _get_cached_prompt.cache_clear()
