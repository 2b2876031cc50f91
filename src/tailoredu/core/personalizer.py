"""Personalization generators.

Every generator takes a PersonalizationRequest and returns a response
mapping; the caller validates that mapping with validate_response, so
generators can be swapped without touching the endpoint.

- RuleBasedPersonalizer: interest-keyed regex substitutions (default)
- LLMPersonalizer: asks the AI gateway for the same fields via tool calling
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

import structlog

from tailoredu.config.app_config import PersonalizationConfig, load_app_config
from tailoredu.core.personalization import (
    CHANGED_ELEMENTS,
    MINIMAL_PERSONALIZATION_NOTE,
    PersonalizationError,
    PersonalizationRequest,
    PersonalizationResponse,
)
from tailoredu.llm.client import LLMClient, ToolSpec
from tailoredu.prompts.registry import get_prompt

logger = structlog.get_logger(__name__)


class Personalizer(Protocol):
    """Anything that turns a request into a response mapping."""

    name: str

    def generate(self, request: PersonalizationRequest) -> dict[str, Any]: ...


# =============================================================================
# RULE-BASED
# =============================================================================

# (pattern, replacement) pairs per interest, with the elements they change
INTEREST_RULES: dict[str, tuple[list[tuple[re.Pattern[str], str]], list[str]]] = {
    "sports": (
        [
            (re.compile(r"\bexample\b", re.IGNORECASE), "sports example"),
            (re.compile(r"\bdata\b", re.IGNORECASE), "sports statistics"),
        ],
        ["context", "examples"],
    ),
    "animals": (
        [
            (re.compile(r"\bstudent(s)?\b", re.IGNORECASE), r"wildlife researcher\1"),
            (re.compile(r"\bpeople\b", re.IGNORECASE), "animals"),
        ],
        ["context", "setting"],
    ),
    "space": (
        [
            (re.compile(r"\bplanet\b", re.IGNORECASE), "Mars"),
            (re.compile(r"\bworld\b", re.IGNORECASE), "solar system"),
        ],
        ["setting"],
    ),
}

NAME_RULES = [
    (re.compile(r"\bAlex\b", re.IGNORECASE), "Taylor"),
    (re.compile(r"\bJohn\b", re.IGNORECASE), "Sam"),
]


class RuleBasedPersonalizer:
    """Fixed substitutions keyed on the student's interest tags.

    A contract-conformance stand-in for an LLM rewrite: same input,
    same output shape.
    """

    name = "rules"

    def __init__(self, config: PersonalizationConfig | None = None):
        self.config = config or load_app_config().personalization

    def _interests(self, request: PersonalizationRequest) -> list[str]:
        interests = request.student_profile.interests
        if not interests:
            return list(self.config.default_interests)
        return interests[: self.config.max_interests]

    def generate(self, request: PersonalizationRequest) -> dict[str, Any]:
        interests = self._interests(request)
        text = request.base_assignment
        changed: list[str] = []

        for interest, (rules, elements) in INTEREST_RULES.items():
            if interest not in interests:
                continue
            for pattern, replacement in rules:
                # \1 of an unmatched optional group expands to ""
                text = pattern.sub(replacement, text)
            changed.extend(elements)

        if not changed:
            for pattern, replacement in NAME_RULES:
                text = pattern.sub(replacement, text)
            changed.append("names")

        unique_changed = list(dict.fromkeys(changed))
        rationale = (
            f"Modified {' and '.join(unique_changed)} to align with student "
            f"interests in {', '.join(interests[:3])} while preserving core "
            "learning objectives."
        )

        logger.debug(
            "rule_personalization_applied",
            student_id=request.student_profile.student_id,
            changed_elements=unique_changed,
        )

        return PersonalizationResponse(
            personalized_text=text,
            rationale=rationale,
            kept_keywords=list(request.constraints.must_keep_keywords),
            changed_elements=unique_changed,
            reading_level_estimate=request.constraints.reading_level,
        ).to_dict()


# =============================================================================
# LLM-BASED
# =============================================================================

PERSONALIZATION_TOOL = ToolSpec(
    name="submit_personalization",
    description="Return the personalized assignment and what was changed.",
    parameters={
        "type": "object",
        "properties": {
            "personalized_text": {"type": "string"},
            "rationale": {
                "type": "string",
                "description": "1-2 sentences on what changed and why",
            },
            "kept_keywords": {"type": "array", "items": {"type": "string"}},
            "changed_elements": {
                "type": "array",
                "items": {"type": "string", "enum": list(CHANGED_ELEMENTS)},
            },
            "reading_level_estimate": {"type": "string"},
        },
        "required": [
            "personalized_text",
            "rationale",
            "kept_keywords",
            "changed_elements",
            "reading_level_estimate",
        ],
    },
)


class LLMPersonalizer:
    """Personalization through the AI gateway under the same contract."""

    name = "llm"

    def __init__(self, client: LLMClient | None = None):
        self._client = client

    @property
    def client(self) -> LLMClient:
        if self._client is None:
            self._client = LLMClient()
        return self._client

    def generate(self, request: PersonalizationRequest) -> dict[str, Any]:
        profile = request.student_profile
        constraints = request.constraints

        system_prompt = get_prompt("personalization/system")
        user_prompt = get_prompt(
            "personalization/user",
            base_assignment=request.base_assignment,
            reading_level=constraints.reading_level,
            language_pref=constraints.language_pref,
            must_keep_keywords=", ".join(constraints.must_keep_keywords),
            max_length_words=constraints.max_length_words,
            edit_permissions=json.dumps(
                {
                    "allow_numbers": constraints.edit_permissions.allow_numbers,
                    "allow_rubric_edits": constraints.edit_permissions.allow_rubric_edits,
                }
            ),
            interests=", ".join(profile.interests),
            home_language=profile.home_language,
        )

        result = self.client.simple_tool(
            system_prompt, user_prompt, PERSONALIZATION_TOOL, temperature=0.3
        )

        if MINIMAL_PERSONALIZATION_NOTE in str(result.get("rationale", "")):
            logger.info("personalization_limited", student_id=profile.student_id)

        return result


def get_personalizer(name: str | None = None, client: LLMClient | None = None) -> Personalizer:
    """Select a generator by name (defaults to the configured one).

    Raises:
        PersonalizationError: For an unknown generator name
    """
    name = name or load_app_config().personalization.generator
    if name == "rules":
        return RuleBasedPersonalizer()
    if name == "llm":
        return LLMPersonalizer(client=client)
    raise PersonalizationError(f"Unknown personalization generator: {name}")
