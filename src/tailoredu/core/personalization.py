"""Assignment personalization contract and validator.

Responsibilities:
- Typed request/response for the personalize-assignment function
- Request validation (field-level issues, all reported at once)
- Response validation against the request's constraints

The validator is generator-agnostic: it checks plain response mappings,
whether they come from the rule-based personalizer or from an LLM.

Machine-checked invariants:
- word_count(personalized_text) <= constraints.max_length_words
- with allow_numbers false, the sorted numeric tokens of personalized_text
  equal those of base_assignment (tolerance 0.001)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

from tailoredu.utils.text_utils import (
    count_words,
    extract_numbers,
    format_numbers,
    numbers_match,
)

# =============================================================================
# CONSTANTS
# =============================================================================

CHANGED_ELEMENTS = ("context", "examples", "names", "setting")

MINIMAL_PERSONALIZATION_NOTE = "Personalization limited to maintain standard."


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class StudentProfile:
    """Who the assignment is being personalized for."""

    student_id: str
    interests: list[str] = field(default_factory=list)
    home_language: str = "en"
    reading_level: str = ""


@dataclass
class EditPermissions:
    """What the rewrite is allowed to touch."""

    allow_numbers: bool = False
    allow_rubric_edits: bool = False


@dataclass
class Constraints:
    """Rewrite constraints."""

    max_length_words: int
    must_keep_keywords: list[str] = field(default_factory=list)
    reading_level: str = ""
    language_pref: str = "en"
    edit_permissions: EditPermissions = field(default_factory=EditPermissions)


@dataclass
class PersonalizationRequest:
    """A base assignment plus who it is for and how it may change."""

    base_assignment: str
    student_profile: StudentProfile
    constraints: Constraints

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PersonalizationRequest:
        """Build from a mapping that already passed validate_request."""
        profile = data.get("student_profile") or {}
        constraints = data.get("constraints") or {}
        permissions = constraints.get("edit_permissions") or {}

        return cls(
            base_assignment=data["base_assignment"],
            student_profile=StudentProfile(
                student_id=str(profile["student_id"]),
                interests=list(profile.get("interests") or []),
                home_language=profile.get("home_language") or "en",
                reading_level=profile.get("reading_level") or "",
            ),
            constraints=Constraints(
                max_length_words=int(constraints["max_length_words"]),
                must_keep_keywords=list(constraints.get("must_keep_keywords") or []),
                reading_level=constraints.get("reading_level") or "",
                language_pref=constraints.get("language_pref") or "en",
                edit_permissions=EditPermissions(
                    allow_numbers=permissions.get("allow_numbers") or False,
                    allow_rubric_edits=permissions.get("allow_rubric_edits") or False,
                ),
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PersonalizationResponse:
    """A rewritten assignment and what changed."""

    personalized_text: str
    rationale: str
    kept_keywords: list[str]
    changed_elements: list[str]
    reading_level_estimate: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationIssue:
    """One violated rule."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    """Outcome of a validation pass; valid only with no issues."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def add(self, field_name: str, message: str) -> None:
        self.issues.append(ValidationIssue(field=field_name, message=message))

    def to_list(self) -> list[dict[str, str]]:
        return [issue.to_dict() for issue in self.issues]


class PersonalizationError(Exception):
    """Error while generating a personalized assignment."""

    def __init__(self, message: str, issues: list[ValidationIssue] | None = None):
        self.issues = issues or []
        super().__init__(message)


# =============================================================================
# VALIDATION
# =============================================================================


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _check_optional_fields(
    section: str,
    values: Mapping[str, Any],
    lists: tuple[str, ...],
    strings: tuple[str, ...],
    result: ValidationResult,
) -> None:
    for name in lists:
        value = values.get(name)
        if value is not None and not _is_string_list(value):
            result.add(f"{section}.{name}", f"{name} must be an array of strings")
    for name in strings:
        value = values.get(name)
        if value is not None and not isinstance(value, str):
            result.add(f"{section}.{name}", f"{name} must be a string")


def validate_request(data: Any) -> ValidationResult:
    """Validate a raw personalization request.

    Every failing field is reported; nothing short-circuits. Optional
    fields may be absent or null, but when present they must have the
    right type.

    Args:
        data: Decoded JSON body

    Returns:
        ValidationResult with one issue per failing field
    """
    result = ValidationResult()

    if not isinstance(data, Mapping):
        result.add("body", "Request body must be a JSON object")
        return result

    if _is_blank(data.get("base_assignment")):
        result.add("base_assignment", "Base assignment text is required")

    profile = data.get("student_profile")
    if profile is not None and not isinstance(profile, Mapping):
        result.add("student_profile", "student_profile must be an object")
    student_id = profile.get("student_id") if isinstance(profile, Mapping) else None
    if student_id is None or student_id == "":
        result.add("student_profile.student_id", "Student ID is required")
    if isinstance(profile, Mapping):
        _check_optional_fields(
            "student_profile", profile, ("interests",), ("home_language", "reading_level"), result
        )

    constraints = data.get("constraints")
    if constraints is not None and not isinstance(constraints, Mapping):
        result.add("constraints", "constraints must be an object")
    max_words = (
        constraints.get("max_length_words") if isinstance(constraints, Mapping) else None
    )
    # bool is an int subclass; true/false is not a word limit
    if (
        not isinstance(max_words, int)
        or isinstance(max_words, bool)
        or max_words <= 0
    ):
        result.add("constraints.max_length_words", "Valid max_length_words is required")

    if isinstance(constraints, Mapping):
        _check_optional_fields(
            "constraints",
            constraints,
            ("must_keep_keywords",),
            ("reading_level", "language_pref"),
            result,
        )
        permissions = constraints.get("edit_permissions")
        if permissions is not None and not isinstance(permissions, Mapping):
            result.add(
                "constraints.edit_permissions", "edit_permissions must be an object"
            )
        elif isinstance(permissions, Mapping):
            for flag in ("allow_numbers", "allow_rubric_edits"):
                value = permissions.get(flag)
                if value is not None and not isinstance(value, bool):
                    result.add(
                        f"constraints.edit_permissions.{flag}",
                        f"{flag} must be a boolean",
                    )

    return result


def validate_response(
    response: Mapping[str, Any],
    request: PersonalizationRequest,
) -> ValidationResult:
    """Validate a generated response against the request's constraints.

    Checks are independent and all reported, so a caller can show every
    problem at once. Validating the same pair twice yields the same issues.

    Args:
        response: Response mapping from any generator
        request: The validated request it answers

    Returns:
        ValidationResult listing every violated rule
    """
    result = ValidationResult()

    if not isinstance(response, Mapping):
        result.add("response", "Invalid JSON response format")
        return result

    text = response.get("personalized_text")
    if _is_blank(text):
        result.add("personalized_text", "Personalized text must be a non-empty string")
    else:
        _check_word_cap(text, request, result)
        if not request.constraints.edit_permissions.allow_numbers:
            _check_numbers(text, request, result)

    if _is_blank(response.get("rationale")):
        result.add("rationale", "Rationale is required")

    kept = response.get("kept_keywords")
    if not isinstance(kept, list):
        result.add("kept_keywords", "kept_keywords must be an array")
    elif not _is_string_list(kept):
        result.add("kept_keywords", "kept_keywords must contain only strings")

    changed = response.get("changed_elements")
    if not isinstance(changed, list):
        result.add("changed_elements", "changed_elements must be an array")
    else:
        for element in changed:
            if element not in CHANGED_ELEMENTS:
                result.add(
                    "changed_elements",
                    f"Invalid changed element: {element}. "
                    f"Must be one of: {', '.join(CHANGED_ELEMENTS)}",
                )

    if _is_blank(response.get("reading_level_estimate")):
        result.add("reading_level_estimate", "Reading level estimate is required")

    return result


def _check_word_cap(
    text: str, request: PersonalizationRequest, result: ValidationResult
) -> None:
    limit = request.constraints.max_length_words
    word_count = count_words(text)
    if word_count > limit:
        result.add(
            "personalized_text",
            f"Text exceeds word limit: {word_count} > {limit}",
        )


def _check_numbers(
    text: str, request: PersonalizationRequest, result: ValidationResult
) -> None:
    original = extract_numbers(request.base_assignment)
    personalized = extract_numbers(text)
    if not numbers_match(original, personalized):
        result.add(
            "personalized_text",
            "Numbers must remain unchanged. "
            f"Original: {format_numbers(original)}, "
            f"Personalized: {format_numbers(personalized)}",
        )
