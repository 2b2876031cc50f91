"""AI analysis of a student submission.

Responsibilities:
- Check the caller owns the submission or teaches its class
- Build the analysis prompt (assignment, student work, optional rubric)
- Request a structured analysis from the AI gateway (submit_analysis tool)
- Persist the analysis row and move the submission to "analyzed"

Each call inserts a new analysis row; duplicate requests produce
duplicate rows.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

import structlog

from tailoredu.db.backend import BackendStore
from tailoredu.llm.client import LLMClient, ToolSpec
from tailoredu.prompts.registry import get_prompt

logger = structlog.get_logger(__name__)

# =============================================================================
# TYPES
# =============================================================================

MasteryLevel = Literal["emerging", "developing", "proficient", "advanced"]

MASTERY_LEVELS = ("emerging", "developing", "proficient", "advanced")

ANALYSIS_TOOL = ToolSpec(
    name="submit_analysis",
    description="Return the assessment of the student's submission.",
    parameters={
        "type": "object",
        "properties": {
            "rubric_scores": {
                "type": "object",
                "description": "Scores keyed by rubric criterion id ({} without a rubric)",
                "additionalProperties": {
                    "type": "object",
                    "properties": {
                        "score": {"type": "number"},
                        "maxScore": {"type": "number"},
                        "feedback": {"type": "string"},
                    },
                    "required": ["score", "maxScore", "feedback"],
                },
            },
            "overall_mastery": {"type": "string", "enum": list(MASTERY_LEVELS)},
            "confidence_score": {"type": "number", "minimum": 0, "maximum": 1},
            "strengths": {"type": "array", "items": {"type": "string"}},
            "areas_for_growth": {"type": "array", "items": {"type": "string"}},
            "misconceptions": {"type": "array", "items": {"type": "string"}},
            "personalized_feedback": {"type": "string"},
            "recommended_action": {"type": "string"},
        },
        "required": [
            "rubric_scores",
            "overall_mastery",
            "confidence_score",
            "strengths",
            "areas_for_growth",
            "misconceptions",
            "personalized_feedback",
            "recommended_action",
        ],
    },
)


@dataclass
class AnalysisResult:
    """Structured analysis returned by the model."""

    rubric_scores: dict[str, dict[str, Any]]
    overall_mastery: str
    confidence_score: float
    strengths: list[str]
    areas_for_growth: list[str]
    misconceptions: list[str]
    personalized_feedback: str
    recommended_action: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisResult:
        mastery = data.get("overall_mastery")
        if mastery not in MASTERY_LEVELS:
            raise AnalysisError(f"Invalid overall_mastery in AI response: {mastery}")
        try:
            confidence = float(data.get("confidence_score", 0.0))
        except (TypeError, ValueError) as e:
            raise AnalysisError("Invalid confidence_score in AI response") from e

        return cls(
            rubric_scores=dict(data.get("rubric_scores") or {}),
            overall_mastery=mastery,
            confidence_score=min(max(confidence, 0.0), 1.0),
            strengths=list(data.get("strengths") or []),
            areas_for_growth=list(data.get("areas_for_growth") or []),
            misconceptions=list(data.get("misconceptions") or []),
            personalized_feedback=str(data.get("personalized_feedback", "")),
            recommended_action=str(data.get("recommended_action", "")),
        )


@dataclass
class SubmissionAnalysis:
    """What the endpoint returns."""

    analysis: dict[str, Any]
    submission: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "analysis": self.analysis,
            "submission": self.submission,
        }


class AnalysisError(Exception):
    """Error during submission analysis."""

    pass


class AccessDeniedError(AnalysisError):
    """Caller neither owns the submission nor teaches its class."""

    pass


# =============================================================================
# PROMPT
# =============================================================================


def _format_student_work(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, indent=2, ensure_ascii=False)


def build_analysis_prompt(
    submission: dict[str, Any], rubric: dict[str, Any] | None
) -> str:
    """Build the user prompt for a submission analysis.

    Args:
        submission: Submission row with its joined `assignment`
        rubric: Rubric row with `criteria`, or None

    Returns:
        Markdown prompt
    """
    assignment = submission.get("assignment") or {}

    lines = [
        "Analyze the following student submission and provide a detailed assessment.",
        "",
        "## Assignment",
        f"**Title:** {assignment.get('title') or 'Untitled Assignment'}",
        f"**Instructions:** {assignment.get('instructions') or 'No instructions provided'}",
    ]
    if assignment.get("description"):
        lines.append(f"**Description:** {assignment['description']}")

    lines += [
        "",
        "## Student Submission",
        _format_student_work(submission.get("content")),
        "",
    ]

    criteria = (rubric or {}).get("criteria") or []
    if criteria:
        lines += [
            "## Rubric",
            "Evaluate the student's work based on the following criteria.",
            "Key rubric_scores by the criterion id shown for each criterion.",
            "",
        ]
        for criterion in sorted(criteria, key=lambda c: c.get("order_index") or 0):
            lines += [
                f"### {criterion.get('name')} (id: {criterion.get('id')})",
                f"**Description:** {criterion.get('description')}",
                f"**Maximum Points:** {criterion.get('max_points')}",
                "",
            ]
    else:
        lines += ["No rubric was provided: return an empty rubric_scores object.", ""]

    lines.append(get_prompt("analysis/guidelines"))
    return "\n".join(lines)


# =============================================================================
# ANALYSIS
# =============================================================================


def _check_access(
    store: BackendStore, user_id: str, submission: dict[str, Any]
) -> None:
    if submission.get("user_id") == user_id:
        return

    teacher_user_id = store.fetch_class_teacher_user_id(submission.get("assignment_id"))
    if teacher_user_id != user_id:
        logger.warning(
            "submission_access_denied",
            submission_id=submission.get("id"),
            user_id=user_id,
        )
        raise AccessDeniedError("Unauthorized to analyze this submission")


def _load_rubric(store: BackendStore, rubric_id: str | None) -> dict[str, Any] | None:
    if not rubric_id:
        return None
    try:
        return store.fetch_rubric(rubric_id)
    except Exception as e:
        logger.warning("rubric_fetch_failed", rubric_id=rubric_id, error=str(e))
        return None


def analyze_submission(
    store: BackendStore,
    client: LLMClient,
    user_id: str,
    submission_id: str,
    rubric_id: str | None = None,
    temperature: float = 0.3,
) -> SubmissionAnalysis:
    """Analyze a submission with the AI gateway and persist the result.

    Args:
        store: Managed backend store
        client: AI gateway client
        user_id: Authenticated caller
        submission_id: Submission to analyze
        rubric_id: Optional rubric to score against
        temperature: Sampling temperature

    Returns:
        SubmissionAnalysis with the stored analysis row and the submission

    Raises:
        AccessDeniedError: Caller may not analyze this submission
        AnalysisError: Submission missing or AI output unusable
        LLMError: Upstream AI failure (rate limit, quota, ...)
    """
    logger.info(
        "submission_analysis_started",
        submission_id=submission_id,
        rubric_id=rubric_id,
    )

    submission = store.fetch_submission(submission_id)
    if submission is None:
        raise AnalysisError(f"Failed to fetch submission: {submission_id}")

    _check_access(store, user_id, submission)

    previous_status = submission.get("status") or "submitted"
    store.update_submission_status(submission_id, "analyzing")

    rubric = _load_rubric(store, rubric_id)
    prompt = build_analysis_prompt(submission, rubric)

    try:
        raw_output = client.simple_tool(
            get_prompt("analysis/system"),
            prompt,
            ANALYSIS_TOOL,
            temperature=temperature,
        )
        analysis = AnalysisResult.from_dict(raw_output)
    except Exception:
        # Leave the submission where it was before this attempt
        store.update_submission_status(submission_id, previous_status)
        raise

    record = store.insert_submission_analysis(
        {
            "submission_id": submission_id,
            "rubric_id": rubric_id or None,
            "rubric_scores": analysis.rubric_scores,
            "overall_mastery": analysis.overall_mastery,
            "confidence_score": analysis.confidence_score,
            "strengths": analysis.strengths,
            "areas_for_growth": analysis.areas_for_growth,
            "misconceptions": analysis.misconceptions,
            "personalized_feedback": analysis.personalized_feedback,
            "recommended_action": analysis.recommended_action,
            "analyzed_at": datetime.now(timezone.utc).isoformat(),
            "model_used": client.config.model,
            "raw_model_output": raw_output,
            "teacher_reviewed": False,
            "teacher_modified": False,
        }
    )

    store.update_submission_status(submission_id, "analyzed")

    logger.info(
        "submission_analysis_completed",
        submission_id=submission_id,
        mastery=analysis.overall_mastery,
        confidence=analysis.confidence_score,
    )

    return SubmissionAnalysis(analysis=record, submission=submission)
