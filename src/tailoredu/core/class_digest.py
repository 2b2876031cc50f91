"""Weekly class digest.

Responsibilities:
- Return this week's stored digest for a class/variant when there is one
- Otherwise compute class KPIs from the week's activity, flag at-risk
  students and top improvers, ask the AI gateway for variant-specific
  insights, store the digest and return it

Variants:
- teacher: data-informed, includes at-risk students and top improvers
- student: encouraging, no grades, includes top improvers
- parent: gentle, support-at-home tips, no student names
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import TypeAdapter

from tailoredu.db.backend import BackendStore
from tailoredu.llm.client import LLMClient, ToolSpec
from tailoredu.prompts.registry import get_prompt

logger = structlog.get_logger(__name__)

# Backend timestamps trim trailing zeros from the fraction (".12345")
_TIMESTAMP = TypeAdapter(datetime)

# =============================================================================
# CONSTANTS
# =============================================================================

VARIANTS = ("teacher", "student", "parent")

WEEK = timedelta(days=7)

AT_RISK_TREND_DROP = -10.0  # percent change in average completion
AT_RISK_MISSING = 2
IMPROVER_THRESHOLD = 15.0  # completion points gained
MAX_IMPROVERS = 5


def _string_props(*names: str) -> dict[str, Any]:
    return {name: {"type": "string"} for name in names}


DIGEST_TOOLS: dict[str, ToolSpec] = {
    "teacher": ToolSpec(
        name="submit_teacher_digest",
        description="Return the weekly digest sections for the teacher.",
        parameters={
            "type": "object",
            "properties": {
                **_string_props("learning_trend", "goals_status", "engagement_note"),
                "action_steps": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": 3,
                    "maxItems": 5,
                },
            },
            "required": ["learning_trend", "goals_status", "engagement_note", "action_steps"],
        },
    ),
    "student": ToolSpec(
        name="submit_student_digest",
        description="Return the weekly class update for students.",
        parameters={
            "type": "object",
            "properties": _string_props("celebration", "next_focus", "encouragement"),
            "required": ["celebration", "next_focus", "encouragement"],
        },
    ),
    "parent": ToolSpec(
        name="submit_parent_digest",
        description="Return the weekly class update for parents.",
        parameters={
            "type": "object",
            "properties": _string_props("class_summary", "support_tips", "upcoming_focus"),
            "required": ["class_summary", "support_tips", "upcoming_focus"],
        },
    ),
}


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class DigestKPIs:
    """Class-wide indicators for one week."""

    total_students: int
    avg_progress: float
    avg_progress_last_week: float
    median_score: float | None
    on_time_rate: int
    late_count: int
    missing_count: int
    reflection_count: int
    reflection_rate: int
    active_goals: int
    completed_goals: int
    goal_completion_rate: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalStudents": self.total_students,
            "avgProgress": round(self.avg_progress, 1),
            "avgProgressChange": round(self.avg_progress - self.avg_progress_last_week, 1),
            "medianScore": self.median_score,
            "onTimeRate": self.on_time_rate,
            "lateCount": self.late_count,
            "missingCount": self.missing_count,
            "reflectionRate": self.reflection_rate,
            "activeGoals": self.active_goals,
            "completedGoals": self.completed_goals,
            "goalCompletionRate": self.goal_completion_rate,
        }


@dataclass
class AtRiskStudent:
    name: str
    reasons: list[str] = field(default_factory=list)
    iep: bool = False
    ell: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "reasons": self.reasons, "iep": self.iep, "ell": self.ell}


@dataclass
class Improver:
    name: str
    improvement: int

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "improvement": self.improvement}


@dataclass
class DigestResult:
    """A stored digest row and whether it came from the weekly cache."""

    digest: dict[str, Any]
    cached: bool

    def to_dict(self) -> dict[str, Any]:
        return {"digest": self.digest, "cached": self.cached}


class DigestError(Exception):
    """Error while building a class digest."""

    pass


class DigestValidationError(DigestError):
    """Invalid digest request (missing class id, unknown variant)."""

    pass


# =============================================================================
# KPI COMPUTATION
# =============================================================================


def _parse_ts(value: Any) -> datetime | None:
    if not value:
        return None
    parsed = _TIMESTAMP.validate_python(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _percent(part: int, whole: int) -> int:
    """Whole-number percentage, halves rounded up."""
    if whole <= 0:
        return 0
    return int(math.floor(part / whole * 100 + 0.5))


def _mean_completion(rows: list[dict[str, Any]]) -> float:
    if not rows:
        return 0.0
    return sum(r.get("completion_percentage") or 0 for r in rows) / len(rows)


def _due_at(submission: dict[str, Any]) -> datetime | None:
    return _parse_ts((submission.get("assignment") or {}).get("due_at"))


def _is_on_time(submission: dict[str, Any]) -> bool:
    submitted, due = _parse_ts(submission.get("submitted_at")), _due_at(submission)
    return submitted is not None and due is not None and submitted <= due


def _is_late(submission: dict[str, Any]) -> bool:
    submitted, due = _parse_ts(submission.get("submitted_at")), _due_at(submission)
    return submitted is not None and due is not None and submitted > due


def _is_missing(submission: dict[str, Any], now: datetime) -> bool:
    due = _due_at(submission)
    return not submission.get("submitted_at") and due is not None and due < now


def _median_score(submissions: list[dict[str, Any]]) -> float | None:
    """Upper median of each graded submission's first grade."""
    scores = sorted(
        s["grades"][0]["grade"]
        for s in submissions
        if s.get("grades") and s["grades"][0].get("grade") is not None
    )
    if not scores:
        return None
    return scores[len(scores) // 2]


def compute_kpis(
    total_students: int,
    this_week_progress: list[dict[str, Any]],
    last_week_progress: list[dict[str, Any]],
    submissions: list[dict[str, Any]],
    goals: list[dict[str, Any]],
    reflections: list[dict[str, Any]],
    now: datetime,
) -> DigestKPIs:
    """Compute class-wide KPIs for the week."""
    completed_goals = [g for g in goals if g.get("status") == "completed"]
    active_goals = [
        g for g in goals if g.get("status") in ("in_progress", "not_started")
    ]

    return DigestKPIs(
        total_students=total_students,
        avg_progress=_mean_completion(this_week_progress),
        avg_progress_last_week=_mean_completion(last_week_progress),
        median_score=_median_score(submissions),
        on_time_rate=_percent(sum(1 for s in submissions if _is_on_time(s)), len(submissions)),
        late_count=sum(1 for s in submissions if _is_late(s)),
        missing_count=sum(1 for s in submissions if _is_missing(s, now)),
        reflection_count=len(reflections),
        reflection_rate=_percent(len(reflections), total_students),
        active_goals=len(active_goals),
        completed_goals=len(completed_goals),
        goal_completion_rate=_percent(len(completed_goals), len(goals)),
    )


def _student_name(student: dict[str, Any]) -> str:
    return f"{student.get('first_name', '')} {student.get('last_name', '')}".strip()


def find_at_risk_students(
    enrollments: list[dict[str, Any]],
    this_week_progress: list[dict[str, Any]],
    last_week_progress: list[dict[str, Any]],
    submissions: list[dict[str, Any]],
    now: datetime,
) -> list[AtRiskStudent]:
    """Flag students with a progress drop, missing work or stalled progress."""
    at_risk = []
    for enrollment in enrollments:
        student = enrollment.get("students") or {}
        student_id = student.get("id", enrollment.get("student_id"))

        missed = sum(
            1
            for s in submissions
            if s.get("user_id") == student.get("user_id") and _is_missing(s, now)
        )
        current_rows = [p for p in this_week_progress if p.get("student_id") == student_id]
        last_rows = [p for p in last_week_progress if p.get("student_id") == student_id]

        current_avg = _mean_completion(current_rows)
        last_avg = _mean_completion(last_rows) if last_rows else current_avg
        trend = (current_avg - last_avg) / last_avg * 100 if last_avg > 0 else 0.0
        stalled = not current_rows and bool(last_rows)

        reasons = []
        if trend < AT_RISK_TREND_DROP:
            reasons.append(f"{abs(trend):.0f}% progress drop")
        if missed >= AT_RISK_MISSING:
            reasons.append(f"{missed} missing assignments")
        if stalled:
            reasons.append("No progress in 7+ days")

        if reasons:
            language = student.get("language_preference")
            at_risk.append(
                AtRiskStudent(
                    name=_student_name(student),
                    reasons=reasons,
                    iep=bool(student.get("iep_accommodations")),
                    ell=bool(language) and language != "en",
                )
            )
    return at_risk


def find_top_improvers(
    enrollments: list[dict[str, Any]],
    this_week_progress: list[dict[str, Any]],
    last_week_progress: list[dict[str, Any]],
) -> list[Improver]:
    """Students whose average completion rose by more than the threshold."""
    improvers = []
    for enrollment in enrollments:
        student = enrollment.get("students") or {}
        student_id = student.get("id", enrollment.get("student_id"))

        current_avg = _mean_completion(
            [p for p in this_week_progress if p.get("student_id") == student_id]
        )
        last_avg = _mean_completion(
            [p for p in last_week_progress if p.get("student_id") == student_id]
        )
        improvement = current_avg - last_avg
        if improvement > IMPROVER_THRESHOLD:
            improvers.append(
                Improver(name=_student_name(student), improvement=int(round(improvement)))
            )

    improvers.sort(key=lambda i: i.improvement, reverse=True)
    return improvers[:MAX_IMPROVERS]


# =============================================================================
# PROMPTS
# =============================================================================


def build_digest_prompts(
    variant: str,
    class_data: dict[str, Any],
    kpis: DigestKPIs,
    at_risk: list[AtRiskStudent],
    improvers: list[Improver],
) -> tuple[str, str]:
    """System and user prompt for a digest variant."""
    at_risk_text = (
        "; ".join(f"{s.name} ({', '.join(s.reasons)})" for s in at_risk) or "None"
    )
    improvers_text = (
        "; ".join(f"{i.name} (+{i.improvement}%)" for i in improvers) or "None yet"
    )

    user_prompt = get_prompt(
        f"digest/{variant}_user",
        class_name=class_data.get("name", ""),
        subject=class_data.get("subject", ""),
        total_students=kpis.total_students,
        avg_progress=f"{kpis.avg_progress:.0f}",
        avg_progress_last_week=f"{kpis.avg_progress_last_week:.0f}",
        median_score=f"{kpis.median_score:.0f}" if kpis.median_score is not None else "N/A",
        on_time_rate=kpis.on_time_rate,
        late_count=kpis.late_count,
        missing_count=kpis.missing_count,
        reflection_rate=kpis.reflection_rate,
        reflection_count=kpis.reflection_count,
        active_goals=kpis.active_goals,
        completed_goals=kpis.completed_goals,
        goal_completion_rate=kpis.goal_completion_rate,
        at_risk=at_risk_text,
        top_improvers=improvers_text,
    )
    return get_prompt(f"digest/{variant}_system"), user_prompt


# =============================================================================
# DIGEST
# =============================================================================


def validate_digest_request(class_id: Any, variant: Any) -> None:
    """Raise DigestValidationError for a missing class or unknown variant."""
    if not class_id:
        raise DigestValidationError("Class ID is required")
    if variant not in VARIANTS:
        raise DigestValidationError(
            "Invalid variant. Must be teacher, student, or parent"
        )


def generate_class_digest(
    store: BackendStore,
    client: LLMClient,
    class_id: str,
    variant: str = "teacher",
    now: datetime | None = None,
    temperature: float = 0.7,
) -> DigestResult:
    """Return this week's digest, generating and storing it if needed.

    Args:
        store: Managed backend store
        client: AI gateway client
        class_id: Class to summarize
        variant: teacher | student | parent
        now: Reference time (defaults to current UTC time)
        temperature: Sampling temperature

    Returns:
        DigestResult with the stored row and whether it was cached

    Raises:
        DigestValidationError: Invalid class id or variant
        DigestError: Class missing or no active students
        LLMError: Upstream AI failure (rate limit, quota, ...)
    """
    validate_digest_request(class_id, variant)

    now = now or datetime.now(timezone.utc)
    week_end = now
    week_start = now - WEEK
    last_week_start = week_start - WEEK

    existing = store.find_digest(class_id, variant, week_start.date().isoformat())
    if existing is not None:
        logger.info("digest_cached", class_id=class_id, variant=variant)
        return DigestResult(digest=existing, cached=True)

    class_data = store.fetch_class(class_id)
    if class_data is None:
        raise DigestError("Class not found")

    enrollments = store.fetch_active_class_students(class_id)
    student_ids = [e["student_id"] for e in enrollments]
    if not student_ids:
        raise DigestError("No students enrolled in this class")

    this_week = store.fetch_lesson_progress(student_ids, week_start, week_end)
    last_week = store.fetch_lesson_progress(
        student_ids, last_week_start, week_start, include_end=False
    )
    submissions = store.fetch_class_submissions(class_id, week_start)
    goals = store.fetch_goals(student_ids)
    reflections = store.fetch_reflections(student_ids, week_start)

    kpis = compute_kpis(
        total_students=len(student_ids),
        this_week_progress=this_week,
        last_week_progress=last_week,
        submissions=submissions,
        goals=goals,
        reflections=reflections,
        now=now,
    )
    at_risk = find_at_risk_students(enrollments, this_week, last_week, submissions, now)
    improvers = find_top_improvers(enrollments, this_week, last_week)

    logger.info(
        "digest_kpis_computed",
        class_id=class_id,
        variant=variant,
        students=kpis.total_students,
        at_risk=len(at_risk),
        improvers=len(improvers),
    )

    system_prompt, user_prompt = build_digest_prompts(
        variant, class_data, kpis, at_risk, improvers
    )
    ai_insights = client.simple_tool(
        system_prompt, user_prompt, DIGEST_TOOLS[variant], temperature=temperature
    )

    payload: dict[str, Any] = {
        "kpis": kpis.to_payload(),
        "aiInsights": ai_insights,
        "generatedAt": now.isoformat(),
    }
    if variant == "teacher":
        payload["atRiskStudents"] = [s.to_dict() for s in at_risk]
    if variant != "parent":
        payload["topImprovers"] = [i.to_dict() for i in improvers]

    digest = store.insert_digest(
        {
            "class_id": class_id,
            "week_start": week_start.date().isoformat(),
            "week_end": week_end.date().isoformat(),
            "payload_json": payload,
            "variant": variant,
            "teacher_approved": False,
        }
    )

    logger.info("digest_generated", class_id=class_id, variant=variant)
    return DigestResult(digest=digest, cached=False)
