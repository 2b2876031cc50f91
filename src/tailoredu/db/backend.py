"""Managed backend (Supabase) access.

The hosted Postgres owns every table, constraint and row-level security
policy; this module only names the tables and columns the functions read
and write, and authenticates callers against the backend's auth service.

Usage:
    from tailoredu.db.backend import get_store

    store = get_store()
    user_id = store.user_id_for_token(token)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from supabase import Client, create_client

from tailoredu.config.app_config import load_app_config

logger = structlog.get_logger(__name__)

SUBMISSION_WITH_ASSIGNMENT = (
    "*, assignment:assignment_id (id, title, instructions, description)"
)

RUBRIC_WITH_CRITERIA = (
    "*, criteria:rubric_criteria (id, name, description, max_points, order_index)"
)

CLASS_WITH_TEACHER = "*, teacher_profiles!inner(user_id, profiles:user_id(full_name))"

CLASS_SUBMISSIONS = (
    "*, assignment:class_assignments_new!inner(id, title, due_at, class_id), "
    "grades:assignment_grades(grade, graded_at)"
)


class BackendError(Exception):
    """Error talking to the managed backend."""

    pass


class BackendNotConfiguredError(BackendError):
    """Backend URL or service key missing from the environment."""

    pass


def _rows(response: Any) -> list[dict[str, Any]]:
    if response is None or response.data is None:
        return []
    return list(response.data)


def _single(response: Any) -> dict[str, Any] | None:
    # maybe_single() answers None (not an empty response) when no row matches
    if response is None or not response.data:
        return None
    return response.data


class BackendStore:
    """Table reads/writes used by the AI functions."""

    def __init__(self, client: Client):
        self.client = client

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def user_id_for_token(self, token: str) -> str | None:
        """Resolve a bearer token to the caller's user id.

        Returns None for invalid or expired tokens.
        """
        try:
            response = self.client.auth.get_user(token)
        except Exception as e:
            logger.warning("auth_token_rejected", error=str(e))
            return None
        if response is None or response.user is None:
            return None
        return response.user.id

    # -------------------------------------------------------------------------
    # Submissions
    # -------------------------------------------------------------------------

    def update_submission_status(self, submission_id: str, status: str) -> None:
        self.client.table("assignment_submissions").update({"status": status}).eq(
            "id", submission_id
        ).execute()

    def fetch_submission(self, submission_id: str) -> dict[str, Any] | None:
        """Submission row joined with its assignment."""
        response = (
            self.client.table("assignment_submissions")
            .select(SUBMISSION_WITH_ASSIGNMENT)
            .eq("id", submission_id)
            .maybe_single()
            .execute()
        )
        return _single(response)

    def fetch_class_teacher_user_id(self, assignment_id: str) -> str | None:
        """User id of the teacher who owns the assignment's class."""
        assignment = _single(
            self.client.table("class_assignments_new")
            .select("class_id")
            .eq("id", assignment_id)
            .maybe_single()
            .execute()
        )
        if assignment is None:
            return None

        class_row = _single(
            self.client.table("classes")
            .select("teacher_id")
            .eq("id", assignment["class_id"])
            .maybe_single()
            .execute()
        )
        if class_row is None or not class_row.get("teacher_id"):
            return None

        teacher = _single(
            self.client.table("teacher_profiles")
            .select("user_id")
            .eq("id", class_row["teacher_id"])
            .maybe_single()
            .execute()
        )
        return teacher.get("user_id") if teacher else None

    def fetch_rubric(self, rubric_id: str) -> dict[str, Any] | None:
        """Rubric row with its criteria."""
        response = (
            self.client.table("rubrics")
            .select(RUBRIC_WITH_CRITERIA)
            .eq("id", rubric_id)
            .maybe_single()
            .execute()
        )
        return _single(response)

    def insert_submission_analysis(self, row: dict[str, Any]) -> dict[str, Any]:
        rows = _rows(self.client.table("submission_analyses").insert(row).execute())
        if not rows:
            raise BackendError("Failed to store analysis")
        return rows[0]

    # -------------------------------------------------------------------------
    # Class digest
    # -------------------------------------------------------------------------

    def find_digest(
        self, class_id: str, variant: str, week_start: str
    ) -> dict[str, Any] | None:
        """Digest for the class/variant whose week starts on or after week_start."""
        response = (
            self.client.table("class_weekly_digests")
            .select("*")
            .eq("class_id", class_id)
            .eq("variant", variant)
            .gte("week_start", week_start)
            .order("week_start", desc=True)
            .limit(1)
            .execute()
        )
        rows = _rows(response)
        return rows[0] if rows else None

    def fetch_class(self, class_id: str) -> dict[str, Any] | None:
        response = (
            self.client.table("classes")
            .select(CLASS_WITH_TEACHER)
            .eq("id", class_id)
            .maybe_single()
            .execute()
        )
        return _single(response)

    def fetch_active_class_students(self, class_id: str) -> list[dict[str, Any]]:
        """Active enrollments, each with its `students` row."""
        response = (
            self.client.table("class_students")
            .select("student_id, students!inner(*)")
            .eq("class_id", class_id)
            .eq("status", "active")
            .execute()
        )
        return _rows(response)

    def fetch_lesson_progress(
        self,
        student_ids: list[str],
        start: datetime,
        end: datetime,
        include_end: bool = True,
    ) -> list[dict[str, Any]]:
        query = (
            self.client.table("lesson_progress")
            .select("*")
            .in_("student_id", student_ids)
            .gte("updated_at", start.isoformat())
        )
        if include_end:
            query = query.lte("updated_at", end.isoformat())
        else:
            query = query.lt("updated_at", end.isoformat())
        return _rows(query.execute())

    def fetch_class_submissions(
        self, class_id: str, since: datetime
    ) -> list[dict[str, Any]]:
        """Submissions for the class updated since `since`, with grades."""
        response = (
            self.client.table("assignment_submissions")
            .select(CLASS_SUBMISSIONS)
            .eq("assignment.class_id", class_id)
            .gte("updated_at", since.isoformat())
            .execute()
        )
        return _rows(response)

    def fetch_goals(self, student_ids: list[str]) -> list[dict[str, Any]]:
        response = (
            self.client.table("student_goals")
            .select("*")
            .in_("student_id", student_ids)
            .execute()
        )
        return _rows(response)

    def fetch_reflections(
        self, student_ids: list[str], since: datetime
    ) -> list[dict[str, Any]]:
        response = (
            self.client.table("student_reflections")
            .select("*")
            .in_("student_id", student_ids)
            .gte("created_at", since.isoformat())
            .execute()
        )
        return _rows(response)

    def insert_digest(self, row: dict[str, Any]) -> dict[str, Any]:
        rows = _rows(self.client.table("class_weekly_digests").insert(row).execute())
        if not rows:
            raise BackendError("Failed to store digest")
        return rows[0]


# Module-level client (one per process)
_store: BackendStore | None = None


def get_store() -> BackendStore:
    """Get or create the backend store.

    Raises:
        BackendNotConfiguredError: If URL or service key is missing
    """
    global _store
    if _store is None:
        backend = load_app_config().backend
        url = backend.get_url()
        key = backend.get_service_key()
        if not url or not key:
            raise BackendNotConfiguredError(
                f"Backend credentials not configured. Set {backend.url_env} "
                f"and {backend.service_key_env}."
            )
        _store = BackendStore(create_client(url, key))
        logger.info("backend_client_initialized", url=url)
    return _store


def reset_store() -> None:
    """Drop the cached store (tests, credential rotation)."""
    global _store
    _store = None
