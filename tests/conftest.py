"""Shared fixtures.

The managed backend and the AI gateway are never called from tests:
FakeStore keeps rows in memory and the LLM client is a MagicMock.
"""

from datetime import datetime
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from tailoredu.config.app_config import PersonalizationConfig, clear_config_cache
from tailoredu.core.personalizer import RuleBasedPersonalizer
from tailoredu.web.api import create_app
from tailoredu.web.dependencies import (
    get_active_personalizer,
    get_backend_store,
    get_llm_client,
)


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FakeStore:
    """In-memory stand-in for BackendStore."""

    def __init__(self):
        self.users: dict[str, str] = {
            "student-token": "user-student",
            "teacher-token": "user-teacher",
            "other-token": "user-other",
        }
        self.submissions: dict[str, dict[str, Any]] = {}
        self.teacher_by_assignment: dict[str, str] = {}
        self.rubrics: dict[str, dict[str, Any]] = {}
        self.analyses: list[dict[str, Any]] = []
        self.status_updates: list[tuple[str, str]] = []

        self.classes: dict[str, dict[str, Any]] = {}
        self.enrollments: dict[str, list[dict[str, Any]]] = {}
        self.progress: list[dict[str, Any]] = []
        self.class_submissions: list[dict[str, Any]] = []
        self.goals: list[dict[str, Any]] = []
        self.reflections: list[dict[str, Any]] = []
        self.digests: list[dict[str, Any]] = []

    def user_id_for_token(self, token: str) -> str | None:
        return self.users.get(token)

    def update_submission_status(self, submission_id: str, status: str) -> None:
        self.status_updates.append((submission_id, status))

    def fetch_submission(self, submission_id: str) -> dict[str, Any] | None:
        return self.submissions.get(submission_id)

    def fetch_class_teacher_user_id(self, assignment_id: str) -> str | None:
        return self.teacher_by_assignment.get(assignment_id)

    def fetch_rubric(self, rubric_id: str) -> dict[str, Any] | None:
        return self.rubrics.get(rubric_id)

    def insert_submission_analysis(self, row: dict[str, Any]) -> dict[str, Any]:
        record = {"id": f"analysis-{len(self.analyses) + 1}", **row}
        self.analyses.append(record)
        return record

    def find_digest(
        self, class_id: str, variant: str, week_start: str
    ) -> dict[str, Any] | None:
        matches = [
            d
            for d in self.digests
            if d["class_id"] == class_id
            and d["variant"] == variant
            and d["week_start"] >= week_start
        ]
        return matches[-1] if matches else None

    def fetch_class(self, class_id: str) -> dict[str, Any] | None:
        return self.classes.get(class_id)

    def fetch_active_class_students(self, class_id: str) -> list[dict[str, Any]]:
        return list(self.enrollments.get(class_id, []))

    def fetch_lesson_progress(
        self,
        student_ids: list[str],
        start: datetime,
        end: datetime,
        include_end: bool = True,
    ) -> list[dict[str, Any]]:
        rows = []
        for row in self.progress:
            updated = _ts(row["updated_at"])
            before_end = updated <= end if include_end else updated < end
            if row["student_id"] in student_ids and updated >= start and before_end:
                rows.append(row)
        return rows

    def fetch_class_submissions(
        self, class_id: str, since: datetime
    ) -> list[dict[str, Any]]:
        return [
            s
            for s in self.class_submissions
            if s["assignment"]["class_id"] == class_id
        ]

    def fetch_goals(self, student_ids: list[str]) -> list[dict[str, Any]]:
        return [g for g in self.goals if g["student_id"] in student_ids]

    def fetch_reflections(
        self, student_ids: list[str], since: datetime
    ) -> list[dict[str, Any]]:
        return [
            r
            for r in self.reflections
            if r["student_id"] in student_ids and _ts(r["created_at"]) >= since
        ]

    def insert_digest(self, row: dict[str, Any]) -> dict[str, Any]:
        record = {"id": f"digest-{len(self.digests) + 1}", **row}
        self.digests.append(record)
        return record


@pytest.fixture(autouse=True)
def fresh_config():
    """Reload configuration for every test."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def mock_llm_client():
    """Mock AI gateway client that never calls a real provider."""
    client = MagicMock()
    client.config = MagicMock()
    client.config.provider = "gateway"
    client.config.model = "google/gemini-2.5-flash"
    return client


@pytest.fixture
def personalization_request() -> dict[str, Any]:
    """A valid personalize-assignment request body."""
    return {
        "base_assignment": "The class has 24 students and $5 budget.",
        "student_profile": {
            "student_id": "stu-1",
            "interests": ["animals"],
            "home_language": "en",
            "reading_level": "grade 5",
        },
        "constraints": {
            "max_length_words": 50,
            "must_keep_keywords": ["budget"],
            "reading_level": "grade 5",
            "language_pref": "en",
            "edit_permissions": {"allow_numbers": False, "allow_rubric_edits": False},
        },
    }


@pytest.fixture
def valid_response() -> dict[str, Any]:
    """A response that satisfies the personalization_request constraints."""
    return {
        "personalized_text": "The wildlife team has 24 animals and $5 funding.",
        "rationale": "Reframed the class as a wildlife team for an animal lover.",
        "kept_keywords": ["budget"],
        "changed_elements": ["context", "names"],
        "reading_level_estimate": "grade 5",
    }


@pytest.fixture
def app(fake_store, mock_llm_client):
    """API app wired to the fake store and mock gateway client."""
    app = create_app()
    app.dependency_overrides[get_backend_store] = lambda: fake_store
    app.dependency_overrides[get_llm_client] = lambda: mock_llm_client
    app.dependency_overrides[get_active_personalizer] = lambda: RuleBasedPersonalizer(
        PersonalizationConfig()
    )
    return app


@pytest.fixture
def api_client(app) -> TestClient:
    return TestClient(app)
