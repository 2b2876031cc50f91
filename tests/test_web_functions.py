"""Tests for the authenticated AI functions and the health check."""

import pytest

from tailoredu import __version__
from tailoredu.llm.client import LLMPaymentRequiredError, LLMRateLimitError

ANALYZE_URL = "/functions/analyze-submission"
DIGEST_URL = "/functions/ai-class-digest"

STUDENT = {"Authorization": "Bearer student-token"}
TEACHER = {"Authorization": "Bearer teacher-token"}
OTHER = {"Authorization": "Bearer other-token"}

AI_ANALYSIS = {
    "rubric_scores": {},
    "overall_mastery": "developing",
    "confidence_score": 0.6,
    "strengths": ["Attempted every question"],
    "areas_for_growth": ["Check units"],
    "misconceptions": ["Adds denominators"],
    "personalized_feedback": "Good effort.",
    "recommended_action": "Review common denominators.",
}


@pytest.fixture
def store(fake_store):
    fake_store.submissions["sub-1"] = {
        "id": "sub-1",
        "user_id": "user-student",
        "assignment_id": "asg-1",
        "content": "1/2 + 1/3 = 2/5",
        "assignment": {"title": "Fractions", "instructions": "Add."},
    }
    fake_store.teacher_by_assignment["asg-1"] = "user-teacher"
    fake_store.classes["class-1"] = {"id": "class-1", "name": "Algebra I", "subject": "Math"}
    fake_store.enrollments["class-1"] = [
        {
            "student_id": "s1",
            "students": {"id": "s1", "user_id": "u1", "first_name": "Ana", "last_name": "Lopez"},
        }
    ]
    return fake_store


class TestHealth:
    def test_health(self, api_client):
        response = api_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["version"] == __version__
        assert data["timestamp"]


class TestAuthentication:
    """Both AI functions require a valid bearer token."""

    @pytest.mark.parametrize("url", [ANALYZE_URL, DIGEST_URL])
    def test_missing_header(self, api_client, url):
        response = api_client.post(url, json={})
        assert response.status_code == 401
        assert response.json() == {"error": "Missing authorization header"}

    @pytest.mark.parametrize("url", [ANALYZE_URL, DIGEST_URL])
    def test_invalid_token(self, api_client, url):
        response = api_client.post(url, json={}, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    @pytest.mark.parametrize("url", [ANALYZE_URL, DIGEST_URL])
    def test_preflight_needs_no_auth(self, api_client, url):
        assert api_client.options(url).status_code == 204


class TestAnalyzeSubmission:
    """Tests for POST /functions/analyze-submission."""

    def test_owner(self, api_client, store, mock_llm_client):
        mock_llm_client.simple_tool.return_value = dict(AI_ANALYSIS)

        response = api_client.post(ANALYZE_URL, json={"submissionId": "sub-1"}, headers=STUDENT)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["analysis"]["overall_mastery"] == "developing"
        assert data["analysis"]["rubric_id"] is None
        assert data["submission"]["id"] == "sub-1"
        assert store.status_updates[-1] == ("sub-1", "analyzed")

    def test_uses_configured_temperature(self, api_client, store, mock_llm_client):
        mock_llm_client.simple_tool.return_value = dict(AI_ANALYSIS)
        api_client.post(ANALYZE_URL, json={"submissionId": "sub-1"}, headers=TEACHER)
        assert mock_llm_client.simple_tool.call_args.kwargs["temperature"] == 0.3

    def test_missing_submission_id(self, api_client, store):
        response = api_client.post(ANALYZE_URL, json={}, headers=STUDENT)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing submissionId"}

    def test_forbidden(self, api_client, store, mock_llm_client):
        response = api_client.post(ANALYZE_URL, json={"submissionId": "sub-1"}, headers=OTHER)

        assert response.status_code == 403
        assert response.json() == {"error": "Unauthorized to analyze this submission"}
        mock_llm_client.simple_tool.assert_not_called()
        assert store.status_updates == []

    def test_unknown_submission(self, api_client, store):
        response = api_client.post(ANALYZE_URL, json={"submissionId": "sub-404"}, headers=STUDENT)
        assert response.status_code == 500
        assert "sub-404" in response.json()["error"]

    @pytest.mark.parametrize(
        "error,status",
        [(LLMRateLimitError(), 429), (LLMPaymentRequiredError(), 402)],
    )
    def test_upstream_limits(self, api_client, store, mock_llm_client, error, status):
        mock_llm_client.simple_tool.side_effect = error

        response = api_client.post(ANALYZE_URL, json={"submissionId": "sub-1"}, headers=STUDENT)

        assert response.status_code == status
        assert response.json() == {"error": str(error)}
        assert store.analyses == []
        assert store.status_updates[-1] == ("sub-1", "submitted")


class TestClassDigest:
    """Tests for POST /functions/ai-class-digest."""

    def test_generates_then_caches(self, api_client, store, mock_llm_client):
        mock_llm_client.simple_tool.return_value = {
            "learning_trend": "Steady.",
            "goals_status": "No goals yet.",
            "engagement_note": "Quiet week.",
            "action_steps": ["a", "b", "c"],
        }

        first = api_client.post(DIGEST_URL, json={"classId": "class-1"}, headers=TEACHER)
        second = api_client.post(DIGEST_URL, json={"classId": "class-1"}, headers=TEACHER)

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert first.json()["digest"]["variant"] == "teacher"
        assert "atRiskStudents" in first.json()["digest"]["payload_json"]
        assert second.json()["cached"] is True
        assert second.json()["digest"]["id"] == first.json()["digest"]["id"]
        assert mock_llm_client.simple_tool.call_count == 1

    def test_student_variant(self, api_client, store, mock_llm_client):
        mock_llm_client.simple_tool.return_value = {
            "celebration": "Yay!",
            "next_focus": "Graphs.",
            "encouragement": "Keep it up.",
        }

        response = api_client.post(
            DIGEST_URL, json={"classId": "class-1", "variant": "student"}, headers=STUDENT
        )

        assert response.status_code == 200
        payload = response.json()["digest"]["payload_json"]
        assert "atRiskStudents" not in payload
        assert payload["aiInsights"]["celebration"] == "Yay!"

    def test_missing_class_id(self, api_client, store):
        response = api_client.post(DIGEST_URL, json={}, headers=TEACHER)
        assert response.status_code == 400
        assert response.json() == {"error": "Class ID is required"}

    def test_invalid_variant(self, api_client, store):
        response = api_client.post(
            DIGEST_URL, json={"classId": "class-1", "variant": "principal"}, headers=TEACHER
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid variant. Must be teacher, student, or parent"}

    def test_class_not_found(self, api_client, store):
        response = api_client.post(DIGEST_URL, json={"classId": "class-404"}, headers=TEACHER)
        assert response.status_code == 500
        assert response.json() == {"error": "Class not found"}

    def test_rate_limited(self, api_client, store, mock_llm_client):
        mock_llm_client.simple_tool.side_effect = LLMRateLimitError()

        response = api_client.post(DIGEST_URL, json={"classId": "class-1"}, headers=TEACHER)

        assert response.status_code == 429
        assert store.digests == []
