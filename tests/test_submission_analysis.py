"""Tests for AI submission analysis."""

import pytest

from tailoredu.core.submission_analysis import (
    ANALYSIS_TOOL,
    AccessDeniedError,
    AnalysisError,
    AnalysisResult,
    analyze_submission,
    build_analysis_prompt,
)
from tailoredu.llm.client import LLMRateLimitError

AI_ANALYSIS = {
    "rubric_scores": {
        "crit-1": {"score": 3, "maxScore": 4, "feedback": "Clear steps."},
    },
    "overall_mastery": "proficient",
    "confidence_score": 0.82,
    "strengths": ["Shows work"],
    "areas_for_growth": ["Simplify answers"],
    "misconceptions": [],
    "personalized_feedback": "Nice job adding the fractions.",
    "recommended_action": "Practice simplifying.",
}


@pytest.fixture
def store(fake_store):
    fake_store.submissions["sub-1"] = {
        "id": "sub-1",
        "user_id": "user-student",
        "assignment_id": "asg-1",
        "status": "submitted",
        "content": {"answer": "1/2 + 1/4 = 3/4"},
        "assignment": {
            "id": "asg-1",
            "title": "Adding Fractions",
            "instructions": "Add the fractions and show your work.",
            "description": None,
        },
    }
    fake_store.teacher_by_assignment["asg-1"] = "user-teacher"
    fake_store.rubrics["rub-1"] = {
        "id": "rub-1",
        "criteria": [
            {"id": "crit-2", "name": "Accuracy", "description": "Correct answer", "max_points": 4, "order_index": 2},
            {"id": "crit-1", "name": "Process", "description": "Shows steps", "max_points": 4, "order_index": 1},
        ],
    }
    return fake_store


@pytest.fixture
def client(mock_llm_client):
    mock_llm_client.simple_tool.return_value = dict(AI_ANALYSIS)
    return mock_llm_client


class TestAnalyzeSubmission:
    """Tests for analyze_submission."""

    def test_owner_can_analyze(self, store, client):
        result = analyze_submission(store, client, "user-student", "sub-1")

        assert result.to_dict()["success"] is True
        assert result.submission["id"] == "sub-1"
        assert result.analysis["overall_mastery"] == "proficient"
        assert store.status_updates == [("sub-1", "analyzing"), ("sub-1", "analyzed")]

    def test_stored_row(self, store, client):
        analyze_submission(store, client, "user-student", "sub-1", rubric_id="rub-1")

        row = store.analyses[0]
        assert row["submission_id"] == "sub-1"
        assert row["rubric_id"] == "rub-1"
        assert row["model_used"] == "google/gemini-2.5-flash"
        assert row["raw_model_output"] == AI_ANALYSIS
        assert row["teacher_reviewed"] is False
        assert row["teacher_modified"] is False
        assert row["rubric_scores"]["crit-1"]["score"] == 3

    def test_class_teacher_can_analyze(self, store, client):
        result = analyze_submission(store, client, "user-teacher", "sub-1")
        assert result.analysis["submission_id"] == "sub-1"

    def test_other_user_denied(self, store, client):
        with pytest.raises(AccessDeniedError, match="Unauthorized to analyze this submission"):
            analyze_submission(store, client, "user-other", "sub-1")

        client.simple_tool.assert_not_called()
        assert store.analyses == []
        assert store.status_updates == []

    def test_denied_when_teacher_unknown(self, store, client):
        store.teacher_by_assignment.clear()
        with pytest.raises(AccessDeniedError):
            analyze_submission(store, client, "user-teacher", "sub-1")

    def test_missing_submission(self, store, client):
        with pytest.raises(AnalysisError, match="Failed to fetch submission"):
            analyze_submission(store, client, "user-student", "sub-404")

    def test_uses_analysis_tool(self, store, client):
        analyze_submission(store, client, "user-student", "sub-1", temperature=0.2)

        args, kwargs = client.simple_tool.call_args
        assert args[2] is ANALYSIS_TOOL
        assert "Adding Fractions" in args[1]
        assert kwargs["temperature"] == 0.2

    def test_rubric_failure_is_not_fatal(self, store, client, monkeypatch):
        def broken(rubric_id):
            raise RuntimeError("rubric table unavailable")

        monkeypatch.setattr(store, "fetch_rubric", broken)

        result = analyze_submission(store, client, "user-student", "sub-1", rubric_id="rub-1")

        assert result.analysis["overall_mastery"] == "proficient"
        assert "No rubric was provided" in client.simple_tool.call_args.args[1]

    def test_invalid_mastery(self, store, client):
        client.simple_tool.return_value = {**AI_ANALYSIS, "overall_mastery": "expert"}
        with pytest.raises(AnalysisError, match="overall_mastery"):
            analyze_submission(store, client, "user-student", "sub-1")
        assert store.analyses == []

    def test_rate_limit_propagates(self, store, client):
        client.simple_tool.side_effect = LLMRateLimitError()
        with pytest.raises(LLMRateLimitError):
            analyze_submission(store, client, "user-student", "sub-1")

    def test_rate_limit_restores_status(self, store, client):
        """A failed attempt puts the submission back to its previous status."""
        client.simple_tool.side_effect = LLMRateLimitError()
        with pytest.raises(LLMRateLimitError):
            analyze_submission(store, client, "user-student", "sub-1")

        assert store.status_updates == [("sub-1", "analyzing"), ("sub-1", "submitted")]

    def test_unusable_output_restores_status(self, store, client):
        client.simple_tool.return_value = {**AI_ANALYSIS, "confidence_score": "high"}
        with pytest.raises(AnalysisError):
            analyze_submission(store, client, "user-student", "sub-1")

        assert store.status_updates[-1] == ("sub-1", "submitted")

    def test_repeat_requests_insert_new_rows(self, store, client):
        analyze_submission(store, client, "user-student", "sub-1")
        analyze_submission(store, client, "user-student", "sub-1")
        assert len(store.analyses) == 2


class TestAnalysisResult:
    def test_confidence_clamped(self):
        result = AnalysisResult.from_dict({**AI_ANALYSIS, "confidence_score": 1.7})
        assert result.confidence_score == 1.0

    def test_non_numeric_confidence(self):
        with pytest.raises(AnalysisError):
            AnalysisResult.from_dict({**AI_ANALYSIS, "confidence_score": "high"})


class TestBuildAnalysisPrompt:
    def test_includes_assignment_and_work(self, store):
        prompt = build_analysis_prompt(store.submissions["sub-1"], None)

        assert "**Title:** Adding Fractions" in prompt
        assert "Add the fractions and show your work." in prompt
        assert '"answer": "1/2 + 1/4 = 3/4"' in prompt
        assert "**Description:**" not in prompt

    def test_criteria_ordered_with_ids(self, store):
        prompt = build_analysis_prompt(store.submissions["sub-1"], store.rubrics["rub-1"])

        assert prompt.index("### Process (id: crit-1)") < prompt.index("### Accuracy (id: crit-2)")
        assert "**Maximum Points:** 4" in prompt

    def test_text_content_used_verbatim(self):
        prompt = build_analysis_prompt({"content": "My essay.", "assignment": {}}, None)
        assert "My essay." in prompt
        assert "Untitled Assignment" in prompt
