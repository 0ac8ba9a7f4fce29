"""Tests for the prep CLI (F6)."""

import pytest
from typer.testing import CliRunner

from examprep.cli.commands import app
from examprep.core.adaptive_testing import get_adaptive_testing_service
from examprep.core.progress import record_topic_result
from examprep.core.question_bank import save_questions
from examprep.db.progress_repository import get_user_profile
from examprep.llm.client import LLMError

runner = CliRunner()


@pytest.fixture(autouse=True)
def mocked_generator(data_dir, mock_llm):
    """Keep question generation away from a real provider."""
    get_adaptive_testing_service()._llm_client = mock_llm
    return mock_llm


@pytest.fixture
def stocked(data_dir, question_pool):
    save_questions("alice", question_pool, data_dir)
    return question_pool


def create_test(*extra: str) -> str:
    result = runner.invoke(
        app,
        ["create-test", "Algebra", "--user", "alice", "-s", "Mathematics", "-s", "Physics", "-n", "5", *extra],
    )
    assert result.exit_code == 0, result.output
    return get_adaptive_testing_service().get_user_tests("alice")[0].test_id


class TestCreateTest:
    def test_from_stored_questions(self, stocked):
        result = runner.invoke(
            app, ["create-test", "Algebra", "--user", "alice", "-s", "Mathematics", "-s", "Physics", "-n", "5"]
        )
        assert result.exit_code == 0
        assert "Test created with 12 questions" in result.output
        assert "test_id: test_" in result.output

    def test_generation_failure(self, mocked_generator):
        mocked_generator.simple_json.side_effect = LLMError("offline")
        result = runner.invoke(app, ["create-test", "Algebra", "--user", "alice", "-s", "Mathematics"])
        assert result.exit_code == 1
        assert "Unable to generate questions" in result.output

    def test_invalid_difficulty(self):
        result = runner.invoke(
            app, ["create-test", "Algebra", "--user", "alice", "-s", "Mathematics", "--min-difficulty", "easy"]
        )
        assert result.exit_code == 2


class TestListTests:
    def test_empty(self):
        result = runner.invoke(app, ["tests", "--user", "alice"])
        assert result.exit_code == 0
        assert "No tests found" in result.output

    def test_lists_created_test(self, stocked):
        create_test()
        result = runner.invoke(app, ["tests", "--user", "alice"])
        assert result.exit_code == 0
        assert "Algebra" in result.output
        assert "active" in result.output


class TestTakeTest:
    def test_answers_until_complete(self, stocked):
        test_id = create_test()
        result = runner.invoke(app, ["take-test", test_id, "--user", "alice"], input="A\n" * 5)
        assert result.exit_code == 0, result.output
        assert "Session started" in result.output
        assert "Test completed" in result.output
        assert "Score: 5/5 (100%)" in result.output

    def test_pause_and_continue(self, stocked):
        test_id = create_test()
        paused = runner.invoke(app, ["take-test", test_id, "--user", "alice"], input="pause\n")
        assert "Session paused" in paused.output

        resumed = runner.invoke(app, ["take-test", test_id[:8], "--user", "alice"], input="A\n" * 5)
        assert resumed.exit_code == 0, resumed.output
        assert "Resuming session" in resumed.output
        assert "Test completed" in resumed.output

    def test_rejects_invalid_letter(self, stocked):
        test_id = create_test()
        result = runner.invoke(app, ["take-test", test_id, "--user", "alice"], input="Z\npause\n")
        assert "Enter one of the option letters" in result.output

    def test_unknown_test(self):
        result = runner.invoke(app, ["take-test", "test_nope", "--user", "alice"])
        assert result.exit_code == 1


class TestRecommend:
    def test_no_data(self):
        result = runner.invoke(app, ["recommend", "--user", "alice", "--no-llm"])
        assert result.exit_code == 0
        assert "No recommendations yet" in result.output

    def test_weak_subject_listed(self):
        record_topic_result("alice", "Mathematics", 10, 4)
        record_topic_result("alice", "Physics", 10, 9)
        result = runner.invoke(app, ["recommend", "--user", "alice", "--no-llm"])
        assert result.exit_code == 0
        assert "Mathematics" in result.output
        assert "Challenge" in result.output

    def test_unknown_preset(self):
        result = runner.invoke(app, ["recommend", "--user", "alice", "--no-llm", "--preset", "marathon"])
        assert result.exit_code == 1


class TestMission:
    def test_daily_mission(self):
        result = runner.invoke(app, ["mission", "--user", "alice"])
        assert result.exit_code == 0
        assert "Mission created from Daily Mock Questions" in result.output
        assert "mission_id: mission_" in result.output

    def test_unknown_track(self):
        result = runner.invoke(app, ["mission", "--user", "alice", "--track", "arts"])
        assert result.exit_code == 1


class TestStudyGoal:
    def test_working_professional(self):
        result = runner.invoke(
            app, ["study-goal", "--persona", "working_professional", "--work-start", "09:00", "--work-end", "18:00"]
        )
        assert result.exit_code == 0
        assert "Recommended: 415 min/day" in result.output

    def test_goal_adjusted(self):
        result = runner.invoke(app, ["study-goal", "--persona", "student", "--goal", "1000"])
        assert "1000 min adjusted to 720 min" in result.output

    def test_goal_saved_to_profile(self):
        result = runner.invoke(app, ["study-goal", "--persona", "freelancer", "--goal", "300", "--user", "alice"])
        assert result.exit_code == 0
        assert "300 min is realistic" in result.output
        profile = get_user_profile("alice")
        assert profile.persona == "freelancer"
        assert profile.study_goal_minutes == 300
