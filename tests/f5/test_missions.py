"""Tests for mission templates, generation, progress and scoring."""

from datetime import datetime, timedelta, timezone

import pytest

from examprep.config.personas import get_mission_optimizations
from examprep.core.missions import (
    TEMPLATES_FILE,
    MissionError,
    MissionNotFoundError,
    MissionSubmission,
    MissionTemplate,
    adjust_mission_difficulty,
    calculate_deadline,
    complete_mission,
    difficulty_adjustment_from_performance,
    generate_mission,
    list_missions,
    load_mission,
    load_mission_templates,
    select_best_template,
    update_mission_difficulty_from_test,
    update_mission_progress,
)
from examprep.db.progress_repository import get_user_profile, upsert_user_profile


def daily_mission(data_dir, **kwargs):
    result = generate_mission("alice", "exam", "daily", data_dir=data_dir, **kwargs)
    assert result.success, result.message
    return result.mission


def steps(count, correct=True, seconds=30.0, subject="Mathematics"):
    return [
        MissionSubmission(step=n + 1, is_correct=correct, time_spent_seconds=seconds, subject=subject)
        for n in range(count)
    ]


class TestTemplates:
    def test_default_templates(self):
        templates = load_mission_templates()
        assert len(templates) == 6
        by_id = {t.template_id: t for t in templates}
        assert by_id["exam_monthly_full_test"].total_steps == 100
        assert by_id["tech_daily_coding_challenge"].scoring.method == "rubric"

    def test_yaml_overrides_and_extends(self, data_dir):
        path = data_dir / TEMPLATES_FILE
        path.parent.mkdir(parents=True)
        path.write_text(
            """
templates:
  - template_id: exam_daily_mock_questions
    track: exam
    frequency: daily
    name: Short Daily Quiz
    description: Five quick questions
    estimated_minutes: 5
    total_steps: 5
    scoring:
      min_completion_score: 80
      weights: {accuracy: 1.0}
  - template_id: language_daily_vocab
    track: language
    frequency: daily
    name: Vocabulary Sprint
    description: Ten new words
    estimated_minutes: 10
    total_steps: 10
""",
            encoding="utf-8",
        )
        templates = load_mission_templates(force_reload=True)
        by_id = {t.template_id: t for t in templates}
        assert len(templates) == 7
        assert templates[0].name == "Short Daily Quiz"
        assert by_id["exam_daily_mock_questions"].scoring.min_completion_score == 80
        assert by_id["language_daily_vocab"].scoring.weights == {"accuracy": 1.0}

    def test_broken_yaml_keeps_defaults(self, data_dir):
        path = data_dir / TEMPLATES_FILE
        path.parent.mkdir(parents=True)
        path.write_text("templates: [ {bad", encoding="utf-8")
        assert len(load_mission_templates(force_reload=True)) == 6

    def test_cached(self):
        assert load_mission_templates() is load_mission_templates()


class TestSelectBestTemplate:
    def test_unknown_track(self):
        with pytest.raises(MissionError, match="No templates found for arts daily missions"):
            select_best_template(load_mission_templates(), "arts", "daily")

    def test_matches_track_and_frequency(self):
        template = select_best_template(load_mission_templates(), "course_tech", "weekly")
        assert template.template_id == "tech_weekly_assignment"

    def test_falls_back_when_nothing_supports_request(self):
        template = select_best_template(
            load_mission_templates(), "course_tech", "monthly", persona="student", difficulty="beginner"
        )
        assert template.template_id == "tech_monthly_project"

    def test_prefers_full_match(self):
        narrow = MissionTemplate(
            template_id="narrow",
            track="exam",
            frequency="daily",
            name="Narrow",
            description="",
            estimated_minutes=10,
            total_steps=5,
            supported_difficulties=["expert"],
            supported_personas=["freelancer"],
        )
        wide = MissionTemplate(
            template_id="wide",
            track="exam",
            frequency="daily",
            name="Wide",
            description="",
            estimated_minutes=10,
            total_steps=5,
            supported_difficulties=["expert"],
        )
        assert select_best_template([narrow, wide], "exam", "daily", "student", "expert").template_id == "wide"
        assert select_best_template([narrow, wide], "exam", "daily", "freelancer", "expert").template_id == "narrow"
        assert select_best_template([narrow], "exam", "daily", "student", "expert").template_id == "narrow"


class TestGenerateMission:
    def test_daily_exam_mission(self, data_dir):
        mission = daily_mission(data_dir)
        assert mission.template_id == "exam_daily_mock_questions"
        assert mission.difficulty == "intermediate"
        assert mission.persona == "student"
        assert mission.status == "not_started"
        assert mission.progress.total_steps == 12
        assert mission.subjects == ["general_studies", "mathematics", "reasoning", "english"]
        expected = get_mission_optimizations("student").preferred_duration
        assert mission.persona_optimizations["preferred_duration"] == expected
        assert load_mission("alice", mission.mission_id, data_dir).title == "Daily Mock Questions"

    def test_overrides(self, data_dir):
        deadline = datetime(2030, 1, 1, tzinfo=timezone.utc)
        mission = daily_mission(
            data_dir,
            subjects=["Physics"],
            duration_override=45,
            deadline=deadline,
            difficulty="advanced",
        )
        assert mission.subjects == ["Physics"]
        assert mission.estimated_minutes == 45
        assert mission.deadline == deadline.isoformat()
        assert mission.difficulty == "advanced"

    def test_persona_from_profile(self, data_dir):
        upsert_user_profile("alice", persona="freelancer")
        result = generate_mission("alice", "course_tech", "monthly", difficulty="expert", data_dir=data_dir)
        assert result.success
        assert result.mission.persona == "freelancer"
        assert result.warnings == []

    def test_unsupported_difficulty_warns(self, data_dir):
        result = generate_mission("alice", "exam", "monthly", difficulty="beginner", data_dir=data_dir)
        assert result.success
        assert result.template_used == "exam_monthly_full_test"
        assert result.warnings == ["Template exam_monthly_full_test does not list difficulty beginner"]

    def test_unknown_track_fails(self, data_dir):
        result = generate_mission("alice", "arts", "daily", data_dir=data_dir)
        assert not result.success
        assert result.mission is None

    def test_deadline_by_frequency(self):
        start = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert calculate_deadline("daily", start) == start + timedelta(days=1)
        assert calculate_deadline("weekly", start) == start + timedelta(days=7)
        assert calculate_deadline("monthly", start) == start + timedelta(days=30)
        custom = datetime(2026, 3, 5, tzinfo=timezone.utc)
        assert calculate_deadline("monthly", start, custom) == custom

    def test_listing(self, data_dir):
        first = daily_mission(data_dir)
        second = daily_mission(data_dir)
        update_mission_progress("alice", second.mission_id, steps(1), data_dir)
        assert {m.mission_id for m in list_missions("alice", data_dir=data_dir)} == {
            first.mission_id,
            second.mission_id,
        }
        assert [m.mission_id for m in list_missions("alice", status="in_progress", data_dir=data_dir)] == [
            second.mission_id
        ]
        assert list_missions("bob", data_dir=data_dir) == []

    def test_missing_mission(self, data_dir):
        with pytest.raises(MissionNotFoundError):
            load_mission("alice", "mission_missing", data_dir)


class TestProgressAndCompletion:
    def test_progress_updates(self, data_dir):
        mission = daily_mission(data_dir)
        progress = update_mission_progress("alice", mission.mission_id, steps(3, seconds=60), data_dir)
        assert progress.current_step == 3
        assert progress.completion_percentage == 25.0
        assert progress.time_spent_minutes == 3.0

        stored = load_mission("alice", mission.mission_id, data_dir)
        assert stored.status == "in_progress"
        assert len(stored.progress.submissions) == 3

    def test_perfect_fast_mission(self, data_dir):
        mission = daily_mission(data_dir)
        results = complete_mission("alice", mission.mission_id, steps(12), data_dir)
        assert results.final_score == 100
        assert results.passed
        assert results.achievements == ["Perfect Score", "Early Finisher", "Speed Demon"]
        assert results.strengths == ["Accuracy", "Speed"]
        assert results.total_minutes == 6.0

        stored = load_mission("alice", mission.mission_id, data_dir)
        assert stored.status == "completed"
        assert stored.results.percentage == 100

    def test_half_right_slow_mission(self, data_dir):
        mission = daily_mission(data_dir)
        submissions = [
            MissionSubmission(
                step=n + 1,
                is_correct=n % 2 == 0,
                time_spent_seconds=150,
                subject="Mathematics" if n < 6 else "",
            )
            for n in range(12)
        ]
        update_mission_progress("alice", mission.mission_id, submissions, data_dir)
        results = complete_mission("alice", mission.mission_id, data_dir=data_dir)

        # 0.7 * 50 accuracy + 0.3 * 50 speed
        assert results.final_score == 50
        assert results.passed
        assert results.achievements == []
        assert results.improvements == ["Accuracy", "Speed"]
        assert results.recommendations[0] == "Work on accuracy in the next mission"
        assert results.breakdown == [
            {"subject": "Mathematics", "score": 50.0, "max_score": 100, "time_spent_minutes": 15.0},
            {"subject": "General", "score": 50.0, "max_score": 100, "time_spent_minutes": 15.0},
        ]

    def test_rubric_scores(self, data_dir):
        result = generate_mission("alice", "course_tech", "weekly", data_dir=data_dir)
        mission_id = result.mission.mission_id
        submissions = [
            MissionSubmission(step=1, score=80),
            MissionSubmission(step=2, score=90),
            MissionSubmission(step=3, score=70),
        ]
        results = complete_mission("alice", mission_id, submissions, data_dir)
        assert results.metrics == {"accuracy": 80.0, "quality": 80.0, "creativity": 80.0}
        assert results.final_score == 80
        assert results.passed

    def test_failing_below_minimum(self, data_dir):
        result = generate_mission("alice", "course_tech", "weekly", data_dir=data_dir)
        results = complete_mission(
            "alice", result.mission.mission_id, [MissionSubmission(step=1, score=50)], data_dir
        )
        assert results.percentage == 50
        assert not results.passed

    def test_step_score_clamped(self):
        assert MissionSubmission(step=1, score=140).step_score == 100
        assert MissionSubmission(step=1, score=-5).step_score == 0
        assert MissionSubmission(step=1, is_correct=True).step_score == 100

    def test_empty_completion(self, data_dir):
        mission = daily_mission(data_dir)
        results = complete_mission("alice", mission.mission_id, data_dir=data_dir)
        assert results.final_score == 0
        assert not results.passed

    def test_completed_mission_is_closed(self, data_dir):
        mission = daily_mission(data_dir)
        complete_mission("alice", mission.mission_id, steps(2), data_dir)
        with pytest.raises(MissionError, match="already completed"):
            update_mission_progress("alice", mission.mission_id, steps(1), data_dir)
        with pytest.raises(MissionError, match="already completed"):
            complete_mission("alice", mission.mission_id, data_dir=data_dir)


class TestDifficultyAdjustment:
    @pytest.mark.parametrize(
        "performance,expected",
        [
            ({"final_ability_estimate": 1.2, "standard_error": 0.1, "accuracy": 70}, 0.2),
            ({"final_ability_estimate": -1.0, "standard_error": 0.15, "accuracy": 70}, -0.2),
            ({"final_ability_estimate": 1.2, "standard_error": 0.5, "accuracy": 90}, 0.1),
            ({"final_ability_estimate": 0.0, "standard_error": 0.5, "accuracy": 40}, -0.1),
            ({"final_ability_estimate": 0.0, "standard_error": 0.5, "accuracy": 70}, 0.0),
            ({}, -0.1),
        ],
    )
    def test_adjustment_from_performance(self, performance, expected):
        assert difficulty_adjustment_from_performance(performance) == expected

    def test_level_shift(self):
        assert adjust_mission_difficulty("intermediate", 0.2) == "advanced"
        assert adjust_mission_difficulty("intermediate", -0.2) == "beginner"
        assert adjust_mission_difficulty("intermediate", 0.1) == "intermediate"
        assert adjust_mission_difficulty("expert", 0.2) == "expert"
        assert adjust_mission_difficulty("beginner", -0.2) == "beginner"

    def test_test_result_moves_stored_preference(self, data_dir):
        strong = {"final_ability_estimate": 1.0, "standard_error": 0.1, "accuracy": 90}
        assert update_mission_difficulty_from_test("alice", strong, data_dir) == "advanced"
        assert get_user_profile("alice", data_dir).mission_difficulty == "advanced"

        assert update_mission_difficulty_from_test("alice", strong, data_dir) == "expert"
        weak = {"final_ability_estimate": -1.0, "standard_error": 0.1, "accuracy": 30}
        assert update_mission_difficulty_from_test("alice", weak, data_dir) == "advanced"

    def test_preference_keeps_profile_fields(self, data_dir):
        upsert_user_profile("alice", persona="freelancer")
        update_mission_difficulty_from_test("alice", {"accuracy": 90, "final_ability_estimate": 1.0}, data_dir)
        profile = get_user_profile("alice", data_dir)
        assert profile.persona == "freelancer"
        assert profile.mission_difficulty == "intermediate"

    def test_next_mission_uses_preference(self, data_dir):
        update_mission_difficulty_from_test(
            "alice", {"final_ability_estimate": 1.0, "standard_error": 0.1, "accuracy": 90}, data_dir
        )
        assert daily_mission(data_dir).difficulty == "advanced"
        assert daily_mission(data_dir, difficulty="beginner").difficulty == "beginner"
