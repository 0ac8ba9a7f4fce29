"""Tests for the IRT adaptive testing algorithm."""

import pytest

from examprep.core.adaptive_algorithm import (
    SelectionConstraints,
    analyze_question_bank,
    analyze_test_performance,
    confidence_based_selection,
    estimate_ability,
    fatigue_aware_selection,
    fatigue_level,
    generate_adaptive_metrics,
    item_information,
    journey_focused_selection,
    mission_aligned_selection,
    progressive_difficulty_selection,
    response_probability,
    select_next_question,
    should_continue_testing,
    standard_error,
)
from examprep.core.test_repository import TestResponse


def respond(question, correct: bool, time_ms: int = 20_000, confidence=None) -> TestResponse:
    return TestResponse(
        question_id=question.question_id,
        user_answer="x",
        is_correct=correct,
        response_time_ms=time_ms,
        question_difficulty=question.difficulty,
        subject=question.subject,
        topic=question.topic,
        confidence=confidence,
    )


@pytest.fixture
def by_id(question_pool):
    return {q.question_id: q for q in question_pool}


@pytest.fixture
def same_level(question_factory):
    """Sixteen intermediate questions."""
    return [question_factory(f"i{n}") for n in range(16)]


class TestResponseProbability:
    def test_even_odds_at_matching_difficulty(self):
        assert response_probability(0.4, 0.4) == pytest.approx(0.5)

    def test_clamped_to_bounds(self):
        assert response_probability(10.0, 0.0) == 0.99
        assert response_probability(-10.0, 0.0) == 0.01

    def test_guessing_raises_floor(self):
        assert response_probability(0.4, 0.4, guessing=0.25) == pytest.approx(0.625)

    def test_information_peaks_at_difficulty(self, by_id):
        question = by_id["int0"]
        assert item_information(0.4, question) == pytest.approx(0.25)
        assert item_information(1.5, question) < 0.25


class TestEstimateAbility:
    def test_no_responses(self, question_pool):
        assert estimate_ability([], question_pool) == 0.0

    def test_unknown_questions_ignored(self, question_pool, question_factory):
        stranger = question_factory("other")
        assert estimate_ability([respond(stranger, True)], question_pool) == 0.0

    def test_all_correct_hits_upper_bound(self, same_level):
        responses = [respond(q, True) for q in same_level[:5]]
        assert estimate_ability(responses, same_level) == 4.0

    def test_all_wrong_hits_lower_bound(self, same_level):
        responses = [respond(q, False) for q in same_level[:5]]
        assert estimate_ability(responses, same_level) == -4.0

    def test_half_correct_lands_on_difficulty(self, same_level):
        responses = [respond(q, n % 2 == 0) for n, q in enumerate(same_level[:6])]
        assert estimate_ability(responses, same_level) == pytest.approx(0.4, abs=0.01)


class TestStandardError:
    def test_no_information(self, question_pool):
        assert standard_error(0.0, [], question_pool) == 1.0

    def test_shrinks_with_more_items(self, same_level):
        four = [respond(q, True) for q in same_level[:4]]
        sixteen = [respond(q, True) for q in same_level]
        assert standard_error(0.4, four, same_level) == pytest.approx(1.0)
        assert standard_error(0.4, sixteen, same_level) == pytest.approx(0.5)


class TestSelectNextQuestion:
    def test_closest_difficulty_wins(self, question_pool):
        assert select_next_question(question_pool, 0.6).question_id == "adv0"

    def test_low_ability_gets_beginner(self, question_pool):
        assert select_next_question(question_pool, -1.0).question_id == "beg0"

    def test_answered_questions_excluded(self, question_pool, by_id):
        previous = [respond(by_id["adv0"], True)]
        assert select_next_question(question_pool, 0.6, previous).question_id == "adv1"

    def test_none_when_exhausted(self, question_pool):
        previous = [respond(q, True) for q in question_pool]
        assert select_next_question(question_pool, 0.0, previous) is None

    def test_allowed_difficulties(self, question_pool):
        constraints = SelectionConstraints(allowed_difficulties=["beginner"])
        assert select_next_question(question_pool, 0.6, constraints=constraints).question_id == "beg0"

    def test_empty_constraint_result_falls_back(self, question_pool):
        constraints = SelectionConstraints(allowed_difficulties=["impossible"])
        assert select_next_question(question_pool, 0.6, constraints=constraints).question_id == "adv0"

    def test_avoid_recent_topics(self, question_pool, by_id):
        previous = [respond(by_id["beg0"], True)]  # topic t0
        constraints = SelectionConstraints(avoid_recent_topics=True)
        choice = select_next_question(question_pool, 0.6, previous, constraints)
        assert choice.question_id == "adv1"

    def test_subject_distribution_favors_underrepresented(self, question_pool, by_id):
        previous = [respond(by_id["beg0"], True), respond(by_id["beg1"], True)]
        constraints = SelectionConstraints(
            subject_distribution={"Mathematics": 0.5, "Physics": 0.5}
        )
        choice = select_next_question(question_pool, 0.6, previous, constraints)
        assert choice.subject == "Physics"
        assert choice.question_id == "adv2"


class TestSpecializedSelection:
    def test_journey_focused_prefers_journey_subjects(self, question_pool):
        choice = journey_focused_selection(question_pool, 0.6, ["physics"])
        assert choice.question_id == "adv2"

    def test_journey_focused_falls_back(self, question_pool):
        choice = journey_focused_selection(question_pool, 0.6, ["History"])
        assert choice.question_id == "adv0"

    def test_progressive_opens_with_beginner(self, question_pool):
        assert progressive_difficulty_selection(question_pool, 0.9).question_id == "beg0"

    def test_progressive_steps_up_after_one_correct(self, question_pool, by_id):
        previous = [respond(by_id["int0"], True)]
        assert progressive_difficulty_selection(question_pool, 0.0, previous).difficulty == "advanced"

    def test_progressive_steps_down_after_one_wrong(self, question_pool, by_id):
        previous = [respond(by_id["int0"], False)]
        assert progressive_difficulty_selection(question_pool, 0.9, previous).difficulty == "beginner"

    @pytest.mark.parametrize(
        "outcomes,expected",
        [
            ((True, False, True), "intermediate"),
            ((False, True, False), "beginner"),
            ((False, True, True, True), "advanced"),
        ],
    )
    def test_progressive_uses_last_three_answers(self, question_pool, by_id, outcomes, expected):
        answered = ["beg0", "beg1", "int0", "int1"][-len(outcomes) :]
        previous = [respond(by_id[qid], ok) for qid, ok in zip(answered, outcomes)]
        assert progressive_difficulty_selection(question_pool, 0.0, previous).difficulty == expected

    def test_progressive_holds_on_mixed(self, question_pool, by_id):
        previous = [respond(by_id["int0"], True), respond(by_id["int1"], False)]
        choice = progressive_difficulty_selection(question_pool, 0.9, previous)
        assert choice.question_id == "int2"

    def test_fatigue_level(self):
        assert fatigue_level([]) == 1.0
        assert fatigue_level([1000.0]) == 1.0
        assert fatigue_level([1000.0, 1000.0, 2000.0]) == pytest.approx(1.0)
        assert fatigue_level([1000.0, 1000.0, 3000.0, 3000.0, 3000.0]) == pytest.approx(3000 / 2200)

    def test_single_slow_answer_is_not_fatigue(self, question_pool):
        spike = [1000.0, 1000.0, 1000.0, 1000.0, 3000.0]
        assert fatigue_aware_selection(question_pool, 0.6, [], spike).question_id == "adv0"

    def test_fatigue_lowers_difficulty(self, question_pool):
        tired = [1000.0, 1000.0, 3000.0, 3000.0, 3000.0]
        assert fatigue_aware_selection(question_pool, 0.6, [], tired).question_id == "int0"

    def test_no_fatigue_uses_standard_selection(self, question_pool):
        steady = [1000.0, 1000.0, 1000.0]
        assert fatigue_aware_selection(question_pool, 0.6, [], steady).question_id == "adv0"

    def test_overconfidence_gets_harder_items(self, question_pool, by_id):
        previous = [respond(by_id["beg0"], False, confidence=5)]
        choice = confidence_based_selection(question_pool, 0.0, previous)
        assert choice.difficulty in ("advanced", "expert")

    def test_underconfidence_gets_easier_items(self, question_pool, by_id):
        previous = [respond(by_id["exp0"], True, confidence=1)]
        choice = confidence_based_selection(question_pool, 0.9, previous)
        assert choice.difficulty in ("beginner", "intermediate")

    def test_mission_aligned(self, question_pool):
        assert mission_aligned_selection(question_pool, 0.0, ["expert"]).question_id == "exp0"


class TestShouldContinueTesting:
    def test_max_questions_checked_first(self, same_level):
        responses = [respond(q, True) for q in same_level[:3]]
        assert not should_continue_testing(responses, same_level, 0.0, max_questions=3, min_questions=5)

    def test_below_min_continues(self, same_level):
        responses = [respond(q, True) for q in same_level[:2]]
        assert should_continue_testing(responses, same_level, 0.0, max_questions=20)

    def test_stops_at_target_standard_error(self, same_level):
        responses = [respond(q, n % 2 == 0) for n, q in enumerate(same_level[:6])]
        ability = estimate_ability(responses, same_level)
        assert not should_continue_testing(
            responses, same_level, ability, max_questions=20, target_standard_error=0.9
        )

    def test_continues_while_error_high(self, same_level):
        responses = [respond(q, n % 2 == 0) for n, q in enumerate(same_level[:6])]
        ability = estimate_ability(responses, same_level)
        assert should_continue_testing(responses, same_level, ability, max_questions=20)

    def test_stability_stops_after_ten(self, same_level):
        responses = [respond(q, n % 2 == 0) for n, q in enumerate(same_level[:12])]
        ability = estimate_ability(responses, same_level)
        assert not should_continue_testing(
            responses, same_level, ability, max_questions=20, stability_threshold=0.5
        )
        assert should_continue_testing(
            responses, same_level, ability, max_questions=20, stability_threshold=0.1
        )


class TestAdaptiveMetrics:
    def test_empty(self, question_pool):
        metrics = generate_adaptive_metrics([], question_pool, 0.0, "CAT")
        assert metrics.algorithm_type == "CAT"
        assert metrics.convergence_history == []

    def test_history_and_ratios(self, same_level):
        responses = [respond(q, True, time_ms=10_000) for q in same_level[:5]]
        metrics = generate_adaptive_metrics(responses, same_level, 0.0)
        assert [e.question_number for e in metrics.convergence_history] == [1, 2, 3, 4, 5]
        assert metrics.algorithm_efficiency == 1.0
        assert metrics.journey_goal_update == 1.0
        assert metrics.track_progress_contribution == pytest.approx(1.0)

    def test_mission_adjustment_clamped(self, same_level):
        responses = [respond(q, True) for q in same_level[:5]]
        assert generate_adaptive_metrics(responses, same_level, 3.0).mission_difficulty_adjustment == 0.2
        assert generate_adaptive_metrics(
            responses, same_level, -0.5
        ).mission_difficulty_adjustment == pytest.approx(-0.05)

    def test_half_correct_goal_update(self, same_level):
        responses = [respond(q, n % 2 == 0, time_ms=60_000) for n, q in enumerate(same_level[:4])]
        metrics = generate_adaptive_metrics(responses, same_level, 0.4)
        assert metrics.journey_goal_update == pytest.approx(0.5)
        assert metrics.track_progress_contribution == pytest.approx(2 / 4.4)

    def test_to_dict_serializes_history(self, same_level):
        responses = [respond(q, True) for q in same_level[:2]]
        data = generate_adaptive_metrics(responses, same_level, 0.0).to_dict()
        assert data["convergence_history"][0]["question_number"] == 1


class TestAnalysis:
    def test_empty_bank(self):
        assert analyze_question_bank([]) == ["Question bank is empty; generate questions before testing"]

    def test_balanced_bank_has_no_advice(self, question_pool):
        assert analyze_question_bank(question_pool) == []

    def test_missing_level_flagged(self, question_pool):
        without_expert = [q for q in question_pool if q.difficulty != "expert"]
        assert "Add more expert questions (0 available)" in analyze_question_bank(without_expert)

    def test_low_discrimination_flagged(self, question_pool):
        for question in question_pool[:4]:
            question.discrimination = 0.3
        assert "Review questions with low discrimination" in analyze_question_bank(question_pool)

    def test_performance_report(self, same_level):
        assert analyze_test_performance([]).accuracy == 0.0
        report = analyze_test_performance([respond(q, True) for q in same_level[:5]])
        assert report.accuracy == 1.0
        assert "Move on to harder material" in report.recommendations
