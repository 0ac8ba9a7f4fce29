"""CLI commands for the exam prep engine.

Commands:
- create-test: Create an adaptive test (stored questions or LLM generated)
- take-test: Answer an adaptive test interactively
- tests: List a user's tests
- recommend: Ranked test recommendations
- mission: Generate a mission
- study-goal: Realistic daily study time for a persona
- serve: Run the Web API
"""

import time

import typer
from rich.console import Console
from rich.table import Table

from examprep.config.personas import (
    LearnerPersona,
    WorkSchedule,
    get_study_time_recommendations,
    validate_study_goal,
)
from examprep.core.adaptive_testing import (
    AdaptiveTestingError,
    CreateTestRequest,
    SubmitResult,
    TestPerformance,
    get_adaptive_testing_service,
)
from examprep.core.missions import generate_mission
from examprep.core.question_bank import DIFFICULTY_LEVELS, AdaptiveQuestion
from examprep.core.recommendation_engine import RecommendationEngine, RecommendationError
from examprep.db.progress_repository import upsert_user_profile
from examprep.utils.validators import (
    AmbiguousIdError,
    IdNotFoundError,
    get_available_test_ids,
    resolve_test_id,
)

app = typer.Typer(
    name="prep",
    help="Adaptive exam preparation: tests, recommendations and missions.",
    no_args_is_help=True,
)

console = Console()

PAUSE_WORDS = {"pause", "p", "quit", "q"}


def _resolve_test_id_or_exit(user_id: str, test_id_prefix: str) -> str:
    """Resolve test_id prefix to full ID, or exit with helpful error."""
    candidates = get_available_test_ids(user_id)
    try:
        return resolve_test_id(test_id_prefix, candidates)
    except IdNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        if candidates:
            console.print("\nAvailable tests:")
            for c in candidates:
                console.print(f"  - {c}")
        raise typer.Exit(code=1)
    except AmbiguousIdError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)


def _check_difficulty(value: str) -> str:
    if value not in DIFFICULTY_LEVELS:
        raise typer.BadParameter(f"Must be one of: {', '.join(DIFFICULTY_LEVELS)}")
    return value


# =============================================================================
# TESTS
# =============================================================================


@app.command(name="create-test")
def create_test(
    title: str = typer.Argument(..., help="Test title"),
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    subjects: list[str] = typer.Option(..., "--subject", "-s", help="Subject (repeatable)"),
    topics: list[str] = typer.Option([], "--topic", help="Topic (repeatable)"),
    questions: int | None = typer.Option(None, "--questions", "-n", help="Maximum questions"),
    min_difficulty: str = typer.Option(
        "beginner", "--min-difficulty", callback=_check_difficulty, help="Lowest difficulty"
    ),
    max_difficulty: str = typer.Option(
        "expert", "--max-difficulty", callback=_check_difficulty, help="Highest difficulty"
    ),
    journey: str | None = typer.Option(None, "--journey", "-j", help="Linked journey ID"),
) -> None:
    """Create an adaptive test."""
    service = get_adaptive_testing_service()

    with console.status("[blue]Building question pool...[/blue]"):
        result = service.create_adaptive_test(
            user,
            CreateTestRequest(
                title=title,
                subjects=subjects,
                topics=topics,
                question_count=questions,
                difficulty_range=(min_difficulty, max_difficulty),
                linked_journey_id=journey,
            ),
        )

    for warning in result.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")

    if not result.success or result.test is None:
        console.print(f"[red]✗ {result.message}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {result.message}[/green]")
    console.print(f"  test_id: [bold]{result.test.test_id}[/bold]")
    console.print(f"  Take it with: prep take-test {result.test.test_id} --user {user}")


@app.command(name="tests")
def list_tests(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    status: str | None = typer.Option(None, "--status", help="Filter by status"),
) -> None:
    """List a user's adaptive tests."""
    tests = get_adaptive_testing_service().get_user_tests(user, status=status)
    if not tests:
        console.print("[yellow]No tests found[/yellow]")
        return

    table = Table(title=f"Tests of {user}")
    table.add_column("test_id")
    table.add_column("Title")
    table.add_column("Subjects")
    table.add_column("Status")
    table.add_column("Answered", justify="right")
    table.add_column("Accuracy", justify="right")

    for test in tests:
        accuracy = test.performance.get("accuracy") if test.performance else None
        table.add_row(
            test.test_id,
            test.title,
            ", ".join(test.subjects),
            test.status,
            f"{len(test.responses)}/{test.total_questions}",
            f"{accuracy:.0f}%" if accuracy is not None else "-",
        )
    console.print(table)


def _ask_question(number: int, question: AdaptiveQuestion) -> str | None:
    """Prompt until a valid option is chosen; None means pause."""
    console.print(f"\n[blue]Question {number}[/blue] [dim]({question.subject}, {question.difficulty})[/dim]")
    console.print(f"[bold]{question.question}[/bold]")

    if not question.options:
        raw = typer.prompt("Answer").strip()
        return None if raw.lower() in PAUSE_WORDS else raw

    for index, option in enumerate(question.options):
        console.print(f"  {chr(ord('A') + index)}. {option}")

    while True:
        raw = typer.prompt(f"Choose A-{chr(ord('A') + len(question.options) - 1)} (or 'pause')").strip()
        if raw.lower() in PAUSE_WORDS:
            return None
        if len(raw) == 1 and raw.isalpha() and ord(raw.upper()) - ord("A") < len(question.options):
            return raw.upper()
        console.print("[yellow]⚠ Enter one of the option letters[/yellow]")


def _print_feedback(result: SubmitResult) -> None:
    if result.is_correct:
        console.print("[green]✓ Correct[/green]")
    else:
        expected = result.correct_answer
        if isinstance(expected, list):
            expected = ", ".join(expected)
        console.print(f"[red]✗ Incorrect[/red] (answer: {expected})")
    if result.explanation:
        console.print(f"[dim]{result.explanation}[/dim]")


def _print_performance(performance: TestPerformance) -> None:
    low, high = performance.ability_confidence_interval
    console.print("\n[bold green]Test completed[/bold green]")
    console.print(
        f"  Score: {performance.correct_answers}/{performance.total_questions} "
        f"({performance.accuracy:.0f}%)"
    )
    console.print(
        f"  Ability: {performance.final_ability_estimate:+.2f} "
        f"(95% CI {low:+.2f} to {high:+.2f})"
    )

    if performance.subject_performance:
        table = Table(title="By subject")
        table.add_column("Subject")
        table.add_column("Correct", justify="right")
        table.add_column("Accuracy", justify="right")
        for subject, stats in performance.subject_performance.items():
            table.add_row(subject, f"{stats['correct']}/{stats['total']}", f"{stats['accuracy']:.0f}%")
        console.print(table)


@app.command(name="take-test")
def take_test(
    test_id: str = typer.Argument(..., help="Test ID (or unique prefix)"),
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
) -> None:
    """Answer an adaptive test interactively (type 'pause' to stop)."""
    resolved = _resolve_test_id_or_exit(user, test_id)
    service = get_adaptive_testing_service()

    try:
        session = service.recover_active_session(user, resolved)
        if session is None:
            session = service.start_test_session(user, resolved)
            console.print(f"[green]✓ Session started[/green] ({session.session_id})")
        else:
            if session.is_paused:
                session = service.resume_test_session(user, session.session_id)
            console.print(f"[green]✓ Resuming session[/green] ({session.session_id})")

        question = service.get_current_question(user, session.session_id)
        number = session.questions_answered + 1
        while question is not None:
            started = time.monotonic()
            answer = _ask_question(number, question)
            if answer is None:
                service.pause_test_session(user, session.session_id)
                console.print("[yellow]Session paused. Run the same command to continue.[/yellow]")
                return

            elapsed_ms = int((time.monotonic() - started) * 1000)
            result = service.submit_response(
                user, session.session_id, question.question_id, answer, elapsed_ms
            )
            _print_feedback(result)

            if result.test_completed and result.performance is not None:
                _print_performance(result.performance)
            question = result.next_question
            number += 1
    except AdaptiveTestingError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)


# =============================================================================
# RECOMMENDATIONS AND MISSIONS
# =============================================================================


@app.command()
def recommend(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    preset: str | None = typer.Option(None, "--preset", help="weak_area, journey or quick"),
    limit: int = typer.Option(5, "--max", "-m", help="Number of recommendations"),
    no_llm: bool = typer.Option(False, "--no-llm", help="Use heuristic candidates only"),
) -> None:
    """Show ranked test recommendations."""
    engine = RecommendationEngine(use_llm=False if no_llm else None)
    try:
        if preset == "quick":
            recommendations = engine.generate_quick_assessment_recommendations(user, limit)
        else:
            recommendations = engine.generate_recommendations(user, limit, preset=preset)
    except RecommendationError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    if not recommendations:
        console.print("[yellow]No recommendations yet. Take a test first.[/yellow]")
        return

    table = Table(title=f"Recommendations for {user}")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Subjects")
    table.add_column("Difficulty")
    table.add_column("Questions", justify="right")
    table.add_column("Score", justify="right")

    for index, rec in enumerate(recommendations, 1):
        table.add_row(
            str(index),
            rec.title,
            ", ".join(rec.subjects),
            rec.difficulty,
            str(rec.question_count),
            f"{rec.score:.2f}",
        )
    console.print(table)


@app.command()
def mission(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    track: str = typer.Option("exam", "--track", "-t", help="exam or course_tech"),
    frequency: str = typer.Option("daily", "--frequency", "-f", help="daily, weekly or monthly"),
    difficulty: str | None = typer.Option(None, "--difficulty", "-d", help="Mission difficulty"),
    persona: str | None = typer.Option(None, "--persona", help="Persona (profile default)"),
) -> None:
    """Generate a mission from the best matching template."""
    result = generate_mission(
        user, track=track, frequency=frequency, difficulty=difficulty, persona=persona
    )
    if not result.success or result.mission is None:
        console.print(f"[red]✗ {result.message}[/red]")
        raise typer.Exit(code=1)

    for warning in result.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")

    created = result.mission
    console.print(f"[green]✓ {result.message}[/green]")
    console.print(f"  mission_id: [bold]{created.mission_id}[/bold]")
    console.print(f"  {created.title}: {created.description}")
    console.print(
        f"  {created.difficulty}, {created.estimated_minutes} min, "
        f"{created.progress.total_steps} steps, due {created.deadline[:10]}"
    )


# =============================================================================
# STUDY GOAL
# =============================================================================


@app.command(name="study-goal")
def study_goal(
    persona: str = typer.Option("student", "--persona", "-p", help="Persona type"),
    work_start: str | None = typer.Option(None, "--work-start", help="Work start (HH:MM)"),
    work_end: str | None = typer.Option(None, "--work-end", help="Work end (HH:MM)"),
    commute: int = typer.Option(60, "--commute", help="Daily commute minutes"),
    goal: int | None = typer.Option(None, "--goal", "-g", help="Proposed daily minutes"),
    user: str | None = typer.Option(None, "--user", "-u", help="Save the goal to this user"),
) -> None:
    """Show a realistic daily study goal."""
    schedule = None
    if work_start or work_end:
        schedule = WorkSchedule(
            start=work_start or "09:00",
            end=work_end or "18:00",
            commute_minutes=commute,
        )
    learner = LearnerPersona(type=persona, work_schedule=schedule)
    recommendation = get_study_time_recommendations(learner)

    console.print(f"[bold]Recommended:[/bold] {recommendation.recommended_goal} min/day")
    console.print(f"  Range: {recommendation.min_goal}-{recommendation.max_goal} min")
    console.print(f"  Time slots: {', '.join(recommendation.time_slots)}")
    for tip in recommendation.tips:
        console.print(f"  • {tip}")

    final_goal = recommendation.recommended_goal
    if goal is not None:
        final_goal = validate_study_goal(goal, learner)
        if final_goal != goal:
            console.print(f"[yellow]⚠ {goal} min adjusted to {final_goal} min[/yellow]")
        else:
            console.print(f"[green]✓ {goal} min is realistic[/green]")

    if user:
        upsert_user_profile(user, persona=persona, study_goal_minutes=final_goal)
        console.print(f"[green]✓ Saved {final_goal} min/day for {user}[/green]")


# =============================================================================
# SERVER
# =============================================================================


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the Web API with uvicorn."""
    import uvicorn

    uvicorn.run("examprep.web.api:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
