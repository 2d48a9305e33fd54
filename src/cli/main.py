"""
Typer CLI for the adaptive quiz engine.

Commands:
    quizengine db init               - Initialize database tables
    quizengine quiz availability     - Check whether a level can be generated
    quizengine quiz pool-stats       - Show question counts per difficulty
    quizengine quiz generate         - Generate a quiz for a level
    quizengine quiz list             - List generated quizzes
    quizengine attempt results       - Show an attempt's report
    quizengine attempt history       - Show a user's recent attempts
    quizengine skills points         - Show skill points per difficulty
    quizengine skills set-points     - Change skill points for a difficulty
    quizengine info                  - Show configuration

Usage:
    quizengine --help
    quizengine quiz generate --level 3 --trigger time_based --skip-recent
    quizengine attempt history student-42 --limit 5
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from src.core.errors import QuizEngineError
from src.core.logging_config import configure_logging

app = typer.Typer(
    help="Adaptive quiz engine CLI: question bank -> generated quizzes -> adaptive attempts",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Adaptive quiz engine command line."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


def _fail(exc: QuizEngineError) -> None:
    rprint(f"[red]✗[/red] {exc.message}")
    for key, value in exc.details.items():
        rprint(f"  [dim]{key}:[/dim] {value}")
    raise typer.Exit(code=1)


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from src.db.database import init_db

    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# QUIZ COMMANDS
# ========================================

quiz_app = typer.Typer(help="Quiz generation and catalog")
app.add_typer(quiz_app, name="quiz")


@quiz_app.command("availability")
def quiz_availability(
    level: int = typer.Option(..., "--level", "-l", min=1, help="Quiz level"),
    grade: Optional[str] = typer.Option(None, "--grade", help="Restrict to a grade"),
    subject: Optional[str] = typer.Option(None, "--subject", help="Restrict to a subject"),
) -> None:
    """Check whether a level has enough active questions to generate a quiz."""
    from src.db.database import async_session_scope
    from src.quiz import QuizAssembler

    async def run():
        async with async_session_scope() as session:
            return await QuizAssembler(session).check_generation_availability(level, grade=grade, subject=subject)

    try:
        availability = asyncio.run(run())
    except QuizEngineError as exc:
        _fail(exc)

    mark = "[green]✓[/green]" if availability.available else "[yellow]⚠[/yellow]"
    rprint(f"{mark} {availability.message}")
    if not availability.available:
        raise typer.Exit(code=1)


@quiz_app.command("pool-stats")
def quiz_pool_stats(
    levels: Optional[List[int]] = typer.Option(
        None, "--level", "-l", min=1, help="Quiz level (repeatable; default: every level in the bank)"
    ),
    grade: Optional[str] = typer.Option(None, "--grade", help="Restrict to a grade"),
    subject: Optional[str] = typer.Option(None, "--subject", help="Restrict to a subject"),
) -> None:
    """Show active question counts per difficulty for each level."""
    from src.db.database import async_session_scope
    from src.quiz import QuizAssembler

    async def run():
        async with async_session_scope() as session:
            assembler = QuizAssembler(session)
            requested = levels or await assembler.pool_levels(grade=grade, subject=subject)
            return await assembler.pool_statistics(requested, grade=grade, subject=subject)

    try:
        stats = asyncio.run(run())
    except QuizEngineError as exc:
        _fail(exc)

    if not stats:
        rprint("[yellow]⚠[/yellow] No active questions in the bank")
        return

    table = Table(title="Question Pool Statistics")
    table.add_column("Level", justify="right", style="cyan")
    table.add_column("Total", justify="right")
    for difficulty in range(1, 6):
        table.add_column(f"D{difficulty}", justify="right")
    table.add_column("Status")

    for s in stats:
        if s.available:
            status = "[green]ready[/green]"
        else:
            status = f"[yellow]insufficient[/yellow] ({s.question_count}/{s.required})"
        table.add_row(
            str(s.quiz_level),
            str(s.question_count),
            *(str(s.difficulty_distribution.get(d, 0)) for d in range(1, 6)),
            status,
        )

    console.print(table)


@quiz_app.command("generate")
def quiz_generate(
    level: int = typer.Option(..., "--level", "-l", min=1, help="Quiz level"),
    student: Optional[str] = typer.Option(None, "--student", help="Student the quiz is generated for"),
    trigger: str = typer.Option("manual", "--trigger", "-t", help="Trigger reason"),
    grade: Optional[str] = typer.Option(None, "--grade", help="Restrict to a grade"),
    subject: Optional[str] = typer.Option(None, "--subject", help="Restrict to a subject"),
    target: Optional[int] = typer.Option(None, "--target", min=1, help="Target correct answers"),
    progression: Optional[str] = typer.Option(
        None, "--progression", "-p", help="immediate, gradual or ml-based"
    ),
    start_difficulty: Optional[int] = typer.Option(
        None, "--start-difficulty", min=1, max=5, help="Starting difficulty"
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for reproducible selection"),
    skip_recent: bool = typer.Option(
        False, "--skip-recent", help="Skip if a quiz for this level was generated within the cooldown"
    ),
) -> None:
    """Generate a new adaptive quiz for a level."""
    from src.db.database import async_session_scope
    from src.quiz import QuizAssembler
    from src.quiz.quiz_catalog import summarize_quiz

    overrides = {
        k: v
        for k, v in {
            "target_correct_answers": target,
            "difficulty_progression": progression,
            "starting_difficulty": start_difficulty,
        }.items()
        if v is not None
    }

    async def run():
        async with async_session_scope() as session:
            assembler = QuizAssembler(session, seed=seed)
            if skip_recent and await assembler.generated_recently(level, grade=grade, subject=subject):
                return None
            try:
                quiz = await assembler.generate_quiz(
                    quiz_level=level,
                    student_id=student,
                    trigger_reason=trigger,
                    grade=grade,
                    subject=subject,
                    adaptive_config=overrides or None,
                )
            except QuizEngineError:
                # Keep the failed generation's log row
                await session.commit()
                raise
            return summarize_quiz(quiz)

    try:
        summary = asyncio.run(run())
    except QuizEngineError as exc:
        _fail(exc)

    if summary is None:
        rprint(f"[yellow]⚠[/yellow] A quiz for level {level} was generated recently; skipped")
        return

    rprint(f"[green]✓[/green] Generated {summary.title} [dim]({summary.unique_hash})[/dim]")
    rprint(f"  Quiz ID: {summary.quiz_id}")
    rprint(f"  Questions: {summary.total_questions}")
    rprint(f"  Difficulty mix: {summary.difficulty_distribution}")
    rprint(
        f"  Adaptive: target {summary.target_correct_answers}, "
        f"{summary.difficulty_progression}, start {summary.starting_difficulty}"
    )


@quiz_app.command("list")
def quiz_list(
    level: Optional[int] = typer.Option(None, "--level", "-l", min=1, help="Filter by level"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum quizzes to show"),
) -> None:
    """List generated quizzes, newest first."""
    from src.db.database import async_session_scope
    from src.quiz import QuizCatalog

    async def run():
        async with async_session_scope() as session:
            return await QuizCatalog(session).list_quizzes(quiz_level=level, limit=limit)

    summaries = asyncio.run(run())
    if not summaries:
        rprint("[yellow]⚠[/yellow] No quizzes found")
        return

    table = Table(title=f"Adaptive Quizzes ({len(summaries)})")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Level", justify="right")
    table.add_column("Questions", justify="right")
    table.add_column("Difficulty mix")
    table.add_column("Progression", style="green")
    table.add_column("Trigger", style="dim")

    for s in summaries:
        mix = " ".join(f"{d}:{n}" for d, n in s.difficulty_distribution.items())
        table.add_row(
            str(s.quiz_id)[:8] + "...",
            s.title,
            str(s.quiz_level),
            str(s.total_questions),
            mix,
            s.difficulty_progression,
            s.generation_criteria,
        )

    console.print(table)


# ========================================
# ATTEMPT COMMANDS
# ========================================

attempt_app = typer.Typer(help="Inspect adaptive attempts")
app.add_typer(attempt_app, name="attempt")


@attempt_app.command("results")
def attempt_results(
    attempt_id: str = typer.Argument(..., help="Attempt ID"),
) -> None:
    """Show an attempt's accuracy and difficulty trace."""
    from src.adaptive import AdaptiveAttemptEngine
    from src.db.database import async_session_scope

    async def run():
        async with async_session_scope() as session:
            return await AdaptiveAttemptEngine(session).get_results(attempt_id)

    try:
        report = asyncio.run(run())
    except QuizEngineError as exc:
        _fail(exc)

    status = "[green]completed[/green]" if report.is_completed else "[yellow]in progress[/yellow]"
    rprint(f"[bold]{report.quiz_title}[/bold] - {status}")
    rprint(
        f"  Correct: {report.correct_count}/{report.total_answered} "
        f"(target {report.target_correct_answers}), accuracy {report.accuracy}%"
    )
    if report.completion_reason:
        rprint(f"  Completion: {report.completion_reason}")

    if report.answers:
        table = Table(title="Answers")
        table.add_column("#", justify="right")
        table.add_column("Question")
        table.add_column("Difficulty", justify="right")
        table.add_column("Level at time", justify="right")
        table.add_column("Answer")
        table.add_column("Result")

        for step, answer in zip(report.difficulty_progression, report.answers):
            table.add_row(
                str(step.question_number),
                answer.question_text[:40],
                str(answer.difficulty),
                str(answer.difficulty_at_time),
                answer.answer,
                "[green]✓[/green]" if answer.is_correct else f"[red]✗[/red] {answer.correct_answer}",
            )

        console.print(table)


@attempt_app.command("history")
def attempt_history(
    user_id: str = typer.Argument(..., help="User ID"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Maximum attempts to show"),
) -> None:
    """Show a user's most recent attempts."""
    from src.adaptive import AdaptiveAttemptEngine
    from src.db.database import async_session_scope

    async def run():
        async with async_session_scope() as session:
            return await AdaptiveAttemptEngine(session).list_attempts(user_id, limit=limit)

    attempts = asyncio.run(run())
    if not attempts:
        rprint(f"[yellow]⚠[/yellow] No attempts for {user_id}")
        return

    table = Table(title=f"Attempts for {user_id}")
    table.add_column("Attempt", style="dim")
    table.add_column("Quiz", style="cyan")
    table.add_column("Correct", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Status")
    table.add_column("Started", style="dim")

    for a in attempts:
        table.add_row(
            str(a.attempt_id)[:8] + "...",
            a.quiz_title,
            f"{a.correct_count}/{a.total_answered}",
            f"{a.accuracy}%",
            a.completion_reason or ("completed" if a.is_completed else "in progress"),
            a.started_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


# ========================================
# SKILL COMMANDS
# ========================================

skills_app = typer.Typer(help="Skill points administration")
app.add_typer(skills_app, name="skills")


def _print_points_table(points: dict) -> None:
    table = Table(title="Skill Points per Difficulty")
    table.add_column("Difficulty", justify="right", style="cyan")
    table.add_column("Correct", justify="right", style="green")
    table.add_column("Wrong", justify="right", style="red")

    for difficulty in sorted(points, key=int):
        entry = points[difficulty]
        table.add_row(difficulty, f"{entry['correct']:+g}", f"{entry['wrong']:+g}")

    console.print(table)


@skills_app.command("points")
def skills_points() -> None:
    """Show the points awarded per difficulty."""
    from src.db.database import async_session_scope
    from src.learning import PointsSkillAggregator

    async def run():
        async with async_session_scope() as session:
            return await PointsSkillAggregator(session).get_points_table()

    _print_points_table(asyncio.run(run()))


@skills_app.command("set-points")
def skills_set_points(
    difficulty: int = typer.Option(..., "--difficulty", "-d", help="Difficulty 1-5"),
    correct: float = typer.Option(..., "--correct", help="Points for a correct answer"),
    wrong: float = typer.Option(..., "--wrong", help="Points for a wrong answer (usually negative)"),
    updated_by: Optional[str] = typer.Option(None, "--by", help="Who made the change"),
) -> None:
    """Change the points awarded at one difficulty."""
    from src.db.database import async_session_scope
    from src.learning import PointsSkillAggregator

    async def run():
        async with async_session_scope() as session:
            return await PointsSkillAggregator(session).set_points_table(
                {str(difficulty): {"correct": correct, "wrong": wrong}},
                updated_by=updated_by,
            )

    try:
        points = asyncio.run(run())
    except QuizEngineError as exc:
        _fail(exc)

    rprint(f"[green]✓[/green] Updated points for difficulty {difficulty}")
    _print_points_table(points)


# ========================================
# INFO
# ========================================


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title="Adaptive Quiz Engine Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row(
        "Database URL",
        settings.database_url.split("@")[-1] if "@" in settings.database_url else settings.database_url,
    )
    table.add_row("Questions per quiz", str(settings.quiz_question_count))
    table.add_row("Minimum pool size", str(settings.quiz_min_pool_size))
    table.add_row("Freshness horizon (days)", str(settings.freshness_horizon_days))
    table.add_row("Regeneration cooldown (hours)", str(settings.regeneration_cooldown_hours))
    table.add_row("Default adaptive config", str(settings.get_default_adaptive_config()))
    table.add_row("Log Level", settings.log_level)

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
