"""Command line interface for the forecast_scoring package."""

import datetime
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from forecast_scoring.config import settings
from forecast_scoring.db.models import QuestionRecord, SessionLocal, create_db_and_tables
from forecast_scoring.db.session import get_session_context
from forecast_scoring.db.store import SqlAlchemyStore
from forecast_scoring.errors import ForecastScoringError
from forecast_scoring.log.forecast_logger import ForecastLogger, LoggedForecastData
from forecast_scoring.models import AggregationMethod, Resolution, Summary
from forecast_scoring.resolution.coordinator import ResolutionCoordinator
from forecast_scoring.scoring.community import forecasts_are_hidden, visible_community_forecast
from forecast_scoring.scoring.track_record import summarize, track_record_percentiles

app = typer.Typer(help="Score forecasts and track calibration")
console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level)


def _store() -> SqlAlchemyStore:
    return SqlAlchemyStore(SessionLocal)


def _fmt(value: float | None, digits: int = 3) -> str:
    return "n/a" if value is None else f"{value:.{digits}f}"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    _setup_logging(verbose)


@app.command()
def init_db():
    """Initialize the database and create tables."""
    try:
        create_db_and_tables()
        console.print("[green]Database initialized successfully.[/green]")
    except Exception as e:
        console.print(f"[bold red]Error initializing database:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def add_question(
    title: str = typer.Argument(..., help="Question text."),
    resolve_by: Optional[datetime.datetime] = typer.Option(None, help="Target resolution date (UTC)."),
    hide_until: Optional[datetime.datetime] = typer.Option(
        None, help="Hide the community forecast until this date (UTC)."
    ),
):
    """Register a question so forecasts can be recorded against it."""
    with get_session_context(SessionLocal) as db:
        record = QuestionRecord(title=title, resolve_by=resolve_by, hide_forecasts_until=hide_until)
        db.add(record)
        db.commit()
        console.print(f"Question [bold]{record.id}[/bold] created.")


@app.command()
def forecast(
    question_id: str = typer.Argument(..., help="Question to forecast on."),
    participant_id: str = typer.Argument(..., help="Who is forecasting."),
    probability: float = typer.Argument(..., help="Probability of YES, between 0 and 1."),
):
    """Record a forecast."""
    try:
        data = LoggedForecastData(
            question_id=question_id, participant_id=participant_id, probability=probability
        )
        with get_session_context(SessionLocal) as db:
            forecast_id = ForecastLogger().log_forecast(data, db)
    except (ForecastScoringError, ValueError) as e:
        console.print(f"[bold red]Error recording forecast:[/bold red] {e}")
        raise typer.Exit(code=1)
    console.print(f"[dim]Forecast {forecast_id} logged to database.[/dim]")


@app.command()
def community(
    question_id: str = typer.Argument(..., help="Question to aggregate."),
    method: AggregationMethod = typer.Option(settings.COMMUNITY_METHOD, help="Pooling method."),
):
    """Show the current community forecast of a question."""
    store = _store()
    try:
        question = store.get_question(question_id)
        now = datetime.datetime.now(datetime.timezone.utc)
        value = visible_community_forecast(question, store.forecasts_for(question_id), now, method)
    except ForecastScoringError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    if forecasts_are_hidden(question, now):
        console.print(
            f"Forecasts are hidden until {question.hide_forecasts_until:%Y-%m-%d} to prevent anchoring."
        )
    elif value is None:
        console.print("No community forecast yet.")
    else:
        console.print(f"[bold green]Community forecast ({method.value}):[/bold green] {value:.2%}")


@app.command()
def resolve(
    question_id: str = typer.Argument(..., help="Question to resolve."),
    outcome: Resolution = typer.Argument(..., case_sensitive=False, help="YES, NO or AMBIGUOUS."),
):
    """Resolve a question and score every participant."""
    store = _store()
    coordinator = ResolutionCoordinator(store, store, store)
    try:
        result = coordinator.resolve(question_id, outcome)
    except ForecastScoringError as e:
        console.print(f"[bold red]Error resolving question:[/bold red] {e}")
        raise typer.Exit(code=1)

    if outcome is Resolution.AMBIGUOUS:
        console.print("No scoring due to ambiguous resolution!")
        return
    table = Table("Participant", "Brier score", "Relative Brier score")
    for participant_id, score in sorted(result.scores.items(), key=lambda item: item[1].absolute_score):
        table.add_row(participant_id, _fmt(score.absolute_score), _fmt(score.relative_score))
    console.print(table)
    console.print(f"[dim]{len(result.written)} scores written.[/dim]")


@app.command()
def complete_pending(question_id: str = typer.Argument(..., help="Resolved question to finish scoring.")):
    """Retry score writes that failed during a resolution."""
    store = _store()
    try:
        result = ResolutionCoordinator(store, store, store).complete_pending(question_id)
    except ForecastScoringError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)
    console.print(f"{len(result.written)} missing scores written.")


@app.command()
def track_record(
    participant_id: str = typer.Argument(..., help="Whose track record to show."),
    window_days: int = typer.Option(settings.RECENT_WINDOW_DAYS, help="Recent window in days."),
):
    """Show recent and all-time average scores with percentile rank."""
    store = _store()
    try:
        history = store.scores_for_participant(participant_id)
        ranks = track_record_percentiles(participant_id, store.scores_by_participant())
    except ForecastScoringError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    record = summarize(history, datetime.datetime.now(datetime.timezone.utc), window_days)
    table = Table("Period", "Questions", "Brier score", "Relative Brier score")
    rows: list[tuple[str, Summary]] = [
        (f"Last {window_days} days", record.recent),
        ("All time", record.overall),
    ]
    for title, summary in rows:
        table.add_row(title, str(summary.count), _fmt(summary.mean_absolute), _fmt(summary.mean_relative))
    console.print(table)
    if ranks.absolute is not None:
        console.print(f"Better than {ranks.absolute:.0%} of {ranks.population} forecasters (Brier score).")
    if ranks.relative is not None:
        console.print(f"Better than {ranks.relative:.0%} of forecasters (relative Brier score).")


if __name__ == "__main__":
    app()
