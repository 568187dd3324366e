"""Flashdeck CLI — drive the scheduler, history and storage from a terminal."""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError

from flashdeck.application.cards import parse_stored_cards, parse_stored_packs
from flashdeck.application.config import resolve_config
from flashdeck.application.factory import Services, build_services
from flashdeck.application.review_service import CardNotFoundError
from flashdeck.application.scheduler import format_interval
from flashdeck.application.schemas import (
    ComputedStatsSchema,
    is_valid_card,
    is_valid_pack,
    is_valid_review_record,
    parse_computed_stats,
    parse_json_list,
    parse_streak_history,
)
from flashdeck.application.streaks import milestone_label, milestone_progress, streak_message
from flashdeck.application.utils.dates import format_timestamp, local_date, today_key
from flashdeck.domain.models import QualityRating
from flashdeck.domain.storage import StorageError

app = typer.Typer(
    help="flashdeck: spaced-repetition flashcards with resilient local storage.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_app = typer.Typer(help="Manage flashdeck configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    data_dir: Annotated[
        Path | None, typer.Option(help="Directory holding the saved data.")
    ] = None,
    backend: Annotated[
        str | None, typer.Option(help="Storage backend: file or memory.")
    ] = None,
):
    """Global settings for flashdeck."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"data_dir": data_dir, "backend": backend, "verbose": verbose}
    logging.getLogger("flashdeck").setLevel(_LOG_LEVELS.get(verbose, logging.DEBUG))


def _report_storage_error(error: StorageError) -> None:
    typer.secho(f"Warning: {error.user_message}", fg="yellow", err=True)


@contextmanager
def _session(ctx: typer.Context) -> Iterator[Services]:
    """Build services for one command and flush pending writes on the way out."""
    try:
        config = resolve_config((ctx.obj or {}).get("overrides"))
    except ValidationError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(2) from e

    services = build_services(config)
    services.store.set_error_callback(_report_storage_error)
    try:
        yield services
    finally:
        services.store.close()


def _parse_rating(value: str) -> QualityRating:
    try:
        return QualityRating.parse(value)
    except ValueError as e:
        raise typer.BadParameter("Use again, hard, good or easy (or 0, 3, 4, 5).") from e


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    source_id: Annotated[str, typer.Argument(help="Identifier of the source content.")],
    source_type: Annotated[
        str, typer.Option("--type", help="Source type: concept or milestone.")
    ] = "concept",
    pack: Annotated[
        list[str] | None, typer.Option("--pack", help="Extra pack id. Repeatable.")
    ] = None,
):
    """[bold green]Add[/bold green] a flashcard for a piece of content."""
    with _session(ctx) as services:
        pack_ids = [*services.packs.default_pack_ids(), *(pack or [])]
        try:
            card = services.cards.add(source_type, source_id, pack_ids)
        except ValidationError as e:
            typer.secho(f"Invalid card: {e.errors()[0]['msg']}", fg="red", err=True)
            raise typer.Exit(2) from e

        if card is None:
            typer.secho(f"A card for {source_type}:{source_id} already exists.", fg="yellow")
            raise typer.Exit(1)
        typer.echo(card.id)


@app.command()
def cards(
    ctx: typer.Context,
    due: Annotated[bool, typer.Option("--due", help="Only cards due now.")] = False,
    pack: Annotated[str | None, typer.Option(help="Only cards in this pack.")] = None,
):
    """List saved cards."""
    with _session(ctx) as services:
        if due:
            selected = services.cards.due(pack)
        elif pack:
            selected = services.cards.by_pack(pack)
        else:
            selected = services.cards.load()

        if not selected:
            typer.echo("No cards.")
            return
        for card in selected:
            due_at = (
                today_key(local_date(card.next_review_date)) if card.next_review_date else "now"
            )
            typer.echo(
                f"{card.id}  {card.source_type}:{card.source_id}  "
                f"interval={format_interval(card.interval)}  ease={card.ease_factor:.2f}  "
                f"due={due_at}"
            )


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card to review.")],
    rating: Annotated[str, typer.Argument(help="again, hard, good or easy.")],
    minutes: Annotated[
        float, typer.Option(min=0, help="Minutes to add to today's study time.")
    ] = 0,
):
    """[bold green]Review[/bold green] a card and schedule its next appearance."""
    quality = _parse_rating(rating)
    with _session(ctx) as services:
        try:
            outcome = services.reviews.review(card_id, quality, session_minutes=minutes)
        except CardNotFoundError as e:
            typer.secho(f"Unknown card: {card_id}", fg="red", err=True)
            raise typer.Exit(1) from e

        typer.echo(
            f"{quality.label}: next review in {format_interval(outcome.card.interval)} "
            f"(ease {outcome.card.ease_factor:.2f})"
        )
        typer.echo(f"Today: {outcome.today.total_reviews} review(s)")
        for achievement in outcome.new_achievements:
            typer.secho(
                f"Milestone reached: {milestone_label(achievement.milestone)} streak!",
                fg="green",
            )


@app.command("session-end")
def session_end(
    ctx: typer.Context,
    minutes: Annotated[float, typer.Argument(min=0, help="Length of the session in minutes.")],
):
    """Record study time for a finished session."""
    with _session(ctx) as services:
        record = services.reviews.end_session(minutes)
        typer.echo(f"Studied {record.minutes_studied:g} minute(s) today.")


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@app.command()
def stats(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Output raw JSON.")] = False,
):
    """Show learning statistics."""
    with _session(ctx) as services:
        computed = services.stats.compute()

    if as_json:
        typer.echo(json.dumps(ComputedStatsSchema.from_domain(computed).dump(), indent=2))
        return

    typer.echo(
        f"Cards: {computed.total_cards} total, {computed.new_cards} new, "
        f"{computed.learning_cards} learning, {computed.mastered_cards} mastered"
    )
    typer.echo(
        f"Retention: {computed.retention_rate_7d:.0%} (7d), {computed.retention_rate_30d:.0%} (30d)"
    )
    typer.echo(f"Average ease: {computed.average_ease_factor:.2f}")
    typer.echo(
        f"Reviews: {computed.total_reviews_all_time}, "
        f"minutes studied: {computed.total_minutes_studied:g}"
    )
    typer.echo(
        f"Due: {computed.due_today} today, {computed.due_tomorrow} tomorrow, "
        f"{computed.due_this_week} this week"
    )
    typer.echo(f"Streak: {computed.current_streak} (longest {computed.longest_streak})")


@app.command()
def streak(ctx: typer.Context):
    """Show the current study streak and milestones."""
    with _session(ctx) as services:
        history = services.history.load()
        stored = services.streaks.load()
        current = services.stats.compute(persist=False)

    studied_today = any(r.date == today_key() and r.total_reviews > 0 for r in history)
    typer.echo(f"Current streak: {current.current_streak} day(s)")
    typer.echo(f"Longest streak: {current.longest_streak} day(s)")
    typer.echo(streak_message(current.current_streak, studied_today))

    progress = milestone_progress(current.current_streak)
    if progress.next_milestone is not None:
        typer.echo(
            f"Next milestone: {milestone_label(progress.next_milestone)} "
            f"({progress.progress}%, {progress.days_remaining} day(s) to go)"
        )
    for achievement in stored.achievements:
        label = milestone_label(achievement.milestone)
        typer.echo(f"  {label} - {format_timestamp(achievement.achieved_at)}")


@app.command()
def forecast(
    ctx: typer.Context,
    days: Annotated[int | None, typer.Option(min=1, help="Days to look ahead.")] = None,
):
    """Show how many cards come due each day."""
    with _session(ctx) as services:
        upcoming = services.stats.forecast(days)
    for day in upcoming:
        typer.echo(f"{day.date}  {day.count}")


# ---------------------------------------------------------------------------
# Storage maintenance
# ---------------------------------------------------------------------------


@app.command()
def health(ctx: typer.Context):
    """Check storage availability, usage and data integrity."""
    with _session(ctx) as services:
        report = services.store.check_health(services.keys.data_keys())

    typer.echo(f"Available: {'yes' if report.available else 'no'}")
    typer.echo(f"Usage: {report.usage_percentage}% ({report.used_bytes} bytes)")
    for error in report.errors:
        typer.secho(f"Problem: {error.message}", fg="red")
    for recommendation in report.recommendations:
        typer.secho(f"Recommendation: {recommendation}", fg="yellow")
    if report.errors:
        raise typer.Exit(1)


@app.command()
def recover(
    ctx: typer.Context,
    write: Annotated[
        bool, typer.Option("--write", help="Save recovered data back to storage.")
    ] = False,
):
    """Attempt best-effort recovery of corrupted data."""
    with _session(ctx) as services:
        keys = services.keys
        validators: dict[str, tuple[Any, Any]] = {
            keys.cards: (parse_stored_cards, is_valid_card),
            keys.packs: (parse_stored_packs, is_valid_pack),
            keys.history: (parse_json_list, is_valid_review_record),
            keys.streak: (parse_streak_history, None),
            keys.stats: (parse_computed_stats, None),
        }
        failed = False
        for key, (validator, item_validator) in validators.items():
            result = services.store.recover(
                key, None, validator=validator, item_validator=item_validator, persist=write
            )
            if result.error is None:
                typer.echo(f"{key}: ok")
            elif result.error.recoverable:
                typer.secho(f"{key}: {result.error.message}", fg="yellow")
            else:
                failed = True
                typer.secho(f"{key}: {result.error.message}", fg="red")
    if failed:
        raise typer.Exit(1)


@app.command("export")
def export_data(
    ctx: typer.Context,
    output: Annotated[
        Path | None, typer.Argument(help="File to write. Prints to stdout if omitted.")
    ] = None,
):
    """Export all flashcard data as JSON."""
    with _session(ctx) as services:
        document = services.backup.export_json()

    if output is None:
        typer.echo(document)
        return
    output.write_text(document, encoding="utf-8")
    typer.secho(f"Exported to {output}", fg="green")


@app.command("import")
def import_data(
    ctx: typer.Context,
    source: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="Export file.")],
):
    """Restore data from an export file."""
    with _session(ctx) as services:
        try:
            report = services.backup.import_data(source.read_text(encoding="utf-8"))
        except ValueError as e:
            typer.secho(f"Not a valid flashdeck export: {e}", fg="red", err=True)
            raise typer.Exit(2) from e

    for key in report.restored:
        typer.echo(f"Restored {key}")
    for key in report.failed:
        typer.secho(f"Failed to restore {key}", fg="red")
    if not report.success:
        raise typer.Exit(1)


@app.command()
def clear(
    ctx: typer.Context,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
):
    """Delete all saved flashcard data."""
    with _session(ctx) as services:
        summary = services.backup.data_summary()
        if not yes:
            typer.confirm(
                f"Delete {summary.total_cards} card(s) and {summary.total_reviews} "
                f"review(s)? This cannot be undone",
                abort=True,
            )
        cleared = services.backup.clear_all()
    typer.secho(f"Cleared {len(cleared)} key(s).", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
