"""flashdeck CLI: root commands and subgroup registration."""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Annotated

import typer

from flashdeck.application.factory import create_session, get_quota_store
from flashdeck.application.session.manager import ReviewSession, SessionStatus, SessionSummary
from flashdeck.application.session.quota import QuotaTracker
from flashdeck.domain.errors import FlashdeckError, StoreFailure
from flashdeck.domain.review.models import Rating
from flashdeck.infrastructure.clock import SystemClock
from flashdeck.interface._common import (
    _file_store,
    _resolve_with_overrides,
    attach_file_log,
    configure_logging,
    fail,
)

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="flashdeck: spaced-repetition flashcard reviews.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Subgroups
# ---------------------------------------------------------------------------

deck_app = typer.Typer(help="Create and list decks.", no_args_is_help=True)
app.add_typer(deck_app, name="deck")

card_app = typer.Typer(help="Add and list cards.", no_args_is_help=True)
app.add_typer(card_app, name="card")

quota_app = typer.Typer(help="Inspect or reset today's review quota.", no_args_is_help=True)
app.add_typer(quota_app, name="quota")

config_app = typer.Typer(help="Manage flashdeck configuration.")
app.add_typer(config_app, name="config")

DataDirOption = Annotated[
    Path | None, typer.Option("--data-dir", help="Directory holding decks and quota state.")
]


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
):
    """Global settings for flashdeck."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(verbose)


# ---------------------------------------------------------------------------
# Review commands
# ---------------------------------------------------------------------------


@app.command()
def review(
    deck_id: Annotated[str, typer.Argument(help="Deck to review.")],
    ahead: Annotated[
        int, typer.Option("--ahead", min=0, help="Custom study: include cards due in the next N days.")
    ] = 0,
    backend: Annotated[str | None, typer.Option(help="Card store backend: file or http.")] = None,
    data_dir: DataDirOption = None,
):
    """[bold green]Review[/bold green] the due cards of a deck."""
    config = _resolve_with_overrides(backend=backend, data_dir=data_dir)
    attach_file_log(config)
    session = create_session(config, deck_id, ahead_days=ahead)

    async def run():
        try:
            await session.load()
        except FlashdeckError as e:
            fail(e)

        while True:
            if session.status is SessionStatus.ALL_CAUGHT_UP:
                _print_caught_up(session.summary())
                return

            if not await _review_loop(session):
                return

            _print_summary(session.summary())
            if not typer.confirm("Review again?", default=False):
                return
            try:
                await session.review_again()
            except FlashdeckError as e:
                fail(e)

    async def run_and_close():
        try:
            await run()
        finally:
            await session.aclose()

    asyncio.run(run_and_close())


async def _review_loop(session: ReviewSession) -> bool:
    """Present cards until the queue is done. Returns False if the user quit."""
    while session.status is SessionStatus.ACTIVE:
        card = session.current_card
        summary = session.summary()
        kind = "New" if card.is_new else "Review"

        typer.echo(
            f"\nCard {summary.position} of {summary.total_cards} "
            f"({summary.progress_percent}%)  [{kind}]"
        )
        typer.secho(card.front, bold=True)
        if card.hint:
            typer.echo(f"Hint: {card.hint}")

        typer.prompt("Press Enter to show the answer", default="", show_default=False)
        typer.echo(card.back)
        if card.mnemonic:
            typer.echo(f"Mnemonic: {card.mnemonic}")

        labels = session.predicted_intervals()
        typer.echo("  ".join(f"[{r.value}] {r.label} ({labels[r]})" for r in Rating))

        choice = typer.prompt("Rating (1-4, u=undo, q=quit)").strip().lower()
        if choice == "q":
            return False

        if choice == "u":
            try:
                reverted = await session.undo()
                typer.secho(f"Undid review of: {reverted.front}", fg="yellow")
            except FlashdeckError as e:
                typer.secho(str(e), fg="yellow")
            continue

        try:
            await session.submit_rating(card, int(choice))
        except ValueError:
            typer.secho(f"Unknown choice: {choice}", fg="yellow")
        except StoreFailure as e:
            typer.secho(f"Could not save review, try again: {e}", fg="red")
        except FlashdeckError as e:
            typer.secho(str(e), fg="yellow")

    return True


def _print_caught_up(summary: SessionSummary) -> None:
    typer.secho("All caught up!", fg="green", bold=True)
    typer.echo("No flashcards are due for review right now.")
    if summary.next_review_message:
        typer.echo(summary.next_review_message)


def _print_summary(summary: SessionSummary) -> None:
    typer.secho("\nReview complete!", fg="green", bold=True)
    typer.echo(f"Cards: {summary.total_cards} ({summary.review_cards} review, {summary.new_cards} new)")
    typer.echo(
        "  ".join(f"{name.capitalize()}: {count}" for name, count in summary.ratings.items())
    )


@app.command()
def due(
    deck_id: Annotated[str, typer.Argument(help="Deck to inspect.")],
    ahead: Annotated[
        int, typer.Option("--ahead", min=0, help="Include cards due in the next N days.")
    ] = 0,
    backend: Annotated[str | None, typer.Option(help="Card store backend: file or http.")] = None,
    data_dir: DataDirOption = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show what a review session would contain right now."""
    config = _resolve_with_overrides(backend=backend, data_dir=data_dir)
    session = create_session(config, deck_id, ahead_days=ahead)

    async def load_and_close():
        try:
            await session.load()
        finally:
            await session.aclose()

    try:
        asyncio.run(load_and_close())
    except FlashdeckError as e:
        fail(e)

    summary = session.summary()
    if json_output:
        typer.echo(
            json.dumps(
                {
                    "deck": deck_id,
                    "status": summary.status.value,
                    "total": summary.total_cards,
                    "review": summary.review_cards,
                    "new": summary.new_cards,
                    "due_review_total": summary.due_review_total,
                    "due_new_total": summary.due_new_total,
                    "next_review_at": (
                        summary.next_review_at.isoformat() if summary.next_review_at else None
                    ),
                },
                indent=2,
            )
        )
        return

    if summary.status is SessionStatus.ALL_CAUGHT_UP:
        _print_caught_up(summary)
    else:
        typer.echo(
            f"Due now: {summary.total_cards} "
            f"({summary.review_cards} review, {summary.new_cards} new)"
        )

    held_back = summary.due_review_total + summary.due_new_total - summary.total_cards
    if held_back > 0:
        typer.echo(f"{held_back} more due beyond today's caps.")


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8787,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the review session HTTP API."""
    import uvicorn

    attach_file_log(_resolve_with_overrides())
    uvicorn.run("flashdeck.server:app", host=host, port=port, reload=reload)


@app.command()
def logs(
    print_path: Annotated[
        bool, typer.Option("--path", help="Print the log file path instead of opening the folder.")
    ] = False,
):
    """Open the log directory."""
    import subprocess

    config = _resolve_with_overrides()
    if print_path:
        typer.echo(str(config.log_dir / "flashdeck.log"))
        return

    config.log_dir.mkdir(parents=True, exist_ok=True)
    if sys.platform == "darwin":
        subprocess.run(["open", str(config.log_dir)])
    elif sys.platform == "win32":
        os.startfile(str(config.log_dir))
    else:
        subprocess.run(["xdg-open", str(config.log_dir)])


# ---------------------------------------------------------------------------
# Deck subgroup
# ---------------------------------------------------------------------------


@deck_app.command("create")
def deck_create(
    deck_id: Annotated[str, typer.Argument(help="Short id, e.g. 'spanish'.")],
    name: Annotated[str | None, typer.Option(help="Display name.")] = None,
    review_cap: Annotated[
        int | None, typer.Option("--review-cap", min=0, help="Review cards per day.")
    ] = None,
    learn_cap: Annotated[
        int | None, typer.Option("--learn-cap", min=0, help="New cards per day.")
    ] = None,
    data_dir: DataDirOption = None,
):
    """Create an empty deck."""
    store = _file_store(_resolve_with_overrides(data_dir=data_dir))
    try:
        deck = store.create_deck(deck_id, name or "", review_cap, learn_cap)
    except FlashdeckError as e:
        fail(e)
    typer.secho(
        f"Created deck '{deck.deck_id}' "
        f"(review cap {deck.review_cap_per_session}, learn cap {deck.learn_cap_per_session}).",
        fg="green",
    )


@deck_app.command("list")
def deck_list(data_dir: DataDirOption = None):
    """List decks."""
    store = _file_store(_resolve_with_overrides(data_dir=data_dir))
    try:
        decks = store.list_decks()
    except FlashdeckError as e:
        fail(e)

    if not decks:
        typer.secho("No decks yet. Create one with 'flashdeck deck create'.", fg="yellow")
        return
    for deck in decks:
        count = len(store.list_cards(deck.deck_id))
        typer.echo(f"{deck.deck_id}  {deck.name}  ({count} cards)")


# ---------------------------------------------------------------------------
# Card subgroup
# ---------------------------------------------------------------------------


@card_app.command("add")
def card_add(
    deck_id: Annotated[str, typer.Argument(help="Deck to add the card to.")],
    front: Annotated[str, typer.Argument(help="Question side.")],
    back: Annotated[str, typer.Argument(help="Answer side.")] = "",
    hint: Annotated[str | None, typer.Option(help="Optional hint.")] = None,
    mnemonic: Annotated[str | None, typer.Option(help="Optional mnemonic.")] = None,
    data_dir: DataDirOption = None,
):
    """Add a card to a deck."""
    store = _file_store(_resolve_with_overrides(data_dir=data_dir))
    try:
        card = store.add_card(deck_id, front, back, hint=hint, mnemonic=mnemonic)
    except FlashdeckError as e:
        fail(e)
    typer.secho(f"Added {card.id}", fg="green")


@card_app.command("list")
def card_list(
    deck_id: Annotated[str, typer.Argument(help="Deck to list.")],
    data_dir: DataDirOption = None,
):
    """List the cards of a deck with their schedule."""
    store = _file_store(_resolve_with_overrides(data_dir=data_dir))
    try:
        cards = store.list_cards(deck_id)
    except FlashdeckError as e:
        fail(e)

    for card in cards:
        due_at = card.memory.next_review_at.isoformat() if card.memory.next_review_at else "now"
        typer.echo(
            f"{card.id}  {card.memory.learning_stage.value:<10}  "
            f"reps={card.memory.repetitions}  ivl={card.memory.interval_days}  "
            f"ef={card.memory.ease_factor:.2f}  due={due_at}  {card.front}"
        )


# ---------------------------------------------------------------------------
# Quota subgroup
# ---------------------------------------------------------------------------


@quota_app.command("show")
def quota_show(
    deck_id: Annotated[str, typer.Argument(help="Deck to inspect.")],
    data_dir: DataDirOption = None,
):
    """Show today's review and learn counters."""
    config = _resolve_with_overrides(data_dir=data_dir)
    tracker = QuotaTracker(get_quota_store(config))
    try:
        state = asyncio.run(tracker.current(deck_id, SystemClock().now()))
    except FlashdeckError as e:
        fail(e)

    if state is None:
        typer.echo(f"No reviews recorded for '{deck_id}' in the last 24 hours.")
        return
    typer.echo(
        f"Since {state.date_stamp.isoformat(timespec='minutes')}: "
        f"{state.reviewed_count} reviewed, {state.learned_count} learned"
    )


@quota_app.command("reset")
def quota_reset(
    deck_id: Annotated[str, typer.Argument(help="Deck to reset.")],
    data_dir: DataDirOption = None,
):
    """Forget today's counters so the full caps apply again."""
    config = _resolve_with_overrides(data_dir=data_dir)
    tracker = QuotaTracker(get_quota_store(config))
    try:
        asyncio.run(tracker.reset(deck_id, SystemClock().now()))
    except FlashdeckError as e:
        fail(e)
    typer.secho(f"Quota for '{deck_id}' reset.", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = _resolve_with_overrides()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    if d.get("api_token"):
        d["api_token"] = "***"
    typer.echo(json.dumps(d, indent=2))
