"""repeater CLI — maintenance commands for inspecting identities and the card store."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from repeater.application.config import AppConfig, resolve_config
from repeater.consts import VERSION
from repeater.domain.exceptions import RepeaterError
from repeater.domain.models import CollectionStats

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="repeater: content-addressed spaced repetition engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

config_app = typer.Typer(help="Manage repeater configuration.")
app.add_typer(config_app, name="config")


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
    """Global settings for repeater."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = 1 + verbose
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _resolve(ctx: typer.Context, **overrides) -> AppConfig:
    obj = ctx.obj or {}
    try:
        return resolve_config({"verbose": obj.get("verbose"), **overrides})
    except ValueError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(2)


def _run(coro):
    """Run a store coroutine, turning repeater errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except (RepeaterError, ValueError) as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1)


def format_stats(stats: CollectionStats) -> list[str]:
    lines = [
        f"Number of cards {stats.num_cards} • new {stats.new_cards} • "
        f"reviewed {stats.reviewed_cards}",
        f"Due now: {stats.due_cards} ({stats.overdue_cards} overdue)",
    ]
    if stats.upcoming_week:
        lines.append(f"Due in next 7 days: {stats.due_next_week}")
        lines.extend(f"  {bucket.day}: {bucket.count}" for bucket in stats.upcoming_week)
    lines.append(f"Due in next 30 days: {stats.upcoming_month}")
    lines.append(f"Total number of cards indexed in DB: {stats.total_cards_in_store}")
    return lines


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def version():
    """Print the installed version."""
    typer.echo(VERSION)


@app.command("hash")
def hash_text(
    text: Annotated[
        str | None,
        typer.Argument(help="Card text to fingerprint. Reads stdin when omitted."),
    ] = None,
):
    """Print the content identity of a card's text."""
    from repeater.application.hashing import identity_of

    if text is None:
        text = sys.stdin.read()

    identity = identity_of(text)
    if identity is None:
        typer.secho(
            "Text has no identity: it is blank or consists only of stopwords.",
            fg="yellow",
            err=True,
        )
        raise typer.Exit(1)
    typer.echo(identity)


@app.command()
def stats(
    ctx: typer.Context,
    db_path: Annotated[Path | None, typer.Option(help="Card database to inspect.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show review statistics over every card in the store."""
    from repeater.application.factory import open_card_store

    config = _resolve(ctx, db_path=db_path)

    async def run() -> CollectionStats:
        async with await open_card_store(config) as store:
            identities = await store.all_identities()
            return await store.collection_stats(identities)

    result = _run(run())

    if json_output:
        from dataclasses import asdict

        d = asdict(result)
        d["due_next_week"] = result.due_next_week
        typer.echo(json.dumps(d, indent=2))
        return

    for line in format_stats(result):
        typer.echo(line)


@app.command()
def due(
    ctx: typer.Context,
    db_path: Annotated[Path | None, typer.Option(help="Card database to inspect.")] = None,
    card_limit: Annotated[
        int | None, typer.Option("--limit", help="Maximum number of cards to select.")
    ] = None,
    new_card_limit: Annotated[
        int | None, typer.Option("--new-limit", help="Maximum number of new cards to select.")
    ] = None,
    show_ids: Annotated[
        bool, typer.Option("--ids", help="Print the selected identities.")
    ] = False,
):
    """Count the stored cards that are due now."""
    from repeater.application.factory import open_card_store

    config = _resolve(
        ctx, db_path=db_path, card_limit=card_limit, new_card_limit=new_card_limit
    )

    async def run() -> list[str]:
        async with await open_card_store(config) as store:
            identities = await store.all_identities()
            return await store.due_set(
                identities, limit=config.card_limit, new_limit=config.new_card_limit
            )

    selected = _run(run())

    typer.echo(f"Due now: {len(selected)}")
    if show_ids:
        for identity in selected:
            typer.echo(identity)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _resolve(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


if __name__ == "__main__":
    app()
