"""Typer CLI entry point for hosting Avalon rooms and running bot games."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import structlog
import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from ..config.settings import DEFAULT_CONFIG_PATH, load_host_config
from ..core.errors import GameError
from ..core.rulesets import RULESETS, format_rules_description
from .autoplay import AutoplayError, BotPolicy, play_random_game
from .web_api import create_app

LOGGER = structlog.get_logger(__name__)

app = typer.Typer(help="Host Avalon rooms and simulate games.", invoke_without_command=False)
console = Console()
_configured_logging = False


def configure_logging(level: str = "INFO") -> None:
    global _configured_logging
    if _configured_logging:
        return
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        cache_logger_on_first_use=True,
    )
    _configured_logging = True


@app.command("serve")
def serve(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to host configuration JSON"),
    host: Optional[str] = typer.Option(None, help="Interface to bind (overrides config)"),
    port: Optional[int] = typer.Option(None, help="Port to listen on (overrides config)"),
) -> None:
    """Run the room server."""

    try:
        settings = load_host_config(config)
    except ValueError as exc:
        typer.echo(f"Error: invalid configuration: {exc}")
        raise typer.Exit(code=1) from exc

    if host:
        settings.host = host
    if port:
        settings.port = port

    configure_logging(settings.log_level)
    LOGGER.info("server.configured", host=settings.host, port=settings.port, config=str(config))
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


@app.command("rules")
def rules(
    players: Optional[int] = typer.Option(None, help="Only show the table for this many players"),
) -> None:
    """Print role line-ups and mission sizes for every table size."""

    if players is not None:
        if players not in RULESETS:
            typer.echo(f"Error: no ruleset for {players} players")
            raise typer.Exit(code=1)
        console.print(format_rules_description(RULESETS[players]).strip())
        return

    table = Table(title="Avalon rulesets")
    table.add_column("Players", justify="right")
    table.add_column("Good / Evil")
    table.add_column("Roles")
    table.add_column("Missions")
    table.add_column("Two fails", justify="center")
    for count, ruleset in sorted(RULESETS.items()):
        table.add_row(
            str(count),
            f"{ruleset.good} / {ruleset.evil}",
            ", ".join(role.value for role in ruleset.roles),
            ruleset.get_mission_sizes_description(),
            str(ruleset.double_fail_round or "-"),
        )
    console.print(table)


@app.command("simulate")
def simulate(
    players: int = typer.Option(5, help="Table size (5-10)"),
    seed: Optional[int] = typer.Option(None, help="Seed for a deterministic game"),
    approve_rate: float = typer.Option(0.7, help="Chance a bot approves a proposed team"),
    fail_rate: float = typer.Option(0.7, help="Chance an evil bot plays FAIL on a mission"),
    show_roles: bool = typer.Option(True, "--show-roles/--hide-roles", help="Print the dealt roles at the end"),
) -> None:
    """Play one game between random bots and print its log."""

    configure_logging("WARNING")
    policy = BotPolicy(approve_rate=approve_rate, fail_rate=fail_rate)
    try:
        machine = play_random_game(players, seed=seed, policy=policy)
    except (GameError, AutoplayError) as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    state = machine.state
    for line in state.log:
        console.print(line)

    if show_roles:
        table = Table(title="Roles")
        table.add_column("Player")
        table.add_column("Role")
        table.add_column("Side")
        for player in state.players:
            table.add_row(player.name, player.role.value, player.alignment.value)
        console.print(table)

    typer.echo(
        f"Simulation complete: winner={state.winner.value} "
        f"(missions {state.good_missions}-{state.evil_missions}, seed={seed})."
    )


if __name__ == "__main__":  # pragma: no cover
    app()
