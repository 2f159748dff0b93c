"""Click CLI for marketkit: replay transcripts and inspect configuration."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from marketkit.config.hierarchy import load_config_hierarchy
from marketkit.config.schema import MarketkitConfig
from marketkit.errors.exceptions import MarketkitError
from marketkit.sessions.engine import SessionAnalyticsEngine
from marketkit.sessions.models import ChatSession

console = Console()
error_console = Console(stderr=True)


def _log_level(verbosity: int, configured: str = "WARNING") -> int:
    """-v flags win; without them the configured level name applies."""
    if verbosity == 1:
        return logging.INFO
    if verbosity >= 2:
        return logging.DEBUG
    return logging.getLevelNamesMapping().get(configured.upper(), logging.WARNING)


def _setup_logging(verbosity: int, configured: str = "WARNING") -> None:
    """Configure logging based on verbosity level and the configured level."""
    logging.basicConfig(
        level=_log_level(verbosity, configured),
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
    )


def _load_config(
    keywords_file: str | None = None, invalidation_file: str | None = None
) -> MarketkitConfig:
    flat = load_config_hierarchy(
        keywords_file=keywords_file, invalidation_file=invalidation_file
    )
    return MarketkitConfig.from_mapping(flat)


@click.group()
@click.version_option(package_name="marketkit")
def cli() -> None:
    """marketkit: response cache and chat session analytics."""


@cli.command()
@click.argument("transcript", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--keywords", "keywords_file", type=click.Path(exists=True), help="Keyword lists YAML."
)
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def analyze(transcript: str, keywords_file: str | None, verbose: int) -> None:
    """Replay a JSON/YAML chat transcript and report its analytics."""
    try:
        config = _load_config(keywords_file=keywords_file)
        _setup_logging(verbose, config.log_level)
        engine = SessionAnalyticsEngine(settings=config.analytics, keywords=config.keywords)
        session = replay_transcript(engine, _read_transcript(Path(transcript)))
    except (MarketkitError, KeyError, TypeError, ValueError, OSError) as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    _print_session(engine, session)


def _read_transcript(path: Path) -> dict[str, Any]:
    # JSON is a subset of YAML, so one parser covers both
    with open(path) as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict) or not isinstance(raw.get("messages"), list):
        raise ValueError(f"Transcript {path} must be a mapping with a 'messages' list")
    return raw


def replay_transcript(engine: SessionAnalyticsEngine, data: dict[str, Any]) -> ChatSession:
    """Build a session from a transcript mapping.

    Shape::

        session_id: demo
        user_id: u-1
        messages:
          - role: user
            content: "Hi, what does shipping cost?"
          - role: assistant
            content: "Shipping is free over $50."
            metadata: {response_time_ms: 1200}
            rating: 5
        escalate: {priority: high, assigned_to: agent-7}
        close: resolved
    """
    session = engine.create_session(
        str(data.get("session_id") or "transcript"),
        user_id=data.get("user_id"),
        user_context=data.get("user_context"),
    )
    for entry in data["messages"]:
        message = engine.add_message(
            session, entry["role"], entry.get("content", ""), entry.get("metadata")
        )
        if entry.get("rating") is not None:
            engine.rate_message(session, message.id, entry["rating"], entry.get("feedback"))

    if data.get("escalate"):
        escalation = data["escalate"] if isinstance(data["escalate"], dict) else {}
        engine.escalate(session, **escalation)
    if data.get("close"):
        reason = data["close"] if isinstance(data["close"], str) else "user_closed"
        engine.close(session, reason)
    return session


def _print_session(engine: SessionAnalyticsEngine, session: ChatSession) -> None:
    analytics = session.analytics
    analysis = engine.analyze(session)
    report = engine.quality(session)

    table = Table(title=f"Session {session.session_id}", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Status", session.status.value)
    table.add_row("Title", session.title or "-")
    table.add_row("Messages", str(analytics.message_count))
    table.add_row("Tokens", f"{analytics.total_tokens:,}")
    table.add_row("Avg response (ms)", f"{analytics.average_response_time_ms:.0f}")
    table.add_row("Satisfaction", f"{analytics.user_satisfaction:.2f}")
    table.add_row("Escalations", str(analytics.escalation_count))
    table.add_row("Sentiment", analysis.sentiment.value)
    table.add_row("Topics", ", ".join(analysis.topics))
    table.add_row("Urgency", analysis.urgency.value)
    table.add_row("Summary", session.summary or engine.summarize(session) or "-")
    table.add_row("Quality score", f"{report.score:.1f}")

    console.print(table)


@cli.command()
@click.option(
    "--file", "invalidation_file", type=click.Path(exists=True), help="Invalidation YAML."
)
def events(invalidation_file: str | None) -> None:
    """Show which cache tags and key patterns each event invalidates."""
    try:
        config = _load_config(invalidation_file=invalidation_file)
    except (ValueError, OSError) as e:
        error_console.print(f"[red]Invalid invalidation table:[/red] {e}")
        sys.exit(1)

    table = Table(title="Cache Invalidation Rules", show_header=True)
    table.add_column("Event", style="cyan")
    table.add_column("Tags")
    table.add_column("Patterns")

    rules = config.invalidation_table()
    for event in sorted(rules):
        rule = rules[event]
        table.add_row(rule.event, ", ".join(rule.tags) or "-", ", ".join(rule.patterns) or "-")

    console.print(table)


@cli.command("config")
def show_config() -> None:
    """Show the resolved configuration."""
    flat = load_config_hierarchy()

    table = Table(title="Resolved Configuration", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    for key in sorted(flat):
        table.add_row(key, str(flat[key]))

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    cli()
