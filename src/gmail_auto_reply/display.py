"""Rich-based display and logging setup for Gmail Auto Reply."""

from __future__ import annotations

import logging
from datetime import datetime

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .models import ActivityEvent, AutoReplyConfig, AutoReplyRecord, CycleSummary
from .state import RateWindow

console = Console()

_KIND_COLORS = {"success": "green", "error": "red", "warning": "yellow", "skip": "dim"}


def setup_logging(verbose: bool = False) -> None:
    """Route the package logger through Rich on the shared console."""
    logger = logging.getLogger("gmail_auto_reply")
    logger.handlers.clear()
    handler = RichHandler(console=console, show_time=True, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def display_cycle_summary(summary: CycleSummary) -> None:
    """Display the outcome of a single poll cycle."""
    lines = [
        f"[bold]State:[/bold] {summary.state}",
        f"[bold]Cursor:[/bold] {summary.cursor if summary.cursor is not None else '-'}",
        f"[bold]Events:[/bold] {summary.events}",
        f"[bold]Sent:[/bold] [green]{summary.sent}[/green]",
        f"[bold]Skipped:[/bold] {summary.skipped}",
        f"[bold]Failed:[/bold] [red]{summary.failed}[/red]",
    ]
    if summary.reasons:
        lines.append("")
        lines.append("[bold]Skip reasons:[/bold]")
        for reason, count in sorted(summary.reasons.items(), key=lambda item: -item[1]):
            lines.append(f"  - {reason}: {count}")

    console.print(Panel("\n".join(lines), title="Poll Cycle"))


def display_config(user_email: str, config: AutoReplyConfig) -> None:
    color = "green" if config.enabled else "red"
    lines = [
        f"[bold]Account:[/bold] {user_email}",
        f"[bold]Enabled:[/bold] [{color}]{config.enabled}[/{color}]",
        f"[bold]Categories:[/bold] {', '.join(config.allowed_categories)}",
        f"[bold]Min confidence:[/bold] {config.min_confidence:.2f}",
        f"[bold]Max replies per hour:[/bold] {config.max_replies_per_hour}",
        f"[bold]Updated:[/bold] {config.updated_at or 'never'}",
    ]
    console.print(Panel("\n".join(lines), title="Auto-Reply Config"))


def display_stats(stats: dict) -> None:
    table = Table(title="Auto-Replies Sent")
    table.add_column("Period")
    table.add_column("Count", justify="right")
    for label, key in (
        ("Today", "today"),
        ("Yesterday", "yesterday"),
        ("Last 7 days", "this_week"),
        ("Last 30 days", "this_month"),
        ("Total", "total"),
    ):
        table.add_row(label, str(stats.get(key, 0)))
    console.print(table)


def display_history(records: list[AutoReplyRecord]) -> None:
    """Display sent auto-replies, newest first."""
    table = Table(title="Auto-Reply History")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Sent")
    table.add_column("Account")
    table.add_column("Recipient")
    table.add_column("Subject")

    for idx, record in enumerate(records, start=1):
        table.add_row(str(idx), record.timestamp, record.user_email, record.recipient, record.subject)

    console.print(table)
    console.print(Panel(f"Records shown: {len(records)}", title="Summary"))


def display_activity(events: list[ActivityEvent]) -> None:
    table = Table(title="Activity")
    table.add_column("Time", style="dim")
    table.add_column("Event")
    for event in events:
        color = _KIND_COLORS.get(event.kind, "white")
        table.add_row(event.timestamp, f"[{color}]{event.message}[/{color}]")
    console.print(table)


def display_worker_status(diagnostics: dict, window: RateWindow | None, max_per_hour: int) -> None:
    """Display the worker's in-memory state after a cycle."""
    lines = [
        f"[bold]Account:[/bold] {diagnostics.get('account') or '-'}",
        f"[bold]History cursor:[/bold] {diagnostics.get('cursor') if diagnostics.get('cursor') is not None else '-'}",
        f"[bold]Processed cache:[/bold] {diagnostics.get('dedup_size', 0)}",
        f"[bold]Senders in cooldown:[/bold] {diagnostics.get('cooldown_size', 0)}",
    ]
    if window is not None:
        reset_at = datetime.fromtimestamp(window.reset_at).strftime("%Y-%m-%d %H:%M:%S")
        lines.append(f"[bold]Replies this window:[/bold] {window.count}/{max_per_hour}")
        lines.append(f"[bold]Window resets:[/bold] {reset_at}")
    console.print(Panel("\n".join(lines), title="Worker Status"))
