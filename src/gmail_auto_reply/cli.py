"""CLI entry point for Gmail Auto Reply."""

from __future__ import annotations

import time

import click

from .activity import ActivityRecorder
from .auth import check_auth, get_gmail_service
from .classifier import GeminiClassifier, GeminiClient, GeminiReplyGenerator
from .constants import CATEGORIES
from .display import (
    console,
    display_activity,
    display_config,
    display_cycle_summary,
    display_history,
    display_stats,
    display_worker_status,
    setup_logging,
)
from .errors import ConfigurationError
from .export import export_history
from .gmail_client import GmailMessageStore
from .models import AutoReplyConfig
from .settings import Settings, load_settings
from .state import DedupCache, RateLimiter, SenderCooldown
from .store import AutoReplyStore
from .worker import AutoReplyWorker


def _load_settings() -> Settings:
    try:
        return load_settings()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def _build_worker(settings: Settings, store: AutoReplyStore) -> AutoReplyWorker:
    if not settings.gemini_api_key:
        raise click.ClickException("GEMINI_API_KEY is not set (environment or ~/.gmail-auto-reply/.env).")
    try:
        service = get_gmail_service()
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e

    client = GeminiClient(settings.gemini_api_key, model=settings.gemini_model, timeout=settings.call_timeout)
    return AutoReplyWorker(
        message_store=GmailMessageStore(service),
        classifier=GeminiClassifier(client),
        generator=GeminiReplyGenerator(client),
        config_store=store,
        history=store,
        activity=ActivityRecorder(),
        dedup=DedupCache(ttl=settings.dedup_ttl),
        cooldown=SenderCooldown(window=settings.sender_cooldown),
        rate_limiter=RateLimiter(window=settings.rate_window),
        call_timeout=settings.call_timeout,
    )


def _authenticated_account() -> str:
    try:
        service = get_gmail_service()
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e
    account, _ = GmailMessageStore(service).current_position()
    return account


@click.group()
@click.version_option(version="0.1.0", prog_name="gmail-auto-reply")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Gmail Auto Reply - answer new business email automatically."""
    setup_logging(verbose)


@cli.command()
def run() -> None:
    """Watch the mailbox and send auto-replies until interrupted."""
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        if not store.is_globally_enabled():
            console.print("[yellow]Global auto-reply is disabled; run 'enable' to start replying.[/yellow]")
        worker = _build_worker(settings, store)
        worker.start(poll_interval=settings.poll_interval, reaper_interval=settings.reaper_interval)
        try:
            while worker.is_running():
                time.sleep(1.0)
        except KeyboardInterrupt:
            console.print("\n[dim]Stopping...[/dim]")
        finally:
            worker.stop()
            if worker.cursor.is_initialized:
                store.save_cursor(worker.cursor.current)


@cli.command()
@click.option(
    "--since",
    type=int,
    default=None,
    help="History ID to start from (default: where the last 'once' or 'run' stopped).",
)
def once(since: int | None) -> None:
    """Run a single poll cycle and show what happened.

    The cursor is saved after every run, so repeated calls pick up where the
    previous one stopped. The very first call only records the mailbox's
    current position; mail that arrives after it is handled by the next call.
    """
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        worker = _build_worker(settings, store)
        start = since if since is not None else store.load_cursor()
        if start is not None:
            worker.cursor.initialize(start)
        summary = worker.run_cycle()
        if worker.cursor.is_initialized:
            store.save_cursor(worker.cursor.current)

        display_cycle_summary(summary)
        if worker.account:
            window = worker.rate_limiter.snapshot(worker.account)
            max_per_hour = store.get_or_default(worker.account).max_replies_per_hour
        else:
            window, max_per_hour = None, 0
        display_worker_status(worker.diagnostics(), window, max_per_hour)
        events = worker.activity.recent()
        if events:
            display_activity(events)


@cli.command()
def enable() -> None:
    """Turn the global auto-reply switch on."""
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        store.set_global_enabled(True)
    console.print("[green]Global auto-reply enabled.[/green]")


@cli.command()
def disable() -> None:
    """Turn the global auto-reply switch off."""
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        store.set_global_enabled(False)
    console.print("[yellow]Global auto-reply disabled.[/yellow]")


@cli.group(name="config")
def config_group() -> None:
    """Show or change per-account auto-reply settings."""


@config_group.command(name="show")
@click.argument("email", required=False)
def config_show(email: str | None) -> None:
    """Show the settings for EMAIL (defaults if never set).

    Without EMAIL, shows the settings of the authenticated Gmail account.
    """
    settings = _load_settings()
    if email is None:
        email = _authenticated_account()
    with AutoReplyStore(db_path=settings.db_path) as store:
        config = store.get_or_default(email)
        globally_enabled = store.is_globally_enabled()
    display_config(email, config)
    state = "[green]on[/green]" if globally_enabled else "[red]off[/red]"
    console.print(f"[bold]Global switch:[/bold] {state}")


@config_group.command(name="set")
@click.argument("email")
@click.option("--enabled/--disabled", default=None, help="Turn auto-reply on or off for EMAIL.")
@click.option(
    "-c",
    "--category",
    "categories",
    multiple=True,
    type=click.Choice(CATEGORIES),
    help="Category to answer (repeatable). Replaces the current list.",
)
@click.option("--min-confidence", type=float, default=None, help="Minimum classifier confidence (0.0-1.0).")
@click.option("--max-per-hour", type=int, default=None, help="Maximum auto-replies per hour.")
def config_set(
    email: str,
    enabled: bool | None,
    categories: tuple[str, ...],
    min_confidence: float | None,
    max_per_hour: int | None,
) -> None:
    """Create or update the settings for EMAIL."""
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        current = store.get_or_default(email)
        updated = AutoReplyConfig(
            enabled=current.enabled if enabled is None else enabled,
            allowed_categories=tuple(categories) or current.allowed_categories,
            min_confidence=current.min_confidence if min_confidence is None else min_confidence,
            max_replies_per_hour=current.max_replies_per_hour if max_per_hour is None else max_per_hour,
        )
        try:
            saved = store.set(email, updated)
        except ConfigurationError as e:
            raise click.ClickException(str(e)) from e
    display_config(email, saved)


@cli.command()
def stats() -> None:
    """Show how many auto-replies were sent per period."""
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        display_stats(store.stats())


@cli.group(name="history", invoke_without_command=True)
@click.option("-n", "--limit", default=20, type=int, help="Number of records to show.")
@click.pass_context
def history_group(ctx: click.Context, limit: int) -> None:
    """Show sent auto-replies, newest first."""
    if ctx.invoked_subcommand is not None:
        return
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        records = store.history(limit=limit)
    if not records:
        console.print("[dim]No auto-replies recorded.[/dim]")
        return
    display_history(records)


@history_group.command(name="reset")
def history_reset() -> None:
    """Delete all auto-reply records."""
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        store.reset_history()
    console.print("[green]Auto-reply history cleared.[/green]")


@cli.command(name="export")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "json"]),
    default="csv",
    help="Output format.",
)
@click.option("-o", "--output", required=True, help="Output file path.")
def export_cmd(fmt: str, output: str) -> None:
    """Export auto-reply history to CSV or JSON."""
    settings = _load_settings()
    with AutoReplyStore(db_path=settings.db_path) as store:
        records = store.history()

    if not records:
        raise click.ClickException("No auto-replies recorded yet.")

    export_history(records, format=fmt, output_path=output)


@cli.command()
def auth() -> None:
    """Test Gmail authentication."""
    check_auth()
