"""
AMC Analytics CLI - operator tools for practice analytics.

Usage:
    amc-analytics summary USER_ID --id-token TOKEN   # Print a user's analytics
    amc-analytics pending                            # List emergency snapshots on disk
    amc-analytics recover USER_ID --id-token TOKEN   # Replay a snapshot and flush it
    amc-analytics clear-snapshots --yes              # Delete every snapshot
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import Settings, get_settings
from src.analytics.manager import ProblemAnalyticsManager
from src.errors import AnalyticsError
from src.logging_setup import configure_logging
from src.persistence.emergency import EmergencySnapshotStore
from src.persistence.kv_store import FileKeyValueStore
from src.remote.auth import StaticTokenUser
from src.remote.supabase_client import SupabaseProblemDataClient
from src.sync.controller import AnalyticsSyncController

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="amc-analytics",
    help="Practice analytics for AMC problem sets",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _snapshot_store(settings: Settings) -> EmergencySnapshotStore:
    return EmergencySnapshotStore(
        FileKeyValueStore(settings.emergency_dir),
        max_age=timedelta(hours=settings.emergency_max_age_hours),
    )


def _require_supabase(settings: Settings) -> None:
    if not settings.has_supabase_configured():
        console.print("[red]Supabase is not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY.[/]")
        raise typer.Exit(code=1)


# =============================================================================
# Commands
# =============================================================================


@app.command()
def summary(
    user_id: Annotated[str, typer.Argument(help="Firebase user id")],
    id_token: Annotated[
        str, typer.Option("--id-token", envvar="AMC_ID_TOKEN", help="Firebase ID token for the user")
    ],
    top: Annotated[int, typer.Option("--top", "-n", help="Number of topics to show")] = 5,
) -> None:
    """Show totals, top topics, difficulty distribution and timing insights."""
    settings = get_settings()
    _require_supabase(settings)

    try:
        manager = asyncio.run(_load_manager(settings, StaticTokenUser(user_id, id_token)))
    except AnalyticsError as e:
        console.print(f"[red]Failed to load analytics: {e}[/]")
        raise typer.Exit(code=1) from e

    if manager is None:
        console.print(f"[yellow]No analytics recorded for {user_id}[/]")
        return

    _print_summary(manager, top)


async def _load_manager(settings: Settings, user: StaticTokenUser) -> ProblemAnalyticsManager | None:
    async with SupabaseProblemDataClient.from_settings(user, settings) as remote:
        stats = await remote.load_stats(user.uid)
    if stats is None:
        return None
    manager = ProblemAnalyticsManager(user, stats, timing_retention_days=settings.timing_retention_days)
    manager.check_and_reset_daily()
    return manager


def _print_summary(manager: ProblemAnalyticsManager, top: int) -> None:
    stats = manager.current_stats
    insights = manager.get_timing_insights()

    console.print(
        Panel(
            f"[bold cyan]Solved:[/] {stats.total_problems_solved}  "
            f"[bold cyan]Today:[/] {stats.daily_problems_solved}\n"
            f"[bold cyan]Attempts:[/] {stats.total_attempts}  "
            f"[bold cyan]Accuracy:[/] {stats.average_accuracy:.1f}%\n"
            f"[bold cyan]Avg time/problem:[/] {insights.average_time_per_problem}s  "
            f"[bold cyan]Trend:[/] {insights.recent_performance_trend}\n"
            f"[bold cyan]Most productive day:[/] {insights.most_productive_day or '-'}",
            title=f"Analytics for {stats.user_id}",
            border_style="cyan",
        )
    )

    topics = Table(title="Top Topics")
    topics.add_column("Topic", style="cyan")
    topics.add_column("Solved", justify="right", style="green")
    topics.add_column("Accuracy", justify="right")
    for item in manager.get_top_topics(limit=top):
        topics.add_row(item["topic"], str(item["solved"]), f"{item['accuracy']:.1f}%")
    console.print(topics)

    difficulties = Table(title="Difficulty Distribution")
    difficulties.add_column("Difficulty", style="cyan")
    difficulties.add_column("Solved", justify="right", style="green")
    difficulties.add_column("Attempts", justify="right")
    difficulties.add_column("Accuracy", justify="right")
    for item in manager.get_difficulty_distribution():
        difficulties.add_row(
            item["difficulty"], str(item["solved"]), str(item["attempts"]), f"{item['accuracy']:.1f}%"
        )
    console.print(difficulties)


@app.command()
def pending() -> None:
    """List emergency snapshots waiting to be recovered."""
    snapshots = _snapshot_store(get_settings())
    user_ids = snapshots.list_user_ids()

    if not user_ids:
        console.print("[green]No emergency snapshots on disk[/]")
        return

    table = Table(title="Emergency Snapshots")
    table.add_column("User", style="cyan")
    table.add_column("Pending", justify="right", style="yellow")
    table.add_column("Daily Reset", justify="center")
    table.add_column("Saved At")

    for user_id in sorted(user_ids):
        snapshot = snapshots.peek(user_id)
        if snapshot is None:
            table.add_row(user_id, "-", "-", "[red]unreadable[/]")
            continue
        saved_at = datetime.fromtimestamp(snapshot.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(
            user_id,
            str(len(snapshot.pending_attempts)),
            "✓" if snapshot.needs_daily_reset_save else "",
            saved_at,
        )

    console.print(table)


@app.command()
def recover(
    user_id: Annotated[str, typer.Argument(help="Firebase user id")],
    id_token: Annotated[
        str, typer.Option("--id-token", envvar="AMC_ID_TOKEN", help="Firebase ID token for the user")
    ],
) -> None:
    """Replay a user's emergency snapshot and push it to Supabase."""
    settings = get_settings()
    _require_supabase(settings)

    snapshots = _snapshot_store(settings)
    if not snapshots.has_snapshot(user_id):
        console.print(f"[yellow]No emergency snapshot for {user_id}[/]")
        return

    try:
        recovered, unsaved = asyncio.run(_run_recover(settings, StaticTokenUser(user_id, id_token)))
    except AnalyticsError as e:
        console.print(f"[red]Recovery failed: {e}[/]")
        raise typer.Exit(code=1) from e

    if not recovered:
        console.print("[yellow]Snapshot was stale, malformed or for another user and has been discarded[/]")
    elif unsaved:
        console.print(f"[red]Recovered, but {unsaved} attempts could not be saved. Snapshot rewritten.[/]")
        raise typer.Exit(code=1)
    else:
        console.print(f"[green]✓ Recovered and saved analytics for {user_id}[/]")


async def _run_recover(settings: Settings, user: StaticTokenUser) -> tuple[bool, int]:
    async with SupabaseProblemDataClient.from_settings(user, settings) as remote:
        controller = AnalyticsSyncController.from_settings(user, remote, settings)
        await controller.load()
        recovered = controller.status.emergency_recovered
        unsaved = controller.manager.get_pending_count() if controller.manager else 0
        await controller.close()
    return recovered, unsaved


@app.command("clear-snapshots")
def clear_snapshots(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete every emergency snapshot."""
    if not yes and not typer.confirm("Delete all emergency snapshots?"):
        raise typer.Abort()

    removed = _snapshot_store(get_settings()).clear_all()
    console.print(f"[green]Removed {removed} snapshot(s)[/]")


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
) -> None:
    """AMC practice analytics operator tools."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
