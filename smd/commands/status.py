"""
smd status - Show stories and progress.
"""

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from smd.lib.config import RunConfig
from smd.lib.constants import STATUS_COMPLETED, STATUS_FAILED, STATUS_IN_PROGRESS, STATUS_PENDING
from smd.prd.models import Document
from smd.prd.store import StateStore, StateStoreError
from smd.runner import resolver
from smd.runner.locking import is_locked, lock_holder

STATUS_COLORS = {
    STATUS_COMPLETED: "green",
    STATUS_IN_PROGRESS: "yellow",
    STATUS_FAILED: "red",
    STATUS_PENDING: "white",
}


def build_story_table(doc: Document) -> Table:
    """Stories in document order, with readiness for pending ones."""
    ready_ids = set(resolver.ready(doc))
    table = Table(title=escape(doc.description) or None, show_header=True, header_style="bold")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Depends on", style="dim")

    for story in doc.stories:
        color = STATUS_COLORS.get(story.status, "white")
        status = f"[{color}]{story.status}[/{color}]"
        if story.id in ready_ids:
            status += " [dim](ready)[/dim]"
        table.add_row(
            escape(story.id),
            escape(story.title),
            status,
            escape(", ".join(story.dependencies)) or "-",
        )
    return table


def cmd_status(args, config: RunConfig, console: Console | None = None) -> int:
    """Print the story table and progress for config.smd_dir."""
    console = console or Console()
    store = StateStore(config.prd_file)
    if not store.exists():
        console.print(f"ERROR: No state document at {escape(str(config.prd_file))}")
        return 1
    try:
        doc = store.load()
    except StateStoreError as e:
        console.print(f"ERROR: {escape(str(e))}")
        return 1

    if doc.branch_name:
        console.print(f"Branch: [cyan]{escape(doc.branch_name)}[/cyan]")
    console.print(build_story_table(doc))
    console.print(
        f"Progress: [green]{doc.completed_count}[/green]/{doc.total} complete, "
        f"{doc.count(STATUS_IN_PROGRESS)} in progress, "
        f"[red]{doc.count(STATUS_FAILED)}[/red] failed"
    )

    if is_locked(config.smd_dir):
        holder = lock_holder(config.smd_dir)
        console.print(f"[yellow]A run is active{f' (pid {holder})' if holder else ''}[/yellow]")
    elif doc.count(STATUS_IN_PROGRESS):
        console.print("[dim]No run is active; in_progress stories will be reset on the next run[/dim]")

    blocked = resolver.blocked(doc)
    unknown = [b for b in blocked if b.unknown]
    for entry in unknown:
        console.print(f"[red]{escape(entry.story_id)} depends on unknown stories: {escape(', '.join(entry.unknown))}[/red]")
    return 0
