"""
smd watch - Live view of a run.

Read-only TUI over the state document and the worker logs. It can run
next to `smd run` in another terminal; it never takes the run lock and
never writes the document.
"""

from pathlib import Path
from typing import Optional

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, VerticalScroll
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, Static

from smd.lib.constants import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    WORKER_LOG_PATTERN,
)
from smd.lib.config import RunConfig
from smd.prd.models import Document, Story
from smd.prd.store import Snapshot, SnapshotDiff, StateStore, StateStoreError
from smd.runner.locking import is_locked

POLL_INTERVAL_SECONDS = 2.0
LOG_TAIL_LINES = 40

STATUS_STYLES = {
    STATUS_COMPLETED: ("green", "✔"),
    STATUS_IN_PROGRESS: ("yellow", "⏳"),
    STATUS_FAILED: ("red", "✗"),
}


def format_story_line(story: Story) -> str:
    """One story as a Rich markup line."""
    color, symbol = STATUS_STYLES.get(story.status, ("", "·"))
    deps = f" [dim](after {escape(', '.join(story.dependencies))})[/dim]" if story.dependencies else ""
    story_id = escape(story.id)
    title = escape(story.title)
    if color:
        return f"  [{color}]{symbol}[/{color}] [bold]{story_id}[/bold] {title}{deps}"
    return f"  {symbol} [bold]{story_id}[/bold] {title}{deps}"


def summarize_diff(diff: SnapshotDiff) -> Optional[str]:
    """Human summary of what changed between two polls, or None."""
    if not diff.changed:
        return None
    parts = []
    if diff.completed:
        parts.append(f"{diff.completed} completed")
    if diff.failed:
        parts.append(f"{diff.failed} failed")
    if diff.started:
        parts.append(f"{diff.started} started")
    if diff.reverted:
        parts.append(f"{diff.reverted} back to pending")
    return ", ".join(parts)


def tail_worker_logs(smd_dir: Path, lines: int = LOG_TAIL_LINES) -> str:
    """Last lines of every worker log, slot by slot."""
    sections = []
    for log_path in sorted(smd_dir.glob(WORKER_LOG_PATTERN.format(slot="*"))):
        try:
            content = log_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        tail = "\n".join(content.splitlines()[-lines:])
        sections.append(f"==> {log_path.name} <==\n{tail}")
    return "\n\n".join(sections)


class ContentScreen(ModalScreen):
    """Full screen content viewer for worker logs."""

    BINDINGS = [
        Binding("q", "back", "Back"),
        Binding("escape", "back", "Back"),
    ]

    def __init__(self, content: str, title: str = "") -> None:
        super().__init__()
        self.content = content
        self.screen_title = title

    def compose(self) -> ComposeResult:
        yield Header()
        yield VerticalScroll(
            Static(self.content, id="content-body", markup=False),
            id="content-scroll",
        )
        yield Footer()

    def on_mount(self) -> None:
        if self.screen_title:
            self.title = self.screen_title

    def action_back(self) -> None:
        self.app.pop_screen()


class ProgressWidget(Static):
    """Run header: description, progress, whether a scheduler is active."""

    document: reactive[Optional[Document]] = reactive(None)
    running: reactive[bool] = reactive(False)

    def render(self) -> str:
        doc = self.document
        if doc is None:
            return "Loading..."
        lines = []
        if doc.description:
            lines.append(f"[bold]{escape(doc.description)}[/bold]")
        if doc.branch_name:
            lines.append(f"Branch: [cyan]{escape(doc.branch_name)}[/cyan]")
        state = "[green]running[/green]" if self.running else "[dim]idle[/dim]"
        lines.append(f"Progress: [green]{doc.completed_count}[/green]/{doc.total}  Scheduler: {state}")
        return "\n".join(lines)


class StoriesWidget(Static):
    """Story list with status symbols."""

    document: reactive[Optional[Document]] = reactive(None, always_update=True)

    def render(self) -> str:
        if self.document is None or not self.document.stories:
            return "[dim]No stories yet[/dim]"
        return "\n".join(format_story_line(s) for s in self.document.stories)


class WatchApp(App):
    """Main watch TUI application."""

    CSS = """
    #main-container {
        layout: vertical;
        padding: 1;
    }

    #progress-box {
        border: solid green;
        padding: 1;
        margin-bottom: 1;
        height: auto;
    }

    #stories-box {
        border: solid blue;
        padding: 1;
        height: 1fr;
    }

    #content-scroll {
        height: 1fr;
    }

    #content-body {
        padding: 1;
    }

    ProgressWidget {
        height: auto;
    }
    """

    BINDINGS = [
        Binding("l", "show_logs", "Logs"),
        Binding("r", "refresh_now", "Refresh"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(self, config: RunConfig) -> None:
        super().__init__()
        self.config = config
        self.store = StateStore(config.prd_file)
        self.snapshot: Optional[Snapshot] = None
        self._load_error_notified = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Container(
            Container(ProgressWidget(id="progress"), id="progress-box"),
            Container(VerticalScroll(StoriesWidget(id="stories")), id="stories-box"),
            id="main-container",
        )
        yield Footer()

    def on_mount(self) -> None:
        self.title = "smd watch"
        self.refresh_data()
        self.set_interval(POLL_INTERVAL_SECONDS, self.refresh_data)

    def refresh_data(self) -> None:
        """Reload the state document and announce changes since the last poll."""
        try:
            if self.snapshot is not None:
                summary = summarize_diff(self.store.diff(self.snapshot))
                if summary:
                    self.notify(summary, severity="information")
            self.snapshot = self.store.snapshot()
            doc = self.store.load()
            self._load_error_notified = False
        except StateStoreError as e:
            if not self._load_error_notified:
                self.notify(f"Failed to load state: {escape(str(e))}", severity="error")
                self._load_error_notified = True
            return

        progress = self.query_one("#progress", ProgressWidget)
        progress.document = doc
        progress.running = is_locked(self.config.smd_dir)
        self.query_one("#stories", StoriesWidget).document = doc
        self.sub_title = f"{doc.completed_count}/{doc.total} complete"

    def action_refresh_now(self) -> None:
        self.refresh_data()

    def action_show_logs(self) -> None:
        content = tail_worker_logs(self.config.smd_dir)
        if not content:
            self.notify("No worker logs yet", severity="warning")
            return
        self.push_screen(ContentScreen(content, title="Worker logs"))


def cmd_watch(args, config: RunConfig) -> int:
    """Watch the state document of config.smd_dir."""
    if not config.prd_file.exists():
        print(f"ERROR: No state document at {config.prd_file}")
        print("  Start a run first: smd run")
        return 1

    app = WatchApp(config)
    app.run()
    return 0
