"""
smd run - Drive every story in the state document to completion.

    smd run [PRD] [MAX_ITERATIONS] [--yes] [--workers N]

Steps before the scheduler starts: pick the requirements document, make
sure the state document has stories (converting the requirements if not),
check the agent binaries, and check the git branch.
"""

import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console
from rich.markup import escape

from smd.git import checkout_branch, get_current_branch
from smd.lib.agents_config import AgentsConfig, get_stage_command, load_agents_config, validate_stage_binaries
from smd.lib.config import ConfigError, RunConfig, find_task_documents, resolve_prd_path
from smd.lib.constants import DIGITS_PATTERN, EXIT_FAILURE
from smd.lib.prompts import PromptError, render_prompt
from smd.notifications import notify_all_done, notify_exhausted, notify_stalled
from smd.prd.models import Document
from smd.prd.store import StateStore, StateStoreError
from smd.runner.locking import LockTimeout, run_lock
from smd.runner.scheduler import RunOutcome, Scheduler, SchedulerResult
from smd.runner.shutdown import ShutdownHandler
from smd.runner.supervisor import ProcessSupervisor
from smd.workflow.fsm import InvalidTransition

logger = logging.getLogger(__name__)

InputFn = Callable[[str], str]


def parse_run_args(positional: list[str], default_iterations: int) -> tuple[Optional[str], int]:
    """Split `[PRD] [MAX_ITERATIONS]`.

    A digits-only first argument is the iteration cap, not a file name.

    Raises:
        ConfigError: on extra arguments or a non-numeric cap
    """
    prd = None
    iterations = default_iterations
    if len(positional) > 2:
        raise ConfigError(f"Too many arguments: {' '.join(positional)}")
    if positional:
        first = positional[0]
        if DIGITS_PATTERN.match(first):
            if len(positional) > 1:
                raise ConfigError(f"Unexpected argument after MAX_ITERATIONS: {positional[1]}")
            iterations = int(first)
        else:
            prd = first
            if len(positional) > 1:
                if not DIGITS_PATTERN.match(positional[1]):
                    raise ConfigError(f"MAX_ITERATIONS must be a number, got '{positional[1]}'")
                iterations = int(positional[1])
    if iterations < 1:
        raise ConfigError("MAX_ITERATIONS must be at least 1")
    return prd, iterations


def select_task_document(config: RunConfig, console: Console, input_fn: InputFn = input) -> Path:
    """Numbered menu over <smd_dir>/tasks/smd-prd-*.md.

    Raises:
        ConfigError: if there is nothing to choose from or the choice is invalid
    """
    if not config.tasks_dir.is_dir():
        raise ConfigError(
            f"{config.tasks_dir} not found. Create PRD files with '/smd-prd [description of task]'"
        )
    documents = find_task_documents(config.smd_dir)
    if not documents:
        raise ConfigError(
            f"No PRD files found in {config.tasks_dir}. Create one with '/smd-prd [description of task]'"
        )
    if len(documents) == 1:
        console.print(f"[green]Selected:[/green] {escape(documents[0].name)}")
        return documents[0]

    console.print()
    console.print("[bold]Select a PRD file:[/bold]")
    for i, path in enumerate(documents, 1):
        console.print(f"  {i}) {escape(path.name)}")

    try:
        answer = input_fn(f"Choice [1-{len(documents)}]: ").strip()
    except EOFError:
        raise ConfigError("No PRD file selected") from None
    if not answer:
        answer = "1"
    if not DIGITS_PATTERN.match(answer) or not 1 <= int(answer) <= len(documents):
        raise ConfigError(f"Invalid choice: {answer}")

    chosen = documents[int(answer) - 1]
    console.print(f"[green]Selected:[/green] {escape(chosen.name)}")
    return chosen


def init_progress_file(path: Path) -> None:
    """Create the shared progress log workers append to, if missing."""
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "# Simply Done Progress Log\n"
        f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
        "---\n"
    )


def convert_if_needed(
    store: StateStore,
    prd_md: Path,
    agents: AgentsConfig,
    config: RunConfig,
    console: Console,
) -> Document:
    """Run the convert stage when the state document has no stories.

    Raises:
        ConfigError: if conversion fails or still yields no stories
    """
    doc = store.load()
    if doc.total > 0:
        return doc

    console.print()
    console.print(f"[yellow]No user stories found in {escape(store.path.name)}[/yellow]")
    console.print(f"[dim]Converting {escape(prd_md.name)} to JSON...[/dim]")

    prompt = render_prompt("convert", prd_path=str(prd_md)).strip()
    stage = get_stage_command(agents, "convert", {"prompt": prompt, "prd_path": str(prd_md)})
    env = {k: v for k, v in os.environ.items() if k != "ANTHROPIC_API_KEY"}
    try:
        result = subprocess.run(
            stage.cmd,
            input=stage.get_stdin_input(prompt),
            text=True,
            cwd=str(config.repo_dir),
            env=env,
            timeout=config.convert_timeout,
        )
    except subprocess.TimeoutExpired:
        raise ConfigError(f"Conversion timed out after {config.convert_timeout}s") from None
    except OSError as e:
        raise ConfigError(f"Conversion failed to start: {e}") from None

    if result.returncode != 0:
        logger.warning(f"Convert stage exited with code {result.returncode}")

    doc = store.load()
    if doc.total == 0:
        raise ConfigError(f"Conversion failed. No user stories in {store.path}")
    console.print(f"[green]Converted PRD to JSON with {doc.total} user stories[/green]")
    return doc


def validate_branch(
    doc: Document,
    repo_dir: Path,
    console: Console,
    assume_yes: bool = False,
    input_fn: InputFn = input,
) -> None:
    """Warn about, or fix, a mismatch between branchName and the checked out branch."""
    current = get_current_branch(repo_dir)
    if not doc.branch_name:
        console.print("[yellow]Warning: No branchName specified in PRD file.[/yellow]")
        console.print(f"[dim]Changes will be made on current branch: {escape(current or '(unknown)')}[/dim]")
        return
    if doc.branch_name == current:
        return

    console.print(
        f"[yellow]Warning: Current branch ({escape(current or 'none')}) doesn't match "
        f"PRD branch ({escape(doc.branch_name)})[/yellow]"
    )
    if not assume_yes:
        try:
            answer = input_fn(f"Switch to {doc.branch_name}? [y/N] ").strip().lower()
        except EOFError:
            answer = ""
        if answer not in ("y", "yes"):
            console.print(f"[dim]Continuing on current branch: {escape(current or 'none')}[/dim]")
            return

    result = checkout_branch(repo_dir, doc.branch_name)
    if not result.success:
        raise ConfigError(f"Failed to switch to {doc.branch_name}: {result.stderr.strip()}")
    console.print(f"Switched to [cyan]{escape(doc.branch_name)}[/cyan]")


def notify_result(result: SchedulerResult, config: RunConfig) -> None:
    if not config.notifications:
        return
    if result.outcome is RunOutcome.ALL_DONE:
        notify_all_done(result.total)
    elif result.outcome is RunOutcome.STALLED:
        notify_stalled(result.completed, result.total, len(result.failed))
    elif result.outcome is RunOutcome.EXHAUSTED:
        notify_exhausted(result.completed, result.total, config.max_iterations)


def prepare_run(args, config: RunConfig, console: Console, input_fn: InputFn = input) -> tuple[StateStore, AgentsConfig]:
    """Everything that must hold before the scheduler starts.

    Raises:
        ConfigError, StateStoreError: reported by cmd_run as ERROR lines
    """
    prd, config.max_iterations = parse_run_args(
        list(getattr(args, "args", None) or []), config.max_iterations
    )
    workers = getattr(args, "workers", None)
    if workers is not None:
        if workers < 0:
            raise ConfigError(f"--workers must be >= 0, got {workers}")
        config.max_workers = workers

    prd_md = resolve_prd_path(config.smd_dir, prd) if prd else select_task_document(config, console, input_fn)
    if not prd_md.is_file():
        raise ConfigError(f"PRD file not found: {prd_md}")
    if not config.prompt_file.is_file():
        raise ConfigError(f"Worker instructions not found: {config.prompt_file}")

    agents = load_agents_config(config.smd_dir)
    check = validate_stage_binaries(agents, ["worker", "convert"])
    if not check.ok:
        raise ConfigError(check.error_message)

    init_progress_file(config.progress_file)

    store = StateStore(config.prd_file)
    if not store.exists():
        console.print(f"[yellow]Creating empty {escape(store.path.name)} (will be populated by /smd-convert)[/yellow]")
        store.create_empty()

    doc = convert_if_needed(store, prd_md, agents, config, console)
    validate_branch(doc, config.repo_dir, console, getattr(args, "yes", False), input_fn)
    return store, agents


def cmd_run(args, config: RunConfig, console: Console | None = None, input_fn: InputFn = input) -> int:
    """Prepare and run the scheduler. Returns the process exit code."""
    console = console or Console()
    try:
        with run_lock(config.smd_dir):
            store, agents = prepare_run(args, config, console, input_fn)
            supervisor = ProcessSupervisor(
                store,
                config.smd_dir,
                agents,
                base_instructions=config.prompt_file.read_text(),
                stop_timeout=config.stop_timeout,
                cwd=config.repo_dir,
            )
            with ShutdownHandler() as shutdown:
                scheduler = Scheduler(store, supervisor, config, console=console, shutdown=shutdown.event)
                result = scheduler.run()
    except LockTimeout as e:
        console.print(f"ERROR: {escape(str(e))}")
        return EXIT_FAILURE
    except (ConfigError, StateStoreError, PromptError, InvalidTransition) as e:
        console.print(f"[red]ERROR:[/red] {escape(str(e))}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        # Interrupted before the scheduler's own handler was installed
        console.print("\n[yellow]Interrupted[/yellow]")
        return RunOutcome.INTERRUPTED.exit_code

    notify_result(result, config)
    return result.exit_code
