import argparse
import asyncio
import logging
import os
import subprocess
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from . import gate
from .config import CONFIG_FILE, Config
from .constants import APP_NAME, LOG_FILE
from .diagnostics import DiagnosticsProvider, FileDiagnostics, StaticDiagnostics
from .engine import AutoSyncEngine
from .repository import GitRepository
from .sync import SyncState

logger = logging.getLogger(APP_NAME)
console = Console()


def setup_logging(interactive: bool, verbose: bool = False) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout only. If False, logs to
                            stderr and a rotating file.
        verbose (bool): Whether to include DEBUG records.
    """
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


class ForcePushPrompt:
    """Asks on the terminal whether to retry a rejected push with --force.

    At most one question is open at a time. Retries requested while it is
    open (e.g. by an interval push) are declined instead of queueing up
    behind it.
    """

    def __init__(self) -> None:
        self.is_open = False

    async def __call__(self, message: str) -> bool:
        if self.is_open:
            logger.info("Force push declined: a confirmation prompt is already open.")
            return False

        self.is_open = True
        try:
            console.print(f"[bold yellow]WARNING:[/bold yellow] {message}")
            return await asyncio.to_thread(Confirm.ask, "   Force push?", default=False)
        finally:
            self.is_open = False


def describe_state(state: SyncState) -> str:
    """Renders the sync flags as a status line suffix."""
    if state.is_pushing:
        return " (Pushing...)"
    if state.is_pulling:
        return " (Pulling...)"
    return ""


def _open_repository(path: str | None) -> GitRepository:
    repo_path = Path(path or Path.cwd()).resolve()
    try:
        return GitRepository(repo_path)
    except ValueError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


def _load_diagnostics(path: str | None) -> DiagnosticsProvider:
    if not path:
        return StaticDiagnostics()
    provider = FileDiagnostics(Path(path).resolve())
    try:
        provider.refresh()
    except (OSError, ValueError) as e:
        console.print(f"[bold red]ERROR:[/bold red] Could not read diagnostics: {e}")
        sys.exit(1)
    return provider


def _build_engine(args: argparse.Namespace) -> AutoSyncEngine:
    repository = _open_repository(args.path)
    return AutoSyncEngine(
        repository,
        diagnostics=_load_diagnostics(args.diagnostics),
        confirm_force_push=ForcePushPrompt(),
    )


async def _watch(engine: AutoSyncEngine) -> None:
    name = engine.repository.root.name
    engine.state.subscribe(
        lambda state: console.print(f"[dim]{name}{describe_state(state) or ' (Idle)'}[/dim]")
    )
    await engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()
        prompt = engine.sync.confirm_force_push
        if isinstance(prompt, ForcePushPrompt) and prompt.is_open:
            console.print("[dim]Answer the open force push prompt to finish stopping.[/dim]")
        await engine.scheduler.drain()


def run_watch(engine: AutoSyncEngine) -> None:
    """Watches the repository until interrupted."""
    console.print(
        f"[bold blue]WATCHING:[/bold blue] {engine.repository.root} "
        "(Ctrl+C to stop)"
    )
    try:
        asyncio.run(_watch(engine))
    except KeyboardInterrupt:
        console.print("\n[bold]Stopped watching.[/bold]")


def run_once(engine: AutoSyncEngine, command: str, args: argparse.Namespace) -> None:
    """Runs a single commit, push, or pull and reports the outcome."""
    name = engine.repository.root.name
    try:
        if command == "commit":
            committed = asyncio.run(engine.commit(args.message))
            if committed:
                console.print(f"[bold green]SUCCESS:[/bold green] {name}: Committed.")
            else:
                console.print(f"[dim]{name}: Nothing eligible to commit.[/dim]")
        elif command == "push":
            # No spinner: a rejected push may prompt for confirmation.
            asyncio.run(engine.push(force=args.force))
            console.print(f"[bold green]SUCCESS:[/bold green] {name}: Push finished.")
        elif command == "pull":
            with console.status(f"[bold blue]Pulling {name}...[/bold blue]"):
                asyncio.run(engine.pull())
            console.print(f"[bold green]SUCCESS:[/bold green] {name}: Pull finished.")
    except Exception as e:
        logger.debug(f"{command} failed", exc_info=True)
        console.print(f"[bold red]ERROR:[/bold red] {command} failed: {e}")
        sys.exit(1)


def show_status(repository: GitRepository, diagnostics: DiagnosticsProvider) -> None:
    """Displays pending changes and whether they would be auto-committed."""
    config = Config.load(repository.root)

    async def _collect() -> tuple[list, gate.GateResult]:
        changes = await gate.collect_changes(repository)
        verdict = await gate.is_eligible(repository, diagnostics, config)
        return changes, verdict

    changes, verdict = asyncio.run(_collect())
    blocked = set(
        gate.blocking_paths(
            [c.path for c in changes], diagnostics, config.commit.validation_level
        )
    )

    table = Table(title=f"{repository.root.name}: pending changes")
    table.add_column("Path", style="cyan")
    table.add_column("Kind", style="dim")
    table.add_column("Pattern")
    table.add_column("Diagnostics")

    for change in changes:
        matched = gate.matches(change.path, config.commit.file_pattern, repository.root)
        table.add_row(
            str(change.path.relative_to(repository.root)),
            change.kind.value,
            "[green]match[/green]" if matched else "[dim]skip[/dim]",
            "[red]blocking[/red]"
            if gate.normalize_uri(change.path) in blocked
            else "[green]ok[/green]",
        )

    console.print(table)
    if verdict.eligible:
        console.print(
            f"[bold green]ELIGIBLE:[/bold green] {len(verdict.paths)} file(s) "
            "would be committed."
        )
    else:
        console.print(f"[bold yellow]NOT ELIGIBLE:[/bold yellow] {verdict.reason}")


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# git-autosync Configuration\n\n"
                "[commit]\n"
                '# file_pattern = "**/*"\n'
                '# auto_commit_delay = "30s"\n\n'
                "[sync]\n"
                '# auto_push = "onCommit"\n'
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        editor = "open" if sys.platform == "darwin" else "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


CONFIG_REFERENCE = [
    ("commit", "file_pattern", "str", '"**/*"', "Glob that changed files must match."),
    ("", "validation_level", "str", '"error"', "'none', 'error' or 'warning'."),
    ("", "auto_commit_delay", "int | str", '"30s"', "Quiet time before committing."),
    ("", "message_format", "str", '"%b %d, %Y, %I:%M %p"', "strftime template."),
    ("", "time_zone", "str", "None", "IANA zone for the message time."),
    ("", "no_verify", "bool", "false", "Skip pre-commit hooks."),
    ("ai", "enabled", "bool", "false", "Generate messages from the diff."),
    ("", "model", "str", '"gpt-4o"', "Model family passed to the command."),
    ("", "use_emojis", "bool", "false", "Start messages with an emoji."),
    ("", "custom_instructions", "str", '""', "Extra prompt instructions."),
    ("", "command", "list", "[]", "Command reading the prompt on stdin ({model})."),
    ("sync", "remote_name", "str", '"origin"', "Remote to push to and pull from."),
    ("", "auto_push", "str", '"onCommit"', "'off', 'onCommit' or 'afterDelay'."),
    ("", "auto_pull", "str", '"onPush"', "'off', 'onCommit', 'onPush', 'afterDelay'."),
    ("", "auto_push_delay", "int | str", '"30s"', "Interval for 'afterDelay' pushes."),
    ("", "auto_pull_delay", "int | str", '"30s"', "Interval for 'afterDelay' pulls."),
    ("", "push_mode", "str", '"forcePush"', "'push', 'forcePush', 'forcePushWithLease'."),
    ("", "pull_on_open", "bool", "true", "Pull once when watching starts."),
]


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="git-autosync Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    for row in CONFIG_REFERENCE:
        table.add_row(*row)

    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Commit on save and keep a git branch in sync with its remote.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.set_defaults(path=None, diagnostics=None)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--path", help="Repository root (default: current directory)")
    common.add_argument(
        "--diagnostics", help="JSON file of editor diagnostics used for validation"
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "watch", parents=[common], help="Commit on save until interrupted"
    )

    commit_parser = subparsers.add_parser(
        "commit", parents=[common], help="Commit pending changes now"
    )
    commit_parser.add_argument("-m", "--message", help="Use this commit message")

    push_parser = subparsers.add_parser(
        "push", parents=[common], help="Push the current branch"
    )
    push_parser.add_argument(
        "--force", "-f", action="store_true", help="Force push without asking"
    )

    subparsers.add_parser("pull", parents=[common], help="Pull the current branch")
    subparsers.add_parser(
        "status", parents=[common], help="Show pending changes and eligibility"
    )

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-autosync CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "watch"

    if command == "config":
        if getattr(args, "list", False):
            show_config_reference()
        else:
            open_config()
        return

    setup_logging(interactive=command != "watch", verbose=args.verbose)

    if command == "status":
        show_status(_open_repository(args.path), _load_diagnostics(args.diagnostics))
        return

    engine = _build_engine(args)
    if command == "watch":
        run_watch(engine)
    else:
        run_once(engine, command, args)


if __name__ == "__main__":
    main()
