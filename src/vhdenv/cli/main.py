"""
vhdenv CLI Main Entry Point.

Runs one lifecycle task against an environment drive:

    vhdenv E: attach
    vhdenv E: detach --disk D:\\Environments\\work.vhdx
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from vhdenv import __version__
from vhdenv.core.config import load_config
from vhdenv.core.errors import ExitCode
from vhdenv.core.logging import setup_logging
from vhdenv.core.messages import LogSubscriber, Message, MessageBus, Severity
from vhdenv.core.models import DRIVE_PATTERN
from vhdenv.core.orchestrator import USAGE, LifecycleOrchestrator, LifecycleTask
from vhdenv.core.worker import LifecycleWorker
from vhdenv.platform import get_platform_backend

console = Console()


class ConsoleSubscriber:
    """Renders published messages on the terminal."""

    def __init__(self, output: Console, verbose: bool = False) -> None:
        self.output = output
        self.verbose = verbose

    def receive(self, message: Message) -> None:
        if message.severity is Severity.EXIT:
            return
        if message.severity is Severity.ERROR:
            self.output.print(
                Panel(escape(message.text or message.context), title=escape(message.context), border_style="red")
            )
            return
        if message.severity is Severity.WARNING:
            self.output.print(f"[yellow]{escape(message.context)}: {escape(message.text)}[/yellow]")
            return
        if not message.text:
            self.output.print(f"[bold cyan]{escape(message.context)}[/bold cyan]")
            return
        text = message.text
        if not self.verbose and "\n" in text:
            # Raw tool output, only the first line unless verbose
            text = text.splitlines()[0] + " ..."
        self.output.print(f"  [dim]{escape(text)}[/dim]")


def print_usage() -> None:
    console.print(f"[bold]vhdenv {__version__}[/bold]")
    console.print(escape(USAGE))


@click.command()
@click.version_option(version=__version__, prog_name="vhdenv")
@click.argument("drive", required=False)
@click.argument("task", required=False)
@click.option(
    "--disk",
    "-d",
    "disk_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the virtual disk file (default: from configuration)",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.option("--verbose", "-v", is_flag=True, help="Show the full output of failed tools")
@click.pass_context
def cli(
    ctx: click.Context,
    drive: str | None,
    task: str | None,
    disk_file: Path | None,
    config_path: Path | None,
    verbose: bool,
) -> None:
    """
    vhdenv - Portable working environments on virtual disks.

    DRIVE is the drive letter of the environment (e.g. E:), TASK one of
    create, attach, detach, compact or shortcuts.
    """
    lifecycle_task = LifecycleTask.parse(task)
    if drive is None or not DRIVE_PATTERN.match(drive) or lifecycle_task is LifecycleTask.USAGE:
        print_usage()
        ctx.exit(int(ExitCode.USAGE))

    config = load_config(config_path, disk_file)
    setup_logging(config.logging)

    bus = MessageBus()
    bus.subscribe(LogSubscriber())
    bus.subscribe(ConsoleSubscriber(console, verbose=verbose))

    try:
        backend = get_platform_backend(taskkill=config.disk.taskkill)
        if not backend.is_admin():
            console.print("[yellow]Not running as administrator, diskpart may refuse the task[/yellow]")
        orchestrator = LifecycleOrchestrator(backend, bus, config)
        worker = LifecycleWorker(orchestrator, lifecycle_task, drive.upper(), disk_file)
        worker.start()
        exit_code = worker.wait()
    finally:
        bus.close(wait=True)

    ctx.exit(int(exit_code if exit_code is not None else ExitCode.FAILURE))


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
