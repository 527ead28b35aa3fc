"""CLI entrypoint for question-terminal."""

import logging

import rich_click as click

from question_terminal import __version__
from question_terminal.config import SUPPORTED_LAUNCHERS
from question_terminal.terminal.controllers import GcCommand, SpawnCommand, TerminalCliController

click.rich_click.USE_MARKDOWN = True
TERMINAL_CONTROLLER = TerminalCliController()


@click.group()
@click.version_option(version=__version__, prog_name="question-terminal")
@click.option("--verbose", is_flag=True, default=False, help="Log protocol progress to stderr.")
def question_terminal(verbose: bool) -> None:
    """Run workloads in detached terminal windows."""

    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@question_terminal.command("spawn")
@click.option(
    "--workload",
    required=True,
    help="Workload reference `package.module:callable` (callable defaults to `run`).",
)
@click.option("--input", "input_json", default=None, help="JSON input passed to the workload.")
@click.option(
    "--ttl-ms",
    type=click.IntRange(min=1),
    default=None,
    help="Deadline for the spawned process. Defaults to QUESTION_TERMINAL_TTL_MS.",
)
@click.option(
    "--launcher",
    type=click.Choice(SUPPORTED_LAUNCHERS, case_sensitive=False),
    default=None,
    help="Launch strategy. Defaults to QUESTION_TERMINAL_LAUNCHER.",
)
def spawn(workload: str, input_json: str | None, ttl_ms: int | None, launcher: str | None) -> None:
    """Spawn a workload in a new terminal and wait for its result."""

    result = TERMINAL_CONTROLLER.spawn(
        SpawnCommand(
            workload=workload,
            input_json=input_json,
            ttl_ms=ttl_ms,
            launcher=launcher.lower() if launcher is not None else None,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Spawned workload did not complete successfully.")


@question_terminal.command("gc")
@click.option(
    "--max-age-hours",
    type=click.IntRange(min=0),
    default=None,
    help="Remove sessions older than this. Defaults to QUESTION_TERMINAL_STALE_SESSION_HOURS.",
)
def gc(max_age_hours: int | None) -> None:
    """Remove session directories left behind by interrupted runs."""

    _emit_lines(TERMINAL_CONTROLLER.gc(GcCommand(max_age_hours=max_age_hours)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    question_terminal()
