"""CLI entrypoint for makefilehub."""

import logging
from pathlib import Path

import rich_click as click

from makefilehub import __version__
from makefilehub.controllers import (
    OUTPUT_FORMATS,
    CommandOutcome,
    DetectCommand,
    ListCommand,
    RunCommand,
    TaskCliController,
    parse_assignments,
)

click.rich_click.USE_MARKDOWN = True
TASK_CONTROLLER = TaskCliController()

_project_option = click.option(
    "--project",
    "-p",
    "project_dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=Path("."),
    show_default=True,
    help="Project directory.",
)
_format_option = click.option(
    "--format",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="table",
    show_default=True,
    help="Output format.",
)
_runner_option = click.option(
    "--runner",
    "-r",
    default=None,
    help="Force a runner: `make`, `just`, `script` or a script path such as `./build.sh`.",
)


@click.group()
@click.version_option(version=__version__, prog_name="makefilehub")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def makefilehub(verbose: bool) -> None:
    """Detect build systems, list their tasks and run them."""

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@makefilehub.command("detect")
@_project_option
@_format_option
def detect(project_dir: Path, output_format: str) -> None:
    """Show which build system a project uses and the files found."""

    _finish(
        TASK_CONTROLLER.detect(
            DetectCommand(project_dir=project_dir, output_format=output_format),
        ),
    )


@makefilehub.command("list")
@_project_option
@_runner_option
@_format_option
def list_tasks(project_dir: Path, runner: str | None, output_format: str) -> None:
    """List tasks with descriptions and arguments."""

    _finish(
        TASK_CONTROLLER.list_tasks(
            ListCommand(project_dir=project_dir, runner=runner, output_format=output_format),
        ),
    )


@makefilehub.command("run", context_settings={"ignore_unknown_options": True})
@click.argument("task")
@click.argument("positional_args", nargs=-1, type=click.UNPROCESSED)
@_project_option
@_runner_option
@click.option(
    "--arg",
    "-a",
    "assignments",
    multiple=True,
    help="Named task argument as KEY=VALUE. Can be repeated.",
)
@click.option(
    "--env",
    "-e",
    "env_assignments",
    multiple=True,
    help="Extra environment variable as KEY=VALUE. Can be repeated.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=float,
    default=None,
    help="Timeout in seconds; 0 disables it. Defaults to MAKEFILEHUB_TIMEOUT_SECONDS.",
)
@_format_option
def run(  # noqa: PLR0913
    task: str,
    positional_args: tuple[str, ...],
    project_dir: Path,
    runner: str | None,
    assignments: tuple[str, ...],
    env_assignments: tuple[str, ...],
    timeout_seconds: float | None,
    output_format: str,
) -> None:
    """Run a task, forwarding named and positional arguments."""

    try:
        args = parse_assignments(assignments, option="--arg")
        env = parse_assignments(env_assignments, option="--env")
    except ValueError as error:
        raise click.BadParameter(str(error)) from error

    _finish(
        TASK_CONTROLLER.run_task(
            RunCommand(
                project_dir=project_dir,
                task=task,
                args=args,
                positional_args=positional_args,
                env=env,
                timeout_seconds=timeout_seconds,
                runner=runner,
                output_format=output_format,
            ),
        ),
    )


def _finish(outcome: CommandOutcome) -> None:
    _emit_lines(outcome.lines)
    if not outcome.success:
        raise click.ClickException(outcome.error or "Command failed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    makefilehub()
