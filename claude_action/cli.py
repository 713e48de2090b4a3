"""claude-action CLI: the prepare and finalize invocations of one CI run."""

from __future__ import annotations

import json
import os
from pathlib import Path

import typer
from pydantic import ValidationError

from claude_action.errors import ActionError
from claude_action.models.handoff_contracts import HANDOFF_VARIABLE, HandoffRecordV1
from claude_action.pipeline.execution_report import load_execution_report
from claude_action.pipeline.orchestrator import TaskFileWriter, finalize_run, prepare_run
from claude_action.pipeline.runner_config import RUNNER_CONFIG_VARIABLE, write_runner_config
from claude_action.platforms.platform import build_platform_from_env
from claude_action.shared.logging import setup_logging
from claude_action.shared.settings import detect_provider

app = typer.Typer(add_completion=False, help="claude-action: run Claude from GitHub or GitLab CI")


def _publish_line(line: str, env_file: Path | None, echo: bool = True) -> None:
    target = env_file
    if target is None and os.getenv("GITHUB_OUTPUT"):
        target = Path(os.environ["GITHUB_OUTPUT"])
    if target is not None:
        with target.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
    if echo:
        typer.echo(line)


def _publish_handoff(record: HandoffRecordV1, env_file: Path | None) -> None:
    _publish_line(record.to_env_line(), env_file)


@app.command()
def prepare(
    env_file: Path = typer.Option(None, "--env-file", help="dotenv file for the handoff record"),
    task_dir: Path = typer.Option(None, "--task-dir", help="directory for the task file"),
) -> None:
    """Check gates, create the tracking comment and branch, write the task file."""
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        platform, context = build_platform_from_env()
    except ActionError as exc:
        typer.echo(f"Prepare step failed with error: {exc}", err=True)
        failed = HandoffRecordV1(
            provider=detect_provider(), prepare_success=False, prepare_error=str(exc)
        )
        _publish_handoff(failed, env_file)
        raise typer.Exit(code=1) from exc

    builder = TaskFileWriter(task_dir)
    result = prepare_run(platform, context, prompt_builder=builder)
    _publish_handoff(result.handoff, env_file)

    if result.error is not None:
        typer.echo(f"Prepare step failed with error: {result.error}", err=True)
        raise typer.Exit(code=1)
    if not result.triggered or result.launch is None:
        typer.echo("No trigger found, skipping remaining steps")
        return

    config_file = write_runner_config(result.launch.runner_config, builder.output_dir)
    _publish_line(f"{RUNNER_CONFIG_VARIABLE}={config_file}", env_file, echo=False)
    typer.echo(
        json.dumps(
            {
                "working_branch": result.launch.working_branch,
                "comment_id": result.launch.comment_id,
                "allowed_tools": list(result.launch.allowed_tools),
                "task_file": str(result.launch.task_file),
                "runner_config_file": str(config_file),
            },
            indent=2,
        )
    )


@app.command()
def finalize(
    handoff: str = typer.Option("", "--handoff", envvar=HANDOFF_VARIABLE),
    output_file: Path = typer.Option(None, "--output-file", envvar="OUTPUT_FILE"),
    assistant_success: bool = typer.Option(
        True, "--assistant-success/--assistant-failed", envvar="CLAUDE_SUCCESS"
    ),
) -> None:
    """Delete an unused bot branch and write the final tracking comment state."""
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    if not handoff.strip():
        typer.echo(f"Error: no handoff record; pass --handoff or set {HANDOFF_VARIABLE}", err=True)
        raise typer.Exit(code=1)
    try:
        record = HandoffRecordV1.from_json(handoff)
    except ValidationError as exc:
        typer.echo(f"Error: invalid handoff record: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    details = load_execution_report(output_file) if record.prepare_success else None
    try:
        platform, context = build_platform_from_env()
        result = finalize_run(
            platform,
            context,
            record,
            details=details,
            assistant_succeeded=assistant_success,
        )
    except ActionError as exc:
        typer.echo(f"Error updating comment with job link: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if result.comment_updated:
        typer.echo(f"✅ Updated comment {record.comment_id} with job link")
    elif result.error is not None:
        typer.echo(f"Warning: tracking comment was not updated: {result.error}", err=True)
    else:
        typer.echo("No tracking comment to update")


if __name__ == "__main__":
    app()
