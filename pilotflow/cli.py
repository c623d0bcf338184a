"""Command line interface for running and inspecting pilotflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml

from pilotflow.config import load_config
from pilotflow.contracts import ExecutionOptions
from pilotflow.errors import PilotflowError
from pilotflow.orchestrator import WorkflowOrchestrator

app = typer.Typer(help="CLI for pilotflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow definitions")
execution_app = typer.Typer(help="Commands for inspecting workflow executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """Pilotflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _orchestrator() -> WorkflowOrchestrator:
    return WorkflowOrchestrator()


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _fail(error: PilotflowError) -> None:
    typer.secho(f"{error.code}: {error.message}", fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _read_document(path: Path) -> Dict[str, Any]:
    """Read a JSON or YAML mapping from ``path``."""
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    # YAML is a superset of JSON, so one loader covers both formats
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        typer.secho(f"{path} does not contain a mapping", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return data


def _parse_input(input: Optional[str], input_file: Optional[Path]) -> Dict[str, Any]:
    if input_file is not None:
        return _read_document(input_file)
    if not input:
        return {}
    try:
        data = json.loads(input)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON input: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(data, dict):
        typer.secho("Input must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return data


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List predefined and custom workflows.

    Example:
        pilotflow workflow list
        # Output: full-test-suite    Full Test Suite Generation    TestWeaver, ScriptSmith, CodeGuardian
    """
    listing = asyncio.run(_orchestrator().list_workflows())
    for summary in listing.predefined:
        typer.echo(f"{summary.id}\t{summary.name}\t{', '.join(summary.agents)}")
    if not listing.custom:
        typer.echo("No custom workflows found")
        return
    for summary in listing.custom:
        typer.echo(f"{summary.id}\t{summary.name}\tcustom")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Print a workflow definition as JSON."""
    try:
        definition = asyncio.run(_orchestrator().get_workflow(workflow_id))
    except PilotflowError as exc:
        _fail(exc)
    _echo_json(definition.to_wire())


@workflow_app.command("create")
def workflow_create(definition_path: Path) -> None:
    """
    Validate and store a custom workflow definition.

    Args:
        definition_path: YAML or JSON file with ``name``, ``description`` and ``steps``

    Example:
        pilotflow workflow create ./my-workflow.yaml
        # Output: Created workflow 6f1c...: My workflow
    """
    data = _read_document(definition_path)
    try:
        summary = asyncio.run(_orchestrator().create_custom_workflow(data))
    except PilotflowError as exc:
        _fail(exc)
    typer.echo(f"Created workflow {summary.id}: {summary.name}")


@workflow_app.command("delete")
def workflow_delete(workflow_id: str) -> None:
    """Delete a custom workflow definition."""
    try:
        asyncio.run(_orchestrator().delete_custom_workflow(workflow_id))
    except PilotflowError as exc:
        _fail(exc)
    typer.echo(f"Deleted workflow {workflow_id}")


@workflow_app.command("run")
def workflow_run(
    workflow_id: str,
    input: Optional[str] = typer.Option(None, help="Workflow input as a JSON object"),
    input_file: Optional[Path] = typer.Option(None, help="YAML or JSON file with the input"),
    timeout: Optional[float] = typer.Option(None, help="Recorded execution timeout"),
    retry_on_failure: bool = typer.Option(False, help="Recorded retry flag"),
    max_retries: int = typer.Option(0, help="Recorded retry limit"),
) -> None:
    """
    Execute a workflow and print the execution result.

    The input must contain ``projectId``. Exits with code 1 when the
    workflow does not complete.

    Example:
        pilotflow workflow run full-test-suite --input '{"projectId": "p1", "specification": "..."}'
    """
    payload = _parse_input(input, input_file)
    options = ExecutionOptions(
        timeout=timeout, retry_on_failure=retry_on_failure, max_retries=max_retries
    )
    try:
        result = asyncio.run(_orchestrator().execute_workflow(workflow_id, payload, options))
    except PilotflowError as exc:
        _fail(exc)
    _echo_json(result.to_wire())
    if result.status.value != "completed":
        raise typer.Exit(code=1)


@workflow_app.command("estimate")
def workflow_estimate(
    workflow_id: str,
    input: Optional[str] = typer.Option(None, help="Workflow input as a JSON object"),
    input_file: Optional[Path] = typer.Option(None, help="YAML or JSON file with the input"),
) -> None:
    """Estimate the token usage and cost of a predefined workflow."""
    payload = _parse_input(input, input_file)
    try:
        estimate = asyncio.run(_orchestrator().estimate_cost(workflow_id, payload))
    except PilotflowError as exc:
        _fail(exc)
    _echo_json(estimate.to_wire())


@execution_app.command("list")
def execution_list(
    project_id: Optional[str] = typer.Option(None, help="Only executions of this project"),
    status: Optional[str] = typer.Option(None, help="Only executions with this status"),
    workflow_id: Optional[str] = typer.Option(None, help="Only executions of this workflow"),
    page: int = typer.Option(1, help="Page number, starting at 1"),
    limit: int = typer.Option(10, help="Executions per page"),
) -> None:
    """
    List executions newest first.

    Example:
        pilotflow execution list --project-id p1
        # Output: 0b7e...    full-test-suite    completed
    """
    try:
        result = asyncio.run(
            _orchestrator().list_executions(
                project_id=project_id,
                status=status,
                workflow_id=workflow_id,
                page=page,
                limit=limit,
            )
        )
    except PilotflowError as exc:
        _fail(exc)
    if not result.data:
        typer.echo("No executions found")
        return
    for record in result.data:
        typer.echo(f"{record.id}\t{record.workflow_id}\t{record.status.value}")
    typer.echo(f"Page {result.page} ({len(result.data)} of {result.total})")


@execution_app.command("status")
def execution_status(execution_id: str) -> None:
    """Show progress of an execution as JSON."""
    try:
        status = asyncio.run(_orchestrator().get_workflow_status(execution_id))
    except PilotflowError as exc:
        _fail(exc)
    _echo_json(status.to_wire())


@execution_app.command("cancel")
def execution_cancel(execution_id: str) -> None:
    """Cancel a pending or running execution."""
    try:
        status = asyncio.run(_orchestrator().cancel_workflow(execution_id))
    except PilotflowError as exc:
        _fail(exc)
    typer.echo(f"Execution {execution_id}: {status.value}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
