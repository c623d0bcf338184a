import asyncio
import json

import pytest
from typer.testing import CliRunner

import pilotflow.persistence as persistence
import pilotflow.registry as registry_module
from pilotflow.cli import app
from pilotflow.contracts import ExecutionStatus
from pilotflow.persistence import InMemoryWorkflowRepository

runner = CliRunner()


def invoke(args):
    return runner.invoke(app, ["--log-level", "ERROR", *args])


@pytest.fixture
def repo(registry) -> InMemoryWorkflowRepository:
    repo = InMemoryWorkflowRepository()
    persistence._repository_instance = repo
    registry_module._registry_instance = registry
    return repo


def test_workflow_list_shows_predefined_and_custom(repo):
    asyncio.run(repo.create_definition("My flow", "", []))

    result = invoke(["workflow", "list"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "full-test-suite" in result.stdout
    assert "TestWeaver, ScriptSmith, CodeGuardian" in result.stdout
    assert "My flow" in result.stdout


def test_workflow_show_and_missing(repo):
    result = invoke(["workflow", "show", "api-test-flow"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    shown = json.loads(result.stdout)
    assert shown["steps"][0]["outputKey"] == "flowPilot"

    missing = invoke(["workflow", "show", "nope"])
    assert missing.exit_code == 1
    assert "Workflow with id 'nope' not found" in missing.stdout


def test_workflow_create_from_yaml_and_delete(repo, tmp_path):
    path = tmp_path / "flow.yaml"
    path.write_text(
        """
name: Generate only
description: one agent
steps:
  - id: s1
    type: agent
    agent: TestWeaver
    operation: generate
    input:
      specification: ${input.specification}
    outputKey: cases
"""
    )
    result = invoke(["workflow", "create", str(path)])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Generate only" in result.stdout

    definitions = asyncio.run(repo.list_definitions())
    assert len(definitions) == 1
    workflow_id = definitions[0].id
    assert definitions[0].steps[0]["outputKey"] == "cases"

    deleted = invoke(["workflow", "delete", workflow_id])
    assert deleted.exit_code == 0
    assert asyncio.run(repo.list_definitions()) == []


def test_workflow_create_rejects_invalid_definition(repo, tmp_path):
    path = tmp_path / "flow.json"
    path.write_text(json.dumps({"name": "bad", "steps": [{"id": "x", "type": "loop"}]}))

    result = invoke(["workflow", "create", str(path)])
    assert result.exit_code == 1
    assert "Invalid step type: loop" in result.stdout


def test_delete_predefined_is_refused(repo):
    result = invoke(["workflow", "delete", "full-test-suite"])
    assert result.exit_code == 1
    assert "Cannot delete predefined workflows" in result.stdout


def test_workflow_run_and_execution_status(repo):
    result = invoke(
        [
            "workflow",
            "run",
            "full-test-suite",
            "--input",
            json.dumps({"projectId": "p1", "specification": "login flow"}),
        ],
    )
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    run = json.loads(result.stdout)
    assert run["status"] == "completed"
    assert set(run["output"]) == {"testWeaver", "scriptSmith", "codeGuardian"}

    status = invoke(["execution", "status", run["id"]])
    assert status.exit_code == 0
    progress = json.loads(status.stdout)
    assert progress["completedSteps"] == 3
    assert progress["totalSteps"] == 3

    listed = invoke(["execution", "list", "--project-id", "p1"])
    assert run["id"] in listed.stdout


def test_workflow_run_requires_project_id(repo):
    result = invoke(["workflow", "run", "full-test-suite", "--input", "{}"])
    assert result.exit_code == 1
    assert "projectId is required" in result.stdout
    assert asyncio.run(repo.count_executions()) == 0


def test_workflow_estimate(repo):
    result = invoke(
        ["workflow", "estimate", "full-test-suite", "--input", '{"projectId": "p1"}']
    )
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    estimate = json.loads(result.stdout)
    assert estimate["estimatedTokens"] == 5310
    assert len(estimate["breakdown"]) == 3


def test_execution_cancel(repo):
    execution_id = asyncio.run(repo.create_execution("full-test-suite", {"projectId": "p1"}))

    result = invoke(["execution", "cancel", execution_id])
    assert result.exit_code == 0
    assert "cancelled" in result.stdout
    record = asyncio.run(repo.get_execution(execution_id))
    assert record.status == ExecutionStatus.CANCELLED

    again = invoke(["execution", "cancel", execution_id])
    assert again.exit_code == 1
    assert "Cannot cancel workflow with status: cancelled" in again.stdout


def test_execution_list_empty(repo):
    result = invoke(["execution", "list"])
    assert result.exit_code == 0
    assert "No executions found" in result.stdout
