"""Tests for the in-memory and SQLite workflow repositories."""

from datetime import datetime, timedelta, timezone

import pytest

from pilotflow.contracts import ExecutionStatus, StepStatus
from pilotflow.errors import ConflictError, NotFoundError
from pilotflow.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository
from pilotflow.persistence.models import utcnow


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryWorkflowRepository()
    return SQLiteWorkflowRepository(tmp_path / "wf.db")


@pytest.mark.asyncio
async def test_execution_crud(repo):
    execution_id = await repo.create_execution("full-test-suite", {"projectId": "p1"})
    record = await repo.get_execution(execution_id)
    assert record.status == ExecutionStatus.PENDING
    assert record.input == {"projectId": "p1"}

    started = utcnow()
    await repo.update_execution(execution_id, status=ExecutionStatus.RUNNING, started_at=started)
    step_record = await repo.create_step(execution_id, "step-1", StepStatus.RUNNING)
    await repo.update_step(step_record, StepStatus.COMPLETED, output={"x": 1})
    updated = await repo.update_execution(
        execution_id,
        status=ExecutionStatus.COMPLETED,
        output={"testWeaver": {"x": 1}},
        total_cost_usd=0.25,
        completed_at=utcnow(),
    )

    assert updated.status == ExecutionStatus.COMPLETED
    assert updated.output == {"testWeaver": {"x": 1}}
    assert updated.total_cost_usd == 0.25
    assert updated.started_at == started
    assert len(updated.steps) == 1
    step = updated.steps[0]
    assert step.step_id == "step-1"
    assert step.status == StepStatus.COMPLETED
    assert step.output == {"x": 1}
    assert step.completed_at is not None


@pytest.mark.asyncio
async def test_terminal_status_is_final(repo):
    execution_id = await repo.create_execution("wf", {"projectId": "p1"})
    await repo.update_execution(execution_id, status=ExecutionStatus.RUNNING)
    await repo.update_execution(execution_id, status=ExecutionStatus.COMPLETED)

    with pytest.raises(ConflictError):
        await repo.update_execution(execution_id, status=ExecutionStatus.CANCELLED)
    with pytest.raises(ConflictError):
        await repo.update_execution(execution_id, status=ExecutionStatus.RUNNING)

    # repeating the terminal status is allowed
    await repo.update_execution(execution_id, status=ExecutionStatus.COMPLETED, error=None)
    assert (await repo.get_execution(execution_id)).status == ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_repeated_terminal_write_keeps_completion_time(repo):
    execution_id = await repo.create_execution("wf", {"projectId": "p1"})
    first = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    later = first + timedelta(minutes=5)
    await repo.update_execution(
        execution_id, status=ExecutionStatus.CANCELLED, completed_at=first
    )

    updated = await repo.update_execution(
        execution_id,
        status=ExecutionStatus.CANCELLED,
        output={"testWeaver": {"x": 1}},
        error="Workflow cancelled",
        completed_at=later,
    )

    assert updated.completed_at == first
    assert updated.output == {"testWeaver": {"x": 1}}
    assert updated.error == "Workflow cancelled"
    assert (await repo.get_execution(execution_id)).completed_at == first


@pytest.mark.asyncio
async def test_pending_cannot_complete_directly(repo):
    execution_id = await repo.create_execution("wf", {"projectId": "p1"})
    with pytest.raises(ConflictError):
        await repo.update_execution(execution_id, status=ExecutionStatus.COMPLETED)
    await repo.update_execution(execution_id, status=ExecutionStatus.CANCELLED)
    assert (await repo.get_execution(execution_id)).status == ExecutionStatus.CANCELLED


@pytest.mark.asyncio
async def test_missing_execution(repo):
    assert await repo.get_execution("missing") is None
    with pytest.raises(NotFoundError):
        await repo.update_execution("missing", status=ExecutionStatus.RUNNING)


@pytest.mark.asyncio
async def test_list_and_count_with_filters(repo):
    first = await repo.create_execution("wf-a", {"projectId": "p1"})
    second = await repo.create_execution("wf-b", {"projectId": "p1"})
    await repo.create_execution("wf-a", {"projectId": "p2"})
    await repo.update_execution(second, status=ExecutionStatus.RUNNING)

    assert await repo.count_executions() == 3
    assert await repo.count_executions(project_id="p1") == 2
    assert await repo.count_executions(workflow_id="wf-a") == 2
    assert await repo.count_executions(status="running") == 1

    page = await repo.list_executions(project_id="p1", offset=0, limit=1)
    assert len(page) == 1
    rest = await repo.list_executions(project_id="p1", offset=1, limit=10)
    assert {r.id for r in page + rest} == {first, second}


@pytest.mark.asyncio
async def test_definition_crud(repo):
    steps = [{"id": "s1", "type": "agent", "agent": "TestWeaver", "operation": "generate"}]
    created = await repo.create_definition("mine", "desc", steps)

    fetched = await repo.get_definition(created.id)
    assert fetched.name == "mine"
    assert fetched.steps == steps
    assert fetched.to_definition().steps[0].agent == "TestWeaver"
    assert [d.id for d in await repo.list_definitions()] == [created.id]

    assert await repo.delete_definition(created.id) is True
    assert await repo.delete_definition(created.id) is False
    assert await repo.get_definition(created.id) is None


@pytest.mark.asyncio
async def test_sqlite_update_of_vanished_execution_is_not_found(tmp_path, monkeypatch):
    repo = SQLiteWorkflowRepository(tmp_path / "wf.db")
    execution_id = await repo.create_execution("wf", {"projectId": "p1"})

    async def vanished(_execution_id):
        return None

    # the row disappears between the update and the read-back
    monkeypatch.setattr(repo, "get_execution", vanished)

    with pytest.raises(NotFoundError):
        await repo.update_execution(execution_id, status=ExecutionStatus.RUNNING)
