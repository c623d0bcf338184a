"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..contracts import TERMINAL_STATUSES, ExecutionStatus, StepStatus
from ..errors import NotFoundError
from .models import DefinitionRecord, ExecutionRecord, StepRecord, check_transition, utcnow
from .repository import WorkflowRepository


def _dump(value: Any) -> str | None:
    return None if value is None else json.dumps(value, default=str)


def _load(value: str | None) -> Any:
    return None if value is None else json.loads(value)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist executions and definitions using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                input TEXT NOT NULL,
                output TEXT,
                total_cost_usd REAL NOT NULL DEFAULT 0,
                error TEXT,
                created_at TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS execution_steps (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                execution_id TEXT NOT NULL,
                step_id TEXT NOT NULL,
                status TEXT NOT NULL,
                output TEXT,
                error TEXT,
                started_at TEXT,
                completed_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_definitions (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                steps TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.lastrowid

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _execution_from_row(row: sqlite3.Row, steps: list[StepRecord] | None = None) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            status=row["status"],
            input=_load(row["input"]) or {},
            output=_load(row["output"]),
            total_cost_usd=row["total_cost_usd"],
            error=row["error"],
            created_at=_parse_ts(row["created_at"]),
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            steps=steps or [],
        )

    @staticmethod
    def _definition_from_row(row: sqlite3.Row) -> DefinitionRecord:
        return DefinitionRecord(
            id=row["id"],
            name=row["name"],
            description=row["description"] or "",
            steps=_load(row["steps"]) or [],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _filters(
        project_id: Optional[str], status: Optional[str], workflow_id: Optional[str]
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if project_id is not None:
            clauses.append("json_extract(input, '$.projectId') = ?")
            params.append(project_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if workflow_id is not None:
            clauses.append("workflow_id = ?")
            params.append(workflow_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def _update_execution_sync(self, execution_id: str, changes: dict[str, Any]) -> None:
        # read-check-write under one lock so concurrent updates cannot interleave
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("SELECT status FROM executions WHERE id = ?", (execution_id,))
            row = cur.fetchone()
            if row is None:
                raise NotFoundError("Workflow execution", execution_id)
            current = ExecutionStatus(row["status"])
            check_transition(current, changes.get("status"))
            columns = {k: v for k, v in changes.items() if v is not None}
            if current in TERMINAL_STATUSES:
                # the first terminal write owns the completion time
                columns.pop("completed_at", None)
            if not columns:
                return
            assignments = ", ".join(f"{column} = ?" for column in columns)
            cur.execute(
                f"UPDATE executions SET {assignments} WHERE id = ?",
                (*columns.values(), execution_id),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Repository API
    async def create_execution(self, workflow_id: str, input: dict) -> str:
        execution_id = str(uuid.uuid4())
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO executions (id, workflow_id, status, input, output, total_cost_usd, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            execution_id,
            workflow_id,
            ExecutionStatus.PENDING.value,
            _dump(input),
            None,
            0.0,
            _ts(utcnow()),
        )
        return execution_id

    async def update_execution(
        self,
        execution_id: str,
        *,
        status: Optional[ExecutionStatus] = None,
        output: Optional[dict] = None,
        total_cost_usd: Optional[float] = None,
        error: Optional[str] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> ExecutionRecord:
        changes = {
            "status": ExecutionStatus(status).value if status is not None else None,
            "output": _dump(output),
            "total_cost_usd": total_cost_usd,
            "error": error,
            "started_at": _ts(started_at),
            "completed_at": _ts(completed_at),
        }
        await asyncio.to_thread(self._update_execution_sync, execution_id, changes)
        record = await self.get_execution(execution_id)
        if record is None:
            raise NotFoundError("Workflow execution", execution_id)
        return record

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM executions WHERE id = ?", execution_id
        )
        if not row:
            return None
        step_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM execution_steps WHERE execution_id = ? ORDER BY id",
            execution_id,
        )
        steps = [
            StepRecord(
                id=r["id"],
                execution_id=r["execution_id"],
                step_id=r["step_id"],
                status=r["status"],
                output=_load(r["output"]),
                error=r["error"],
                started_at=_parse_ts(r["started_at"]),
                completed_at=_parse_ts(r["completed_at"]),
            )
            for r in step_rows
        ]
        return self._execution_from_row(row, steps)

    async def list_executions(
        self,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        workflow_id: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[ExecutionRecord]:
        where, params = self._filters(project_id, status, workflow_id)
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT * FROM executions{where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            *params,
            -1 if limit is None else limit,
            offset,
        )
        return [self._execution_from_row(row) for row in rows]

    async def count_executions(
        self,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        workflow_id: Optional[str] = None,
    ) -> int:
        where, params = self._filters(project_id, status, workflow_id)
        row = await asyncio.to_thread(
            self._fetchone, f"SELECT COUNT(*) AS total FROM executions{where}", *params
        )
        return row["total"] if row else 0

    async def create_step(
        self,
        execution_id: str,
        step_id: str,
        status: StepStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> int:
        status = StepStatus(status)
        now = _ts(utcnow())
        return await asyncio.to_thread(
            self._execute,
            "INSERT INTO execution_steps (execution_id, step_id, status, output, error, started_at, completed_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            execution_id,
            step_id,
            status.value,
            _dump(output),
            error,
            now,
            None if status == StepStatus.RUNNING else now,
        )

    async def update_step(
        self,
        record_id: int,
        status: StepStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE execution_steps
            SET status = ?, output = COALESCE(?, output), error = COALESCE(?, error), completed_at = ?
            WHERE id = ?
            """,
            StepStatus(status).value,
            _dump(output),
            error,
            _ts(utcnow()),
            record_id,
        )

    async def create_definition(
        self, name: str, description: str, steps: list[dict]
    ) -> DefinitionRecord:
        record = DefinitionRecord(
            id=str(uuid.uuid4()), name=name, description=description or "", steps=steps
        )
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO workflow_definitions (id, name, description, steps, created_at) VALUES (?, ?, ?, ?, ?)",
            record.id,
            record.name,
            record.description,
            _dump(record.steps),
            _ts(record.created_at),
        )
        return record

    async def get_definition(self, definition_id: str) -> DefinitionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM workflow_definitions WHERE id = ?", definition_id
        )
        return self._definition_from_row(row) if row else None

    async def list_definitions(self) -> list[DefinitionRecord]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT * FROM workflow_definitions ORDER BY created_at"
        )
        return [self._definition_from_row(row) for row in rows]

    async def delete_definition(self, definition_id: str) -> bool:
        existing = await self.get_definition(definition_id)
        if existing is None:
            return False
        await asyncio.to_thread(
            self._execute, "DELETE FROM workflow_definitions WHERE id = ?", definition_id
        )
        return True
