"""SQLite implementation of the run repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..contracts import ExecutionResult
from .models import RunRecord, StepRecord
from .repository import RunRepository


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteRunRepository(RunRepository):
    """Persist run history using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                plan TEXT NOT NULL,
                dry_run INTEGER NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT,
                finished_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_results (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                step_id TEXT NOT NULL,
                status TEXT NOT NULL,
                attempts INTEGER NOT NULL,
                duration REAL NOT NULL,
                caused_by TEXT,
                error TEXT,
                started_at TEXT,
                completed_at TEXT,
                UNIQUE (run_id, step_id)
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _run_from_row(row: sqlite3.Row, steps: list[StepRecord]) -> RunRecord:
        return RunRecord(
            run_id=row["run_id"],
            plan=row["plan"],
            dry_run=bool(row["dry_run"]),
            status=row["status"],
            started_at=_parse_ts(row["started_at"]),
            finished_at=_parse_ts(row["finished_at"]),
            steps=steps,
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_run(self, run_id: str, plan: str, dry_run: bool = False) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO runs (run_id, plan, dry_run, status, started_at) VALUES (?, ?, ?, ?, ?)",
            run_id,
            plan,
            int(dry_run),
            "in_progress",
            datetime.now(timezone.utc).isoformat(),
        )

    async def record_step(self, run_id: str, result: ExecutionResult) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR IGNORE INTO step_results
                (run_id, step_id, status, attempts, duration, caused_by, error, started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            run_id,
            result.step_id,
            result.status.value,
            result.attempts,
            result.duration,
            result.caused_by,
            result.error,
            result.started_at.isoformat(),
            result.finished_at.isoformat() if result.finished_at else None,
        )

    async def finish_run(self, run_id: str, status: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE runs SET status = ?, finished_at = ? WHERE run_id = ?",
            status,
            datetime.now(timezone.utc).isoformat(),
            run_id,
        )

    async def get_run(self, run_id: str) -> RunRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT run_id, plan, dry_run, status, started_at, finished_at FROM runs WHERE run_id = ?",
            run_id,
        )
        if not row:
            return None
        step_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM step_results WHERE run_id = ? ORDER BY id",
            run_id,
        )
        steps = [
            StepRecord(
                id=r["id"],
                run_id=r["run_id"],
                step_id=r["step_id"],
                status=r["status"],
                attempts=r["attempts"],
                duration=r["duration"],
                caused_by=r["caused_by"],
                error=r["error"],
                started_at=_parse_ts(r["started_at"]),
                completed_at=_parse_ts(r["completed_at"]),
            )
            for r in step_rows
        ]
        return self._run_from_row(row, steps)

    async def list_runs(self) -> list[RunRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT run_id, plan, dry_run, status, started_at, finished_at FROM runs ORDER BY started_at",
        )
        return [self._run_from_row(row, []) for row in rows]
