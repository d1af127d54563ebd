# tests/test_dashboard.py
from __future__ import annotations

import asyncio
from pathlib import Path

from textual.widgets import DataTable

from sshfan.config import TaskDescriptor
from sshfan.dashboard import Dashboard, StatusBar
from sshfan.persist import NullPersister
from sshfan.pool import WorkerPool
from sshfan.transport import ExecResult, HostConnectionError


class QuickExecutor:
    async def execute(self, task: TaskDescriptor, timeout: float | None) -> ExecResult:
        if task.host == "down.example.com":
            return ExecResult(error=HostConnectionError("unreachable"))
        return ExecResult(b"ok\n")


def _task(host: str) -> TaskDescriptor:
    return TaskDescriptor(host, "tester", 22, Path("/k"), "true", 100)


def test_dashboard_shows_results() -> None:
    tasks = [_task("up1.example.com"), _task("up2.example.com"), _task("down.example.com")]
    pool = WorkerPool(QuickExecutor(), NullPersister(), concurrency=2)
    app = Dashboard(pool, tasks)

    async def scenario() -> None:
        async with app.run_test() as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()
            await pilot.pause()

            table = app.query_one("#hosts", DataTable)
            assert table.row_count == 3
            assert "connection failed" in str(
                table.get_cell("down.example.com", "status")
            )

            status_bar = app.query_one("#status-bar", StatusBar)
            assert status_bar.total == 3
            assert status_bar.completed == 3
            assert status_bar.succeeded == 2
            assert status_bar.running is False

    asyncio.run(scenario())

    assert app.tally is not None
    assert (app.tally.succeeded, app.tally.failed, app.tally.unaccounted) == (2, 1, 0)
