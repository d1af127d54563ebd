"""TUI Dashboard for sshfan."""

from __future__ import annotations

from typing import Sequence

from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import DataTable, Footer, Header, Static
from textual.worker import Worker, WorkerState

from .config import TaskDescriptor
from .pool import Outcome, ResultMessage, Tally, WorkerPool

OUTCOME_STYLES = {
    Outcome.SUCCESS: "green",
    Outcome.COMMAND_FAILED: "red",
    Outcome.SESSION_FAILED: "red",
    Outcome.CONNECTION_FAILED: "yellow",
}


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    succeeded: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        failed = self.completed - self.succeeded
        return (
            f"Progress: {self.completed}/{self.total} hosts | ok {self.succeeded} "
            f"| failed {failed} | {status} | Press 'q' to quit"
        )


class HostResult(Message):
    """Message carrying one host's result to the UI thread."""

    def __init__(self, result: ResultMessage) -> None:
        super().__init__()
        self.result = result


class Dashboard(App):
    """Live table of per-host results."""

    CSS = """
    DataTable {
        height: 1fr;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(
        self, pool: WorkerPool, tasks: Sequence[TaskDescriptor], **kwargs
    ) -> None:
        super().__init__(**kwargs)
        self.pool = pool
        self.tasks = tasks
        self.tally: Tally | None = None
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield DataTable(id="hosts", zebra_stripes=True)
        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Fill the table and start the pool."""
        table = self.query_one("#hosts", DataTable)
        table.add_column("Host", key="host")
        table.add_column("Status", key="status")
        table.add_column("Elapsed", key="elapsed")
        table.add_column("Persisted", key="persisted")
        table.add_column("Error", key="error")
        for task in self.tasks:
            table.add_row(task.host, "[dim]pending[/]", "", "", "", key=task.host)

        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.tasks)

        self.pool.on_result = self._on_result
        self._worker = self.run_worker(self._run_pool(), exclusive=True, thread=True)

    async def _run_pool(self) -> Tally:
        return await self.pool.run(self.tasks)

    def _on_result(self, result: ResultMessage) -> None:
        """Called from the pool's thread - posts message to main thread."""
        self.post_message(HostResult(result))

    def on_host_result(self, message: HostResult) -> None:
        result = message.result
        color = OUTCOME_STYLES.get(result.outcome, "white")
        table = self.query_one("#hosts", DataTable)
        table.update_cell(result.host, "status", f"[{color}]{result.outcome.value}[/]")
        table.update_cell(result.host, "elapsed", f"{result.elapsed:.2f}s")
        table.update_cell(result.host, "persisted", "yes" if result.persisted else "[red]no[/]")
        table.update_cell(result.host, "error", result.error)

        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.completed += 1
        if result.command_ok:
            status_bar.succeeded += 1

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle pool completion."""
        if event.worker is not self._worker:
            return
        if event.state == WorkerState.SUCCESS:
            self.tally = event.worker.result
        if event.state in (WorkerState.SUCCESS, WorkerState.ERROR):
            self.query_one("#status-bar", StatusBar).running = False

    async def action_quit(self) -> None:
        """Quit the application.

        The pool runs its own event loop in the worker thread, so cancelling
        the worker does not interrupt it; hosts already queued keep running
        until the pool drains before the process exits.
        """
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
