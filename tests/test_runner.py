# tests/test_runner.py
from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from sshfan import runner
from sshfan.config import TaskDescriptor
from sshfan.transport import CommandError, ExecResult, HostConnectionError


class ScriptedExecutor:
    """host -> ExecResult; unknown hosts succeed."""

    def __init__(self, results: dict[str, ExecResult] | None = None):
        self.results = results or {}

    async def execute(self, task: TaskDescriptor, timeout: float | None) -> ExecResult:
        await asyncio.sleep(0)
        return self.results.get(task.host, ExecResult(f"{task.host}\n".encode()))


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    key = tmp_path / "id_rsa"
    key.write_text("not really a key", encoding="utf-8")
    hosts = tmp_path / "hosts.txt"
    hosts.write_text(
        "a.example.com\nbob@b.example.com\n# comment\n\n", encoding="utf-8"
    )
    logs = tmp_path / "logs"

    def use(results: dict[str, ExecResult] | None = None) -> None:
        monkeypatch.setattr(runner, "SSHExecutor", lambda: ScriptedExecutor(results))

    use()
    return {"key": key, "hosts": hosts, "logs": logs, "use": use}


def _argv(env, *extra: str) -> list[str]:
    return [
        str(env["hosts"]),
        "-i",
        str(env["key"]),
        "--log-dir",
        str(env["logs"]),
        *extra,
    ]


def test_headless_run(env, capsys: pytest.CaptureFixture[str]) -> None:
    rc = runner.main(_argv(env, "-c", "2"))

    out = capsys.readouterr().out.splitlines()
    assert rc == 0
    assert len(out) == 3
    assert {line.split()[1] for line in out[:2]} == {"a.example.com", "b.example.com"}
    assert out[-1].startswith("total=2 succeeded=2 failed=0 unaccounted=0")

    (run_dir,) = env["logs"].iterdir()
    assert (run_dir / "a.example.com.log").read_bytes() == b"a.example.com\n"
    assert (run_dir / "b.example.com.log").read_bytes() == b"b.example.com\n"
    assert (run_dir / "hosts.txt").exists()


def test_failures_exit_zero_by_default(env, capsys: pytest.CaptureFixture[str]) -> None:
    env["use"]({"a.example.com": ExecResult(error=HostConnectionError("refused"))})

    rc = runner.main(_argv(env))

    captured = capsys.readouterr()
    assert rc == 0
    assert "total=2 succeeded=1 failed=1 unaccounted=0" in captured.out
    assert "Failed hosts: a.example.com" in captured.err


def test_strict_exit_status(env) -> None:
    env["use"]({"b.example.com": ExecResult(b"", CommandError("exit status 1"))})

    assert runner.main(_argv(env, "--strict")) == 1


def test_strict_all_ok(env) -> None:
    assert runner.main(_argv(env, "--strict")) == 0


def test_no_logs(env) -> None:
    assert runner.main(_argv(env, "--no-logs")) == 0
    assert not env["logs"].exists()


def test_hosts_file_option(env, capsys: pytest.CaptureFixture[str]) -> None:
    argv = ["--hosts-file", str(env["hosts"]), "-i", str(env["key"]), "--no-logs"]

    assert runner.main(argv) == 0
    assert "total=2" in capsys.readouterr().out


def test_missing_hosts_argument() -> None:
    with pytest.raises(SystemExit) as exc:
        runner.main([])
    assert exc.value.code == 2


def test_missing_hosts_file(env, tmp_path: Path) -> None:
    argv = [str(tmp_path / "nope.txt"), "-i", str(env["key"])]
    assert runner.main(argv) == 1


def test_missing_key(env, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    argv = [str(env["hosts"]), "-i", str(tmp_path / "missing_key")]

    assert runner.main(argv) == 1
    assert "SSH key not found" in capsys.readouterr().err


def test_bad_host_line(env, capsys: pytest.CaptureFixture[str]) -> None:
    env["hosts"].write_text("good.example.com\nbad:port\n", encoding="utf-8")

    assert runner.main(_argv(env)) == 1
    assert "line 2" in capsys.readouterr().err


def test_invalid_concurrency(env) -> None:
    assert runner.main(_argv(env, "-c", "0")) == 1


def test_flags_override_config(tmp_path: Path) -> None:
    config = tmp_path / "sshfan.yml"
    config.write_text(
        "user: deploy\nconcurrency: 4\ncommand: uptime\nconnect_timeout_ms: 100\n",
        encoding="utf-8",
    )
    parser = runner.build_parser()

    args = parser.parse_args(
        ["hosts.txt", "--config", str(config), "-c", "9", "-l", "alice"]
    )
    defaults = runner.resolve_defaults(args)

    assert defaults.concurrency == 9
    assert defaults.user == "alice"
    assert defaults.command == "uptime"
    assert defaults.connect_timeout_ms == 100


def test_remote_cmd_reaches_tasks(env, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[str] = []

    class Recording(ScriptedExecutor):
        async def execute(self, task, timeout):
            seen.append(task.command)
            return await super().execute(task, timeout)

    monkeypatch.setattr(runner, "SSHExecutor", lambda: Recording())

    assert runner.main(_argv(env, "--remote-cmd", "hostname -f")) == 0
    assert seen == ["hostname -f", "hostname -f"]
