#!/usr/bin/env python3
"""Main entry point for sshfan."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import Defaults, TaskDescriptor, load_config, validate_defaults
from .hosts import load_hosts
from .persist import FilePersister, NullPersister, ResultPersister
from .pool import ResultMessage, Tally, WorkerPool
from .transport import SSHExecutor

logger = logging.getLogger("sshfan")

GREEN = "\033[32m"
RED = "\033[91m"
RESET = "\033[0m"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sshfan",
        description="Run one command on many SSH hosts concurrently",
    )
    parser.add_argument(
        "hosts_file", nargs="?", type=Path, help="File containing hostnames"
    )
    parser.add_argument(
        "--hosts-file", dest="hosts_file_opt", type=Path, help=argparse.SUPPRESS
    )
    parser.add_argument(
        "-c",
        "--concurrent",
        type=int,
        help="Number of parallel connections to make (default: 50)",
    )
    parser.add_argument(
        "--remote-cmd", help="Command to run on every host (default: echo $HOSTNAME)"
    )
    parser.add_argument("-l", "--user", help="SSH username (default: current user)")
    parser.add_argument(
        "-i", "--key", type=Path, help="Private key file (default: ~/.ssh/id_rsa)"
    )
    parser.add_argument(
        "--connect-timeout-ms",
        type=int,
        help="Upper bound of the randomized connect timeout (default: 30000)",
    )
    parser.add_argument("--config", type=Path, help="YAML file with default settings")
    parser.add_argument("--log-dir", type=Path, help="Directory for per-host output")
    parser.add_argument(
        "--no-logs", action="store_true", help="Disable logging output to files"
    )
    parser.add_argument(
        "--dashboard", action="store_true", help="Run with the TUI dashboard"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 if any host failed",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def resolve_defaults(args: argparse.Namespace) -> Defaults:
    """Layer command-line flags over the config file over built-in defaults."""
    defaults = load_config(args.config) if args.config else Defaults()

    if args.concurrent is not None:
        defaults.concurrency = args.concurrent
    if args.remote_cmd is not None:
        defaults.command = args.remote_cmd
    if args.user is not None:
        defaults.user = args.user
    if args.key is not None:
        defaults.ssh_key = args.key.expanduser()
    if args.connect_timeout_ms is not None:
        defaults.connect_timeout_ms = args.connect_timeout_ms
    if args.log_dir is not None:
        defaults.log_dir = args.log_dir.expanduser()
    if args.no_logs:
        defaults.no_logs = True

    validate_defaults(defaults)
    return defaults


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="sshfan: %(asctime)s %(message)s",
        stream=sys.stderr,
    )
    # asyncssh logs every connection at INFO
    logging.getLogger("asyncssh").setLevel(
        logging.INFO if verbose else logging.WARNING
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    hosts_file = args.hosts_file or args.hosts_file_opt
    if hosts_file is None:
        parser.error("You need to provide a hosts file")

    setup_logging(args.verbose)

    try:
        defaults = resolve_defaults(args)
        logger.info("Starting ....")
        logger.info(
            "SSH Client example: ssh -i %s -p %d %s@<hostname>",
            defaults.ssh_key,
            defaults.port,
            defaults.user,
        )
        logger.info("Loading hostnames file: %s", hosts_file)
        tasks = load_hosts(hosts_file, defaults)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    logger.info("Loaded %d hosts", len(tasks))
    logger.info("Concurrency count: %d", defaults.concurrency)
    logger.info("Remote Command: %s", defaults.command)

    # Validate all SSH keys exist
    ssh_keys = {task.ssh_key for task in tasks}
    for ssh_key in ssh_keys:
        if not ssh_key.exists():
            print(f"Error: SSH key not found: {ssh_key}", file=sys.stderr)
            return 1

    try:
        persister = _make_persister(defaults, hosts_file)
    except OSError as e:
        print(f"Error: cannot create log directory: {e}", file=sys.stderr)
        return 1

    pool = WorkerPool(SSHExecutor(), persister, concurrency=defaults.concurrency)

    try:
        if args.dashboard:
            tally = _run_dashboard(pool, tasks)
        else:
            tally = _run_headless(pool, tasks)
    except KeyboardInterrupt:
        return 130

    if tally is None:
        print("Run did not complete", file=sys.stderr)
        return 1

    print(tally.summary())

    failed_hosts = [r.host for r in pool.results if not r.command_ok]
    if failed_hosts:
        print(f"\nFailed hosts: {', '.join(failed_hosts)}", file=sys.stderr)

    if args.strict and (tally.failed or tally.unaccounted):
        return 1
    return 0


def _make_persister(defaults: Defaults, hosts_file: Path) -> ResultPersister:
    if defaults.no_logs:
        return NullPersister()
    persister = FilePersister(defaults.log_dir)
    persister.setup(source=hosts_file)
    return persister


def _run_headless(pool: WorkerPool, tasks: list[TaskDescriptor]) -> Tally:
    """Run the pool and print one line per host."""
    color = sys.stdout.isatty()

    def on_result(result: ResultMessage) -> None:
        if not color:
            print(result.narrative)
            return
        code = GREEN if result.command_ok else RED
        print(f"{code}{result.narrative}{RESET}")

    pool.on_result = on_result
    return asyncio.run(pool.run(tasks))


def _run_dashboard(pool: WorkerPool, tasks: list[TaskDescriptor]) -> Tally | None:
    # textual is only needed for the dashboard
    from .dashboard import Dashboard

    app = Dashboard(pool, tasks)
    app.run()
    return app.tally


if __name__ == "__main__":
    sys.exit(main())
