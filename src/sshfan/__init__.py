"""sshfan: Run one command on many SSH hosts through a bounded worker pool."""

from .config import Defaults, TaskDescriptor, load_config
from .hosts import HostFileError, load_hosts
from .persist import FilePersister, NullPersister, PersistError
from .pool import Outcome, ResultMessage, Tally, WorkerPool
from .transport import (
    CommandError,
    ExecResult,
    HostConnectionError,
    RemoteError,
    SessionError,
    SSHExecutor,
)

__all__ = [
    "Defaults",
    "TaskDescriptor",
    "load_config",
    "HostFileError",
    "load_hosts",
    "FilePersister",
    "NullPersister",
    "PersistError",
    "Outcome",
    "ResultMessage",
    "Tally",
    "WorkerPool",
    "CommandError",
    "ExecResult",
    "HostConnectionError",
    "RemoteError",
    "SessionError",
    "SSHExecutor",
]
