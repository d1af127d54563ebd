"""Persisting per-host command output."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class PersistError(Exception):
    """Output for a host could not be written."""


class ResultPersister(Protocol):
    def persist(self, host: str, output: bytes) -> bool:
        """Store output for host; raise PersistError if it cannot be stored."""
        ...


class FilePersister:
    """Writes each host's output to ``<log_dir>/<timestamp>/<host>.log``."""

    def __init__(self, log_dir: Path):
        self.log_dir = log_dir
        self.run_dir: Path | None = None

    def setup(self, source: Path | None = None) -> Path:
        """Create the run directory, copying the host list into it if given."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.run_dir = self.log_dir / timestamp
        self.run_dir.mkdir(parents=True, exist_ok=True)

        if source and source.exists():
            shutil.copy(source, self.run_dir / "hosts.txt")

        logger.info("Writing command output to %s", self.run_dir)
        return self.run_dir

    def log_path(self, host: str) -> Path:
        if self.run_dir is None:
            raise PersistError("FilePersister.setup() was not called")
        # Keep the file inside run_dir whatever the host string holds
        safe = host.replace("/", "_").replace("\\", "_")
        return self.run_dir / f"{safe}.log"

    def persist(self, host: str, output: bytes) -> bool:
        """Write one host's output, raising PersistError on failure."""
        path = self.log_path(host)
        try:
            with open(path, "wb") as f:
                f.write(output)
        except OSError as e:
            raise PersistError(f"Could not write output for {host} to {path}: {e}") from e
        return True


class NullPersister:
    """Discards output; used when logging to files is disabled."""

    def persist(self, host: str, output: bytes) -> bool:
        return True
