"""Lock files and atomic JSON writes for shared case files.

Several agents may touch ``leads.json``, ``state.json`` or ``ledger.json``
concurrently. Every read-modify-write happens under a sibling
``<name>.lock`` file created with ``O_EXCL``; writes go to a temp file
that is renamed over the target.
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

from dossier.config.settings import settings
from dossier.errors import CaseFileError, LockTimeout

logger = logging.getLogger(__name__)


class FileLock:
    """Exclusive lock file guarding *path*.

    Parameters
    ----------
    path:
        The file being protected. The lock lives at ``<path>.lock``.
    timeout:
        Seconds to keep retrying before raising ``LockTimeout``.
    retry:
        Seconds between attempts.
    stale_after:
        A lock file older than this is assumed abandoned and removed.
    """

    def __init__(
        self,
        path: str | Path,
        timeout: float | None = None,
        retry: float | None = None,
        stale_after: float | None = None,
    ) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.timeout = settings.LOCK_TIMEOUT if timeout is None else timeout
        self.retry = settings.LOCK_RETRY_INTERVAL if retry is None else retry
        self.stale_after = (
            settings.LOCK_STALE_SECONDS if stale_after is None else stale_after
        )
        self._held = False

    def _remove_if_stale(self) -> None:
        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return
        if age > self.stale_after:
            logger.warning("Removing stale lock %s (%.1fs old)", self.lock_path, age)
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                pass

    def acquire(self) -> None:
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                self._remove_if_stale()
                if time.monotonic() >= deadline:
                    raise LockTimeout(
                        f"Could not acquire lock on {self.path} "
                        f"within {self.timeout}s"
                    )
                time.sleep(self.retry)
                continue
            with os.fdopen(fd, "w") as fh:
                fh.write(str(os.getpid()))
            self._held = True
            return

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            logger.debug("Lock %s already removed", self.lock_path)
        self._held = False

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.release()


def read_json(path: str | Path, default: Any = None) -> Any:
    """Load JSON from *path*.

    Returns *default* when the file is missing and a default was given;
    otherwise raises ``CaseFileError``.
    """
    path = Path(path)
    if not path.exists():
        if default is not None:
            return default
        raise CaseFileError(f"{path} not found")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CaseFileError(f"Invalid JSON in {path}: {e}") from e


def write_json_atomic(path: str | Path, data: Any) -> None:
    """Write *data* as indented JSON via temp file + rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    os.replace(tmp, path)
