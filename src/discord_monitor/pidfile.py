"""Single-instance enforcement through a PID file."""

from __future__ import annotations

import logging
import os
import signal
from pathlib import Path

logger = logging.getLogger(__name__)

_SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


def is_process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except (OSError, ValueError):
        return False
    return True


def _terminate(pid: int) -> None:
    for sig in (signal.SIGTERM, _SIGKILL):
        try:
            os.kill(pid, sig)
            logger.debug("Sent %s to PID=%d", signal.Signals(sig).name, pid)
        except OSError as exc:
            logger.debug("%s failed for PID=%d - %s", signal.Signals(sig).name, pid, exc)


class PidFile:
    """Terminate other monitor instances and record the current PID."""

    def __init__(self, path: Path, *, pid: int | None = None) -> None:
        self._path = path
        self._pid = pid if pid is not None else os.getpid()

    @property
    def path(self) -> Path:
        return self._path

    def read_pids(self) -> list[int]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.debug("Failed to read PID file %s - %s", self._path, exc)
            return []
        pids: list[int] = []
        for part in raw.split():
            try:
                pids.append(int(part))
            except ValueError:
                continue
        return pids

    def acquire(self) -> None:
        for pid in self.read_pids():
            if pid == self._pid or pid <= 0:
                continue
            if is_process_alive(pid):
                logger.info("Found other instance PID=%d; attempting to terminate", pid)
                _terminate(pid)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(f"{self._pid}\n", encoding="utf-8")
            logger.debug("Wrote PID %d to %s", self._pid, self._path)
        except OSError as exc:
            logger.error("Failed to write PID file %s - %s", self._path, exc)

    def release(self) -> None:
        if not self._path.exists():
            return
        remaining = [pid for pid in self.read_pids() if pid != self._pid]
        try:
            if remaining:
                self._path.write_text("\n".join(str(pid) for pid in remaining) + "\n", encoding="utf-8")
            else:
                self._path.unlink()
            logger.debug("Cleaned up PID file %s for PID=%d", self._path, self._pid)
        except OSError as exc:
            logger.debug("Failed to clean up PID file %s - %s", self._path, exc)
