from __future__ import annotations

import subprocess
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from agentdesk.errors import StateError
from agentdesk.supervisor.models import WorkerStatus

LOCK_TIMEOUT_SECONDS = 30.0


@dataclass
class ManagedProcess:
    """The single running worker. Only the supervisor may wait on or kill `handle`."""

    handle: subprocess.Popen
    url: str
    workspace_dir: str
    project_id: str

    @property
    def pid(self) -> int:
        return self.handle.pid

    @property
    def target_key(self) -> tuple[str, str]:
        return (self.workspace_dir, self.project_id)

    def has_exited(self) -> bool:
        return self.handle.poll() is not None

    def status(self) -> WorkerStatus:
        return WorkerStatus(
            running=True,
            url=self.url,
            pid=self.pid,
            workspace_dir=self.workspace_dir,
            project_id=self.project_id,
        )


class SupervisorState:
    """
    In-memory slot holding at most one ManagedProcess.
    Every read or write of the slot happens inside `locked()`.
    """

    def __init__(self, lock_timeout: float = LOCK_TIMEOUT_SECONDS):
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self.process: Optional[ManagedProcess] = None
        self.closed = False

    @contextmanager
    def locked(self) -> Iterator["SupervisorState"]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise StateError("Failed to lock worker process state: internal state unavailable")
        try:
            yield self
        finally:
            self._lock.release()

    def take(self) -> Optional[ManagedProcess]:
        process, self.process = self.process, None
        return process
