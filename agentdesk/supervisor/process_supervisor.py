"""Single-slot supervisor for the long-running manager web worker."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, Mapping, Optional

from agentdesk.errors import StateError, SupervisorError
from agentdesk.supervisor.command_builder import build_worker_command, normalize_start_request
from agentdesk.supervisor.models import StartWorkerRequest, WorkerStatus
from agentdesk.supervisor.resolver import resolve_target
from agentdesk.supervisor.runner import spawn_detached
from agentdesk.supervisor.state import LOCK_TIMEOUT_SECONDS, ManagedProcess, SupervisorState

logger = logging.getLogger("agentdesk.supervisor.process_supervisor")

TERMINATE_GRACE_SECONDS = 5.0


def terminate_process(
    handle: subprocess.Popen,
    *,
    grace_seconds: float = TERMINATE_GRACE_SECONDS,
    force: bool = False,
) -> None:
    """Signal the process and block until it has exited.

    A process that already exited, or that the OS reports as missing, counts
    as terminated. Any other signal or wait failure raises SupervisorError.
    """
    if handle.poll() is not None:
        return
    try:
        if force:
            handle.kill()
        else:
            handle.terminate()
    except ProcessLookupError:
        return
    except OSError as exc:
        raise SupervisorError(f"Failed to stop worker process {handle.pid}: {exc}") from exc

    try:
        handle.wait(timeout=grace_seconds)
        return
    except subprocess.TimeoutExpired:
        logger.warning(
            "Worker process %s did not exit within %.1fs; killing",
            handle.pid,
            grace_seconds,
        )
    except OSError as exc:
        raise SupervisorError(f"Failed waiting for worker process {handle.pid} to exit: {exc}") from exc

    try:
        handle.kill()
    except ProcessLookupError:
        pass
    except OSError as exc:
        raise SupervisorError(f"Failed to kill worker process {handle.pid}: {exc}") from exc
    try:
        handle.wait()
    except OSError as exc:
        raise SupervisorError(f"Failed waiting for worker process {handle.pid} to exit: {exc}") from exc


class ProcessSupervisor:
    """Coordinates start/stop/status of the one managed worker process."""

    def __init__(
        self,
        *,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        host_dir: Optional[Path] = None,
        spawn: Callable[..., subprocess.Popen] = spawn_detached,
        lock_timeout: float = LOCK_TIMEOUT_SECONDS,
        grace_seconds: float = TERMINATE_GRACE_SECONDS,
    ) -> None:
        self._state = SupervisorState(lock_timeout=lock_timeout)
        self._env = env
        self._cwd = cwd
        self._host_dir = host_dir
        self._spawn = spawn
        self._grace_seconds = grace_seconds

    def start(self, request: StartWorkerRequest) -> WorkerStatus:
        """Start the worker for a target, reusing a live worker for the same target."""
        launch, overrides = normalize_start_request(request)
        target = resolve_target(overrides, env=self._env, cwd=self._cwd, host_dir=self._host_dir)
        argv = build_worker_command(target, launch)

        with self._state.locked() as state:
            if state.closed:
                raise StateError("Worker supervisor has been shut down")

            existing = state.process
            if existing is not None:
                if existing.has_exited():
                    logger.info(
                        "Previous worker %s exited with code %s",
                        existing.pid,
                        existing.handle.returncode,
                    )
                    state.process = None
                elif existing.target_key == launch.target_key:
                    logger.info("Worker %s already serving %s/%s", existing.pid, *launch.target_key)
                    return existing.status()
                else:
                    logger.info(
                        "Replacing worker %s (%s/%s) with %s/%s",
                        existing.pid,
                        existing.workspace_dir,
                        existing.project_id,
                        *launch.target_key,
                    )
                    state.take()
                    terminate_process(existing.handle, grace_seconds=self._grace_seconds)

            handle = self._spawn(argv, label="manager web worker")
            managed = ManagedProcess(
                handle=handle,
                url=launch.url,
                workspace_dir=launch.workspace_dir,
                project_id=launch.project_id,
            )
            state.process = managed
            logger.info("Worker %s started at %s", managed.pid, managed.url)
            return managed.status()

    def stop(self) -> WorkerStatus:
        """Terminate the recorded worker, if any. The slot is cleared even on failure."""
        with self._state.locked() as state:
            existing = state.take()
            if existing is None:
                return WorkerStatus.idle()
            logger.info("Stopping worker %s", existing.pid)
            terminate_process(existing.handle, grace_seconds=self._grace_seconds)
            return WorkerStatus.idle()

    def status(self) -> WorkerStatus:
        with self._state.locked() as state:
            existing = state.process
            if existing is None:
                return WorkerStatus.idle()
            if existing.has_exited():
                logger.info("Worker %s exited with code %s", existing.pid, existing.handle.returncode)
                state.process = None
                return WorkerStatus.idle()
            return existing.status()

    def shutdown(self) -> None:
        """Force-terminate any live worker and refuse further starts."""
        with self._state.locked() as state:
            state.closed = True
            existing = state.take()
            if existing is None:
                return
            logger.info("Shutting down worker %s", existing.pid)
            try:
                terminate_process(existing.handle, grace_seconds=self._grace_seconds, force=True)
            except SupervisorError as exc:
                logger.error("Worker shutdown failed: %s", exc)
