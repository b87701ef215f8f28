"""Tests for single-slot worker supervision against a real child process."""

import json
import os
import signal
import subprocess
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest import mock

from agentdesk.errors import ResolutionError, SpawnError, StateError, SupervisorError, ValidationError
from agentdesk.supervisor.models import StartWorkerRequest, WorkerStatus
from agentdesk.supervisor.process_supervisor import ProcessSupervisor, terminate_process
from agentdesk.supervisor.runner import spawn_detached

FAKE_CLI = Path(__file__).resolve().parent / "fixtures" / "fake_cli.py"
STUBBORN_CLI = Path(__file__).resolve().parent / "fixtures" / "stubborn_cli.py"


def _request(workspace_dir: str = "/ws", project_id: str = "p1", **kwargs) -> StartWorkerRequest:
    return StartWorkerRequest(
        workspace_dir=workspace_dir,
        project_id=project_id,
        node_bin=sys.executable,
        cli_path=str(FAKE_CLI),
        **kwargs,
    )


def _wait_for_file(path: Path, timeout: float = 10.0) -> bool:
    deadline = time.time() + timeout
    while not path.exists() and time.time() < deadline:
        time.sleep(0.05)
    return path.exists()


def _wait_for_calls(workspace: Path, timeout: float = 10.0) -> list:
    log = workspace / "calls.jsonl"
    deadline = time.time() + timeout
    text = ""
    while time.time() < deadline:
        text = log.read_text(encoding="utf-8") if log.exists() else ""
        if text.endswith("\n"):
            break
        time.sleep(0.05)
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def _wait_for_exit(pid: int, supervisor: ProcessSupervisor, timeout: float = 5.0) -> WorkerStatus:
    deadline = time.time() + timeout
    status = supervisor.status()
    while status.running and time.time() < deadline:
        time.sleep(0.05)
        status = supervisor.status()
    return status


class ProcessSupervisorTests(unittest.TestCase):
    """Validate start/stop/status semantics and the one-worker invariant."""

    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.spawned = []

        def _counting_spawn(argv, *, label="worker"):
            handle = spawn_detached(argv, label=label)
            self.spawned.append(handle)
            return handle

        self.supervisor = ProcessSupervisor(
            env={},
            cwd=self.root,
            host_dir=self.root,
            spawn=_counting_spawn,
            grace_seconds=2.0,
        )

    def tearDown(self) -> None:
        self.supervisor.shutdown()
        for handle in self.spawned:
            if handle.poll() is None:
                handle.kill()
                handle.wait()
        self.tmpdir.cleanup()

    def test_start_reports_default_url_and_restart_is_idempotent(self) -> None:
        first = self.supervisor.start(_request("/ws", "p1"))
        self.assertTrue(first.running)
        self.assertEqual(first.url, "http://127.0.0.1:8787")
        self.assertEqual(first.project_id, "p1")
        self.assertEqual(first.workspace_dir, "/ws")

        second = self.supervisor.start(_request("/ws", "p1"))
        self.assertEqual(first, second)
        self.assertEqual(len(self.spawned), 1)

    def test_same_target_with_different_port_keeps_existing_worker(self) -> None:
        first = self.supervisor.start(_request("/ws", "p1"))
        second = self.supervisor.start(_request("/ws", "p1", port=9999))
        self.assertEqual(second.url, first.url)
        self.assertEqual(len(self.spawned), 1)

    def test_different_target_replaces_worker_without_overlap(self) -> None:
        first = self.supervisor.start(_request("/ws", "p1"))
        second = self.supervisor.start(_request("/ws", "p2"))
        self.assertNotEqual(first.pid, second.pid)
        self.assertEqual(len(self.spawned), 2)
        self.assertIsNotNone(self.spawned[0].poll())
        self.assertIsNone(self.spawned[1].poll())
        self.assertEqual(self.supervisor.status().project_id, "p2")

    def test_worker_receives_canonical_arguments(self) -> None:
        self.supervisor.start(_request(str(self.root), "p1", refresh_index=True, sync_index=False))
        calls = _wait_for_calls(self.root)
        self.assertEqual(len(calls), 1)
        self.assertEqual(calls[0][:4], ["ui:web", str(self.root), "--project", "p1"])
        self.assertEqual(calls[0][-2:], ["--refresh-index", "--no-sync-index"])

    @unittest.skipIf(os.name == "nt", "POSIX signals required")
    def test_status_clears_slot_once_after_external_exit(self) -> None:
        started = self.supervisor.start(_request())
        assert started.pid is not None
        os.kill(started.pid, signal.SIGKILL)
        status = _wait_for_exit(started.pid, self.supervisor)
        self.assertEqual(status, WorkerStatus.idle())
        self.assertEqual(self.supervisor.status(), WorkerStatus.idle())

    def test_start_after_exit_spawns_fresh_worker(self) -> None:
        first = self.supervisor.start(_request())
        self.spawned[0].kill()
        self.spawned[0].wait()
        second = self.supervisor.start(_request())
        self.assertTrue(second.running)
        self.assertNotEqual(first.pid, second.pid)
        self.assertEqual(len(self.spawned), 2)

    def test_stop_is_idempotent(self) -> None:
        self.assertEqual(self.supervisor.stop(), WorkerStatus.idle())
        self.supervisor.start(_request())
        stopped = self.supervisor.stop()
        self.assertFalse(stopped.running)
        self.assertIsNone(stopped.url)
        self.assertIsNone(stopped.pid)
        self.assertIsNotNone(self.spawned[0].poll())
        self.assertEqual(self.supervisor.stop(), WorkerStatus.idle())
        self.assertEqual(self.supervisor.status(), WorkerStatus.idle())

    def test_validation_error_never_spawns(self) -> None:
        with self.assertRaises(ValidationError):
            self.supervisor.start(_request("", "p1"))
        with self.assertRaises(ValidationError):
            self.supervisor.start(_request("/ws", "p1", actor_role="admin"))
        self.assertEqual(self.spawned, [])

    def test_resolution_error_leaves_running_worker(self) -> None:
        running = self.supervisor.start(_request("/ws", "p1"))
        bad = StartWorkerRequest(
            workspace_dir="/ws",
            project_id="p2",
            node_bin=sys.executable,
            cli_path=str(self.root / "missing.js"),
        )
        with self.assertRaises(ResolutionError):
            self.supervisor.start(bad)
        self.assertEqual(self.supervisor.status(), running)

    def test_spawn_failure_records_nothing(self) -> None:
        request = StartWorkerRequest(
            workspace_dir="/ws",
            project_id="p1",
            node_bin="/definitely/not/a/real/interpreter",
            cli_path=str(FAKE_CLI),
        )
        supervisor = ProcessSupervisor(env={}, cwd=self.root, host_dir=self.root)
        with self.assertRaises(SpawnError):
            supervisor.start(request)
        self.assertEqual(supervisor.status(), WorkerStatus.idle())

    def test_concurrent_starts_spawn_one_worker(self) -> None:
        results = []
        errors = []

        def _start() -> None:
            try:
                results.append(self.supervisor.start(_request()))
            except Exception as exc:  # pragma: no cover - surfaced by assertion
                errors.append(exc)

        threads = [threading.Thread(target=_start) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(errors, [])
        self.assertEqual(len(self.spawned), 1)
        self.assertEqual(len({status.pid for status in results}), 1)

    def test_shutdown_kills_worker_and_refuses_new_starts(self) -> None:
        self.supervisor.start(_request())
        self.supervisor.shutdown()
        self.assertIsNotNone(self.spawned[0].poll())
        self.assertEqual(self.supervisor.status(), WorkerStatus.idle())
        with self.assertRaises(StateError):
            self.supervisor.start(_request())
        self.supervisor.shutdown()

    def test_lock_timeout_is_state_error(self) -> None:
        supervisor = ProcessSupervisor(env={}, lock_timeout=0.05)
        with supervisor._state.locked():
            errors = []
            thread = threading.Thread(target=lambda: self._capture(supervisor.status, errors))
            thread.start()
            thread.join()
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], StateError)
        self.assertEqual(errors[0].error_code, "STATE_UNAVAILABLE")

    @staticmethod
    def _capture(fn, errors) -> None:
        try:
            fn()
        except StateError as exc:
            errors.append(exc)


@unittest.skipIf(os.name == "nt", "POSIX signals required")
class StubbornWorkerTests(unittest.TestCase):
    """A worker that ignores SIGTERM is killed once the grace period runs out."""

    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.spawned = []
        self.prior_exit_codes = []

        def _tracking_spawn(argv, *, label="worker"):
            self.prior_exit_codes.append([handle.poll() for handle in self.spawned])
            handle = spawn_detached(argv, label=label)
            self.spawned.append(handle)
            return handle

        self.supervisor = ProcessSupervisor(
            env={},
            cwd=self.root,
            host_dir=self.root,
            spawn=_tracking_spawn,
            grace_seconds=0.5,
        )

    def tearDown(self) -> None:
        self.supervisor.shutdown()
        for handle in self.spawned:
            if handle.poll() is None:
                handle.kill()
                handle.wait()
        self.tmpdir.cleanup()

    def _start(self, project_id: str) -> WorkerStatus:
        ready = self.root / "ready"
        if ready.exists():
            ready.unlink()
        status = self.supervisor.start(
            StartWorkerRequest(
                workspace_dir=str(self.root),
                project_id=project_id,
                node_bin=sys.executable,
                cli_path=str(STUBBORN_CLI),
            )
        )
        self.assertTrue(_wait_for_file(ready), "worker never installed its SIGTERM handler")
        return status

    def test_stop_escalates_to_kill(self) -> None:
        self._start("p1")
        self.assertEqual(self.supervisor.stop(), WorkerStatus.idle())
        self.assertEqual(self.spawned[0].returncode, -signal.SIGKILL)
        self.assertEqual(self.supervisor.status(), WorkerStatus.idle())

    def test_replacement_reaps_old_worker_before_spawning(self) -> None:
        first = self._start("p1")
        second = self._start("p2")
        self.assertNotEqual(first.pid, second.pid)
        self.assertEqual(self.prior_exit_codes[1], [-signal.SIGKILL])
        self.assertIsNone(self.spawned[1].poll())
        self.assertEqual(self.supervisor.status(), second)


class TerminateProcessTests(unittest.TestCase):
    """Termination treats already-gone processes as success."""

    def test_already_exited_is_success(self) -> None:
        handle = mock.Mock()
        handle.poll.return_value = 0
        terminate_process(handle)
        handle.terminate.assert_not_called()

    def test_missing_process_is_success(self) -> None:
        handle = mock.Mock()
        handle.poll.return_value = None
        handle.terminate.side_effect = ProcessLookupError()
        terminate_process(handle)
        handle.wait.assert_not_called()

    def test_grace_timeout_escalates_to_kill(self) -> None:
        handle = mock.Mock()
        handle.poll.return_value = None
        handle.pid = 42
        handle.wait.side_effect = [subprocess.TimeoutExpired(cmd="worker", timeout=0.1), -9]
        terminate_process(handle, grace_seconds=0.1)
        handle.terminate.assert_called_once_with()
        handle.kill.assert_called_once_with()
        self.assertEqual(handle.wait.call_args_list, [mock.call(timeout=0.1), mock.call()])

    def test_signal_failure_is_surfaced(self) -> None:
        handle = mock.Mock()
        handle.poll.return_value = None
        handle.pid = 42
        handle.terminate.side_effect = PermissionError("denied")
        with self.assertRaises(SupervisorError):
            terminate_process(handle)

    def test_stop_clears_slot_even_when_termination_fails(self) -> None:
        handle = mock.Mock()
        handle.poll.return_value = None
        handle.pid = 4242
        handle.terminate.side_effect = PermissionError("denied")
        with tempfile.TemporaryDirectory() as tmpdir:
            supervisor = ProcessSupervisor(env={}, cwd=Path(tmpdir), host_dir=Path(tmpdir), spawn=lambda argv, label: handle)
            supervisor.start(_request())
            with self.assertRaises(SupervisorError):
                supervisor.stop()
            handle.terminate.reset_mock()
            self.assertEqual(supervisor.stop(), WorkerStatus.idle())
            handle.terminate.assert_not_called()


if __name__ == "__main__":
    unittest.main()
