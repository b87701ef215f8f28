"""Detached and synchronous child invocation with output decoders."""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
from typing import Any, Sequence

from agentdesk.errors import ChildFailureError, SpawnError

logger = logging.getLogger("agentdesk.supervisor.runner")

PROBE_TIMEOUT_SECONDS = 5.0
PROBE_OUTPUT_LIMIT = 4096


def _display(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(part) for part in argv)


def spawn_detached(argv: Sequence[str], *, label: str = "worker") -> subprocess.Popen:
    """Spawn with stdin closed and stdout/stderr passed through to the host."""
    logger.info("Spawning %s: %s", label, _display(argv))
    try:
        return subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=None,
            stderr=None,
        )
    except OSError as exc:
        raise SpawnError(label, argv, exc) from exc


def _lossy(raw: bytes | None) -> str:
    return (raw or b"").decode("utf-8", errors="replace").strip()


def run_sync(argv: Sequence[str], *, label: str) -> bytes:
    """Run to completion with captured output and return raw stdout bytes."""
    logger.info("Running %s: %s", label, _display(argv))
    try:
        result = subprocess.run(
            list(argv),
            stdin=subprocess.DEVNULL,
            capture_output=True,
        )
    except OSError as exc:
        raise SpawnError(label, argv, exc) from exc

    if result.returncode != 0:
        stderr = _lossy(result.stderr)
        stdout = _lossy(result.stdout)
        stream, detail = ("stderr", stderr) if stderr else ("stdout", stdout)
        logger.warning("%s exited with code %s", label, result.returncode)
        raise ChildFailureError(label, detail, stream=stream, exit_code=result.returncode)
    return result.stdout or b""


def _decode_utf8(stdout: bytes, label: str) -> str:
    try:
        return stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ChildFailureError(
            label,
            str(exc),
            stream="stdout",
            error_code="CHILD_OUTPUT_INVALID",
            message=f"{label} stdout is not valid UTF-8: {exc}",
        ) from exc


def decode_json_output(stdout: bytes, *, label: str) -> Any:
    """The whole trimmed stdout must be exactly one JSON document."""
    text = _decode_utf8(stdout, label).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ChildFailureError(
            label,
            text,
            stream="stdout",
            error_code="CHILD_OUTPUT_INVALID",
            message=f"{label} returned non-JSON output: {exc} (output: {text})",
        ) from exc


def decode_text_output(stdout: bytes, *, label: str) -> str:
    """Return the trimmed stdout as an opaque token; empty output is an error."""
    text = _decode_utf8(stdout, label).strip()
    if not text:
        raise ChildFailureError(
            label,
            "",
            stream="stdout",
            error_code="CHILD_OUTPUT_EMPTY",
            message=f"{label} returned empty output",
        )
    return text


def _trim_probe(text: str) -> str:
    text = text.strip()
    if len(text) > PROBE_OUTPUT_LIMIT:
        return text[:PROBE_OUTPUT_LIMIT]
    return text


def probe_command(argv: Sequence[str], *, timeout: float = PROBE_TIMEOUT_SECONDS) -> dict[str, Any]:
    """Run a bounded diagnostic command; failures are reported, never raised."""
    try:
        result = subprocess.run(
            list(argv),
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "exit_code": None, "stdout": "", "stderr": "", "error": "timed out"}
    except OSError as exc:
        return {"ok": False, "exit_code": None, "stdout": "", "stderr": "", "error": str(exc)}
    return {
        "ok": result.returncode == 0,
        "exit_code": result.returncode,
        "stdout": _trim_probe(result.stdout or ""),
        "stderr": _trim_probe(result.stderr or ""),
        "error": None,
    }
