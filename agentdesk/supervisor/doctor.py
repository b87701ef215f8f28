"""Read-only desktop diagnostics for the interpreter, CLI bundle and workspace."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

from agentdesk.errors import ResolutionError
from agentdesk.supervisor.models import DoctorCheck, DoctorReport, DoctorRequest
from agentdesk.supervisor.resolver import resolve_entrypoint, resolve_interpreter
from agentdesk.supervisor.runner import probe_command

ProbeFn = Callable[[Sequence[str]], dict[str, Any]]

STATUS_PASS = "pass"
STATUS_WARN = "warn"
STATUS_FAIL = "fail"


def _is_path_like(value: str) -> bool:
    return "/" in value or "\\" in value or value.startswith(".")


def _probe_details(result: dict[str, Any]) -> list[str]:
    return [str(v) for v in (result.get("stdout"), result.get("stderr"), result.get("error")) if v]


def _check_node_bin(node_bin: str, cwd: Path, probe: ProbeFn) -> DoctorCheck:
    if _is_path_like(node_bin):
        path = (cwd / node_bin).resolve()
        ok = path.is_file() and os.access(path, os.X_OK)
        return DoctorCheck(
            id="desktop.node_bin",
            status=STATUS_PASS if ok else STATUS_FAIL,
            message=f"Node binary is executable: {path}" if ok else f"Node binary is not executable: {path}",
        )
    result = probe([node_bin, "--version"])
    ok = bool(result.get("ok"))
    return DoctorCheck(
        id="desktop.node_bin",
        status=STATUS_PASS if ok else STATUS_FAIL,
        message=(
            f"Node binary is available on PATH ({node_bin})"
            if ok
            else f"Node binary is not available on PATH ({node_bin})"
        ),
        details=_probe_details(result),
    )


def _check_workspace(workspace_dir: str, project_id: Optional[str], cwd: Path) -> list[DoctorCheck]:
    workspace = (cwd / workspace_dir).resolve()
    if not workspace.exists():
        return [
            DoctorCheck(
                id="desktop.workspace",
                status=STATUS_FAIL,
                message=f"Workspace path does not exist: {workspace}",
            )
        ]
    checks = [
        DoctorCheck(id="desktop.workspace", status=STATUS_PASS, message=f"Workspace path exists: {workspace}")
    ]
    company_file = workspace / "company" / "company.yaml"
    checks.append(
        DoctorCheck(
            id="desktop.workspace_layout",
            status=STATUS_PASS if company_file.exists() else STATUS_WARN,
            message=(
                "Workspace canonical company file exists."
                if company_file.exists()
                else "company/company.yaml not found in workspace path."
            ),
        )
    )
    if project_id:
        project_file = workspace / "work" / "projects" / project_id / "project.yaml"
        checks.append(
            DoctorCheck(
                id="desktop.project",
                status=STATUS_PASS if project_file.exists() else STATUS_FAIL,
                message=(
                    f"Project exists: {project_id}"
                    if project_file.exists()
                    else f"Project not found in workspace: {project_id}"
                ),
            )
        )
    return checks


def desktop_doctor(
    request: DoctorRequest,
    *,
    probe: ProbeFn = probe_command,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    host_dir: Optional[Path] = None,
) -> DoctorReport:
    """Build a pass/warn/fail report of everything a worker launch depends on."""
    base = cwd if cwd is not None else Path.cwd()
    checks: list[DoctorCheck] = []

    node_bin = resolve_interpreter(request.node_bin, env=env)
    checks.append(_check_node_bin(node_bin, base, probe))

    cli_path: Optional[str] = None
    try:
        cli_path = str(resolve_entrypoint(request.cli_path, env=env, cwd=base, host_dir=host_dir))
        checks.append(DoctorCheck(id="desktop.cli_bundle", status=STATUS_PASS, message=f"CLI bundle found: {cli_path}"))
    except ResolutionError as exc:
        checks.append(
            DoctorCheck(id="desktop.cli_bundle", status=STATUS_FAIL, message=exc.message, details=list(exc.searched))
        )

    workspace_dir = (request.workspace_dir or "").strip()
    project_id = (request.project_id or "").strip() or None
    if workspace_dir:
        checks.extend(_check_workspace(workspace_dir, project_id, base))
    elif project_id:
        checks.append(
            DoctorCheck(
                id="desktop.project",
                status=STATUS_FAIL,
                message="project_id was provided but workspace_dir is missing.",
            )
        )

    summary = {STATUS_PASS: 0, STATUS_WARN: 0, STATUS_FAIL: 0}
    for check in checks:
        summary[check.status] += 1
    return DoctorReport(
        ok=summary[STATUS_FAIL] == 0,
        checks=checks,
        summary=summary,
        resolved={"node_bin": node_bin, "cli_path": cli_path},
    )
