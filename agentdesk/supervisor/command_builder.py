"""Request normalization and canonical argument vectors for worker invocations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from agentdesk.contracts import (
    ACTOR_ROLES,
    AGENT_ROLES,
    DEFAULT_ACTOR_ID,
    DEFAULT_ACTOR_ROLE,
    DEFAULT_LIST_LIMIT,
    DEFAULT_WORKER_HOST,
    DEFAULT_WORKER_PORT,
    SUBCOMMAND_AGENT_NEW,
    SUBCOMMAND_BOOTSTRAP,
    SUBCOMMAND_TEAM_NEW,
    SUBCOMMAND_WEB,
)
from agentdesk.errors import ValidationError
from agentdesk.supervisor.models import (
    BootstrapWorkspaceRequest,
    OnboardAgentRequest,
    StartWorkerRequest,
    TriState,
)
from agentdesk.supervisor.resolver import ExecutableOverrides, ResolvedTarget

MAX_PORT = 65535


@dataclass(frozen=True)
class WorkerLaunch:
    workspace_dir: str
    project_id: str
    actor_id: str
    actor_role: str
    actor_team_id: Optional[str]
    host: str
    port: int
    monitor_limit: int
    pending_limit: int
    decisions_limit: int
    refresh_index: TriState
    sync_index: TriState

    @property
    def target_key(self) -> tuple[str, str]:
        return (self.workspace_dir, self.project_id)

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass(frozen=True)
class BootstrapPlan:
    workspace_dir: str
    company_name: Optional[str]
    project_name: Optional[str]
    departments: tuple[str, ...]
    include_ceo: TriState
    include_director: TriState
    force: TriState


@dataclass(frozen=True)
class OnboardPlan:
    workspace_dir: str
    name: str
    role: str
    provider: str
    team_id: Optional[str]
    team_name: Optional[str]

    @property
    def team_to_create(self) -> Optional[str]:
        """Name of the team to mint before the agent, or None when no team step runs."""
        if self.role == "ceo" or self.team_id is not None:
            return None
        return self.team_name


def _required(value: Optional[str], field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(field, f"{field} is required")
    return cleaned


def _optional(value: Optional[str]) -> Optional[str]:
    cleaned = (value or "").strip()
    return cleaned or None


def _defaulted(value: Optional[str], field: str, default: str) -> str:
    if value is None:
        return default
    cleaned = value.strip()
    if not cleaned:
        raise ValidationError(field, f"{field} cannot be empty")
    return cleaned


def _role(
    value: Optional[str],
    field: str,
    allowed: Sequence[str],
    is_valid: Callable[[str], bool],
    default: Optional[str] = None,
) -> str:
    if value is None and default is not None:
        return default
    role = (value or "").strip().lower()
    if not is_valid(role):
        raise ValidationError(
            field,
            f"{field} must be one of: {', '.join(allowed)}",
            allowed=allowed,
        )
    return role


def _limit(value: Optional[int], field: str) -> int:
    if value is None:
        return DEFAULT_LIST_LIMIT
    if value < 0:
        raise ValidationError(field, f"{field} must be zero or greater")
    return int(value)


def _normalize_list(values: Optional[Iterable[str]]) -> tuple[str, ...]:
    return tuple(v.strip() for v in (values or []) if v and v.strip())


def _overrides(node_bin: Optional[str], cli_path: Optional[str]) -> ExecutableOverrides:
    return ExecutableOverrides(node_bin=_optional(node_bin), cli_path=_optional(cli_path))


def is_valid_actor_role(role: str) -> bool:
    return role in ACTOR_ROLES


def is_valid_agent_role(role: str) -> bool:
    return role in AGENT_ROLES


def normalize_start_request(request: StartWorkerRequest) -> tuple[WorkerLaunch, ExecutableOverrides]:
    """Validate a start request once, producing a deterministic launch value."""
    workspace_dir = _required(request.workspace_dir, "workspace_dir")
    project_id = _required(request.project_id, "project_id")
    actor_id = _defaulted(request.actor_id, "actor_id", DEFAULT_ACTOR_ID)
    actor_role = _role(
        request.actor_role, "actor_role", ACTOR_ROLES, is_valid_actor_role, default=DEFAULT_ACTOR_ROLE
    )
    host = _defaulted(request.host, "host", DEFAULT_WORKER_HOST)
    port = DEFAULT_WORKER_PORT if request.port is None else request.port
    if port < 1 or port > MAX_PORT:
        raise ValidationError("port", f"port must be between 1 and {MAX_PORT}")

    launch = WorkerLaunch(
        workspace_dir=workspace_dir,
        project_id=project_id,
        actor_id=actor_id,
        actor_role=actor_role,
        actor_team_id=_optional(request.actor_team_id),
        host=host,
        port=int(port),
        monitor_limit=_limit(request.monitor_limit, "monitor_limit"),
        pending_limit=_limit(request.pending_limit, "pending_limit"),
        decisions_limit=_limit(request.decisions_limit, "decisions_limit"),
        refresh_index=TriState.from_optional(request.refresh_index),
        sync_index=TriState.from_optional(request.sync_index),
    )
    return launch, _overrides(request.node_bin, request.cli_path)


def normalize_bootstrap_request(
    request: BootstrapWorkspaceRequest,
) -> tuple[BootstrapPlan, ExecutableOverrides]:
    plan = BootstrapPlan(
        workspace_dir=_required(request.workspace_dir, "workspace_dir"),
        company_name=_optional(request.company_name),
        project_name=_optional(request.project_name),
        departments=_normalize_list(request.departments),
        include_ceo=TriState.from_optional(request.include_ceo),
        include_director=TriState.from_optional(request.include_director),
        force=TriState.from_optional(request.force),
    )
    return plan, _overrides(request.node_bin, request.cli_path)


def normalize_onboard_request(request: OnboardAgentRequest) -> tuple[OnboardPlan, ExecutableOverrides]:
    workspace_dir = _required(request.workspace_dir, "workspace_dir")
    name = _required(request.name, "name")
    role = _role(request.role, "role", AGENT_ROLES, is_valid_agent_role)
    provider = _required(request.provider, "provider")
    plan = OnboardPlan(
        workspace_dir=workspace_dir,
        name=name,
        role=role,
        provider=provider,
        team_id=_optional(request.team_id),
        team_name=_optional(request.team_name),
    )
    return plan, _overrides(request.node_bin, request.cli_path)


def worker_args(launch: WorkerLaunch) -> list[str]:
    """Return `ui:web` arguments; flags only appear when deviating from defaults."""
    args = [
        launch.workspace_dir,
        "--project", launch.project_id,
        "--actor", launch.actor_id,
        "--role", launch.actor_role,
        "--host", launch.host,
        "--port", str(launch.port),
        "--monitor-limit", str(launch.monitor_limit),
        "--pending-limit", str(launch.pending_limit),
        "--decisions-limit", str(launch.decisions_limit),
    ]
    if launch.actor_team_id is not None:
        args += ["--team", launch.actor_team_id]
    if launch.refresh_index is TriState.TRUE:
        args.append("--refresh-index")
    if launch.sync_index is TriState.FALSE:
        args.append("--no-sync-index")
    return args


def bootstrap_args(plan: BootstrapPlan) -> list[str]:
    args = [plan.workspace_dir]
    if plan.company_name is not None:
        args += ["--name", plan.company_name]
    if plan.project_name is not None:
        args += ["--project-name", plan.project_name]
    if plan.departments:
        args.append("--departments")
        args.extend(plan.departments)
    if plan.include_ceo is TriState.FALSE:
        args.append("--no-ceo")
    if plan.include_director is TriState.FALSE:
        args.append("--no-director")
    if plan.force is TriState.TRUE:
        args.append("--force")
    return args


def agent_args(plan: OnboardPlan, team_id: Optional[str]) -> list[str]:
    args = [
        plan.workspace_dir,
        "--name", plan.name,
        "--role", plan.role,
        "--provider", plan.provider,
    ]
    if team_id is not None:
        args += ["--team", team_id]
    return args


def build_worker_command(target: ResolvedTarget, launch: WorkerLaunch) -> list[str]:
    return target.command(SUBCOMMAND_WEB, *worker_args(launch))


def build_bootstrap_command(target: ResolvedTarget, plan: BootstrapPlan) -> list[str]:
    return target.command(SUBCOMMAND_BOOTSTRAP, *bootstrap_args(plan))


def build_team_command(target: ResolvedTarget, workspace_dir: str, team_name: str) -> list[str]:
    return target.command(SUBCOMMAND_TEAM_NEW, workspace_dir, "--name", team_name)


def build_agent_command(target: ResolvedTarget, plan: OnboardPlan, team_id: Optional[str]) -> list[str]:
    return target.command(SUBCOMMAND_AGENT_NEW, *agent_args(plan, team_id))
