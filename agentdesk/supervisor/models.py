from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TriState(str, Enum):
    DEFAULT = "default"
    TRUE = "true"
    FALSE = "false"

    @classmethod
    def from_optional(cls, value: Optional[bool]) -> "TriState":
        if value is None:
            return cls.DEFAULT
        return cls.TRUE if value else cls.FALSE


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartWorkerRequest(_CamelModel):
    workspace_dir: str = ""
    project_id: str = ""
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    actor_team_id: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    monitor_limit: Optional[int] = None
    pending_limit: Optional[int] = None
    decisions_limit: Optional[int] = None
    refresh_index: Optional[bool] = None
    sync_index: Optional[bool] = None
    node_bin: Optional[str] = None
    cli_path: Optional[str] = None


class BootstrapWorkspaceRequest(_CamelModel):
    workspace_dir: str = ""
    company_name: Optional[str] = None
    project_name: Optional[str] = None
    departments: Optional[List[str]] = None
    include_ceo: Optional[bool] = None
    include_director: Optional[bool] = None
    force: Optional[bool] = None
    node_bin: Optional[str] = None
    cli_path: Optional[str] = None


class OnboardAgentRequest(_CamelModel):
    workspace_dir: str = ""
    name: str = ""
    role: str = ""
    provider: str = ""
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    node_bin: Optional[str] = None
    cli_path: Optional[str] = None


class DoctorRequest(_CamelModel):
    workspace_dir: Optional[str] = None
    project_id: Optional[str] = None
    node_bin: Optional[str] = None
    cli_path: Optional[str] = None


class WorkerStatus(_CamelModel):
    running: bool = False
    url: Optional[str] = None
    pid: Optional[int] = None
    workspace_dir: Optional[str] = None
    project_id: Optional[str] = None

    @classmethod
    def idle(cls) -> "WorkerStatus":
        return cls()


class WorkerHealth(_CamelModel):
    status: WorkerStatus
    reachable: bool = False
    http_status: Optional[int] = None
    error: Optional[str] = None


class OnboardAgentResult(_CamelModel):
    workspace_dir: str
    agent_id: str
    name: str
    role: str
    provider: str
    team_id: Optional[str] = None
    created_team: bool = False


class DoctorCheck(_CamelModel):
    id: str
    status: str
    message: str
    details: List[str] = Field(default_factory=list)


class DoctorReport(_CamelModel):
    ok: bool
    checks: List[DoctorCheck]
    summary: dict
    resolved: dict
