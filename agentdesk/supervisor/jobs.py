"""One-shot workspace jobs: bootstrap a workspace and onboard an agent."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

from agentdesk.supervisor.command_builder import (
    build_agent_command,
    build_bootstrap_command,
    build_team_command,
    normalize_bootstrap_request,
    normalize_onboard_request,
)
from agentdesk.supervisor.models import (
    BootstrapWorkspaceRequest,
    OnboardAgentRequest,
    OnboardAgentResult,
)
from agentdesk.supervisor.resolver import resolve_target
from agentdesk.supervisor.runner import decode_json_output, decode_text_output, run_sync

logger = logging.getLogger("agentdesk.supervisor.jobs")

RunFn = Callable[..., bytes]


def bootstrap_workspace(
    request: BootstrapWorkspaceRequest,
    *,
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    host_dir: Optional[Path] = None,
    run: RunFn = run_sync,
) -> Any:
    """Run `workspace:bootstrap` and return its JSON document."""
    plan, overrides = normalize_bootstrap_request(request)
    target = resolve_target(overrides, env=env, cwd=cwd, host_dir=host_dir)
    stdout = run(build_bootstrap_command(target, plan), label="Workspace bootstrap")
    return decode_json_output(stdout, label="Workspace bootstrap")


def _run_for_token(run: RunFn, argv: Sequence[str], label: str) -> str:
    return decode_text_output(run(argv, label=label), label=label)


def onboard_agent(
    request: OnboardAgentRequest,
    *,
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    host_dir: Optional[Path] = None,
    run: RunFn = run_sync,
) -> OnboardAgentResult:
    """Create an agent, minting its team first when only a team name is given."""
    plan, overrides = normalize_onboard_request(request)
    target = resolve_target(overrides, env=env, cwd=cwd, host_dir=host_dir)

    team_id = plan.team_id
    created_team = False
    team_name = plan.team_to_create
    if team_name is not None:
        team_id = _run_for_token(
            run,
            build_team_command(target, plan.workspace_dir, team_name),
            "Team onboarding",
        )
        created_team = True
        logger.info("Created team %s (%s) in %s", team_id, team_name, plan.workspace_dir)

    agent_id = _run_for_token(run, build_agent_command(target, plan, team_id), "Agent onboarding")
    logger.info("Onboarded agent %s (%s) in %s", agent_id, plan.role, plan.workspace_dir)
    return OnboardAgentResult(
        workspace_dir=plan.workspace_dir,
        agent_id=agent_id,
        name=plan.name,
        role=plan.role,
        provider=plan.provider,
        team_id=team_id,
        created_team=created_team,
    )
