import json
from typing import Any, List, NoReturn, Optional

import httpx
import typer
import uvicorn

from agentdesk.errors import DesktopError
from agentdesk.supervisor.doctor import desktop_doctor
from agentdesk.supervisor.jobs import bootstrap_workspace, onboard_agent
from agentdesk.supervisor.models import (
    BootstrapWorkspaceRequest,
    DoctorRequest,
    OnboardAgentRequest,
    StartWorkerRequest,
)

app = typer.Typer()

API_HOST = "127.0.0.1"
API_PORT = 7787
API_URL = f"http://{API_HOST}:{API_PORT}"
API_TIMEOUT_SECONDS = 30.0


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


def _fail(error: DesktopError, json_output: bool) -> NoReturn:
    if json_output:
        _echo_json(error.to_dict())
    else:
        typer.echo(f"Error: {error.message}")
    raise typer.Exit(code=1)


def _echo_status(status: dict, json_output: bool) -> None:
    if json_output:
        _echo_json(status)
        return
    if not status.get("running"):
        typer.echo("Worker: STOPPED")
        return
    typer.echo("Worker: RUNNING")
    typer.echo(f"  url: {status.get('url')}")
    typer.echo(f"  pid: {status.get('pid')}")
    typer.echo(f"  workspace: {status.get('workspaceDir')}")
    typer.echo(f"  project: {status.get('projectId')}")


def _call_api(method: str, api_url: str, path: str, json_output: bool, payload: Optional[dict] = None) -> dict:
    """Call the control API and exit nonzero on transport or API errors."""
    try:
        response = httpx.request(method, f"{api_url}{path}", json=payload, timeout=API_TIMEOUT_SECONDS)
    except httpx.ConnectError:
        typer.echo(f"Supervisor API is not running at {api_url}. Start it with `agentdesk serve`.")
        raise typer.Exit(code=1)
    except httpx.TimeoutException:
        typer.echo(f"Supervisor API at {api_url} timed out.")
        raise typer.Exit(code=1)
    try:
        data = response.json()
    except ValueError:
        data = {"message": response.text}
    if response.status_code != 200:
        if json_output:
            _echo_json(data)
        else:
            typer.echo(f"Error: {data.get('message', response.text)}")
        raise typer.Exit(code=1)
    return data


@app.command()
def serve(
    host: str = typer.Option(API_HOST, "--host", help="Control API host"),
    port: int = typer.Option(API_PORT, "--port", help="Control API port"),
):
    """Run the control API; the managed worker is stopped when it exits."""
    uvicorn.run("agentdesk.supervisor.app:app", host=host, port=port)


@app.command()
def start(
    workspace_dir: str,
    project_id: str = typer.Option(..., "--project", help="Project id"),
    actor_id: Optional[str] = typer.Option(None, "--actor"),
    actor_role: Optional[str] = typer.Option(None, "--role"),
    actor_team_id: Optional[str] = typer.Option(None, "--team"),
    host: Optional[str] = typer.Option(None, "--host", help="Worker listen host"),
    port: Optional[int] = typer.Option(None, "--port", help="Worker listen port"),
    monitor_limit: Optional[int] = typer.Option(None, "--monitor-limit"),
    pending_limit: Optional[int] = typer.Option(None, "--pending-limit"),
    decisions_limit: Optional[int] = typer.Option(None, "--decisions-limit"),
    refresh_index: Optional[bool] = typer.Option(None, "--refresh-index/--no-refresh-index"),
    sync_index: Optional[bool] = typer.Option(None, "--sync-index/--no-sync-index"),
    node_bin: Optional[str] = typer.Option(None, "--node-bin"),
    cli_path: Optional[str] = typer.Option(None, "--cli-path"),
    api_url: str = typer.Option(API_URL, "--api-url"),
    json_output: bool = typer.Option(False, "--json"),
):
    """Start the manager web worker through the control API."""
    request = StartWorkerRequest(
        workspace_dir=workspace_dir,
        project_id=project_id,
        actor_id=actor_id,
        actor_role=actor_role,
        actor_team_id=actor_team_id,
        host=host,
        port=port,
        monitor_limit=monitor_limit,
        pending_limit=pending_limit,
        decisions_limit=decisions_limit,
        refresh_index=refresh_index,
        sync_index=sync_index,
        node_bin=node_bin,
        cli_path=cli_path,
    )
    payload = request.model_dump(by_alias=True, exclude_none=True)
    _echo_status(_call_api("POST", api_url, "/worker/start", json_output, payload), json_output)


@app.command()
def stop(
    api_url: str = typer.Option(API_URL, "--api-url"),
    json_output: bool = typer.Option(False, "--json"),
):
    """Stop the manager web worker."""
    _echo_status(_call_api("POST", api_url, "/worker/stop", json_output), json_output)


@app.command()
def status(
    api_url: str = typer.Option(API_URL, "--api-url"),
    json_output: bool = typer.Option(False, "--json"),
):
    """Show manager web worker status."""
    _echo_status(_call_api("GET", api_url, "/worker/status", json_output), json_output)


@app.command()
def bootstrap(
    workspace_dir: str,
    company_name: Optional[str] = typer.Option(None, "--name"),
    project_name: Optional[str] = typer.Option(None, "--project-name"),
    departments: Optional[List[str]] = typer.Option(None, "--department", help="Repeat for each department"),
    include_ceo: Optional[bool] = typer.Option(None, "--ceo/--no-ceo"),
    include_director: Optional[bool] = typer.Option(None, "--director/--no-director"),
    force: Optional[bool] = typer.Option(None, "--force/--no-force"),
    node_bin: Optional[str] = typer.Option(None, "--node-bin"),
    cli_path: Optional[str] = typer.Option(None, "--cli-path"),
    json_output: bool = typer.Option(True, "--json/--no-json"),
):
    """Bootstrap a workspace and print the resulting document."""
    request = BootstrapWorkspaceRequest(
        workspace_dir=workspace_dir,
        company_name=company_name,
        project_name=project_name,
        departments=departments,
        include_ceo=include_ceo,
        include_director=include_director,
        force=force,
        node_bin=node_bin,
        cli_path=cli_path,
    )
    try:
        document = bootstrap_workspace(request)
    except DesktopError as exc:
        _fail(exc, json_output)
    if json_output:
        _echo_json(document)
    else:
        typer.echo(f"Workspace bootstrapped: {workspace_dir}")


@app.command("onboard-agent")
def onboard_agent_command(
    workspace_dir: str,
    name: str = typer.Option(..., "--name"),
    role: str = typer.Option(..., "--role"),
    provider: str = typer.Option(..., "--provider"),
    team_id: Optional[str] = typer.Option(None, "--team"),
    team_name: Optional[str] = typer.Option(None, "--team-name"),
    node_bin: Optional[str] = typer.Option(None, "--node-bin"),
    cli_path: Optional[str] = typer.Option(None, "--cli-path"),
    json_output: bool = typer.Option(False, "--json"),
):
    """Create an agent, creating its team first when only --team-name is given."""
    request = OnboardAgentRequest(
        workspace_dir=workspace_dir,
        name=name,
        role=role,
        provider=provider,
        team_id=team_id,
        team_name=team_name,
        node_bin=node_bin,
        cli_path=cli_path,
    )
    try:
        result = onboard_agent(request)
    except DesktopError as exc:
        _fail(exc, json_output)
    if json_output:
        _echo_json(result.model_dump(by_alias=True))
        return
    typer.echo(f"Agent onboarded: {result.name} ({result.agent_id})")
    if result.team_id:
        suffix = " [created]" if result.created_team else ""
        typer.echo(f"  team: {result.team_id}{suffix}")


@app.command("doctor")
def doctor(
    workspace_dir: Optional[str] = typer.Option(None, "--workspace"),
    project_id: Optional[str] = typer.Option(None, "--project"),
    node_bin: Optional[str] = typer.Option(None, "--node-bin"),
    cli_path: Optional[str] = typer.Option(None, "--cli-path"),
    strict: bool = typer.Option(False, "--strict", help="Exit nonzero when any check fails"),
    json_output: bool = typer.Option(False, "--json"),
):
    """Check interpreter, CLI bundle and workspace prerequisites."""
    report = desktop_doctor(
        DoctorRequest(
            workspace_dir=workspace_dir,
            project_id=project_id,
            node_bin=node_bin,
            cli_path=cli_path,
        )
    )
    if json_output:
        _echo_json(report.model_dump(by_alias=True))
    else:
        typer.echo(f"DOCTOR: {'OK' if report.ok else 'FAIL'}")
        for check in report.checks:
            typer.echo(f"  [{check.status}] {check.id}: {check.message}")
    if strict and not report.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
