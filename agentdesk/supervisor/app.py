import atexit
import logging
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agentdesk.errors import DesktopError
from .doctor import desktop_doctor
from .jobs import bootstrap_workspace, onboard_agent
from .models import (
    BootstrapWorkspaceRequest,
    DoctorReport,
    DoctorRequest,
    OnboardAgentRequest,
    OnboardAgentResult,
    StartWorkerRequest,
    WorkerHealth,
    WorkerStatus,
)
from .process_supervisor import ProcessSupervisor

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger("agentdesk.supervisor")

WORKER_PROBE_TIMEOUT_SECONDS = 2.0

ERROR_STATUS_CODES = {
    "validation": 422,
    "resolution": 424,
    "spawn": 502,
    "child_failure": 502,
    "state": 503,
    "supervisor": 502,
}


def create_app(supervisor: Optional[ProcessSupervisor] = None) -> FastAPI:
    """Build the control API around one supervisor owned for the app's lifetime."""
    supervisor = supervisor or ProcessSupervisor()
    app = FastAPI(title="AgentDesk Supervisor")
    app.state.supervisor = supervisor

    @app.on_event("startup")
    async def startup_event():
        # Covers interpreter exit paths that bypass the shutdown event.
        atexit.register(supervisor.shutdown)
        logger.info("Worker supervisor ready")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Stopping managed worker before exit...")
        supervisor.shutdown()
        atexit.unregister(supervisor.shutdown)

    @app.exception_handler(DesktopError)
    async def desktop_error_handler(request: Request, exc: DesktopError):
        status_code = ERROR_STATUS_CODES.get(exc.error_class, 500)
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/worker/start", response_model=WorkerStatus)
    def start_worker(request: StartWorkerRequest):
        return supervisor.start(request)

    @app.post("/worker/stop", response_model=WorkerStatus)
    def stop_worker():
        return supervisor.stop()

    @app.get("/worker/status", response_model=WorkerStatus)
    def worker_status():
        return supervisor.status()

    @app.get("/worker/health", response_model=WorkerHealth)
    def worker_health():
        """Probe the reported worker URL; the status itself is never changed."""
        status = supervisor.status()
        if not status.running or not status.url:
            return WorkerHealth(status=status)
        try:
            response = httpx.get(status.url, timeout=WORKER_PROBE_TIMEOUT_SECONDS)
        except httpx.HTTPError as exc:
            return WorkerHealth(status=status, reachable=False, error=str(exc))
        return WorkerHealth(status=status, reachable=True, http_status=response.status_code)

    @app.post("/workspace/bootstrap")
    def bootstrap(request: BootstrapWorkspaceRequest) -> Any:
        return bootstrap_workspace(request)

    @app.post("/agents/onboard", response_model=OnboardAgentResult)
    def onboard(request: OnboardAgentRequest):
        return onboard_agent(request)

    @app.post("/doctor", response_model=DoctorReport)
    def doctor(request: DoctorRequest):
        return desktop_doctor(request)

    return app


app = create_app()
