"""Desktop supervisor exception taxonomy with stable class/code fields."""

from __future__ import annotations

from typing import Any, Sequence


class DesktopError(Exception):
    """Base error carrying stable taxonomy class/code fields."""

    error_class = "desktop"
    error_code = "DESKTOP_ERROR"

    def __init__(self, message: str, *, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code

    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error payload returned by the control API and CLI."""
        return {
            "error_class": self.error_class,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details(),
        }


class ValidationError(DesktopError):
    """Caller input is missing or invalid; never causes a spawn attempt."""

    error_class = "validation"
    error_code = "REQ_INVALID_FIELD"

    def __init__(self, field: str, message: str, *, allowed: Sequence[str] = ()):
        super().__init__(message)
        self.field = field
        self.allowed = tuple(allowed)

    def details(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"field": self.field}
        if self.allowed:
            payload["allowed"] = list(self.allowed)
        return payload


class ResolutionError(DesktopError):
    """Interpreter or entrypoint artifact could not be located."""

    error_class = "resolution"
    error_code = "RESOLVE_ENTRYPOINT_NOT_FOUND"

    def __init__(
        self,
        message: str,
        *,
        searched: Sequence[str] = (),
        env_var: str | None = None,
        path: str | None = None,
    ):
        super().__init__(message)
        self.searched = tuple(searched)
        self.env_var = env_var
        self.path = path

    def details(self) -> dict[str, Any]:
        return {
            "searched": list(self.searched),
            "env_var": self.env_var,
            "path": self.path,
        }


class SpawnError(DesktopError):
    """The operating system failed to create the child process."""

    error_class = "spawn"
    error_code = "SPAWN_FAILED"

    def __init__(self, label: str, command: Sequence[str], cause: BaseException):
        super().__init__(f"Failed to start {label}: {cause}")
        self.label = label
        self.command = list(command)
        self.cause = cause

    def details(self) -> dict[str, Any]:
        return {"label": self.label, "command": self.command}


class ChildFailureError(DesktopError):
    """Child ran but exited nonzero or violated its output contract."""

    error_class = "child_failure"
    error_code = "CHILD_NONZERO_EXIT"

    def __init__(
        self,
        label: str,
        detail: str,
        *,
        stream: str,
        exit_code: int | None = None,
        error_code: str | None = None,
        message: str | None = None,
    ):
        super().__init__(message or f"{label} failed: {detail}", error_code=error_code)
        self.label = label
        self.detail = detail
        self.stream = stream
        self.exit_code = exit_code

    def details(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "stream": self.stream,
            "exit_code": self.exit_code,
            "detail": self.detail,
        }


class StateError(DesktopError):
    """Shared supervisor state is unusable (lock timeout or shut down)."""

    error_class = "state"
    error_code = "STATE_UNAVAILABLE"


class SupervisorError(DesktopError):
    """Worker termination failed for a reason other than already exited."""

    error_class = "supervisor"
    error_code = "WORKER_TERMINATE_FAILED"
