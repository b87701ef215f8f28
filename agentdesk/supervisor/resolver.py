"""Locate the interpreter and entrypoint artifact used for every invocation.

Nothing here is cached: each call re-reads the environment and the
filesystem, so a fresh build or a changed override takes effect on the next
invocation without restarting the host.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from agentdesk.contracts import (
    CLI_PATH_ENV,
    DEFAULT_NODE_BIN,
    ENTRYPOINT_RELATIVE_PATH,
    NODE_BIN_ENV,
)
from agentdesk.errors import ResolutionError

logger = logging.getLogger("agentdesk.supervisor.resolver")

DISCOVERY_MAX_DEPTH = 8


@dataclass(frozen=True)
class ExecutableOverrides:
    """Per-call interpreter/entrypoint overrides, already trimmed."""

    node_bin: str | None = None
    cli_path: str | None = None


@dataclass(frozen=True)
class ResolvedTarget:
    interpreter: str
    entrypoint: Path

    def command(self, subcommand: str, *args: str) -> list[str]:
        return [self.interpreter, str(self.entrypoint), subcommand, *args]


def _clean(value: str | None) -> str:
    return (value or "").strip()


def host_executable_dir() -> Path:
    """Return the directory holding the running host executable."""
    if getattr(sys, "frozen", False) or not sys.argv or not sys.argv[0]:
        return Path(sys.executable).resolve().parent
    return Path(sys.argv[0]).resolve().parent


def resolve_interpreter(explicit: str | None = None, *, env: Mapping[str, str] | None = None) -> str:
    """Return explicit override, then env override, then the default binary name."""
    environ = os.environ if env is None else env
    explicit_bin = _clean(explicit)
    if explicit_bin:
        return explicit_bin
    env_bin = _clean(environ.get(NODE_BIN_ENV))
    if env_bin:
        return env_bin
    return DEFAULT_NODE_BIN


def _push_candidates(base: Path, out: list[Path], seen: set[Path], max_depth: int) -> None:
    ancestors = [base, *base.parents][:max_depth]
    for ancestor in ancestors:
        candidate = ancestor / ENTRYPOINT_RELATIVE_PATH
        if candidate not in seen:
            seen.add(candidate)
            out.append(candidate)


def discover_entrypoint_candidates(
    *,
    cwd: Path | None = None,
    host_dir: Path | None = None,
    max_depth: int = DISCOVERY_MAX_DEPTH,
) -> list[Path]:
    """List candidate artifact paths above cwd and the host dir, in discovery order."""
    out: list[Path] = []
    seen: set[Path] = set()
    starts = [cwd if cwd is not None else Path.cwd(), host_dir if host_dir is not None else host_executable_dir()]
    for start in starts:
        _push_candidates(Path(start), out, seen, max_depth)
    return out


def resolve_entrypoint(
    explicit: str | None = None,
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    host_dir: Path | None = None,
    max_depth: int = DISCOVERY_MAX_DEPTH,
) -> Path:
    """Resolve the entrypoint artifact or raise ResolutionError with guidance."""
    environ = os.environ if env is None else env

    explicit_path = _clean(explicit)
    if explicit_path:
        path = Path(explicit_path)
        if path.is_file():
            return path
        raise ResolutionError(
            f"CLI path does not exist: {path}",
            searched=[str(path)],
            path=str(path),
        )

    env_path = _clean(environ.get(CLI_PATH_ENV))
    if env_path:
        path = Path(env_path)
        if path.is_file():
            return path
        raise ResolutionError(
            f"{CLI_PATH_ENV} is set but does not exist: {path}",
            searched=[str(path)],
            env_var=CLI_PATH_ENV,
            path=str(path),
        )

    candidates = discover_entrypoint_candidates(cwd=cwd, host_dir=host_dir, max_depth=max_depth)
    for candidate in candidates:
        if candidate.is_file():
            logger.debug("Discovered entrypoint artifact: %s", candidate)
            return candidate

    relative = ENTRYPOINT_RELATIVE_PATH.as_posix()
    raise ResolutionError(
        f"Unable to find {relative}. Build the workspace CLI and/or set "
        f"{CLI_PATH_ENV} to the absolute {relative} path.",
        searched=[str(c) for c in candidates],
        env_var=CLI_PATH_ENV,
    )


def resolve_target(
    overrides: ExecutableOverrides,
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    host_dir: Path | None = None,
) -> ResolvedTarget:
    interpreter = resolve_interpreter(overrides.node_bin, env=env)
    entrypoint = resolve_entrypoint(overrides.cli_path, env=env, cwd=cwd, host_dir=host_dir)
    return ResolvedTarget(interpreter=interpreter, entrypoint=entrypoint)
