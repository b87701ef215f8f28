"""Invocation contract shared with the workspace CLI artifact."""

from pathlib import Path

NODE_BIN_ENV = "AGENTCOMPANY_NODE_BIN"
CLI_PATH_ENV = "AGENTCOMPANY_CLI_PATH"
DEFAULT_NODE_BIN = "node"
ENTRYPOINT_RELATIVE_PATH = Path("dist") / "cli.js"

SUBCOMMAND_WEB = "ui:web"
SUBCOMMAND_BOOTSTRAP = "workspace:bootstrap"
SUBCOMMAND_TEAM_NEW = "team:new"
SUBCOMMAND_AGENT_NEW = "agent:new"

ACTOR_ROLES = ("human", "ceo", "director", "manager", "worker")
AGENT_ROLES = ("ceo", "director", "manager", "worker")

DEFAULT_ACTOR_ID = "human"
DEFAULT_ACTOR_ROLE = "manager"
DEFAULT_WORKER_HOST = "127.0.0.1"
DEFAULT_WORKER_PORT = 8787
DEFAULT_LIST_LIMIT = 200
