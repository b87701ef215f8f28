"""Stand-in for the workspace CLI bundle used by supervisor tests.

Each invocation appends its argv to `<workspace_dir>/calls.jsonl` when the
workspace directory exists, then behaves according to the subcommand.
"""

import json
import sys
import time
from pathlib import Path


def _record(workspace_dir: str, argv: list) -> None:
    workspace = Path(workspace_dir)
    if workspace.is_dir():
        with (workspace / "calls.jsonl").open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(argv) + "\n")


def _option(argv: list, flag: str) -> str:
    if flag in argv:
        return argv[argv.index(flag) + 1]
    return ""


def main(argv: list) -> int:
    subcommand, workspace_dir = argv[0], argv[1]
    _record(workspace_dir, argv)

    if subcommand == "ui:web":
        while True:
            time.sleep(0.2)

    if subcommand == "workspace:bootstrap":
        if Path(workspace_dir, "fail_bootstrap").exists():
            sys.stderr.write("bootstrap exploded\n")
            return 3
        if Path(workspace_dir, "garbage_bootstrap").exists():
            sys.stdout.write("not json at all\n")
            return 0
        sys.stdout.write(json.dumps({"workspace_dir": workspace_dir, "args": argv[2:]}) + "\n")
        return 0

    if subcommand == "team:new":
        name = _option(argv, "--name")
        if name == "Broken":
            sys.stderr.write("team already exists\n")
            return 1
        sys.stdout.write(f"team_{name.lower()}\n")
        return 0

    if subcommand == "agent:new":
        name = _option(argv, "--name")
        if name == "Silent":
            return 0
        sys.stdout.write(f"  agent_{name.lower()}  \n")
        return 0

    sys.stderr.write(f"unknown command: {subcommand}\n")
    return 2


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
