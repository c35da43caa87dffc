"""Dispatcher for ``python -m kgsync <subcommand> [args…]``.

Allows kgsync to be invoked without relying on the console scripts, as
long as the package is installed in the active Python environment.

Subcommands
-----------
build     Analyze a whole project into a new graph
update    Incrementally update an existing graph
mcp       Start the MCP server
"""

import sys

_COMMANDS: dict[str, str] = {
    "build": "kgsync.build_kg",
    "update": "kgsync.update_kg",
    "mcp": "kgsync.mcp_server",
}

_HELP = """\
usage: python -m kgsync <subcommand> [options]

subcommands:
  build     Analyze a whole project into a new graph
  update    Incrementally update an existing graph
  mcp       Start the MCP server

Run  python -m kgsync <subcommand> --help  for per-command options.
"""


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(_HELP, end="")
        sys.exit(0)

    subcommand = sys.argv[1]
    if subcommand not in _COMMANDS:
        print(f"error: unknown subcommand '{subcommand}'\n", file=sys.stderr)
        print(_HELP, end="", file=sys.stderr)
        sys.exit(1)

    # Rewrite argv so the target module's argparse sees a clean sys.argv:
    #   ["kgsync", "update", "--graph", "g.sqlite"]
    #   → ["python -m kgsync update", "--graph", "g.sqlite"]
    sys.argv = [f"python -m kgsync {subcommand}", *sys.argv[2:]]

    import importlib

    mod = importlib.import_module(_COMMANDS[subcommand])
    mod.main()


if __name__ == "__main__":
    main()
