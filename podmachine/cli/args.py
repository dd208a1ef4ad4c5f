"""Argument parsing for the podmachine CLI."""

import argparse

from .. import __version__
from ..config import CREATE_FLAGS


def flag_dest(name: str) -> str:
    return name.replace("-", "_")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(prog="podmachine", description="Docker hosts running as Kubernetes pods")
    p.add_argument("--version", "-v", action="version", version=f"podmachine {__version__}")
    p.add_argument("--debug", action="store_true", help="Verbose logging")
    p.add_argument("-s", "--storage-path", metavar="DIR", help="Machine storage directory")

    sub = p.add_subparsers(dest="command", metavar="<command>")

    add = sub.add_parser("create", help="Create a machine and start it")
    add.add_argument("name", help="Machine name")
    for flag in CREATE_FLAGS:
        add.add_argument(
            f"--{flag.name}",
            dest=flag_dest(flag.name),
            metavar="VALUE",
            help=f"{flag.usage} [${flag.env_var}]",
        )

    for cmd_name, aliases, help_text in [
        ("start", [], "Start a machine"),
        ("stop", [], "Stop a machine"),
        ("restart", [], "Restart a machine"),
        ("kill", [], "Kill a machine"),
        ("rm", ["remove"], "Remove a machine"),
        ("status", [], "Show machine state"),
        ("ip", [], "Show machine IP"),
        ("url", [], "Show docker URL of a machine"),
        ("ssh-info", [], "Show SSH connection details"),
    ]:
        add = sub.add_parser(cmd_name, help=help_text, aliases=aliases)
        add.add_argument("name", help="Machine name")

    args = p.parse_args(argv)
    args.parser = p
    return args
