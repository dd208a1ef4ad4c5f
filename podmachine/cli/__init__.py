"""Command-line interface for podmachine."""

import logging
import os
import sys
from pathlib import Path

from kubernetes.client.rest import ApiException

from ..errors import PodMachineError
from ..output import die

from .args import parse_args
from .handlers import COMMANDS


def storage_path(arg) -> Path:
    """Storage directory: --storage-path, $PODMACHINE_STORAGE_PATH, ~/.podmachine"""
    value = arg or os.environ.get("PODMACHINE_STORAGE_PATH")
    if value:
        return Path(value)
    return Path.home() / ".podmachine"


def main(argv=None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    if not args.command:
        args.parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    handler = COMMANDS[args.command]
    try:
        handler(args, storage_path(args.storage_path))
    except PodMachineError as e:
        die(str(e))
    except ApiException as e:
        die(f"Kubernetes API error: {e.status} {e.reason}")
