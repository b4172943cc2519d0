#!/usr/bin/env python3
"""smd CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from smd import __version__
from smd.commands import reset as cmd_reset_module
from smd.commands import run as cmd_run_module
from smd.commands import status as cmd_status_module
from smd.lib.config import ConfigError, load_run_config

DEFAULT_SMD_DIR = ".smd"


def get_run_config(args):
    """Load smd.env from --smd-dir, exiting with an ERROR line if it is invalid."""
    smd_dir = Path(args.smd_dir).expanduser()
    try:
        return load_run_config(smd_dir)
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(1)


def cmd_run(args):
    return cmd_run_module.cmd_run(args, get_run_config(args))


def cmd_status(args):
    return cmd_status_module.cmd_status(args, get_run_config(args))


def cmd_reset(args):
    return cmd_reset_module.cmd_reset(args, get_run_config(args))


def cmd_watch(args):
    from smd.commands import watch as cmd_watch_module
    return cmd_watch_module.cmd_watch(args, get_run_config(args))


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='smd', description='Simply Done - parallel story runner')
    parser.add_argument('--smd-dir', default=DEFAULT_SMD_DIR, help='smd directory (default: ./.smd)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # smd run
    p_run = subparsers.add_parser('run', help='Run stories until done')
    p_run.add_argument('args', nargs='*', metavar='PRD|MAX_ITERATIONS',
                       help='Requirements file (relative to the smd dir) and/or iteration cap')
    p_run.add_argument('--yes', '-y', action='store_true', help='Switch branches without asking')
    p_run.add_argument('--workers', '-w', type=int, help='Max parallel workers (overrides MAX_PARALLEL_WORKERS)')
    p_run.set_defaults(func=cmd_run)

    # smd status
    p_status = subparsers.add_parser('status', help='Show stories and progress')
    p_status.set_defaults(func=cmd_status)

    # smd reset
    p_reset = subparsers.add_parser('reset', help='Return stories to pending')
    p_reset.add_argument('ids', nargs='*', help='Story IDs')
    p_reset.add_argument('--failed', action='store_true', help='Reset every failed story')
    p_reset.add_argument('--all', action='store_true', help='Reset every story')
    p_reset.set_defaults(func=cmd_reset)

    # smd watch
    p_watch = subparsers.add_parser('watch', help='Live view of a run')
    p_watch.set_defaults(func=cmd_watch)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
