"""
Worker exit wrapper.

Runs one agent command and touches a sentinel file when it exits, so the
scheduler sees completion even if it cannot observe the process itself.

    python -m smd.runner.wrapper --sentinel .smd-worker-1.done [--stdin-file F] -- claude ...

stdout/stderr are inherited; the supervisor points them at the slot log.
"""

import argparse
import subprocess
import sys
from pathlib import Path


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="smd-worker-wrapper")
    parser.add_argument("--sentinel", required=True, type=Path, help="File to touch on exit")
    parser.add_argument("--stdin-file", type=Path, help="Feed this file to the command on stdin")
    parser.add_argument("cmd", nargs=argparse.REMAINDER, help="Command to run, after --")
    args = parser.parse_args(argv)
    if args.cmd and args.cmd[0] == "--":
        args.cmd = args.cmd[1:]
    if not args.cmd:
        parser.error("no command given")
    return args


def run(args: argparse.Namespace) -> int:
    try:
        if args.stdin_file:
            with open(args.stdin_file, "rb") as stdin:
                return subprocess.run(args.cmd, stdin=stdin).returncode
        return subprocess.run(args.cmd, stdin=subprocess.DEVNULL).returncode
    except OSError as e:
        print(f"smd: failed to start worker command {args.cmd[0]!r}: {e}", file=sys.stderr)
        return 127
    finally:
        sys.stdout.flush()
        sys.stderr.flush()
        args.sentinel.touch()


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(sys.argv[1:] if argv is None else argv))


if __name__ == '__main__':
    sys.exit(main())
