#!/usr/bin/env python3

# Entry of minish

from __future__ import annotations

import argparse
import os
import sys
from typing import Optional

try:
    import readline  # type: ignore
except Exception:  # pragma: no cover - fallback when readline unavailable
    readline = None

READLINE_ACTIVE = bool(readline)

PROMPT = "shell $ "
WELCOME = "Welcome to mini-shell."
GOODBYE = "Bye bye."

from ops import DEFAULT_MAX_TOKENS, Flow, ShellSession, execute_line, source_file  # local module in the same folder


def setup_readline() -> None:
    if not READLINE_ACTIVE:
        return
    try:
        readline.parse_and_bind("set editing-mode emacs")
        readline.parse_and_bind("Control-l: clear-screen")
    except Exception:
        pass


def max_tokens_from_env() -> Optional[int]:
    """Token limit from MINISH_MAX_TOKENS; 0 or less means unbounded."""
    raw = os.environ.get("MINISH_MAX_TOKENS")
    if not raw:
        return DEFAULT_MAX_TOKENS
    try:
        value = int(raw)
    except ValueError:
        print(f"Warning: ignoring invalid MINISH_MAX_TOKENS={raw!r}", file=sys.stderr)
        return DEFAULT_MAX_TOKENS
    return value if value > 0 else None


def build_session(args: argparse.Namespace) -> ShellSession:
    if args.max_tokens is None:
        max_tokens = max_tokens_from_env()
    else:
        max_tokens = args.max_tokens if args.max_tokens > 0 else None
    trace = args.trace or bool(os.environ.get("MINISH_TRACE"))
    return ShellSession(max_tokens=max_tokens, strict_tokens=args.strict_tokens, trace=trace)


def repl(session: ShellSession) -> int:
    setup_readline()
    print(WELCOME)
    while True:
        try:
            line = input(PROMPT)
        except EOFError:
            # Ctrl-D -> exit
            print()
            break
        except KeyboardInterrupt:
            # Ctrl-C at prompt -> new line and continue
            print()
            continue

        try:
            flow = execute_line(line, session)
        except Exception as e:
            print(f"minish: parse/exec error: {e}", file=sys.stderr)
            continue
        if flow is Flow.TERMINATE:
            break

    print(GOODBYE)
    return 0


def parse_args(args=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="minish - a small line-oriented command interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  minish                       # interactive session
  minish -c 'ls | wc -l'       # run one line
  minish script.msh            # run a script, like 'source script.msh'
  minish --max-tokens 0        # no limit on tokens per line

Environment: MINISH_MAX_TOKENS, MINISH_TRACE
"""
    )

    parser.add_argument(
        "script",
        nargs="?",
        help="Run the lines of this file instead of reading from the terminal"
    )
    parser.add_argument(
        "-c",
        dest="command",
        metavar="COMMAND",
        help="Run a single command line and exit"
    )
    parser.add_argument(
        "--max-tokens",
        type=int,
        metavar="N",
        help=f"Maximum tokens per resolved line (default {DEFAULT_MAX_TOKENS}, 0 for no limit)"
    )
    parser.add_argument(
        "--strict-tokens",
        action="store_true",
        help="Reject lines over the token limit instead of dropping the extra tokens"
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Print each command to stderr before running it"
    )

    return parser.parse_args(args)


def run(args: argparse.Namespace) -> int:
    session = build_session(args)
    if args.command is not None:
        execute_line(args.command, session)
        return 0
    if args.script is not None:
        source_file(args.script, session)
        return 0
    return repl(session)


def main() -> None:
    args = parse_args()
    sys.exit(run(args))


if __name__ == "__main__":
    main()
