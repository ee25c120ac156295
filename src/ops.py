from __future__ import annotations

import enum
import os
import sys
from contextlib import ExitStack, redirect_stdout
from typing import List, Optional

from command import RedirectionError, open_redirections, run_pipeline
from groups import ParseError, Pipeline, format_pipeline, parse_pipeline, split_segments, tokenize

# Placeholder expanded to the previous resolved line
PREV = "prev"

# Default capacity of a resolved line
DEFAULT_MAX_TOKENS = 256

MAX_SOURCE_DEPTH = 64

HELP_TEXT = "usage: cd [dir] | source <file> | prev | exit | help ; commands may use '|', '<', '>' and ';'"


class Flow(enum.Enum):
    """What the caller should do after a line or segment has run."""
    CONTINUE = "continue"
    TERMINATE = "terminate"


class TokenOverflowError(ValueError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"line exceeds {limit} tokens")
        self.limit = limit


class ShellSession:
    """Holds session-wide interpreter state.

    ``previous`` is the last resolved line, consulted when expanding ``prev``.
    Sourced scripts run against the same session, so they share it.
    """

    def __init__(
        self,
        max_tokens: Optional[int] = DEFAULT_MAX_TOKENS,
        strict_tokens: bool = False,
        trace: bool = False,
    ) -> None:
        # None means unbounded
        self.max_tokens: Optional[int] = max_tokens
        self.strict_tokens: bool = strict_tokens
        self.trace: bool = trace
        self.previous: List[str] = []
        self.last_status: int = 0
        self.source_depth: int = 0


def substitute(tokens: List[str], session: ShellSession) -> List[str]:
    """Replace every ``prev`` token with the whole previous resolved line.

    The result replaces the session's previous line. Tokens beyond
    ``session.max_tokens`` are dropped, or rejected with TokenOverflowError
    when the session is strict (the stored line is then left alone).
    """
    limit = session.max_tokens
    resolved: List[str] = []
    overflow = False
    for tok in tokens:
        expansion = session.previous if tok == PREV else (tok,)
        for t in expansion:
            if limit is not None and len(resolved) >= limit:
                overflow = True
                break
            resolved.append(t)
        if overflow:
            break
    if overflow and session.strict_tokens:
        raise TokenOverflowError(limit)
    session.previous = resolved
    return list(resolved)


# --- Builtins ---

def _builtin_exit(argv: List[str], session: ShellSession) -> Flow:
    return Flow.TERMINATE


def _builtin_cd(argv: List[str], session: ShellSession) -> Flow:
    target = argv[1] if len(argv) > 1 else os.environ.get("HOME")
    if target is None:
        return Flow.CONTINUE
    try:
        os.chdir(target)
    except (OSError, ValueError):
        pass
    return Flow.CONTINUE


def _builtin_help(argv: List[str], session: ShellSession) -> Flow:
    print(HELP_TEXT)
    return Flow.CONTINUE


def _builtin_source(argv: List[str], session: ShellSession) -> Flow:
    if len(argv) < 2:
        sys.stderr.write("minish: source: filename argument required\n")
        sys.stderr.flush()
        return Flow.CONTINUE
    return source_file(argv[1], session)


def source_file(path: str, session: ShellSession) -> Flow:
    """Run every line of a script against the session.

    Unreadable files are reported and yield CONTINUE; an ``exit`` anywhere in
    the script stops it and propagates TERMINATE. Output redirections on the
    ``source`` line itself are opened but not applied: every line of the
    script writes where it would have written when typed at the prompt.
    """
    if session.source_depth >= MAX_SOURCE_DEPTH:
        sys.stderr.write(f"minish: source: {path}: nesting too deep\n")
        sys.stderr.flush()
        return Flow.CONTINUE
    try:
        f = open(path, 'r', encoding='utf-8', errors='replace')
    except (OSError, ValueError) as e:
        sys.stderr.write(f"minish: source: {path}: {getattr(e, 'strerror', None) or e}\n")
        sys.stderr.flush()
        return Flow.CONTINUE

    session.source_depth += 1
    try:
        with f:
            for line in f:
                if execute_line(line.rstrip('\n'), session) is Flow.TERMINATE:
                    return Flow.TERMINATE
    finally:
        session.source_depth -= 1
    return Flow.CONTINUE


BUILTINS = {
    'exit': _builtin_exit,
    'cd': _builtin_cd,
    'source': _builtin_source,
    'help': _builtin_help,
}

NO_CAPTURE_BUILTINS = {'source'}


def is_builtin(pipeline: Pipeline) -> bool:
    # Only a lone command can be a builtin; pipeline stages are always programs
    if not pipeline.is_simple:
        return False
    argv = pipeline.commands[0].argv
    return bool(argv) and argv[0] in BUILTINS


def _run_builtin(pipeline: Pipeline, session: ShellSession) -> Flow:
    cmd = pipeline.commands[0]
    with ExitStack() as stack:
        try:
            handles = open_redirections(cmd)
        except RedirectionError as e:
            sys.stderr.write(f"minish: {e}\n")
            sys.stderr.flush()
            session.last_status = 1
            return Flow.CONTINUE
        for h in handles:
            stack.enter_context(h)
        out = [h for h, r in zip(handles, cmd.redirs) if r.fd == 1]
        # sourced lines keep the session stdout
        if out and cmd.argv[0] not in NO_CAPTURE_BUILTINS:
            stack.enter_context(redirect_stdout(_TextSink(out[-1])))
        session.last_status = 0
        return BUILTINS[cmd.argv[0]](cmd.argv, session)


class _TextSink:
    """Text adapter over a binary redirection target for builtin output."""

    def __init__(self, handle) -> None:
        self._handle = handle

    def write(self, data: str) -> int:
        self._handle.write(data.encode())
        return len(data)

    def flush(self) -> None:
        self._handle.flush()


# --- Execution ---

def dispatch(segment: List[str], session: ShellSession) -> Flow:
    """Run one segment: a builtin in-process, otherwise a pipeline of programs."""
    if not segment:
        return Flow.CONTINUE
    try:
        pipeline = parse_pipeline(segment)
    except ParseError as e:
        sys.stderr.write(f"minish: syntax error: {e}\n")
        sys.stderr.flush()
        session.last_status = 2
        return Flow.CONTINUE

    if is_builtin(pipeline):
        return _run_builtin(pipeline, session)

    if session.trace and not pipeline.is_simple:
        sys.stderr.write(f"+ pipeline: {format_pipeline(pipeline)}\n")
        sys.stderr.flush()
    session.last_status = run_pipeline(pipeline, trace=session.trace)
    return Flow.CONTINUE


def execute_tokens(tokens: List[str], session: ShellSession) -> Flow:
    """Run an already resolved line segment by segment, stopping on TERMINATE."""
    for segment in split_segments(tokens):
        if dispatch(segment, session) is Flow.TERMINATE:
            return Flow.TERMINATE
    return Flow.CONTINUE


def execute_line(line: str, session: ShellSession) -> Flow:
    """Tokenize, resolve ``prev`` and run one input line."""
    try:
        tokens = tokenize(line)
    except ValueError as e:
        sys.stderr.write(f"minish: parse error: {e}\n")
        sys.stderr.flush()
        return Flow.CONTINUE
    try:
        resolved = substitute(tokens, session)
    except TokenOverflowError as e:
        sys.stderr.write(f"minish: {e}\n")
        sys.stderr.flush()
        return Flow.CONTINUE
    return execute_tokens(resolved, session)
