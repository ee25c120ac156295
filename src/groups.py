"""Tokenization and grouping utilities for minish.

This module turns a raw input line into tokens, splits resolved tokens into
``;`` segments and parses a segment into a pipeline of commands with their
redirections. Nothing here touches processes; the resulting ``Pipeline`` is
plain data handed to ``command.run_pipeline``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import shlex
from typing import Iterable, Iterator

SEPARATOR = ";"
PIPE = "|"
REDIRECT_OUT = ">"
REDIRECT_IN = "<"

# Recognized operators, all single characters
OPERATORS = {SEPARATOR, PIPE, REDIRECT_OUT, REDIRECT_IN}


class ParseError(ValueError):
    """A segment that cannot be turned into a pipeline."""


@dataclass
class Redirection:
    """Rebind stdin (``<``) or stdout (``>``) of one command to a file."""
    op: str
    target: str

    @property
    def fd(self) -> int:
        return 0 if self.op == REDIRECT_IN else 1


@dataclass
class Command:
    """A simple command: argv tokens (argv[0] is the program) plus redirections."""
    argv: list[str] = field(default_factory=list)
    redirs: list[Redirection] = field(default_factory=list)


@dataclass
class Pipeline:
    """Commands whose stdout/stdin are chained stage to stage."""
    commands: list[Command]

    @property
    def is_simple(self) -> bool:
        return len(self.commands) == 1

# --- Tokenization ---

def tokenize(line: str) -> list[str]:
    """Split an input line into words plus single-character operators.

    shlex with punctuation_chars keeps operators apart from words but groups
    runs of them (``;;``, ``>|``), so every punctuation token is broken back
    down into one token per character.
    """
    lexer = shlex.shlex(line, posix=True, punctuation_chars=''.join(sorted(OPERATORS)))
    lexer.commenters = ''
    lexer.whitespace_split = True
    out: list[str] = []
    for t in lexer:
        if t and all(ch in OPERATORS for ch in t):
            out.extend(t)
        else:
            out.append(t)
    return out

# --- Grouping ---

def split_segments(tokens: Iterable[str]) -> Iterator[list[str]]:
    """Yield the ``;``-separated segments of a resolved line.

    The trailing segment is always yielded, so an empty line yields one empty
    segment and ``;;`` yields three.
    """
    buf: list[str] = []
    for tok in tokens:
        if tok == SEPARATOR:
            yield buf
            buf = []
        else:
            buf.append(tok)
    yield buf


def parse_command(tokens: list[str]) -> Command:
    cmd = Command()
    i = 0
    while i < len(tokens):
        t = tokens[i]
        if t in (REDIRECT_OUT, REDIRECT_IN):
            if i + 1 >= len(tokens):
                raise ParseError(f"missing file name after '{t}'")
            target = tokens[i + 1]
            if target in OPERATORS:
                raise ParseError(f"unexpected '{target}' after '{t}'")
            cmd.redirs.append(Redirection(t, target))
            i += 2
        else:
            cmd.argv.append(t)
            i += 1
    return cmd


def parse_pipeline(segment: list[str]) -> Pipeline:
    """Parse one segment into its ordered list of commands."""
    stages: list[list[str]] = [[]]
    for tok in segment:
        if tok == PIPE:
            stages.append([])
        else:
            stages[-1].append(tok)
    if len(stages) > 1 and any(not s for s in stages):
        raise ParseError(f"missing command near '{PIPE}'")
    return Pipeline([parse_command(s) for s in stages])

# --- Formatting (debug / trace aid) ---

def format_command(cmd: Command) -> str:
    parts = list(cmd.argv)
    for r in cmd.redirs:
        parts.extend((r.op, r.target))
    return ' '.join(parts)


def format_pipeline(pipeline: Pipeline) -> str:
    return f" {PIPE} ".join(format_command(c) for c in pipeline.commands) or "<empty>"
