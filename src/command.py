# module for command execution

from __future__ import annotations

import os
import subprocess
import sys
from typing import Any, List, Optional, Tuple

from groups import Command, Pipeline, REDIRECT_IN, REDIRECT_OUT, format_command

# Status recorded for a stage whose program could not be launched
NOT_FOUND_STATUS = 127


class RedirectionError(Exception):
    """A redirection target could not be opened."""

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"{target}: {reason}")
        self.target = target
        self.reason = reason


def _apply_redirections(cmd: Command) -> Tuple[Optional[int], Optional[int], List[Any]]:
    # Returns (stdin_fd, stdout_fd, closer_list). Later redirections win, but
    # every '>' target is still created and truncated.
    stdin_fd = None
    stdout_fd = None
    closers: List[Any] = []
    try:
        for r in cmd.redirs:
            if r.op == REDIRECT_IN:
                f = open(r.target, 'rb')
                closers.append(f)
                stdin_fd = f.fileno()
            elif r.op == REDIRECT_OUT:
                f = open(r.target, 'wb')
                closers.append(f)
                stdout_fd = f.fileno()
    except (OSError, ValueError) as e:
        # ValueError: a path with an embedded NUL byte
        _close_all(closers)
        raise RedirectionError(r.target, getattr(e, "strerror", None) or str(e)) from e
    return stdin_fd, stdout_fd, closers


def _close_all(handles: List[Any]) -> None:
    for h in handles:
        h.close()


def _close_fd(fd: Optional[int], open_fds: set) -> None:
    if fd is not None and fd in open_fds:
        open_fds.discard(fd)
        os.close(fd)


def _not_found_message(name: str) -> bytes:
    return f"{name}: command not found\n".encode()


def _report_not_found(msg: bytes, stdout_fd: Optional[int]) -> None:
    # The diagnostic goes wherever the stage's stdout is bound
    if stdout_fd is None:
        sys.stdout.write(msg.decode())
        sys.stdout.flush()
    else:
        os.write(stdout_fd, msg)


def _write_to_pipe(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        try:
            written = os.write(fd, view)
        except BrokenPipeError:
            # the next stage never started or stopped reading
            return
        view = view[written:]


def open_redirections(cmd: Command) -> List[Any]:
    """Open (and create/truncate) a command's redirection targets.

    Used for commands that never become a process: builtins and bare
    redirections such as ``> out.txt``. Returns the open file objects in
    order; the caller closes them.
    """
    _, _, closers = _apply_redirections(cmd)
    return closers


def run_pipeline(pipeline: Pipeline, *, trace: bool = False) -> int:
    """Spawn every stage of a pipeline, wire them together and wait.

    One OS pipe connects each stage to the next. The parent closes its copy
    of each pipe end as soon as the stage using it has been spawned, so a
    stage that fails to start (missing program, bad redirection) still
    delivers EOF downstream. A "command not found" message bound for a pipe
    is written only once every stage is running, since the message can be
    larger than the pipe buffer. Returns the status of the last stage.
    """
    commands = pipeline.commands
    n = len(commands)
    if n == 0:
        return 0

    # Anything buffered in-process must reach the terminal before the children write
    sys.stdout.flush()
    sys.stderr.flush()

    pipes = [os.pipe() for _ in range(n - 1)]
    open_fds = {fd for pair in pipes for fd in pair}
    procs: List[Tuple[int, subprocess.Popen]] = []
    pending: List[Tuple[int, bytes]] = []
    statuses: List[int] = [0] * n
    try:
        for idx, cmd in enumerate(commands):
            pipe_in = pipes[idx - 1][0] if idx > 0 else None
            pipe_out = pipes[idx][1] if idx < n - 1 else None
            closers: List[Any] = []
            try:
                try:
                    stdin_fd, stdout_fd, closers = _apply_redirections(cmd)
                except RedirectionError as e:
                    sys.stderr.write(f"minish: {e}\n")
                    sys.stderr.flush()
                    statuses[idx] = 1
                    continue

                stdin = stdin_fd if stdin_fd is not None else pipe_in
                stdout = stdout_fd if stdout_fd is not None else pipe_out

                if not cmd.argv:
                    continue

                if trace:
                    sys.stderr.write(f"+ {format_command(cmd)}\n")
                    sys.stderr.flush()

                try:
                    proc = subprocess.Popen(cmd.argv, stdin=stdin, stdout=stdout)
                except (OSError, ValueError):
                    statuses[idx] = NOT_FOUND_STATUS
                    msg = _not_found_message(cmd.argv[0])
                    if stdout_fd is None and pipe_out is not None:
                        # keep the write end open until the readers exist
                        pending.append((pipe_out, msg))
                        pipe_out = None
                    else:
                        _report_not_found(msg, stdout)
                    continue
                procs.append((idx, proc))
            finally:
                _close_all(closers)
                _close_fd(pipe_in, open_fds)
                _close_fd(pipe_out, open_fds)

        for fd, msg in pending:
            _write_to_pipe(fd, msg)
            _close_fd(fd, open_fds)
    finally:
        for fd in list(open_fds):
            _close_fd(fd, open_fds)
        for idx, proc in procs:
            statuses[idx] = proc.wait()

    return statuses[-1]
