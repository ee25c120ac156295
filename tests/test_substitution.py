import pytest  # type: ignore

from ops import Flow, ShellSession, TokenOverflowError, execute_line, substitute


def test_first_line_prev_expands_to_nothing(session):
    assert substitute(["echo", "prev", "x"], session) == ["echo", "x"]
    assert session.previous == ["echo", "x"]


def test_prev_splices_whole_previous_line(session):
    substitute(["echo", "a", ";", "ls"], session)
    assert substitute(["prev", "|", "wc"], session) == ["echo", "a", ";", "ls", "|", "wc"]


def test_prev_is_depth_one(session):
    substitute(["a"], session)
    substitute(["b", "prev"], session)
    # previous line is already resolved, so no chain back to "a" alone
    assert substitute(["prev"], session) == ["b", "a"]
    assert substitute(["prev", "prev"], session) == ["b", "a", "b", "a"]


def test_store_never_contains_placeholder(session):
    for tokens in (["prev"], ["x", "prev"], ["prev", "prev", "y"]):
        substitute(tokens, session)
        assert "prev" not in session.previous


def test_store_is_replaced_not_mutated(session):
    substitute(["a", "b"], session)
    old = session.previous
    resolved = substitute(["prev", "c"], session)
    assert old == ["a", "b"]
    resolved.append("z")
    assert session.previous == ["a", "b", "c"]


def test_empty_line_clears_store(session):
    substitute(["a"], session)
    substitute([], session)
    assert session.previous == []


def test_overflow_is_truncated_by_default():
    session = ShellSession(max_tokens=3)
    assert substitute(["a", "b", "c", "d", "e"], session) == ["a", "b", "c"]
    # spliced tokens count against the same limit
    assert substitute(["x", "prev"], session) == ["x", "a", "b"]


def test_overflow_strict_raises_and_keeps_store():
    session = ShellSession(max_tokens=2, strict_tokens=True)
    substitute(["a", "b"], session)
    with pytest.raises(TokenOverflowError):
        substitute(["prev", "c"], session)
    assert session.previous == ["a", "b"]


def test_unbounded_session():
    session = ShellSession(max_tokens=None)
    tokens = [str(i) for i in range(1000)]
    assert substitute(tokens, session) == tokens


def test_strict_overflow_line_is_reported_not_run(sandbox, capsys):
    session = ShellSession(max_tokens=2, strict_tokens=True)
    assert execute_line("echo a b > out.txt", session) is Flow.CONTINUE
    assert "exceeds 2 tokens" in capsys.readouterr().err
    assert not (sandbox / "out.txt").exists()


def test_long_line_drops_overflow_tokens(sandbox):
    session = ShellSession(max_tokens=4)
    assert execute_line("echo kept > out.txt dropped", session) is Flow.CONTINUE
    assert (sandbox / "out.txt").read_text() == "kept\n"
    assert session.previous == ["echo", "kept", ">", "out.txt"]


def test_prev_reruns_previous_line(session, sandbox):
    execute_line("echo one > a.txt", session)
    (sandbox / "a.txt").unlink()
    execute_line("prev", session)
    assert (sandbox / "a.txt").read_text() == "one\n"
    assert session.previous == ["echo", "one", ">", "a.txt"]
