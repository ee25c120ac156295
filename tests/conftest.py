import os
import sys
from pathlib import Path
import pytest

# Ensure we can import modules from src/
SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture()
def sandbox(tmp_path, monkeypatch):
    # Work in an isolated temp directory
    monkeypatch.chdir(tmp_path)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("PATH", os.environ.get("PATH", "/usr/bin:/bin"))
    monkeypatch.setenv("LC_ALL", "C")
    monkeypatch.delenv("MINISH_MAX_TOKENS", raising=False)
    monkeypatch.delenv("MINISH_TRACE", raising=False)
    return tmp_path


@pytest.fixture()
def session(sandbox):
    from ops import ShellSession
    return ShellSession()
