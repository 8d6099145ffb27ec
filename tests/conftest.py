"""Shared test doubles."""

import logging

import pytest

from tmsize.errors import CommandNotFoundError


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRunner:
    """
    Records calls and replies from a table.

    Keys are either a command name or "command subcommand"; the latter wins.
    """

    def __init__(self, outputs: dict | None = None):
        self.outputs = outputs or {}
        self.calls: list[tuple[str, list[str]]] = []

    def run(self, command, arguments=None):
        arguments = list(arguments or [])
        self.calls.append((command, arguments))
        reply = None
        if arguments:
            reply = self.outputs.get(f"{command} {arguments[0]}")
        if reply is None:
            reply = self.outputs.get(command)
        if reply is None:
            raise CommandNotFoundError(command)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeFileSystem:
    """In-memory files plus per-path modification times."""

    def __init__(self, files: dict | None = None, mtimes: dict | None = None):
        self.files = files or {}
        self.mtimes = mtimes or {}

    def exists(self, path):
        return path in self.files or path in self.mtimes

    def read_bytes(self, path):
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def modification_time(self, path):
        if path not in self.mtimes:
            raise FileNotFoundError(path)
        return self.mtimes[path]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def filesystem():
    return FakeFileSystem()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Keep the real ~/.tmsize out of reach."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr("tmsize.config.CONFIG_DIR", home / ".tmsize")
    monkeypatch.setattr("tmsize.config.CONFIG_FILE", home / ".tmsize" / "config.json")
    return home


@pytest.fixture(autouse=True)
def reset_logging():
    """The CLI reconfigures the tmsize logger; undo it between tests."""
    yield
    logger = logging.getLogger("tmsize")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
