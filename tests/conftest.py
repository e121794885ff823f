import logging

import pytest

from debian_live_customizer import command
from debian_live_customizer.command import CmdResult, CommandError


class FakeRunner:
    """Records every command instead of running it.

    ``handlers`` maps a program name to a callable ``(argv, cwd) -> int``
    used to simulate side effects; the return value is the exit status.
    """

    def __init__(self):
        self.calls = []
        self.handlers = {}

    def __call__(self, argv, *, check=True, cwd=None, capture=True):
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        handler = self.handlers.get(argv[0])
        returncode = handler(argv, cwd) if handler else 0
        returncode = returncode or 0
        stderr = "" if returncode == 0 else f"{argv[0]} failed"
        if check and returncode != 0:
            raise CommandError(argv, returncode, stderr)
        return CmdResult(argv=argv, returncode=returncode, stdout="", stderr=stderr)

    def programs(self):
        return [c[0] for c in self.calls]

    def commands(self, program):
        return [c for c in self.calls if c[0] == program]


@pytest.fixture
def fake_run(monkeypatch):
    runner = FakeRunner()
    monkeypatch.setattr(command, "run_cmd", runner)
    return runner


@pytest.fixture
def isolated_logging():
    root = logging.getLogger()
    saved = list(root.handlers)
    yield
    for handler in list(root.handlers):
        if handler not in saved:
            root.removeHandler(handler)
            handler.close()
    for attr in ("_live_customizer_configured", "_live_customizer_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)
