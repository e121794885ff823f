"""Thin wrapper around subprocess with consistent logging."""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """An external command exited non-zero, or could not be started."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        detail = f"\n{stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"Command failed ({returncode}): {format_argv(self.argv)}{detail}")


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    cwd: Optional[str] = None,
    capture: bool = True,
) -> CmdResult:
    """Run a command, logging the argv and its output.

    With ``capture=False`` the command inherits the terminal, which is what we
    want for long chatty tools (apt inside the chroot, mksquashfs progress).
    """

    argv_list = [str(a) for a in argv]
    logger.info("CMD %s", format_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            text=True,
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.PIPE if capture else None,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        if check:
            raise CommandError(argv_list, 127, str(e)) from e
        logger.debug("Command not found: %s", argv_list[0])
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))

    stdout = p.stdout or ""
    stderr = p.stderr or ""
    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, stderr)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=stdout, stderr=stderr)
