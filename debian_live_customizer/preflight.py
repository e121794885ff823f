import logging
import os
import shutil
from typing import Iterable

from .config import TOOL_PACKAGES
from .errors import PreflightError

logger = logging.getLogger(__name__)


def verify_prerequisites(tools: Iterable[str]) -> None:
    """Confirms that every tool in ``tools`` is available on the system PATH."""
    for tool in tools:
        if not shutil.which(tool):
            package = TOOL_PACKAGES.get(tool, tool)
            raise PreflightError(
                f"`{tool}` is not installed or not in the system PATH. "
                f"Install it with: sudo apt-get install -y {package}"
            )
        logger.debug("Found %s at %s", tool, shutil.which(tool))


def require_root() -> None:
    """Mounting, chroot and unsquashfs all need root."""
    if os.geteuid() != 0:
        raise PreflightError("this command must be run as root (try sudo).")
