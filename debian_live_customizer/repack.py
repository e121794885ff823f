import logging
from pathlib import Path

from . import command
from .command import CommandError
from .errors import RepackError
from .workspace import PSEUDO_FILESYSTEMS, leaked_mounts

logger = logging.getLogger(__name__)


def repack_squashfs(
    root: Path,
    squashfs_file: Path,
    compression: str = "xz",
    block_size: int = 1048576,
) -> None:
    """Replaces ``squashfs_file`` with a fresh image of ``root``."""
    root = Path(root)
    squashfs_file = Path(squashfs_file)

    leftover = leaked_mounts(root / name for name in PSEUDO_FILESYSTEMS)
    if leftover:
        raise RepackError(
            "refusing to repack while host filesystems are mounted at "
            + ", ".join(str(p) for p in leftover)
        )

    squashfs_file.unlink(missing_ok=True)
    try:
        command.run_cmd(
            [
                "mksquashfs",
                str(root),
                str(squashfs_file),
                "-comp",
                compression,
                "-noappend",
                "-b",
                str(block_size),
            ],
            capture=False,
        )
    except CommandError as e:
        raise RepackError(f"mksquashfs failed for {root}: {e}") from e
    logger.info("Repacked %s", squashfs_file)
