import logging
import os
import stat
from pathlib import Path

from . import command
from .command import CommandError
from .errors import StructuralError

logger = logging.getLogger(__name__)

SQUASHFS_PATTERN = "*.squashfs"


def extract_iso(iso_path: Path, dest: Path) -> None:
    """Extracts the source ISO into ``dest``."""
    if not Path(iso_path).is_file():
        raise StructuralError(f"reference image not found at '{iso_path}'", stage="extract-iso")
    os.makedirs(dest, exist_ok=True)
    try:
        command.run_cmd(
            ["xorriso", "-osirrox", "on", "-indev", str(iso_path), "-extract", "/", str(dest)]
        )
    except CommandError as e:
        raise StructuralError(f"could not extract {iso_path}: {e}", stage="extract-iso") from e
    make_tree_writable(dest)


def make_tree_writable(root: Path) -> None:
    """chmod -R u+w; files extracted from an ISO are read-only."""
    for dirpath, dirnames, filenames in os.walk(root):
        for name in [*dirnames, *filenames]:
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                continue
            mode = os.stat(path).st_mode
            if not mode & stat.S_IWUSR:
                os.chmod(path, mode | stat.S_IWUSR)
    root_mode = os.stat(root).st_mode
    os.chmod(root, root_mode | stat.S_IWUSR)


def locate_squashfs(tree: Path) -> Path:
    """Returns the compressed root filesystem inside the extracted tree.

    Candidates are taken in sorted path order so the choice is stable
    between runs.
    """
    candidates = sorted(p for p in Path(tree).rglob(SQUASHFS_PATTERN) if p.is_file())
    if not candidates:
        raise StructuralError(
            f"could not find a SquashFS file in the ISO (searched {tree})",
            stage="extract-rootfs",
        )
    if len(candidates) > 1:
        logger.warning(
            "Found %d SquashFS files, using %s; ignored: %s",
            len(candidates),
            candidates[0],
            ", ".join(str(c) for c in candidates[1:]),
        )
    logger.info("Found filesystem: %s", candidates[0])
    return candidates[0]


def extract_squashfs(squashfs_file: Path, dest: Path) -> None:
    # unsquashfs refuses to write into an existing directory without -f,
    # and reset removed it, so only the parent has to exist.
    os.makedirs(Path(dest).parent, exist_ok=True)
    try:
        command.run_cmd(["unsquashfs", "-d", str(dest), str(squashfs_file)], capture=False)
    except CommandError as e:
        raise StructuralError(
            f"could not unpack {squashfs_file}: {e}", stage="extract-rootfs"
        ) from e
