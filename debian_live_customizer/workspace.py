"""Workspace layout, the per-run build context, and idempotent cleanup."""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from . import command
from .config import (
    ISO_EXTRACT_DIR,
    MBR_TEMPLATE_NAME,
    SQUASHFS_EXTRACT_DIR,
    BuildConfig,
)
from .errors import ResetError

logger = logging.getLogger(__name__)

# Pseudo filesystems mounted into the chroot, in mount order.
PSEUDO_FILESYSTEMS = ("dev", "sys", "proc")

MOUNTINFO_PATH = "/proc/self/mountinfo"
UNMOUNT_ATTEMPTS = 3


@dataclass(frozen=True)
class Workspace:
    """Fixed paths of one build, all relative to ``work_dir``."""

    work_dir: Path
    iso_filename: str
    output_name: str
    payload_dir: Optional[Path] = None

    @property
    def reference_iso(self) -> Path:
        return self.work_dir / self.iso_filename

    @property
    def iso_extract_dir(self) -> Path:
        return self.work_dir / ISO_EXTRACT_DIR

    @property
    def squashfs_extract_dir(self) -> Path:
        return self.work_dir / SQUASHFS_EXTRACT_DIR

    @property
    def output_iso(self) -> Path:
        return self.work_dir / self.output_name

    @property
    def partial_output_iso(self) -> Path:
        return self.work_dir / (self.output_name + ".part")

    @property
    def mbr_template(self) -> Path:
        return self.work_dir / MBR_TEMPLATE_NAME

    @property
    def payload_source_dir(self) -> Path:
        return self.payload_dir if self.payload_dir is not None else self.work_dir

    def bind_points(self) -> List[Path]:
        return [self.squashfs_extract_dir / name for name in PSEUDO_FILESYSTEMS]

    @classmethod
    def for_config(cls, work_dir, config: BuildConfig, payload_dir=None) -> "Workspace":
        return cls(
            work_dir=Path(work_dir).resolve(),
            iso_filename=config.iso_filename,
            output_name=config.output_name,
            payload_dir=Path(payload_dir).resolve() if payload_dir is not None else None,
        )


@dataclass
class BuildContext:
    """Handle passed from stage to stage.

    ``squashfs_file`` is filled in by the root-filesystem extraction stage and
    consumed by repackaging.
    """

    config: BuildConfig
    workspace: Workspace
    squashfs_file: Optional[Path] = None


def _unescape_mountinfo(path: str) -> str:
    # mountinfo escapes space, tab, newline and backslash as octal.
    for escaped, raw in (("\\040", " "), ("\\011", "\t"), ("\\012", "\n"), ("\\134", "\\")):
        path = path.replace(escaped, raw)
    return path


def mounted_paths(mountinfo_path: str = MOUNTINFO_PATH) -> List[str]:
    """Mount points currently visible to this process."""
    try:
        with open(mountinfo_path, "r") as f:
            lines = f.read().splitlines()
    except FileNotFoundError:
        logger.debug("%s not available, assuming nothing is mounted", mountinfo_path)
        return []

    points = []
    for line in lines:
        fields = line.split()
        if len(fields) >= 5:
            points.append(_unescape_mountinfo(fields[4]))
    return points


def leaked_mounts(
    targets: Iterable[Path], mountinfo_path: str = MOUNTINFO_PATH
) -> List[Path]:
    """Returns the subset of ``targets`` that is still a mount point."""
    mounted = set(mounted_paths(mountinfo_path))
    return [t for t in targets if os.path.normpath(str(t)) in mounted]


def lazy_unmount(target: Path) -> bool:
    """``umount -l`` that never raises; returns True if something was unmounted."""
    result = command.run_cmd(["umount", "-l", str(target)], check=False)
    if result.returncode != 0:
        logger.debug("Nothing to unmount at %s (%s)", target, result.stderr.strip())
        return False
    return True


def release_bind_points(workspace: Workspace) -> List[Path]:
    """Lazily unmount every bind point; returns whatever is still mounted.

    Mounts can be stacked, so the pass is repeated while the mount table
    still lists one of the points.
    """
    pending = list(reversed(workspace.bind_points()))
    for _ in range(UNMOUNT_ATTEMPTS):
        for target in pending:
            if lazy_unmount(target):
                logger.warning("Released stale mount %s from a previous run", target)
        pending = leaked_mounts(pending)
        if not pending:
            break
    return pending


def reset_workspace(workspace: Workspace) -> None:
    """Release leftover mounts, then delete every intermediate artifact.

    Safe to call on an empty work directory. Mounts go first: deleting a tree
    that still has /dev bound into it would recurse into the host's /dev, so
    nothing is deleted while a bind point stays mounted.
    """

    still_mounted = release_bind_points(workspace)
    if still_mounted:
        raise ResetError(
            "could not unmount "
            + ", ".join(str(p) for p in still_mounted)
            + "; release it by hand (umount -l) before building again"
        )

    for directory in (workspace.iso_extract_dir, workspace.squashfs_extract_dir):
        if directory.exists():
            logger.info("Removing %s", directory)
        shutil.rmtree(directory, ignore_errors=True)

    for artifact in (
        workspace.output_iso,
        workspace.partial_output_iso,
        workspace.mbr_template,
    ):
        artifact.unlink(missing_ok=True)

    logger.info("Cleanup complete.")
