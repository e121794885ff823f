"""Running the customization commands inside the unpacked root filesystem.

Host pseudo filesystems are only mounted for the duration of a ``with``
block; leaving the block by any path (including a failing apt-get or a
Ctrl-C) lazily unmounts them again.
"""

import contextlib
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List

from . import command
from .command import CommandError
from .config import DOCKER_PREREQUISITES, BuildConfig
from .errors import IsolatedExecutionError
from .workspace import leaked_mounts, lazy_unmount

logger = logging.getLogger(__name__)

RESOLV_CONF = Path("etc") / "resolv.conf"
RESOLV_BACKUP_SUFFIX = ".live-customizer-orig"

# (mount point under the root, mount arguments without the target)
MOUNT_SPECS = (
    ("dev", ["mount", "--bind", "/dev"]),
    ("sys", ["mount", "--bind", "/sys"]),
    ("proc", ["mount", "-t", "proc", "proc"]),
)


@dataclass
class BindMount:
    """A host filesystem mounted into the root; release() lazily unmounts it."""

    target: Path
    argv: List[str]
    mounted: bool = False

    def acquire(self) -> "BindMount":
        os.makedirs(self.target, exist_ok=True)
        command.run_cmd([*self.argv, str(self.target)])
        self.mounted = True
        return self

    def release(self) -> None:
        if not self.mounted:
            return
        lazy_unmount(self.target)
        self.mounted = False


@contextlib.contextmanager
def pseudo_filesystems(root: Path) -> Iterator[List[BindMount]]:
    """Mounts /dev, /sys and /proc into ``root`` for the duration of the block."""
    with contextlib.ExitStack() as stack:
        mounts = []
        for name, argv in MOUNT_SPECS:
            mount = BindMount(target=Path(root) / name, argv=list(argv))
            try:
                mount.acquire()
            except CommandError as e:
                raise IsolatedExecutionError(f"could not mount {mount.target}: {e}") from e
            # ExitStack unwinds in reverse: proc, sys, dev.
            stack.callback(mount.release)
            mounts.append(mount)
        yield mounts


@contextlib.contextmanager
def resolver_config(root: Path, nameserver: str) -> Iterator[Path]:
    """Gives the chroot a working resolv.conf and takes it away afterwards.

    The image usually ships resolv.conf as a symlink into /run; writing
    through it would land on the host, so the link is moved aside and put
    back when the block exits.
    """
    path = Path(root) / RESOLV_CONF
    backup = path.with_name(path.name + RESOLV_BACKUP_SUFFIX)

    os.makedirs(path.parent, exist_ok=True)
    if os.path.lexists(path):
        os.rename(path, backup)
    try:
        path.write_text(f"nameserver {nameserver}\n")
        yield path
    finally:
        path.unlink(missing_ok=True)
        if os.path.lexists(backup):
            os.rename(backup, path)


def build_customization_script(config: BuildConfig) -> str:
    """The shell run inside the chroot."""
    q = shlex.join
    lines = [
        "set -e",
        "export DEBIAN_FRONTEND=noninteractive",
        "# Update package lists",
        "apt-get update",
        "# Install necessary tools",
        q(["apt-get", "install", "-y", *config.packages]),
    ]

    if config.install_docker:
        repo = config.docker_repo_url
        lines += [
            "echo '>>> Installing Docker...'",
            q(["apt-get", "install", "-y", *DOCKER_PREREQUISITES]),
            "install -m 0755 -d /etc/apt/keyrings",
            f"curl -fsSL {shlex.quote(repo + '/gpg')} | gpg --dearmor --yes -o /etc/apt/keyrings/docker.gpg",
            "chmod a+r /etc/apt/keyrings/docker.gpg",
            'echo "deb [arch=$(dpkg --print-architecture) signed-by=/etc/apt/keyrings/docker.gpg] '
            + repo
            + ' $(. /etc/os-release && echo "$VERSION_CODENAME") stable" > /etc/apt/sources.list.d/docker.list',
            "apt-get update",
            q(["apt-get", "install", "-y", *config.docker_packages]),
            "echo '>>> Docker installation complete.'",
        ]

    lines.append("# Enable our custom services")
    lines += [q(["systemctl", "enable", unit]) for unit in config.enabled_units]
    lines.append("# Disable the login prompt service")
    lines += [q(["systemctl", "disable", unit]) for unit in config.disabled_units]
    return "\n".join(lines) + "\n"


def run_in_chroot(root: Path, script: str) -> None:
    try:
        command.run_cmd(["chroot", str(root), "/bin/bash", "-c", script], capture=False)
    except CommandError as e:
        raise IsolatedExecutionError(
            f"customization inside {root} failed with exit status {e.returncode}"
        ) from e


def customize_root(root: Path, config: BuildConfig) -> None:
    """Installs packages and enables services inside ``root``.

    Mounts and the injected resolv.conf are removed whether or not the
    commands succeed.
    """
    root = Path(root)
    script = build_customization_script(config)
    logger.debug("Chroot script:\n%s", script)

    try:
        with resolver_config(root, config.nameserver), pseudo_filesystems(root):
            run_in_chroot(root, script)
    finally:
        leftover = leaked_mounts(root / name for name, _ in MOUNT_SPECS)
        if leftover:
            logger.error(
                "Still mounted after cleanup: %s", ", ".join(str(p) for p in leftover)
            )
