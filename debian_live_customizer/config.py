"""Build defaults and the optional JSON override file."""

import dataclasses
import json
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

# --- Constants & Configuration ---
ISO_URL = (
    "https://cdimage.debian.org/debian-cd/current-live/amd64/iso-hybrid/"
    "debian-live-13.1.0-amd64-standard.iso"
)
CUSTOM_ISO_NAME = "custom-debian.iso"
VOLUME_ID = "CUSTOM DEBIAN"
ISO_EXTRACT_DIR = "iso_extract"
SQUASHFS_EXTRACT_DIR = "squashfs_extract"
MBR_TEMPLATE_NAME = "mbr_template.bin"
LOG_FILENAME = "debian-live-customizer.log"

REQUIRED_TOOLS = ("unsquashfs", "mksquashfs", "xorriso", "chroot", "mount", "umount")

# Debian package that ships each tool, used in preflight error messages.
TOOL_PACKAGES = {
    "unsquashfs": "squashfs-tools",
    "mksquashfs": "squashfs-tools",
    "xorriso": "xorriso",
    "chroot": "coreutils",
    "mount": "mount",
    "umount": "mount",
}

BASE_PACKAGES = ("figlet", "iproute2", "wget", "curl")
DOCKER_PREREQUISITES = ("ca-certificates", "curl", "gnupg")
DOCKER_PACKAGES = (
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
)
DOCKER_REPO_URL = "https://download.docker.com/linux/debian"

PAYLOAD_SCRIPT = "custom-script.sh"
PAYLOAD_UNITS = ("custom-script.service", "fyisp.service")
DISABLED_UNITS = ("getty@tty1.service",)


@dataclass(frozen=True)
class BuildConfig:
    iso_url: str = ISO_URL
    output_name: str = CUSTOM_ISO_NAME
    volume_id: str = VOLUME_ID
    overlay_size: str = "16G"
    grub_timeout: int = 10
    # ISOLINUX counts in tenths of a second.
    isolinux_timeout: int = 100
    nameserver: str = "1.1.1.1"
    required_tools: Tuple[str, ...] = REQUIRED_TOOLS
    packages: Tuple[str, ...] = BASE_PACKAGES
    install_docker: bool = True
    docker_packages: Tuple[str, ...] = DOCKER_PACKAGES
    docker_repo_url: str = DOCKER_REPO_URL
    payload_script: str = PAYLOAD_SCRIPT
    payload_units: Tuple[str, ...] = PAYLOAD_UNITS
    disabled_units: Tuple[str, ...] = DISABLED_UNITS
    squashfs_compression: str = "xz"
    squashfs_block_size: int = 1048576
    extra_enabled_units: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def iso_filename(self) -> str:
        return os.path.basename(self.iso_url)

    @property
    def enabled_units(self) -> Tuple[str, ...]:
        return tuple(self.payload_units) + tuple(self.extra_enabled_units)


def _coerce(path: str, key: str, expected, value):
    """Checks one JSON value against the field type; arrays become tuples."""
    if expected in (bool, int, str):
        wanted = expected.__name__
        # bool is a subclass of int, but "true" is not a timeout.
        ok = isinstance(value, expected) and (expected is bool or not isinstance(value, bool))
    else:
        wanted = "list of strings"
        ok = isinstance(value, list) and all(isinstance(v, str) for v in value)
        if ok:
            value = tuple(value)
    if not ok:
        raise ValueError(f"{path}: {key} must be a {wanted}, got {value!r}")
    return value


def load_build_config(path: Optional[str] = None) -> BuildConfig:
    """Returns the defaults, overlaid with the JSON file at ``path`` if given."""
    if path is None:
        return BuildConfig()

    if not os.path.exists(path):
        raise FileNotFoundError(path)

    with open(path, "r") as f:
        raw = json.load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: build config must be a JSON object")

    known = {f.name: f for f in dataclasses.fields(BuildConfig)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ValueError(f"{path}: unknown config keys: {', '.join(unknown)}")

    values = {key: _coerce(path, key, known[key].type, value) for key, value in raw.items()}
    return BuildConfig(**values)
