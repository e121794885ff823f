"""Rebuilding the hybrid BIOS/UEFI ISO from the patched tree.

The MBR boot code is taken from the original ISO rather than from the
host's isohdpfx.bin, so the output stays dd-able to a USB stick with the
same loader the reference image shipped.
"""

import logging
import os
from pathlib import Path
from typing import List

from . import command
from .command import CommandError
from .errors import AssemblyError

logger = logging.getLogger(__name__)

BOOT_SECTOR_SIZE = 432

BOOT_CATALOG = "isolinux/boot.cat"
BIOS_BOOT_IMAGE = "isolinux/isolinux.bin"
EFI_BOOT_IMAGE = "boot/grub/efi.img"


def extract_boot_sector(iso_path: Path, template: Path) -> Path:
    """Writes the first 432 bytes of ``iso_path`` to ``template``."""
    try:
        with open(iso_path, "rb") as f:
            data = f.read(BOOT_SECTOR_SIZE)
    except OSError as e:
        raise AssemblyError(f"could not read boot sector from {iso_path}: {e}") from e
    if len(data) != BOOT_SECTOR_SIZE:
        raise AssemblyError(
            f"{iso_path} is only {len(data)} bytes, too short to hold a boot sector"
        )
    with open(template, "wb") as f:
        f.write(data)
    return Path(template)


def build_xorriso_command(output: Path, mbr_template: Path, volume_id: str) -> List[str]:
    return [
        "xorriso", "-as", "mkisofs",
        "-o", str(output),
        "-V", volume_id,
        "-isohybrid-mbr", str(mbr_template),
        "-c", BOOT_CATALOG,
        "-b", BIOS_BOOT_IMAGE,
        "-no-emul-boot", "-boot-load-size", "4", "-boot-info-table",
        "-eltorito-alt-boot",
        "-e", EFI_BOOT_IMAGE,
        "-no-emul-boot", "-isohybrid-gpt-basdat",
        "-r", "-J",
        ".",
    ]


def assemble_iso(
    tree: Path,
    reference_iso: Path,
    output: Path,
    mbr_template: Path,
    volume_id: str = "CUSTOM DEBIAN",
) -> Path:
    """Builds ``output`` from ``tree``; the file appears only on success."""
    tree = Path(tree)
    output = Path(output)
    partial = output.with_name(output.name + ".part")

    for rel in (BIOS_BOOT_IMAGE, EFI_BOOT_IMAGE):
        if not (tree / rel).is_file():
            raise AssemblyError(f"boot file {rel} is missing from {tree}")

    extract_boot_sector(reference_iso, mbr_template)
    try:
        partial.unlink(missing_ok=True)
        command.run_cmd(
            build_xorriso_command(partial.resolve(), Path(mbr_template).resolve(), volume_id),
            cwd=str(tree),
        )
        os.replace(partial, output)
    except CommandError as e:
        raise AssemblyError(f"xorriso could not build {output.name}: {e}") from e
    finally:
        partial.unlink(missing_ok=True)
        Path(mbr_template).unlink(missing_ok=True)

    logger.info("Custom ISO created: %s", output)
    return output
