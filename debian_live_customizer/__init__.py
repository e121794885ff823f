"""
debian_live_customizer

Builds a customized Debian Live ISO:

1.  Verification of system prerequisites (`xorriso`, `squashfs-tools`).
2.  Cleanup of mounts and artifacts left by a previous run.
3.  Download of the reference Debian Live ISO (cached by filename).
4.  Extraction of the ISO and of its SquashFS root filesystem.
5.  Modification of the bootloader configurations (ISOLINUX for BIOS, GRUB
    for UEFI) for a verbose, unattended default boot.
6.  Injection of a custom script and systemd units, and package installation
    inside a chroot of the root filesystem.
7.  Re-packaging of the SquashFS and of the ISO as a hybrid BIOS/UEFI image.

MIT License.
"""

__version__ = "0.1.0"
