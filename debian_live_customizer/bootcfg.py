"""Boot menu rewriting for GRUB (UEFI) and ISOLINUX (BIOS).

Configs are handled as a list of lines rather than through sed-style
substitution on the whole file, so that rules such as "only the first
label" or "append the parameter once" are explicit. Every rewrite is
idempotent: patching an already patched tree changes nothing.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List

from .errors import PatchError

logger = logging.getLogger(__name__)

BOOT_CONFIG_NAMES = ("grub.cfg", "isolinux.cfg", "live.cfg", "txt.cfg")
SILENCING_TOKENS = ("quiet", "splash")

GRUB_CFG = Path("boot") / "grub" / "grub.cfg"
ISOLINUX_CFG = Path("isolinux") / "isolinux.cfg"
LIVE_CFG = Path("isolinux") / "live.cfg"

MENU_DEFAULT = "  menu default"

# ISOLINUX keywords are case-insensitive; GRUB's are not.
_KERNEL_LINE = re.compile(r"^\s*(linux\S*|(?i:append))(\s|$)")
_LABEL_LINE = re.compile(r"^\s*label(\s|$)", re.IGNORECASE)
_MENU_DEFAULT_LINE = re.compile(r"^\s*menu\s+default\s*$", re.IGNORECASE)
_GRUB_TIMEOUT = re.compile(r"^set timeout=")
_GRUB_DEFAULT = re.compile(r"^set default=")
_ISOLINUX_TIMEOUT = re.compile(r"^timeout\s", re.IGNORECASE)


class BootConfig:
    """A boot loader config file as an editable list of lines."""

    def __init__(self, lines: Iterable[str]):
        self.lines = list(lines)

    @classmethod
    def from_text(cls, text: str) -> "BootConfig":
        # split("\n") keeps a trailing empty element, so to_text() round-trips.
        return cls(text.split("\n"))

    def to_text(self) -> str:
        return "\n".join(self.lines)

    def remove_token(self, token: str) -> int:
        """Drops a whitespace-delimited ``token`` from every line."""
        pattern = re.compile(r"[ \t]+" + re.escape(token) + r"(?=[ \t]|$)")
        removed = 0
        for i, line in enumerate(self.lines):
            new, n = pattern.subn("", line)
            if n:
                self.lines[i] = new
                removed += n
        return removed

    def set_kernel_param(self, name: str, value: str) -> int:
        """Makes every kernel line carry ``name=value`` exactly once."""
        param = f"{name}={value}"
        prefix = f"{name}="
        changed = 0
        for i, line in enumerate(self.lines):
            if not _KERNEL_LINE.match(line):
                continue
            words = line.split()
            present = [w for w in words[1:] if w.startswith(prefix)]
            if present == [param]:
                continue
            if not present:
                new = line.rstrip() + " " + param
            else:
                indent = line[: len(line) - len(line.lstrip())]
                kept = [w for w in words if not w.startswith(prefix)]
                new = indent + " ".join(kept + [param])
            self.lines[i] = new
            changed += 1
        return changed

    def set_directive(self, pattern: "re.Pattern", replacement: str) -> int:
        """Replaces lines matching ``pattern``; prepends one when none match."""
        hits = 0
        for i, line in enumerate(self.lines):
            if pattern.match(line):
                self.lines[i] = replacement
                hits += 1
        if not hits:
            self.lines.insert(0, replacement)
        return hits

    def mark_first_label_default(self) -> bool:
        """Leaves exactly one ``menu default``, directly after the first label.

        Returns False when the file has no label at all.
        """
        self.lines = [line for line in self.lines if not _MENU_DEFAULT_LINE.match(line)]
        for i, line in enumerate(self.lines):
            if _LABEL_LINE.match(line):
                self.lines.insert(i + 1, MENU_DEFAULT)
                return True
        return False


@dataclass
class PatchReport:
    patched: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)


def find_boot_configs(tree: Path) -> List[Path]:
    """Every file in ``tree`` whose name is a known boot config name."""
    found = []
    for name in BOOT_CONFIG_NAMES:
        found.extend(p for p in Path(tree).rglob(name) if p.is_file())
    return sorted(found)


def _rewrite(path: Path, edit: Callable[[BootConfig], None]) -> bool:
    try:
        original = path.read_text(encoding="utf-8", errors="surrogateescape")
    except OSError as e:
        raise PatchError(f"could not read boot config {path}: {e}") from e

    cfg = BootConfig.from_text(original)
    edit(cfg)
    text = cfg.to_text()
    if text == original:
        return False

    try:
        path.write_text(text, encoding="utf-8", errors="surrogateescape")
    except OSError as e:
        raise PatchError(f"could not write boot config {path}: {e}") from e
    return True


def patch_boot_configs(
    tree: Path,
    overlay_size: str = "16G",
    grub_timeout: int = 10,
    isolinux_timeout: int = 100,
) -> PatchReport:
    """Verbose boot, fixed overlay size, and an automatic default entry."""
    tree = Path(tree)
    report = PatchReport()

    def _common(cfg: BootConfig) -> None:
        for token in SILENCING_TOKENS:
            cfg.remove_token(token)
        cfg.set_kernel_param("overlay-size", overlay_size)

    for path in find_boot_configs(tree):
        if _rewrite(path, _common):
            report.patched.append(path)
            logger.debug("Patched kernel command lines in %s", path)

    grub_cfg = tree / GRUB_CFG
    if grub_cfg.is_file():

        def _grub(cfg: BootConfig) -> None:
            cfg.set_directive(_GRUB_DEFAULT, 'set default="0"')
            cfg.set_directive(_GRUB_TIMEOUT, f"set timeout={grub_timeout}")

        if _rewrite(grub_cfg, _grub) and grub_cfg not in report.patched:
            report.patched.append(grub_cfg)
    else:
        logger.info("No %s in the image, skipping UEFI menu defaults", GRUB_CFG)
        report.skipped.append(grub_cfg)

    isolinux_cfg = tree / ISOLINUX_CFG
    if isolinux_cfg.is_file():
        if _rewrite(
            isolinux_cfg,
            lambda cfg: cfg.set_directive(_ISOLINUX_TIMEOUT, f"timeout {isolinux_timeout}"),
        ) and isolinux_cfg not in report.patched:
            report.patched.append(isolinux_cfg)

        live_cfg = tree / LIVE_CFG
        if live_cfg.is_file():
            labelled = []

            def _live(cfg: BootConfig) -> None:
                labelled.append(cfg.mark_first_label_default())

            if _rewrite(live_cfg, _live) and live_cfg not in report.patched:
                report.patched.append(live_cfg)
            if not labelled[0]:
                logger.warning("%s has no label entries, no default marked", live_cfg)
        else:
            logger.info("No %s in the image, skipping BIOS default entry", LIVE_CFG)
            report.skipped.append(live_cfg)
    else:
        logger.info("No %s in the image, skipping BIOS menu defaults", ISOLINUX_CFG)
        report.skipped.append(isolinux_cfg)

    return report
