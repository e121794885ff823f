import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Tuple

from .errors import PayloadError

logger = logging.getLogger(__name__)

SCRIPT_DIR = Path("usr") / "local" / "bin"
UNIT_DIR = Path("etc") / "systemd" / "system"


def plan_payload(
    source_dir: Path, script: str, units: Iterable[str]
) -> List[Tuple[Path, Path, bool]]:
    """(source, destination relative to the root, executable) for each file."""
    source_dir = Path(source_dir)
    plan = [(source_dir / script, SCRIPT_DIR / script, True)]
    plan.extend((source_dir / unit, UNIT_DIR / unit, False) for unit in units)
    return plan


def inject_payload(root: Path, source_dir: Path, script: str, units: Iterable[str]) -> List[Path]:
    """Copies the custom script and unit files into the mutable root.

    All sources are checked before the first copy so a missing file does not
    leave half a payload behind.
    """
    root = Path(root)
    plan = plan_payload(source_dir, script, units)

    missing = [str(src) for src, _, _ in plan if not src.is_file()]
    if missing:
        raise PayloadError(f"payload file not found: {', '.join(missing)}")

    installed = []
    for src, rel_dest, executable in plan:
        dest = root / rel_dest
        try:
            os.makedirs(dest.parent, exist_ok=True)
            shutil.copy(src, dest)
            if executable:
                os.chmod(dest, 0o755)
        except OSError as e:
            raise PayloadError(f"could not copy {src} to {dest}: {e}") from e
        logger.info("Installed %s -> /%s", src.name, rel_dest)
        installed.append(dest)
    return installed
