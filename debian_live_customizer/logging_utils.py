import logging
import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(
    log_path: Optional[str] = None,
    verbose: bool = False,
    console: Optional[Console] = None,
) -> Optional[str]:
    """Configure root logging: a rich console handler plus a debug log file.

    The file always records DEBUG so command output is available after a
    failed build; the console shows INFO unless ``verbose`` is set.

    Returns the log file path in use, or None when no file is configured.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(root, "_live_customizer_configured", False):
        return getattr(root, "_live_customizer_log_path", None)

    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(handler)

    if log_path:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            )
        )
        root.addHandler(file_handler)

    setattr(root, "_live_customizer_configured", True)
    setattr(root, "_live_customizer_log_path", log_path)

    logging.getLogger(__name__).debug("Logging initialized (file=%s)", log_path)
    return log_path
