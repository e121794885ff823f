import logging
import os
from pathlib import Path
from typing import Optional

import requests
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from .errors import AcquisitionError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
USER_AGENT = "debian-live-customizer"


def acquire_reference_image(
    url: str,
    dest: Path,
    console: Optional[Console] = None,
    timeout: float = 60.0,
) -> Path:
    """Download ``url`` to ``dest`` unless ``dest`` already exists.

    The cache is trusted on presence: an existing file is never re-checked.
    The download goes to ``dest.part`` first so an interrupted transfer is
    never mistaken for a cached image on the next run.
    """

    dest = Path(dest)
    if dest.is_file():
        logger.info("Debian Live ISO already downloaded: %s", dest)
        return dest

    partial = dest.with_name(dest.name + ".part")
    logger.info("Downloading %s", url)
    try:
        with requests.get(
            url, stream=True, timeout=timeout, headers={"User-Agent": USER_AGENT}
        ) as response:
            response.raise_for_status()
            total = int(response.headers.get("Content-Length") or 0) or None

            with Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                DownloadColumn(),
                TransferSpeedColumn(),
                TimeRemainingColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task(description=f"Downloading {dest.name}", total=total)
                with open(partial, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        f.write(chunk)
                        progress.update(task, advance=len(chunk))
    except (requests.RequestException, OSError) as e:
        partial.unlink(missing_ok=True)
        raise AcquisitionError(f"could not download {url}: {e}") from e
    except KeyboardInterrupt:
        partial.unlink(missing_ok=True)
        raise

    os.replace(partial, dest)
    logger.info("Downloaded %s to %s", url, dest)
    return dest
