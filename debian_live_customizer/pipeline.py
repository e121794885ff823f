"""The ordered build stages and the fail-fast runner that drives them."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from rich.console import Console

from .acquire import acquire_reference_image
from .assemble import assemble_iso
from .bootcfg import patch_boot_configs
from .chroot import customize_root
from .command import CommandError
from .errors import CustomizerError, StructuralError
from .extract import extract_iso, extract_squashfs, locate_squashfs
from .payload import inject_payload
from .preflight import require_root, verify_prerequisites
from .repack import repack_squashfs
from .workspace import BuildContext, reset_workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    stage_id: str
    description: str
    run: Callable[[BuildContext, Optional[Console]], Optional[str]]
    # Stages that draw their own progress bar must not run under a spinner.
    spinner: bool = True


@dataclass(frozen=True)
class StageResult:
    stage: str
    ok: bool
    elapsed: float
    message: Optional[str] = None
    error: Optional[BaseException] = None


@dataclass
class PipelineResult:
    results: List[StageResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failure(self) -> Optional[StageResult]:
        for r in self.results:
            if not r.ok:
                return r
        return None


# --- Stage functions ---


def _preflight(ctx, console):
    require_root()
    verify_prerequisites(ctx.config.required_tools)
    return "Prerequisites verified."


def _root_only(ctx, console):
    require_root()
    return "Running as root."


def _reset(ctx, console):
    reset_workspace(ctx.workspace)
    return "Previous build artifacts removed."


def _acquire(ctx, console):
    path = acquire_reference_image(ctx.config.iso_url, ctx.workspace.reference_iso, console=console)
    return f"Reference image available at '{path.name}'."


def _extract_iso(ctx, console):
    ws = ctx.workspace
    extract_iso(ws.reference_iso, ws.iso_extract_dir)
    return f"Source ISO extracted to '{ws.iso_extract_dir.name}/'."


def _extract_rootfs(ctx, console):
    ws = ctx.workspace
    ctx.squashfs_file = locate_squashfs(ws.iso_extract_dir)
    extract_squashfs(ctx.squashfs_file, ws.squashfs_extract_dir)
    return f"SquashFS filesystem extracted to '{ws.squashfs_extract_dir.name}/'."


def _patch_boot(ctx, console):
    cfg = ctx.config
    report = patch_boot_configs(
        ctx.workspace.iso_extract_dir,
        overlay_size=cfg.overlay_size,
        grub_timeout=cfg.grub_timeout,
        isolinux_timeout=cfg.isolinux_timeout,
    )
    return (
        f"Boot menus updated for verbose boot, {cfg.grub_timeout}s default timeout "
        f"and {cfg.overlay_size} overlay size ({len(report.patched)} files)."
    )


def _inject_payload(ctx, console):
    cfg = ctx.config
    installed = inject_payload(
        ctx.workspace.squashfs_extract_dir,
        ctx.workspace.payload_source_dir,
        cfg.payload_script,
        cfg.payload_units,
    )
    return f"Copied {len(installed)} custom files into the root filesystem."


def _customize(ctx, console):
    customize_root(ctx.workspace.squashfs_extract_dir, ctx.config)
    return "Root filesystem customized inside chroot."


def _repack(ctx, console):
    if ctx.squashfs_file is None:
        raise StructuralError("no SquashFS file was located", stage="repack")
    repack_squashfs(
        ctx.workspace.squashfs_extract_dir,
        ctx.squashfs_file,
        compression=ctx.config.squashfs_compression,
        block_size=ctx.config.squashfs_block_size,
    )
    return "SquashFS filesystem repackaged."


def _assemble(ctx, console):
    ws = ctx.workspace
    assemble_iso(
        ws.iso_extract_dir,
        ws.reference_iso,
        ws.output_iso,
        ws.mbr_template,
        volume_id=ctx.config.volume_id,
    )
    return f"Custom ISO '{ws.output_iso.name}' created successfully."


PREFLIGHT = Stage("preflight", "Verifying prerequisites", _preflight)
RESET = Stage("reset", "Cleaning up previous builds", _reset)

BUILD_STAGES = (
    PREFLIGHT,
    RESET,
    Stage("acquire", "Downloading Debian Live ISO", _acquire, spinner=False),
    Stage("extract-iso", "Extracting ISO", _extract_iso),
    Stage("extract-rootfs", "Extracting SquashFS filesystem", _extract_rootfs, spinner=False),
    Stage("patch-boot", "Updating bootloader menus", _patch_boot),
    Stage("inject-payload", "Copying custom files", _inject_payload),
    Stage("customize", "Customizing filesystem inside chroot", _customize, spinner=False),
    Stage("repack", "Repackaging SquashFS filesystem", _repack, spinner=False),
    Stage("assemble", "Building new hybrid ISO", _assemble),
)

CLEAN_STAGES = (
    Stage("preflight", "Verifying prerequisites", _root_only),
    RESET,
)


def run_pipeline(
    ctx: BuildContext,
    stages: Sequence[Stage] = BUILD_STAGES,
    console: Optional[Console] = None,
) -> PipelineResult:
    """Run ``stages`` in order, stopping at the first failure.

    Failures are recorded on the returned result rather than raised, tagged
    with the id of the stage that failed.
    """
    result = PipelineResult()
    for stage in stages:
        logger.info("--- %s ---", stage.description)
        started = time.monotonic()
        try:
            if console is not None and stage.spinner:
                with console.status(f"[bold green]{stage.description}...[/bold green]"):
                    message = stage.run(ctx, console)
            else:
                message = stage.run(ctx, console)
        except (CustomizerError, CommandError, OSError) as e:
            elapsed = time.monotonic() - started
            logger.debug("Stage %s failed", stage.stage_id, exc_info=True)
            result.results.append(
                StageResult(stage=stage.stage_id, ok=False, elapsed=elapsed, error=e)
            )
            return result

        elapsed = time.monotonic() - started
        logger.debug("Stage %s finished in %.1fs", stage.stage_id, elapsed)
        result.results.append(
            StageResult(stage=stage.stage_id, ok=True, elapsed=elapsed, message=message)
        )
        if console is not None and message:
            console.print(f"SUCCESS: {message}")
    return result
