import os
from typing import Optional

import typer
from rich.console import Console

from .config import LOG_FILENAME, load_build_config
from .logging_utils import configure_logging
from .pipeline import BUILD_STAGES, CLEAN_STAGES, PREFLIGHT, run_pipeline
from .workspace import BuildContext, Workspace

# --- Typer App and Rich Console Initialization ---
app = typer.Typer(
    name="debian-live-customizer",
    help="A CLI tool to build a customized Debian Live ISO that runs a script on boot.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

WorkDirOption = typer.Option(
    ".", "--work-dir", "-w", help="Directory holding the cached ISO, scratch trees and output."
)
ConfigOption = typer.Option(None, "--config", "-c", help="JSON file overriding build defaults.")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Show command output on the console.")


def _make_context(work_dir: str, config_path: Optional[str], payload_dir: Optional[str] = None):
    try:
        config = load_build_config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] could not load config: {e}")
        raise typer.Exit(code=1)
    workspace = Workspace.for_config(work_dir, config, payload_dir=payload_dir)
    return BuildContext(config=config, workspace=workspace)


def _run(ctx: BuildContext, stages, log_file: Optional[str], verbose: bool) -> None:
    log_path = log_file or str(ctx.workspace.work_dir / LOG_FILENAME)
    configure_logging(log_path=log_path, verbose=verbose, console=console)

    result = run_pipeline(ctx, stages, console=console)
    failure = result.failure
    if failure is not None:
        console.print(
            f"[bold red]Error:[/bold red] stage [yellow]{failure.stage}[/yellow] failed: {failure.error}"
        )
        console.print(f"See [cyan]{log_path}[/cyan] for the full command output.")
        raise typer.Exit(code=1)


@app.command()
def build(
    work_dir: str = WorkDirOption,
    payload_dir: Optional[str] = typer.Option(
        None, "--payload-dir", "-p", help="Directory with the custom script and unit files."
    ),
    config: Optional[str] = ConfigOption,
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Where to write the debug log."),
    verbose: bool = VerboseOption,
):
    """
    Builds the customized Debian Live ISO.
    """
    console.print("[bold cyan]Starting Debian Live ISO Customization Process[/bold cyan]")
    ctx = _make_context(work_dir, config, payload_dir)
    _run(ctx, BUILD_STAGES, log_file, verbose)

    output = os.path.relpath(ctx.workspace.output_iso)
    console.print(f"\n[bold green]Custom ISO created successfully: {output}[/bold green]")
    console.print("To test it, run:")
    console.print(
        f"[cyan]qemu-system-x86_64 -m 4G -smp 4 -cdrom {output} "
        f"-net nic -net user,hostfwd=tcp::8080-:80[/cyan]",
        soft_wrap=True,
    )


@app.command()
def clean(
    work_dir: str = WorkDirOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """
    Releases leftover mounts and removes intermediate build artifacts.
    """
    ctx = _make_context(work_dir, config)
    _run(ctx, CLEAN_STAGES, None, verbose)


@app.command()
def check(
    work_dir: str = WorkDirOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """
    Verifies that the required tools are installed and we are running as root.
    """
    ctx = _make_context(work_dir, config)
    _run(ctx, (PREFLIGHT,), None, verbose)


def main():
    app()


if __name__ == "__main__":
    main()
