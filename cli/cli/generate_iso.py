"""Standalone ISO generation entry point.

Generates an ISO from a directory with the local container runtime and
waits for the result::

    lfs-generate-iso --sourcePath ./lfs --outputPath ./out/lfs.iso --label LFS
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from builder.config import ConfigManager
from isogen.models import IsoGenerationOptions

from .logs import configure_logging, resolve_level
from .wiring import build_coordinator, build_notifier, build_runtime

app = typer.Typer(
    name="lfs-generate-iso",
    help="Generate an ISO image from an LFS system directory.",
    rich_markup_mode="rich",
)

console = Console()

BOOTLOADERS = ("grub", "isolinux", "none")


def parse_bootable(value: str | None) -> bool:
    """Bootable unless explicitly ``false``."""
    if value is None:
        return True
    return value.strip().lower() == "true"


@app.command()
def generate(
    source_path: Annotated[
        str | None,
        typer.Option("--sourcePath", help="Directory containing the LFS system."),
    ] = None,
    output_path: Annotated[
        str | None,
        typer.Option("--outputPath", help="Path of the ISO file to create."),
    ] = None,
    label: Annotated[
        str | None,
        typer.Option("--label", help="ISO volume label."),
    ] = None,
    build_id: Annotated[
        str | None,
        typer.Option("--buildId", help="Build the ISO belongs to."),
    ] = None,
    bootable: Annotated[
        str | None,
        typer.Option("--bootable", help="Make the ISO bootable: true or false (default true)."),
    ] = None,
    bootloader: Annotated[
        str,
        typer.Option("--bootloader", help="Bootloader: grub, isolinux or none."),
    ] = "grub",
    runtime: Annotated[
        str | None,
        typer.Option("--runtime", help="Container runtime: simulated or docker."),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Configuration file to use."),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Log level: debug, info, warning or error."),
    ] = "warning",
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """Generate an ISO image locally and wait for it to finish."""
    configure_logging(resolve_level(log_level, verbose))

    if not source_path or not output_path or not label:
        missing = [
            flag
            for flag, value in (
                ("--sourcePath", source_path),
                ("--outputPath", output_path),
                ("--label", label),
            )
            if not value
        ]
        console.print(
            f"[red]Error: Missing required arguments: {', '.join(missing)}[/red]", highlight=False
        )
        raise typer.Exit(1)

    if bootloader not in BOOTLOADERS:
        console.print(
            f"[red]Error: Invalid bootloader '{bootloader}', "
            f"expected one of: {', '.join(BOOTLOADERS)}[/red]"
        )
        raise typer.Exit(1)

    options = IsoGenerationOptions(
        build_id=build_id or "",
        source_dir=str(Path(source_path).resolve()),
        output_path=str(Path(output_path).resolve()),
        label=label,
        bootable=parse_bootable(bootable),
        bootloader=bootloader,  # type: ignore[arg-type]
    )

    try:
        exit_code = asyncio.run(_generate(options, runtime, config_path))
    except Exception as e:
        console.print(f"[red]Unhandled error during ISO generation: {e}[/red]", highlight=False)
        raise typer.Exit(1) from None

    if exit_code:
        raise typer.Exit(exit_code)


async def _generate(
    options: IsoGenerationOptions,
    runtime_kind: str | None,
    config_path: Path | None,
) -> int:
    """Run the generation; returns the process exit code."""
    manager = ConfigManager(config_path)
    config = manager.load()
    notifier = build_notifier(config, console)
    runtime = build_runtime(config, runtime_kind)

    console.print(f"Resolved source directory: {options.source_dir}", highlight=False)
    console.print(f"Resolved output path: {options.output_path}", highlight=False)

    if await runtime.check_availability():
        console.print("Container runtime reports Docker is available.")
    else:
        console.print(
            "[yellow]Warning: container runtime reports Docker is not available. "
            "Generation may fail.[/yellow]"
        )

    console.print(f"Attempting to generate ISO for buildId: {options.build_id or 'N/A'}")
    console.print(f"ISO Label: {options.label}", highlight=False)

    coordinator = build_coordinator(manager, notifier, runtime)
    try:
        result = await coordinator.generate_local(options)
    finally:
        await coordinator.close()

    if result.success:
        console.print("[bold green]ISO Generation Successful![/bold green]")
        console.print(f"Output: {result.output}", highlight=False)
        if result.last_log:
            console.print(f"Last log line: {result.last_log}", markup=False, highlight=False)
        return 0

    console.print("[bold red]ISO Generation Failed.[/bold red]")
    for line in result.logs:
        console.print(line, markup=False, highlight=False)
    return 1


if __name__ == "__main__":
    app()
