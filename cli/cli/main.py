"""Main CLI entry point for lfs-builder.

This module defines the Typer application and main commands.
"""

from __future__ import annotations

import asyncio
import random
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from . import __version__
from .generate_iso import generate as generate_iso_command
from .logs import configure_logging, resolve_level
from .wiring import build_bridge, build_coordinator, build_notifier, build_verifier

if TYPE_CHECKING:
    from builder import BuildRunLoop, ConfigManager, InputRequest, PersistenceBridge
    from builder.interfaces import StepExecutor
    from isogen import BuildScenario, ScenarioResult

# Create the main Typer app
app = typer.Typer(
    name="lfs-builder",
    help="Linux From Scratch build orchestrator - step through an LFS build and generate ISOs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Create console for rich output
console = Console()

STATUS_STYLES = {
    "pending": "dim",
    "in-progress": "yellow",
    "in_progress": "yellow",
    "processing": "yellow",
    "completed": "green",
    "failed": "red",
    "skipped": "blue",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]lfs-builder[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Log level: debug, info, warning or error. Defaults to global.log_level.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """LFS Builder: Linux From Scratch build orchestrator.

    Walks the LFS 11.2 build phase by phase, records builds and
    configurations, and generates ISO images of finished systems.
    """
    configure_logging(resolve_level(log_level, verbose))
    if log_level is None and not verbose:
        configure_logging(_get_config_manager().load().global_settings.log_level.value)


def _get_config_manager() -> ConfigManager:
    """Get the configuration manager."""
    from builder import ConfigManager

    return ConfigManager()


def _styled(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


app.command("generate-iso")(generate_iso_command)


# =============================================================================
# Build
# =============================================================================


def _parse_inputs(values: list[str] | None) -> dict[str, str]:
    answers: dict[str, str] = {}
    for item in values or []:
        step_id, sep, value = item.partition("=")
        if not sep or not step_id:
            console.print(f"[red]Error: --input expects STEP_ID=VALUE, got '{item}'[/red]")
            raise typer.Exit(1)
        answers[step_id] = value
    return answers


@app.command()
def build(
    config_id: Annotated[
        str | None,
        typer.Option("--config-id", "-c", help="Saved build configuration to use."),
    ] = None,
    inputs: Annotated[
        list[str] | None,
        typer.Option(
            "--input",
            "-i",
            help="Answer for an input step as STEP_ID=VALUE. Can be specified multiple times.",
        ),
    ] = None,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Only run steps whose dependencies are done."),
    ] = False,
    fast: Annotated[
        bool,
        typer.Option("--fast", help="Skip simulated delays."),
    ] = False,
    non_interactive: Annotated[
        bool,
        typer.Option(
            "--non-interactive",
            "-y",
            help="Never prompt; stop at the first unanswered input or failure.",
        ),
    ] = False,
) -> None:
    """Run the LFS build in the terminal.

    Input steps are answered from --input when given, otherwise prompted for.
    When the configuration asks for an ISO, generation starts once the
    build completes.
    """
    answers = _parse_inputs(inputs)
    try:
        completed = asyncio.run(_run_build(config_id, answers, strict, fast, non_interactive))
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Build aborted: {e}[/red]")
        raise typer.Exit(1) from None

    if not completed:
        raise typer.Exit(1)


def _prompt(request: InputRequest) -> str | bool:
    if request.type == "password":
        return Prompt.ask(request.message, password=True)
    if request.type == "confirm":
        return Confirm.ask(request.message, default=request.default == "true")
    if request.default is not None:
        return Prompt.ask(request.message, default=request.default)
    return Prompt.ask(request.message)


class _LogPrinter:
    """Prints run-loop log lines that have not been shown yet."""

    def __init__(self) -> None:
        self.shown = 0
        self.script_shown = 0

    def flush(self, loop: BuildRunLoop) -> None:
        for line in loop.logs[self.shown :]:
            console.print(f"  {line}", markup=False, highlight=False)
        self.shown = len(loop.logs)
        for line in loop.script_output[self.script_shown :]:
            console.print(f"  [dim]|[/dim] {line}", highlight=False)
        self.script_shown = len(loop.script_output)


async def _run_build(
    config_id: str | None,
    answers: dict[str, str],
    strict: bool,
    fast: bool,
    non_interactive: bool,
) -> bool:
    """Drive the run-loop until it completes or stops; returns success."""
    from builder import BuildRecorder, BuildRunLoop, BuildStatus, SimulatedStepExecutor
    from isogen import IsoBuildTrigger, JobPoller

    manager = _get_config_manager()
    config = manager.load()
    notifier = build_notifier(config, console)
    bridge = build_bridge(config, notifier)

    build_config = None
    if config_id is not None:
        build_config = await bridge.get_build_configuration_by_id(config_id)
        if build_config is None:
            await bridge.storage.close()
            console.print(f"[red]Error: Build configuration '{config_id}' not found[/red]")
            raise typer.Exit(1)

    executor = SimulatedStepExecutor(
        delay_cap=0.0 if fast else config.build.step_delay_cap_seconds,
        default_delay=0.0 if fast else config.build.default_step_delay_seconds,
        failure_rate=config.build.failure_rate,
        rng=random.Random(config.container.seed),
    )

    listeners = []
    if bridge.actor is not None:
        listeners.append(BuildRecorder(bridge))

    coordinator = None
    poller = None
    trigger = None
    if build_config is not None and build_config.iso_generation.generate:
        coordinator = build_coordinator(manager, notifier)
        poller = JobPoller(coordinator, interval=config.backend.poll_interval_seconds)
        trigger = IsoBuildTrigger(
            coordinator, poller, output_dir=config.iso.output_dir, notifier=notifier
        )
        listeners.append(trigger)

    loop = BuildRunLoop(
        executor,
        notifier=notifier,
        listeners=listeners,
        strict_dependencies=strict or config.build.strict_dependencies,
        advance_delay=0.0 if fast else config.build.advance_delay_seconds,
    )
    printer = _LogPrinter()

    skipped_failures = 0
    try:
        await loop.start(build_config)
        while True:
            printer.flush(loop)
            request = loop.input_request
            if request is not None:
                if request.step_id in answers:
                    await loop.submit_input(answers[request.step_id])
                elif non_interactive:
                    console.print(f"[red]No answer given for input step '{request.step_id}'[/red]")
                    return False
                else:
                    await loop.submit_input(_prompt(request))
                continue

            if loop.build_complete:
                break

            failed = [s for s in loop.steps if s.status == BuildStatus.FAILED]
            if not failed and loop.blocked_steps():
                console.print("[red]Build blocked on unfinished dependencies[/red]")
                return False
            if non_interactive or not Confirm.ask("Resume the build?", default=False):
                return False
            if failed:
                console.print(f"[yellow]Skipping failed step '{failed[-1].id}'[/yellow]")
                await loop.skip_step(failed[-1].id)
                skipped_failures += 1
            await loop.toggle_build()

        printer.flush(loop)
        _print_build_summary(loop)

        if trigger is not None and poller is not None:
            for job_id in trigger.job_ids:
                status = await poller.wait(job_id)
                if status is not None:
                    console.print(f"ISO job {job_id}: {_styled(status.status.value)}")

        return not skipped_failures and not any(s.status == BuildStatus.FAILED for s in loop.steps)
    finally:
        if poller is not None:
            await poller.close()
        if coordinator is not None:
            await coordinator.close()
        await bridge.storage.close()


def _print_build_summary(loop: BuildRunLoop) -> None:
    table = Table(title="Build Summary", show_header=True)
    table.add_column("Phase", style="cyan")
    table.add_column("Step")
    table.add_column("Status", style="bold")

    for step in loop.steps:
        table.add_row(step.phase.value, step.name, _styled(step.status.value))

    console.print(table)
    console.print(f"Progress: [bold]{loop.progress}%[/bold]")


@app.command()
def steps() -> None:
    """Show the LFS build steps grouped by phase."""
    from builder import LFS_BUILD_STEPS, group_by_phase

    table = Table(title="LFS Build Steps", show_header=True)
    table.add_column("Phase", style="cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Context")
    table.add_column("Input", justify="center")
    table.add_column("Est.", justify="right")

    for phase, phase_steps in group_by_phase(LFS_BUILD_STEPS).items():
        for index, step in enumerate(phase_steps):
            table.add_row(
                phase.value if index == 0 else "",
                step.id,
                step.name,
                step.context.value,
                "✓" if step.requires_input else "",
                f"{step.estimated_time}s" if step.estimated_time else "",
            )

    console.print(table)


# =============================================================================
# Configurations and builds
# =============================================================================

configs_app = typer.Typer(
    name="configs",
    help="Manage saved build configurations.",
    no_args_is_help=True,
)
app.add_typer(configs_app, name="configs")


async def _with_bridge(action, *args):  # type: ignore[no-untyped-def]
    """Run ``action(bridge, *args)`` with a bridge built from configuration."""
    config = _get_config_manager().load()
    if not config.storage.url:
        console.print("[yellow]No storage configured.[/yellow] Set storage.url or LFS_STORAGE_URL.")
        raise typer.Exit(1)

    bridge: PersistenceBridge = build_bridge(config, build_notifier(config, console))
    try:
        return await action(bridge, *args)
    finally:
        await bridge.storage.close()


@configs_app.command("list")
def configs_list() -> None:
    """List saved build configurations."""

    async def action(bridge: PersistenceBridge) -> None:
        configs = await bridge.get_build_configurations()
        if not configs:
            console.print("[dim]No build configurations[/dim]")
            return

        table = Table(title="Build Configurations", show_header=True)
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="bold")
        table.add_column("Target disk")
        table.add_column("ISO", justify="center")
        table.add_column("Created")
        for cfg in configs:
            table.add_row(
                cfg.id or "",
                cfg.name,
                cfg.target_disk,
                "✓" if cfg.iso_generation.generate else "",
                cfg.created_at.strftime("%Y-%m-%d %H:%M") if cfg.created_at else "",
            )
        console.print(table)

    asyncio.run(_with_bridge(action))


@configs_app.command("show")
def configs_show(
    config_id: Annotated[str, typer.Argument(help="Configuration ID.")],
) -> None:
    """Show one build configuration."""
    import yaml

    async def action(bridge: PersistenceBridge) -> None:
        cfg = await bridge.get_build_configuration_by_id(config_id)
        if cfg is None:
            raise typer.Exit(1)
        data = cfg.model_dump(mode="json")
        console.print(yaml.dump(data, default_flow_style=False, sort_keys=False))

    asyncio.run(_with_bridge(action))


@configs_app.command("create")
def configs_create(
    name: Annotated[str, typer.Option("--name", "-n", help="Configuration name.")],
    target_disk: Annotated[str, typer.Option("--target-disk", help="Target disk device.")],
    sources_path: Annotated[str, typer.Option("--sources-path", help="Path to LFS sources.")],
    scripts_path: Annotated[str, typer.Option("--scripts-path", help="Path to build scripts.")],
    iso: Annotated[
        bool, typer.Option("--iso/--no-iso", help="Generate an ISO when the build completes.")
    ] = False,
    iso_name: Annotated[str | None, typer.Option("--iso-name", help="ISO file name.")] = None,
    label: Annotated[str | None, typer.Option("--label", help="ISO volume label.")] = None,
    bootable: Annotated[
        bool, typer.Option("--bootable/--no-bootable", help="Make the ISO bootable.")
    ] = True,
    bootloader: Annotated[
        str, typer.Option("--bootloader", help="Bootloader: grub, isolinux or none.")
    ] = "grub",
    use_docker: Annotated[
        bool,
        typer.Option("--use-docker/--no-docker", help="Allow the local container fallback."),
    ] = True,
) -> None:
    """Save a new build configuration."""
    from builder import BuildConfig, IsoGenerationConfig

    try:
        build_config = BuildConfig(
            name=name,
            target_disk=target_disk,
            sources_path=sources_path,
            scripts_path=scripts_path,
            iso_generation=IsoGenerationConfig(
                generate=iso,
                iso_name=iso_name,
                label=label,
                bootable=bootable,
                bootloader=bootloader,  # type: ignore[arg-type]
                use_docker=use_docker,
            ),
        )
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1) from None

    async def action(bridge: PersistenceBridge) -> None:
        saved = await bridge.save_build_configuration(build_config)
        if saved is None:
            raise typer.Exit(1)
        console.print(f"[green]Configuration saved: {saved.id}[/green]")

    asyncio.run(_with_bridge(action))


@configs_app.command("delete")
def configs_delete(
    config_id: Annotated[str, typer.Argument(help="Configuration ID.")],
) -> None:
    """Delete a build configuration."""

    async def action(bridge: PersistenceBridge) -> None:
        if not await bridge.delete_build_configuration(config_id):
            raise typer.Exit(1)
        console.print(f"[yellow]Configuration deleted: {config_id}[/yellow]")

    asyncio.run(_with_bridge(action))


builds_app = typer.Typer(
    name="builds",
    help="Inspect recorded builds.",
    no_args_is_help=True,
)
app.add_typer(builds_app, name="builds")


@builds_app.command("list")
def builds_list(
    config_id: Annotated[
        str | None,
        typer.Option("--config-id", "-c", help="Only builds of this configuration."),
    ] = None,
) -> None:
    """List recorded builds, newest first."""

    async def action(bridge: PersistenceBridge) -> None:
        if config_id is not None:
            records = await bridge.get_builds_for_configuration(config_id)
        else:
            records = await bridge.get_builds()
        if not records:
            console.print("[dim]No builds recorded[/dim]")
            return

        table = Table(title="Builds", show_header=True)
        table.add_column("ID", style="cyan")
        table.add_column("Status", style="bold")
        table.add_column("Phase")
        table.add_column("Step")
        table.add_column("Progress", justify="right")
        table.add_column("Started")
        for record in records:
            table.add_row(
                record.id or "",
                _styled(record.status.value),
                record.current_phase.value,
                record.current_step_id or "",
                f"{record.progress_percentage}%",
                record.started_at.strftime("%Y-%m-%d %H:%M") if record.started_at else "",
            )
        console.print(table)

    asyncio.run(_with_bridge(action))


@builds_app.command("steps")
def builds_steps(
    build_id: Annotated[str, typer.Argument(help="Build ID.")],
    logs: Annotated[bool, typer.Option("--logs", "-l", help="Print step logs.")] = False,
) -> None:
    """Show the step records of a build."""

    async def action(bridge: PersistenceBridge) -> None:
        records = await bridge.get_build_steps(build_id)
        if not records:
            console.print("[dim]No steps recorded[/dim]")
            return
        for record in records:
            console.print(f"[cyan]{record.step_id}[/cyan] {_styled(record.status.value)}")
            if logs and record.output_log:
                console.print(record.output_log, markup=False, highlight=False)

    asyncio.run(_with_bridge(action))


# =============================================================================
# ISOs
# =============================================================================

isos_app = typer.Typer(
    name="isos",
    help="Inspect generated ISO images.",
    no_args_is_help=True,
)
app.add_typer(isos_app, name="isos")


@isos_app.command("list")
def isos_list(
    build_id: Annotated[
        str | None,
        typer.Option("--build-id", "-b", help="Only ISOs of this build."),
    ] = None,
) -> None:
    """List generated ISO images."""
    from isogen import IsoMetadataStore

    store = IsoMetadataStore(_get_config_manager().metadata_file())
    records = store.get_by_build_id(build_id) if build_id else store.get_all()
    if not records:
        console.print("[dim]No ISO images recorded[/dim]")
        return

    table = Table(title="ISO Images", show_header=True)
    table.add_column("Build", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Config")
    table.add_column("Bootloader")
    table.add_column("Path")
    table.add_column("Created")
    for record in records:
        table.add_row(
            record.build_id,
            record.iso_name,
            record.config_name,
            record.bootloader if record.bootable else "none",
            record.output_path,
            record.timestamp.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command("job-status")
def job_status(
    job_id: Annotated[str, typer.Argument(help="ISO generation job ID.")],
    download: Annotated[
        Path | None,
        typer.Option("--download", "-d", help="Download the finished ISO to this path."),
    ] = None,
) -> None:
    """Show the status of a remote ISO generation job."""
    from isogen import IsoGenerationError, JobStatus

    async def _status() -> int:
        manager = _get_config_manager()
        config = manager.load()
        coordinator = build_coordinator(manager, build_notifier(config, console))
        try:
            status = await coordinator.check_status(job_id)
            console.print(f"[bold]Job:[/bold] {job_id}")
            console.print(f"[bold]Status:[/bold] {_styled(status.status.value)}")
            if status.progress is not None:
                console.print(f"[bold]Progress:[/bold] {status.progress}%")
            if status.message:
                console.print(f"[bold]Message:[/bold] {status.message}", highlight=False)
            if status.download_url:
                console.print(f"[bold]Download:[/bold] {status.download_url}", highlight=False)

            if download is not None:
                if status.status != JobStatus.COMPLETED:
                    console.print("[yellow]Job is not completed; nothing to download[/yellow]")
                    return 1
                path = await coordinator.download_iso(job_id, download)
                console.print(f"[green]ISO saved to {path}[/green]")
            return 0
        finally:
            await coordinator.close()

    try:
        code = asyncio.run(_status())
    except IsoGenerationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None
    if code:
        raise typer.Exit(code)


# =============================================================================
# Test runs
# =============================================================================


def _print_scenarios() -> None:
    from isogen import DEFAULT_SCENARIOS

    table = Table(title="Test Scenarios", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("ISO", justify="center")
    table.add_column("Expected")
    for scenario in DEFAULT_SCENARIOS:
        table.add_row(
            scenario.id,
            scenario.name,
            "✓" if scenario.iso_generation.generate else "",
            "complete" if scenario.expected.should_complete else "fail",
        )
    console.print(table)


@app.command("test-run")
def test_run(
    scenario_ids: Annotated[
        list[str] | None,
        typer.Argument(help="Scenario IDs or names to run. Runs all when omitted."),
    ] = None,
    list_only: Annotated[
        bool,
        typer.Option("--list", "-l", help="List the predefined scenarios and exit."),
    ] = False,
    custom: Annotated[
        str | None,
        typer.Option("--custom", help="Run a custom scenario with this name."),
    ] = None,
    target_disk: Annotated[
        str,
        typer.Option("--target-disk", help="Target disk of the custom scenario."),
    ] = "/dev/sdb",
    sources_path: Annotated[
        str,
        typer.Option("--sources-path", help="Sources path of the custom scenario."),
    ] = "/sources",
    generate_iso: Annotated[
        bool,
        typer.Option("--generate-iso", help="Generate an ISO in the custom scenario."),
    ] = False,
    simulate: Annotated[
        bool,
        typer.Option("--simulate", help="Use the simulated executor with random failures."),
    ] = False,
    failure_rate: Annotated[
        float | None,
        typer.Option("--failure-rate", min=0.0, max=1.0, help="Simulated step failure chance."),
    ] = None,
    seed: Annotated[
        int | None,
        typer.Option("--seed", help="Seed for the simulated failures."),
    ] = None,
) -> None:
    """Run test builds and check each against its expected outcome."""
    from isogen import DEFAULT_SCENARIOS, custom_scenario, get_scenario

    if list_only:
        _print_scenarios()
        return

    if custom is not None:
        scenarios = [custom_scenario(custom, target_disk, sources_path, generate_iso=generate_iso)]
    elif scenario_ids:
        scenarios = []
        for key in scenario_ids:
            scenario = get_scenario(key)
            if scenario is None:
                console.print(f"[red]Error: Unknown test scenario '{key}'[/red]")
                raise typer.Exit(1)
            scenarios.append(scenario)
    else:
        scenarios = list(DEFAULT_SCENARIOS)

    try:
        results = asyncio.run(_run_scenarios(scenarios, simulate, failure_rate, seed))
    except Exception as e:
        console.print(f"[red]Test run aborted: {e}[/red]")
        raise typer.Exit(1) from None

    table = Table(title="Test Results", show_header=True)
    table.add_column("Scenario", style="cyan")
    table.add_column("Status")
    table.add_column("As expected", justify="center")
    table.add_column("Failed step")
    table.add_column("ISO")
    for result in results:
        failed = result.failed_step
        iso = result.iso_path or ""
        if result.iso_verified is False:
            iso = f"{iso} (unverified)"
        table.add_row(
            result.scenario_id,
            _styled("completed" if result.succeeded else "failed"),
            "[green]yes[/green]" if result.expectation_met else "[red]no[/red]",
            f"{failed.step_id}: {failed.error}" if failed else "",
            iso,
        )
    console.print(table)

    unmet = [r.scenario_id for r in results if not r.expectation_met]
    if unmet:
        console.print(f"[red]Unexpected outcome: {', '.join(unmet)}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]All {len(results)} test run(s) behaved as expected[/green]")


async def _run_scenarios(
    scenarios: list[BuildScenario],
    simulate: bool,
    failure_rate: float | None,
    seed: int | None,
) -> list[ScenarioResult]:
    from builder import SimulatedStepExecutor
    from isogen import ScenarioRunner

    manager = _get_config_manager()
    config = manager.load()
    notifier = build_notifier(config, console)

    rng = random.Random(seed if seed is not None else config.container.seed)
    rate = failure_rate if failure_rate is not None else config.build.failure_rate

    def simulated(_scenario: BuildScenario) -> StepExecutor:
        return SimulatedStepExecutor(delay_cap=0.0, default_delay=0.0, failure_rate=rate, rng=rng)

    coordinator = None
    if any(s.iso_generation.generate for s in scenarios):
        coordinator = build_coordinator(manager, notifier)
    runner = ScenarioRunner(
        coordinator=coordinator,
        verifier=build_verifier(config),
        executor_factory=simulated if simulate else None,
        notifier=notifier,
        output_dir=config.iso.output_dir,
    )
    try:
        results = await runner.run_many(scenarios)
    finally:
        if coordinator is not None:
            await coordinator.close()

    for scenario, result in zip(scenarios, results, strict=True):
        console.print(f"[bold]{scenario.name}[/bold] ({result.build_id})")
        for line in result.logs:
            console.print(f"  {line}", markup=False, highlight=False)
    return results


# =============================================================================
# Configuration
# =============================================================================

config_app = typer.Typer(
    name="config",
    help="Manage configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show() -> None:
    """Show current configuration."""
    import yaml

    config_manager = _get_config_manager()
    config = config_manager.load()

    console.print(f"[bold]Configuration File:[/bold] {config_manager.config_path}")
    console.print()

    data = config.model_dump(mode="json", exclude={"global_settings"}, exclude_defaults=True)
    data = {"global": config.global_settings.model_dump(mode="json", exclude_defaults=True), **data}

    yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False)
    console.print(yaml_str)


@config_app.command("init")
def config_init(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing configuration.",
        ),
    ] = False,
) -> None:
    """Initialize configuration file."""
    config_manager = _get_config_manager()

    if config_manager.init_config(force=force):
        console.print(f"[green]Configuration initialized: {config_manager.config_path}[/green]")
    else:
        console.print(
            f"[yellow]Configuration already exists: {config_manager.config_path}[/yellow]"
        )
        console.print("Use --force to overwrite.")


@config_app.command("path")
def config_path() -> None:
    """Show configuration file path."""
    config_manager = _get_config_manager()
    console.print(str(config_manager.config_path))


if __name__ == "__main__":
    app()
