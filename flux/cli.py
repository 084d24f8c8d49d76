"""
Command line interface for the Flux framework.

    flux run MODULE [ARGS...]
    flux run-workflow NAME [--yes] [--fail-fast]
    flux list-modules | list-workflows | status | version
    flux config KEY VALUE
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich import box
from rich.table import Table

from flux import APP_NAME, RELEASE, VERSION
from flux.config import FluxConfig, load_config, save_config
from flux.errors import ConfigError, ModuleNotFound, UnknownWorkflow
from flux.executor import ModuleRunner
from flux.log import current_log_file, setup_logger
from flux.modules import ModuleRegistry, ModuleResolver
from flux.system import display_status, gather_status
from flux.theme import (
    NordColors,
    console,
    create_header,
    print_error,
    print_success,
    print_warning,
    set_colors,
)
from flux.workflows import WorkflowExecutor, display_workflows

logger = logging.getLogger("flux")


def _config(ctx: click.Context) -> FluxConfig:
    return ctx.obj["config"]


def show_modules(config: FluxConfig) -> int:
    """Print the module table and return how many modules were found."""
    registry = ModuleRegistry(ModuleResolver.from_config(config))
    modules = registry.all()
    logger.debug("Discovering available modules")

    if not modules:
        print_error("No modules found")
        console.print(f"[{NordColors.FROST_3}]Modules dir: {config.MODULES_DIR}[/]")
        return 0

    table = Table(
        title="Available Flux Modules",
        box=box.ROUNDED,
        title_style=f"bold {NordColors.FROST_2}",
    )
    table.add_column("Module", style=f"bold {NordColors.SNOW_STORM_2}")
    table.add_column("", justify="center")
    table.add_column("Description", style=NordColors.SNOW_STORM_1)
    table.add_column("Version", style=NordColors.FROST_3)
    for module in modules:
        if module.is_executable:
            mark = f"[{NordColors.GREEN}]✓[/]"
            description = module.description
        else:
            mark = f"[{NordColors.YELLOW}]○[/]"
            description = f"{module.description} (not executable)"
        table.add_row(module.name, mark, description, module.version)
    console.print(table)
    console.print(f"[bold]Total modules: {len(modules)}[/bold]")
    return len(modules)


# ----------------------------------------------------------------
# CLI Commands with Click
# ----------------------------------------------------------------
@click.group()
@click.version_option(version=VERSION, prog_name="flux")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (default: $FLUX_CONFIG_DIR/flux.conf).",
)
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], debug: bool) -> None:
    """Flux System Administration Framework - modular server setup."""
    config = load_config(config_path)
    set_colors(config.USE_COLORS)
    setup_logger(config.LOGFILE, logging.DEBUG if debug else config.log_level)
    logger.debug(f"Flux Framework v{VERSION} initialized")
    ctx.obj = {"config": config}


@cli.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.argument("module")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run(ctx: click.Context, module: str, args: Tuple[str, ...]) -> None:
    """Run a single MODULE, passing ARGS through to it."""
    config = _config(ctx)
    result = ModuleRunner.from_config(config).run(module, args)
    if result.ok:
        print_success(f"Module {module} completed in {result.duration:.1f}s")
        return
    print_error(result.message)
    if isinstance(result.error, ModuleNotFound):
        console.print("Run 'flux list-modules' to see available modules")
    ctx.exit(result.exit_code or 1)


@cli.command("run-workflow")
@click.argument("name")
@click.option(
    "-y", "--yes", "non_interactive", is_flag=True, help="Do not prompt before steps."
)
@click.option(
    "--fail-fast", is_flag=True, help="Stop at the first failed module."
)
@click.pass_context
def run_workflow(
    ctx: click.Context, name: str, non_interactive: bool, fail_fast: bool
) -> None:
    """Execute the workflow NAME."""
    config = _config(ctx)
    executor = WorkflowExecutor(
        ModuleRunner.from_config(config),
        fail_fast=fail_fast,
        log_file=current_log_file(),
    )
    try:
        result = executor.execute(name, non_interactive=non_interactive)
    except UnknownWorkflow as e:
        print_error(str(e))
        display_workflows()
        ctx.exit(1)
    if not result.succeeded:
        ctx.exit(1)


@cli.command("list-modules")
@click.pass_context
def list_modules(ctx: click.Context) -> None:
    """List modules found in the module directories."""
    show_modules(_config(ctx))


@cli.command("list-workflows")
def list_workflows() -> None:
    """List the predefined workflows."""
    display_workflows()


@cli.command()
def status() -> None:
    """Show a read-only system status report."""
    console.print(create_header("System Status"))
    display_status(gather_status())


@cli.command("config")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set configuration KEY to VALUE."""
    config = _config(ctx)
    try:
        save_config(config.CONFIG_FILE, key, value)
    except ConfigError as e:
        print_error(str(e))
        ctx.exit(1)
    print_success(f"Saved {key} in {config.CONFIG_FILE}")


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information and available modules."""
    config = _config(ctx)
    console.print(
        f"[bold {NordColors.FROST_2}]{APP_NAME} System Administration Framework[/]"
    )
    console.print(f"Version: {VERSION}")
    console.print(f"Release: {RELEASE}")
    console.print(f"Home: {config.HOME_DIR}")
    console.print(f"Modules Directory: {config.MODULES_DIR}")
    console.print(f"Configuration: {config.CONFIG_FILE}")
    console.print()
    show_modules(config)


def main() -> None:
    try:
        cli()
    except KeyboardInterrupt:
        print_warning("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
