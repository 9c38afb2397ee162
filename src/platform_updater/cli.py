"""CLI interface for Platform-Updater."""

import logging
import sys
from pathlib import Path

# Runtime version check - must be before other imports
if sys.version_info < (3, 11):
    print("Error: Platform-Updater requires Python 3.11 or higher", file=sys.stderr)
    version = f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print(f"Current version: {version}", file=sys.stderr)
    print("\nPlease upgrade your Python installation:", file=sys.stderr)
    print("  https://www.python.org/downloads/", file=sys.stderr)
    sys.exit(1)

import click
from rich.console import Console

from . import __version__
from .commands import PatchHandler, UpdateHandler, UpdateRequest
from .config import load_config
from .constants import LOG_DATE_FORMAT, LOG_FORMAT
from .display import display_generation_report, display_history, display_profiles
from .generator import GeneratorError
from .merge import ProjectPatchError
from .project import PackageLoadError, parse_platform
from .state import StateManager
from .templates import TemplateRenderError
from .utils import expand_path

console = Console()


def _parse_platforms(ctx: click.Context, param: click.Parameter, value: tuple[str, ...]) -> tuple:
    """Click callback turning platform names into PlatformType values."""
    try:
        return tuple(parse_platform(item) for item in value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom config file path",
)
@click.option("-v", "--verbose", is_flag=True, help="Show log messages")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """Platform-Updater: Regenerate the target platforms of game packages."""
    ctx.ensure_object(dict)

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # Load configuration
    try:
        ctx.obj["config"] = load_config(config)
    except (FileNotFoundError, ValueError, OSError, PermissionError) as e:
        console.print(f"[red]Error:[/red] Configuration: {e}")
        sys.exit(1)


@cli.command()
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--platform",
    "-p",
    "platforms",
    multiple=True,
    callback=_parse_platforms,
    help="Platform to support (can be specified multiple times)",
)
@click.option(
    "--force-regeneration",
    "-f",
    is_flag=True,
    help="Regenerate platform projects that already exist",
)
@click.option(
    "--unattended",
    is_flag=True,
    help="Do not prompt; requires --platform and always regenerates projects",
)
@click.option("--name", default=None, help="Project name prefix (default: package name)")
@click.pass_context
def update(
    ctx: click.Context,
    package: Path,
    platforms: tuple,
    force_regeneration: bool,
    unattended: bool,
    name: str | None,
) -> None:
    """
    Update the platforms supported by a game package.

    Patches the target frameworks of the shared game project, generates an
    executable project for every selected platform and updates the package
    manifest. Without --platform the platforms are asked interactively.

    Examples:

        \b
        # Choose platforms interactively
        platform-updater update MyGame.gamepkg.toml

        \b
        # Support Windows and Android without prompting
        platform-updater update MyGame.gamepkg.toml --unattended -p windows -p android

        \b
        # Regenerate existing platform projects
        platform-updater update MyGame.gamepkg.toml -p windows --force-regeneration
    """
    config = ctx.obj["config"]

    if unattended and not platforms:
        console.print("[red]Error:[/red] --unattended requires at least one --platform")
        sys.exit(1)

    handler = UpdateHandler(config, console)
    request = UpdateRequest(
        platforms=platforms,
        force_regeneration=force_regeneration,
        unattended=unattended,
        name=name,
    )

    try:
        report = handler.update(package, request)
    except (ValueError, OSError, PackageLoadError, GeneratorError, ProjectPatchError, TemplateRenderError):
        sys.exit(1)

    if report is None:
        sys.exit(1)

    display_generation_report(report, console)


@cli.command()
@click.argument("project", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--fragment",
    type=click.File("r", encoding="utf-8"),
    default="-",
    help="File holding the properties to merge (default: stdin)",
)
@click.option(
    "--property",
    "property_names",
    multiple=True,
    help="Property name to replace (can be specified multiple times, default: from config)",
)
@click.option("--dry-run", is_flag=True, help="Print the merged project instead of writing it")
@click.option("--backup/--no-backup", default=None, help="Keep a .bak copy (default: from config)")
@click.pass_context
def patch(
    ctx: click.Context,
    project: Path,
    fragment,
    property_names: tuple[str, ...],
    dry_run: bool,
    backup: bool | None,
) -> None:
    """
    Merge property declarations into a project file.

    The first declaration of the merged properties found in the project's
    property groups is replaced by the declarations of the fragment; any
    later declaration is removed. Everything else is left untouched.

    Examples:

        \b
        # Set the target frameworks of a project
        echo '<TargetFrameworks>net6.0;net6.0-windows</TargetFrameworks>' | \\
            platform-updater patch MyGame.Game.csproj

        \b
        # Preview the result
        platform-updater patch MyGame.Game.csproj --fragment frameworks.xml --dry-run

        \b
        # Merge a different property
        platform-updater patch MyGame.Game.csproj --property LangVersion --fragment lang.xml
    """
    config = ctx.obj["config"]
    handler = PatchHandler(config, console)

    try:
        handler.patch(
            expand_path(str(project)),
            fragment.read(),
            property_names=property_names,
            dry_run=dry_run,
            backup=backup,
        )
    except (FileNotFoundError, ProjectPatchError, OSError):
        sys.exit(1)


@cli.command()
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def show(ctx: click.Context, package: Path) -> None:
    """
    Show the profiles and projects of a game package.

    Examples:

        \b
        platform-updater show MyGame.gamepkg.toml
    """
    config = ctx.obj["config"]
    handler = UpdateHandler(config, console)

    try:
        loaded = handler.load_package(package)
    except PackageLoadError:
        sys.exit(1)

    display_profiles(loaded, console)


@cli.command()
@click.argument("package", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--clear", is_flag=True, help="Forget recorded updates")
@click.pass_context
def history(ctx: click.Context, package: Path | None, clear: bool) -> None:
    """
    List recorded platform updates, optionally for one package.

    Examples:

        \b
        # All updates
        platform-updater history

        \b
        # Updates of one package
        platform-updater history MyGame.gamepkg.toml

        \b
        # Forget the updates of one package
        platform-updater history MyGame.gamepkg.toml --clear
    """
    config = ctx.obj["config"]
    state_manager = StateManager(config.state_file)
    package_path = package.resolve() if package else None

    if clear:
        count = state_manager.clear(package_path)
        console.print(f"[green]✓[/green] Removed {count} record(s)")
        return

    records = state_manager.list_records(package_path)
    if not records:
        console.print("No platform updates recorded.")
        return

    display_history(records, console)


if __name__ == "__main__":
    cli()
