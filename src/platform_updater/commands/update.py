"""Update command handler for Platform-Updater."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import cast

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from ..config import Config
from ..constants import PlatformType
from ..generator import (
    GenerationReport,
    GeneratorError,
    GeneratorParameters,
    PlatformSelection,
    PlatformSelector,
    UpdatePlatformsGenerator,
)
from ..merge import PatchParseError, ProjectPatchError
from ..project import Package, PackageLoadError, parse_platform
from ..state import PlatformUpdateRecord, StateManager
from ..templates import TemplateRenderer, TemplateRenderError
from ..utils import ErrorContext, handle_operation, progress_spinner, prompt_confirm

CANCEL_ANSWERS = ("", "cancel", "none")


@dataclass
class UpdateRequest:
    """Options of a platform update."""

    platforms: tuple[PlatformType, ...] = ()
    force_regeneration: bool = False
    unattended: bool = False
    name: str | None = None


def prompt_platform_selection(
    console: Console,
    existing: set[PlatformType],
    default: list[PlatformType],
    force_default: bool,
) -> PlatformSelection | None:
    """
    Ask which platforms the package should support.

    Args:
        console: Rich console for output
        existing: Platforms that already have an executable project
        default: Platforms offered as the default answer
        force_default: Default answer for regenerating existing projects

    Returns:
        PlatformSelection, or None if the user cancelled
    """
    table = Table(title="Available Platforms")
    table.add_column("Platform", style="cyan")
    table.add_column("Status")
    for platform in PlatformType:
        if platform == PlatformType.SHARED:
            continue
        table.add_row(platform.value, "[green]✓ Has project[/green]" if platform in existing else "")
    console.print(table)

    default_answer = ", ".join(platform.value for platform in default)
    while True:
        answer = Prompt.ask(
            "Platforms to support (comma-separated, 'cancel' to abort)",
            default=default_answer,
            console=console,
        )
        if answer.strip().lower() in CANCEL_ANSWERS:
            return None

        try:
            platforms = [parse_platform(item) for item in answer.split(",") if item.strip()]
        except ValueError as e:
            console.print(f"[red]Error:[/red] {e}")
            continue
        break

    force = prompt_confirm("Regenerate platform projects that already exist?", default=force_default)
    return PlatformSelection(platforms=platforms, force_regeneration=force)


class UpdateHandler:
    """Handles platform update logic."""

    def __init__(self, config: Config, console: Console):
        """
        Initialize update handler.

        Args:
            config: Application configuration
            console: Rich console for output
        """
        self.config = config
        self.console = console
        self.state_manager = StateManager(config.state_file)
        self.generator = UpdatePlatformsGenerator(
            renderer=TemplateRenderer(config.template_dir),
            rules=config.merge_rules,
            backup=config.backup_project_file,
        )

    def load_package(self, manifest_path: Path) -> Package:
        """
        Load a package manifest, reporting failures.

        Raises:
            PackageLoadError: If the manifest cannot be loaded
        """
        context = ErrorContext(
            "Package",
            suggestions={PackageLoadError: "Check the package manifest path and its TOML syntax"},
        )
        package = handle_operation(
            self.console, lambda: Package.load(manifest_path), context, error_types=(PackageLoadError,)
        )
        return cast(Package, package)

    def _make_selector(self, package: Package, request: UpdateRequest) -> PlatformSelector:
        """Build the selector used when not running unattended."""

        def select(existing: set[PlatformType], force_default: bool) -> PlatformSelection | None:
            if request.platforms:
                return PlatformSelection(list(request.platforms), request.force_regeneration)

            last = self.state_manager.get_last_selection(package.path) if package.path else None
            default = last or [platform for platform in PlatformType if platform in existing]
            return prompt_platform_selection(self.console, existing, default, force_default)

        return select

    def update(self, manifest_path: Path, request: UpdateRequest) -> GenerationReport | None:
        """
        Update the platforms of a package.

        Args:
            manifest_path: Package manifest
            request: Update options

        Returns:
            GenerationReport, or None if the update was not performed
            (unsuitable package or cancelled selection)

        Raises:
            PackageLoadError: If the manifest cannot be loaded
            GeneratorError: If unattended without platforms
            ValueError: If the shared game project cannot be found
            ProjectPatchError: If the game project cannot be patched
            TemplateRenderError: If a template cannot be rendered
            OSError: If project files cannot be written
        """
        package = self.load_package(manifest_path)

        parameters = GeneratorParameters(
            package=package,
            name=request.name or package.meta.name,
            unattended=request.unattended,
            platforms=list(request.platforms) if request.platforms else None,
            force_regeneration=request.force_regeneration,
        )

        try:
            prepared = self.generator.prepare_for_run(parameters, self._make_selector(package, request))
        except GeneratorError as e:
            self.console.print(f"[red]Error:[/red] {e}")
            raise

        if not prepared:
            self.console.print("Platform update not performed.")
            return None

        context = ErrorContext(
            "Platform update",
            suggestions={
                PatchParseError: "Check that the game project is well-formed XML",
                TemplateRenderError: "Check the template directory in the configuration",
                PermissionError: "Check that the package directory is writable",
            },
        )
        with progress_spinner("Updating platforms...", self.console):
            report = handle_operation(
                self.console,
                lambda: self.generator.run(parameters),
                context,
                error_types=(ProjectPatchError, TemplateRenderError, OSError),
            )

        if report is None:
            self.console.print(f"[red]Error:[/red] No shared game project found in {package.meta.name}")
            raise ValueError(f"No shared game project found in {package.meta.name}")

        self.state_manager.add_record(
            PlatformUpdateRecord(
                package_name=package.meta.name,
                package_path=package.path or manifest_path,
                platforms=parameters.platforms or [],
                force_regeneration=parameters.force_regeneration,
                game_project=report.game_project,
                generated=report.generated,
                updated_at=datetime.now(),
            )
        )
        return report
