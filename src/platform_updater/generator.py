"""Generator that updates the platforms supported by a game package.

Preparation validates the package and gathers the platform selection,
either from the caller (unattended) or from an interactive selector.
Running it patches the target frameworks of the shared game project and
regenerates the executable project of every selected platform.
"""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict

from .constants import (
    PROGRESS_DONE_MESSAGE,
    UPDATE_PLATFORMS_TEMPLATE_ID,
    DisplayOrientation,
    PlatformType,
    ProjectType,
)
from .merge import DEFAULT_RULES, MergeResult, MergeRules, patch_project_file
from .project import (
    Package,
    PackageProfile,
    ProjectReference,
    find_shared_game_project,
    get_default_namespace,
)
from .templates import TemplateOptions, TemplateRenderer
from .utils import atomic_write_text, ensure_dir, sanitize_directory_name

logger = logging.getLogger(__name__)


class GeneratorError(Exception):
    """Raised when the generator is used incorrectly."""

    pass


@dataclass
class PlatformSelection:
    """Platforms picked by the user and whether to regenerate existing projects."""

    platforms: list[PlatformType]
    force_regeneration: bool = False


# (platforms that already have an executable, force flag shown as default) -> selection or None on cancel
PlatformSelector = Callable[[set[PlatformType], bool], PlatformSelection | None]


class GeneratorParameters(BaseModel):
    """Inputs and gathered choices for one platform update."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    package: Package
    name: str
    unattended: bool = False
    platforms: list[PlatformType] | None = None
    force_regeneration: bool = False
    orientation: DisplayOrientation = DisplayOrientation.DEFAULT
    namespace: str | None = None


@dataclass
class GenerationReport:
    """What a generator run changed."""

    game_project: Path
    merge: MergeResult
    generated: list[Path] = field(default_factory=list)
    skipped: list[PlatformType] = field(default_factory=list)
    removed_profiles: list[PlatformType] = field(default_factory=list)


def _progress(message: str, current: int, total: int) -> None:
    logger.info(f"[{current}/{total}] {message}")


def _ordered_platforms(platforms: list[PlatformType]) -> list[PlatformType]:
    """Deduplicate, drop Shared and sort by declaration order."""
    return [platform for platform in PlatformType if platform in platforms and platform != PlatformType.SHARED]


class UpdatePlatformsGenerator:
    """Updates the platforms of a given package."""

    template_id = UUID(UPDATE_PLATFORMS_TEMPLATE_ID)

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        rules: MergeRules = DEFAULT_RULES,
        backup: bool = False,
    ):
        """
        Initialize generator.

        Args:
            renderer: Template renderer (default: bundled templates)
            rules: Merge rules used to patch the game project
            backup: Keep a .bak copy of the game project before patching
        """
        self.renderer = renderer or TemplateRenderer()
        self.rules = rules
        self.backup = backup

    def is_supporting_template(self, template_id: UUID | str | None) -> bool:
        """Return True when template_id identifies this generator."""
        if template_id is None:
            raise ValueError("template_id is required")
        if isinstance(template_id, str):
            template_id = UUID(template_id)
        return template_id == self.template_id

    def prepare_for_run(
        self,
        parameters: GeneratorParameters,
        select_platforms: PlatformSelector | None = None,
    ) -> bool:
        """
        Validate the package and gather the platform selection.

        Args:
            parameters: Generator parameters, updated in place
            select_platforms: Interactive selector, required unless unattended

        Returns:
            True if the generator can run, False if the package is not
            suitable or the user cancelled

        Raises:
            GeneratorError: If unattended without platforms, or interactive
                without a selector
        """
        if parameters is None:
            raise ValueError("parameters is required")

        package = parameters.package
        if package.game_settings is None:
            logger.error(f"Could not find game settings in package manifest [{package.path}]")
            return False

        # Without shared and executable profiles there is nothing to work on
        shared_profile = package.find_shared_profile()
        existing_platforms = package.executable_platforms()
        if shared_profile is None or not existing_platforms:
            logger.error("The selected package does not contain a shared profile with executable projects")
            return False

        namespace = get_default_namespace(package, parameters.name)

        if parameters.unattended:
            if parameters.platforms is None:
                raise GeneratorError("Platforms must be set before preparing an unattended platform update")
            parameters.force_regeneration = True
        else:
            if select_platforms is None:
                raise GeneratorError("A platform selector is required for interactive platform updates")

            selection = select_platforms(existing_platforms, parameters.force_regeneration)
            if selection is None:
                logger.info("Platform update cancelled")
                return False

            parameters.platforms = list(selection.platforms)
            parameters.force_regeneration = selection.force_regeneration

        parameters.platforms = _ordered_platforms(parameters.platforms)
        if not parameters.platforms:
            logger.error("No platform selected")
            return False

        parameters.orientation = package.game_settings.orientation
        parameters.namespace = namespace
        return True

    def run(self, parameters: GeneratorParameters) -> GenerationReport | None:
        """
        Patch the game project and regenerate platform projects.

        Args:
            parameters: Prepared generator parameters

        Returns:
            GenerationReport, or None when the shared game project is missing

        Raises:
            GeneratorError: If parameters were not prepared
            PatchParseError: If the game project is not well-formed
            TemplateRenderError: If a template cannot be rendered
            OSError: If project files cannot be read or written
        """
        if parameters is None:
            raise ValueError("parameters is required")
        if parameters.platforms is None or parameters.namespace is None:
            raise GeneratorError("Parameters must be prepared before running the generator")

        package = parameters.package
        shared_profile = package.find_shared_profile()
        if shared_profile is None:
            logger.error("The selected package does not contain a shared profile")
            return None

        game_project = find_shared_game_project(package, shared_profile)
        if game_project is None:
            return None

        # Regenerate the target frameworks of the game project
        fragment = self.renderer.render_target_frameworks(parameters.platforms)
        merge_result = patch_project_file(
            game_project.location,
            fragment,
            rules=self.rules,
            backup=self.backup,
        )

        report = GenerationReport(game_project=game_project.location, merge=merge_result)
        self.update_package_platforms(parameters, game_project, report)

        _progress(PROGRESS_DONE_MESSAGE, 1, 1)
        return report

    def update_package_platforms(
        self,
        parameters: GeneratorParameters,
        game_project: ProjectReference,
        report: GenerationReport,
    ) -> None:
        """
        Generate missing platform projects and sync package profiles.

        Existing projects are kept unless regeneration is forced. Profiles of
        platforms that are no longer selected are dropped from the package;
        their files stay on disk.

        Args:
            parameters: Prepared generator parameters
            game_project: Shared game project reference
            report: Report to fill in
        """
        package = parameters.package
        platforms = parameters.platforms or []
        total = len(platforms)

        for current, platform in enumerate(platforms, start=1):
            _progress(f"Updating platform {platform.value}", current, total)

            project_name = sanitize_directory_name(f"{parameters.name}.{platform.value}")
            project_dir = package.directory / project_name
            project_path = project_dir / f"{project_name}.csproj"

            profile = package.find_profile(platform)
            if profile is None:
                profile = PackageProfile(name=platform.value, platform=platform)
                package.profiles.append(profile)

            reference = next(
                (
                    ref
                    for ref in profile.project_references
                    if ref.type == ProjectType.EXECUTABLE and ref.location == project_path
                ),
                None,
            )
            project_id = reference.id if reference else uuid4()

            if project_path.exists() and not parameters.force_regeneration:
                logger.debug(f"Keeping existing project {project_path}")
                report.skipped.append(platform)
            else:
                ensure_dir(project_dir)
                options = TemplateOptions(
                    name=parameters.name,
                    namespace=parameters.namespace or parameters.name,
                    platforms=platforms,
                    current_platform=platform,
                    current_profile=profile.name,
                    orientation=parameters.orientation,
                    project_id=project_id,
                    game_project_id=game_project.id,
                    game_project_path=Path(os.path.relpath(game_project.location, project_dir)).as_posix(),
                )
                atomic_write_text(project_path, self.renderer.render_platform_project(options))
                report.generated.append(project_path)
                logger.info(f"Generated {project_path}")

            if reference is None:
                profile.project_references.append(
                    ProjectReference(id=project_id, location=project_path, type=ProjectType.EXECUTABLE)
                )

        kept_profiles = []
        for profile in package.profiles:
            if profile.platform == PlatformType.SHARED or profile.platform in platforms:
                kept_profiles.append(profile)
            else:
                report.removed_profiles.append(profile.platform)
                logger.info(f"Removed profile {profile.name} ({profile.platform.value}) from package")
        package.profiles = kept_profiles

        package.save()
