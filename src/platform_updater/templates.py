"""Template rendering for generated project files."""

import logging
from pathlib import Path
from string import Template
from uuid import UUID, uuid4
from xml.sax.saxutils import escape

from pydantic import BaseModel, Field

from .constants import (
    PLATFORM_PROJECT_TEMPLATE,
    PLATFORM_TARGET_FRAMEWORKS,
    TARGET_FRAMEWORK_PROPERTIES,
    TARGET_FRAMEWORKS_TEMPLATE,
    DisplayOrientation,
    PlatformType,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).with_name("templates")


class TemplateRenderError(Exception):
    """Raised when a template is missing or cannot be rendered."""

    pass


class TemplateOptions(BaseModel):
    """Values available to project templates."""

    name: str
    namespace: str
    platforms: list[PlatformType]
    current_platform: PlatformType
    current_profile: str | None = None
    orientation: DisplayOrientation = DisplayOrientation.DEFAULT
    project_id: UUID = Field(default_factory=uuid4)
    game_project_id: UUID
    game_project_path: str


def target_frameworks_for(platforms: list[PlatformType] | set[PlatformType]) -> list[str]:
    """
    Get the target frameworks the shared game library must build for.

    Frameworks follow platform declaration order and appear once even when
    several platforms share one.

    Args:
        platforms: Selected platforms

    Returns:
        Ordered list of target framework monikers
    """
    frameworks: list[str] = []
    for platform in PlatformType:
        if platform not in platforms:
            continue
        framework = PLATFORM_TARGET_FRAMEWORKS.get(platform)
        if framework and framework not in frameworks:
            frameworks.append(framework)
    return frameworks


def output_type_for(platform: PlatformType) -> str:
    """MSBuild OutputType of the executable project for a platform."""
    return "WinExe" if platform == PlatformType.WINDOWS else "Exe"


class TemplateRenderer:
    """Renders project templates from a template directory."""

    def __init__(self, template_dir: Path | None = None):
        """
        Initialize renderer.

        Args:
            template_dir: Directory holding *.tmpl files (default: bundled templates)
        """
        self.template_dir = template_dir or DEFAULT_TEMPLATE_DIR

    def load(self, name: str) -> Template:
        """Load a template by file name."""
        path = self.template_dir / name
        try:
            return Template(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise TemplateRenderError(f"Cannot load template {path}: {e}") from e

    def render(self, name: str, values: dict[str, str]) -> str:
        """
        Render a template.

        Args:
            name: Template file name
            values: Substitution values, already escaped for their context

        Returns:
            Rendered text

        Raises:
            TemplateRenderError: If the template is missing or references an unknown value
        """
        template = self.load(name)
        try:
            return template.substitute(values)
        except KeyError as e:
            raise TemplateRenderError(f"Template {name} references unknown value {e}") from e
        except ValueError as e:
            raise TemplateRenderError(f"Template {name} is malformed: {e}") from e

    def render_target_frameworks(self, platforms: list[PlatformType]) -> str:
        """
        Render the target frameworks fragment of the shared game project.

        A single framework is declared as TargetFramework, several as
        TargetFrameworks separated by semicolons.

        Args:
            platforms: Selected platforms

        Returns:
            Fragment text holding bare properties

        Raises:
            TemplateRenderError: If no selected platform maps to a framework
        """
        frameworks = target_frameworks_for(platforms)
        if not frameworks:
            raise TemplateRenderError("None of the selected platforms has a target framework")

        single, multiple = TARGET_FRAMEWORK_PROPERTIES
        values = {
            "property": single if len(frameworks) == 1 else multiple,
            "frameworks": escape(";".join(frameworks)),
        }
        fragment = self.render(TARGET_FRAMEWORKS_TEMPLATE, values).strip()
        logger.debug(f"Rendered target frameworks fragment: {fragment}")
        return fragment

    def render_platform_project(self, options: TemplateOptions) -> str:
        """Render the executable project of one platform."""
        framework = PLATFORM_TARGET_FRAMEWORKS.get(options.current_platform)
        if framework is None:
            raise TemplateRenderError(f"Platform {options.current_platform.value} has no target framework")

        values = {
            "output_type": output_type_for(options.current_platform),
            "target_framework": framework,
            "namespace": escape(options.namespace),
            "assembly_name": escape(f"{options.name}.{options.current_platform.value}"),
            "project_id": str(options.project_id).upper(),
            "platform": options.current_platform.value,
            "profile": escape(options.current_profile or options.current_platform.value),
            "orientation": options.orientation.value,
            "game_project_path": escape(options.game_project_path, {'"': "&quot;"}),
            "game_project_id": str(options.game_project_id).upper(),
        }
        return self.render(PLATFORM_PROJECT_TEMPLATE, values)
