"""Game package model: profiles, project references and game settings."""

import logging
import tomllib
from pathlib import Path
from uuid import UUID, uuid4

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import (
    GAME_PROJECT_SUFFIX,
    ROOT_NAMESPACE_PROPERTY,
    DisplayOrientation,
    PlatformType,
    ProjectType,
)
from .merge import DEFAULT_RULES, ProjectPatchError, local_name, parse_document, read_document_text
from .utils import ensure_dir

logger = logging.getLogger(__name__)


class PackageLoadError(Exception):
    """Raised when a package manifest cannot be read or validated."""

    pass


def parse_platform(value: str) -> PlatformType:
    """
    Parse a platform name, ignoring case.

    Args:
        value: Platform name such as "windows" or "iOS"

    Returns:
        Matching PlatformType

    Raises:
        ValueError: If the name is not a known platform
    """
    wanted = value.strip().lower()
    for platform in PlatformType:
        if platform.value.lower() == wanted:
            return platform
    choices = ", ".join(platform.value for platform in PlatformType)
    raise ValueError(f"Unknown platform '{value}' (choose from: {choices})")


class ProjectReference(BaseModel):
    """A project referenced by a package profile."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: UUID = Field(default_factory=uuid4)
    location: Path
    type: ProjectType


class PackageProfile(BaseModel):
    """A build profile of a package, bound to one platform."""

    name: str
    platform: PlatformType
    project_references: list[ProjectReference] = Field(default_factory=list)

    def has_executable(self) -> bool:
        """Whether this profile references an executable project."""
        return any(ref.type == ProjectType.EXECUTABLE for ref in self.project_references)


class PackageMeta(BaseModel):
    """Package metadata."""

    name: str
    root_namespace: str | None = None


class GameSettings(BaseModel):
    """Game settings relevant to platform generation."""

    orientation: DisplayOrientation = DisplayOrientation.DEFAULT


class Package(BaseModel):
    """A game package as described by its manifest.

    Project locations in the manifest are relative to the manifest's
    directory; they are resolved on load and written back relative on save.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    meta: PackageMeta
    profiles: list[PackageProfile] = Field(default_factory=list)
    game_settings: GameSettings | None = None
    path: Path | None = Field(default=None, exclude=True)

    @property
    def directory(self) -> Path:
        """Directory holding the manifest."""
        if self.path is None:
            raise ValueError(f"Package '{self.meta.name}' has no manifest path")
        return self.path.parent

    def find_shared_profile(self) -> PackageProfile | None:
        """Get the Shared profile, if any."""
        for profile in self.profiles:
            if profile.platform == PlatformType.SHARED:
                return profile
        return None

    def find_profile(self, platform: PlatformType) -> PackageProfile | None:
        """Get the profile for a platform, if any."""
        for profile in self.profiles:
            if profile.platform == platform:
                return profile
        return None

    def executable_platforms(self) -> set[PlatformType]:
        """Platforms, other than Shared, whose profile has an executable project."""
        return {
            profile.platform
            for profile in self.profiles
            if profile.platform != PlatformType.SHARED and profile.has_executable()
        }

    @classmethod
    def load(cls, manifest_path: Path) -> "Package":
        """
        Load a package from its TOML manifest.

        Args:
            manifest_path: Path to the manifest file

        Returns:
            Package with absolute project locations

        Raises:
            PackageLoadError: If the manifest is missing or invalid
        """
        try:
            with open(manifest_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise PackageLoadError(f"Cannot read package manifest {manifest_path}: {e}") from e

        try:
            package = cls.model_validate(data)
        except ValidationError as e:
            raise PackageLoadError(f"Invalid package manifest {manifest_path}: {e}") from e

        package.path = manifest_path.resolve()
        for profile in package.profiles:
            for ref in profile.project_references:
                if not ref.location.is_absolute():
                    ref.location = (package.directory / ref.location).resolve()
        return package

    def save(self, manifest_path: Path | None = None) -> None:
        """
        Write the package manifest.

        Args:
            manifest_path: Destination; defaults to the path the package was loaded from
        """
        target = manifest_path or self.path
        if target is None:
            raise ValueError(f"Package '{self.meta.name}' has no manifest path")

        data = self.model_dump(mode="json", exclude_none=True)
        base = target.resolve().parent
        for profile in data.get("profiles", []):
            for ref in profile.get("project_references", []):
                location = Path(ref["location"])
                if location.is_relative_to(base):
                    ref["location"] = location.relative_to(base).as_posix()

        ensure_dir(target.parent)
        with open(target, "wb") as f:
            tomli_w.dump(data, f)
        self.path = target.resolve()


def find_shared_game_project(package: Package, shared_profile: PackageProfile | None) -> ProjectReference | None:
    """
    Find the game library project of the shared profile.

    The game project is the first library whose file name ends with
    "Game.csproj" (case-insensitive).

    Args:
        package: Package being updated
        shared_profile: The package's Shared profile

    Returns:
        The game project reference, or None when not found

    Raises:
        ValueError: If shared_profile is None
    """
    if shared_profile is None:
        raise ValueError("shared_profile is required")

    suffix = GAME_PROJECT_SUFFIX.lower()
    for ref in shared_profile.project_references:
        if ref.type == ProjectType.LIBRARY and str(ref.location).lower().endswith(suffix):
            return ref

    logger.error(f"Unable to find the game project reference from the package [{package.meta.name}]")
    return None


def read_project_property(project_path: Path, name: str) -> str | None:
    """
    Read the first value of a property declared in any property group.

    Args:
        project_path: MSBuild project file
        name: Property name

    Returns:
        Stripped property text, or None when absent or empty

    Raises:
        ProjectPatchError: If the project is not well-formed
        OSError: If the project cannot be read
    """
    text, _ = read_document_text(project_path)
    root = parse_document(text, str(project_path))
    for group in root:
        if not DEFAULT_RULES.matches_group(group):
            continue
        for prop in group:
            if local_name(prop) == name and prop.text and prop.text.strip():
                return prop.text.strip()
    return None


def get_default_namespace(package: Package, name: str) -> str:
    """
    Work out the root namespace for generated projects.

    Priority:
    1. The package's root namespace
    2. RootNamespace of the shared game project
    3. The package name with spaces replaced by underscores

    Args:
        package: Package being updated
        name: Package name used as fallback

    Returns:
        Namespace string
    """
    namespace = package.meta.root_namespace

    if not namespace or not namespace.strip():
        shared_profile = package.find_shared_profile()
        if shared_profile is not None:
            game_project = find_shared_game_project(package, shared_profile)
            if game_project is not None:
                try:
                    namespace = read_project_property(game_project.location, ROOT_NAMESPACE_PROPERTY)
                except (ProjectPatchError, OSError) as e:
                    logger.debug(f"Could not read {ROOT_NAMESPACE_PROPERTY} from {game_project.location}: {e}")

    if not namespace or not namespace.strip():
        namespace = name.replace(" ", "_")

    return namespace
