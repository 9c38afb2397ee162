"""Constants used throughout Platform-Updater."""

from enum import Enum


# Platform types
class PlatformType(str, Enum):
    """Target platforms a game package can build for.

    Attributes:
        SHARED: Platform-independent profile holding the game library
        WINDOWS: Windows desktop
        UWP: Universal Windows Platform
        ANDROID: Android devices
        IOS: iOS devices
        LINUX: Linux desktop
        MACOS: macOS desktop
    """

    SHARED = "Shared"
    WINDOWS = "Windows"
    UWP = "UWP"
    ANDROID = "Android"
    IOS = "iOS"
    LINUX = "Linux"
    MACOS = "macOS"


class ProjectType(str, Enum):
    """Kinds of projects referenced by a package profile."""

    EXECUTABLE = "Executable"
    LIBRARY = "Library"


class DisplayOrientation(str, Enum):
    """Display orientation requested by the game settings."""

    DEFAULT = "Default"
    LANDSCAPE_LEFT = "LandscapeLeft"
    LANDSCAPE_RIGHT = "LandscapeRight"
    PORTRAIT = "Portrait"


# Template generator identity
UPDATE_PLATFORMS_TEMPLATE_ID = "446B52D3-A6A8-4274-A357-736ADEA87321"

# MSBuild project structure
MSBUILD_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"
PROJECT_ROOT_NAME = "Project"
PROPERTY_GROUP_NAME = "PropertyGroup"
TARGET_FRAMEWORK_PROPERTIES = ("TargetFramework", "TargetFrameworks")
ROOT_NAMESPACE_PROPERTY = "RootNamespace"

# Game project discovery
GAME_PROJECT_SUFFIX = "Game.csproj"

# Target framework monikers per platform (shared game library targets)
PLATFORM_TARGET_FRAMEWORKS: dict[PlatformType, str] = {
    PlatformType.WINDOWS: "net6.0-windows",
    PlatformType.UWP: "uap10.0.16299",
    PlatformType.ANDROID: "net6.0-android",
    PlatformType.IOS: "net6.0-ios",
    PlatformType.LINUX: "net6.0",
    PlatformType.MACOS: "net6.0",
}

# Template files (package data)
TARGET_FRAMEWORKS_TEMPLATE = "Common.TargetFrameworks.targets.tmpl"
PLATFORM_PROJECT_TEMPLATE = "Platform.csproj.tmpl"

# Backup suffix for patched project files
PROJECT_BACKUP_SUFFIX = ".bak"

# Database table names
DB_TABLE_UPDATES = "updates"

# Progress reporting
PROGRESS_DONE_MESSAGE = "Done"

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
