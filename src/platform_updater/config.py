"""Configuration management for Platform-Updater."""

import logging
import os
import shutil
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import PROJECT_ROOT_NAME, PROPERTY_GROUP_NAME, TARGET_FRAMEWORK_PROPERTIES
from .merge import MergeRules
from .utils import ensure_dir, expand_path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_TEMPLATE_PATH = Path(__file__).with_name("config.toml")


def _load_default_template() -> dict[str, Any]:
    """Load the repository default config template."""
    with open(DEFAULT_CONFIG_TEMPLATE_PATH, "rb") as f:
        return tomllib.load(f)


def _merge_config_data(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge config dictionaries recursively."""
    merged = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_config_data(base_value, value)
        else:
            merged[key] = value
    return merged


def _copy_default_config(config_path: Path) -> None:
    """Copy repository template to the user config path."""
    ensure_dir(config_path.parent)
    shutil.copyfile(DEFAULT_CONFIG_TEMPLATE_PATH, config_path)


class GlobalPathsConfig(BaseModel):
    """Global path configuration."""

    state_file: Path

    @field_validator("state_file", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path) -> Path:
        """Expand path strings with ~ and environment variables."""
        if isinstance(v, str):
            return expand_path(v)
        return v


class GlobalConfig(BaseModel):
    """Global configuration section."""

    paths: GlobalPathsConfig


class MergeConfig(BaseModel):
    """Project merge configuration."""

    group_name: str = PROPERTY_GROUP_NAME
    property_names: list[str] = Field(
        default_factory=lambda: list(TARGET_FRAMEWORK_PROPERTIES),
        min_length=1,
        description="Properties replaced by the merge (must not be empty)",
    )
    root_name: str = PROJECT_ROOT_NAME
    check_root: bool = False

    def to_rules(self) -> MergeRules:
        """Build merge rules from this section."""
        return MergeRules(
            group_name=self.group_name,
            property_names=tuple(self.property_names),
            root_name=self.root_name if self.check_root else None,
        )


class GenerateConfig(BaseModel):
    """Platform generation configuration."""

    backup_project_file: bool = False
    template_dir: Path | None = None

    @field_validator("template_dir", mode="before")
    @classmethod
    def expand_template_dir(cls, v: str | Path | None) -> Path | None:
        """Expand path strings with ~ and environment variables."""
        if isinstance(v, str):
            return expand_path(v)
        return v


class Config(BaseModel):
    """Configuration for Platform-Updater."""

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    global_config: GlobalConfig = Field(alias="global")
    merge: MergeConfig = Field(default_factory=MergeConfig)
    generate: GenerateConfig = Field(default_factory=GenerateConfig)

    @property
    def state_file(self) -> Path:
        """Path to state file."""
        return self.global_config.paths.state_file

    @property
    def merge_rules(self) -> MergeRules:
        """Merge rules for patching projects."""
        return self.merge.to_rules()

    @property
    def backup_project_file(self) -> bool:
        """Whether patched projects are backed up first."""
        return self.generate.backup_project_file

    @property
    def template_dir(self) -> Path | None:
        """Custom template directory, if any."""
        return self.generate.template_dir


def get_config_path() -> Path:
    """
    Get configuration file path.

    Priority:
    1. PLATFORM_UPDATER_CONFIG environment variable
    2. Default: ~/.config/platform-updater/config.toml

    Returns:
        Path to config file
    """
    env_config = os.environ.get("PLATFORM_UPDATER_CONFIG")
    if env_config:
        return expand_path(env_config)

    return expand_path("~/.config/platform-updater/config.toml")


def create_default_config() -> Config:
    """Create default configuration from repository template."""
    return Config.model_validate(_load_default_template())


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from TOML file using Pydantic validation.

    Args:
        config_path: Optional custom config path

    Returns:
        Config instance with validated values

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        config_path = get_config_path()

    defaults = _load_default_template()

    if not config_path.exists():
        try:
            _copy_default_config(config_path)
        except (OSError, PermissionError) as e:
            logger.warning(f"Could not copy default config to {config_path}: {e}")

    if config_path.exists():
        with open(config_path, "rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

        merged_values = _merge_config_data(defaults, data)
        return Config.model_validate(merged_values)

    return Config.model_validate(defaults)
