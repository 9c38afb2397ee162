"""State management for Platform-Updater."""

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from tinydb import Query, TinyDB

from .constants import DB_TABLE_UPDATES, PlatformType
from .utils import ensure_dir


class PlatformUpdateRecord(BaseModel):
    """A completed platform update of a package.

    Pydantic model that handles serialization/deserialization to the
    TinyDB document store.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    package_name: str
    package_path: Path
    platforms: list[PlatformType] = Field(default_factory=list)
    force_regeneration: bool = False
    game_project: Path | None = None
    generated: list[Path] = Field(default_factory=list)
    updated_at: datetime


class StateManager:
    """Manages update history using TinyDB."""

    def __init__(self, state_file: Path):
        """
        Initialize state manager with TinyDB.

        Args:
            state_file: Path to state file
        """
        self.state_file = state_file
        ensure_dir(state_file.parent)

        self.db = TinyDB(state_file)
        self.updates = self.db.table(DB_TABLE_UPDATES)

    def add_record(self, record: PlatformUpdateRecord) -> None:
        """Append an update record."""
        self.updates.insert(record.model_dump(mode="json"))

    def list_records(self, package_path: Path | None = None) -> list[PlatformUpdateRecord]:
        """
        List update records, oldest first.

        Args:
            package_path: Only records of this package manifest

        Returns:
            List of PlatformUpdateRecord
        """
        if package_path is None:
            results = self.updates.all()
        else:
            Update = Query()
            results = self.updates.search(Update.package_path == str(package_path))
        records = [PlatformUpdateRecord.model_validate(r) for r in results]
        return sorted(records, key=lambda r: r.updated_at)

    def get_last_selection(self, package_path: Path) -> list[PlatformType] | None:
        """
        Get the platforms chosen in the latest update of a package.

        Args:
            package_path: Package manifest path

        Returns:
            Platform list, or None if the package was never updated
        """
        records = self.list_records(package_path)
        if not records:
            return None
        return records[-1].platforms

    def clear(self, package_path: Path | None = None) -> int:
        """
        Remove update records.

        Args:
            package_path: Only records of this package manifest (default: all)

        Returns:
            Number of removed records
        """
        if package_path is None:
            count = len(self.updates)
            self.updates.truncate()
            return count
        Update = Query()
        return len(self.updates.remove(Update.package_path == str(package_path)))
