"""Patch command handler for Platform-Updater."""

from pathlib import Path
from typing import cast

from rich.console import Console
from rich.syntax import Syntax

from ..config import Config
from ..display import display_merge_result
from ..merge import MergeResult, PatchParseError, patch_project_file
from ..utils import ErrorContext, handle_operation


class PatchHandler:
    """Handles merging a property fragment into a project file."""

    def __init__(self, config: Config, console: Console):
        """
        Initialize patch handler.

        Args:
            config: Application configuration
            console: Rich console for output
        """
        self.config = config
        self.console = console

    def patch(
        self,
        project_path: Path,
        fragment_text: str,
        property_names: tuple[str, ...] = (),
        dry_run: bool = False,
        backup: bool | None = None,
    ) -> MergeResult:
        """
        Merge a fragment into a project file.

        Args:
            project_path: Project file to patch
            fragment_text: Bare properties to merge
            property_names: Override of the merged property names
            dry_run: Print the merged project instead of writing it
            backup: Keep a .bak copy (default: from config)

        Returns:
            MergeResult

        Raises:
            FileNotFoundError: If the project does not exist
            PatchParseError: If the project or fragment is malformed
            OSError: If the project cannot be read or written
        """
        if not project_path.is_file():
            self.console.print(f"[red]Error:[/red] Project file not found: {project_path}")
            raise FileNotFoundError(f"Project file not found: {project_path}")

        rules = self.config.merge_rules
        if property_names:
            rules = rules.model_copy(update={"property_names": tuple(property_names)})

        if backup is None:
            backup = self.config.backup_project_file

        context = ErrorContext(
            f"Patch {project_path.name}",
            suggestions={
                PatchParseError: "Check that the project file and the fragment are well-formed XML",
                PermissionError: "Check that the project file is writable",
            },
        )
        # handle_operation only returns None when not reraising
        result = cast(
            MergeResult,
            handle_operation(
                self.console,
                lambda: patch_project_file(project_path, fragment_text, rules=rules, backup=backup, dry_run=dry_run),
                context,
                error_types=(PatchParseError, OSError),
            ),
        )

        if dry_run:
            self.console.print(Syntax(result.text, "xml"))
        else:
            display_merge_result(result, project_path, self.console)
        return result
