"""Display functions for Platform-Updater CLI output."""

from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .generator import GenerationReport
from .merge import MergeResult
from .project import Package
from .state import PlatformUpdateRecord


def display_merge_result(result: MergeResult, project_path: Path, console: Console) -> None:
    """
    Display the outcome of a project merge.

    Args:
        result: Merge result
        project_path: Patched project file
        console: Rich console instance for output
    """
    if not result.replaced:
        console.print(
            Panel(
                f"[yellow]Warning:[/yellow] {project_path} declares none of the merged properties.\n"
                "The project was left unchanged.",
                title="Nothing to merge",
                border_style="yellow",
            )
        )
        return

    console.print(
        f"[green]✓[/green] Patched {project_path}: "
        f"{result.inserted} inserted, {result.removed} duplicate(s) removed"
    )


def display_generation_report(report: GenerationReport, console: Console) -> None:
    """
    Display what a platform update changed.

    Args:
        report: Generator report
        console: Rich console instance for output
    """
    display_merge_result(report.merge, report.game_project, console)

    table = Table(title="Platform Projects")
    table.add_column("Project", style="cyan")
    table.add_column("Status", style="green")

    for path in report.generated:
        table.add_row(path.name, "✓ Generated")
    for platform in report.skipped:
        table.add_row(platform.value, "[blue]✓ Kept existing[/blue]")
    for platform in report.removed_profiles:
        table.add_row(platform.value, "[yellow]✗ Profile removed[/yellow]")

    console.print(table)


def display_profiles(package: Package, console: Console) -> None:
    """
    Display the profiles of a package in a table.

    Args:
        package: Loaded package
        console: Rich console instance for output
    """
    table = Table(title=f"Profiles of {package.meta.name}")
    table.add_column("Profile", style="cyan")
    table.add_column("Platform", style="magenta")
    table.add_column("Type", style="green")
    table.add_column("Project")

    for profile in package.profiles:
        if not profile.project_references:
            table.add_row(profile.name, profile.platform.value, "-", "None")
            continue
        for ref in profile.project_references:
            table.add_row(profile.name, profile.platform.value, ref.type.value, str(ref.location))

    console.print(table)

    if package.game_settings is None:
        console.print("[yellow]Warning:[/yellow] Package has no game settings")
    else:
        console.print(f"Orientation: {package.game_settings.orientation.value}")


def display_history(records: list[PlatformUpdateRecord], console: Console) -> None:
    """
    Display recorded platform updates in a table.

    Args:
        records: Update records
        console: Rich console instance for output
    """
    table = Table(title="Platform Updates")
    table.add_column("Package", style="cyan")
    table.add_column("Platforms", style="magenta")
    table.add_column("Forced", style="green")
    table.add_column("Updated", style="yellow")

    for record in records:
        table.add_row(
            record.package_name,
            ", ".join(platform.value for platform in record.platforms) or "None",
            "yes" if record.force_regeneration else "no",
            record.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
