"""Filesystem, prompt and error-reporting helpers shared by the commands."""

import os
import tempfile
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, TypeVar

from pathvalidate import sanitize_filename
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm

T = TypeVar("T")


def ensure_dir(path: Path) -> Path:
    """Create path and its parents when missing, and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def expand_path(path: str) -> Path:
    """Resolve a user-supplied path after expanding ~ and $VARIABLES."""
    return Path(os.path.expanduser(os.path.expandvars(path))).resolve()


def sanitize_directory_name(name: str) -> str:
    """
    Turn a project name into a usable directory and file stem.

    Characters the platform forbids in file names (path separators
    included) become hyphens, so "My/Game.Windows" yields "My-Game.Windows".

    Args:
        name: Project name, usually "<package>.<platform>"

    Returns:
        Name safe to use as a directory and project file stem
    """
    return sanitize_filename(name, replacement_text="-")


def prompt_confirm(message: str, default: bool = False) -> bool:
    """Ask a yes/no question on the terminal."""
    return Confirm.ask(message, default=default)


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """
    Replace a file's content through a temporary sibling and a rename.

    The temporary file lives in the destination directory so the final
    os.replace() stays on one filesystem. On failure the destination keeps
    its previous content and the temporary file is removed.

    Args:
        path: Destination file
        content: Text to write
        encoding: Text encoding

    Raises:
        OSError: If the temporary file cannot be written or renamed
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


@contextmanager
def progress_spinner(description: str, console: Console) -> Iterator[tuple[Progress, int]]:
    """Show a transient spinner while the with-block runs; yields (progress, task_id)."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=None)
        yield progress, task


class ErrorContext:
    """What to print when an operation run by handle_operation fails.

    Attributes:
        error_prefix: Name of the operation, printed before the error
        suggestions: Hint per exception type; subclasses match their parents
    """

    def __init__(self, error_prefix: str, suggestions: dict[type[Exception], str] | None = None):
        self.error_prefix = error_prefix
        self.suggestions = suggestions or {}


def handle_operation(
    console: Console,
    operation: Callable[[], T],
    context: ErrorContext,
    error_types: tuple[type[Exception], ...] | None = None,
    reraise: bool = True,
) -> T | None:
    """
    Run operation, reporting failures on the console.

    A failure prints one "Error:" line and, when available, a hint taken
    from the context. OSErrors without a hint get a generic one about
    permissions and disk space.

    Args:
        console: Rich console for output
        operation: Zero-argument callable doing the work
        context: Operation name and hints
        error_types: Exceptions to report; others propagate unprinted (None reports all)
        reraise: Re-raise a reported exception instead of returning None

    Returns:
        The operation's result, or None after a reported failure when not reraising
    """
    try:
        return operation()
    except Exception as e:
        if error_types and not isinstance(e, error_types):
            raise

        console.print(f"[red]Error:[/red] {context.error_prefix}: {e}")

        suggestion = next(
            (text for exc_type, text in context.suggestions.items() if isinstance(e, exc_type)),
            None,
        )
        if suggestion:
            console.print(f"[cyan]Suggestion:[/cyan] {suggestion}")
        elif isinstance(e, OSError):
            console.print("[cyan]Suggestion:[/cyan] Check file permissions and disk space")

        if reraise:
            raise
        return None
