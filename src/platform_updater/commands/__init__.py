"""Command handlers for Platform-Updater CLI."""

from .patch import PatchHandler
from .update import UpdateHandler, UpdateRequest

__all__ = ["PatchHandler", "UpdateHandler", "UpdateRequest"]
