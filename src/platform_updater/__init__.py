"""Platform-Updater: regenerate the target platforms of game packages."""

__version__ = "0.1.0"
