"""Exception types raised before or while staging a build."""
from __future__ import annotations

from pathlib import Path


class AssetBundlerError(RuntimeError):
    """Base class for errors that abort a run with exit status 1."""


class ConfigurationError(AssetBundlerError, ValueError):
    """Raised for invalid or inconsistent configuration."""


class StagingError(AssetBundlerError):
    """Raised when the workspace cannot be populated."""

    def __init__(self, message: str, *, bundle: str | None = None, path: Path | None = None) -> None:
        super().__init__(message)
        self.bundle = bundle
        self.path = path
