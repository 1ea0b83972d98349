"""Custom exceptions for foldfix."""

from typing import Any, Optional


class FoldFixError(Exception):
    """Base exception for foldfix errors."""


class GitError(FoldFixError):
    """Raised when a Git operation fails."""


class ConfigError(FoldFixError):
    """Raised when configuration (or the rule configuration) is unusable."""


class PatchWriteError(FoldFixError):
    """Raised when the patch artifact or a fixed source file cannot be written."""


class ViolationsError(FoldFixError):
    """Raised when violations were found or fixed and failures are not ignored."""

    def __init__(self, message: str, result: Optional[Any] = None) -> None:
        super().__init__(message)
        self.result = result
