"""Point-in-time capture of the working-tree status."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from .exceptions import GitError

if TYPE_CHECKING:
    from .git import GitRepo

logger = logging.getLogger(__name__)

MSG_STATUS_UNAVAILABLE = (
    "Unable to determine whether there are uncommitted changes; fixes will "
    "not be committed automatically. Please review and commit the changes."
)


@dataclass(frozen=True)
class RepositoryState:
    """Working-tree status read once per run, before any file is written.

    Paths are relative to the repository root with ``/`` separators.
    """

    is_clean: bool
    untracked_paths: frozenset[str] = field(default_factory=frozenset)
    modified_paths: frozenset[str] = field(default_factory=frozenset)
    changed_paths: frozenset[str] = field(default_factory=frozenset)

    def has_local_changes(self, path: str) -> bool:
        """True if ``path`` was untracked or modified when captured."""
        return path in self.untracked_paths or path in self.modified_paths

    def excluding(self, paths: Iterable[str]) -> "RepositoryState":
        """Return the state as if ``paths`` had never shown up in the status.

        Used to hide foldfix's own report artifact from the clean check.
        """
        dropped = frozenset(paths)
        if self.is_clean or not dropped & self.changed_paths:
            return self
        remaining = self.changed_paths - dropped
        return RepositoryState(
            is_clean=not remaining,
            untracked_paths=self.untracked_paths - dropped,
            modified_paths=self.modified_paths - dropped,
            changed_paths=remaining,
        )


def capture_repository_state(repo: Optional["GitRepo"]) -> Optional[RepositoryState]:
    """Return the current status of ``repo`` or ``None`` when unavailable.

    ``None`` covers both "not under version control" and a failing status
    query; the latter is logged but never fatal.
    """
    if repo is None:
        return None
    try:
        return repo.status()
    except GitError as exc:
        logger.warning(MSG_STATUS_UNAVAILABLE, exc_info=exc)
        return None
