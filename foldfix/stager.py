"""Selective staging of fixed files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from .patch import Fix
from .snapshot import RepositoryState

if TYPE_CHECKING:
    from .git import GitRepo

logger = logging.getLogger(__name__)


def repository_path(fix: Fix, project_root: Path, repository_root: Path) -> str:
    """Return the path of ``fix`` relative to the repository root."""
    absolute = os.path.normpath(Path(project_root).resolve(strict=False) / fix.source_path)
    return Path(os.path.relpath(absolute, Path(repository_root).resolve(strict=False))).as_posix()


def plan_staging(
    fixes: Sequence[Fix],
    state: RepositoryState,
    project_root: Path,
    repository_root: Path,
) -> list[str]:
    """Return the repository paths to stage, in fix order.

    (1) With a clean tree every fixed file is staged so the fix can be
    committed and folded into the previous commit.
    (2) Otherwise only files without local changes at snapshot time are
    staged; untracked or modified files keep their uncommitted state.
    """
    plan: list[str] = []
    for fix in fixes:
        path = repository_path(fix, project_root, repository_root)
        if state.is_clean or not state.has_local_changes(path):
            if path not in plan:
                plan.append(path)
        else:
            logger.debug("Leaving %s unstaged: it had uncommitted changes", path)
    return plan


def stage_fixes(
    repo: "GitRepo",
    fixes: Sequence[Fix],
    state: RepositoryState,
    project_root: Path,
) -> list[str]:
    """Stage the eligible fixed files and return the staged paths.

    Raises :class:`~foldfix.exceptions.GitError` when ``git add`` fails.
    """
    plan = plan_staging(fixes, state, project_root, repo.root)
    repo.add(plan)
    return plan
