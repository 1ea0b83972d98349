"""Commit staged fixes and fold them into the previous commit."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from .exceptions import GitError
from .git import GitRepo, RebaseStep
from .snapshot import RepositoryState

logger = logging.getLogger(__name__)

SIGNING_KEY = "commit.gpgsign"
DEFAULT_COMMIT_MESSAGE = "Resolved rule violations."

MSG_STAGED_ONLY = (
    "Fixes have been staged but not committed because there were uncommitted "
    "changes. Please review and commit the changes."
)
MSG_SINGLE_COMMIT = (
    "Leaving fixes as a separate commit because there is only one commit in "
    "the history; folding into the first commit of a repository is not supported."
)
MSG_MERGE_HEAD = (
    "Leaving fixes as a separate commit because the previous commit is a merge; "
    "folding into a merge commit is not supported."
)
MSG_COMMIT_FAILED = (
    "Failed to automatically commit fixes. Please review and commit the changes."
)
MSG_RESTORE_FAILED = (
    "Failed to restore the previous commit.gpgsign setting. Please check it "
    "with 'git config --local commit.gpgsign'."
)


class CommitState(str, Enum):
    """Terminal states of the fixup committer."""

    STAGED_ONLY = "staged-only"
    COMMIT_ONLY = "commit-only"
    FUSED = "fused"
    FAILED = "failed"


@dataclass
class CommitOutcome:
    """Result of a commit attempt."""

    state: CommitState
    commit_id: Optional[str] = None
    warning: Optional[str] = None

    @property
    def committed(self) -> bool:
        return self.state in (CommitState.COMMIT_ONLY, CommitState.FUSED)


def fold_into_previous(steps: list[RebaseStep]) -> list[RebaseStep]:
    """Mark the second step of a rebase plan as ``fixup``.

    ``fixup`` merges the commit into its predecessor and keeps the
    predecessor's message unchanged.
    """
    if len(steps) < 2:
        raise GitError(f"Expected at least two commits to rebase, got {len(steps)}")
    edited = list(steps)
    edited[1] = edited[1].with_action("fixup")
    return edited


@contextlib.contextmanager
def scoped_commit_signing(
    repo: GitRepo, required: Optional[bool]
) -> Iterator[bool]:
    """Temporarily force ``commit.gpgsign`` to ``required``.

    Yields whether the configuration was changed. The previous
    repository-local value (or its absence) is restored on every exit path.
    """
    if required is None or repo.get_config_bool(SIGNING_KEY, default=False) == required:
        yield False
        return

    original = repo.get_config_value(SIGNING_KEY, local=True)
    repo.set_config_value(SIGNING_KEY, "true" if required else "false")
    try:
        yield True
    finally:
        try:
            if original is None:
                repo.unset_config_value(SIGNING_KEY)
            else:
                repo.set_config_value(SIGNING_KEY, original)
        except GitError as exc:
            # The commit outcome stands; only the setting is left behind.
            logger.warning(MSG_RESTORE_FAILED, exc_info=exc)


class FixupCommitter:
    """Commits staged fixes and folds the commit into its predecessor."""

    def __init__(
        self,
        repo: GitRepo,
        message: str = DEFAULT_COMMIT_MESSAGE,
        commit_signing: Optional[bool] = None,
    ) -> None:
        self.repo = repo
        self.message = message
        self.commit_signing = commit_signing

    def run(self, state: RepositoryState) -> CommitOutcome:
        """Drive the commit from the captured ``state`` to a terminal state."""
        if not state.is_clean:
            logger.warning(MSG_STAGED_ONLY)
            return CommitOutcome(CommitState.STAGED_ONLY, warning=MSG_STAGED_ONLY)

        try:
            with scoped_commit_signing(self.repo, self.commit_signing):
                return self._commit_and_fold()
        except (GitError, OSError) as exc:
            logger.warning(MSG_COMMIT_FAILED, exc_info=exc)
            return CommitOutcome(CommitState.FAILED, warning=MSG_COMMIT_FAILED)

    def _commit_and_fold(self) -> CommitOutcome:
        last_two = self.repo.recent_commits(2)
        merge_head = bool(last_two) and self.repo.parent_count(last_two[0]) > 1
        commit_id = self.repo.commit(self.message)

        if merge_head:
            logger.warning(MSG_MERGE_HEAD)
            return CommitOutcome(
                CommitState.COMMIT_ONLY, commit_id=commit_id, warning=MSG_MERGE_HEAD
            )

        if len(last_two) <= 1:
            logger.warning(MSG_SINGLE_COMMIT)
            return CommitOutcome(
                CommitState.COMMIT_ONLY, commit_id=commit_id, warning=MSG_SINGLE_COMMIT
            )

        self.repo.rebase_interactive(last_two[1], fold_into_previous)
        fused_id = self.repo.recent_commits(1)[0]
        logger.info("Folded fixes into commit %s", fused_id[:12])
        return CommitOutcome(CommitState.FUSED, commit_id=fused_id)
