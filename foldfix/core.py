"""Core workflow logic for foldfix."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .config import Config, load_config, resolve_rule_configuration
from .exceptions import GitError, ViolationsError
from .fixup import CommitOutcome, CommitState, FixupCommitter
from .git import GitRepo, open_repository
from .patch import Fix, write_patch
from .rules import RuleEngine, TextRuleEngine
from .snapshot import MSG_STATUS_UNAVAILABLE, RepositoryState, capture_repository_state
from .sources import IgnoreFilter, collect_source_files
from .stager import stage_fixes

logger = logging.getLogger(__name__)

MSG_FOUND = "Rule violations have been found."
MSG_FIXED = "Rule violations have been fixed. Please review and commit the changes."
MSG_NO_REPOSITORY = (
    "No Git repository found, so fixes cannot be committed automatically. "
    "Please review and commit the changes."
)
MSG_STAGE_FAILED = (
    "Failed to stage fixes, so they were not committed. Please review and "
    "commit the changes."
)


class RunMode(str, Enum):
    """How far a run goes with the fixes it finds."""

    REPORT_ONLY = "report-only"
    FIX_IN_PLACE = "fix-in-place"
    FIX_AND_COMMIT = "fix-and-commit"

    @classmethod
    def from_config(cls, config: Config) -> "RunMode":
        if config.auto_commit:
            return cls.FIX_AND_COMMIT
        if config.fix_in_place:
            return cls.FIX_IN_PLACE
        return cls.REPORT_ONLY

    @property
    def writes_files(self) -> bool:
        return self is not RunMode.REPORT_ONLY


@dataclass
class RunResult:
    """Outcome of one foldfix run."""

    mode: RunMode
    fixes: List[Fix] = field(default_factory=list)
    patch_path: Optional[Path] = None
    staged_paths: List[str] = field(default_factory=list)
    commit: Optional[CommitOutcome] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def has_violations(self) -> bool:
        return bool(self.fixes)

    @property
    def commit_state(self) -> Optional[CommitState]:
        return self.commit.state if self.commit else None


class FoldFixWorkflow:
    """Applies rule-engine fixes and optionally folds them into Git history."""

    def __init__(
        self,
        config: Optional[Config] = None,
        engine: Optional[RuleEngine] = None,
        repo: Optional[GitRepo] = None,
    ) -> None:
        """Initialize the workflow.

        The repository is resolved once here; a project outside Git is
        fine and simply disables automatic commits.
        """
        self._config = config or load_config()
        self.engine = engine or TextRuleEngine()
        self.project_root = self._config.project_root
        self.git_repo = repo if repo is not None else open_repository(self.project_root)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def mode(self) -> RunMode:
        return RunMode.from_config(self._config)

    def execute(self, source_files: Optional[Sequence[Path]] = None) -> RunResult:
        """Run the rule engine over ``source_files`` and apply its fixes.

        Without ``source_files`` the whole project root is scanned. A
        missing rule configuration raises before any file is touched.
        """
        rule_configuration = resolve_rule_configuration(self._config)
        if source_files is None:
            source_files = self.collect_sources()
        fixes = self.engine.fix(rule_configuration, list(source_files), self.project_root)
        logger.debug(
            "Rule engine produced %d fix(es) for %d file(s)", len(fixes), len(source_files)
        )
        return self.apply(fixes)

    def collect_sources(self, paths: Optional[Iterable[Path]] = None) -> List[Path]:
        """Expand ``paths`` (default: the project root) into source files.

        The patch artifact is never a source, and inside a repository
        git-ignored files and directories are skipped.
        """
        return collect_source_files(
            list(paths) if paths is not None else [self.project_root],
            self.project_root,
            include=self._config.include,
            exclude=[self._config.patch_path()],
            is_ignored=self._ignore_filter(),
        )

    def _ignore_filter(self) -> Optional[IgnoreFilter]:
        repo = self.git_repo
        if repo is None:
            return None
        # check-ignore resolves paths against the directory git runs in.
        repo_root = Path(repo.repo_path).resolve(strict=False)

        def is_ignored(path: Path, is_dir: bool) -> bool:
            rel = self._repository_relative(path, repo_root)
            if rel is None:
                return False
            return repo.is_ignored(rel + "/" if is_dir else rel)

        return is_ignored

    @staticmethod
    def _repository_relative(path: Path, repo_root: Path) -> Optional[str]:
        try:
            rel = Path(path).resolve(strict=False).relative_to(repo_root)
        except ValueError:
            return None
        return rel.as_posix() if rel.parts else None

    def apply(self, fixes: Sequence[Fix]) -> RunResult:
        """Write the patch, apply fixes and commit them as the mode requires.

        Raises :class:`ViolationsError` when violations remain the user's
        responsibility and failures are not ignored.
        """
        mode = self.mode
        result = RunResult(
            mode=mode, fixes=list(fixes), patch_path=self._config.patch_path()
        )

        # Captured before anything is written so our own writes never show up.
        state: Optional[RepositoryState] = None
        if fixes and mode is RunMode.FIX_AND_COMMIT and self.git_repo is not None:
            state = capture_repository_state(self.git_repo)
            if state is not None:
                # A report left inside the work tree by an earlier run is not
                # a local change.
                state = state.excluding(self._artifact_paths())

        write_patch(
            result.fixes,
            result.patch_path,
            apply_root=self.project_root if mode.writes_files else None,
        )

        if not fixes:
            return result

        if mode is RunMode.FIX_AND_COMMIT:
            self._commit(result, state)
            if result.commit is not None and result.commit.committed:
                return result

        return self._enforce_failure_policy(result)

    def _artifact_paths(self) -> List[str]:
        assert self.git_repo is not None
        # Status paths are relative to the top of the work tree.
        rel = self._repository_relative(self._config.patch_path(), self.git_repo.root)
        return [rel] if rel else []

    def _commit(self, result: RunResult, state: Optional[RepositoryState]) -> None:
        if self.git_repo is None:
            self._warn(result, MSG_NO_REPOSITORY)
            return
        if state is None:
            # capture_repository_state already logged the reason.
            result.warnings.append(MSG_STATUS_UNAVAILABLE)
            return

        try:
            result.staged_paths = stage_fixes(
                self.git_repo, result.fixes, state, self.project_root
            )
        except GitError as exc:
            self._warn(result, MSG_STAGE_FAILED, exc)
            result.commit = CommitOutcome(CommitState.FAILED, warning=MSG_STAGE_FAILED)
            return

        committer = FixupCommitter(
            self.git_repo,
            message=self._config.commit_message,
            commit_signing=self._config.commit_signing,
        )
        result.commit = committer.run(state)
        if result.commit.warning:
            result.warnings.append(result.commit.warning)

    def _enforce_failure_policy(self, result: RunResult) -> RunResult:
        message = MSG_FIXED if result.mode.writes_files else MSG_FOUND
        if self._config.ignore_failures:
            self._warn(result, message)
            return result
        raise ViolationsError(message, result=result)

    def _warn(
        self, result: RunResult, message: str, exc: Optional[BaseException] = None
    ) -> None:
        logger.warning(message, exc_info=exc)
        result.warnings.append(message)
