"""Git operations for foldfix."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional, Sequence

from .exceptions import GitError
from .snapshot import RepositoryState

logger = logging.getLogger(__name__)

# Worktree-column codes meaning "modified on disk relative to the index".
_WORKTREE_CHANGE_CODES = {"M", "D", "T"}
_UNMERGED_PAIRS = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


@dataclass(frozen=True)
class RebaseStep:
    """One line of an interactive rebase plan."""

    action: str
    commit: str
    subject: str = ""

    def to_todo_line(self) -> str:
        line = f"{self.action} {self.commit}"
        if self.subject:
            line += f" {self.subject}"
        return line

    def with_action(self, action: str) -> "RebaseStep":
        return replace(self, action=action)


RebaseEditor = Callable[[list[RebaseStep]], list[RebaseStep]]


def find_git_repo_root(start_path: Optional[Path] = None) -> Optional[Path]:
    """Return the top-level Git repository directory for ``start_path``.

    Attempts ``git rev-parse --show-toplevel`` first so worktrees and
    submodules are handled correctly. Falls back to walking parent
    directories looking for a ``.git`` directory or file. Returns ``None``
    when no Git repository can be found starting from ``start_path``.
    """

    path = Path(start_path or Path.cwd()).expanduser().resolve(strict=False)
    if path.is_file():
        path = path.parent

    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=path,
            capture_output=True,
            text=True,
            check=True,
        )
        top = result.stdout.strip()
        if top:
            return Path(top).resolve(strict=False)
    except (subprocess.CalledProcessError, FileNotFoundError, NotADirectoryError):
        pass

    for candidate in (path, *path.parents):
        git_meta = candidate / ".git"
        if git_meta.exists():
            return candidate

    return None


def open_repository(start_path: Optional[Path] = None) -> Optional["GitRepo"]:
    """Open the repository containing ``start_path`` or return ``None``.

    Not being inside a Git work tree is a normal situation for foldfix, so
    it never raises for that case.
    """
    root = find_git_repo_root(start_path)
    if root is None:
        return None
    try:
        return GitRepo(str(root))
    except GitError as exc:
        logger.debug("Ignoring unusable repository at %s: %s", root, exc)
        return None


def parse_porcelain_status(output: str) -> RepositoryState:
    """Parse ``git status --porcelain=v1 -z`` output."""
    untracked: set[str] = set()
    modified: set[str] = set()
    changed: set[str] = set()
    fields = output.split("\0")
    i = 0
    while i < len(fields):
        entry = fields[i]
        i += 1
        if len(entry) < 4:
            continue
        code, path = entry[:2], entry[3:]
        changed.add(path)
        if code[0] in {"R", "C"}:
            # The rename/copy source follows as its own field.
            i += 1
        if code == "??":
            untracked.add(path)
        elif code[1] in _WORKTREE_CHANGE_CODES or code in _UNMERGED_PAIRS:
            modified.add(path)
    return RepositoryState(
        is_clean=not changed,
        untracked_paths=frozenset(untracked),
        modified_paths=frozenset(modified),
        changed_paths=frozenset(changed),
    )


class GitRepo:
    """Handles Git repository operations."""

    def __init__(self, repo_path: Optional[str] = None) -> None:
        """Initialize Git repository handler."""

        self.repo_path = Path(repo_path or ".")
        if not self._is_git_repo():
            raise GitError(f"Not a Git repository: {self.repo_path}")

    def _is_git_repo(self) -> bool:
        """Check if the current directory is a Git repository."""
        try:
            self._run_git_command(["rev-parse", "--git-dir"])
            return True
        except GitError:
            return False

    def _run_git_command(
        self, args: list[str], env: Optional[dict[str, str]] = None
    ) -> str:
        """Run a Git command and return its output."""
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=True,
                env=env,
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            cmd = " ".join(args)
            raise GitError(
                f"Git command failed: {cmd}\n{e.stderr}"
            ) from e
        except FileNotFoundError as exc:
            raise GitError(
                "Git command not found. Please install Git."
            ) from exc

    def _run_git_unchecked(self, args: list[str]) -> subprocess.CompletedProcess:
        """Run a Git command whose non-zero exit status is meaningful."""
        try:
            return subprocess.run(
                ["git"] + args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise GitError(
                "Git command not found. Please install Git."
            ) from exc

    def is_ignored(self, rel_path: str) -> bool:
        """Return True if ``rel_path`` is ignored by gitignore.

        Uses 'git check-ignore -q'. A zero exit status means ignored; 1 means
        not ignored. Other return codes are treated as not ignored so a
        legitimate file is never skipped. Directories should carry a trailing
        ``/`` so directory-only patterns match.
        """
        result = self._run_git_unchecked(["check-ignore", "-q", rel_path])
        return result.returncode == 0

    @property
    def root(self) -> Path:
        """Absolute top-level directory of the work tree."""
        top = self._run_git_command(["rev-parse", "--show-toplevel"])
        return Path(top).resolve(strict=False)

    def status(self) -> RepositoryState:
        """Return the working-tree status as a :class:`RepositoryState`."""
        try:
            result = subprocess.run(
                [
                    "git",
                    "status",
                    "--porcelain=v1",
                    "-z",
                    "--untracked-files=all",
                ],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise GitError(f"Git command failed: status\n{e.stderr}") from e
        except FileNotFoundError as exc:
            raise GitError("Git command not found. Please install Git.") from exc
        # stdout is not stripped: leading spaces are part of the status codes.
        return parse_porcelain_status(result.stdout)

    def add(self, paths: Sequence[str]) -> None:
        """Stage ``paths`` (relative to the repository root) in one call."""
        if not paths:
            return
        self._run_git_command(["add", "--"] + list(paths))

    def commit(self, message: str) -> str:
        """Create a commit with the given message and return its id."""
        self._run_git_command(["commit", "-m", message])
        return self._run_git_command(["rev-parse", "HEAD"])

    def has_head(self) -> bool:
        result = self._run_git_unchecked(["rev-parse", "--verify", "--quiet", "HEAD"])
        return result.returncode == 0

    def recent_commits(self, max_count: int = 2) -> list[str]:
        """Return up to ``max_count`` first-parent commit ids, newest first."""
        if not self.has_head():
            return []
        output = self._run_git_command(
            ["rev-list", "--first-parent", f"--max-count={max_count}", "HEAD"]
        )
        return output.split("\n") if output else []

    def parent_count(self, rev: str = "HEAD") -> int:
        """Number of parents of ``rev``; more than one means a merge."""
        output = self._run_git_command(["rev-list", "--parents", "-n", "1", rev])
        return len(output.split()) - 1

    def count_commits(self) -> int:
        if not self.has_head():
            return 0
        return int(self._run_git_command(["rev-list", "--count", "HEAD"]))

    def rebase_plan(self, upstream: str) -> list[RebaseStep]:
        """Return the default ``pick`` plan for ``upstream..HEAD``, oldest first."""
        output = self._run_git_command(
            ["log", "--reverse", "--format=%H%x00%s", f"{upstream}..HEAD"]
        )
        steps: list[RebaseStep] = []
        for line in output.split("\n"):
            if not line:
                continue
            commit, _, subject = line.partition("\0")
            steps.append(RebaseStep(action="pick", commit=commit, subject=subject))
        return steps

    def rebase_interactive(self, upstream: str, editor: RebaseEditor) -> None:
        """Run ``git rebase -i upstream`` with a plan rewritten by ``editor``.

        ``editor`` receives the plan as a list of :class:`RebaseStep` and
        returns the edited list. The edited plan replaces the todo file git
        generates, so no interactive editor is ever opened.
        """
        steps = editor(self.rebase_plan(upstream))
        todo = "".join(step.to_todo_line() + "\n" for step in steps)

        fd, todo_path = tempfile.mkstemp(prefix="foldfix-rebase-", suffix=".todo")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(todo)
            env = dict(os.environ)
            env["GIT_SEQUENCE_EDITOR"] = f"cp {shlex.quote(todo_path)}"
            env["GIT_EDITOR"] = "true"
            try:
                self._run_git_command(
                    ["rebase", "-i", "--no-autosquash", upstream], env=env
                )
            except GitError:
                self._abort_rebase()
                raise
        finally:
            os.unlink(todo_path)

    def _abort_rebase(self) -> None:
        result = self._run_git_unchecked(["rebase", "--abort"])
        if result.returncode != 0:
            logger.debug("git rebase --abort failed: %s", result.stderr.strip())

    def get_config_value(self, key: str, local: bool = True) -> Optional[str]:
        """Return a raw config value, or ``None`` when it is not set."""
        args = ["config"]
        if local:
            args.append("--local")
        result = self._run_git_unchecked(args + ["--get", key])
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            raise GitError(f"Git command failed: config --get {key}\n{result.stderr}")
        return result.stdout.strip()

    def get_config_bool(self, key: str, default: bool = False) -> bool:
        """Return the effective boolean value of ``key`` across all scopes."""
        result = self._run_git_unchecked(["config", "--type=bool", "--get", key])
        if result.returncode == 1:
            return default
        if result.returncode != 0:
            raise GitError(f"Git command failed: config --get {key}\n{result.stderr}")
        return result.stdout.strip() == "true"

    def set_config_value(self, key: str, value: str) -> None:
        self._run_git_command(["config", "--local", key, value])

    def unset_config_value(self, key: str) -> None:
        result = self._run_git_unchecked(["config", "--local", "--unset", key])
        # Exit status 5 means the key was not set, which is fine here.
        if result.returncode not in (0, 5):
            raise GitError(f"Git command failed: config --unset {key}\n{result.stderr}")
