import logging
import subprocess
from collections.abc import Generator
from pathlib import Path
from typing import Callable, Optional

import pytest

_FOLDFIX_ENV = (
    "FOLDFIX_IGNORE_FAILURES",
    "FOLDFIX_FIX_IN_PLACE",
    "FOLDFIX_AUTO_COMMIT",
    "FOLDFIX_SHOW_VIOLATIONS",
    "FOLDFIX_REPORTS_DESTINATION",
    "FOLDFIX_RULES",
    "FOLDFIX_COMMIT_MESSAGE",
)


@pytest.fixture(autouse=True)
def isolated_git_env(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> Generator[None, None, None]:
    # Keep the developer's global git config (signing, hooks, editors) out of tests
    home = tmp_path_factory.mktemp("home")
    global_config = home / ".gitconfig"
    global_config.write_text("[init]\n\tdefaultBranch = main\n")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Tester")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tester@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Tester")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tester@example.com")
    monkeypatch.delenv("GIT_DIR", raising=False)
    monkeypatch.delenv("GIT_WORK_TREE", raising=False)
    for name in _FOLDFIX_ENV:
        monkeypatch.delenv(name, raising=False)
    yield
    # The CLI installs a stderr handler bound to the captured stream
    logger = logging.getLogger("foldfix")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


def git(args: list[str], cwd: Path) -> str:
    result = subprocess.run(
        ["git"] + args,
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture
def run_git() -> Callable[[list[str], Path], str]:
    return git


@pytest.fixture
def make_repo(tmp_path: Path) -> Callable[..., Path]:
    """Create a repository with one commit per mapping in ``commits``."""

    def _make(
        commits: list[dict[str, str]], name: str = "repo", messages: Optional[list[str]] = None
    ) -> Path:
        root = tmp_path / name
        root.mkdir()
        git(["init", "-q"], root)
        for index, files in enumerate(commits):
            for rel, content in files.items():
                target = root / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(content.encode("utf-8"))
            git(["add", "-A"], root)
            message = messages[index] if messages else f"commit {index + 1}"
            git(["commit", "-q", "-m", message], root)
        return root

    return _make


@pytest.fixture
def rules_file(tmp_path: Path) -> Path:
    path = tmp_path / "rules"
    path.write_text("trailing-whitespace\nfinal-newline\n")
    return path
