import logging

import pytest

from foldfix.config import Config
from foldfix.core import (
    MSG_FIXED,
    MSG_FOUND,
    MSG_NO_REPOSITORY,
    MSG_STAGE_FAILED,
    FoldFixWorkflow,
    RunMode,
)
from foldfix.exceptions import ConfigError, GitError, ViolationsError
from foldfix.fixup import MSG_SINGLE_COMMIT, MSG_STAGED_ONLY, CommitState
from foldfix.git import GitRepo
from foldfix.patch import Fix, unified_diff
from foldfix.rules import RuleEngine
from foldfix.snapshot import MSG_STATUS_UNAVAILABLE


def _fix(path, original, fixed):
    return Fix(path, original, fixed, unified_diff(path, original, fixed))


def _config(root, tmp_path, **kwargs):
    kwargs.setdefault("reports_destination", str(tmp_path / "out" / "fixes.patch"))
    return Config(repo_path=str(root), **kwargs)


def _count(run_git, root):
    return int(run_git(["rev-list", "--count", "HEAD"], root))


def test_no_fixes_is_success(tmp_path):
    wf = FoldFixWorkflow(config=_config(tmp_path, tmp_path))

    result = wf.apply([])

    assert result.fixes == []
    assert result.warnings == []
    assert (tmp_path / "out" / "fixes.patch").read_text() == ""


def test_report_only_fails_without_touching_files(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "A.java").write_text("class A {}  \n")
    cfg = _config(project, tmp_path, fix_in_place=False)
    wf = FoldFixWorkflow(config=cfg)

    with pytest.raises(ViolationsError) as ei:
        wf.apply([_fix("A.java", "class A {}  \n", "class A {}\n")])

    assert str(ei.value) == MSG_FOUND
    assert ei.value.result.mode is RunMode.REPORT_ONLY
    assert (project / "A.java").read_text() == "class A {}  \n"
    patch = (tmp_path / "out" / "fixes.patch").read_text()
    assert patch.count("--- a/A.java") == 1
    assert patch.endswith("\n\n")


def test_report_only_with_ignore_failures_warns(tmp_path, caplog):
    cfg = _config(tmp_path, tmp_path, fix_in_place=False, ignore_failures=True)

    with caplog.at_level(logging.WARNING, logger="foldfix"):
        result = FoldFixWorkflow(config=cfg).apply([_fix("A.java", "a ", "a")])

    assert result.warnings == [MSG_FOUND]
    assert MSG_FOUND in caplog.text


def test_fix_in_place_with_ignore_failures_overwrites(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "A.java").write_text("class A {}  \n")
    cfg = _config(project, tmp_path, ignore_failures=True)

    result = FoldFixWorkflow(config=cfg).apply(
        [_fix("A.java", "class A {}  \n", "class A {}\n")]
    )

    assert result.mode is RunMode.FIX_IN_PLACE
    assert result.warnings == [MSG_FIXED]
    assert (project / "A.java").read_text() == "class A {}\n"


def test_fix_in_place_without_ignore_failures_fails_after_writing(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "A.java").write_text("x \n")

    with pytest.raises(ViolationsError) as ei:
        FoldFixWorkflow(config=_config(project, tmp_path)).apply([_fix("A.java", "x \n", "x\n")])

    assert "review and commit" in str(ei.value)
    assert (project / "A.java").read_text() == "x\n"


def test_auto_commit_without_repository(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "A.java").write_text("x \n")
    cfg = _config(project, tmp_path, auto_commit=True, ignore_failures=True)
    wf = FoldFixWorkflow(config=cfg)

    assert wf.git_repo is None
    result = wf.apply([_fix("A.java", "x \n", "x\n")])

    assert result.warnings == [MSG_NO_REPOSITORY, MSG_FIXED]
    assert result.commit is None
    assert (project / "A.java").read_text() == "x\n"


def test_execute_missing_rules_is_fatal_before_writing(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    (project / "A.java").write_text("x \n")

    with pytest.raises(ConfigError):
        FoldFixWorkflow(config=_config(project, tmp_path)).execute()

    assert (project / "A.java").read_text() == "x \n"
    assert not (tmp_path / "out").exists()


def test_execute_uses_injected_engine(tmp_path, rules_file):
    calls = []

    class _Engine(RuleEngine):
        def fix(self, rule_configuration, source_files, repository_root):
            calls.append((rule_configuration, list(source_files), repository_root))
            return []

    project = tmp_path / "project"
    project.mkdir()
    (project / "a.txt").write_text("a\n")
    cfg = _config(project, tmp_path, rules_path=str(rules_file))

    result = FoldFixWorkflow(config=cfg, engine=_Engine()).execute()

    assert result.fixes == []
    assert calls[0][0] == rules_file.read_text()
    assert [p.name for p in calls[0][1]] == ["a.txt"]
    assert calls[0][2] == project.resolve()


def test_second_fix_in_place_run_finds_nothing(tmp_path, rules_file):
    project = tmp_path / "project"
    project.mkdir()
    (project / "a.txt").write_text("a  \nb")
    cfg = _config(project, tmp_path, rules_path=str(rules_file), ignore_failures=True)

    first = FoldFixWorkflow(config=cfg).execute()
    second = FoldFixWorkflow(config=cfg).execute()

    assert len(first.fixes) == 1
    assert second.fixes == []
    assert (project / "a.txt").read_text() == "a\nb\n"


# ---------------------------------------------------------------------------
# Auto-commit against real repositories
# ---------------------------------------------------------------------------


@pytest.mark.integration
def test_auto_commit_fuses_into_previous_commit(make_repo, run_git, tmp_path, rules_file):
    root = make_repo(
        [{"README": "readme\n"}, {"src/A.java": "class A {}  \n"}],
        messages=["init", "add A"],
    )
    before = _count(run_git, root)
    cfg = _config(root, tmp_path, auto_commit=True, rules_path=str(rules_file))

    result = FoldFixWorkflow(config=cfg).execute()

    assert result.commit_state is CommitState.FUSED
    assert result.staged_paths == ["src/A.java"]
    assert result.warnings == []
    assert _count(run_git, root) == before
    assert run_git(["log", "-1", "--pretty=%s"], root) == "add A"
    assert run_git(["show", "HEAD:src/A.java"], root) == "class A {}"
    assert run_git(["show", "HEAD:src/A.java"], root) + "\n" == (root / "src" / "A.java").read_text()
    assert run_git(["status", "--porcelain"], root) == ""


@pytest.mark.integration
def test_auto_commit_single_commit_history(make_repo, run_git, tmp_path, rules_file):
    root = make_repo([{"A.java": "class A {}  \n"}])
    cfg = _config(root, tmp_path, auto_commit=True, rules_path=str(rules_file))

    result = FoldFixWorkflow(config=cfg).execute()

    assert result.commit_state is CommitState.COMMIT_ONLY
    assert MSG_SINGLE_COMMIT in result.warnings
    assert _count(run_git, root) == 2
    assert run_git(["log", "-1", "--pretty=%s"], root) == "Resolved rule violations."


@pytest.mark.integration
def test_auto_commit_dirty_tree_stages_only_untouched_files(
    make_repo, run_git, tmp_path, rules_file
):
    root = make_repo(
        [{"a.txt": "a\n", "b.txt": "b\n"}, {"a.txt": "a  \n"}],
    )
    # b.txt has unrelated uncommitted work (with its own violation)
    (root / "b.txt").write_text("b work in progress  \n")
    (root / "new.txt").write_text("brand new  \n")
    before = _count(run_git, root)
    cfg = _config(
        root, tmp_path, auto_commit=True, ignore_failures=True, rules_path=str(rules_file)
    )

    result = FoldFixWorkflow(config=cfg).execute()

    assert result.commit_state is CommitState.STAGED_ONLY
    assert result.staged_paths == ["a.txt"]
    assert result.warnings == [MSG_STAGED_ONLY, MSG_FIXED]
    assert run_git(["diff", "--cached", "--name-only"], root) == "a.txt"
    assert (root / "b.txt").read_text() == "b work in progress\n"
    assert _count(run_git, root) == before
    status = run_git(["status", "--porcelain"], root)
    assert " M b.txt" in status
    assert "?? new.txt" in status


@pytest.mark.integration
def test_auto_commit_dirty_tree_without_ignore_failures_fails(
    make_repo, tmp_path, rules_file
):
    root = make_repo([{"a.txt": "a\n"}, {"a.txt": "a  \n"}])
    (root / "other.txt").write_text("untracked\n")
    cfg = _config(root, tmp_path, auto_commit=True, rules_path=str(rules_file))

    with pytest.raises(ViolationsError) as ei:
        FoldFixWorkflow(config=cfg).execute()

    assert ei.value.result.commit_state is CommitState.STAGED_ONLY


@pytest.mark.integration
def test_snapshot_taken_before_writing(make_repo, monkeypatch, tmp_path):
    root = make_repo([{"a.txt": "a\n"}, {"a.txt": "a \n"}])
    repo = GitRepo(str(root))
    cfg = _config(root, tmp_path, auto_commit=True)
    seen = []
    original_status = GitRepo.status

    def recording_status(self):
        state = original_status(self)
        seen.append((state, (root / "a.txt").read_text()))
        return state

    monkeypatch.setattr(GitRepo, "status", recording_status)

    result = FoldFixWorkflow(config=cfg, repo=repo).apply([_fix("a.txt", "a \n", "a\n")])

    assert len(seen) == 1
    assert seen[0][0].is_clean is True
    assert seen[0][1] == "a \n"
    assert result.commit_state is CommitState.FUSED


def test_status_failure_falls_back_to_fix_in_place(monkeypatch, tmp_path, make_repo):
    root = make_repo([{"a.txt": "a \n"}])
    repo = GitRepo(str(root))

    def broken_status(self):
        raise GitError("index corrupt")

    monkeypatch.setattr(GitRepo, "status", broken_status)
    cfg = _config(root, tmp_path, auto_commit=True, ignore_failures=True)

    result = FoldFixWorkflow(config=cfg, repo=repo).apply([_fix("a.txt", "a \n", "a\n")])

    assert result.commit is None
    assert result.warnings == [MSG_STATUS_UNAVAILABLE, MSG_FIXED]
    assert (root / "a.txt").read_text() == "a\n"


def test_stage_failure_is_not_fatal(monkeypatch, tmp_path, make_repo, run_git):
    root = make_repo([{"a.txt": "a \n"}, {"b.txt": "b\n"}])
    repo = GitRepo(str(root))

    def broken_add(self, paths):
        raise GitError("index.lock exists")

    monkeypatch.setattr(GitRepo, "add", broken_add)
    cfg = _config(root, tmp_path, auto_commit=True, ignore_failures=True)

    result = FoldFixWorkflow(config=cfg, repo=repo).apply([_fix("a.txt", "a \n", "a\n")])

    assert result.commit_state is CommitState.FAILED
    assert result.warnings == [MSG_STAGE_FAILED, MSG_FIXED]
    assert _count(run_git, root) == 2
    assert (root / "a.txt").read_text() == "a\n"


@pytest.mark.integration
def test_auto_commit_leaves_gitignored_files_alone(make_repo, run_git, tmp_path, rules_file):
    root = make_repo(
        [{".gitignore": ".venv/\n", "README": "readme\n"}, {"b.py": "x = 1  \n"}],
        messages=["init", "add b"],
    )
    vendored = root / ".venv" / "lib" / "site.py"
    vendored.parent.mkdir(parents=True)
    vendored.write_text("vendored   \n")
    cfg = _config(root, tmp_path, auto_commit=True, rules_path=str(rules_file))

    result = FoldFixWorkflow(config=cfg).execute()

    assert [fix.source_path for fix in result.fixes] == ["b.py"]
    assert result.commit_state is CommitState.FUSED
    assert vendored.read_text() == "vendored   \n"
    assert _count(run_git, root) == 2


@pytest.mark.integration
def test_collect_sources_filters_explicit_ignored_paths(make_repo, tmp_path):
    root = make_repo([{".gitignore": "*.log\n", "a.txt": "a\n"}])
    (root / "run.log").write_text("log  \n")
    wf = FoldFixWorkflow(config=_config(root, tmp_path))

    files = wf.collect_sources([root / "a.txt", root / "run.log"])

    assert [f.name for f in files] == ["a.txt"]


@pytest.mark.integration
def test_report_inside_work_tree_does_not_block_next_fusion(
    make_repo, run_git, tmp_path, rules_file
):
    root = make_repo(
        [{"README": "readme\n"}, {"a.txt": "a  \n"}], messages=["init", "add a"]
    )
    cfg = Config(repo_path=str(root), auto_commit=True, rules_path=str(rules_file))

    first = FoldFixWorkflow(config=cfg).execute()

    assert first.commit_state is CommitState.FUSED
    assert (root / "build" / "reports" / "foldfix" / "fixes.patch").is_file()
    (root / "c.txt").write_text("c  \n")
    run_git(["add", "c.txt"], root)
    run_git(["commit", "-q", "-m", "add c"], root)

    second = FoldFixWorkflow(config=cfg).execute()

    assert second.commit_state is CommitState.FUSED
    assert second.staged_paths == ["c.txt"]
    assert run_git(["log", "-1", "--pretty=%s"], root) == "add c"
    assert _count(run_git, root) == 3
    # The report itself is never committed
    status = run_git(["status", "--porcelain", "--untracked-files=all"], root)
    assert status == "?? build/reports/foldfix/fixes.patch"
