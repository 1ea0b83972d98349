"""foldfix - apply automated source fixes and fold them into Git history."""

from importlib import import_module
from typing import TYPE_CHECKING

__version__ = "0.1.0"

# Public API (lazy-exported to avoid import-time side effects)
__all__ = [
    # Config
    "Config", "load_config",
    # Git
    "GitRepo", "RepositoryState",
    # Patch
    "Fix", "write_patch",
    # Rules
    "RuleEngine", "TextRuleEngine",
    # Commit
    "CommitState", "FixupCommitter",
    # Core workflow
    "FoldFixWorkflow", "RunMode", "RunResult",
    # Exceptions
    "FoldFixError", "GitError", "ConfigError", "PatchWriteError", "ViolationsError",
]


def __getattr__(name: str):
    """Lazy attribute loader so ``import foldfix`` stays cheap."""
    mapping = {
        "Config": ("foldfix.config", "Config"),
        "load_config": ("foldfix.config", "load_config"),
        "GitRepo": ("foldfix.git", "GitRepo"),
        "RepositoryState": ("foldfix.snapshot", "RepositoryState"),
        "Fix": ("foldfix.patch", "Fix"),
        "write_patch": ("foldfix.patch", "write_patch"),
        "RuleEngine": ("foldfix.rules", "RuleEngine"),
        "TextRuleEngine": ("foldfix.rules", "TextRuleEngine"),
        "CommitState": ("foldfix.fixup", "CommitState"),
        "FixupCommitter": ("foldfix.fixup", "FixupCommitter"),
        "FoldFixWorkflow": ("foldfix.core", "FoldFixWorkflow"),
        "RunMode": ("foldfix.core", "RunMode"),
        "RunResult": ("foldfix.core", "RunResult"),
        "FoldFixError": ("foldfix.exceptions", "FoldFixError"),
        "GitError": ("foldfix.exceptions", "GitError"),
        "ConfigError": ("foldfix.exceptions", "ConfigError"),
        "PatchWriteError": ("foldfix.exceptions", "PatchWriteError"),
        "ViolationsError": ("foldfix.exceptions", "ViolationsError"),
    }
    if name in mapping:
        mod_name, attr = mapping[name]
        mod = import_module(mod_name)
        value = getattr(mod, attr)
        globals()[name] = value  # cache for future access
        return value
    raise AttributeError(f"module 'foldfix' has no attribute {name!r}")


if TYPE_CHECKING:
    from .config import Config, load_config
    from .core import FoldFixWorkflow, RunMode, RunResult
    from .exceptions import (
        ConfigError,
        FoldFixError,
        GitError,
        PatchWriteError,
        ViolationsError,
    )
    from .fixup import CommitState, FixupCommitter
    from .git import GitRepo
    from .patch import Fix, write_patch
    from .rules import RuleEngine, TextRuleEngine
    from .snapshot import RepositoryState
