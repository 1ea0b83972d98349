"""Expand command-line paths into the list of source files to check."""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

SKIP_DIRS = {".git", ".foldfix", ".hg", ".svn", "__pycache__", "node_modules"}

# Receives an absolute path and whether it is a directory.
IgnoreFilter = Callable[[Path, bool], bool]


def _matches(path: Path, root: Path, include: Sequence[str]) -> bool:
    if not include:
        return True
    try:
        rel = path.relative_to(root).as_posix()
    except ValueError:
        rel = path.as_posix()
    return any(
        fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(path.name, pattern)
        for pattern in include
    )


def collect_source_files(
    paths: Iterable[Path],
    root: Path,
    include: Optional[Sequence[str]] = None,
    exclude: Optional[Iterable[Path]] = None,
    is_ignored: Optional[IgnoreFilter] = None,
) -> list[Path]:
    """Return files under ``paths`` in a stable order without duplicates.

    Directories are walked recursively (skipping VCS metadata); ``include``
    glob patterns are matched against the root-relative path or file name.
    Paths in ``exclude`` (for example the patch artifact) are never returned.
    When ``is_ignored`` is given, ignored directories are pruned from the walk
    and ignored files are dropped.
    """
    root = Path(root).resolve(strict=False)
    patterns = list(include or [])
    excluded = {Path(p).resolve(strict=False) for p in (exclude or [])}
    seen: set[Path] = set()
    files: list[Path] = []

    def consider(candidate: Path) -> None:
        resolved = candidate.resolve(strict=False)
        if resolved in seen or resolved in excluded:
            return
        if not _matches(resolved, root, patterns):
            return
        if is_ignored is not None and is_ignored(resolved, False):
            return
        seen.add(resolved)
        files.append(resolved)

    for raw in paths:
        path = Path(raw)
        if not path.is_absolute():
            path = root / path
        path = path.resolve(strict=False)
        if path.is_dir():
            if is_ignored is not None and is_ignored(path, True):
                continue
            for dirpath, dirnames, filenames in os.walk(path):
                current = Path(dirpath)
                dirnames[:] = sorted(
                    name
                    for name in dirnames
                    if name not in SKIP_DIRS
                    and not (is_ignored is not None and is_ignored(current / name, True))
                )
                for name in sorted(filenames):
                    consider(current / name)
        elif path.is_file():
            consider(path)
    return files
