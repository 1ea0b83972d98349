"""Patch artifact writing and in-place application of fixes."""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .exceptions import PatchWriteError

logger = logging.getLogger(__name__)

NO_NEWLINE_MARKER = "\\ No newline at end of file\n"


@dataclass(frozen=True)
class Fix:
    """One file's original and fixed content plus the diff between them.

    ``source_path`` is relative to the project root.
    """

    source_path: str
    original_content: str
    fixed_content: str
    diff: str
    rules: tuple[str, ...] = ()


def unified_diff(path: str, original: str, fixed: str) -> str:
    """Return a git-style unified diff of ``original`` -> ``fixed``."""
    lines = []
    for line in difflib.unified_diff(
        original.splitlines(keepends=True),
        fixed.splitlines(keepends=True),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
    ):
        if line.endswith("\n"):
            lines.append(line)
        else:
            # Last line of a file without a trailing newline.
            lines.append(line + "\n")
            lines.append(NO_NEWLINE_MARKER)
    return "".join(lines)


def write_patch(
    fixes: Sequence[Fix],
    destination: Path,
    apply_root: Optional[Path] = None,
) -> None:
    """Write one diff block per fix to ``destination``, in input order.

    Every block is newline-terminated and followed by a blank line. When
    ``apply_root`` is given, each fixed file is also overwritten at
    ``apply_root / fix.source_path``. Any I/O failure raises
    :class:`PatchWriteError`; files written before the failure stay written.
    """
    destination = Path(destination)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("w", encoding="utf-8", newline="") as writer:
            for fix in fixes:
                block = fix.diff if fix.diff.endswith("\n") else fix.diff + "\n"
                writer.write(block + "\n")
                if apply_root is not None:
                    _overwrite_source(Path(apply_root) / fix.source_path, fix)
    except OSError as exc:
        raise PatchWriteError(f"Failed to write fixes: {exc}") from exc
    logger.debug("Wrote %d fix(es) to %s", len(fixes), destination)


def _overwrite_source(target: Path, fix: Fix) -> None:
    # newline="" keeps the fixed content's line endings byte-for-byte.
    with target.open("w", encoding="utf-8", newline="") as source_writer:
        source_writer.write(fix.fixed_content)
