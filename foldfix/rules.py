"""Rule engine interface and the built-in text rules."""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from .exceptions import ConfigError
from .patch import Fix, unified_diff

logger = logging.getLogger(__name__)


class RuleEngine(ABC):
    """Abstract base for engines that turn source files into fixes.

    The workflow only cares whether a file changed: implementations return
    one :class:`Fix` per changed file, in the order the files were given,
    with ``source_path`` relative to ``repository_root``.
    """

    @abstractmethod
    def fix(
        self,
        rule_configuration: str,
        source_files: Sequence[Path],
        repository_root: Path,
    ) -> list[Fix]:
        raise NotImplementedError


@dataclass(frozen=True)
class Rule:
    name: str
    apply: Callable[[str], str]


def _tabs_to_spaces(width: int) -> Callable[[str], str]:
    leading = re.compile(r"^[ \t]+", re.MULTILINE)

    def apply(text: str) -> str:
        return leading.sub(lambda m: m.group(0).expandtabs(width), text)

    return apply


def _trailing_whitespace(text: str) -> str:
    return re.sub(r"[ \t]+(?=\r?\n|\Z)", "", text)


def _line_endings(style: str) -> Callable[[str], str]:
    ending = "\r\n" if style == "crlf" else "\n"

    def apply(text: str) -> str:
        return re.sub(r"\r\n|\r|\n", ending, text)

    return apply


def _blank_lines_at_eof(text: str) -> str:
    stripped = re.sub(r"(?:\r?\n[ \t]*)+\Z", "", text)
    if stripped == text:
        return text
    # Keep one line terminator; final-newline decides whether it stays.
    match = re.search(r"\r?\n", text[len(stripped):])
    return stripped + (match.group(0) if match and stripped else "")


def _final_newline(text: str) -> str:
    if not text or text.endswith("\n"):
        return text
    ending = "\r\n" if "\r\n" in text else "\n"
    return text + ending


# Order matters: applying the rules in this order reaches a fixed point in
# a single pass.
RULE_ORDER = (
    "tabs-to-spaces",
    "trailing-whitespace",
    "line-endings",
    "blank-lines-at-eof",
    "final-newline",
)


def _build_rule(name: str, argument: Optional[str], line_no: int) -> Rule:
    if name == "tabs-to-spaces":
        try:
            width = int(argument) if argument is not None else 4
        except ValueError as exc:
            raise ConfigError(
                f"Rule configuration line {line_no}: tab width must be an integer"
            ) from exc
        if width < 1:
            raise ConfigError(
                f"Rule configuration line {line_no}: tab width must be positive"
            )
        return Rule(name, _tabs_to_spaces(width))
    if name == "line-endings":
        style = (argument or "lf").lower()
        if style not in {"lf", "crlf"}:
            raise ConfigError(
                f"Rule configuration line {line_no}: line-endings must be lf or crlf"
            )
        return Rule(name, _line_endings(style))
    if argument is not None:
        raise ConfigError(
            f"Rule configuration line {line_no}: {name} takes no argument"
        )
    if name == "trailing-whitespace":
        return Rule(name, _trailing_whitespace)
    if name == "blank-lines-at-eof":
        return Rule(name, _blank_lines_at_eof)
    if name == "final-newline":
        return Rule(name, _final_newline)
    raise ConfigError(f"Rule configuration line {line_no}: unknown rule {name!r}")


def parse_rule_configuration(text: str) -> list[Rule]:
    """Parse rule configuration text into rules in application order."""
    rules: dict[str, Rule] = {}
    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        parts = line.split()
        if len(parts) > 2:
            raise ConfigError(
                f"Rule configuration line {line_no}: expected '<rule> [argument]'"
            )
        name = parts[0].lower()
        argument = parts[1] if len(parts) == 2 else None
        rules[name] = _build_rule(name, argument, line_no)
    if not rules:
        raise ConfigError("Rule configuration does not enable any rules")
    return [rules[name] for name in RULE_ORDER if name in rules]


class TextRuleEngine(RuleEngine):
    """Whitespace and line-ending rules for any UTF-8 text file."""

    def fix(
        self,
        rule_configuration: str,
        source_files: Sequence[Path],
        repository_root: Path,
    ) -> list[Fix]:
        rules = parse_rule_configuration(rule_configuration)
        root = Path(repository_root).resolve(strict=False)
        fixes: list[Fix] = []
        for source in source_files:
            path = Path(source)
            if not path.is_absolute():
                path = root / path
            original = self._read(path)
            if original is None:
                continue
            fixed = original
            changed_by: list[str] = []
            for rule in rules:
                updated = rule.apply(fixed)
                if updated != fixed:
                    changed_by.append(rule.name)
                    fixed = updated
            if not changed_by:
                continue
            source_path = Path(os.path.relpath(path, root)).as_posix()
            fixes.append(
                Fix(
                    source_path=source_path,
                    original_content=original,
                    fixed_content=fixed,
                    diff=unified_diff(source_path, original, fixed),
                    rules=tuple(changed_by),
                )
            )
        return fixes

    def _read(self, path: Path) -> Optional[str]:
        try:
            with path.open("r", encoding="utf-8", newline="") as handle:
                return handle.read()
        except UnicodeDecodeError:
            logger.debug("Skipping %s: not UTF-8 text", path)
            return None
