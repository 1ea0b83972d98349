"""Command-line interface for foldfix."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .config import Config, load_config, save_config
from .core import FoldFixWorkflow, RunResult
from .exceptions import ConfigError, FoldFixError, PatchWriteError, ViolationsError
from .fixup import CommitState

RESET = "\033[0m"
BOLD = "\033[1m"
CYAN = "\033[96m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
DIM = "\033[2m"
RED = "\033[91m"

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_FATAL = 2


class CLI:
    """Argument parsing and result rendering for foldfix."""

    def __init__(self) -> None:
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="foldfix",
            description=(
                "Fix rule violations, write a reviewable patch and optionally "
                "fold the fixes into the previous Git commit."
            ),
        )
        parser.add_argument(
            "paths",
            nargs="*",
            help="Files or directories to check (default: the whole project)",
        )
        parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
        parser.add_argument("--repo-path", help="Project root (default: current directory)")
        parser.add_argument("--rules", dest="rules_path", help="Rule configuration file")
        parser.add_argument(
            "--reports-destination",
            "--patch",
            dest="reports_destination",
            help="Where to write the patch artifact",
        )
        parser.add_argument(
            "--include",
            action="append",
            metavar="GLOB",
            help="Only check files matching GLOB (repeatable)",
        )
        parser.add_argument(
            "--ignore-failures",
            action="store_const",
            const=True,
            default=None,
            help="Warn instead of failing when violations are found or fixed",
        )
        mode = parser.add_mutually_exclusive_group()
        mode.add_argument(
            "--report-only",
            dest="fix_in_place",
            action="store_const",
            const=False,
            default=None,
            help="Only write the patch; leave source files untouched",
        )
        mode.add_argument(
            "--fix-in-place",
            dest="fix_in_place",
            action="store_const",
            const=True,
            help="Overwrite source files with their fixes (default)",
        )
        parser.add_argument(
            "--auto-commit",
            action="store_const",
            const=True,
            default=None,
            help="Commit the fixes and fold them into the previous commit",
        )
        parser.add_argument("--commit-message", help="Message for the fix commit")
        signing = parser.add_mutually_exclusive_group()
        signing.add_argument(
            "--sign-commits",
            dest="commit_signing",
            action="store_const",
            const=True,
            default=None,
            help="Force commit.gpgsign on while committing fixes",
        )
        signing.add_argument(
            "--no-sign-commits",
            dest="commit_signing",
            action="store_const",
            const=False,
            help="Force commit.gpgsign off while committing fixes",
        )
        parser.add_argument(
            "--quiet",
            dest="show_violations",
            action="store_const",
            const=False,
            default=None,
            help="Do not print the fixes on the console",
        )
        parser.add_argument(
            "--save-config",
            action="store_true",
            help="Persist the effective options to .foldfix/config.json",
        )
        parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
        return parser

    def run(self, args: Optional[list[str]] = None) -> int:
        try:
            parsed = self.parser.parse_args(args)
        except SystemExit as exc:
            return int(exc.code or 0)

        self._configure_logging(parsed.verbose)

        overrides: Dict[str, Any] = {
            "repo_path": parsed.repo_path,
            "rules_path": parsed.rules_path,
            "reports_destination": parsed.reports_destination,
            "include": parsed.include,
            "ignore_failures": parsed.ignore_failures,
            "fix_in_place": parsed.fix_in_place,
            "auto_commit": parsed.auto_commit,
            "commit_message": parsed.commit_message,
            "commit_signing": parsed.commit_signing,
            "show_violations": parsed.show_violations,
        }
        try:
            config = load_config(
                overrides={k: v for k, v in overrides.items() if v is not None}
            )
            if parsed.save_config:
                saved = save_config(config)
                self._print_info(f"Saved configuration to {saved}")

            workflow = FoldFixWorkflow(config=config)
            sources = None
            if parsed.paths:
                sources = workflow.collect_sources(
                    Path(p).resolve() for p in parsed.paths
                )
            result = workflow.execute(sources)
        except ViolationsError as exc:
            if exc.result is not None:
                self._display_result(exc.result, config)
            self._print_error(str(exc))
            return EXIT_VIOLATIONS
        except (ConfigError, PatchWriteError) as exc:
            self._print_error(str(exc))
            return EXIT_FATAL
        except FoldFixError as exc:
            self._print_error(f"foldfix failed: {exc}")
            return EXIT_FATAL
        except OSError as exc:
            self._print_error(f"foldfix failed: {exc}")
            return EXIT_FATAL

        self._display_result(result, config)
        return EXIT_OK

    def _configure_logging(self, verbose: bool) -> None:
        root = logging.getLogger("foldfix")
        # Replace the handler from a previous run so it follows the current stderr.
        for existing in list(root.handlers):
            if getattr(existing, "_foldfix_cli", False):
                root.removeHandler(existing)
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(f"{YELLOW}%(levelname)s{RESET}: %(message)s"))
        handler._foldfix_cli = True  # type: ignore[attr-defined]
        root.addHandler(handler)
        root.setLevel(logging.DEBUG if verbose else logging.WARNING)

    def _display_result(self, result: RunResult, config: Config) -> None:
        if config.show_violations:
            for fix in result.fixes:
                rules = ", ".join(fix.rules) if fix.rules else "changed"
                print(f"{BOLD}{CYAN}{fix.source_path}{RESET} {DIM}({rules}){RESET}")
                print(fix.diff, end="" if fix.diff.endswith("\n") else "\n")

        if not result.fixes:
            print(f"{GREEN}✓ No rule violations found.{RESET}")
            return

        print(
            f"{BOLD}{len(result.fixes)} file(s) with violations{RESET}; "
            f"patch written to {result.patch_path}"
        )
        state = result.commit_state
        if state is CommitState.FUSED:
            print(f"{GREEN}✓ Fixes folded into the previous commit.{RESET}")
        elif state is CommitState.COMMIT_ONLY:
            print(f"{GREEN}✓ Fixes committed as a separate commit.{RESET}")
        if result.staged_paths and state is not CommitState.FUSED:
            print(f"{DIM}Staged: {', '.join(result.staged_paths)}{RESET}")

    def _print_info(self, message: str) -> None:
        print(f"{CYAN}{message}{RESET}")

    def _print_error(self, message: str) -> None:
        print(f"{RED}{message}{RESET}", file=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    return CLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())
