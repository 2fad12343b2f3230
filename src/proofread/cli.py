from __future__ import annotations

import argparse
import sys
from importlib import metadata
from pathlib import Path

import tomllib
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from .config import ProofreadConfig, load_config
from .core import STRATEGIES, transform
from .lifecycle import (
    RuleNotFoundError,
    RuleScope,
    add_rule,
    get_merged_rules,
    remove_rule,
    toggle_rule,
    update_rule,
)
from .logging_utils import set_debug_logging
from .rules import RuleValidationError, validate_pattern
from .store import JsonRuleStore, MissingBookConfigError

HTML_EXTS = (".xhtml", ".html", ".htm")
SCOPE_CHOICES = [scope.value for scope in RuleScope]


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("proofread")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"proofread {__version__}",
    )
    parser.add_argument("--config", help="Path to proofread.toml (default: ./proofread.toml).")
    parser.add_argument("--library", help="Library directory holding rule files (overrides config).")
    parser.add_argument("--debug", action="store_true", help="Print debug tracing.")


def build_apply_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Apply replacement rules to XHTML/HTML sections.")
    _add_common_flags(ap)
    ap.add_argument("inputs", nargs="+", help="Section files or directories containing them.")
    ap.add_argument("--book", required=True, help="Book key whose rules are applied.")
    ap.add_argument(
        "--section",
        help="Section href used for single-instance rules (default: the file name).",
    )
    ap.add_argument("--strategy", choices=STRATEGIES, help="Substitution strategy.")
    target = ap.add_mutually_exclusive_group()
    target.add_argument("-o", "--output", help="Output file (single input) or directory.")
    target.add_argument("-i", "--in-place", action="store_true", help="Rewrite inputs in place.")
    return ap


def build_rules_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Manage replacement rules.")
    _add_common_flags(ap)
    subparsers = ap.add_subparsers(dest="rules_cmd")

    listing = subparsers.add_parser("list", help="Show merged rules for a book.")
    listing.add_argument("--book", required=True)

    add = subparsers.add_parser("add", help="Add (or merge) a rule.")
    add.add_argument("pattern")
    add.add_argument("replacement")
    add.add_argument("--book", required=True)
    add.add_argument("--scope", choices=SCOPE_CHOICES, default=RuleScope.BOOK.value)
    add.add_argument("--regex", action="store_true", help="Treat the pattern as a regular expression.")
    add.add_argument("--ignore-case", action="store_true")
    add.add_argument("--order", type=float, default=None)
    add.add_argument("--occurrence", type=int, default=None, help="Zero-based occurrence (single scope).")
    add.add_argument("--section", help="Section href for single-instance rules.")
    add.add_argument("--disabled", action="store_true")

    for name, help_text in (("remove", "Delete a rule."), ("toggle", "Enable/disable a rule.")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("rule_id")
        sub.add_argument("--book", required=True)
        sub.add_argument("--scope", choices=SCOPE_CHOICES, default=RuleScope.BOOK.value)

    update = subparsers.add_parser("update", help="Edit fields of a rule.")
    update.add_argument("rule_id")
    update.add_argument("--book", required=True)
    update.add_argument("--scope", choices=SCOPE_CHOICES, default=RuleScope.BOOK.value)
    update.add_argument("--pattern")
    update.add_argument("--replacement")
    update.add_argument("--order", type=float)
    return ap


def build_books_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Register books in the rule library.")
    _add_common_flags(ap)
    subparsers = ap.add_subparsers(dest="books_cmd")
    add = subparsers.add_parser("add", help="Create the rule file for a book.")
    add.add_argument("book")
    subparsers.add_parser("list", help="List registered books.")
    return ap


def build_validate_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Check a pattern before creating a rule.")
    _add_common_flags(ap)
    ap.add_argument("pattern")
    ap.add_argument("--regex", action="store_true")
    return ap


def _prepare(args: argparse.Namespace) -> tuple[ProofreadConfig, JsonRuleStore]:
    try:
        config = load_config(args.config)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    if args.library:
        config.library_dir = Path(args.library).expanduser()
    set_debug_logging(bool(args.debug or config.debug))
    return config, JsonRuleStore(config.library_dir)


def _collect_inputs(inputs: list[str]) -> list[Path]:
    files: list[Path] = []
    for raw in inputs:
        path = Path(raw).expanduser()
        if path.is_dir():
            files.extend(
                sorted(p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in HTML_EXTS)
            )
        elif path.is_file():
            files.append(path)
        else:
            raise SystemExit(f"Input path not found: {path}")
    if not files:
        raise SystemExit("No XHTML/HTML files found.")
    return files


def _run_apply(args: argparse.Namespace) -> int:
    config, store = _prepare(args)
    strategy = args.strategy or config.strategy
    files = _collect_inputs(args.inputs)
    if len(files) > 1 and not (args.output or args.in_place):
        raise SystemExit("Multiple inputs need --output DIR or --in-place.")
    if args.section and len(files) > 1:
        raise SystemExit("--section can only be used with a single input file.")

    try:
        book_rules = store.get_book_rules(args.book)
        global_rules = store.get_global_rules()
    except (MissingBookConfigError, ValueError) as exc:
        raise SystemExit(str(exc)) from exc

    console = Console(stderr=True)
    progress: Progress | None = None
    task = None
    if len(files) > 1 and console.is_terminal:
        progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(bar_width=None),
            TaskProgressColumn(),
            console=console,
            transient=True,
        )
        progress.start()
        task = progress.add_task("Applying rules", total=len(files))

    changed = 0
    try:
        for path in files:
            content = path.read_text(encoding="utf-8")
            section_href = args.section or path.name
            result = transform(content, section_href, book_rules, global_rules, strategy=strategy)
            if result != content:
                changed += 1
            if args.in_place:
                if result != content:
                    path.write_text(result, encoding="utf-8")
            elif args.output:
                out = Path(args.output).expanduser()
                if len(files) == 1 and out.suffix.lower() in HTML_EXTS:
                    out.parent.mkdir(parents=True, exist_ok=True)
                    out.write_text(result, encoding="utf-8")
                else:
                    out.mkdir(parents=True, exist_ok=True)
                    (out / path.name).write_text(result, encoding="utf-8")
            else:
                sys.stdout.write(result)
            if progress is not None and task is not None:
                progress.advance(task)
    finally:
        if progress is not None:
            progress.stop()

    if args.in_place or args.output:
        print(f"Changed {changed} of {len(files)} file(s).")
    return 0


def _print_rules(store: JsonRuleStore, book: str) -> None:
    rules = get_merged_rules(store, book)
    if not rules:
        print(f"No replacement rules for {book}")
        return
    table = Table(title=f"Replacement rules: {book}")
    for column in ("id", "scope", "pattern", "replacement", "flags", "order", "enabled"):
        table.add_column(column)
    for rule in rules:
        if rule.single_instance:
            scope = RuleScope.SINGLE.value
        elif rule.is_global:
            scope = RuleScope.GLOBAL.value
        else:
            scope = RuleScope.BOOK.value
        flags: list[str] = []
        if rule.is_regex:
            flags.append("regex")
        if not rule.case_sensitive:
            flags.append("i")
        if rule.single_instance:
            flags.append(f"#{rule.occurrence_index or 0}")
            if rule.section_href:
                flags.append(f"@{rule.section_href}")
        table.add_row(
            rule.id,
            scope,
            rule.pattern,
            rule.replacement,
            " ".join(flags),
            format(rule.order, "g"),
            "yes" if rule.enabled else "no",
        )
    Console().print(table)


def _run_rules(args: argparse.Namespace) -> int:
    if not args.rules_cmd:
        raise SystemExit("A rules subcommand is required. Use --help for options.")
    _, store = _prepare(args)
    try:
        if args.rules_cmd == "list":
            _print_rules(store, args.book)
            return 0
        if args.rules_cmd == "add":
            options: dict[str, object] = {
                "pattern": args.pattern,
                "replacement": args.replacement,
                "is_regex": args.regex,
                "case_sensitive": not args.ignore_case,
                "enabled": not args.disabled,
                "section_href": args.section,
                "occurrence_index": args.occurrence,
            }
            if args.order is not None:
                options["order"] = args.order
            rule = add_rule(store, args.book, options, args.scope)
            print(f"Stored rule {rule.id} ({args.scope})")
            return 0
        if args.rules_cmd == "remove":
            remove_rule(store, args.book, args.rule_id, args.scope)
            print(f"Removed rule {args.rule_id}")
            return 0
        if args.rules_cmd == "toggle":
            rule = toggle_rule(store, args.book, args.rule_id, args.scope)
            state = "enabled" if rule is not None and rule.enabled else "disabled"
            print(f"Rule {args.rule_id} {state}")
            return 0
        if args.rules_cmd == "update":
            changes: dict[str, object] = {}
            if args.pattern is not None:
                changes["pattern"] = args.pattern
            if args.replacement is not None:
                changes["replacement"] = args.replacement
            if args.order is not None:
                changes["order"] = args.order
            if not changes:
                raise SystemExit("Nothing to update.")
            rule = update_rule(store, args.book, args.rule_id, args.scope, **changes)
            if rule is None:
                raise SystemExit(f"Rule not found: {args.rule_id}")
            print(f"Updated rule {rule.id}")
            return 0
    except (MissingBookConfigError, RuleNotFoundError, RuleValidationError, ValueError) as exc:
        raise SystemExit(str(exc)) from exc
    raise SystemExit(f"Unknown rules subcommand: {args.rules_cmd}")


def _run_books(args: argparse.Namespace) -> int:
    _, store = _prepare(args)
    if args.books_cmd == "add":
        try:
            path = store.register_book(args.book)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        print(f"Registered {args.book} at {path}")
        return 0
    if args.books_cmd == "list":
        books = store.list_books()
        if not books:
            print(f"No books registered under {store.root}")
        for book in books:
            print(book)
        return 0
    raise SystemExit("A books subcommand is required. Use --help for options.")


def _run_validate(args: argparse.Namespace) -> int:
    set_debug_logging(bool(args.debug))
    result = validate_pattern(args.pattern, args.regex)
    if result.valid:
        print("Pattern OK")
        return 0
    print(result.error, file=sys.stderr)
    return 1


_COMMANDS = {
    "apply": (build_apply_parser, _run_apply),
    "rules": (build_rules_parser, _run_rules),
    "books": (build_books_parser, _run_books),
    "validate": (build_validate_parser, _run_validate),
}


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] in _COMMANDS:
        build, run = _COMMANDS[argv[0]]
        parser = build()
        parser.prog = f"proofread {argv[0]}"
        return run(parser.parse_args(argv[1:]))

    if argv and argv[0] in {"-v", "--version"}:
        print(f"proofread {__version__}")
        return 0
    print("usage: proofread {apply,rules,books,validate} ...")
    print("Run 'proofread <command> --help' for command options.")
    return 0 if not argv else 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
