from __future__ import annotations

import json
import re
from copy import deepcopy
from pathlib import Path
from typing import Iterable, Protocol

from .rules import ReplacementRule

LIBRARY_RULES_FILENAME = "library-rules.json"
BOOK_RULES_FILENAME = ".proofread-rules.json"
BOOKS_DIRNAME = "books"

_UNSAFE_KEY_CHARS = re.compile(r"[^\w.\-]+")


class MissingBookConfigError(LookupError):
    """Raised when no configuration exists for the requested book."""

    def __init__(self, book_key: str) -> None:
        super().__init__(f"No view settings found for book: {book_key}")
        self.book_key = book_key


class RuleStore(Protocol):
    def get_global_rules(self) -> list[ReplacementRule]: ...

    def get_book_rules(self, book_key: str) -> list[ReplacementRule]: ...

    def save_global_rules(self, rules: Iterable[ReplacementRule]) -> None: ...

    def save_book_rules(self, book_key: str, rules: Iterable[ReplacementRule]) -> None: ...


class MemoryRuleStore:
    """Keeps rule collections in memory; handy for tests and embedding."""

    def __init__(
        self,
        global_rules: Iterable[ReplacementRule] | None = None,
        book_rules: dict[str, list[ReplacementRule]] | None = None,
    ) -> None:
        self._global: list[ReplacementRule] = list(global_rules or [])
        self._books: dict[str, list[ReplacementRule]] = {
            key: list(rules) for key, rules in (book_rules or {}).items()
        }

    def register_book(self, book_key: str) -> None:
        self._books.setdefault(book_key, [])

    def get_global_rules(self) -> list[ReplacementRule]:
        return deepcopy(self._global)

    def get_book_rules(self, book_key: str) -> list[ReplacementRule]:
        if book_key not in self._books:
            raise MissingBookConfigError(book_key)
        return deepcopy(self._books[book_key])

    def save_global_rules(self, rules: Iterable[ReplacementRule]) -> None:
        self._global = deepcopy(list(rules))

    def save_book_rules(self, book_key: str, rules: Iterable[ReplacementRule]) -> None:
        if book_key not in self._books:
            raise MissingBookConfigError(book_key)
        self._books[book_key] = deepcopy(list(rules))


def _book_dirname(book_key: str) -> str:
    cleaned = _UNSAFE_KEY_CHARS.sub("_", book_key).strip("._")
    if not cleaned:
        raise ValueError(f"Invalid book key: {book_key!r}")
    return cleaned


def _load_rules_file(path: Path) -> list[ReplacementRule]:
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Failed to parse rules file: {path}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name} must contain a JSON object.")
    payload = raw.get("rules")
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ValueError(f"{path.name} must contain a 'rules' array.")
    rules: list[ReplacementRule] = []
    for entry in payload:
        rule = ReplacementRule.from_payload(entry)
        if rule is not None:
            rules.append(rule)
    return rules


def _write_rules_file(path: Path, rules: Iterable[ReplacementRule]) -> None:
    payload = {"rules": [rule.as_payload() for rule in rules]}
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


class JsonRuleStore:
    """Rule collections persisted as JSON below a library directory.

    Library-wide rules live in ``<root>/library-rules.json``; each book gets
    ``<root>/books/<key>/.proofread-rules.json``. A book is known once its
    directory exists.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def library_path(self) -> Path:
        return self.root / LIBRARY_RULES_FILENAME

    def book_dir(self, book_key: str) -> Path:
        return self.root / BOOKS_DIRNAME / _book_dirname(book_key)

    def book_rules_path(self, book_key: str) -> Path:
        return self.book_dir(book_key) / BOOK_RULES_FILENAME

    def has_book(self, book_key: str) -> bool:
        return self.book_dir(book_key).is_dir()

    def register_book(self, book_key: str) -> Path:
        book_dir = self.book_dir(book_key)
        book_dir.mkdir(parents=True, exist_ok=True)
        path = book_dir / BOOK_RULES_FILENAME
        if not path.exists():
            _write_rules_file(path, [])
        return path

    def list_books(self) -> list[str]:
        books_root = self.root / BOOKS_DIRNAME
        if not books_root.is_dir():
            return []
        return sorted(entry.name for entry in books_root.iterdir() if entry.is_dir())

    def get_global_rules(self) -> list[ReplacementRule]:
        return _load_rules_file(self.library_path)

    def get_book_rules(self, book_key: str) -> list[ReplacementRule]:
        if not self.has_book(book_key):
            raise MissingBookConfigError(book_key)
        return _load_rules_file(self.book_rules_path(book_key))

    def save_global_rules(self, rules: Iterable[ReplacementRule]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        _write_rules_file(self.library_path, rules)

    def save_book_rules(self, book_key: str, rules: Iterable[ReplacementRule]) -> None:
        if not self.has_book(book_key):
            raise MissingBookConfigError(book_key)
        _write_rules_file(self.book_rules_path(book_key), rules)


__all__ = [
    "BOOK_RULES_FILENAME",
    "JsonRuleStore",
    "LIBRARY_RULES_FILENAME",
    "MemoryRuleStore",
    "MissingBookConfigError",
    "RuleStore",
]
