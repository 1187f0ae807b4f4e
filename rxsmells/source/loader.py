"""Discovery and decoding of parser output documents on disk."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Sequence

from ..logging import get_logger
from .adapter import SourceFormatError

_logger = get_logger("source.loader")

_EXCLUDED_DIRS = {".git", "node_modules", "__pycache__", ".venv", "dist"}
_DOCUMENT_SUFFIX = ".json"


@dataclass
class ExcludeRule:
    """Glob pattern from ``exclude_paths`` matched against relative paths."""

    pattern: str
    directory_only: bool
    anchored: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        if self.anchored or self.has_slash:
            if fnmatchcase(rel_path, self.pattern):
                return True
            # "fixtures/**" also covers the directory itself
            if self.pattern.endswith("/**") and rel_path == self.pattern[:-3]:
                return True
            return self.directory_only and rel_path.startswith(f"{self.pattern}/")

        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


@dataclass
class SourceDocument:
    path: str
    data: Any


def build_exclude_rules(patterns: Iterable[str]) -> List[ExcludeRule]:
    rules: List[ExcludeRule] = []
    for raw in patterns:
        pattern = raw.strip()
        if not pattern:
            continue
        directory_only = pattern.endswith("/")
        if directory_only:
            pattern = pattern[:-1]
        anchored = pattern.startswith("/")
        if anchored:
            pattern = pattern[1:]
        rules.append(ExcludeRule(pattern, directory_only, anchored, "/" in pattern))
    return rules


def _is_excluded(rel_path: str, is_dir: bool, rules: Sequence[ExcludeRule]) -> bool:
    return any(rule.matches(rel_path, is_dir) for rule in rules)


def iter_document_paths(paths: Iterable[str], exclude_paths: Iterable[str] = ()) -> Iterator[Path]:
    """Yield JSON documents under ``paths`` in a stable order."""
    rules = build_exclude_rules(exclude_paths)
    for raw in paths:
        root = Path(raw)
        if root.is_file():
            if not _is_excluded(root.name, False, rules):
                yield root
            continue
        if not root.is_dir():
            raise FileNotFoundError(f"Input path does not exist: {raw}")
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            rel_dir = current.relative_to(root).as_posix() if current != root else ""
            kept = []
            for name in sorted(dirnames):
                if name in _EXCLUDED_DIRS:
                    continue
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if _is_excluded(rel_path, True, rules):
                    continue
                kept.append(name)
            dirnames[:] = kept
            for filename in sorted(filenames):
                if not filename.endswith(_DOCUMENT_SUFFIX):
                    continue
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if _is_excluded(rel_path, False, rules):
                    _logger.debug("Excluded %s", rel_path)
                    continue
                yield current / filename


def read_document(path: Path) -> SourceDocument:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SourceFormatError(f"Invalid JSON in {path}: {exc}") from exc
    return SourceDocument(path=path.as_posix(), data=data)


def load_documents(paths: Iterable[str], exclude_paths: Iterable[str] = ()) -> List[SourceDocument]:
    """Read every document, logging and skipping malformed files."""
    documents: List[SourceDocument] = []
    for path in iter_document_paths(paths, exclude_paths):
        try:
            documents.append(read_document(path))
        except (OSError, SourceFormatError) as exc:
            _logger.warning("Skipping %s: %s", path, exc)
    _logger.info("Loaded %d document(s)", len(documents))
    return documents


__all__ = [
    "ExcludeRule",
    "SourceDocument",
    "build_exclude_rules",
    "iter_document_paths",
    "load_documents",
    "read_document",
]
