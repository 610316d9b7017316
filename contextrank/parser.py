"""Language-agnostic symbol extraction using line-oriented regular expressions.

No AST library is involved: every file is scanned line by line for imports,
exports, class declarations and a universal function-signature heuristic
that covers C-like, Python-like and Ruby-like syntaxes.

Block extents are found by brace matching from the declaration line.  For
brace-less languages (Python, Ruby) the extent degenerates to the
declaration line itself.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .models import ImportSymbol, SourceFile, Symbol, SymbolTable

logger = logging.getLogger(__name__)

UNSUPPORTED_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".lock", ".ico", ".woff", ".woff2",
    ".pdf", ".zip", ".tar", ".gz", ".exe", ".dll", ".so", ".dylib",
    ".mp3", ".mp4", ".avi", ".mov", ".wav", ".flac",
)

SKIP_PATH_SEGMENTS = (
    "/node_modules/", "/.git/", "/dist/", "/build/", "/.nuxt/",
    "/.output/", "/coverage/", "/public/",
)

SKIP_DIRS: Set[str] = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs", ".nuxt",
    ".output", "coverage", ".contextrank",
}

# Names the function heuristic picks up from control flow and calls.
NON_FUNCTION_NAMES: Set[str] = {
    "if", "elif", "else", "for", "foreach", "while", "until", "unless", "do",
    "with", "try", "catch", "except", "switch", "case", "return", "await",
    "yield", "new", "typeof", "sizeof", "throw", "raise", "assert", "not",
    "and", "or", "in", "elseif",
}

# Duplicate function matches closer than this (in lines) are discarded.
DUPLICATE_FUNCTION_WINDOW = 2

# Lines after the declaration in which an opening brace may still appear.
_BRACE_LOOKAHEAD = 1

_CLASS_RE = re.compile(r"(?:^|\s)(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+([a-zA-Z0-9_$]+)")

_FUNCTION_RE = re.compile(
    r"^\s*"
    r"(?:(?:public|private|static|internal|protected|async|virtual|override|inline"
    r"|tailrec|extern|pure|impure|elemental|recursive|module|export|default)\s+)*?"
    r"(?:(?:function\*?|def|fun|fn|func|sub|subroutine|procedure|declare"
    r"|create(?:\s+or\s+replace)?\s+function|perform|defun)\b\s*)?"
    r"(?P<prefix>[\w.:<>\[\]*&\s]+\s+)?"
    r"(?P<name>[a-zA-Z_@$][\w\-$]*[?!]?)\s*(?:<[^>]*>)?\s*\(",
    re.IGNORECASE,
)

_IMPORT_FROM_RE = re.compile(r"""^\s*import\s+(.*?)\s+from\s+['"](.*?)['"]""")
_IMPORT_BARE_RE = re.compile(r"""^\s*import\s+['"](.*?)['"]""")
_PY_FROM_IMPORT_RE = re.compile(r"^\s*from\s+(\S+?)\s+import\s+(.*)$")
_PY_IMPORT_RE = re.compile(r"^\s*import\s+([\w.]+)(?:\s+as\s+\w+)?\s*(?:,.*)?;?\s*$")
_REQUIRE_RE = re.compile(r"""(?:(?:const|let|var)\s+(.+?)\s*=\s*)?require(?:_relative)?\s*\(?\s*['"](.+?)['"]""")
_INCLUDE_RE = re.compile(r"""^\s*#\s*include\s+["<](.+?)[">]""")

_EXPORT_DECL_RE = re.compile(
    r"^\s*export\s+(?:default\s+)?(?:async\s+)?"
    r"(?:function\*?|class|const|let|var|interface|type|enum)\s+([a-zA-Z0-9_$]+)"
)
_EXPORT_LIST_RE = re.compile(r"^\s*export\s*\{\s*([^}]+)\s*\}")

_IDENT_RE = re.compile(r"^[A-Za-z_$][\w$]*$")


# ===================================================================
# Abstract extractor interface
# ===================================================================

class SymbolExtractor(ABC):
    """Turns raw file text into a :class:`SymbolTable`."""

    @abstractmethod
    def extract(self, content: str, path: str) -> SymbolTable:
        """Extract symbols from *content*; must never raise on bad input."""
        ...

    def supports(self, path: str) -> bool:
        return is_language_supported(path)

    def extract_many(self, files: Iterable[SourceFile]) -> Dict[str, SymbolTable]:
        """Extract every supported file, skipping (and logging) failures."""
        tables: Dict[str, SymbolTable] = {}
        for source in files:
            if not self.supports(source.path):
                continue
            try:
                tables[source.path] = self.extract(source.content, source.path)
            except Exception as exc:
                logger.warning("Failed to parse %s: %s", source.path, exc)
        return tables


# ===================================================================
# Regex extractor
# ===================================================================

class RegexSymbolExtractor(SymbolExtractor):
    """Heuristic, multi-language symbol extractor."""

    def extract(self, content: str, path: str) -> SymbolTable:
        lines = content.split("\n")
        table = SymbolTable()

        for index, line in enumerate(lines):
            imp = _parse_import(line, index)
            if imp is not None:
                table.imports.append(imp)

            for name in _parse_exports(line):
                table.exports.append(Symbol(name=name, start_line=index, end_line=index))

            class_match = _CLASS_RE.search(line)
            if class_match:
                end = find_brace_block_end(lines, index)
                table.classes.append(Symbol(name=class_match.group(1), start_line=index, end_line=end))

            func_match = _FUNCTION_RE.match(line)
            if func_match:
                name = func_match.group("name")
                if name.lower() in NON_FUNCTION_NAMES:
                    continue
                # ``return foo(`` / ``await foo(`` are calls, not declarations
                prefix = (func_match.group("prefix") or "").split()
                if prefix and prefix[0].lower() in NON_FUNCTION_NAMES:
                    continue
                if _is_duplicate(table.functions, name, index):
                    continue
                end = find_brace_block_end(lines, index)
                table.functions.append(Symbol(name=name, start_line=index, end_line=end))

        logger.debug(
            "%s: %d classes, %d functions, %d imports, %d exports",
            path, len(table.classes), len(table.functions),
            len(table.imports), len(table.exports),
        )
        return table


def find_brace_block_end(lines: List[str], start_line: int) -> int:
    """Return the line index closing the brace block opened at *start_line*.

    If no ``{`` appears on the declaration line or the line right after it,
    the block is the declaration line alone.  An unterminated block runs to
    the last line of the file.
    """
    depth = 0
    in_block = False
    for i in range(start_line, len(lines)):
        for char in lines[i]:
            if char == "{":
                depth += 1
                in_block = True
            elif char == "}" and in_block:
                depth -= 1
        if in_block and depth <= 0:
            return i
        if not in_block and i - start_line >= _BRACE_LOOKAHEAD:
            return start_line
    return max(len(lines) - 1, start_line) if in_block else start_line


def _is_duplicate(functions: List[Symbol], name: str, line: int) -> bool:
    return any(
        f.name == name and abs(f.start_line - line) <= DUPLICATE_FUNCTION_WINDOW
        for f in functions
    )


def _split_names(clause: str) -> List[str]:
    """Split an import/export clause like ``a, { b as c }`` into names.

    For ``x as y`` the left-hand side is kept, which is the name the other
    module exports.
    """
    names: List[str] = []
    cleaned = clause.replace("{", ",").replace("}", ",").replace("(", ",").replace(")", ",")
    for part in cleaned.split(","):
        part = part.strip()
        if not part or part.startswith("*"):
            continue
        name = part.split()[0]
        if name == "type" and len(part.split()) > 1:
            name = part.split()[1]
        if _IDENT_RE.match(name):
            names.append(name)
    return names


def _parse_import(line: str, index: int) -> Optional[ImportSymbol]:
    match = _IMPORT_FROM_RE.match(line)
    if match:
        return ImportSymbol(module=match.group(2).strip(), start_line=index, names=_split_names(match.group(1)))

    match = _IMPORT_BARE_RE.match(line)
    if match:
        return ImportSymbol(module=match.group(1).strip(), start_line=index)

    match = _PY_FROM_IMPORT_RE.match(line)
    if match:
        return ImportSymbol(module=match.group(1).strip(), start_line=index, names=_split_names(match.group(2)))

    match = _PY_IMPORT_RE.match(line)
    if match:
        return ImportSymbol(module=match.group(1), start_line=index)

    match = _REQUIRE_RE.search(line)
    if match:
        names = _split_names(match.group(1)) if match.group(1) else []
        return ImportSymbol(module=match.group(2).strip(), start_line=index, names=names)

    match = _INCLUDE_RE.match(line)
    if match:
        return ImportSymbol(module=match.group(1).strip(), start_line=index)

    return None


def _parse_exports(line: str) -> List[str]:
    match = _EXPORT_DECL_RE.match(line)
    if match:
        return [match.group(1)]
    match = _EXPORT_LIST_RE.match(line)
    if match:
        names = []
        for part in match.group(1).split(","):
            tokens = part.split()
            if not tokens:
                continue
            # ``a as b`` is exported under ``b``
            names.append(tokens[-1] if len(tokens) >= 3 and tokens[1] == "as" else tokens[0])
        return [n for n in names if _IDENT_RE.match(n)]
    return []


# ===================================================================
# File filtering
# ===================================================================

def is_language_supported(file_path: str) -> bool:
    """Return False for binary/media files and vendored or build output."""
    path = file_path.lower()
    if path.endswith(UNSUPPORTED_EXTENSIONS):
        return False
    probe = path if path.startswith("/") else f"/{path}"
    return not any(segment in probe for segment in SKIP_PATH_SEGMENTS)


def collect_source_files(project_root: Path, max_bytes: int = 512_000) -> List[SourceFile]:
    """Walk *project_root* and load every supported text file.

    Paths are relative to the root and use forward slashes.  Unreadable or
    oversized files are skipped with a warning.
    """
    files: List[SourceFile] = []
    for file_path in sorted(project_root.rglob("*")):
        if not file_path.is_file():
            continue
        rel_parts = file_path.relative_to(project_root).parts
        if any(part in SKIP_DIRS for part in rel_parts):
            continue
        rel_path = "/".join(rel_parts)
        if not is_language_supported(rel_path):
            continue
        try:
            if file_path.stat().st_size > max_bytes:
                logger.info("Skipping large file %s", rel_path)
                continue
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to load content for %s: %s", rel_path, exc)
            continue
        files.append(SourceFile(path=rel_path, content=content))
    return files
