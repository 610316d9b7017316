"""Inter-file relationship scoring for the tri-model ranking.

Without an entry point each file gets a *base* score from five structural
signals.  With an entry point, the file's direct ties to that entry point
dominate and the base score is blended in.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Set

from .graph import build_importers_index
from .models import DependencyEdge, SymbolTable

logger = logging.getLogger(__name__)

IMPORTANT_DIRECTORIES = {
    "src", "lib", "app", "core", "services", "models", "controllers", "api", "components",
}

CENTRALITY_PER_IMPORTER = 0.2
CENTRALITY_CAP = 0.6
COMMON_PREFIX_BONUS = 0.2
SHARED_IMPORT_WEIGHT = 0.1
SHARED_IMPORT_CAP = 0.4
IMPORTANT_DIRECTORY_BONUS = 0.15
FUNCTION_COUNT_WEIGHT = 0.05
FUNCTION_COUNT_CAP = 0.25

DIRECT_IMPORT_SCORE = 0.8
SHARED_FUNCTION_WEIGHT = 0.3
NAME_OVERLAP_WEIGHT = 0.4
ENTRY_BLEND = 0.7
BASE_BLEND = 0.3

MIN_PREFIX_LENGTH = 3

_WORD_RE = re.compile(r"[a-z]+|[A-Z][a-z]*")


def function_prefix(name: str) -> Optional[str]:
    """Leading word of an identifier (``getUserById`` -> ``get``)."""
    words = _WORD_RE.findall(name)
    if not words or len(words[0]) < MIN_PREFIX_LENGTH:
        return None
    return words[0].lower()


def has_common_prefix(names: Iterable[str]) -> bool:
    counts = Counter(p for p in (function_prefix(n) for n in names) if p)
    return any(count >= 2 for count in counts.values())


class RelationshipScorer:
    """Scores how strongly each file is wired into the project (or to an entry point)."""

    def __init__(
        self,
        symbol_tables: Dict[str, SymbolTable],
        graph: Dict[str, List[DependencyEdge]],
    ):
        self.symbol_tables = symbol_tables
        self.graph = graph
        self.importers = build_importers_index(graph)
        self._module_users: Dict[str, Set[str]] = {}
        for path, table in symbol_tables.items():
            for imp in table.imports:
                self._module_users.setdefault(imp.module, set()).add(path)

    # ------------------------------------------------------------------
    # Base inter-file score
    # ------------------------------------------------------------------

    def base_score(self, path: str) -> float:
        table = self.symbol_tables.get(path) or SymbolTable()

        score = min(len(self.importers.get(path, ())) * CENTRALITY_PER_IMPORTER, CENTRALITY_CAP)

        if has_common_prefix(f.name for f in table.functions):
            score += COMMON_PREFIX_BONUS

        shared = {
            imp.module for imp in table.imports
            if len(self._module_users.get(imp.module, ())) > 1
        }
        score += min(len(shared) * SHARED_IMPORT_WEIGHT, SHARED_IMPORT_CAP)

        if any(segment in IMPORTANT_DIRECTORIES for segment in path.lower().split("/")[:-1]):
            score += IMPORTANT_DIRECTORY_BONUS

        score += min(len(table.functions) * FUNCTION_COUNT_WEIGHT, FUNCTION_COUNT_CAP)
        return min(score, 1.0)

    # ------------------------------------------------------------------
    # Entry-point score
    # ------------------------------------------------------------------

    def _imports_between(self, a: str, b: str) -> bool:
        return any(edge.to_file == b for edge in self.graph.get(a, ()))

    def entry_point_score(self, path: str, entry_point: str) -> float:
        table = self.symbol_tables.get(path) or SymbolTable()
        entry = self.symbol_tables.get(entry_point) or SymbolTable()

        direct = DIRECT_IMPORT_SCORE if (
            self._imports_between(path, entry_point) or self._imports_between(entry_point, path)
        ) else 0.0

        shared_functions = {f.name for f in table.functions} & {f.name for f in entry.functions}
        function_score = min(len(shared_functions) * SHARED_FUNCTION_WEIGHT, 1.0)

        exported = {e.name for e in table.exports}
        entry_exported = {e.name for e in entry.exports}
        imported_by_entry = {n for imp in entry.imports for n in imp.names}
        imported_from_entry = {n for imp in table.imports for n in imp.names}
        overlap = (exported & imported_by_entry) | (entry_exported & imported_from_entry)
        overlap_score = min(len(overlap) * NAME_OVERLAP_WEIGHT, 1.0)

        return min(direct + function_score + overlap_score, 1.0)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score(self, paths: Iterable[str], entry_point: Optional[str] = None) -> Dict[str, float]:
        """Relationship score in ``[0, 1]`` for every path in *paths*."""
        scores: Dict[str, float] = {}
        for path in paths:
            if entry_point is not None and path == entry_point:
                scores[path] = 1.0
                continue
            base = self.base_score(path)
            if entry_point is None:
                scores[path] = base
            else:
                blended = ENTRY_BLEND * self.entry_point_score(path, entry_point) + BASE_BLEND * base
                scores[path] = min(blended, 1.0)
        return scores
