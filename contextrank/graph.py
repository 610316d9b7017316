"""File-level dependency graph built from extracted import statements."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .models import DependencyEdge, SourceFile, SymbolTable

logger = logging.getLogger(__name__)

IMPORT_CONFIDENCE = 0.9

_RESOLUTION_SUFFIXES = ("", ".js", ".ts", "/index.js", "/index.ts")


def _strip_relative_prefix(module: str) -> str:
    while True:
        if module.startswith("./"):
            module = module[2:]
        elif module.startswith("../"):
            module = module[3:]
        else:
            return module


def resolve_import_path(module: str, paths: Sequence[str]) -> Optional[str]:
    """Resolve an import specifier to a project path by suffix matching.

    Candidates are tried in order: ``module``, ``module.js``, ``module.ts``,
    ``module/index.js``, ``module/index.ts``.  A path matches a candidate
    when it equals it or ends with ``/<candidate>``; the first match in
    *paths* order wins.  No package-manager lookup is attempted.
    """
    stem = _strip_relative_prefix(module.strip()).rstrip("/")
    if not stem:
        return None
    for suffix in _RESOLUTION_SUFFIXES:
        candidate = stem + suffix
        tail = "/" + candidate
        for path in paths:
            if path == candidate or path.endswith(tail):
                return path
    return None


class DependencyGraphBuilder:
    """Turns per-file symbol tables into import edges."""

    def build(
        self,
        files: Iterable[SourceFile],
        symbol_tables: Dict[str, SymbolTable],
    ) -> Dict[str, List[DependencyEdge]]:
        """Return ``{from_file: [edges]}`` for every file with at least one edge.

        Unresolvable imports (packages, stdlib, missing files) are dropped
        silently, and a file never depends on itself.
        """
        paths = [f.path for f in files]
        graph: Dict[str, List[DependencyEdge]] = {}

        for path in paths:
            table = symbol_tables.get(path)
            if table is None:
                continue
            edges: List[DependencyEdge] = []
            for imp in table.imports:
                target = resolve_import_path(imp.module, paths)
                if target is None or target == path:
                    continue
                edges.append(DependencyEdge(
                    from_file=path,
                    to_file=target,
                    dependency_type="import",
                    line=imp.start_line,
                    confidence=IMPORT_CONFIDENCE,
                ))
            if edges:
                graph[path] = edges

        logger.info(
            "Dependency graph: %d files with edges, %d edges total",
            len(graph), sum(len(e) for e in graph.values()),
        )
        return graph


def build_importers_index(graph: Dict[str, List[DependencyEdge]]) -> Dict[str, Set[str]]:
    """Invert the graph: ``{to_file: {files importing it}}``."""
    importers: Dict[str, Set[str]] = defaultdict(set)
    for edges in graph.values():
        for edge in edges:
            importers[edge.to_file].add(edge.from_file)
    return dict(importers)
