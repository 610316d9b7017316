"""Lexical scoring of files against a query using extracted symbols."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from .models import ASTMatch, SourceFile, SymbolTable

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 3

# Evidence weights, each counted at most once per query token.
PATH_WEIGHT = 0.6
CLASS_WEIGHT = 1.0
FUNCTION_WEIGHT = 0.8
EXPORT_WEIGHT = 0.5
IMPORT_WEIGHT = 0.4
CONTENT_WEIGHT = 0.1
CONTENT_CAP = 0.5

MULTI_KEYWORD_BOOST = 0.25

# Checked in order against "/" + lower-cased path; first hit wins.
FILE_ROLE_MULTIPLIERS: Tuple[Tuple[Tuple[str, ...], float], ...] = (
    (("model",), 1.2),
    (("controller", "service", "component"), 1.1),
    (("job",), 1.0),
    (("migrate",), 0.7),
    (("config",), 0.6),
    (("spec", "test"), 0.8),
)

_SPLIT_RE = re.compile(r"[\s_\-]+")


def tokenize_query(query: str) -> List[str]:
    """Lower-case *query*, split on whitespace/underscore/hyphen, drop short tokens.

    Order is preserved and duplicates removed.
    """
    tokens: List[str] = []
    for token in _SPLIT_RE.split(query.lower()):
        if len(token) >= MIN_TOKEN_LENGTH and token not in tokens:
            tokens.append(token)
    return tokens


def file_role_multiplier(path: str) -> float:
    probe = "/" + path.lower()
    for segments, multiplier in FILE_ROLE_MULTIPLIERS:
        if any(f"/{segment}" in probe for segment in segments):
            return multiplier
    return 1.0


class StructureScorer:
    """Score files by path, symbol-name and content evidence for each query token."""

    def score(
        self,
        query: str,
        files: Sequence[SourceFile],
        symbol_tables: Dict[str, SymbolTable],
    ) -> List[ASTMatch]:
        tokens = tokenize_query(query)
        if not tokens:
            return []

        results: List[ASTMatch] = []
        for source in files:
            match = self._score_file(tokens, source, symbol_tables.get(source.path))
            if match is not None:
                results.append(match)

        logger.debug("Structure scorer: %d/%d files matched %s", len(results), len(files), tokens)
        return results

    def _score_file(
        self,
        tokens: List[str],
        source: SourceFile,
        table: Optional[SymbolTable],
    ) -> Optional[ASTMatch]:
        path = source.path.lower()
        content = source.content.lower()
        matches: List[str] = []
        matched_tokens = set()
        score = 0.0

        for token in tokens:
            evidence: List[Tuple[str, float]] = []
            if token in path:
                evidence.append((f'Path matches "{token}"', PATH_WEIGHT))
            if table is not None:
                if any(token in c.name.lower() for c in table.classes):
                    evidence.append((f'Class name matches "{token}"', CLASS_WEIGHT))
                if any(token in f.name.lower() for f in table.functions):
                    evidence.append((f'Function name matches "{token}"', FUNCTION_WEIGHT))
                if any(token in e.name.lower() for e in table.exports):
                    evidence.append((f'Export name matches "{token}"', EXPORT_WEIGHT))
                if any(token in i.module.lower() for i in table.imports):
                    evidence.append((f'Import matches "{token}"', IMPORT_WEIGHT))
            occurrences = content.count(token)
            if occurrences:
                evidence.append((f'Content matches "{token}"', min(occurrences * CONTENT_WEIGHT, CONTENT_CAP)))

            for description, weight in evidence:
                matches.append(description)
                score += weight
            if evidence:
                matched_tokens.add(token)

        if not matches:
            return None
        if len(matched_tokens) > 1:
            score *= 1 + MULTI_KEYWORD_BOOST * (len(matched_tokens) - 1)
        score *= file_role_multiplier(source.path)
        return ASTMatch(file=source.path, matches=matches, score=score)
