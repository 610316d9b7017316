"""Score combination: hybrid synergy and the four-signal tri-model ranking."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .config_manager import ScoringConfig
from .models import ASTMatch, ClassificationResult, HybridMatch, LLMMatch, RankedResult

logger = logging.getLogger(__name__)

SCORE_CAP = 5.0


def _union_files(ast_matches: Sequence[ASTMatch], llm_matches: Sequence[LLMMatch]) -> List[str]:
    seen: Dict[str, None] = {}
    for m in ast_matches:
        seen.setdefault(m.file, None)
    for m in llm_matches:
        seen.setdefault(m.file, None)
    return list(seen)


def _structure_normaliser(ast_matches: Sequence[ASTMatch]) -> float:
    return max([1.0] + [m.score for m in ast_matches])


def combine_search_results(
    ast_matches: Sequence[ASTMatch],
    llm_matches: Sequence[LLMMatch],
    synergy_multiplier: float = 2.0,
    structure_weight: float = 0.4,
    semantic_weight: float = 0.6,
    score_cap: float = SCORE_CAP,
) -> List[HybridMatch]:
    """Merge structure and semantic matches into one ranking.

    Structure scores are divided by ``max(1, best structure score)``;
    semantic scores are used as-is.  A file found by both signals gets the
    synergy multiplier.  Ties keep first-seen order (structure list first).
    """
    norm = _structure_normaliser(ast_matches)
    ast_by_file = {m.file: m for m in ast_matches}
    llm_by_file = {m.file: m for m in llm_matches}

    combined: List[HybridMatch] = []
    for path in _union_files(ast_matches, llm_matches):
        ast = ast_by_file.get(path)
        llm = llm_by_file.get(path)
        structure = ast.score / norm if ast else 0.0
        semantic = llm.score if llm else 0.0
        has_synergy = ast is not None and llm is not None

        final = structure * structure_weight + semantic * semantic_weight
        if has_synergy:
            final *= synergy_multiplier

        combined.append(HybridMatch(
            file=path,
            final_score=min(final, score_cap),
            structure_score=structure,
            semantic_score=semantic,
            has_synergy=has_synergy,
            matches=list(ast.matches) if ast else [],
        ))

    combined.sort(key=lambda m: m.final_score, reverse=True)
    return combined


def score_percentage(final_score: float) -> int:
    return max(0, min(int(round(final_score * 100)), 100))


def combine_tri_model(
    ast_matches: Sequence[ASTMatch],
    llm_matches: Sequence[LLMMatch],
    relationship_scores: Dict[str, float],
    classifications: Dict[str, ClassificationResult],
    entry_point_file: Optional[str] = None,
    config: Optional[ScoringConfig] = None,
) -> List[RankedResult]:
    """Rank candidates by the weighted sum of all four signals.

    Candidates are the structure and semantic matches plus the entry point.
    Full synergy (both lexical signals, strong relationship and a confident
    classification) outranks basic synergy (both lexical signals only).
    Every candidate is returned, including ones whose final score is zero
    or negative, as :func:`combine_search_results` does.
    """
    cfg = config or ScoringConfig()
    norm = _structure_normaliser(ast_matches)
    ast_by_file = {m.file: m for m in ast_matches}
    llm_by_file = {m.file: m for m in llm_matches}

    candidates = _union_files(ast_matches, llm_matches)
    if entry_point_file and entry_point_file not in candidates:
        candidates.append(entry_point_file)

    ranked: List[RankedResult] = []
    for path in candidates:
        ast = ast_by_file.get(path)
        llm = llm_by_file.get(path)
        structure = ast.score / norm if ast else 0.0
        semantic = llm.score if llm else 0.0
        relationship = relationship_scores.get(path, 0.0)
        classification = classifications.get(path)
        class_score = classification.score if classification else 0.0

        final = (
            structure * cfg.tri_structure_weight
            + semantic * cfg.tri_semantic_weight
            + relationship * cfg.tri_relationship_weight
            + class_score * cfg.tri_classification_weight
        )

        has_synergy = ast is not None and llm is not None
        if has_synergy:
            full = (
                relationship > cfg.full_synergy_relationship_threshold
                and class_score > cfg.full_synergy_classification_threshold
            )
            final *= cfg.full_synergy_multiplier if full else cfg.basic_synergy_multiplier
        if path == entry_point_file:
            final *= cfg.entry_point_multiplier
        final = min(final, cfg.score_cap)

        ranked.append(RankedResult(
            file=path,
            final_score=final,
            score_percentage=score_percentage(final),
            structure_score=structure,
            semantic_score=semantic,
            relationship_score=relationship,
            classification_score=class_score,
            has_synergy=has_synergy,
            matches=list(ast.matches) if ast else [],
            classification=classification.classification if classification else "unknown",
            workflow_position=classification.workflow_position if classification else "unrelated",
        ))

    ranked.sort(key=lambda r: r.final_score, reverse=True)
    logger.debug("Tri-model combination: %d candidates ranked", len(ranked))
    return ranked
