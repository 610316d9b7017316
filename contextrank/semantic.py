"""Embedding-based similarity between a query and cached file embeddings."""

from __future__ import annotations

import logging
import os
import re
from typing import Dict, List, Optional, Sequence

from .embeddings import cosine_similarity
from .models import LLMMatch, SourceFile
from .providers import EmbeddingProvider, maybe_await

logger = logging.getLogger(__name__)

_FILENAME_SPLIT_RE = re.compile(r"[_\-]")


def filename_phrase(path: str) -> str:
    """``src/user_service.js`` -> ``file named user service``."""
    stem = os.path.splitext(path.rsplit("/", 1)[-1])[0]
    return "file named " + " ".join(_FILENAME_SPLIT_RE.split(stem))


class SemanticScorer:
    """Cosine similarity of the query against each file's content embedding,
    blended with the similarity against a short filename phrase.

    Only files that already have an embedding participate; nothing is
    embedded here except the query and the filename phrases.
    """

    def __init__(
        self,
        embedder: Optional[EmbeddingProvider],
        content_weight: float = 0.7,
        filename_weight: float = 0.3,
    ):
        self.embedder = embedder
        self.content_weight = content_weight
        self.filename_weight = filename_weight

    async def score(
        self,
        query: str,
        files: Sequence[SourceFile],
        file_embeddings: Dict[str, List[float]],
    ) -> List[LLMMatch]:
        if self.embedder is None:
            logger.debug("No embedding provider; semantic signal disabled")
            return []

        try:
            query_vec = await maybe_await(self.embedder.embed_text(query))
        except Exception as exc:
            logger.warning("Query embedding failed: %s", exc)
            return []

        matches: List[LLMMatch] = []
        for source in files:
            embedding = file_embeddings.get(source.path)
            if embedding is None:
                continue
            similarity = cosine_similarity(query_vec, embedding)
            try:
                name_vec = await maybe_await(self.embedder.embed_text(filename_phrase(source.path)))
                name_similarity = cosine_similarity(query_vec, name_vec)
                similarity = similarity * self.content_weight + name_similarity * self.filename_weight
            except Exception as exc:
                logger.debug("Filename embedding failed for %s: %s", source.path, exc)
            matches.append(LLMMatch(file=source.path, score=similarity, embedding=embedding))

        matches.sort(key=lambda m: m.score, reverse=True)
        logger.debug("Semantic scorer: %d files scored", len(matches))
        return matches
