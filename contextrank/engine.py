"""Hybrid search engine: owns per-project analysis state and runs queries.

One :class:`HybridSearchEngine` is created per project session.  It keeps
the symbol tables, dependency graph, embeddings and keywords in memory and
uses an :class:`~contextrank.storage.AnalysisCache` to make re-analysis
incremental.  Call :meth:`HybridSearchEngine.clear_analysis_state` before
reusing an engine on a different project, because relative paths from two
projects are indistinguishable.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .classifier import FileClassifier
from .combiner import combine_search_results, combine_tri_model
from .config_manager import ScoringConfig
from .graph import DependencyGraphBuilder
from .keywords import KeywordExtractor
from .models import DependencyEdge, ExtractedKeyword, RankedResult, SavedSearch, SourceFile, SymbolTable
from .parser import RegexSymbolExtractor, SymbolExtractor, is_language_supported
from .providers import EmbeddingProvider, GenerativeProvider, maybe_await
from .relationships import RelationshipScorer
from .semantic import SemanticScorer
from .storage import AnalysisCache, calculate_hash, calculate_project_hash, generate_search_id
from .structure import StructureScorer
from .throttle import BatchThrottle

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[str, float], None]

# Characters of file content fed to the embedder, and the overall cap.
EMBEDDING_CONTENT_CHARS = 1000
EMBEDDING_TEXT_CHARS = 3000


class AnalysisError(Exception):
    """Unexpected internal failure while analysing a project or searching."""


@dataclass
class AnalysisSummary:
    files: int
    parsed: int
    edges: int
    embeddings: int
    embeddings_generated: int
    keywords: List[ExtractedKeyword]
    from_cache: bool


@dataclass
class EngineStatus:
    stage: str
    progress: float
    is_analyzing: bool
    has_loaded_from_cache: bool
    parsed_files: int
    embeddings: int


def embedding_text(source: SourceFile) -> str:
    return f"{source.path} {source.content[:EMBEDDING_CONTENT_CHARS]}"[:EMBEDDING_TEXT_CHARS]


class HybridSearchEngine:
    """Structure + semantic (+ relationship + classification) file ranking.

    Args:
        embedder:  Embedding provider, or ``None`` to disable the semantic signal.
        generator: Generative provider, or ``None`` to disable classification.
        cache:     Durable cache; an unavailable cache is used when omitted.
        config:    Scoring weights and limits.
        extractor: Symbol extractor (regex-based by default).
        progress:  Optional ``(stage, percent)`` observer.
        sleep:     Coroutine used between classifier batches.
    """

    def __init__(
        self,
        embedder: Optional[EmbeddingProvider] = None,
        generator: Optional[GenerativeProvider] = None,
        cache: Optional[AnalysisCache] = None,
        config: Optional[ScoringConfig] = None,
        extractor: Optional[SymbolExtractor] = None,
        progress: Optional[ProgressObserver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.embedder = embedder
        self.generator = generator
        self.cache = cache if cache is not None else AnalysisCache(None)
        self.config = config or ScoringConfig()
        self.extractor = extractor or RegexSymbolExtractor()
        self.progress = progress

        self.structure_scorer = StructureScorer()
        self.semantic_scorer = SemanticScorer(
            embedder,
            content_weight=self.config.content_similarity_weight,
            filename_weight=self.config.filename_similarity_weight,
        )
        self.keyword_extractor = KeywordExtractor()
        self.graph_builder = DependencyGraphBuilder()
        self.classifier = FileClassifier(
            generator,
            BatchThrottle(
                batch_size=self.config.classification_batch_size,
                delay=self.config.classification_batch_delay,
                sleep=sleep,
            ),
        )

        self.symbol_tables: Dict[str, SymbolTable] = {}
        self.dependency_graph: Dict[str, List[DependencyEdge]] = {}
        self.file_embeddings: Dict[str, List[float]] = {}
        self.keywords: List[ExtractedKeyword] = []
        self.has_loaded_from_cache = False
        # Content hash each in-memory table / vector was derived from.
        self._table_hashes: Dict[str, str] = {}
        self._embedding_hashes: Dict[str, str] = {}
        self._graph_paths: Set[str] = set()
        self._stage = "idle"
        self._progress = 0.0
        self._is_analyzing = False

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def _report(self, stage: str, percent: float) -> None:
        self._stage = stage
        self._progress = percent
        if self.progress is not None:
            self.progress(stage, percent)

    def status(self) -> EngineStatus:
        return EngineStatus(
            stage=self._stage,
            progress=self._progress,
            is_analyzing=self._is_analyzing,
            has_loaded_from_cache=self.has_loaded_from_cache,
            parsed_files=len(self.symbol_tables),
            embeddings=len(self.file_embeddings),
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def _parse_files(self, files: Sequence[SourceFile]) -> int:
        supported = [f for f in files if is_language_supported(f.path)]
        total = len(supported) or 1
        parsed = 0
        for index, source in enumerate(supported, start=1):
            self._table_hashes[source.path] = calculate_hash(source.content)
            try:
                self.symbol_tables[source.path] = self.extractor.extract(source.content, source.path)
                parsed += 1
            except Exception as exc:
                self.symbol_tables.pop(source.path, None)
                logger.warning("Failed to parse %s: %s", source.path, exc)
            self._report("parsing", index / total * 100)
        return parsed

    def _build_graph(self, files: Sequence[SourceFile]) -> None:
        self._report("graph", 0)
        supported = [f for f in files if is_language_supported(f.path)]
        self.dependency_graph = self.graph_builder.build(supported, self.symbol_tables)
        self._graph_paths = {f.path for f in supported}
        self._report("graph", 100)

    def current_symbol_tables(self, files: Sequence[SourceFile]) -> Dict[str, SymbolTable]:
        """Symbol tables restricted to *files* (entries for other paths are left out)."""
        return {f.path: self.symbol_tables[f.path] for f in files if f.path in self.symbol_tables}

    def _restore_snapshot(self, files: Sequence[SourceFile]) -> bool:
        snapshot = self.cache.get_project_snapshot(calculate_project_hash(files))
        if snapshot is None:
            logger.debug("No cached project snapshot")
            return False
        self.file_embeddings = dict(snapshot.file_embeddings)
        self._embedding_hashes = {
            f.path: calculate_hash(f.content) for f in files if f.path in self.file_embeddings
        }
        if snapshot.keywords:
            self.keywords = list(snapshot.keywords)
        self.has_loaded_from_cache = True
        logger.info("Restored %d embeddings from project snapshot", len(self.file_embeddings))
        return True

    async def analyze_project(self, files: Sequence[SourceFile]) -> AnalysisSummary:
        """Parse every file, build the dependency graph, mine keywords and
        make sure each file has an embedding (cached or freshly generated).

        Raises:
            AnalysisError: on an unexpected internal fault; per-file
                failures are logged and skipped instead.
        """
        self._is_analyzing = True
        started = time.perf_counter()
        try:
            parsed = self._parse_files(files)
            self._build_graph(files)

            self._report("keywords", 0)
            self.keywords = self.keyword_extractor.extract(files, self.symbol_tables)
            self._report("keywords", 100)

            from_cache = self._restore_snapshot(files)
            generated = 0
            if not from_cache:
                generated = await self.generate_embeddings(files)

            self._report("ready", 100)
            logger.info("Analysed %d files in %.2fs", len(files), time.perf_counter() - started)
            return AnalysisSummary(
                files=len(files),
                parsed=parsed,
                edges=sum(len(edges) for edges in self.dependency_graph.values()),
                embeddings=len(self.file_embeddings),
                embeddings_generated=generated,
                keywords=list(self.keywords),
                from_cache=from_cache,
            )
        except AnalysisError:
            raise
        except Exception as exc:
            raise AnalysisError(f"Project analysis failed: {exc}") from exc
        finally:
            self._is_analyzing = False

    async def load_cached_analysis(self, files: Sequence[SourceFile]) -> bool:
        """Restore embeddings from the project snapshot, then parse and build the graph.

        Returns:
            True if a cached snapshot matched the current project state.
        """
        self._is_analyzing = True
        try:
            loaded = self._restore_snapshot(files)
            self._parse_files(files)
            self._build_graph(files)
            if not self.keywords:
                self.keywords = self.keyword_extractor.extract(files, self.symbol_tables)
            self._report("ready", 100)
            return loaded
        except Exception as exc:
            raise AnalysisError(f"Loading cached analysis failed: {exc}") from exc
        finally:
            self._is_analyzing = False

    async def generate_embeddings(self, files: Sequence[SourceFile]) -> int:
        """Embed every file, reusing cached embeddings whose hash still matches.

        Stale cache rows are evicted first.  A project snapshot is written
        when at least one new embedding was produced.

        Returns:
            Number of embeddings generated (cache hits excluded).
        """
        if self.embedder is None:
            logger.info("No embedding provider; skipping embedding generation")
            return 0

        self.cache.evict_older_than()
        hits, generated = await self._embed_files(files)

        if generated and self.file_embeddings:
            self.cache.put_project_snapshot(
                calculate_project_hash(files), self.file_embeddings, self.keywords,
            )
        logger.info("Embeddings: %d cached, %d newly generated", hits, generated)
        return generated

    async def _embed_files(self, files: Sequence[SourceFile]) -> Tuple[int, int]:
        """Embed *files* through the durable cache; returns ``(hits, generated)``.

        A file whose embedding fails loses any vector it had for older content.
        """
        hits = generated = 0
        total = len(files) or 1
        for index, source in enumerate(files, start=1):
            content_hash = calculate_hash(source.content)
            try:
                cached = self.cache.get_embedding(source.path, content_hash)
                if cached is not None:
                    vector = cached
                    hits += 1
                else:
                    vector = await maybe_await(self.embedder.embed_text(embedding_text(source)))
                    vector = list(vector) if vector else None
                    if vector:
                        self.cache.put_embedding(source.path, content_hash, vector)
                        generated += 1
            except Exception as exc:
                logger.warning("Failed to generate embedding for %s: %s", source.path, exc)
                vector = None
            if vector:
                self.file_embeddings[source.path] = vector
                self._embedding_hashes[source.path] = content_hash
            else:
                self.file_embeddings.pop(source.path, None)
                self._embedding_hashes.pop(source.path, None)
            self._report("embedding", index / total * 100)
        return hits, generated

    async def force_reembedding(self, files: Sequence[SourceFile]) -> int:
        """Drop every cached embedding and regenerate from scratch."""
        self.clear_cache()
        return await self.generate_embeddings(files)

    def clear_analysis_state(self) -> None:
        """Reset in-memory state; required between projects."""
        self.symbol_tables.clear()
        self.dependency_graph.clear()
        self.file_embeddings.clear()
        self.keywords = []
        self.has_loaded_from_cache = False
        self._table_hashes.clear()
        self._embedding_hashes.clear()
        self._graph_paths = set()
        self._stage = "idle"
        self._progress = 0.0

    def clear_cache(self) -> None:
        """Clear in-memory state and the durable cache."""
        self.clear_analysis_state()
        self.cache.clear()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _prepare_search(self, files: Sequence[SourceFile]) -> None:
        """Bring in-memory state in line with the content of *files*.

        Files that are new or whose content hash changed are re-parsed and
        re-embedded; the graph is rebuilt when anything it depends on changed.
        """
        current = {f.path: calculate_hash(f.content) for f in files}
        supported = [f for f in files if is_language_supported(f.path)]
        stale = [f for f in supported if self._table_hashes.get(f.path) != current[f.path]]
        if stale:
            logger.debug("Re-parsing %d new or changed files", len(stale))
            self._parse_files(stale)
        if stale or self._graph_paths != {f.path for f in supported}:
            self._build_graph(files)

        if self.embedder is None:
            return
        outdated = [f for f in files if self._embedding_hashes.get(f.path) != current[f.path]]
        if outdated:
            logger.info("Embedding %d new or changed files on demand", len(outdated))
            await self._embed_files(outdated)

    async def perform_hybrid_search(self, keyword: str, files: Sequence[SourceFile]) -> List[RankedResult]:
        """Structure + semantic ranking, top ``max_results`` files."""
        try:
            await self._prepare_search(files)
            self._report("structure", 0)
            ast_matches = self.structure_scorer.score(keyword, files, self.symbol_tables)
            self._report("semantic", 50)
            llm_matches = await self.semantic_scorer.score(keyword, files, self.file_embeddings)
            hybrid = combine_search_results(
                ast_matches,
                llm_matches,
                synergy_multiplier=self.config.synergy_multiplier,
                structure_weight=self.config.structure_weight,
                semantic_weight=self.config.semantic_weight,
                score_cap=self.config.score_cap,
            )
        except Exception as exc:
            raise AnalysisError(f"Hybrid search for '{keyword}' failed: {exc}") from exc

        self._report("done", 100)
        logger.info(
            "Hybrid search '%s': %d structure, %d semantic, %d combined (%d synergy)",
            keyword, len(ast_matches), len(llm_matches), len(hybrid),
            sum(1 for m in hybrid if m.has_synergy),
        )
        return [
            RankedResult(
                file=m.file,
                final_score=m.final_score,
                structure_score=m.structure_score,
                semantic_score=m.semantic_score,
                has_synergy=m.has_synergy,
                matches=m.matches,
            )
            for m in hybrid[: self.config.max_results]
        ]

    async def perform_tri_model_search(
        self,
        keyword: str,
        files: Sequence[SourceFile],
        entry_point_file: Optional[str] = None,
    ) -> List[RankedResult]:
        """Four-signal ranking with optional entry-point awareness.

        Every candidate is classified unless ``max_classified_files`` is set
        to a positive number; then only that many candidates, taken in
        preliminary hybrid order, go to the classifier (the entry point is
        always included) and the rest score 0 for classification.
        """
        paths = {f.path for f in files}
        if entry_point_file is not None and entry_point_file not in paths:
            logger.warning("Entry point %s is not among the project files; ignoring it", entry_point_file)
            entry_point_file = None

        try:
            await self._prepare_search(files)
            self._report("structure", 0)
            ast_matches = self.structure_scorer.score(keyword, files, self.symbol_tables)
            self._report("semantic", 20)
            llm_matches = await self.semantic_scorer.score(keyword, files, self.file_embeddings)

            preliminary = [m.file for m in combine_search_results(ast_matches, llm_matches)]
            if entry_point_file and entry_point_file not in preliminary:
                preliminary.insert(0, entry_point_file)

            self._report("relationships", 40)
            relationships = RelationshipScorer(self.current_symbol_tables(files), self.dependency_graph)
            relationship_scores = relationships.score(preliminary, entry_point_file)

            self._report("classification", 60)
            limit = self.config.max_classified_files
            to_classify = preliminary[:limit] if limit > 0 else list(preliminary)
            if entry_point_file and entry_point_file not in to_classify:
                to_classify.append(entry_point_file)
            classifications = await self.classifier.classify(
                keyword, files, to_classify, relationship_scores, entry_point_file,
            )

            self._report("combining", 90)
            ranked = combine_tri_model(
                ast_matches,
                llm_matches,
                relationship_scores,
                classifications,
                entry_point_file=entry_point_file,
                config=self.config,
            )
        except Exception as exc:
            raise AnalysisError(f"Tri-model search for '{keyword}' failed: {exc}") from exc

        self._report("done", 100)
        logger.info("Tri-model search '%s': %d ranked files", keyword, len(ranked))
        return ranked[: self.config.max_results]

    # ------------------------------------------------------------------
    # Saved searches & diagnostics
    # ------------------------------------------------------------------

    def save_search_results(
        self,
        keyword: str,
        project_name: str,
        results: List[RankedResult],
        entry_point_file: Optional[str] = None,
    ) -> Optional[str]:
        """Persist *results*; returns the search id, or None if the cache is unavailable."""
        search = SavedSearch(
            id=generate_search_id(keyword, project_name),
            keyword=keyword,
            project_name=project_name,
            results=list(results),
            timestamp=self.cache.clock(),
            entry_point_file=entry_point_file,
        )
        return search.id if self.cache.put_search_results(search) else None

    def debug_state(self) -> Dict[str, Any]:
        sample: Optional[Dict[str, Any]] = None
        if self.file_embeddings:
            path = next(iter(self.file_embeddings))
            sample = {"file": path, "dims": len(self.file_embeddings[path])}
        return {
            "parsed_files": len(self.symbol_tables),
            "files_with_edges": len(self.dependency_graph),
            "file_embeddings": len(self.file_embeddings),
            "keywords": [k.keyword for k in self.keywords],
            "has_loaded_from_cache": self.has_loaded_from_cache,
            "embedder": type(self.embedder).__name__ if self.embedder is not None else None,
            "generator": type(self.generator).__name__ if self.generator is not None else None,
            "cache": self.cache.stats(),
            "sample_embedding": sample,
        }
