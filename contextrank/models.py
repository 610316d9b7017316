"""Core data models shared by extraction, caching, scoring and the engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Set

# Evidence sources a domain keyword can be mined from.
KEYWORD_SOURCES = ("directory", "filename", "class", "function", "import", "export")

# Coarse role labels produced by the tri-model classifier.
CLASSIFICATION_LABELS = ("entry-point", "core-logic", "helper", "config", "unrelated")
WORKFLOW_POSITIONS = ("upstream", "downstream", "parallel", "unrelated")


@dataclass
class SourceFile:
    path: str
    content: str


@dataclass
class Symbol:
    name: str
    start_line: int
    end_line: int


@dataclass
class ImportSymbol:
    module: str
    start_line: int
    names: List[str] = field(default_factory=list)


@dataclass
class SymbolTable:
    classes: List[Symbol] = field(default_factory=list)
    functions: List[Symbol] = field(default_factory=list)
    imports: List[ImportSymbol] = field(default_factory=list)
    exports: List[Symbol] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.classes or self.functions or self.imports or self.exports)


@dataclass
class DependencyEdge:
    from_file: str
    to_file: str
    dependency_type: str
    line: int
    confidence: float


@dataclass
class FileEmbedding:
    path: str
    hash: str
    embedding: List[float]
    timestamp: float


@dataclass
class ASTMatch:
    file: str
    matches: List[str]
    score: float


@dataclass
class LLMMatch:
    file: str
    score: float
    embedding: Optional[List[float]] = None


@dataclass
class HybridMatch:
    file: str
    final_score: float
    structure_score: float
    semantic_score: float
    has_synergy: bool
    matches: List[str] = field(default_factory=list)


@dataclass
class ClassificationResult:
    file: str
    classification: str
    workflow_position: str
    score: float


@dataclass
class RankedResult:
    """One ranked file returned by the query API.

    Optional fields stay ``None`` for the plain hybrid search and are
    omitted from :meth:`to_dict`.
    """

    file: str
    final_score: float
    structure_score: float
    semantic_score: float
    has_synergy: bool
    matches: List[str] = field(default_factory=list)
    score_percentage: Optional[int] = None
    relationship_score: Optional[float] = None
    classification_score: Optional[float] = None
    classification: Optional[str] = None
    workflow_position: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "RankedResult":
        return cls(
            file=payload["file"],
            final_score=payload["final_score"],
            structure_score=payload.get("structure_score", 0.0),
            semantic_score=payload.get("semantic_score", 0.0),
            has_synergy=payload.get("has_synergy", False),
            matches=list(payload.get("matches", [])),
            score_percentage=payload.get("score_percentage"),
            relationship_score=payload.get("relationship_score"),
            classification_score=payload.get("classification_score"),
            classification=payload.get("classification"),
            workflow_position=payload.get("workflow_position"),
        )


@dataclass
class ExtractedKeyword:
    keyword: str
    frequency: int
    sources: Set[str] = field(default_factory=set)
    confidence: float = 0.0
    related_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "frequency": self.frequency,
            "sources": sorted(self.sources),
            "confidence": self.confidence,
            "related_files": list(self.related_files),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ExtractedKeyword":
        return cls(
            keyword=payload["keyword"],
            frequency=payload["frequency"],
            sources=set(payload.get("sources", [])),
            confidence=payload.get("confidence", 0.0),
            related_files=list(payload.get("related_files", [])),
        )


@dataclass
class ProjectSnapshot:
    project_hash: str
    file_embeddings: Dict[str, List[float]]
    keywords: List[ExtractedKeyword]
    timestamp: float


@dataclass
class SavedSearch:
    id: str
    keyword: str
    project_name: str
    results: List[RankedResult]
    timestamp: float
    entry_point_file: Optional[str] = None
