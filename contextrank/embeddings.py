"""Embedding providers for the semantic scorer.

Every provider exposes ``embed_text(text) -> List[float]`` and returns a
mean-pooled, L2-normalised vector, so cosine similarity between two outputs
is just their dot product.

========== ====================================== ====== ==========================
Key        HuggingFace model                      Dim    Notes
========== ====================================== ====== ==========================
jina-code  jinaai/jina-embeddings-v2-base-code     768   Code-aware, recommended
minilm     sentence-transformers/all-MiniLM-L6-v2  384   Tiny and fast
hash       (none)                                  256   Token hashing, no ML
========== ====================================== ====== ==========================

Transformer models need the ``embeddings`` extra (``torch`` +
``transformers``); without it :func:`get_embedder` falls back to hashing.
"""

from __future__ import annotations

import logging
import math
import re
from hashlib import blake2b
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import BASE_DIR

logger = logging.getLogger(__name__)

MODEL_CACHE_DIR: Path = BASE_DIR / "models"

# Identifier-ish tokens, with camelCase humps split apart.
_TOKEN_RE = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+")

EMBEDDING_MODELS: Dict[str, Dict[str, Any]] = {
    "jina-code": {
        "name": "Jina Embeddings v2 Code",
        "hf_id": "jinaai/jina-embeddings-v2-base-code",
        "dim": 768,
        "max_tokens": 8192,
        "trust_remote_code": True,
    },
    "minilm": {
        "name": "MiniLM L6 v2",
        "hf_id": "sentence-transformers/all-MiniLM-L6-v2",
        "dim": 384,
        "max_tokens": 256,
        "trust_remote_code": False,
    },
    "hash": {
        "name": "Hash Embedding",
        "hf_id": None,
        "dim": 256,
        "max_tokens": None,
        "trust_remote_code": False,
    },
}

DEFAULT_MODEL = "hash"


class TransformerEmbedder:
    """Mean-pooled HuggingFace encoder.

    Weights are fetched lazily on the first :meth:`embed_text` call and
    cached under ``MODEL_CACHE_DIR``.
    """

    def __init__(
        self,
        model_key: str,
        cache_dir: Optional[Path] = None,
        device: str = "cpu",
    ) -> None:
        spec = EMBEDDING_MODELS.get(model_key)
        if spec is None or spec["hf_id"] is None:
            raise ValueError(f"'{model_key}' is not a transformer embedding model")

        self.model_key = model_key
        self.hf_id: str = spec["hf_id"]
        self.dim: int = spec["dim"]
        self.max_length: int = spec["max_tokens"]
        self.trust_remote_code: bool = spec["trust_remote_code"]
        self.cache_dir = cache_dir or MODEL_CACHE_DIR
        self.device = device
        self._model: Any = None
        self._tokenizer: Any = None

    def _load_model(self) -> None:
        if self._model is not None:
            return
        from transformers import AutoModel, AutoTokenizer

        logger.info("Loading embedding model '%s' (%s)", self.model_key, self.hf_id)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        try:
            self._tokenizer = AutoTokenizer.from_pretrained(
                self.hf_id,
                cache_dir=str(self.cache_dir),
                trust_remote_code=self.trust_remote_code,
            )
            self._model = AutoModel.from_pretrained(
                self.hf_id,
                cache_dir=str(self.cache_dir),
                trust_remote_code=self.trust_remote_code,
            )
        except Exception as exc:
            raise RuntimeError(f"Failed to load embedding model '{self.hf_id}': {exc}") from exc
        self._model.eval()
        self._model.to(self.device)

    def embed_text(self, text: str) -> List[float]:
        import torch
        import torch.nn.functional as F

        self._load_model()
        batch = self._tokenizer(
            [text],
            max_length=self.max_length,
            padding=True,
            truncation=True,
            return_tensors="pt",
        )
        batch = {k: v.to(self.device) for k, v in batch.items()}
        with torch.no_grad():
            hidden = self._model(**batch).last_hidden_state

        mask = batch["attention_mask"].unsqueeze(-1).expand(hidden.size()).float()
        pooled = (hidden * mask).sum(dim=1) / mask.sum(dim=1).clamp(min=1e-9)
        return F.normalize(pooled, p=2, dim=1)[0].cpu().tolist()


class HashEmbeddingModel:
    """Deterministic token-hashing embedder with no ML dependencies.

    Similarity is purely lexical: texts sharing identifier fragments end up
    close together.
    """

    def __init__(self, dim: int = 256) -> None:
        self.dim = dim
        self.model_key = "hash"

    def embed_text(self, text: str) -> List[float]:
        vec = [0.0] * self.dim
        for token in _TOKEN_RE.findall(text):
            digest = blake2b(token.lower().encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dim
            vec[idx] += 1.0 if (digest[4] & 1) == 0 else -1.0
        return _l2_normalize(vec)


Embedder = Union[TransformerEmbedder, HashEmbeddingModel]


def get_embedder(model_key: Optional[str] = None, device: str = "cpu") -> Embedder:
    """Return the configured embedder.

    Resolution order: explicit ``model_key``, then ``[embeddings].model``
    from the config file, then ``"hash"``.  A transformer model whose
    libraries are not installed degrades to hashing with a warning.
    """
    if model_key is None:
        from .config_manager import load_embedding_config
        model_key = load_embedding_config().get("model", DEFAULT_MODEL)

    spec = EMBEDDING_MODELS.get(model_key)
    if spec is None:
        logger.warning("Unknown embedding model '%s', falling back to hash.", model_key)
        return HashEmbeddingModel()
    if spec["hf_id"] is None:
        return HashEmbeddingModel(dim=spec["dim"])

    try:
        import torch  # noqa: F401
        import transformers  # noqa: F401
    except ImportError:
        logger.warning(
            "Embedding model '%s' requires torch + transformers "
            "(pip install contextrank[embeddings]); using hash embeddings.",
            model_key,
        )
        return HashEmbeddingModel()
    return TransformerEmbedder(model_key=model_key, device=device)


def cosine_similarity(vec_a: List[float], vec_b: List[float]) -> float:
    """Cosine similarity in ``[-1, 1]``.

    Empty, zero-norm or mismatched-length vectors score ``0.0``.
    """
    if not vec_a or not vec_b or len(vec_a) != len(vec_b):
        return 0.0
    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))
    if norm_a < 1e-12 or norm_b < 1e-12:
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def _l2_normalize(vec: List[float]) -> List[float]:
    norm = math.sqrt(sum(v * v for v in vec))
    if norm < 1e-12:
        return vec
    return [v / norm for v in vec]
