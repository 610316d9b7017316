"""Generative-model file classification for the tri-model ranking."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .llm import coerce_generated_text
from .models import ClassificationResult, SourceFile
from .providers import GenerativeProvider, maybe_await
from .throttle import BatchThrottle

logger = logging.getLogger(__name__)

LABEL_SCORES = {
    "entry-point": 0.9,
    "core-logic": 0.8,
    "helper": 0.6,
    "config": 0.4,
}
UNRELATED_LABEL_SCORE = 0.2

POSITION_BONUS = {
    "upstream": 0.2,
    "downstream": 0.2,
    "parallel": 0.1,
}

LABEL_WEIGHT = 0.7
RELATIONSHIP_WEIGHT = 0.3

SNIPPET_CHARS = 800

PROMPT_TEMPLATE = """You are ranking source files for the task: "{query}".
{entry_line}
File: {path}
```
{snippet}
```
Answer with exactly two lines:
classification: one of core-logic, helper, config, unrelated
position: one of upstream, downstream, parallel, unrelated
"""

_LABEL_RE = re.compile(r"\b(entry[\s_-]?point|core[\s_-]?logic|helper|config|unrelated)\b")
_POSITION_RE = re.compile(r"\b(upstream|downstream|parallel|unrelated)\b")
_LABEL_LINE_RE = re.compile(r"(?:classification|label|role)\s*[:=]\s*(.+)")
_POSITION_LINE_RE = re.compile(r"(?:position|workflow)\s*[:=]\s*(.+)")


def _normalise_label(raw: str) -> str:
    return re.sub(r"[\s_]", "-", raw)


def parse_classification(text: str) -> Tuple[str, str]:
    """Extract ``(label, position)`` from free-form model output.

    Labelled lines (``classification: helper``) take precedence over the
    first bare keyword found anywhere.  Missing values become ``unrelated``.
    """
    lowered = text.lower()

    label = "unrelated"
    line = _LABEL_LINE_RE.search(lowered)
    found = _LABEL_RE.search(line.group(1) if line else lowered) or _LABEL_RE.search(lowered)
    if found:
        label = _normalise_label(found.group(1))

    position = "unrelated"
    line = _POSITION_LINE_RE.search(lowered)
    found = _POSITION_RE.search(line.group(1)) if line else None
    if found is None:
        # skip the label's own "unrelated" when scanning the whole text
        for candidate in _POSITION_RE.finditer(lowered):
            if candidate.group(1) != "unrelated":
                found = candidate
                break
    if found:
        position = found.group(1)

    return label, position


def classification_score(label: str, position: str, relationship: float) -> float:
    label_score = LABEL_SCORES.get(label, UNRELATED_LABEL_SCORE) + POSITION_BONUS.get(position, 0.0)
    return min(LABEL_WEIGHT * label_score + RELATIONSHIP_WEIGHT * relationship, 1.0)


def _failed(path: str) -> ClassificationResult:
    return ClassificationResult(file=path, classification="unknown", workflow_position="unrelated", score=0.0)


class FileClassifier:
    """Asks a generative provider for each file's role and workflow position.

    Calls go out one at a time, grouped into throttled batches.  Any
    failure on one file degrades only that file to ``unknown``.
    """

    def __init__(
        self,
        generator: Optional[GenerativeProvider],
        throttle: Optional[BatchThrottle] = None,
    ):
        self.generator = generator
        self.throttle = throttle or BatchThrottle()

    async def classify(
        self,
        query: str,
        files: Sequence[SourceFile],
        paths: Iterable[str],
        relationship_scores: Dict[str, float],
        entry_point: Optional[str] = None,
    ) -> Dict[str, ClassificationResult]:
        contents = {f.path: f.content for f in files}
        results: Dict[str, ClassificationResult] = {}
        pending = []

        for path in paths:
            if path == entry_point:
                results[path] = ClassificationResult(
                    file=path,
                    classification="entry-point",
                    workflow_position="upstream",
                    score=classification_score("entry-point", "upstream", relationship_scores.get(path, 1.0)),
                )
            elif self.generator is None:
                results[path] = _failed(path)
            else:
                pending.append(path)

        async for batch in self.throttle.batches(pending):
            for path in batch:
                results[path] = await self._classify_one(
                    query, path, contents.get(path, ""), relationship_scores.get(path, 0.0), entry_point,
                )

        logger.info("Classified %d files (%d via model)", len(results), len(pending))
        return results

    async def _classify_one(
        self,
        query: str,
        path: str,
        content: str,
        relationship: float,
        entry_point: Optional[str],
    ) -> ClassificationResult:
        prompt = PROMPT_TEMPLATE.format(
            query=query,
            entry_line=f"Workflow entry point: {entry_point}" if entry_point else "",
            path=path,
            snippet=content[:SNIPPET_CHARS],
        )
        try:
            response = await maybe_await(self.generator.generate(prompt))
        except Exception as exc:
            logger.warning("Classification failed for %s: %s", path, exc)
            return _failed(path)

        text = coerce_generated_text(response)
        if text is None:
            logger.warning("Classification failed for %s: empty model response", path)
            return _failed(path)

        label, position = parse_classification(text)
        if label == "entry-point":
            label = "core-logic"
        return ClassificationResult(
            file=path,
            classification=label,
            workflow_position=position,
            score=classification_score(label, position, relationship),
        )
