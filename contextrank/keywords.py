"""Mining of business-domain vocabulary from paths and symbol names.

The extractor favours precision: a token is only reported if it belongs to
the curated :data:`DOMAIN_TERMS` vocabulary, so generic code words never
reach the result even when they are frequent.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Sequence

from .models import ExtractedKeyword, SourceFile, SymbolTable

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 15
MIN_KEYWORD_LENGTH = 3

SOURCE_WEIGHTS = {
    "directory": 1,
    "filename": 2,
    "class": 3,
    "function": 2,
    "import": 1,
    "export": 2,
}

STOP_WORDS = {
    "the", "and", "for", "with", "from", "this", "that", "into", "are", "was",
    "not", "all", "any", "can", "has", "have", "out", "our", "you", "your",
    "get", "set", "add", "new", "use", "run", "put", "make", "find",
    "handle", "handler", "create", "update", "delete", "remove", "fetch", "load",
    "save", "init", "render", "process", "build", "parse", "format", "check",
    "function", "class", "const", "let", "var", "def", "return", "import",
    "export", "default", "async", "await", "static", "public", "private",
    "index", "main", "util", "utils", "helper", "helpers", "common", "shared",
    "config", "test", "tests", "spec", "mock", "src", "lib", "app", "api",
    "component", "components", "service", "services", "controller", "controllers",
    "model", "models", "view", "views", "module", "modules", "store", "type",
    "types", "interface", "data", "value", "item", "items", "list", "map",
    "string", "number", "object", "array", "error", "result", "response",
    "request", "callback", "event", "state", "props", "node", "true", "false",
    "null", "undefined", "self", "base", "core", "temp", "tmp",
}

# Curated business vocabulary; plural forms are folded onto these.
DOMAIN_TERMS = {
    "user", "account", "profile", "customer", "client", "member", "employee",
    "admin", "role", "permission", "auth", "login", "logout", "signup",
    "register", "session", "password", "token", "order", "cart", "checkout",
    "payment", "invoice", "billing", "subscription", "plan", "price", "pricing",
    "discount", "coupon", "refund", "transaction", "wallet", "balance",
    "product", "catalog", "category", "inventory", "stock", "warehouse",
    "shipping", "shipment", "delivery", "address", "ticket", "booking",
    "reservation", "appointment", "schedule", "calendar", "venue",
    "notification", "message", "email", "chat", "comment", "post", "article",
    "blog", "review", "rating", "feedback", "report", "analytics", "dashboard",
    "project", "task", "team", "organization", "company", "contract",
    "document", "upload", "attachment", "media", "course", "lesson", "student",
    "teacher", "patient", "doctor", "vendor", "supplier", "merchant",
    "tenant", "workspace", "audit", "search",
}

_SEPARATOR_RE = re.compile(r"[^A-Za-z0-9]+")
_CAMEL_RE = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+")


def split_identifier(text: str) -> List[str]:
    """Split on separators and camelCase boundaries, lower-cased."""
    words: List[str] = []
    for chunk in _SEPARATOR_RE.split(text):
        words.extend(w.lower() for w in _CAMEL_RE.findall(chunk))
    return words


def normalise_token(token: str) -> str:
    if token in DOMAIN_TERMS:
        return token
    for suffix in ("ies", "es", "s"):
        if token.endswith(suffix):
            stem = token[: -len(suffix)] + ("y" if suffix == "ies" else "")
            if stem in DOMAIN_TERMS:
                return stem
    return token


def is_domain_keyword(token: str) -> bool:
    if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS:
        return False
    return token in DOMAIN_TERMS


class KeywordExtractor:
    """Aggregates domain keywords across every file of a project."""

    def __init__(self, max_keywords: int = MAX_KEYWORDS):
        self.max_keywords = max_keywords

    def extract(
        self,
        files: Sequence[SourceFile],
        symbol_tables: Dict[str, SymbolTable],
    ) -> List[ExtractedKeyword]:
        found: Dict[str, ExtractedKeyword] = {}

        def record(text: str, source: str, path: str) -> None:
            for word in split_identifier(text):
                token = normalise_token(word)
                if not is_domain_keyword(token):
                    continue
                keyword = found.get(token)
                if keyword is None:
                    keyword = found[token] = ExtractedKeyword(keyword=token, frequency=0)
                keyword.frequency += SOURCE_WEIGHTS[source]
                keyword.sources.add(source)
                if path not in keyword.related_files:
                    keyword.related_files.append(path)

        for source_file in files:
            path = source_file.path
            *directories, filename = path.split("/")
            for directory in directories:
                record(directory, "directory", path)
            record(filename.rsplit(".", 1)[0], "filename", path)

            table = symbol_tables.get(path)
            if table is None:
                continue
            for cls in table.classes:
                record(cls.name, "class", path)
            for func in table.functions:
                record(func.name, "function", path)
            for imp in table.imports:
                record(imp.module, "import", path)
            for exp in table.exports:
                record(exp.name, "export", path)

        for keyword in found.values():
            keyword.confidence = min(
                keyword.frequency * 0.1 + len(keyword.sources) * 0.2 + len(keyword.related_files) * 0.05,
                1.0,
            )

        ranked = sorted(found.values(), key=lambda k: k.confidence * k.frequency, reverse=True)
        logger.info("Extracted %d domain keywords (%d kept)", len(ranked), min(len(ranked), self.max_keywords))
        return ranked[: self.max_keywords]
