"""Content-addressable analysis cache backed by SQLite.

Three logical namespaces, one table each:

- ``file_embeddings``  : one row per file path, validated by content hash.
- ``project_snapshots``: aggregate embeddings + keywords per project hash.
- ``search_results``   : named, saved search result sets.

Every table carries a ``timestamp`` index so stale rows can be evicted
regardless of access.  The cache is never the source of truth: a read whose
stored hash differs from the requested one is a miss, and if the database
cannot be opened every operation becomes a guaranteed miss.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .config import CACHE_MAX_AGE_SECONDS
from .models import ExtractedKeyword, ProjectSnapshot, RankedResult, SavedSearch, SourceFile

logger = logging.getLogger(__name__)

_TABLES = ("file_embeddings", "project_snapshots", "search_results")


def calculate_hash(content: str) -> str:
    """SHA-256 hex digest of *content* (UTF-8)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def calculate_project_hash(files: Sequence[SourceFile]) -> str:
    """Hash the whole project state.

    The digest covers every ``path:content_hash`` pair (sorted, so input
    order is irrelevant) plus a descriptor with the top-level directory name
    and the file count.
    """
    pairs = sorted(f"{f.path}:{calculate_hash(f.content)}" for f in files)
    first_path = min((f.path for f in files), default="")
    parts = [p for p in first_path.split("/") if p]
    project_dir = parts[0] if len(parts) > 1 else "unknown"
    descriptor = f"project:{project_dir}|files:{len(files)}|{'|'.join(pairs)}"
    return calculate_hash(descriptor)


def generate_search_id(keyword: str, project_name: str) -> str:
    """Stable id for a saved search; re-running the same search overwrites it."""
    safe_keyword = re.sub(r"[^a-zA-Z0-9]", "_", keyword)
    safe_project = re.sub(r"[^a-zA-Z0-9]", "_", project_name)
    return f"search_{safe_keyword}_{safe_project}"


class AnalysisCache:
    """Durable, advisory cache for embeddings and analysis snapshots.

    Args:
        db_path: SQLite database file, ``":memory:"``, or ``None`` for a
                 permanently unavailable cache.
        clock:   Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        db_path: Union[Path, str, None],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = db_path
        self.clock = clock
        self.conn: Optional[sqlite3.Connection] = None
        if db_path is None:
            logger.info("Analysis cache disabled; every lookup will miss.")
            return
        try:
            if isinstance(db_path, Path):
                db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(db_path))
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except (sqlite3.Error, OSError) as exc:
            logger.warning("Analysis cache unavailable (%s): %s", db_path, exc)
            self.conn = None

    @property
    def available(self) -> bool:
        return self.conn is not None

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        assert self.conn is not None
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS file_embeddings (
                path      TEXT PRIMARY KEY,
                hash      TEXT NOT NULL,
                embedding TEXT NOT NULL,
                timestamp REAL NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS project_snapshots (
                project_hash    TEXT PRIMARY KEY,
                file_embeddings TEXT NOT NULL,
                keywords        TEXT NOT NULL,
                timestamp       REAL NOT NULL
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS search_results (
                id               TEXT PRIMARY KEY,
                keyword          TEXT NOT NULL,
                project_name     TEXT NOT NULL,
                results          TEXT NOT NULL,
                entry_point_file TEXT,
                timestamp        REAL NOT NULL
            )
        """)
        for table in _TABLES:
            cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_ts ON {table}(timestamp)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_search_project ON search_results(project_name)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_search_keyword ON search_results(keyword)")
        self.conn.commit()

    # ------------------------------------------------------------------
    # File embeddings
    # ------------------------------------------------------------------

    def get_embedding(self, path: str, content_hash: str) -> Optional[List[float]]:
        """Return the cached embedding for *path* only if its hash matches."""
        if self.conn is None:
            return None
        row = self.conn.execute(
            "SELECT hash, embedding FROM file_embeddings WHERE path = ?", (path,),
        ).fetchone()
        if row is None or row["hash"] != content_hash:
            return None
        return json.loads(row["embedding"])

    def put_embedding(self, path: str, content_hash: str, embedding: List[float]) -> bool:
        if self.conn is None:
            return False
        self.conn.execute(
            "INSERT OR REPLACE INTO file_embeddings (path, hash, embedding, timestamp) VALUES (?, ?, ?, ?)",
            (path, content_hash, json.dumps(list(embedding)), self.clock()),
        )
        self.conn.commit()
        return True

    # ------------------------------------------------------------------
    # Project snapshots
    # ------------------------------------------------------------------

    def get_project_snapshot(self, project_hash: str) -> Optional[ProjectSnapshot]:
        if self.conn is None:
            return None
        row = self.conn.execute(
            "SELECT * FROM project_snapshots WHERE project_hash = ?", (project_hash,),
        ).fetchone()
        if row is None:
            return None
        return ProjectSnapshot(
            project_hash=row["project_hash"],
            file_embeddings=json.loads(row["file_embeddings"]),
            keywords=[ExtractedKeyword.from_dict(k) for k in json.loads(row["keywords"])],
            timestamp=row["timestamp"],
        )

    def put_project_snapshot(
        self,
        project_hash: str,
        file_embeddings: Dict[str, List[float]],
        keywords: Optional[List[ExtractedKeyword]] = None,
    ) -> bool:
        if self.conn is None:
            return False
        self.conn.execute(
            """
            INSERT OR REPLACE INTO project_snapshots (project_hash, file_embeddings, keywords, timestamp)
            VALUES (?, ?, ?, ?)
            """,
            (
                project_hash,
                json.dumps(file_embeddings),
                json.dumps([k.to_dict() for k in keywords or []]),
                self.clock(),
            ),
        )
        self.conn.commit()
        return True

    # ------------------------------------------------------------------
    # Saved search results
    # ------------------------------------------------------------------

    def put_search_results(self, search: SavedSearch) -> bool:
        if self.conn is None:
            return False
        self.conn.execute(
            """
            INSERT OR REPLACE INTO search_results (id, keyword, project_name, results, entry_point_file, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                search.id,
                search.keyword,
                search.project_name,
                json.dumps([r.to_dict() for r in search.results]),
                search.entry_point_file,
                search.timestamp,
            ),
        )
        self.conn.commit()
        return True

    def get_search_results(self, search_id: str) -> Optional[SavedSearch]:
        if self.conn is None:
            return None
        row = self.conn.execute(
            "SELECT * FROM search_results WHERE id = ?", (search_id,),
        ).fetchone()
        return _row_to_search(row) if row is not None else None

    def list_search_results(self, project_name: str) -> List[SavedSearch]:
        """Saved searches for *project_name*, newest first."""
        if self.conn is None:
            return []
        rows = self.conn.execute(
            "SELECT * FROM search_results WHERE project_name = ? ORDER BY timestamp DESC",
            (project_name,),
        ).fetchall()
        return [_row_to_search(row) for row in rows]

    def delete_search_results(self, search_id: str) -> bool:
        if self.conn is None:
            return False
        cur = self.conn.execute("DELETE FROM search_results WHERE id = ?", (search_id,))
        self.conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def evict_older_than(self, max_age_seconds: float = CACHE_MAX_AGE_SECONDS) -> int:
        """Delete every record whose timestamp is at or before ``now - max_age``.

        Returns:
            Number of rows removed across all namespaces.
        """
        if self.conn is None:
            return 0
        cutoff = self.clock() - max_age_seconds
        removed = 0
        for table in _TABLES:
            cur = self.conn.execute(f"DELETE FROM {table} WHERE timestamp <= ?", (cutoff,))
            removed += cur.rowcount
        self.conn.commit()
        if removed:
            logger.info("Evicted %d cache records older than %.0fs", removed, max_age_seconds)
        return removed

    def clear(self) -> None:
        """Drop every cached record."""
        if self.conn is None:
            return
        for table in _TABLES:
            self.conn.execute(f"DELETE FROM {table}")
        self.conn.commit()

    def stats(self) -> Dict[str, Any]:
        counts: Dict[str, Any] = {"available": self.available}
        for table in _TABLES:
            if self.conn is None:
                counts[table] = 0
            else:
                counts[table] = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return counts


def _row_to_search(row: sqlite3.Row) -> SavedSearch:
    return SavedSearch(
        id=row["id"],
        keyword=row["keyword"],
        project_name=row["project_name"],
        results=[RankedResult.from_dict(r) for r in json.loads(row["results"])],
        timestamp=row["timestamp"],
        entry_point_file=row["entry_point_file"],
    )
