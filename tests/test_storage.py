"""Tests for the content-addressable analysis cache."""

from pathlib import Path

from contextrank.models import ExtractedKeyword, RankedResult, SavedSearch, SourceFile
from contextrank.storage import (
    AnalysisCache,
    calculate_hash,
    calculate_project_hash,
    generate_search_id,
)

DAY = 24 * 60 * 60


class TestHashing:
    """Content and project hashes."""

    def test_hash_is_deterministic(self):
        assert calculate_hash("print('hi')") == calculate_hash("print('hi')")

    def test_different_content_different_hash(self):
        assert calculate_hash("a") != calculate_hash("b")

    def test_hash_is_sha256_hex(self):
        digest = calculate_hash("")
        assert digest == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_identical_content_same_hash_regardless_of_path(self):
        a = SourceFile("src/a.js", "export const x = 1")
        b = SourceFile("lib/b.js", "export const x = 1")
        assert calculate_hash(a.content) == calculate_hash(b.content)

    def test_project_hash_ignores_input_order(self):
        files = [SourceFile("app/a.js", "a"), SourceFile("app/b.js", "b")]
        assert calculate_project_hash(files) == calculate_project_hash(list(reversed(files)))

    def test_project_hash_changes_on_add_remove_modify(self):
        base = [SourceFile("app/a.js", "a"), SourceFile("app/b.js", "b")]
        original = calculate_project_hash(base)

        modified = [SourceFile("app/a.js", "a2"), SourceFile("app/b.js", "b")]
        added = base + [SourceFile("app/c.js", "c")]
        removed = base[:1]

        assert calculate_project_hash(modified) != original
        assert calculate_project_hash(added) != original
        assert calculate_project_hash(removed) != original


class TestEmbeddings:
    def test_roundtrip_with_matching_hash(self, memory_cache: AnalysisCache):
        h = calculate_hash("content")
        assert memory_cache.put_embedding("src/a.js", h, [0.1, 0.2])

        assert memory_cache.get_embedding("src/a.js", h) == [0.1, 0.2]

    def test_hash_mismatch_is_a_miss(self, memory_cache: AnalysisCache):
        memory_cache.put_embedding("src/a.js", calculate_hash("old"), [1.0])

        assert memory_cache.get_embedding("src/a.js", calculate_hash("new")) is None

    def test_same_hash_different_path_is_a_miss(self, memory_cache: AnalysisCache):
        """Identical content under another path must not reuse the cached vector."""
        content = "export function shared() {}"
        h = calculate_hash(content)
        memory_cache.put_embedding("src/one.js", h, [0.5, 0.5])

        assert memory_cache.get_embedding("src/two.js", calculate_hash(content)) is None

    def test_put_replaces_previous_row(self, memory_cache: AnalysisCache):
        memory_cache.put_embedding("a.js", "h1", [1.0])
        memory_cache.put_embedding("a.js", "h2", [2.0])

        assert memory_cache.get_embedding("a.js", "h1") is None
        assert memory_cache.get_embedding("a.js", "h2") == [2.0]
        assert memory_cache.stats()["file_embeddings"] == 1


class TestProjectSnapshots:
    def test_roundtrip_with_keywords(self, memory_cache: AnalysisCache, clock):
        kw = ExtractedKeyword("user", 5, {"class", "filename"}, 0.9, ["src/user.js"])
        memory_cache.put_project_snapshot("p1", {"src/user.js": [0.3, 0.4]}, [kw])

        snapshot = memory_cache.get_project_snapshot("p1")

        assert snapshot is not None
        assert snapshot.file_embeddings == {"src/user.js": [0.3, 0.4]}
        assert snapshot.keywords[0].keyword == "user"
        assert snapshot.keywords[0].sources == {"class", "filename"}
        assert snapshot.timestamp == clock.now

    def test_unknown_project_is_a_miss(self, memory_cache: AnalysisCache):
        assert memory_cache.get_project_snapshot("nope") is None


class TestSearchResults:
    def _search(self, keyword: str, project: str, timestamp: float) -> SavedSearch:
        return SavedSearch(
            id=generate_search_id(keyword, project),
            keyword=keyword,
            project_name=project,
            results=[RankedResult("src/a.js", 1.2, 0.5, 0.4, True, ['Path matches "user"'])],
            timestamp=timestamp,
        )

    def test_generate_search_id_sanitises(self):
        assert generate_search_id("user login!", "my-app") == "search_user_login__my_app"

    def test_put_get_list_delete(self, memory_cache: AnalysisCache):
        memory_cache.put_search_results(self._search("user", "app", 100.0))
        memory_cache.put_search_results(self._search("order", "app", 200.0))
        memory_cache.put_search_results(self._search("user", "other", 300.0))

        saved = memory_cache.get_search_results("search_user_app")
        assert saved is not None
        assert saved.results[0].has_synergy is True
        assert saved.results[0].score_percentage is None

        listed = memory_cache.list_search_results("app")
        assert [s.keyword for s in listed] == ["order", "user"]

        assert memory_cache.delete_search_results("search_user_app") is True
        assert memory_cache.delete_search_results("search_user_app") is False
        assert memory_cache.get_search_results("search_user_app") is None

    def test_same_search_overwrites(self, memory_cache: AnalysisCache):
        memory_cache.put_search_results(self._search("user", "app", 100.0))
        memory_cache.put_search_results(self._search("user", "app", 150.0))

        assert len(memory_cache.list_search_results("app")) == 1


class TestMaintenance:
    def test_evict_older_than(self, memory_cache: AnalysisCache, clock):
        memory_cache.put_embedding("old.js", "h", [1.0])
        memory_cache.put_project_snapshot("old-project", {"old.js": [1.0]})
        clock.advance(31 * DAY)
        memory_cache.put_embedding("new.js", "h", [1.0])

        removed = memory_cache.evict_older_than(30 * DAY)

        assert removed == 2
        assert memory_cache.get_embedding("old.js", "h") is None
        assert memory_cache.get_embedding("new.js", "h") == [1.0]
        assert memory_cache.get_project_snapshot("old-project") is None

    def test_evict_zero_age_removes_everything(self, memory_cache: AnalysisCache):
        memory_cache.put_embedding("a.js", "h", [1.0])
        assert memory_cache.evict_older_than(0) == 1

    def test_clear_and_stats(self, memory_cache: AnalysisCache):
        memory_cache.put_embedding("a.js", "h", [1.0])
        memory_cache.put_project_snapshot("p", {})

        assert memory_cache.stats() == {
            "available": True,
            "file_embeddings": 1,
            "project_snapshots": 1,
            "search_results": 0,
        }
        memory_cache.clear()
        assert memory_cache.stats()["file_embeddings"] == 0
        assert memory_cache.stats()["project_snapshots"] == 0

    def test_persists_across_connections(self, temp_dir: Path, clock):
        db = temp_dir / "nested" / "cache.db"
        first = AnalysisCache(db, clock=clock)
        first.put_embedding("a.js", "h", [0.25])
        first.close()

        second = AnalysisCache(db, clock=clock)
        assert second.get_embedding("a.js", "h") == [0.25]
        second.close()


class TestUnavailableCache:
    def test_disabled_cache_always_misses(self):
        cache = AnalysisCache(None)

        assert cache.available is False
        assert cache.put_embedding("a.js", "h", [1.0]) is False
        assert cache.get_embedding("a.js", "h") is None
        assert cache.get_project_snapshot("p") is None
        assert cache.list_search_results("app") == []
        assert cache.evict_older_than(0) == 0
        assert cache.stats()["available"] is False
        cache.clear()

    def test_unopenable_path_degrades(self, temp_dir: Path):
        blocker = temp_dir / "not-a-dir"
        blocker.write_text("file")

        cache = AnalysisCache(blocker / "cache.db")

        assert cache.available is False
        assert cache.get_embedding("a.js", "h") is None
