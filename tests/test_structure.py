"""Tests for the lexical structure scorer."""

import pytest

from contextrank.models import SourceFile
from contextrank.parser import RegexSymbolExtractor
from contextrank.structure import StructureScorer, file_role_multiplier, tokenize_query


def _score(query, files):
    tables = RegexSymbolExtractor().extract_many(files)
    return {m.file: m for m in StructureScorer().score(query, files, tables)}


class TestTokenizeQuery:
    def test_splits_and_lowercases(self):
        assert tokenize_query("User_login-flow  Checkout") == ["user", "login", "flow", "checkout"]

    def test_drops_short_tokens_and_duplicates(self):
        assert tokenize_query("a an the user USER") == ["the", "user"]

    def test_empty(self):
        assert tokenize_query("  ") == []


class TestFileRoleMultiplier:
    @pytest.mark.parametrize("path, expected", [
        ("app/models/user.rb", 1.2),
        ("src/controllers/user.js", 1.1),
        ("src/services/user.js", 1.1),
        ("src/components/Button.vue", 1.1),
        ("app/jobs/cleanup.rb", 1.0),
        ("db/migrate/001_users.rb", 0.7),
        ("config/database.js", 0.6),
        ("spec/user_spec.rb", 0.8),
        ("tests/user.test.js", 0.8),
        ("src/user.js", 1.0),
    ])
    def test_roles(self, path, expected):
        assert file_role_multiplier(path) == expected


class TestStructureScorer:
    def test_scenario_a_evidence(self, scenario_a_files):
        matches = _score("user", scenario_a_files)

        assert set(matches) == {"src/userService.js", "src/userController.js"}
        service = matches["src/userService.js"]
        controller = matches["src/userController.js"]
        assert service.score > 0 and controller.score > 0
        assert 'Function name matches "user"' in service.matches
        assert 'Function name matches "user"' in controller.matches
        assert 'Import matches "user"' in controller.matches

    def test_weights_for_single_token(self):
        files = [SourceFile("lib/x.js", "class Invoice {\n}\n")]
        match = _score("invoice", files)["lib/x.js"]

        # class 1.0 + one content occurrence 0.1
        assert match.score == pytest.approx(1.1)

    def test_content_contribution_is_capped(self):
        files = [SourceFile("lib/x.txt", "ticket " * 50)]
        match = _score("ticket", files)["lib/x.txt"]

        assert match.score == pytest.approx(0.5)

    def test_multi_keyword_boost(self):
        files = [SourceFile("lib/x.txt", "alpha beta")]
        single = _score("alpha", files)["lib/x.txt"].score
        double = _score("alpha beta", files)["lib/x.txt"].score

        # (0.1 + 0.1) * 1.25
        assert single == pytest.approx(0.1)
        assert double == pytest.approx(0.25)

    def test_role_multiplier_applied(self):
        files = [
            SourceFile("src/models/cart.js", "cart"),
            SourceFile("config/cart.js", "cart"),
        ]
        matches = _score("cart", files)

        assert matches["src/models/cart.js"].score == pytest.approx((0.6 + 0.1) * 1.2)
        assert matches["config/cart.js"].score == pytest.approx((0.6 + 0.1) * 0.6)

    def test_short_query_yields_nothing(self, scenario_a_files):
        assert _score("a b", scenario_a_files) == {}

    def test_zero_match_files_excluded(self, sample_files):
        matches = _score("payment", sample_files)

        assert "src/services/paymentService.js" in matches
        assert "src/models/user.js" not in matches

    def test_file_without_symbol_table_uses_path_and_content(self):
        files = [SourceFile("assets/order.svg", "<svg>order</svg>")]
        tables = {}
        matches = StructureScorer().score("order", files, tables)

        assert len(matches) == 1
        assert matches[0].matches == ['Path matches "order"', 'Content matches "order"']
