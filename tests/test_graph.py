"""Tests for import resolution and the dependency graph."""

from contextrank.graph import DependencyGraphBuilder, build_importers_index, resolve_import_path
from contextrank.models import SourceFile
from contextrank.parser import RegexSymbolExtractor


def _build(files):
    tables = RegexSymbolExtractor().extract_many(files)
    return DependencyGraphBuilder().build(files, tables)


class TestResolveImportPath:
    PATHS = [
        "src/services/userService.js",
        "src/models/order.ts",
        "src/components/index.js",
        "lib/helpers/format.js",
    ]

    def test_relative_without_extension(self):
        assert resolve_import_path("./userService", self.PATHS) == "src/services/userService.js"

    def test_parent_relative_with_subdir(self):
        assert resolve_import_path("../models/order", self.PATHS) == "src/models/order.ts"

    def test_directory_index(self):
        assert resolve_import_path("./components", self.PATHS) == "src/components/index.js"

    def test_exact_path(self):
        assert resolve_import_path("lib/helpers/format.js", self.PATHS) == "lib/helpers/format.js"

    def test_suffix_must_align_on_segment(self):
        assert resolve_import_path("./Service", self.PATHS) is None

    def test_packages_are_unresolved(self):
        assert resolve_import_path("react", self.PATHS) is None
        assert resolve_import_path("", self.PATHS) is None


class TestDependencyGraphBuilder:
    def test_scenario_controller_imports_service(self, scenario_a_files):
        graph = _build(scenario_a_files)

        assert list(graph) == ["src/userController.js"]
        edge = graph["src/userController.js"][0]
        assert edge.to_file == "src/userService.js"
        assert edge.dependency_type == "import"
        assert edge.confidence == 0.9
        assert edge.line == 0

    def test_no_self_edges(self):
        files = [SourceFile("src/loop.js", "import x from './loop'")]
        assert _build(files) == {}

    def test_unresolved_imports_are_dropped(self):
        files = [SourceFile("src/app.js", "import React from 'react'\nimport fs from 'fs'")]
        assert _build(files) == {}

    def test_sample_project_edges(self, sample_files):
        graph = _build(sample_files)

        targets = {path: sorted(e.to_file for e in edges) for path, edges in graph.items()}
        assert targets["src/controllers/userController.js"] == ["src/services/userService.js"]
        assert targets["src/services/userService.js"] == ["src/models/user.js"]
        assert targets["src/services/orderService.js"] == [
            "src/models/order.js",
            "src/services/paymentService.js",
        ]

    def test_importers_index(self, sample_files):
        importers = build_importers_index(_build(sample_files))

        assert importers["src/services/userService.js"] == {"src/controllers/userController.js"}
        assert "src/controllers/userController.js" not in importers
