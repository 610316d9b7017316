"""Tests for the regex symbol extractor and source collection."""

from pathlib import Path

import pytest

from contextrank.models import SourceFile
from contextrank.parser import (
    RegexSymbolExtractor,
    SymbolExtractor,
    collect_source_files,
    find_brace_block_end,
    is_language_supported,
)


@pytest.fixture
def extractor() -> RegexSymbolExtractor:
    return RegexSymbolExtractor()


class TestImports:
    """Import statement extraction across syntaxes."""

    def test_es_module_import_with_names(self, extractor):
        table = extractor.extract("import { getUser, createUser as make } from './userService'", "a.js")

        assert len(table.imports) == 1
        imp = table.imports[0]
        assert imp.module == "./userService"
        assert imp.start_line == 0
        assert imp.names == ["getUser", "createUser"]

    def test_default_and_side_effect_imports(self, extractor):
        table = extractor.extract("import React from 'react'\nimport './styles.css'", "a.js")

        assert [i.module for i in table.imports] == ["react", "./styles.css"]
        assert table.imports[0].names == ["React"]
        assert table.imports[1].start_line == 1

    def test_python_imports(self, extractor):
        content = "from app.models import User, Order\nimport numpy as np\nimport os.path"
        table = extractor.extract(content, "a.py")

        assert [i.module for i in table.imports] == ["app.models", "numpy", "os.path"]
        assert table.imports[0].names == ["User", "Order"]

    def test_require_and_include(self, extractor):
        content = "const { chargePayment } = require('./paymentService')\n#include \"util.h\""
        table = extractor.extract(content, "a.js")

        assert [i.module for i in table.imports] == ["./paymentService", "util.h"]
        assert table.imports[0].names == ["chargePayment"]


class TestExports:
    def test_export_declarations(self, extractor):
        content = "export function getUser() {}\nexport default class Store {}\nexport const LIMIT = 5"
        table = extractor.extract(content, "a.js")

        assert [e.name for e in table.exports] == ["getUser", "Store", "LIMIT"]

    def test_export_list_uses_alias(self, extractor):
        table = extractor.extract("export { a, b as c }", "a.js")

        assert [e.name for e in table.exports] == ["a", "c"]


class TestClassesAndFunctions:
    def test_class_with_brace_extent(self, extractor):
        content = "export class User {\n  constructor(id) {\n    this.id = id\n  }\n}\n"
        table = extractor.extract(content, "user.js")

        assert len(table.classes) == 1
        cls = table.classes[0]
        assert cls.name == "User"
        assert (cls.start_line, cls.end_line) == (0, 4)

    def test_function_keywords_across_languages(self, extractor):
        content = "\n".join([
            "function handle(req) {",
            "}",
            "def process(data):",
            "    pass",
            "fn compute(x: i32) -> i32 {",
            "}",
            "public static int sum(int a, int b) {",
            "}",
        ])
        table = extractor.extract(content, "mixed.txt")

        assert [f.name for f in table.functions] == ["handle", "process", "compute", "sum"]

    def test_braceless_function_is_single_line(self, extractor):
        table = extractor.extract("def process(data):\n    return data\n", "a.py")

        fn = table.functions[0]
        assert fn.start_line == fn.end_line == 0

    def test_control_flow_and_calls_are_not_functions(self, extractor):
        content = "\n".join([
            "  if (ready) {",
            "  for (const x of xs) {",
            "  while (true) {",
            "  return compute(x)",
            "  await save(x)",
            "  switch (kind) {",
        ])
        table = extractor.extract(content, "a.js")

        assert table.functions == []

    def test_duplicate_function_within_window_is_dropped(self, extractor):
        content = "def run(a):\n\ndef run(b):\n\n\n\ndef run(c):\n"
        table = extractor.extract(content, "a.py")

        assert [f.start_line for f in table.functions] == [0, 6]

    def test_malformed_input_never_raises(self, extractor):
        table = extractor.extract("class {{{ ((( function ( \x00 }}}", "weird.js")

        assert table is not None

    def test_empty_content(self, extractor):
        assert extractor.extract("", "empty.js").is_empty()


class TestBraceBlockEnd:
    def test_brace_on_next_line(self):
        lines = ["void main()", "{", "  run();", "}"]
        assert find_brace_block_end(lines, 0) == 3

    def test_unterminated_block_runs_to_end(self):
        lines = ["function f() {", "  return 1", ""]
        assert find_brace_block_end(lines, 0) == 2

    def test_no_brace_is_declaration_line(self):
        lines = ["def f():", "    x = 1", "    y = {'a': 1}"]
        assert find_brace_block_end(lines, 0) == 0


class TestExtractMany:
    def test_failure_on_one_file_is_skipped(self, caplog):
        class Flaky(SymbolExtractor):
            def extract(self, content, path):
                if path == "bad.js":
                    raise RuntimeError("boom")
                return RegexSymbolExtractor().extract(content, path)

        files = [
            SourceFile("good.js", "function ok() {}"),
            SourceFile("bad.js", "function nope() {}"),
            SourceFile("logo.png", "binary"),
        ]
        tables = Flaky().extract_many(files)

        assert list(tables) == ["good.js"]
        assert "Failed to parse bad.js" in caplog.text


class TestFileFiltering:
    @pytest.mark.parametrize("path", [
        "assets/logo.png", "package-lock.lock", "node_modules/x/index.js",
        "dist/bundle.js", "web/public/app.js", "src/.git/config",
    ])
    def test_unsupported(self, path):
        assert not is_language_supported(path)

    @pytest.mark.parametrize("path", ["src/app.js", "lib/models/user.rb", "main.py", "Makefile"])
    def test_supported(self, path):
        assert is_language_supported(path)

    def test_collect_source_files(self, temp_dir: Path):
        (temp_dir / "src").mkdir()
        (temp_dir / "src" / "app.js").write_text("function main() {}")
        (temp_dir / "node_modules" / "lib").mkdir(parents=True)
        (temp_dir / "node_modules" / "lib" / "index.js").write_text("module.exports = {}")
        (temp_dir / "logo.png").write_bytes(b"\x89PNG")

        files = collect_source_files(temp_dir)

        assert [f.path for f in files] == ["src/app.js"]
        assert files[0].content == "function main() {}"

    def test_sample_project_paths_are_relative(self, sample_files):
        paths = {f.path for f in sample_files}
        assert "src/services/userService.js" in paths
        assert "scripts/report.py" in paths
        assert all(not p.startswith("/") for p in paths)
