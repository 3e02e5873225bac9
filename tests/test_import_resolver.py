# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for import discovery and resolution."""

from pathlib import Path

import pytest

from context_engine.import_resolver import ImportResolver, resolved_import_map
from context_engine.models import ImportType


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small mixed-language workspace."""
    root = tmp_path / "project"
    (root / "src" / "utils").mkdir(parents=True)
    (root / "src" / "components").mkdir()
    (root / "pkg").mkdir()
    (root / "include").mkdir()

    (root / "src" / "app.ts").write_text("export const app = 1;\n")
    (root / "src" / "helpers.ts").write_text("export const help = 1;\n")
    (root / "src" / "utils" / "index.ts").write_text("export * from './format';\n")
    (root / "src" / "utils" / "format.ts").write_text("export const fmt = 1;\n")
    (root / "src" / "components" / "Button.tsx").write_text("export default 1;\n")
    (root / "src" / "data.json").write_text("{}\n")

    (root / "pkg" / "__init__.py").write_text("")
    (root / "pkg" / "core.py").write_text("x = 1\n")
    (root / "pkg" / "models.py").write_text("y = 2\n")
    (root / "settings.py").write_text("DEBUG = True\n")

    (root / "include" / "util.h").write_text("int util(void);\n")
    return root


@pytest.fixture
def resolver(project: Path) -> ImportResolver:
    return ImportResolver(str(project))


class TestClassification:
    """Test specifier classification."""

    @pytest.mark.parametrize("specifier", ["./a", "../a", ".", ".."])
    def test_relative(self, resolver: ImportResolver, specifier: str) -> None:
        assert resolver.classify(specifier) == ImportType.RELATIVE

    def test_leading_slash_is_absolute(self, resolver: ImportResolver) -> None:
        assert resolver.classify("/src/app") == ImportType.ABSOLUTE

    def test_project_directory_prefix_is_absolute(self, resolver: ImportResolver) -> None:
        assert resolver.classify("src/app") == ImportType.ABSOLUTE

    @pytest.mark.parametrize("specifier", ["react", "@scope/pkg", "@scope/pkg/sub", "lodash/fp"])
    def test_package(self, resolver: ImportResolver, specifier: str) -> None:
        assert resolver.classify(specifier) == ImportType.PACKAGE


class TestJavaScriptImports:
    """Test JS/TS import syntaxes."""

    def test_all_statement_forms(self, resolver: ImportResolver, project: Path) -> None:
        current = project / "src" / "main.ts"
        content = "\n".join(
            [
                "import { app } from './app';",
                "import './helpers';",
                "export { fmt } from './utils/format';",
                "const data = require('./data.json');",
                "const lazy = import('./components/Button');",
                "import React from 'react';",
            ]
        )

        imports = resolver.find_imports(content, str(current))

        assert [i.imported_from for i in imports] == [
            "./app",
            "./helpers",
            "./utils/format",
            "./data.json",
            "./components/Button",
            "react",
        ]
        assert [i.line for i in imports] == [1, 2, 3, 4, 5, 6]
        assert imports[0].resolved_path == str((project / "src" / "app.ts").resolve())
        assert imports[3].resolved_path == str((project / "src" / "data.json").resolve())
        assert imports[4].resolved_path == str(
            (project / "src" / "components" / "Button.tsx").resolve()
        )

    def test_package_imports_never_resolved(self, resolver: ImportResolver, project: Path) -> None:
        imports = resolver.find_imports("import x from 'react';\n", str(project / "src" / "a.ts"))
        assert len(imports) == 1
        assert imports[0].import_type == ImportType.PACKAGE
        assert imports[0].resolved_path is None

    def test_directory_index_resolution(self, resolver: ImportResolver, project: Path) -> None:
        imports = resolver.find_imports(
            "import { fmt } from './utils';\n", str(project / "src" / "a.ts")
        )
        assert imports[0].resolved_path == str((project / "src" / "utils" / "index.ts").resolve())

    def test_multiline_import_closing_line(self, resolver: ImportResolver, project: Path) -> None:
        content = "import {\n  app,\n} from './app';\n"
        imports = resolver.find_imports(content, str(project / "src" / "a.ts"))
        assert [(i.imported_from, i.line) for i in imports] == [("./app", 3)]

    def test_unresolvable_relative_import_kept(
        self, resolver: ImportResolver, project: Path
    ) -> None:
        imports = resolver.find_imports("import './missing';\n", str(project / "src" / "a.ts"))
        assert imports[0].import_type == ImportType.RELATIVE
        assert imports[0].resolved_path is None

    def test_import_escaping_root_dropped(self, resolver: ImportResolver, project: Path) -> None:
        outside = project.parent / "outside.ts"
        outside.write_text("export {};\n")
        imports = resolver.find_imports(
            "import '../../outside';\n", str(project / "src" / "a.ts")
        )
        assert imports[0].resolved_path is None

    def test_absolute_specifier_resolves_from_root(
        self, resolver: ImportResolver, project: Path
    ) -> None:
        imports = resolver.find_imports(
            "import { app } from 'src/app';\n", str(project / "src" / "utils" / "x.ts")
        )
        assert imports[0].import_type == ImportType.ABSOLUTE
        assert imports[0].resolved_path == str((project / "src" / "app.ts").resolve())

    def test_comments_ignored(self, resolver: ImportResolver, project: Path) -> None:
        content = "// import './app';\n/* import './helpers'; */\n"
        assert resolver.find_imports(content, str(project / "src" / "a.ts")) == []

    def test_unknown_extension_uses_js_syntax(
        self, resolver: ImportResolver, project: Path
    ) -> None:
        imports = resolver.find_imports("import './app';\n", str(project / "src" / "a.vue"))
        assert imports[0].resolved_path == str((project / "src" / "app.ts").resolve())


class TestPythonImports:
    """Test Python import syntaxes."""

    def test_relative_from_import(self, resolver: ImportResolver, project: Path) -> None:
        imports = resolver.find_imports("from .models import y\n", str(project / "pkg" / "core.py"))
        assert imports[0].imported_from == "./models"
        assert imports[0].import_type == ImportType.RELATIVE
        assert imports[0].resolved_path == str((project / "pkg" / "models.py").resolve())

    def test_parent_relative_import(self, resolver: ImportResolver, project: Path) -> None:
        (project / "pkg" / "sub").mkdir()
        current = project / "pkg" / "sub" / "mod.py"
        imports = resolver.find_imports("from ..core import x\n", str(current))
        assert imports[0].imported_from == "../core"
        assert imports[0].resolved_path == str((project / "pkg" / "core.py").resolve())

    def test_package_itself(self, resolver: ImportResolver, project: Path) -> None:
        imports = resolver.find_imports("from . import core\n", str(project / "pkg" / "models.py"))
        assert imports[0].imported_from == "."
        assert imports[0].resolved_path == str((project / "pkg" / "__init__.py").resolve())

    def test_project_module_is_absolute(self, resolver: ImportResolver, project: Path) -> None:
        imports = resolver.find_imports(
            "from pkg.core import x\nimport settings\n", str(project / "main.py")
        )
        assert [(i.imported_from, i.import_type) for i in imports] == [
            ("pkg/core", ImportType.ABSOLUTE),
            ("settings", ImportType.ABSOLUTE),
        ]
        assert imports[0].resolved_path == str((project / "pkg" / "core.py").resolve())
        assert imports[1].resolved_path == str((project / "settings.py").resolve())

    def test_stdlib_is_package(self, resolver: ImportResolver, project: Path) -> None:
        imports = resolver.find_imports("import os, json as j\n", str(project / "main.py"))
        assert [(i.imported_from, i.import_type) for i in imports] == [
            ("os", ImportType.PACKAGE),
            ("json", ImportType.PACKAGE),
        ]
        assert all(i.resolved_path is None for i in imports)


class TestCIncludes:
    """Test C-family includes."""

    def test_local_and_system_includes(self, resolver: ImportResolver, project: Path) -> None:
        content = '#include "util.h"\n#include <stdio.h>\n'
        imports = resolver.find_imports(content, str(project / "include" / "util.c"))

        assert imports[0].import_type == ImportType.RELATIVE
        assert imports[0].resolved_path == str((project / "include" / "util.h").resolve())
        assert imports[1].imported_from == "stdio.h"
        assert imports[1].import_type == ImportType.PACKAGE
        assert imports[1].resolved_path is None


def test_resolved_import_map_keeps_first(resolver: ImportResolver, project: Path) -> None:
    """Test that the map keeps discovery order and the first import per path."""
    content = "import './app';\nimport { a } from './app.ts';\nimport './helpers';\n"
    imports = resolver.find_imports(content, str(project / "src" / "main.ts"))

    mapping = resolved_import_map(imports)

    assert list(mapping) == [
        str((project / "src" / "app.ts").resolve()),
        str((project / "src" / "helpers.ts").resolve()),
    ]
    assert next(iter(mapping.values())).line == 1
