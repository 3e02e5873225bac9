# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests.

Provides a representative mixed TypeScript/Python workspace for running the
engine end to end.
"""

import time
from pathlib import Path
from typing import Callable

import pytest


@pytest.fixture
def sample_workspace(tmp_path: Path) -> Path:
    """Create a small web + Python workspace.

    Layout:
        web/src/app.ts            imports ./utils/format and react
        web/src/app.test.ts       imports ./app
        web/src/legacy.js         unrelated sibling
        web/src/bundle.min.js     excluded by default patterns
        web/src/utils/format.ts
        web/node_modules/react/index.js
        py/pkg/__init__.py
        py/pkg/core.py            imports .helpers and os
        py/pkg/helpers.py

    Returns:
        Path to the workspace root
    """
    root = tmp_path / "workspace"

    files = {
        "web/src/app.ts": (
            "import React from 'react';\n"
            "import { format } from './utils/format';\n"
            "\n"
            "export function App() {\n"
            "  return format('hello');\n"
            "}\n"
        ),
        "web/src/app.test.ts": (
            "import { App } from './app';\n"
            "\n"
            "test('renders', () => {\n"
            "  expect(App()).toBe('hello');\n"
            "});\n"
        ),
        "web/src/legacy.js": "module.exports = {};\n",
        "web/src/bundle.min.js": "var a=1;\n",
        "web/src/utils/format.ts": (
            "export function format(value: string): string {\n  return value.trim();\n}\n"
        ),
        "web/node_modules/react/index.js": "module.exports = {};\n",
        "py/pkg/__init__.py": "",
        "py/pkg/core.py": (
            "import os\n"
            "from .helpers import clean\n"
            "\n"
            "\n"
            "def run(path):\n"
            "    return clean(os.path.basename(path))\n"
        ),
        "py/pkg/helpers.py": "def clean(value):\n    return value.strip()\n",
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    return root


@pytest.fixture
def wait_until() -> Callable[[Callable[[], bool], float], bool]:
    """Poll a condition until it holds or the timeout expires."""

    def _wait(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(0.05)
        return condition()

    return _wait
