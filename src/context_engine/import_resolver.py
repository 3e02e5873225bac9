# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Line-based import discovery and resolution to workspace files.

Supports:
- JavaScript/TypeScript: import ... from '...', import '...',
  export ... from '...', require('...'), import('...')
- Python: from module import name, import module, relative dotted imports
- C family: #include "header.h" (relative), #include <header.h> (package)

Classification:
- relative: ./x, ../x, or a Python import with leading dots
- absolute: /x, or a specifier whose first segment is a directory (or Python
  module) at the project root
- package: everything else (bare specifiers, scoped @pkg/x, <system headers>)

Package imports are reported but never resolved to a workspace file. The scan
is textual, not a parser: statements spread over several lines are only seen
through their `} from '...'` closing line.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Tuple

from context_engine.models import ImportInfo, ImportType

logger = logging.getLogger(__name__)

# Tried in order after the literal path
RESOLVE_EXTENSIONS: Tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py", ".json")

JS_EXTENSIONS = frozenset([".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"])
PYTHON_EXTENSIONS = frozenset([".py", ".pyi"])
C_EXTENSIONS = frozenset([".c", ".h", ".cc", ".cpp", ".cxx", ".hpp", ".hh"])

_JS_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^(?:import|export)\b.*?\bfrom\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"^\}\s*from\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"^import\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"\brequire\(\s*['\"]([^'\"]+)['\"]\s*\)"),
    re.compile(r"\bimport\(\s*['\"]([^'\"]+)['\"]\s*\)"),
)

_PY_FROM = re.compile(r"^from\s+(\.+[\w.]*|[\w.]+)\s+import\b")
_PY_IMPORT = re.compile(r"^import\s+([\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)")

_C_LOCAL_INCLUDE = re.compile(r'^#\s*include\s+"([^"]+)"')
_C_SYSTEM_INCLUDE = re.compile(r"^#\s*include\s+<([^>]+)>")

_COMMENT_PREFIXES = ("//", "/*", "*", "#!")


class ImportResolver:
    """Finds import statements and resolves them to files under a project root.

    Usage:
        resolver = ImportResolver(project_root="/path/to/project")
        for info in resolver.find_imports(content, "/path/to/project/src/a.ts"):
            if info.resolved_path:
                ...
    """

    def __init__(self, project_root: str) -> None:
        """Initialize resolver.

        Args:
            project_root: Directory that absolute specifiers are resolved
                against and that resolved paths must stay inside.
        """
        self.project_root = Path(project_root).resolve()

    def find_imports(self, content: str, file_path: str) -> List[ImportInfo]:
        """Find all imports in a file's content.

        Args:
            content: File content (possibly truncated).
            file_path: Absolute path of the file the content came from.

        Returns:
            ImportInfo per discovered specifier, in line order. Unresolvable
            relative/absolute imports are kept with resolved_path=None.
        """
        extension = Path(file_path).suffix.lower()
        imports: List[ImportInfo] = []

        for line_number, raw_line in enumerate(content.splitlines(), 1):
            line = raw_line.strip()
            if not line:
                continue

            for specifier, import_type in self._match_line(line, extension):
                resolved = None
                if import_type != ImportType.PACKAGE:
                    resolved = self.resolve_import_path(specifier, file_path, import_type)
                imports.append(
                    ImportInfo(
                        file_path=file_path,
                        imported_from=specifier,
                        import_type=import_type,
                        line=line_number,
                        resolved_path=resolved,
                    )
                )

        logger.debug(
            f"Found {len(imports)} imports in {os.path.basename(file_path)} "
            f"({sum(1 for i in imports if i.resolved_path)} resolved)"
        )
        return imports

    def resolve_import_path(
        self, specifier: str, file_path: str, import_type: Optional[str] = None
    ) -> Optional[str]:
        """Resolve a relative or absolute specifier to an existing workspace file.

        Tries the literal path, then the path with each of RESOLVE_EXTENSIONS
        appended, then <path>/index.<ext>, then <path>/__init__.py.

        Args:
            specifier: Import specifier in path form (./x, ../x, /x, src/x).
            file_path: Absolute path of the importing file.
            import_type: Classification; derived from the specifier if None.

        Returns:
            Absolute path of the first existing candidate, or None.
        """
        if import_type is None:
            import_type = self.classify(specifier)
        if import_type == ImportType.PACKAGE:
            return None

        if import_type == ImportType.RELATIVE:
            base = Path(file_path).parent / specifier
        else:
            base = self._absolute_base(specifier)

        for candidate in self._candidates(base):
            try:
                if not candidate.is_file():
                    continue
                resolved = candidate.resolve()
            except OSError as e:
                logger.debug(f"Cannot stat import candidate {candidate}: {e}")
                continue

            if not self._is_within_root(resolved):
                logger.debug(f"Import {specifier} resolves outside project root, dropped")
                return None
            return str(resolved)

        return None

    def classify(self, specifier: str) -> str:
        """Classify a path-form specifier as relative, absolute or package."""
        if specifier in (".", "..") or specifier.startswith(("./", "../")):
            return ImportType.RELATIVE
        if specifier.startswith("/"):
            return ImportType.ABSOLUTE
        if specifier.startswith("@") or "/" not in specifier:
            return ImportType.PACKAGE

        first_segment = specifier.split("/", 1)[0]
        if (self.project_root / first_segment).is_dir():
            return ImportType.ABSOLUTE
        return ImportType.PACKAGE

    def _match_line(self, line: str, extension: str) -> List[Tuple[str, str]]:
        """Extract (specifier, import_type) pairs from one stripped line."""
        if extension in PYTHON_EXTENSIONS:
            return self._match_python(line)
        if extension in C_EXTENSIONS:
            return self._match_c(line)
        return self._match_js(line)

    def _match_js(self, line: str) -> List[Tuple[str, str]]:
        if line.startswith(_COMMENT_PREFIXES):
            return []

        found: List[Tuple[str, str]] = []
        seen = set()
        for pattern in _JS_PATTERNS:
            for match in pattern.finditer(line):
                specifier = match.group(1)
                if specifier in seen:
                    continue
                seen.add(specifier)
                found.append((specifier, self.classify(specifier)))
        return found

    def _match_python(self, line: str) -> List[Tuple[str, str]]:
        from_match = _PY_FROM.match(line)
        if from_match:
            return [self._python_module(from_match.group(1))]

        import_match = _PY_IMPORT.match(line)
        if import_match:
            modules = [part.split(" as ")[0].strip() for part in import_match.group(1).split(",")]
            return [self._python_module(module) for module in modules if module]

        return []

    def _python_module(self, module: str) -> Tuple[str, str]:
        """Convert a Python module name to a path-form specifier."""
        stripped = module.lstrip(".")
        dots = len(module) - len(stripped)
        path_part = stripped.replace(".", "/")

        if dots:
            prefix = "./" if dots == 1 else "../" * (dots - 1)
            if not path_part:
                # from . import x / from .. import x name the package itself
                return prefix.rstrip("/"), ImportType.RELATIVE
            return prefix + path_part, ImportType.RELATIVE

        # Project-local top-level modules resolve from the root; the rest are packages
        top_level = path_part.split("/", 1)[0]
        if (self.project_root / top_level).is_dir() or (self.project_root / f"{top_level}.py").is_file():
            return path_part, ImportType.ABSOLUTE
        return path_part, ImportType.PACKAGE

    def _match_c(self, line: str) -> List[Tuple[str, str]]:
        local_match = _C_LOCAL_INCLUDE.match(line)
        if local_match:
            return [("./" + local_match.group(1), ImportType.RELATIVE)]

        system_match = _C_SYSTEM_INCLUDE.match(line)
        if system_match:
            return [(system_match.group(1), ImportType.PACKAGE)]

        return []

    def _absolute_base(self, specifier: str) -> Path:
        """Anchor an absolute specifier at the project root."""
        as_path = Path(specifier)
        if as_path.is_absolute() and self._is_within_root(as_path):
            return as_path
        return self.project_root / specifier.lstrip("/")

    def _candidates(self, base: Path) -> List[Path]:
        candidates = [base]
        candidates.extend(Path(f"{base}{ext}") for ext in RESOLVE_EXTENSIONS)
        candidates.extend(base / f"index{ext}" for ext in RESOLVE_EXTENSIONS)
        candidates.append(base / "__init__.py")
        return candidates

    def _is_within_root(self, path: Path) -> bool:
        try:
            path.resolve().relative_to(self.project_root)
            return True
        except ValueError:
            return False


def resolved_import_map(imports: List[ImportInfo]) -> Dict[str, ImportInfo]:
    """Map resolved absolute paths to the first import that reached them."""
    resolved: Dict[str, ImportInfo] = {}
    for info in imports:
        if info.resolved_path and info.resolved_path not in resolved:
            resolved[info.resolved_path] = info
    return resolved
