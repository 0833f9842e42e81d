from __future__ import annotations

import re

SOURCE_EXTENSIONS = (".py", ".ts", ".tsx", ".js", ".jsx", ".go", ".java", ".rb", ".rs", ".kt", ".cs", ".php")

_TEST_MARKERS = (".test.", ".spec.", "__tests__/", "/tests/", "/test/", "_test.")
_DIFF_HEADER_RE = re.compile(r"^diff --git a/.+ b/(.+)$", re.MULTILINE)


def is_test_file(path: str) -> bool:
    lowered = path.lower()
    name = lowered.rsplit("/", 1)[-1]
    if name.startswith("test_") or name.startswith("conftest"):
        return True
    if lowered.startswith(("tests/", "test/")):
        return True
    return any(marker in lowered for marker in _TEST_MARKERS)


def is_source_file(path: str) -> bool:
    return path.lower().endswith(SOURCE_EXTENSIONS) and not is_test_file(path)


def module_stem(path: str) -> str:
    """``src/auth/login.py`` → ``login``; used to pair source files with their tests."""
    name = path.rsplit("/", 1)[-1]
    for ext in SOURCE_EXTENSIONS:
        if name.lower().endswith(ext):
            return name[: -len(ext)]
    return name


def extract_changed_files(diff: str) -> list[str]:
    """Return the post-change paths named in a unified diff, in order, without duplicates."""
    seen: dict[str, None] = {}
    for match in _DIFF_HEADER_RE.finditer(diff or ""):
        seen.setdefault(match.group(1).strip(), None)
    return list(seen)
