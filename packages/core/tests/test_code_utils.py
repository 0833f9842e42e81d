"""Tests for file classification and diff utilities."""

from prguard_core.utils.code import extract_changed_files, is_source_file, is_test_file, module_stem


class TestIsTestFile:
    def test_python_test_module(self):
        assert is_test_file("app/tests/test_user.py") is True
        assert is_test_file("test_user.py") is True

    def test_conftest(self):
        assert is_test_file("conftest.py") is True

    def test_js_spec_and_test(self):
        assert is_test_file("src/components/Button.test.tsx") is True
        assert is_test_file("src/api/client.spec.ts") is True
        assert is_test_file("src/__tests__/client.ts") is True

    def test_go_test(self):
        assert is_test_file("pkg/server/handler_test.go") is True

    def test_top_level_tests_directory(self):
        assert is_test_file("tests/helpers.py") is True

    def test_source_file(self):
        assert is_test_file("app/services/user.py") is False

    def test_case_insensitive(self):
        assert is_test_file("SRC/Button.Test.TSX") is True


class TestIsSourceFile:
    def test_python_file_is_source(self):
        assert is_source_file("app/services/user.py") is True

    def test_tsx_file_is_source(self):
        assert is_source_file("src/components/Button.tsx") is True

    def test_tests_are_not_source(self):
        assert is_source_file("tests/test_user.py") is False

    def test_non_code_files(self):
        assert is_source_file("README.md") is False
        assert is_source_file("assets/logo.png") is False
        assert is_source_file("package.json") is False


def test_module_stem():
    assert module_stem("src/auth/login.py") == "login"
    assert module_stem("src/components/Button.tsx") == "Button"
    assert module_stem("Makefile") == "Makefile"


class TestExtractChangedFiles:
    def test_paths_in_order(self):
        diff = (
            "diff --git a/src/a.py b/src/a.py\n"
            "--- a/src/a.py\n+++ b/src/a.py\n@@ -1 +1 @@\n-x\n+y\n"
            "diff --git a/old.py b/new.py\n"
            "rename from old.py\nrename to new.py\n"
        )
        assert extract_changed_files(diff) == ["src/a.py", "new.py"]

    def test_duplicates_removed(self):
        diff = "diff --git a/a.py b/a.py\n+1\ndiff --git a/a.py b/a.py\n+2\n"
        assert extract_changed_files(diff) == ["a.py"]

    def test_empty_or_missing(self):
        assert extract_changed_files("") == []
        assert extract_changed_files(None) == []
