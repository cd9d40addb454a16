"""Tests for the candidate file walker."""

from code_context.walker import scan_candidates


def _touch(root, rel, content="x\n"):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


class TestScanCandidates:
    def test_collects_sorted_relative_paths(self, tmp_path):
        _touch(tmp_path, "src/main.go")
        _touch(tmp_path, "README.md")
        _touch(tmp_path, "docs/guide.md")

        assert scan_candidates(str(tmp_path)) == ["README.md", "docs/guide.md", "src/main.go"]

    def test_excludes_default_directories(self, tmp_path):
        _touch(tmp_path, "src/app.go")
        _touch(tmp_path, "node_modules/lib/index.js")
        _touch(tmp_path, "build/out.go")
        _touch(tmp_path, "__pycache__/mod.py")

        assert scan_candidates(str(tmp_path)) == ["src/app.go"]

    def test_excludes_hidden_directories(self, tmp_path):
        _touch(tmp_path, ".git/config")
        _touch(tmp_path, ".venv/lib/site.py")
        _touch(tmp_path, "main.py")

        assert scan_candidates(str(tmp_path)) == ["main.py"]

    def test_excludes_default_file_patterns(self, tmp_path):
        _touch(tmp_path, "package.json")
        _touch(tmp_path, "web/app.test.js")
        _touch(tmp_path, "web/app.js")
        _touch(tmp_path, "assets/logo.png")
        _touch(tmp_path, "mod.pyc")
        _touch(tmp_path, ".env")

        assert scan_candidates(str(tmp_path)) == ["web/app.js"]

    def test_custom_patterns(self, tmp_path):
        _touch(tmp_path, "src/app.go")
        _touch(tmp_path, "src/app_gen.go")
        _touch(tmp_path, "third_party/lib.go")

        result = scan_candidates(str(tmp_path), exclude_patterns=["*_gen.go", "third_party"])
        assert result == ["src/app.go"]

    def test_empty_directory(self, tmp_path):
        assert scan_candidates(str(tmp_path)) == []

    def test_missing_root_returns_empty(self, tmp_path):
        assert scan_candidates(str(tmp_path / "missing")) == []
