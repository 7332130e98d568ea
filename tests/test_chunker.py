"""Tests for repository chunking and prompt formatting."""

import json

from legacyvibe.chunker import (
    create_repository_chunks,
    estimate_file_tokens,
    filter_important_files,
    format_chunk_for_ai,
    format_file_tree_for_ai,
    format_manifests_for_ai,
    select_key_files,
    truncate_content,
)
from legacyvibe.models import FileNode, Manifest


def _files(*paths, size=400):
    return [FileNode(path=p, size=size) for p in paths]


class TestFiltering:
    """Test which files count as business logic."""

    def test_keeps_source_and_drops_noise(self):
        """Source files survive; docs, styles, tests, assets do not."""
        tree = _files(
            "src/app.ts",
            "src/app.test.ts",
            "src/__tests__/helper.ts",
            "src/styles/main.css",
            "README.md",
            "public/logo.png",
            "package-lock.json",
        )
        kept = [f.path for f in filter_important_files(tree)]
        assert kept == ["src/app.ts"]

    def test_build_output_is_excluded(self):
        """Compiled output directories are skipped."""
        tree = _files("web/dist/bundle.js", "web/main.js")
        assert [f.path for f in filter_important_files(tree)] == ["web/main.js"]

    def test_directories_are_ignored(self):
        """Directory entries are never chunked."""
        tree = [FileNode(path="src", type="dir"), FileNode(path="src/index.ts", size=100)]
        assert [f.path for f in filter_important_files(tree)] == ["src/index.ts"]

    def test_config_files_are_important(self):
        """Framework config files at the root are kept."""
        tree = _files("vite.config.ts", "tsconfig.json")
        kept = [f.path for f in filter_important_files(tree)]
        assert "vite.config.ts" in kept


class TestTokenEstimate:
    """Test token estimation."""

    def test_size_over_four(self):
        assert estimate_file_tokens(FileNode("a.py", size=10)) == 3

    def test_unknown_size_counts_as_average(self):
        assert estimate_file_tokens(FileNode("a.py")) == 3750


class TestCreateChunks:
    """Test chunk creation."""

    def test_empty_tree_yields_no_chunks(self):
        """No files in, no chunks out."""
        assert create_repository_chunks([]) == []

    def test_root_chunk_comes_first(self):
        """Root-level files form the first chunk."""
        tree = _files("server.js", "api/users.js", "lib/db.js")
        chunks = create_repository_chunks(tree)

        assert [c.id for c in chunks] == ["root", "api", "lib"]
        assert chunks[0].name == "Root Configuration"
        assert chunks[0].description == "Root-level configuration and entry files"

    def test_directory_named_root_keeps_ids_unique(self):
        tree = [FileNode("main.py", size=100), FileNode("root/app.py", size=100)]
        chunks = create_repository_chunks(tree, 150_000)

        ids = [c.id for c in chunks]
        assert ids == ["root", "root/"]
        assert len(ids) == len(set(ids))
        assert [f.path for f in chunks[1].files] == ["root/app.py"]

    def test_known_directory_names(self):
        """Well-known directories get friendly names."""
        chunks = create_repository_chunks(_files("services/pay.py", "widgets/button.py"))
        by_id = {c.id: c for c in chunks}

        assert by_id["services"].name == "Business Services"
        assert by_id["services"].description == "Business logic and external service integrations"
        assert by_id["widgets"].name == "Widgets"
        assert by_id["widgets"].description == "1 files in widgets"

    def test_every_important_file_in_exactly_one_chunk(self):
        """Chunks partition the filtered file set."""
        tree = _files(
            "main.py",
            "src/a.py",
            "src/core/b.py",
            "src/core/c.py",
            "src/web/d.py",
            "docs/guide.md",
            size=40_000,
        )
        chunks = create_repository_chunks(tree, max_tokens_per_chunk=15_000)

        seen = [f.path for c in chunks for f in c.files]
        assert sorted(seen) == sorted(f.path for f in filter_important_files(tree))
        assert len(seen) == len(set(seen))

    def test_oversized_directory_splits_one_level(self):
        """An oversized top-level directory splits by second segment."""
        tree = _files("src/web/d.py", "src/a.py", "src/core/b.py", "src/core/c.py", size=40_000)
        chunks = create_repository_chunks(tree, max_tokens_per_chunk=15_000)

        assert [c.id for c in chunks] == ["src/core", "src/root", "src/web"]
        assert chunks[0].name == "Source Code / Core"
        assert chunks[0].description == "Core source code and business logic - Core module"
        assert chunks[1].name == "Source Code / Root"
        # Sub-groups are not split further even when still over budget.
        assert chunks[0].estimated_tokens == 20_000

    def test_directory_under_budget_is_not_split(self):
        tree = _files("src/core/b.py", "src/web/d.py", size=400)
        chunks = create_repository_chunks(tree)
        assert [c.id for c in chunks] == ["src"]
        assert chunks[0].estimated_tokens == 200

    def test_sample_repository(self, sample_repo_path):
        """The fixture repository chunks into root, api, models, services."""
        from legacyvibe.providers import LocalRepositoryProvider

        tree = LocalRepositoryProvider(sample_repo_path).list_files()
        chunks = create_repository_chunks(tree)

        assert [c.id for c in chunks] == ["root", "api", "models", "services"]
        assert [f.path for f in chunks[1].files] == ["api/auth.py", "api/routes.py"]


class TestKeyFiles:
    """Test key-file selection and truncation."""

    def test_selects_entry_points_and_services(self):
        chunk = create_repository_chunks(
            _files("api/auth.py", "api/routes.py", "api/user_model.py", "api/helpers.py")
        )[0]
        assert select_key_files(chunk) == ["api/routes.py", "api/user_model.py"]

    def test_limit_is_respected(self):
        chunk = create_repository_chunks(_files("api/main.py", "api/app.py", "api/server.py"))[0]
        assert select_key_files(chunk, limit=2) == ["api/main.py", "api/app.py"]

    def test_truncate_content(self):
        assert truncate_content("abc", 10) == "abc"
        assert truncate_content("abcdef", 3) == "abc\n... (truncated)"


class TestFormatting:
    """Test prompt formatting helpers."""

    def test_format_chunk_groups_by_directory(self):
        chunk = create_repository_chunks(_files("api/v1/users.py", "api/health.py"))[0]
        text = format_chunk_for_ai(chunk)

        assert text.startswith("CHUNK: API Layer\nDESCRIPTION: API endpoints and route handlers\n")
        assert "FILES (2 total):" in text
        assert "api/\n  api/health.py\n" in text
        assert "api/v1/\n  api/v1/users.py\n" in text

    def test_file_tree_caps_files_per_directory(self):
        tree = _files(*[f"pkg/mod{i:02d}.py" for i in range(25)])
        text = format_file_tree_for_ai(tree)

        assert text.startswith("FILE TREE (25 key files shown):")
        assert "pkg/ (25 files)" in text
        assert "... and 5 more files" in text

    def test_large_package_json_is_condensed(self):
        content = json.dumps({
            "name": "shop",
            "version": "1.2.3",
            "dependencies": {f"dep{i}": "^1.0.0" for i in range(400)},
            "scripts": {"dev": "vite"},
        })
        text = format_manifests_for_ai([Manifest("package.json", content)])

        assert "=== package.json ===" in text
        assert '"name": "shop"' in text
        assert '"scripts": [\n    "dev"\n  ]' in text

    def test_other_large_manifests_are_truncated(self):
        text = format_manifests_for_ai([Manifest("requirements.txt", "z" * 6000)])
        assert text.count("z") == 5000
        assert "... (truncated)" in text
