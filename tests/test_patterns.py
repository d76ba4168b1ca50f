"""Tests for exclude and artifact name matching."""

from pathlib import PurePath

import hypothesis.strategies as st
import pytest
from hypothesis import given

from dirbackup.patterns import ExcludeMatcher, NameMatcher


segment = st.text(alphabet="abcdefgh_.", min_size=1, max_size=6).filter(
    lambda s: s not in (".", "..")
)


class TestExcludeMatcher:
    """Tests for ExcludeMatcher."""

    @pytest.mark.parametrize("pattern,path", [
        ("*.log", "logs/app.log"),
        ("node_modules", "node_modules"),
        ("node_modules", "node_modules/pkg/index.js"),
        ("node_modules/", "node_modules/pkg"),
        ("src/*.pyc", "src/main.pyc"),
        (".git", "deep/inside/.git/HEAD"),
        ("b/c", "a/b/c"),
        ("b/*", "a/b/c/d"),
    ])
    def test_matches(self, pattern, path):
        assert ExcludeMatcher([pattern]).matches(path)

    @pytest.mark.parametrize("pattern,path", [
        ("*.log", "logs/app.txt"),
        ("node_modules", "src/main.py"),
        ("*.LOG", "app.log"),
        ("build", "builder/out"),
        ("a/c", "a/b/c"),
    ])
    def test_does_not_match(self, pattern, path):
        assert not ExcludeMatcher([pattern]).matches(path)

    def test_empty(self):
        matcher = ExcludeMatcher(["", "  ", "/"])
        assert not matcher
        assert not matcher.matches("anything")

    def test_accepts_pure_paths(self):
        assert ExcludeMatcher(["*.tmp"]).matches(PurePath("a/b.tmp"))

    @given(st.lists(segment, min_size=1, max_size=4), st.integers(min_value=0, max_value=3))
    def test_component_match_excludes_descendants(self, parts, index):
        """Excluding a name excludes everything beneath an entry with that name."""
        index = min(index, len(parts) - 1)
        matcher = ExcludeMatcher([parts[index]])
        assert matcher.matches("/".join(parts))

    @given(st.lists(segment, min_size=1, max_size=4), st.integers(min_value=0, max_value=3))
    def test_trailing_subpath_matches_at_any_depth(self, parts, start):
        start = min(start, len(parts) - 1)
        matcher = ExcludeMatcher(["/".join(parts[start:])])
        assert matcher.matches("/".join(parts))

    @given(st.lists(segment, min_size=1, max_size=4))
    def test_unrelated_pattern_never_matches(self, parts):
        assert not ExcludeMatcher(["zzz"]).matches("/".join(parts))


class TestNameMatcher:
    """Tests for NameMatcher."""

    def test_matches_final_component_only(self):
        matcher = NameMatcher("backup-*.tar.gz")

        assert matcher.matches("/dest/backup-2024-01-01-0900.tar.gz")
        assert not matcher.matches("/dest/backup-2024-01-01-0900.tar.gz.sha256")
        assert not matcher.matches("/backup-x.tar.gz/other")
        assert not matcher.matches("notes.txt")
