"""
Unit tests for path filtering and binary classification.
"""

import random
import unittest

from repodigest.core.models import FileStatus, FilterConfig, TreeEntry
from repodigest.ingestion.filters import PathFilter, is_binary, match_path, split_patterns


class TestIsBinary(unittest.TestCase):
    """Tests for the binary content predicate."""

    def test_empty_is_text(self):
        self.assertFalse(is_binary(b""))

    def test_plain_text(self):
        self.assertFalse(is_binary(b"def main():\n    return 0\n"))

    def test_nul_byte(self):
        """A NUL byte anywhere in the sample means binary."""
        self.assertTrue(is_binary(b"MZ\x90\x00\x03\x00"))

    def test_invalid_utf8(self):
        self.assertTrue(is_binary(b"\xff\xd8\xff\xe0 jpeg header"))

    def test_latin1_text_is_binary(self):
        """Text in a legacy encoding is not valid UTF-8."""
        self.assertTrue(is_binary("café au lait".encode("latin-1")))

    def test_multibyte_cut_at_sample_boundary(self):
        """A multi-byte sequence split by the sample boundary is tolerated."""
        data = b"a" + "é".encode("utf-8") * 5000
        self.assertGreater(len(data), 8192)

        self.assertFalse(is_binary(data, sample_size=8192))

    def test_truncated_sequence_at_end_of_content(self):
        """A sequence cut off at the real end of the content is invalid."""
        data = "é".encode("utf-8")[:1]

        self.assertTrue(is_binary(b"abc" + data))

    def test_control_bytes(self):
        """Too many disallowed control bytes means binary."""
        self.assertTrue(is_binary(bytes([1, 2, 3, 4, 5, 6]) * 50))

    def test_allowed_control_bytes(self):
        """Tab, newline, carriage return, form feed and escape are text."""
        self.assertFalse(is_binary(b"\x1b[31mred\x1b[0m\r\n\tindent\x0c"))

    def test_only_sample_inspected(self):
        """Bytes past the sample do not affect the verdict."""
        data = b"x" * 100 + b"\x00"

        self.assertFalse(is_binary(data, sample_size=100))
        self.assertTrue(is_binary(data, sample_size=101))

    def test_deterministic(self):
        rng = random.Random(7)
        data = bytes(rng.randrange(256) for _ in range(4096))

        self.assertEqual(is_binary(data), is_binary(bytes(data)))


class TestMatchPath(unittest.TestCase):
    """Tests for glob matching against repository paths."""

    def test_full_path(self):
        self.assertTrue(match_path("src/app/main.py", "src/*.py"))
        self.assertTrue(match_path("docs/index.md", "docs/index.md"))

    def test_basename(self):
        self.assertTrue(match_path("deep/nested/image.png", "*.png"))
        self.assertFalse(match_path("deep/nested/image.png", "*.jpg"))

    def test_component(self):
        """A pattern matching a directory name excludes everything below it."""
        self.assertTrue(match_path("web/node_modules/pkg/index.js", "node_modules"))
        self.assertFalse(match_path("web/node_modules_backup.txt", "node_modules"))

    def test_trailing_slash_ignored(self):
        self.assertTrue(match_path("build/out.txt", "build/"))

    def test_empty_pattern(self):
        self.assertFalse(match_path("a.txt", ""))
        self.assertFalse(match_path("a.txt", "  "))

    def test_case_sensitive(self):
        self.assertFalse(match_path("README.MD", "*.md"))


class TestSplitPatterns(unittest.TestCase):
    """Tests for pattern argument parsing."""

    def test_comma_separated(self):
        self.assertEqual(split_patterns("*.py, *.md,,tests "), ["*.py", "*.md", "tests"])

    def test_list(self):
        self.assertEqual(split_patterns(["*.py", " ", "docs"]), ["*.py", "docs"])

    def test_none(self):
        self.assertEqual(split_patterns(None), [])


class TestPathFilter(unittest.TestCase):
    """Tests for pre-fetch classification."""

    def test_exclude_wins_over_include(self):
        path_filter = PathFilter(
            FilterConfig(include_patterns=["*.py"], exclude_patterns=["tests"])
        )

        self.assertEqual(
            path_filter.classify(TreeEntry("tests/test_app.py")),
            FileStatus.SKIPPED_EXCLUDED,
        )
        self.assertIsNone(path_filter.classify(TreeEntry("src/app.py")))

    def test_not_included(self):
        path_filter = PathFilter(FilterConfig(include_patterns=["*.py"]))

        self.assertEqual(
            path_filter.classify(TreeEntry("README.md")),
            FileStatus.SKIPPED_NOT_INCLUDED,
        )

    def test_empty_include_accepts_everything(self):
        path_filter = PathFilter(FilterConfig())

        self.assertTrue(path_filter.accepts("any/path/at/all.bin"))

    def test_size_hint(self):
        path_filter = PathFilter(FilterConfig(max_file_size=100))

        self.assertEqual(
            path_filter.classify(TreeEntry("big.txt", size=101)),
            FileStatus.SKIPPED_TOO_LARGE,
        )
        self.assertIsNone(path_filter.classify(TreeEntry("edge.txt", size=100)))
        self.assertIsNone(path_filter.classify(TreeEntry("unknown.txt", size=None)))

    def test_exclusion_checked_before_size(self):
        path_filter = PathFilter(FilterConfig(exclude_patterns=["*.log"], max_file_size=1))

        self.assertEqual(
            path_filter.classify(TreeEntry("huge.log", size=10**9)),
            FileStatus.SKIPPED_EXCLUDED,
        )

    def test_default_ignores_appended(self):
        path_filter = PathFilter(FilterConfig(), default_ignores=["node_modules"])

        self.assertEqual(
            path_filter.classify(TreeEntry("node_modules/left-pad/index.js")),
            FileStatus.SKIPPED_EXCLUDED,
        )

    def test_exclude_always_wins_randomised(self):
        """Any path matching an exclude pattern is excluded whatever the includes say."""
        rng = random.Random(1234)
        names = ["src", "lib", "tests", "docs", "main", "util", "node_modules", "build"]
        extensions = [".py", ".md", ".js", ".txt", ".bin", ""]

        def random_path():
            depth = rng.randint(1, 4)
            parts = [rng.choice(names) for _ in range(depth)]
            return "/".join(parts) + rng.choice(extensions)

        def random_pattern():
            choice = rng.random()
            if choice < 0.4:
                return "*" + rng.choice(extensions[:-1])
            if choice < 0.8:
                return rng.choice(names)
            return rng.choice(names) + "/*"

        for _ in range(500):
            includes = [random_pattern() for _ in range(rng.randint(0, 3))]
            excludes = [random_pattern() for _ in range(rng.randint(1, 3))]
            path = random_path()

            path_filter = PathFilter(
                FilterConfig(include_patterns=includes, exclude_patterns=excludes)
            )
            status = path_filter.classify(TreeEntry(path))

            if any(match_path(path, p) for p in excludes):
                self.assertEqual(status, FileStatus.SKIPPED_EXCLUDED, (path, includes, excludes))
            elif includes and not any(match_path(path, p) for p in includes):
                self.assertEqual(status, FileStatus.SKIPPED_NOT_INCLUDED)
            else:
                self.assertIsNone(status)


if __name__ == "__main__":
    unittest.main()
