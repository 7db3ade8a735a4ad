"""
Path filtering and content classification.

Applies include/exclude glob patterns to repository-relative paths and
decides whether fetched bytes are text.
"""

import codecs
import fnmatch
from typing import Iterable, List, Optional

from repodigest.core.models import FileStatus, FilterConfig, TreeEntry

# Control bytes tolerated in text: tab, newline, form feed, carriage return, escape
_ALLOWED_CONTROL = {0x09, 0x0A, 0x0C, 0x0D, 0x1B}

BINARY_CONTROL_RATIO = 0.3


def is_binary(data: bytes, sample_size: int = 8192) -> bool:
    """
    Classify content as binary from a prefix sample.

    The sample is binary if it contains a NUL byte, is not valid UTF-8
    (a multi-byte sequence cut off at the end of the sample is allowed),
    or more than 30% of its bytes are control bytes other than tab,
    newline, form feed, carriage return and escape.
    """
    sample = data[:sample_size]
    if not sample:
        return False

    if b"\x00" in sample:
        return True

    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        decoder.decode(sample, final=len(data) <= sample_size)
    except UnicodeDecodeError:
        return True

    control = sum(1 for b in sample if b < 0x20 and b not in _ALLOWED_CONTROL)
    return control / len(sample) > BINARY_CONTROL_RATIO


def _normalize(pattern: str) -> str:
    return pattern.strip().replace("\\", "/").rstrip("/")


def match_path(path: str, pattern: str) -> bool:
    """
    Check a repository-relative path against one glob pattern.

    The pattern may match the whole path, the basename, or any single
    path component.
    """
    pattern = _normalize(pattern)
    if not pattern:
        return False

    if fnmatch.fnmatchcase(path, pattern):
        return True

    parts = path.split("/")
    if fnmatch.fnmatchcase(parts[-1], pattern):
        return True

    return any(fnmatch.fnmatchcase(part, pattern) for part in parts[:-1])


def split_patterns(value) -> List[str]:
    """Accept a list or a comma-separated string of patterns."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [p.strip() for p in value if p and p.strip()]


class PathFilter:
    """
    Pre-fetch classifier built from a FilterConfig.

    Exclude patterns take precedence over include patterns.
    """

    def __init__(
        self,
        filter_config: FilterConfig,
        default_ignores: Optional[Iterable[str]] = None,
    ):
        self.filter_config = filter_config
        self.include_patterns = [p for p in filter_config.include_patterns if _normalize(p)]
        self.exclude_patterns = [p for p in filter_config.exclude_patterns if _normalize(p)]
        if default_ignores:
            self.exclude_patterns.extend(default_ignores)

    def is_excluded(self, path: str) -> bool:
        return any(match_path(path, p) for p in self.exclude_patterns)

    def is_included(self, path: str) -> bool:
        if not self.include_patterns:
            return True
        return any(match_path(path, p) for p in self.include_patterns)

    def classify(self, entry: TreeEntry) -> Optional[FileStatus]:
        """
        Return the skip status for an entry, or None if it should be fetched.
        """
        if self.is_excluded(entry.path):
            return FileStatus.SKIPPED_EXCLUDED

        if not self.is_included(entry.path):
            return FileStatus.SKIPPED_NOT_INCLUDED

        if entry.size is not None and entry.size > self.filter_config.max_file_size:
            return FileStatus.SKIPPED_TOO_LARGE

        return None

    def accepts(self, path: str) -> bool:
        """True if the path passes the pattern stages."""
        return not self.is_excluded(path) and self.is_included(path)
