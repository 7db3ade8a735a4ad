"""
Repository ingestion data structures.

Provides the canonical types exchanged between providers, the
ingestion engine and the tool surface.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class BackendKind(Enum):
    """Kind of repository backend."""
    LOCAL = "local"
    GITHUB = "github"
    GITLAB = "gitlab"


class RevisionKind(Enum):
    """How a revision string should be interpreted."""
    DEFAULT = "default"
    BRANCH = "branch"
    TAG = "tag"
    COMMIT = "commit"
    ANY = "any"


class EntryKind(Enum):
    """Kind of tree entry."""
    FILE = "file"
    DIRECTORY = "directory"


class FileStatus(Enum):
    """Outcome of ingestion for a single file."""
    INCLUDED = "included"
    SKIPPED_EXCLUDED = "skipped-excluded"
    SKIPPED_NOT_INCLUDED = "skipped-not-included"
    SKIPPED_TOO_LARGE = "skipped-too-large"
    SKIPPED_BINARY = "skipped-binary"
    SKIPPED_ERROR = "skipped-error"
    SKIPPED_DIGEST_FULL = "skipped-digest-full"


def parse_revision(value: Optional[str]) -> Tuple[Optional[str], RevisionKind]:
    """
    Split a revision string into its name and kind.

    Accepts ``tag:<name>``, ``commit:<sha>`` and ``branch:<name>``;
    anything else is a commit-ish left to the backend.
    """
    if value is None or not value.strip():
        return None, RevisionKind.DEFAULT

    value = value.strip()
    prefix, sep, rest = value.partition(":")
    if sep and rest:
        kinds = {
            "tag": RevisionKind.TAG,
            "commit": RevisionKind.COMMIT,
            "branch": RevisionKind.BRANCH,
        }
        if prefix in kinds:
            return rest, kinds[prefix]

    return value, RevisionKind.ANY


@dataclass(frozen=True)
class RepositoryReference:
    """A repository plus the revision to ingest."""

    kind: BackendKind
    location: str
    revision: Optional[str] = None
    revision_kind: RevisionKind = RevisionKind.DEFAULT
    host: Optional[str] = None

    def __post_init__(self):
        if self.revision is None and self.revision_kind != RevisionKind.DEFAULT:
            object.__setattr__(self, "revision_kind", RevisionKind.DEFAULT)
        elif self.revision is not None and self.revision_kind == RevisionKind.DEFAULT:
            object.__setattr__(self, "revision_kind", RevisionKind.ANY)

    @classmethod
    def create(
        cls,
        kind: BackendKind,
        location: str,
        revision: Optional[str] = None,
        host: Optional[str] = None,
    ) -> "RepositoryReference":
        """Create a reference, parsing any ``tag:``/``commit:``/``branch:`` prefix."""
        name, revision_kind = parse_revision(revision)
        return cls(
            kind=kind,
            location=location,
            revision=name,
            revision_kind=revision_kind,
            host=host,
        )

    def with_revision(self, revision: Optional[str]) -> "RepositoryReference":
        """Return a copy pointing at another revision."""
        return RepositoryReference.create(self.kind, self.location, revision, self.host)

    @property
    def display_name(self) -> str:
        """Human-readable identifier used in logs and summaries."""
        name = f"{self.kind.value}:{self.location}"
        if self.revision:
            name += f"@{self.revision}"
        return name

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "location": self.location,
            "revision": self.revision,
            "revision_kind": self.revision_kind.value,
            "host": self.host,
        }


@dataclass
class TreeEntry:
    """One node of a repository tree."""

    path: str
    kind: EntryKind = EntryKind.FILE
    size: Optional[int] = None

    @property
    def is_file(self) -> bool:
        return self.kind == EntryKind.FILE

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass
class BlobContent:
    """Fetched bytes of a file."""

    data: bytes
    is_text: bool
    size: int

    @property
    def text(self) -> str:
        """Decode the blob as UTF-8, replacing undecodable bytes."""
        return self.data.decode("utf-8-sig", errors="replace")


@dataclass
class FilterConfig:
    """
    Include/exclude patterns and size limits for one ingestion.

    Exclude patterns win over include patterns. An empty include
    list lets every path through the include stage.
    """

    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    max_file_size: int = 1024 * 1024
    max_total_size: int = 10 * 1024 * 1024

    def __post_init__(self):
        if self.max_file_size < 0 or self.max_total_size < 0:
            raise ValueError("Size limits must not be negative")

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "include_patterns": list(self.include_patterns),
            "exclude_patterns": list(self.exclude_patterns),
            "max_file_size": self.max_file_size,
            "max_total_size": self.max_total_size,
        }


@dataclass
class FileRecord:
    """Digest record for a single path."""

    path: str
    status: FileStatus
    content: Optional[str] = None
    size: Optional[int] = None
    detail: Optional[str] = None

    @property
    def included(self) -> bool:
        return self.status == FileStatus.INCLUDED

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization (content omitted)."""
        return {
            "path": self.path,
            "status": self.status.value,
            "size": self.size,
            "detail": self.detail,
        }


@dataclass
class IngestionResult:
    """
    Final output of an ingestion.

    Records are in lexicographic path order; counts hold one entry
    per FileStatus.
    """

    reference: RepositoryReference
    root: str
    records: List[FileRecord] = field(default_factory=list)
    counts: Dict[FileStatus, int] = field(
        default_factory=lambda: {status: 0 for status in FileStatus}
    )
    total_bytes: int = 0

    def add_record(self, record: FileRecord) -> None:
        """Append a record and update the counters."""
        self.records.append(record)
        self.counts[record.status] = self.counts.get(record.status, 0) + 1
        if record.included and record.size:
            self.total_bytes += record.size

    @property
    def included(self) -> List[FileRecord]:
        return [r for r in self.records if r.included]

    @property
    def skipped(self) -> List[FileRecord]:
        return [r for r in self.records if not r.included]

    def count(self, status: FileStatus) -> int:
        return self.counts.get(status, 0)

    def to_dict(self) -> Dict:
        """Convert to the machine-readable summary."""
        return {
            "repository": self.reference.display_name,
            "root": self.root,
            "files_included": self.count(FileStatus.INCLUDED),
            "files_skipped": {
                status.value: self.count(status)
                for status in FileStatus
                if status != FileStatus.INCLUDED
            },
            "total_bytes": self.total_bytes,
            "skipped": [r.to_dict() for r in self.skipped],
        }


@dataclass
class RepositoryMatch:
    """A repository found by a hosted-provider search."""

    provider: str
    full_name: str
    stars: int = 0
    description: Optional[str] = None

    @property
    def identifier(self) -> str:
        """Identifier accepted by the other tools, e.g. ``github:owner/name``."""
        return f"{self.provider}:{self.full_name}"

    def to_dict(self) -> Dict:
        return {
            "repository": self.identifier,
            "provider": self.provider,
            "full_name": self.full_name,
            "stars": self.stars,
            "description": (self.description or "").strip(),
        }
