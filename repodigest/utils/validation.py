"""
Input validation utilities.

Classifies repository identifiers as local paths or hosted
repositories and turns them into RepositoryReference objects.
"""

import os
import re
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

from repodigest.core.exceptions import InvalidRepositoryError
from repodigest.core.models import BackendKind, RepositoryReference

SSH_PATTERN = re.compile(r"^git@([^:]+):(.+?)(?:\.git)?/?$")

GITHUB_HOSTS = {"github.com", "www.github.com"}


def validate_path(path: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a local filesystem path.

    Args:
        path: Path to validate.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not path:
        return False, "Path cannot be empty"

    try:
        path_obj = Path(path).expanduser().resolve()
    except (OSError, RuntimeError) as e:
        return False, f"Invalid path format: {e}"

    if not path_obj.exists():
        return False, f"Path does not exist: {path}"

    if not path_obj.is_dir():
        return False, f"Path is not a directory: {path}"

    if not os.access(path_obj, os.R_OK):
        return False, f"Path is not readable: {path}"

    return True, None


def _strip_git_suffix(name: str) -> str:
    return name[:-4] if name.endswith(".git") else name


def _hosted_kind(host: str) -> Optional[BackendKind]:
    host = host.lower()
    if host in GITHUB_HOSTS:
        return BackendKind.GITHUB
    if host == "gitlab.com" or "gitlab" in host.split("."):
        return BackendKind.GITLAB
    return None


def _parse_github_path(segments: list) -> Tuple[str, Optional[str]]:
    if len(segments) < 2:
        raise ValueError("expected owner/name")
    location = f"{segments[0]}/{_strip_git_suffix(segments[1])}"
    revision = None
    if len(segments) > 3 and segments[2] in ("tree", "blob"):
        revision = segments[3]
    return location, revision


def _parse_gitlab_path(path: str) -> Tuple[str, Optional[str]]:
    project, _, rest = path.strip("/").partition("/-/")
    segments = [s for s in project.split("/") if s]
    if len(segments) < 2:
        raise ValueError("expected group/project")
    segments[-1] = _strip_git_suffix(segments[-1])
    revision = None
    if rest.startswith("tree/") or rest.startswith("blob/"):
        revision = rest.split("/")[1] or None
    return "/".join(segments), revision


def parse_repository_identifier(
    identifier: str, revision: Optional[str] = None
) -> RepositoryReference:
    """
    Classify a repository identifier and build a reference.

    Accepted shapes:
        - local paths (``./repo``, ``/srv/repo.git``)
        - ``github:owner/name`` and ``gitlab:group/project``
        - ``https://github.com/owner/name[/tree/<ref>]``
        - ``https://<gitlab host>/group/project[/-/tree/<ref>]``
        - ``git@<host>:owner/name.git``

    A revision embedded in a URL is used only when ``revision`` is not
    given.

    Raises:
        InvalidRepositoryError: If the identifier matches no known shape.
    """
    if not identifier or not identifier.strip():
        raise InvalidRepositoryError(identifier or "", "identifier cannot be empty")

    identifier = identifier.strip()
    prefix, sep, rest = identifier.partition(":")

    try:
        if sep and prefix in ("github", "gitlab") and not rest.startswith("//"):
            kind = BackendKind(prefix)
            segments = [s for s in rest.split("/") if s]
            if kind == BackendKind.GITHUB:
                location, url_revision = _parse_github_path(segments)
            else:
                location, url_revision = _parse_gitlab_path(rest)
            return RepositoryReference.create(kind, location, revision or url_revision)

        if sep and prefix == "local":
            return _local_reference(rest, revision)

        ssh_match = SSH_PATTERN.match(identifier)
        if ssh_match:
            host, path = ssh_match.groups()
            kind = _hosted_kind(host)
            if kind is None:
                raise InvalidRepositoryError(identifier, f"unsupported host: {host}")
            return _hosted_reference(kind, host, "https", path, revision)

        candidate = identifier
        if re.match(r"^(www\.)?(github|gitlab)\.com/", candidate):
            candidate = f"https://{candidate}"

        parsed = urlparse(candidate)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            kind = _hosted_kind(parsed.hostname or "")
            if kind is None:
                raise InvalidRepositoryError(
                    identifier, f"unsupported host: {parsed.hostname}"
                )
            return _hosted_reference(kind, parsed.netloc, parsed.scheme, parsed.path, revision)
    except ValueError as e:
        raise InvalidRepositoryError(identifier, str(e)) from e

    return _local_reference(identifier, revision)


def _hosted_reference(
    kind: BackendKind, netloc: str, scheme: str, path: str, revision: Optional[str]
) -> RepositoryReference:
    if kind == BackendKind.GITHUB:
        segments = [s for s in path.split("/") if s]
        location, url_revision = _parse_github_path(segments)
        host = None
    else:
        location, url_revision = _parse_gitlab_path(path)
        host = None if netloc.lower() == "gitlab.com" else f"{scheme}://{netloc}"
    return RepositoryReference.create(kind, location, revision or url_revision, host)


def _local_reference(path: str, revision: Optional[str]) -> RepositoryReference:
    is_valid, error = validate_path(path)
    if not is_valid:
        raise InvalidRepositoryError(path, error)
    location = str(Path(path).expanduser().resolve())
    return RepositoryReference.create(BackendKind.LOCAL, location, revision)
