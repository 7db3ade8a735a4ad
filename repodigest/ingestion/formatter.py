"""
Digest formatters.

Renders an IngestionResult as the flattened text digest, as a
box-drawing directory tree, or as a JSON summary.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List

from repodigest.core.models import IngestionResult, RepositoryReference

logger = logging.getLogger(__name__)

# Extensions whose content is fenced with a language tag when read alone
CODE_EXTENSIONS = {
    "rs", "js", "py", "go", "java", "c", "cpp", "h", "ts", "sh",
    "json", "yaml", "yml", "toml", "md",
}


def fence_content(path: str, content: str) -> str:
    """Wrap content in a fenced block tagged with the file extension for code files."""
    name = path.rsplit("/", 1)[-1]
    extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    if extension not in CODE_EXTENSIONS:
        return content
    return f"```{extension}\n{content}\n```"


def _build_nodes(paths: Iterable[str]) -> Dict[str, Any]:
    root: Dict[str, Any] = {}
    for path in paths:
        node = root
        parts = [p for p in path.split("/") if p]
        for part in parts[:-1]:
            child = node.get(part)
            if child is None:
                child = node[part] = {}
            node = child
        if parts:
            node.setdefault(parts[-1], None)
    return root


def _render_nodes(node: Dict[str, Any], prefix: str, lines: List[str]) -> None:
    directories = sorted(name for name, child in node.items() if child is not None)
    files = sorted(name for name, child in node.items() if child is None)
    children = [(name, node[name]) for name in directories + files]

    for i, (name, child) in enumerate(children):
        is_last = i == len(children) - 1
        marker = "└── " if is_last else "├── "
        if child is None:
            lines.append(f"{prefix}{marker}{name}")
        else:
            lines.append(f"{prefix}{marker}{name}/")
            _render_nodes(child, prefix + ("    " if is_last else "│   "), lines)


def render_tree(paths: Iterable[str], root_name: str = ".") -> str:
    """
    Render file paths as a tree, directories before files at each level.

    Args:
        paths: Repository-relative file paths.
        root_name: Label for the top line.

    Returns:
        Multi-line tree string.
    """
    lines = [f"{root_name.rstrip('/')}/"]
    _render_nodes(_build_nodes(paths), "", lines)
    return "\n".join(lines)


def repository_label(reference: RepositoryReference) -> str:
    """Last component of the repository location, used as the tree root."""
    location = reference.location.replace("\\", "/").rstrip("/")
    return location.rsplit("/", 1)[-1] or location


class DigestFormatter(ABC):
    """Abstract base class for digest formatters."""

    @abstractmethod
    def format(self, result: IngestionResult) -> str:
        """Format an ingestion result to string."""
        pass

    def save(self, result: IngestionResult, path: Path) -> None:
        """Save formatted output to file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.format(result), encoding="utf-8")
        logger.info(f"Digest saved to: {path}")


class TextDigestFormatter(DigestFormatter):
    """
    Formats the flattened text digest.

    A short header, the directory structure of the included files, then
    every included file under a delimiter block, in path order.
    """

    def __init__(self, width: int = 48, include_tree: bool = True):
        self.width = width
        self.include_tree = include_tree
        self.separator = "="

    def format(self, result: IngestionResult) -> str:
        lines = self._format_header(result)

        if self.include_tree:
            lines.append("Directory structure:")
            lines.append(render_tree((r.path for r in result.included), repository_label(result.reference)))
            lines.append("")

        for record in result.included:
            lines.extend(self._format_file(record.path, record.content or ""))

        return "\n".join(lines)

    def _format_header(self, result: IngestionResult) -> List[str]:
        return [
            f"Repository: {result.reference.display_name}",
            f"Root: {result.root}",
            f"Files included: {len(result.included)}",
            f"Files skipped: {len(result.skipped)}",
            f"Total bytes: {result.total_bytes}",
            "",
        ]

    def _format_file(self, path: str, content: str) -> List[str]:
        rule = self.separator * self.width
        return [rule, f"FILE: {path}", rule, content, ""]


class TreeFormatter(DigestFormatter):
    """Formats the included files as a directory tree."""

    def format(self, result: IngestionResult) -> str:
        return render_tree((r.path for r in result.included), repository_label(result.reference))


class JSONSummaryFormatter(DigestFormatter):
    """Formats the machine-readable summary as JSON."""

    def __init__(self, indent: int = 2):
        self.indent = indent

    def format(self, result: IngestionResult) -> str:
        return json.dumps(result.to_dict(), indent=self.indent)
