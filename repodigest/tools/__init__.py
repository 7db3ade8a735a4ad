"""
Callable tools exposed to orchestration hosts.
"""

from repodigest.tools.surface import ToolSurface, error_payload

__all__ = [
    "ToolSurface",
    "error_payload",
]
