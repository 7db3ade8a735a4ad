"""
Utility functions and helpers.

Provides common utilities used across the codebase.
"""

from repodigest.utils.logging_config import configure_logging, setup_logging, get_logger
from repodigest.utils.validation import validate_path, parse_repository_identifier

__all__ = [
    "configure_logging",
    "setup_logging",
    "get_logger",
    "validate_path",
    "parse_repository_identifier",
]
