"""
repodigest: repository ingestion for language-model context windows.

Reads a local, GitHub or GitLab repository through one provider
contract and flattens it into a deterministic text digest.
"""

__version__ = "1.0.0"
__author__ = "repodigest"
