#!/usr/bin/env python3
"""
repodigest - Main Entry Point

Flattens a local, GitHub or GitLab repository into a single text
digest for a language-model context window.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from repodigest.cli import main

if __name__ == "__main__":
    main()
