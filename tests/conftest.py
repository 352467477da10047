from __future__ import annotations

"""
Pytest configuration helpers.

Ensures the repository root (for ``cineflow``) and this directory (for the
shared fakes) are importable regardless of how pytest was invoked.
"""

import sys
from pathlib import Path

HERE = Path(__file__).resolve().parent
ROOT = HERE.parent

for path in (ROOT, HERE):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
