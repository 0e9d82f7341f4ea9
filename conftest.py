"""
Root conftest.py - put the repository root on sys.path before collection.

clients/, qq_bot/ and tools/ are imported as top-level packages, both by
the tests and when the tools are run with ``python -m``.
"""

import sys
from pathlib import Path

repo_root = Path(__file__).parent
sys.path.insert(0, str(repo_root))
