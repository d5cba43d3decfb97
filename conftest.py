"""Pytest configuration.

Makes the repository root importable so that ``timelog``, ``dashboard`` and
the root scripts (``timelog_monitor``, ``timelog_dashboard``) resolve when the
tests run without an installed package.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
