#!/usr/bin/env python3
"""
Utility script to drop ephemeral test databases left behind by
interrupted or crashed test runs.

Usage:
    python scripts/reap_test_databases.py [--max-age SECONDS] [--dry-run] [--verbose]
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from ephemeral_pg.testing.reaper import main


if __name__ == "__main__":
    sys.exit(main())
