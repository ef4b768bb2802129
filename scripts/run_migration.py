#!/usr/bin/env python3
"""
Run the provider job migration.

Usage:
    python scripts/run_migration.py --batch-size 100 --start-page 1 --dry-run
"""

import sys
from pathlib import Path

# Add the repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from staffsync.cli import run

if __name__ == "__main__":
    run()
