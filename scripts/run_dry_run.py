#!/usr/bin/env python3
"""
Dry Run - Generate the weekly visit schedule without pushing to the visit store (DEFAULT mode)

Usage:
  python scripts/run_dry_run.py --week 2026-03-02 --today 2026-02-27

Outputs to outputs/ directory.
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hospice_scheduler.dry_run import main

if __name__ == "__main__":
    main()
