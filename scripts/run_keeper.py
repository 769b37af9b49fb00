#!/usr/bin/env python3
"""
Inheritor Keeper - launch the disbursement daemon.

Usage:
    python scripts/run_keeper.py                 # Single cycle
    python scripts/run_keeper.py scheduled       # Daemon mode (production)
"""

import asyncio
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).parent.parent.absolute()
sys.path.insert(0, str(ROOT_DIR))


def main():
    from inheritor.keeper.daemon import run_single_cycle, run_scheduled

    mode = sys.argv[1] if len(sys.argv) > 1 else "single"

    try:
        if mode == "scheduled":
            asyncio.run(run_scheduled())
        else:
            asyncio.run(run_single_cycle())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
