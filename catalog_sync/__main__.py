"""
Allow running the sync client as a module.

Usage:
    python -m catalog_sync --login
    python -m catalog_sync --status
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
