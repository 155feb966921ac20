"""
CLI entry point for npegen package.

Usage:
    python -m npegen <command> [options]
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
