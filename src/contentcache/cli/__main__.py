"""
CLI entry point for contentcache.

This module serves as the entry point when contentcache.cli is executed as a
module with `python -m contentcache.cli`.
"""

from .main import main

if __name__ == "__main__":
    main()
