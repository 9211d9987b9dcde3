"""
Command-line interface for contentcache.

Provides developer commands for exercising a file content cache against a
real source tree and for inspecting the effective configuration.
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
