"""
Command-line interface for contentcache.

Main Commands:
    warm: Read a source tree through a file content cache and report stats
    config: Print the effective configuration

Example Usage:
    Two passes over a project, the second served from cache:
        $ contentcache warm src --include "**/*.py" --passes 2

    Machine readable output:
        $ contentcache warm . --exclude "**/.git/**" --json

    Inspect a configuration file:
        $ contentcache config --config contentcache.toml
"""

from __future__ import annotations

import asyncio
import dataclasses
import sys
import time
from pathlib import Path
from typing import Any

import click
import orjson
from rich.console import Console
from rich.table import Table

from ..caches.file_content import FileContentCache
from ..config import ManagerConfig, load_config
from ..error_handling import CacheError, create_error_report
from ..logging_config import LogFormat, LogLevel, configure_logging
from ..utils import iter_files

_MB = 1024 * 1024


def _setup_logging(debug: bool, log_format: str) -> None:
    configure_logging(
        level=LogLevel.DEBUG if debug else LogLevel.WARNING,
        format_type=LogFormat(log_format),
        enable_console=True,
    )


def _load(config_path: str | None) -> ManagerConfig:
    if config_path is None:
        return ManagerConfig()
    try:
        return load_config(config_path)
    except CacheError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)


async def _warm(
    cache: FileContentCache, files: list[Path], passes: int
) -> tuple[list[dict[str, Any]], list[str]]:
    rounds: list[dict[str, Any]] = []
    read_errors: list[str] = []
    for index in range(passes):
        start = time.perf_counter()
        hits = 0
        for path in files:
            try:
                result = await cache.read_file(path)
            except (OSError, UnicodeDecodeError) as e:
                if index == 0:
                    read_errors.append(f"{path}: {e}")
                continue
            hits += result.cached
        rounds.append(
            {
                "pass": index + 1,
                "files": len(files),
                "cached": hits,
                "elapsed_ms": (time.perf_counter() - start) * 1000,
            }
        )
    return rounds, read_errors


def _render_table(stats: dict[str, Any], rounds: list[dict[str, Any]], console: Console) -> None:
    passes = Table(title="Passes")
    passes.add_column("Pass", justify="right")
    passes.add_column("Files", justify="right")
    passes.add_column("From Cache", justify="right")
    passes.add_column("Elapsed (ms)", justify="right")
    for r in rounds:
        passes.add_row(str(r["pass"]), str(r["files"]), str(r["cached"]), f"{r['elapsed_ms']:.1f}")
    console.print(passes)

    summary = Table(title="File Content Cache Statistics")
    summary.add_column("Metric")
    summary.add_column("Value", justify="right")
    summary.add_row("Entries", str(stats["total_entries"]))
    summary.add_row("Hits", str(stats["hits"]))
    summary.add_row("Misses", str(stats["misses"]))
    summary.add_row("Hit Rate", f"{stats['hit_rate'] * 100:.1f}%")
    summary.add_row("Cache Size", f"{stats['total_size_bytes'] / _MB:.2f}MB")
    summary.add_row("Bytes Served", f"{stats['bytes_served'] / _MB:.2f}MB")
    summary.add_row("Bytes Read", f"{stats['bytes_read'] / _MB:.2f}MB")
    summary.add_row("Evictions", str(stats["evictions"]))
    summary.add_row("Skipped (too large)", str(stats["skipped"]))
    console.print(summary)


@click.group()
def cli() -> None:
    """contentcache - bounded TTL caches for file contents and derived data"""
    pass


@cli.command("warm")
@click.argument("paths", nargs=-1, type=click.Path(exists=True))
@click.option("--include", multiple=True, help="gitwildmatch pattern of files to read (repeatable)")
@click.option("--exclude", multiple=True, help="gitwildmatch pattern of files to skip (repeatable)")
@click.option("--passes", type=click.IntRange(min=1), default=2, show_default=True,
              help="How many times to read every file")
@click.option("--ttl", type=float, help="Entry TTL in seconds (inf = never expire)")
@click.option("--max-entries", type=click.IntRange(min=1), help="Maximum cached files")
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="TOML configuration file")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of tables")
@click.option("--show-errors", is_flag=True, default=False, help="Print unreadable files and recovered errors")
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging")
@click.option(
    "--log-format",
    type=click.Choice([f.value for f in LogFormat]),
    default=LogFormat.SIMPLE.value,
    help="Log output format",
)
def warm_cmd(
    paths: tuple[str, ...],
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    passes: int,
    ttl: float | None,
    max_entries: int | None,
    config_path: str | None,
    as_json: bool,
    show_errors: bool,
    debug: bool,
    log_format: str,
) -> None:
    """Read PATHS through a file content cache and report hit statistics."""
    _setup_logging(debug, log_format)

    overrides: dict[str, Any] = {"auto_cleanup": False}
    if ttl is not None:
        overrides["ttl"] = ttl
    if max_entries is not None:
        overrides["max_entries"] = max_entries
    try:
        cache_config = _load(config_path).file_content.with_overrides(**overrides)
    except CacheError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    files = sorted(
        iter_files(paths or ["."], list(include) or None, list(exclude) or None)
    )

    cache = FileContentCache(cache_config)
    try:
        rounds, read_errors = asyncio.run(_warm(cache, files, passes))
        stats = cache.get_stats().to_dict()
        error_summary = cache.store.get_error_summary()
        error_report = create_error_report(cache.store.errors)
    finally:
        cache.dispose()

    if as_json:
        payload = {
            "files": len(files),
            "passes": rounds,
            "stats": stats,
            "read_errors": read_errors,
            "errors": error_summary,
        }
        sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())
        sys.stdout.write("\n")
    else:
        _render_table(stats, rounds, Console())

    if show_errors:
        for line in read_errors:
            click.echo(f"unreadable: {line}", err=True)
        if error_summary["total_errors"]:
            click.echo(error_report, err=True)


@cli.command("config")
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="TOML configuration file")
def config_cmd(config_path: str | None) -> None:
    """Print the effective configuration as JSON."""
    config = _load(config_path)
    payload = dataclasses.asdict(config)
    payload["persist_dir"] = str(config.persist_dir)
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS).decode())
    sys.stdout.write("\n")


def main() -> None:
    cli(prog_name="contentcache")


if __name__ == "__main__":
    main()
