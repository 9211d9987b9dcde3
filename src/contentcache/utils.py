"""
Utility functions shared by the caches and the CLI.

Hashing and size estimation for cached values, directory prefix matching
for invalidation, and pathspec based file discovery.
"""

from __future__ import annotations

import hashlib
import os
import pickle
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import orjson
import pathspec

HASH_LENGTH = 16


def hash_text(text: str | bytes, length: int = HASH_LENGTH) -> str:
    """Short sha256 hex digest of a string or bytes."""
    data = text.encode("utf-8") if isinstance(text, str) else text
    return hashlib.sha256(data).hexdigest()[:length]


def _structured_bytes(value: Any) -> bytes:
    try:
        return orjson.dumps(value, option=orjson.OPT_SORT_KEYS | orjson.OPT_SERIALIZE_NUMPY)
    except TypeError:
        # orjson.JSONEncodeError subclasses TypeError
        return repr(value).encode("utf-8")


def hash_content(value: Any, length: int = HASH_LENGTH) -> str:
    """Stable fingerprint of a cached value.

    Strings and bytes are hashed directly; structured payloads are hashed
    through their sorted-key JSON form so equal dicts hash equally.
    """
    if isinstance(value, (str, bytes, bytearray)):
        return hash_text(bytes(value) if isinstance(value, bytearray) else value, length)
    return hash_text(_structured_bytes(value), length)


def estimate_size(value: Any) -> int:
    """Approximate in-memory size of a value in bytes.

    UTF-8 byte length for strings, raw length for bytes, 8 bytes per element
    for flat numeric vectors, and the pickled size for anything else.
    """
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return len(value)
    if isinstance(value, (list, tuple)) and value and all(
        isinstance(v, (int, float)) for v in value
    ):
        return len(value) * 8
    try:
        return len(pickle.dumps(value))
    except (pickle.PicklingError, TypeError, AttributeError):
        return len(str(value)) * 2  # Rough estimate


def normalize_dir_prefix(prefix: str) -> tuple[str, str]:
    """Return (bare, with_separator) forms of a directory prefix.

    ``/src`` and ``/src/`` both yield ``("/src", "/src/")`` so that matching
    ``with_separator`` never catches sibling names such as ``/srcOther``.
    """
    bare = prefix.rstrip("/" + os.sep) or prefix[:1]
    if bare in ("/", os.sep):
        return bare, bare
    return bare, bare + "/"


def key_under_prefix(key: str, prefix: str) -> bool:
    """True if ``key`` equals the prefix directory or lives beneath it."""
    bare, with_sep = normalize_dir_prefix(prefix)
    if key == bare:
        return True
    candidate = key.replace(os.sep, "/") if os.sep != "/" else key
    return candidate.startswith(with_sep.replace(os.sep, "/"))


def build_pathspec(
    include: list[str] | None, exclude: list[str] | None
) -> tuple[pathspec.PathSpec, pathspec.PathSpec]:
    inc = pathspec.PathSpec.from_lines("gitwildmatch", include or ["**/*"])
    exc = pathspec.PathSpec.from_lines("gitwildmatch", exclude or [])
    return inc, exc


def iter_files(
    roots: Iterable[str | Path],
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> Iterator[Path]:
    """Walk roots and yield files accepted by include/exclude patterns.

    Patterns are matched against paths relative to each root; excluded
    directories are pruned during traversal.
    """
    inc, exc = build_pathspec(include, exclude)
    for root in roots:
        root_path = Path(root)
        if root_path.is_file():
            yield root_path
            continue
        for dirpath, dirnames, filenames in os.walk(root_path):
            rel_dir = os.path.relpath(dirpath, root_path)
            rel_dir = "" if rel_dir == "." else rel_dir.replace(os.sep, "/") + "/"
            dirnames[:] = [d for d in dirnames if not exc.match_file(f"{rel_dir}{d}/")]
            for name in filenames:
                rel = f"{rel_dir}{name}"
                if inc.match_file(rel) and not exc.match_file(rel):
                    yield Path(dirpath) / name
