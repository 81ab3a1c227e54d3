"""Parsing utilities for versions, dependency strings and mod file names."""

import re
from typing import Optional, Tuple

from .models import Dependency, DependencyKind, Version, VersionOp

# Longest prefixes first so "(?)" is not read as "?"
_KIND_PREFIXES = (
    ("(?)", DependencyKind.HIDDEN_OPTIONAL),
    ("!", DependencyKind.INCOMPATIBLE),
    ("?", DependencyKind.OPTIONAL),
    ("~", DependencyKind.LAZY),
)

_CONSTRAINT_RE = re.compile(r"\s*(>=|<=|=|>|<)\s*(\d+\.\d+(?:\.\d+)?)\s*$")
_FILENAME_RE = re.compile(r"^(.+?)(?:_(\d+\.\d+\.\d+))?(\.zip)?$")


def parse_version(text: str) -> Version:
    """Parse a version string; raises ValueError when malformed."""
    return Version.parse(text)


def parse_dependency(text: str) -> Dependency:
    """Parse one metadata dependency entry.

    Grammar: optional modifier (``!``, ``?``, ``(?)``, ``~``), mod name (which
    may contain spaces), optional comparator and version, e.g.
    ``"? space-age >= 2.0.0"``.
    """
    s = str(text).strip()
    kind = DependencyKind.REQUIRED
    for prefix, prefix_kind in _KIND_PREFIXES:
        if s.startswith(prefix):
            kind = prefix_kind
            s = s[len(prefix):].strip()
            break

    op = VersionOp.ANY
    version = None
    m = _CONSTRAINT_RE.search(s)
    if m:
        op = VersionOp(m.group(1))
        version = Version.parse(m.group(2))
        s = s[:m.start()].strip()

    if not s or any(c in s for c in "<>="):
        raise ValueError(f"Invalid dependency: '{text}'")
    return Dependency(name=s, kind=kind, op=op, version=version)


def split_mod_filename(filename: str) -> Tuple[str, Optional[Version], bool]:
    """Split an entry of the mods directory into (name, version, is_zip).

    ``foo`` -> ("foo", None, False); ``foo_1.2.3.zip`` -> ("foo", 1.2.3, True).
    """
    m = _FILENAME_RE.match(filename)
    if not m:
        raise ValueError(f"Mod filename does not match expected format: {filename}")
    version = Version.parse(m.group(2)) if m.group(2) else None
    return m.group(1), version, bool(m.group(3))
