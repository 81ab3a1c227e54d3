"""Mod packages and the registry of discovered mods.

- package_source.py: directory and zip backends behind one read-only interface
- info.py: info.json model and schema validation
- package.py: a source plus its verified metadata, built-in loading
- registry.py: discovery, mod-list.json, activation and load order
- errors.py: package and registry failure taxonomy
"""

from .errors import (  # noqa: F401
    BorrowConflict,
    InvalidMetadata,
    ModError,
    ModNotFound,
    NameMismatch,
    PathDoesNotExist,
    PathNotZipOrDir,
    UnknownInternalFolder,
    VersionMismatch,
    ZipEmpty,
    ZipError,
)
from .info import FeatureFlags, ModInfo  # noqa: F401
from .package import Package  # noqa: F401
from .package_source import DirectorySource, DirEntry, ZipSource, locate, open_path  # noqa: F401
from .registry import ModEntry, ModRegistry  # noqa: F401
