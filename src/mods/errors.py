"""Errors raised while locating, opening and reading mod packages."""

from __future__ import annotations

from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


class ModError(Exception):
    """Base class for package and registry failures."""


class PathDoesNotExist(ModError):
    """A package path, or a file inside a package, does not exist."""

    def __init__(self, path: PathLike):
        self.path = str(path)
        super().__init__(f"mod path does not exist: {self.path}")


class PathNotZipOrDir(ModError):
    def __init__(self, path: PathLike):
        self.path = str(path)
        super().__init__(f"mod path is not a zip file or directory: {self.path}")


class ZipEmpty(ModError):
    def __init__(self, path: PathLike):
        self.path = str(path)
        super().__init__(f"mod zip is empty: {self.path}")


class ZipError(ModError):
    """The archive could not be opened or an entry could not be read."""

    def __init__(self, path: PathLike, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"mod zip error in {self.path}: {reason}")


class UnknownInternalFolder(ModError):
    """The archive does not hold exactly one top-level folder."""

    def __init__(self, path: PathLike):
        self.path = str(path)
        super().__init__(f"could not get mod zip internal folder: {self.path}")


class InvalidMetadata(ModError):
    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"unable to parse info.json of {name}: {reason}")


class NameMismatch(ModError):
    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"mod name does not match name in info.json: {expected} != {actual}")


class VersionMismatch(ModError):
    def __init__(self, name: str, expected, actual):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"mod version does not match version in info.json: {name} {expected} != {actual}"
        )


class ModNotFound(ModError):
    def __init__(self, name: str, version=None):
        self.name = name
        self.version = version
        suffix = f" v{version}" if version is not None else ""
        super().__init__(f"mod not found: {name}{suffix}")


class BorrowConflict(ModError):
    """Reentrant access to a zip reader that is already borrowed by this thread."""

    def __init__(self, path: PathLike):
        self.path = str(path)
        super().__init__(f"mod zip reader already borrowed: {self.path}")
