"""Uniform read-only file access over one mod package.

Two backends exist and no others are expected:
- DirectorySource: an unpacked mod folder
- ZipSource: a mod archive holding exactly one top-level folder

Both expose ``read_file``, ``list_dir`` and ``root_info`` with paths relative
to the package root, so callers never see which backend they hold.
"""
from __future__ import annotations

import logging
import os
import threading
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Union

try:
    from ..constants import Constants
    from ..versioning.models import Version
except ImportError:
    from constants import Constants
    from versioning.models import Version
from .errors import (
    BorrowConflict,
    ModNotFound,
    PathDoesNotExist,
    PathNotZipOrDir,
    UnknownInternalFolder,
    ZipEmpty,
    ZipError,
)
from .info import decode_metadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class DirEntry:
    """One listing entry; ``path`` is relative to the package root."""
    path: str
    is_dir: bool

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


def _normalize(rel_path: str) -> str:
    """Normalize a package-relative path to forward slashes without edges."""
    return str(rel_path).replace("\\", "/").strip("/")


class DirectorySource:
    """Package backed by an unpacked directory; needs no locking."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._root = self.path.resolve()

    def _resolve(self, rel_path: str) -> Path:
        rel = _normalize(rel_path)
        target = (self._root / rel).resolve() if rel else self._root
        if target != self._root and self._root not in target.parents:
            raise PathDoesNotExist(self.path / rel)
        return target

    def read_file(self, rel_path: str) -> bytes:
        target = self._resolve(rel_path)
        if not target.is_file():
            raise PathDoesNotExist(target)
        return target.read_bytes()

    def list_dir(self, rel_path: str = "") -> List[DirEntry]:
        target = self._resolve(rel_path)
        if not target.is_dir():
            raise PathDoesNotExist(target)
        prefix = _normalize(rel_path)
        entries = []
        with os.scandir(target) as it:
            for entry in it:
                path = f"{prefix}/{entry.name}" if prefix else entry.name
                entries.append(DirEntry(path=path, is_dir=entry.is_dir()))
        return sorted(entries)

    def root_info(self) -> Dict[str, Any]:
        return decode_metadata(self.read_file(Constants.INFO_FILE), str(self.path))

    def __repr__(self) -> str:
        return f"DirectorySource({str(self.path)!r})"


class ZipSource:
    """Package backed by a zip archive.

    The archive reader is a single cursor over one file handle, so every
    access borrows it exclusively: other threads wait for the borrow, while a
    reentrant borrow from the holding thread raises BorrowConflict instead of
    deadlocking.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        try:
            self._zip = zipfile.ZipFile(self.path)
        except (zipfile.BadZipFile, OSError) as e:
            raise ZipError(self.path, str(e)) from e
        self._lock = threading.Lock()
        self._owner = None
        self.internal_prefix = self._find_internal_prefix()

    def _find_internal_prefix(self) -> str:
        names = self._zip.namelist()
        if not names:
            raise ZipEmpty(self.path)
        first = names[0]
        if "/" not in first:
            raise UnknownInternalFolder(self.path)
        prefix = first.split("/", 1)[0] + "/"
        if any(not name.startswith(prefix) for name in names):
            raise UnknownInternalFolder(self.path)
        return prefix

    @contextmanager
    def borrow(self) -> Iterator[zipfile.ZipFile]:
        """Exclusive access to the archive reader."""
        me = threading.get_ident()
        if self._owner == me:
            raise BorrowConflict(self.path)
        with self._lock:
            self._owner = me
            try:
                yield self._zip
            finally:
                self._owner = None

    def read_file(self, rel_path: str) -> bytes:
        name = self.internal_prefix + _normalize(rel_path)
        with self.borrow() as zf:
            try:
                return zf.read(name)
            except KeyError as e:
                raise PathDoesNotExist(f"{self.path}/{name}") from e
            except (zipfile.BadZipFile, OSError) as e:
                raise ZipError(self.path, str(e)) from e

    def list_dir(self, rel_path: str = "") -> List[DirEntry]:
        rel = _normalize(rel_path)
        dir_filter = f"{rel}/" if rel else ""
        with self.borrow() as zf:
            names = zf.namelist()

        seen: Dict[str, bool] = {}
        for name in names:
            inner = name[len(self.internal_prefix):]
            if not inner.startswith(dir_filter):
                continue
            head, sep, _ = inner[len(dir_filter):].partition("/")
            if not head:
                continue
            # an entry is a directory if anything (even its own marker) follows it
            seen[head] = seen.get(head, False) or bool(sep)

        if not seen:
            raise PathDoesNotExist(f"{self.path}/{self.internal_prefix}{rel}")
        return sorted(
            DirEntry(path=f"{dir_filter}{head}", is_dir=is_dir) for head, is_dir in seen.items()
        )

    def root_info(self) -> Dict[str, Any]:
        return decode_metadata(self.read_file(Constants.INFO_FILE), str(self.path))

    def close(self) -> None:
        with self.borrow() as zf:
            zf.close()

    def __repr__(self) -> str:
        return f"ZipSource({str(self.path)!r})"


PackageSource = Union[DirectorySource, ZipSource]


def open_path(path: Union[str, Path]) -> PackageSource:
    """Open a path directly as a directory or ``.zip`` package."""
    path = Path(path)
    if not path.exists():
        raise PathDoesNotExist(path)
    if path.is_dir():
        return DirectorySource(path)
    if path.is_file() and path.suffix == Constants.ZIP_SUFFIX:
        return ZipSource(path)
    raise PathNotZipOrDir(path)


def locate(base_path: Union[str, Path], name: str, version: Version) -> PackageSource:
    """Find a package in a mods directory.

    Tries, in order: unversioned folder ``name``, versioned folder
    ``name_version``, versioned archive ``name_version.zip``.

    Raises:
        ModNotFound: When none of the layouts exists.
    """
    base = Path(base_path)
    candidates = (
        base / name,
        base / f"{name}_{version}",
    )
    for candidate in candidates:
        if candidate.is_dir():
            logger.debug("Located %s %s at %s", name, version, candidate)
            return DirectorySource(candidate)

    archive = base / f"{name}_{version}{Constants.ZIP_SUFFIX}"
    if archive.is_file():
        logger.debug("Located %s %s at %s", name, version, archive)
        return ZipSource(archive)

    raise ModNotFound(name, version)
