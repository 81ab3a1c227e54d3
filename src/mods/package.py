"""A mod package: one source plus its verified metadata."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

try:
    from ..constants import Constants
    from ..versioning.models import Version
except ImportError:
    from constants import Constants
    from versioning.models import Version
from .errors import NameMismatch, PathDoesNotExist, VersionMismatch
from .info import ModInfo
from .package_source import DirEntry, PackageSource, locate, open_path

logger = logging.getLogger(__name__)


@dataclass
class Package:
    """Owns one PackageSource and the ModInfo parsed from it."""
    info: ModInfo
    source: PackageSource
    builtin: bool = False

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def version(self) -> Version:
        return self.info.version

    @property
    def path(self) -> Path:
        return self.source.path

    def read_file(self, rel_path: str) -> bytes:
        return self.source.read_file(rel_path)

    def list_dir(self, rel_path: str = "") -> List[DirEntry]:
        return self.source.list_dir(rel_path)

    def has_file(self, rel_path: str) -> bool:
        try:
            self.source.read_file(rel_path)
        except PathDoesNotExist:
            return False
        return True

    @classmethod
    def load(cls, mods_path: Union[str, Path], name: str, version: Version) -> "Package":
        """Locate ``name`` at ``version`` in a mods directory and verify its metadata."""
        source = locate(mods_path, name, version)
        info = ModInfo.from_dict(source.root_info(), name)
        verify_info(info, name, version)
        return cls(info=info, source=source)

    @classmethod
    def from_path(cls, path: Union[str, Path], expected_name: Optional[str] = None) -> "Package":
        """Open a package path directly; checks the name when one is expected."""
        source = open_path(path)
        info = ModInfo.from_dict(source.root_info(), expected_name or str(path))
        if expected_name is not None and info.name != expected_name:
            raise NameMismatch(expected_name, info.name)
        return cls(info=info, source=source)

    @classmethod
    def load_builtin(cls, data_path: Union[str, Path], name: str) -> "Package":
        """Load one of the host's own mods from its data directory.

        ``core`` carries no version of its own and borrows the version of the
        sibling ``base`` mod; without one it takes the emulated host version.
        """
        if name not in Constants.BUILTIN_MODS:
            raise PathDoesNotExist(Path(data_path) / name)

        source = open_path(Path(data_path) / name)
        if name != Constants.CORE_MOD:
            info = ModInfo.from_dict(source.root_info(), name)
            if info.name != name:
                raise NameMismatch(name, info.name)
            return cls(info=info, source=source, builtin=True)

        return cls(info=_core_info(data_path), source=source, builtin=True)

    def __repr__(self) -> str:
        return f"Package({self.name} {self.version} @ {self.source!r})"


def _core_info(data_path: Union[str, Path]) -> ModInfo:
    base_dir = Path(data_path) / Constants.BASE_MOD
    version = Version.parse(Constants.GAME_VERSION)
    if base_dir.exists():
        base_info = ModInfo.from_dict(open_path(base_dir).root_info(), "base [to read core]")
        version = base_info.version
    else:
        logger.debug("No base mod next to core in %s, using host version %s", data_path, version)

    return ModInfo(
        name=Constants.CORE_MOD,
        version=version,
        title=Constants.CORE_TITLE,
        dependencies=(),
    )


def verify_info(info: ModInfo, expected_name: str, expected_version: Version) -> None:
    """Check metadata against the identity a package was located under."""
    if info.name != expected_name:
        raise NameMismatch(expected_name, info.name)
    if info.version != expected_version:
        raise VersionMismatch(info.name, expected_version, info.version)
