"""Catalog of discovered mod packages and their activation state."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

try:
    from ..constants import Constants
    from ..resolver.dependency_resolver import build_order_graph, load_order
    from ..versioning.models import Dependency, Version
    from ..versioning.parser import split_mod_filename
except ImportError:
    from constants import Constants
    from resolver.dependency_resolver import build_order_graph, load_order
    from versioning.models import Dependency, Version
    from versioning.parser import split_mod_filename
from .errors import ModError, ModNotFound, PathDoesNotExist, VersionMismatch
from .package import Package

logger = logging.getLogger(__name__)

Selection = Union[Mapping[str, Optional[Version]], Iterable[str]]


@dataclass
class ModEntry:
    """All discovered versions of one mod name."""
    enabled: bool = False
    active_version: Optional[Version] = None
    packages: Dict[Version, Package] = field(default_factory=dict)

    def latest(self) -> Optional[Version]:
        return max(self.packages) if self.packages else None

    def active_package(self) -> Optional[Package]:
        version = self.active_version or self.latest()
        if version is None:
            return None
        return self.packages.get(version)


class ModRegistry:
    """Name -> discovered packages, plus which of them are active.

    Packages are read-only once discovered and may be shared between forks;
    activation state belongs to each registry instance.
    """

    def __init__(self, mods_path: Optional[Union[str, Path]] = None,
                 data_path: Optional[Union[str, Path]] = None):
        self.mods_path = Path(mods_path) if mods_path is not None else None
        self.data_path = Path(data_path) if data_path is not None else None
        self.entries: Dict[str, ModEntry] = {}
        self.discovery_errors: List[Tuple[str, ModError]] = []

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @classmethod
    def discover(cls, mods_path: Optional[Union[str, Path]],
                 data_path: Optional[Union[str, Path]]) -> "ModRegistry":
        """Build a registry from the host data directory and a mods directory."""
        registry = cls(mods_path, data_path)
        if registry.data_path is not None:
            registry._discover_builtins()
        if registry.mods_path is not None:
            registry._discover_mods_dir()
        logger.info("Discovered %d mod(s) with %d package(s)",
                    len(registry.entries), sum(len(e.packages) for e in registry.entries.values()))
        return registry

    @classmethod
    def load(cls, mods_path: Union[str, Path], data_path: Optional[Union[str, Path]]) -> "ModRegistry":
        """Discover, then apply ``mod-list.json`` from the mods directory if present."""
        registry = cls.discover(mods_path, data_path)
        registry.apply_mod_list(Path(mods_path) / Constants.MOD_LIST_FILE)
        return registry

    def _discover_builtins(self) -> None:
        for name in Constants.BUILTIN_MODS:
            try:
                package = Package.load_builtin(self.data_path, name)
            except ModError as e:
                logger.warning("Failed to load built-in mod %s: %s", name, e)
                continue
            entry = self.entries.setdefault(name, ModEntry())
            entry.packages[package.version] = package
            if name == Constants.CORE_MOD:
                entry.enabled = True

    def _discover_mods_dir(self) -> None:
        if not self.mods_path.is_dir():
            raise PathDoesNotExist(self.mods_path)

        for filename in sorted(os.listdir(self.mods_path)):
            path = self.mods_path / filename
            if path.is_file() and path.suffix != Constants.ZIP_SUFFIX:
                logger.debug("Skipping non-package file %s", path)
                continue
            try:
                name, path_version, _ = split_mod_filename(filename)
            except ValueError:
                logger.warning("Skipping invalid mod filename: %s", path)
                continue
            if name in Constants.BUILTIN_MODS and self.entries.get(name, ModEntry()).packages:
                logger.debug("Ignoring %s, built-in mod %s is provided by the host", path, name)
                continue

            try:
                package = Package.from_path(path, expected_name=name)
                if path_version is not None and package.version != path_version:
                    raise VersionMismatch(name, path_version, package.version)
            except ModError as e:
                logger.warning("Failed to load mod %s at %s: %s", name, path, e)
                self.discovery_errors.append((filename, e))
                self.entries.setdefault(name, ModEntry())
                continue

            entry = self.entries.setdefault(name, ModEntry())
            if package.version in entry.packages:
                logger.warning("Duplicate %s %s at %s, keeping %s", name, package.version,
                               path, entry.packages[package.version].path)
                continue
            entry.packages[package.version] = package

    def add(self, package: Package) -> None:
        """Register an already opened package."""
        self.entries.setdefault(package.name, ModEntry()).packages[package.version] = package

    # ------------------------------------------------------------------
    # mod-list.json
    # ------------------------------------------------------------------

    def apply_mod_list(self, list_path: Union[str, Path]) -> bool:
        """Enable mods and pin versions listed in a mod-list.json.

        Entries for unknown mods or versions not on disk are ignored.
        Returns False when the file is missing or unreadable.
        """
        try:
            with open(list_path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return False
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable mod list %s: %s", list_path, e)
            return False

        for item in data.get("mods", []) if isinstance(data, dict) else []:
            entry = self.entries.get(item.get("name"))
            if entry is None:
                continue
            raw_version = item.get("version")
            if raw_version:
                try:
                    version = Version.parse(raw_version)
                except ValueError:
                    continue
                if version not in entry.packages:
                    continue
                entry.active_version = version
            entry.enabled = bool(item.get("enabled", False))
        return True

    def save_mod_list(self, list_path: Optional[Union[str, Path]] = None) -> Path:
        """Write activation state as mod-list.json; ``core`` is always on and omitted."""
        if list_path is None:
            if self.mods_path is None:
                raise PathDoesNotExist(Constants.MOD_LIST_FILE)
            list_path = self.mods_path / Constants.MOD_LIST_FILE
        mods = []
        for name in sorted(self.entries):
            if name == Constants.CORE_MOD:
                continue
            entry = self.entries[name]
            item = {"name": name, "enabled": entry.enabled}
            if entry.active_version is not None:
                item["version"] = str(entry.active_version)
            mods.append(item)
        path = Path(list_path)
        path.write_text(json.dumps({"mods": mods}, indent=2), encoding="utf-8")
        return path

    # ------------------------------------------------------------------
    # Catalog queries (used by the dependency resolver)
    # ------------------------------------------------------------------

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def versions(self, name: str) -> List[Version]:
        entry = self.entries.get(name)
        return sorted(entry.packages) if entry else []

    def package(self, name: str, version: Optional[Version] = None) -> Package:
        entry = self.entries.get(name)
        if entry is None or not entry.packages:
            raise ModNotFound(name, version)
        version = version or entry.latest()
        try:
            return entry.packages[version]
        except KeyError as e:
            raise ModNotFound(name, version) from e

    def dependencies(self, name: str, version: Version) -> Sequence[Dependency]:
        return self.package(name, version).info.dependencies

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def enable_set(self, selection: Selection) -> Dict[str, Optional[Version]]:
        """Mark exactly the given mods active.

        ``selection`` maps names to versions (None = latest) or is an
        iterable of names. Names or versions not discovered are returned as
        missing instead of raising, so the caller decides whether that is
        fatal. ``core`` stays enabled.
        """
        if isinstance(selection, Mapping):
            wanted = dict(selection)
        else:
            wanted = {name: None for name in selection}

        missing: Dict[str, Optional[Version]] = {}
        for name, entry in self.entries.items():
            entry.enabled = name == Constants.CORE_MOD
            entry.active_version = None

        for name, version in wanted.items():
            entry = self.entries.get(name)
            if entry is None or not entry.packages:
                missing[name] = version
                continue
            if version is not None and version not in entry.packages:
                missing[name] = version
                continue
            entry.enabled = True
            entry.active_version = version

        if missing:
            logger.debug("Missing mods while enabling: %s", missing)
        return missing

    def active(self) -> Dict[str, Package]:
        result = {}
        for name, entry in self.entries.items():
            if not entry.enabled:
                continue
            package = entry.active_package()
            if package is not None:
                result[name] = package
        return result

    def active_with_order(self) -> Tuple[Dict[str, Package], List[str]]:
        """Active packages plus a load order where dependencies come first.

        Raises:
            DependencyCycle: When the active set's dependencies are cyclic.
        """
        active = self.active()
        graph = build_order_graph({name: pkg.info.dependencies for name, pkg in active.items()})
        return active, load_order(graph)

    def fork(self) -> "ModRegistry":
        """Copy with independent activation state sharing the same packages."""
        clone = ModRegistry(self.mods_path, self.data_path)
        clone.entries = {
            name: ModEntry(entry.enabled, entry.active_version, dict(entry.packages))
            for name, entry in self.entries.items()
        }
        clone.discovery_errors = list(self.discovery_errors)
        return clone
