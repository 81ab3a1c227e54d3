"""Module names for the sandboxed ``require`` and their resolution strategies.

A module name is parsed once into a ``ModulePath``. Each strategy is a pure
function ``(path, ctx) -> ResolvedModule | AbsoluteModuleTargetMissing | None``
over a ``LoaderContext`` snapshot; the loader tries them in ``STRATEGIES``
order and stops at the first ``ResolvedModule``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Tuple, Union

try:
    from ..constants import Constants
    from ..mods.errors import PathDoesNotExist
    from ..mods.package import Package
except ImportError:
    from constants import Constants
    from mods.errors import PathDoesNotExist
    from mods.package import Package
from .errors import InvalidModuleName

LUA_SUFFIX = ".lua"

_SEPARATORS = re.compile(r"[/\\]")


@dataclass(frozen=True)
class ModulePath:
    """A parsed module name: non-empty segments, the last one being the file stem."""
    name: str
    parts: Tuple[str, ...]

    @property
    def folder_parts(self) -> Tuple[str, ...]:
        return self.parts[:-1]

    @property
    def stem(self) -> str:
        return self.parts[-1]


def parse_module_name(name: str) -> ModulePath:
    """Parse a ``require`` argument.

    Names containing ``..`` or starting with a separator are rejected before
    any file access. Names with a ``/`` or ``\\`` are split on separators,
    otherwise on ``.``. A dot left in the last segment (``foo/bar.lua``)
    drops everything after it.

    Raises:
        InvalidModuleName: On traversal attempts or an empty name.
    """
    if ".." in name or name.startswith(("/", "\\")):
        raise InvalidModuleName(name, "explicit relative paths are not allowed")

    if _SEPARATORS.search(name):
        raw_parts = _SEPARATORS.split(name)
    else:
        raw_parts = name.split(".")
    parts = [p for p in raw_parts if p]
    if not parts:
        raise InvalidModuleName(name, "empty module name")

    if "." in parts[-1]:
        parts[-1] = parts[-1].rsplit(".", 1)[0]

    return ModulePath(name=name, parts=tuple(parts))


@dataclass(frozen=True)
class LoaderContext:
    """Snapshot of what a strategy may look at: the active set and the caller's position."""
    packages: Mapping[str, Package]
    current_mod: str = ""
    current_folder: str = ""


@dataclass(frozen=True)
class ResolvedModule:
    mod: str
    folder: str
    file: str
    source: bytes

    @property
    def resolved_path(self) -> str:
        """Cache key and chunk name, ``__mod__/path.lua``."""
        return f"__{self.mod}__/{self.file}"


@dataclass(frozen=True)
class AbsoluteModuleTargetMissing:
    """An absolute name matched a mod that is not active or lacks the file.

    Not an error by itself: the loader logs it and tries the next strategy.
    """
    mod: str
    file: str
    mod_missing: bool

    def describe(self) -> str:
        kind = "mod" if self.mod_missing else "file"
        return f"module specified absolute path but {kind} not found: {self.mod} [{self.file}]"


StrategyResult = Union[ResolvedModule, AbsoluteModuleTargetMissing, None]
Strategy = Callable[[ModulePath, LoaderContext], StrategyResult]


def _join(*segments: str) -> str:
    return "/".join(s for s in segments if s)


def _read(packages: Mapping[str, Package], mod: str, file: str) -> Optional[bytes]:
    package = packages.get(mod)
    if package is None:
        return None
    try:
        return package.read_file(file)
    except PathDoesNotExist:
        return None


def _absolute_target(first: str) -> Optional[str]:
    if len(first) < 5 or not (first.startswith("__") and first.endswith("__")):
        return None
    return first[2:-2]


def resolve_absolute(path: ModulePath, ctx: LoaderContext) -> StrategyResult:
    """``__mod__/a/b`` resolves to ``a/b.lua`` inside ``mod``, whatever the context."""
    if len(path.parts) < 2:
        return None
    target = _absolute_target(path.parts[0])
    if target is None:
        return None

    file = _join(*path.parts[1:]) + LUA_SUFFIX
    if target not in ctx.packages:
        return AbsoluteModuleTargetMissing(mod=target, file=file, mod_missing=True)
    source = _read(ctx.packages, target, file)
    if source is None:
        return AbsoluteModuleTargetMissing(mod=target, file=file, mod_missing=False)
    return ResolvedModule(mod=target, folder=_join(*path.parts[1:-1]), file=file, source=source)


def resolve_relative(path: ModulePath, ctx: LoaderContext) -> StrategyResult:
    """Resolve against the folder of the module currently executing."""
    folder = _join(ctx.current_folder, *path.folder_parts)
    file = _join(folder, path.stem) + LUA_SUFFIX
    source = _read(ctx.packages, ctx.current_mod, file)
    if source is None:
        return None
    return ResolvedModule(mod=ctx.current_mod, folder=folder, file=file, source=source)


def resolve_root(path: ModulePath, ctx: LoaderContext) -> StrategyResult:
    """Resolve from the root of the current mod, ignoring the current folder."""
    folder = _join(*path.folder_parts)
    file = _join(*path.parts) + LUA_SUFFIX
    source = _read(ctx.packages, ctx.current_mod, file)
    if source is None:
        return None
    return ResolvedModule(mod=ctx.current_mod, folder=folder, file=file, source=source)


def resolve_lualib(path: ModulePath, ctx: LoaderContext) -> StrategyResult:
    """Resolve under ``lualib/`` of the ``core`` mod, the shared script library."""
    folder = _join(Constants.LUALIB_FOLDER, *path.folder_parts)
    file = _join(folder, path.stem) + LUA_SUFFIX
    source = _read(ctx.packages, Constants.CORE_MOD, file)
    if source is None:
        return None
    return ResolvedModule(mod=Constants.CORE_MOD, folder=folder, file=file, source=source)


STRATEGIES: Tuple[Strategy, ...] = (
    resolve_absolute,
    resolve_relative,
    resolve_root,
    resolve_lualib,
)
