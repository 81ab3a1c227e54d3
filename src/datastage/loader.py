"""Sandboxed ``require`` for one Lua interpreter.

The loader owns the interpreter's module state: the mod and folder of the
module currently executing, and the ``package.loaded`` cache keyed by
resolved path (``__mod__/path.lua``). Resolution itself lives in
``module_path``; this module executes what a strategy found.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Set

from lupa import LuaRuntime

try:
    from ..common.logging_utils import extra_context, is_debug_enabled
    from ..mods.errors import PathDoesNotExist
    from ..mods.package import Package
except ImportError:
    from common.logging_utils import extra_context, is_debug_enabled
    from mods.errors import PathDoesNotExist
    from mods.package import Package
from .errors import ModuleLoadError, ModuleNotFound
from .module_path import (
    STRATEGIES,
    AbsoluteModuleTargetMissing,
    LoaderContext,
    ModulePath,
    ResolvedModule,
    parse_module_name,
)
from .runtime import first_result

logger = logging.getLogger(__name__)

UTF8_BOM = b"\xef\xbb\xbf"


def strip_bom(source: bytes) -> bytes:
    return source[len(UTF8_BOM):] if source.startswith(UTF8_BOM) else source


class ModuleLoader:
    """Custom ``require`` bound to one interpreter and one active mod set.

    Not thread-safe; an interpreter and its loader belong to a single build.
    """

    def __init__(self, lua: LuaRuntime, packages: Mapping[str, Package]):
        self.lua = lua
        self.packages = dict(packages)
        self.current_mod = ""
        self.current_folder = ""
        self.diagnostics: List[AbsoluteModuleTargetMissing] = []
        self._loading: Set[str] = set()
        self._load = None

    def install(self) -> None:
        """Register ``require`` and an empty ``package.loaded`` in the interpreter."""
        g = self.lua.globals()
        self._load = g.load
        g.package = self.lua.table(loaded=self.lua.table())
        g.require = self.require

    @property
    def loaded(self):
        """The ``package.loaded`` table of the interpreter."""
        return self.lua.globals().package.loaded

    def context(self) -> LoaderContext:
        return LoaderContext(self.packages, self.current_mod, self.current_folder)

    @contextmanager
    def entered(self, mod: str, folder: str) -> Iterator[None]:
        """Switch the current mod/folder for the duration of a module body."""
        saved = (self.current_mod, self.current_folder)
        self.current_mod, self.current_folder = mod, folder
        try:
            yield
        finally:
            self.current_mod, self.current_folder = saved

    def resolve(self, path: ModulePath) -> Optional[ResolvedModule]:
        """Try each strategy in order; absolute-path misses are logged and skipped."""
        ctx = self.context()
        for strategy in STRATEGIES:
            result = strategy(path, ctx)
            if isinstance(result, AbsoluteModuleTargetMissing):
                logger.error("[!!!!!] %s", result.describe())
                self.diagnostics.append(result)
                continue
            if result is not None:
                return result
        return None

    def require(self, name: str) -> Any:
        """Lua-facing ``require(name)``.

        Raises:
            InvalidModuleName: The name tries to leave the package.
            ModuleNotFound: No strategy found a file.
            ModuleLoadError: The file does not compile, or requires itself.
        """
        path = parse_module_name(name)
        module = self.resolve(path)
        if module is None:
            raise ModuleNotFound(name)

        key = module.resolved_path
        loaded = self.loaded
        cached = loaded[key]
        if cached is not None:
            return cached
        if key in self._loading:
            raise ModuleLoadError(key, "loop while loading module")

        if is_debug_enabled(logger):
            logger.debug(
                "Loading module",
                extra=extra_context(
                    event="require",
                    component="loader",
                    module_name=name,
                    resolved=key,
                    requirer=f"__{self.current_mod}__/{self.current_folder}",
                ),
            )

        self._loading.add(key)
        try:
            with self.entered(module.mod, module.folder):
                result = first_result(self._compile(module.source, key)(name))
        finally:
            self._loading.discard(key)

        value = True if result is None else result
        loaded[key] = value
        return value

    def run_file(self, mod: str, file: str) -> bool:
        """Execute an entry script of ``mod`` with the loader context set to its folder.

        Entry scripts bypass the module cache. Returns False when the mod
        has no such file.

        Raises:
            ModuleNotFound: When ``mod`` is not in the active set.
            ModuleLoadError: When the file does not compile.
        """
        package = self.packages.get(mod)
        if package is None:
            raise ModuleNotFound(f"__{mod}__/{file}")
        try:
            source = package.read_file(file)
        except PathDoesNotExist:
            return False

        chunk_name = f"__{mod}__/{file}"
        folder = file.rsplit("/", 1)[0] if "/" in file else ""
        with self.entered(mod, folder):
            self._compile(source, chunk_name)("")
        return True

    def _compile(self, source: bytes, chunk_name: str):
        loaded = self._load(strip_bom(source), "@" + chunk_name, "t")
        if isinstance(loaded, tuple):
            chunk, message = (tuple(loaded) + (None, None))[:2]
        else:
            chunk, message = loaded, None
        if chunk is None:
            raise ModuleLoadError(chunk_name, str(message))
        return chunk
