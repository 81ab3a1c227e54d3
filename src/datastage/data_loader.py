"""Runs the settings and data stages of an active mod set in one interpreter."""

from __future__ import annotations

import json
import logging
import zlib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Set, Union

from lupa import LuaError, lua_type

try:
    from ..common.logging_utils import Timer, extra_context, is_debug_enabled
    from ..constants import Constants, Stage
    from ..mods.errors import ModError
    from ..mods.package import Package
except ImportError:
    from common.logging_utils import Timer, extra_context, is_debug_enabled
    from constants import Constants, Stage
    from mods.errors import ModError
    from mods.package import Package
from . import helpers
from .errors import DataTableMissing, EntryScriptMissing, LoaderError, ScriptError
from .loader import ModuleLoader
from .runtime import create_runtime, install_globals, lua_to_python

logger = logging.getLogger(__name__)


class DataLoader:
    """One interpreter with the loader, helpers and globals installed.

    ``packages`` is the active set and ``order`` its load order; every
    substage runs the mods strictly in that order. The interpreter is
    single-threaded and must stay on the thread that uses it.

    With ``dump_history`` naming a mod, every prototype that mod's entry
    scripts add to ``data.raw`` is recorded in ``history`` as
    group -> type -> name -> mod, and dropped again when it removes one.
    """

    def __init__(self, packages: Mapping[str, Package], order: Sequence[str],
                 dump_data: bool = False, dump_history: Optional[str] = None,
                 full_debug: bool = False):
        if Constants.CORE_MOD not in packages:
            raise EntryScriptMissing(Constants.CORE_MOD, Constants.DATALOADER_SCRIPT)
        self.packages = dict(packages)
        self.order = list(order)
        self.dump_data = dump_data
        self.dump_history = dump_history
        self.history: Dict[str, Dict[str, Dict[str, str]]] = {}

        self.lua = create_runtime(full_debug=full_debug)
        self.loader = ModuleLoader(self.lua, self.packages)
        self.loader.install()
        helpers.install(self.lua, helpers.ShimContext(self.lua))
        install_globals(self.lua, self.packages)

        self._run(Constants.CORE_MOD, Constants.DATALOADER_SCRIPT, required=True)

    def _run(self, mod: str, file: str, required: bool = False) -> bool:
        try:
            found = self.loader.run_file(mod, file)
        except (LuaError, LoaderError, ModError) as e:
            raise ScriptError(mod, file, e) from e
        if not found and required:
            raise EntryScriptMissing(mod, file)
        return found

    def run_stage(self, stage: Stage) -> None:
        """Run ``<stage>.lua``, ``<stage>-updates.lua`` and ``<stage>-final-fixes.lua``.

        Each substage runs every mod in load order; mods without the file
        are skipped.

        Raises:
            ScriptError: Naming the mod and file whose script failed.
        """
        for substage in Constants.SUBSTAGES:
            file = f"{stage.value}{substage}.lua"
            for mod in self.order:
                tracking = mod == self.dump_history
                before = self._prototype_names() if tracking else None
                if not self._run(mod, file):
                    continue
                logger.debug("[%s%s] completed %s", stage.value, substage, mod)
                if tracking:
                    self._record_history(mod, before, self._prototype_names())
        logger.debug("[STAGE] %s completed", stage.value)

    def _prototype_names(self) -> Dict[str, Set[str]]:
        """Prototype names per type currently in ``data.raw``."""
        names = {}
        for type_name, group in self._raw().items():
            if lua_type(group) == "table":
                names[type_name] = set(group.keys())
        return names

    def _prototype_groups(self) -> Dict[str, str]:
        """Map prototype type to its group using ``defines.prototypes`` when a script set it."""
        defines = self.lua.globals().defines
        prototypes = defines.prototypes if lua_type(defines) == "table" else None
        groups = {}
        if lua_type(prototypes) == "table":
            for group_name, types in prototypes.items():
                if lua_type(types) == "table":
                    for type_name in types.keys():
                        groups[type_name] = group_name
        return groups

    def _record_history(self, mod: str, before: Mapping[str, Set[str]],
                        after: Mapping[str, Set[str]]) -> None:
        groups = self._prototype_groups()
        for type_name in set(before) | set(after):
            old = before.get(type_name, set())
            new = after.get(type_name, set())
            if old == new:
                continue
            group = groups.get(type_name, Constants.UNGROUPED_PROTOTYPES)
            by_type = self.history.setdefault(group, {})
            creators = by_type.setdefault(type_name, {})
            for name in new - old:
                creators[name] = mod
            for name in old - new:
                creators.pop(name, None)
            if not creators:
                del by_type[type_name]
            if not by_type:
                del self.history[group]

    def _raw(self):
        data = self.lua.globals().data
        raw = data.raw if lua_type(data) == "table" else None
        if lua_type(raw) != "table":
            raise DataTableMissing(f"data is a {lua_type(data) or type(data).__name__}")
        return raw

    def build_startup_settings(self):
        """Build ``settings.startup`` from the setting prototypes in ``data.raw``.

        Only settings with ``setting_type == "startup"`` are included; a
        hidden bool setting takes its ``forced_value`` when one is given.
        """
        raw = self._raw()
        startup = self.lua.table()
        for setting_type in Constants.SETTING_TYPES:
            group = raw[setting_type]
            if lua_type(group) != "table":
                continue
            for name, setting in group.items():
                if lua_type(setting) != "table" or setting.setting_type != "startup":
                    continue
                value = setting.default_value
                if setting_type == "bool-setting" and setting.hidden and setting.forced_value is not None:
                    value = setting.forced_value
                startup[name] = self.lua.table(value=value)

        settings = self.lua.table(startup=startup)
        self.lua.globals().settings = settings
        return settings

    def load(self, output_dir: Optional[Union[str, Path]] = None,
             out_name: Optional[str] = None) -> "DataLoader":
        """Run the settings stage, build startup settings, run the data stage.

        With ``dump_data`` set, ``data.raw`` is written to
        ``<output_dir>/<out_name>.dump.json.deflate``; with ``dump_history``
        set, the prototype history goes to ``<out_name>.history.json``.
        """
        with Timer() as timer:
            self.run_stage(Stage.SETTINGS)
            self.build_startup_settings()
            self.run_stage(Stage.DATA)
        logger.debug("data loaded in %d ms", timer.duration_ms())

        output_dir = output_dir or Constants.DEFAULT_OUTPUT_DIR
        out_name = out_name or self.order[-1]
        if self.dump_data:
            path = self.dump(output_dir, out_name)
            if is_debug_enabled(logger):
                logger.debug(
                    "Dumped data.raw",
                    extra=extra_context(event="dump", component="data_loader", path=str(path)),
                )
        if self.dump_history is not None:
            self.write_history(output_dir, out_name)
        return self

    def get_raw(self) -> Dict[str, Any]:
        """``data.raw`` as plain Python data."""
        return lua_to_python(self._raw())

    def dump(self, output_dir: Union[str, Path], out_name: str) -> Path:
        """Write ``data.raw`` as zlib-compressed JSON and return the file path."""
        path = Path(output_dir) / f"{out_name}{Constants.DUMP_SUFFIX}"
        payload = json.dumps(self.get_raw()).encode("utf-8")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(zlib.compress(payload, 9))
        logger.info("Wrote %s", path)
        return path

    def write_history(self, output_dir: Union[str, Path], out_name: str) -> Path:
        """Write the prototype history as plain JSON and return the file path."""
        path = Path(output_dir) / f"{out_name}{Constants.HISTORY_SUFFIX}"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.history, sort_keys=True), encoding="utf-8")
        logger.info("Wrote %s", path)
        return path
