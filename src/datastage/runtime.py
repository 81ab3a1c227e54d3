"""Sandboxed Lua interpreter construction and Lua <-> Python value conversion.

One runtime is created per build and never shared across threads. The
sandbox removes the parts of the standard library that touch the real
filesystem or process (``io``, ``dofile``, ``loadfile``, ``debug``, most of
``os``), forces ``load`` into text mode, and denies attribute access on any
Python object reachable from Lua.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping

from lupa import LuaRuntime, lua_type

try:
    from ..mods.info import FeatureFlags
    from ..mods.package import Package
except ImportError:
    from mods.info import FeatureFlags
    from mods.package import Package

logger = logging.getLogger(__name__)

# Script output (log/print) goes here, at DEBUG
lua_logger = logging.getLogger("datastage.lua")

REMOVED_GLOBALS = ("io", "dofile", "loadfile", "debug", "python", "require")
KEPT_OS_FUNCTIONS = ("time", "clock", "date", "difftime", "getenv")
MAX_TABLE_DEPTH = 256

_TEXT_ONLY_LOAD = """
local load = load
return function(chunk, chunkname, mode, ...)
  if select("#", ...) > 0 then
    return load(chunk, chunkname, "t", ...)
  end
  return load(chunk, chunkname, "t")
end
"""


def _deny_attribute_access(obj, attr_name, is_setting):
    raise AttributeError(f"access to Python attribute '{attr_name}' is not allowed")


def create_runtime(full_debug: bool = False) -> LuaRuntime:
    """Create a fresh sandboxed interpreter.

    ``full_debug`` keeps the ``debug`` library for troubleshooting mods; the
    rest of the sandbox stays in place.
    """
    lua = LuaRuntime(
        register_eval=False,
        register_builtins=False,
        unpack_returned_tuples=True,
        attribute_filter=_deny_attribute_access,
    )
    g = lua.globals()
    for name in REMOVED_GLOBALS:
        if full_debug and name == "debug":
            continue
        g[name] = None

    os_table = g.os
    restricted_os = lua.table()
    for name in KEPT_OS_FUNCTIONS:
        restricted_os[name] = os_table[name]
    g.os = restricted_os

    g.load = lua.execute(_TEXT_ONLY_LOAD)
    return lua


def lua_to_python(value: Any, _depth: int = 0) -> Any:
    """Convert a Lua value to plain Python data.

    Tables whose keys are exactly ``1..n`` become lists, other tables dicts;
    an empty table is an empty dict. Functions, threads and userdata cannot
    be converted.

    Raises:
        TypeError: On unconvertible values.
        ValueError: On tables nested deeper than MAX_TABLE_DEPTH, which
            includes self-referencing ones.
    """
    kind = lua_type(value)
    if kind is None:
        return value
    if kind != "table":
        raise TypeError(f"cannot convert Lua {kind} to a Python value")

    if _depth > MAX_TABLE_DEPTH:
        raise ValueError(f"Lua table nested deeper than {MAX_TABLE_DEPTH} levels")

    items = list(value.items())
    keys = [k for k, _ in items]
    if items and all(isinstance(k, int) and not isinstance(k, bool) for k in keys) \
            and sorted(keys) == list(range(1, len(keys) + 1)):
        return [lua_to_python(v, _depth + 1) for _, v in sorted(items, key=lambda kv: kv[0])]
    return {k: lua_to_python(v, _depth + 1) for k, v in items}


def python_to_lua(lua: LuaRuntime, value: Any) -> Any:
    """Convert plain Python data (dicts, lists, scalars) to Lua values.

    ``None`` entries are skipped, as a Lua table cannot hold nil.
    """
    if isinstance(value, Mapping):
        table = lua.table()
        for key, item in value.items():
            if item is not None:
                table[key] = python_to_lua(lua, item)
        return table
    if isinstance(value, (list, tuple)):
        table = lua.table()
        for index, item in enumerate(value, 1):
            if item is not None:
                table[index] = python_to_lua(lua, item)
        return table
    return value


def format_localised(value: Any) -> str:
    """Render a localised string (or any plain value) for the log."""
    kind = lua_type(value)
    if kind == "table":
        parts = []
        index = 1
        while value[index] is not None:
            parts.append(format_localised(value[index]))
            index += 1
        return "[" + ", ".join(parts) + "]"
    if kind is not None:
        return f"<{kind}>"
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _log(*values) -> None:
    lua_logger.debug("%s", "\t".join(format_localised(v) for v in values))


def _table_size(table) -> int:
    return sum(1 for _ in table.keys())


def merged_feature_flags(packages: Iterable[Package]) -> FeatureFlags:
    flags = FeatureFlags()
    for package in packages:
        flags = flags.merge(package.info.flags)
    return flags


def install_globals(lua: LuaRuntime, packages: Mapping[str, Package]) -> None:
    """Install host globals: output functions, ``table_size``, ``mods``, ``feature_flags``."""
    g = lua.globals()
    g.log = _log
    g.print = _log
    g.localised_print = _log
    g.table_size = _table_size

    mods: Dict[str, str] = {name: str(pkg.version) for name, pkg in packages.items()}
    g.mods = python_to_lua(lua, mods)
    g.feature_flags = python_to_lua(lua, merged_feature_flags(packages.values()).as_dict())
    logger.debug("Installed globals for %d active mod(s)", len(mods))


def first_result(result: Any) -> Any:
    """First value of a Lua call result (multiple returns arrive as a tuple)."""
    if isinstance(result, tuple):
        return result[0] if result else None
    return result
