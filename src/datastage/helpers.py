"""The ``helpers`` global: host utility functions available during the data stage.

Deterministic helpers are fully implemented. Helpers that would write files
or send packets exist as no-ops so scripts calling them keep running.
Helpers that need a running game (``recv_udp``, sound/sprite path checks,
map exchange strings, profilers) are deliberately absent, so calling one
fails loudly in the script instead of returning made-up data.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import zlib
from dataclasses import dataclass
from functools import partial
from typing import Any, Optional

from lupa import LuaRuntime

try:
    from ..constants import Constants
    from ..versioning.models import Version
except ImportError:
    from constants import Constants
    from versioning.models import Version
from .expression import evaluate
from .runtime import lua_to_python, python_to_lua

logger = logging.getLogger(__name__)

DIRECTIONS = (
    "North",
    "NorthNorthEast",
    "NorthEast",
    "EastNorthEast",
    "East",
    "EastSouthEast",
    "SouthEast",
    "SouthSouthEast",
    "South",
    "SouthSouthWest",
    "SouthWest",
    "WestSouthWest",
    "West",
    "WestNorthWest",
    "NorthWest",
    "NorthNorthWest",
)


@dataclass(frozen=True)
class ShimContext:
    """What helper functions may use; passed explicitly instead of read from the VM."""
    lua: LuaRuntime
    game_version: str = Constants.GAME_VERSION


def table_to_json(ctx: ShimContext, table: Any) -> str:
    return json.dumps(lua_to_python(table), separators=(",", ":"))


def json_to_table(ctx: ShimContext, text: str) -> Any:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    return python_to_lua(ctx.lua, data)


def encode_string(ctx: ShimContext, text: str) -> str:
    """Deflate (zlib, level 9) then base64-encode."""
    compressed = zlib.compress(text.encode("utf-8"), 9)
    return base64.b64encode(compressed).decode("ascii")


def decode_string(ctx: ShimContext, text: str) -> Optional[str]:
    """Inverse of ``encode_string``; returns nil for anything undecodable."""
    try:
        compressed = base64.b64decode(text, validate=True)
        return zlib.decompress(compressed).decode("utf-8")
    except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError):
        return None


def direction_to_string(ctx: ShimContext, direction: Any) -> str:
    if isinstance(direction, float) and direction.is_integer():
        direction = int(direction)
    if not isinstance(direction, int) or isinstance(direction, bool) \
            or not 0 <= direction < len(DIRECTIONS):
        raise ValueError(f"Invalid direction: {direction}")
    return DIRECTIONS[direction]


def evaluate_expression(ctx: ShimContext, expression: str, variables: Any = None) -> float:
    values = lua_to_python(variables) if variables is not None else {}
    if not isinstance(values, dict):
        # an empty Lua table converts to {}, a 1..n table to a list: neither names variables
        values = {}
    return evaluate(expression, values)


def compare_versions(ctx: ShimContext, first: str, second: str) -> int:
    """-1, 0 or 1 as ``first`` is older, equal or newer than ``second``."""
    try:
        a = Version.parse(first)
        b = Version.parse(second)
    except ValueError as e:
        raise ValueError(f"Invalid version: {e}") from e
    return (a > b) - (a < b)


def write_file(ctx: ShimContext, filename: str, data: Any = None, append: Any = None) -> None:
    logger.debug("helpers.write_file(%s) ignored", filename)


def send_udp(ctx: ShimContext, port: Any, data: Any = None) -> None:
    logger.debug("helpers.send_udp(%s) ignored", port)


def remove_path(ctx: ShimContext, path: str) -> None:
    logger.debug("helpers.remove_path(%s) ignored", path)


HELPER_FUNCTIONS = {
    "table_to_json": table_to_json,
    "json_to_table": json_to_table,
    "write_file": write_file,
    "send_udp": send_udp,
    "remove_path": remove_path,
    "direction_to_string": direction_to_string,
    "evaluate_expression": evaluate_expression,
    "encode_string": encode_string,
    "decode_string": decode_string,
    "compare_versions": compare_versions,
}


def install(lua: LuaRuntime, ctx: Optional[ShimContext] = None) -> None:
    """Set the ``helpers`` global of ``lua``."""
    ctx = ctx or ShimContext(lua)
    table = lua.table()
    for name, func in HELPER_FUNCTIONS.items():
        table[name] = partial(func, ctx)
    table["game_version"] = ctx.game_version
    lua.globals().helpers = table
