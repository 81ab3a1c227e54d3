"""Errors raised by the sandboxed module loader and the data loader."""

from __future__ import annotations

from typing import Optional


class LoaderError(Exception):
    """Base class for ``require`` failures."""


class InvalidModuleName(LoaderError):
    """The module name tries to escape the package (``..``, leading separator) or is empty."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"{reason}! {name}")


class ModuleNotFound(LoaderError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"module not found: {name}")


class ModuleLoadError(LoaderError):
    """A module file was found but could not be compiled, or requires itself while loading."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"error loading module {path}: {reason}")


class DataLoaderError(Exception):
    """Base class for stage execution failures."""


class EntryScriptMissing(DataLoaderError):
    def __init__(self, mod: str, file: str):
        self.mod = mod
        self.file = file
        super().__init__(f"__{mod}__/{file} not found")


class ScriptError(DataLoaderError):
    """A mod's stage script failed; wraps the Lua or loader error."""

    def __init__(self, mod: str, file: str, cause: BaseException):
        self.mod = mod
        self.file = file
        self.cause = cause
        super().__init__(f"__{mod}__/{file}: {cause}")


class DataTableMissing(DataLoaderError):
    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        message = "global 'data.raw' is not a table after running the data loader script"
        super().__init__(f"{message} ({detail})" if detail else message)
