"""Sandboxed execution of mod settings and data stage scripts.

- module_path.py: module name parsing and the four resolution strategies
- loader.py: the custom ``require`` and its per-interpreter module cache
- helpers.py / expression.py: the ``helpers`` global
- runtime.py: sandboxed interpreter and value conversion
- data_loader.py: stage execution, startup settings, data dumps
- driver.py: per-target builds, sequential or on a thread pool
"""

from .data_loader import DataLoader  # noqa: F401
from .driver import BuildError, BuildResult, MissingModsError, build_many, build_target  # noqa: F401
from .errors import (  # noqa: F401
    DataLoaderError,
    EntryScriptMissing,
    InvalidModuleName,
    LoaderError,
    ModuleLoadError,
    ModuleNotFound,
    ScriptError,
)
from .loader import ModuleLoader  # noqa: F401
