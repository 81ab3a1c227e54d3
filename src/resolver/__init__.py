"""Dependency resolution for mod sets.

- dependency_resolver.py: closure over declared dependencies and load order
- errors.py: resolution failure taxonomy
"""

from .dependency_resolver import (  # noqa: F401
    ROOT_REQUIRER,
    DependencyResolver,
    Resolution,
    build_order_graph,
    load_order,
)
from .errors import (  # noqa: F401
    DependencyCycle,
    IncompatibleModPresent,
    MissingRequiredMod,
    ResolutionError,
    UnsatisfiableVersion,
)

__all__ = [
    "ROOT_REQUIRER",
    "DependencyResolver",
    "Resolution",
    "build_order_graph",
    "load_order",
    "DependencyCycle",
    "IncompatibleModPresent",
    "MissingRequiredMod",
    "ResolutionError",
    "UnsatisfiableVersion",
]
