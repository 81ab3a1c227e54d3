"""Errors raised while resolving a mod set and its load order."""

from __future__ import annotations

from typing import Iterable, Tuple


class ResolutionError(Exception):
    """Base class for dependency resolution failures."""

    mod: str = ""


class UnsatisfiableVersion(ResolutionError):
    """No available version of ``mod`` satisfies every requirer at once."""

    def __init__(self, mod: str, requirers: Iterable[str]):
        self.mod = mod
        self.requirers: Tuple[str, ...] = tuple(requirers)
        super().__init__(
            f"no version of {mod} satisfies all requirements: {', '.join(self.requirers)}"
        )


class MissingRequiredMod(ResolutionError):
    def __init__(self, mod: str, requirer: str):
        self.mod = mod
        self.requirer = requirer
        super().__init__(f"{requirer} requires {mod}, which is not available")


class IncompatibleModPresent(ResolutionError):
    def __init__(self, mod: str, other: str):
        self.mod = mod
        self.other = other
        super().__init__(f"{other} is incompatible with {mod}, but both are required")


class DependencyCycle(ResolutionError):
    def __init__(self, names: Iterable[str]):
        self.names: Tuple[str, ...] = tuple(sorted(names))
        self.mod = self.names[0] if self.names else ""
        super().__init__(f"dependency cycle between: {', '.join(self.names)}")
