"""Data models for mod versions and dependency constraints."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

import semantic_version

try:
    from ..constants import Constants
except ImportError:
    from constants import Constants


@dataclass(frozen=True, order=True)
class Version:
    """Ordered (major, minor, patch) triple.

    Components are limited to 0..65535, matching the host's on-disk format.
    """
    major: int
    minor: int
    patch: int = 0

    def __post_init__(self) -> None:
        for component in (self.major, self.minor, self.patch):
            if not 0 <= component <= Constants.VERSION_COMPONENT_MAX:
                raise ValueError(f"Version component out of range: {component}")

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse "a.b" or "a.b.c"; raises ValueError on anything else."""
        parts = str(text).strip().split(".")
        if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
            raise ValueError(f"Expected 'a.b' or 'a.b.c' but '{text}' was given")
        return cls(*(int(p) for p in parts))

    def to_semver(self) -> semantic_version.Version:
        """Return the semantic_version equivalent used for spec matching."""
        return semantic_version.Version(major=self.major, minor=self.minor, patch=self.patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


class VersionOp(Enum):
    """Comparator attached to a dependency."""
    ANY = ""
    EXACTLY = "="
    HIGHER_OR_EQUAL = ">="
    LOWER_OR_EQUAL = "<="
    HIGHER = ">"
    LOWER = "<"


class DependencyKind(Enum):
    """Dependency modifier prefix as written in metadata."""
    REQUIRED = ""
    OPTIONAL = "?"
    HIDDEN_OPTIONAL = "(?)"
    LAZY = "~"
    INCOMPATIBLE = "!"


# SimpleSpec spells exact matches with a double equals sign
_SPEC_OPERATORS = {
    VersionOp.EXACTLY: "==",
    VersionOp.HIGHER_OR_EQUAL: ">=",
    VersionOp.LOWER_OR_EQUAL: "<=",
    VersionOp.HIGHER: ">",
    VersionOp.LOWER: "<",
}


@dataclass(frozen=True)
class Dependency:
    """A constraint on another mod, declared in metadata or by a caller."""
    name: str
    kind: DependencyKind = DependencyKind.REQUIRED
    op: VersionOp = VersionOp.ANY
    version: Optional[Version] = None

    def __post_init__(self) -> None:
        if (self.op is VersionOp.ANY) != (self.version is None):
            raise ValueError(f"Comparator and version must be given together for {self.name}")

    @property
    def is_required(self) -> bool:
        """Required and lazy dependencies must be present."""
        return self.kind in (DependencyKind.REQUIRED, DependencyKind.LAZY)

    @property
    def is_optional(self) -> bool:
        return self.kind in (DependencyKind.OPTIONAL, DependencyKind.HIDDEN_OPTIONAL)

    @property
    def is_incompatible(self) -> bool:
        return self.kind is DependencyKind.INCOMPATIBLE

    @property
    def affects_load_order(self) -> bool:
        """Lazy and incompatible dependencies never order the load."""
        return self.kind in (
            DependencyKind.REQUIRED,
            DependencyKind.OPTIONAL,
            DependencyKind.HIDDEN_OPTIONAL,
        )

    def spec(self) -> Optional[semantic_version.SimpleSpec]:
        """Return the SimpleSpec for the version constraint, None for ANY."""
        if self.op is VersionOp.ANY:
            return None
        return semantic_version.SimpleSpec(f"{_SPEC_OPERATORS[self.op]}{self.version}")

    def allows(self, version: Version) -> bool:
        """Check whether ``version`` satisfies the version constraint."""
        spec = self.spec()
        if spec is None:
            return True
        return spec.match(version.to_semver())

    def describe_constraint(self) -> str:
        """Constraint part only, e.g. ">= 1.0.0" or "any"."""
        if self.op is VersionOp.ANY:
            return "any"
        return f"{self.op.value} {self.version}"

    def __str__(self) -> str:
        prefix = f"{self.kind.value} " if self.kind.value else ""
        suffix = f" {self.op.value} {self.version}" if self.version is not None else ""
        return f"{prefix}{self.name}{suffix}"


@dataclass(frozen=True)
class ResolutionRequest:
    """Root requirements handed to the dependency resolver."""
    roots: Tuple[Dependency, ...]

    @classmethod
    def of(cls, names: Iterable[str]) -> "ResolutionRequest":
        """Request every name with no version constraint."""
        return cls(tuple(Dependency(name) for name in names))

    @classmethod
    def for_target(cls, target: str) -> "ResolutionRequest":
        """Conventional request for building one target: {target: Any, base: Any}."""
        names = [target]
        if target != Constants.BASE_MOD:
            names.append(Constants.BASE_MOD)
        return cls.of(names)
