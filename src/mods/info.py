"""Mod metadata (info.json) model and validation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator

try:
    from ..constants import Constants
    from ..versioning.models import Dependency, Version
    from ..versioning.parser import parse_dependency
except ImportError:
    from constants import Constants
    from versioning.models import Dependency, Version
    from versioning.parser import parse_dependency
from .errors import InvalidMetadata

VERSION_PATTERN = r"^\d+\.\d+(\.\d+)?$"

INFO_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["name", "version"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "version": {"type": "string", "pattern": VERSION_PATTERN},
        "title": {"type": "string"},
        "author": {"type": "string"},
        "contact": {"type": "string"},
        "homepage": {"type": "string"},
        "description": {"type": "string"},
        "factorio_version": {"type": "string"},
        "dependencies": {"type": "array", "items": {"type": "string"}},
    },
}

_VALIDATOR = Draft7Validator(INFO_SCHEMA)


@dataclass(frozen=True)
class FeatureFlags:
    """Engine features a mod requires, from the ``*_required`` metadata keys."""
    quality: bool = False
    rail_bridges: bool = False
    space_travel: bool = False
    spoiling: bool = False
    freezing: bool = False
    segmented_units: bool = False
    expansion_shaders: bool = False

    @classmethod
    def from_metadata(cls, data: Dict[str, Any]) -> "FeatureFlags":
        return cls(**{f.name: bool(data.get(f"{f.name}_required", False)) for f in fields(cls)})

    def merge(self, other: "FeatureFlags") -> "FeatureFlags":
        """Union of both flag sets."""
        return FeatureFlags(**{
            f.name: getattr(self, f.name) or getattr(other, f.name) for f in fields(self)
        })

    def as_dict(self) -> Dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class ModInfo:
    """Parsed, immutable contents of a package's info.json."""
    name: str
    version: Version
    title: str
    author: str = ""
    dependencies: Tuple[Dependency, ...] = ()
    factorio_version: Optional[str] = None
    description: Optional[str] = None
    contact: Optional[str] = None
    homepage: Optional[str] = None
    flags: FeatureFlags = field(default_factory=FeatureFlags)

    @classmethod
    def from_dict(cls, data: Any, label: str) -> "ModInfo":
        """Validate and convert decoded metadata.

        Args:
            data: Decoded info.json payload.
            label: Name used in error messages (usually the expected mod name).

        Raises:
            InvalidMetadata: On schema violations or unparsable dependencies.
        """
        errs = sorted(_VALIDATOR.iter_errors(data), key=lambda e: list(e.path))
        if errs:
            first = errs[0]
            path = "/".join(str(p) for p in first.path)
            raise InvalidMetadata(label, f"at '{path}': {first.message}")

        raw_deps = data.get("dependencies", Constants.DEFAULT_DEPENDENCIES)
        try:
            dependencies = tuple(parse_dependency(d) for d in raw_deps)
            version = Version.parse(data["version"])
        except ValueError as e:
            raise InvalidMetadata(label, str(e)) from e

        return cls(
            name=data["name"],
            version=version,
            title=data.get("title", data["name"]),
            author=data.get("author", ""),
            dependencies=dependencies,
            factorio_version=data.get("factorio_version"),
            description=data.get("description"),
            contact=data.get("contact"),
            homepage=data.get("homepage"),
            flags=FeatureFlags.from_metadata(data),
        )

    @classmethod
    def from_bytes(cls, raw: bytes, label: str) -> "ModInfo":
        """Decode info.json bytes (a leading UTF-8 BOM is tolerated)."""
        return cls.from_dict(decode_metadata(raw, label), label)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the info.json shape."""
        out: Dict[str, Any] = {
            "name": self.name,
            "version": str(self.version),
            "title": self.title,
            "author": self.author,
            "dependencies": [str(d) for d in self.dependencies],
        }
        for key in ("factorio_version", "description", "contact", "homepage"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        for flag, enabled in self.flags.as_dict().items():
            if enabled:
                out[f"{flag}_required"] = True
        return out


def decode_metadata(raw: bytes, label: str) -> Dict[str, Any]:
    """Decode info.json bytes into a dict without schema validation."""
    try:
        data = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidMetadata(label, str(e)) from e
    if not isinstance(data, dict):
        raise InvalidMetadata(label, "top-level value is not an object")
    return data
