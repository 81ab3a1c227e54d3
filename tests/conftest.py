"""Shared fixtures: real mod directories and zip archives on disk."""

import json
import zipfile
from pathlib import Path
from typing import Dict, Optional

import pytest

DATALOADER_LUA = """
data = { raw = {} }
function data:extend(prototypes)
  for _, proto in ipairs(prototypes) do
    self.raw[proto.type] = self.raw[proto.type] or {}
    self.raw[proto.type][proto.name] = proto
  end
end
"""


def info_json(name: str, version: str, dependencies=None, **extra) -> Dict:
    """info.json payload; dependencies=None leaves the key out."""
    info = {"name": name, "version": version, "title": name, "author": "tests"}
    if dependencies is not None:
        info["dependencies"] = list(dependencies)
    info.update(extra)
    return info


def write_mod_dir(base: Path, folder: str, info: Optional[Dict],
                  files: Optional[Dict[str, str]] = None) -> Path:
    """Create an unpacked mod folder ``base/folder``."""
    root = base / folder
    root.mkdir(parents=True, exist_ok=True)
    if info is not None:
        (root / "info.json").write_text(json.dumps(info), encoding="utf-8")
    for rel, content in (files or {}).items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


def write_mod_zip(base: Path, filename: str, folder: str, info: Optional[Dict],
                  files: Optional[Dict[str, str]] = None) -> Path:
    """Create ``base/filename`` holding everything under one top-level ``folder``."""
    path = base / filename
    base.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        if info is not None:
            zf.writestr(f"{folder}/info.json", json.dumps(info))
        for rel, content in (files or {}).items():
            zf.writestr(f"{folder}/{rel}", content)
    return path


@pytest.fixture
def data_dir(tmp_path):
    """Host data directory with ``core`` (dataloader script) and ``base`` 1.0.0."""
    root = tmp_path / "data"
    write_mod_dir(root, "core", info_json("core", "1.0.0"), {
        "lualib/dataloader.lua": DATALOADER_LUA,
        "lualib/util.lua": "return { answer = 42 }\n",
    })
    write_mod_dir(root, "base", info_json("base", "1.0.0", dependencies=[]), {
        "data.lua": 'data:extend{{ type = "item", name = "iron-plate", stack_size = 100 }}\n',
    })
    return root


@pytest.fixture
def mods_dir(tmp_path):
    root = tmp_path / "mods"
    root.mkdir()
    return root
