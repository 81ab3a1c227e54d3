"""Tests for running the settings and data stages."""

import json
import zlib

import pytest

from conftest import info_json, write_mod_dir
from src.datastage.data_loader import DataLoader
from src.datastage.errors import DataTableMissing, EntryScriptMissing, ModuleNotFound, ScriptError
from src.mods.package import Package
from src.mods.registry import ModRegistry

TRACE = "trace = trace or {}; table.insert(trace, '%s')\n"

FOO_FILES = {
    "settings.lua": TRACE % "foo:settings" + """
data:extend{
  {type = "bool-setting", name = "foo-enabled", setting_type = "startup", default_value = true},
  {type = "bool-setting", name = "foo-hidden", setting_type = "startup", default_value = true,
   hidden = true, forced_value = false},
  {type = "int-setting", name = "foo-count", setting_type = "startup", default_value = 5},
  {type = "int-setting", name = "foo-runtime", setting_type = "runtime-global", default_value = 1},
}
""",
    "data.lua": TRACE % "foo:data" + """
data:extend{{
  type = "item",
  name = "foo-gear",
  stack_size = settings.startup["foo-count"].value,
  enabled = settings.startup["foo-hidden"].value,
}}
seen_version = mods["foo"]
sandboxed = io == nil and os.execute == nil and helpers ~= nil
""",
    "data-updates.lua": TRACE % "foo:data-updates"
    + 'data.raw.item["iron-plate"].stack_size = 200\n',
    "data-final-fixes.lua": TRACE % "foo:data-final-fixes",
}


def make_loader(mods_dir, data_dir, names, dump_data=False):
    registry = ModRegistry.discover(mods_dir, data_dir)
    assert registry.enable_set(names) == {}
    active, order = registry.active_with_order()
    return DataLoader(active, order, dump_data=dump_data)


@pytest.fixture
def foo_mods(mods_dir, data_dir):
    write_mod_dir(mods_dir, "foo", info_json("foo", "1.0.0", ["base"]), FOO_FILES)
    (data_dir / "base" / "data-updates.lua").write_text(TRACE % "base:data-updates")
    return mods_dir


class TestStages:
    """Substage and mod ordering, settings and globals."""

    def test_substages_run_in_order(self, foo_mods, data_dir):
        loader = make_loader(foo_mods, data_dir, ["base", "foo"]).load()
        table = loader.lua.globals().trace
        trace = [table[i] for i in range(1, len(table) + 1)]
        assert trace == [
            "foo:settings",
            "foo:data",
            "base:data-updates",
            "foo:data-updates",
            "foo:data-final-fixes",
        ]

    def test_startup_settings(self, foo_mods, data_dir):
        loader = make_loader(foo_mods, data_dir, ["base", "foo"]).load()
        startup = loader.lua.globals().settings.startup
        assert startup["foo-enabled"].value is True
        assert startup["foo-hidden"].value is False
        assert startup["foo-count"].value == 5
        assert startup["foo-runtime"] is None

    def test_raw_reflects_updates(self, foo_mods, data_dir):
        raw = make_loader(foo_mods, data_dir, ["base", "foo"]).load().get_raw()
        assert raw["item"]["iron-plate"]["stack_size"] == 200
        assert raw["item"]["foo-gear"] == {"type": "item", "name": "foo-gear", "stack_size": 5, "enabled": False}
        assert set(raw["bool-setting"]) == {"foo-enabled", "foo-hidden"}

    def test_globals_visible_to_scripts(self, foo_mods, data_dir):
        g = make_loader(foo_mods, data_dir, ["base", "foo"]).load().lua.globals()
        assert g.seen_version == "1.0.0"
        assert g.sandboxed is True

    def test_inactive_mods_do_not_run(self, foo_mods, data_dir):
        raw = make_loader(foo_mods, data_dir, ["base"]).load().get_raw()
        assert "foo-gear" not in raw["item"]


class TestFailures:
    """Errors carry the mod and file that failed."""

    def test_script_error(self, mods_dir, data_dir):
        write_mod_dir(mods_dir, "broken", info_json("broken", "1.0.0"), {
            "data.lua": "error('bad prototype')",
        })
        loader = make_loader(mods_dir, data_dir, ["base", "broken"])
        with pytest.raises(ScriptError) as exc:
            loader.load()
        assert exc.value.mod == "broken"
        assert exc.value.file == "data.lua"
        assert "bad prototype" in str(exc.value)

    def test_require_failure_is_a_script_error(self, mods_dir, data_dir):
        write_mod_dir(mods_dir, "broken", info_json("broken", "1.0.0"), {
            "settings.lua": "require('missing.module')",
        })
        loader = make_loader(mods_dir, data_dir, ["base", "broken"])
        with pytest.raises(ScriptError) as exc:
            loader.load()
        assert exc.value.file == "settings.lua"
        assert isinstance(exc.value.cause, ModuleNotFound)

    def test_core_required(self):
        with pytest.raises(EntryScriptMissing):
            DataLoader({}, [])

    def test_dataloader_script_required(self, tmp_path):
        write_mod_dir(tmp_path, "core", info_json("core", "1.0.0"))
        core = Package.from_path(tmp_path / "core", expected_name="core")
        with pytest.raises(EntryScriptMissing, match="__core__/lualib/dataloader.lua"):
            DataLoader({"core": core}, ["core"])

    def test_data_raw_missing(self, tmp_path):
        write_mod_dir(tmp_path, "core", info_json("core", "1.0.0"), {"lualib/dataloader.lua": "data = 5"})
        core = Package.from_path(tmp_path / "core", expected_name="core")
        loader = DataLoader({"core": core}, ["core"])
        with pytest.raises(DataTableMissing):
            loader.load()


HIST_FILES = {
    "settings.lua": """
defines = { prototypes = { item = { item = 0 }, entity = { ["transport-belt"] = 0 } } }
data:extend{{type = "bool-setting", name = "hist-flag", setting_type = "startup", default_value = true}}
""",
    "data.lua": """
data:extend{
  {type = "item", name = "hist-gear"},
  {type = "transport-belt", name = "hist-belt"},
}
""",
    "data-final-fixes.lua": """
data.raw.item["iron-plate"] = nil
data.raw["transport-belt"]["hist-belt"] = nil
""",
}


class TestHistory:
    """Prototype history of one tracked mod."""

    @pytest.fixture
    def hist_mods(self, mods_dir, data_dir):
        write_mod_dir(mods_dir, "hist", info_json("hist", "1.0.0", ["base"]), HIST_FILES)
        (data_dir / "base" / "data-updates.lua").write_text(
            'data:extend{{ type = "item", name = "copper-plate" }}\n'
        )
        return mods_dir

    def make(self, mods_dir, data_dir):
        registry = ModRegistry.discover(mods_dir, data_dir)
        assert registry.enable_set(["base", "hist"]) == {}
        active, order = registry.active_with_order()
        return DataLoader(active, order, dump_history="hist")

    def test_records_additions_and_removals(self, hist_mods, data_dir):
        loader = self.make(hist_mods, data_dir).load()
        assert loader.history == {
            "other": {"bool-setting": {"hist-flag": "hist"}},
            "item": {"item": {"hist-gear": "hist"}},
        }
        assert "iron-plate" not in loader.get_raw()["item"]

    def test_history_file(self, hist_mods, data_dir, tmp_path):
        out = tmp_path / "out"
        self.make(hist_mods, data_dir).load(out, "hist")
        payload = json.loads((out / "hist.history.json").read_text())
        assert payload["item"]["item"] == {"hist-gear": "hist"}

    def test_untracked_by_default(self, hist_mods, data_dir, tmp_path):
        loader = make_loader(hist_mods, data_dir, ["base", "hist"]).load(tmp_path, "hist")
        assert loader.history == {}
        assert not (tmp_path / "hist.history.json").exists()


class TestDump:
    def test_dump_written(self, foo_mods, data_dir, tmp_path):
        out = tmp_path / "out"
        make_loader(foo_mods, data_dir, ["base", "foo"], dump_data=True).load(out, "foo")
        payload = json.loads(zlib.decompress((out / "foo.dump.json.deflate").read_bytes()))
        assert payload["item"]["iron-plate"]["stack_size"] == 200

    def test_no_dump_by_default(self, foo_mods, data_dir, tmp_path):
        make_loader(foo_mods, data_dir, ["base", "foo"]).load(tmp_path, "foo")
        assert not (tmp_path / "foo.dump.json.deflate").exists()
