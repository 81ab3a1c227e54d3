"""Tests for dependency closure and load order."""

from typing import Dict, List

import pytest

from src.resolver.dependency_resolver import DependencyResolver, build_order_graph, load_order
from src.resolver.errors import (
    DependencyCycle,
    IncompatibleModPresent,
    MissingRequiredMod,
    UnsatisfiableVersion,
)
from src.versioning.models import Dependency, ResolutionRequest, Version
from src.versioning.parser import parse_dependency


class FakeCatalog:
    """In-memory catalog: {name: {version: [dependency strings]}}."""

    def __init__(self, mods: Dict[str, Dict[str, List[str]]]):
        self.mods = {
            name: {Version.parse(v): tuple(parse_dependency(d) for d in deps) for v, deps in versions.items()}
            for name, versions in mods.items()
        }

    def versions(self, name):
        return sorted(self.mods.get(name, {}))

    def dependencies(self, name, version):
        return self.mods[name][version]


def catalog(**extra):
    mods = {
        "core": {"1.0.0": []},
        "base": {"1.0.0": []},
        "unrelated": {"1.0.0": ["base"]},
    }
    mods.update({k.replace("_", "-"): v for k, v in extra.items()})
    return FakeCatalog(mods)


def resolve(cat, *names):
    return DependencyResolver(cat).resolve(ResolutionRequest.of(names))


def assert_dependencies_first(cat, resolution):
    index = {name: i for i, name in enumerate(resolution.order)}
    for name, version in resolution.selected.items():
        for dep in cat.dependencies(name, version):
            if dep.affects_load_order and dep.name in index:
                assert index[dep.name] < index[name], f"{dep.name} should load before {name}"


class TestClosure:
    """Active set selection."""

    def test_minimal_active_set(self):
        cat = catalog(target={"1.0.0": ["base"]})
        res = DependencyResolver(cat).resolve(ResolutionRequest.for_target("target"))
        assert res.active == {"target", "base", "core"}
        assert "unrelated" not in res.selected

    def test_latest_satisfying_version(self):
        cat = catalog(lib={"1.0.0": [], "1.5.0": [], "2.0.0": []}, app={"1.0.0": ["lib < 2.0"]})
        res = resolve(cat, "app")
        assert res.selected["lib"] == Version(1, 5, 0)

    def test_later_constraint_forces_downgrade(self):
        # first requirer picks lib 2.0.0, a later one only accepts < 2.0
        cat = catalog(
            lib={"1.0.0": [], "2.0.0": []},
            a={"1.0.0": ["lib"]},
            b={"1.0.0": ["c"]},
            c={"1.0.0": ["lib < 2.0.0"]},
        )
        res = resolve(cat, "a", "b")
        assert res.selected["lib"] == Version(1, 0, 0)

    def test_downgrade_drops_dependencies_of_rejected_version(self):
        cat = catalog(
            lib={"1.0.0": [], "2.0.0": ["extra"]},
            extra={"1.0.0": []},
            a={"1.0.0": ["lib", "b"]},
            b={"1.0.0": ["lib = 1.0.0"]},
        )
        res = resolve(cat, "a")
        assert res.selected["lib"] == Version(1, 0, 0)
        assert "extra" not in res.selected

    def test_ban_lifted_when_its_requirer_moves(self):
        # r 2.0.0 first pushes m down to 1.0.0, then s forces r back to 1.0.0,
        # after which m 2.0.0 is acceptable again
        cat = catalog(
            r={"1.0.0": [], "2.0.0": ["m < 2.0.0"]},
            m={"1.0.0": [], "2.0.0": []},
            s={"1.0.0": ["r < 2.0.0", "m >= 2.0.0"]},
        )
        res = resolve(cat, "r", "m", "s")
        assert res.selected["r"] == Version(1, 0, 0)
        assert res.selected["m"] == Version(2, 0, 0)
        assert res.selected["s"] == Version(1, 0, 0)

    def test_unsatisfiable_names_requirers(self):
        cat = catalog(other_mod={"1.5.0": []}, target={"1.0.0": ["other-mod >= 2.0.0"]})
        with pytest.raises(UnsatisfiableVersion) as exc:
            resolve(cat, "target")
        assert exc.value.mod == "other-mod"
        assert any("target" in r for r in exc.value.requirers)

    def test_conflicting_requirers(self):
        cat = catalog(
            lib={"1.0.0": [], "2.0.0": []},
            a={"1.0.0": ["lib >= 2.0.0"]},
            b={"1.0.0": ["lib < 2.0.0"]},
        )
        with pytest.raises(UnsatisfiableVersion) as exc:
            resolve(cat, "a", "b")
        assert exc.value.mod == "lib"
        assert len(exc.value.requirers) == 2

    def test_missing_required(self):
        cat = catalog(target={"1.0.0": ["ghost"]})
        with pytest.raises(MissingRequiredMod) as exc:
            resolve(cat, "target")
        assert exc.value.mod == "ghost"
        assert exc.value.requirer == "target"

    def test_lazy_dependency_is_required(self):
        cat = catalog(target={"1.0.0": ["~ ghost"]})
        with pytest.raises(MissingRequiredMod):
            resolve(cat, "target")

    def test_core_is_implicit(self):
        cat = catalog(target={"1.0.0": []})
        assert resolve(cat, "target").active == {"target", "core"}

    def test_deterministic(self):
        cat = catalog(
            a={"1.0.0": ["c", "b"]}, b={"1.0.0": ["d"]}, c={"1.0.0": ["d"]}, d={"1.0.0": []},
        )
        first = resolve(cat, "a")
        for _ in range(5):
            again = resolve(cat, "a")
            assert again.order == first.order
            assert again.selected == first.selected


class TestOptionalAndIncompatible:
    """Optional and incompatible markers."""

    def test_absent_optional_is_dropped(self):
        cat = catalog(target={"1.0.0": ["? ghost", "base"]})
        res = resolve(cat, "target")
        assert "ghost" not in res.selected
        assert res.dropped_optional == ["ghost"]

    def test_available_optional_is_not_pulled_in(self):
        cat = catalog(target={"1.0.0": ["? extra"]}, extra={"1.0.0": []})
        res = resolve(cat, "target")
        assert "extra" not in res.selected

    def test_present_optional_orders_load(self):
        cat = catalog(target={"1.0.0": ["? extra"]}, extra={"1.0.0": []})
        res = resolve(cat, "target", "extra")
        assert res.order.index("extra") < res.order.index("target")

    def test_present_optional_constrains_version(self):
        cat = catalog(
            target={"1.0.0": ["? extra >= 2.0.0"]},
            extra={"1.0.0": [], "2.0.0": []},
        )
        res = resolve(cat, "extra", "target")
        assert res.selected["extra"] == Version(2, 0, 0)

    def test_present_optional_with_no_fitting_version(self):
        cat = catalog(target={"1.0.0": ["? extra >= 2.0.0"]}, extra={"1.0.0": []})
        with pytest.raises(UnsatisfiableVersion):
            resolve(cat, "extra", "target")

    def test_incompatible_present(self):
        cat = catalog(target={"1.0.0": ["! evil"]}, evil={"1.0.0": []})
        with pytest.raises(IncompatibleModPresent) as exc:
            resolve(cat, "target", "evil")
        assert exc.value.mod == "evil"
        assert exc.value.other == "target"

    def test_incompatible_absent(self):
        cat = catalog(target={"1.0.0": ["! evil"]}, evil={"1.0.0": []})
        assert "evil" not in resolve(cat, "target").selected

    def test_incompatible_version_range(self):
        cat = catalog(target={"1.0.0": ["! evil < 1.0.0"]}, evil={"1.0.0": []})
        assert "evil" in resolve(cat, "target", "evil").selected

    def test_lazy_dependency_adds_no_edge(self):
        cat = catalog(a={"1.0.0": ["~ b"]}, b={"1.0.0": ["a"]})
        res = resolve(cat, "a")
        assert res.order.index("a") < res.order.index("b")


class TestLoadOrder:
    """Topological sorting."""

    def test_dependencies_first(self):
        cat = catalog(
            a={"1.0.0": ["b", "c"]}, b={"1.0.0": ["d"]}, c={"1.0.0": ["d", "base"]}, d={"1.0.0": []},
        )
        res = resolve(cat, "a")
        assert_dependencies_first(cat, res)
        assert res.order[0] == "core"

    def test_ties_broken_by_name(self):
        graph = {"z": set(), "a": set(), "m": set()}
        assert load_order(graph) == ["a", "m", "z"]

    def test_cycle(self):
        cat = catalog(a={"1.0.0": ["b"]}, b={"1.0.0": ["a"]})
        with pytest.raises(DependencyCycle) as exc:
            resolve(cat, "a")
        assert exc.value.names == ("a", "b")

    def test_cycle_members_exclude_dependents(self):
        graph = {"a": {"b"}, "b": {"a"}, "c": {"a"}, "d": set()}
        with pytest.raises(DependencyCycle) as exc:
            load_order(graph)
        assert exc.value.names == ("a", "b")

    def test_core_precedes_everything(self):
        graph = build_order_graph({
            "core": [],
            "aaa": [],
            "base": [Dependency("core")],
        })
        assert load_order(graph) == ["core", "aaa", "base"]

    def test_edges_only_between_present_mods(self):
        graph = build_order_graph({"a": [parse_dependency("ghost"), parse_dependency("? b")], "b": []})
        assert graph == {"a": {"b"}, "b": set()}
