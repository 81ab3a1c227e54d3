"""Tests for version and dependency string parsing."""

import pytest

from src.versioning.models import (
    Dependency,
    DependencyKind,
    ResolutionRequest,
    Version,
    VersionOp,
)
from src.versioning.parser import parse_dependency, parse_version, split_mod_filename


class TestVersion:
    """Version parsing, ordering and formatting."""

    @pytest.mark.parametrize("text", ["0.0.0", "1.2.3", "2.0.60", "65535.65535.65535", "10.0.1"])
    def test_round_trip(self, text):
        """Canonical strings parse back to the same version."""
        v = parse_version(text)
        assert str(v) == text
        assert Version.parse(str(v)) == v

    def test_two_component_form_has_zero_patch(self):
        assert Version.parse("1.1") == Version(1, 1, 0)
        assert str(Version.parse("1.1")) == "1.1.0"

    @pytest.mark.parametrize("text", ["", "1", "1.2.3.4", "a.b", "1.-2", "1..2", "v1.0"])
    def test_invalid_strings(self, text):
        with pytest.raises(ValueError, match="Expected 'a.b' or 'a.b.c'"):
            Version.parse(text)

    def test_component_range(self):
        with pytest.raises(ValueError):
            Version(65536, 0, 0)

    def test_total_order(self):
        versions = [Version.parse(s) for s in ["1.10.0", "1.2.0", "0.18.47", "1.2.10", "1.1"]]
        assert [str(v) for v in sorted(versions)] == ["0.18.47", "1.1.0", "1.2.0", "1.2.10", "1.10.0"]


class TestParseDependency:
    """Metadata dependency strings."""

    def test_plain_name(self):
        dep = parse_dependency("base")
        assert dep == Dependency("base")
        assert dep.is_required and dep.affects_load_order

    def test_comparator_and_version(self):
        dep = parse_dependency("base >= 1.1.0")
        assert dep.op is VersionOp.HIGHER_OR_EQUAL
        assert dep.version == Version(1, 1, 0)

    @pytest.mark.parametrize("text,kind", [
        ("? space-age", DependencyKind.OPTIONAL),
        ("(?) quality", DependencyKind.HIDDEN_OPTIONAL),
        ("! bobs-mod", DependencyKind.INCOMPATIBLE),
        ("~ lazy-lib", DependencyKind.LAZY),
        ("?space-age", DependencyKind.OPTIONAL),
    ])
    def test_modifiers(self, text, kind):
        assert parse_dependency(text).kind is kind

    def test_name_with_spaces(self):
        dep = parse_dependency("? Some Mod Name > 0.3")
        assert dep.name == "Some Mod Name"
        assert dep.kind is DependencyKind.OPTIONAL
        assert dep.op is VersionOp.HIGHER
        assert dep.version == Version(0, 3, 0)

    @pytest.mark.parametrize("text", ["", "?", "base >=", ">= 1.0.0", "base >= x"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_dependency(text)

    def test_lazy_is_required_but_unordered(self):
        dep = parse_dependency("~ lib")
        assert dep.is_required
        assert not dep.affects_load_order

    def test_string_form_round_trips(self):
        for text in ["base", "? space-age >= 2.0.0", "! evil = 1.0.0", "(?) quality"]:
            assert str(parse_dependency(text)) == str(parse_dependency(str(parse_dependency(text))))
        assert str(parse_dependency("? space-age >= 2.0")) == "? space-age >= 2.0.0"


class TestAllows:
    """Constraint evaluation."""

    @pytest.mark.parametrize("text,version,expected", [
        ("a", "0.0.1", True),
        ("a = 1.0.0", "1.0.0", True),
        ("a = 1.0.0", "1.0.1", False),
        ("a >= 1.0.0", "1.0.0", True),
        ("a >= 1.0.0", "0.9.9", False),
        ("a > 1.0.0", "1.0.0", False),
        ("a > 1.0.0", "1.0.1", True),
        ("a <= 1.0.0", "1.0.0", True),
        ("a < 1.0.0", "1.0.0", False),
        ("a < 1.0.0", "0.18.0", True),
    ])
    def test_allows(self, text, version, expected):
        assert parse_dependency(text).allows(Version.parse(version)) is expected


class TestSplitModFilename:
    """Mods directory entry names."""

    @pytest.mark.parametrize("filename,expected", [
        ("foo", ("foo", None, False)),
        ("foo_2.0.0", ("foo", Version(2, 0, 0), False)),
        ("foo_2.0.0.zip", ("foo", Version(2, 0, 0), True)),
        ("my_cool_mod_1.2.3.zip", ("my_cool_mod", Version(1, 2, 3), True)),
        ("my_cool_mod", ("my_cool_mod", None, False)),
    ])
    def test_layouts(self, filename, expected):
        assert split_mod_filename(filename) == expected


class TestResolutionRequest:
    def test_for_target_adds_base(self):
        names = [d.name for d in ResolutionRequest.for_target("foo").roots]
        assert names == ["foo", "base"]

    def test_for_base_is_not_duplicated(self):
        names = [d.name for d in ResolutionRequest.for_target("base").roots]
        assert names == ["base"]
