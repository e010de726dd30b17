import os
import re

import pytest

from conftest import make_runtime, touch
from protonshelf.runtimes import (
    RuntimeResolver, build_id, build_label, is_valid_installation, sort_key,
)


@pytest.mark.parametrize("name, slug", [
    ("Proton 9.0", "proton-9-0"),
    ("Proton 8.0-5", "proton-8-0-5"),
    ("Proton 7.0-6", "proton-7-0-6"),
    ("Proton - Experimental", "proton-experimental"),
    ("Proton 9.0 (Beta)", "proton-9-0-beta"),
    ("GE-Proton9-20", "ge-proton9-20"),
    ("  Proton 9.0  ", "proton-9-0"),
])
def test_build_id(name, slug):
    assert build_id(name) == slug


def test_build_id_shape_and_idempotence():
    for name in ["Proton 9.0 (Beta)", "--weird__Name!!", "GE-Proton9-20", "Ünïcode Proton 1.2"]:
        slug = build_id(name)
        assert re.fullmatch(r"[a-z0-9-]*", slug)
        assert not slug.startswith("-") and not slug.endswith("-")
        assert build_id(slug) == slug


def test_build_label_is_identity():
    for name in ["Proton 9.0", "GE-Proton9-20", "Proton - Experimental"]:
        assert build_label(name) == name


def test_sort_key_ordering():
    assert sort_key("Proton 9.0") > sort_key("Proton 8.0-5") > sort_key("Proton 7.0-6")
    assert sort_key("GE-Proton9-20") > sort_key("GE-Proton9-10")


def test_sort_key_values():
    assert sort_key("Proton 9.0") == 9000
    assert sort_key("Proton 8.0-5") == 8000
    assert sort_key("GE-Proton9-20") == 9020
    assert sort_key("Proton 10") == 10000
    assert sort_key("Proton - Experimental") == 0
    assert sort_key("") == 0


def test_is_valid_installation(tmp_path):
    good = make_runtime(tmp_path, "Proton 9.0")
    bad = tmp_path / "Proton 8.0"
    bad.mkdir()
    assert is_valid_installation(good)
    assert not is_valid_installation(bad)


def test_detect_all_sorted_newest_first(steam_root):
    common = steam_root / "steamapps" / "common"
    make_runtime(common, "Proton 8.0-5")
    make_runtime(common, "Proton 9.0")
    make_runtime(common, "Proton - Experimental")
    make_runtime(steam_root / "compatibilitytools.d", "GE-Proton9-20")
    (common / "Proton 7.0-6").mkdir()                   # no launcher script
    make_runtime(common, "Steam Linux Runtime")        # no marker in the name
    touch(common / "proton-notes.txt")

    versions = RuntimeResolver([steam_root]).detect_all()
    assert [v.label for v in versions] == [
        "GE-Proton9-20", "Proton 9.0", "Proton 8.0-5", "Proton - Experimental",
    ]
    assert versions[1].id == "proton-9-0"
    assert versions[1].path == str(common / "Proton 9.0")


def test_detect_all_dedups_roots_by_path(tmp_path, steam_root):
    make_runtime(steam_root / "steamapps" / "common", "Proton 9.0")
    alias = tmp_path / "dot-steam"
    os.symlink(steam_root, alias)

    versions = RuntimeResolver([steam_root, alias, tmp_path / "missing"]).detect_all()
    assert [v.id for v in versions] == ["proton-9-0"]


def test_detect_all_reflects_disk_changes(steam_root):
    resolver = RuntimeResolver([steam_root])
    assert resolver.detect_all() == []
    make_runtime(steam_root / "steamapps" / "common", "Proton 9.0")
    assert [v.id for v in resolver.detect_all()] == ["proton-9-0"]


def test_find_by_id(steam_root):
    make_runtime(steam_root / "steamapps" / "common", "Proton 9.0")
    resolver = RuntimeResolver([steam_root])
    assert resolver.find_by_id("proton-9-0").label == "Proton 9.0"
    assert resolver.find_by_id("proton-1-0") is None


def test_detect_steam_root(tmp_path, steam_root):
    assert RuntimeResolver([tmp_path / "missing", steam_root]).detect_steam_root() == str(steam_root)
    assert RuntimeResolver([tmp_path / "missing"]).detect_steam_root() is None
