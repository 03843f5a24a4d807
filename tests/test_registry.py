import sys

import pytest

from modsync.launchers import LauncherRegistry
from modsync.launchers.registry import default_roots
from modsync.models import LauncherInstallation, LauncherKind


def make_app_root(path):
    (path / "profiles").mkdir(parents=True)
    (path / "app-window-state.json").write_text("{}")
    return path


def registry_for(**roots):
    return LauncherRegistry(
        extra_roots={name: [path] for name, path in roots.items()},
        include_defaults=False,
    )


def test_prism_is_discovered(prism_root):
    report = registry_for(prism=prism_root).discover()

    assert report.installations == [LauncherInstallation(LauncherKind.PRISM, prism_root)]
    assert report.warnings == []


def test_offline_accounts_mean_cracked(tmp_path):
    root = tmp_path / "PrismLauncher-Cracked"
    (root / "instances").mkdir(parents=True)
    (root / "prismlauncher.cfg").write_text("")
    (root / "accounts.json").write_text('{"accounts": [{"type": "Offline"}]}')

    registry = LauncherRegistry(
        extra_roots={"prism": [root], "prism-cracked": [root]}, include_defaults=False
    )
    report = registry.discover()

    assert [i.kind for i in report.installations] == [LauncherKind.PRISM_CRACKED]


def test_astral_and_modrinth_are_told_apart(tmp_path):
    astral = make_app_root(tmp_path / "AstralRinthApp")
    modrinth = make_app_root(tmp_path / "ModrinthApp")
    registry = LauncherRegistry(
        extra_roots={"astralrinth": [astral, modrinth], "modrinth": [astral, modrinth]},
        include_defaults=False,
    )

    report = registry.discover()

    kinds = {i.root_path.name: i.kind for i in report.installations}
    assert kinds == {
        "AstralRinthApp": LauncherKind.ASTRAL_RINTH,
        "ModrinthApp": LauncherKind.MODRINTH_APP,
    }
    assert registry.select_default(report.installations).kind is LauncherKind.ASTRAL_RINTH


def test_broken_marker_file_becomes_warning(tmp_path, prism_root):
    official = tmp_path / ".minecraft"
    official.mkdir()
    (official / "launcher_profiles.json").write_text("{not json")

    report = registry_for(official=official, prism=prism_root).discover()

    assert [i.kind for i in report.installations] == [LauncherKind.PRISM]
    assert len(report.warnings) == 1
    assert "launcher_profiles.json" in report.warnings[0]


def test_same_root_is_reported_once(prism_root):
    registry = LauncherRegistry(
        extra_roots={"prism": [prism_root, prism_root / "instances" / ".."]}, include_defaults=False
    )

    report = registry.discover()

    assert len(report.installations) == 1


def test_discover_can_be_filtered(tmp_path, prism_root):
    astral = make_app_root(tmp_path / "AstralRinthApp")
    registry = registry_for(prism=prism_root, astralrinth=astral)

    report = registry.discover([LauncherKind.PRISM])

    assert [i.kind for i in report.installations] == [LauncherKind.PRISM]


def test_missing_roots_are_ignored(tmp_path):
    report = registry_for(prism=tmp_path / "nope").discover()

    assert report.installations == []
    assert report.warnings == []


def test_select_default_follows_priority(tmp_path):
    installations = [
        LauncherInstallation(LauncherKind.MULTIMC, tmp_path / "a"),
        LauncherInstallation(LauncherKind.XMCL, tmp_path / "b"),
        LauncherInstallation(LauncherKind.OFFICIAL, tmp_path / "c"),
    ]

    assert LauncherRegistry.select_default(installations).kind is LauncherKind.XMCL
    assert LauncherRegistry.select_default([]) is None


@pytest.mark.parametrize(
    "name, kind",
    [
        ("prism", LauncherKind.PRISM),
        ("PrismLauncher", LauncherKind.PRISM),
        ("PrismLauncher-Cracked", LauncherKind.PRISM_CRACKED),
        ("Modrinth", LauncherKind.MODRINTH_APP),
        ("astral_rinth", LauncherKind.ASTRAL_RINTH),
        ("XMCL", LauncherKind.XMCL),
        ("unknown-launcher", None),
    ],
)
def test_launcher_names(name, kind):
    assert LauncherKind.from_name(name) is kind


def test_unknown_extra_root_is_ignored(tmp_path):
    registry = LauncherRegistry(extra_roots={"bogus": [tmp_path]}, include_defaults=False)

    assert registry.extra_roots == {}


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="linux layout")
def test_default_roots_on_linux(tmp_path):
    roots = default_roots(LauncherKind.PRISM, home=tmp_path)
    assert tmp_path / ".local" / "share" / "PrismLauncher" in roots

    official = default_roots(LauncherKind.OFFICIAL, home=tmp_path)
    assert official[0] == tmp_path / ".minecraft"

    xmcl = default_roots(LauncherKind.XMCL, home=tmp_path)
    assert xmcl == [tmp_path / ".xmcl"]
