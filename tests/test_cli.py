import json

from click.testing import CliRunner

from modsync.cli import main
from tests.helpers import add_prism_instance, build_mrpack, publish_pack


def write_config(tmp_path, **extra):
    data = {"max_retries": 0, "retry_delay": 0.1, **extra}
    path = tmp_path / "modsync.json"
    path.write_text(json.dumps(data))
    return str(path)


def test_scan_lists_configured_launcher(tmp_path, prism_root, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "home" / "data"))
    add_prism_instance(prism_root, "smp", "SMP Survival", mods=["sodium-0.5.8.jar"])
    config = write_config(tmp_path, launcher_roots={"prism": [str(prism_root)]})

    result = CliRunner().invoke(main, ["--config", config, "scan", "-l", "prism"])

    assert result.exit_code == 0, result.output
    assert "SMP Survival" in result.output
    assert "fabric 0.15.7" in result.output


def test_update_installs_pack(tmp_path, remote, prism_root):
    url, sha1 = remote("sodium-0.5.8.jar")
    files = [{"path": "mods/sodium-0.5.8.jar", "hashes": {"sha1": sha1}, "downloads": [url]}]
    api = tmp_path / "api"
    publish_pack(api, "fabric", build_mrpack(files))
    instance = add_prism_instance(prism_root, "smp", "SMP", mods=["sodium-0.5.7.jar"])
    config = write_config(tmp_path, api_base_url=api.as_uri())

    result = CliRunner().invoke(
        main, ["--config", config, "update", "-i", str(instance), "-t", "fabric"]
    )

    assert result.exit_code == 0, result.output
    assert [p.name for p in (instance / ".minecraft" / "mods").iterdir()] == ["sodium-0.5.8.jar"]


def test_update_reports_manifest_failure(tmp_path, prism_root):
    instance = add_prism_instance(prism_root, "smp", "SMP")
    config = write_config(tmp_path, api_base_url=(tmp_path / "missing").as_uri())

    result = CliRunner().invoke(
        main, ["--config", config, "update", "-i", str(instance), "-t", "fabric"]
    )

    assert result.exit_code == 1
    assert "[E301]" in result.output


def test_bad_config_is_reported(tmp_path):
    result = CliRunner().invoke(main, ["--config", str(tmp_path / "nope.toml"), "scan"])

    assert result.exit_code == 1
    assert "配置文件不存在" in result.output


def test_install_creates_instance(tmp_path, remote, prism_root, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "home" / "data"))
    url, sha1 = remote("sodium-0.5.8.jar")
    files = [{"path": "mods/sodium-0.5.8.jar", "hashes": {"sha1": sha1}, "downloads": [url]}]
    api = tmp_path / "api"
    publish_pack(api, "fabric", build_mrpack(files))
    config = write_config(
        tmp_path, api_base_url=api.as_uri(), launcher_roots={"prism": [str(prism_root)]}
    )

    result = CliRunner().invoke(
        main,
        ["--config", config, "install", "-t", "fabric", "-n", "Fresh", "-l", "prism"],
    )

    assert result.exit_code == 0, result.output
    assert "Fresh" in result.output
    assert "[新增] sodium-0.5.8.jar" in result.output
    mods_dir = prism_root / "instances" / "Fresh" / ".minecraft" / "mods"
    assert [p.name for p in mods_dir.iterdir()] == ["sodium-0.5.8.jar"]
