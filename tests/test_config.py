import json
from pathlib import Path

import pytest

from modsync.config import DEFAULT_API_BASE_URL, ModSyncConfig, load_config
from modsync.exceptions import ConfigError, ConfigParseError


def test_defaults(monkeypatch):
    monkeypatch.delenv("MODSYNC_CONFIG", raising=False)

    config = load_config()

    assert config.api_base_url == DEFAULT_API_BASE_URL
    assert config.max_retries == 3
    assert config.launcher_roots == {}


def test_toml_config(tmp_path):
    path = tmp_path / "modsync.toml"
    path.write_text(
        '[modsync]\n'
        'api_base_url = "https://example.org/api/"\n'
        'max_concurrent = 2\n'
        '[modsync.launcher_roots]\n'
        'prism = "~/games/prism"\n'
    )

    config = load_config(str(path))

    assert config.api_base_url == "https://example.org/api"
    assert config.max_concurrent == 2
    assert config.launcher_roots["prism"] == [Path("~/games/prism").expanduser()]


def test_yaml_config(tmp_path):
    path = tmp_path / "modsync.yaml"
    path.write_text("retry_delay: 0.5\nlauncher_roots:\n  official:\n    - /opt/mc\n")

    config = load_config(str(path))

    assert config.retry_delay == 0.5
    assert config.launcher_roots == {"official": [Path("/opt/mc")]}


def test_config_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "modsync.json"
    path.write_text(json.dumps({"scan_workers": 2}))
    monkeypatch.setenv("MODSYNC_CONFIG", str(path))

    assert load_config().scan_workers == 2


@pytest.mark.parametrize(
    "data",
    [
        {"max_concurrent": 0},
        {"max_retries": -1},
        {"timeout": "soon"},
        {"launcher_roots": ["/opt/mc"]},
    ],
)
def test_invalid_values(data):
    with pytest.raises(ConfigError):
        ModSyncConfig.from_dict(data)


def test_unparseable_file(tmp_path):
    path = tmp_path / "modsync.toml"
    path.write_text("api_base_url = [")

    with pytest.raises(ConfigParseError):
        load_config(str(path))


def test_missing_or_unsupported_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.toml"))

    path = tmp_path / "modsync.ini"
    path.write_text("")
    with pytest.raises(ConfigError):
        load_config(str(path))
