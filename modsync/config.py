"""
配置模块

定义 ModSync 运行配置，支持 TOML / JSON / YAML 配置文件。
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml
import yaml

from modsync.exceptions import ConfigError, ConfigParseError

DEFAULT_API_BASE_URL = "https://perlytiara.github.io/NAHA-MC.IO/api"
DEFAULT_USER_AGENT = "ModSync/0.1.0"
DEFAULT_CONFIG_ENV = "MODSYNC_CONFIG"


@dataclass
class ModSyncConfig:
    """运行配置"""

    api_base_url: str = DEFAULT_API_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 60.0
    connect_timeout: float = 10.0
    max_concurrent: int = 5
    max_retries: int = 3
    retry_delay: float = 1.0
    scan_workers: int = 8
    database_timeout: float = 5.0
    log_file: Optional[Path] = None
    # 启动器类型名 -> 额外的根目录
    launcher_roots: Dict[str, List[Path]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ModSyncConfig":
        """从字典创建配置，未知键被忽略"""
        data = dict(data or {})
        # 允许 [modsync] 段落嵌套
        if isinstance(data.get("modsync"), dict):
            data = data["modsync"]

        config = cls()
        if "api_base_url" in data:
            config.api_base_url = str(data["api_base_url"]).rstrip("/")
        if "user_agent" in data:
            config.user_agent = str(data["user_agent"])
        if data.get("log_file"):
            config.log_file = Path(os.path.expanduser(str(data["log_file"])))

        for key in ("timeout", "connect_timeout", "retry_delay", "database_timeout"):
            if key in data:
                config_value = _as_number(key, data[key], float)
                if config_value <= 0:
                    raise ConfigError(f"{key} 必须大于 0", context={key: data[key]})
                setattr(config, key, config_value)

        for key in ("max_concurrent", "scan_workers"):
            if key in data:
                config_value = _as_number(key, data[key], int)
                if config_value <= 0:
                    raise ConfigError(f"{key} 必须大于 0", context={key: data[key]})
                setattr(config, key, config_value)

        if "max_retries" in data:
            retries = _as_number("max_retries", data["max_retries"], int)
            if retries < 0:
                raise ConfigError("max_retries 不能为负数", context={"max_retries": retries})
            config.max_retries = retries

        roots = data.get("launcher_roots", {})
        if not isinstance(roots, dict):
            raise ConfigError("launcher_roots 必须是表/字典", context={"launcher_roots": roots})
        for kind, paths in roots.items():
            if isinstance(paths, str):
                paths = [paths]
            config.launcher_roots[str(kind).lower()] = [
                Path(os.path.expanduser(p)) for p in paths
            ]

        return config


def _as_number(key: str, value: Any, kind):
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} 的值无效: {value!r}", context={key: value}) from e


def load_config(config_path: Optional[str] = None) -> ModSyncConfig:
    """
    加载配置文件

    未指定路径时读取环境变量 MODSYNC_CONFIG，都没有则使用默认配置。
    """
    if config_path is None:
        config_path = os.environ.get(DEFAULT_CONFIG_ENV)
        if not config_path:
            return ModSyncConfig()

    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            data = toml.load(str(path))
        elif suffix == ".json":
            data = json.loads(path.read_text(encoding="utf-8"))
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        else:
            raise ConfigError(f"不支持的配置文件格式: {suffix}")
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"配置文件解析失败: {e}", context={"path": str(path)}
        ) from e

    if data is not None and not isinstance(data, dict):
        raise ConfigParseError("配置文件顶层必须是表/字典", context={"path": str(path)})

    return ModSyncConfig.from_dict(data)
