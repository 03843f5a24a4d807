"""
automodpack 服务器信息读写

automodpack-known-hosts.json 结构为 {"hosts": {"ip[:port]": "fingerprint"}}，
位于游戏目录或 automodpack/.private/ 下。
"""

import json
from pathlib import Path
from typing import List, Optional

import aiofiles
from loguru import logger

from modsync.exceptions import FileSystemError, InstanceError
from modsync.models.instance import ServerProfile

KNOWN_HOSTS_FILE = "automodpack-known-hosts.json"
DEFAULT_PORT = 25565


def known_hosts_candidates(game_dir: Path) -> List[Path]:
    return [
        game_dir / KNOWN_HOSTS_FILE,
        game_dir / "automodpack" / ".private" / KNOWN_HOSTS_FILE,
    ]


def find_known_hosts(game_dir: Path) -> Optional[Path]:
    for candidate in known_hosts_candidates(game_dir):
        if candidate.is_file():
            return candidate
    return None


def has_automodpack(game_dir: Path) -> bool:
    return find_known_hosts(game_dir) is not None


def _split_host(host: str):
    if host.count(":") == 1:
        ip, _, port = host.partition(":")
        if port.isdigit():
            return ip, int(port)
    return host, DEFAULT_PORT


def _host_key(profile: ServerProfile) -> str:
    if profile.server_port == DEFAULT_PORT:
        return profile.server_ip
    return f"{profile.server_ip}:{profile.server_port}"


def read_server_profile(game_dir: Path) -> Optional[ServerProfile]:
    """
    读取实例关联的服务器信息

    Returns:
        第一个已知服务器，文件不存在或为空时返回 None

    Raises:
        InstanceError: 文件无法读取或格式错误
    """
    path = find_known_hosts(game_dir)
    if path is None:
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InstanceError(
            f"无法读取 {KNOWN_HOSTS_FILE}: {e}", context={"path": str(path)}
        ) from e

    hosts = data.get("hosts") if isinstance(data, dict) else None
    if not isinstance(hosts, dict) or not hosts:
        return None

    host, fingerprint = next(iter(hosts.items()))
    ip, port = _split_host(str(host))
    return ServerProfile(fingerprint=str(fingerprint), server_ip=ip, server_port=port)


async def write_server_profile(game_dir: Path, profile: ServerProfile) -> Path:
    """
    写入服务器信息，保留文件中其他服务器的记录

    Raises:
        FileSystemError: 写入失败
    """
    path = find_known_hosts(game_dir) or game_dir / KNOWN_HOSTS_FILE
    hosts = {}
    if path.exists():
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                existing = json.loads(await f.read())
            if isinstance(existing, dict) and isinstance(existing.get("hosts"), dict):
                hosts = dict(existing["hosts"])
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"[automodpack] 旧的 {KNOWN_HOSTS_FILE} 无法解析，将被覆盖: {e}")

    # 同一 IP 的旧端口记录会被替换
    for host in list(hosts):
        if _split_host(host)[0] == profile.server_ip:
            del hosts[host]
    hosts[_host_key(profile)] = profile.fingerprint

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(json.dumps({"hosts": hosts}, indent=2))
    except OSError as e:
        raise FileSystemError(
            f"写入 {KNOWN_HOSTS_FILE} 失败: {e}", context={"path": str(path)}
        ) from e

    logger.info(f"[automodpack] 已更新服务器 {profile.server_ip}:{profile.server_port}")
    return path
