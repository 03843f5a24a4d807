"""
实例创建

在选定的启动器中按其目录结构创建一个空实例，写入 Minecraft 版本和
加载器元数据。模组由随后的同步流程下载。
"""

import json
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict

from loguru import logger

from modsync.exceptions import FileSystemError, InstanceError
from modsync.launchers.table import (
    OFFICIAL_CONTAINER,
    PRISM_COMPONENTS,
    XMCL_RUNTIME_KEYS,
    _read_json,
)
from modsync.models.launcher import LauncherInstallation, LauncherKind, ModLoader
from modsync.models.manifest import ModpackManifest

GAME_SUBDIRS = ("mods", "config", "resourcepacks", "shaderpacks", "saves")
_UNSAFE_NAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]')

LOADER_COMPONENTS = {loader: uid for uid, loader in PRISM_COMPONENTS.items()}
XMCL_RUNTIME = {loader: key for key, loader in XMCL_RUNTIME_KEYS}
ATLAUNCHER_LOADERS = {
    ModLoader.FABRIC: "Fabric",
    ModLoader.FORGE: "Forge",
    ModLoader.NEOFORGE: "NeoForge",
    ModLoader.QUILT: "Quilt",
}


def check_name(name: str) -> str:
    """校验实例名，名称会直接用作目录名"""
    name = name.strip()
    if not name or name in (".", "..") or _UNSAFE_NAME.search(name):
        raise InstanceError(f"实例名称无效: {name!r}", context={"name": name})
    return name


def profile_slug(name: str) -> str:
    return name.lower().replace(" ", "-")


def has_loader(manifest: ModpackManifest) -> bool:
    return manifest.mod_loader not in (ModLoader.VANILLA, ModLoader.UNKNOWN)


def version_id(manifest: ModpackManifest) -> str:
    """
    生成官方启动器的 lastVersionId

        fabric 0.15.7 / 1.20.1 -> fabric-loader-0.15.7-1.20.1
        forge 47.2.0 / 1.20.1  -> 1.20.1-forge-47.2.0
    """
    mc = manifest.minecraft_version
    loader_version = manifest.mod_loader_version
    if not has_loader(manifest) or not loader_version:
        return mc
    if manifest.mod_loader in (ModLoader.FABRIC, ModLoader.QUILT):
        return f"{manifest.mod_loader.value}-loader-{loader_version}-{mc}"
    return f"{mc}-{manifest.mod_loader.value}-{loader_version}"


def _claim(path: Path) -> None:
    if path.exists():
        raise InstanceError(f"实例已存在: {path}", context={"path": str(path)})
    path.mkdir(parents=True)


def _make_game_dirs(game_dir: Path) -> None:
    for sub in GAME_SUBDIRS:
        (game_dir / sub).mkdir(parents=True, exist_ok=True)


def _write_json(path: Path, data: dict) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


# ---------------------------------------------------------------- 各启动器布局


def _create_mmc(root: Path, name: str, manifest: ModpackManifest) -> Path:
    instance_path = root / "instances" / name
    _claim(instance_path)
    (instance_path / "instance.cfg").write_text(
        "[General]\n"
        "ConfigVersion=1.2\n"
        "InstanceType=OneSix\n"
        "iconKey=default\n"
        f"name={name}\n",
        encoding="utf-8",
    )

    components = [
        {"uid": "net.minecraft", "version": manifest.minecraft_version, "important": True}
    ]
    if has_loader(manifest):
        components.append(
            {
                "uid": LOADER_COMPONENTS[manifest.mod_loader],
                "version": manifest.mod_loader_version or "",
            }
        )
    _write_json(
        instance_path / "mmc-pack.json",
        {"components": components, "formatVersion": 1},
    )
    _make_game_dirs(instance_path / ".minecraft")
    return instance_path


def _create_xmcl(root: Path, name: str, manifest: ModpackManifest) -> Path:
    instance_path = root / "instances" / name
    _claim(instance_path)
    runtime = {"minecraft": manifest.minecraft_version}
    if has_loader(manifest):
        runtime[XMCL_RUNTIME[manifest.mod_loader]] = manifest.mod_loader_version or ""
    now_ms = int(time.time() * 1000)
    _write_json(
        instance_path / "instance.json",
        {"name": name, "runtime": runtime, "creationDate": now_ms, "lastAccessDate": now_ms},
    )
    _make_game_dirs(instance_path)
    return instance_path


def _create_profile(root: Path, name: str, manifest: ModpackManifest) -> Path:
    slug = profile_slug(name)
    instance_path = root / "profiles" / slug
    _claim(instance_path)
    now = datetime.now(timezone.utc).isoformat()
    _write_json(
        instance_path / "profile.json",
        {
            "path": slug,
            "name": name,
            "game_version": manifest.minecraft_version,
            "loader": manifest.mod_loader.value if has_loader(manifest) else "vanilla",
            "loader_version": manifest.mod_loader_version,
            "install_stage": "installed",
            "created": now,
            "modified": now,
        },
    )
    _make_game_dirs(instance_path)
    return instance_path


def _create_official(root: Path, name: str, manifest: ModpackManifest) -> Path:
    profiles_file = root / "launcher_profiles.json"
    if profiles_file.exists():
        data = _read_json(profiles_file)
    else:
        data = {"profiles": {}, "version": 3}
    profiles = data.setdefault("profiles", {})
    if not isinstance(profiles, dict):
        raise InstanceError(
            "launcher_profiles.json 的 profiles 字段类型错误", context={"path": str(profiles_file)}
        )

    profile_id = f"modsync-{profile_slug(name)}"
    if profile_id in profiles:
        raise InstanceError(f"实例已存在: {profile_id}", context={"path": str(profiles_file)})

    instance_path = root / OFFICIAL_CONTAINER / name
    _claim(instance_path)
    _make_game_dirs(instance_path)

    now = datetime.now(timezone.utc).isoformat()
    profiles[profile_id] = {
        "created": now,
        "lastUsed": now,
        "icon": "Crafting_Table",
        "lastVersionId": version_id(manifest),
        "name": name,
        "type": "custom",
        "gameDir": str(instance_path),
    }
    _write_json(profiles_file, data)
    return instance_path


def _create_atlauncher(root: Path, name: str, manifest: ModpackManifest) -> Path:
    instance_path = root / "instances" / name
    _claim(instance_path)
    launcher: dict = {"name": name, "pack": name}
    if has_loader(manifest):
        launcher["loaderVersion"] = {
            "type": ATLAUNCHER_LOADERS[manifest.mod_loader],
            "version": manifest.mod_loader_version or "",
        }
    _write_json(
        instance_path / "instance.json",
        {"id": manifest.minecraft_version, "launcher": launcher},
    )
    _make_game_dirs(instance_path)
    return instance_path


CREATORS: Dict[LauncherKind, Callable[[Path, str, ModpackManifest], Path]] = {
    LauncherKind.ASTRAL_RINTH: _create_profile,
    LauncherKind.MODRINTH_APP: _create_profile,
    LauncherKind.PRISM: _create_mmc,
    LauncherKind.PRISM_CRACKED: _create_mmc,
    LauncherKind.MULTIMC: _create_mmc,
    LauncherKind.XMCL: _create_xmcl,
    LauncherKind.OFFICIAL: _create_official,
    LauncherKind.ATLAUNCHER: _create_atlauncher,
}


def create_instance(
    installation: LauncherInstallation, name: str, manifest: ModpackManifest
) -> Path:
    """
    在启动器中创建空实例

    Returns:
        新实例的路径（可直接交给 InstanceCatalog.open_instance）

    Raises:
        InstanceError: 名称无效或实例已存在
        FileSystemError: 写入目录或元数据失败
    """
    name = check_name(name)
    creator = CREATORS[installation.kind]
    try:
        instance_path = creator(installation.root_path, name, manifest)
    except OSError as e:
        raise FileSystemError(
            f"创建实例失败: {e}",
            context={"launcher": installation.kind.value, "name": name},
        ) from e
    logger.info(
        f"[安装] 已在 {installation.kind.value} 中创建实例 {name} "
        f"({manifest.minecraft_version}, {manifest.mod_loader.value})"
    )
    return instance_path


__all__ = ["create_instance", "check_name", "version_id"]
