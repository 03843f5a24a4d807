"""
启动器识别表

每种启动器一行：标识文件、实例容器、mods 路径、数据库文件，以及识别、
枚举和读取元数据的函数。注册表和实例目录按类型在这里分发。
"""

import configparser
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from modsync.exceptions import DetectionError, InstanceError
from modsync.models.launcher import LauncherKind, ModLoader

MODRINTH_DIR_NAMES = ("modrinthapp", "com.modrinth.theseus")
# 官方启动器中由 modsync 创建的实例所在目录
OFFICIAL_CONTAINER = "modsync-instances"
_MC_VERSION = re.compile(r"(?<![\d.])1\.\d+(?:\.\d+)?(?![\d.])")

# mmc-pack.json 组件 uid -> 加载器
PRISM_COMPONENTS = {
    "net.neoforged": ModLoader.NEOFORGE,
    "net.minecraftforge": ModLoader.FORGE,
    "net.fabricmc.fabric-loader": ModLoader.FABRIC,
    "org.quiltmc.quilt-loader": ModLoader.QUILT,
}

# XMCL instance.json runtime 字段 -> 加载器，neoForged 优先
XMCL_RUNTIME_KEYS = (
    ("neoForged", ModLoader.NEOFORGE),
    ("fabricLoader", ModLoader.FABRIC),
    ("forge", ModLoader.FORGE),
    ("quiltLoader", ModLoader.QUILT),
)


@dataclass(frozen=True)
class InstanceMetadata:
    """从启动器元数据文件读取的实例信息"""

    name: str
    minecraft_version: str = "unknown"
    mod_loader: ModLoader = ModLoader.UNKNOWN
    mod_loader_version: Optional[str] = None


@dataclass(frozen=True)
class LauncherSpec:
    """
    单个启动器类型的识别规则

    Attributes:
        markers: 根目录下必须存在的标识文件/目录
        container: 存放实例的子目录（官方启动器为 launcher_profiles.json）
        database: 启动器自有的数据库文件名
        dir_names: 各平台数据目录下的常见目录名
        detect: root -> bool，标识文件损坏时抛出 DetectionError
        enumerate: root -> 实例路径列表
        game_dir: 实例路径 -> 游戏目录（mods/、config/ 所在位置）
        read_metadata: (实例路径, root) -> InstanceMetadata
    """

    kind: LauncherKind
    markers: Tuple[str, ...]
    container: str
    database: Optional[str]
    dir_names: Tuple[str, ...]
    detect: Callable[[Path], bool]
    enumerate: Callable[[Path], List[Path]]
    game_dir: Callable[[Path], Path]
    read_metadata: Callable[[Path, Path], InstanceMetadata]

    def mods_dir(self, instance_path: Path) -> Path:
        return self.game_dir(instance_path) / "mods"


# ---------------------------------------------------------------- 通用工具


def _has_all(root: Path, *names: str) -> bool:
    return all((root / name).exists() for name in names)


def _read_json(path: Path, error_cls=InstanceError) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise error_cls(f"无法读取 {path.name}: {e}", context={"path": str(path)}) from e
    except json.JSONDecodeError as e:
        raise error_cls(f"{path.name} 格式错误: {e}", context={"path": str(path)}) from e
    if not isinstance(data, dict):
        raise error_cls(f"{path.name} 顶层不是对象", context={"path": str(path)})
    return data


def _member(data: dict, key: str, kind: type, source: Path):
    """读取 JSON 对象中的子字段，类型不符时抛出 InstanceError"""
    value = data.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise InstanceError(
            f"{source.name} 的 {key} 字段类型错误", context={"path": str(source)}
        )
    return value


def _subdirs_with(container: Path, marker: Optional[str] = None) -> List[Path]:
    if not container.is_dir():
        return []
    found = []
    for child in sorted(container.iterdir()):
        if not child.is_dir() or child.name.startswith("."):
            continue
        if marker is None or (child / marker).exists():
            found.append(child)
    return found


def infer_from_name(name: str) -> InstanceMetadata:
    """没有元数据文件时，从目录名推断版本与加载器"""
    match = _MC_VERSION.search(name)
    return InstanceMetadata(
        name=name,
        minecraft_version=match.group(0) if match else "unknown",
        mod_loader=ModLoader.parse(name),
    )


# ------------------------------------------------------ Modrinth / AstralRinth


def _is_modrinth_root(root: Path) -> bool:
    return root.name.lower() in MODRINTH_DIR_NAMES


def _detect_modrinth(root: Path) -> bool:
    return _has_all(root, "app-window-state.json", "profiles") and _is_modrinth_root(root)


def _detect_astral(root: Path) -> bool:
    return _has_all(root, "app-window-state.json", "profiles") and not _is_modrinth_root(root)


def _enumerate_profiles(root: Path) -> List[Path]:
    return _subdirs_with(root / "profiles")


def _profile_metadata(instance_path: Path, root: Path) -> InstanceMetadata:
    profile_file = instance_path / "profile.json"
    if not profile_file.exists():
        return infer_from_name(instance_path.name)

    data = _read_json(profile_file)
    fallback = infer_from_name(instance_path.name)
    return InstanceMetadata(
        name=str(data.get("name") or instance_path.name),
        minecraft_version=str(data.get("game_version") or fallback.minecraft_version),
        mod_loader=ModLoader.parse(str(data["loader"])) if data.get("loader") else fallback.mod_loader,
        mod_loader_version=str(data["loader_version"]) if data.get("loader_version") else None,
    )


# ------------------------------------------------------------ Prism / MultiMC


def _prism_accounts_offline(root: Path) -> bool:
    accounts = root / "accounts.json"
    if not accounts.exists():
        return False
    try:
        return "Offline" in accounts.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DetectionError(
            f"无法读取 accounts.json: {e}", context={"path": str(accounts)}
        ) from e


def _detect_prism(root: Path) -> bool:
    return _has_all(root, "prismlauncher.cfg", "instances") and not _prism_accounts_offline(root)


def _detect_prism_cracked(root: Path) -> bool:
    return _has_all(root, "prismlauncher.cfg", "instances") and _prism_accounts_offline(root)


def _detect_multimc(root: Path) -> bool:
    return _has_all(root, "multimc.cfg", "instances")


def _enumerate_mmc(root: Path) -> List[Path]:
    return _subdirs_with(root / "instances", "instance.cfg")


def _mmc_game_dir(instance_path: Path) -> Path:
    # 旧版 MultiMC 使用 minecraft/，Prism 使用 .minecraft/
    for name in (".minecraft", "minecraft"):
        candidate = instance_path / name
        if candidate.is_dir():
            return candidate
    return instance_path / ".minecraft"


def _read_instance_cfg(path: Path) -> Dict[str, str]:
    parser = configparser.ConfigParser(interpolation=None, strict=False)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InstanceError(f"无法读取 instance.cfg: {e}", context={"path": str(path)}) from e
    if not text.lstrip().startswith("["):
        text = "[General]\n" + text
    try:
        parser.read_string(text)
    except configparser.Error as e:
        raise InstanceError(f"instance.cfg 格式错误: {e}", context={"path": str(path)}) from e
    return dict(parser["General"]) if parser.has_section("General") else {}


def _mmc_metadata(instance_path: Path, root: Path) -> InstanceMetadata:
    cfg = _read_instance_cfg(instance_path / "instance.cfg")
    name = cfg.get("name") or instance_path.name

    pack_file = instance_path / "mmc-pack.json"
    if not pack_file.exists():
        inferred = infer_from_name(name)
        return InstanceMetadata(name, inferred.minecraft_version, inferred.mod_loader)

    components = _member(_read_json(pack_file), "components", list, pack_file)
    minecraft_version = "unknown"
    loader, loader_version = ModLoader.VANILLA, None
    for component in components:
        if not isinstance(component, dict):
            raise InstanceError("mmc-pack.json 的组件不是对象", context={"path": str(pack_file)})
        uid = str(component.get("uid", ""))
        raw_version = component.get("version") or component.get("cachedVersion")
        version = str(raw_version) if raw_version else None
        if uid == "net.minecraft":
            minecraft_version = version or minecraft_version
        elif uid in PRISM_COMPONENTS and loader is ModLoader.VANILLA:
            loader, loader_version = PRISM_COMPONENTS[uid], version
    return InstanceMetadata(name, minecraft_version, loader, loader_version)


# ----------------------------------------------------------------------- XMCL


def _detect_xmcl(root: Path) -> bool:
    return _has_all(root, "instances", "launcher_profiles.json")


def _enumerate_xmcl(root: Path) -> List[Path]:
    return _subdirs_with(root / "instances", "instance.json")


def _xmcl_metadata(instance_path: Path, root: Path) -> InstanceMetadata:
    data = _read_json(instance_path / "instance.json")
    runtime = _member(data, "runtime", dict, instance_path / "instance.json")
    loader, loader_version = ModLoader.VANILLA, None
    for key, candidate in XMCL_RUNTIME_KEYS:
        if runtime.get(key):
            loader, loader_version = candidate, str(runtime[key])
            break
    return InstanceMetadata(
        name=str(data.get("name") or instance_path.name),
        minecraft_version=str(runtime.get("minecraft") or "unknown"),
        mod_loader=loader,
        mod_loader_version=loader_version,
    )


# ------------------------------------------------------------------ Official


def _detect_official(root: Path) -> bool:
    profiles = root / "launcher_profiles.json"
    if not profiles.exists() or (root / "instances").exists():
        return False
    if not ((root / "versions").is_dir() or root.name == ".minecraft"):
        return False
    _read_json(profiles, DetectionError)
    return True


def _official_profiles(root: Path) -> List[Tuple[Path, dict]]:
    data = _read_json(root / "launcher_profiles.json")
    profiles = _member(data, "profiles", dict, root / "launcher_profiles.json")
    result = []
    for profile in profiles.values():
        if not isinstance(profile, dict):
            continue
        game_dir = profile.get("gameDir")
        result.append((Path(str(game_dir)).expanduser() if game_dir else root, profile))
    return result


def _enumerate_official(root: Path) -> List[Path]:
    seen: List[Path] = []
    for game_dir, _profile in _official_profiles(root):
        if game_dir not in seen:
            seen.append(game_dir)
    return seen


def parse_version_id(version_id: str) -> Tuple[str, ModLoader, Optional[str]]:
    """
    解析官方启动器的 lastVersionId

        fabric-loader-0.15.7-1.20.1 -> ("1.20.1", FABRIC, "0.15.7")
        1.20.1-forge-47.2.0         -> ("1.20.1", FORGE, "47.2.0")
        1.20.4                      -> ("1.20.4", VANILLA, None)
    """
    text = version_id.strip()
    match = _MC_VERSION.search(text)
    minecraft_version = match.group(0) if match else "unknown"
    loader = ModLoader.parse(text)
    if loader is ModLoader.UNKNOWN:
        return minecraft_version, ModLoader.VANILLA, None

    rest = text.replace(minecraft_version, "", 1) if match else text
    tokens = [t for t in re.split(r"-", rest) if t and t not in ("loader", loader.value)]
    loader_version = tokens[-1] if tokens else None
    return minecraft_version, loader, loader_version


def _official_metadata(instance_path: Path, root: Path) -> InstanceMetadata:
    for game_dir, profile in _official_profiles(root):
        if game_dir == instance_path:
            minecraft_version, loader, loader_version = parse_version_id(
                str(profile.get("lastVersionId") or "")
            )
            return InstanceMetadata(
                name=str(profile.get("name") or instance_path.name),
                minecraft_version=minecraft_version,
                mod_loader=loader,
                mod_loader_version=loader_version,
            )
    return infer_from_name(instance_path.name)


# ----------------------------------------------------------------- ATLauncher


def _detect_atlauncher(root: Path) -> bool:
    return _has_all(root, "configs", "instances", "servers")


def _enumerate_atlauncher(root: Path) -> List[Path]:
    return _subdirs_with(root / "instances", "instance.json")


def _atlauncher_metadata(instance_path: Path, root: Path) -> InstanceMetadata:
    source = instance_path / "instance.json"
    data = _read_json(source)
    launcher = _member(data, "launcher", dict, source)
    loader_info = _member(launcher, "loaderVersion", dict, source)
    loader = ModLoader.parse(str(loader_info.get("type") or "")) if loader_info else ModLoader.VANILLA
    return InstanceMetadata(
        name=str(launcher.get("name") or instance_path.name),
        minecraft_version=str(data.get("id") or "unknown"),
        mod_loader=loader,
        mod_loader_version=str(loader_info["version"]) if loader_info.get("version") else None,
    )


def _same_dir(instance_path: Path) -> Path:
    return instance_path


LAUNCHER_TABLE: Dict[LauncherKind, LauncherSpec] = {
    LauncherKind.ASTRAL_RINTH: LauncherSpec(
        kind=LauncherKind.ASTRAL_RINTH,
        markers=("app-window-state.json", "profiles"),
        container="profiles",
        database="app.db",
        dir_names=("AstralRinthApp",),
        detect=_detect_astral,
        enumerate=_enumerate_profiles,
        game_dir=_same_dir,
        read_metadata=_profile_metadata,
    ),
    LauncherKind.MODRINTH_APP: LauncherSpec(
        kind=LauncherKind.MODRINTH_APP,
        markers=("app-window-state.json", "profiles"),
        container="profiles",
        database="app.db",
        dir_names=("ModrinthApp", "com.modrinth.theseus"),
        detect=_detect_modrinth,
        enumerate=_enumerate_profiles,
        game_dir=_same_dir,
        read_metadata=_profile_metadata,
    ),
    LauncherKind.PRISM: LauncherSpec(
        kind=LauncherKind.PRISM,
        markers=("prismlauncher.cfg", "instances"),
        container="instances",
        database=None,
        dir_names=("PrismLauncher", "PrismLauncher-Cracked"),
        detect=_detect_prism,
        enumerate=_enumerate_mmc,
        game_dir=_mmc_game_dir,
        read_metadata=_mmc_metadata,
    ),
    LauncherKind.XMCL: LauncherSpec(
        kind=LauncherKind.XMCL,
        markers=("instances", "launcher_profiles.json"),
        container="instances",
        database=None,
        dir_names=(".xmcl",),
        detect=_detect_xmcl,
        enumerate=_enumerate_xmcl,
        game_dir=_same_dir,
        read_metadata=_xmcl_metadata,
    ),
    LauncherKind.OFFICIAL: LauncherSpec(
        kind=LauncherKind.OFFICIAL,
        markers=("launcher_profiles.json",),
        container="launcher_profiles.json",
        database=None,
        dir_names=(".minecraft", "minecraft"),
        detect=_detect_official,
        enumerate=_enumerate_official,
        game_dir=_same_dir,
        read_metadata=_official_metadata,
    ),
    LauncherKind.MULTIMC: LauncherSpec(
        kind=LauncherKind.MULTIMC,
        markers=("multimc.cfg", "instances"),
        container="instances",
        database=None,
        dir_names=("MultiMC", "multimc"),
        detect=_detect_multimc,
        enumerate=_enumerate_mmc,
        game_dir=_mmc_game_dir,
        read_metadata=_mmc_metadata,
    ),
    LauncherKind.PRISM_CRACKED: LauncherSpec(
        kind=LauncherKind.PRISM_CRACKED,
        markers=("prismlauncher.cfg", "instances"),
        container="instances",
        database=None,
        dir_names=("PrismLauncher-Cracked", "PrismLauncher"),
        detect=_detect_prism_cracked,
        enumerate=_enumerate_mmc,
        game_dir=_mmc_game_dir,
        read_metadata=_mmc_metadata,
    ),
    LauncherKind.ATLAUNCHER: LauncherSpec(
        kind=LauncherKind.ATLAUNCHER,
        markers=("configs", "instances", "servers"),
        container="instances",
        database=None,
        dir_names=("ATLauncher",),
        detect=_detect_atlauncher,
        enumerate=_enumerate_atlauncher,
        game_dir=_same_dir,
        read_metadata=_atlauncher_metadata,
    ),
}


def classify_instance_dir(path: Path) -> Optional[LauncherKind]:
    """
    根据实例目录自身的布局识别启动器类型

    用于直接指定实例路径的更新操作，此时不经过启动器发现。
    """
    if (path / "instance.cfg").exists():
        root = path.parent.parent
        if (root / "multimc.cfg").exists():
            return LauncherKind.MULTIMC
        try:
            offline = _prism_accounts_offline(root)
        except DetectionError as e:
            logger.warning(f"[识别] {e}，按 PrismLauncher 处理")
            offline = False
        return LauncherKind.PRISM_CRACKED if offline else LauncherKind.PRISM
    if (path / "profile.json").exists() or path.parent.name == "profiles":
        root = path.parent.parent
        if _is_modrinth_root(root):
            return LauncherKind.MODRINTH_APP
        return LauncherKind.ASTRAL_RINTH
    if (path / "instance.json").exists():
        root = path.parent.parent
        if (root / "configs").exists() and (root / "servers").exists():
            return LauncherKind.ATLAUNCHER
        return LauncherKind.XMCL
    if (path / "mods").is_dir() or (path / "launcher_profiles.json").exists():
        return LauncherKind.OFFICIAL
    return None


def launcher_root_for(kind: LauncherKind, instance_path: Path) -> Path:
    """实例路径对应的启动器根目录"""
    if kind is LauncherKind.OFFICIAL:
        if instance_path.parent.name == OFFICIAL_CONTAINER:
            return instance_path.parent.parent
        return instance_path
    return instance_path.parent.parent


__all__ = [
    "InstanceMetadata",
    "LauncherSpec",
    "LAUNCHER_TABLE",
    "classify_instance_dir",
    "infer_from_name",
    "launcher_root_for",
    "parse_version_id",
]
