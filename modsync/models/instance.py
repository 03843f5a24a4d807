"""
实例数据模型

定义实例、模组文件和服务器信息。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from modsync.models.launcher import LauncherKind, ModLoader


@dataclass(frozen=True)
class ServerProfile:
    """automodpack 关联的服务器信息"""

    fingerprint: str
    server_ip: str
    server_port: int = 25565
    server_name: str = ""

    def to_dict(self) -> dict:
        return {
            "fingerprint": self.fingerprint,
            "serverIp": self.server_ip,
            "serverPort": self.server_port,
            "serverName": self.server_name,
        }


@dataclass(frozen=True)
class ModFile:
    """
    实例 mods 目录中的一个模组文件

    is_user_mod 只有在针对某个清单计划后才有意义，扫描时为 None。
    """

    raw_filename: str
    canonical_name: str
    version: str
    file_size_bytes: int = 0
    last_modified: float = 0.0
    is_user_mod: Optional[bool] = None
    is_compound: bool = False
    path: Optional[Path] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return {
            "rawFilename": self.raw_filename,
            "canonicalName": self.canonical_name,
            "version": self.version or None,
            "fileSizeBytes": self.file_size_bytes,
            "lastModified": datetime.fromtimestamp(
                self.last_modified, tz=timezone.utc
            ).isoformat(),
            "isUserMod": self.is_user_mod,
            "isCompound": self.is_compound,
        }


@dataclass
class Instance:
    """启动器管理的游戏实例"""

    name: str
    launcher_kind: LauncherKind
    instance_path: Path
    game_dir: Path
    minecraft_version: str = "unknown"
    mod_loader: ModLoader = ModLoader.UNKNOWN
    mod_loader_version: Optional[str] = None
    mods: List[ModFile] = field(default_factory=list)
    has_automodpack: bool = False
    server_profile: Optional[ServerProfile] = None
    launcher_root: Optional[Path] = None

    @property
    def mods_dir(self) -> Path:
        return self.game_dir / "mods"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "launcherKind": self.launcher_kind.value,
            "launcherPath": str(self.launcher_root) if self.launcher_root else None,
            "instancePath": str(self.instance_path),
            "minecraftVersion": self.minecraft_version,
            "modLoader": self.mod_loader.value,
            "modLoaderVersion": self.mod_loader_version,
            "modCount": len(self.mods),
            "mods": [mod.to_dict() for mod in self.mods],
            "hasAutomodpack": self.has_automodpack,
            "serverProfile": (
                self.server_profile.to_dict() if self.server_profile else None
            ),
        }
