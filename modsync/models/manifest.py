"""
清单数据模型

远程整合包清单、条目和版本选择器。
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from modsync.models.instance import ServerProfile
from modsync.models.launcher import ModLoader

LATEST = "latest"


class Environment(Enum):
    """文件适用环境"""

    CLIENT_ONLY = "client"
    SERVER_ONLY = "server"
    BOTH = "both"

    @classmethod
    def from_mrpack(cls, env: Optional[dict]) -> "Environment":
        """
        根据 mrpack 的 env 字段确定环境

        client 为 unsupported 表示仅服务端，server 为 unsupported 表示仅客户端。
        """
        if not env:
            return cls.BOTH
        client = str(env.get("client", "required")).lower()
        server = str(env.get("server", "required")).lower()
        if client == "unsupported":
            return cls.SERVER_ONLY
        if server == "unsupported":
            return cls.CLIENT_ONLY
        return cls.BOTH

    @property
    def applies_to_client(self) -> bool:
        return self is not Environment.SERVER_ONLY


@dataclass(frozen=True)
class Selector:
    """版本选择器："latest" 或明确的版本号"""

    value: str = LATEST

    @classmethod
    def parse(cls, value: Optional[str]) -> "Selector":
        if value is None or not value.strip() or value.strip().lower() == LATEST:
            return cls(LATEST)
        return cls(value.strip())

    @property
    def is_latest(self) -> bool:
        return self.value == LATEST

    def tag_for(self, package_type: str) -> str:
        """明确版本对应的发布标签，由包类型和版本组成"""
        return f"{package_type}-{self.value}"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ManifestEntry:
    """清单中的一个文件"""

    relative_path: str
    canonical_name: str
    version: str
    download_urls: Tuple[str, ...]
    sha1: Optional[str] = None
    file_size_bytes: int = 0
    environment: Environment = Environment.BOTH

    @property
    def filename(self) -> str:
        return PurePosixPath(self.relative_path).name

    def to_dict(self) -> dict:
        return {
            "relativePath": self.relative_path,
            "canonicalName": self.canonical_name,
            "version": self.version,
            "downloadUrls": list(self.download_urls),
            "sha1": self.sha1,
            "fileSizeBytes": self.file_size_bytes,
            "environment": self.environment.value,
        }


@dataclass
class ModpackManifest:
    """
    远程整合包清单

    每次同步重新获取，不跨调用缓存。entries 只包含 mods/ 下的模组，
    其他文件（资源包、光影包等）放在 extra_files 中。
    """

    package_type: str
    selector: Selector
    version: str
    minecraft_version: str
    mod_loader: ModLoader = ModLoader.UNKNOWN
    mod_loader_version: Optional[str] = None
    entries: List[ManifestEntry] = field(default_factory=list)
    extra_files: List[ManifestEntry] = field(default_factory=list)
    overrides_roots: List[Path] = field(default_factory=list)
    server_profile: Optional[ServerProfile] = None
    name: str = ""

    def client_entries(self) -> List[ManifestEntry]:
        return [e for e in self.entries if e.environment.applies_to_client]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "packageType": self.package_type,
            "selector": str(self.selector),
            "version": self.version,
            "minecraftVersion": self.minecraft_version,
            "modLoader": self.mod_loader.value,
            "modLoaderVersion": self.mod_loader_version,
            "entries": [e.to_dict() for e in self.entries],
            "extraFiles": [e.to_dict() for e in self.extra_files],
        }
