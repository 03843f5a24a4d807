"""
启动器数据模型
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class LauncherKind(Enum):
    """
    支持的启动器类型

    声明顺序即默认目标的优先级顺序。
    """

    ASTRAL_RINTH = "AstralRinth"
    MODRINTH_APP = "ModrinthApp"
    PRISM = "PrismLauncher"
    XMCL = "XMCL"
    OFFICIAL = "Official"
    MULTIMC = "MultiMC"
    PRISM_CRACKED = "PrismLauncher-Cracked"
    ATLAUNCHER = "ATLauncher"

    @classmethod
    def from_name(cls, name: str) -> Optional["LauncherKind"]:
        """将用户输入的启动器名称映射为类型"""
        key = name.strip().lower().replace("_", "").replace(" ", "")
        return _ALIASES.get(key)


_ALIASES = {
    "astralrinth": LauncherKind.ASTRAL_RINTH,
    "astralrinthapp": LauncherKind.ASTRAL_RINTH,
    "modrinth": LauncherKind.MODRINTH_APP,
    "modrinthapp": LauncherKind.MODRINTH_APP,
    "prism": LauncherKind.PRISM,
    "prismlauncher": LauncherKind.PRISM,
    "prismcracked": LauncherKind.PRISM_CRACKED,
    "prism-cracked": LauncherKind.PRISM_CRACKED,
    "prismlauncher-cracked": LauncherKind.PRISM_CRACKED,
    "xmcl": LauncherKind.XMCL,
    "official": LauncherKind.OFFICIAL,
    "multimc": LauncherKind.MULTIMC,
    "atlauncher": LauncherKind.ATLAUNCHER,
}


class ModLoader(Enum):
    """模组加载器"""

    FABRIC = "fabric"
    FORGE = "forge"
    NEOFORGE = "neoforge"
    QUILT = "quilt"
    VANILLA = "vanilla"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ModLoader":
        if not value:
            return cls.UNKNOWN
        text = value.strip().lower()
        # neoforge 必须在 forge 之前判断
        for loader in (cls.NEOFORGE, cls.FORGE, cls.FABRIC, cls.QUILT, cls.VANILLA):
            if loader.value in text:
                return loader
        return cls.UNKNOWN


@dataclass(frozen=True)
class LauncherInstallation:
    """已发现的启动器安装（每次运行重新发现，不持久化）"""

    kind: LauncherKind
    root_path: Path

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "rootPath": str(self.root_path)}
