"""
启动器注册表

在各平台的常见位置以及配置中指定的额外目录里查找已安装的启动器。
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from loguru import logger
from platformdirs import user_config_dir, user_data_dir

from modsync.exceptions import DetectionError
from modsync.launchers.table import LAUNCHER_TABLE
from modsync.models.launcher import LauncherInstallation, LauncherKind


@dataclass
class DiscoveryReport:
    """发现结果，按优先级排序"""

    installations: List[LauncherInstallation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def default_roots(kind: LauncherKind, home: Optional[Path] = None) -> List[Path]:
    """
    某类启动器在当前平台上的常见根目录

    Args:
        kind: 启动器类型
        home: 用户主目录（测试时可替换）
    """
    home = home or Path.home()
    names = LAUNCHER_TABLE[kind].dir_names
    roots: List[Path] = []

    for name in names:
        if name.startswith("."):
            # 点目录放在主目录下，Windows 上也可能在 %APPDATA%
            roots.append(home / name)
            if sys.platform == "win32":
                roots.append(Path(user_data_dir(name, appauthor=False, roaming=True)))
                roots.append(Path(user_config_dir(name, appauthor=False, roaming=True)))
        else:
            roots.append(Path(user_data_dir(name, appauthor=False, roaming=True)))
            if sys.platform.startswith("linux"):
                roots.append(home / ".local" / "share" / name)

    if kind is LauncherKind.OFFICIAL and sys.platform == "darwin":
        roots.append(home / "Library" / "Application Support" / "minecraft")
    if kind is LauncherKind.MULTIMC:
        roots.append(home / "MultiMC")

    unique: List[Path] = []
    for root in roots:
        if root not in unique:
            unique.append(root)
    return unique


class LauncherRegistry:
    """启动器注册表"""

    def __init__(
        self,
        extra_roots: Optional[Dict[str, List[Path]]] = None,
        include_defaults: bool = True,
        home: Optional[Path] = None,
    ):
        """
        Args:
            extra_roots: 启动器类型名 -> 额外根目录（来自配置 launcher_roots）
            include_defaults: 是否搜索平台默认位置
            home: 用户主目录
        """
        self.include_defaults = include_defaults
        self.home = home
        self.extra_roots: Dict[LauncherKind, List[Path]] = {}
        for name, paths in (extra_roots or {}).items():
            kind = self.find(name)
            if kind is None:
                logger.warning(f"[配置] 未知的启动器类型: {name}")
                continue
            self.extra_roots.setdefault(kind, []).extend(Path(p) for p in paths)

    @staticmethod
    def find(name: str) -> Optional[LauncherKind]:
        """把用户输入的名称映射为启动器类型"""
        return LauncherKind.from_name(name)

    def candidate_roots(self, kind: LauncherKind) -> List[Path]:
        roots = list(self.extra_roots.get(kind, []))
        if self.include_defaults:
            roots.extend(default_roots(kind, self.home))
        return roots

    def discover(self, kinds: Optional[Iterable[LauncherKind]] = None) -> DiscoveryReport:
        """
        发现已安装的启动器

        按优先级遍历启动器类型；同一根目录最多报告一次。
        标识文件损坏的根目录记入警告并跳过。
        """
        wanted = set(kinds) if kinds is not None else set(LauncherKind)
        report = DiscoveryReport()
        seen = set()

        for kind in LauncherKind:
            if kind not in wanted:
                continue
            spec = LAUNCHER_TABLE[kind]
            for root in self.candidate_roots(kind):
                key = _root_key(root)
                if key in seen or not root.is_dir():
                    continue
                try:
                    matched = spec.detect(root)
                except DetectionError as e:
                    logger.warning(f"[发现] 跳过 {kind.value} ({root}): {e}")
                    report.warnings.append(f"{kind.value} {root}: {e}")
                    continue
                if matched:
                    seen.add(key)
                    report.installations.append(LauncherInstallation(kind, root))
                    logger.info(f"[发现] {kind.value}: {root}")

        if not report.installations:
            logger.info("[发现] 未找到任何启动器")
        return report

    @staticmethod
    def select_default(
        installations: List[LauncherInstallation],
    ) -> Optional[LauncherInstallation]:
        """按优先级选择默认目标启动器"""
        order = list(LauncherKind)
        ranked = sorted(installations, key=lambda item: order.index(item.kind))
        return ranked[0] if ranked else None


def _root_key(root: Path) -> str:
    try:
        return str(root.resolve())
    except OSError:
        return str(root.absolute())


__all__ = ["DiscoveryReport", "LauncherRegistry", "default_roots"]
