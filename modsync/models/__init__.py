"""
ModSync 数据模型包

包含启动器、实例、清单以及计划/结果模型定义。
"""

from modsync.models.launcher import (
    LauncherKind,
    LauncherInstallation,
    ModLoader,
)
from modsync.models.instance import (
    Instance,
    ModFile,
    ServerProfile,
)
from modsync.models.manifest import (
    LATEST,
    Environment,
    ManifestEntry,
    ModpackManifest,
    Selector,
)
from modsync.models.result import (
    ScanReport,
    SyncResult,
    UpdatePlan,
)

__all__ = [
    # 启动器
    "LauncherKind",
    "LauncherInstallation",
    "ModLoader",
    # 实例
    "Instance",
    "ModFile",
    "ServerProfile",
    # 清单
    "LATEST",
    "Environment",
    "ManifestEntry",
    "ModpackManifest",
    "Selector",
    # 计划与结果
    "ScanReport",
    "SyncResult",
    "UpdatePlan",
]
