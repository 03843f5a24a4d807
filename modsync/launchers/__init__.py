"""
启动器发现层

包含启动器识别表、注册表和实例创建。
"""

from modsync.launchers.creator import create_instance
from modsync.launchers.registry import DiscoveryReport, LauncherRegistry
from modsync.launchers.table import LAUNCHER_TABLE, InstanceMetadata, LauncherSpec

__all__ = [
    "create_instance",
    "DiscoveryReport",
    "LauncherRegistry",
    "LAUNCHER_TABLE",
    "InstanceMetadata",
    "LauncherSpec",
]
