"""
ModSync 服务层

包含清单获取、同步计划、同步执行、数据库同步和服务器信息读写。
"""

from modsync.services.database import DatabaseSynchronizer
from modsync.services.executor import SyncExecutor
from modsync.services.manifest_fetcher import ManifestFetcher
from modsync.services.planner import plan

__all__ = [
    "DatabaseSynchronizer",
    "ManifestFetcher",
    "SyncExecutor",
    "plan",
]
