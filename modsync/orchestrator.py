"""
主协调器

整合发现、清单获取、计划、执行和数据库同步，实现扫描、更新与安装流程。
"""

import asyncio
import tempfile
from pathlib import Path
from typing import List, Optional

from loguru import logger

from modsync.catalog.instances import InstanceCatalog
from modsync.config import ModSyncConfig
from modsync.download.manager import DownloadManager
from modsync.exceptions import ConfigError, DatabaseError, InstanceError
from modsync.launchers.creator import create_instance
from modsync.launchers.registry import LauncherRegistry
from modsync.models.instance import Instance
from modsync.models.launcher import LauncherKind, ModLoader
from modsync.models.manifest import ModpackManifest, Selector
from modsync.models.result import ScanReport, SyncResult
from modsync.services import database
from modsync.services.database import DatabaseSynchronizer
from modsync.services.executor import SyncExecutor
from modsync.services.manifest_fetcher import ManifestFetcher
from modsync.services.planner import plan

# 整合包类型 -> 可以接收该整合包的加载器
COMPATIBLE_LOADERS = {
    "neoforge": (ModLoader.NEOFORGE, ModLoader.FORGE),
    "forge": (ModLoader.FORGE,),
    "fabric": (ModLoader.FABRIC,),
    "quilt": (ModLoader.QUILT, ModLoader.FABRIC),
}


def should_update_instance(instance: Instance, package_type: str) -> bool:
    """实例的加载器是否与整合包类型匹配"""
    loaders = COMPATIBLE_LOADERS.get(package_type.lower())
    if loaders is None:
        loaders = (ModLoader.parse(package_type),)
    return instance.mod_loader in loaders


def _launcher_kinds(launcher: Optional[str]) -> Optional[List[LauncherKind]]:
    if not launcher:
        return None
    kind = LauncherKind.from_name(launcher)
    if kind is None:
        raise ConfigError(f"未知的启动器类型: {launcher}")
    return [kind]


async def _gather_or_cancel(*aws):
    """并发等待；任一失败时取消其余任务并等待其结束后再抛出"""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class ModSyncOrchestrator:
    """ModSync 主协调器"""

    def __init__(
        self,
        config: Optional[ModSyncConfig] = None,
        registry: Optional[LauncherRegistry] = None,
        fetcher: Optional[ManifestFetcher] = None,
        downloader: Optional[DownloadManager] = None,
    ):
        self.config = config or ModSyncConfig()
        self.registry = registry or LauncherRegistry(self.config.launcher_roots)
        self.catalog = InstanceCatalog(self.config.scan_workers)
        self.fetcher = fetcher or ManifestFetcher(self.config)
        self.downloader = downloader or DownloadManager.from_config(self.config)
        self.executor = SyncExecutor(self.downloader)
        self.database = DatabaseSynchronizer(self.config.database_timeout)

    async def scan(self, launcher: Optional[str] = None) -> ScanReport:
        """
        发现启动器并列出所有实例

        Args:
            launcher: 只扫描指定类型的启动器
        """
        discovery = await asyncio.to_thread(self.registry.discover, _launcher_kinds(launcher))
        report = await self.catalog.scan(discovery.installations)
        report.warnings[:0] = discovery.warnings
        logger.info(
            f"[扫描] 共 {len(discovery.installations)} 个启动器，"
            f"{len(report.instances)} 个实例"
        )
        return report

    async def update_instance(
        self,
        instance_path: Path,
        package_type: str,
        version: Optional[str] = None,
    ) -> SyncResult:
        """
        更新单个实例

        清单获取失败时在修改任何文件之前抛出 ManifestFetchError。
        """
        selector = Selector.parse(version)
        with tempfile.TemporaryDirectory(prefix="modsync-") as work_dir:
            manifest, (instance, warnings) = await _gather_or_cancel(
                self.fetcher.fetch(package_type, selector, Path(work_dir)),
                self.catalog.load_instance(Path(instance_path)),
            )
            result = await self._sync(instance, manifest)
        result.warnings[:0] = warnings
        return result

    async def install_instance(
        self,
        package_type: str,
        name: str,
        version: Optional[str] = None,
        launcher: Optional[str] = None,
    ) -> SyncResult:
        """
        在启动器中新建实例并安装整合包

        未指定启动器时按优先级选择已发现的第一个。清单获取失败时不创建
        任何目录。

        Raises:
            InstanceError: 没有可用的启动器、名称无效或实例已存在
        """
        selector = Selector.parse(version)
        discovery = await asyncio.to_thread(self.registry.discover, _launcher_kinds(launcher))
        installation = self.registry.select_default(discovery.installations)
        if installation is None:
            raise InstanceError(
                f"未找到可以创建实例的启动器: {launcher or '任意'}",
                context={"launcher": launcher},
            )

        with tempfile.TemporaryDirectory(prefix="modsync-") as work_dir:
            manifest = await self.fetcher.fetch(package_type, selector, Path(work_dir))
            if manifest.minecraft_version == "unknown":
                raise InstanceError(
                    f"整合包 {manifest.name} 没有声明 Minecraft 版本，无法创建实例"
                )
            instance_path = await asyncio.to_thread(create_instance, installation, name, manifest)
            instance, warnings = await self.catalog.open_instance(installation, instance_path)
            result = await self._sync(instance, manifest)
        result.warnings[:0] = discovery.warnings + warnings
        return result

    async def update_all(
        self,
        package_type: str,
        version: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[SyncResult]:
        """
        更新所有加载器匹配的实例

        实例依次处理；cancel_event 被设置后不再开始新的实例。
        """
        selector = Selector.parse(version)
        results: List[SyncResult] = []
        with tempfile.TemporaryDirectory(prefix="modsync-") as work_dir:
            manifest, report = await _gather_or_cancel(
                self.fetcher.fetch(package_type, selector, Path(work_dir)),
                self.scan(),
            )
            targets = [
                instance
                for instance in report.instances
                if should_update_instance(instance, package_type)
            ]
            logger.info(f"[更新] {len(targets)} 个实例与 {package_type} 匹配")

            for instance in targets:
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning("[更新] 已取消，剩余实例不再处理")
                    break
                results.append(await self._sync(instance, manifest))
        return results

    async def _sync(self, instance: Instance, manifest: ModpackManifest) -> SyncResult:
        logger.info(f"[更新] {instance.name} -> {manifest.name} {manifest.version}")
        update_plan = plan(instance.mods, manifest)
        result = await self.executor.execute(instance, update_plan, manifest)

        if (
            manifest.minecraft_version != "unknown"
            and instance.minecraft_version not in ("unknown", manifest.minecraft_version)
        ):
            result.warnings.append(
                f"实例的 Minecraft 版本 {instance.minecraft_version} 与整合包 "
                f"{manifest.minecraft_version} 不一致"
            )

        if database.applies_to(instance) and not result.errors:
            try:
                await asyncio.to_thread(self.database.sync, instance, manifest)
            except DatabaseError as e:
                logger.warning(f"[数据库] {instance.name}: {e}")
                result.warnings.append(str(e))
        return result

    async def close(self):
        await self.fetcher.close()
        await self.downloader.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


__all__ = ["ModSyncOrchestrator", "should_update_instance"]
