"""
同步执行器

按顺序把 UpdatePlan 应用到实例：

1. 并发下载到暂存目录，每个文件下载后立即校验
2. 删除 to_remove 中的文件（替代文件下载失败的旧文件保留）
3. 把暂存的文件移动到 mods/
4. 放置清单中的其他文件并覆盖 overrides
5. 刷新 automodpack 服务器信息

第 2-5 步出现 FileSystemError 时中止当前实例剩余步骤，已完成的修改不回滚。
"""

import asyncio
import os
import shutil
from pathlib import Path
from typing import Dict, List

from loguru import logger

from modsync.download.manager import DownloadManager
from modsync.download.verifier import FileVerifier
from modsync.exceptions import FileSystemError
from modsync.models.instance import Instance, ModFile
from modsync.models.manifest import ManifestEntry, ModpackManifest
from modsync.models.result import SyncResult, UpdatePlan
from modsync.services.server_profile import write_server_profile

STAGING_DIR = ".modsync-staging"


class SyncExecutor:
    """同步执行器"""

    def __init__(self, downloader: DownloadManager):
        self.downloader = downloader

    async def execute(
        self, instance: Instance, plan: UpdatePlan, manifest: ModpackManifest
    ) -> SyncResult:
        """
        应用更新计划

        Returns:
            SyncResult，记录更新、新增、删除、保留和失败的模组
        """
        result = SyncResult(
            instance_name=instance.name,
            instance_path=str(instance.instance_path),
            preserved_count=len(plan.to_preserve),
            ambiguous_mods=[mod.raw_filename for mod in plan.ambiguous],
        )
        for mod in plan.ambiguous:
            result.warnings.append(f"无法确定归属的复合文件名，已保留: {mod.raw_filename}")

        staging = instance.game_dir / STAGING_DIR
        try:
            try:
                staging.mkdir(parents=True, exist_ok=True)
                instance.mods_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FileSystemError(
                    f"无法创建目录: {e}", context={"path": str(staging)}
                ) from e

            staged = await self._stage(plan.to_download, staging, result)
            await self._remove(plan, staged, result)
            await self._install(staged, plan, instance, result)
            await self._apply_extras(manifest, instance.game_dir, result)
            await self._refresh_server_profile(instance, manifest, result)
        except FileSystemError as e:
            logger.error(f"[同步] {instance.name}: {e}，中止剩余步骤")
            result.errors.append(str(e))
        finally:
            self._cleanup(staging, result)

        result.finalize()
        logger.info(f"[同步] {instance.name}: {result.message}")
        return result

    async def _stage(
        self, entries: List[ManifestEntry], staging: Path, result: SyncResult
    ) -> Dict[str, Path]:
        """下载到暂存目录，返回 规范名 -> 暂存文件"""
        items = [(entry, staging / entry.filename) for entry in entries]
        outcomes = await self.downloader.download_all(items)

        staged: Dict[str, Path] = {}
        for outcome in outcomes:
            if outcome.success:
                staged[outcome.entry.canonical_name] = outcome.target
            else:
                result.failed_mods.append(outcome.entry.filename)
                result.warnings.append(f"{outcome.entry.filename}: {outcome.error}")
        return staged

    async def _remove(
        self, plan: UpdatePlan, staged: Dict[str, Path], result: SyncResult
    ) -> None:
        downloading = {entry.canonical_name for entry in plan.to_download}
        for mod in plan.to_remove:
            name = mod.canonical_name
            if (
                name in downloading
                and name not in staged
                and plan.replacements.get(name) is mod
            ):
                # 替代文件没有下载成功，保留旧版本
                logger.warning(f"[保留] {mod.raw_filename}：新版本下载失败")
                result.preserved_count += 1
                continue

            await asyncio.to_thread(self._unlink, mod)
            result.removed_mods.append(mod.raw_filename)
            logger.info(f"[删除] {mod.raw_filename}")

    @staticmethod
    def _unlink(mod: ModFile) -> None:
        if mod.path is None:
            raise FileSystemError(f"缺少文件路径: {mod.raw_filename}")
        try:
            mod.path.unlink()
        except FileNotFoundError:
            logger.debug(f"[删除] {mod.raw_filename} 已不存在")
        except OSError as e:
            raise FileSystemError(
                f"删除 {mod.raw_filename} 失败: {e}", context={"path": str(mod.path)}
            ) from e

    async def _install(
        self,
        staged: Dict[str, Path],
        plan: UpdatePlan,
        instance: Instance,
        result: SyncResult,
    ) -> None:
        for name, source in staged.items():
            target = instance.mods_dir / source.name
            try:
                await asyncio.to_thread(os.replace, source, target)
            except OSError as e:
                raise FileSystemError(
                    f"安装 {source.name} 失败: {e}", context={"path": str(target)}
                ) from e

            if name in plan.replacements:
                result.updated_mods.append(source.name)
                logger.info(f"[更新] {plan.replacements[name].raw_filename} -> {source.name}")
            else:
                result.new_mods.append(source.name)
                logger.info(f"[新增] {source.name}")

    async def _apply_extras(
        self, manifest: ModpackManifest, game_dir: Path, result: SyncResult
    ) -> None:
        """放置缺失或不一致的其他文件，然后覆盖 overrides"""
        pending = []
        for entry in manifest.extra_files:
            if not entry.environment.applies_to_client:
                continue
            target = game_dir.joinpath(*entry.relative_path.split("/"))
            if entry.sha1 and await FileVerifier.matches(target, entry.sha1):
                continue
            if not entry.sha1 and target.exists():
                continue
            pending.append((entry, target))

        for outcome in await self.downloader.download_all(pending):
            if not outcome.success:
                result.failed_mods.append(outcome.entry.relative_path)
                result.warnings.append(f"{outcome.entry.relative_path}: {outcome.error}")

        for root in manifest.overrides_roots:
            try:
                await asyncio.to_thread(
                    shutil.copytree, root, game_dir, dirs_exist_ok=True
                )
            except (OSError, shutil.Error) as e:
                raise FileSystemError(
                    f"应用 overrides 失败: {e}", context={"source": str(root)}
                ) from e
            logger.info(f"[覆盖] 已应用 {root.name}")

    async def _refresh_server_profile(
        self, instance: Instance, manifest: ModpackManifest, result: SyncResult
    ) -> None:
        if not instance.has_automodpack or manifest.server_profile is None:
            return
        await write_server_profile(instance.game_dir, manifest.server_profile)
        instance.server_profile = manifest.server_profile

    @staticmethod
    def _cleanup(staging: Path, result: SyncResult) -> None:
        if not staging.exists():
            return
        try:
            shutil.rmtree(staging)
        except OSError as e:
            logger.warning(f"[清理] 无法删除暂存目录 {staging}: {e}")
            result.warnings.append(f"无法删除暂存目录 {staging}: {e}")


__all__ = ["SyncExecutor", "STAGING_DIR"]
