"""
实例目录

枚举启动器中的实例，读取实例元数据和 mods 目录。
"""

import asyncio
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger

from modsync.catalog.normalizer import normalize
from modsync.exceptions import DetectionError, InstanceError
from modsync.launchers.table import (
    LAUNCHER_TABLE,
    classify_instance_dir,
    infer_from_name,
    launcher_root_for,
)
from modsync.models.instance import Instance, ModFile
from modsync.models.launcher import LauncherInstallation, LauncherKind
from modsync.models.result import ScanReport
from modsync.services.server_profile import has_automodpack, read_server_profile

MOD_GLOB = "*.jar"


def read_mods_dir(mods_dir: Path) -> List[ModFile]:
    """
    列出 mods 目录中的 .jar 文件

    已禁用的模组 (.jar.disabled) 不计入。目录不存在时返回空列表。
    """
    if not mods_dir.is_dir():
        return []

    mods = []
    try:
        for path in sorted(mods_dir.glob(MOD_GLOB)):
            if not path.is_file():
                continue
            stat = path.stat()
            identity = normalize(path.name)
            mods.append(
                ModFile(
                    raw_filename=path.name,
                    canonical_name=identity.canonical_name,
                    version=identity.version,
                    file_size_bytes=stat.st_size,
                    last_modified=stat.st_mtime,
                    is_compound=identity.is_compound,
                    path=path,
                )
            )
    except OSError as e:
        raise InstanceError(
            f"无法读取 mods 目录: {e}", context={"path": str(mods_dir)}
        ) from e
    return mods


def _build_instance(
    kind: LauncherKind, root: Optional[Path], instance_path: Path
) -> Tuple[Instance, List[str]]:
    spec = LAUNCHER_TABLE[kind]
    warnings: List[str] = []

    try:
        metadata = spec.read_metadata(instance_path, root or instance_path)
    except InstanceError as e:
        if root is not None:
            raise
        # 直接指定的路径可能不在启动器目录结构内
        logger.warning(f"[实例] {instance_path}: {e}，从目录名推断")
        warnings.append(str(e))
        metadata = infer_from_name(instance_path.name)

    game_dir = spec.game_dir(instance_path)
    server_profile = None
    automodpack = has_automodpack(game_dir)
    if automodpack:
        try:
            server_profile = read_server_profile(game_dir)
        except InstanceError as e:
            logger.warning(f"[实例] {metadata.name}: {e}")
            warnings.append(f"{metadata.name}: {e}")

    instance = Instance(
        name=metadata.name,
        launcher_kind=kind,
        instance_path=instance_path,
        game_dir=game_dir,
        minecraft_version=metadata.minecraft_version,
        mod_loader=metadata.mod_loader,
        mod_loader_version=metadata.mod_loader_version,
        mods=read_mods_dir(game_dir / "mods"),
        has_automodpack=automodpack,
        server_profile=server_profile,
        launcher_root=root,
    )
    return instance, warnings


class InstanceCatalog:
    """实例目录"""

    def __init__(self, scan_workers: int = 8):
        self.scan_workers = scan_workers
        self._semaphore: Optional[asyncio.Semaphore] = None

    @property
    def semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.scan_workers)
        return self._semaphore

    async def list_instances(self, installation: LauncherInstallation) -> ScanReport:
        """
        枚举某个启动器安装下的实例

        读取失败的实例记为警告，不影响其他实例。
        """
        spec = LAUNCHER_TABLE[installation.kind]
        report = ScanReport()
        label = f"{installation.kind.value} {installation.root_path}"

        try:
            paths = await asyncio.to_thread(spec.enumerate, installation.root_path)
        except (InstanceError, OSError) as e:
            logger.warning(f"[扫描] 无法枚举 {label}: {e}")
            report.warnings.append(f"{label}: {e}")
            return report

        async def load(path: Path):
            async with self.semaphore:
                return await asyncio.to_thread(
                    _build_instance, installation.kind, installation.root_path, path
                )

        results = await asyncio.gather(
            *(load(path) for path in paths), return_exceptions=True
        )
        for path, result in zip(paths, results):
            if isinstance(result, (InstanceError, OSError)):
                logger.warning(f"[扫描] 跳过实例 {path}: {result}")
                report.warnings.append(f"{path}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                instance, warnings = result
                report.instances.append(instance)
                report.warnings.extend(warnings)

        logger.info(f"[扫描] {label}: {len(report.instances)} 个实例")
        return report

    async def read_inventory(self, instance: Instance) -> List[ModFile]:
        """重新读取实例的 mods 目录"""
        mods = await asyncio.to_thread(read_mods_dir, instance.mods_dir)
        instance.mods = mods
        return mods

    async def load_instance(self, instance_path: Path) -> Tuple[Instance, List[str]]:
        """
        根据实例目录自身的布局构建 Instance

        Returns:
            (实例, 警告)。元数据读取失败时从目录名推断，并在警告中说明

        Raises:
            InstanceError: 路径不存在或无法识别
        """
        path = Path(instance_path).expanduser()
        if not path.is_dir():
            raise InstanceError(f"实例目录不存在: {path}", context={"path": str(path)})

        # 允许直接指定 Prism/MultiMC 实例内的游戏目录
        if path.name in (".minecraft", "minecraft") and (path.parent / "instance.cfg").exists():
            path = path.parent

        kind = classify_instance_dir(path)
        if kind is None:
            raise InstanceError(f"无法识别实例目录结构: {path}", context={"path": str(path)})

        root: Optional[Path] = launcher_root_for(kind, path)
        root_warnings: List[str] = []
        try:
            if not LAUNCHER_TABLE[kind].detect(root):
                root = None
        except DetectionError as e:
            logger.warning(f"[实例] 启动器根目录 {root} 无法识别: {e}")
            root_warnings.append(f"启动器根目录 {root} 无法识别: {e}")
            root = None

        instance, warnings = await asyncio.to_thread(_build_instance, kind, root, path)
        logger.info(f"[实例] {instance.name} ({kind.value}, {instance.mod_loader.value})")
        return instance, root_warnings + warnings

    async def open_instance(
        self, installation: LauncherInstallation, instance_path: Path
    ) -> Tuple[Instance, List[str]]:
        """读取已知启动器安装下的一个实例"""
        return await asyncio.to_thread(
            _build_instance, installation.kind, installation.root_path, instance_path
        )

    async def scan(self, installations: List[LauncherInstallation]) -> ScanReport:
        """并发枚举多个启动器安装下的实例"""
        reports = await asyncio.gather(
            *(self.list_instances(installation) for installation in installations)
        )
        merged = ScanReport()
        for report in reports:
            merged.instances.extend(report.instances)
            merged.warnings.extend(report.warnings)
        return merged


__all__ = ["InstanceCatalog", "read_mods_dir"]
