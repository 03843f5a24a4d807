"""
计划与结果模型
"""

from dataclasses import dataclass, field
from typing import Dict, List

from modsync.models.instance import Instance, ModFile
from modsync.models.manifest import ManifestEntry


@dataclass
class UpdatePlan:
    """
    更新计划

    每个现有模组文件恰好出现在 to_remove 或 to_preserve 之一中。
    replacements 记录被某个下载条目替换的旧文件（按规范名索引）。
    """

    to_remove: List[ModFile] = field(default_factory=list)
    to_download: List[ManifestEntry] = field(default_factory=list)
    to_preserve: List[ModFile] = field(default_factory=list)
    replacements: Dict[str, ModFile] = field(default_factory=dict)
    ambiguous: List[ModFile] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """没有删除也没有下载"""
        return not self.to_remove and not self.to_download

    def summary(self) -> str:
        return (
            f"删除 {len(self.to_remove)} / 下载 {len(self.to_download)} / "
            f"保留 {len(self.to_preserve)}"
        )


@dataclass
class SyncResult:
    """单个实例的同步结果"""

    instance_name: str
    instance_path: str
    success: bool = True
    message: str = ""
    updated_mods: List[str] = field(default_factory=list)
    new_mods: List[str] = field(default_factory=list)
    removed_mods: List[str] = field(default_factory=list)
    preserved_count: int = 0
    failed_mods: List[str] = field(default_factory=list)
    ambiguous_mods: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def finalize(self) -> "SyncResult":
        """根据失败与错误计算 success 和 message"""
        self.success = not self.errors and not self.failed_mods
        if self.success:
            self.message = (
                f"更新了 {len(self.updated_mods)} 个模组，新增 {len(self.new_mods)} 个，"
                f"保留 {self.preserved_count} 个"
            )
        else:
            self.message = (
                f"更新部分完成：{len(self.failed_mods)} 个模组失败，"
                f"{len(self.errors)} 个错误"
            )
        return self

    def to_dict(self) -> dict:
        return {
            "instanceName": self.instance_name,
            "instancePath": self.instance_path,
            "success": self.success,
            "message": self.message,
            "updatedMods": list(self.updated_mods),
            "newMods": list(self.new_mods),
            "removedMods": list(self.removed_mods),
            "preservedCount": self.preserved_count,
            "failedMods": list(self.failed_mods),
            "ambiguousMods": list(self.ambiguous_mods),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


@dataclass
class ScanReport:
    """扫描结果，包括跳过的启动器/实例的警告"""

    instances: List[Instance] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_list(self) -> List[dict]:
        return [instance.to_dict() for instance in self.instances]
