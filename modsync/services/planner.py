"""
同步计划

纯函数：根据当前模组清单和远程清单计算 UpdatePlan，不做任何 I/O。
"""

from dataclasses import replace
from typing import Dict, List, Sequence

from loguru import logger

from modsync.models.instance import ModFile
from modsync.models.manifest import ManifestEntry, ModpackManifest
from modsync.models.result import UpdatePlan


def _newest_first(files: List[ModFile]) -> List[ModFile]:
    # 修改时间相同时按文件名排序，保证结果确定
    return sorted(files, key=lambda m: (-m.last_modified, m.raw_filename))


def plan(inventory: Sequence[ModFile], manifest: ModpackManifest) -> UpdatePlan:
    """
    计算更新计划

    1. 清单中没有的模组是用户模组，保留。
    2. 规范名和版本都与清单一致的模组保留，不重复下载。
    3. 版本不同的模组删除，并下载清单中的版本。
    4. 清单中在实例里找不到的条目加入下载。

    同一规范名有多个文件时，只把最近修改的那个当作当前版本，其余作为
    重复文件删除；但用户模组的重复文件不会被删除。复合文件名总是保留。

    Args:
        inventory: 实例当前的模组文件
        manifest: 远程清单

    Returns:
        UpdatePlan，其中每个文件的 is_user_mod 已根据清单计算
    """
    wanted: Dict[str, ManifestEntry] = {
        entry.canonical_name: entry for entry in manifest.client_entries()
    }
    result = UpdatePlan()
    satisfied = set()
    groups: Dict[str, List[ModFile]] = {}

    for mod in inventory:
        managed = mod.canonical_name in wanted
        mod = replace(mod, is_user_mod=not managed)
        if mod.is_compound:
            result.to_preserve.append(mod)
            if managed and wanted[mod.canonical_name].version == mod.version:
                satisfied.add(mod.canonical_name)
            else:
                result.ambiguous.append(mod)
            continue
        groups.setdefault(mod.canonical_name, []).append(mod)

    for name, files in groups.items():
        current, *duplicates = _newest_first(files)
        entry = wanted.get(name)

        if entry is None:
            result.to_preserve.extend([current, *duplicates])
            continue

        if current.version == entry.version:
            result.to_preserve.append(current)
            satisfied.add(name)
        else:
            result.to_remove.append(current)
            result.replacements[name] = current

        for duplicate in duplicates:
            logger.debug(f"[计划] 重复文件 {duplicate.raw_filename} 将被删除")
            result.to_remove.append(duplicate)

    result.to_download = [
        entry for name, entry in wanted.items() if name not in satisfied
    ]

    logger.info(f"[计划] {result.summary()}")
    return result


__all__ = ["plan"]
