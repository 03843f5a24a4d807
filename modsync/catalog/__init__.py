"""
实例与模组目录

包含实例枚举和模组文件名规范化。
"""

from modsync.catalog.instances import InstanceCatalog, read_mods_dir
from modsync.catalog.normalizer import ModIdentity, normalize, version_key

__all__ = [
    "InstanceCatalog",
    "ModIdentity",
    "normalize",
    "read_mods_dir",
    "version_key",
]
