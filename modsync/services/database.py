"""
启动器数据库同步

AstralRinth 和 Modrinth App 在 <launcher_root>/app.db 的 profiles 表中
记录实例的游戏版本和加载器。同步完成后更新对应行，没有则插入。
每次同步单独打开连接，在一个事务内完成，任何情况下都会释放。
"""

import time
from pathlib import Path
from typing import Dict, Optional

from loguru import logger
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from modsync.exceptions import DatabaseError
from modsync.models.instance import Instance
from modsync.models.launcher import LauncherKind
from modsync.models.manifest import ModpackManifest

DATABASE_FILE = "app.db"
PROFILES_TABLE = "profiles"
DATABASE_KINDS = frozenset({LauncherKind.ASTRAL_RINTH, LauncherKind.MODRINTH_APP})


def applies_to(instance: Instance) -> bool:
    return instance.launcher_kind in DATABASE_KINDS


def database_path(instance: Instance) -> Optional[Path]:
    if instance.launcher_root is None:
        return None
    return instance.launcher_root / DATABASE_FILE


class DatabaseSynchronizer:
    """启动器数据库同步器"""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    def sync(self, instance: Instance, manifest: ModpackManifest) -> bool:
        """
        更新实例对应的 profiles 行

        Returns:
            True 表示更新了已有行，False 表示插入了新行

        Raises:
            DatabaseError: 数据库缺失、被锁定或表结构不符
        """
        db_path = database_path(instance)
        if db_path is None or not db_path.is_file():
            raise DatabaseError(
                f"启动器数据库不存在: {db_path}",
                context={"instance": instance.name, "path": str(db_path)},
            )

        profile_key = instance.instance_path.name
        now_ms = int(time.time() * 1000)
        values = {
            "mod_loader": manifest.mod_loader.value,
            "mod_loader_version": manifest.mod_loader_version,
            "modified": now_ms,
        }
        if manifest.minecraft_version != "unknown":
            values["game_version"] = manifest.minecraft_version

        engine = create_engine(
            f"sqlite+pysqlite:///{db_path}",
            connect_args={"timeout": self.timeout},
        )
        try:
            columns = self._columns(engine)
            updates = {k: v for k, v in values.items() if k in columns}
            if not updates:
                raise DatabaseError(f"{PROFILES_TABLE} 表中没有可更新的版本列")
            with engine.begin() as conn:
                assignments = ", ".join(f"{k} = :{k}" for k in updates)
                updated = conn.execute(
                    text(f"UPDATE {PROFILES_TABLE} SET {assignments} WHERE path = :path"),
                    {**updates, "path": profile_key},
                ).rowcount
                if updated:
                    logger.info(f"[数据库] 已更新 {profile_key}: {manifest.minecraft_version}")
                    return True

                row = self._new_row(instance, profile_key, values, columns)
                names = ", ".join(row)
                params = ", ".join(f":{k}" for k in row)
                conn.execute(
                    text(f"INSERT OR REPLACE INTO {PROFILES_TABLE} ({names}) VALUES ({params})"),
                    row,
                )
                logger.info(f"[数据库] 已插入 {profile_key}")
                return False
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"数据库操作失败: {e.__class__.__name__}: {e}",
                context={"instance": instance.name, "path": str(db_path)},
            ) from e
        finally:
            engine.dispose()

    @staticmethod
    def _columns(engine) -> set:
        inspector = inspect(engine)
        if not inspector.has_table(PROFILES_TABLE):
            raise DatabaseError(f"数据库中没有 {PROFILES_TABLE} 表")
        columns = {column["name"] for column in inspector.get_columns(PROFILES_TABLE)}
        if "path" not in columns:
            raise DatabaseError(f"{PROFILES_TABLE} 表缺少 path 列")
        return columns

    @staticmethod
    def _new_row(
        instance: Instance, profile_key: str, values: Dict, columns: set
    ) -> Dict:
        row = {
            "path": profile_key,
            "name": instance.name,
            "install_stage": "installed",
            "created": values["modified"],
            "groups": "[]",
            "override_extra_launch_args": "[]",
            "override_custom_env_vars": "{}",
            "game_version": instance.minecraft_version,
            **values,
        }
        return {k: v for k, v in row.items() if k in columns}


__all__ = ["DatabaseSynchronizer", "applies_to", "database_path"]
