"""
ModSync 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, Optional


class ModSyncError(Exception):
    """ModSync 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(ModSyncError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class DetectionError(ModSyncError):
    """启动器标识文件不可读或格式错误，该类启动器会被跳过"""

    def _get_default_code(self) -> str:
        return "E200"


class InstanceError(ModSyncError):
    """实例目录无法识别或读取"""

    def _get_default_code(self) -> str:
        return "E210"


class ManifestFetchError(ModSyncError):
    """清单获取失败，对整个同步操作是致命的"""

    def _get_default_code(self) -> str:
        return "E300"


class ManifestNetworkError(ManifestFetchError):
    """清单网络请求失败"""

    def _get_default_code(self) -> str:
        return "E301"


class ManifestParseError(ManifestFetchError):
    """清单内容无法解析"""

    def _get_default_code(self) -> str:
        return "E302"


class DownloadError(ModSyncError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E400"


class DownloadNetworkError(DownloadError):
    """下载网络错误（可重试）"""

    def _get_default_code(self) -> str:
        return "E401"


class HashMismatchError(DownloadError):
    """下载文件的 SHA1 与清单不符，只标记该文件失败，不重试"""

    def _get_default_code(self) -> str:
        return "E402"


class FileSystemError(ModSyncError):
    """文件系统错误，中止当前实例的剩余步骤"""

    def _get_default_code(self) -> str:
        return "E500"


class DatabaseError(ModSyncError):
    """启动器数据库缺失、被锁定或结构不符，非致命"""

    def _get_default_code(self) -> str:
        return "E600"


__all__ = [
    # 基础异常
    "ModSyncError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    # 发现异常
    "DetectionError",
    "InstanceError",
    # 清单异常
    "ManifestFetchError",
    "ManifestNetworkError",
    "ManifestParseError",
    # 下载异常
    "DownloadError",
    "DownloadNetworkError",
    "HashMismatchError",
    # 同步异常
    "FileSystemError",
    "DatabaseError",
]
