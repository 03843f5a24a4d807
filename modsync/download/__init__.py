"""
ModSync 下载层

包含下载管理和文件校验。
"""

from modsync.download.manager import DownloadManager, DownloadOutcome, DownloadStats
from modsync.download.verifier import FileVerifier

__all__ = [
    "DownloadManager",
    "DownloadOutcome",
    "DownloadStats",
    "FileVerifier",
]
