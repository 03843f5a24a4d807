"""
文件校验

计算并比对 SHA1，清单中没有哈希时视为校验通过。
"""

import hashlib
from pathlib import Path
from typing import Optional

import aiofiles

CHUNK_SIZE = 64 * 1024


class FileVerifier:
    """文件校验器"""

    @staticmethod
    async def calc_sha1(file_path: Path) -> Optional[str]:
        """
        计算文件的 SHA1

        Returns:
            十六进制摘要，文件不存在时为 None
        """
        if not file_path.is_file():
            return None

        sha1 = hashlib.sha1()
        async with aiofiles.open(file_path, "rb") as f:
            while True:
                data = await f.read(CHUNK_SIZE)
                if not data:
                    break
                sha1.update(data)
        return sha1.hexdigest()

    @staticmethod
    async def matches(file_path: Path, expected_sha1: Optional[str]) -> bool:
        """文件存在且哈希与预期一致（不区分大小写）"""
        if not file_path.is_file():
            return False
        if not expected_sha1:
            return True
        actual = await FileVerifier.calc_sha1(file_path)
        return actual is not None and actual.lower() == expected_sha1.strip().lower()
