"""
下载管理器

有界并发下载清单条目，下载后立即校验 SHA1。
连接错误、超时和 5xx 按指数退避重试；4xx 换下一个地址；
哈希不符直接判定该条目失败，不重试。
"""

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
from urllib.parse import urlparse
from urllib.request import url2pathname

import aiofiles
import aiohttp
from loguru import logger

from modsync.download.verifier import FileVerifier
from modsync.exceptions import (
    DownloadError,
    DownloadNetworkError,
    HashMismatchError,
)
from modsync.models.manifest import ManifestEntry

PART_SUFFIX = ".part"


@dataclass
class DownloadStats:
    """下载统计"""

    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0


@dataclass
class DownloadOutcome:
    """单个条目的下载结果"""

    entry: ManifestEntry
    target: Path
    error: Optional[DownloadError] = None

    @property
    def success(self) -> bool:
        return self.error is None


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        max_concurrent: int = 5,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        user_agent: Optional[str] = None,
    ):
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.verifier = FileVerifier()
        self.stats = DownloadStats()
        self._session = session
        self._owned_session = session is None
        self._timeout = timeout or aiohttp.ClientTimeout(total=300, connect=10)
        self._headers = {"User-Agent": user_agent} if user_agent else {}

    @classmethod
    def from_config(cls, config, session: Optional[aiohttp.ClientSession] = None):
        return cls(
            max_concurrent=config.max_concurrent,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            session=session,
            timeout=aiohttp.ClientTimeout(
                total=config.timeout, connect=config.connect_timeout
            ),
            user_agent=config.user_agent,
        )

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout, headers=self._headers
            )
        return self._session

    async def download_entry(self, entry: ManifestEntry, target: Path) -> Path:
        """
        下载单个条目到 target

        依次尝试条目的所有下载地址，第一个成功的生效。

        Raises:
            HashMismatchError: 下载内容与清单哈希不符
            DownloadError: 所有地址都失败
        """
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.stats.failed += 1
            raise DownloadError(
                f"无法创建目录: {e}", context={"file": entry.filename, "path": str(target.parent)}
            ) from e

        if entry.sha1 and await self.verifier.matches(target, entry.sha1):
            self.stats.skipped += 1
            logger.info(f"[跳过] '{entry.filename}' 已存在且校验通过")
            return target

        last_error: Optional[DownloadError] = None
        for url in entry.download_urls:
            try:
                await self._fetch_url(url, target, entry.filename)
            except HashMismatchError:
                raise
            except DownloadError as e:
                last_error = e
                logger.warning(f"[下载] '{entry.filename}' 地址不可用: {url} ({e})")
                continue

            if not await self.verifier.matches(target, entry.sha1):
                actual = await self.verifier.calc_sha1(target)
                target.unlink(missing_ok=True)
                self.stats.failed += 1
                raise HashMismatchError(
                    f"SHA1 校验失败: {entry.filename}",
                    context={
                        "file": entry.filename,
                        "expected": entry.sha1,
                        "actual": actual,
                        "url": url,
                    },
                )

            self.stats.completed += 1
            logger.success(f"[完成] '{entry.filename}' 下载完成")
            return target

        self.stats.failed += 1
        if last_error is None:
            last_error = DownloadError(
                f"没有可用的下载地址: {entry.filename}",
                context={"file": entry.filename},
            )
        logger.error(f"[错误] 下载 '{entry.filename}' 最终失败: {last_error}")
        raise last_error

    async def _fetch_url(self, url: str, target: Path, filename: str) -> None:
        """从单个地址下载，失败时不留下不完整的文件"""
        if url.startswith("file://"):
            await self._copy_local_file(url, target)
            return

        part = target.with_name(target.name + PART_SUFFIX)
        for attempt in range(self.max_retries + 1):
            try:
                await self._stream_to(url, part, filename)
                os.replace(part, target)
                return
            except DownloadNetworkError as e:
                part.unlink(missing_ok=True)
                if not e.context.get("transient", False):
                    raise
                error: DownloadError = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                part.unlink(missing_ok=True)
                error = DownloadNetworkError(
                    f"网络错误: {e or type(e).__name__}", context={"url": url}
                )
                error.__cause__ = e
            except OSError as e:
                part.unlink(missing_ok=True)
                raise DownloadError(
                    f"写入文件失败: {e}", context={"url": url, "file": str(target)}
                ) from e

            if attempt < self.max_retries:
                delay = self.retry_delay * (2**attempt)
                logger.warning(
                    f"[重试] 下载 '{filename}' 失败 (第 {attempt + 1} 次): {error}. "
                    f"{delay:.1f}s 后重试..."
                )
                await asyncio.sleep(delay)

        raise error

    async def _stream_to(self, url: str, part: Path, filename: str) -> None:
        async with self.session.get(url) as response:
            if response.status != 200:
                raise DownloadNetworkError(
                    f"HTTP {response.status}",
                    context={
                        "url": url,
                        "status": response.status,
                        "transient": response.status >= 500 or response.status == 429,
                    },
                )

            total_size = int(response.headers.get("Content-Length", 0))
            async with aiofiles.open(part, "wb") as f:
                downloaded = 0
                last_percent = 0.0
                async for chunk in response.content.iter_chunked(8192):
                    await f.write(chunk)
                    downloaded += len(chunk)
                    self.stats.bytes_downloaded += len(chunk)

                    if total_size > 0:
                        percent = (downloaded / total_size) * 100
                        if percent - last_percent >= 25:
                            logger.debug(f"[进度] {filename}: {percent:.1f}%")
                            last_percent = percent

    async def _copy_local_file(self, url: str, target: Path) -> None:
        """复制 file:// 地址指向的本地文件"""
        source = Path(url2pathname(urlparse(url).path))
        if not source.is_file():
            raise DownloadError(f"本地文件不存在: {source}", context={"url": url})
        try:
            await asyncio.to_thread(shutil.copyfile, source, target)
        except OSError as e:
            raise DownloadError(f"复制文件失败: {e}", context={"url": url}) from e
        logger.debug(f"[复制] 本地文件: {source.name}")

    async def download_all(
        self, items: List[Tuple[ManifestEntry, Path]]
    ) -> List[DownloadOutcome]:
        """
        并发下载多个条目，最多 max_concurrent 个同时进行

        单个条目失败不影响其他条目，结果顺序与输入一致。
        """
        if not items:
            return []

        self.stats.total += len(items)
        queue: asyncio.Queue = asyncio.Queue()
        for index, item in enumerate(items):
            queue.put_nowait((index, item))
        outcomes: List[Optional[DownloadOutcome]] = [None] * len(items)

        async def worker():
            while True:
                try:
                    index, (entry, target) = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    await self.download_entry(entry, target)
                    outcomes[index] = DownloadOutcome(entry, target)
                except DownloadError as e:
                    outcomes[index] = DownloadOutcome(entry, target, e)
                finally:
                    queue.task_done()

        worker_count = min(self.max_concurrent, len(items))
        logger.info(f"[下载] {len(items)} 个文件，并发数 {worker_count}")
        await asyncio.gather(*(worker() for _ in range(worker_count)))
        failed = sum(1 for outcome in outcomes if outcome is not None and not outcome.success)
        logger.info(
            f"[下载] 本批 {len(items) - failed} 成功，{failed} 失败；"
            f"累计 {self.stats.completed} 完成，{self.stats.skipped} 跳过，"
            f"{self.stats.bytes_downloaded} 字节"
        )
        return [outcome for outcome in outcomes if outcome is not None]

    async def close(self):
        """关闭会话"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
