"""
整合包清单获取服务

查询整合包信息接口，下载其中引用的 .mrpack，解析 modrinth.index.json
并解压 overrides 目录。每次同步都重新获取，不使用缓存。
"""

import asyncio
import io
import json
import zipfile
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse
from urllib.request import url2pathname

import aiofiles
import aiohttp
from loguru import logger

from modsync.catalog.normalizer import normalize, version_key
from modsync.config import ModSyncConfig
from modsync.exceptions import (
    ManifestFetchError,
    ManifestNetworkError,
    ManifestParseError,
)
from modsync.models.instance import ServerProfile
from modsync.models.launcher import ModLoader
from modsync.models.manifest import (
    Environment,
    ManifestEntry,
    ModpackManifest,
    Selector,
)

INDEX_FILE = "modrinth.index.json"
OVERRIDE_DIRS = ("overrides", "client-overrides")
MOD_SUFFIXES = (".jar",)

# mrpack dependencies 键 -> 加载器
LOADER_DEPENDENCIES = (
    ("neoforge", ModLoader.NEOFORGE),
    ("forge", ModLoader.FORGE),
    ("fabric-loader", ModLoader.FABRIC),
    ("quilt-loader", ModLoader.QUILT),
)


def _is_transient_status(status: int) -> bool:
    return status >= 500 or status == 429


def _safe_relative(path: str) -> Optional[PurePosixPath]:
    """拒绝绝对路径和包含 .. 的路径"""
    pure = PurePosixPath(path.replace("\\", "/"))
    if not path or pure.is_absolute() or ".." in pure.parts or ":" in pure.parts[0]:
        return None
    return pure


def _dedupe_mods(entries: List[ManifestEntry]) -> List[ManifestEntry]:
    """同一规范名只保留最高版本"""
    best: Dict[str, ManifestEntry] = {}
    for entry in entries:
        current = best.get(entry.canonical_name)
        if current is None or version_key(entry.version) > version_key(current.version):
            if current is not None:
                logger.debug(
                    f"[清单] 重复条目 {entry.canonical_name}: "
                    f"{current.filename} -> {entry.filename}"
                )
            best[entry.canonical_name] = entry
    return sorted(best.values(), key=lambda e: e.canonical_name)


def _extract_overrides(archive: zipfile.ZipFile, work_dir: Path) -> List[Path]:
    roots = []
    for dirname in OVERRIDE_DIRS:
        prefix = dirname + "/"
        members = [m for m in archive.infolist() if m.filename.startswith(prefix)]
        if not members:
            continue
        target_root = work_dir / dirname
        for member in members:
            relative = _safe_relative(member.filename[len(prefix):])
            if relative is None or member.is_dir():
                if relative is None and member.filename != prefix:
                    raise ManifestParseError(
                        f"不安全的 overrides 路径: {member.filename}",
                        context={"path": member.filename},
                    )
                continue
            target = target_root.joinpath(*relative.parts)
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member) as src, open(target, "wb") as dst:
                dst.write(src.read())
        target_root.mkdir(parents=True, exist_ok=True)
        roots.append(target_root)
    return roots


def _expect_dict(value: Any, label: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestParseError(f"{label} 不是对象", context={label: repr(value)[:80]})
    return value


def _parse_file(raw: Any) -> Optional[Tuple[ManifestEntry, bool]]:
    """
    解析 files 中的一项

    Returns:
        (条目, 是否为 mods/ 下的模组)，没有下载地址时返回 None
    """
    if not isinstance(raw, dict):
        raise ManifestParseError(f"files 中的条目不是对象: {raw!r}")
    relative = _safe_relative(str(raw.get("path", "")))
    if relative is None:
        raise ManifestParseError(
            f"不安全的文件路径: {raw.get('path')!r}", context={"path": raw.get("path")}
        )

    downloads = raw.get("downloads") or []
    if not isinstance(downloads, list):
        raise ManifestParseError(f"{relative} 的 downloads 不是数组")
    if not downloads:
        logger.warning(f"[清单] {relative} 没有下载地址，已忽略")
        return None

    hashes = _expect_dict(raw.get("hashes"), "hashes")
    try:
        file_size = int(raw.get("fileSize") or 0)
    except (TypeError, ValueError) as e:
        raise ManifestParseError(
            f"{relative} 的 fileSize 无效: {raw.get('fileSize')!r}"
        ) from e

    identity = normalize(relative.name)
    entry = ManifestEntry(
        relative_path=str(relative),
        canonical_name=identity.canonical_name,
        version=identity.version,
        download_urls=tuple(str(url) for url in downloads),
        sha1=str(hashes["sha1"]) if hashes.get("sha1") else None,
        file_size_bytes=file_size,
        environment=Environment.from_mrpack(_expect_dict(raw.get("env"), "env")),
    )
    is_mod = (
        len(relative.parts) == 2
        and relative.parts[0] == "mods"
        and relative.name.lower().endswith(MOD_SUFFIXES)
    )
    return entry, is_mod


def _parse_server_profile(info: Dict[str, Any]) -> Optional[ServerProfile]:
    if not (info.get("fingerprint") and info.get("server_ip")):
        return None
    try:
        port = int(info.get("server_port") or 25565)
    except (TypeError, ValueError) as e:
        raise ManifestParseError(
            f"server_port 无效: {info.get('server_port')!r}"
        ) from e
    return ServerProfile(
        fingerprint=str(info["fingerprint"]),
        server_ip=str(info["server_ip"]),
        server_port=port,
        server_name=str(info.get("server_name") or ""),
    )


def parse_mrpack(
    content: bytes,
    package_type: str,
    selector: Selector,
    work_dir: Path,
    info: Optional[Dict[str, Any]] = None,
) -> ModpackManifest:
    """
    解析 .mrpack 内容为清单

    Args:
        content: .mrpack 二进制内容
        package_type: 整合包类型
        selector: 版本选择器
        work_dir: overrides 解压目录
        info: 整合包信息接口返回的数据

    Raises:
        ManifestParseError: 压缩包或索引无法解析
    """
    info = info or {}
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            if INDEX_FILE not in archive.namelist():
                raise ManifestParseError(f"mrpack 中缺少 {INDEX_FILE}")
            index = json.loads(archive.read(INDEX_FILE).decode("utf-8"))
            if not isinstance(index, dict):
                raise ManifestParseError(f"{INDEX_FILE} 顶层不是对象")
            overrides_roots = _extract_overrides(archive, work_dir)
    except zipfile.BadZipFile as e:
        raise ManifestParseError(f"mrpack 不是有效的 zip 文件: {e}") from e
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestParseError(f"{INDEX_FILE} 解析失败: {e}") from e
    except OSError as e:
        raise ManifestFetchError(f"解压 overrides 失败: {e}") from e

    files = index.get("files") or []
    if not isinstance(files, list):
        raise ManifestParseError(f"{INDEX_FILE} 的 files 不是数组")

    mods: List[ManifestEntry] = []
    extra_files: List[ManifestEntry] = []
    for raw in files:
        parsed = _parse_file(raw)
        if parsed is None:
            continue
        entry, is_mod = parsed
        (mods if is_mod else extra_files).append(entry)

    dependencies = _expect_dict(index.get("dependencies"), "dependencies")
    mod_loader, mod_loader_version = ModLoader.VANILLA, None
    for key, loader in LOADER_DEPENDENCIES:
        if dependencies.get(key):
            mod_loader, mod_loader_version = loader, str(dependencies[key])
            break

    manifest = ModpackManifest(
        package_type=package_type,
        selector=selector,
        version=str(info.get("version") or index.get("versionId") or selector),
        minecraft_version=str(dependencies.get("minecraft") or "unknown"),
        mod_loader=mod_loader,
        mod_loader_version=mod_loader_version,
        entries=_dedupe_mods(mods),
        extra_files=extra_files,
        overrides_roots=overrides_roots,
        server_profile=_parse_server_profile(info),
        name=str(index.get("name") or info.get("server_name") or package_type),
    )
    logger.info(
        f"[清单] {manifest.name} {manifest.version}: {len(manifest.entries)} 个模组，"
        f"{len(manifest.extra_files)} 个其他文件"
    )
    return manifest


class ManifestFetcher:
    """整合包清单获取器"""

    def __init__(
        self,
        config: Optional[ModSyncConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config or ModSyncConfig()
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(
                    total=self.config.timeout, connect=self.config.connect_timeout
                ),
                headers={"User-Agent": self.config.user_agent},
            )
        return self._session

    def info_url(self, package_type: str, selector: Selector) -> str:
        """
        整合包信息接口地址

        latest 查询 {api}/{type}/，明确版本查询 {api}/{type}/{type}-{version}/
        """
        base = self.config.api_base_url.rstrip("/")
        if selector.is_latest:
            return f"{base}/{package_type}/"
        return f"{base}/{package_type}/{selector.tag_for(package_type)}/"

    async def _read_local(self, url: str) -> bytes:
        path = Path(url2pathname(urlparse(url).path))
        if path.is_dir():
            path = path / "index.json"
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise ManifestNetworkError(
                f"读取本地清单失败: {e}", context={"url": url}
            ) from e

    async def _get(self, url: str) -> bytes:
        """带重试的 GET，仅对连接错误、响应体中断、超时、429 和 5xx 重试"""
        if url.startswith("file://"):
            return await self._read_local(url)

        for attempt in range(self.config.max_retries + 1):
            try:
                async with self.session.get(url) as response:
                    if response.status == 200:
                        return await response.read()
                    error = ManifestNetworkError(
                        f"HTTP {response.status}",
                        context={"url": url, "status": response.status},
                    )
                    if not _is_transient_status(response.status):
                        raise error
            except (
                aiohttp.ClientConnectionError,
                aiohttp.ClientPayloadError,
                asyncio.TimeoutError,
            ) as e:
                error = ManifestNetworkError(
                    f"请求失败: {e or type(e).__name__}", context={"url": url}
                )
                error.__cause__ = e
            except aiohttp.ClientError as e:
                raise ManifestNetworkError(
                    f"请求失败: {e or type(e).__name__}", context={"url": url}
                ) from e

            if attempt < self.config.max_retries:
                delay = self.config.retry_delay * (2**attempt)
                logger.warning(
                    f"[重试] 获取 {url} 失败 (第 {attempt + 1} 次): {error}. "
                    f"{delay:.1f}s 后重试..."
                )
                await asyncio.sleep(delay)

        logger.error(f"[错误] 获取 {url} 最终失败: {error}")
        raise error

    async def fetch_info(self, package_type: str, selector: Selector) -> Dict[str, Any]:
        """获取整合包信息"""
        url = self.info_url(package_type, selector)
        logger.info(f"[清单] 查询 {package_type} ({selector}): {url}")
        content = await self._get(url)
        try:
            info = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ManifestParseError(
                f"整合包信息解析失败: {e}", context={"url": url}
            ) from e
        if not isinstance(info, dict):
            raise ManifestParseError("整合包信息不是对象", context={"url": url})
        info["_url"] = url
        return info

    async def fetch(
        self, package_type: str, selector: Selector, work_dir: Path
    ) -> ModpackManifest:
        """
        获取整合包清单

        Raises:
            ManifestFetchError: 网络或解析失败，对本次同步是致命的
        """
        info = await self.fetch_info(package_type, selector)
        mrpack_ref = info.get("latest_mrpack") or info.get("download_url")
        if not mrpack_ref:
            raise ManifestParseError(
                "整合包信息中缺少 mrpack 地址", context={"url": info["_url"]}
            )
        mrpack_url = urljoin(info["_url"], str(mrpack_ref))

        logger.info(f"[清单] 下载 mrpack: {mrpack_url}")
        content = await self._get(mrpack_url)
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        return await asyncio.to_thread(
            parse_mrpack, content, package_type, selector, work_dir, info
        )

    async def close(self):
        """关闭会话"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


__all__ = ["ManifestFetcher", "parse_mrpack"]
