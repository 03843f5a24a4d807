import time
from collections import Counter

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from modsync.config import ModSyncConfig
from modsync.download.manager import PART_SUFFIX, DownloadManager
from modsync.exceptions import DownloadError, DownloadNetworkError, ManifestNetworkError
from modsync.models import Selector
from modsync.services.manifest_fetcher import ManifestFetcher
from tests.helpers import build_mrpack, make_entry, sha1_of


def jar_bytes(name):
    return f"jar:{name}".encode()


def make_app(hits: Counter) -> web.Application:
    async def flaky(request):
        # 前 n 次返回 503
        hits[request.path] += 1
        if hits[request.path] <= int(request.match_info["n"]):
            return web.Response(status=503)
        return web.Response(body=jar_bytes(request.match_info["name"]))

    async def missing(request):
        hits[request.path] += 1
        return web.Response(status=404)

    async def ok(request):
        hits[request.path] += 1
        return web.Response(body=jar_bytes(request.match_info["name"]))

    async def pack_info(request):
        hits[request.path] += 1
        if hits[request.path] == 1:
            return web.Response(status=502)
        return web.json_response({"version": "1.0.0", "latest_mrpack": "fabric.mrpack"})

    async def truncated_info(request):
        hits[request.path] += 1
        if hits[request.path] == 1:
            response = web.StreamResponse(headers={"Content-Length": "1000"})
            await response.prepare(request)
            await response.write(b'{"version"')
            request.transport.close()
            return response
        return web.json_response({"version": "1.0.0", "latest_mrpack": "quilt.mrpack"})

    async def mrpack(request):
        hits[request.path] += 1
        return web.Response(body=build_mrpack([]))

    app = web.Application()
    app.router.add_get("/flaky/{n}/{name}", flaky)
    app.router.add_get("/missing/{name}", missing)
    app.router.add_get("/ok/{name}", ok)
    app.router.add_get("/api/fabric/", pack_info)
    app.router.add_get("/api/quilt/", truncated_info)
    app.router.add_get("/api/forge/", missing)
    app.router.add_get("/api/fabric/fabric.mrpack", mrpack)
    return app


@pytest_asyncio.fixture
async def server():
    hits = Counter()
    test_server = TestServer(make_app(hits))
    await test_server.start_server()
    try:
        yield test_server, hits
    finally:
        await test_server.close()


def url_of(test_server, path):
    return str(test_server.make_url(path))


@pytest.mark.asyncio
async def test_transient_status_is_retried_with_backoff(server, tmp_path):
    test_server, hits = server
    name = "sodium-0.5.8.jar"
    entry = make_entry(name, [url_of(test_server, f"/flaky/2/{name}")], sha1_of(jar_bytes(name)))
    target = tmp_path / "mods" / name

    async with DownloadManager(max_retries=2, retry_delay=0.05) as manager:
        started = time.monotonic()
        await manager.download_entry(entry, target)
        elapsed = time.monotonic() - started

    assert target.read_bytes() == jar_bytes(name)
    assert hits[f"/flaky/2/{name}"] == 3
    # 0.05 + 0.1
    assert elapsed >= 0.15
    assert manager.stats.completed == 1
    assert manager.stats.bytes_downloaded == len(jar_bytes(name))


@pytest.mark.asyncio
async def test_exhausted_retries_leave_no_partial_file(server, tmp_path):
    test_server, hits = server
    name = "lithium-0.11.2.jar"
    entry = make_entry(name, [url_of(test_server, f"/flaky/5/{name}")], sha1_of(jar_bytes(name)))
    target = tmp_path / "mods" / name

    async with DownloadManager(max_retries=1, retry_delay=0) as manager:
        with pytest.raises(DownloadNetworkError) as excinfo:
            await manager.download_entry(entry, target)

    assert excinfo.value.context["status"] == 503
    assert hits[f"/flaky/5/{name}"] == 2
    assert not target.exists()
    assert not target.with_name(name + PART_SUFFIX).exists()
    assert manager.stats.failed == 1


@pytest.mark.asyncio
async def test_client_error_moves_to_next_url_without_retry(server, tmp_path):
    test_server, hits = server
    name = "iris-1.6.4.jar"
    urls = [url_of(test_server, f"/missing/{name}"), url_of(test_server, f"/ok/{name}")]
    entry = make_entry(name, urls, sha1_of(jar_bytes(name)))
    target = tmp_path / "mods" / name

    # 4xx 若被重试，10 秒的退避会让测试明显变慢
    async with DownloadManager(max_retries=3, retry_delay=10) as manager:
        started = time.monotonic()
        await manager.download_entry(entry, target)

    assert time.monotonic() - started < 5
    assert hits[f"/missing/{name}"] == 1
    assert hits[f"/ok/{name}"] == 1
    assert target.read_bytes() == jar_bytes(name)


@pytest.mark.asyncio
async def test_unreachable_host_is_a_network_error(tmp_path):
    test_server = TestServer(web.Application())
    await test_server.start_server()
    url = url_of(test_server, "/gone.jar")
    await test_server.close()

    async with DownloadManager(max_retries=1, retry_delay=0) as manager:
        with pytest.raises(DownloadNetworkError):
            await manager.download_entry(make_entry("gone.jar", [url]), tmp_path / "gone.jar")


@pytest.mark.asyncio
async def test_unwritable_target_dir_fails_only_that_entry(remote, tmp_path):
    blocker = tmp_path / "mods"
    blocker.write_text("not a directory")
    good_url, good_sha1 = remote("sodium-0.5.8.jar")
    items = [
        (make_entry("sodium-0.5.8.jar", [good_url], good_sha1), tmp_path / "ok" / "sodium-0.5.8.jar"),
        (make_entry("lithium-0.11.2.jar", [good_url]), blocker / "lithium-0.11.2.jar"),
    ]

    async with DownloadManager(max_retries=0, retry_delay=0) as manager:
        outcomes = await manager.download_all(items)

    assert outcomes[0].success
    assert not outcomes[1].success
    assert isinstance(outcomes[1].error, DownloadError)
    assert "无法创建目录" in outcomes[1].error.message
    assert manager.stats.failed == 1


@pytest.mark.asyncio
async def test_manifest_info_is_retried_on_server_error(server, tmp_path):
    test_server, hits = server
    config = ModSyncConfig(
        api_base_url=url_of(test_server, "/api/"), max_retries=2, retry_delay=0.01
    )

    async with ManifestFetcher(config) as fetcher:
        manifest = await fetcher.fetch("fabric", Selector(), tmp_path / "work")

    assert manifest.version == "1.0.0"
    assert hits["/api/fabric/"] == 2
    assert hits["/api/fabric/fabric.mrpack"] == 1


@pytest.mark.asyncio
async def test_manifest_info_is_retried_after_broken_body(server, tmp_path):
    test_server, hits = server
    config = ModSyncConfig(
        api_base_url=url_of(test_server, "/api/"), max_retries=2, retry_delay=0.01
    )

    async with ManifestFetcher(config) as fetcher:
        info = await fetcher.fetch_info("quilt", Selector())

    assert info["version"] == "1.0.0"
    assert hits["/api/quilt/"] == 2


@pytest.mark.asyncio
async def test_manifest_not_found_is_not_retried(server):
    test_server, hits = server
    config = ModSyncConfig(
        api_base_url=url_of(test_server, "/api/"), max_retries=3, retry_delay=10
    )

    async with ManifestFetcher(config) as fetcher:
        with pytest.raises(ManifestNetworkError) as excinfo:
            await fetcher.fetch_info("forge", Selector())

    assert excinfo.value.context["status"] == 404
    assert hits["/api/forge/"] == 1


@pytest.mark.asyncio
async def test_unreachable_manifest_api_is_a_network_error():
    test_server = TestServer(web.Application())
    await test_server.start_server()
    base = url_of(test_server, "/api/")
    await test_server.close()
    config = ModSyncConfig(api_base_url=base, max_retries=1, retry_delay=0)

    async with ManifestFetcher(config) as fetcher:
        with pytest.raises(ManifestNetworkError):
            await fetcher.fetch_info("fabric", Selector())
