"""测试辅助函数"""

import hashlib
import io
import json
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from modsync.catalog.normalizer import normalize
from modsync.models import (
    Environment,
    ManifestEntry,
    ModFile,
    ModLoader,
    ModpackManifest,
    Selector,
)


def make_mod(filename: str, mtime: float = 0.0, path: Optional[Path] = None) -> ModFile:
    identity = normalize(filename)
    return ModFile(
        raw_filename=filename,
        canonical_name=identity.canonical_name,
        version=identity.version,
        last_modified=mtime,
        is_compound=identity.is_compound,
        path=path,
    )


def make_entry(
    filename: str,
    urls: Iterable[str] = (),
    sha1: Optional[str] = None,
    environment: Environment = Environment.BOTH,
    folder: str = "mods",
) -> ManifestEntry:
    identity = normalize(filename)
    return ManifestEntry(
        relative_path=f"{folder}/{filename}",
        canonical_name=identity.canonical_name,
        version=identity.version,
        download_urls=tuple(urls) or (f"https://cdn.example.org/{filename}",),
        sha1=sha1,
        environment=environment,
    )


def make_manifest(*entries: ManifestEntry, **kwargs) -> ModpackManifest:
    kwargs.setdefault("minecraft_version", "1.20.1")
    kwargs.setdefault("mod_loader", ModLoader.FABRIC)
    return ModpackManifest(
        package_type="fabric",
        selector=Selector(),
        version="1.0.0",
        entries=list(entries),
        **kwargs,
    )


def sha1_of(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def build_mrpack(
    files: List[Dict],
    dependencies: Optional[Dict[str, str]] = None,
    overrides: Optional[Dict[str, str]] = None,
) -> bytes:
    """构造内存中的 .mrpack"""
    index = {
        "formatVersion": 1,
        "game": "minecraft",
        "versionId": "1.0.0",
        "name": "Test Pack",
        "files": files,
        "dependencies": dependencies
        or {"minecraft": "1.20.1", "fabric-loader": "0.15.7"},
    }
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("modrinth.index.json", json.dumps(index))
        for name, content in (overrides or {}).items():
            archive.writestr(name, content)
    return buffer.getvalue()


def add_prism_instance(
    root: Path,
    folder: str,
    name: str,
    minecraft: str = "1.20.1",
    loader_uid: str = "net.fabricmc.fabric-loader",
    loader_version: str = "0.15.7",
    mods: Iterable[str] = (),
) -> Path:
    instance = root / "instances" / folder
    mods_dir = instance / ".minecraft" / "mods"
    mods_dir.mkdir(parents=True)
    (instance / "instance.cfg").write_text(f"[General]\nname={name}\n")
    components = [
        {"uid": "net.minecraft", "version": minecraft},
        {"uid": loader_uid, "version": loader_version},
    ]
    (instance / "mmc-pack.json").write_text(json.dumps({"components": components}))
    for mod in mods:
        (mods_dir / mod).write_bytes(f"jar:{mod}".encode())
    return instance


def publish_pack(
    api_root: Path,
    package_type: str,
    mrpack: bytes,
    version: Optional[str] = None,
    **info,
) -> Path:
    """在本地目录中发布整合包信息和 .mrpack，供 file:// 接口地址使用"""
    folder = api_root / package_type
    if version is not None:
        folder = folder / f"{package_type}-{version}"
    folder.mkdir(parents=True, exist_ok=True)
    (folder / f"{package_type}.mrpack").write_bytes(mrpack)
    info.setdefault("latest_mrpack", f"{package_type}.mrpack")
    if version is not None:
        info.setdefault("version", version)
    (folder / "index.json").write_text(json.dumps(info))
    return folder
