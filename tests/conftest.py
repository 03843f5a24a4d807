from pathlib import Path
from typing import Optional

import pytest

from modsync.models import Instance, LauncherKind, ModLoader
from tests.helpers import sha1_of


@pytest.fixture
def remote(tmp_path: Path):
    """把文件写入本地“远程”目录，返回 (file:// 地址, sha1)"""
    root = tmp_path / "remote"
    root.mkdir()

    def publish(filename: str, content: Optional[bytes] = None):
        data = content if content is not None else f"jar:{filename}".encode()
        path = root / filename
        path.write_bytes(data)
        return path.as_uri(), sha1_of(data)

    return publish


@pytest.fixture
def prism_root(tmp_path: Path) -> Path:
    root = tmp_path / "PrismLauncher"
    (root / "instances").mkdir(parents=True)
    (root / "prismlauncher.cfg").write_text("[General]\n")
    return root


@pytest.fixture
def game_instance(tmp_path: Path) -> Instance:
    game_dir = tmp_path / "instance"
    (game_dir / "mods").mkdir(parents=True)
    return Instance(
        name="Test",
        launcher_kind=LauncherKind.PRISM,
        instance_path=game_dir,
        game_dir=game_dir,
        minecraft_version="1.20.1",
        mod_loader=ModLoader.FABRIC,
    )
