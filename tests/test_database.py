import pytest
from sqlalchemy import create_engine, text

from modsync.exceptions import DatabaseError
from modsync.models import Instance, LauncherKind, ModLoader
from modsync.services.database import DatabaseSynchronizer, applies_to
from tests.helpers import make_manifest

PROFILES_SCHEMA = """
CREATE TABLE profiles (
    path TEXT PRIMARY KEY,
    install_stage TEXT NOT NULL,
    name TEXT NOT NULL,
    game_version TEXT NOT NULL,
    mod_loader TEXT NOT NULL,
    mod_loader_version TEXT,
    groups JSONB NOT NULL,
    created INTEGER NOT NULL,
    modified INTEGER NOT NULL,
    override_extra_launch_args JSONB NOT NULL,
    override_custom_env_vars JSONB NOT NULL
)
"""


def create_db(root, schema=PROFILES_SCHEMA, rows=()):
    engine = create_engine(f"sqlite+pysqlite:///{root / 'app.db'}")
    with engine.begin() as conn:
        if schema:
            conn.execute(text(schema))
        for row in rows:
            conn.execute(
                text(
                    "INSERT INTO profiles VALUES (:path, 'installed', :name, '1.20.1', "
                    "'fabric', '0.15.7', '[]', 0, 0, '[]', '{}')"
                ),
                row,
            )
    engine.dispose()


def read_profiles(root):
    engine = create_engine(f"sqlite+pysqlite:///{root / 'app.db'}")
    with engine.connect() as conn:
        rows = conn.execute(text("SELECT * FROM profiles")).mappings().all()
    engine.dispose()
    return {row["path"]: dict(row) for row in rows}


@pytest.fixture
def modrinth_instance(tmp_path):
    root = tmp_path / "ModrinthApp"
    profile = root / "profiles" / "smp"
    profile.mkdir(parents=True)
    return Instance(
        name="SMP",
        launcher_kind=LauncherKind.MODRINTH_APP,
        instance_path=profile,
        game_dir=profile,
        minecraft_version="1.20.1",
        mod_loader=ModLoader.FABRIC,
        launcher_root=root,
    )


def neoforge_manifest():
    return make_manifest(
        minecraft_version="1.21.1",
        mod_loader=ModLoader.NEOFORGE,
        mod_loader_version="21.1.77",
    )


def test_existing_profile_is_updated(modrinth_instance):
    root = modrinth_instance.launcher_root
    create_db(root, rows=[{"path": "smp", "name": "SMP"}, {"path": "other", "name": "Other"}])

    updated = DatabaseSynchronizer().sync(modrinth_instance, neoforge_manifest())

    assert updated
    profiles = read_profiles(root)
    assert profiles["smp"]["game_version"] == "1.21.1"
    assert profiles["smp"]["mod_loader"] == "neoforge"
    assert profiles["smp"]["mod_loader_version"] == "21.1.77"
    assert profiles["smp"]["modified"] > 0
    assert profiles["other"]["game_version"] == "1.20.1"


def test_missing_profile_is_inserted(modrinth_instance):
    root = modrinth_instance.launcher_root
    create_db(root)

    updated = DatabaseSynchronizer().sync(modrinth_instance, neoforge_manifest())

    assert not updated
    row = read_profiles(root)["smp"]
    assert row["name"] == "SMP"
    assert row["install_stage"] == "installed"
    assert row["groups"] == "[]"
    assert row["game_version"] == "1.21.1"


def test_missing_database(modrinth_instance):
    with pytest.raises(DatabaseError):
        DatabaseSynchronizer().sync(modrinth_instance, neoforge_manifest())


def test_database_without_profiles_table(modrinth_instance):
    create_db(modrinth_instance.launcher_root, schema="CREATE TABLE settings (id INTEGER)")

    with pytest.raises(DatabaseError):
        DatabaseSynchronizer().sync(modrinth_instance, neoforge_manifest())


def test_only_app_launchers_have_databases(modrinth_instance, game_instance):
    assert applies_to(modrinth_instance)
    assert not applies_to(game_instance)


def test_unknown_game_version_is_not_written(modrinth_instance):
    root = modrinth_instance.launcher_root
    create_db(root, rows=[{"path": "smp", "name": "SMP"}])
    manifest = make_manifest(
        minecraft_version="unknown", mod_loader=ModLoader.QUILT, mod_loader_version="0.23.1"
    )

    assert DatabaseSynchronizer().sync(modrinth_instance, manifest)

    row = read_profiles(root)["smp"]
    assert row["game_version"] == "1.20.1"
    assert row["mod_loader"] == "quilt"
    assert row["mod_loader_version"] == "0.23.1"


def test_inserted_row_falls_back_to_instance_version(modrinth_instance):
    root = modrinth_instance.launcher_root
    create_db(root)
    manifest = make_manifest(minecraft_version="unknown")

    assert not DatabaseSynchronizer().sync(modrinth_instance, manifest)

    row = read_profiles(root)["smp"]
    assert row["game_version"] == "1.20.1"
