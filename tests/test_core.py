import hashlib
import json
import zipfile

import pytest

from packsync.adapters import ManifestFormat
from packsync.cache import CACHE_FILE_NAME
from packsync.core import PackSync
from packsync.exceptions import IllegalPathError, ManifestError
from packsync.models import Resolution
from packsync.services import MetadataResponse


def _modrinth_index(file_host, contents, with_hashes=True):
    files = []
    for name, data in contents.items():
        file_host.files[name] = data
        files.append(
            {
                "path": f"mods/{name}",
                "hashes": {"sha512": hashlib.sha512(data).hexdigest()} if with_hashes else {},
                "downloads": [file_host.url(name)],
                "fileSize": len(data),
            }
        )
    return {
        "formatVersion": 1,
        "game": "minecraft",
        "versionId": "1.0.0",
        "name": "E2E Pack",
        "files": files,
        "dependencies": {"minecraft": "1.20.1", "fabric-loader": "0.15.0"},
    }


class DeniedClient:
    async def get_project(self, project_id, file_id=None):
        return MetadataResponse(status=404)


@pytest.mark.asyncio
async def test_modrinth_sync(file_host, session, config, work_dir):
    index = _modrinth_index(file_host, {"a.jar": b"aaa", "b.jar": b"bbbb"})
    (work_dir / "modrinth.index.json").write_text(json.dumps(index), encoding="utf-8")
    (work_dir / "mods" / "stale.jar").write_bytes(b"old")

    sync = PackSync(work_dir, config, session=session)
    report = await sync.run()

    assert report.downloaded == {0, 1}
    assert report.removed_local_files == {"stale.jar"}
    assert sorted(p.name for p in (work_dir / "mods").iterdir()) == ["a.jar", "b.jar"]
    assert sync.instance.name == "E2E Pack"


@pytest.mark.asyncio
async def test_mrpack_with_overrides(file_host, session, config, tmp_path):
    index = _modrinth_index(file_host, {"a.jar": b"aaa"})
    with zipfile.ZipFile(tmp_path / "pack.mrpack", "w") as z:
        z.writestr("modrinth.index.json", json.dumps(index))
        z.writestr("overrides/mods/bundled.jar", b"bundled")
        z.writestr("overrides/config/a.toml", "a = 1")

    report = await PackSync(tmp_path, config, session=session).run()

    assert report.downloaded == {0}
    assert report.removed_local_files == set()
    assert (tmp_path / "mods" / "a.jar").read_bytes() == b"aaa"
    assert (tmp_path / "mods" / "bundled.jar").read_bytes() == b"bundled"
    assert (tmp_path / "config" / "a.toml").read_text() == "a = 1"
    assert not (tmp_path / config.staging_dir_name).exists()


@pytest.mark.asyncio
async def test_cache_avoids_remote_hashing_on_second_run(file_host, session, config, work_dir):
    config = config.merged(cache_enabled=True)
    index = _modrinth_index(file_host, {"a.jar": b"aaa"}, with_hashes=False)
    (work_dir / "modrinth.index.json").write_text(json.dumps(index), encoding="utf-8")

    await PackSync(work_dir, config, session=session).run()
    assert (work_dir / CACHE_FILE_NAME).exists()
    # one download plus one full fetch for the remote SHA-256
    assert file_host.requests["a.jar"] == 2

    report = await PackSync(work_dir, config, session=session).run()
    assert report.verified == {0}
    assert file_host.requests["a.jar"] == 2


@pytest.mark.asyncio
async def test_curseforge_pack_with_failed_backfill(session, config, work_dir):
    manifest = {
        "minecraft": {"version": "1.12.2", "modLoaders": [{"id": "forge-14.23.5.2860", "primary": True}]},
        "name": "Old Pack",
        "version": "1",
        "files": [{"projectID": 1, "fileID": 2345678}, {"projectID": 2, "fileID": 3456789}],
        "overrides": "overrides",
    }
    (work_dir / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
    (work_dir / "mods" / "orphan.jar").write_bytes(b"x")

    sync = PackSync(work_dir, config, session=session, metadata_client=DeniedClient())
    report = await sync.run()

    assert report.failed_downloads == {0, 1}
    assert report.removed_local_files == {"orphan.jar"}
    assert all(mod.resolution is Resolution.FAILED for mod in sync.instance.files)
    # the cache is never used for CurseForge packs
    assert not (work_dir / CACHE_FILE_NAME).exists()


@pytest.mark.asyncio
async def test_explicit_format_without_manifest(session, config, work_dir):
    with pytest.raises(ManifestError):
        await PackSync(work_dir, config, ManifestFormat.CF_INSTANCE, session=session).run()


@pytest.mark.asyncio
async def test_illegal_path_aborts_before_touching_files(file_host, session, config, work_dir):
    index = _modrinth_index(file_host, {"a.jar": b"aaa"})
    index["files"][0]["path"] = "../../evil.jar"
    (work_dir / "modrinth.index.json").write_text(json.dumps(index), encoding="utf-8")
    (work_dir / "mods" / "stale.jar").write_bytes(b"old")

    with pytest.raises(IllegalPathError):
        await PackSync(work_dir, config, session=session).run()
    assert (work_dir / "mods" / "stale.jar").exists()
    assert file_host.requests["a.jar"] == 0


@pytest.mark.asyncio
async def test_run_without_hash_check_does_not_trust_local_file(file_host, session, config, work_dir):
    config = config.merged(cache_enabled=True)
    index = _modrinth_index(file_host, {"a.jar": b"good"}, with_hashes=False)
    (work_dir / "modrinth.index.json").write_text(json.dumps(index), encoding="utf-8")
    (work_dir / "mods" / "a.jar").write_bytes(b"evil")

    report = await PackSync(work_dir, config.merged(verify_hashes=False), session=session).run()
    assert report.verified == {0}

    report = await PackSync(work_dir, config, session=session).run()
    assert report.corrupted == {0}
    assert report.downloaded == {0}
    assert (work_dir / "mods" / "a.jar").read_bytes() == b"good"
