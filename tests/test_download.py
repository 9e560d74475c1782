import asyncio

import aiohttp
import pytest

from packsync.download import DownloadManager, FileVerifier
from packsync.exceptions import DownloadNetworkError
from packsync.models import DownloadVerdict

CONTENT = b"mod bytes " * 100


@pytest.fixture
def manager(session):
    return DownloadManager(
        verifier=FileVerifier(session=session),
        max_attempts=3,
        retry_delay=0,
        session=session,
    )


async def _fetch(manager, mod, work_dir):
    return await manager.fetch_and_verify(
        str(work_dir / mod.path), mod.download_url, mod.expected_size, mod.hashes
    )


@pytest.mark.asyncio
async def test_success(manager, file_host, work_dir):
    mod = file_host.add("a.jar", CONTENT)
    assert await _fetch(manager, mod, work_dir) is DownloadVerdict.SUCCESS
    assert (work_dir / "mods" / "a.jar").read_bytes() == CONTENT
    assert manager.get_stats().completed == 1
    assert manager.get_stats().bytes_downloaded == len(CONTENT)


@pytest.mark.asyncio
async def test_creates_parent_directories(manager, file_host, tmp_path):
    mod = file_host.add("b.cfg", b"cfg", path="config/deep/b.cfg")
    assert await _fetch(manager, mod, tmp_path) is DownloadVerdict.SUCCESS
    assert (tmp_path / "config" / "deep" / "b.cfg").read_bytes() == b"cfg"


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(manager, file_host, work_dir):
    mod = file_host.add("a.jar", CONTENT)
    file_host.failures["a.jar"] = 10
    assert await _fetch(manager, mod, work_dir) is DownloadVerdict.FAILED
    assert file_host.requests["a.jar"] == 3
    assert manager.get_stats().failed == 1


@pytest.mark.asyncio
async def test_succeeds_on_second_attempt(manager, file_host, work_dir):
    mod = file_host.add("a.jar", CONTENT)
    file_host.failures["a.jar"] = 1
    assert await _fetch(manager, mod, work_dir) is DownloadVerdict.SUCCESS
    assert file_host.requests["a.jar"] == 2


@pytest.mark.asyncio
async def test_verification_failure_counts_as_attempt(manager, file_host, work_dir):
    mod = file_host.add("a.jar", CONTENT)
    file_host.garbage["a.jar"] = 2
    assert await _fetch(manager, mod, work_dir) is DownloadVerdict.SUCCESS
    assert file_host.requests["a.jar"] == 3
    assert (work_dir / "mods" / "a.jar").read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_replaces_existing_file(manager, file_host, work_dir):
    target = work_dir / "mods" / "a.jar"
    target.write_bytes(b"old and broken")
    mod = file_host.add("a.jar", CONTENT)
    assert await _fetch(manager, mod, work_dir) is DownloadVerdict.SUCCESS
    assert target.read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_max_attempts_override(manager, file_host, work_dir):
    mod = file_host.add("a.jar", CONTENT)
    file_host.failures["a.jar"] = 10
    verdict = await manager.fetch_and_verify(
        str(work_dir / mod.path), mod.download_url, mod.expected_size, mod.hashes, max_attempts=1
    )
    assert verdict is DownloadVerdict.FAILED
    assert file_host.requests["a.jar"] == 1


@pytest.mark.asyncio
async def test_fetch_refuses_to_overwrite(manager, file_host, work_dir):
    target = work_dir / "mods" / "a.jar"
    target.write_bytes(b"someone else")
    file_host.add("a.jar", CONTENT)
    with pytest.raises(FileExistsError):
        await manager.fetch(file_host.url("a.jar"), str(target))


@pytest.mark.asyncio
async def test_fetch_raises_on_http_error(manager, file_host, work_dir):
    with pytest.raises(DownloadNetworkError) as exc_info:
        await manager.fetch(file_host.url("missing.jar"), str(work_dir / "mods" / "x.jar"))
    assert exc_info.value.context["status"] == 404


class FlakyRemoteVerifier(FileVerifier):
    """Fails to fetch the remote file for hashing a given number of times."""

    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures

    async def calc_remote_hash(self, url, algorithm="sha256"):
        if self.failures > 0:
            self.failures -= 1
            raise aiohttp.ClientConnectionError("connection reset")
        return await super().calc_remote_hash(url, algorithm)


@pytest.mark.asyncio
async def test_remote_hash_error_counts_as_attempt(session, file_host, work_dir):
    manager = DownloadManager(
        verifier=FlakyRemoteVerifier(1, session=session),
        max_attempts=3,
        retry_delay=0,
        session=session,
    )
    mod = file_host.add("a.jar", CONTENT, with_hash=False)
    assert await _fetch(manager, mod, work_dir) is DownloadVerdict.SUCCESS
    assert (work_dir / "mods" / "a.jar").read_bytes() == CONTENT
    assert manager.get_stats().attempts == 2


@pytest.mark.asyncio
async def test_remote_hash_errors_exhaust_attempts(session, file_host, work_dir):
    manager = DownloadManager(
        verifier=FlakyRemoteVerifier(10, session=session),
        max_attempts=3,
        retry_delay=0,
        session=session,
    )
    mod = file_host.add("a.jar", CONTENT, with_hash=False)
    assert await _fetch(manager, mod, work_dir) is DownloadVerdict.FAILED
    assert manager.get_stats().failed == 1


@pytest.mark.asyncio
async def test_retry_delay_grows_linearly(session, file_host, work_dir, monkeypatch):
    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay, *args, **kwargs):
        delays.append(delay)
        await real_sleep(0)

    monkeypatch.setattr("packsync.download.manager.asyncio.sleep", fake_sleep)
    manager = DownloadManager(
        verifier=FileVerifier(session=session),
        max_attempts=3,
        retry_delay=2.5,
        session=session,
    )
    mod = file_host.add("a.jar", CONTENT)
    file_host.failures["a.jar"] = 10
    assert await _fetch(manager, mod, work_dir) is DownloadVerdict.FAILED
    # asyncio.sleep is patched module-wide, so ignore zero-length yields from aiohttp
    assert [d for d in delays if d] == [2.5, 5.0]
