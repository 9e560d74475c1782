import asyncio
import hashlib

import pytest

from packsync.download import FileVerifier
from packsync.exceptions import DownloadNetworkError
from packsync.models import Hashes, VerificationVerdict

CONTENT = b"hello modpack"


def _sha(algorithm, data=CONTENT):
    return hashlib.new(algorithm, data).hexdigest()


@pytest.fixture
def local_file(tmp_path):
    path = tmp_path / "a.jar"
    path.write_bytes(CONTENT)
    return str(path)


@pytest.mark.asyncio
async def test_missing(tmp_path):
    verdict = await FileVerifier().verify(str(tmp_path / "nope.jar"), 1, Hashes(sha1="00"))
    assert verdict is VerificationVerdict.MISSING


@pytest.mark.asyncio
async def test_verified_with_sha1(local_file):
    verdict = await FileVerifier().verify(local_file, len(CONTENT), Hashes(sha1=_sha("sha1")))
    assert verdict is VerificationVerdict.VERIFIED


@pytest.mark.asyncio
async def test_hash_comparison_is_case_insensitive(local_file):
    hashes = Hashes(sha256=_sha("sha256").upper())
    assert await FileVerifier().verify(local_file, len(CONTENT), hashes) is VerificationVerdict.VERIFIED


@pytest.mark.asyncio
async def test_wrong_size_is_corrupted(local_file):
    verdict = await FileVerifier().verify(local_file, len(CONTENT) + 1, Hashes(sha1=_sha("sha1")))
    assert verdict is VerificationVerdict.CORRUPTED


@pytest.mark.asyncio
async def test_size_check_disabled(local_file):
    verifier = FileVerifier(verify_size=False)
    verdict = await verifier.verify(local_file, 999, Hashes(sha1=_sha("sha1")))
    assert verdict is VerificationVerdict.VERIFIED


@pytest.mark.asyncio
async def test_wrong_hash_is_corrupted(local_file):
    verdict = await FileVerifier().verify(local_file, len(CONTENT), Hashes(sha1="0" * 40))
    assert verdict is VerificationVerdict.CORRUPTED


@pytest.mark.asyncio
async def test_hash_check_disabled(local_file):
    verifier = FileVerifier(verify_hashes=False)
    verdict = await verifier.verify(local_file, len(CONTENT), Hashes(sha1="0" * 40))
    assert verdict is VerificationVerdict.VERIFIED


@pytest.mark.asyncio
async def test_highest_priority_hash_wins(local_file):
    verifier = FileVerifier()
    # sha512 is authoritative even if a lower-priority digest disagrees
    good_512 = Hashes(sha1="0" * 40, sha512=_sha("sha512"))
    assert await verifier.verify(local_file, len(CONTENT), good_512) is VerificationVerdict.VERIFIED

    bad_512 = Hashes(sha1=_sha("sha1"), sha256="0" * 64, sha512="0" * 128)
    assert await verifier.verify(local_file, len(CONTENT), bad_512) is VerificationVerdict.CORRUPTED


@pytest.mark.asyncio
async def test_no_hash_compares_remote_sha256(local_file, file_host, session):
    file_host.files["a.jar"] = CONTENT
    file_host.files["b.jar"] = b"something else"
    verifier = FileVerifier(session=session)

    same = await verifier.verify(local_file, len(CONTENT), Hashes(), file_host.url("a.jar"))
    assert same is VerificationVerdict.VERIFIED

    verifier.verify_size = False
    other = await verifier.verify(local_file, len(CONTENT), Hashes(), file_host.url("b.jar"))
    assert other is VerificationVerdict.CORRUPTED
    assert file_host.requests["a.jar"] == 1


@pytest.mark.asyncio
async def test_no_hash_remote_error_propagates(local_file, file_host, session):
    verifier = FileVerifier(session=session)
    with pytest.raises(DownloadNetworkError):
        await verifier.verify(local_file, len(CONTENT), Hashes(), file_host.url("missing.jar"))


@pytest.mark.asyncio
async def test_no_hash_and_no_url(local_file):
    with pytest.raises(ValueError):
        await FileVerifier().verify(local_file, len(CONTENT), Hashes(), None)


@pytest.mark.asyncio
async def test_calc_hash(local_file):
    assert await FileVerifier.calc_hash(local_file, "sha1") == _sha("sha1")


@pytest.mark.asyncio
async def test_digest_runs_off_the_event_loop(tmp_path, monkeypatch):
    data = b"x" * (256 * 1024)
    path = tmp_path / "big.jar"
    path.write_bytes(data)

    calls = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        calls.append(func)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr("packsync.download.verifier.asyncio.to_thread", recording_to_thread)
    assert await FileVerifier.calc_hash(str(path), "sha256") == hashlib.sha256(data).hexdigest()
    assert len([f for f in calls if getattr(f, "__name__", "") == "update"]) == 4
