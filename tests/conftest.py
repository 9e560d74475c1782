import hashlib
from collections import defaultdict
from typing import Dict

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from packsync.models import Hashes, ModFile, SyncConfig


class FileHost:
    """A tiny download server that counts requests and can misbehave on demand."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        # name -> number of upcoming requests answered with HTTP 500
        self.failures: Dict[str, int] = {}
        # name -> number of upcoming requests answered with garbage bytes
        self.garbage: Dict[str, int] = {}
        self.requests: Dict[str, int] = defaultdict(int)
        self.server: TestServer = None

    async def handle(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        self.requests[name] += 1
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            return web.Response(status=500)
        if name not in self.files:
            return web.Response(status=404)
        if self.garbage.get(name, 0) > 0:
            self.garbage[name] -= 1
            return web.Response(body=b"x" * len(self.files[name]))
        return web.Response(body=self.files[name])

    def url(self, name: str) -> str:
        return str(self.server.make_url(f"/files/{name}"))

    def add(self, name: str, content: bytes, with_hash: bool = True, path: str = None) -> ModFile:
        """Serve ``content`` and return the matching manifest entry."""
        self.files[name] = content
        return ModFile(
            file_name=name,
            download_url=self.url(name),
            expected_size=len(content),
            hashes=Hashes(sha1=hashlib.sha1(content).hexdigest()) if with_hash else Hashes(),
            path=path,
        )


@pytest_asyncio.fixture
async def file_host():
    host = FileHost()
    app = web.Application()
    app.router.add_get("/files/{name}", host.handle)
    server = TestServer(app)
    await server.start_server()
    host.server = server
    yield host
    await server.close()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as s:
        yield s


@pytest.fixture
def config():
    return SyncConfig(
        thread_count=4,
        download_attempts=3,
        retry_delay=0,
        cache_enabled=False,
    )


@pytest.fixture
def work_dir(tmp_path):
    (tmp_path / "mods").mkdir()
    return tmp_path
