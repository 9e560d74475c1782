"""
下载管理器

负责单个文件的下载、重试与下载后校验，并记录下载统计。
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Optional

import aiofiles
import aiohttp
from loguru import logger

from packsync.download.verifier import FileVerifier
from packsync.exceptions import DownloadError, DownloadNetworkError
from packsync.models import DownloadVerdict, Hashes, VerificationVerdict

CHUNK_SIZE = 8192


@dataclass
class DownloadStats:
    """下载统计"""

    attempts: int = 0
    completed: int = 0
    failed: int = 0
    bytes_downloaded: int = 0


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        verifier: Optional[FileVerifier] = None,
        max_attempts: int = 5,
        retry_delay: float = 2.5,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.verifier = verifier or FileVerifier(session=session)
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.stats = DownloadStats()
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    async def fetch(self, url: str, file_path: str) -> int:
        """
        下载文件到指定路径

        以独占创建方式写入：目标文件已存在时抛出 FileExistsError。

        Returns:
            写入的字节数

        Raises:
            DownloadNetworkError: 服务器返回非 200 状态
            FileExistsError: 目标文件已存在
        """
        os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
        self.stats.attempts += 1

        async with self.session.get(url) as response:
            if response.status != 200:
                raise DownloadNetworkError(
                    f"HTTP {response.status}",
                    context={"url": url, "status": response.status},
                )

            written = 0
            async with aiofiles.open(file_path, "xb") as f:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    await f.write(chunk)
                    written += len(chunk)
            self.stats.bytes_downloaded += written
            return written

    async def fetch_and_verify(
        self,
        file_path: str,
        url: str,
        expected_size: int,
        hashes: Optional[Hashes] = None,
        max_attempts: Optional[int] = None,
    ) -> DownloadVerdict:
        """
        下载文件并校验，失败时重试

        第 n 次尝试前等待 ``retry_delay * (n - 1)`` 秒，每次尝试前删除已有文件。
        下载失败和校验失败都计为一次尝试。

        Returns:
            SUCCESS 或 FAILED
        """
        filename = os.path.basename(file_path)
        attempts = max_attempts or self.max_attempts

        for attempt in range(attempts):
            if attempt > 0:
                delay = self.retry_delay * attempt
                logger.warning(f"[重试] '{filename}' 第 {attempt + 1} 次尝试，{delay:.1f}s 后开始")
                await asyncio.sleep(delay)

            if os.path.exists(file_path):
                os.remove(file_path)

            try:
                await self.fetch(url, file_path)
            except (DownloadError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"[下载] '{filename}' 下载失败 (第 {attempt + 1} 次): {e}")
                continue

            try:
                verdict = await self.verifier.verify(file_path, expected_size, hashes, url)
            except (DownloadError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"[校验] '{filename}' 获取远程哈希失败 (第 {attempt + 1} 次): {e}")
                continue

            if verdict is VerificationVerdict.VERIFIED:
                self.stats.completed += 1
                logger.success(f"[完成] '{filename}' 下载完成")
                return DownloadVerdict.SUCCESS

            logger.warning(f"[校验] '{filename}' 下载后校验失败 (第 {attempt + 1} 次)")

        self.stats.failed += 1
        logger.error(f"[错误] '{filename}' 在 {attempts} 次尝试后仍然失败")
        return DownloadVerdict.FAILED

    def get_stats(self) -> DownloadStats:
        """获取下载统计"""
        return self.stats

    async def close(self):
        """关闭自己创建的 session"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
