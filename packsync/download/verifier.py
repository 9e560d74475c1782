"""
文件校验器

按大小和哈希把本地文件分类为 已验证 / 缺失 / 损坏。
摘要计算放到线程中进行，不阻塞事件循环。
清单没有提供任何哈希时，需要下载完整的远程文件计算 SHA-256 进行比较。
"""

import asyncio
import hashlib
import os
from typing import Optional

import aiofiles
import aiohttp
from loguru import logger

from packsync.exceptions import DownloadNetworkError
from packsync.models import Hashes, VerificationVerdict

CHUNK_SIZE = 64 * 1024


class FileVerifier:
    """文件校验器"""

    def __init__(
        self,
        verify_size: bool = True,
        verify_hashes: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.verify_size = verify_size
        self.verify_hashes = verify_hashes
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    @staticmethod
    async def calc_hash(file_path: str, algorithm: str = "sha256") -> str:
        """
        计算本地文件的哈希值

        Args:
            file_path: 文件路径
            algorithm: hashlib 算法名

        Returns:
            十六进制摘要

        Raises:
            OSError: 文件无法读取
        """
        digest = hashlib.new(algorithm)
        async with aiofiles.open(file_path, "rb") as f:
            while True:
                data = await f.read(CHUNK_SIZE)
                if not data:
                    break
                await asyncio.to_thread(digest.update, data)
        return digest.hexdigest()

    async def calc_remote_hash(self, url: str, algorithm: str = "sha256") -> str:
        """下载完整的远程文件并计算哈希值"""
        digest = hashlib.new(algorithm)
        async with self.session.get(url) as response:
            if response.status != 200:
                raise DownloadNetworkError(
                    f"HTTP {response.status}",
                    context={"url": url, "status": response.status},
                )
            async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                await asyncio.to_thread(digest.update, chunk)
        return digest.hexdigest()

    async def verify(
        self,
        file_path: str,
        expected_size: int,
        hashes: Optional[Hashes] = None,
        download_url: Optional[str] = None,
    ) -> VerificationVerdict:
        """
        校验本地文件

        Args:
            file_path: 文件路径
            expected_size: 预期大小（字节）
            hashes: 清单中的哈希集合
            download_url: 没有哈希时用于计算远程哈希的下载地址

        Returns:
            校验结果

        Raises:
            OSError: 读取文件失败
            DownloadNetworkError: 计算远程哈希时服务器返回错误
            aiohttp.ClientError: 计算远程哈希时网络失败
        """
        if not os.path.exists(file_path):
            return VerificationVerdict.MISSING

        if self.verify_size:
            actual_size = os.path.getsize(file_path)
            if actual_size != expected_size:
                logger.debug(
                    f"[校验] {os.path.basename(file_path)} 大小不符: "
                    f"{actual_size} != {expected_size}"
                )
                return VerificationVerdict.CORRUPTED

        if self.verify_hashes and not await self._hash_matches(
            file_path, hashes or Hashes(), download_url
        ):
            logger.debug(f"[校验] {os.path.basename(file_path)} 哈希不符")
            return VerificationVerdict.CORRUPTED

        return VerificationVerdict.VERIFIED

    async def _hash_matches(
        self, file_path: str, hashes: Hashes, download_url: Optional[str]
    ) -> bool:
        preferred = hashes.preferred()
        if preferred is not None:
            algorithm, expected = preferred
            return await self.calc_hash(file_path, algorithm) == expected

        if not download_url:
            raise ValueError(f"{file_path} 既没有哈希也没有下载地址，无法校验")

        logger.debug(f"[校验] {os.path.basename(file_path)} 没有清单哈希，改为比较远程文件的 SHA-256")
        local = await self.calc_hash(file_path, "sha256")
        remote = await self.calc_remote_hash(download_url, "sha256")
        return local == remote

    async def close(self):
        """关闭自己创建的 session"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()
