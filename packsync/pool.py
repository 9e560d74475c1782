"""
有界工作池

固定数量的工作协程从队列中取任务执行；等待全部完成时受挂起保护时限约束。
"""

import asyncio
from typing import Awaitable, Callable, Generic, Iterable, List, TypeVar

from loguru import logger

from packsync.exceptions import SyncTimeoutError

T = TypeVar("T")


class WorkerPool(Generic[T]):
    """有界工作池"""

    def __init__(
        self,
        name: str,
        size: int,
        handler: Callable[[T], Awaitable[None]],
        hang_guard: float,
    ):
        self.name = name
        self.size = max(1, size)
        self.handler = handler
        self.hang_guard = hang_guard
        self._queue: "asyncio.Queue[T]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []

    async def _worker(self):
        """工作协程"""
        while True:
            item = await self._queue.get()
            try:
                await self.handler(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # 工作协程不应该因为单个任务失败而退出
                logger.opt(exception=e).error(f"[{self.name}] 任务 {item!r} 出现未处理的异常: {e}")
            finally:
                self._queue.task_done()

    async def run(self, items: Iterable[T]) -> None:
        """
        执行所有任务并等待完成

        Raises:
            SyncTimeoutError: 等待时间超过挂起保护时限
        """
        for item in items:
            self._queue.put_nowait(item)
        pending = self._queue.qsize()
        if pending == 0:
            return

        logger.debug(f"[{self.name}] 启动 {min(self.size, pending)} 个工作协程处理 {pending} 个任务")
        self._workers = [
            asyncio.create_task(self._worker(), name=f"{self.name}-{i}")
            for i in range(min(self.size, pending))
        ]
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.hang_guard)
        except asyncio.TimeoutError:
            raise SyncTimeoutError(
                f"{self.name} 超过 {self.hang_guard:g} 秒仍未完成",
                context={"pool": self.name, "pending": self._queue.qsize()},
            )
        finally:
            await self.stop()

    async def stop(self):
        """停止所有工作协程"""
        for worker in self._workers:
            worker.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
            self._workers.clear()
