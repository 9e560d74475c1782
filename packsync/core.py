"""
PackSync 主流程

把清单查找、实例翻译、元数据回填、哈希缓存、同步和覆盖文件串成一次完整运行。
"""

from pathlib import Path
from typing import List, Optional, Union

import aiohttp
from loguru import logger

from packsync.adapters import ManifestFormat, load_instance
from packsync.cache import InstanceCache
from packsync.models import Instance, SyncConfig, SyncReport
from packsync.orchestrator import SyncOrchestrator
from packsync.services import CFWidgetClient, MetadataBackfill
from packsync.workspace import apply_overrides, detect_manifest, prepare_workspace


class PackSync:
    """一次整合包同步"""

    def __init__(
        self,
        work_dir: Union[str, Path],
        config: Optional[SyncConfig] = None,
        fmt: Optional[ManifestFormat] = None,
        session: Optional[aiohttp.ClientSession] = None,
        metadata_client: Optional[CFWidgetClient] = None,
    ):
        self.work_dir = Path(work_dir)
        self.config = config or SyncConfig()
        self.fmt = fmt
        self.metadata_client = metadata_client
        self.instance: Optional[Instance] = None
        self.orchestrator: Optional[SyncOrchestrator] = None
        self._session = session
        self._owned_session = session is None

    async def run(self) -> SyncReport:
        """
        执行完整的同步流程

        Returns:
            同步报告

        Raises:
            ManifestError: 清单缺失、无法解析或格式不受支持
            IllegalPathError: 清单中存在非法路径
            WorkspaceError: 工作目录无法使用
            SyncTimeoutError: 超过挂起保护时限
        """
        fmt, manifest_path = detect_manifest(self.work_dir, self.fmt)
        manifest_path = prepare_workspace(self.work_dir, manifest_path, fmt, self.config)
        instance = load_instance(manifest_path, fmt)
        self._log_instance(instance)

        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            warnings: List[str] = []
            if fmt.needs_backfill:
                client = self.metadata_client or CFWidgetClient(session=self._session)
                result = await MetadataBackfill(client, self.config).run(instance)
                instance = instance.merge(result.resolved, result.failed)
                warnings = result.warnings

            cache = None
            if self.config.cache_enabled and not fmt.needs_backfill:
                cache = InstanceCache(self.config.cache_dir or self.work_dir)
                instance = cache.apply(instance)

            self.instance = instance
            self.orchestrator = SyncOrchestrator(
                instance,
                self.config,
                self.work_dir,
                session=self._session,
                warnings=warnings,
            )
            report = await self.orchestrator.run()

            if cache is not None:
                await cache.save(instance, report, self.work_dir, self.config.verify_hashes)
            apply_overrides(self.work_dir, instance, self.config)
            return report
        finally:
            if self._owned_session and not self._session.closed:
                await self._session.close()

    @staticmethod
    def _log_instance(instance: Instance):
        meta = instance.modpack_meta
        loader = instance.mod_loader
        logger.info(
            f"[实例] {meta.name or instance.name or '未命名整合包'} {meta.version or ''}".rstrip()
        )
        logger.info(
            f"[实例] Minecraft {instance.minecraft.version or '未知'}, "
            f"{loader.kind.value} {loader.version or ''}".rstrip()
        )
        logger.info(f"[实例] 共 {len(instance.files)} 个文件")
