"""
同步协调器

按固定顺序驱动一次同步：
    校验 -> 输出校验报告 -> 删除多余文件 -> 下载缺失/损坏文件 -> 输出最终统计

校验和下载各自在有界工作池中并行执行；每个任务都带着文件索引，
单个文件的异常在任务边界捕获并记入报告，不影响其他文件。
工作池超过挂起保护时限时整个同步中止。
"""

from pathlib import Path
from typing import Iterable, List, Optional, Union

import aiohttp
from loguru import logger

from packsync.download import DownloadManager, FileVerifier
from packsync.exceptions import SyncError
from packsync.models import (
    DownloadVerdict,
    Instance,
    ModFile,
    SyncConfig,
    SyncPhase,
    SyncReport,
    VerificationVerdict,
)
from packsync.pool import WorkerPool
from packsync.services.cfwidget import manual_download_link

_VERDICT_BUCKETS = {
    VerificationVerdict.VERIFIED: "verified",
    VerificationVerdict.MISSING: "missing",
    VerificationVerdict.CORRUPTED: "corrupted",
}


class SyncOrchestrator:
    """同步协调器"""

    def __init__(
        self,
        instance: Instance,
        config: SyncConfig,
        work_dir: Union[str, Path],
        session: Optional[aiohttp.ClientSession] = None,
        verifier: Optional[FileVerifier] = None,
        downloader: Optional[DownloadManager] = None,
        warnings: Optional[Iterable[str]] = None,
    ):
        self.instance = instance
        self.config = config
        self.work_dir = Path(work_dir)
        self.mods_dir = self.work_dir / "mods"
        self.verifier = verifier
        self.downloader = downloader
        self.phase = SyncPhase.IDLE
        self.report = SyncReport(
            total=len(instance.files), warnings=list(warnings or [])
        )
        self._session = session
        self._owned_session = False

    def _ensure_components(self):
        if self.verifier is None or self.downloader is None:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
                self._owned_session = True
        if self.verifier is None:
            self.verifier = FileVerifier(
                verify_size=self.config.verify_file_size,
                verify_hashes=self.config.verify_hashes,
                session=self._session,
            )
        if self.downloader is None:
            self.downloader = DownloadManager(
                verifier=self.verifier,
                max_attempts=self.config.download_attempts,
                retry_delay=self.config.retry_delay,
                session=self._session,
            )

    def path_of(self, mod: ModFile) -> Path:
        """条目在工作目录中的目标路径"""
        return self.work_dir / mod.path

    async def run(self) -> SyncReport:
        """
        执行同步

        Returns:
            同步报告

        Raises:
            SyncTimeoutError: 某个工作池超过挂起保护时限
            SyncError: 协调器已经运行过
        """
        if self.phase is not SyncPhase.IDLE:
            raise SyncError(
                "同步协调器只能运行一次", context={"phase": self.phase.value}
            )

        self._ensure_components()
        try:
            self.phase = SyncPhase.VERIFYING
            await self._verify_all()

            self.phase = SyncPhase.REPORTING_VERIFICATION
            self._log_verification()

            self.phase = SyncPhase.REMOVING
            self._remove_orphans()

            self.phase = SyncPhase.DOWNLOADING
            await self._download_all()

            self.phase = SyncPhase.REPORTING_FINAL
            self._log_statistics()

            self.phase = SyncPhase.DONE
            return self.report
        except Exception as e:
            logger.critical(f"[同步] 同步在 {self.phase.value} 阶段中止: {e}")
            self.phase = SyncPhase.FATAL_ABORT
            raise
        finally:
            if self._owned_session and self._session and not self._session.closed:
                await self._session.close()

    # ---- 校验 ----

    async def _verify_all(self):
        indices: List[int] = []
        for index, mod in enumerate(self.instance.files):
            if not mod.is_resolved:
                self.report.record("failed_downloads", index)
                continue
            if self.config.is_blacklisted(mod.file_name):
                logger.info(f"[黑名单] 跳过校验: {mod.file_name}")
                self.report.record("ignored_verification", index)
                continue
            indices.append(index)

        logger.info(f"[校验] 正在校验 {len(indices)} 个文件...")
        await WorkerPool(
            "校验", self.config.thread_count, self._verify_one, self.config.hang_guard
        ).run(indices)

    async def _verify_one(self, index: int):
        mod = self.instance.files[index]
        try:
            verdict = await self.verifier.verify(
                str(self.path_of(mod)), mod.expected_size, mod.hashes, mod.download_url
            )
        except Exception as e:
            logger.opt(exception=e).debug(f"[校验] #{index} {mod.file_name}")
            logger.error(f"[校验] '{mod.file_name}' 校验出错: {e}")
            self.report.record("failed_verifications", index)
            return

        logger.debug(f"[校验] '{mod.file_name}': {verdict.value}")
        self.report.record(_VERDICT_BUCKETS[verdict], index)

    def _log_verification(self):
        report = self.report
        found = len(report.verified) + len(report.corrupted)
        logger.info(
            f"[校验] 找到 {found} 个文件, 缺失 {len(report.missing)} 个, "
            f"已验证 {len(report.verified)} 个, 损坏 {len(report.corrupted)} 个"
        )
        for index in sorted(report.missing):
            logger.info(f"[校验] 缺失: {self.instance.files[index].file_name}")
        for index in sorted(report.corrupted):
            logger.warning(f"[校验] 损坏: {self.instance.files[index].file_name}")
        if report.failed_verifications:
            logger.error(f"[校验] {len(report.failed_verifications)} 个文件校验出错")

    # ---- 删除 ----

    def _remove_orphans(self):
        if not self.mods_dir.is_dir():
            logger.debug(f"[删除] {self.mods_dir} 不存在，跳过")
            return

        listed = {
            mod.file_name
            for mod in self.instance.files
            if mod.file_name and mod.in_mods_dir
        }
        staged_mods = (
            self.work_dir
            / self.config.staging_dir_name
            / self.instance.modpack_meta.overrides_dir_name
            / "mods"
        )

        for entry in sorted(self.mods_dir.iterdir()):
            name = entry.name
            if not entry.is_file():
                logger.debug(f"[删除] 跳过目录: {name}")
                continue
            if name in listed:
                continue
            if self.config.is_blacklisted(name):
                logger.info(f"[黑名单] 保留: {name}")
                self.report.record("ignored_removal", name)
                continue
            if (staged_mods / name).exists():
                logger.debug(f"[删除] {name} 将由覆盖文件提供，保留")
                continue

            try:
                entry.unlink()
            except OSError as e:
                logger.error(f"[删除] 无法删除 '{name}': {e}")
                self.report.record("failed_removals", name)
                continue
            logger.info(f"[删除] 已删除: {name}")
            self.report.record("removed_local_files", name)

    # ---- 下载 ----

    async def _download_all(self):
        indices = sorted(self.report.missing | self.report.corrupted)
        if not indices:
            logger.info("[下载] 没有需要下载的文件")
            return

        logger.info(f"[下载] 正在下载 {len(indices)} 个文件...")
        await WorkerPool(
            "下载", self.config.thread_count, self._download_one, self.config.hang_guard
        ).run(indices)

    async def _download_one(self, index: int):
        mod = self.instance.files[index]
        try:
            verdict = await self.downloader.fetch_and_verify(
                str(self.path_of(mod)),
                mod.download_url,
                mod.expected_size,
                mod.hashes,
                self.config.download_attempts,
            )
        except Exception as e:
            logger.opt(exception=e).debug(f"[下载] #{index} {mod.file_name}")
            logger.error(f"[下载] '{mod.file_name}' 下载出错: {e}")
            self.report.record("failed_downloads", index)
            return

        if verdict is DownloadVerdict.SUCCESS:
            self.report.record("downloaded", index)
        else:
            self.report.record("failed_downloads", index)

    # ---- 统计 ----

    def describe_failure(self, index: int) -> str:
        """下载失败条目的说明"""
        mod = self.instance.files[index]
        if not mod.is_resolved and mod.project_id is not None:
            return (
                f"{mod.display_name}: {mod.note or '未解析'} "
                f"({manual_download_link(mod.project_id)})"
            )
        if mod.note:
            return f"{mod.display_name}: {mod.note}"
        return mod.display_name

    def _log_statistics(self):
        report = self.report
        logger.info(f"[统计] 删除 {len(report.removed_local_files)} 个多余文件")
        for name in sorted(report.failed_removals):
            logger.error(f"[统计] 删除失败: {name}")

        logger.info(
            f"[统计] 下载成功 {len(report.downloaded)} 个, 失败 {len(report.failed_downloads)} 个"
        )
        for index in sorted(report.failed_downloads):
            logger.error(f"[统计] 下载失败: {self.describe_failure(index)}")

        if report.ignored_verification or report.ignored_removal:
            logger.info(
                f"[黑名单] 忽略校验 {len(report.ignored_verification)} 个, "
                f"忽略删除 {len(report.ignored_removal)} 个"
            )

        for warning in report.warnings:
            logger.warning(f"[数据] {warning}")

        if report.has_errors:
            logger.warning(f"[同步] 同步完成，但有 {report.error_count} 个错误")
        else:
            logger.success("[同步] 同步完成")
