"""
CurseForge 元数据回填

为旧版 CurseForge 整合包清单中只有 (projectID, fileID) 的条目查询下载地址和大小。

状态协议：
    200       解析响应；文件 ID 不一致时失败，没有指定文件数据时走回退路径
    403       第一次：去掉 version 参数重试一次（触发回退路径）；再次 403：失败并提示手动下载
    202/500   服务端仍在处理：标记后放入重试轮；若此前刚遇到 403，则清除标记立即重试
    其他      失败

重试只有一轮，由一个较小的工作池执行；重试后仍未解析的条目保持失败。
"""

import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp
from loguru import logger

from packsync.exceptions import APIError, IllegalPathError, ManifestError
from packsync.models import Instance, LoaderKind, ModFile, SyncConfig
from packsync.pool import WorkerPool
from packsync.services.cfwidget import CFWidgetClient, manual_download_link

FORGECDN_BASE_URL = "https://edge.forgecdn.net/files"

LOADER_TAGS = frozenset(
    kind.curseforge_tag for kind in LoaderKind if kind.curseforge_tag
)

# 从这个版本开始 CurseForge 文件普遍带有加载器标签
LOADER_TAGS_SINCE = (1, 14)


class BackfillOutcome(Enum):
    """单次回填尝试的结果"""

    RESOLVED = "resolved"
    RETRY = "retry"
    FAILED = "failed"


@dataclass
class BackfillTask:
    """一个待回填的条目"""

    index: int
    project_id: int
    file_id: int
    access_denied: bool = False
    processing: bool = False


@dataclass
class BackfillResult:
    """回填结果：成功解析的条目、失败原因和数据收集警告"""

    resolved: Dict[int, ModFile] = field(default_factory=dict)
    failed: Dict[int, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


def derive_download_url(
    file_id: int, file_name: str, base_url: str = FORGECDN_BASE_URL
) -> str:
    """
    由文件 ID 和文件名推导 CDN 下载地址

    文件 ID 的前 4 位作为第一级目录，其余数字作为第二级目录。
    """
    digits = str(file_id)
    return f"{base_url}/{digits[:4]}/{digits[4:]}/{quote(file_name)}"


def parse_version(version: Optional[str]) -> Tuple[int, ...]:
    """把 "1.16.5" 之类的版本号转为可比较的整数元组"""
    if not version:
        return ()
    return tuple(int(part) for part in re.findall(r"\d+", version))


class MetadataBackfill:
    """元数据回填服务"""

    def __init__(
        self,
        client: CFWidgetClient,
        config: SyncConfig,
        cdn_base_url: str = FORGECDN_BASE_URL,
    ):
        self.client = client
        self.config = config
        self.cdn_base_url = cdn_base_url
        self._instance: Optional[Instance] = None
        self._result = BackfillResult()
        self._retries: List[BackfillTask] = []
        self._retry_pass = False
        self._fatal: Optional[IllegalPathError] = None

    async def run(self, instance: Instance) -> BackfillResult:
        """
        回填实例中所有待解析的条目

        Returns:
            回填结果，交给 :meth:`Instance.merge` 合并

        Raises:
            IllegalPathError: 元数据给出的文件名会写到实例目录之外
            SyncTimeoutError: 回填超过挂起保护时限
        """
        self._instance = instance
        self._result = BackfillResult()
        self._retries = []
        self._retry_pass = False
        self._fatal = None

        tasks = [
            BackfillTask(index, instance.files[index].project_id, instance.files[index].file_id)
            for index in instance.pending_indices
        ]
        if not tasks:
            return self._result

        logger.info(f"[回填] 正在获取 {len(tasks)} 个 CurseForge 文件的元数据")
        await WorkerPool(
            "回填", self.config.thread_count, self._handle, self.config.hang_guard
        ).run(tasks)
        self._raise_fatal()

        if self._retries:
            retries, self._retries = self._retries, []
            self._retry_pass = True
            logger.info(f"[回填] {len(retries)} 个文件需要重试")
            await WorkerPool(
                "回填重试",
                self.config.backfill_retry_threads,
                self._handle,
                self.config.hang_guard,
            ).run(retries)
            self._raise_fatal()

        logger.info(
            f"[回填] 完成: {len(self._result.resolved)} 个成功, "
            f"{len(self._result.failed)} 个失败"
        )
        return self._result

    def _raise_fatal(self):
        if self._fatal is not None:
            raise self._fatal

    async def _handle(self, task: BackfillTask):
        try:
            outcome = await self.resolve(task)
        except IllegalPathError as e:
            if self._fatal is None:
                self._fatal = e
            return
        except (
            APIError,
            ManifestError,
            aiohttp.ClientError,
            asyncio.TimeoutError,
            KeyError,
            TypeError,
            ValueError,
        ) as e:
            logger.opt(exception=e).debug(f"[回填] 项目 {task.project_id} 出错")
            self._fail(task, f"元数据回填出错: {e}")
            return

        if outcome is BackfillOutcome.RETRY:
            if self._retry_pass:
                self._fail(task, "重试后元数据仍不可用")
            else:
                self._retries.append(task)

    async def resolve(self, task: BackfillTask) -> BackfillOutcome:
        """对一个条目执行一次回填尝试"""
        response = await self.client.get_project(
            task.project_id, None if task.access_denied else task.file_id
        )

        if response.status == 200:
            if not response.ok:
                self._fail(task, "元数据响应为空")
                return BackfillOutcome.FAILED
            mod = self._from_payload(task, response.payload)
            if mod is None:
                return BackfillOutcome.FAILED
            self._result.resolved[task.index] = mod
            logger.debug(f"[回填] 项目 {task.project_id} -> {mod.file_name}")
            return BackfillOutcome.RESOLVED

        if response.status == 403:
            if task.access_denied or task.processing:
                self._warn(
                    f"无法获取 CurseForge 项目 {task.project_id} 的文件 {task.file_id}，"
                    f"请手动下载: {manual_download_link(task.project_id, task.file_id)}"
                )
                self._fail(task, "元数据服务拒绝访问")
                return BackfillOutcome.FAILED
            task.access_denied = True
            logger.warning(f"[回填] 项目 {task.project_id} 拒绝访问，稍后不带文件 ID 重试")
            return BackfillOutcome.RETRY

        if response.status in (202, 500):
            task.processing = True
            if task.access_denied:
                task.access_denied = False
                return await self.resolve(task)
            logger.info(f"[回填] 项目 {task.project_id} 的元数据仍在处理中，稍后重试")
            return BackfillOutcome.RETRY

        self._fail(task, f"元数据服务返回了意外的状态码 {response.status}")
        return BackfillOutcome.FAILED

    def _from_payload(
        self, task: BackfillTask, payload: Dict[str, Any]
    ) -> Optional[ModFile]:
        title = payload.get("title") or f"项目 {task.project_id}"
        download = payload.get("download")

        if download and not task.access_denied:
            if int(download["id"]) != task.file_id:
                self._fail(
                    task,
                    f"元数据返回的文件 ID {download['id']} 与清单中的 {task.file_id} 不一致",
                )
                return None
            return self._to_mod_file(task, download)

        self._warn(
            f"{title} 没有找到清单指定的文件 {task.file_id}，"
            f"将改用与整合包版本匹配的文件: {manual_download_link(task.project_id, task.file_id)}"
        )
        entry = self._select_fallback(payload.get("files") or [], title)
        if entry is None:
            self._fail(
                task,
                f"{title} 没有与 Minecraft {self._instance.minecraft.version} 匹配的文件",
            )
            return None
        return self._to_mod_file(task, entry)

    def _select_fallback(
        self, files: List[Dict[str, Any]], title: str
    ) -> Optional[Dict[str, Any]]:
        """
        在旧版文件列表中选择回退文件

        只考虑版本标签包含整合包 Minecraft 版本的文件；优先选择带有
        整合包加载器标签的文件，其次接受没有加载器标签的文件。
        """
        mc_version = self._instance.minecraft.version
        loader = self._instance.mod_loader.kind
        own_tag = loader.curseforge_tag

        candidates = [f for f in files if mc_version and mc_version in (f.get("versions") or [])]

        if own_tag:
            for entry in candidates:
                if own_tag in entry["versions"]:
                    return entry

        for entry in candidates:
            tags = LOADER_TAGS.intersection(entry["versions"])
            if not tags:
                if parse_version(mc_version) >= LOADER_TAGS_SINCE:
                    self._warn(
                        f"{title} 的文件 {entry.get('name')} 没有加载器标签，请手动确认它是否适用于 "
                        f"{loader.value}"
                    )
                return entry
            if loader is LoaderKind.QUILT and tags == {LoaderKind.FABRIC.curseforge_tag}:
                self._warn(f"{title} 没有 Quilt 版本，改用 Fabric 版本 {entry.get('name')}")
                return entry
            if own_tag is None:
                return entry
        return None

    def _to_mod_file(self, task: BackfillTask, entry: Dict[str, Any]) -> ModFile:
        file_name = entry["name"]
        return ModFile(
            file_name=file_name,
            download_url=derive_download_url(entry["id"], file_name, self.cdn_base_url),
            expected_size=int(entry.get("filesize") or 0),
            project_id=task.project_id,
            file_id=int(entry["id"]),
        )

    def _warn(self, message: str):
        logger.warning(f"[回填] {message}")
        self._result.warnings.append(message)

    def _fail(self, task: BackfillTask, reason: str):
        logger.error(f"[回填] 项目 {task.project_id} (文件 {task.file_id}) 解析失败: {reason}")
        self._result.failed[task.index] = reason
