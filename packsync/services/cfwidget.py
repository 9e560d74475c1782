"""
CFWidget 元数据客户端

旧版 CurseForge 整合包清单只给出 projectID / fileID，下载地址和文件大小需要
从 CFWidget 查询。HTTP 状态码是回填协议的一部分，因此这里不把非 200 状态当作异常，
而是原样返回给调用方。
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from packsync.exceptions import APIError

CFWIDGET_BASE_URL = "https://api.cfwidget.com"
CFWIDGET_PAGE_URL = "https://cfwidget.com"


@dataclass(frozen=True)
class MetadataResponse:
    """元数据查询结果"""

    status: int
    payload: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == 200 and self.payload is not None


def manual_download_link(project_id: int, file_id: Optional[int] = None) -> str:
    """用户手动下载时打开的页面地址"""
    if file_id is None:
        return f"{CFWIDGET_PAGE_URL}/{project_id}"
    return f"{CFWIDGET_PAGE_URL}/{project_id}?&version={file_id}"


class CFWidgetClient:
    """CFWidget API 客户端"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = CFWIDGET_BASE_URL,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    async def get_project(
        self, project_id: int, file_id: Optional[int] = None
    ) -> MetadataResponse:
        """
        查询项目元数据

        Args:
            project_id: CurseForge 项目 ID
            file_id: 文件 ID；为 None 时不带版本参数并禁止缓存

        Returns:
            状态码与（仅 200 时的）JSON 数据

        Raises:
            APIError: 200 响应的内容不是 JSON 对象
        """
        url = f"{self.base_url}/{project_id}"
        if file_id is not None:
            params = {"version": str(file_id)}
            headers = None
        else:
            params = None
            headers = {"Cache-Control": "no-store"}

        async with self.session.get(url, params=params, headers=headers) as response:
            logger.debug(f"[回填] GET {response.url} -> {response.status}")
            if response.status != 200:
                return MetadataResponse(status=response.status)

            try:
                payload = await response.json(content_type=None)
            except ValueError as e:
                raise APIError(
                    f"元数据响应不是有效的 JSON: {e}",
                    context={"project_id": project_id, "file_id": file_id},
                    status_code=response.status,
                )
            if not isinstance(payload, dict):
                raise APIError(
                    "元数据响应的顶层不是对象",
                    context={"project_id": project_id, "file_id": file_id},
                    status_code=response.status,
                )
            return MetadataResponse(status=response.status, payload=payload)

    async def close(self):
        """关闭自己创建的 session"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
