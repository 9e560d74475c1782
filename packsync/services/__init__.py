"""
PackSync 服务层

包含 CFWidget 元数据客户端和 CurseForge 元数据回填服务。
"""

from packsync.services.backfill import (
    BackfillOutcome,
    BackfillResult,
    BackfillTask,
    MetadataBackfill,
    derive_download_url,
)
from packsync.services.cfwidget import CFWidgetClient, MetadataResponse, manual_download_link

__all__ = [
    "BackfillOutcome",
    "BackfillResult",
    "BackfillTask",
    "CFWidgetClient",
    "MetadataBackfill",
    "MetadataResponse",
    "derive_download_url",
    "manual_download_link",
]
