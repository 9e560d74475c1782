"""
PackSync 数据模型包

包含实例模型、配置模型和同步报告模型定义。
"""

from packsync.models.config import SyncConfig
from packsync.models.instance import (
    HASH_PRIORITY,
    Hashes,
    Instance,
    LoaderKind,
    MinecraftMeta,
    ModFile,
    ModLoaderInfo,
    ModpackMeta,
    Resolution,
    check_relative_path,
)
from packsync.models.report import (
    DownloadVerdict,
    SyncPhase,
    SyncReport,
    VerificationVerdict,
)

__all__ = [
    # 实例模型
    "HASH_PRIORITY",
    "Hashes",
    "Instance",
    "LoaderKind",
    "MinecraftMeta",
    "ModFile",
    "ModLoaderInfo",
    "ModpackMeta",
    "Resolution",
    "check_relative_path",
    # 配置模型
    "SyncConfig",
    # 报告模型
    "DownloadVerdict",
    "SyncPhase",
    "SyncReport",
    "VerificationVerdict",
]
