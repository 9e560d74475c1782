"""
PackSync - Minecraft 整合包模组同步工具

根据 CurseForge / Modrinth 整合包清单校验本地 mods 目录，
下载缺失或损坏的文件并删除清单之外的文件。
"""

__version__ = "0.1.0"

from packsync.adapters import ManifestFormat, load_instance
from packsync.core import PackSync
from packsync.exceptions import PackSyncError
from packsync.models import Instance, ModFile, SyncConfig, SyncReport
from packsync.orchestrator import SyncOrchestrator

__all__ = [
    "__version__",
    "Instance",
    "ManifestFormat",
    "ModFile",
    "PackSync",
    "PackSyncError",
    "SyncConfig",
    "SyncOrchestrator",
    "SyncReport",
    "load_instance",
]
