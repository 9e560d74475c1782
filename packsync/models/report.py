"""
同步报告模型

记录一次同步中每个文件的结局。以文件索引为键的桶对应实例中的条目，
删除相关的桶以文件名为键（孤立文件在清单中没有索引）。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Set, Union


class VerificationVerdict(Enum):
    """校验结果"""

    VERIFIED = "verified"
    MISSING = "missing"
    CORRUPTED = "corrupted"


class DownloadVerdict(Enum):
    """下载结果"""

    SUCCESS = "success"
    FAILED = "failed"


class SyncPhase(Enum):
    """同步状态机"""

    IDLE = "idle"
    VERIFYING = "verifying"
    REPORTING_VERIFICATION = "reporting_verification"
    REMOVING = "removing"
    DOWNLOADING = "downloading"
    REPORTING_FINAL = "reporting_final"
    DONE = "done"
    FATAL_ABORT = "fatal_abort"


Key = Union[int, str]

_BUCKETS = (
    "verified",
    "missing",
    "corrupted",
    "failed_verifications",
    "ignored_verification",
    "removed_local_files",
    "failed_removals",
    "ignored_removal",
    "downloaded",
    "failed_downloads",
)


@dataclass
class SyncReport:
    """同步报告"""

    total: int = 0
    verified: Set[int] = field(default_factory=set)
    missing: Set[int] = field(default_factory=set)
    corrupted: Set[int] = field(default_factory=set)
    failed_verifications: Set[int] = field(default_factory=set)
    ignored_verification: Set[int] = field(default_factory=set)
    removed_local_files: Set[str] = field(default_factory=set)
    failed_removals: Set[str] = field(default_factory=set)
    ignored_removal: Set[str] = field(default_factory=set)
    downloaded: Set[int] = field(default_factory=set)
    failed_downloads: Set[int] = field(default_factory=set)
    warnings: List[str] = field(default_factory=list)

    def record(self, bucket: str, key: Key) -> None:
        """
        把文件记入指定桶；同一个键在同一个桶里只能写一次

        Raises:
            ValueError: 未知的桶或重复写入
        """
        if bucket not in _BUCKETS:
            raise ValueError(f"未知的报告分类: {bucket}")
        target = getattr(self, bucket)
        if key in target:
            raise ValueError(f"{key!r} 已记录在 {bucket} 中")
        target.add(key)

    @property
    def error_count(self) -> int:
        return (
            len(self.failed_verifications)
            + len(self.failed_removals)
            + len(self.failed_downloads)
        )

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def summary(self) -> Dict[str, int]:
        """各分类计数"""
        counts = {bucket: len(getattr(self, bucket)) for bucket in _BUCKETS}
        counts["total"] = self.total
        counts["warnings"] = len(self.warnings)
        return counts

    def to_dict(self) -> Dict[str, Any]:
        """转换为可 JSON 序列化的字典"""
        data: Dict[str, Any] = {
            bucket: sorted(getattr(self, bucket), key=str) for bucket in _BUCKETS
        }
        data["total"] = self.total
        data["warnings"] = list(self.warnings)
        data["summary"] = self.summary()
        return data
