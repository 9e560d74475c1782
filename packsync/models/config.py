"""
配置模型

同步引擎使用的运行配置。既接受 snake_case 键，也接受旧设置文件中的 camelCase 键。
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, Iterable, Optional

from packsync.exceptions import ConfigValidationError

THREAD_COUNT_RANGE = (1, 128)
DOWNLOAD_ATTEMPTS_RANGE = (1, 255)

# 旧设置文件键名 -> 字段名
_LEGACY_KEYS = {
    "threadCount": "thread_count",
    "downloadAttempts": "download_attempts",
    "isFileSizeVerificationActive": "verify_file_size",
    "isHashVerificationActive": "verify_hashes",
    "modBlackList": "blacklist",
    "dataCache": "cache_enabled",
    "dataCacheDirectory": "cache_dir",
}


@dataclass
class SyncConfig:
    """同步配置"""

    thread_count: int = 16
    download_attempts: int = 5
    verify_file_size: bool = True
    verify_hashes: bool = True
    blacklist: FrozenSet[str] = field(default_factory=frozenset)
    retry_delay: float = 2.5
    hang_guard: float = 24 * 60 * 60
    cache_enabled: bool = True
    cache_dir: Optional[str] = None
    staging_dir_name: str = "PackSyncTemp"

    def __post_init__(self):
        self.blacklist = frozenset(self.blacklist or ())
        self.validate()

    @property
    def backfill_retry_threads(self) -> int:
        """回填重试池大小：约为主线程数的四分之一"""
        return max(1, self.thread_count // 4)

    def validate(self) -> None:
        """校验数值范围"""
        _check_range("thread_count", self.thread_count, THREAD_COUNT_RANGE)
        _check_range("download_attempts", self.download_attempts, DOWNLOAD_ATTEMPTS_RANGE)
        if self.retry_delay < 0:
            raise ConfigValidationError(
                "retry_delay 不能为负数", context={"retry_delay": self.retry_delay}
            )
        if self.hang_guard <= 0:
            raise ConfigValidationError(
                "hang_guard 必须为正数", context={"hang_guard": self.hang_guard}
            )

    def is_blacklisted(self, file_name: str) -> bool:
        return file_name in self.blacklist

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SyncConfig":
        """
        从字典创建配置

        Args:
            data: 配置字典，未知键会被忽略

        Returns:
            SyncConfig 实例
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = _LEGACY_KEYS.get(key, key)
            if name not in known or value is None:
                continue
            kwargs[name] = value

        if "blacklist" in kwargs:
            kwargs["blacklist"] = _as_names(kwargs["blacklist"])
        for name in ("thread_count", "download_attempts"):
            if name in kwargs:
                kwargs[name] = _as_int(name, kwargs[name])
        for name in ("retry_delay", "hang_guard"):
            if name in kwargs:
                kwargs[name] = float(kwargs[name])

        return cls(**kwargs)

    def merged(self, **overrides: Any) -> "SyncConfig":
        """返回应用了覆盖项的新配置（值为 None 的覆盖项被忽略）"""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return SyncConfig(**values)


def _check_range(name: str, value: int, bounds: tuple) -> None:
    low, high = bounds
    if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
        raise ConfigValidationError(
            f"{name} 必须是 {low} 到 {high} 之间的整数，当前值: {value!r}",
            context={name: value},
        )


def _as_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigValidationError(
            f"{name} 必须是整数，当前值: {value!r}", context={name: value}
        )


def _as_names(value: Any) -> FrozenSet[str]:
    if isinstance(value, str):
        return frozenset([value])
    if isinstance(value, Iterable):
        return frozenset(str(item) for item in value)
    raise ConfigValidationError("blacklist 必须是文件名列表", context={"blacklist": value})
