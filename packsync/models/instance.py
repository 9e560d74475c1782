"""
实例数据模型

与清单格式无关的整合包实例表示：实例元数据与需要同步的文件列表。
除路径合法性检查外不包含任何行为。
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from loguru import logger

from packsync.exceptions import IllegalPathError, ManifestError


class LoaderKind(Enum):
    """模组加载器类型"""

    FORGE = "forge"
    FABRIC = "fabric"
    QUILT = "quilt"
    NEOFORGE = "neoforge"
    UNKNOWN = "unknown"

    @property
    def curseforge_tag(self) -> Optional[str]:
        """CurseForge 文件版本标签中使用的加载器名称"""
        return _CURSEFORGE_TAGS.get(self)


_CURSEFORGE_TAGS = {
    LoaderKind.FORGE: "Forge",
    LoaderKind.FABRIC: "Fabric",
    LoaderKind.QUILT: "Quilt",
    LoaderKind.NEOFORGE: "NeoForge",
}


class Resolution(Enum):
    """文件条目的解析状态"""

    RESOLVED = "resolved"
    PENDING = "pending"
    FAILED = "failed"


# 校验时的哈希优先级，从高到低
HASH_PRIORITY: Tuple[str, ...] = ("sha512", "sha256", "sha1")

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def check_relative_path(path: str) -> str:
    """
    检查清单给出的相对路径是否会落在实例目录之内

    Args:
        path: 清单中的相对路径

    Returns:
        原样返回的路径

    Raises:
        IllegalPathError: 路径包含 ``..``、绝对路径前缀或盘符
    """
    if not path:
        raise IllegalPathError(path, "路径为空")
    if path.startswith(("/", "\\")) or _DRIVE_LETTER.match(path):
        raise IllegalPathError(path)
    if ".." in re.split(r"[\\/]", path):
        raise IllegalPathError(path)
    return path


@dataclass(frozen=True)
class Hashes:
    """文件哈希集合"""

    sha1: Optional[str] = None
    sha256: Optional[str] = None
    sha512: Optional[str] = None

    def is_populated(self) -> bool:
        return any(getattr(self, algorithm) for algorithm in HASH_PRIORITY)

    def preferred(self) -> Optional[Tuple[str, str]]:
        """返回优先级最高的 (算法, 十六进制摘要)，没有哈希时返回 None"""
        for algorithm in HASH_PRIORITY:
            digest = getattr(self, algorithm)
            if digest:
                return algorithm, digest.lower()
        return None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Hashes":
        if not data:
            return cls()
        values = {str(key).lower(): value for key, value in data.items()}
        return cls(
            sha1=values.get("sha1") or None,
            sha256=values.get("sha256") or None,
            sha512=values.get("sha512") or None,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            algorithm: getattr(self, algorithm)
            for algorithm in HASH_PRIORITY
            if getattr(self, algorithm)
        }


@dataclass(frozen=True)
class ModFile:
    """
    清单中的单个文件条目

    ``path`` 为空时默认为 ``mods/<file_name>``。未解析（PENDING/FAILED）的条目
    只出现在失败报告中，不参与校验和下载。
    """

    file_name: str
    download_url: Optional[str]
    expected_size: int = 0
    hashes: Hashes = field(default_factory=Hashes)
    path: Optional[str] = None
    resolution: Resolution = Resolution.RESOLVED
    project_id: Optional[int] = None
    file_id: Optional[int] = None
    note: Optional[str] = None

    def __post_init__(self):
        if self.expected_size is None or self.expected_size < 0:
            raise ManifestError(
                f"文件大小无效: {self.expected_size}",
                context={"file": self.file_name},
            )
        if not self.path and self.file_name:
            object.__setattr__(self, "path", f"mods/{self.file_name}")
        if self.path:
            check_relative_path(self.path)
        if self.resolution is Resolution.RESOLVED and not self.download_url:
            raise ManifestError(
                f"已解析的文件缺少下载地址: {self.file_name}",
                context={"file": self.file_name},
            )

    @classmethod
    def pending(cls, project_id: int, file_id: int) -> "ModFile":
        """创建等待元数据回填的 CurseForge 条目"""
        return cls(
            file_name="",
            download_url=None,
            resolution=Resolution.PENDING,
            project_id=project_id,
            file_id=file_id,
        )

    @property
    def is_resolved(self) -> bool:
        return self.resolution is Resolution.RESOLVED

    @property
    def display_name(self) -> str:
        if self.file_name:
            return self.file_name
        return f"CurseForge 项目 {self.project_id} (文件 {self.file_id})"

    @property
    def in_mods_dir(self) -> bool:
        return bool(self.path) and self.path == f"mods/{self.file_name}"

    def failed(self, reason: str) -> "ModFile":
        return replace(self, resolution=Resolution.FAILED, note=reason)


@dataclass(frozen=True)
class ModpackMeta:
    name: Optional[str] = None
    version: Optional[str] = None
    author: Optional[str] = None
    overrides_dir_name: str = "overrides"
    summary: Optional[str] = None


@dataclass(frozen=True)
class MinecraftMeta:
    version: Optional[str] = None


@dataclass(frozen=True)
class ModLoaderInfo:
    kind: LoaderKind = LoaderKind.UNKNOWN
    version: Optional[str] = None


@dataclass(frozen=True)
class Instance:
    """
    一次同步使用的整合包实例

    适配器翻译完成后不可变；元数据回填的结果通过 :meth:`merge` 生成新实例。
    """

    name: Optional[str]
    modpack_meta: ModpackMeta
    minecraft: MinecraftMeta
    mod_loader: ModLoaderInfo
    files: Tuple[ModFile, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "files", tuple(self.files))

    @classmethod
    def build(
        cls,
        name: Optional[str],
        modpack_meta: ModpackMeta,
        minecraft: MinecraftMeta,
        mod_loader: ModLoaderInfo,
        files: Iterable[ModFile],
    ) -> "Instance":
        """创建实例并按目标路径去重（保留第一次出现的条目）"""
        unique = []
        seen = set()
        for mod in files:
            key = mod.path if mod.path else (mod.project_id, mod.file_id)
            if key in seen:
                logger.warning(f"[实例] 忽略重复条目: {mod.display_name}")
                continue
            seen.add(key)
            unique.append(mod)
        return cls(name, modpack_meta, minecraft, mod_loader, tuple(unique))

    @property
    def pending_indices(self) -> Tuple[int, ...]:
        return tuple(
            index
            for index, mod in enumerate(self.files)
            if mod.resolution is Resolution.PENDING
        )

    def merge(
        self,
        resolved: Mapping[int, ModFile],
        failed: Optional[Mapping[int, str]] = None,
    ) -> "Instance":
        """
        合并元数据回填结果

        Args:
            resolved: 文件索引 -> 已解析条目
            failed: 文件索引 -> 失败原因

        Returns:
            新实例；仍为 PENDING 的条目被标记为 FAILED
        """
        files = list(self.files)
        taken = {mod.path for mod in files if mod.is_resolved and mod.path}
        for index, mod in enumerate(files):
            if mod.resolution is not Resolution.PENDING:
                continue
            candidate = resolved.get(index)
            if candidate is None:
                files[index] = mod.failed((failed or {}).get(index, "元数据回填失败"))
            elif candidate.path in taken:
                files[index] = mod.failed(f"与其他条目的目标路径重复: {candidate.path}")
            else:
                taken.add(candidate.path)
                files[index] = candidate
        return replace(self, files=tuple(files))

    def with_files(self, files: Iterable[ModFile]) -> "Instance":
        return replace(self, files=tuple(files))
