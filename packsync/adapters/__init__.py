"""
PackSync 清单适配层

三种清单格式各自对应一个适配器，通过 :class:`ManifestFormat` 在启动时选定。
"""

from enum import Enum
from pathlib import Path
from typing import Union

from packsync.adapters.base import ManifestAdapter, detect_loader
from packsync.adapters.curseforge_instance import CurseForgeInstanceAdapter
from packsync.adapters.curseforge_pack import CurseForgePackAdapter
from packsync.adapters.modrinth import ModrinthAdapter
from packsync.exceptions import ManifestError, UnsupportedFormatError
from packsync.models import Instance


class ManifestFormat(Enum):
    """清单格式"""

    CF_PACK = "cf-pack"
    CF_INSTANCE = "cf-instance"
    MODRINTH = "modrinth"

    @property
    def adapter(self) -> ManifestAdapter:
        return _ADAPTERS[self]()

    @property
    def manifest_file(self) -> str:
        return _ADAPTERS[self].manifest_file

    @property
    def needs_backfill(self) -> bool:
        return self is ManifestFormat.CF_PACK

    @classmethod
    def from_mode(cls, mode: str) -> "ManifestFormat":
        try:
            return cls(mode.lower())
        except ValueError:
            raise UnsupportedFormatError(
                f"未知的清单格式: {mode}", context={"mode": mode}
            )


_ADAPTERS = {
    ManifestFormat.CF_PACK: CurseForgePackAdapter,
    ManifestFormat.CF_INSTANCE: CurseForgeInstanceAdapter,
    ManifestFormat.MODRINTH: ModrinthAdapter,
}


def load_instance(path: Union[str, Path], fmt: ManifestFormat) -> Instance:
    """
    读取清单文件并翻译为实例

    Args:
        path: 清单文件路径
        fmt: 清单格式

    Returns:
        翻译得到的实例（CurseForge 整合包的条目仍待回填）
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise ManifestError(f"无法读取清单文件 {path}: {e}", context={"path": str(path)})
    return fmt.adapter.parse(raw)


__all__ = [
    "ManifestAdapter",
    "ManifestFormat",
    "CurseForgePackAdapter",
    "CurseForgeInstanceAdapter",
    "ModrinthAdapter",
    "detect_loader",
    "load_instance",
]
