"""
Modrinth 整合包索引 (modrinth.index.json) 适配器
"""

from pathlib import PurePosixPath
from typing import Any, Dict, Iterator, Optional, Tuple

from loguru import logger

from packsync.adapters.base import ManifestAdapter
from packsync.exceptions import ManifestError, UnsupportedFormatError
from packsync.models import (
    Hashes,
    Instance,
    LoaderKind,
    MinecraftMeta,
    ModFile,
    ModLoaderInfo,
    ModpackMeta,
    check_relative_path,
)

SUPPORTED_FORMAT_VERSION = 1

# 依赖键 -> 加载器类型，按优先级排列
LOADER_DEPENDENCIES: Tuple[Tuple[str, LoaderKind], ...] = (
    ("fabric-loader", LoaderKind.FABRIC),
    ("forge", LoaderKind.FORGE),
    ("quilt-loader", LoaderKind.QUILT),
    ("neoforge", LoaderKind.NEOFORGE),
    ("neo-forge", LoaderKind.NEOFORGE),
)


class ModrinthAdapter(ManifestAdapter):
    """Modrinth 索引适配器"""

    name = "Modrinth"
    manifest_file = "modrinth.index.json"

    def translate(self, data: Dict[str, Any]) -> Instance:
        format_version = data.get("formatVersion")
        if format_version != SUPPORTED_FORMAT_VERSION:
            raise UnsupportedFormatError(
                f"不支持的 Modrinth 索引版本: {format_version}",
                context={"formatVersion": format_version},
            )
        if data.get("game") != "minecraft":
            raise UnsupportedFormatError(
                f"该索引不是 Minecraft 整合包: {data.get('game')}",
                context={"game": data.get("game")},
            )

        dependencies = data.get("dependencies") or {}
        kind, loader_version = self._pick_loader(dependencies)

        return Instance.build(
            name=data.get("name"),
            modpack_meta=ModpackMeta(
                name=data.get("name"),
                version=data.get("versionId"),
                summary=data.get("summary"),
            ),
            minecraft=MinecraftMeta(version=dependencies.get("minecraft")),
            mod_loader=ModLoaderInfo(kind=kind, version=loader_version),
            files=list(self._iter_files(data.get("files") or [])),
        )

    @staticmethod
    def _pick_loader(dependencies: Dict[str, Any]) -> Tuple[LoaderKind, Optional[str]]:
        for key, kind in LOADER_DEPENDENCIES:
            if dependencies.get(key):
                return kind, dependencies[key]
        return LoaderKind.UNKNOWN, None

    @staticmethod
    def _iter_files(entries: list) -> Iterator[ModFile]:
        for entry in entries:
            # 先检查路径：非法路径使整个导入失败
            path = check_relative_path(entry["path"])

            env = entry.get("env") or {}
            if env.get("client") == "unsupported":
                logger.debug(f"[清单] 跳过客户端不支持的文件: {path}")
                continue

            downloads = entry.get("downloads") or []
            if not downloads:
                raise ManifestError(
                    f"文件 {path} 没有下载地址", context={"path": path}
                )

            size = entry.get("fileSize")
            if size is None:
                raise ManifestError(
                    f"文件 {path} 没有文件大小", context={"path": path}
                )

            yield ModFile(
                file_name=PurePosixPath(path.replace("\\", "/")).name,
                download_url=downloads[0],
                expected_size=int(size),
                hashes=Hashes.from_dict(entry.get("hashes")),
                path=path,
            )
