"""
CurseForge 整合包清单 (manifest.json) 适配器

清单中的文件条目只有 (projectID, fileID)，没有下载地址，
翻译后全部处于 PENDING 状态，需要由元数据回填解析。
"""

from typing import Any, Dict, List, Optional

from packsync.adapters.base import ManifestAdapter, detect_loader
from packsync.models import (
    Instance,
    MinecraftMeta,
    ModFile,
    ModLoaderInfo,
    ModpackMeta,
)


class CurseForgePackAdapter(ManifestAdapter):
    """CurseForge 整合包清单适配器"""

    name = "CurseForge 整合包"
    manifest_file = "manifest.json"

    def translate(self, data: Dict[str, Any]) -> Instance:
        minecraft = data["minecraft"]
        loader_id = self._primary_loader_id(minecraft.get("modLoaders") or [])

        files = [
            ModFile.pending(int(entry["projectID"]), int(entry["fileID"]))
            for entry in data.get("files") or []
        ]

        return Instance.build(
            name=data.get("name"),
            modpack_meta=ModpackMeta(
                name=data.get("name"),
                version=data.get("version"),
                author=data.get("author"),
                overrides_dir_name=data.get("overrides") or "overrides",
            ),
            minecraft=MinecraftMeta(version=minecraft.get("version")),
            mod_loader=ModLoaderInfo(
                kind=detect_loader(loader_id),
                version=self._loader_version(loader_id),
            ),
            files=files,
        )

    @staticmethod
    def _primary_loader_id(loaders: List[Dict[str, Any]]) -> Optional[str]:
        """优先使用标记为 primary 的加载器，否则取第一个"""
        if not loaders:
            return None
        for loader in loaders:
            if loader.get("primary"):
                return loader.get("id")
        return loaders[0].get("id")

    @staticmethod
    def _loader_version(loader_id: Optional[str]) -> Optional[str]:
        # "forge-47.2.0" -> "47.2.0"
        if not loader_id or "-" not in loader_id:
            return None
        return loader_id[loader_id.index("-") + 1 :]
