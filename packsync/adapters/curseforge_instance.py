"""
CurseForge MinecraftInstance (minecraftinstance.json) 适配器

已安装的附加内容自带下载地址和文件大小，可以直接映射。
"""

from typing import Any, Dict, Optional

from loguru import logger

from packsync.adapters.base import ManifestAdapter, detect_loader
from packsync.models import (
    Hashes,
    Instance,
    LoaderKind,
    MinecraftMeta,
    ModFile,
    ModLoaderInfo,
    ModpackMeta,
    Resolution,
)

# 加载器类型 -> baseModLoader 中保存版本号的字段
LOADER_VERSION_FIELDS = {
    LoaderKind.FORGE: "forgeVersion",
    LoaderKind.FABRIC: "fabricVersion",
    LoaderKind.QUILT: "quiltVersion",
    LoaderKind.NEOFORGE: "neoForgeVersion",
}

# CurseForge 哈希算法编号：1 = SHA-1
_CF_HASH_SHA1 = 1


class CurseForgeInstanceAdapter(ManifestAdapter):
    """CurseForge MinecraftInstance 适配器"""

    name = "CurseForge 实例"
    manifest_file = "minecraftinstance.json"

    def translate(self, data: Dict[str, Any]) -> Instance:
        base_loader = data.get("baseModLoader") or {}
        kind = detect_loader(base_loader.get("name"))
        version_field = LOADER_VERSION_FIELDS.get(kind)

        manifest = data.get("manifest")
        if manifest:
            meta = ModpackMeta(
                name=manifest.get("name"),
                version=manifest.get("version"),
                author=manifest.get("author"),
                overrides_dir_name=manifest.get("overrides") or "overrides",
            )
        else:
            meta = ModpackMeta(name=data.get("name"))

        files = [
            self._addon_to_mod_file(addon)
            for addon in data.get("installedAddons") or []
        ]

        return Instance.build(
            name=data.get("name"),
            modpack_meta=meta,
            minecraft=MinecraftMeta(version=base_loader.get("minecraftVersion")),
            mod_loader=ModLoaderInfo(
                kind=kind,
                version=base_loader.get(version_field) if version_field else None,
            ),
            files=files,
        )

    @staticmethod
    def _addon_to_mod_file(addon: Dict[str, Any]) -> ModFile:
        installed = addon["installedFile"]
        file_name = installed["fileName"]
        download_url = installed.get("downloadUrl")
        project_id = addon.get("addonID")
        file_id = installed.get("id")

        if not download_url:
            logger.warning(f"[清单] {file_name} 没有下载地址，将计入下载失败")
            return ModFile(
                file_name=file_name,
                download_url=None,
                expected_size=int(installed.get("fileLength") or 0),
                resolution=Resolution.FAILED,
                project_id=project_id,
                file_id=file_id,
                note="清单中缺少下载地址",
            )

        return ModFile(
            file_name=file_name,
            download_url=download_url,
            expected_size=int(installed.get("fileLength") or 0),
            hashes=Hashes(sha1=_sha1_from(installed.get("hashes"))),
            project_id=project_id,
            file_id=file_id,
        )


def _sha1_from(hashes: Optional[list]) -> Optional[str]:
    for entry in hashes or []:
        if entry.get("type") == _CF_HASH_SHA1 and entry.get("value"):
            return str(entry["value"]).lower()
    return None
