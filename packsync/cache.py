"""
实例哈希缓存

清单没有提供哈希的文件只能通过下载完整远程文件来校验。同步结束后把这些文件在
本地计算出的 SHA-256 记录下来，下次同步时直接用作校验哈希。
"""

import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import aiofiles
from loguru import logger

from packsync.download import FileVerifier
from packsync.models import Hashes, Instance, ModFile, SyncReport

CACHE_FILE_NAME = "packsync-instance-cache.json"
CACHE_FORMAT_VERSION = 1


def _key(mod: ModFile) -> Tuple[str, int, Optional[str], Optional[str]]:
    return (mod.file_name, mod.expected_size, mod.path, mod.download_url)


def _identity(instance: Instance) -> Dict[str, Optional[str]]:
    return {
        "name": instance.modpack_meta.name or instance.name,
        "version": instance.modpack_meta.version,
        "minecraft": instance.minecraft.version,
    }


class InstanceCache:
    """实例哈希缓存"""

    def __init__(self, cache_dir: Union[str, Path]):
        self.path = Path(cache_dir) / CACHE_FILE_NAME

    def load(self) -> Optional[Dict[str, Any]]:
        """读取缓存文件，不存在或损坏时返回 None"""
        if not self.path.is_file():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"[缓存] 无法读取缓存文件，已忽略: {e}")
            return None
        return data if isinstance(data, dict) else None

    def discard(self):
        """删除缓存文件"""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[缓存] 无法删除缓存文件: {e}")

    def apply(self, instance: Instance) -> Instance:
        """
        用缓存中的哈希补全没有哈希的条目

        Returns:
            补全后的新实例；缓存不可用时原样返回
        """
        data = self.load()
        if data is None:
            return instance

        if (
            data.get("formatVersion") != CACHE_FORMAT_VERSION
            or data.get("pack") != _identity(instance)
        ):
            logger.info("[缓存] 缓存与当前整合包不一致，已丢弃")
            self.discard()
            return instance

        known: Dict[tuple, Hashes] = {}
        for entry in data.get("files") or []:
            try:
                key = (entry["fileName"], int(entry["size"]), entry["path"], entry["url"])
            except (KeyError, TypeError, ValueError):
                continue
            known[key] = Hashes.from_dict(entry.get("hashes"))

        filled = 0
        files = []
        for mod in instance.files:
            if mod.is_resolved and not mod.hashes.is_populated():
                cached = known.get(_key(mod))
                if cached is not None and cached.is_populated():
                    mod = replace(mod, hashes=cached)
                    filled += 1
            files.append(mod)

        if filled:
            logger.info(f"[缓存] 从缓存补全了 {filled} 个文件的哈希")
        return instance.with_files(files)

    async def save(
        self,
        instance: Instance,
        report: SyncReport,
        work_dir: Union[str, Path],
        verify_hashes: bool = True,
    ) -> None:
        """
        记录处于正常状态的文件及其哈希

        本次同步没有做哈希校验时，没有清单哈希的文件不会写入缓存。
        缓存写入失败只记录日志。
        """
        work_dir = Path(work_dir)
        good = report.verified | report.downloaded
        entries = []
        for index, mod in enumerate(instance.files):
            if index not in good or not mod.is_resolved:
                continue
            hashes = mod.hashes
            if not hashes.is_populated():
                if not verify_hashes:
                    continue
                try:
                    digest = await FileVerifier.calc_hash(str(work_dir / mod.path), "sha256")
                except OSError as e:
                    logger.debug(f"[缓存] 无法计算 {mod.file_name} 的哈希: {e}")
                    continue
                hashes = Hashes(sha256=digest)
            entries.append(
                {
                    "fileName": mod.file_name,
                    "size": mod.expected_size,
                    "path": mod.path,
                    "url": mod.download_url,
                    "hashes": hashes.to_dict(),
                }
            )

        data = {
            "formatVersion": CACHE_FORMAT_VERSION,
            "pack": _identity(instance),
            "files": entries,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=4, ensure_ascii=False))
        except OSError as e:
            logger.warning(f"[缓存] 无法写入缓存文件: {e}")
            return
        logger.debug(f"[缓存] 已记录 {len(entries)} 个文件")
