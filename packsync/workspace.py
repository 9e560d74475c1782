"""
工作目录处理

查找清单文件、准备 mods 目录、解压 .mrpack，以及同步结束后应用覆盖文件。
"""

import os
import shutil
import zipfile
from pathlib import Path
from typing import Optional, Tuple, Union

from loguru import logger

from packsync.adapters import ManifestFormat
from packsync.exceptions import ManifestError, WorkspaceError
from packsync.models import Instance, SyncConfig, check_relative_path

MRPACK_SUFFIX = ".mrpack"
MODRINTH_INDEX = "modrinth.index.json"
CLIENT_OVERRIDES_DIR = "client-overrides"

# 自动检测时的查找顺序
_DETECTION_ORDER = (
    ManifestFormat.MODRINTH,
    ManifestFormat.CF_INSTANCE,
    ManifestFormat.CF_PACK,
)

PathLike = Union[str, Path]


def _find_mrpack(work_dir: Path) -> Optional[Path]:
    archives = sorted(p for p in work_dir.glob(f"*{MRPACK_SUFFIX}") if p.is_file())
    return archives[0] if archives else None


def detect_manifest(
    work_dir: PathLike, fmt: Optional[ManifestFormat] = None
) -> Tuple[ManifestFormat, Path]:
    """
    在工作目录中查找清单文件

    Args:
        work_dir: 工作目录
        fmt: 指定的格式；为 None 时自动检测

    Returns:
        (格式, 清单文件路径)

    Raises:
        ManifestError: 没有找到清单文件
    """
    work_dir = Path(work_dir)
    formats = (fmt,) if fmt is not None else _DETECTION_ORDER

    for candidate_fmt in formats:
        candidate = work_dir / candidate_fmt.manifest_file
        if candidate.is_file():
            logger.info(f"[清单] 使用 {candidate_fmt.value} 清单: {candidate.name}")
            return candidate_fmt, candidate

    if fmt in (None, ManifestFormat.MODRINTH):
        archive = _find_mrpack(work_dir)
        if archive is not None:
            logger.info(f"[清单] 使用 Modrinth 整合包: {archive.name}")
            return ManifestFormat.MODRINTH, archive

    expected = fmt.manifest_file if fmt is not None else "任何已知的清单文件"
    raise ManifestError(
        f"在 {work_dir} 中没有找到{expected}",
        context={"work_dir": str(work_dir), "mode": fmt.value if fmt else "auto"},
    )


def unpack_mrpack(archive: PathLike, staging_dir: PathLike) -> Path:
    """
    把 .mrpack 解压到暂存目录

    Returns:
        解压得到的 modrinth.index.json 路径

    Raises:
        IllegalPathError: 压缩包中存在会解压到暂存目录之外的条目
        ManifestError: 压缩包损坏或缺少索引文件
    """
    staging_dir = Path(staging_dir)
    if staging_dir.exists():
        shutil.rmtree(staging_dir)

    try:
        with zipfile.ZipFile(archive) as z:
            names = z.namelist()
            for name in names:
                check_relative_path(name)
            if MODRINTH_INDEX not in names:
                raise ManifestError(
                    f"{Path(archive).name} 中缺少 {MODRINTH_INDEX}",
                    context={"archive": str(archive)},
                )
            z.extractall(staging_dir)
    except zipfile.BadZipFile as e:
        raise ManifestError(
            f"无法读取 {Path(archive).name}: {e}", context={"archive": str(archive)}
        )

    logger.debug(f"[清单] 已解压 {len(names)} 个条目到 {staging_dir}")
    return staging_dir / MODRINTH_INDEX


def prepare_workspace(
    work_dir: PathLike,
    manifest_path: PathLike,
    fmt: ManifestFormat,
    config: SyncConfig,
) -> Path:
    """
    准备工作目录

    Returns:
        交给适配器读取的清单文件路径

    Raises:
        WorkspaceError: mods 路径已被普通文件占用
    """
    work_dir = Path(work_dir)
    manifest_path = Path(manifest_path)

    mods_dir = work_dir / "mods"
    if mods_dir.exists() and not mods_dir.is_dir():
        raise WorkspaceError(
            f"{mods_dir} 不是目录", context={"path": str(mods_dir)}
        )
    mods_dir.mkdir(parents=True, exist_ok=True)

    if fmt is ManifestFormat.MODRINTH and manifest_path.suffix == MRPACK_SUFFIX:
        return unpack_mrpack(manifest_path, work_dir / config.staging_dir_name)
    return manifest_path


def _merge_move(src: Path, dst: Path):
    """把 src 目录的内容移动到 dst 中，已存在的文件会被替换"""
    dst.mkdir(parents=True, exist_ok=True)
    for entry in src.iterdir():
        target = dst / entry.name
        if entry.is_dir() and target.is_dir():
            _merge_move(entry, target)
            continue
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            os.remove(target)
        shutil.move(str(entry), str(target))


def apply_overrides(work_dir: PathLike, instance: Instance, config: SyncConfig) -> None:
    """
    同步结束后把暂存目录中的覆盖文件移动到工作目录，并删除暂存目录

    失败只记录日志，不影响同步结果。
    """
    work_dir = Path(work_dir)
    staging_dir = work_dir / config.staging_dir_name
    if not staging_dir.is_dir():
        return

    try:
        for name in (instance.modpack_meta.overrides_dir_name, CLIENT_OVERRIDES_DIR):
            overrides = staging_dir / name
            if overrides.is_dir():
                _merge_move(overrides, work_dir)
                logger.info(f"[覆盖] 已应用 {name}")
        shutil.rmtree(staging_dir)
    except OSError as e:
        logger.error(f"[覆盖] 应用覆盖文件失败: {e}")
