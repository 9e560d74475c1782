"""
CLI 模块

命令行接口实现。
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import toml
import yaml
from loguru import logger

from packsync.adapters import ManifestFormat
from packsync.core import PackSync
from packsync.exceptions import ConfigParseError, PackSyncError
from packsync.logger import setup_logger
from packsync.models import SyncConfig

MODES = ["auto"] + [fmt.value for fmt in ManifestFormat]


def load_config(config_path: str) -> dict:
    """加载配置文件"""
    path = Path(config_path)

    if not path.exists():
        raise click.ClickException(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()

    try:
        if suffix == ".toml":
            return toml.load(config_path)
        elif suffix == ".json":
            return json.loads(path.read_text(encoding="utf-8"))
        elif suffix in (".yaml", ".yml"):
            return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"无法解析配置文件 {path.name}: {e}", context={"path": str(path)}
        )
    raise click.ClickException(f"不支持的配置文件格式: {suffix}")


def build_config(
    config_path: Optional[str],
    threads: Optional[int],
    attempts: Optional[int],
    no_size_check: bool,
    no_hash_check: bool,
    blacklist: tuple,
    no_cache: bool,
) -> SyncConfig:
    """合并配置文件和命令行参数"""
    config = SyncConfig.from_dict(load_config(config_path) if config_path else {})
    return config.merged(
        thread_count=threads,
        download_attempts=attempts,
        verify_file_size=False if no_size_check else None,
        verify_hashes=False if no_hash_check else None,
        blacklist=config.blacklist | frozenset(blacklist) if blacklist else None,
        cache_enabled=False if no_cache else None,
    )


async def run_async(work_dir: str, mode: str, config: SyncConfig) -> int:
    """异步运行，返回进程退出码"""
    fmt = None if mode == "auto" else ManifestFormat.from_mode(mode)
    try:
        report = await PackSync(work_dir, config, fmt).run()
    except PackSyncError as e:
        logger.error(f"同步中止: {e}")
        logger.debug(f"错误详情: {e.to_dict()}")
        return 1

    logger.debug(f"同步报告: {report.summary()}")
    return 0


@click.command()
@click.argument("work_dir", type=click.Path(file_okay=False), default=".")
@click.option(
    "-m", "--mode", type=click.Choice(MODES), default="auto", show_default=True,
    help="清单格式",
)
@click.option("-c", "--config", "config_path", type=click.Path(exists=True), help="配置文件 (toml/json/yaml)")
@click.option("-t", "--threads", type=int, help="并发数 (1-128)")
@click.option("-a", "--attempts", type=int, help="每个文件的下载尝试次数 (1-255)")
@click.option("--no-size-check", is_flag=True, help="不校验文件大小")
@click.option("--no-hash-check", is_flag=True, help="不校验文件哈希")
@click.option("-b", "--blacklist", multiple=True, help="不校验也不删除的文件名（可多次使用）")
@click.option("--no-cache", is_flag=True, help="不使用实例哈希缓存")
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.option("--log-file", type=click.Path(dir_okay=False), help="额外写入的日志文件（记录 DEBUG 级别）")
@click.version_option(package_name="packsync")
def main(
    work_dir: str,
    mode: str,
    config_path: Optional[str],
    threads: Optional[int],
    attempts: Optional[int],
    no_size_check: bool,
    no_hash_check: bool,
    blacklist: tuple,
    no_cache: bool,
    debug: bool,
    log_file: Optional[str],
):
    """PackSync - Minecraft 整合包模组同步工具"""
    setup_logger(level="DEBUG" if debug else None, log_file=log_file)

    try:
        config = build_config(
            config_path, threads, attempts, no_size_check, no_hash_check, blacklist, no_cache
        )
    except PackSyncError as e:
        raise click.ClickException(str(e))

    sys.exit(asyncio.run(run_async(work_dir, mode, config)))


if __name__ == "__main__":
    main()
