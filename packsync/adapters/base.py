"""
清单适配器基类

每个适配器把一种清单格式翻译成统一的 :class:`~packsync.models.Instance`。
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple, Union

from loguru import logger

from packsync.exceptions import ManifestError
from packsync.models import Instance, LoaderKind

# 子串匹配顺序：neoforge 必须先于 forge 检查
_LOADER_MARKERS: Tuple[Tuple[str, LoaderKind], ...] = (
    ("neoforge", LoaderKind.NEOFORGE),
    ("neo-forge", LoaderKind.NEOFORGE),
    ("forge", LoaderKind.FORGE),
    ("fabric", LoaderKind.FABRIC),
    ("quilt", LoaderKind.QUILT),
)


def detect_loader(loader_id: Optional[str]) -> LoaderKind:
    """根据加载器标识（如 ``forge-47.2.0``）推断加载器类型"""
    if not loader_id:
        return LoaderKind.UNKNOWN
    lowered = loader_id.lower()
    for marker, kind in _LOADER_MARKERS:
        if marker in lowered:
            return kind
    return LoaderKind.UNKNOWN


class ManifestAdapter(ABC):
    """清单适配器"""

    #: 格式名称，用于日志
    name: str = ""
    #: 工作目录中该格式清单的默认文件名
    manifest_file: str = ""

    @abstractmethod
    def translate(self, data: Dict[str, Any]) -> Instance:
        """
        把已解析的清单字典翻译为实例

        Raises:
            ManifestError: 缺少必要字段
            UnsupportedFormatError: 格式或版本不受支持
            IllegalPathError: 条目路径越出实例目录
        """

    def parse(self, raw: Union[bytes, str]) -> Instance:
        """解析原始清单字节并翻译为实例"""
        logger.debug(f"[清单] 正在把 {self.name} 清单翻译为实例...")
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ManifestError(
                f"{self.name} 清单不是有效的 JSON: {e}", context={"format": self.name}
            )

        if not isinstance(data, dict):
            raise ManifestError(
                f"{self.name} 清单的顶层必须是对象", context={"format": self.name}
            )

        try:
            instance = self.translate(data)
        except ManifestError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug(f"[清单] 无法翻译的清单内容: {json.dumps(data)[:2000]}")
            raise ManifestError(
                f"翻译 {self.name} 清单失败: {e!r}", context={"format": self.name}
            )

        logger.debug(f"[清单] 翻译完成，共 {len(instance.files)} 个文件")
        return instance
