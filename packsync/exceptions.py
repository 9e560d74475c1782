"""
PackSync 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
致命错误（非法路径、不支持的格式、超时）会中止整个同步流程；
单个文件的错误由协调器在任务边界捕获并记录到同步报告中。
"""

from typing import Any, Dict, Optional


class PackSyncError(Exception):
    """PackSync 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(PackSyncError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class ManifestError(PackSyncError):
    """清单文件无法读取或缺少必要字段"""

    def _get_default_code(self) -> str:
        return "E200"


class UnsupportedFormatError(ManifestError):
    """清单格式或版本不受支持"""

    def _get_default_code(self) -> str:
        return "E201"


class IllegalPathError(ManifestError):
    """
    清单中的路径试图写到实例目录之外

    整合包索引是不可信输入，发现非法路径时整个导入必须中止。
    """

    def __init__(
        self,
        path: str,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = dict(context or {})
        context.setdefault("path", path)
        super().__init__(message or f"发现非法路径: {path!r}", context=context)
        self.path = path

    def _get_default_code(self) -> str:
        return "E202"


class APIError(PackSyncError):
    """API 相关错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, code, context)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code

    def _get_default_code(self) -> str:
        return "E300"


class DownloadError(PackSyncError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E400"


class DownloadNetworkError(DownloadError):
    """下载网络错误"""

    def _get_default_code(self) -> str:
        return "E401"


class SyncError(PackSyncError):
    """同步流程错误"""

    def _get_default_code(self) -> str:
        return "E500"


class SyncTimeoutError(SyncError):
    """工作池等待超过挂起保护时限"""

    def _get_default_code(self) -> str:
        return "E501"


class WorkspaceError(PackSyncError):
    """工作目录无法承载实例"""

    def _get_default_code(self) -> str:
        return "E600"


__all__ = [
    # 基础异常
    "PackSyncError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    # 清单异常
    "ManifestError",
    "UnsupportedFormatError",
    "IllegalPathError",
    # API 异常
    "APIError",
    # 下载异常
    "DownloadError",
    "DownloadNetworkError",
    # 同步异常
    "SyncError",
    "SyncTimeoutError",
    # 工作目录异常
    "WorkspaceError",
]
