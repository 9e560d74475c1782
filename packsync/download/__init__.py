"""
PackSync 下载层

包含文件下载、重试与校验。
"""

from packsync.download.manager import DownloadManager, DownloadStats
from packsync.download.verifier import FileVerifier

__all__ = [
    "DownloadManager",
    "DownloadStats",
    "FileVerifier",
]
