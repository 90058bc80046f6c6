"""
FFPack 下载层

包含内容寻址存储、下载管理、任务队列、传输与文件校验。
"""

from ffpack.download.manager import FetchManager, FetchRequest, FetchStats
from ffpack.download.queue import FetchQueue, Priority
from ffpack.download.store import ArtifactStore, StoreEntry
from ffpack.download.transport import HttpTransport, Transport
from ffpack.download.verifier import FileVerifier

__all__ = [
    "FetchManager",
    "FetchRequest",
    "FetchStats",
    "FetchQueue",
    "Priority",
    "ArtifactStore",
    "StoreEntry",
    "HttpTransport",
    "Transport",
    "FileVerifier",
]
