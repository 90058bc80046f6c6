"""
内容寻址制品存储

文件按摘要存放：

    <root>/objects/<algorithm>/<hex[:2]>/<hex>

只有流式计算出的摘要与声明摘要一致的数据才会被原子地移动到 objects
目录；不一致或中途取消的写入只存在于 tmp 目录并随即删除。存储是纯缓存，
整个目录可以随时删除并从 Provider 重新下载。
"""

import asyncio
import os
import shutil
import uuid
from dataclasses import dataclass
from typing import AsyncIterable, BinaryIO, Dict, Iterator, Optional

import aiofiles
from loguru import logger

from ffpack.download.verifier import FileVerifier
from ffpack.exceptions import DigestMismatch, EntryNotFound
from ffpack.models import SUPPORTED_ALGORITHMS, Digest


@dataclass(frozen=True)
class StoreEntry:
    """已校验的存储条目"""

    digest: Digest
    path: str
    size: int
    verified: bool = True


class ArtifactStore:
    """内容寻址存储"""

    def __init__(self, root: str):
        self.root = os.path.abspath(os.path.expanduser(root))
        self.objects_dir = os.path.join(self.root, "objects")
        self.tmp_dir = os.path.join(self.root, "tmp")
        self._locks: Dict[Digest, asyncio.Lock] = {}

    def path_for(self, digest: Digest) -> str:
        return os.path.join(
            self.objects_dir, digest.algorithm, digest.value[:2], digest.value
        )

    def _lock(self, digest: Digest) -> asyncio.Lock:
        """每个摘要一把锁，不同摘要的提交互不阻塞"""
        lock = self._locks.get(digest)
        if lock is None:
            lock = self._locks[digest] = asyncio.Lock()
        return lock

    def has(self, digest: Digest) -> bool:
        return os.path.isfile(self.path_for(digest))

    def entry(self, digest: Digest) -> StoreEntry:
        path = self.path_for(digest)
        if not os.path.isfile(path):
            raise EntryNotFound(f"存储中不存在: {digest}", context={"digest": str(digest)})
        return StoreEntry(digest=digest, path=path, size=os.path.getsize(path))

    def open(self, digest: Digest) -> BinaryIO:
        """以只读二进制方式打开条目"""
        return open(self.entry(digest).path, "rb")

    async def put(
        self,
        chunks: AsyncIterable[bytes],
        digest: Digest,
        size: Optional[int] = None,
    ) -> StoreEntry:
        """
        流式写入并校验

        Args:
            chunks: 字节块异步迭代器
            digest: 声明的摘要
            size: 声明的大小（可选）

        Returns:
            StoreEntry；同一摘要已被其他写入者提交时返回已有条目

        Raises:
            DigestMismatch: 摘要或大小不一致，数据已丢弃
        """
        os.makedirs(self.tmp_dir, exist_ok=True)
        tmp_path = os.path.join(
            self.tmp_dir, f"{digest.value[:16]}-{uuid.uuid4().hex}.part"
        )
        hasher = FileVerifier.hasher(digest.algorithm)
        received = 0

        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                async for chunk in chunks:
                    if not chunk:
                        continue
                    received += len(chunk)
                    if size is not None and received > size:
                        raise DigestMismatch(
                            f"数据超过声明大小 {size} 字节",
                            expected=str(digest),
                            context={"declared_size": size},
                        )
                    hasher.update(chunk)
                    await f.write(chunk)

            if size is not None and received != size:
                raise DigestMismatch(
                    f"大小不一致: 声明 {size} 字节，实际 {received} 字节",
                    expected=str(digest),
                    context={"declared_size": size, "actual_size": received},
                )
            actual = Digest(digest.algorithm, hasher.hexdigest())
            if actual != digest:
                raise DigestMismatch(
                    f"摘要校验失败: {digest.algorithm}",
                    expected=str(digest),
                    actual=str(actual),
                )

            async with self._lock(digest):
                final_path = self.path_for(digest)
                if os.path.isfile(final_path):
                    logger.debug(f"[存储] {digest} 已被其他写入者提交，丢弃副本")
                    return self.entry(digest)
                os.makedirs(os.path.dirname(final_path), exist_ok=True)
                os.chmod(tmp_path, 0o444)
                os.replace(tmp_path, final_path)

            logger.debug(f"[存储] 已提交 {digest} ({received} 字节)")
            return StoreEntry(digest=digest, path=final_path, size=received)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    async def verify(self, digest: Digest, evict: bool = False) -> bool:
        """
        重新计算已存条目的摘要

        Args:
            digest: 条目摘要
            evict: 校验失败时是否删除该条目
        """
        path = self.path_for(digest)
        ok = await FileVerifier.verify(path, digest)
        if not ok and evict and os.path.exists(path):
            logger.warning(f"[存储] {digest} 已损坏，删除")
            os.chmod(path, 0o644)
            os.remove(path)
        return ok

    def iter_entries(self) -> Iterator[StoreEntry]:
        """按摘要顺序遍历所有条目"""
        for algorithm in SUPPORTED_ALGORITHMS:
            algo_dir = os.path.join(self.objects_dir, algorithm)
            if not os.path.isdir(algo_dir):
                continue
            for prefix in sorted(os.listdir(algo_dir)):
                prefix_dir = os.path.join(algo_dir, prefix)
                for name in sorted(os.listdir(prefix_dir)):
                    try:
                        digest = Digest(algorithm, name)
                    except ValueError:
                        continue
                    yield self.entry(digest)

    def clear_tmp(self) -> None:
        """清理中断后残留的临时文件"""
        if os.path.isdir(self.tmp_dir):
            shutil.rmtree(self.tmp_dir)
