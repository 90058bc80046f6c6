"""
下载管理器

把解析结果中的每个制品放进存储：有限并发、临时错误指数退避重试、
首个永久错误时快速失败。
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Union

from loguru import logger

from ffpack.api import ProviderRegistry
from ffpack.download.queue import FetchQueue, FetchTask, Priority
from ffpack.download.store import ArtifactStore, StoreEntry
from ffpack.download.transport import HttpTransport, Transport
from ffpack.exceptions import (
    DownloadError,
    DownloadNetworkError,
    PartialFailureReport,
)
from ffpack.models import DownloadDescriptor, ModRef, ProjectType, ResolutionGraph
from ffpack.utils import retry_async


@dataclass
class FetchStats:
    """下载统计"""

    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0


@dataclass(frozen=True)
class FetchRequest:
    """一个待获取的制品"""

    ref: ModRef
    descriptor: DownloadDescriptor
    priority: Priority = Priority.NORMAL


class FetchManager:
    """下载管理器"""

    def __init__(
        self,
        store: ArtifactStore,
        transport: Optional[Transport] = None,
        max_concurrent: int = 4,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0,
        fail_fast: bool = True,
        progress_callback: Optional[Callable[[str, float], None]] = None,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent 必须大于 0")
        self.store = store
        self.transport = transport or HttpTransport()
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.fail_fast = fail_fast
        self.stats = FetchStats()
        self._progress_callback = progress_callback

        self.queue = FetchQueue()
        self._workers: List[asyncio.Task] = []
        self._entries: Dict[ModRef, StoreEntry] = {}
        self._failures: Dict[ModRef, BaseException] = {}
        self._aborted = False

    @staticmethod
    def requests_for(
        graph: ResolutionGraph, providers: Optional[ProviderRegistry] = None
    ) -> List[FetchRequest]:
        """
        按 ModRef 键顺序把解析图转换为下载请求

        清单中的根模组优先获取，资源包与光影包最后获取。
        """
        roots = set(graph.roots)
        requests = []
        for ref, candidate in graph.ordered():
            if providers is not None and ref.provider in providers:
                descriptor = providers.for_ref(ref).describe_download(candidate)
            else:
                descriptor = candidate.download
            if candidate.project_type != ProjectType.MOD:
                priority = Priority.LOW
            elif ref in roots:
                priority = Priority.HIGH
            else:
                priority = Priority.NORMAL
            requests.append(FetchRequest(ref, descriptor, priority))
        return requests

    async def fetch_all(
        self,
        source: Union[ResolutionGraph, Iterable[FetchRequest]],
        providers: Optional[ProviderRegistry] = None,
    ) -> Dict[ModRef, StoreEntry]:
        """
        获取所有制品

        Args:
            source: 解析图或下载请求列表
            providers: 用于生成下载描述的 Provider 注册表（可选）

        Returns:
            ModRef -> StoreEntry

        Raises:
            PartialFailureReport: 有制品未能获取，报告中包含失败与被取消的 ModRef
        """
        if isinstance(source, ResolutionGraph):
            requests = self.requests_for(source, providers)
        else:
            requests = list(source)

        self.queue = FetchQueue()
        self._entries = {}
        self._failures = {}
        self._aborted = False

        for request in requests:
            added = await self.queue.put(
                request.ref, request.descriptor, request.priority
            )
            if not added:
                logger.debug(f"[队列] '{request.ref}' 与已有任务摘要相同，合并")
        self.stats.total += self.queue.qsize()

        workers = min(self.max_concurrent, self.queue.qsize())
        if workers:
            logger.info(
                f"[启动] 获取 {self.queue.qsize()} 个制品，最大并发数: {self.max_concurrent}"
            )
        self._workers = [
            asyncio.create_task(self._worker(), name=f"fetcher-{i}")
            for i in range(workers)
        ]
        try:
            await asyncio.gather(*self._workers, return_exceptions=True)
        finally:
            for worker in self._workers:
                worker.cancel()
            self._workers.clear()

        results: Dict[ModRef, StoreEntry] = {}
        failures = []
        for request in requests:
            entry = self._entries.get(request.ref)
            if entry is None:
                entry = self._shared_entry(request.descriptor)
            if entry is not None:
                results[request.ref] = entry
                continue
            error = self._failures.get(request.ref) or self._shared_failure(
                request.descriptor
            )
            failures.append((request.ref, error or DownloadError("已取消")))

        if failures:
            failures.sort(key=lambda item: item[0].key)
            raise PartialFailureReport(
                f"{len(failures)} 个制品获取失败", failures=failures
            )
        return results

    def _shared_entry(self, descriptor: DownloadDescriptor) -> Optional[StoreEntry]:
        for owner in self.queue.owners(descriptor.digest):
            if owner in self._entries:
                return self._entries[owner]
        return None

    def _shared_failure(self, descriptor: DownloadDescriptor) -> Optional[BaseException]:
        for owner in self.queue.owners(descriptor.digest):
            if owner in self._failures:
                return self._failures[owner]
        return None

    async def _worker(self):
        """下载工作协程，队列为空时退出"""
        while not self._aborted:
            try:
                task = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            try:
                self._entries[task.ref] = await self.fetch_one(task)
            except Exception as e:
                self._failures[task.ref] = e
                if self.fail_fast:
                    self._abort(task)
            finally:
                self.queue.task_done()

    def _abort(self, task: FetchTask):
        """快速失败：取消其他工作协程"""
        if self._aborted:
            return
        self._aborted = True
        logger.error(f"[中止] '{task.ref}' 获取失败，取消剩余下载")
        current = asyncio.current_task()
        for worker in self._workers:
            if worker is not current:
                worker.cancel()

    async def fetch_one(self, task: FetchTask) -> StoreEntry:
        """
        获取单个制品

        存储中已有相同摘要时不访问网络；DigestMismatch 等永久错误不重试。
        """
        descriptor = task.descriptor
        if self.store.has(descriptor.digest):
            self.stats.skipped += 1
            logger.info(f"[跳过] '{descriptor.filename}' 已在存储中")
            return self.store.entry(descriptor.digest)

        logger.info(f"[开始] 下载: {descriptor.filename}")
        try:
            entry = await retry_async(
                lambda: self._attempt(descriptor),
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                what=f"下载 '{descriptor.filename}'",
            )
        except Exception as e:
            self.stats.failed += 1
            logger.error(f"[错误] 下载 '{descriptor.filename}' 最终失败: {e}")
            raise

        self.stats.completed += 1
        logger.success(f"[完成] '{descriptor.filename}' 下载完成")
        return entry

    async def _attempt(self, descriptor: DownloadDescriptor) -> StoreEntry:
        """单次下载尝试，超时视为网络错误"""
        chunks = self._metered(descriptor, self.transport.stream(descriptor))
        try:
            return await asyncio.wait_for(
                self.store.put(chunks, descriptor.digest, descriptor.size),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise DownloadNetworkError(
                f"下载超时 ({self.timeout:.0f}s)",
                context={"url": descriptor.url},
            ) from e
        finally:
            await chunks.aclose()

    async def _metered(
        self, descriptor: DownloadDescriptor, stream: AsyncIterator[bytes]
    ) -> AsyncIterator[bytes]:
        downloaded = 0
        last_percent = 0.0
        try:
            async for chunk in stream:
                downloaded += len(chunk)
                self.stats.bytes_downloaded += len(chunk)

                # 进度回调
                if descriptor.size:
                    percent = downloaded / descriptor.size * 100
                    if percent - last_percent >= 5:
                        if self._progress_callback:
                            self._progress_callback(descriptor.filename, percent)
                        logger.debug(f"[进度] {descriptor.filename}: {percent:.1f}%")
                        last_percent = percent
                yield chunk
        finally:
            await stream.aclose()

    def get_stats(self) -> FetchStats:
        """获取下载统计"""
        return self.stats

    async def close(self):
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
