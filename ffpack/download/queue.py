"""
下载任务队列

实现优先级队列、按摘要去重。
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

from ffpack.models import Digest, DownloadDescriptor, ModRef


class Priority(Enum):
    """下载优先级"""

    HIGH = 0
    NORMAL = 1
    LOW = 2


@dataclass(order=True)
class FetchTask:
    """下载任务，同优先级按 ModRef 键排序"""

    priority: int
    sort_key: str
    ref: ModRef = field(compare=False)
    descriptor: DownloadDescriptor = field(compare=False)


class FetchQueue:
    """下载队列"""

    def __init__(self):
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._owners: Dict[Digest, List[ModRef]] = {}  # 用于去重

    async def put(
        self,
        ref: ModRef,
        descriptor: DownloadDescriptor,
        priority: Priority = Priority.NORMAL,
    ) -> bool:
        """
        添加任务到队列

        Returns:
            True 如果任务是新添加的，False 如果相同摘要已在队列中
        """
        owners = self._owners.setdefault(descriptor.digest, [])
        owners.append(ref)
        if len(owners) > 1:
            return False

        await self._queue.put(
            FetchTask(
                priority=priority.value,
                sort_key=ref.key,
                ref=ref,
                descriptor=descriptor,
            )
        )
        return True

    def get_nowait(self) -> FetchTask:
        """获取下一个任务，队列为空时抛出 asyncio.QueueEmpty"""
        return self._queue.get_nowait()

    def task_done(self):
        """标记任务完成"""
        self._queue.task_done()

    def owners(self, digest: Digest) -> List[ModRef]:
        """共享同一摘要的所有 ModRef"""
        return list(self._owners.get(digest, []))

    def qsize(self) -> int:
        """获取队列大小"""
        return self._queue.qsize()
