"""
整合包布局

把解析结果与已校验的存储条目映射为有序的包条目。路径只由 ModRef
决定：

    <目录>/<provider>-<id><扩展名>

与下载顺序、时间戳无关，同样的输入总是得到同样的 Package。
"""

import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from loguru import logger

from ffpack.download.store import StoreEntry
from ffpack.exceptions import PackagerError
from ffpack.lockfile import LockFile
from ffpack.models import (
    Digest,
    MetadataConfig,
    ModRef,
    ProjectType,
    ResolutionGraph,
    Side,
)

DEFAULT_EXTENSION = ".jar"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class PackageEntry:
    """包内的一个文件"""

    path: str
    digest: Digest
    size: int
    ref: ModRef
    side: Side = Side.BOTH
    url: str = ""
    project_type: ProjectType = ProjectType.MOD


@dataclass(frozen=True)
class Package:
    """按 ModRef 键排序的包条目 + 内嵌锁文件"""

    entries: Tuple[PackageEntry, ...]
    lock: LockFile
    metadata: MetadataConfig = field(default_factory=MetadataConfig)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


def safe_name(part: str) -> str:
    return _UNSAFE_CHARS.sub("_", part)


def entry_path(ref: ModRef, project_type: ProjectType, filename: str) -> str:
    """计算 ref 在包内的相对路径"""
    ext = os.path.splitext(filename)[1].lower() or DEFAULT_EXTENSION
    return f"{project_type.directory}/{safe_name(ref.provider)}-{safe_name(ref.id)}{ext}"


class PackageAssembler:
    """包布局生成器"""

    def assemble(
        self,
        graph: ResolutionGraph,
        entries: Mapping[ModRef, StoreEntry],
        metadata: Optional[MetadataConfig] = None,
    ) -> Package:
        """
        生成 Package

        Args:
            graph: 解析结果
            entries: ModRef -> 已校验的存储条目
            metadata: 整合包元数据

        Raises:
            PackagerError: 缺少存储条目、摘要不一致或路径冲突
        """
        package_entries = []
        seen = {}
        for ref, candidate in graph.ordered():
            stored = entries.get(ref)
            if stored is None:
                raise PackagerError(
                    f"缺少已校验的制品: {ref}", context={"ref": ref.key}
                )
            if stored.digest != candidate.digest:
                raise PackagerError(
                    f"制品摘要与解析结果不一致: {ref}",
                    context={
                        "ref": ref.key,
                        "expected": str(candidate.digest),
                        "actual": str(stored.digest),
                    },
                )

            path = entry_path(ref, candidate.project_type, candidate.download.filename)
            if path in seen:
                raise PackagerError(
                    f"包内路径冲突: {path}",
                    context={"path": path, "refs": [seen[path].key, ref.key]},
                )
            seen[path] = ref

            package_entries.append(
                PackageEntry(
                    path=path,
                    digest=stored.digest,
                    size=stored.size,
                    ref=ref,
                    side=graph.side_of(ref),
                    url=candidate.download.url,
                    project_type=candidate.project_type,
                )
            )

        logger.debug(f"[打包] 布局完成，共 {len(package_entries)} 个文件")
        return Package(
            entries=tuple(package_entries),
            lock=LockFile.from_graph(graph),
            metadata=metadata or MetadataConfig(),
        )
