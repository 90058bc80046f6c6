"""
静态 Provider

候选版本预先登记在内存中：清单里直接给出 URL / 本地路径与摘要的文件
（extra_urls）通过它进入解析流程。
"""

from typing import Dict, Iterable, List, Optional

from ffpack.exceptions import ModNotFound
from ffpack.models import (
    DownloadDescriptor,
    ExtraUrl,
    ModRef,
    Platform,
    VersionCandidate,
)


class StaticProvider:
    """内存中的候选版本表"""

    def __init__(
        self,
        name: str = "url",
        candidates: Optional[Iterable[VersionCandidate]] = None,
    ):
        self.name = name
        self._candidates: Dict[str, List[VersionCandidate]] = {}
        for candidate in candidates or ():
            self.add(candidate)

    def add(self, candidate: VersionCandidate) -> None:
        """登记候选版本，同一模组按登记顺序排列（先登记者视为更新）"""
        if candidate.ref.provider != self.name:
            raise ValueError(
                f"候选版本 {candidate} 不属于 Provider '{self.name}'"
            )
        self._candidates.setdefault(candidate.ref.id, []).append(candidate)

    def add_extra_url(self, extra: ExtraUrl) -> ModRef:
        """把 extra_urls 条目登记为单版本模组"""
        ref = ModRef(self.name, extra.name)
        self.add(
            VersionCandidate(
                ref=ref,
                id=f"{extra.name}@{extra.version}",
                version=extra.version,
                download=DownloadDescriptor(
                    url=extra.url,
                    filename=extra.filename,
                    digest=extra.digest,
                    size=extra.size,
                ),
                project_type=extra.type,
                side=extra.side,
            )
        )
        return ref

    async def canonicalize(self, ref: ModRef) -> ModRef:
        if ref.id not in self._candidates:
            raise ModNotFound(
                f"{self.name} 中不存在模组: {ref.id}", context={"ref": ref.key}
            )
        return ModRef(self.name, ref.id, name=ref.name)

    async def list_candidates(
        self, ref: ModRef, platform: Platform
    ) -> List[VersionCandidate]:
        if ref.id not in self._candidates:
            raise ModNotFound(
                f"{self.name} 中不存在模组: {ref.id}", context={"ref": ref.key}
            )
        return list(self._candidates[ref.id])

    def describe_download(self, candidate: VersionCandidate) -> DownloadDescriptor:
        return candidate.download
