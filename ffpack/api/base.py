"""
Provider 抽象

解析器与下载器只依赖此处的能力接口，具体来源（Modrinth、静态 URL 等）
各自实现，不需要继承。
"""

from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from ffpack.exceptions import ConfigError
from ffpack.models import DownloadDescriptor, ModRef, Platform, VersionCandidate


@runtime_checkable
class Provider(Protocol):
    """模组元数据来源"""

    name: str

    async def canonicalize(self, ref: ModRef) -> ModRef:
        """
        将用户书写的标识（例如 slug）转换为 Provider 的规范 ID。

        不存在时抛出 ModNotFound。
        """
        ...

    async def list_candidates(
        self, ref: ModRef, platform: Platform
    ) -> List[VersionCandidate]:
        """
        列出候选版本（Provider 顺序，通常最新在前）。

        不存在时抛出 ModNotFound，临时故障抛出 ProviderUnavailable。
        """
        ...

    def describe_download(self, candidate: VersionCandidate) -> DownloadDescriptor:
        """返回候选版本的下载描述"""
        ...


class ProviderRegistry:
    """按名称查找 Provider"""

    def __init__(self, providers: Optional[Iterable[Provider]] = None):
        self._providers: Dict[str, Provider] = {}
        for provider in providers or ():
            self.register(provider)

    def register(self, provider: Provider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str) -> Provider:
        try:
            return self._providers[name]
        except KeyError:
            raise ConfigError(
                f"未知的 Provider: {name}",
                context={"available": sorted(self._providers)},
            )

    def for_ref(self, ref: ModRef) -> Provider:
        return self.get(ref.provider)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    async def close(self) -> None:
        """关闭持有网络会话的 Provider"""
        for provider in self._providers.values():
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
