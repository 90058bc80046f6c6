"""
模组解析服务

把清单条目过滤、规范化为解析器使用的根约束。
"""

from typing import Dict, List, Optional, Tuple

from loguru import logger

from ffpack.api.base import ProviderRegistry
from ffpack.models import Constraint, FFPackConfig, ModEntry, ModRef, Side
from ffpack.services.version_matcher import VersionMatcher
from ffpack.utils import retry_async

URL_PROVIDER = "url"


class ModResolver:
    """模组解析器"""

    def __init__(
        self,
        providers: ProviderRegistry,
        matcher: Optional[VersionMatcher] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.providers = providers
        self.matcher = matcher or VersionMatcher()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._cache: Dict[str, ModRef] = {}

    async def canonicalize(self, entry: ModEntry) -> ModRef:
        """slug / ID -> Provider 规范 ModRef（使用缓存）"""
        raw = ModRef(entry.provider, entry.id, name=entry.id)
        if raw.key in self._cache:
            return self._cache[raw.key]

        provider = self.providers.for_ref(raw)
        ref = await retry_async(
            lambda: provider.canonicalize(raw),
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            what=f"查询 {raw.key}",
        )
        self._cache[raw.key] = ref
        return ref

    async def resolve_roots(
        self, config: FFPackConfig
    ) -> Tuple[List[Constraint], Dict[ModRef, Side]]:
        """
        生成根约束

        Returns:
            (根约束列表, 清单声明的安装端)
        """
        platform = config.platform
        roots: List[Constraint] = []
        sides: Dict[ModRef, Side] = {}

        for entry in config.minecraft.entries:
            if not self.matcher.should_include(
                entry, platform, config.features, config.devel
            ):
                logger.debug(f"条目 {entry.provider}:{entry.id} 被过滤，不适用于当前版本或功能")
                continue
            ref = await self.canonicalize(entry)
            if ref in sides:
                logger.warning(f"[重复] {entry.provider}:{entry.id} 与已有条目 {ref} 相同，忽略")
                continue
            roots.append(Constraint(ref, entry.version_range))
            sides[ref] = entry.side
            logger.debug(f"[根约束] {ref} {entry.version_range}")

        for extra in config.minecraft.extra_urls:
            if not self.matcher.should_include(
                extra, platform, config.features, config.devel
            ):
                logger.debug(f"额外 URL {extra.url} 被过滤")
                continue
            ref = ModRef(URL_PROVIDER, extra.name)
            if ref in sides:
                logger.warning(f"[重复] 额外 URL {extra.name} 重复，忽略")
                continue
            roots.append(Constraint(ref))
            sides[ref] = extra.side

        logger.info(f"清单共 {len(roots)} 个根模组")
        return roots, sides
