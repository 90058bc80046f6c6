"""
版本匹配服务

实现目标平台兼容性判断、候选版本排序偏好、清单条目过滤。
"""

from typing import Iterable, List, Sequence, Union

from ffpack.models import ExtraUrl, ModEntry, Platform, VersionCandidate

_STABILITY = {"release": 2, "beta": 1, "alpha": 0}

# 排序键作用于 (provider 顺序, candidate)；provider 越靠前视为越新
_SORT_KEYS = {
    "version": lambda item: item[1].sort_version,
    "recency": lambda item: (item[1].published, -item[0]),
    "recommended": lambda item: item[1].featured,
    "stable": lambda item: _STABILITY.get(item[1].version_type, 0),
}


class VersionMatcher:
    """版本匹配器"""

    def __init__(self, preference: Sequence[str] = ("version", "recency")):
        unknown = [key for key in preference if key not in _SORT_KEYS]
        if unknown:
            raise ValueError(f"未知的排序偏好: {unknown}")
        self.preference = tuple(preference)

    @staticmethod
    def compatible(candidate: VersionCandidate, platform: Platform) -> bool:
        """候选版本是否支持目标 Minecraft 版本与加载器"""
        return candidate.compatible_with(platform)

    def order(self, candidates: Iterable[VersionCandidate]) -> List[VersionCandidate]:
        """
        按偏好从高到低排序

        依次比较 ``preference`` 中的每一项（均为越大越优先），最后按候选
        ID 字典序，保证同样的输入总是得到同样的顺序。
        """
        ordered = sorted(enumerate(candidates), key=lambda item: item[1].id)
        for key in reversed(self.preference):
            ordered.sort(key=_SORT_KEYS[key], reverse=True)
        return [candidate for _, candidate in ordered]

    def should_include(
        self,
        entry: Union[ModEntry, ExtraUrl],
        platform: Platform,
        features: List[str],
        devel: bool = False,
    ) -> bool:
        """
        判断清单条目是否应包含在当前构建中

        Args:
            entry: 清单条目
            platform: 目标平台
            features: 启用的功能列表
            devel: 是否为开发环境构建

        Returns:
            是否包含
        """
        # 检查 only_version
        if entry.only_version and str(platform.minecraft) not in entry.only_version:
            return False

        # 条目声明的功能必须全部启用
        if entry.feature and not all(f in features for f in entry.feature):
            return False

        if devel and not entry.devel:
            return False

        return True
