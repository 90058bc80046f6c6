"""
FFPack 服务层

包含业务逻辑服务：模组解析、依赖求解、版本匹配。
"""

from ffpack.services.mod_resolver import ModResolver
from ffpack.services.dependency_resolver import (
    DependencyResolver,
    DecisionFrame,
    SearchState,
)
from ffpack.services.version_matcher import VersionMatcher

__all__ = [
    "ModResolver",
    "DependencyResolver",
    "DecisionFrame",
    "SearchState",
    "VersionMatcher",
]
