"""
FFPack Provider 层

统一的模组元数据来源接口及其实现。
"""

from ffpack.api.base import Provider, ProviderRegistry
from ffpack.api.curseforge import CurseForgeProvider
from ffpack.api.modrinth import ModrinthProvider
from ffpack.api.static import StaticProvider

__all__ = [
    "Provider",
    "ProviderRegistry",
    "CurseForgeProvider",
    "ModrinthProvider",
    "StaticProvider",
]
