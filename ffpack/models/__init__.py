"""
FFPack 数据模型包

包含配置模型、模组/候选版本模型与解析结果图。
"""

from ffpack.models.config import (
    OutputFormat,
    MrpackMode,
    ModEntry,
    ExtraUrl,
    MinecraftConfig,
    OutputConfig,
    MetadataConfig,
    FetchConfig,
    ResolverConfig,
    FFPackConfig,
)
from ffpack.models.mod import (
    SUPPORTED_ALGORITHMS,
    ModLoader,
    Side,
    DependencyKind,
    ProjectType,
    ModRef,
    Digest,
    DownloadDescriptor,
    Dependency,
    Platform,
    VersionCandidate,
    Constraint,
)
from ffpack.models.version import MinecraftVersion, ModVersion, VersionRange
from ffpack.models.graph import ResolutionGraph, Conflict

__all__ = [
    # 配置模型
    "OutputFormat",
    "MrpackMode",
    "ModEntry",
    "ExtraUrl",
    "MinecraftConfig",
    "OutputConfig",
    "MetadataConfig",
    "FetchConfig",
    "ResolverConfig",
    "FFPackConfig",
    # 模组模型
    "SUPPORTED_ALGORITHMS",
    "ModLoader",
    "Side",
    "DependencyKind",
    "ProjectType",
    "ModRef",
    "Digest",
    "DownloadDescriptor",
    "Dependency",
    "Platform",
    "VersionCandidate",
    "Constraint",
    # 版本
    "MinecraftVersion",
    "ModVersion",
    "VersionRange",
    # 解析结果
    "ResolutionGraph",
    "Conflict",
]
