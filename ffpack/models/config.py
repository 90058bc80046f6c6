"""
配置模型

整合包清单（mods.toml / .json / .yaml）对应的数据类。
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ffpack.exceptions import ConfigValidationError
from ffpack.models.mod import Digest, ModLoader, Platform, ProjectType, Side
from ffpack.models.version import MinecraftVersion, VersionRange

DEFAULT_PROVIDER = "modrinth"
PREFERENCE_KEYS = ("version", "recency", "recommended", "stable")


class OutputFormat(Enum):
    """输出格式"""

    ZIP = "zip"
    MRPACK = "mrpack"


class MrpackMode(Enum):
    """mrpack 生成模式"""

    DOWNLOAD = "download"  # 文件打入 overrides
    REFERENCE = "reference"  # 只写入下载链接


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = "/".join(member.value for member in enum_cls)
        raise ConfigValidationError(
            f"{what} 必须为 {allowed}", context={"value": value}
        )


@dataclass
class ModEntry:
    """清单中的一个模组条目"""

    id: str
    provider: str = DEFAULT_PROVIDER
    version: Optional[str] = None
    side: Side = Side.BOTH
    devel: bool = True
    only_version: List[str] = field(default_factory=list)
    feature: List[str] = field(default_factory=list)
    project_type: ProjectType = ProjectType.MOD

    @classmethod
    def from_value(
        cls, value: Any, project_type: ProjectType = ProjectType.MOD
    ) -> "ModEntry":
        """
        解析条目

        支持 ``"sodium"``、``"modrinth:sodium"``、``"modrinth:sodium@>=0.5"``
        以及包含 id/provider/version/side/devel/only_version/feature 的表。
        """
        if isinstance(value, str):
            text, _, version = value.partition("@")
            provider, sep, mod_id = text.partition(":")
            if not sep:
                provider, mod_id = DEFAULT_PROVIDER, text
            entry = cls(
                id=mod_id.strip(),
                provider=provider.strip() or DEFAULT_PROVIDER,
                version=version.strip() or None,
                project_type=project_type,
            )
        elif isinstance(value, dict):
            mod_id = value.get("id") or value.get("slug")
            if not mod_id:
                raise ConfigValidationError("模组条目缺少 id", context={"entry": value})
            entry = cls(
                id=str(mod_id),
                provider=str(value.get("provider", DEFAULT_PROVIDER)),
                version=value.get("version"),
                side=_enum(Side, value.get("side", "both"), "side"),
                devel=bool(value.get("devel", True)),
                only_version=_as_list(value.get("only_version")),
                feature=_as_list(value.get("feature")),
                project_type=project_type,
            )
        else:
            raise ConfigValidationError("无效的模组条目", context={"entry": value})

        if not entry.id:
            raise ConfigValidationError("模组条目缺少 id", context={"entry": value})
        try:
            VersionRange.parse(entry.version)
        except ValueError as e:
            raise ConfigValidationError(
                f"无效的版本范围: {entry.version}", context={"error": str(e)}
            )
        return entry

    @property
    def version_range(self) -> VersionRange:
        return VersionRange.parse(self.version)


@dataclass
class ExtraUrl:
    """直接引用的 URL 或本地文件（必须声明摘要）"""

    name: str
    url: str
    digest: Digest
    filename: str
    version: str = "0"
    size: Optional[int] = None
    side: Side = Side.BOTH
    type: ProjectType = ProjectType.MOD
    devel: bool = True
    only_version: List[str] = field(default_factory=list)
    feature: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict, base_dir: str = ".") -> "ExtraUrl":
        url = data.get("url")
        path = data.get("path")
        if not url and not path:
            raise ConfigValidationError("extra_urls 条目需要 url 或 path", context=data)
        if path:
            url = "file://" + os.path.abspath(os.path.join(base_dir, path))
        raw_digest = data.get("digest")
        for algorithm in ("blake3", "sha1"):
            if not raw_digest and data.get(algorithm):
                raw_digest = f"{algorithm}:{data[algorithm]}"
        if not raw_digest:
            raise ConfigValidationError("extra_urls 条目必须声明 digest", context=data)
        try:
            digest = Digest.parse(raw_digest)
        except ValueError as e:
            raise ConfigValidationError(str(e), context=data)
        filename = data.get("filename") or url.rstrip("/").split("/")[-1]
        return cls(
            name=str(data.get("name") or os.path.splitext(filename)[0]),
            url=url,
            digest=digest,
            filename=filename,
            version=str(data.get("version", "0")),
            size=data.get("size"),
            side=_enum(Side, data.get("side", "both"), "side"),
            type=_enum(ProjectType, data.get("type", "mod"), "type"),
            devel=bool(data.get("devel", True)),
            only_version=_as_list(data.get("only_version")),
            feature=_as_list(data.get("feature")),
        )


@dataclass
class MinecraftConfig:
    """Minecraft 相关配置"""

    version: str
    mod_loader: ModLoader
    loader_version: Optional[str] = None
    mods: List[ModEntry] = field(default_factory=list)
    resourcepacks: List[ModEntry] = field(default_factory=list)
    shaderpacks: List[ModEntry] = field(default_factory=list)
    extra_urls: List[ExtraUrl] = field(default_factory=list)

    @property
    def entries(self) -> List[ModEntry]:
        return [*self.mods, *self.resourcepacks, *self.shaderpacks]


@dataclass
class OutputConfig:
    """输出配置"""

    download_dir: str = "dist"
    format: List[OutputFormat] = field(default_factory=lambda: [OutputFormat.ZIP])
    mrpack_modes: List[MrpackMode] = field(
        default_factory=lambda: [MrpackMode.DOWNLOAD]
    )
    lock_file: str = "ffpack.lock"


@dataclass
class MetadataConfig:
    """整合包元数据"""

    name: str = "FFPack Modpack"
    version: str = "1.0.0"
    description: str = ""
    author: str = ""


@dataclass
class FetchConfig:
    """下载与缓存配置"""

    store_dir: str = ".ffpack/store"
    max_concurrent: int = 4
    max_retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 60.0
    fail_fast: bool = True


@dataclass
class ResolverConfig:
    """解析器配置"""

    preference: Tuple[str, ...] = ("version", "recency")
    max_steps: int = 100_000


@dataclass
class FFPackConfig:
    """完整配置"""

    minecraft: MinecraftConfig
    output: OutputConfig = field(default_factory=OutputConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    features: List[str] = field(default_factory=list)
    devel: bool = False

    @property
    def platform(self) -> Platform:
        return Platform.of(
            self.minecraft.version,
            self.minecraft.mod_loader.value,
            self.minecraft.loader_version,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: str = ".") -> "FFPackConfig":
        """从字典创建配置，字段非法时抛出 ConfigValidationError"""
        if not isinstance(data, dict):
            raise ConfigValidationError("配置必须是一个表/对象")

        mc = data.get("minecraft")
        if not isinstance(mc, dict):
            raise ConfigValidationError("缺少 [minecraft] 配置")

        version = mc.get("version")
        if isinstance(version, list):
            if len(version) != 1:
                raise ConfigValidationError(
                    "每个清单只能指定一个 Minecraft 版本", context={"version": version}
                )
            version = version[0]
        if not version:
            raise ConfigValidationError("请配置 Minecraft 版本")

        minecraft = MinecraftConfig(
            version=str(version),
            mod_loader=_enum(ModLoader, mc.get("mod_loader", "fabric"), "mod_loader"),
            loader_version=mc.get("loader_version"),
            mods=[ModEntry.from_value(v) for v in mc.get("mods", [])],
            resourcepacks=[
                ModEntry.from_value(v, ProjectType.RESOURCE_PACK)
                for v in mc.get("resourcepacks", [])
            ],
            shaderpacks=[
                ModEntry.from_value(v, ProjectType.SHADER)
                for v in mc.get("shaderpacks", [])
            ],
            extra_urls=[
                ExtraUrl.from_dict(v, base_dir) for v in mc.get("extra_urls", [])
            ],
        )

        out = data.get("output", {})
        output = OutputConfig(
            download_dir=str(out.get("download_dir", "dist")),
            format=[
                _enum(OutputFormat, f, "output.format")
                for f in _as_list(out.get("format", ["zip"]))
            ],
            mrpack_modes=[
                _enum(MrpackMode, m, "output.mrpack_modes")
                for m in _as_list(out.get("mrpack_modes", ["download"]))
            ],
            lock_file=str(out.get("lock_file", "ffpack.lock")),
        )

        meta = data.get("metadata", {})
        metadata = MetadataConfig(
            name=str(meta.get("name", "FFPack Modpack")),
            version=str(meta.get("version", "1.0.0")),
            description=str(meta.get("description", "")),
            author=str(meta.get("author", "")),
        )

        fetch_data = data.get("fetch", {})
        fetch = FetchConfig(
            store_dir=str(fetch_data.get("store_dir", ".ffpack/store")),
            max_concurrent=fetch_data.get("max_concurrent", 4),
            max_retries=fetch_data.get("max_retries", 3),
            retry_delay=float(fetch_data.get("retry_delay", 1.0)),
            timeout=float(fetch_data.get("timeout", 60.0)),
            fail_fast=bool(fetch_data.get("fail_fast", True)),
        )
        if not isinstance(fetch.max_concurrent, int) or fetch.max_concurrent <= 0:
            raise ConfigValidationError("fetch.max_concurrent 必须为正整数")
        if not isinstance(fetch.max_retries, int) or fetch.max_retries < 0:
            raise ConfigValidationError("fetch.max_retries 必须为非负整数")

        res = data.get("resolver", {})
        preference = tuple(_as_list(res.get("preference", ["version", "recency"])))
        unknown = [key for key in preference if key not in PREFERENCE_KEYS]
        if unknown:
            raise ConfigValidationError(
                f"未知的解析偏好: {', '.join(unknown)}",
                context={"allowed": list(PREFERENCE_KEYS)},
            )
        resolver = ResolverConfig(
            preference=preference,
            max_steps=int(res.get("max_steps", 100_000)),
        )

        try:
            MinecraftVersion.parse(minecraft.version)
        except ValueError as e:
            raise ConfigValidationError(str(e), context={"version": version})

        return cls(
            minecraft=minecraft,
            output=output,
            metadata=metadata,
            fetch=fetch,
            resolver=resolver,
            features=_as_list(data.get("features")),
            devel=bool(data.get("devel", False)),
        )
