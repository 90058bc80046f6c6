"""
模组数据模型

定义模组标识、候选版本、依赖约束、下载描述与目标平台。
Provider 返回后这些对象即为只读。
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from ffpack.models.version import MinecraftVersion, ModVersion, VersionRange

SUPPORTED_ALGORITHMS = ("blake3", "sha1", "sha256", "sha512")

_HEX_LENGTHS = {"blake3": 64, "sha1": 40, "sha256": 64, "sha512": 128}
_HEX_RE = re.compile(r"^[0-9a-f]+$")


class ModLoader(Enum):
    """模组加载器"""

    FABRIC = "fabric"
    FORGE = "forge"
    NEOFORGE = "neoforge"
    QUILT = "quilt"


class Side(Enum):
    """模组需要安装在客户端、服务端还是两端"""

    CLIENT = "client"
    SERVER = "server"
    BOTH = "both"


class DependencyKind(Enum):
    """依赖类型"""

    REQUIRED = "required"
    OPTIONAL = "optional"
    INCOMPATIBLE = "incompatible"


class ProjectType(Enum):
    """项目类型"""

    MOD = "mod"
    RESOURCE_PACK = "resourcepack"
    SHADER = "shader"

    @property
    def directory(self) -> str:
        return {
            ProjectType.MOD: "mods",
            ProjectType.RESOURCE_PACK: "resourcepacks",
            ProjectType.SHADER: "shaderpacks",
        }[self]


@dataclass(frozen=True, order=True)
class ModRef:
    """Provider 内的模组标识，作为依赖图节点键"""

    provider: str
    id: str
    name: Optional[str] = field(default=None, compare=False, hash=False)

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.id}"

    def __str__(self) -> str:
        if self.name and self.name != self.id:
            return f"{self.key} ({self.name})"
        return self.key


@dataclass(frozen=True)
class Digest:
    """内容摘要，字符串形式为 ``algorithm:hex``"""

    algorithm: str
    value: str

    def __post_init__(self):
        algorithm = self.algorithm.lower()
        value = self.value.lower()
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"不支持的摘要算法: {self.algorithm}")
        if len(value) != _HEX_LENGTHS[algorithm] or not _HEX_RE.match(value):
            raise ValueError(f"无效的 {algorithm} 摘要: {self.value}")
        object.__setattr__(self, "algorithm", algorithm)
        object.__setattr__(self, "value", value)

    @classmethod
    def parse(cls, text: str) -> "Digest":
        algorithm, sep, value = str(text).partition(":")
        if not sep:
            raise ValueError(f"摘要缺少算法前缀: {text}")
        return cls(algorithm, value)

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.value}"


@dataclass(frozen=True)
class DownloadDescriptor:
    """下载描述"""

    url: str
    filename: str
    digest: Digest
    size: Optional[int] = None


@dataclass(frozen=True)
class Dependency:
    """候选版本声明的依赖"""

    ref: ModRef
    range: VersionRange = field(default_factory=VersionRange)
    kind: DependencyKind = DependencyKind.REQUIRED


@dataclass(frozen=True)
class Platform:
    """目标平台：Minecraft 版本 + 模组加载器"""

    minecraft: MinecraftVersion
    loader: ModLoader
    loader_version: Optional[str] = None

    @classmethod
    def of(
        cls, minecraft: str, loader: str, loader_version: Optional[str] = None
    ) -> "Platform":
        return cls(
            minecraft=MinecraftVersion.parse(minecraft),
            loader=ModLoader(str(loader).lower()),
            loader_version=loader_version,
        )

    def __str__(self) -> str:
        return f"{self.minecraft}-{self.loader.value}"


@dataclass(frozen=True)
class VersionCandidate:
    """
    模组的某个具体版本。

    ``published`` 为 Provider 声明的发布时间（ISO 8601），``featured`` 为
    Provider 推荐标记，二者都只参与候选排序。
    """

    ref: ModRef
    id: str
    version: str
    download: DownloadDescriptor
    game_versions: FrozenSet[str] = frozenset()
    loaders: FrozenSet[str] = frozenset()
    dependencies: Tuple[Dependency, ...] = ()
    published: str = ""
    featured: bool = False
    version_type: str = "release"
    project_type: ProjectType = ProjectType.MOD
    side: Side = Side.BOTH

    @property
    def sort_version(self) -> ModVersion:
        return ModVersion(self.version)

    @property
    def digest(self) -> Digest:
        return self.download.digest

    def compatible_with(self, platform: Platform) -> bool:
        """是否兼容目标平台（空集合表示不限制）"""
        if self.game_versions and str(platform.minecraft) not in self.game_versions:
            return False
        if self.loaders and platform.loader.value not in self.loaders:
            return False
        return True

    def __str__(self) -> str:
        return f"{self.ref.key}@{self.version}"


@dataclass(frozen=True)
class Constraint:
    """
    附加在 ModRef 上的约束

    ``source`` 为声明该约束的候选版本，清单根约束为 None。
    """

    ref: ModRef
    range: VersionRange = field(default_factory=VersionRange)
    kind: DependencyKind = DependencyKind.REQUIRED
    source: Optional[VersionCandidate] = None

    def admits(self, candidate: VersionCandidate) -> bool:
        hit = self.range.matches(candidate.version, candidate.id)
        if self.kind == DependencyKind.INCOMPATIBLE:
            return not hit
        return hit

    def describe(self) -> str:
        origin = str(self.source) if self.source is not None else "manifest"
        return f"{origin} -> {self.kind.value} {self.ref.key} {self.range}"

    def __str__(self) -> str:
        return self.describe()
