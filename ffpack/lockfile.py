"""
锁文件编解码

锁文件记录一次解析的全部结果（平台 + 每个模组的版本、摘要、下载地址），
格式为 TOML：

    version = 1

    [platform]
    minecraft = "1.20.1"
    loader = "fabric"

    [[mods]]
    provider = "modrinth"
    id = "P7dR8mSH"
    version = "0.92.2+1.20.1"
    version_id = "tFw0iWAk"
    digest = "sha512:..."
    ...

未知字段被忽略，新版本只允许增加可选字段。
"""

import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import tomli
import tomli_w
from loguru import logger

from ffpack.exceptions import CorruptLockFile, LockFileError
from ffpack.models import (
    Constraint,
    Digest,
    DownloadDescriptor,
    ModRef,
    Platform,
    ProjectType,
    ResolutionGraph,
    Side,
    VersionCandidate,
    VersionRange,
)

LOCK_VERSION = 1


@dataclass(frozen=True)
class LockedMod:
    """锁定的模组记录"""

    provider: str
    id: str
    version: str
    version_id: str
    digest: Digest
    url: str
    filename: str
    name: Optional[str] = None
    size: Optional[int] = None
    side: Side = Side.BOTH
    project_type: ProjectType = ProjectType.MOD
    root: bool = False

    @property
    def ref(self) -> ModRef:
        return ModRef(self.provider, self.id, self.name)

    def to_candidate(self) -> VersionCandidate:
        """还原为不带依赖、不限平台的候选版本"""
        return VersionCandidate(
            ref=self.ref,
            id=self.version_id,
            version=self.version,
            download=DownloadDescriptor(
                url=self.url,
                filename=self.filename,
                digest=self.digest,
                size=self.size,
            ),
            project_type=self.project_type,
            side=self.side,
        )


@dataclass(frozen=True)
class LockFile:
    """锁文件"""

    minecraft: str
    loader: str
    mods: Tuple[LockedMod, ...] = ()
    loader_version: Optional[str] = None
    version: int = LOCK_VERSION

    @property
    def platform(self) -> Platform:
        return Platform.of(self.minecraft, self.loader, self.loader_version)

    @classmethod
    def from_graph(cls, graph: ResolutionGraph) -> "LockFile":
        """从解析结果生成锁文件，记录按 ModRef 键排序"""
        roots = set(graph.roots)
        mods = []
        for ref, candidate in graph.ordered():
            mods.append(
                LockedMod(
                    provider=ref.provider,
                    id=ref.id,
                    name=ref.name,
                    version=candidate.version,
                    version_id=candidate.id,
                    digest=candidate.digest,
                    url=candidate.download.url,
                    filename=candidate.download.filename,
                    size=candidate.download.size,
                    side=graph.side_of(ref),
                    project_type=candidate.project_type,
                    root=ref in roots,
                )
            )
        platform = graph.platform
        return cls(
            minecraft=str(platform.minecraft),
            loader=platform.loader.value,
            loader_version=platform.loader_version,
            mods=tuple(mods),
        )

    def to_graph(self) -> ResolutionGraph:
        """
        还原为解析结果，跳过解析器直接用于下载与打包

        每个根模组带一条钉住 version_id 的约束边。
        """
        selections = {}
        sides = {}
        roots = []
        edges = []
        for mod in self.mods:
            ref = mod.ref
            selections[ref] = mod.to_candidate()
            sides[ref] = mod.side
            if mod.root:
                roots.append(ref)
                edges.append(Constraint(ref, VersionRange.pinned(mod.version_id)))
        return ResolutionGraph(
            platform=self.platform,
            selections=selections,
            edges=tuple(edges),
            roots=tuple(roots),
            sides=sides,
        )


def _mod_to_dict(mod: LockedMod) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "provider": mod.provider,
        "id": mod.id,
    }
    if mod.name is not None:
        data["name"] = mod.name
    data.update(
        {
            "version": mod.version,
            "version_id": mod.version_id,
            "digest": str(mod.digest),
            "url": mod.url,
            "filename": mod.filename,
        }
    )
    if mod.size is not None:
        data["size"] = mod.size
    data["side"] = mod.side.value
    data["project_type"] = mod.project_type.value
    if mod.root:
        data["root"] = True
    return data


def _mod_from_dict(data: Any) -> LockedMod:
    if not isinstance(data, dict):
        raise CorruptLockFile("mods 中的记录必须是表")
    try:
        size = data.get("size")
        if size is not None and (isinstance(size, bool) or not isinstance(size, int)):
            raise CorruptLockFile(f"size 必须是整数: {size!r}")
        return LockedMod(
            provider=_required_str(data, "provider"),
            id=_required_str(data, "id"),
            name=data.get("name"),
            version=_required_str(data, "version"),
            version_id=_required_str(data, "version_id"),
            digest=Digest.parse(_required_str(data, "digest")),
            url=_required_str(data, "url"),
            filename=_required_str(data, "filename"),
            size=size,
            side=Side(data.get("side", Side.BOTH.value)),
            project_type=ProjectType(data.get("project_type", ProjectType.MOD.value)),
            root=bool(data.get("root", False)),
        )
    except ValueError as e:
        raise CorruptLockFile(f"无效的模组记录: {e}", context={"record": data}) from e


def _required_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise CorruptLockFile(f"缺少必需字段: {key}", context={"key": key})
    return value


def encode(lock: LockFile) -> bytes:
    """编码为 UTF-8 TOML"""
    platform: Dict[str, Any] = {
        "minecraft": lock.minecraft,
        "loader": lock.loader,
    }
    if lock.loader_version is not None:
        platform["loader_version"] = lock.loader_version
    data = {
        "version": lock.version,
        "platform": platform,
        "mods": [_mod_to_dict(mod) for mod in lock.mods],
    }
    return tomli_w.dumps(data).encode("utf-8")


def decode(raw: bytes) -> LockFile:
    """
    解码锁文件

    Raises:
        CorruptLockFile: TOML 无效、缺少必需字段或字段值无效
    """
    try:
        data = tomli.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomli.TOMLDecodeError) as e:
        raise CorruptLockFile(f"锁文件解析失败: {e}") from e

    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise CorruptLockFile(f"无效的锁文件版本: {version!r}")
    if version > LOCK_VERSION:
        logger.warning(
            f"[锁文件] 版本 {version} 高于当前支持的 {LOCK_VERSION}，忽略未知字段"
        )

    platform = data.get("platform")
    if not isinstance(platform, dict):
        raise CorruptLockFile("缺少 [platform] 表")
    minecraft = _required_str(platform, "minecraft")
    loader = _required_str(platform, "loader")
    loader_version = platform.get("loader_version")
    try:
        Platform.of(minecraft, loader, loader_version)
    except ValueError as e:
        raise CorruptLockFile(f"无效的平台: {e}") from e

    mods = data.get("mods", [])
    if not isinstance(mods, list):
        raise CorruptLockFile("mods 必须是表数组")

    return LockFile(
        minecraft=minecraft,
        loader=loader,
        loader_version=loader_version,
        mods=tuple(_mod_from_dict(item) for item in mods),
        version=version,
    )


def read_lockfile(path: str) -> LockFile:
    """读取锁文件"""
    if not os.path.isfile(path):
        raise LockFileError(f"锁文件不存在: {path}", context={"path": path})
    with open(path, "rb") as f:
        return decode(f.read())


def write_lockfile(path: str, lock: LockFile) -> None:
    """原子写入锁文件"""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    tmp_path = os.path.join(directory, f".{os.path.basename(path)}.{uuid.uuid4().hex}")
    try:
        with open(tmp_path, "wb") as f:
            f.write(encode(lock))
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
    logger.info(f"[锁文件] 已写入 {path} ({len(lock.mods)} 个模组)")
