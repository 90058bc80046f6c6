"""
Mrpack 生成器

实现 Modrinth 标准整合包 (.mrpack) 的生成。

- download 模式：文件字节放入 ``overrides/``，index 的 files 为空
- reference 模式：index 列出下载地址与哈希，由启动器下载；本地
  (``file://``) 文件仍放入 ``overrides/``
"""

import hashlib
import json
from typing import Dict, List

from loguru import logger

from ffpack.download.store import ArtifactStore
from ffpack.exceptions import MrpackError, StoreError
from ffpack.lockfile import encode
from ffpack.models import ModLoader, MrpackMode, Side
from ffpack.packager.assembler import Package, PackageEntry
from ffpack.packager.zip import LOCK_NAME, archive_comment, write_archive

INDEX_NAME = "modrinth.index.json"
HASH_ALGORITHMS = ("sha1", "sha512")

_LOADER_KEYS = {
    ModLoader.FABRIC: "fabric-loader",
    ModLoader.QUILT: "quilt-loader",
    ModLoader.FORGE: "forge",
    ModLoader.NEOFORGE: "neoforge",
}


def env_for(side: Side) -> Dict[str, str]:
    """Side -> mrpack env"""
    return {
        "client": "unsupported" if side == Side.SERVER else "required",
        "server": "unsupported" if side == Side.CLIENT else "required",
    }


class MrpackBuilder:
    """Mrpack 构建器"""

    async def build(
        self,
        package: Package,
        store: ArtifactStore,
        output_path: str,
        mode: MrpackMode = MrpackMode.DOWNLOAD,
    ) -> str:
        """
        构建 mrpack 文件

        Args:
            package: 包布局
            store: 制品存储
            output_path: 输出文件路径
            mode: download 或 reference

        Returns:
            生成的文件路径
        """
        files = []
        overrides = []
        for entry in package.entries:
            if mode == MrpackMode.REFERENCE and entry.url.startswith(("http://", "https://")):
                files.append(self._file_record(entry, store))
            else:
                overrides.append(entry)

        manifest = self._create_manifest(package, files)
        members = [
            (INDEX_NAME, self._dump(manifest)),
            (LOCK_NAME, encode(package.lock)),
        ]
        for entry in overrides:
            members.append(
                (f"overrides/{entry.path}", lambda d=entry.digest: store.open(d))
            )

        write_archive(
            output_path, members, MrpackError, archive_comment(package.metadata)
        )
        logger.success(f"[完成] mrpack ({mode.value}) 已生成: {output_path}")
        return output_path

    @staticmethod
    def _dump(manifest: dict) -> bytes:
        return json.dumps(
            manifest, indent=4, sort_keys=True, ensure_ascii=False
        ).encode("utf-8")

    def _create_manifest(self, package: Package, files: List[dict]) -> dict:
        """创建 modrinth.index.json"""
        lock = package.lock
        loader = ModLoader(lock.loader)
        dependencies = {"minecraft": lock.minecraft}
        if lock.loader_version and lock.loader_version != "unknown":
            dependencies[_LOADER_KEYS[loader]] = lock.loader_version

        metadata = package.metadata
        return {
            "game": "minecraft",
            "formatVersion": 1,
            "versionId": metadata.version,
            "name": metadata.name,
            "summary": metadata.description,
            "files": files,
            "dependencies": dependencies,
        }

    def _file_record(self, entry: PackageEntry, store: ArtifactStore) -> dict:
        """reference 模式下的 files 条目，哈希从存储中的字节计算"""
        hashers = {name: hashlib.new(name) for name in HASH_ALGORITHMS}
        try:
            with store.open(entry.digest) as f:
                for chunk in iter(lambda: f.read(64 * 1024), b""):
                    for hasher in hashers.values():
                        hasher.update(chunk)
        except (OSError, StoreError) as e:
            raise MrpackError(
                f"读取制品失败: {entry.ref}", context={"ref": entry.ref.key}
            ) from e

        return {
            "path": entry.path,
            "hashes": {name: h.hexdigest() for name, h in hashers.items()},
            "env": env_for(entry.side),
            "downloads": [entry.url],
            "fileSize": entry.size,
        }
