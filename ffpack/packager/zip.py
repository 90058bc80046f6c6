"""
ZIP 生成器

生成可复现的 ZIP：固定时间戳 (1980-01-01)、固定权限、固定压缩方式，
条目顺序由调用方决定。先写临时文件再原子重命名。
"""

import os
import shutil
import uuid
import zipfile
from typing import BinaryIO, Callable, Iterable, Tuple, Union

from loguru import logger

from ffpack.download.store import ArtifactStore
from ffpack.exceptions import FFPackError, PackagerError, ZipError
from ffpack.lockfile import encode
from ffpack.models import MetadataConfig
from ffpack.packager.assembler import Package

LOCK_NAME = "ffpack.lock"
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
FILE_MODE = 0o644

# 成员内容：bytes 或返回二进制文件对象的函数
MemberSource = Union[bytes, Callable[[], BinaryIO]]


def _zip_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=FIXED_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.create_system = 3
    info.external_attr = FILE_MODE << 16
    return info


def archive_comment(metadata: MetadataConfig) -> bytes:
    """压缩包注释：整合包名称、版本与作者"""
    lines = [f"{metadata.name} {metadata.version}"]
    if metadata.author:
        lines.append(f"author: {metadata.author}")
    if metadata.description:
        lines.append(metadata.description)
    # ZIP 注释最长 65535 字节
    return "\n".join(lines).encode("utf-8")[:0xFFFF]


def write_archive(
    output_path: str,
    members: Iterable[Tuple[str, MemberSource]],
    error_cls=ZipError,
    comment: bytes = b"",
) -> str:
    """
    按给定顺序写入确定性 ZIP

    Args:
        output_path: 输出文件路径
        members: (包内路径, 内容) 序列
        error_cls: 失败时抛出的异常类型
        comment: 压缩包注释

    Returns:
        生成的文件路径
    """
    directory = os.path.dirname(os.path.abspath(output_path))
    os.makedirs(directory, exist_ok=True)
    tmp_path = os.path.join(
        directory, f".{os.path.basename(output_path)}.{uuid.uuid4().hex}.part"
    )
    try:
        with zipfile.ZipFile(tmp_path, "w") as archive:
            archive.comment = comment
            for name, source in members:
                info = _zip_info(name)
                if isinstance(source, bytes):
                    archive.writestr(info, source)
                    continue
                with source() as src, archive.open(info, "w") as dest:
                    shutil.copyfileobj(src, dest)
        os.replace(tmp_path, output_path)
    except PackagerError:
        raise
    except (OSError, zipfile.BadZipFile, FFPackError) as e:
        raise error_cls(
            f"写入压缩包失败: {e}", context={"output_path": output_path}
        ) from e
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
    return output_path


class ZipBuilder:
    """ZIP 构建器"""

    async def build(
        self, package: Package, store: ArtifactStore, output_path: str
    ) -> str:
        """
        构建 ZIP 文件

        Args:
            package: 包布局
            store: 制品存储
            output_path: 输出文件路径

        Returns:
            生成的文件路径
        """
        members = [(LOCK_NAME, encode(package.lock))]
        for entry in package.entries:
            members.append((entry.path, lambda d=entry.digest: store.open(d)))

        write_archive(
            output_path, members, ZipError, archive_comment(package.metadata)
        )
        logger.success(f"[完成] ZIP 已生成: {output_path}")
        return output_path
