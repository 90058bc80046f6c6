"""
文件校验器

实现多算法摘要计算、文件完整性验证。
"""

import hashlib
import os
from typing import Optional

import aiofiles
import blake3

from ffpack.models import Digest

CHUNK_SIZE = 64 * 1024


class FileVerifier:
    """文件校验器"""

    @staticmethod
    def hasher(algorithm: str):
        """创建指定算法的增量哈希对象（blake3 / sha1 / sha256 / sha512）"""
        if algorithm == "blake3":
            return blake3.blake3()
        return hashlib.new(algorithm)

    @staticmethod
    async def calc_digest(file_path: str, algorithm: str = "sha1") -> Optional[str]:
        """
        计算文件摘要

        Args:
            file_path: 文件路径
            algorithm: 摘要算法

        Returns:
            十六进制摘要或 None（如果文件不存在）
        """
        if not os.path.exists(file_path):
            return None

        digest = FileVerifier.hasher(algorithm)
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    data = await f.read(CHUNK_SIZE)
                    if not data:
                        break
                    digest.update(data)
            return digest.hexdigest()
        except (IOError, OSError):
            return None

    @staticmethod
    async def verify(file_path: str, expected: Digest) -> bool:
        """校验文件摘要是否匹配"""
        current = await FileVerifier.calc_digest(file_path, expected.algorithm)
        if current is None:
            return False
        return current == expected.value
