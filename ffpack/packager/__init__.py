"""
FFPack 打包层

包含包布局生成器以及 mrpack 和 zip 生成器。
"""

from ffpack.packager.assembler import Package, PackageAssembler, PackageEntry
from ffpack.packager.mrpack import MrpackBuilder
from ffpack.packager.zip import ZipBuilder

__all__ = [
    "Package",
    "PackageAssembler",
    "PackageEntry",
    "MrpackBuilder",
    "ZipBuilder",
]
