"""
FFPack - 可复现的 Minecraft 整合包构建工具

清单 -> 依赖解析 -> 内容寻址缓存下载 -> 确定性打包 + 锁文件。
"""

__version__ = "0.1.0"
