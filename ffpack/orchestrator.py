"""
主协调器

整合所有服务层组件，编排 解析 -> 下载 -> 打包 -> 锁文件 流程。
``--locked`` 构建跳过解析，直接使用锁文件中的版本。
"""

import os
from typing import List, Optional

from loguru import logger

from ffpack.api import (
    CurseForgeProvider,
    ModrinthProvider,
    ProviderRegistry,
    StaticProvider,
)
from ffpack.download import ArtifactStore, FetchManager, Transport
from ffpack.lockfile import LockFile, read_lockfile, write_lockfile
from ffpack.models import FFPackConfig, MrpackMode, OutputFormat, ResolutionGraph
from ffpack.packager import MrpackBuilder, Package, PackageAssembler, ZipBuilder
from ffpack.packager.assembler import safe_name
from ffpack.services import DependencyResolver, ModResolver, VersionMatcher
from ffpack.services.mod_resolver import URL_PROVIDER


class FFPackOrchestrator:
    """FFPack 主协调器"""

    def __init__(
        self,
        config: FFPackConfig,
        providers: Optional[ProviderRegistry] = None,
        store: Optional[ArtifactStore] = None,
        transport: Optional[Transport] = None,
    ):
        self.config = config
        self.providers = providers or ProviderRegistry(
            [ModrinthProvider(), CurseForgeProvider()]
        )
        if URL_PROVIDER not in self.providers:
            self.providers.register(StaticProvider(URL_PROVIDER))
        static = self.providers.get(URL_PROVIDER)
        if isinstance(static, StaticProvider):
            for extra in config.minecraft.extra_urls:
                static.add_extra_url(extra)

        self.store = store or ArtifactStore(config.fetch.store_dir)
        self.transport = transport
        self.mod_resolver = ModResolver(
            self.providers,
            VersionMatcher(config.resolver.preference),
            max_retries=config.fetch.max_retries,
            retry_delay=config.fetch.retry_delay,
        )
        self.assembler = PackageAssembler()
        self.zip_builder = ZipBuilder()
        self.mrpack_builder = MrpackBuilder()
        self._outputs: List[str] = []
        self._fetch_stats = None

    @property
    def lock_path(self) -> str:
        return self.config.output.lock_file

    async def resolve(self) -> ResolutionGraph:
        """解析清单，返回解析结果"""
        platform = self.config.platform
        logger.info(f"开始解析依赖 ({platform})...")
        roots, sides = await self.mod_resolver.resolve_roots(self.config)
        resolver = DependencyResolver(
            self.providers,
            preference=self.config.resolver.preference,
            max_steps=self.config.resolver.max_steps,
            max_retries=self.config.fetch.max_retries,
            retry_delay=self.config.fetch.retry_delay,
        )
        graph = await resolver.resolve(roots, platform, sides)
        logger.success(f"解析完成: {len(graph)} 个模组")
        return graph

    async def lock(self) -> LockFile:
        """只解析并写入锁文件"""
        lock = LockFile.from_graph(await self.resolve())
        write_lockfile(self.lock_path, lock)
        return lock

    async def build(self, locked: bool = False) -> List[str]:
        """
        运行完整流程

        Args:
            locked: 使用已有锁文件，跳过解析

        Returns:
            生成的文件路径列表
        """
        logger.info("开始 FFPack 构建任务...")

        if locked:
            lock = read_lockfile(self.lock_path)
            if lock.platform != self.config.platform:
                logger.warning(
                    f"锁文件平台 {lock.platform} 与清单 {self.config.platform} 不一致，以锁文件为准"
                )
            graph = lock.to_graph()
            logger.info(f"[锁文件] 使用 {self.lock_path} 中的 {len(graph)} 个模组")
        else:
            graph = await self.resolve()

        fetch = self.config.fetch
        manager = FetchManager(
            self.store,
            self.transport,
            max_concurrent=fetch.max_concurrent,
            max_retries=fetch.max_retries,
            retry_delay=fetch.retry_delay,
            timeout=fetch.timeout,
            fail_fast=fetch.fail_fast,
        )
        try:
            entries = await manager.fetch_all(graph, self.providers)
        finally:
            self._fetch_stats = manager.get_stats()
            if self.transport is None:
                await manager.close()

        stats = self._fetch_stats
        logger.success(
            f"下载完成: {stats.completed} 成功, {stats.failed} 失败, {stats.skipped} 跳过"
        )

        package = self.assembler.assemble(graph, entries, self.config.metadata)
        self._outputs = await self._generate_outputs(package)

        if not locked:
            write_lockfile(self.lock_path, package.lock)

        logger.success("FFPack 任务完成!")
        return list(self._outputs)

    def _output_base(self, package: Package) -> str:
        metadata = package.metadata
        lock = package.lock
        name = "-".join(
            safe_name(part)
            for part in (metadata.name, metadata.version, lock.minecraft, lock.loader)
        )
        return os.path.join(self.config.output.download_dir, name)

    async def _generate_outputs(self, package: Package) -> List[str]:
        """按配置生成 zip / mrpack"""
        base = self._output_base(package)
        outputs = []
        for fmt in self.config.output.format:
            if fmt == OutputFormat.ZIP:
                outputs.append(
                    await self.zip_builder.build(package, self.store, f"{base}.zip")
                )
            elif fmt == OutputFormat.MRPACK:
                for mode in self.config.output.mrpack_modes:
                    suffix = "" if mode == MrpackMode.DOWNLOAD else f"-{mode.value}"
                    outputs.append(
                        await self.mrpack_builder.build(
                            package, self.store, f"{base}{suffix}.mrpack", mode
                        )
                    )
        return outputs

    def get_stats(self) -> dict:
        """获取统计信息"""
        stats = self._fetch_stats
        return {
            "outputs": list(self._outputs),
            "completed": stats.completed if stats else 0,
            "skipped": stats.skipped if stats else 0,
            "failed": stats.failed if stats else 0,
            "bytes_downloaded": stats.bytes_downloaded if stats else 0,
        }

    async def close(self):
        await self.providers.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
