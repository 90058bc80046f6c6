"""
CLI 模块

命令行接口实现。
"""

import asyncio
import os
from typing import Optional

import click
from loguru import logger

from ffpack import __version__
from ffpack.download import ArtifactStore
from ffpack.exceptions import FFPackError
from ffpack.logger import setup_logger
from ffpack.models import FFPackConfig
from ffpack.orchestrator import FFPackOrchestrator
from ffpack.utils import load_config


def _load(config_path: str, features: tuple = (), devel: bool = False) -> FFPackConfig:
    """加载配置并合并命令行参数"""
    config = FFPackConfig.from_dict(
        load_config(config_path), base_dir=os.path.dirname(os.path.abspath(config_path))
    )
    config.features = sorted(set(config.features) | set(features))
    config.devel = config.devel or devel
    return config


def _run(coro):
    """运行协程，把 FFPackError 转换为 ClickException"""
    try:
        return asyncio.run(coro)
    except FFPackError as e:
        logger.error(f"构建失败: {e}")
        for key, value in e.context.items():
            logger.debug(f"  {key}: {value}")
        raise click.ClickException(str(e))


async def build_async(config: FFPackConfig, locked: bool):
    async with FFPackOrchestrator(config) as orchestrator:
        outputs = await orchestrator.build(locked=locked)
    for path in outputs:
        click.echo(path)


async def lock_async(config: FFPackConfig):
    async with FFPackOrchestrator(config) as orchestrator:
        lock = await orchestrator.lock()
    click.echo(f"{orchestrator.lock_path}: {len(lock.mods)} 个模组")


async def verify_async(store_dir: str, evict: bool) -> int:
    store = ArtifactStore(store_dir)
    store.clear_tmp()
    bad = 0
    total = 0
    for entry in store.iter_entries():
        total += 1
        if not await store.verify(entry.digest, evict=evict):
            bad += 1
            logger.error(f"[损坏] {entry.digest}")
    logger.info(f"共校验 {total} 个条目，{bad} 个损坏")
    return bad


@click.group()
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.option("--log-file", type=click.Path(), help="额外写入日志文件")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, debug: bool, log_file: Optional[str]):
    """FFPack - Minecraft 整合包构建工具"""
    ctx.ensure_object(dict)
    ctx.obj["log_file"] = log_file
    # 设置日志级别
    setup_logger(level="DEBUG" if debug else None, log_file=log_file)


@main.command()
@click.argument("config", type=click.Path(exists=True), default="mods.toml")
@click.option("--locked", is_flag=True, help="使用锁文件中的版本，跳过解析")
@click.option("-f", "--feature", multiple=True, help="启用的功能")
@click.option("--devel", is_flag=True, help="开发构建（排除 devel = false 的条目）")
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.pass_context
def build(
    ctx: click.Context, config: str, locked: bool, feature: tuple, devel: bool, debug: bool
):
    """解析、下载并生成整合包"""
    if debug:
        setup_logger(level="DEBUG", log_file=ctx.obj.get("log_file"))
    _run(build_async(_run_config(config, feature, devel), locked))


@main.command()
@click.argument("config", type=click.Path(exists=True), default="mods.toml")
@click.option("-f", "--feature", multiple=True, help="启用的功能")
@click.option("--devel", is_flag=True, help="开发构建")
def lock(config: str, feature: tuple, devel: bool):
    """只解析依赖并写入锁文件"""
    _run(lock_async(_run_config(config, feature, devel)))


@main.group()
def store():
    """制品存储管理"""


@store.command("verify")
@click.option("--store", "store_dir", default=".ffpack/store", show_default=True)
@click.option("--evict", is_flag=True, help="删除损坏的条目")
def store_verify(store_dir: str, evict: bool):
    """清理残留临时文件并重新校验存储中的所有条目"""
    bad = _run(verify_async(store_dir, evict))
    if bad:
        raise click.ClickException(f"{bad} 个条目校验失败")


def _run_config(config: str, feature: tuple, devel: bool) -> FFPackConfig:
    try:
        return _load(config, feature, devel)
    except FFPackError as e:
        raise click.ClickException(str(e))


if __name__ == "__main__":
    main()
