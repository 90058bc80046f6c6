import asyncio
import json
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import toml
import yaml
from loguru import logger

from ffpack.exceptions import ConfigError, ConfigParseError, FFPackError

T = TypeVar("T")


def load_config(config_path: str) -> dict:
    """加载配置文件（toml / json / yaml）"""
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    try:
        if suffix == ".toml":
            return toml.loads(text)
        elif suffix == ".json":
            return json.loads(text)
        elif suffix in (".yaml", ".yml"):
            return yaml.safe_load(text) or {}
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"配置文件解析失败: {config_path}", context={"error": str(e)}
        )
    raise ConfigError(f"不支持的配置文件格式: {suffix}")


def backoff_delay(base: float, attempt: int) -> float:
    """指数退避：base * 2^attempt"""
    return base * (2**attempt)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    retry_delay: float = 1.0,
    what: Optional[str] = None,
) -> T:
    """
    重试临时错误（``FFPackError.transient``），其他异常直接抛出

    Args:
        func: 每次调用返回一个新的协程
        max_retries: 最大重试次数（不含第一次）
        retry_delay: 初始重试间隔（秒）
        what: 日志中显示的操作名
    """
    attempt = 0
    while True:
        try:
            return await func()
        except FFPackError as e:
            if not e.transient or attempt >= max_retries:
                raise
            delay = backoff_delay(retry_delay, attempt)
            logger.warning(
                f"[重试] {what or '请求'} 失败 (第 {attempt + 1} 次): {e}. "
                f"{delay:.1f}s 后重试..."
            )
            await asyncio.sleep(delay)
            attempt += 1
