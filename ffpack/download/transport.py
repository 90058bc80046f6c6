"""
下载传输层

把 DownloadDescriptor 变成字节块流：http(s) 通过 aiohttp，``file://``
直接读取本地文件。
"""

import asyncio
import os
from typing import AsyncIterator, Optional, Protocol

import aiofiles
import aiohttp

from ffpack import __version__
from ffpack.exceptions import DownloadError, DownloadNetworkError
from ffpack.models import DownloadDescriptor

CHUNK_SIZE = 8192


class Transport(Protocol):
    """字节流来源"""

    def stream(self, descriptor: DownloadDescriptor) -> AsyncIterator[bytes]:
        ...


class HttpTransport:
    """aiohttp 下载实现"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        self._session = session
        self._owned_session = session is None
        self.chunk_size = chunk_size

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": f"ffpack/{__version__}"}
            )
        return self._session

    async def stream(self, descriptor: DownloadDescriptor) -> AsyncIterator[bytes]:
        url = descriptor.url
        if url.startswith("file://"):
            async for chunk in self._stream_local(url[7:]):
                yield chunk
            return

        try:
            async with self.session.get(url) as response:
                if response.status != 200:
                    context = {"url": url, "status": response.status}
                    if response.status in (408, 429) or response.status >= 500:
                        raise DownloadNetworkError(f"HTTP {response.status}", context=context)
                    raise DownloadError(f"HTTP {response.status}", context=context)
                async for chunk in response.content.iter_chunked(self.chunk_size):
                    yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadNetworkError(
                f"下载出错: {e}", context={"url": url}
            ) from e

    async def _stream_local(self, path: str) -> AsyncIterator[bytes]:
        """读取本地文件"""
        if not os.path.isfile(path):
            raise DownloadError(f"本地文件不存在: {path}", context={"path": path})
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

    async def close(self):
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
