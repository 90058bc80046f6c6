"""
CurseForge Provider

通过 CurseForge v1 API 获取项目与文件信息，转换为候选版本。需要 API key
（``CURSEFORGE_API_KEY`` 环境变量或构造参数）。

CurseForge 的文件没有独立的版本号字段，候选版本号取 displayName；
``gameVersions`` 中混有游戏版本、加载器名与 Client/Server 标记，分别拆出。
"""

import asyncio
import os
from typing import Dict, List, Optional

import aiohttp
from loguru import logger

from ffpack import __version__
from ffpack.exceptions import ModNotFound, ProviderError, ProviderUnavailable
from ffpack.models import (
    Dependency,
    DependencyKind,
    Digest,
    DownloadDescriptor,
    MinecraftVersion,
    ModLoader,
    ModRef,
    Platform,
    ProjectType,
    Side,
    VersionCandidate,
)

CURSEFORGE_BASE_URL = "https://api.curseforge.com"
MINECRAFT_GAME_ID = 432
PAGE_SIZE = 50

_PROJECT_TYPES = {
    6: ProjectType.MOD,
    12: ProjectType.RESOURCE_PACK,
    6552: ProjectType.SHADER,
}
_LOADER_TYPES = {
    ModLoader.FORGE: 1,
    ModLoader.FABRIC: 4,
    ModLoader.QUILT: 5,
    ModLoader.NEOFORGE: 6,
}
# relationType: 1 内嵌 / 4 工具 / 6 包含 不参与解析
_RELATIONS = {
    2: DependencyKind.OPTIONAL,
    3: DependencyKind.REQUIRED,
    5: DependencyKind.INCOMPATIBLE,
}
_RELEASE_TYPES = {1: "release", 2: "beta", 3: "alpha"}
_HASH_SHA1 = 1
_LOADER_NAMES = {loader.value for loader in ModLoader}


def build_cdn_url(file_id: int, file_name: str) -> str:
    """作者关闭第三方分发时 downloadUrl 为空，按 CDN 规则拼出下载地址"""
    return f"https://edge.forgecdn.net/files/{file_id // 1000}/{file_id % 1000}/{file_name}"


def _sha1(file: dict) -> Optional[Digest]:
    for item in file.get("hashes") or []:
        if item.get("algo") == _HASH_SHA1 and item.get("value"):
            try:
                return Digest("sha1", item["value"])
            except ValueError as e:
                logger.debug(f"忽略无效摘要: {e}")
    return None


def _split_game_versions(tags: List[str]):
    """gameVersions -> (游戏版本, 加载器, 安装端)"""
    game_versions = set()
    loaders = set()
    client = server = False
    for tag in tags:
        lowered = tag.lower()
        if lowered in _LOADER_NAMES:
            loaders.add(lowered)
        elif lowered == "client":
            client = True
        elif lowered == "server":
            server = True
        else:
            try:
                MinecraftVersion.parse(tag)
            except ValueError:
                continue
            game_versions.add(tag)

    if client and not server:
        side = Side.CLIENT
    elif server and not client:
        side = Side.SERVER
    else:
        side = Side.BOTH
    return frozenset(game_versions), frozenset(loaders), side


def candidate_from_curseforge(
    data: dict,
    ref: ModRef,
    project_type: ProjectType = ProjectType.MOD,
) -> Optional[VersionCandidate]:
    """
    将 CurseForge 文件对象转换为 VersionCandidate

    不可用或没有 sha1 的文件返回 None。
    """
    if not data.get("isAvailable", True):
        return None
    digest = _sha1(data)
    if digest is None:
        logger.debug(f"文件 {data.get('id')} 缺少 sha1，忽略")
        return None

    file_id = int(data["id"])
    file_name = data["fileName"]
    game_versions, loaders, side = _split_game_versions(data.get("gameVersions", []))
    if project_type != ProjectType.MOD:
        loaders = frozenset()

    dependencies = []
    for dep in data.get("dependencies", []):
        kind = _RELATIONS.get(dep.get("relationType"))
        if kind is None or not dep.get("modId"):
            continue
        dependencies.append(
            Dependency(ref=ModRef("curseforge", str(dep["modId"])), kind=kind)
        )

    return VersionCandidate(
        ref=ref,
        id=str(file_id),
        version=data.get("displayName") or file_name,
        download=DownloadDescriptor(
            url=data.get("downloadUrl") or build_cdn_url(file_id, file_name),
            filename=file_name,
            digest=digest,
            size=data.get("fileLength") or None,
        ),
        game_versions=game_versions,
        loaders=loaders,
        dependencies=tuple(dependencies),
        published=data.get("fileDate", ""),
        version_type=_RELEASE_TYPES.get(data.get("releaseType"), "release"),
        project_type=project_type,
        side=side,
    )


class CurseForgeProvider:
    """CurseForge API Provider"""

    name = "curseforge"

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = CURSEFORGE_BASE_URL,
        timeout: float = 30.0,
    ):
        self.api_key = api_key or os.environ.get("CURSEFORGE_API_KEY", "")
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owned_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._projects: Dict[str, dict] = {}

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            headers = {
                "Accept": "application/json",
                "User-Agent": f"ffpack/{__version__}",
            }
            if self.api_key:
                headers["x-api-key"] = self.api_key
            self._session = aiohttp.ClientSession(
                timeout=self._timeout, headers=headers
            )
        return self._session

    async def _request(self, endpoint: str, params: Optional[dict] = None):
        """发送 API 请求，返回响应中的 data 字段"""
        url = f"{self.base_url}{endpoint}"
        try:
            async with self.session.get(url, params=params) as response:
                if response.status == 200:
                    return await response.json()
                context = {"url": url, "status": response.status}
                if response.status == 404:
                    raise ModNotFound(f"CurseForge 上不存在: {endpoint}", context=context)
                if response.status == 429 or response.status >= 500:
                    raise ProviderUnavailable(
                        f"CurseForge 暂时不可用 (状态码: {response.status})",
                        context=context,
                    )
                if response.status == 403 and not self.api_key:
                    raise ProviderError(
                        "CurseForge 需要 API key，请设置 CURSEFORGE_API_KEY",
                        context=context,
                    )
                raise ProviderError(
                    f"CurseForge API 请求失败 (状态码: {response.status})",
                    context=context,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderUnavailable(
                f"CurseForge 请求出错: {e}", context={"url": url}
            ) from e

    async def _project(self, idx: str) -> dict:
        if idx not in self._projects:
            if idx.isdigit():
                project = (await self._request(f"/v1/mods/{idx}"))["data"]
            else:
                found = await self._request(
                    "/v1/mods/search",
                    {"gameId": MINECRAFT_GAME_ID, "slug": idx, "pageSize": 5},
                )
                matches = [p for p in found.get("data", []) if p.get("slug") == idx]
                if not matches:
                    raise ModNotFound(
                        f"CurseForge 上不存在: {idx}", context={"slug": idx}
                    )
                project = matches[0]
            self._projects[idx] = project
            self._projects[str(project["id"])] = project
        return self._projects[idx]

    async def canonicalize(self, ref: ModRef) -> ModRef:
        project = await self._project(ref.id)
        return ModRef(self.name, str(project["id"]), name=project.get("slug") or ref.name)

    async def list_candidates(
        self, ref: ModRef, platform: Platform
    ) -> List[VersionCandidate]:
        project = await self._project(ref.id)
        project_type = _PROJECT_TYPES.get(project.get("classId"), ProjectType.MOD)
        ref = ModRef(self.name, str(project["id"]), name=project.get("slug"))

        params = {"gameVersion": str(platform.minecraft), "pageSize": PAGE_SIZE}
        if project_type == ProjectType.MOD:
            params["modLoaderType"] = _LOADER_TYPES[platform.loader]

        files: List[dict] = []
        while True:
            page = await self._request(
                f"/v1/mods/{ref.id}/files", {**params, "index": len(files)}
            )
            batch = page.get("data", [])
            files.extend(batch)
            total = page.get("pagination", {}).get("totalCount", len(files))
            if not batch or len(files) >= total:
                break

        candidates = []
        for file in files:
            candidate = candidate_from_curseforge(file, ref, project_type)
            if candidate is not None:
                candidates.append(candidate)
        logger.debug(f"[CurseForge] {ref} 有 {len(candidates)} 个候选版本 ({platform})")
        return candidates

    def describe_download(self, candidate: VersionCandidate) -> DownloadDescriptor:
        return candidate.download

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
