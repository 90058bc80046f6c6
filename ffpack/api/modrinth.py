"""
Modrinth Provider

通过 Modrinth v2 API 获取项目与版本信息，转换为候选版本。
"""

import asyncio
import json
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
    ModRef,
    Platform,
    ProjectType,
    VersionCandidate,
    VersionRange,
)

MODRINTH_BASE_URL = "https://api.modrinth.com/v2"

_PROJECT_TYPES = {
    "mod": ProjectType.MOD,
    "resourcepack": ProjectType.RESOURCE_PACK,
    "shader": ProjectType.SHADER,
}
_DEPENDENCY_KINDS = {kind.value: kind for kind in DependencyKind}


def _primary_file(version: dict) -> Optional[dict]:
    """获取主文件信息"""
    files = version.get("files", [])
    if not files:
        return None

    for file in files:
        if file.get("primary", False):
            return file

    return files[0]


def _pick_digest(hashes: Dict[str, str]) -> Optional[Digest]:
    """优先使用 sha512，其次 sha1；格式错误的摘要视为缺失"""
    for algorithm in ("sha512", "sha256", "sha1"):
        if hashes.get(algorithm):
            try:
                return Digest(algorithm, hashes[algorithm])
            except ValueError as e:
                logger.debug(f"忽略无效摘要: {e}")
    return None


def candidate_from_modrinth(
    data: dict,
    ref: ModRef,
    project_type: ProjectType = ProjectType.MOD,
) -> Optional[VersionCandidate]:
    """
    将 Modrinth 版本对象转换为 VersionCandidate

    没有文件或没有可用摘要的版本返回 None；embedded 依赖与只有 version_id
    的依赖被忽略。
    """
    file = _primary_file(data)
    if file is None:
        return None
    digest = _pick_digest(file.get("hashes") or {})
    if digest is None:
        logger.debug(f"版本 {data.get('id')} 的文件缺少摘要，忽略")
        return None

    dependencies = []
    for dep in data.get("dependencies", []):
        kind = _DEPENDENCY_KINDS.get(dep.get("dependency_type", "required"))
        project_id = dep.get("project_id")
        if kind is None or not project_id:
            continue
        version_id = dep.get("version_id")
        dependencies.append(
            Dependency(
                ref=ModRef("modrinth", project_id),
                range=VersionRange.pinned(version_id) if version_id else VersionRange(),
                kind=kind,
            )
        )

    # 资源包、光影包的 loaders 字段不是模组加载器
    loaders = (
        frozenset(data.get("loaders", []))
        if project_type == ProjectType.MOD
        else frozenset()
    )

    return VersionCandidate(
        ref=ref,
        id=data["id"],
        version=data.get("version_number") or data["id"],
        download=DownloadDescriptor(
            url=file["url"],
            filename=file["filename"],
            digest=digest,
            size=file.get("size"),
        ),
        game_versions=frozenset(data.get("game_versions", [])),
        loaders=loaders,
        dependencies=tuple(dependencies),
        published=data.get("date_published", ""),
        featured=bool(data.get("featured", False)),
        version_type=data.get("version_type", "release"),
        project_type=project_type,
    )


class ModrinthProvider:
    """Modrinth API Provider"""

    name = "modrinth"

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = MODRINTH_BASE_URL,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owned_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._projects: Dict[str, dict] = {}

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": f"ffpack/{__version__}"},
            )
        return self._session

    async def _request(self, endpoint: str, params: Optional[dict] = None):
        """发送 API 请求，按状态码映射为 Provider 异常"""
        url = f"{self.base_url}{endpoint}"
        try:
            async with self.session.get(url, params=params) as response:
                if response.status == 200:
                    return await response.json()
                context = {"url": url, "status": response.status}
                if response.status == 404:
                    raise ModNotFound(f"Modrinth 上不存在: {endpoint}", context=context)
                if response.status == 429 or response.status >= 500:
                    raise ProviderUnavailable(
                        f"Modrinth 暂时不可用 (状态码: {response.status})",
                        context=context,
                    )
                raise ProviderError(
                    f"Modrinth API 请求失败 (状态码: {response.status})",
                    context=context,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderUnavailable(
                f"Modrinth 请求出错: {e}", context={"url": url}
            ) from e

    async def _project(self, idx: str) -> dict:
        if idx not in self._projects:
            data = await self._request(f"/project/{idx}")
            self._projects[idx] = data
            self._projects[data["id"]] = data
        return self._projects[idx]

    async def canonicalize(self, ref: ModRef) -> ModRef:
        project = await self._project(ref.id)
        return ModRef(self.name, project["id"], name=project.get("slug") or ref.name)

    async def list_candidates(
        self, ref: ModRef, platform: Platform
    ) -> List[VersionCandidate]:
        project = await self._project(ref.id)
        project_type = _PROJECT_TYPES.get(project.get("project_type"), ProjectType.MOD)
        ref = ModRef(self.name, project["id"], name=project.get("slug"))

        params = {"game_versions": json.dumps([str(platform.minecraft)])}
        if project_type == ProjectType.MOD:
            params["loaders"] = json.dumps([platform.loader.value])

        versions = await self._request(f"/project/{ref.id}/version", params) or []
        candidates = []
        for version in versions:
            candidate = candidate_from_modrinth(version, ref, project_type)
            if candidate is not None:
                candidates.append(candidate)
        logger.debug(f"[Modrinth] {ref} 有 {len(candidates)} 个候选版本 ({platform})")
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
