"""
版本模型

Minecraft 版本（正式版 / 快照）、模组版本排序键与版本范围谓词。
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache, total_ordering
from typing import Optional, Tuple

import semantic_version

_RELEASE_RE = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?$")
_SNAPSHOT_RE = re.compile(r"^(\d+)w(\d+)(\w+)$")
_NUMERIC_RE = re.compile(r"\d+(?:\.\d+)*(?:-[0-9A-Za-z.]+)?")
# mc1.20.1-0.5.3 / 0.5.3+mc1.20.1 / 0.5.3-mc1.20.1 中的游戏版本部分
_GAME_PREFIX_RE = re.compile(r"^mc\d+(?:\.\d+)*(?:-(?:pre|rc)\d+)?[-_+]", re.IGNORECASE)
_GAME_SUFFIX_RE = re.compile(r"[-_+]mc\d+(?:\.\d+)*(?:-(?:pre|rc)\d+)?$", re.IGNORECASE)

ANY_RANGE = "*"


@total_ordering
@dataclass(frozen=True)
class MinecraftVersion:
    """
    Minecraft 版本

    快照版本总是排在任何正式版之后；``1.19`` 排在 ``1.19.0`` 之前。
    """

    raw: str = field(compare=False)
    key: Tuple = field(repr=False)

    @classmethod
    def parse(cls, raw: str) -> "MinecraftVersion":
        text = str(raw).strip()
        if match := _RELEASE_RE.match(text):
            major, minor, patch = match.groups()
            key = (
                0,
                int(major),
                int(minor),
                int(patch) if patch is not None else -1,
            )
            return cls(raw=text, key=key)
        if match := _SNAPSHOT_RE.match(text):
            year, week, specifier = match.groups()
            return cls(raw=text, key=(1, int(year), int(week), specifier))
        raise ValueError(f"无法识别的 Minecraft 版本: {raw!r}")

    @property
    def is_snapshot(self) -> bool:
        return self.key[0] == 1

    def __lt__(self, other: "MinecraftVersion") -> bool:
        if not isinstance(other, MinecraftVersion):
            return NotImplemented
        return self.key < other.key

    def __str__(self) -> str:
        return self.raw


def parse_mod_version(raw: str) -> semantic_version.Version:
    """
    将模组版本字符串宽松地转换为语义化版本

    ``v1.2``、``1.2.3.4``、``mc1.20.1-0.5.3`` 等非标准格式通过提取数字部分后
    ``Version.coerce`` 处理，完全无法识别时视为 ``0.0.0``。``mc1.20.1-``
    前缀与 ``+mc1.20.1`` / ``-mc1.20.1`` 后缀是游戏版本，先去掉。
    """
    text = str(raw).strip()
    text = _GAME_PREFIX_RE.sub("", text)
    text = _GAME_SUFFIX_RE.sub("", text)
    if text[:1] in ("v", "V"):
        text = text[1:]
    try:
        return semantic_version.Version(text)
    except ValueError:
        pass
    match = _NUMERIC_RE.search(text)
    if match is None:
        return semantic_version.Version("0.0.0")
    try:
        return semantic_version.Version.coerce(match.group(0))
    except ValueError:
        return semantic_version.Version("0.0.0")


@total_ordering
class ModVersion:
    """模组版本排序键：先按语义化版本比较，再按原始字符串比较，保证全序"""

    __slots__ = ("raw", "parsed")

    def __init__(self, raw: str):
        self.raw = str(raw)
        self.parsed = parse_mod_version(self.raw)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModVersion):
            return NotImplemented
        return self.raw == other.raw

    def __lt__(self, other: "ModVersion") -> bool:
        if not isinstance(other, ModVersion):
            return NotImplemented
        if self.parsed < other.parsed:
            return True
        if other.parsed < self.parsed:
            return False
        return self.raw < other.raw

    def __hash__(self) -> int:
        return hash(self.raw)

    def __repr__(self) -> str:
        return f"ModVersion({self.raw!r})"


@lru_cache(maxsize=512)
def _compile_spec(raw: str) -> semantic_version.SimpleSpec:
    return semantic_version.SimpleSpec(raw)


def _normalize_range(raw: str) -> str:
    clauses = []
    for clause in raw.split(","):
        clause = clause.strip()
        if not clause:
            continue
        # 裸版本号视为精确匹配
        if clause[0].isdigit():
            clause = f"=={clause}"
        clauses.append(clause)
    return ",".join(clauses)


@dataclass(frozen=True)
class VersionRange:
    """
    版本范围谓词

    ``raw`` 使用 semantic_version 的 SimpleSpec 语法（``>=1.0``、``>=1,<2``、
    ``==2.0``），``*`` 表示任意版本；``pinned_id`` 非空时只匹配该 Provider
    版本 ID（例如 Modrinth 的 version_id 依赖）。
    """

    raw: str = ANY_RANGE
    pinned_id: Optional[str] = None

    @classmethod
    def parse(cls, raw: Optional[str]) -> "VersionRange":
        if raw is None:
            return cls()
        text = str(raw).strip()
        if text in ("", ANY_RANGE, "latest"):
            return cls()
        normalized = _normalize_range(text)
        _compile_spec(normalized)
        return cls(raw=normalized)

    @classmethod
    def pinned(cls, candidate_id: str) -> "VersionRange":
        return cls(raw=ANY_RANGE, pinned_id=candidate_id)

    @property
    def is_any(self) -> bool:
        return self.pinned_id is None and self.raw == ANY_RANGE

    def matches(self, version: str, candidate_id: Optional[str] = None) -> bool:
        if self.pinned_id is not None:
            return candidate_id == self.pinned_id
        if self.is_any:
            return True
        return parse_mod_version(version) in _compile_spec(self.raw)

    def __str__(self) -> str:
        if self.pinned_id is not None:
            return f"id:{self.pinned_id}"
        return self.raw
