"""
解析结果图

ModRef -> 选中的 VersionCandidate，外加说明每个选择来源的约束边。
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from ffpack.models.mod import (
    Constraint,
    DependencyKind,
    ModRef,
    Platform,
    Side,
    VersionCandidate,
)


@dataclass(frozen=True)
class ResolutionGraph:
    """一次解析运行的结果"""

    platform: Platform
    selections: Dict[ModRef, VersionCandidate]
    edges: Tuple[Constraint, ...] = ()
    roots: Tuple[ModRef, ...] = ()
    sides: Dict[ModRef, Side] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.selections)

    def __contains__(self, ref: object) -> bool:
        return ref in self.selections

    def get(self, ref: ModRef) -> Optional[VersionCandidate]:
        return self.selections.get(ref)

    def ordered(self) -> Iterator[Tuple[ModRef, VersionCandidate]]:
        """按 ModRef 键排序遍历，与解析顺序无关"""
        for ref in sorted(self.selections, key=lambda r: r.key):
            yield ref, self.selections[ref]

    def side_of(self, ref: ModRef) -> Side:
        """清单中声明的安装端，依赖项沿用候选版本自身的值"""
        if ref in self.sides:
            return self.sides[ref]
        return self.selections[ref].side

    def mapping(self) -> Dict[str, str]:
        """``provider:id -> version`` 映射，用于比较与日志"""
        return {ref.key: cand.version for ref, cand in self.ordered()}

    def justification(self, ref: ModRef) -> List[Constraint]:
        """指向 ref 的约束边"""
        return [edge for edge in self.edges if edge.ref == ref]

    def violations(self) -> List[Constraint]:
        """
        返回不被满足的约束

        required 约束要求目标已选中且版本匹配；optional / incompatible 约束
        只在目标被选中时检查。
        """
        broken = []
        for edge in self.edges:
            selected = self.selections.get(edge.ref)
            if selected is None:
                if edge.kind == DependencyKind.REQUIRED:
                    broken.append(edge)
                continue
            if not edge.admits(selected):
                broken.append(edge)
        return broken


@dataclass(frozen=True)
class Conflict:
    """
    一次冲突：ref 的所有候选版本都被排除

    ``chain`` 为冲突发生时的决策链，``constraints`` 为排除候选所需的最小
    约束集合，``reason`` 为人类可读的补充说明。
    """

    ref: ModRef
    chain: Tuple[Tuple[ModRef, str], ...] = ()
    constraints: Tuple[Constraint, ...] = ()
    reason: str = ""
    rejected: Tuple[str, ...] = field(default=())

    def describe(self) -> str:
        parts = [f"{self.ref.key} 无可用版本"]
        if self.reason:
            parts.append(self.reason)
        if self.chain:
            chain = " -> ".join(f"{ref.key}@{version}" for ref, version in self.chain)
            parts.append(f"决策链: {chain}")
        if self.constraints:
            parts.append(
                "冲突约束: " + "; ".join(c.describe() for c in self.constraints)
            )
        return " | ".join(parts)

    def __str__(self) -> str:
        return self.describe()
