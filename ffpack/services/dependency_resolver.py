"""
依赖解析服务

在固定目标平台下为每个模组选出恰好一个版本，使所有 required / optional /
incompatible 约束同时成立；无解时给出可诊断的冲突说明。

搜索使用显式的不可变决策栈：每个 DecisionFrame 记录决策前的状态、
被决策的 ModRef、选中的候选与尚未尝试的候选。回溯只需弹出栈帧并在其
保存的状态上尝试下一个候选，不存在共享的可变搜索状态。
"""

from dataclasses import dataclass, field
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from loguru import logger

from ffpack.api.base import ProviderRegistry
from ffpack.exceptions import ModNotFound, UnsatisfiableError
from ffpack.models import (
    Conflict,
    Constraint,
    DependencyKind,
    ModRef,
    Platform,
    ResolutionGraph,
    Side,
    VersionCandidate,
)
from ffpack.services.version_matcher import VersionMatcher
from ffpack.utils import retry_async


@dataclass(frozen=True)
class SearchState:
    """搜索状态（只读，select 返回新状态）"""

    selections: Mapping[ModRef, VersionCandidate] = field(default_factory=dict)
    constraints: Mapping[ModRef, Tuple[Constraint, ...]] = field(default_factory=dict)
    pending: FrozenSet[ModRef] = frozenset()
    edges: Tuple[Constraint, ...] = ()

    @classmethod
    def initial(cls, roots: Iterable[Constraint]) -> "SearchState":
        constraints: Dict[ModRef, Tuple[Constraint, ...]] = {}
        pending = set()
        edges = []
        for root in roots:
            constraints[root.ref] = constraints.get(root.ref, ()) + (root,)
            edges.append(root)
            if root.kind == DependencyKind.REQUIRED:
                pending.add(root.ref)
        return cls(
            selections={},
            constraints=constraints,
            pending=frozenset(pending),
            edges=tuple(edges),
        )

    def constraints_on(self, ref: ModRef) -> Tuple[Constraint, ...]:
        return self.constraints.get(ref, ())

    def next_ref(self) -> ModRef:
        """待决策的 ModRef 按键的字典序选择"""
        return min(self.pending, key=lambda ref: ref.key)

    def select(
        self, ref: ModRef, candidate: VersionCandidate
    ) -> Tuple[Optional["SearchState"], Optional[Constraint]]:
        """
        选中候选版本

        Returns:
            (新状态, None)；若候选声明的约束与已选版本冲突则返回
            (None, 被违反的约束)
        """
        selections = dict(self.selections)
        selections[ref] = candidate
        constraints = dict(self.constraints)
        pending = set(self.pending)
        pending.discard(ref)
        edges = list(self.edges)

        for dep in candidate.dependencies:
            constraint = Constraint(dep.ref, dep.range, dep.kind, source=candidate)
            constraints[dep.ref] = constraints.get(dep.ref, ()) + (constraint,)
            edges.append(constraint)
            selected = selections.get(dep.ref)
            if selected is not None:
                if not constraint.admits(selected):
                    return None, constraint
            elif dep.kind == DependencyKind.REQUIRED:
                pending.add(dep.ref)

        return (
            SearchState(
                selections=selections,
                constraints=constraints,
                pending=frozenset(pending),
                edges=tuple(edges),
            ),
            None,
        )


@dataclass(frozen=True)
class DecisionFrame:
    """决策点"""

    state: SearchState
    ref: ModRef
    chosen: VersionCandidate
    remaining: Tuple[VersionCandidate, ...] = ()


@dataclass
class _Listing:
    candidates: List[VersionCandidate]
    missing: bool = False


class DependencyResolver:
    """依赖解析器"""

    def __init__(
        self,
        providers: ProviderRegistry,
        preference: Sequence[str] = ("version", "recency"),
        max_steps: int = 100_000,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.providers = providers
        self.matcher = VersionMatcher(preference)
        self.max_steps = max_steps
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._listings: Dict[ModRef, _Listing] = {}
        self._roots: FrozenSet[ModRef] = frozenset()
        self._steps = 0

    async def resolve(
        self,
        roots: Iterable[Constraint],
        platform: Platform,
        sides: Optional[Mapping[ModRef, Side]] = None,
    ) -> ResolutionGraph:
        """
        解析依赖

        Args:
            roots: 清单中的根约束
            platform: 目标平台
            sides: 清单声明的安装端

        Returns:
            ResolutionGraph

        Raises:
            UnsatisfiableError: 约束无解
            ModNotFound: 清单中的模组在 Provider 中不存在
        """
        roots = tuple(roots)
        self._listings = {}
        self._roots = frozenset(root.ref for root in roots)
        self._steps = 0

        state = SearchState.initial(roots)
        stack: List[DecisionFrame] = []
        conflicts: List[Conflict] = []

        logger.info(f"[解析] 开始解析 {len(self._roots)} 个根模组 ({platform})")

        while state.pending:
            ref = state.next_ref()
            listing = await self._listing(ref, platform)
            viable = [
                c
                for c in listing.candidates
                if self.matcher.compatible(c, platform)
                and all(con.admits(c) for con in state.constraints_on(ref))
            ]

            next_state, violations = self._try_candidates(state, ref, viable, stack)
            if next_state is None:
                conflict = self._explain(ref, state, listing, platform, violations, stack)
                conflicts.append(conflict)
                logger.debug(f"[冲突] {conflict}")
                next_state = self._backtrack(stack)
                if next_state is None:
                    first = conflicts[0]
                    raise UnsatisfiableError(
                        f"无法满足依赖约束: {first}",
                        conflict=first,
                        conflicts=conflicts,
                    )
            state = next_state

        graph = ResolutionGraph(
            platform=platform,
            selections=dict(state.selections),
            edges=state.edges,
            roots=tuple(sorted(self._roots, key=lambda r: r.key)),
            sides={
                ref: side
                for ref, side in (sides or {}).items()
                if ref in state.selections
            },
        )
        logger.success(
            f"[解析] 完成: 选中 {len(graph)} 个模组，"
            f"{len(conflicts)} 次冲突回溯，{self._steps} 次决策"
        )
        return graph

    def _count_step(self) -> None:
        self._steps += 1
        if self._steps > self.max_steps:
            raise UnsatisfiableError(
                f"解析超过最大决策次数 ({self.max_steps})",
                context={"max_steps": self.max_steps},
            )

    def _try_candidates(
        self,
        state: SearchState,
        ref: ModRef,
        options: Sequence[VersionCandidate],
        stack: List[DecisionFrame],
    ) -> Tuple[Optional[SearchState], Dict[str, Constraint]]:
        """依次尝试候选，成功时压栈并返回新状态"""
        violations: Dict[str, Constraint] = {}
        for index, candidate in enumerate(options):
            self._count_step()
            new_state, violated = state.select(ref, candidate)
            if new_state is not None:
                stack.append(
                    DecisionFrame(
                        state=state,
                        ref=ref,
                        chosen=candidate,
                        remaining=tuple(options[index + 1 :]),
                    )
                )
                logger.debug(f"[选择] {candidate}")
                return new_state, violations
            violations[candidate.id] = violated
        return None, violations

    def _backtrack(self, stack: List[DecisionFrame]) -> Optional[SearchState]:
        """回溯到最近一个仍有未尝试候选的决策点"""
        while stack:
            frame = stack.pop()
            if not frame.remaining:
                continue
            logger.debug(f"[回溯] 放弃 {frame.chosen}")
            new_state, _ = self._try_candidates(
                frame.state, frame.ref, frame.remaining, stack
            )
            if new_state is not None:
                return new_state
        return None

    async def _listing(self, ref: ModRef, platform: Platform) -> _Listing:
        """获取候选版本（每次解析内缓存，保证同一输入得到同一结果）"""
        if ref in self._listings:
            return self._listings[ref]

        provider = self.providers.for_ref(ref)
        try:
            candidates = await retry_async(
                lambda: provider.list_candidates(ref, platform),
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                what=f"获取 {ref} 的版本列表",
            )
            listing = _Listing(self.matcher.order(candidates))
        except ModNotFound:
            if ref in self._roots:
                raise
            logger.warning(f"[解析] 依赖 {ref} 在 {ref.provider} 中不存在")
            listing = _Listing([], missing=True)

        self._listings[ref] = listing
        return listing

    def _explain(
        self,
        ref: ModRef,
        state: SearchState,
        listing: _Listing,
        platform: Platform,
        violations: Mapping[str, Constraint],
        stack: Sequence[DecisionFrame],
    ) -> Conflict:
        """
        构造冲突说明

        对每个兼容平台的候选取第一个排除它的约束，去重后即为关闭所有
        候选所需的约束集合。
        """
        constraints: List[Constraint] = []
        rejected: List[str] = []
        compatible = [c for c in listing.candidates if self.matcher.compatible(c, platform)]

        for candidate in compatible:
            blocker = next(
                (c for c in state.constraints_on(ref) if not c.admits(candidate)),
                None,
            )
            if blocker is None:
                blocker = violations.get(candidate.id)
            if blocker is not None and blocker not in constraints:
                constraints.append(blocker)
            rejected.append(candidate.version)

        if listing.missing:
            reason = f"{ref.provider} 中不存在该模组"
        elif not compatible:
            reason = f"没有兼容 {platform} 的版本"
        else:
            reason = ""

        if not constraints:
            constraints = [
                c for c in state.constraints_on(ref) if c.kind == DependencyKind.REQUIRED
            ]

        return Conflict(
            ref=ref,
            chain=tuple((frame.ref, frame.chosen.version) for frame in stack),
            constraints=tuple(constraints),
            reason=reason,
            rejected=tuple(rejected),
        )
