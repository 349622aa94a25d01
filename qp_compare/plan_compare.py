import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from qp_compare.adapters import LegacyQueryPlanResult, adapt_legacy, adapt_native
from qp_compare.adapters.legacy import SIDE as LEGACY
from qp_compare.adapters.native import SIDE as NATIVE
from qp_compare.codec import rewrite_to_json, selection_to_json
from qp_compare.diff import render_diff
from qp_compare.errors import MatchFailure, PlanMismatchError
from qp_compare.fetch_index import FetchIndex, Location, format_location
from qp_compare.native_plan import QueryPlan as NativeQueryPlan
from qp_compare.normalize import normalize_plan
from qp_compare.options import CompareOptions
from qp_compare.path import Path
from qp_compare.query_plan import (
    ConditionNode,
    DeferNode,
    DeferredNode,
    FetchNode,
    FlattenNode,
    KeyRenamer,
    ParallelNode,
    PlanNode,
    QueryPlanFieldNode,
    QueryPlanInlineFragmentNode,
    SequenceNode,
    SubgraphOperation,
    SubscriptionFetch,
    SubscriptionNode,
    ValueSetter,
)
from qp_compare.utilities.collections import group_by

logger = logging.getLogger(__name__)

NodePair = tuple[Optional[PlanNode], Optional[PlanNode]]

# Compared field by field on `FetchNode`; `id` is assigned by each planner on
# its own and only matters through `Depends`.
FETCH_FIELDS = (
    'service_name',
    'operation_kind',
    'operation_name',
    'variable_usages',
    'requires',
    'operation',
    'input_rewrites',
    'output_rewrites',
    'context_rewrites',
)

SUBSCRIPTION_FIELDS = (
    'service_name',
    'operation_kind',
    'operation_name',
    'variable_usages',
    'operation',
    'input_rewrites',
    'output_rewrites',
)

SET_FIELDS = frozenset(['variable_usages'])


class _DescribedDivergence:
    location: Location

    def message(self) -> str:
        raise NotImplementedError

    def describe(self) -> str:
        return f'{format_location(self.location)}: {self.message()}'


@dataclass(frozen=True)
class NodeKindMismatch(_DescribedDivergence):
    location: Location
    expected: Optional[str]
    actual: Optional[str]
    nodes: NodePair = field(default=(None, None), compare=False, repr=False)

    def message(self) -> str:
        return f'expected {self.expected or "no node"}, got {self.actual or "no node"}'


@dataclass(frozen=True)
class ChildCountMismatch(_DescribedDivergence):
    location: Location
    expected: int
    actual: int
    nodes: NodePair = field(default=(None, None), compare=False, repr=False)

    def message(self) -> str:
        return f'expected {self.expected} child nodes, got {self.actual}'


@dataclass(frozen=True)
class FieldMismatch(_DescribedDivergence):
    location: Location
    field: str
    expected: Any
    actual: Any
    nodes: NodePair = field(default=(None, None), compare=False, repr=False)

    def message(self) -> str:
        return (
            f'{self.field} differs: expected {json.dumps(self.expected, default=str)}, '
            f'got {json.dumps(self.actual, default=str)}'
        )


class Side(Enum):
    EXPECTED = 'expected'
    ACTUAL = 'actual'


@dataclass(frozen=True)
class UnmatchedSetMember(_DescribedDivergence):
    location: Location
    side: Side
    description: str
    nodes: NodePair = field(default=(None, None), compare=False, repr=False)

    def message(self) -> str:
        return f'{self.description} only in {self.side.value} plan'


Divergence = Union[NodeKindMismatch, ChildCountMismatch, FieldMismatch, UnmatchedSetMember]


@dataclass(frozen=True)
class Match:
    divergences: tuple[Divergence, ...] = ()

    @property
    def matched(self) -> bool:
        return True


@dataclass(frozen=True)
class Mismatch:
    divergences: tuple[Divergence, ...]

    @property
    def matched(self) -> bool:
        return False


MatchOutcome = Union[Match, Mismatch]


def _display(value: Any) -> Any:
    # Turns compared field values into plain JSON values for reporting.
    if isinstance(value, tuple):
        return [_display(v) for v in value]
    if isinstance(value, (ValueSetter, KeyRenamer)):
        return rewrite_to_json(value)
    if isinstance(value, (QueryPlanFieldNode, QueryPlanInlineFragmentNode)):
        return selection_to_json(value)
    if isinstance(value, (SubgraphOperation, Path)):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def describe_node(node: PlanNode) -> str:
    if isinstance(node, FetchNode):
        return f'Fetch({node.service_name})'
    if isinstance(node, FlattenNode):
        return f'Flatten({node.path}, {describe_node(node.node)})'
    if isinstance(node, (SequenceNode, ParallelNode)):
        return f'{node.kind}[{len(node.nodes)}]'
    return node.kind


def dependency_targets(
    deferred: DeferredNode, primary_location: Location, index: FetchIndex
) -> tuple[str, ...]:
    targets = []
    for depends in deferred.depends:
        resolved = index.resolve(depends.id)
        if resolved is None:
            targets.append(f'unresolved fetch "{depends.id}"')
        else:
            targets.append(format_location(primary_location + ('node',) + resolved))
    return tuple(sorted(targets))


class _PlanMatcher:
    divergences: list[Divergence]

    def __init__(self):
        self.divergences = []

    def matches(self, a: Optional[PlanNode], b: Optional[PlanNode]) -> bool:
        scratch = _PlanMatcher()
        scratch.compare_nodes((), a, b)
        return not scratch.divergences

    def compare_field(
        self, location: Location, name: str, a_value: Any, b_value: Any, nodes: NodePair
    ) -> None:
        if name in SET_FIELDS:
            a_value = tuple(sorted(set(a_value)))
            b_value = tuple(sorted(set(b_value)))
        if a_value != b_value:
            self.divergences.append(
                FieldMismatch(location, name, _display(a_value), _display(b_value), nodes)
            )

    def compare_fetch_fields(
        self,
        location: Location,
        a: Union[FetchNode, SubscriptionFetch],
        b: Union[FetchNode, SubscriptionFetch],
        fields: tuple[str, ...],
        nodes: NodePair,
    ) -> None:
        for name in fields:
            a_value = getattr(a, name)
            b_value = getattr(b, name)
            if name.endswith('_rewrites'):
                a_value = a_value or ()
                b_value = b_value or ()
            self.compare_field(location, name, a_value, b_value, nodes)

    def compare_nodes(self, location: Location, a: Optional[PlanNode], b: Optional[PlanNode]):
        if a is None and b is None:
            return

        a_kind = a.kind if a is not None else None
        b_kind = b.kind if b is not None else None
        if a is None or b is None or a_kind != b_kind:
            self.divergences.append(NodeKindMismatch(location, a_kind, b_kind, (a, b)))
            return

        if isinstance(a, SequenceNode):
            self.compare_sequence(location, a, b)
        elif isinstance(a, ParallelNode):
            self.compare_parallel(location, a, b)
        elif isinstance(a, FetchNode):
            self.compare_fetch_fields(location, a, b, FETCH_FIELDS, (a, b))
        elif isinstance(a, FlattenNode):
            self.compare_field(location, 'path', a.path, b.path, (a, b))
            self.compare_nodes(location + ('node',), a.node, b.node)
        elif isinstance(a, DeferNode):
            self.compare_defer(location, a, b)
        elif isinstance(a, SubscriptionNode):
            self.compare_fetch_fields(
                location + ('primary',), a.primary, b.primary, SUBSCRIPTION_FIELDS, (a, b)
            )
            self.compare_nodes(location + ('rest',), a.rest, b.rest)
        elif isinstance(a, ConditionNode):
            self.compare_field(location, 'condition', a.condition, b.condition, (a, b))
            self.compare_nodes(location + ('if_clause',), a.if_clause, b.if_clause)
            self.compare_nodes(location + ('else_clause',), a.else_clause, b.else_clause)
        else:
            raise TypeError(f'Unexpected plan node {a!r}')

    def compare_sequence(self, location: Location, a: SequenceNode, b: SequenceNode) -> None:
        if len(a.nodes) != len(b.nodes):
            self.divergences.append(
                ChildCountMismatch(location, len(a.nodes), len(b.nodes), (a, b))
            )
            return

        for index, (a_child, b_child) in enumerate(zip(a.nodes, b.nodes)):
            self.compare_nodes(location + (f'nodes[{index}]',), a_child, b_child)

    def compare_parallel(self, location: Location, a: ParallelNode, b: ParallelNode) -> None:
        # Pair up the children that match exactly, whatever their position.
        unmatched_b = list(range(len(b.nodes)))
        unmatched_a = []
        for a_index, a_child in enumerate(a.nodes):
            for b_index in unmatched_b:
                if self.matches(a_child, b.nodes[b_index]):
                    unmatched_b.remove(b_index)
                    break
            else:
                unmatched_a.append(a_index)

        if len(a.nodes) != len(b.nodes):
            self.divergences.append(
                ChildCountMismatch(location, len(a.nodes), len(b.nodes), (a, b))
            )
            for side, nodes, indices in (
                (Side.EXPECTED, a.nodes, unmatched_a),
                (Side.ACTUAL, b.nodes, unmatched_b),
            ):
                for index in indices:
                    pair = (nodes[index], None) if side is Side.EXPECTED else (None, nodes[index])
                    self.divergences.append(
                        UnmatchedSetMember(
                            location + (f'nodes[{index}]',),
                            side,
                            describe_node(nodes[index]),
                            pair,
                        )
                    )
            return

        # Whatever is left is compared in normalized order to localize differences.
        for a_index, b_index in zip(unmatched_a, unmatched_b):
            self.compare_nodes(
                location + (f'nodes[{a_index}]',), a.nodes[a_index], b.nodes[b_index]
            )

    def compare_defer(self, location: Location, a: DeferNode, b: DeferNode) -> None:
        primary_location = location + ('primary',)
        self.compare_field(
            primary_location,
            'subselection',
            a.primary.subselection,
            b.primary.subselection,
            (a, b),
        )
        self.compare_nodes(primary_location + ('node',), a.primary.node, b.primary.node)
        indexes = (FetchIndex(a.primary.node), FetchIndex(b.primary.node))

        a_deferred = group_by(lambda d: str(d.query_path))(a.deferred)
        b_deferred = group_by(lambda d: str(d.query_path))(b.deferred)

        for query_path in list(a_deferred) + [p for p in b_deferred if p not in a_deferred]:
            a_blocks = a_deferred.get(query_path, [])
            b_blocks = b_deferred.get(query_path, [])
            block_location = location + (f'deferred[{query_path}]',)

            for a_block, b_block in zip(a_blocks, b_blocks):
                self.compare_deferred(
                    block_location, a_block, b_block, primary_location, indexes, (a, b)
                )

            for _ in a_blocks[len(b_blocks) :]:
                self.divergences.append(
                    UnmatchedSetMember(
                        block_location, Side.EXPECTED, f'deferred block at "{query_path}"', (a, b)
                    )
                )
            for _ in b_blocks[len(a_blocks) :]:
                self.divergences.append(
                    UnmatchedSetMember(
                        block_location, Side.ACTUAL, f'deferred block at "{query_path}"', (a, b)
                    )
                )

    def compare_deferred(
        self,
        location: Location,
        a: DeferredNode,
        b: DeferredNode,
        primary_location: Location,
        indexes: tuple[FetchIndex, FetchIndex],
        nodes: NodePair,
    ) -> None:
        # Ids are local to each plan, so dependencies compare by the fetch they
        # name. The listed order is irrelevant, their count is not.
        self.compare_field(
            location,
            'depends',
            dependency_targets(a, primary_location, indexes[0]),
            dependency_targets(b, primary_location, indexes[1]),
            nodes,
        )
        self.compare_field(location, 'label', a.label, b.label, nodes)
        self.compare_field(location, 'subselection', a.subselection, b.subselection, nodes)
        self.compare_nodes(location + ('node',), a.node, b.node)


def compare(a: Optional[PlanNode], b: Optional[PlanNode]) -> MatchOutcome:
    """Compares two normalized plans, `a` being the expected one.

    Every divergence found is reported; comparison of sibling subtrees goes on
    after a mismatch.
    """
    matcher = _PlanMatcher()
    matcher.compare_nodes((), a, b)

    if not matcher.divergences:
        return Match()

    logger.debug('Plans diverge in %d places', len(matcher.divergences))
    return Mismatch(tuple(matcher.divergences))


def _adapt_and_normalize(
    legacy: Union[LegacyQueryPlanResult, dict[str, Any]],
    native: NativeQueryPlan,
    options: Optional[CompareOptions],
) -> tuple[Optional[PlanNode], Optional[PlanNode]]:
    return (
        normalize_plan(adapt_legacy(legacy), options, LEGACY),
        normalize_plan(adapt_native(native), options, NATIVE),
    )


def plan_matches(
    legacy: Union[LegacyQueryPlanResult, dict[str, Any]],
    native: NativeQueryPlan,
    options: Optional[CompareOptions] = None,
) -> None:
    """Raises `MatchFailure` listing every divergence unless both plans match.

    The legacy plan is the expected one.
    """
    outcome = compare(*_adapt_and_normalize(legacy, native, options))
    if not outcome.matched:
        raise MatchFailure(list(outcome.divergences))


def check_plans(
    legacy: Union[LegacyQueryPlanResult, dict[str, Any]],
    native: NativeQueryPlan,
    options: Optional[CompareOptions] = None,
) -> None:
    legacy_node, native_node = _adapt_and_normalize(legacy, native, options)
    outcome = compare(legacy_node, native_node)

    if outcome.matched:
        logger.info('Query plans matched')
        return

    logger.info('Query plans diverge in %d places', len(outcome.divergences))
    divergences = '\n'.join(divergence.describe() for divergence in outcome.divergences)
    diff = render_diff(legacy_node, native_node, outcome.divergences, options)
    raise PlanMismatchError(
        list(outcome.divergences), f'Query plan mismatch:\n{divergences}\n\nDiff:\n{diff}'
    )
