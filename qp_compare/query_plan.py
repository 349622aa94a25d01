from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union, cast

from graphql import (
    DocumentNode,
    FieldNode,
    InlineFragmentNode,
    OperationType,
    SelectionNode as GraphQLJSSelectionNode,
    parse,
    print_ast,
    strip_ignored_characters,
)

from qp_compare.path import Path


@dataclass(frozen=True)
class QueryPlan:
    kind = 'QueryPlan'
    node: Optional['PlanNode']


PlanNode = Union[
    'SequenceNode',
    'ParallelNode',
    'FetchNode',
    'FlattenNode',
    'DeferNode',
    'SubscriptionNode',
    'ConditionNode',
]


# These nodes must be executed in order.
@dataclass(frozen=True)
class SequenceNode:
    kind = 'Sequence'
    nodes: tuple[PlanNode, ...]


# These nodes may be executed in parallel.
@dataclass(frozen=True)
class ParallelNode:
    kind = 'Parallel'
    nodes: tuple[PlanNode, ...]


class OperationKind(Enum):
    QUERY = 'query'
    MUTATION = 'mutation'
    SUBSCRIPTION = 'subscription'

    @classmethod
    def from_operation_type(cls, operation_type: OperationType) -> 'OperationKind':
        return cls(operation_type.value)

    def to_operation_type(self) -> OperationType:
        return OperationType(self.value)


@dataclass(frozen=True)
class SubgraphOperation:
    serialized: str

    @classmethod
    def from_string(cls, serialized: str) -> 'SubgraphOperation':
        return cls(serialized)

    @classmethod
    def from_parsed(cls, document: DocumentNode) -> 'SubgraphOperation':
        return cls(strip_ignored_characters(print_ast(document)))

    def parse(self) -> DocumentNode:
        return parse(self.serialized, no_location=True)

    def __str__(self) -> str:
        return self.serialized


@dataclass(frozen=True)
class ValueSetter:
    kind = 'ValueSetter'
    path: Path
    set_value_to: Any


@dataclass(frozen=True)
class KeyRenamer:
    kind = 'KeyRenamer'
    path: Path
    rename_key_to: str


DataRewrite = Union[ValueSetter, KeyRenamer]


@dataclass(frozen=True)
class FetchNode:
    kind = 'Fetch'
    service_name: str
    variable_usages: tuple[str, ...]
    operation: SubgraphOperation
    operation_kind: OperationKind = OperationKind.QUERY
    requires: tuple['QueryPlanSelectionNode', ...] = ()
    operation_name: Optional[str] = None
    # Referenced by `Depends.id` of deferred blocks.
    id: Optional[str] = None
    # Applied to the data sent as input of this fetch.
    input_rewrites: Optional[tuple[DataRewrite, ...]] = None
    # Applied to the fetched data before it is merged into the in-memory results.
    output_rewrites: Optional[tuple[DataRewrite, ...]] = None
    # Applied to data already received further up the tree.
    context_rewrites: Optional[tuple[DataRewrite, ...]] = None


@dataclass(frozen=True)
class FlattenNode:
    kind = 'Flatten'
    path: Path
    node: PlanNode


@dataclass(frozen=True)
class Primary:
    subselection: Optional[str] = None
    node: Optional[PlanNode] = None


@dataclass(frozen=True)
class Depends:
    id: str


@dataclass(frozen=True)
class DeferredNode:
    # Ids of fetches within the primary node that must complete first.
    depends: tuple[Depends, ...]
    query_path: Path
    label: Optional[str] = None
    subselection: Optional[str] = None
    node: Optional[PlanNode] = None


@dataclass(frozen=True)
class DeferNode:
    kind = 'Defer'
    primary: Primary
    deferred: tuple[DeferredNode, ...]


@dataclass(frozen=True)
class SubscriptionFetch:
    service_name: str
    variable_usages: tuple[str, ...]
    operation: SubgraphOperation
    operation_kind: OperationKind = OperationKind.SUBSCRIPTION
    operation_name: Optional[str] = None
    input_rewrites: Optional[tuple[DataRewrite, ...]] = None
    output_rewrites: Optional[tuple[DataRewrite, ...]] = None


@dataclass(frozen=True)
class SubscriptionNode:
    kind = 'Subscription'
    primary: SubscriptionFetch
    rest: Optional[PlanNode] = None


@dataclass(frozen=True)
class ConditionNode:
    kind = 'Condition'
    condition: str
    if_clause: Optional[PlanNode] = None
    else_clause: Optional[PlanNode] = None


# SelectionNodes from GraphQL-js _can_ have a FragmentSpreadNode
# but this SelectionNode is specifically typing the `requires` key
# in a built query plan, where there can't be FragmentSpreadNodes
# since that info is contained in the `FetchNode.operation`
QueryPlanSelectionNode = Union['QueryPlanFieldNode', 'QueryPlanInlineFragmentNode']


@dataclass(frozen=True)
class QueryPlanFieldNode:
    kind = 'Field'
    name: str
    alias: Optional[str] = None
    selections: Optional[tuple[QueryPlanSelectionNode, ...]] = None

    @property
    def response_name(self) -> str:
        return self.alias if self.alias is not None else self.name


@dataclass(frozen=True)
class QueryPlanInlineFragmentNode:
    kind = 'InlineFragment'
    selections: tuple[QueryPlanSelectionNode, ...]
    type_condition: Optional[str] = None


def trim_selection_nodes(
    selections: list[GraphQLJSSelectionNode],
) -> list[QueryPlanSelectionNode]:
    # Only the shape of the data survives: arguments and directives are dropped.
    remapped: list[QueryPlanSelectionNode] = []

    for selection in selections:
        if selection.kind == FieldNode.kind:
            selection = cast(FieldNode, selection)
            remapped.append(
                QueryPlanFieldNode(
                    name=selection.name.value,
                    alias=selection.alias.value if selection.alias is not None else None,
                    selections=tuple(trim_selection_nodes(selection.selection_set.selections))
                    if selection.selection_set is not None
                    else None,
                )
            )
        elif selection.kind == InlineFragmentNode.kind:
            selection = cast(InlineFragmentNode, selection)
            remapped.append(
                QueryPlanInlineFragmentNode(
                    type_condition=selection.type_condition.name.value
                    if selection.type_condition is not None
                    else None,
                    selections=tuple(trim_selection_nodes(selection.selection_set.selections)),
                )
            )
        else:
            raise ValueError(f'Unexpected {selection.kind} in a `requires` selection set')

    return remapped
