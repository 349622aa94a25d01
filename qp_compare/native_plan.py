"""Object model emitted by the native query planner.

Unlike the legacy planner, which hands back JSON, the native planner builds
these objects directly: operations and ``requires`` are parsed graphql-core
documents, paths are lists of typed elements, and fetch ids are integers.
``qp_compare.adapters.native`` translates them into the common plan model.
"""
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from graphql import DocumentNode, OperationType, SelectionSetNode


@dataclass
class Key:
    name: str
    conditions: Optional[list[str]] = None


@dataclass
class AnyIndex:
    conditions: Optional[list[str]] = None


@dataclass
class TypenameEquals:
    name: str


@dataclass
class Parent:
    pass


FetchDataPathElement = Union[Key, AnyIndex, TypenameEquals, Parent]


@dataclass
class FieldPathElement:
    response_name: str


@dataclass
class InlineFragmentPathElement:
    type_condition: Optional[str] = None


QueryPathElement = Union[FieldPathElement, InlineFragmentPathElement]


@dataclass
class FetchDataValueSetter:
    path: list[FetchDataPathElement]
    set_value_to: Any


@dataclass
class FetchDataKeyRenamer:
    path: list[FetchDataPathElement]
    rename_key_to: str


FetchDataRewrite = Union[FetchDataValueSetter, FetchDataKeyRenamer]


@dataclass
class FetchNode:
    subgraph_name: str
    operation_document: DocumentNode
    operation_kind: OperationType = OperationType.QUERY
    id: Optional[int] = None
    variable_usages: list[str] = field(default_factory=list)
    requires: Optional[SelectionSetNode] = None
    operation_name: Optional[str] = None
    input_rewrites: list[FetchDataRewrite] = field(default_factory=list)
    output_rewrites: list[FetchDataRewrite] = field(default_factory=list)
    context_rewrites: list[FetchDataRewrite] = field(default_factory=list)


@dataclass
class SequenceNode:
    nodes: list['PlanNode']


@dataclass
class ParallelNode:
    nodes: list['PlanNode']


@dataclass
class FlattenNode:
    path: list[FetchDataPathElement]
    node: 'PlanNode'


@dataclass
class PrimaryDeferBlock:
    sub_selection: Optional[str] = None
    node: Optional['PlanNode'] = None


@dataclass
class DeferredDependency:
    id: str


@dataclass
class DeferredDeferBlock:
    depends: list[DeferredDependency]
    query_path: list[QueryPathElement]
    label: Optional[str] = None
    sub_selection: Optional[str] = None
    node: Optional['PlanNode'] = None


@dataclass
class DeferNode:
    primary: PrimaryDeferBlock
    deferred: list[DeferredDeferBlock]


@dataclass
class ConditionNode:
    condition_variable: str
    if_clause: Optional['PlanNode'] = None
    else_clause: Optional['PlanNode'] = None


@dataclass
class SubscriptionNode:
    primary: FetchNode
    rest: Optional['PlanNode'] = None


PlanNode = Union[
    SequenceNode,
    ParallelNode,
    FetchNode,
    FlattenNode,
    DeferNode,
    ConditionNode,
    SubscriptionNode,
]


@dataclass
class QueryPlan:
    node: Optional[PlanNode] = None
