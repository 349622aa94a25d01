import logging
from typing import Optional

from graphql import GraphQLError

from qp_compare import native_plan
from qp_compare.adapters.validation import validate_plan
from qp_compare.errors import AdaptationFailure
from qp_compare.path import FlattenElement, FragmentElement, KeyElement, Path, PathElement
from qp_compare.query_plan import (
    ConditionNode,
    DataRewrite,
    DeferNode,
    DeferredNode,
    Depends,
    FetchNode,
    FlattenNode,
    KeyRenamer,
    OperationKind,
    ParallelNode,
    PlanNode,
    Primary,
    SequenceNode,
    SubgraphOperation,
    SubscriptionFetch,
    SubscriptionNode,
    ValueSetter,
    trim_selection_nodes,
)

logger = logging.getLogger(__name__)

SIDE = 'native'


def _conditions(conditions: Optional[list[str]]) -> Optional[tuple[str, ...]]:
    return tuple(conditions) if conditions is not None else None


def convert_fetch_path(path: list[native_plan.FetchDataPathElement]) -> Path:
    elements: list[PathElement] = []
    for element in path:
        if isinstance(element, native_plan.Key):
            elements.append(KeyElement(element.name, _conditions(element.conditions)))
        elif isinstance(element, native_plan.AnyIndex):
            elements.append(FlattenElement(_conditions(element.conditions)))
        elif isinstance(element, native_plan.TypenameEquals):
            elements.append(FragmentElement(element.name))
        else:
            raise AdaptationFailure(f'path element {element!r} has no response path form', SIDE)
    return Path(tuple(elements))


def convert_query_path(path: list[native_plan.QueryPathElement]) -> Path:
    elements: list[PathElement] = []
    for element in path:
        if isinstance(element, native_plan.FieldPathElement):
            elements.append(KeyElement(element.response_name))
        elif element.type_condition is not None:
            elements.append(FragmentElement(element.type_condition))
        # An inline fragment without a type condition does not move the path.
    return Path(tuple(elements))


def convert_rewrites(
    rewrites: list[native_plan.FetchDataRewrite],
) -> Optional[tuple[DataRewrite, ...]]:
    if not rewrites:
        return None

    converted: list[DataRewrite] = []
    for rewrite in rewrites:
        if isinstance(rewrite, native_plan.FetchDataValueSetter):
            converted.append(
                ValueSetter(
                    path=convert_fetch_path(rewrite.path), set_value_to=rewrite.set_value_to
                )
            )
        else:
            converted.append(
                KeyRenamer(
                    path=convert_fetch_path(rewrite.path), rename_key_to=rewrite.rename_key_to
                )
            )
    return tuple(converted)


def _operation(fetch: native_plan.FetchNode) -> SubgraphOperation:
    try:
        return SubgraphOperation.from_parsed(fetch.operation_document)
    except GraphQLError as error:
        raise AdaptationFailure(
            f'cannot print operation for subgraph "{fetch.subgraph_name}": {error.message}', SIDE
        ) from error


def convert_fetch(fetch: native_plan.FetchNode) -> FetchNode:
    try:
        requires = (
            tuple(trim_selection_nodes(list(fetch.requires.selections)))
            if fetch.requires is not None
            else ()
        )
    except ValueError as error:
        raise AdaptationFailure(str(error), SIDE) from error

    return FetchNode(
        service_name=fetch.subgraph_name,
        requires=requires,
        variable_usages=tuple(fetch.variable_usages),
        operation=_operation(fetch),
        operation_name=fetch.operation_name,
        operation_kind=OperationKind.from_operation_type(fetch.operation_kind),
        id=str(fetch.id) if fetch.id is not None else None,
        input_rewrites=convert_rewrites(fetch.input_rewrites),
        output_rewrites=convert_rewrites(fetch.output_rewrites),
        context_rewrites=convert_rewrites(fetch.context_rewrites),
    )


def convert_subscription_fetch(fetch: native_plan.FetchNode) -> SubscriptionFetch:
    if fetch.context_rewrites:
        raise AdaptationFailure('subscription primary fetch cannot have context rewrites', SIDE)

    return SubscriptionFetch(
        service_name=fetch.subgraph_name,
        variable_usages=tuple(fetch.variable_usages),
        operation=_operation(fetch),
        operation_name=fetch.operation_name,
        operation_kind=OperationKind.from_operation_type(fetch.operation_kind),
        input_rewrites=convert_rewrites(fetch.input_rewrites),
        output_rewrites=convert_rewrites(fetch.output_rewrites),
    )


def _convert_optional(node: Optional[native_plan.PlanNode]) -> Optional[PlanNode]:
    return convert_node(node) if node is not None else None


def convert_node(node: native_plan.PlanNode) -> PlanNode:
    if isinstance(node, native_plan.SequenceNode):
        return SequenceNode(nodes=tuple(map(convert_node, node.nodes)))
    if isinstance(node, native_plan.ParallelNode):
        return ParallelNode(nodes=tuple(map(convert_node, node.nodes)))
    if isinstance(node, native_plan.FetchNode):
        return convert_fetch(node)
    if isinstance(node, native_plan.FlattenNode):
        return FlattenNode(path=convert_fetch_path(node.path), node=convert_node(node.node))
    if isinstance(node, native_plan.DeferNode):
        return DeferNode(
            primary=Primary(
                subselection=node.primary.sub_selection,
                node=_convert_optional(node.primary.node),
            ),
            deferred=tuple(
                DeferredNode(
                    depends=tuple(Depends(id=str(d.id)) for d in deferred.depends),
                    label=deferred.label,
                    query_path=convert_query_path(deferred.query_path),
                    subselection=deferred.sub_selection,
                    node=_convert_optional(deferred.node),
                )
                for deferred in node.deferred
            ),
        )
    if isinstance(node, native_plan.SubscriptionNode):
        return SubscriptionNode(
            primary=convert_subscription_fetch(node.primary),
            rest=_convert_optional(node.rest),
        )
    if isinstance(node, native_plan.ConditionNode):
        return ConditionNode(
            condition=node.condition_variable,
            if_clause=_convert_optional(node.if_clause),
            else_clause=_convert_optional(node.else_clause),
        )

    raise AdaptationFailure(f'unknown plan node {type(node).__name__}', SIDE)


def adapt_native(plan: native_plan.QueryPlan) -> Optional[PlanNode]:
    if plan.node is None:
        logger.debug('Native plan is empty')
        return None

    node = convert_node(plan.node)
    validate_plan(node, SIDE)
    return node
