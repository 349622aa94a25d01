import hashlib
import json
import logging
from dataclasses import replace
from typing import Optional, TypeVar, Union

from graphql import DocumentNode, FragmentDefinitionNode, GraphQLSyntaxError

from qp_compare.codec import node_to_json, rewrite_to_json
from qp_compare.errors import AdaptationFailure
from qp_compare.fetch_index import iter_fetches
from qp_compare.options import DEFAULT_OPTIONS, CompareOptions
from qp_compare.query_plan import (
    ConditionNode,
    DataRewrite,
    DeferNode,
    FetchNode,
    FlattenNode,
    ParallelNode,
    PlanNode,
    SequenceNode,
    SubgraphOperation,
    SubscriptionFetch,
    SubscriptionNode,
)

logger = logging.getLogger(__name__)

TFetch = TypeVar('TFetch', FetchNode, SubscriptionFetch)


def normalize_operation(operation: SubgraphOperation) -> SubgraphOperation:
    try:
        document = operation.parse()
    except GraphQLSyntaxError as error:
        raise AdaptationFailure(f'cannot parse subgraph operation: {error.message}') from error

    # Fragment definitions can be listed in any order; selections keep theirs.
    fragments = sorted(
        (d for d in document.definitions if isinstance(d, FragmentDefinitionNode)),
        key=lambda fragment: fragment.name.value,
    )
    others = [d for d in document.definitions if not isinstance(d, FragmentDefinitionNode)]

    return SubgraphOperation.from_parsed(DocumentNode(definitions=tuple(others + fragments)))


def canonical_json(node: PlanNode) -> str:
    return json.dumps(node_to_json(node), sort_keys=True, separators=(',', ':'), default=str)


def structural_hash(node: PlanNode) -> str:
    return hashlib.sha256(canonical_json(node).encode('utf-8')).hexdigest()


def first_service(node: PlanNode) -> str:
    for _, fetch in iter_fetches(node):
        return fetch.service_name
    return ''


def parallel_sort_key(node: PlanNode) -> tuple[str, str]:
    # Service of the first fetch in the child, then its full structure.
    return first_service(node), structural_hash(node)


def _rewrite_sort_key(rewrite: DataRewrite) -> tuple[str, str, str]:
    return (
        str(rewrite.path),
        rewrite.kind,
        json.dumps(rewrite_to_json(rewrite), sort_keys=True, default=str),
    )


def normalize_rewrites(
    rewrites: Optional[tuple[DataRewrite, ...]], options: CompareOptions = DEFAULT_OPTIONS
) -> Optional[tuple[DataRewrite, ...]]:
    # An empty list and a missing one mean the same thing.
    if not rewrites:
        return None
    if not options.sort_rewrites:
        return rewrites
    return tuple(sorted(rewrites, key=_rewrite_sort_key))


def normalize_fetch(fetch: TFetch, options: CompareOptions = DEFAULT_OPTIONS) -> TFetch:
    changes: dict[str, Union[tuple, SubgraphOperation, None]] = {
        'variable_usages': tuple(sorted(set(fetch.variable_usages))),
        'input_rewrites': normalize_rewrites(fetch.input_rewrites, options),
        'output_rewrites': normalize_rewrites(fetch.output_rewrites, options),
    }
    if isinstance(fetch, FetchNode):
        changes['context_rewrites'] = normalize_rewrites(fetch.context_rewrites, options)
    if options.normalize_operations:
        changes['operation'] = normalize_operation(fetch.operation)

    return replace(fetch, **changes)


def _normalize(node: Optional[PlanNode], options: CompareOptions) -> Optional[PlanNode]:
    if node is None:
        return None

    if isinstance(node, SequenceNode):
        return SequenceNode(nodes=tuple(_normalize(n, options) for n in node.nodes))
    if isinstance(node, ParallelNode):
        return ParallelNode(
            nodes=tuple(
                sorted((_normalize(n, options) for n in node.nodes), key=parallel_sort_key)
            )
        )
    if isinstance(node, FetchNode):
        return normalize_fetch(node, options)
    if isinstance(node, FlattenNode):
        return FlattenNode(path=node.path, node=_normalize(node.node, options))
    if isinstance(node, DeferNode):
        return DeferNode(
            primary=replace(node.primary, node=_normalize(node.primary.node, options)),
            deferred=tuple(
                replace(deferred, node=_normalize(deferred.node, options))
                for deferred in node.deferred
            ),
        )
    if isinstance(node, SubscriptionNode):
        return SubscriptionNode(
            primary=normalize_fetch(node.primary, options), rest=_normalize(node.rest, options)
        )
    if isinstance(node, ConditionNode):
        return ConditionNode(
            condition=node.condition,
            if_clause=_normalize(node.if_clause, options),
            else_clause=_normalize(node.else_clause, options),
        )

    raise TypeError(f'Unexpected plan node {node!r}')


def normalize_plan(
    node: Optional[PlanNode], options: Optional[CompareOptions] = None, side: Optional[str] = None
) -> Optional[PlanNode]:
    """Brings a plan into the canonical form `compare` expects.

    `side` names the planner the plan came from in adaptation errors.
    """
    if options is None:
        options = DEFAULT_OPTIONS

    try:
        normalized = _normalize(node, options)
    except AdaptationFailure as error:
        if side is None or error.side is not None:
            raise
        raise AdaptationFailure(str(error), side) from error

    logger.debug('Normalized plan rooted at %s', node.kind if node is not None else None)
    return normalized
