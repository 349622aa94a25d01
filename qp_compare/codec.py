"""Reading and writing the tagged record format of query plans.

Every plan node is a JSON object discriminated by its ``kind`` (``Sequence``,
``Parallel``, ``Fetch``, ``Flatten``, ``Defer``, ``Subscription`` or
``Condition``) with camelCase field names. This is the shape the legacy planner
emits and the shape used for plan dumps, so it must stay stable.
"""
from typing import Any, Callable, Optional, TypeVar

from qp_compare.errors import AdaptationFailure, InvalidPathSyntax
from qp_compare.path import Path
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
    QueryPlanFieldNode,
    QueryPlanInlineFragmentNode,
    QueryPlanSelectionNode,
    SequenceNode,
    SubgraphOperation,
    SubscriptionFetch,
    SubscriptionNode,
    ValueSetter,
)

JSON = dict[str, Any]

T = TypeVar('T')


def _object(data: Any) -> JSON:
    if not isinstance(data, dict):
        raise AdaptationFailure(f'expected an object, got {data!r}')
    return data


def _require(data: JSON, key: str) -> Any:
    try:
        return _object(data)[key]
    except KeyError as error:
        raise AdaptationFailure(f'missing field "{key}" in {data.get("kind", "record")}') from error


def _list(data: JSON, key: str, required: bool = False) -> list:
    value = _require(data, key) if required else data.get(key)
    if value is None and not required:
        return []
    if not isinstance(value, list):
        raise AdaptationFailure(
            f'expected a list for "{key}" in {data.get("kind", "record")}, got {value!r}'
        )
    return value


def _optional(data: JSON, key: str, convert: Callable[[Any], T]) -> Optional[T]:
    value = data.get(key)
    return convert(value) if value is not None else None


def _path(value: Any) -> Path:
    if isinstance(value, str):
        parse = Path.parse
    elif isinstance(value, list):
        parse = Path.from_json
    else:
        raise AdaptationFailure(f'expected a path, got {value!r}')
    try:
        return parse(value)
    except InvalidPathSyntax as error:
        raise AdaptationFailure(str(error)) from error


def _operation_kind(value: Any) -> OperationKind:
    try:
        return OperationKind(value.lower())
    except (AttributeError, ValueError) as error:
        raise AdaptationFailure(f'unknown operation kind "{value}"') from error


def selection_from_json(data: JSON) -> QueryPlanSelectionNode:
    kind = _require(data, 'kind')
    if kind == QueryPlanFieldNode.kind:
        return QueryPlanFieldNode(
            name=_require(data, 'name'),
            alias=data.get('alias'),
            selections=(
                tuple(map(selection_from_json, _list(data, 'selections')))
                if data.get('selections') is not None
                else None
            ),
        )
    if kind == QueryPlanInlineFragmentNode.kind:
        return QueryPlanInlineFragmentNode(
            type_condition=data.get('typeCondition'),
            selections=tuple(map(selection_from_json, _list(data, 'selections', required=True))),
        )
    raise AdaptationFailure(f'unknown selection kind "{kind}"')


def selection_to_json(selection: QueryPlanSelectionNode) -> JSON:
    if isinstance(selection, QueryPlanFieldNode):
        data: JSON = {'kind': selection.kind}
        if selection.alias is not None:
            data['alias'] = selection.alias
        data['name'] = selection.name
        if selection.selections is not None:
            data['selections'] = [selection_to_json(s) for s in selection.selections]
        return data

    data = {'kind': selection.kind}
    if selection.type_condition is not None:
        data['typeCondition'] = selection.type_condition
    data['selections'] = [selection_to_json(s) for s in selection.selections]
    return data


def rewrite_from_json(data: JSON) -> DataRewrite:
    kind = _require(data, 'kind')
    if kind == ValueSetter.kind:
        return ValueSetter(path=_path(_require(data, 'path')), set_value_to=data.get('setValueTo'))
    if kind == KeyRenamer.kind:
        return KeyRenamer(
            path=_path(_require(data, 'path')), rename_key_to=_require(data, 'renameKeyTo')
        )
    raise AdaptationFailure(f'unknown rewrite kind "{kind}"')


def rewrite_to_json(rewrite: DataRewrite) -> JSON:
    data: JSON = {'kind': rewrite.kind, 'path': rewrite.path.to_json()}
    if isinstance(rewrite, ValueSetter):
        data['setValueTo'] = rewrite.set_value_to
    else:
        data['renameKeyTo'] = rewrite.rename_key_to
    return data


def _rewrites(value: list[JSON]) -> tuple[DataRewrite, ...]:
    if not isinstance(value, list):
        raise AdaptationFailure(f'expected a list of rewrites, got {value!r}')
    return tuple(map(rewrite_from_json, value))


def _rewrites_to_json(rewrites: Optional[tuple[DataRewrite, ...]]) -> Optional[list[JSON]]:
    return [rewrite_to_json(r) for r in rewrites] if rewrites is not None else None


def fetch_from_json(data: JSON) -> FetchNode:
    fetch_id = data.get('id')
    return FetchNode(
        service_name=_require(data, 'serviceName'),
        requires=tuple(map(selection_from_json, _list(data, 'requires'))),
        variable_usages=tuple(_list(data, 'variableUsages')),
        operation=SubgraphOperation.from_string(_require(data, 'operation')),
        operation_name=data.get('operationName'),
        operation_kind=_operation_kind(data.get('operationKind') or 'query'),
        id=str(fetch_id) if fetch_id is not None else None,
        input_rewrites=_optional(data, 'inputRewrites', _rewrites),
        output_rewrites=_optional(data, 'outputRewrites', _rewrites),
        context_rewrites=_optional(data, 'contextRewrites', _rewrites),
    )


def _deferred_from_json(data: JSON) -> DeferredNode:
    data = _object(data)
    return DeferredNode(
        depends=tuple(Depends(id=str(_require(d, 'id'))) for d in _list(data, 'depends')),
        label=data.get('label'),
        query_path=_path(data.get('queryPath') or []),
        subselection=data.get('subselection'),
        node=_optional(data, 'node', node_from_json),
    )


def _subscription_fetch_from_json(data: JSON) -> SubscriptionFetch:
    return SubscriptionFetch(
        service_name=_require(data, 'serviceName'),
        variable_usages=tuple(_list(data, 'variableUsages')),
        operation=SubgraphOperation.from_string(_require(data, 'operation')),
        operation_name=data.get('operationName'),
        operation_kind=_operation_kind(data.get('operationKind') or 'subscription'),
        input_rewrites=_optional(data, 'inputRewrites', _rewrites),
        output_rewrites=_optional(data, 'outputRewrites', _rewrites),
    )


def node_from_json(data: JSON) -> PlanNode:
    kind = _require(data, 'kind')

    if kind == SequenceNode.kind:
        return SequenceNode(nodes=tuple(map(node_from_json, _list(data, 'nodes', required=True))))
    if kind == ParallelNode.kind:
        return ParallelNode(nodes=tuple(map(node_from_json, _list(data, 'nodes', required=True))))
    if kind == FetchNode.kind:
        return fetch_from_json(data)
    if kind == FlattenNode.kind:
        return FlattenNode(
            path=_path(_require(data, 'path')), node=node_from_json(_require(data, 'node'))
        )
    if kind == DeferNode.kind:
        primary = _object(_require(data, 'primary'))
        return DeferNode(
            primary=Primary(
                subselection=primary.get('subselection'),
                node=_optional(primary, 'node', node_from_json),
            ),
            deferred=tuple(map(_deferred_from_json, _list(data, 'deferred'))),
        )
    if kind == SubscriptionNode.kind:
        return SubscriptionNode(
            primary=_subscription_fetch_from_json(_require(data, 'primary')),
            rest=_optional(data, 'rest', node_from_json),
        )
    if kind == ConditionNode.kind:
        return ConditionNode(
            condition=_require(data, 'condition'),
            if_clause=_optional(data, 'ifClause', node_from_json),
            else_clause=_optional(data, 'elseClause', node_from_json),
        )

    raise AdaptationFailure(f'unknown plan node kind "{kind}"')


def fetch_to_json(fetch: FetchNode) -> JSON:
    data: JSON = {'kind': fetch.kind, 'serviceName': fetch.service_name}
    if fetch.requires:
        data['requires'] = [selection_to_json(s) for s in fetch.requires]
    data['variableUsages'] = list(fetch.variable_usages)
    data['operation'] = fetch.operation.serialized
    data['operationName'] = fetch.operation_name
    data['operationKind'] = fetch.operation_kind.value
    data['id'] = fetch.id
    data['inputRewrites'] = _rewrites_to_json(fetch.input_rewrites)
    data['outputRewrites'] = _rewrites_to_json(fetch.output_rewrites)
    data['contextRewrites'] = _rewrites_to_json(fetch.context_rewrites)
    return data


def _optional_node_to_json(node: Optional[PlanNode]) -> Optional[JSON]:
    return node_to_json(node) if node is not None else None


def node_to_json(node: PlanNode) -> JSON:
    if isinstance(node, (SequenceNode, ParallelNode)):
        return {'kind': node.kind, 'nodes': [node_to_json(n) for n in node.nodes]}
    if isinstance(node, FetchNode):
        return fetch_to_json(node)
    if isinstance(node, FlattenNode):
        return {'kind': node.kind, 'path': node.path.to_json(), 'node': node_to_json(node.node)}
    if isinstance(node, DeferNode):
        return {
            'kind': node.kind,
            'primary': {
                'subselection': node.primary.subselection,
                'node': _optional_node_to_json(node.primary.node),
            },
            'deferred': [
                {
                    'depends': [{'id': d.id} for d in deferred.depends],
                    'label': deferred.label,
                    'queryPath': deferred.query_path.to_json(),
                    'subselection': deferred.subselection,
                    'node': _optional_node_to_json(deferred.node),
                }
                for deferred in node.deferred
            ],
        }
    if isinstance(node, SubscriptionNode):
        primary = node.primary
        return {
            'kind': node.kind,
            'primary': {
                'serviceName': primary.service_name,
                'variableUsages': list(primary.variable_usages),
                'operation': primary.operation.serialized,
                'operationName': primary.operation_name,
                'operationKind': primary.operation_kind.value,
                'inputRewrites': _rewrites_to_json(primary.input_rewrites),
                'outputRewrites': _rewrites_to_json(primary.output_rewrites),
            },
            'rest': _optional_node_to_json(node.rest),
        }
    if isinstance(node, ConditionNode):
        return {
            'kind': node.kind,
            'condition': node.condition,
            'ifClause': _optional_node_to_json(node.if_clause),
            'elseClause': _optional_node_to_json(node.else_clause),
        }

    raise TypeError(f'Unexpected plan node {node!r}')
