import pytest
from graphql import OperationType, parse

from qp_compare import native_plan
from qp_compare.adapters import LegacyQueryPlanResult, adapt_legacy, adapt_native
from qp_compare.errors import AdaptationFailure
from qp_compare.fetch_index import FetchIndex
from qp_compare.path import FlattenElement, FragmentElement, KeyElement, Path
from qp_compare.query_plan import (
    ConditionNode,
    DeferNode,
    FetchNode,
    FlattenNode,
    KeyRenamer,
    OperationKind,
    ParallelNode,
    QueryPlanFieldNode,
    QueryPlanInlineFragmentNode,
    SubscriptionNode,
    ValueSetter,
)

LEGACY_RESULT = {
    'formattedQueryPlan': (
        'QueryPlan {\n  Fetch(service: "accounts") {\n    {\n      me {\n        id\n      }\n'
        '    }\n  },\n}'
    ),
    'queryPlan': {
        'kind': 'QueryPlan',
        'node': {
            'kind': 'Fetch',
            'serviceName': 'accounts',
            'variableUsages': [],
            'operation': '{me{id}}',
            'operationKind': 'query',
        },
    },
}


def legacy_defer(depends_id: str) -> dict:
    return {
        'kind': 'QueryPlan',
        'node': {
            'kind': 'Defer',
            'primary': {
                'subselection': '{me{id}}',
                'node': {
                    'kind': 'Fetch',
                    'serviceName': 'accounts',
                    'operation': '{me{__typename id}}',
                    'id': '1',
                },
            },
            'deferred': [
                {
                    'depends': [{'id': depends_id}],
                    'label': None,
                    'queryPath': ['me'],
                    'subselection': '{name}',
                    'node': {
                        'kind': 'Flatten',
                        'path': ['me'],
                        'node': {
                            'kind': 'Fetch',
                            'serviceName': 'accounts',
                            'operation': '{me{name}}',
                        },
                    },
                }
            ],
        },
    }


def native_fetch(subgraph_name: str, operation: str = '{me{id}}', **kwargs):
    return native_plan.FetchNode(
        subgraph_name=subgraph_name, operation_document=parse(operation), **kwargs
    )


def native_defer(depends_id: str) -> native_plan.QueryPlan:
    return native_plan.QueryPlan(
        node=native_plan.DeferNode(
            primary=native_plan.PrimaryDeferBlock(
                sub_selection='{me{id}}', node=native_fetch('accounts', '{me{__typename id}}', id=1)
            ),
            deferred=[
                native_plan.DeferredDeferBlock(
                    depends=[native_plan.DeferredDependency(id=depends_id)],
                    query_path=[native_plan.FieldPathElement('me')],
                    sub_selection='{name}',
                    node=native_plan.FlattenNode(
                        path=[native_plan.Key('me')], node=native_fetch('accounts', '{me{name}}')
                    ),
                )
            ],
        )
    )


class TestLegacy:
    def test_result(self):
        node = adapt_legacy(LEGACY_RESULT)

        assert isinstance(node, FetchNode)
        assert node.service_name == 'accounts'
        assert node.operation.serialized == '{me{id}}'

    def test_bare_query_plan(self):
        assert adapt_legacy(LEGACY_RESULT['queryPlan']) == adapt_legacy(LEGACY_RESULT)

    def test_parsed_result(self):
        result = LegacyQueryPlanResult.from_json(LEGACY_RESULT)

        assert result.formatted_query_plan.startswith('QueryPlan {')
        assert adapt_legacy(result) == adapt_legacy(LEGACY_RESULT)

    def test_empty_plan(self):
        assert adapt_legacy({'queryPlan': {'kind': 'QueryPlan', 'node': None}}) is None
        assert adapt_legacy({'kind': 'QueryPlan'}) is None

    def test_not_a_query_plan(self):
        with pytest.raises(AdaptationFailure, match='expected a QueryPlan'):
            adapt_legacy({'kind': 'Fetch', 'node': None})

    def test_failures_name_the_side(self):
        with pytest.raises(AdaptationFailure) as info:
            adapt_legacy({'kind': 'QueryPlan', 'node': {'kind': 'Loop'}})

        assert info.value.side == 'legacy'
        assert str(info.value) == 'legacy plan: unknown plan node kind "Loop"'

    @pytest.mark.parametrize(
        'node',
        [
            {'kind': 'Defer', 'primary': None},
            {'kind': 'Sequence', 'nodes': None},
            {'kind': 'Fetch', 'serviceName': 'a', 'operation': '{a}', 'operationKind': 1},
        ],
    )
    def test_malformed_records(self, node):
        with pytest.raises(AdaptationFailure) as info:
            adapt_legacy({'kind': 'QueryPlan', 'node': node})

        assert info.value.side == 'legacy'

    def test_not_an_object(self):
        with pytest.raises(AdaptationFailure, match='expected a query plan result object'):
            adapt_legacy(['queryPlan'])

    def test_defer(self):
        node = adapt_legacy(legacy_defer('1'))

        assert isinstance(node, DeferNode)
        assert node.deferred[0].query_path == Path.parse('/me')

    def test_unknown_dependency(self):
        with pytest.raises(AdaptationFailure, match='depends on fetch "2"') as info:
            adapt_legacy(legacy_defer('2'))

        assert info.value.side == 'legacy'


class TestNative:
    def test_fetch(self):
        requires = parse('{ ... on User { __typename id } }').definitions[0].selection_set
        plan = native_plan.QueryPlan(
            node=native_plan.FlattenNode(
                path=[native_plan.Key('topProducts'), native_plan.AnyIndex(['Book'])],
                node=native_fetch(
                    'reviews',
                    'query($representations: [_Any!]!) '
                    '{ _entities(representations: $representations) { ... on User { name } } }',
                    id=4,
                    requires=requires,
                    variable_usages=['first'],
                    output_rewrites=[
                        native_plan.FetchDataKeyRenamer(
                            path=[native_plan.TypenameEquals('User'), native_plan.Key('r')],
                            rename_key_to='reviews',
                        )
                    ],
                ),
            )
        )

        node = adapt_native(plan)

        assert isinstance(node, FlattenNode)
        assert node.path.elements == (KeyElement('topProducts'), FlattenElement(('Book',)))
        fetch = node.node
        assert fetch.service_name == 'reviews'
        assert fetch.id == '4'
        assert fetch.variable_usages == ('first',)
        assert fetch.operation_kind is OperationKind.QUERY
        assert fetch.operation.serialized == (
            'query($representations:[_Any!]!)'
            '{_entities(representations:$representations){...on User{name}}}'
        )
        assert fetch.requires == (
            QueryPlanInlineFragmentNode(
                type_condition='User',
                selections=(
                    QueryPlanFieldNode(name='__typename'),
                    QueryPlanFieldNode(name='id'),
                ),
            ),
        )
        assert fetch.output_rewrites == (
            KeyRenamer(path=Path.parse('/... on User/r'), rename_key_to='reviews'),
        )
        assert fetch.input_rewrites is None

    def test_aliased_requires(self):
        requires = parse('{ a: id name { first } }').definitions[0].selection_set

        fetch = adapt_native(
            native_plan.QueryPlan(node=native_fetch('accounts', requires=requires))
        )

        assert fetch.requires == (
            QueryPlanFieldNode(name='id', alias='a'),
            QueryPlanFieldNode(name='name', selections=(QueryPlanFieldNode(name='first'),)),
        )

    def test_fragment_spread_in_requires(self):
        requires = parse('{ ...F }').definitions[0].selection_set

        with pytest.raises(AdaptationFailure, match='fragment_spread'):
            adapt_native(native_plan.QueryPlan(node=native_fetch('a', requires=requires)))

    def test_parent_path_element(self):
        plan = native_plan.QueryPlan(
            node=native_plan.FlattenNode(path=[native_plan.Parent()], node=native_fetch('a'))
        )

        with pytest.raises(AdaptationFailure, match='no response path form'):
            adapt_native(plan)

    def test_empty_plan(self):
        assert adapt_native(native_plan.QueryPlan()) is None

    def test_structure(self):
        plan = native_plan.QueryPlan(
            node=native_plan.ConditionNode(
                condition_variable='flag',
                if_clause=native_plan.ParallelNode(
                    nodes=[native_fetch('a'), native_fetch('b')]
                ),
                else_clause=native_plan.SubscriptionNode(
                    primary=native_fetch(
                        's',
                        'subscription { onEvent { id } }',
                        operation_kind=OperationType.SUBSCRIPTION,
                        input_rewrites=[
                            native_plan.FetchDataValueSetter(
                                path=[native_plan.Key('__typename')], set_value_to='Event'
                            )
                        ],
                    ),
                    rest=native_fetch('a'),
                ),
            )
        )

        node = adapt_native(plan)

        assert isinstance(node, ConditionNode)
        assert node.condition == 'flag'
        assert isinstance(node.if_clause, ParallelNode)
        assert isinstance(node.else_clause, SubscriptionNode)
        assert node.else_clause.primary.operation_kind is OperationKind.SUBSCRIPTION
        assert node.else_clause.primary.input_rewrites == (
            ValueSetter(path=Path.parse('/__typename'), set_value_to='Event'),
        )

    def test_subscription_context_rewrites(self):
        plan = native_plan.QueryPlan(
            node=native_plan.SubscriptionNode(
                primary=native_fetch(
                    's',
                    'subscription { onEvent { id } }',
                    context_rewrites=[
                        native_plan.FetchDataKeyRenamer(
                            path=[native_plan.Key('a')], rename_key_to='b'
                        )
                    ],
                )
            )
        )

        with pytest.raises(AdaptationFailure, match='context rewrites'):
            adapt_native(plan)

    def test_defer(self):
        node = adapt_native(native_defer('1'))

        assert node == adapt_legacy(legacy_defer('1'))

    def test_query_path_fragments(self):
        plan = native_defer('1')
        plan.node.deferred[0].query_path = [
            native_plan.FieldPathElement('search'),
            native_plan.InlineFragmentPathElement('Book'),
            native_plan.InlineFragmentPathElement(None),
            native_plan.FieldPathElement('title'),
        ]

        node = adapt_native(plan)

        assert node.deferred[0].query_path.elements == (
            KeyElement('search'),
            FragmentElement('Book'),
            KeyElement('title'),
        )

    def test_unknown_dependency(self):
        # Checked before any comparison can happen.
        with pytest.raises(AdaptationFailure, match='depends on fetch "2"') as info:
            adapt_native(native_defer('2'))

        assert info.value.side == 'native'

    def test_duplicate_dependency_target(self):
        plan = native_defer('1')
        plan.node.primary.node = native_plan.SequenceNode(
            nodes=[native_fetch('accounts', id=1), native_fetch('accounts', id=1)]
        )

        with pytest.raises(AdaptationFailure, match='defined 2 times'):
            adapt_native(plan)


def test_fetch_index():
    node = adapt_native(native_defer('1'))

    index = FetchIndex(node.primary.node)

    assert '1' in index
    assert index.resolve('1') == ()
    assert index.ids() == ['1']
    assert index.resolve('2') is None
