from typing import Optional

from qp_compare.normalize import normalize_plan
from qp_compare.path import Path
from qp_compare.plan_compare import MatchOutcome, compare
from qp_compare.query_plan import (
    ConditionNode,
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
    SequenceNode,
    SubgraphOperation,
    SubscriptionFetch,
    SubscriptionNode,
    ValueSetter,
)

ENTITIES_OPERATION = (
    'query($representations:[_Any!]!){_entities(representations:$representations)'
    '{...on User{name}}}'
)


def fetch(service_name: str, operation: str = '{me{id}}', **kwargs) -> FetchNode:
    return FetchNode(
        service_name=service_name,
        variable_usages=tuple(kwargs.pop('variable_usages', ())),
        operation=SubgraphOperation.from_string(operation),
        **kwargs,
    )


def flatten(path: str, node: PlanNode) -> FlattenNode:
    return FlattenNode(path=Path.parse(path), node=node)


def user_requires() -> tuple:
    return (
        QueryPlanInlineFragmentNode(
            type_condition='User',
            selections=(QueryPlanFieldNode(name='__typename'), QueryPlanFieldNode(name='id')),
        ),
    )


def full_plan() -> PlanNode:
    # One node of every kind.
    return SequenceNode(
        nodes=(
            fetch('accounts', id='0', variable_usages=['first']),
            ParallelNode(
                nodes=(
                    flatten(
                        '/me',
                        fetch(
                            'reviews',
                            ENTITIES_OPERATION,
                            requires=user_requires(),
                            output_rewrites=(
                                KeyRenamer(path=Path.parse('/reviews'), rename_key_to='r0'),
                                ValueSetter(
                                    path=Path.parse('/... on User/__typename'),
                                    set_value_to='User',
                                ),
                            ),
                        ),
                    ),
                    flatten('/topProducts/@', fetch('products', ENTITIES_OPERATION)),
                ),
            ),
            DeferNode(
                primary=Primary(subselection='{me{id}}', node=fetch('accounts', id='1')),
                deferred=(
                    DeferredNode(
                        depends=(Depends(id='1'),),
                        query_path=Path.parse('/me'),
                        label='details',
                        subselection='{name}',
                        node=flatten('/me', fetch('accounts', ENTITIES_OPERATION)),
                    ),
                ),
            ),
            ConditionNode(
                condition='withReviews',
                if_clause=fetch('reviews'),
                else_clause=None,
            ),
        )
    )


def subscription_plan(service_name: str = 'notifications', rest: Optional[PlanNode] = None):
    return SubscriptionNode(
        primary=SubscriptionFetch(
            service_name=service_name,
            variable_usages=('user',),
            operation=SubgraphOperation.from_string(
                'subscription($user:ID!){onMessage(user:$user){id}}'
            ),
            operation_kind=OperationKind.SUBSCRIPTION,
        ),
        rest=rest,
    )


def check(a: Optional[PlanNode], b: Optional[PlanNode]) -> MatchOutcome:
    return compare(normalize_plan(a), normalize_plan(b))
