import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from qp_compare.adapters.validation import validate_plan
from qp_compare.codec import node_from_json
from qp_compare.errors import AdaptationFailure
from qp_compare.query_plan import PlanNode, QueryPlan

logger = logging.getLogger(__name__)

SIDE = 'legacy'


# Data coming back from the legacy planner's `plan` call.
@dataclass(frozen=True)
class LegacyQueryPlanResult:
    query_plan: QueryPlan
    formatted_query_plan: Optional[str] = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> 'LegacyQueryPlanResult':
        if not isinstance(data, dict):
            raise AdaptationFailure(f'expected a query plan result object, got {data!r}', SIDE)
        if 'queryPlan' in data:
            plan_data = data['queryPlan']
            formatted_query_plan = data.get('formattedQueryPlan')
        else:
            plan_data = data
            formatted_query_plan = None

        if not isinstance(plan_data, dict):
            raise AdaptationFailure(f'expected a query plan object, got {plan_data!r}', SIDE)
        if plan_data.get('kind', QueryPlan.kind) != QueryPlan.kind:
            raise AdaptationFailure(f'expected a QueryPlan, got {plan_data["kind"]}', SIDE)

        try:
            node = node_from_json(plan_data['node']) if plan_data.get('node') else None
        except AdaptationFailure as error:
            raise AdaptationFailure(str(error), SIDE) from error

        return cls(query_plan=QueryPlan(node=node), formatted_query_plan=formatted_query_plan)


def adapt_legacy(
    result: Union[LegacyQueryPlanResult, dict[str, Any]],
) -> Optional[PlanNode]:
    if not isinstance(result, LegacyQueryPlanResult):
        result = LegacyQueryPlanResult.from_json(result)

    node = result.query_plan.node
    if node is None:
        logger.debug('Legacy plan is empty')
        return None

    validate_plan(node, SIDE)
    return node
