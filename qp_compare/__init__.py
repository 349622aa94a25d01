from typing import Any, Optional, Union

from qp_compare.adapters import LegacyQueryPlanResult, adapt_legacy, adapt_native
from qp_compare.diff import (
    diff_plan,
    render_diff,
    render_legacy_plan,
    render_native_plan,
    render_plan,
)
from qp_compare.errors import (
    AdaptationFailure,
    InvalidPathSyntax,
    MatchFailure,
    PlanMismatchError,
    QueryPlanCompareError,
)
from qp_compare.native_plan import QueryPlan as NativeQueryPlan
from qp_compare.normalize import normalize_plan
from qp_compare.options import CompareOptions
from qp_compare.path import Path, format_path, parse_path
from qp_compare.plan_compare import (
    Divergence,
    Match,
    MatchOutcome,
    Mismatch,
    check_plans,
    compare,
    plan_matches,
)


class QueryPlanComparer:
    # Binds one set of comparison options, so a batch of legacy/native plan
    # pairs can be checked the same way.

    options: CompareOptions

    def __init__(self, options: Optional[CompareOptions] = None):
        self.options = options if options is not None else CompareOptions()

    def plan_matches(
        self, legacy: Union[LegacyQueryPlanResult, dict[str, Any]], native: NativeQueryPlan
    ) -> None:
        plan_matches(legacy, native, self.options)

    def diff_plan(
        self, legacy: Union[LegacyQueryPlanResult, dict[str, Any]], native: NativeQueryPlan
    ) -> str:
        return diff_plan(legacy, native, self.options)

    def check_plans(
        self, legacy: Union[LegacyQueryPlanResult, dict[str, Any]], native: NativeQueryPlan
    ) -> None:
        check_plans(legacy, native, self.options)


__all__ = [
    'AdaptationFailure',
    'CompareOptions',
    'Divergence',
    'InvalidPathSyntax',
    'LegacyQueryPlanResult',
    'Match',
    'MatchFailure',
    'MatchOutcome',
    'Mismatch',
    'NativeQueryPlan',
    'Path',
    'PlanMismatchError',
    'QueryPlanComparer',
    'QueryPlanCompareError',
    'adapt_legacy',
    'adapt_native',
    'check_plans',
    'compare',
    'diff_plan',
    'format_path',
    'normalize_plan',
    'parse_path',
    'plan_matches',
    'render_diff',
    'render_legacy_plan',
    'render_native_plan',
    'render_plan',
]
