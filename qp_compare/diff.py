import difflib
import json
from typing import TYPE_CHECKING, Any, Optional, Sequence, Union

from qp_compare.adapters import LegacyQueryPlanResult, adapt_legacy, adapt_native
from qp_compare.adapters.legacy import SIDE as LEGACY
from qp_compare.adapters.native import SIDE as NATIVE
from qp_compare.codec import node_to_json
from qp_compare.native_plan import QueryPlan as NativeQueryPlan
from qp_compare.normalize import normalize_plan
from qp_compare.options import DEFAULT_OPTIONS, CompareOptions
from qp_compare.query_plan import PlanNode

if TYPE_CHECKING:
    from qp_compare.plan_compare import Divergence

INDENT = '    '


def render_plan(node: Optional[PlanNode]) -> str:
    # Same tagged record format the legacy planner emits, with a stable layout.
    if node is None:
        return ''
    return json.dumps(node_to_json(node), indent=2, ensure_ascii=False, default=str)


def render_legacy_plan(result: Union[LegacyQueryPlanResult, dict[str, Any]]) -> str:
    return render_plan(adapt_legacy(result))


def render_native_plan(plan: NativeQueryPlan) -> str:
    return render_plan(adapt_native(plan))


def diff_nodes(
    a: Optional[PlanNode], b: Optional[PlanNode], options: Optional[CompareOptions] = None
) -> str:
    if options is None:
        options = DEFAULT_OPTIONS

    return '\n'.join(
        difflib.unified_diff(
            render_plan(a).splitlines(),
            render_plan(b).splitlines(),
            fromfile='legacy',
            tofile='native',
            n=options.context_lines,
            lineterm='',
        )
    )


def diff_plan(
    legacy: Union[LegacyQueryPlanResult, dict[str, Any]],
    native: NativeQueryPlan,
    options: Optional[CompareOptions] = None,
) -> str:
    return diff_nodes(
        normalize_plan(adapt_legacy(legacy), options, LEGACY),
        normalize_plan(adapt_native(native), options, NATIVE),
        options,
    )


def _indent(text: str) -> str:
    if not text:
        return f'{INDENT}(none)'
    return '\n'.join(INDENT + line for line in text.splitlines())


def render_diff(
    a: Optional[PlanNode],
    b: Optional[PlanNode],
    divergences: Sequence['Divergence'] = (),
    options: Optional[CompareOptions] = None,
) -> str:
    sections = []
    for divergence in divergences:
        expected, actual = divergence.nodes
        sections.append(
            '\n'.join(
                [
                    divergence.describe(),
                    'expected:',
                    _indent(render_plan(expected)),
                    'actual:',
                    _indent(render_plan(actual)),
                ]
            )
        )

    sections.append(diff_nodes(a, b, options))
    return '\n\n'.join(sections)
