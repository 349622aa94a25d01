import logging

from qp_compare.errors import AdaptationFailure
from qp_compare.fetch_index import FetchIndex, format_location, walk
from qp_compare.query_plan import DeferNode, PlanNode

logger = logging.getLogger(__name__)


def validate_plan(node: PlanNode, side: str) -> None:
    # Every deferred block must depend on fetches that exist exactly once
    # within the primary part of its own Defer node.
    node_count = 0
    for location, child in walk(node):
        node_count += 1
        if not isinstance(child, DeferNode):
            continue

        index = FetchIndex(child.primary.node)
        for deferred in child.deferred:
            for depends in deferred.depends:
                if index.resolve(depends.id) is not None:
                    continue

                found = len(index.locations(depends.id))
                raise AdaptationFailure(
                    f'deferred block at "{deferred.query_path}" in {format_location(location)} '
                    f'depends on fetch "{depends.id}", which is defined {found} times in the '
                    f'primary node (known fetch ids: {", ".join(index.ids()) or "none"})',
                    side,
                )

    logger.debug('Validated %s plan with %d nodes', side, node_count)
