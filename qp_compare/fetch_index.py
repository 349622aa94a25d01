from typing import Iterator, Optional

from qp_compare.query_plan import (
    ConditionNode,
    DeferNode,
    FetchNode,
    FlattenNode,
    ParallelNode,
    PlanNode,
    SequenceNode,
    SubscriptionNode,
)
from qp_compare.utilities.collections import MultiMap

Location = tuple[str, ...]


def format_location(location: Location) -> str:
    return '.'.join(('root',) + location)


def walk(node: Optional[PlanNode], location: Location = ()) -> Iterator[tuple[Location, PlanNode]]:
    """Yields every node of the tree depth-first, parents before children."""
    if node is None:
        return

    yield location, node

    if isinstance(node, (SequenceNode, ParallelNode)):
        for index, child in enumerate(node.nodes):
            yield from walk(child, location + (f'nodes[{index}]',))
    elif isinstance(node, FlattenNode):
        yield from walk(node.node, location + ('node',))
    elif isinstance(node, DeferNode):
        yield from walk(node.primary.node, location + ('primary', 'node'))
        for deferred in node.deferred:
            yield from walk(deferred.node, location + (f'deferred[{deferred.query_path}]', 'node'))
    elif isinstance(node, SubscriptionNode):
        yield from walk(node.rest, location + ('rest',))
    elif isinstance(node, ConditionNode):
        yield from walk(node.if_clause, location + ('if_clause',))
        yield from walk(node.else_clause, location + ('else_clause',))


def iter_fetches(node: Optional[PlanNode]) -> Iterator[tuple[Location, FetchNode]]:
    for location, child in walk(node):
        if isinstance(child, FetchNode):
            yield location, child


class FetchIndex:
    # Fetch id -> locations of the fetches carrying it, built once per tree so
    # that `Depends` can hold only the id.
    _locations: MultiMap[str, Location]

    def __init__(self, node: Optional[PlanNode]):
        self._locations = MultiMap[str, Location]()
        for location, fetch in iter_fetches(node):
            if fetch.id is not None:
                self._locations.add(fetch.id, location)

    def __contains__(self, fetch_id: str) -> bool:
        return fetch_id in self._locations

    def locations(self, fetch_id: str) -> list[Location]:
        return self._locations.get(fetch_id, [])

    def resolve(self, fetch_id: str) -> Optional[Location]:
        locations = self.locations(fetch_id)
        return locations[0] if len(locations) == 1 else None

    def ids(self) -> list[str]:
        return sorted(self._locations)
