from dataclasses import dataclass


@dataclass(frozen=True)
class CompareOptions:
    # Re-print subgraph operations through graphql-core before comparing them.
    normalize_operations: bool = True
    # Treat input/output/context rewrite lists as unordered.
    sort_rewrites: bool = True
    # Lines of context around each hunk of a rendered diff.
    context_lines: int = 3


DEFAULT_OPTIONS = CompareOptions()
