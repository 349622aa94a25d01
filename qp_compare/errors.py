from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from qp_compare.plan_compare import Divergence


class QueryPlanCompareError(Exception):
    pass


class InvalidPathSyntax(QueryPlanCompareError, ValueError):
    def __init__(self, path: str, reason: str):
        super().__init__(f'Invalid path "{path}": {reason}')
        self.path = path
        self.reason = reason


class AdaptationFailure(QueryPlanCompareError):
    # `side` is 'legacy' or 'native' when known
    def __init__(self, message: str, side: Optional[str] = None):
        super().__init__(f'{side} plan: {message}' if side else message)
        self.side = side


class MatchFailure(QueryPlanCompareError):
    def __init__(self, divergences: list['Divergence']):
        super().__init__('\n'.join(divergence.describe() for divergence in divergences))
        self.divergences = divergences


class PlanMismatchError(MatchFailure):
    def __init__(self, divergences: list['Divergence'], report: str):
        super().__init__(divergences)
        self.report = report

    def __str__(self) -> str:
        return self.report
