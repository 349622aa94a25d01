from qp_compare.adapters.legacy import LegacyQueryPlanResult, adapt_legacy
from qp_compare.adapters.native import adapt_native

__all__ = ['LegacyQueryPlanResult', 'adapt_legacy', 'adapt_native']
