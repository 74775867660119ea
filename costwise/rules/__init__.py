"""Rule evaluators, one module per resource family."""

from .base import MetricsFetcher, PricingFetcher, Rule, fail_open, make_finding
from .cache import CACHE_RULES
from .compute import COMPUTE_RULES
from .database import DATABASE_RULES
from .function import FUNCTION_RULES
from .load_balancer import LOAD_BALANCER_RULES
from .storage import STORAGE_RULES

__all__ = [
    'MetricsFetcher',
    'PricingFetcher',
    'Rule',
    'fail_open',
    'make_finding',
    'COMPUTE_RULES',
    'DATABASE_RULES',
    'STORAGE_RULES',
    'CACHE_RULES',
    'LOAD_BALANCER_RULES',
    'FUNCTION_RULES',
]
