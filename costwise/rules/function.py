"""
Rule evaluators for Lambda functions.
"""
from typing import List

from .base import MetricsFetcher, PricingFetcher, fail_open, make_finding
from ..services.models import Finding, ResourceSnapshot, Severity


LOOKBACK_DAYS = 7

MIN_MEMORY_MB = 256
MAX_TIMEOUT_SECONDS = 30


@fail_open
def check_low_memory_high_timeout(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                                  pricing: PricingFetcher) -> List[Finding]:
    memory = snapshot.attributes.get('memory_size')
    timeout = snapshot.attributes.get('timeout')
    if memory is None or timeout is None:
        return []
    if memory < MIN_MEMORY_MB and timeout > MAX_TIMEOUT_SECONDS:
        return [make_finding(
            snapshot,
            current_state="Low memory with high timeout",
            suggested_action="Consider increasing memory allocation for better performance",
            severity=Severity.MEDIUM,
            additional_details=f"memory {memory} MB, timeout {timeout} s",
        )]
    return []


FUNCTION_RULES = [
    check_low_memory_high_timeout,
]
