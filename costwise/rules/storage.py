"""
Rule evaluators for S3 buckets.
"""
from typing import List

from .base import MetricsFetcher, PricingFetcher, fail_open, make_finding
from ..services.models import Finding, ResourceSnapshot, Severity


LOOKBACK_DAYS = 7


@fail_open
def check_versioning(snapshot: ResourceSnapshot, metrics: MetricsFetcher, pricing: PricingFetcher) -> List[Finding]:
    status = snapshot.attributes.get('versioning_status')
    if status is None or status == 'Enabled':
        return []
    return [make_finding(
        snapshot,
        current_state="Versioning disabled",
        suggested_action="Enable versioning for data protection",
        severity=Severity.HIGH,
        additional_details=f"versioning status: {status or 'never enabled'}",
    )]


@fail_open
def check_lifecycle_rules(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                          pricing: PricingFetcher) -> List[Finding]:
    if snapshot.attributes.get('lifecycle_rule_count') != 0:
        return []
    return [make_finding(
        snapshot,
        current_state="No lifecycle policies",
        suggested_action="Configure lifecycle policies to optimize storage costs",
        severity=Severity.MEDIUM,
    )]


STORAGE_RULES = [
    check_versioning,
    check_lifecycle_rules,
]
