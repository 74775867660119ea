"""
Rule evaluators for RDS database instances.
"""
from typing import List

from .base import MetricsFetcher, PricingFetcher, fail_open, make_finding
from ..services.models import Finding, ResourceSnapshot, Severity


LOOKBACK_DAYS = 7


@fail_open
def check_single_az(snapshot: ResourceSnapshot, metrics: MetricsFetcher, pricing: PricingFetcher) -> List[Finding]:
    if snapshot.attributes.get('multi_az', True):
        return []
    return [make_finding(
        snapshot,
        current_state="Single-AZ deployment",
        suggested_action="Consider enabling Multi-AZ for high availability",
        severity=Severity.HIGH,
    )]


@fail_open
def check_auto_minor_version_upgrade(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                                     pricing: PricingFetcher) -> List[Finding]:
    if snapshot.attributes.get('auto_minor_version_upgrade', True):
        return []
    return [make_finding(
        snapshot,
        current_state="Auto minor version upgrade disabled",
        suggested_action="Enable auto minor version upgrade for better maintenance",
        severity=Severity.MEDIUM,
    )]


DATABASE_RULES = [
    check_single_az,
    check_auto_minor_version_upgrade,
]
