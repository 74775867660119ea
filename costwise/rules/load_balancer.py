"""
Rule evaluators for load balancers.
"""
from typing import List

from .base import MetricsFetcher, PricingFetcher, fail_open, make_finding
from ..services.models import Finding, ResourceSnapshot, Severity


LOOKBACK_DAYS = 7


def _is_active_public(snapshot: ResourceSnapshot) -> bool:
    return snapshot.state == 'active' and snapshot.attributes.get('scheme') == 'internet-facing'


@fail_open
def check_no_healthy_targets(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                             pricing: PricingFetcher) -> List[Finding]:
    if not _is_active_public(snapshot) or snapshot.attributes.get('has_healthy_targets') is not False:
        return []
    return [make_finding(
        snapshot,
        current_state="No healthy targets",
        suggested_action="Consider removing idle load balancer if no longer needed",
        severity=Severity.MEDIUM,
    )]


@fail_open
def check_deletion_protection(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                              pricing: PricingFetcher) -> List[Finding]:
    if not _is_active_public(snapshot) or snapshot.attributes.get('deletion_protection') is not False:
        return []
    return [make_finding(
        snapshot,
        current_state="Public load balancer without deletion protection",
        suggested_action="Enable deletion protection for public load balancers",
        severity=Severity.HIGH,
    )]


LOAD_BALANCER_RULES = [
    check_deletion_protection,
    check_no_healthy_targets,
]
