"""
Rule evaluators for ElastiCache clusters.
"""
from typing import List

from .base import MetricsFetcher, PricingFetcher, fail_open, make_finding
from ..services.models import Finding, ResourceSnapshot, Severity


LOOKBACK_DAYS = 7

MIN_SNAPSHOT_RETENTION_DAYS = 7


@fail_open
def check_single_node_redis(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                            pricing: PricingFetcher) -> List[Finding]:
    attributes = snapshot.attributes
    if attributes.get('engine') != 'redis' or attributes.get('replication_group_id'):
        return []
    return [make_finding(
        snapshot,
        current_state="Single-node Redis deployment",
        suggested_action="Consider using Redis cluster mode for high availability",
        severity=Severity.HIGH,
        additional_details=f"{attributes.get('num_cache_nodes', 1)} node(s), {attributes.get('node_type')}",
    )]


@fail_open
def check_backup_retention(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                           pricing: PricingFetcher) -> List[Finding]:
    # Memcached has no snapshots
    if snapshot.attributes.get('engine') != 'redis':
        return []
    retention = snapshot.attributes.get('snapshot_retention_limit')
    if retention is None or retention >= MIN_SNAPSHOT_RETENTION_DAYS:
        return []
    return [make_finding(
        snapshot,
        current_state="Low backup retention",
        suggested_action="Increase snapshot retention period",
        severity=Severity.MEDIUM,
        additional_details=f"retention: {retention} day(s)",
    )]


CACHE_RULES = [
    check_single_node_redis,
    check_backup_retention,
]
