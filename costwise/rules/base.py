"""
Shared building blocks for rule evaluators.

A rule is a plain function ``rule(snapshot, metrics, pricing) -> List[Finding]``.
Rules must not mutate shared state. Metrics and pricing are fetched lazily
through the fetchers handed to the rule, and every rule is wrapped with
:func:`fail_open` so a failed fetch only silences that one rule.
"""
import functools
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..core.exceptions import GatewayError
from ..services.cloudwatch import CloudWatchGateway
from ..services.models import (
    Finding, MetricSeries, PriceInfo, ReservationCoverage, ResourceSnapshot, Severity
)


logger = logging.getLogger(__name__)

HOURS_PER_MONTH = 730


class MetricsFetcher:
    """Fetches metrics for one resource over a fixed lookback window."""

    def __init__(
        self,
        cloudwatch: Optional[CloudWatchGateway],
        namespace: str,
        dimension_name: str,
        resource_id: str,
        lookback_days: int,
        end_time: Optional[datetime] = None,
    ):
        self.cloudwatch = cloudwatch
        self.namespace = namespace
        self.dimension_name = dimension_name
        self.resource_id = resource_id
        self.lookback_days = lookback_days
        self.end_time = end_time or datetime.utcnow()
        self.start_time = self.end_time - timedelta(days=lookback_days)

    def fetch(self, metric_name: str, statistic: str, namespace: Optional[str] = None,
              period_seconds: int = 3600) -> MetricSeries:
        """Fetch one statistic for the bound resource.

        Raises:
            GatewayError: If the metrics query fails
        """
        if self.cloudwatch is None:
            return MetricSeries(metric_name=metric_name, statistic=statistic)
        return self.cloudwatch.query_metric(
            namespace=namespace or self.namespace,
            dimension_name=self.dimension_name,
            resource_id=self.resource_id,
            metric_name=metric_name,
            statistic=statistic,
            start_time=self.start_time,
            end_time=self.end_time,
            period_seconds=period_seconds,
        )


class PricingFetcher:
    """Price and reservation lookups available to rules."""

    def __init__(self, pricing_gateway=None, reservation_gateway=None):
        self.pricing_gateway = pricing_gateway
        self.reservation_gateway = reservation_gateway

    def price(self, instance_type: str, region: str) -> Optional[PriceInfo]:
        """Raises: GatewayError if the lookup fails."""
        if self.pricing_gateway is None:
            return None
        return self.pricing_gateway.query_pricing(instance_type, region)

    def reservation_coverage(self, instance_type: str) -> Optional[ReservationCoverage]:
        """Raises: GatewayError if the lookup fails."""
        if self.reservation_gateway is None:
            return None
        return self.reservation_gateway.query_reservation_coverage(instance_type)


Rule = Callable[[ResourceSnapshot, MetricsFetcher, PricingFetcher], List[Finding]]


def make_finding(
    snapshot: ResourceSnapshot,
    current_state: str,
    suggested_action: str,
    severity: Severity,
    current_cost: float = 0.0,
    potential_savings: float = 0.0,
    additional_details: Optional[str] = None,
) -> Finding:
    """Build the finding for one resource."""
    return Finding(
        resource_type=snapshot.resource_type.value,
        resource_id=snapshot.resource_id,
        current_state=current_state,
        suggested_action=suggested_action,
        severity=severity,
        current_cost=current_cost,
        potential_savings=potential_savings,
        additional_details=additional_details,
    )


def fail_open(rule: Rule) -> Rule:
    """Turn a gateway failure inside a rule into 'no finding'."""

    @functools.wraps(rule)
    def wrapper(snapshot: ResourceSnapshot, metrics: MetricsFetcher, pricing: PricingFetcher) -> List[Finding]:
        try:
            return list(rule(snapshot, metrics, pricing))
        except GatewayError as e:
            logger.warning(f"Rule {rule.__name__} skipped for {snapshot.resource_id}: {e.message}")
            return []

    return wrapper
