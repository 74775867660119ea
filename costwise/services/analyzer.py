"""
Resource-type analyzer: runs a family's rules against every listed resource.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import List, Optional, Sequence

from .base import InventoryGateway
from .cloudwatch import CloudWatchGateway
from .models import Account, Finding, ResourceSnapshot, ResourceType
from ..core.exceptions import GatewayError
from ..rules.base import MetricsFetcher, PricingFetcher, Rule


logger = logging.getLogger(__name__)


class ResourceTypeAnalyzer:
    """Analyzes one resource family for one account."""

    def __init__(
        self,
        gateway: InventoryGateway,
        rules: Sequence[Rule],
        lookback_days: int,
        cloudwatch: Optional[CloudWatchGateway] = None,
        pricing: Optional[PricingFetcher] = None,
        max_workers: int = 4,
    ):
        """Initialize the analyzer.

        Args:
            gateway: Inventory gateway of the family
            rules: Rule evaluators, run in this order for every resource
            lookback_days: Metrics window used by the family's rules
            cloudwatch: Metrics gateway; rules see empty series when None
            pricing: Price and reservation lookups
            max_workers: Upper bound on resources evaluated at the same time
        """
        self.gateway = gateway
        self.rules = list(rules)
        self.lookback_days = lookback_days
        self.cloudwatch = cloudwatch
        self.pricing = pricing or PricingFetcher()
        self.max_workers = max_workers

    @property
    def resource_type(self) -> ResourceType:
        return self.gateway.resource_type

    def analyze(self, account: Account) -> List[Finding]:
        """List the family's inventory and evaluate every rule on every item.

        A failed inventory listing is logged and yields no findings.
        """
        try:
            snapshots = self.gateway.list_inventory(account)
        except GatewayError as e:
            logger.error(f"Inventory listing failed for {self.resource_type.value} in {account.region}: {e.message}")
            return []

        if not snapshots:
            return []

        end_time = datetime.utcnow()
        workers = max(1, min(self.max_workers, len(snapshots)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            # map() keeps inventory order
            per_item = list(executor.map(lambda s: self.evaluate(s, end_time), snapshots))

        findings = [finding for item_findings in per_item for finding in item_findings]
        logger.info(
            f"{self.resource_type.value}: {len(findings)} findings across {len(snapshots)} resources"
        )
        return findings

    def evaluate(self, snapshot: ResourceSnapshot, end_time: Optional[datetime] = None) -> List[Finding]:
        """Run every rule against one resource, in rule order."""
        metrics = MetricsFetcher(
            cloudwatch=self.cloudwatch,
            namespace=self.gateway.metric_namespace,
            dimension_name=self.gateway.metric_dimension,
            resource_id=snapshot.resource_id,
            lookback_days=self.lookback_days,
            end_time=end_time,
        )
        findings = []
        for rule in self.rules:
            try:
                findings.extend(rule(snapshot, metrics, self.pricing))
            except Exception:
                # Skip only the failing rule
                logger.exception(
                    f"Rule {getattr(rule, '__name__', rule)} failed for {snapshot.resource_id}"
                )
        return findings
