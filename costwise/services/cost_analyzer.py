"""
Cost aggregation analyzer for flagging high-spend services.
"""
import logging
from datetime import date
from typing import List, Optional

from .cost_explorer import CostExplorerGateway
from .models import Account, CostEntry, Finding, Severity


logger = logging.getLogger(__name__)

COST_THRESHOLD = 1000.0
SAVINGS_RATE = 0.2
HIGH_COST_STATE = "High cost detected"
HIGH_COST_ACTION = "Review usage patterns, consider reserved capacity"


class CostAggregationAnalyzer:
    """Emits one finding per (day, service) cost entry above the threshold."""

    def __init__(self, gateway: CostExplorerGateway, threshold: float = COST_THRESHOLD,
                 savings_rate: float = SAVINGS_RATE, granularity: str = 'DAILY'):
        self.gateway = gateway
        self.threshold = threshold
        self.savings_rate = savings_rate
        self.granularity = granularity

    def analyze(self, account: Account, start_date: date, end_date: date) -> List[Finding]:
        """Query grouped costs and flag every entry above the threshold.

        Raises:
            GatewayError: If the cost query fails
        """
        entries = self.gateway.query_cost_by_service(account, start_date, end_date, self.granularity)
        findings = [f for f in (self.evaluate(entry) for entry in entries) if f is not None]
        logger.info(
            f"Cost analysis for account {account.account_id}: "
            f"{len(findings)} of {len(entries)} service-days above {self.threshold:.2f}"
        )
        return findings

    def evaluate(self, entry: CostEntry) -> Optional[Finding]:
        if entry.amount <= self.threshold:
            return None
        return Finding(
            resource_type=entry.service,
            resource_id=entry.period_start.isoformat(),
            current_state=HIGH_COST_STATE,
            suggested_action=HIGH_COST_ACTION,
            severity=Severity.HIGH,
            current_cost=entry.amount,
            potential_savings=entry.amount * self.savings_rate,
            additional_details=f"{entry.service} spent {entry.amount:.2f} on {entry.period_start.isoformat()}",
        )
