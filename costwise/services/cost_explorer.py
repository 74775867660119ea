"""
Cost Explorer gateway for spend grouped by service.
"""
import logging
from datetime import date
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseGateway
from .models import Account, CostEntry


logger = logging.getLogger(__name__)

COST_METRIC = 'UnblendedCost'


class CostExplorerGateway(BaseGateway):
    """Reads grouped cost-and-usage data."""

    @property
    def service_name(self) -> str:
        return 'ce'

    @property
    def client_region(self) -> str:
        # Cost Explorer is a global API served from us-east-1
        return 'us-east-1'

    def query_cost_by_service(
        self,
        account: Account,
        start_date: date,
        end_date: date,
        granularity: str = 'DAILY',
    ) -> List[CostEntry]:
        """Fetch cost per (period, service) for a date range.

        The end date is exclusive, as in the Cost Explorer API.

        Raises:
            GatewayError: If any page of the query fails
        """
        entries = []
        params = {
            'TimePeriod': {'Start': start_date.isoformat(), 'End': end_date.isoformat()},
            'Granularity': granularity,
            'Metrics': [COST_METRIC],
            'GroupBy': [{'Type': 'DIMENSION', 'Key': 'SERVICE'}],
        }

        try:
            while True:
                response = self.client.get_cost_and_usage(**params)
                for result in response.get('ResultsByTime', []):
                    period_start = date.fromisoformat(result['TimePeriod']['Start'])
                    for group in result.get('Groups', []):
                        keys = group.get('Keys', [])
                        entries.append(CostEntry(
                            period_start=period_start,
                            service=keys[0] if keys else 'Unknown',
                            amount=float(group['Metrics'][COST_METRIC]['Amount']),
                        ))

                token = response.get('NextPageToken')
                if not token:
                    break
                params['NextPageToken'] = token

        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'cost query', account.account_id)

        logger.info(f"Fetched {len(entries)} cost entries for account {account.account_id}")
        return entries
