"""
AWS Price List gateway for on-demand instance prices.
"""
import json
import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseGateway
from .models import PriceInfo


logger = logging.getLogger(__name__)

# The Price List API is only served from a few regions
PRICING_API_REGION = 'us-east-1'


class PricingGateway(BaseGateway):
    """Looks up on-demand Linux prices for EC2 instance types."""

    @property
    def service_name(self) -> str:
        return 'pricing'

    @property
    def client_region(self) -> str:
        return PRICING_API_REGION

    def query_pricing(self, instance_type: str, region: str) -> Optional[PriceInfo]:
        """Return the hourly on-demand price of an instance type in a region.

        Returns:
            PriceInfo, or None when the price list has no matching product

        Raises:
            GatewayError: If the query fails
        """
        try:
            response = self.client.get_products(
                ServiceCode='AmazonEC2',
                Filters=[
                    {'Type': 'TERM_MATCH', 'Field': 'instanceType', 'Value': instance_type},
                    {'Type': 'TERM_MATCH', 'Field': 'regionCode', 'Value': region},
                    {'Type': 'TERM_MATCH', 'Field': 'operatingSystem', 'Value': 'Linux'},
                    {'Type': 'TERM_MATCH', 'Field': 'tenancy', 'Value': 'Shared'},
                    {'Type': 'TERM_MATCH', 'Field': 'preInstalledSw', 'Value': 'NA'},
                    {'Type': 'TERM_MATCH', 'Field': 'capacitystatus', 'Value': 'Used'},
                ],
                MaxResults=10,
            )
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'price lookup', f'{instance_type}/{region}')

        for price_item in response.get('PriceList', []):
            try:
                hourly = _on_demand_hourly_usd(price_item)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                self._handle_aws_error(e, 'price list parsing', f'{instance_type}/{region}')
            if hourly:
                return PriceInfo(instance_type=instance_type, region=region, hourly_usd=hourly)

        logger.debug(f"No price found for {instance_type} in {region}")
        return None


def _on_demand_hourly_usd(price_item) -> float:
    data = json.loads(price_item) if isinstance(price_item, str) else price_item
    terms = data.get('terms', {}).get('OnDemand', {})
    for term in terms.values():
        for dimension in term.get('priceDimensions', {}).values():
            price = float(dimension.get('pricePerUnit', {}).get('USD', '0'))
            if price > 0:
                return price
    return 0.0
