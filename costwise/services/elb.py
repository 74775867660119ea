"""
Elastic Load Balancing (v2) gateway for listing load balancers and target health.
"""
import logging
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .base import InventoryGateway
from .models import Account, ResourceSnapshot, ResourceType


logger = logging.getLogger(__name__)


class LoadBalancerGateway(InventoryGateway):
    """Inventory gateway for application, network and gateway load balancers."""

    @property
    def service_name(self) -> str:
        return 'elbv2'

    @property
    def resource_type(self) -> ResourceType:
        return ResourceType.LOAD_BALANCER

    def list_inventory(self, account: Account) -> List[ResourceSnapshot]:
        """List all load balancers with their protection and target health.

        Raises:
            GatewayError: If describing load balancers fails
        """
        try:
            load_balancers = []
            paginator = self.client.get_paginator('describe_load_balancers')
            for page in paginator.paginate():
                load_balancers.extend(page['LoadBalancers'])
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'discovery')

        resources = []
        for lb in load_balancers:
            arn = lb['LoadBalancerArn']
            resources.append(self._snapshot(
                resource_id=arn,
                state=lb.get('State', {}).get('Code', 'unknown'),
                tags={},
                attributes={
                    'name': lb.get('LoadBalancerName'),
                    'type': lb.get('Type'),
                    'scheme': lb.get('Scheme'),
                    'deletion_protection': self._deletion_protection(arn),
                    'has_healthy_targets': self._has_healthy_targets(arn),
                },
            ))

        logger.info(f"Listed {len(resources)} load balancers in {self.region}")
        return resources

    def _deletion_protection(self, arn: str) -> Optional[bool]:
        try:
            response = self.client.describe_load_balancer_attributes(LoadBalancerArn=arn)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Attribute lookup failed for load balancer {arn}: {e}")
            return None

        for attribute in response.get('Attributes', []):
            if attribute['Key'] == 'deletion_protection.enabled':
                return attribute['Value'].lower() == 'true'
        return False

    def _has_healthy_targets(self, arn: str) -> Optional[bool]:
        try:
            target_groups = self.client.describe_target_groups(LoadBalancerArn=arn)['TargetGroups']
            for target_group in target_groups:
                health = self.client.describe_target_health(TargetGroupArn=target_group['TargetGroupArn'])
                if any(
                    description['TargetHealth']['State'] == 'healthy'
                    for description in health.get('TargetHealthDescriptions', [])
                ):
                    return True
            return False
        except ClientError as e:
            # No target groups attached
            if e.response.get('Error', {}).get('Code') == 'TargetGroupNotFound':
                return False
            logger.warning(f"Target health lookup failed for load balancer {arn}: {e}")
            return None
        except BotoCoreError as e:
            logger.warning(f"Target health lookup failed for load balancer {arn}: {e}")
            return None
