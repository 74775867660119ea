"""
Auto Scaling gateway for group membership lookups.
"""
from typing import Set

from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseGateway


class AutoScalingGateway(BaseGateway):
    """Answers which instances belong to an Auto Scaling group."""

    @property
    def service_name(self) -> str:
        return 'autoscaling'

    def autoscaled_instance_ids(self) -> Set[str]:
        """Return the IDs of every instance managed by an Auto Scaling group.

        Raises:
            GatewayError: If the lookup fails
        """
        try:
            instance_ids = set()
            paginator = self.client.get_paginator('describe_auto_scaling_instances')
            for page in paginator.paginate():
                for instance in page.get('AutoScalingInstances', []):
                    instance_ids.add(instance['InstanceId'])
            return instance_ids
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'membership lookup')
