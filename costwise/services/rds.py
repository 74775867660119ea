"""
RDS gateway for listing managed database instances.
"""
import logging
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from .base import InventoryGateway, tags_to_dict
from .models import Account, ResourceSnapshot, ResourceType


logger = logging.getLogger(__name__)


class RDSGateway(InventoryGateway):
    """Inventory gateway for RDS database instances."""

    @property
    def service_name(self) -> str:
        return 'rds'

    @property
    def resource_type(self) -> ResourceType:
        return ResourceType.MANAGED_DATABASE

    @property
    def metric_namespace(self) -> str:
        return 'AWS/RDS'

    @property
    def metric_dimension(self) -> str:
        return 'DBInstanceIdentifier'

    def list_inventory(self, account: Account) -> List[ResourceSnapshot]:
        """List all RDS instances that are not being deleted.

        Raises:
            GatewayError: If describing instances fails
        """
        try:
            resources = []
            paginator = self.client.get_paginator('describe_db_instances')
            for page in paginator.paginate():
                for instance in page['DBInstances']:
                    if instance['DBInstanceStatus'] == 'deleting':
                        continue

                    resources.append(self._snapshot(
                        resource_id=instance['DBInstanceIdentifier'],
                        state=instance['DBInstanceStatus'],
                        tags=tags_to_dict(instance.get('TagList', [])),
                        attributes={
                            'engine': instance['Engine'],
                            'engine_version': instance.get('EngineVersion'),
                            'instance_class': instance['DBInstanceClass'],
                            'allocated_storage': instance.get('AllocatedStorage'),
                            'multi_az': instance.get('MultiAZ', False),
                            'auto_minor_version_upgrade': instance.get('AutoMinorVersionUpgrade', True),
                            'availability_zone': instance.get('AvailabilityZone'),
                        },
                    ))

            logger.info(f"Listed {len(resources)} RDS instances in {self.region}")
            return resources

        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'discovery')
