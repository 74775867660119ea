"""
EC2 gateway for listing instances and their reservation coverage.
"""
import logging
from typing import Dict, List, Optional, Set

from botocore.exceptions import BotoCoreError, ClientError

from .autoscaling import AutoScalingGateway
from .base import InventoryGateway, tags_to_dict
from .models import Account, ReservationCoverage, ResourceSnapshot, ResourceType
from ..core.exceptions import GatewayError


logger = logging.getLogger(__name__)


class EC2Gateway(InventoryGateway):
    """Inventory gateway for EC2 instances."""

    def __init__(self, session, region: str, autoscaling: Optional[AutoScalingGateway] = None):
        super().__init__(session, region)
        self.autoscaling = autoscaling or AutoScalingGateway(session, region)

    @property
    def service_name(self) -> str:
        return 'ec2'

    @property
    def resource_type(self) -> ResourceType:
        return ResourceType.COMPUTE

    @property
    def metric_namespace(self) -> str:
        return 'AWS/EC2'

    @property
    def metric_dimension(self) -> str:
        return 'InstanceId'

    def list_inventory(self, account: Account) -> List[ResourceSnapshot]:
        """List all non-terminated EC2 instances in the region.

        Elastic IP and Auto Scaling membership are looked up once for the whole
        listing. If either lookup fails the attribute is left as None.

        Raises:
            GatewayError: If describing instances fails
        """
        try:
            instances = []
            paginator = self.client.get_paginator('describe_instances')
            for page in paginator.paginate():
                for reservation in page['Reservations']:
                    for instance in reservation['Instances']:
                        if instance['State']['Name'] in ('terminated', 'shutting-down'):
                            continue
                        instances.append(instance)
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'discovery')

        addresses = self._addresses_by_instance()
        autoscaled = self._autoscaled_instances()

        resources = []
        for instance in instances:
            instance_id = instance['InstanceId']
            volume_ids = [
                mapping['Ebs']['VolumeId']
                for mapping in instance.get('BlockDeviceMappings', [])
                if 'Ebs' in mapping
            ]
            resources.append(self._snapshot(
                resource_id=instance_id,
                state=instance['State']['Name'],
                tags=tags_to_dict(instance.get('Tags', [])),
                attributes={
                    'instance_type': instance['InstanceType'],
                    'instance_lifecycle': instance.get('InstanceLifecycle'),
                    'launch_time': instance.get('LaunchTime'),
                    'availability_zone': instance['Placement']['AvailabilityZone'],
                    'platform': instance.get('Platform', 'linux'),
                    'ebs_volume_ids': volume_ids,
                    'elastic_ips': addresses.get(instance_id, []) if addresses is not None else None,
                    'in_autoscaling_group': (instance_id in autoscaled) if autoscaled is not None else None,
                },
            ))

        logger.info(f"Listed {len(resources)} EC2 instances in {self.region}")
        return resources

    def query_reservation_coverage(self, instance_type: str) -> ReservationCoverage:
        """Count active reserved instances purchased for an instance type.

        Raises:
            GatewayError: If the lookup fails
        """
        try:
            response = self.client.describe_reserved_instances(
                Filters=[
                    {'Name': 'instance-type', 'Values': [instance_type]},
                    {'Name': 'state', 'Values': ['active']},
                ]
            )
            reserved = sum(ri.get('InstanceCount', 0) for ri in response.get('ReservedInstances', []))
            return ReservationCoverage(instance_type=instance_type, reserved_count=reserved)
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'reservation lookup', instance_type)

    def _addresses_by_instance(self) -> Optional[Dict[str, List[str]]]:
        try:
            response = self.client.describe_addresses()
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Elastic IP lookup failed in {self.region}: {e}")
            return None

        addresses: Dict[str, List[str]] = {}
        for address in response.get('Addresses', []):
            instance_id = address.get('InstanceId')
            if instance_id:
                addresses.setdefault(instance_id, []).append(address.get('PublicIp', ''))
        return addresses

    def _autoscaled_instances(self) -> Optional[Set[str]]:
        try:
            return self.autoscaling.autoscaled_instance_ids()
        except GatewayError as e:
            logger.warning(f"Auto Scaling membership lookup failed in {self.region}: {e}")
            return None
