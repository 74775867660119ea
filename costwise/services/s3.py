"""
S3 gateway for listing buckets with their versioning and lifecycle settings.
"""
import logging
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .base import InventoryGateway
from .models import Account, ResourceSnapshot, ResourceType


logger = logging.getLogger(__name__)


class S3Gateway(InventoryGateway):
    """Inventory gateway for S3 buckets."""

    @property
    def service_name(self) -> str:
        return 's3'

    @property
    def resource_type(self) -> ResourceType:
        return ResourceType.OBJECT_STORE

    def list_inventory(self, account: Account) -> List[ResourceSnapshot]:
        """List all buckets visible to the account.

        Raises:
            GatewayError: If listing buckets fails
        """
        try:
            buckets = self.client.list_buckets().get('Buckets', [])
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'discovery')

        resources = []
        for bucket in buckets:
            name = bucket['Name']
            resources.append(self._snapshot(
                resource_id=name,
                state='available',
                tags={},
                attributes={
                    'creation_date': bucket.get('CreationDate'),
                    'versioning_status': self._versioning_status(name),
                    'lifecycle_rule_count': self._lifecycle_rule_count(name),
                },
            ))

        logger.info(f"Listed {len(resources)} S3 buckets")
        return resources

    def _versioning_status(self, bucket: str) -> Optional[str]:
        """Return 'Enabled', 'Suspended', '' for never-versioned, or None if unknown."""
        try:
            return self.client.get_bucket_versioning(Bucket=bucket).get('Status', '')
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Versioning lookup failed for bucket {bucket}: {e}")
            return None

    def _lifecycle_rule_count(self, bucket: str) -> Optional[int]:
        try:
            response = self.client.get_bucket_lifecycle_configuration(Bucket=bucket)
            return len(response.get('Rules', []))
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'NoSuchLifecycleConfiguration':
                return 0
            logger.warning(f"Lifecycle lookup failed for bucket {bucket}: {e}")
            return None
        except BotoCoreError as e:
            logger.warning(f"Lifecycle lookup failed for bucket {bucket}: {e}")
            return None
