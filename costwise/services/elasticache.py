"""
ElastiCache gateway for listing cache clusters.
"""
import logging
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from .base import InventoryGateway
from .models import Account, ResourceSnapshot, ResourceType


logger = logging.getLogger(__name__)


class ElastiCacheGateway(InventoryGateway):
    """Inventory gateway for ElastiCache clusters."""

    @property
    def service_name(self) -> str:
        return 'elasticache'

    @property
    def resource_type(self) -> ResourceType:
        return ResourceType.CACHE

    @property
    def metric_namespace(self) -> str:
        return 'AWS/ElastiCache'

    @property
    def metric_dimension(self) -> str:
        return 'CacheClusterId'

    def list_inventory(self, account: Account) -> List[ResourceSnapshot]:
        """List all cache clusters in the region.

        Raises:
            GatewayError: If describing clusters fails
        """
        try:
            resources = []
            paginator = self.client.get_paginator('describe_cache_clusters')
            for page in paginator.paginate():
                for cluster in page['CacheClusters']:
                    resources.append(self._snapshot(
                        resource_id=cluster['CacheClusterId'],
                        state=cluster.get('CacheClusterStatus', 'unknown'),
                        tags={},
                        attributes={
                            'engine': cluster.get('Engine'),
                            'engine_version': cluster.get('EngineVersion', ''),
                            'node_type': cluster.get('CacheNodeType'),
                            'num_cache_nodes': cluster.get('NumCacheNodes', 1),
                            'replication_group_id': cluster.get('ReplicationGroupId'),
                            'snapshot_retention_limit': cluster.get('SnapshotRetentionLimit'),
                        },
                    ))

            logger.info(f"Listed {len(resources)} ElastiCache clusters in {self.region}")
            return resources

        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'discovery')
