"""
Lambda gateway for listing functions.
"""
import logging
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from .base import InventoryGateway
from .models import Account, ResourceSnapshot, ResourceType


logger = logging.getLogger(__name__)


class LambdaGateway(InventoryGateway):
    """Inventory gateway for Lambda functions."""

    @property
    def service_name(self) -> str:
        return 'lambda'

    @property
    def resource_type(self) -> ResourceType:
        return ResourceType.FUNCTION

    @property
    def metric_namespace(self) -> str:
        return 'AWS/Lambda'

    @property
    def metric_dimension(self) -> str:
        return 'FunctionName'

    def list_inventory(self, account: Account) -> List[ResourceSnapshot]:
        """List all functions in the region.

        Raises:
            GatewayError: If listing functions fails
        """
        try:
            resources = []
            paginator = self.client.get_paginator('list_functions')
            for page in paginator.paginate():
                for function in page['Functions']:
                    resources.append(self._snapshot(
                        resource_id=function['FunctionName'],
                        state=function.get('State', 'Active'),
                        tags={},
                        attributes={
                            'runtime': function.get('Runtime'),
                            'memory_size': function.get('MemorySize', 128),
                            'timeout': function.get('Timeout', 3),
                            'architectures': function.get('Architectures', ['x86_64']),
                            'last_modified': function.get('LastModified'),
                        },
                    ))

            logger.info(f"Listed {len(resources)} Lambda functions in {self.region}")
            return resources

        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'discovery')
