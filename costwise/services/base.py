"""
Base data gateway interface for AWS services.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Any

import boto3
from botocore.config import Config as BotoConfig

from .models import Account, ResourceSnapshot, ResourceType
from ..core.exceptions import GatewayError


logger = logging.getLogger(__name__)

# Timeouts and retries for every gateway client
DEFAULT_CLIENT_CONFIG = BotoConfig(
    connect_timeout=10,
    read_timeout=30,
    retries={'max_attempts': 5, 'mode': 'adaptive'},
)

# boto3 sessions are shared between gateways; client creation on them is not thread-safe
_CLIENT_LOCK = threading.Lock()


class BaseGateway(ABC):
    """Lazily-created boto3 client wrapper that converts API errors to GatewayError."""

    def __init__(self, session: boto3.Session, region: str):
        """Initialize the gateway with AWS session and region.

        Args:
            session: Authenticated boto3 session
            region: AWS region to operate in
        """
        self.session = session
        self.region = region
        self._client = None

    @property
    def client(self):
        """Lazy-loaded AWS service client."""
        with _CLIENT_LOCK:
            if self._client is None:
                self._client = self.session.client(
                    self.service_name, region_name=self.client_region, config=DEFAULT_CLIENT_CONFIG
                )
        return self._client

    @property
    def client_region(self) -> str:
        """Region the client is bound to. Global APIs override this."""
        return self.region

    @property
    @abstractmethod
    def service_name(self) -> str:
        """AWS service name (e.g., 'ec2', 'rds', 'cloudwatch')."""
        pass

    def _handle_aws_error(self, error: Exception, operation: str, resource_id: str = None) -> None:
        """Convert an AWS API error into a GatewayError with context.

        Raises:
            GatewayError: Always
        """
        resource_context = f" for resource {resource_id}" if resource_id else ""
        error_message = f"AWS {self.service_name} {operation} failed{resource_context}: {str(error)}"
        raise GatewayError(error_message, details=str(error), operation=operation) from error


class InventoryGateway(BaseGateway):
    """Gateway that can list the inventory of one resource family."""

    @property
    @abstractmethod
    def resource_type(self) -> ResourceType:
        pass

    @property
    def metric_namespace(self) -> str:
        """CloudWatch namespace of the family's utilization metrics."""
        return ''

    @property
    def metric_dimension(self) -> str:
        """CloudWatch dimension that identifies one resource."""
        return ''

    @abstractmethod
    def list_inventory(self, account: Account) -> List[ResourceSnapshot]:
        """List every resource of this family for the account.

        Raises:
            GatewayError: If the listing call fails
        """
        pass

    def _snapshot(self, resource_id: str, state: str, tags: Dict[str, str],
                  attributes: Dict[str, Any]) -> ResourceSnapshot:
        return ResourceSnapshot(
            resource_type=self.resource_type,
            resource_id=resource_id,
            region=self.region,
            state=state,
            tags=tags,
            attributes=attributes,
        )


def tags_to_dict(tag_list: List[Dict[str, str]]) -> Dict[str, str]:
    """Convert an AWS ``[{'Key': k, 'Value': v}]`` tag list to a dict."""
    return {tag['Key']: tag.get('Value', '') for tag in tag_list or []}
