"""Data gateways and models for AWS resource analysis."""

from .base import BaseGateway, InventoryGateway
from .models import (
    Account,
    AnalysisRun,
    CostEntry,
    Datapoint,
    Finding,
    MetricSeries,
    PriceInfo,
    ReservationCoverage,
    ResourceSnapshot,
    ResourceType,
    RunStatus,
    Severity,
)
from .ec2 import EC2Gateway
from .rds import RDSGateway
from .s3 import S3Gateway
from .elasticache import ElastiCacheGateway
from .elb import LoadBalancerGateway
from .lambda_ import LambdaGateway
from .autoscaling import AutoScalingGateway
from .cloudwatch import CloudWatchGateway
from .pricing import PricingGateway
from .cost_explorer import CostExplorerGateway

__all__ = [
    'BaseGateway',
    'InventoryGateway',
    'Account',
    'AnalysisRun',
    'CostEntry',
    'Datapoint',
    'Finding',
    'MetricSeries',
    'PriceInfo',
    'ReservationCoverage',
    'ResourceSnapshot',
    'ResourceType',
    'RunStatus',
    'Severity',
    'EC2Gateway',
    'RDSGateway',
    'S3Gateway',
    'ElastiCacheGateway',
    'LoadBalancerGateway',
    'LambdaGateway',
    'AutoScalingGateway',
    'CloudWatchGateway',
    'PricingGateway',
    'CostExplorerGateway',
]
