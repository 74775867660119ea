"""
Pytest configuration and shared fixtures for Costwise tests.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

from costwise.core.exceptions import GatewayError
from costwise.rules.base import MetricsFetcher
from costwise.services.base import InventoryGateway
from costwise.services.models import (
    Account, Datapoint, MetricSeries, PriceInfo, ReservationCoverage, ResourceSnapshot, ResourceType
)


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Keep every test away from real AWS credentials."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    monkeypatch.delenv('AWS_PROFILE', raising=False)
    monkeypatch.delenv('COSTWISE_ENCRYPTION_KEY', raising=False)


@pytest.fixture
def account():
    return Account(account_id='123456789012', region='us-east-1')


def make_series(metric_name: str, statistic: str, values: List[float]) -> MetricSeries:
    start = datetime(2024, 1, 1)
    return MetricSeries(
        metric_name=metric_name,
        statistic=statistic,
        datapoints=[Datapoint(timestamp=start + timedelta(hours=i), value=v) for i, v in enumerate(values)],
    )


class StubCloudWatch:
    """CloudWatch stand-in returning canned series keyed by (metric, statistic)."""

    def __init__(self, series: Optional[Dict[tuple, List[float]]] = None, error: Optional[Exception] = None):
        self.series = series or {}
        self.error = error
        self.calls = []

    def query_metric(self, namespace, dimension_name, resource_id, metric_name, statistic,
                     start_time, end_time, period_seconds=3600):
        self.calls.append((namespace, metric_name, statistic, resource_id, start_time, end_time))
        if self.error is not None:
            raise self.error
        values = self.series.get((metric_name, statistic), [])
        return make_series(metric_name, statistic, values)


class StubPricing:
    def __init__(self, prices: Optional[Dict[str, float]] = None, error: Optional[Exception] = None):
        self.prices = prices or {}
        self.error = error

    def query_pricing(self, instance_type, region):
        if self.error is not None:
            raise self.error
        if region not in self.prices:
            return None
        return PriceInfo(instance_type=instance_type, region=region, hourly_usd=self.prices[region])


class StubReservations:
    def __init__(self, reserved_count: int = 0, error: Optional[Exception] = None):
        self.reserved_count = reserved_count
        self.error = error

    def query_reservation_coverage(self, instance_type):
        if self.error is not None:
            raise self.error
        return ReservationCoverage(instance_type=instance_type, reserved_count=self.reserved_count)


class StubInventory(InventoryGateway):
    """In-memory inventory gateway for one resource family."""

    def __init__(self, resource_type: ResourceType, snapshots=None, error: Optional[Exception] = None,
                 region: str = 'us-east-1'):
        super().__init__(session=None, region=region)
        self._resource_type = resource_type
        self.snapshots = list(snapshots or [])
        self.error = error

    @property
    def service_name(self) -> str:
        return 'stub'

    @property
    def resource_type(self) -> ResourceType:
        return self._resource_type

    def list_inventory(self, account):
        if self.error is not None:
            raise self.error
        return list(self.snapshots)


def snapshot(resource_type: ResourceType = ResourceType.COMPUTE, resource_id: str = 'i-0abc',
             state: str = 'running', region: str = 'us-east-1', tags=None, **attributes) -> ResourceSnapshot:
    return ResourceSnapshot(
        resource_type=resource_type,
        resource_id=resource_id,
        region=region,
        state=state,
        tags=tags or {},
        attributes=attributes,
    )


def metrics_for(series=None, error=None, resource_id='i-0abc', lookback_days=30) -> MetricsFetcher:
    return MetricsFetcher(
        cloudwatch=StubCloudWatch(series, error),
        namespace='AWS/EC2',
        dimension_name='InstanceId',
        resource_id=resource_id,
        lookback_days=lookback_days,
        end_time=datetime(2024, 2, 1),
    )


def gateway_error(operation: str = 'discovery') -> GatewayError:
    return GatewayError(f"AWS stub {operation} failed", operation=operation)
