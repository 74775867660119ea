"""
CloudWatch gateway for utilization metric queries.
"""
from datetime import datetime

from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseGateway
from .models import Datapoint, MetricSeries


class CloudWatchGateway(BaseGateway):
    """Reads metric statistics for one resource at a time."""

    @property
    def service_name(self) -> str:
        return 'cloudwatch'

    def query_metric(
        self,
        namespace: str,
        dimension_name: str,
        resource_id: str,
        metric_name: str,
        statistic: str,
        start_time: datetime,
        end_time: datetime,
        period_seconds: int = 3600,
    ) -> MetricSeries:
        """Fetch one statistic of one metric over a time window.

        Returns:
            MetricSeries ordered by timestamp, possibly empty

        Raises:
            GatewayError: If the query fails
        """
        try:
            response = self.client.get_metric_statistics(
                Namespace=namespace,
                MetricName=metric_name,
                Dimensions=[{'Name': dimension_name, 'Value': resource_id}],
                StartTime=start_time,
                EndTime=end_time,
                Period=period_seconds,
                Statistics=[statistic],
            )
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, f'{metric_name} query', resource_id)

        datapoints = sorted(
            (Datapoint(timestamp=point['Timestamp'], value=float(point[statistic]))
             for point in response.get('Datapoints', []) if statistic in point),
            key=lambda p: p.timestamp,
        )
        return MetricSeries(metric_name=metric_name, statistic=statistic, datapoints=datapoints)
