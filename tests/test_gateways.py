"""Tests for the AWS data gateways."""

import io
import json
import zipfile
from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from costwise.core.exceptions import GatewayError
from costwise.services import (
    CloudWatchGateway, CostExplorerGateway, EC2Gateway, ElastiCacheGateway, LambdaGateway,
    LoadBalancerGateway, PricingGateway, RDSGateway, ResourceType, S3Gateway
)
from costwise.services.base import tags_to_dict


REGION = 'us-east-1'


def client_error(code='AccessDenied', operation='Describe'):
    return ClientError({'Error': {'Code': code, 'Message': 'denied'}}, operation)


def with_client(gateway, client):
    gateway._client = client
    return gateway


def paginated(client, pages):
    client.get_paginator.return_value.paginate.return_value = pages
    return client


class TestEC2Gateway:

    @mock_aws
    def test_lists_instances_with_attributes(self, account):
        ec2 = boto3.client('ec2', region_name=REGION)
        running = ec2.run_instances(
            ImageId='ami-12345678', MinCount=1, MaxCount=1, InstanceType='t2.micro',
            TagSpecifications=[{'ResourceType': 'instance', 'Tags': [{'Key': 'Environment', 'Value': 'dev'}]}],
        )['Instances'][0]['InstanceId']
        stopped = ec2.run_instances(
            ImageId='ami-12345678', MinCount=1, MaxCount=1, InstanceType='m5.large'
        )['Instances'][0]['InstanceId']
        ec2.stop_instances(InstanceIds=[stopped])
        allocation = ec2.allocate_address(Domain='vpc')
        ec2.associate_address(InstanceId=stopped, AllocationId=allocation['AllocationId'])

        gateway = EC2Gateway(boto3.Session(region_name=REGION), REGION)
        snapshots = {s.resource_id: s for s in gateway.list_inventory(account)}

        assert set(snapshots) == {running, stopped}
        assert snapshots[running].resource_type is ResourceType.COMPUTE
        assert snapshots[running].attributes['instance_type'] == 't2.micro'
        assert snapshots[running].tags == {'Environment': 'dev'}
        assert snapshots[running].attributes['in_autoscaling_group'] is False
        assert snapshots[stopped].state == 'stopped'
        assert snapshots[stopped].attributes['elastic_ips'] == [allocation['PublicIp']]

    @mock_aws
    def test_terminated_instances_are_skipped(self, account):
        ec2 = boto3.client('ec2', region_name=REGION)
        instance_id = ec2.run_instances(
            ImageId='ami-12345678', MinCount=1, MaxCount=1, InstanceType='t3.micro'
        )['Instances'][0]['InstanceId']
        ec2.terminate_instances(InstanceIds=[instance_id])

        gateway = EC2Gateway(boto3.Session(region_name=REGION), REGION)
        assert gateway.list_inventory(account) == []

    def test_listing_failure_raises_gateway_error(self, account):
        client = MagicMock()
        client.get_paginator.return_value.paginate.side_effect = client_error()
        gateway = with_client(EC2Gateway(boto3.Session(region_name=REGION), REGION), client)

        with pytest.raises(GatewayError) as excinfo:
            gateway.list_inventory(account)
        assert excinfo.value.operation == 'discovery'

    def test_enrichment_failure_leaves_attributes_unknown(self, account):
        client = paginated(MagicMock(), [{'Reservations': [{'Instances': [{
            'InstanceId': 'i-0abc',
            'InstanceType': 'm5.large',
            'State': {'Name': 'running'},
            'Placement': {'AvailabilityZone': 'us-east-1a'},
        }]}]}])
        client.describe_addresses.side_effect = client_error()
        autoscaling = MagicMock()
        autoscaling.autoscaled_instance_ids.side_effect = GatewayError("AWS autoscaling membership lookup failed")

        gateway = with_client(EC2Gateway(boto3.Session(region_name=REGION), REGION, autoscaling), client)
        [item] = gateway.list_inventory(account)

        assert item.attributes['elastic_ips'] is None
        assert item.attributes['in_autoscaling_group'] is None

    def test_reservation_coverage_sums_active_reservations(self):
        client = MagicMock()
        client.describe_reserved_instances.return_value = {
            'ReservedInstances': [{'InstanceCount': 2}, {'InstanceCount': 3}]
        }
        gateway = with_client(EC2Gateway(boto3.Session(region_name=REGION), REGION), client)

        coverage = gateway.query_reservation_coverage('m5.large')

        assert coverage.reserved_count == 5
        filters = client.describe_reserved_instances.call_args.kwargs['Filters']
        assert {'Name': 'state', 'Values': ['active']} in filters


class TestRDSGateway:

    @mock_aws
    def test_lists_database_settings(self, account):
        rds = boto3.client('rds', region_name=REGION)
        rds.create_db_instance(
            DBInstanceIdentifier='orders-db',
            DBInstanceClass='db.t3.micro',
            Engine='mysql',
            MasterUsername='admin',
            MasterUserPassword='password123',
            AllocatedStorage=20,
            MultiAZ=False,
            AutoMinorVersionUpgrade=False,
        )

        [item] = RDSGateway(boto3.Session(region_name=REGION), REGION).list_inventory(account)

        assert item.resource_id == 'orders-db'
        assert item.resource_type is ResourceType.MANAGED_DATABASE
        assert item.attributes['multi_az'] is False
        assert item.attributes['auto_minor_version_upgrade'] is False
        assert item.attributes['engine'] == 'mysql'


class TestS3Gateway:

    @mock_aws
    def test_versioning_and_lifecycle(self, account):
        s3 = boto3.client('s3', region_name=REGION)
        s3.create_bucket(Bucket='plain-bucket')
        s3.create_bucket(Bucket='managed-bucket')
        s3.put_bucket_versioning(Bucket='managed-bucket', VersioningConfiguration={'Status': 'Enabled'})
        s3.put_bucket_lifecycle_configuration(
            Bucket='managed-bucket',
            LifecycleConfiguration={'Rules': [{
                'ID': 'expire-logs',
                'Filter': {'Prefix': 'logs/'},
                'Status': 'Enabled',
                'Expiration': {'Days': 30},
            }]},
        )

        snapshots = {
            s.resource_id: s
            for s in S3Gateway(boto3.Session(region_name=REGION), REGION).list_inventory(account)
        }

        assert snapshots['plain-bucket'].attributes['versioning_status'] == ''
        assert snapshots['plain-bucket'].attributes['lifecycle_rule_count'] == 0
        assert snapshots['managed-bucket'].attributes['versioning_status'] == 'Enabled'
        assert snapshots['managed-bucket'].attributes['lifecycle_rule_count'] == 1

    def test_lookup_failures_are_unknown(self, account):
        client = MagicMock()
        client.list_buckets.return_value = {'Buckets': [{'Name': 'locked-bucket'}]}
        client.get_bucket_versioning.side_effect = client_error()
        client.get_bucket_lifecycle_configuration.side_effect = client_error()
        gateway = with_client(S3Gateway(boto3.Session(region_name=REGION), REGION), client)

        [item] = gateway.list_inventory(account)

        assert item.attributes['versioning_status'] is None
        assert item.attributes['lifecycle_rule_count'] is None


class TestElastiCacheGateway:

    def test_lists_clusters(self, account):
        client = paginated(MagicMock(), [{'CacheClusters': [
            {'CacheClusterId': 'sessions', 'CacheClusterStatus': 'available', 'Engine': 'redis',
             'CacheNodeType': 'cache.t3.micro', 'NumCacheNodes': 1, 'SnapshotRetentionLimit': 1},
            {'CacheClusterId': 'orders-001', 'CacheClusterStatus': 'available', 'Engine': 'redis',
             'ReplicationGroupId': 'orders', 'NumCacheNodes': 1},
            {'CacheClusterId': 'pages', 'CacheClusterStatus': 'available', 'Engine': 'memcached',
             'CacheNodeType': 'cache.t3.micro', 'NumCacheNodes': 2},
        ]}])
        gateway = with_client(ElastiCacheGateway(boto3.Session(region_name=REGION), REGION), client)

        first, second, memcached = gateway.list_inventory(account)

        assert first.attributes['replication_group_id'] is None
        assert first.attributes['snapshot_retention_limit'] == 1
        assert second.attributes['replication_group_id'] == 'orders'
        assert second.attributes['snapshot_retention_limit'] is None
        assert memcached.attributes['engine'] == 'memcached'
        assert memcached.attributes['snapshot_retention_limit'] is None


class TestLoadBalancerGateway:

    @mock_aws
    def test_lists_load_balancers(self, account):
        ec2 = boto3.client('ec2', region_name=REGION)
        vpc_id = ec2.create_vpc(CidrBlock='10.0.0.0/16')['Vpc']['VpcId']
        subnets = [
            ec2.create_subnet(VpcId=vpc_id, CidrBlock=cidr, AvailabilityZone=zone)['Subnet']['SubnetId']
            for cidr, zone in (('10.0.1.0/24', 'us-east-1a'), ('10.0.2.0/24', 'us-east-1b'))
        ]
        elbv2 = boto3.client('elbv2', region_name=REGION)
        arn = elbv2.create_load_balancer(Name='web', Subnets=subnets, Scheme='internet-facing')[
            'LoadBalancers'][0]['LoadBalancerArn']

        [item] = LoadBalancerGateway(boto3.Session(region_name=REGION), REGION).list_inventory(account)

        assert item.resource_id == arn
        assert item.attributes['scheme'] == 'internet-facing'
        assert item.attributes['deletion_protection'] is False
        assert item.attributes['has_healthy_targets'] is False

    def test_healthy_target_detection(self, account):
        client = paginated(MagicMock(), [{'LoadBalancers': [{
            'LoadBalancerArn': 'arn:lb/web', 'LoadBalancerName': 'web', 'Scheme': 'internet-facing',
            'Type': 'application', 'State': {'Code': 'active'},
        }]}])
        client.describe_load_balancer_attributes.return_value = {
            'Attributes': [{'Key': 'deletion_protection.enabled', 'Value': 'true'}]
        }
        client.describe_target_groups.return_value = {'TargetGroups': [{'TargetGroupArn': 'arn:tg/web'}]}
        client.describe_target_health.return_value = {
            'TargetHealthDescriptions': [{'TargetHealth': {'State': 'healthy'}}]
        }
        gateway = with_client(LoadBalancerGateway(boto3.Session(region_name=REGION), REGION), client)

        [item] = gateway.list_inventory(account)

        assert item.state == 'active'
        assert item.attributes['deletion_protection'] is True
        assert item.attributes['has_healthy_targets'] is True

    @pytest.mark.parametrize("code,expected", [('TargetGroupNotFound', False), ('AccessDenied', None)])
    def test_target_group_lookup_errors(self, account, code, expected):
        client = paginated(MagicMock(), [{'LoadBalancers': [{
            'LoadBalancerArn': 'arn:lb/web', 'LoadBalancerName': 'web', 'Scheme': 'internet-facing',
            'Type': 'application', 'State': {'Code': 'active'},
        }]}])
        client.describe_load_balancer_attributes.return_value = {'Attributes': []}
        client.describe_target_groups.side_effect = client_error(code, 'DescribeTargetGroups')
        gateway = with_client(LoadBalancerGateway(boto3.Session(region_name=REGION), REGION), client)

        [item] = gateway.list_inventory(account)

        assert item.attributes['has_healthy_targets'] is expected


class TestLambdaGateway:

    @mock_aws
    def test_lists_function_configuration(self, account):
        iam = boto3.client('iam', region_name=REGION)
        role_arn = iam.create_role(
            RoleName='lambda-role',
            AssumeRolePolicyDocument=json.dumps({
                'Version': '2012-10-17',
                'Statement': [{'Effect': 'Allow', 'Principal': {'Service': 'lambda.amazonaws.com'},
                               'Action': 'sts:AssumeRole'}],
            }),
        )['Role']['Arn']
        package = io.BytesIO()
        with zipfile.ZipFile(package, 'w') as archive:
            archive.writestr('handler.py', 'def handle(event, context):\n    return event\n')

        boto3.client('lambda', region_name=REGION).create_function(
            FunctionName='resize-images',
            Runtime='python3.12',
            Role=role_arn,
            Handler='handler.handle',
            Code={'ZipFile': package.getvalue()},
            MemorySize=128,
            Timeout=120,
        )

        [item] = LambdaGateway(boto3.Session(region_name=REGION), REGION).list_inventory(account)

        assert item.resource_id == 'resize-images'
        assert item.attributes['memory_size'] == 128
        assert item.attributes['timeout'] == 120


class TestCloudWatchGateway:

    @mock_aws
    def test_query_returns_sorted_series(self):
        cloudwatch = boto3.client('cloudwatch', region_name=REGION)
        now = datetime.utcnow().replace(microsecond=0)
        for minutes, value in ((30, 7.0), (90, 3.0)):
            cloudwatch.put_metric_data(
                Namespace='AWS/EC2',
                MetricData=[{
                    'MetricName': 'CPUUtilization',
                    'Dimensions': [{'Name': 'InstanceId', 'Value': 'i-0abc'}],
                    'Timestamp': now - timedelta(minutes=minutes),
                    'Value': value,
                }],
            )

        series = CloudWatchGateway(boto3.Session(region_name=REGION), REGION).query_metric(
            'AWS/EC2', 'InstanceId', 'i-0abc', 'CPUUtilization', 'Average',
            start_time=now - timedelta(hours=3), end_time=now + timedelta(minutes=5), period_seconds=3600,
        )

        assert not series.is_empty
        timestamps = [p.timestamp for p in series.datapoints]
        assert timestamps == sorted(timestamps)
        assert series.average() == pytest.approx(5.0)

    def test_query_failure_raises_gateway_error(self):
        client = MagicMock()
        client.get_metric_statistics.side_effect = client_error('Throttling')
        gateway = with_client(CloudWatchGateway(boto3.Session(region_name=REGION), REGION), client)

        with pytest.raises(GatewayError):
            gateway.query_metric('AWS/EC2', 'InstanceId', 'i-0abc', 'CPUUtilization', 'Average',
                                 datetime(2024, 1, 1), datetime(2024, 1, 2))


class TestPricingGateway:

    def test_parses_on_demand_price(self):
        product = {'terms': {'OnDemand': {'TERM1': {'priceDimensions': {'DIM1': {
            'unit': 'Hrs', 'pricePerUnit': {'USD': '0.0960000000'}
        }}}}}}
        client = MagicMock()
        client.get_products.return_value = {'PriceList': [json.dumps(product)]}
        gateway = with_client(PricingGateway(boto3.Session(region_name='eu-west-1'), 'eu-west-1'), client)

        price = gateway.query_pricing('m5.large', 'eu-west-1')

        assert price.hourly_usd == pytest.approx(0.096)
        assert gateway.client_region == 'us-east-1'
        filters = client.get_products.call_args.kwargs['Filters']
        assert {'Type': 'TERM_MATCH', 'Field': 'regionCode', 'Value': 'eu-west-1'} in filters

    def test_no_product_means_no_price(self):
        client = MagicMock()
        client.get_products.return_value = {'PriceList': []}
        gateway = with_client(PricingGateway(boto3.Session(region_name=REGION), REGION), client)
        assert gateway.query_pricing('m5.large', REGION) is None

    @pytest.mark.parametrize("price_item", [
        json.dumps({'terms': {'OnDemand': {'TERM1': {'priceDimensions': {'DIM1': {
            'unit': 'Hrs', 'pricePerUnit': {'USD': 'N/A'}
        }}}}}}),
        '{"terms": ',
        json.dumps({'terms': {'OnDemand': ['not-a-mapping']}}),
    ])
    def test_unreadable_price_list_raises_gateway_error(self, price_item):
        client = MagicMock()
        client.get_products.return_value = {'PriceList': [price_item]}
        gateway = with_client(PricingGateway(boto3.Session(region_name=REGION), REGION), client)

        with pytest.raises(GatewayError) as excinfo:
            gateway.query_pricing('t2.micro', 'eu-west-1')
        assert excinfo.value.operation == 'price list parsing'


class TestCostExplorerGateway:

    def test_follows_page_tokens(self, account):
        def page(day, service, amount, token=None):
            response = {'ResultsByTime': [{
                'TimePeriod': {'Start': day, 'End': day},
                'Groups': [{'Keys': [service], 'Metrics': {'UnblendedCost': {'Amount': amount, 'Unit': 'USD'}}}],
            }]}
            if token:
                response['NextPageToken'] = token
            return response

        client = MagicMock()
        client.get_cost_and_usage.side_effect = [
            page('2024-03-01', 'AWS Lambda', '12.5', token='next'),
            page('2024-03-02', 'Amazon Simple Storage Service', '1200.00'),
        ]
        gateway = with_client(CostExplorerGateway(boto3.Session(region_name=REGION), REGION), client)

        entries = gateway.query_cost_by_service(account, date(2024, 3, 1), date(2024, 3, 3))

        assert [(e.period_start, e.service, e.amount) for e in entries] == [
            (date(2024, 3, 1), 'AWS Lambda', 12.5),
            (date(2024, 3, 2), 'Amazon Simple Storage Service', 1200.0),
        ]
        assert client.get_cost_and_usage.call_args_list[1].kwargs['NextPageToken'] == 'next'

    def test_query_failure_raises_gateway_error(self, account):
        client = MagicMock()
        client.get_cost_and_usage.side_effect = client_error('DataUnavailableException')
        gateway = with_client(CostExplorerGateway(boto3.Session(region_name=REGION), REGION), client)

        with pytest.raises(GatewayError):
            gateway.query_cost_by_service(account, date(2024, 3, 1), date(2024, 3, 3))


def test_tags_to_dict():
    assert tags_to_dict([{'Key': 'Environment', 'Value': 'dev'}, {'Key': 'Owner'}]) == {
        'Environment': 'dev', 'Owner': ''
    }
    assert tags_to_dict(None) == {}
