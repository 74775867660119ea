"""
Rule evaluators for EC2 instances.
"""
from typing import List

from .base import HOURS_PER_MONTH, MetricsFetcher, PricingFetcher, fail_open, make_finding
from ..services.models import Finding, ResourceSnapshot, Severity


LOOKBACK_DAYS = 30

CPU_UTILIZATION_THRESHOLD = 10.0
NETWORK_IO_THRESHOLD = 1_000_000
OVERPROVISIONED_THRESHOLD = 40.0
NETWORK_OUT_THRESHOLD = 1_000_000_000
BASELINE_PRICING_REGION = 'us-east-1'

OLD_TO_NEW_INSTANCE_FAMILIES = {
    't2': 't3',
    'm3': 'm6i',
    'c4': 'c7g',
}

NON_PRODUCTION_ENVIRONMENTS = ('dev', 'test', 'staging')
SCHEDULE_TAG = 'Schedule'


def _is_on_demand(snapshot: ResourceSnapshot) -> bool:
    # Spot and scheduled instances carry a lifecycle marker
    return not snapshot.attributes.get('instance_lifecycle')


def _instance_family(snapshot: ResourceSnapshot) -> str:
    return snapshot.attributes.get('instance_type', '').split('.')[0]


@fail_open
def check_idle_instance(snapshot: ResourceSnapshot, metrics: MetricsFetcher, pricing: PricingFetcher) -> List[Finding]:
    cpu = metrics.fetch('CPUUtilization', 'Average')
    network_in = metrics.fetch('NetworkIn', 'Sum')
    if cpu.is_empty or network_in.is_empty:
        return []

    avg_cpu = cpu.average()
    avg_network = network_in.average()
    if avg_cpu < CPU_UTILIZATION_THRESHOLD and avg_network < NETWORK_IO_THRESHOLD:
        return [make_finding(
            snapshot,
            current_state="Idle instance (CPU < 10%, low network I/O)",
            suggested_action="Consider stopping or terminating the instance",
            severity=Severity.HIGH,
            additional_details=f"avg CPU {avg_cpu:.2f}%, avg hourly NetworkIn {avg_network:.0f} bytes",
        )]
    return []


@fail_open
def check_overprovisioned_instance(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                                   pricing: PricingFetcher) -> List[Finding]:
    cpu = metrics.fetch('CPUUtilization', 'Maximum')
    memory = metrics.fetch('MemoryUtilization', 'Maximum', namespace='System/Linux')
    if cpu.is_empty or memory.is_empty:
        return []

    if cpu.maximum() < OVERPROVISIONED_THRESHOLD and memory.maximum() < OVERPROVISIONED_THRESHOLD:
        return [make_finding(
            snapshot,
            current_state="Overprovisioned instance (low resource utilization)",
            suggested_action="Consider downsizing to a smaller instance type",
            severity=Severity.MEDIUM,
            additional_details=f"max CPU {cpu.maximum():.2f}%, max memory {memory.maximum():.2f}%",
        )]
    return []


@fail_open
def check_legacy_generation(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                            pricing: PricingFetcher) -> List[Finding]:
    family = _instance_family(snapshot)
    suggested = OLD_TO_NEW_INSTANCE_FAMILIES.get(family)
    if suggested is None:
        return []
    return [make_finding(
        snapshot,
        current_state=f"Using older generation instance type: {snapshot.attributes['instance_type']} ({family} family)",
        suggested_action=f"Consider migrating from the {family} family to the {suggested} family",
        severity=Severity.MEDIUM,
    )]


@fail_open
def check_always_on_demand(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                           pricing: PricingFetcher) -> List[Finding]:
    if not _is_on_demand(snapshot):
        return []

    cpu = metrics.fetch('CPUUtilization', 'Average')
    if cpu.is_empty or cpu.average() <= 0:
        return []
    return [make_finding(
        snapshot,
        current_state="On-Demand instance running 24/7",
        suggested_action="Consider using Reserved Instances or Savings Plans",
        severity=Severity.HIGH,
    )]


@fail_open
def check_region_pricing(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                         pricing: PricingFetcher) -> List[Finding]:
    instance_type = snapshot.attributes.get('instance_type')
    if not instance_type or snapshot.region == BASELINE_PRICING_REGION:
        return []

    regional = pricing.price(instance_type, snapshot.region)
    baseline = pricing.price(instance_type, BASELINE_PRICING_REGION)
    if regional is None or baseline is None or regional.hourly_usd <= baseline.hourly_usd:
        return []

    monthly = regional.hourly_usd * HOURS_PER_MONTH
    savings = (regional.hourly_usd - baseline.hourly_usd) * HOURS_PER_MONTH
    return [make_finding(
        snapshot,
        current_state=f"Instance running in {snapshot.region}",
        suggested_action="Consider moving to a lower-cost region",
        severity=Severity.MEDIUM,
        current_cost=round(monthly, 2),
        potential_savings=round(savings, 2),
        additional_details=(
            f"{instance_type} costs ${regional.hourly_usd:.4f}/h in {snapshot.region} "
            f"vs ${baseline.hourly_usd:.4f}/h in {BASELINE_PRICING_REGION}"
        ),
    )]


@fail_open
def check_stopped_with_volumes(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                               pricing: PricingFetcher) -> List[Finding]:
    volume_ids = snapshot.attributes.get('ebs_volume_ids') or []
    if snapshot.state != 'stopped' or not volume_ids:
        return []
    return [make_finding(
        snapshot,
        current_state="Stopped instance with attached EBS volumes",
        suggested_action="Consider creating snapshots and removing unused volumes",
        severity=Severity.MEDIUM,
        additional_details=f"volumes: {', '.join(volume_ids)}",
    )]


@fail_open
def check_stopped_with_elastic_ip(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                                  pricing: PricingFetcher) -> List[Finding]:
    addresses = snapshot.attributes.get('elastic_ips')
    if snapshot.state != 'stopped' or not addresses:
        return []
    return [make_finding(
        snapshot,
        current_state="Stopped instance with associated Elastic IP",
        suggested_action="Consider releasing the Elastic IP",
        severity=Severity.MEDIUM,
        additional_details=f"addresses: {', '.join(addresses)}",
    )]


@fail_open
def check_missing_autoscaling(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                              pricing: PricingFetcher) -> List[Finding]:
    # None means membership is unknown
    if snapshot.attributes.get('in_autoscaling_group') is not False:
        return []
    return [make_finding(
        snapshot,
        current_state="Instance not part of an Auto Scaling Group",
        suggested_action="Consider adding to an Auto Scaling Group for better scalability",
        severity=Severity.MEDIUM,
    )]


@fail_open
def check_spot_opportunity(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                           pricing: PricingFetcher) -> List[Finding]:
    if not _is_on_demand(snapshot):
        return []
    return [make_finding(
        snapshot,
        current_state="Using On-Demand instance",
        suggested_action="Consider using Spot Instances for non-critical workloads",
        severity=Severity.MEDIUM,
    )]


@fail_open
def check_reservation_capacity(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                               pricing: PricingFetcher) -> List[Finding]:
    instance_type = snapshot.attributes.get('instance_type')
    if not instance_type:
        return []

    coverage = pricing.reservation_coverage(instance_type)
    if coverage is None or coverage.reserved_count <= 0:
        return []
    return [make_finding(
        snapshot,
        current_state="Instance type has available Reserved Instance capacity",
        suggested_action="Consider purchasing Reserved Instances for long-term cost savings",
        severity=Severity.MEDIUM,
        additional_details=f"{coverage.reserved_count} active reserved {instance_type} instances",
    )]


@fail_open
def check_missing_lifecycle_policy(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                                   pricing: PricingFetcher) -> List[Finding]:
    environment = snapshot.tags.get('Environment', '')
    if environment.lower() not in NON_PRODUCTION_ENVIRONMENTS or SCHEDULE_TAG in snapshot.tags:
        return []
    return [make_finding(
        snapshot,
        current_state="Non-production instance without lifecycle policies",
        suggested_action="Implement automated shutdown/start schedules",
        severity=Severity.MEDIUM,
        additional_details=f"Environment={environment}",
    )]


@fail_open
def check_network_transfer(snapshot: ResourceSnapshot, metrics: MetricsFetcher,
                           pricing: PricingFetcher) -> List[Finding]:
    network_out = metrics.fetch('NetworkOut', 'Sum')
    if network_out.is_empty:
        return []

    total = network_out.total()
    if total > NETWORK_OUT_THRESHOLD:
        return [make_finding(
            snapshot,
            current_state="High network transfer costs",
            suggested_action="Consider using S3 Transfer Acceleration or CDN",
            severity=Severity.MEDIUM,
            additional_details=f"NetworkOut over {LOOKBACK_DAYS} days: {total:.0f} bytes",
        )]
    return []


COMPUTE_RULES = [
    check_idle_instance,
    check_overprovisioned_instance,
    check_legacy_generation,
    check_always_on_demand,
    check_region_pricing,
    check_stopped_with_volumes,
    check_stopped_with_elastic_ip,
    check_missing_autoscaling,
    check_spot_opportunity,
    check_reservation_capacity,
    check_missing_lifecycle_policy,
    check_network_transfer,
]
