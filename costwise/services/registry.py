"""
Registry of resource families and the wiring that turns it into analyzers.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Type

import boto3

from .analyzer import ResourceTypeAnalyzer
from .base import InventoryGateway
from .cloudwatch import CloudWatchGateway
from .cost_analyzer import CostAggregationAnalyzer
from .cost_explorer import CostExplorerGateway
from .coordinator import RunCoordinator
from .ec2 import EC2Gateway
from .elasticache import ElastiCacheGateway
from .elb import LoadBalancerGateway
from .lambda_ import LambdaGateway
from .models import ResourceType
from .orchestrator import AnalysisOrchestrator
from .pricing import PricingGateway
from .rds import RDSGateway
from .s3 import S3Gateway
from ..rules import (
    CACHE_RULES, COMPUTE_RULES, DATABASE_RULES, FUNCTION_RULES, LOAD_BALANCER_RULES, STORAGE_RULES
)
from ..rules import cache, compute, database, function, load_balancer, storage
from ..rules.base import PricingFetcher, Rule
from ..core.exceptions import ConfigurationError


@dataclass(frozen=True)
class FamilySpec:
    """How one resource family is listed and which rules apply to it."""
    gateway_class: Type[InventoryGateway]
    rules: Sequence[Rule]
    lookback_days: int


# Insertion order is the order of families in every analysis result
FAMILY_REGISTRY: Dict[ResourceType, FamilySpec] = {
    ResourceType.COMPUTE: FamilySpec(EC2Gateway, COMPUTE_RULES, compute.LOOKBACK_DAYS),
    ResourceType.MANAGED_DATABASE: FamilySpec(RDSGateway, DATABASE_RULES, database.LOOKBACK_DAYS),
    ResourceType.OBJECT_STORE: FamilySpec(S3Gateway, STORAGE_RULES, storage.LOOKBACK_DAYS),
    ResourceType.CACHE: FamilySpec(ElastiCacheGateway, CACHE_RULES, cache.LOOKBACK_DAYS),
    ResourceType.LOAD_BALANCER: FamilySpec(LoadBalancerGateway, LOAD_BALANCER_RULES, load_balancer.LOOKBACK_DAYS),
    ResourceType.FUNCTION: FamilySpec(LambdaGateway, FUNCTION_RULES, function.LOOKBACK_DAYS),
}


def build_analyzers(
    session: boto3.Session,
    region: str,
    families: Optional[Sequence[str]] = None,
    max_workers: int = 4,
) -> List[ResourceTypeAnalyzer]:
    """Create one analyzer per enabled family, in registry order.

    Raises:
        ConfigurationError: If a family name is not registered
    """
    if families is None:
        enabled = list(FAMILY_REGISTRY)
    else:
        try:
            requested = {ResourceType(name) for name in families}
        except ValueError as e:
            raise ConfigurationError(f"Unknown resource family: {e}")
        enabled = [resource_type for resource_type in FAMILY_REGISTRY if resource_type in requested]

    cloudwatch = CloudWatchGateway(session, region)
    pricing_gateway = PricingGateway(session, region)

    analyzers = []
    for resource_type in enabled:
        spec = FAMILY_REGISTRY[resource_type]
        gateway = spec.gateway_class(session, region)
        if resource_type is ResourceType.COMPUTE:
            pricing = PricingFetcher(pricing_gateway=pricing_gateway, reservation_gateway=gateway)
        else:
            pricing = PricingFetcher()
        analyzers.append(ResourceTypeAnalyzer(
            gateway=gateway,
            rules=spec.rules,
            lookback_days=spec.lookback_days,
            cloudwatch=cloudwatch,
            pricing=pricing,
            max_workers=max_workers,
        ))
    return analyzers


def build_coordinator(session: boto3.Session, region: str, config, run_store=None) -> RunCoordinator:
    """Wire the whole engine for one account region from a Config."""
    analyzers = build_analyzers(
        session, region, families=config.enabled_families, max_workers=config.max_workers
    )
    cost_analyzer = CostAggregationAnalyzer(
        CostExplorerGateway(session, region),
        threshold=config.cost_threshold,
        savings_rate=config.savings_rate,
    )
    return RunCoordinator(
        orchestrator=AnalysisOrchestrator(analyzers),
        cost_analyzer=cost_analyzer,
        run_store=run_store,
    )
