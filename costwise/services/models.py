"""
Data models for resource analysis runs and their findings.
"""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Any

from ..core.exceptions import StateError


class ResourceType(str, Enum):
    """Resource families covered by the rule engine."""
    COMPUTE = 'EC2'
    MANAGED_DATABASE = 'RDS'
    OBJECT_STORE = 'S3'
    CACHE = 'ElastiCache'
    LOAD_BALANCER = 'LoadBalancer'
    FUNCTION = 'Lambda'


class Severity(str, Enum):
    """Urgency of a finding. HIGH is the most urgent."""
    HIGH = 'HIGH'
    MEDIUM = 'MEDIUM'
    LOW = 'LOW'

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


class RunStatus(str, Enum):
    PENDING = 'PENDING'
    RUNNING = 'RUNNING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'


_ALLOWED_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.FAILED},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
}


@dataclass(frozen=True)
class Account:
    """A cloud account/region pair that scopes every query of a run."""
    account_id: str
    region: str
    credential_ref: str = field(default='', repr=False, compare=False)


@dataclass(frozen=True)
class Finding:
    """One rule's verdict on one resource."""
    resource_type: str          # ResourceType value, or a billing service name
    resource_id: str
    current_state: str
    suggested_action: str
    severity: Severity
    current_cost: float = 0.0
    potential_savings: float = 0.0
    additional_details: Optional[str] = None


@dataclass
class ResourceSnapshot:
    """Descriptive attributes of one resource as listed at analysis time."""
    resource_type: ResourceType
    resource_id: str
    region: str
    state: str
    tags: Dict[str, str] = field(default_factory=dict)
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Datapoint:
    timestamp: datetime
    value: float


@dataclass
class MetricSeries:
    """Samples of one metric statistic over a lookback window."""
    metric_name: str
    statistic: str
    datapoints: List[Datapoint] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.datapoints

    def average(self) -> float:
        if not self.datapoints:
            return 0.0
        return sum(p.value for p in self.datapoints) / len(self.datapoints)

    def maximum(self) -> float:
        return max((p.value for p in self.datapoints), default=0.0)

    def total(self) -> float:
        return sum(p.value for p in self.datapoints)


@dataclass(frozen=True)
class CostEntry:
    """Cost of one billing service for one period."""
    period_start: date
    service: str
    amount: float


@dataclass(frozen=True)
class PriceInfo:
    instance_type: str
    region: str
    hourly_usd: float


@dataclass(frozen=True)
class ReservationCoverage:
    instance_type: str
    reserved_count: int


@dataclass
class AnalysisRun:
    """One invocation of the engine, owned by the run coordinator."""
    account: Account
    start_date: datetime
    end_date: datetime
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: RunStatus = RunStatus.PENDING
    total_cost: Optional[float] = None
    total_potential_savings: Optional[float] = None
    error_message: Optional[str] = None
    findings: List[Finding] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    def transition(self, new_status: RunStatus) -> None:
        """Move the run to a new status.

        Raises:
            StateError: If the transition is not allowed from the current status
        """
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise StateError(
                f"Invalid run transition {self.status.value} -> {new_status.value} for run {self.run_id}"
            )
        self.status = new_status
        if new_status in (RunStatus.COMPLETED, RunStatus.FAILED):
            self.finished_at = datetime.utcnow()

    def complete(self, findings: List[Finding]) -> None:
        """Attach findings, compute totals once and mark the run COMPLETED."""
        findings = list(findings)
        total_cost = sum(f.current_cost for f in findings)
        total_savings = sum(f.potential_savings for f in findings)
        self.transition(RunStatus.COMPLETED)
        self.findings = findings
        self.total_cost = total_cost
        self.total_potential_savings = total_savings

    def fail(self, error_message: str, partial_findings: List[Finding]) -> None:
        """Mark the run FAILED, keeping whatever findings were produced."""
        self.transition(RunStatus.FAILED)
        self.error_message = error_message
        self.findings = list(partial_findings)

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)


def rank_findings(findings: List[Finding]) -> List[Finding]:
    """Order findings by severity, then by potential savings (largest first)."""
    return sorted(findings, key=lambda f: (Severity(f.severity).rank, -f.potential_savings))
