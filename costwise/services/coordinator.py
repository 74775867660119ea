"""
Run coordinator: drives one analysis run from PENDING to COMPLETED or FAILED.
"""
import logging
from datetime import date, datetime, time
from typing import Callable, List, Optional, Union

from .cost_analyzer import CostAggregationAnalyzer
from .models import Account, AnalysisRun, Finding, RunStatus
from .orchestrator import AnalysisOrchestrator
from ..core.exceptions import CostwiseError, ValidationError


logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


class RunCoordinator:
    """Outermost catch boundary of the engine.

    Each public entry point returns a finished run (or its findings) and never
    raises: any error escaping the analyzers marks the run FAILED.
    """

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        cost_analyzer: Optional[CostAggregationAnalyzer] = None,
        run_store=None,
    ):
        """Initialize the coordinator.

        Args:
            orchestrator: Runs the resource-type analyzers
            cost_analyzer: Flags high-spend services; cost analysis is skipped when None
            run_store: Optional store with a ``save_run(run)`` method
        """
        self.orchestrator = orchestrator
        self.cost_analyzer = cost_analyzer
        self.run_store = run_store

    def run_analysis(
        self,
        account: Account,
        start_date: DateLike,
        end_date: DateLike,
        include_resources: bool = False,
    ) -> AnalysisRun:
        """Run cost aggregation over a date range, optionally with resource rules."""
        run = AnalysisRun(account=account, start_date=_as_datetime(start_date), end_date=_as_datetime(end_date))

        stages: List[Callable[[], List[Finding]]] = []
        if include_resources:
            stages.append(lambda: self.orchestrator.analyze(account))
        stages.append(lambda: self._analyze_costs(run))
        return self._execute(run, stages)

    def run_resources(self, account: Account) -> AnalysisRun:
        """Run every resource-type analyzer as one run."""
        now = datetime.utcnow()
        run = AnalysisRun(account=account, start_date=now, end_date=now)
        return self._execute(run, [lambda: self.orchestrator.analyze(account)])

    def run_resource_analysis(self, account: Account) -> List[Finding]:
        """Run every resource-type analyzer and return the findings."""
        run = self.run_resources(account)
        if run.status is RunStatus.FAILED:
            logger.warning(f"Resource analysis run {run.run_id} failed: {run.error_message}")
        return list(run.findings)

    def _analyze_costs(self, run: AnalysisRun) -> List[Finding]:
        if self.cost_analyzer is None:
            return []
        start, end = run.start_date.date(), run.end_date.date()
        if end <= start:
            raise ValidationError(f"End date {end} must be after start date {start}")
        return self.cost_analyzer.analyze(run.account, start, end)

    def _execute(self, run: AnalysisRun, stages: List[Callable[[], List[Finding]]]) -> AnalysisRun:
        findings: List[Finding] = []
        try:
            run.transition(RunStatus.RUNNING)
            self._save(run, raise_errors=True)
            logger.info(f"Run {run.run_id} started for account {run.account.account_id} in {run.account.region}")

            for stage in stages:
                findings.extend(stage())

            run.complete(findings)
            logger.info(
                f"Run {run.run_id} completed: {len(run.findings)} findings, "
                f"total cost {run.total_cost:.2f}, potential savings {run.total_potential_savings:.2f}"
            )
        except Exception as e:
            message = e.message if isinstance(e, CostwiseError) else str(e)
            logger.error(f"Run {run.run_id} failed for account {run.account.account_id}: {message}")
            if run.status is RunStatus.PENDING:
                # Failed before it was marked RUNNING
                run.transition(RunStatus.RUNNING)
            run.fail(message or type(e).__name__, findings)

        self._save(run, raise_errors=False)
        return run

    def _save(self, run: AnalysisRun, raise_errors: bool) -> None:
        if self.run_store is None:
            return
        try:
            self.run_store.save_run(run)
        except Exception as e:
            if raise_errors:
                raise
            logger.error(f"Could not save run {run.run_id} in state {run.status.value}: {e}")
