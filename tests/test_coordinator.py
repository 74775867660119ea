"""Tests for run lifecycle and the run coordinator."""

from datetime import date, datetime
from unittest.mock import Mock

import pytest

from costwise.core.exceptions import GatewayError, StateError
from costwise.rules import CACHE_RULES, COMPUTE_RULES, DATABASE_RULES, FUNCTION_RULES
from costwise.rules import LOAD_BALANCER_RULES, STORAGE_RULES
from costwise.services.analyzer import ResourceTypeAnalyzer
from costwise.services.coordinator import RunCoordinator
from costwise.services.cost_analyzer import CostAggregationAnalyzer
from costwise.services.cost_explorer import CostExplorerGateway
from costwise.services.models import (
    AnalysisRun, CostEntry, Finding, ResourceType, RunStatus, Severity, rank_findings
)
from costwise.services.orchestrator import AnalysisOrchestrator

from conftest import StubCloudWatch, StubInventory, gateway_error, snapshot


def finding(resource_id='r-1', severity=Severity.LOW, cost=0.0, savings=0.0):
    return Finding('EC2', resource_id, 'state', 'action', severity, cost, savings)


def cost_analyzer(entries=(), error=None):
    gateway = Mock(spec=CostExplorerGateway)
    gateway.query_cost_by_service.return_value = list(entries)
    if error is not None:
        gateway.query_cost_by_service.side_effect = error
    return CostAggregationAnalyzer(gateway)


def full_inventory():
    """One problematic resource per family."""
    return {
        ResourceType.COMPUTE: (COMPUTE_RULES, [snapshot(
            ResourceType.COMPUTE, 'i-0abc', 'running', instance_type='t2.micro', instance_lifecycle=None,
            ebs_volume_ids=[], elastic_ips=[], in_autoscaling_group=False,
        )]),
        ResourceType.MANAGED_DATABASE: (DATABASE_RULES, [snapshot(
            ResourceType.MANAGED_DATABASE, 'orders-db', 'available', multi_az=False, auto_minor_version_upgrade=True,
        )]),
        ResourceType.OBJECT_STORE: (STORAGE_RULES, [snapshot(
            ResourceType.OBJECT_STORE, 'logs', 'available', versioning_status='', lifecycle_rule_count=0,
        )]),
        ResourceType.CACHE: (CACHE_RULES, [snapshot(
            ResourceType.CACHE, 'sessions', 'available', engine='redis', snapshot_retention_limit=0,
        )]),
        ResourceType.LOAD_BALANCER: (LOAD_BALANCER_RULES, [snapshot(
            ResourceType.LOAD_BALANCER, 'arn:lb/web', 'active', scheme='internet-facing',
            deletion_protection=False, has_healthy_targets=True,
        )]),
        ResourceType.FUNCTION: (FUNCTION_RULES, [snapshot(
            ResourceType.FUNCTION, 'resize', 'Active', memory_size=128, timeout=120,
        )]),
    }


def orchestrator_for(inventory, failing=()):
    analyzers = []
    for resource_type, (rules, items) in inventory.items():
        error = gateway_error() if resource_type in failing else None
        analyzers.append(ResourceTypeAnalyzer(
            gateway=StubInventory(resource_type, items, error),
            rules=rules,
            lookback_days=7,
            cloudwatch=StubCloudWatch(),
        ))
    return AnalysisOrchestrator(analyzers)


class TestAnalysisRunLifecycle:

    def test_valid_path(self, account):
        run = AnalysisRun(account=account, start_date=datetime(2024, 1, 1), end_date=datetime(2024, 1, 2))
        assert run.status is RunStatus.PENDING

        run.transition(RunStatus.RUNNING)
        run.complete([finding(cost=10.0, savings=2.5), finding(cost=5.0, savings=1.0)])

        assert run.status is RunStatus.COMPLETED
        assert run.total_cost == 15.0
        assert run.total_potential_savings == 3.5
        assert run.finished_at is not None
        assert run.is_terminal

    @pytest.mark.parametrize("target", [RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.PENDING])
    def test_pending_can_only_start_running(self, account, target):
        run = AnalysisRun(account=account, start_date=datetime(2024, 1, 1), end_date=datetime(2024, 1, 2))
        with pytest.raises(StateError):
            run.transition(target)

    def test_terminal_runs_do_not_move(self, account):
        run = AnalysisRun(account=account, start_date=datetime(2024, 1, 1), end_date=datetime(2024, 1, 2))
        run.transition(RunStatus.RUNNING)
        run.fail("boom", [finding()])

        for target in RunStatus:
            with pytest.raises(StateError):
                run.transition(target)

    def test_failed_run_keeps_partial_findings_without_totals(self, account):
        run = AnalysisRun(account=account, start_date=datetime(2024, 1, 1), end_date=datetime(2024, 1, 2))
        run.transition(RunStatus.RUNNING)
        run.fail("boom", [finding('r-1'), finding('r-2')])

        assert [f.resource_id for f in run.findings] == ['r-1', 'r-2']
        assert run.total_cost is None
        assert run.total_potential_savings is None
        assert run.error_message == "boom"

    def test_rank_findings(self):
        ranked = rank_findings([
            finding('low', Severity.LOW, savings=500.0),
            finding('medium', Severity.MEDIUM, savings=1.0),
            finding('high-small', Severity.HIGH, savings=10.0),
            finding('high-big', Severity.HIGH, savings=90.0),
        ])
        assert [f.resource_id for f in ranked] == ['high-big', 'high-small', 'medium', 'low']


class TestRunCoordinator:

    def test_cache_inventory_failure_still_completes(self, account):
        orchestrator = orchestrator_for(full_inventory(), failing={ResourceType.CACHE})
        coordinator = RunCoordinator(orchestrator)

        run = coordinator.run_resources(account)

        assert run.status is RunStatus.COMPLETED
        families = {f.resource_type for f in run.findings}
        assert 'ElastiCache' not in families
        assert families == {'EC2', 'RDS', 'S3', 'LoadBalancer', 'Lambda'}

    def test_empty_account_completes_with_zero_totals(self, account):
        inventory = {rt: (rules, []) for rt, (rules, _) in full_inventory().items()}
        coordinator = RunCoordinator(orchestrator_for(inventory), cost_analyzer([
            CostEntry(date(2024, 3, 1), 'AWS Lambda', 12.0),
        ]))

        run = coordinator.run_analysis(account, date(2024, 3, 1), date(2024, 3, 8), include_resources=True)

        assert run.status is RunStatus.COMPLETED
        assert run.findings == []
        assert run.total_cost == 0
        assert run.total_potential_savings == 0

    def test_cost_run_totals(self, account):
        coordinator = RunCoordinator(orchestrator_for({}), cost_analyzer([
            CostEntry(date(2024, 3, 1), 'Amazon Elastic Compute Cloud - Compute', 1500.0),
            CostEntry(date(2024, 3, 2), 'Amazon Elastic Compute Cloud - Compute', 2500.0),
            CostEntry(date(2024, 3, 2), 'AWS Lambda', 3.0),
        ]))

        run = coordinator.run_analysis(account, date(2024, 3, 1), date(2024, 3, 3))

        assert run.status is RunStatus.COMPLETED
        assert [f.resource_id for f in run.findings] == ['2024-03-01', '2024-03-02']
        assert run.total_cost == pytest.approx(4000.0)
        assert run.total_potential_savings == pytest.approx(800.0)

    def test_cost_failure_fails_run_and_keeps_resource_findings(self, account):
        coordinator = RunCoordinator(
            orchestrator_for(full_inventory()),
            cost_analyzer(error=GatewayError("AWS ce cost query failed")),
        )

        run = coordinator.run_analysis(account, date(2024, 3, 1), date(2024, 3, 8), include_resources=True)

        assert run.status is RunStatus.FAILED
        assert run.error_message == "AWS ce cost query failed"
        assert len(run.findings) > 0
        assert run.total_cost is None

    def test_end_before_start_fails_run(self, account):
        coordinator = RunCoordinator(orchestrator_for({}), cost_analyzer())

        run = coordinator.run_analysis(account, date(2024, 3, 8), date(2024, 3, 1))

        assert run.status is RunStatus.FAILED
        assert "must be after" in run.error_message

    def test_run_resource_analysis_returns_findings(self, account):
        coordinator = RunCoordinator(orchestrator_for(full_inventory()))
        findings = coordinator.run_resource_analysis(account)
        assert {f.resource_type for f in findings} == {'EC2', 'RDS', 'S3', 'ElastiCache', 'LoadBalancer', 'Lambda'}

    def test_runs_are_saved_while_running_and_when_finished(self, account):
        store = Mock()
        statuses = []
        store.save_run.side_effect = lambda run: statuses.append(run.status)

        RunCoordinator(orchestrator_for({}), run_store=store).run_resources(account)

        assert statuses == [RunStatus.RUNNING, RunStatus.COMPLETED]

    def test_store_failure_at_start_fails_run(self, account):
        store = Mock()
        store.save_run.side_effect = [StateError("disk full"), None]

        run = RunCoordinator(orchestrator_for(full_inventory()), run_store=store).run_resources(account)

        assert run.status is RunStatus.FAILED
        assert run.error_message == "disk full"
        assert run.findings == []

    def test_unexpected_error_never_escapes(self, account):
        orchestrator = Mock(spec=AnalysisOrchestrator)
        orchestrator.analyze.side_effect = RuntimeError("worker pool gone")

        run = RunCoordinator(orchestrator).run_resources(account)

        assert run.status is RunStatus.FAILED
        assert run.error_message == "worker pool gone"
