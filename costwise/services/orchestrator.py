"""
Analysis orchestrator for running every resource-type analyzer of an account.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from .analyzer import ResourceTypeAnalyzer
from .models import Account, Finding, ResourceType
from ..core.exceptions import ValidationError


logger = logging.getLogger(__name__)


class AnalysisOrchestrator:
    """Runs resource-type analyzers side by side and merges their findings."""

    def __init__(self, analyzers: Sequence[ResourceTypeAnalyzer], max_workers: Optional[int] = None):
        """Initialize the orchestrator.

        Args:
            analyzers: Analyzers in registration order
            max_workers: Analyzers run at the same time. Defaults to one per analyzer.
        """
        self.analyzers = list(analyzers)
        self.max_workers = max_workers

    @property
    def resource_types(self) -> List[ResourceType]:
        return [analyzer.resource_type for analyzer in self.analyzers]

    def analyze(self, account: Account) -> List[Finding]:
        """Run every analyzer and concatenate findings in registration order.

        An analyzer that raises contributes no findings; the others are unaffected.
        """
        if not self.analyzers:
            return []

        workers = self.max_workers or len(self.analyzers)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(analyzer.analyze, account) for analyzer in self.analyzers]

            # Collect in submission order, not completion order
            per_family = []
            for analyzer, future in zip(self.analyzers, futures):
                per_family.append(self._collect(analyzer, future, account))

        findings = [finding for family_findings in per_family for finding in family_findings]
        logger.info(
            f"Resource analysis complete for account {account.account_id} in {account.region}: "
            f"{len(findings)} findings from {len(self.analyzers)} resource types"
        )
        return findings

    def analyze_family(self, account: Account, resource_type: ResourceType) -> List[Finding]:
        """Run only the analyzer registered for one family.

        Raises:
            ValidationError: If no analyzer is registered for the family
        """
        for analyzer in self.analyzers:
            if analyzer.resource_type is resource_type:
                try:
                    return analyzer.analyze(account)
                except Exception:
                    logger.exception(f"Analyzer for {resource_type.value} failed")
                    return []
        raise ValidationError(f"No analyzer registered for {resource_type.value}")

    def _collect(self, analyzer: ResourceTypeAnalyzer, future, account: Account) -> List[Finding]:
        try:
            findings = future.result()
            logger.debug(f"{analyzer.resource_type.value} contributed {len(findings)} findings")
            return findings
        except Exception:
            logger.exception(
                f"Analyzer for {analyzer.resource_type.value} failed in {account.region}; "
                f"continuing without its findings"
            )
            return []
