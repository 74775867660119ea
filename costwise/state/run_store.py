"""
Run persistence for saving and loading analysis runs.
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any

from ..services.models import Account, AnalysisRun, Finding, RunStatus, Severity
from ..core.exceptions import StateError

logger = logging.getLogger(__name__)


class RunStore:
    """Stores analysis runs as one JSON document per run."""

    def __init__(self, run_dir: Optional[Path] = None):
        """Initialize the run store.

        Args:
            run_dir: Directory to store runs. Defaults to ~/.costwise/runs/
        """
        if run_dir is None:
            run_dir = Path.home() / ".costwise" / "runs"

        self.run_dir = run_dir
        self.run_dir.mkdir(parents=True, exist_ok=True)

    def save_run(self, run: AnalysisRun) -> Path:
        """Save a run, replacing any earlier version of it.

        Raises:
            StateError: If saving fails
        """
        filepath = self.run_dir / f"{run.run_id}.json"
        temp_file = filepath.with_suffix('.tmp')
        try:
            with open(temp_file, 'w') as f:
                json.dump(self._serialize_run(run), f, indent=2, default=str)

            temp_file.replace(filepath)

            logger.debug(f"Saved run {run.run_id} ({run.status.value}) to {filepath}")
            return filepath

        except Exception as e:
            if temp_file.exists():
                temp_file.unlink()
            raise StateError(f"Failed to save run {run.run_id}: {e}")

    def load_run(self, run_id: str) -> Optional[AnalysisRun]:
        """Load a run by ID.

        Returns:
            AnalysisRun if found, None otherwise

        Raises:
            StateError: If the stored document is corrupted
        """
        filepath = self.run_dir / f"{run_id}.json"

        if not filepath.exists():
            return None

        try:
            with open(filepath, 'r') as f:
                data = json.load(f)

            return self._deserialize_run(data)

        except json.JSONDecodeError as e:
            raise StateError(f"Run file corrupted: {e}")
        except (KeyError, ValueError) as e:
            raise StateError(f"Failed to load run {run_id}: {e}")

    def list_runs(self) -> List[Dict[str, Any]]:
        """List summaries of all stored runs, newest first."""
        runs = []

        for filepath in self.run_dir.glob("*.json"):
            try:
                with open(filepath, 'r') as f:
                    data = json.load(f)

                runs.append({
                    'run_id': data.get('run_id'),
                    'account_id': data.get('account', {}).get('account_id'),
                    'region': data.get('account', {}).get('region'),
                    'status': data.get('status'),
                    'created_at': data.get('created_at'),
                    'finding_count': len(data.get('findings', [])),
                    'total_cost': data.get('total_cost'),
                    'total_potential_savings': data.get('total_potential_savings'),
                })
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to read run {filepath}: {e}")
                continue

        runs.sort(key=lambda r: r.get('created_at') or '', reverse=True)
        return runs

    def delete_run(self, run_id: str) -> bool:
        """Delete a stored run. Returns False when no such run exists.

        Raises:
            StateError: If the run file cannot be removed
        """
        filepath = self.run_dir / f"{run_id}.json"
        try:
            filepath.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateError(f"Failed to delete run {run_id}: {e}")

        logger.info(f"Deleted run {run_id}")
        return True

    def cleanup_old_runs(self, keep_count: int = 50) -> int:
        """Remove old runs, keeping only the most recent ones.

        Returns:
            Number of runs deleted
        """
        runs = self.list_runs()

        deleted = 0
        for run_info in runs[keep_count:]:
            if self.delete_run(run_info['run_id']):
                deleted += 1

        return deleted

    def _serialize_run(self, run: AnalysisRun) -> Dict[str, Any]:
        # The credential reference never leaves the process
        return {
            'run_id': run.run_id,
            'account': {'account_id': run.account.account_id, 'region': run.account.region},
            'start_date': run.start_date.isoformat(),
            'end_date': run.end_date.isoformat(),
            'status': run.status.value,
            'total_cost': run.total_cost,
            'total_potential_savings': run.total_potential_savings,
            'error_message': run.error_message,
            'findings': [self._serialize_finding(f) for f in run.findings],
            'created_at': run.created_at.isoformat(),
            'finished_at': run.finished_at.isoformat() if run.finished_at else None,
        }

    def _serialize_finding(self, finding: Finding) -> Dict[str, Any]:
        return {
            'resource_type': str(getattr(finding.resource_type, 'value', finding.resource_type)),
            'resource_id': finding.resource_id,
            'current_state': finding.current_state,
            'suggested_action': finding.suggested_action,
            'severity': finding.severity.value,
            'current_cost': finding.current_cost,
            'potential_savings': finding.potential_savings,
            'additional_details': finding.additional_details,
        }

    def _deserialize_run(self, data: Dict[str, Any]) -> AnalysisRun:
        finished_at = data.get('finished_at')
        return AnalysisRun(
            run_id=data['run_id'],
            account=Account(account_id=data['account']['account_id'], region=data['account']['region']),
            start_date=datetime.fromisoformat(data['start_date']),
            end_date=datetime.fromisoformat(data['end_date']),
            status=RunStatus(data['status']),
            total_cost=data.get('total_cost'),
            total_potential_savings=data.get('total_potential_savings'),
            error_message=data.get('error_message'),
            findings=[self._deserialize_finding(f) for f in data.get('findings', [])],
            created_at=datetime.fromisoformat(data['created_at']),
            finished_at=datetime.fromisoformat(finished_at) if finished_at else None,
        )

    def _deserialize_finding(self, data: Dict[str, Any]) -> Finding:
        return Finding(
            resource_type=data['resource_type'],
            resource_id=data['resource_id'],
            current_state=data['current_state'],
            suggested_action=data['suggested_action'],
            severity=Severity(data['severity']),
            current_cost=data.get('current_cost', 0.0),
            potential_savings=data.get('potential_savings', 0.0),
            additional_details=data.get('additional_details'),
        )
