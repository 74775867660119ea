"""
Main CLI entry point for Costwise.

Provides the ``costwise`` command group.
"""

import functools
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import boto3
import click
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from costwise import __version__
from costwise.auth.credentials import (
    PROFILE_PREFIX, CredentialCipher, SessionFactory, create_readonly_policy
)
from costwise.core.config import Config, ConfigManager
from costwise.core.exceptions import (
    AuthenticationError, ConfigurationError, CostwiseError, GatewayError
)
from costwise.services.models import Account, AnalysisRun, Finding, ResourceType, RunStatus, rank_findings
from costwise.services.registry import build_coordinator
from costwise.state.run_store import RunStore


console = Console()

# Exit codes for different error types
EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3
EXIT_SERVICE_ERROR = 4
EXIT_RUN_FAILED = 5
EXIT_USER_CANCELLED = 130

SEVERITY_STYLES = {'HIGH': 'bold red', 'MEDIUM': 'yellow', 'LOW': 'cyan'}
STATUS_STYLES = {'COMPLETED': 'green', 'FAILED': 'red', 'RUNNING': 'yellow', 'PENDING': 'dim'}

# Shown only as set or unset
CREDENTIAL_SETTINGS = ('role_arn', 'profile_name')


def configure_logging(verbose: bool) -> None:
    """Route the package's log records through a RichHandler on stderr."""
    logger = logging.getLogger('costwise')
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def exit_on_error(func):
    """Map raised errors onto the CLI's exit codes."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except (KeyboardInterrupt, click.Abort):
            console.print("\n⚠️  [yellow]Operation cancelled by user[/yellow]")
            sys.exit(EXIT_USER_CANCELLED)
        except ConfigurationError as e:
            console.print(f"❌ [red]Configuration error: {e}[/red]")
            sys.exit(EXIT_CONFIG_ERROR)
        except AuthenticationError as e:
            console.print(f"❌ [red]Authentication error: {e}[/red]")
            sys.exit(EXIT_AUTH_ERROR)
        except GatewayError as e:
            console.print(f"❌ [red]Service error: {e}[/red]")
            sys.exit(EXIT_SERVICE_ERROR)
        except CostwiseError as e:
            console.print(f"❌ [red]{e}[/red]")
            sys.exit(EXIT_GENERAL_ERROR)
        except Exception as e:
            console.print(f"💥 [red]Unexpected error: {e}[/red]")
            console.print("[dim]Run again with --verbose for details.[/dim]")
            logging.getLogger(__name__).debug("Unhandled CLI error", exc_info=True)
            sys.exit(EXIT_GENERAL_ERROR)
    return wrapper


class CliContext:
    """Per-invocation state shared by the subcommands."""

    def __init__(self, home: Optional[Path], encryption_key: Optional[str]):
        self.home = home
        self.encryption_key = encryption_key

    @property
    def config_manager(self) -> ConfigManager:
        return ConfigManager(config_dir=self.home)

    @property
    def run_store(self) -> RunStore:
        return RunStore(run_dir=self.home / "runs" if self.home else None)

    def load_config(self) -> Config:
        return self.config_manager.load_or_default()

    def session_factory(self) -> SessionFactory:
        cipher = CredentialCipher(self.encryption_key) if self.encryption_key else None
        return SessionFactory(cipher=cipher)


def credential_reference(
    config: Config,
    role_arn: Optional[str] = None,
    profile: Optional[str] = None,
    credentials: Optional[str] = None,
) -> str:
    """Pick the credential reference from the options, falling back to the config.

    Raises:
        ConfigurationError: If more than one credential source is given
    """
    given = [value for value in (role_arn, profile, credentials) if value]
    if len(given) > 1:
        raise ConfigurationError("Use only one of --role-arn, --profile or --credentials")
    if role_arn:
        return role_arn
    if profile:
        return PROFILE_PREFIX + profile
    if credentials:
        return credentials
    if config.role_arn:
        return config.role_arn
    if config.profile_name:
        return PROFILE_PREFIX + config.profile_name
    return ''


def resolve_account(
    factory: SessionFactory,
    region: str,
    account_id: Optional[str],
    credential_ref: str,
) -> Tuple[Account, boto3.Session]:
    """Build the account and its session, looking up the account ID when not given.

    Raises:
        AuthenticationError: If the session cannot be created or the caller identity is unavailable
    """
    account = Account(account_id=account_id or '', region=region, credential_ref=credential_ref)
    session = factory.session_for(account)
    if not account_id:
        try:
            account_id = session.client('sts').get_caller_identity()['Account']
        except (ClientError, BotoCoreError) as e:
            raise AuthenticationError(f"Could not determine the AWS account ID: {e}")
        account = Account(account_id=account_id, region=region, credential_ref=credential_ref)
    return account, session


def _money(value: Optional[float]) -> str:
    return "-" if value is None else f"${value:,.2f}"


def findings_table(findings: List[Finding]) -> Table:
    table = Table(title="Findings", show_lines=False)
    table.add_column("Severity")
    table.add_column("Type")
    table.add_column("Resource", overflow="fold")
    table.add_column("Current state")
    table.add_column("Suggested action")
    table.add_column("Cost", justify="right")
    table.add_column("Savings", justify="right")

    for finding in rank_findings(findings):
        severity = finding.severity.value
        table.add_row(
            f"[{SEVERITY_STYLES.get(severity, '')}]{severity}[/]",
            str(getattr(finding.resource_type, 'value', finding.resource_type)),
            finding.resource_id,
            finding.current_state,
            finding.suggested_action,
            _money(finding.current_cost),
            _money(finding.potential_savings),
        )
    return table


def print_run(run: AnalysisRun) -> None:
    status = run.status.value
    console.print(
        f"Run [bold]{run.run_id}[/bold] for account {run.account.account_id} "
        f"({run.account.region}): [{STATUS_STYLES.get(status, '')}]{status}[/]"
    )
    if run.error_message:
        console.print(f"[red]Error: {run.error_message}[/red]")

    if run.findings:
        console.print(findings_table(run.findings))
    else:
        console.print("[green]No findings.[/green]")

    console.print(
        f"Findings: {len(run.findings)}  "
        f"Total cost: {_money(run.total_cost)}  "
        f"Potential savings: {_money(run.total_potential_savings)}"
    )


def _finish(run: AnalysisRun) -> None:
    print_run(run)
    if run.status is RunStatus.FAILED:
        sys.exit(EXIT_RUN_FAILED)


def credential_options(func):
    """Options shared by the commands that talk to an account."""
    options = [
        click.option("--region", help="AWS region to analyze (defaults to configured region)"),
        click.option("--account-id", help="Account ID (looked up with STS when omitted)"),
        click.option("--role-arn", help="IAM role to assume for the analysis"),
        click.option("--profile", help="Named AWS profile to use"),
        click.option("--credentials", help="Encrypted credential reference from 'costwise encrypt-keys'"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="COSTWISE_HOME",
    help="Directory for configuration and stored runs (defaults to ~/.costwise)",
)
@click.option(
    "--encryption-key",
    envvar="COSTWISE_ENCRYPTION_KEY",
    help="Fernet key used to decrypt stored credentials",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, home: Optional[Path], encryption_key: Optional[str]) -> None:
    """
    Costwise - cloud cost optimization analysis

    Inspects an AWS account read-only and reports where money can be saved.
    """
    configure_logging(verbose)
    ctx.obj = CliContext(home=home, encryption_key=encryption_key)


@cli.command()
@credential_options
@click.pass_obj
@exit_on_error
def resources(
    obj: CliContext,
    region: Optional[str],
    account_id: Optional[str],
    role_arn: Optional[str],
    profile: Optional[str],
    credentials: Optional[str],
) -> None:
    """Run every resource rule against the account and rank the findings."""
    config = obj.load_config()
    region = region or config.default_region
    ref = credential_reference(config, role_arn, profile, credentials)
    account, session = resolve_account(obj.session_factory(), region, account_id, ref)

    coordinator = build_coordinator(session, region, config, run_store=obj.run_store)
    with console.status(f"Analyzing resources in {region}..."):
        run = coordinator.run_resources(account)
    _finish(run)


@cli.command()
@click.option("--start", "start_date", required=True, type=click.DateTime(formats=["%Y-%m-%d"]),
              help="First day of the cost window (YYYY-MM-DD)")
@click.option("--end", "end_date", required=True, type=click.DateTime(formats=["%Y-%m-%d"]),
              help="Day after the cost window (YYYY-MM-DD)")
@click.option("--with-resources", is_flag=True, help="Also run the resource rules")
@credential_options
@click.pass_obj
@exit_on_error
def costs(
    obj: CliContext,
    start_date,
    end_date,
    with_resources: bool,
    region: Optional[str],
    account_id: Optional[str],
    role_arn: Optional[str],
    profile: Optional[str],
    credentials: Optional[str],
) -> None:
    """Flag services whose daily spend crossed the cost threshold."""
    config = obj.load_config()
    region = region or config.default_region
    ref = credential_reference(config, role_arn, profile, credentials)
    account, session = resolve_account(obj.session_factory(), region, account_id, ref)

    coordinator = build_coordinator(session, region, config, run_store=obj.run_store)
    with console.status(f"Analyzing costs from {start_date.date()} to {end_date.date()}..."):
        run = coordinator.run_analysis(
            account, start_date.date(), end_date.date(), include_resources=with_resources
        )
    _finish(run)


@cli.command()
@click.option("--limit", default=20, show_default=True, help="Number of runs to show")
@click.option("--prune", type=click.IntRange(min=0), metavar="KEEP",
              help="Delete all but the newest KEEP runs before listing")
@click.pass_obj
@exit_on_error
def runs(obj: CliContext, limit: int, prune: Optional[int]) -> None:
    """List stored analysis runs, newest first."""
    store = obj.run_store
    if prune is not None:
        removed = store.cleanup_old_runs(keep_count=prune)
        console.print(f"Removed {removed} old run(s).")

    summaries = store.list_runs()
    if not summaries:
        console.print("No stored runs.")
        return

    table = Table(title="Analysis runs")
    table.add_column("Run ID", overflow="fold")
    table.add_column("Account")
    table.add_column("Region")
    table.add_column("Status")
    table.add_column("Findings", justify="right")
    table.add_column("Savings", justify="right")
    table.add_column("Created")

    for summary in summaries[:limit]:
        status = summary.get('status') or ''
        table.add_row(
            summary.get('run_id') or '',
            summary.get('account_id') or '',
            summary.get('region') or '',
            f"[{STATUS_STYLES.get(status, '')}]{status}[/]",
            str(summary.get('finding_count', 0)),
            _money(summary.get('total_potential_savings')),
            summary.get('created_at') or '',
        )
    console.print(table)


@cli.command()
@click.argument("run_id")
@click.pass_obj
@exit_on_error
def show(obj: CliContext, run_id: str) -> None:
    """Print one stored run."""
    run = obj.run_store.load_run(run_id)
    if run is None:
        console.print(f"❌ [red]No run with ID {run_id}[/red]")
        sys.exit(EXIT_GENERAL_ERROR)
    print_run(run)


@cli.command()
@click.argument("run_id")
@click.pass_obj
@exit_on_error
def delete(obj: CliContext, run_id: str) -> None:
    """Delete one stored run."""
    if not obj.run_store.delete_run(run_id):
        console.print(f"❌ [red]No run with ID {run_id}[/red]")
        sys.exit(EXIT_GENERAL_ERROR)
    console.print(f"Deleted run {run_id}.")


@cli.group("config")
def config_group() -> None:
    """Show or change the stored configuration."""


def _setting_value(name: str, value) -> str:
    if name in CREDENTIAL_SETTINGS:
        return "configured" if value else "-"
    if isinstance(value, list):
        return ", ".join(value) or "-"
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return "-" if value is None else str(value)


@config_group.command("show")
@click.pass_obj
@exit_on_error
def config_show(obj: CliContext) -> None:
    """Print the configuration in effect."""
    manager = obj.config_manager
    config = obj.load_config()
    source = str(manager.config_file) if manager.config_exists() else "defaults (no configuration file)"

    table = Table(title=f"Configuration from {source}")
    table.add_column("Setting")
    table.add_column("Value", overflow="fold")
    for name, value in config.model_dump().items():
        table.add_row(name, _setting_value(name, value))
    console.print(table)


@config_group.command("set")
@click.option("--region", "default_region", help="Default AWS region")
@click.option("--role-arn", help="IAM role assumed for analysis (clears the profile)")
@click.option("--profile", "profile_name", help="Named AWS profile (clears the role)")
@click.option("--max-workers", type=int, help="Concurrent gateway calls per analyzer")
@click.option("--cost-threshold", type=float, help="Daily per-service spend that raises a finding")
@click.option("--savings-rate", type=float, help="Share of flagged spend considered saveable")
@click.option("--family", "families", multiple=True, type=click.Choice([t.value for t in ResourceType]),
              help="Resource family to analyze; repeat to enable several")
@click.pass_obj
@exit_on_error
def config_set(obj: CliContext, families: Tuple[str, ...], **options) -> None:
    """Change stored settings; options that are not given keep their value."""
    changes = {name: value for name, value in options.items() if value is not None}
    if families:
        changes['enabled_families'] = list(families)
    if not changes:
        raise click.UsageError("Nothing to change; pass at least one setting")
    if changes.get('role_arn') and changes.get('profile_name'):
        raise ConfigurationError("Use only one of --role-arn or --profile")
    # One credential source at a time
    if changes.get('role_arn'):
        changes['profile_name'] = None
    if changes.get('profile_name'):
        changes['role_arn'] = None

    obj.config_manager.update_config(**changes)
    console.print(f"✅ [green]Saved configuration to {obj.config_manager.config_file}[/green]")


@config_group.command("reset")
@click.confirmation_option(prompt="Delete the stored configuration?")
@click.pass_obj
@exit_on_error
def config_reset(obj: CliContext) -> None:
    """Delete the configuration file so defaults apply again."""
    if obj.config_manager.delete_config():
        console.print("✅ [green]Configuration removed; defaults apply.[/green]")
    else:
        console.print("No configuration file to remove.")


@cli.command("encrypt-keys")
@click.option("--access-key-id", prompt=True, help="AWS access key ID")
@click.option("--secret-access-key", prompt=True, hide_input=True, help="AWS secret access key")
@click.pass_obj
@exit_on_error
def encrypt_keys(obj: CliContext, access_key_id: str, secret_access_key: str) -> None:
    """Encrypt an access key pair into a credential reference."""
    key = obj.encryption_key
    if not key:
        key = CredentialCipher.generate_key()
        console.print("[yellow]No encryption key set. Generated a new one; keep it in COSTWISE_ENCRYPTION_KEY:[/yellow]")
        console.print(key, highlight=False, soft_wrap=True)

    reference = CredentialCipher(key).encrypt_access_keys(access_key_id, secret_access_key)
    console.print("Credential reference (pass it with --credentials):")
    console.print(reference, highlight=False, soft_wrap=True)


@cli.command()
def policy() -> None:
    """Print the read-only IAM policy needed for an analysis run."""
    click.echo(create_readonly_policy())


if __name__ == "__main__":
    cli()
