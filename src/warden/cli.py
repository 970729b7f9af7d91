"""
Warden command line.

Usage:
    warden resolve "Smith, John" --property mail --property telephoneNumber
    warden aggregate jsmith --property badPasswordTime --method Maximum
    warden verify leaked.txt --export results.csv

Connection settings come from WARDEN_* environment variables and can be
overridden with the global flags. The bind password is prompted for when
WARDEN_BIND_PASSWORD is unset.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from warden import __version__
from warden.config import ConfigurationError, WardenConfig
from warden.directory.base import DirectoryError
from warden.directory.ldap_client import connect_from_config
from warden.ingest.export import alerts_path
from warden.ingest.loader import load_credentials
from warden.replicas.aggregator import AggregationMethod, ReplicaAggregator
from warden.resolution.planner import SearchQuery, resolve_hint
from warden.resolution.resolver import Resolver
from warden.verification.monitor import LockoutMonitor
from warden.verification.outcome import BatchReport, LockoutAlert, OutcomeStatus
from warden.verification.verifier import CredentialVerifier

logger = logging.getLogger(__name__)

console = Console()

STATUS_STYLES = {
    OutcomeStatus.VALID: "bold red",
    OutcomeStatus.INVALID: "green",
    OutcomeStatus.SKIPPED: "yellow",
    OutcomeStatus.SUSPICIOUS: "bold magenta",
    OutcomeStatus.NOT_FOUND: "dim",
    OutcomeStatus.FALSE_POSITIVE: "dim",
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="warden",
        description="Warden - Resolve identities and safely verify leaked credentials",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Connection overrides
    parser.add_argument("--server", help="Directory server (WARDEN_LDAP_SERVER)")
    parser.add_argument("--base-dn", help="Search base (WARDEN_BASE_DN)")
    parser.add_argument("--bind-user", help="Bind account (WARDEN_BIND_USER)")
    parser.add_argument("--domain", help="Domain for authentication probes (WARDEN_DOMAIN)")
    parser.add_argument("--use-ssl", action="store_true", default=None, help="Use LDAPS")
    parser.add_argument(
        "--per-attribute-queries",
        action="store_true",
        default=None,
        help="Issue one query per attribute instead of a single OR filter",
    )
    parser.add_argument("--log-level", help="Logging level (WARDEN_LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # resolve
    resolve = subparsers.add_parser("resolve", help="Find accounts matching a loose identifier")
    resolve.add_argument("text", help="Name, e-mail, number or free text")
    resolve.add_argument(
        "--hint",
        choices=["auto", "thorough", "email", "number", "name", "freetext"],
        default="auto",
        help="Attribute set to search",
    )
    resolve.add_argument("--thorough", action="store_true", default=None, help="Run every strategy")
    resolve.add_argument(
        "--allow-substrings",
        action="store_true",
        default=None,
        help="Fall back to per-token sub-searches",
    )
    resolve.add_argument(
        "--property",
        dest="properties",
        action="append",
        help="Attribute to return (repeatable)",
    )

    # aggregate
    aggregate = subparsers.add_parser("aggregate", help="Reduce an attribute across all replicas")
    aggregate.add_argument("identity", help="DN, UPN or sAMAccountName")
    aggregate.add_argument(
        "--property",
        dest="properties",
        action="append",
        required=True,
        help="Attribute to aggregate (repeatable)",
    )
    aggregate.add_argument("--method", default="Maximum", help="Maximum, Minimum, Count, Median, Mode, Sum, Mean")
    aggregate.add_argument("--replica", dest="replicas", action="append", help="Limit to a replica (repeatable)")
    aggregate.add_argument("--return-all", action="store_true", help="Show each replica's raw values")

    # verify
    verify = subparsers.add_parser("verify", help="Safely test claimed credentials")
    verify.add_argument("input", help="CSV/TSV file or identifier:password dump")
    verify.add_argument("--export", help="Write outcomes to this CSV/JSON file")
    verify.add_argument("--identifier-column", help="Identifier column in tabular input")
    verify.add_argument("--password-column", help="Password column in tabular input")
    verify.add_argument("--delimiter", default=":", help="Separator for text dumps")
    verify.add_argument("--max-candidates", type=int, help="False-positive threshold (WARDEN_MAX_CANDIDATES)")
    verify.add_argument("--thorough", action="store_true", default=None, help="Thorough identity searches")
    verify.add_argument(
        "--no-health-check",
        dest="health_check",
        action="store_false",
        default=None,
        help="Test passwords without safety gates",
    )
    verify.add_argument(
        "--no-monitor",
        dest="monitor",
        action="store_false",
        default=None,
        help="Skip the post-test lockout wait",
    )
    verify.add_argument("--interval", type=float, help="Lockout polling interval in seconds")

    return parser


def load_config(args: argparse.Namespace) -> WardenConfig:
    """Environment configuration with command line overrides applied."""
    overrides: Dict[str, Any] = {
        "ldap_server": args.server,
        "base_dn": args.base_dn,
        "bind_user": args.bind_user,
        "domain": args.domain,
        "use_ssl": args.use_ssl,
        "per_attribute_queries": args.per_attribute_queries,
        "log_level": args.log_level,
        "thorough": getattr(args, "thorough", None),
        "allow_substrings": getattr(args, "allow_substrings", None),
        "max_candidates": getattr(args, "max_candidates", None),
        "health_check": getattr(args, "health_check", None),
        "monitor": getattr(args, "monitor", None),
        "monitor_interval_seconds": getattr(args, "interval", None),
    }
    config = WardenConfig.from_env()
    return config.model_copy(update={k: v for k, v in overrides.items() if v is not None})


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _records_table(title: str, records: List[Dict[str, Any]]) -> Table:
    table = Table(title=title)
    columns: List[str] = []
    for record in records:
        for key in record:
            if key not in columns:
                columns.append(key)
    for column in columns:
        table.add_column(column, style="cyan" if column in ("Identity", "Replica") else None)
    for record in records:
        table.add_row(*(_cell(record.get(column)) for column in columns))
    return table


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def run_resolve(args: argparse.Namespace, config: WardenConfig) -> int:
    directory, schema_probe, _, _ = connect_from_config(config)
    resolver = Resolver(directory, schema_probe, max_depth=config.max_recursion_depth)
    query = SearchQuery(
        text=args.text,
        hint=resolve_hint(args.hint),
        thorough=config.thorough,
        allow_substrings=config.allow_substrings,
        min_token_length=config.min_token_length,
    )
    try:
        candidates = resolver.resolve(query, args.properties)
    finally:
        directory.close()

    if not candidates:
        console.print(f"[yellow]No accounts match '{args.text}'[/yellow]")
        return 1

    records = [{"Key": c.key, "Strategy": c.strategy, **c.attributes} for c in candidates]
    console.print(_records_table(f"Accounts matching '{args.text}'", records))
    return 0


def run_aggregate(args: argparse.Namespace, config: WardenConfig) -> int:
    method = AggregationMethod.parse(args.method)
    directory, _, _, _ = connect_from_config(config)
    aggregator = ReplicaAggregator(directory)
    try:
        records = aggregator.aggregate_record(
            args.identity,
            args.properties,
            method,
            replicas=args.replicas,
            return_all=args.return_all,
        )
    finally:
        directory.close()

    console.print(_records_table(f"{method.value} across replicas", records))
    return 0


def _print_report(report: BatchReport) -> None:
    table = Table(title="Verification Results")
    table.add_column("Identifier", style="cyan")
    table.add_column("Account")
    table.add_column("Status")
    table.add_column("Notes")
    for outcome in report.outcomes:
        style = STATUS_STYLES.get(outcome.status)
        status = f"[{style}]{outcome.status.value}[/{style}]" if style else outcome.status.value
        table.add_row(
            outcome.identifier,
            outcome.account_name or "",
            status,
            "; ".join(outcome.notes),
        )
    console.print(table)

    summary = Table(title="Summary")
    summary.add_column("Status", style="cyan")
    summary.add_column("Count", justify="right", style="green")
    for status, count in report.summary().items():
        summary.add_row(status, f"{count:,}")
    console.print(summary)

    if report.monitor is None:
        return
    if report.monitor.cancelled:
        console.print(
            f"[bold yellow]Lockout wait cancelled; {len(report.monitor.abandoned)} account(s) "
            f"were not fully verified[/bold yellow]"
        )
    for alert in report.monitor.alerts:
        console.print(f"[bold red]LOCKOUT[/bold red] {alert.describe()}")
    for key, when in report.monitor.later_failures.items():
        console.print(f"[yellow]New bad password for {key} at {when.isoformat()} during the wait[/yellow]")


def run_verify(args: argparse.Namespace, config: WardenConfig) -> int:
    if not config.domain:
        raise ConfigurationError("Password verification needs the account domain (WARDEN_DOMAIN or --domain)")

    entries = load_credentials(
        args.input,
        identifier_column=args.identifier_column,
        password_column=args.password_column,
        delimiter=args.delimiter,
    )
    if not entries:
        console.print("[yellow]No credentials to verify[/yellow]")
        return 1

    directory, schema_probe, auth_probe, validator = connect_from_config(config)
    aggregator = ReplicaAggregator(directory)
    verifier = CredentialVerifier(
        Resolver(directory, schema_probe, max_depth=config.max_recursion_depth),
        directory,
        auth_probe,
        aggregator=aggregator,
        validator=validator,
        max_candidates=config.max_candidates,
        health_check=config.health_check,
        policy_prefilter=config.policy_prefilter,
        thorough=config.thorough,
        allow_substrings=config.allow_substrings,
        min_token_length=config.min_token_length,
    )

    monitor = None
    if config.monitor:
        def on_lockout(alert: LockoutAlert) -> None:
            console.print(f"[bold red]LOCKOUT[/bold red] {alert.describe()}")

        monitor = LockoutMonitor(
            directory,
            aggregator,
            interval_seconds=config.monitor_interval_seconds,
            on_lockout=on_lockout,
        )

    cancel_event = threading.Event()

    def signal_handler(sig, frame):
        """First Ctrl-C stops waiting, a second one aborts."""
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupt received, stopping (press Ctrl-C again to abort)")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, signal_handler)
    try:
        report = verifier.verify_batch(
            entries,
            monitor=monitor,
            cancel_event=cancel_event,
            export_path=args.export,
        )
    finally:
        signal.signal(signal.SIGINT, previous)
        directory.close()

    _print_report(report)
    if args.export:
        console.print(f"[green]Results written to {args.export}[/green]")
        if report.monitor is not None and report.monitor.alerts:
            console.print(f"[bold red]Lockout alerts written to {alerts_path(args.export)}[/bold red]")
    return 0 if report.wait_honored else 2


COMMANDS = {
    "resolve": run_resolve,
    "aggregate": run_aggregate,
    "verify": run_verify,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = load_config(args)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    if config.bind_user and not config.bind_password:
        config = config.model_copy(
            update={"bind_password": console.input(f"Password for {config.bind_user}: ", password=True)}
        )

    try:
        return COMMANDS[args.command](args, config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except (DirectoryError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Aborted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
