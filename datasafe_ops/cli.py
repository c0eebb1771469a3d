"""
CLI entrypoint for datasafe-ops.

Provides connector (set, migrate, distribute, summary, version), credentials
(update, activate, save-secret) and targets (list, delete, refresh, update-tags,
audit-trail start) commands.
Every mutating command is a dry-run unless --apply is given.
"""
import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import typer

from datasafe_ops import __version__
from datasafe_ops.assignment.modes import DistributeMode, MigrateMode, SetMode
from datasafe_ops.catalog.targets import TargetSelection, split_csv
from datasafe_ops.cli_output import print_critical_error, print_table
from datasafe_ops.cloud.oci_client import OciCliClient
from datasafe_ops.config.config import Config, load_config
from datasafe_ops.constants import (
    EXIT_TARGET_FAILURE,
    NO_CONNECTOR_NAME,
    STATE_ACTIVE,
    STATE_NEEDS_ATTENTION,
)
from datasafe_ops.credentials.resolver import CredentialResolver, CredentialSources
from datasafe_ops.domain.models import RunOutcome
from datasafe_ops.domain.protocols import DataSafeClient
from datasafe_ops.exceptions import DataSafeOpsError
from datasafe_ops.execution.audit_trails import AuditTrailStart, parse_start_time
from datasafe_ops.execution.executor import ExecutionMode, ExecutionOptions, wait_states
from datasafe_ops.monitoring.logger import get_logger, setup_logging
from datasafe_ops.monitoring.redaction import mask_secrets, register_secret
from datasafe_ops.services.connector_service import ConnectorService
from datasafe_ops.services.credential_service import CredentialService, save_secret
from datasafe_ops.services.target_service import TargetService
from datasafe_ops.tagging.rules import TagRule

app = typer.Typer(
    name="datasafe-ops",
    help="Data Safe target connector assignment and credential rotation",
    add_completion=False,
    no_args_is_help=True,
)
connector_app = typer.Typer(help="Assign targets to on-premises connectors", no_args_is_help=True)
credentials_app = typer.Typer(help="Rotate and activate target credentials", no_args_is_help=True)
targets_app = typer.Typer(help="Manage targets", no_args_is_help=True)
audit_trail_app = typer.Typer(help="Start target audit trails", no_args_is_help=True)
app.add_typer(connector_app, name="connector")
app.add_typer(credentials_app, name="credentials")
app.add_typer(targets_app, name="targets")
targets_app.add_typer(audit_trail_app, name="audit-trail")

logger = get_logger(__name__)


def create_client(config: Config) -> DataSafeClient:
    return OciCliClient(config.oci)


@dataclass
class AppState:
    config: Config
    _client: Optional[DataSafeClient] = field(default=None, repr=False)

    @property
    def client(self) -> DataSafeClient:
        if self._client is None:
            self._client = create_client(self.config)
        return self._client


@contextmanager
def command_errors(operation: str):
    """Map exceptions to exit codes; unexpected errors get the critical block."""
    try:
        yield
    except typer.Exit:
        raise
    except DataSafeOpsError as e:
        message = mask_secrets(str(e))
        logger.error(f"{operation} failed", error=message, error_type=type(e).__name__)
        typer.secho(f"ERROR: {message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(e.exit_code)
    except Exception as e:
        print_critical_error(operation, e)
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

COMPARTMENT = typer.Option(None, "-c", "--compartment", help="Compartment name or OCID (includes sub-compartments)")
TARGETS = typer.Option(None, "-T", "--targets", help="Comma-separated target names or OCIDs")
FILTER = typer.Option(None, "-r", "--filter", help="Regex on target display name")
LIFECYCLE = typer.Option(None, "-L", "--lifecycle", help="Comma-separated lifecycle states")
INCLUDE_NEEDS_ATTENTION = typer.Option(
    False, "--include-needs-attention", help="Select ACTIVE and NEEDS_ATTENTION targets when -L is not given"
)
EXCLUDE_AUTO = typer.Option(False, "--exclude-auto", help="Skip targets whose name ends with the auto suffix")
INPUT_JSON = typer.Option(None, "--input-json", help="Select targets from a saved snapshot file")
ALLOW_STALE = typer.Option(False, "--allow-stale-selection", help="Allow --apply with a snapshot selection")
MAX_SNAPSHOT_AGE = typer.Option(None, "--max-snapshot-age", help="Maximum snapshot age (e.g. 30m, 24h, 2d, off)")
CONNECTOR_COMPARTMENT = typer.Option(None, "--connector-compartment", help="Compartment holding the connectors")

APPLY = typer.Option(False, "--apply", help="Apply changes (default is dry-run)")
WAIT = typer.Option(False, "--wait", help="Wait for SUCCEEDED/FAILED on every work request")
WAIT_FOR_STATE = typer.Option(None, "--wait-for-state", help="Work request state to wait for (repeatable)")
STOP_ON_ERROR = typer.Option(False, "--stop-on-error", help="Stop the batch after the first failed target")

CRED_FILE = typer.Option(None, "--cred-file", help="JSON file with userName/password")
DS_USER = typer.Option(None, "-U", "--ds-user", help="Database user (common prefix added for root targets)")
DS_SECRET = typer.Option(None, "-P", "--ds-secret", help="Database secret, plain or base64")
ROOT_SECRET = typer.Option(None, "--root-secret", help="Separate secret for root container targets")
SECRET_FILE = typer.Option(None, "--secret-file", help="Base64 secret file to read")
FORCE_ROOT = typer.Option(False, "--root", help="Treat every target as a root container")
NO_PROMPT = typer.Option(False, "--no-prompt", help="Fail instead of prompting for a missing secret")


def build_selection(
    compartment: Optional[str] = None,
    targets: Optional[str] = None,
    name_filter: Optional[str] = None,
    lifecycle: Optional[str] = None,
    include_needs_attention: bool = False,
    exclude_auto: bool = False,
    input_json: Optional[Path] = None,
    allow_stale_selection: bool = False,
    max_snapshot_age: Optional[str] = None,
) -> TargetSelection:
    states = split_csv(lifecycle) if lifecycle else None
    if states is None and include_needs_attention:
        states = [STATE_ACTIVE, STATE_NEEDS_ATTENTION]
    return TargetSelection(
        targets=tuple(split_csv(targets)),
        compartment=compartment,
        lifecycle_states=states,
        name_filter=name_filter,
        exclude_auto=exclude_auto,
        input_json=str(input_json) if input_json else None,
        allow_stale_selection=allow_stale_selection,
        max_snapshot_age=max_snapshot_age,
    )


def build_options(
    config: Config,
    apply: bool,
    wait: bool,
    wait_for_state: Optional[List[str]],
    stop_on_error: bool,
) -> ExecutionOptions:
    states = wait_for_state or config.execution.wait_for_state
    return ExecutionOptions(
        mode=ExecutionMode.APPLY if apply else ExecutionMode.DRY_RUN,
        wait_for_states=wait_states(wait, states),
        stop_on_error=stop_on_error or config.execution.stop_on_error,
    )


def _prompt_secret(message: str) -> str:
    return typer.prompt(message, hide_input=True, default="", show_default=False, err=True)


def build_resolver(
    config: Config,
    cred_file: Optional[Path],
    user: Optional[str],
    secret: Optional[str],
    root_secret: Optional[str],
    secret_file: Optional[Path],
    no_prompt: bool,
) -> CredentialResolver:
    creds = config.credentials
    sources = CredentialSources(
        credentials_file=str(cred_file) if cred_file else None,
        user=user,
        secret=secret,
        root_secret=root_secret or creds.root_secret,
        default_user=creds.user,
        default_secret=creds.secret,
        secret_file=str(secret_file) if secret_file else creds.secret_file,
        secret_dirs=tuple(creds.secret_dirs),
        no_prompt=no_prompt or creds.no_prompt,
    )
    return CredentialResolver(
        sources,
        common_user_prefix=creds.common_user_prefix,
        root_name_pattern=creds.root_name_pattern,
        root_tag_keys=creds.root_tag_keys,
        prompt=_prompt_secret,
    )


def finish(outcome: RunOutcome) -> None:
    """Print the counters and exit 1 if any target failed."""
    mode = "APPLY" if outcome.applied else "DRY-RUN"
    typer.echo(f"[{mode}] success={outcome.success} failed={outcome.failed} skipped={outcome.skipped}")
    if outcome.failed:
        raise typer.Exit(EXIT_TARGET_FAILURE)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"datasafe-ops {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="text or json"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    oci_profile: Optional[str] = typer.Option(None, "--oci-profile", help="OCI CLI profile"),
    oci_region: Optional[str] = typer.Option(None, "--oci-region", help="OCI region"),
    oci_config: Optional[Path] = typer.Option(None, "--oci-config", help="OCI CLI config file"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """Data Safe target connector assignment and credential rotation."""
    with command_errors("Configuration"):
        config = load_config(config_path)
        config = config.with_overrides(
            monitoring={
                "log_level": log_level.upper() if log_level else None,
                "log_format": log_format,
                "log_file": str(log_file) if log_file else None,
            },
            oci={
                "profile": oci_profile,
                "region": oci_region,
                "config_file": str(oci_config) if oci_config else None,
            },
        )
        setup_logging(config.monitoring.log_level, config.monitoring.log_format, config.monitoring.log_file)
    ctx.obj = AppState(config=config)


# ---------------------------------------------------------------------------
# connector
# ---------------------------------------------------------------------------

def _assign(ctx: typer.Context, mode, selection: TargetSelection, options: ExecutionOptions,
            connector_compartment: Optional[str]) -> None:
    state: AppState = ctx.obj
    service = ConnectorService(state.config, state.client)
    outcome = service.assign(mode, selection, options, connector_compartment=connector_compartment)
    finish(outcome)


@connector_app.command("set")
def connector_set(
    ctx: typer.Context,
    target_connector: Optional[str] = typer.Option(None, "--target-connector", help="Connector name or OCID"),
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    include_needs_attention: bool = INCLUDE_NEEDS_ATTENTION,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    connector_compartment: Optional[str] = CONNECTOR_COMPARTMENT,
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """
    Assign every selected target to one connector.

    Example:
        datasafe-ops connector set -c prod --target-connector conn-a --apply
    """
    with command_errors("Connector set"):
        mode = SetMode(destination=target_connector or "")
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, include_needs_attention,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        _assign(ctx, mode, selection, options, connector_compartment)


@connector_app.command("migrate")
def connector_migrate(
    ctx: typer.Context,
    source_connector: Optional[str] = typer.Option(None, "--source-connector", help="Connector to move targets off"),
    target_connector: Optional[str] = typer.Option(None, "--target-connector", help="Connector to move targets to"),
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    include_needs_attention: bool = INCLUDE_NEEDS_ATTENTION,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    connector_compartment: Optional[str] = CONNECTOR_COMPARTMENT,
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """Move targets that use the source connector to the target connector."""
    with command_errors("Connector migrate"):
        mode = MigrateMode(source=source_connector or "", destination=target_connector or "")
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, include_needs_attention,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        _assign(ctx, mode, selection, options, connector_compartment)


@connector_app.command("distribute")
def connector_distribute(
    ctx: typer.Context,
    exclude_connectors: Optional[str] = typer.Option(
        None, "--exclude-connectors", help="Comma-separated connector names to leave out"
    ),
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    include_needs_attention: bool = INCLUDE_NEEDS_ATTENTION,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    connector_compartment: Optional[str] = CONNECTOR_COMPARTMENT,
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """Spread targets round-robin across all active connectors."""
    with command_errors("Connector distribute"):
        mode = DistributeMode(exclude=tuple(split_csv(exclude_connectors)))
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, include_needs_attention,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        _assign(ctx, mode, selection, options, connector_compartment)


@connector_app.command("summary")
def connector_summary(
    ctx: typer.Context,
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    exclude_auto: bool = EXCLUDE_AUTO,
    connector_compartment: Optional[str] = CONNECTOR_COMPARTMENT,
    output: str = typer.Option("table", "--output", "-o", help="table or json"),
):
    """Show how targets are spread across connectors."""
    with command_errors("Connector summary"):
        selection = build_selection(compartment, targets, name_filter, lifecycle, exclude_auto=exclude_auto)
        state: AppState = ctx.obj
        groups = ConnectorService(state.config, state.client).summary(selection, connector_compartment)
        if output == "json":
            typer.echo(json.dumps([g.to_dict() for g in groups], indent=2))
            return
        rows = [
            (g.connector_name, g.targets, ", ".join(f"{k}={v}" for k, v in sorted(g.states.items())))
            for g in groups
        ]
        print_table(
            ("CONNECTOR", "TARGETS", "STATES"), rows, title="Targets per connector", styles=("cyan", "magenta", "green")
        )
        typer.echo(f"\nTotal targets: {sum(g.targets for g in groups)}")


@connector_app.command("version")
def connector_version(
    ctx: typer.Context,
    connector: str = typer.Option(..., "--connector", help="Connector name or OCID"),
    connector_home: Optional[Path] = typer.Option(None, "--connector-home", help="Local connector install directory"),
    connector_compartment: Optional[str] = CONNECTOR_COMPARTMENT,
    output: str = typer.Option("table", "--output", "-o", help="table or json"),
):
    """Compare the locally installed connector with the available version."""
    with command_errors("Connector version"):
        state: AppState = ctx.obj
        report = ConnectorService(state.config, state.client).version(
            connector, connector_home=connector_home, connector_compartment=connector_compartment
        )
        if output == "json":
            typer.echo(json.dumps(report.to_dict(), indent=2))
            return
        typer.echo(f"Connector:         {report.connector.display_name or report.connector.id}")
        typer.echo(f"Local version:     {report.local_version or 'UNKNOWN'}")
        typer.echo(f"Available version: {report.available_version or 'UNKNOWN'}")
        typer.echo(f"Status:            {report.status}")


# ---------------------------------------------------------------------------
# credentials
# ---------------------------------------------------------------------------

def _credential_run(ctx: typer.Context, activate: bool, selection: TargetSelection, options: ExecutionOptions,
                    resolver: CredentialResolver, force_root: bool) -> None:
    state: AppState = ctx.obj
    service = CredentialService(state.config, state.client, resolver)
    if activate:
        outcome = service.activate(selection, options, force_root=force_root)
    else:
        outcome = service.update(selection, options, force_root=force_root)
    finish(outcome)


@credentials_app.command("update")
def credentials_update(
    ctx: typer.Context,
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    include_needs_attention: bool = INCLUDE_NEEDS_ATTENTION,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    cred_file: Optional[Path] = CRED_FILE,
    user: Optional[str] = DS_USER,
    secret: Optional[str] = DS_SECRET,
    root_secret: Optional[str] = ROOT_SECRET,
    secret_file: Optional[Path] = SECRET_FILE,
    force_root: bool = FORCE_ROOT,
    no_prompt: bool = NO_PROMPT,
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """
    Update database credentials on selected targets.

    Example:
        datasafe-ops credentials update -T db1,db2 -U DS_ADMIN --apply
    """
    with command_errors("Credential update"):
        for value in (secret, root_secret):
            register_secret(value)
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, include_needs_attention,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        resolver = build_resolver(ctx.obj.config, cred_file, user, secret, root_secret, secret_file, no_prompt)
        _credential_run(ctx, False, selection, options, resolver, force_root)


@credentials_app.command("activate")
def credentials_activate(
    ctx: typer.Context,
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    cred_file: Optional[Path] = CRED_FILE,
    user: Optional[str] = DS_USER,
    secret: Optional[str] = DS_SECRET,
    root_secret: Optional[str] = ROOT_SECRET,
    secret_file: Optional[Path] = SECRET_FILE,
    force_root: bool = FORCE_ROOT,
    no_prompt: bool = NO_PROMPT,
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """Set credentials on INACTIVE targets (root containers detected by name or tags)."""
    with command_errors("Credential activation"):
        for value in (secret, root_secret):
            register_secret(value)
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, False,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        resolver = build_resolver(ctx.obj.config, cred_file, user, secret, root_secret, secret_file, no_prompt)
        _credential_run(ctx, True, selection, options, resolver, force_root)


@credentials_app.command("save-secret")
def credentials_save_secret(
    ctx: typer.Context,
    user: Optional[str] = DS_USER,
    secret: Optional[str] = DS_SECRET,
    output: Optional[Path] = typer.Option(None, "--output", help="Write to this path instead of the secret directory"),
):
    """Store a secret as <user>_pwd.b64 (mode 0600) for later runs."""
    with command_errors("Save secret"):
        register_secret(secret)
        if secret is None:
            secret = typer.prompt("Secret", hide_input=True, confirmation_prompt=True, err=True)
        path = save_secret(user or "", secret, ctx.obj.config.credentials.secret_dirs, output=output)
        typer.echo(f"Secret written to {path}")


# ---------------------------------------------------------------------------
# targets
# ---------------------------------------------------------------------------

@targets_app.command("list")
def targets_list(
    ctx: typer.Context,
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    include_needs_attention: bool = INCLUDE_NEEDS_ATTENTION,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    output: str = typer.Option("table", "--output", "-o", help="table or json"),
    save_json: Optional[Path] = typer.Option(None, "--save-json", help="Save the selection for --input-json"),
):
    """List selected targets and optionally save them as a snapshot."""
    with command_errors("Target list"):
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, include_needs_attention,
            exclude_auto, input_json, False, max_snapshot_age,
        )
        state: AppState = ctx.obj
        found = TargetService(state.config, state.client).list(selection, save_json=save_json)
        if output == "json":
            typer.echo(json.dumps({"data": [t.to_oci() for t in found]}, indent=2))
            return
        rows = [
            (
                t.display_name,
                t.lifecycle_state,
                (t.connector_id or NO_CONNECTOR_NAME) if t.has_connection_info else "-",
                t.id,
            )
            for t in found
        ]
        print_table(("NAME", "STATE", "CONNECTOR", "ID"), rows, styles=("cyan", "green", "yellow", None))
        if save_json is not None:
            typer.echo(f"\nSelection saved to {save_json}")


@targets_app.command("delete")
def targets_delete(
    ctx: typer.Context,
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    no_delete_dependencies: bool = typer.Option(
        False, "--no-delete-dependencies", help="Do not delete audit trails, assessments and policies first"
    ),
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """Delete targets (default: NEEDS_ATTENTION) with their dependents."""
    with command_errors("Target delete"):
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, False,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        state: AppState = ctx.obj
        outcome = TargetService(state.config, state.client).delete(
            selection, options, delete_dependencies=not no_delete_dependencies
        )
        finish(outcome)


@targets_app.command("refresh")
def targets_refresh(
    ctx: typer.Context,
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """Refresh targets (default: NEEDS_ATTENTION)."""
    with command_errors("Target refresh"):
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, False,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        state: AppState = ctx.obj
        outcome = TargetService(state.config, state.client).refresh(selection, options)
        finish(outcome)


@targets_app.command("update-tags")
def targets_update_tags(
    ctx: typer.Context,
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    include_needs_attention: bool = INCLUDE_NEEDS_ATTENTION,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Defined tag namespace"),
    env_tag: Optional[str] = typer.Option(None, "--env-tag", help="Environment tag key"),
    stage_tag: Optional[str] = typer.Option(None, "--stage-tag", help="Container stage tag key"),
    type_tag: Optional[str] = typer.Option(None, "--type-tag", help="Container type tag key"),
    class_tag: Optional[str] = typer.Option(None, "--class-tag", help="Classification tag key"),
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """Set the environment tag from each target's compartment name."""
    with command_errors("Target tag update"):
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, include_needs_attention,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        state: AppState = ctx.obj
        rule = TagRule.from_config(
            state.config.tagging,
            namespace=namespace,
            environment_key=env_tag,
            stage_key=stage_tag,
            type_key=type_tag,
            classification_key=class_tag,
        )
        outcome = TargetService(state.config, state.client).update_tags(selection, options, rule)
        finish(outcome)


@audit_trail_app.command("start")
def audit_trail_start(
    ctx: typer.Context,
    compartment: Optional[str] = COMPARTMENT,
    targets: Optional[str] = TARGETS,
    name_filter: Optional[str] = FILTER,
    lifecycle: Optional[str] = LIFECYCLE,
    include_needs_attention: bool = INCLUDE_NEEDS_ATTENTION,
    exclude_auto: bool = EXCLUDE_AUTO,
    input_json: Optional[Path] = INPUT_JSON,
    allow_stale_selection: bool = ALLOW_STALE,
    max_snapshot_age: Optional[str] = MAX_SNAPSHOT_AGE,
    start_time: str = typer.Option("now", "--start-time", help="Collection start: now or an RFC 3339 time"),
    auto_purge: bool = typer.Option(False, "--auto-purge", help="Enable auto purge on started trails"),
    trail_location: Optional[str] = typer.Option(
        None, "--trail-location", help="Only start this trail (location, name or OCID)"
    ),
    apply: bool = APPLY,
    wait: bool = WAIT,
    wait_for_state: Optional[List[str]] = WAIT_FOR_STATE,
    stop_on_error: bool = STOP_ON_ERROR,
):
    """Start audit trails that have not been started yet."""
    with command_errors("Audit trail start"):
        selection = build_selection(
            compartment, targets, name_filter, lifecycle, include_needs_attention,
            exclude_auto, input_json, allow_stale_selection, max_snapshot_age,
        )
        options = build_options(ctx.obj.config, apply, wait, wait_for_state, stop_on_error)
        request = AuditTrailStart(
            start_time=parse_start_time(start_time),
            auto_purge=auto_purge,
            trail_location=trail_location,
        )
        state: AppState = ctx.obj
        outcome = TargetService(state.config, state.client).start_audit_trails(selection, options, request)
        finish(outcome)


if __name__ == "__main__":
    app()
