"""
OCI CLI backed DataSafeClient.

Every call shells out to the `oci` executable with an argument list (no
shell), captures stdout/stderr and parses JSON output. Read-only calls are
retried on OperationalError; mutations are issued exactly once.
"""
import json
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from datasafe_ops.config.config import OciConfig
from datasafe_ops.domain.models import ConnectionOptionUpdate, Connector, Target, is_ocid
from datasafe_ops.exceptions import CliInvocationError, CliNotFoundError, OperationalError, ResolutionError
from datasafe_ops.monitoring.logger import get_logger
from datasafe_ops.monitoring.redaction import mask_secrets
from datasafe_ops.utils.retry import call_with_retry

logger = get_logger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def _wait_args(wait_for_states: Sequence[str]) -> List[str]:
    args: List[str] = []
    for state in wait_for_states:
        args += ["--wait-for-state", state]
    return args


def _data(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def _items(payload: Any) -> List[Dict[str, Any]]:
    """Records of a list call; some resources wrap them in a collection."""
    data = _data(payload)
    if isinstance(data, dict):
        data = data.get("items")
    return list(data or [])


class OciCliClient:
    """
    Thin wrapper over the OCI CLI `data-safe` and `iam` command groups.

    Args:
        config: OCI section of the application config
        runner: subprocess.run compatible callable (replaced in tests)
        sleep: wait function used between read retries
    """

    def __init__(self, config: OciConfig, runner: Optional[Runner] = None, sleep: Optional[Callable[[float], None]] = None):
        self.config = config
        self._runner = runner or subprocess.run
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    def base_command(self) -> List[str]:
        cmd = [self.config.cli_path]
        if self.config.config_file:
            cmd += ["--config-file", self.config.config_file]
        if self.config.profile:
            cmd += ["--profile", self.config.profile]
        if self.config.region:
            cmd += ["--region", self.config.region]
        return cmd

    def _invoke(self, args: Sequence[str]) -> Any:
        cmd = self.base_command() + list(args)
        logger.debug("OCI command", command=" ".join(cmd))
        try:
            completed = self._runner(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            raise CliNotFoundError(f"OCI CLI not found: {self.config.cli_path}") from e
        except subprocess.TimeoutExpired as e:
            raise OperationalError(
                f"OCI command timed out after {self.config.timeout_seconds}s: {' '.join(args[:3])}"
            ) from e

        if completed.returncode != 0:
            stderr = mask_secrets((completed.stderr or "").strip())
            raise CliInvocationError(
                f"OCI command failed (exit {completed.returncode}): {' '.join(args[:3])}: {stderr}",
                returncode=completed.returncode,
                stderr=stderr,
            )

        stdout = (completed.stdout or "").strip()
        if not stdout:
            return {}
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise CliInvocationError(
                f"OCI command returned invalid JSON: {' '.join(args[:3])}",
                returncode=completed.returncode,
            ) from e

    def _read(self, args: Sequence[str]) -> Any:
        kwargs: Dict[str, Any] = {
            "max_retries": self.config.read_retries,
            "base_delay": self.config.retry_base_delay,
        }
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return call_with_retry(self._invoke, list(args), **kwargs)

    def _mutate(self, args: Sequence[str]) -> Dict[str, Any]:
        result = self._invoke(args)
        return result if isinstance(result, dict) else {"data": result}

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def list_targets(self, compartment_id: str, lifecycle_states: Optional[Sequence[str]] = None) -> List[Target]:
        """
        List targets in a compartment and its sub-compartments.

        The CLI filters on a single lifecycle state; several states are
        filtered client-side, keeping listing order.
        """
        states = [s.upper() for s in (lifecycle_states or [])]
        args = [
            "data-safe", "target-database", "list",
            "--compartment-id", compartment_id,
            "--compartment-id-in-subtree", "true",
            "--all",
        ]
        if len(states) == 1:
            args += ["--lifecycle-state", states[0]]
        records = _data(self._read(args)) or []
        targets = [Target.from_oci(r) for r in records]
        if len(states) > 1:
            targets = [t for t in targets if t.lifecycle_state in states]
        return targets

    def get_target(self, target_id: str) -> Target:
        payload = self._read(["data-safe", "target-database", "get", "--target-database-id", target_id])
        return Target.from_oci(_data(payload) or {"id": target_id})

    def update_target_connection(
        self, target_id: str, connector_id: str, wait_for_states: Sequence[str] = ()
    ) -> Dict[str, Any]:
        body = ConnectionOptionUpdate(connector_id=connector_id).to_payload()
        args = [
            "data-safe", "target-database", "update",
            "--target-database-id", target_id,
            "--connection-option", json.dumps(body),
            "--force",
        ] + _wait_args(wait_for_states)
        return self._mutate(args)

    def update_target_credentials(
        self, target_id: str, credentials_file: Path, wait_for_states: Sequence[str] = ()
    ) -> Dict[str, Any]:
        # Passed by file reference so the secret never shows in process listings
        args = [
            "data-safe", "target-database", "update",
            "--target-database-id", target_id,
            "--credentials", f"file://{credentials_file}",
            "--force",
        ] + _wait_args(wait_for_states)
        return self._mutate(args)

    def delete_target(self, target_id: str, wait_for_states: Sequence[str] = ()) -> Dict[str, Any]:
        args = [
            "data-safe", "target-database", "delete",
            "--target-database-id", target_id,
            "--force",
        ] + _wait_args(wait_for_states)
        return self._mutate(args)

    def refresh_target(self, target_id: str, wait_for_states: Sequence[str] = ()) -> Dict[str, Any]:
        args = ["data-safe", "target-database", "refresh", "--target-database-id", target_id]
        return self._mutate(args + _wait_args(wait_for_states))

    def update_target_tags(
        self, target_id: str, defined_tags: Dict[str, Dict[str, Any]], wait_for_states: Sequence[str] = ()
    ) -> Dict[str, Any]:
        # Replaces the whole defined-tags map, so callers pass every namespace
        args = [
            "data-safe", "target-database", "update",
            "--target-database-id", target_id,
            "--defined-tags", json.dumps(defined_tags),
            "--force",
        ] + _wait_args(wait_for_states)
        return self._mutate(args)

    # ------------------------------------------------------------------
    # Connectors
    # ------------------------------------------------------------------

    def list_connectors(self, compartment_id: str, lifecycle_state: str = "ACTIVE") -> List[Connector]:
        args = [
            "data-safe", "on-prem-connector", "list",
            "--compartment-id", compartment_id,
            "--compartment-id-in-subtree", "true",
            "--all",
        ]
        if lifecycle_state:
            args += ["--lifecycle-state", lifecycle_state]
        records = _data(self._read(args)) or []
        return [Connector.from_oci(r) for r in records]

    def get_connector(self, connector_id: str) -> Connector:
        payload = self._read(["data-safe", "on-prem-connector", "get", "--on-prem-connector-id", connector_id])
        return Connector.from_oci(_data(payload) or {"id": connector_id})

    # ------------------------------------------------------------------
    # Dependents (audit-trail, security-assessment, security-policy)
    # ------------------------------------------------------------------

    def list_dependents(self, kind: str, target_id: str) -> List[Dict[str, Any]]:
        args = ["data-safe", kind, "list", "--target-database-id", target_id, "--all"]
        return _items(self._read(args))

    def delete_dependent(self, kind: str, resource_id: str, wait_for_states: Sequence[str] = ()) -> Dict[str, Any]:
        args = ["data-safe", kind, "delete", f"--{kind}-id", resource_id, "--force"]
        return self._mutate(args + _wait_args(wait_for_states))

    def start_audit_trail(
        self,
        audit_trail_id: str,
        start_time: str,
        auto_purge: bool = False,
        wait_for_states: Sequence[str] = (),
    ) -> Dict[str, Any]:
        args = [
            "data-safe", "audit-trail", "start",
            "--audit-trail-id", audit_trail_id,
            "--audit-collection-start-time", start_time,
            "--is-auto-purge-enabled", "true" if auto_purge else "false",
        ]
        return self._mutate(args + _wait_args(wait_for_states))

    # ------------------------------------------------------------------
    # Compartments
    # ------------------------------------------------------------------

    def resolve_compartment_id(self, name_or_id: str) -> str:
        """Return the OCID for a compartment name; OCIDs pass through."""
        if is_ocid(name_or_id):
            return name_or_id
        records = _data(self._read([
            "iam", "compartment", "list",
            "--all",
            "--compartment-id-in-subtree", "true",
        ])) or []
        matches = [
            r.get("id") for r in records
            if r.get("name") == name_or_id and r.get("lifecycle-state", "ACTIVE") == "ACTIVE"
        ]
        if not matches:
            raise ResolutionError(f"compartment not found: {name_or_id}")
        if len(matches) > 1:
            raise ResolutionError(f"compartment name is ambiguous: {name_or_id} ({len(matches)} matches)")
        logger.debug("Resolved compartment", name=name_or_id, compartment_id=matches[0])
        return matches[0]

    def get_compartment_name(self, compartment_id: str) -> str:
        payload = self._read(["iam", "compartment", "get", "--compartment-id", compartment_id])
        return (_data(payload) or {}).get("name", "")
