"""
Pytest configuration and shared fixtures.
"""
import os

# Keep developer .env files out of test runs (must be before any datasafe_ops imports).
os.environ.setdefault("DSOPS_NO_DOTENV", "1")

from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

from datasafe_ops.domain.models import Connector, Target
from datasafe_ops.exceptions import CliInvocationError, ResolutionError
from datasafe_ops.monitoring.redaction import clear_registered_secrets

COMPARTMENT_ID = "ocid1.compartment.oc1..root"


def make_target(
    name: str,
    connector_id: str = "",
    state: str = "ACTIVE",
    target_id: Optional[str] = None,
    tags: Optional[Dict[str, str]] = None,
    has_connection_info: bool = True,
    defined_tags: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Target:
    return Target(
        id=target_id or f"ocid1.datasafetargetdatabase.oc1..{name.lower()}",
        display_name=name,
        lifecycle_state=state,
        compartment_id=COMPARTMENT_ID,
        connection_type="ONPREM_CONNECTOR" if connector_id else "PRIVATE_ENDPOINT",
        connector_id=connector_id,
        freeform_tags=dict(tags or {}),
        defined_tags={ns: dict(v) for ns, v in (defined_tags or {}).items()},
        has_connection_info=has_connection_info,
    )


def make_connector(name: str, state: str = "ACTIVE", **kwargs) -> Connector:
    return Connector(
        id=f"ocid1.datasafeonpremconnector.oc1..{name.lower()}",
        display_name=name,
        lifecycle_state=state,
        compartment_id=COMPARTMENT_ID,
        **kwargs,
    )


class FakeDataSafeClient:
    """
    In-memory DataSafeClient.

    Mutations are recorded in `calls` and applied to the stored targets so
    re-reads observe them. `fail_on` maps a method name to target ids whose
    call raises CliInvocationError.
    """

    def __init__(self, targets: Sequence[Target] = (), connectors: Sequence[Connector] = ()):
        self.targets: Dict[str, Target] = {t.id: t for t in targets}
        self.connectors: List[Connector] = list(connectors)
        self.dependents: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        self.compartments: Dict[str, str] = {"root": COMPARTMENT_ID}
        self.compartment_names: Dict[str, str] = {COMPARTMENT_ID: "cmp-acme-prod-projects"}
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, set] = {}
        self.credential_payloads: List[str] = []

    # helpers

    def _maybe_fail(self, method: str, key: str) -> None:
        if key in self.fail_on.get(method, set()):
            raise CliInvocationError(f"{method} failed for {key}", returncode=1)

    @property
    def mutations(self) -> List[tuple]:
        return [c for c in self.calls if c[0] not in ("list_targets", "get_target", "list_connectors",
                                                       "get_connector", "list_dependents",
                                                       "get_compartment_name")]

    # DataSafeClient

    def list_targets(self, compartment_id: str, lifecycle_states: Optional[Sequence[str]] = None) -> List[Target]:
        self.calls.append(("list_targets", compartment_id, tuple(lifecycle_states or ())))
        targets = list(self.targets.values())
        if lifecycle_states:
            targets = [t for t in targets if t.lifecycle_state in lifecycle_states]
        return targets

    def get_target(self, target_id: str) -> Target:
        self.calls.append(("get_target", target_id))
        self._maybe_fail("get_target", target_id)
        if target_id not in self.targets:
            raise CliInvocationError(f"target not found: {target_id}", returncode=1)
        return self.targets[target_id]

    def update_target_connection(self, target_id: str, connector_id: str, wait_for_states: Sequence[str] = ()):
        self.calls.append(("update_target_connection", target_id, connector_id, tuple(wait_for_states)))
        self._maybe_fail("update_target_connection", target_id)
        self.targets[target_id] = replace(
            self.targets[target_id], connection_type="ONPREM_CONNECTOR", connector_id=connector_id
        )
        return {}

    def update_target_credentials(self, target_id: str, credentials_file: Path, wait_for_states: Sequence[str] = ()):
        self.calls.append(("update_target_credentials", target_id, str(credentials_file), tuple(wait_for_states)))
        self._maybe_fail("update_target_credentials", target_id)
        self.credential_payloads.append(Path(credentials_file).read_text())
        return {}

    def list_connectors(self, compartment_id: str, lifecycle_state: str = "ACTIVE") -> List[Connector]:
        self.calls.append(("list_connectors", compartment_id, lifecycle_state))
        if lifecycle_state:
            return [c for c in self.connectors if c.lifecycle_state == lifecycle_state]
        return list(self.connectors)

    def get_connector(self, connector_id: str) -> Connector:
        self.calls.append(("get_connector", connector_id))
        for connector in self.connectors:
            if connector.id == connector_id:
                return connector
        raise CliInvocationError(f"connector not found: {connector_id}", returncode=1)

    def resolve_compartment_id(self, name_or_id: str) -> str:
        if name_or_id.startswith("ocid1."):
            return name_or_id
        if name_or_id not in self.compartments:
            raise ResolutionError(f"compartment not found: {name_or_id}")
        return self.compartments[name_or_id]

    def list_dependents(self, kind: str, target_id: str) -> List[Dict[str, Any]]:
        self.calls.append(("list_dependents", kind, target_id))
        self._maybe_fail("list_dependents", kind)
        return list(self.dependents.get(target_id, {}).get(kind, []))

    def delete_dependent(self, kind: str, resource_id: str, wait_for_states: Sequence[str] = ()):
        self.calls.append(("delete_dependent", kind, resource_id))
        self._maybe_fail("delete_dependent", resource_id)
        return {}

    def delete_target(self, target_id: str, wait_for_states: Sequence[str] = ()):
        self.calls.append(("delete_target", target_id, tuple(wait_for_states)))
        self._maybe_fail("delete_target", target_id)
        self.targets.pop(target_id, None)
        return {}

    def refresh_target(self, target_id: str, wait_for_states: Sequence[str] = ()):
        self.calls.append(("refresh_target", target_id, tuple(wait_for_states)))
        self._maybe_fail("refresh_target", target_id)
        return {}

    def update_target_tags(self, target_id: str, defined_tags: Dict[str, Dict[str, Any]],
                           wait_for_states: Sequence[str] = ()):
        self.calls.append(("update_target_tags", target_id, defined_tags, tuple(wait_for_states)))
        self._maybe_fail("update_target_tags", target_id)
        self.targets[target_id] = replace(self.targets[target_id], defined_tags=defined_tags)
        return {}

    def start_audit_trail(self, audit_trail_id: str, start_time: str, auto_purge: bool = False,
                          wait_for_states: Sequence[str] = ()):
        self.calls.append(("start_audit_trail", audit_trail_id, start_time, auto_purge, tuple(wait_for_states)))
        self._maybe_fail("start_audit_trail", audit_trail_id)
        for kinds in self.dependents.values():
            for trail in kinds.get("audit-trail", []):
                if trail.get("id") == audit_trail_id:
                    trail["status"] = "COLLECTING"
        return {}

    def get_compartment_name(self, compartment_id: str) -> str:
        self.calls.append(("get_compartment_name", compartment_id))
        self._maybe_fail("get_compartment_name", compartment_id)
        return self.compartment_names.get(compartment_id, compartment_id)


@pytest.fixture(autouse=True)
def _clear_secrets():
    """Registered secrets are process-global; reset them around every test."""
    clear_registered_secrets()
    yield
    clear_registered_secrets()


@pytest.fixture
def connectors() -> List[Connector]:
    return [make_connector("Ca"), make_connector("Cb"), make_connector("Cc")]


@pytest.fixture
def fake_client(connectors) -> FakeDataSafeClient:
    targets = [make_target(f"T{i}") for i in range(1, 6)]
    return FakeDataSafeClient(targets=targets, connectors=connectors)


@pytest.fixture
def target_factory():
    return make_target


@pytest.fixture
def connector_factory():
    return make_connector


@pytest.fixture
def client_factory():
    return FakeDataSafeClient
