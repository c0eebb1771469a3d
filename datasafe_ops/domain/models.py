"""
Domain models for datasafe-ops.

These are the core objects used throughout the application. Records read
from the OCI CLI are parsed once into immutable dataclasses; decisions and
outcomes are computed per run and never stored.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from datasafe_ops.constants import (
    CONNECTION_TYPE_ONPREM,
    NO_CONNECTOR_NAME,
    OCID_PREFIX,
    ROOT_CONTAINER_TAG_VALUE,
)


def is_ocid(value: Optional[str]) -> bool:
    """True if value has the canonical OCI id shape."""
    return bool(value) and value.startswith(OCID_PREFIX)


class LifecycleState(str, Enum):
    """Target / connector lifecycle state."""
    CREATING = "CREATING"
    UPDATING = "UPDATING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    NEEDS_ATTENTION = "NEEDS_ATTENTION"
    DELETING = "DELETING"
    DELETED = "DELETED"
    FAILED = "FAILED"


class CredentialScope(str, Enum):
    """Container level the credential applies to."""
    ROOT = "root"  # common user, prefixed (C##)
    LEAF = "leaf"


class Action(str, Enum):
    """What the executor should do for one target."""
    NOOP = "noop"
    UPDATE = "update"


class OutcomeStatus(str, Enum):
    """Per-target result."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


def _connector_id_from(record: Dict[str, Any]) -> str:
    option = record.get("connection-option") or {}
    connector_id = option.get("on-prem-connector-id") or option.get("on-premise-connector-id")
    if connector_id:
        return connector_id
    # Some listings only carry the connector through associated resources
    for resource_id in record.get("associated-resource-ids") or []:
        if isinstance(resource_id, str) and "onpremconnector" in resource_id:
            return resource_id
    return ""


@dataclass(frozen=True)
class Target:
    """
    Data Safe target database.

    connector_id is empty for cloud-native connections, otherwise it
    references an on-premises connector.
    """
    id: str
    display_name: str
    lifecycle_state: str
    compartment_id: str = ""
    connection_type: str = ""
    connector_id: str = ""
    credential_user: Optional[str] = None
    freeform_tags: Dict[str, str] = field(default_factory=dict, compare=False)
    defined_tags: Dict[str, Dict[str, Any]] = field(default_factory=dict, compare=False)
    # False when the listing omitted connection-option (summary records)
    has_connection_info: bool = field(default=True, compare=False)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Target id must not be empty")

    @classmethod
    def from_oci(cls, record: Dict[str, Any]) -> "Target":
        """Build from an OCI CLI JSON record (kebab-case keys)."""
        option = record.get("connection-option")
        credentials = record.get("credentials") or {}
        connector_id = _connector_id_from(record)
        return cls(
            id=record.get("id", ""),
            display_name=record.get("display-name", ""),
            lifecycle_state=(record.get("lifecycle-state") or "").upper(),
            compartment_id=record.get("compartment-id", ""),
            connection_type=(option or {}).get("connection-type", ""),
            connector_id=connector_id,
            credential_user=credentials.get("user-name"),
            freeform_tags=dict(record.get("freeform-tags") or {}),
            defined_tags={ns: dict(tags or {}) for ns, tags in (record.get("defined-tags") or {}).items()},
            has_connection_info=option is not None or bool(connector_id),
            raw=dict(record),
        )

    def to_oci(self) -> Dict[str, Any]:
        """Record suitable for snapshot files."""
        if self.raw:
            return dict(self.raw)
        record: Dict[str, Any] = {
            "id": self.id,
            "display-name": self.display_name,
            "lifecycle-state": self.lifecycle_state,
            "compartment-id": self.compartment_id,
            "freeform-tags": dict(self.freeform_tags),
            "defined-tags": {ns: dict(tags) for ns, tags in self.defined_tags.items()},
        }
        if self.has_connection_info:
            record["connection-option"] = {
                "connection-type": self.connection_type,
                "on-prem-connector-id": self.connector_id or None,
            }
        return record

    @property
    def label(self) -> str:
        return self.display_name or self.id


@dataclass(frozen=True)
class Connector:
    """On-premises connector. Read-only from this system's point of view."""
    id: str
    display_name: str
    lifecycle_state: str = LifecycleState.ACTIVE.value
    compartment_id: str = ""
    available_version: Optional[str] = None
    lifecycle_details: Optional[str] = None

    @classmethod
    def from_oci(cls, record: Dict[str, Any]) -> "Connector":
        return cls(
            id=record.get("id", ""),
            display_name=record.get("display-name", ""),
            lifecycle_state=(record.get("lifecycle-state") or "").upper(),
            compartment_id=record.get("compartment-id", ""),
            available_version=record.get("available-version"),
            lifecycle_details=record.get("lifecycle-details"),
        )


@dataclass(frozen=True)
class Credential:
    """Resolved database credential. The secret never appears in repr."""
    user: str
    secret: str = field(repr=False)
    scope: CredentialScope = CredentialScope.LEAF

    def to_payload(self) -> Dict[str, str]:
        """Wire shape expected by `target-database update --credentials`."""
        return {"userName": self.user, "password": self.secret}


@dataclass(frozen=True)
class ConnectionOptionUpdate:
    """Request body for `target-database update --connection-option`."""
    connector_id: str
    connection_type: str = CONNECTION_TYPE_ONPREM

    def to_payload(self) -> Dict[str, str]:
        return {"connectionType": self.connection_type, "onPremConnectorId": self.connector_id}


@dataclass(frozen=True)
class AssignmentDecision:
    """Desired connector for one target. Computed per run, never stored."""
    target: Target
    current_connector_id: str
    desired_connector_id: str
    desired_connector_name: str = ""
    current_connector_name: str = NO_CONNECTOR_NAME
    action: Action = Action.UPDATE

    @classmethod
    def for_target(
        cls,
        target: Target,
        desired_connector_id: str,
        desired_connector_name: str = "",
        current_connector_name: Optional[str] = None,
    ) -> "AssignmentDecision":
        """Decide NOOP vs UPDATE from the target's current connector."""
        action = Action.NOOP if target.connector_id == desired_connector_id else Action.UPDATE
        return cls(
            target=target,
            current_connector_id=target.connector_id,
            desired_connector_id=desired_connector_id,
            desired_connector_name=desired_connector_name or desired_connector_id,
            current_connector_name=current_connector_name or (target.connector_id or NO_CONNECTOR_NAME),
            action=action,
        )

    @property
    def target_id(self) -> str:
        return self.target.id

    def describe(self) -> str:
        if self.action == Action.NOOP:
            return f"already using connector {self.desired_connector_name}"
        return f"would change from {self.current_connector_name} to {self.desired_connector_name}"


@dataclass
class TargetResult:
    """Outcome for a single target."""
    target: Target
    status: OutcomeStatus
    message: str = ""


@dataclass
class RunOutcome:
    """
    Aggregate counters for one invocation.

    Skips (already assigned is counted as success; lifecycle not updatable
    as skipped) are kept apart from failures so summaries distinguish
    "nothing to do" from "failed".
    """
    applied: bool = False
    success: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[TargetResult] = field(default_factory=list)

    def record(self, result: TargetResult) -> TargetResult:
        if result.status == OutcomeStatus.SUCCESS:
            self.success += 1
        elif result.status == OutcomeStatus.FAILED:
            self.failed += 1
        else:
            self.skipped += 1
        self.results.append(result)
        return result

    @property
    def total(self) -> int:
        return self.success + self.failed + self.skipped

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "applied": self.applied,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
        }


def has_root_container_tag(target: Target, tag_keys) -> bool:
    """True if any of tag_keys carries the CDBROOT marker (case-insensitive)."""
    for key in tag_keys:
        value = target.freeform_tags.get(key)
        if isinstance(value, str) and value.strip().upper() == ROOT_CONTAINER_TAG_VALUE:
            return True
    return False
