"""
Domain protocols (interfaces) for dependency inversion.

The catalog, directory and executor depend on DataSafeClient rather than on
the OCI CLI wrapper, so tests can substitute an in-memory client.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from datasafe_ops.domain.models import Connector, Target


@runtime_checkable
class DataSafeClient(Protocol):
    """
    Remote operations on Data Safe targets and connectors.

    Implemented by datasafe_ops.cloud.oci_client.OciCliClient in production.
    Listing calls always include sub-compartments.
    """

    def list_targets(
        self,
        compartment_id: str,
        lifecycle_states: Optional[Sequence[str]] = None,
    ) -> List[Target]: ...

    def get_target(self, target_id: str) -> Target: ...

    def update_target_connection(
        self,
        target_id: str,
        connector_id: str,
        wait_for_states: Sequence[str] = (),
    ) -> Dict[str, Any]: ...

    def update_target_credentials(
        self,
        target_id: str,
        credentials_file: Path,
        wait_for_states: Sequence[str] = (),
    ) -> Dict[str, Any]: ...

    def list_connectors(self, compartment_id: str, lifecycle_state: str = "ACTIVE") -> List[Connector]: ...

    def get_connector(self, connector_id: str) -> Connector: ...

    def resolve_compartment_id(self, name_or_id: str) -> str: ...

    def list_dependents(self, kind: str, target_id: str) -> List[Dict[str, Any]]: ...

    def delete_dependent(self, kind: str, resource_id: str, wait_for_states: Sequence[str] = ()) -> Dict[str, Any]: ...

    def delete_target(self, target_id: str, wait_for_states: Sequence[str] = ()) -> Dict[str, Any]: ...

    def refresh_target(self, target_id: str, wait_for_states: Sequence[str] = ()) -> Dict[str, Any]: ...

    def update_target_tags(
        self,
        target_id: str,
        defined_tags: Dict[str, Dict[str, Any]],
        wait_for_states: Sequence[str] = (),
    ) -> Dict[str, Any]: ...

    def start_audit_trail(
        self,
        audit_trail_id: str,
        start_time: str,
        auto_purge: bool = False,
        wait_for_states: Sequence[str] = (),
    ) -> Dict[str, Any]: ...

    def get_compartment_name(self, compartment_id: str) -> str: ...
