"""
Connector Directory.

Lists ACTIVE on-premises connectors in the connector scope and resolves
connector names to ids. The connector scope may differ from the target
scope: --connector-compartment, then scope.connector_compartment, then the
target compartment (-c), then the root compartment.
"""
from typing import Dict, List, Optional, Sequence

from datasafe_ops.constants import NO_CONNECTOR_NAME, STATE_ACTIVE
from datasafe_ops.domain.models import Connector, LifecycleState, is_ocid
from datasafe_ops.domain.protocols import DataSafeClient
from datasafe_ops.exceptions import OperationalError, ResolutionError
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)

UNKNOWN_CONNECTOR_NAME = "unknown"


class ConnectorDirectory:
    def __init__(self, client: DataSafeClient, compartment: Optional[str]):
        self.client = client
        self.compartment = compartment
        self._scope_id: Optional[str] = None
        self._names: Dict[str, str] = {}

    def scope_id(self) -> str:
        if self._scope_id is None:
            if not self.compartment:
                raise ResolutionError(
                    "no connector compartment. Use --connector-compartment or set DS_CONNECTOR_COMP / DS_ROOT_COMP"
                )
            self._scope_id = self.client.resolve_compartment_id(self.compartment)
        return self._scope_id

    def list(self, exclude: Sequence[str] = ()) -> List[Connector]:
        """
        ACTIVE connectors in scope, minus excluded display names.

        Exclusion names that match nothing are ignored.
        """
        connectors = self.client.list_connectors(self.scope_id(), STATE_ACTIVE)
        connectors = [c for c in connectors if c.lifecycle_state in ("", STATE_ACTIVE)]
        excluded = {name.strip() for name in exclude if name and name.strip()}
        if excluded:
            logger.debug("Applying connector exclusion filter", exclude=sorted(excluded))
            connectors = [c for c in connectors if c.display_name not in excluded]
        for connector in connectors:
            self._names[connector.id] = connector.display_name
        return connectors

    def resolve(self, name_or_id: str) -> Connector:
        """Id-shaped input passes through; names must match exactly once."""
        if is_ocid(name_or_id):
            return Connector(id=name_or_id, display_name=self.name_for(name_or_id))

        candidates = [
            c for c in self.client.list_connectors(self.scope_id(), "")
            if c.display_name == name_or_id and c.lifecycle_state != LifecycleState.DELETED.value
        ]
        if not candidates:
            raise ResolutionError(f"connector not found: {name_or_id}")
        if len(candidates) > 1:
            raise ResolutionError(f"connector name is ambiguous: {name_or_id} ({len(candidates)} matches)")
        connector = candidates[0]
        self._names[connector.id] = connector.display_name
        logger.debug("Resolved connector", name=name_or_id, connector_id=connector.id)
        return connector

    def name_for(self, connector_id: Optional[str]) -> str:
        """Display name for an id; 'none' for no connector, 'unknown' if lookup fails."""
        if not connector_id:
            return NO_CONNECTOR_NAME
        if connector_id not in self._names:
            try:
                self._names[connector_id] = self.client.get_connector(connector_id).display_name or connector_id
            except OperationalError as e:
                logger.debug("Connector name lookup failed", connector_id=connector_id, error=str(e))
                self._names[connector_id] = UNKNOWN_CONNECTOR_NAME
        return self._names[connector_id]
