"""Shared wiring for command services."""
from typing import Optional

from datasafe_ops.catalog.connectors import ConnectorDirectory
from datasafe_ops.catalog.targets import TargetCatalog
from datasafe_ops.config.config import Config
from datasafe_ops.domain.protocols import DataSafeClient
from datasafe_ops.execution.executor import ChangeExecutor, ExecutionOptions


class BaseService:
    """Holds the config and client and builds per-run components from them."""

    def __init__(self, config: Config, client: DataSafeClient):
        self.config = config
        self.client = client
        self.catalog = TargetCatalog(
            client,
            root_compartment=config.scope.root_compartment,
            default_states=config.catalog.lifecycle_states,
            auto_target_suffix=config.catalog.auto_target_suffix,
            default_max_snapshot_age=config.catalog.max_snapshot_age,
        )

    def directory(self, connector_compartment: Optional[str] = None, fallback: Optional[str] = None) -> ConnectorDirectory:
        """Connector scope: explicit, configured, the target compartment, then the root compartment."""
        scope = self.config.scope
        compartment = connector_compartment or scope.connector_compartment or fallback or scope.root_compartment
        return ConnectorDirectory(self.client, compartment)

    def executor(self, options: ExecutionOptions) -> ChangeExecutor:
        return ChangeExecutor(self.client, options)
