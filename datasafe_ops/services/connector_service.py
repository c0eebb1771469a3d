"""
Connector commands: set / migrate / distribute, summary and version check.
"""
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from datasafe_ops.assignment.engine import AssignmentEngine, AssignmentPlan
from datasafe_ops.assignment.modes import ConnectorMode, DistributeMode
from datasafe_ops.catalog.targets import TargetSelection
from datasafe_ops.constants import NO_CONNECTOR_NAME
from datasafe_ops.domain.models import RunOutcome
from datasafe_ops.execution.executor import ExecutionOptions
from datasafe_ops.monitoring.logger import get_logger
from datasafe_ops.reconciliation.versions import VersionReport, build_version_report
from datasafe_ops.services.base import BaseService

logger = get_logger(__name__)


@dataclass
class ConnectorGroup:
    """Targets sharing one connector, with per-state counts."""
    connector_id: str
    connector_name: str
    targets: int = 0
    states: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "connector": self.connector_name,
            "connector_id": self.connector_id or None,
            "targets": self.targets,
            "states": dict(self.states),
        }


class ConnectorService(BaseService):
    def plan(
        self,
        mode: ConnectorMode,
        selection: TargetSelection,
        apply: bool = False,
        connector_compartment: Optional[str] = None,
    ) -> AssignmentPlan:
        engine = AssignmentEngine(self.catalog, self.directory(connector_compartment, fallback=selection.compartment))
        return engine.plan(mode, selection, apply=apply)

    def assign(
        self,
        mode: ConnectorMode,
        selection: TargetSelection,
        options: ExecutionOptions,
        connector_compartment: Optional[str] = None,
    ) -> RunOutcome:
        """Plan the assignment, then apply or simulate every decision."""
        plan = self.plan(mode, selection, apply=options.apply, connector_compartment=connector_compartment)
        logger.info(
            "Assignment planned",
            mode=mode.name,
            targets=len(plan.decisions),
            updates=len(plan.updates),
            already_assigned=len(plan.noops),
        )
        executor = self.executor(options)
        outcome = executor.run_batch(
            plan.decisions,
            executor.apply_connection,
            label=lambda d: d.target.label,
        )
        if isinstance(mode, DistributeMode):
            for name, count in plan.distribution().items():
                logger.info("Distribution", connector=name, targets=count)
        return outcome

    def summary(self, selection: TargetSelection, connector_compartment: Optional[str] = None) -> List[ConnectorGroup]:
        """Group targets in scope by connector ('none' for cloud-native)."""
        directory = self.directory(connector_compartment, fallback=selection.compartment)
        targets = [self.catalog.hydrate(t) for t in self.catalog.resolve(selection, default_states=())]
        groups: Dict[str, ConnectorGroup] = {}
        for target in targets:
            group = groups.get(target.connector_id)
            if group is None:
                group = ConnectorGroup(
                    connector_id=target.connector_id,
                    connector_name=directory.name_for(target.connector_id),
                )
                groups[target.connector_id] = group
            group.targets += 1
            group.states[target.lifecycle_state] = group.states.get(target.lifecycle_state, 0) + 1

        # Connected groups by name, cloud-native last
        ordered = sorted(
            groups.values(),
            key=lambda g: (g.connector_name == NO_CONNECTOR_NAME, g.connector_name.lower()),
        )
        totals = Counter()
        for group in ordered:
            totals.update(group.states)
        logger.info(
            "Connector summary",
            connectors=sum(1 for g in ordered if g.connector_id),
            targets=len(targets),
            states=dict(totals),
        )
        return ordered

    def version(self, connector: str, connector_home: Optional[Path] = None,
                connector_compartment: Optional[str] = None) -> VersionReport:
        """Compare the local connector install with the available version."""
        resolved = self.directory(connector_compartment).resolve(connector)
        record = self.client.get_connector(resolved.id)
        return build_version_report(record, connector_home)
