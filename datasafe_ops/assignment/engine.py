"""
Assignment Engine.

Computes the desired connector for every target in the working set:

- set:        one destination for all targets
- migrate:    targets on the source connector move to the destination
- distribute: the k-th target (1-indexed, catalog order) goes to
              connector (k-1) mod N

A target already on its desired connector becomes a NOOP decision.
Distribution follows listing order as returned by the catalog and the
connector listing; it is stable only while both are unchanged.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from datasafe_ops.assignment.modes import ConnectorMode, DistributeMode, MigrateMode, SetMode
from datasafe_ops.catalog.connectors import ConnectorDirectory
from datasafe_ops.catalog.targets import TargetCatalog, TargetSelection
from datasafe_ops.domain.models import Action, AssignmentDecision, Connector, Target
from datasafe_ops.exceptions import ResolutionError, ValidationError
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AssignmentPlan:
    mode: ConnectorMode
    decisions: List[AssignmentDecision] = field(default_factory=list)
    connectors: List[Connector] = field(default_factory=list)
    source: Optional[Connector] = None

    @property
    def updates(self) -> List[AssignmentDecision]:
        return [d for d in self.decisions if d.action == Action.UPDATE]

    @property
    def noops(self) -> List[AssignmentDecision]:
        return [d for d in self.decisions if d.action == Action.NOOP]

    def distribution(self) -> Dict[str, int]:
        """Targets decided per connector name, zero counts included."""
        counts: Dict[str, int] = {c.display_name or c.id: 0 for c in self.connectors}
        for decision in self.decisions:
            counts[decision.desired_connector_name] = counts.get(decision.desired_connector_name, 0) + 1
        return counts


class AssignmentEngine:
    def __init__(self, catalog: TargetCatalog, directory: ConnectorDirectory):
        self.catalog = catalog
        self.directory = directory

    def plan(self, mode: ConnectorMode, selection: TargetSelection, apply: bool = False) -> AssignmentPlan:
        """Resolve connectors and targets, then decide per target."""
        selection.validate()
        logger.info("Operation mode", mode=mode.name)
        if isinstance(mode, SetMode):
            return self._plan_set(mode, selection, apply)
        if isinstance(mode, MigrateMode):
            return self._plan_migrate(mode, selection, apply)
        if isinstance(mode, DistributeMode):
            return self._plan_distribute(mode, selection, apply)
        raise ValidationError(f"unsupported connector mode: {mode!r}")

    # ------------------------------------------------------------------

    def _working_set(self, selection: TargetSelection, apply: bool) -> List[Target]:
        targets = self.catalog.resolve(selection, apply=apply)
        return [self.catalog.hydrate(t) for t in targets]

    def _decide(self, target: Target, connector: Connector) -> AssignmentDecision:
        return AssignmentDecision.for_target(
            target,
            desired_connector_id=connector.id,
            desired_connector_name=connector.display_name or connector.id,
            current_connector_name=self.directory.name_for(target.connector_id),
        )

    def _plan_set(self, mode: SetMode, selection: TargetSelection, apply: bool) -> AssignmentPlan:
        destination = self.directory.resolve(mode.destination)
        logger.info("Target connector", name=destination.display_name, connector_id=destination.id)
        targets = self._working_set(selection, apply)
        decisions = [self._decide(t, destination) for t in targets]
        return AssignmentPlan(mode=mode, decisions=decisions, connectors=[destination])

    def _plan_migrate(self, mode: MigrateMode, selection: TargetSelection, apply: bool) -> AssignmentPlan:
        source = self.directory.resolve(mode.source)
        destination = self.directory.resolve(mode.destination)
        if source.id == destination.id:
            raise ValidationError("source and target connectors must be different")
        logger.info(
            "Migrating connector",
            source=source.display_name,
            source_id=source.id,
            destination=destination.display_name,
            destination_id=destination.id,
        )
        targets = [t for t in self._working_set(selection, apply) if t.connector_id == source.id]
        if not targets:
            logger.warning("No targets found using source connector", source=source.display_name)
        decisions = [self._decide(t, destination) for t in targets]
        return AssignmentPlan(mode=mode, decisions=decisions, connectors=[destination], source=source)

    def _plan_distribute(self, mode: DistributeMode, selection: TargetSelection, apply: bool) -> AssignmentPlan:
        connectors = self.directory.list(exclude=mode.exclude)
        if not connectors:
            raise ResolutionError("no active connectors found")
        logger.info(
            "Distributing across connectors",
            connectors=len(connectors),
            names=",".join(c.display_name for c in connectors),
        )
        targets = self._working_set(selection, apply)
        decisions = [
            self._decide(target, connectors[index % len(connectors)])
            for index, target in enumerate(targets)
        ]
        return AssignmentPlan(mode=mode, decisions=decisions, connectors=connectors)


def distribution_spread(plan: AssignmentPlan) -> int:
    """Max minus min targets per connector."""
    values = list(plan.distribution().values())
    return (max(values) - min(values)) if values else 0
