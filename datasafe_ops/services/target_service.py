"""
Target commands: list (with snapshot save), delete, refresh, tag update and
audit trail start.
"""
from pathlib import Path
from typing import Dict, List, Optional

from datasafe_ops.catalog.snapshot import save_snapshot
from datasafe_ops.catalog.targets import TargetSelection
from datasafe_ops.constants import STATE_NEEDS_ATTENTION
from datasafe_ops.domain.models import OutcomeStatus, RunOutcome, Target, TargetResult
from datasafe_ops.exceptions import OperationalError
from datasafe_ops.execution.audit_trails import AuditTrailStart, start_audit_trails
from datasafe_ops.execution.dependents import DependentKind, delete_dependents
from datasafe_ops.execution.executor import ExecutionOptions
from datasafe_ops.monitoring.logger import get_logger
from datasafe_ops.services.base import BaseService
from datasafe_ops.tagging.rules import TagRule, plan_tag_update

logger = get_logger(__name__)


class TargetService(BaseService):
    def list(self, selection: TargetSelection, save_json: Optional[Path] = None) -> List[Target]:
        targets = self.catalog.resolve(selection)
        if save_json is not None:
            save_snapshot(save_json, targets)
        return targets

    def delete(
        self,
        selection: TargetSelection,
        options: ExecutionOptions,
        delete_dependencies: bool = True,
    ) -> RunOutcome:
        """Delete targets, first removing their dependents unless disabled."""
        targets = self.catalog.resolve(selection, apply=options.apply, default_states=(STATE_NEEDS_ATTENTION,))
        executor = self.executor(options)
        dependent_failures = 0

        def handle(target: Target) -> TargetResult:
            nonlocal dependent_failures
            if delete_dependencies:
                for kind in DependentKind:
                    cleanup = delete_dependents(
                        self.client,
                        kind,
                        target,
                        dry_run=not options.apply,
                        wait_for_states=options.wait_for_states,
                    )
                    dependent_failures += cleanup.failed
            return executor.apply_action(
                target,
                "delete target",
                lambda: self.client.delete_target(target.id, wait_for_states=options.wait_for_states),
            )

        outcome = executor.run_batch(targets, handle, label=lambda t: t.label)
        if dependent_failures:
            logger.warning("Some dependents could not be deleted", failed=dependent_failures)
        return outcome

    def refresh(self, selection: TargetSelection, options: ExecutionOptions) -> RunOutcome:
        """Refresh targets (default: NEEDS_ATTENTION), async unless waiting."""
        targets = self.catalog.resolve(selection, apply=options.apply, default_states=(STATE_NEEDS_ATTENTION,))
        executor = self.executor(options)
        mode = "waiting for completion" if options.wait_for_states else "async"
        return executor.run_batch(
            targets,
            lambda t: executor.apply_action(
                t,
                f"refresh target ({mode})",
                lambda: self.client.refresh_target(t.id, wait_for_states=options.wait_for_states),
            ),
            label=lambda t: t.label,
        )

    def update_tags(self, selection: TargetSelection, options: ExecutionOptions, rule: TagRule) -> RunOutcome:
        """Set environment tags from each target's compartment name."""
        targets = self.catalog.resolve(selection, apply=options.apply)
        executor = self.executor(options)
        compartment_names: Dict[str, str] = {}

        def handle(target: Target) -> TargetResult:
            try:
                if options.apply:
                    # Tags may have been edited since listing; the update replaces all of them
                    target = self.client.get_target(target.id)
                if target.compartment_id not in compartment_names:
                    compartment_names[target.compartment_id] = self.client.get_compartment_name(target.compartment_id)
            except OperationalError as e:
                logger.error("Could not read target for tagging", target=target.label, error=str(e))
                return TargetResult(target, OutcomeStatus.FAILED, str(e))

            update = plan_tag_update(rule, target, compartment_names[target.compartment_id])
            if update.is_noop:
                logger.info("Tags unchanged", target=target.label)
                return TargetResult(target, OutcomeStatus.SUCCESS, "tags unchanged")
            return executor.apply_action(
                target,
                update.describe(),
                lambda: self.client.update_target_tags(
                    target.id, update.defined_tags, wait_for_states=options.wait_for_states
                ),
            )

        return executor.run_batch(targets, handle, label=lambda t: t.label)

    def start_audit_trails(
        self,
        selection: TargetSelection,
        options: ExecutionOptions,
        request: AuditTrailStart,
    ) -> RunOutcome:
        """Start the audit trails of each selected target."""
        targets = self.catalog.resolve(selection, apply=options.apply)
        executor = self.executor(options)
        return executor.run_batch(
            targets,
            lambda t: start_audit_trails(
                self.client,
                t,
                request,
                dry_run=not options.apply,
                wait_for_states=options.wait_for_states,
            ),
            label=lambda t: t.label,
        )
