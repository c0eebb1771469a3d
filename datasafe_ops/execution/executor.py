"""
Change Executor.

Dry-run logs every decision with its "would change" description and issues
no mutation, counting the target as successful. Apply issues exactly one
mutation per non-NOOP decision, optionally waiting for the given work
request states. A failed mutation is recorded and the batch continues
unless stop_on_error is set.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Collection, Iterable, Optional, Sequence, Tuple, TypeVar

from datasafe_ops.constants import CREDENTIAL_UPDATABLE_STATES, DEFAULT_WAIT_STATES
from datasafe_ops.credentials.files import CredentialFileSet
from datasafe_ops.domain.models import (
    Action,
    AssignmentDecision,
    Credential,
    OutcomeStatus,
    RunOutcome,
    Target,
    TargetResult,
)
from datasafe_ops.domain.protocols import DataSafeClient
from datasafe_ops.exceptions import OperationalError
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ExecutionMode(str, Enum):
    DRY_RUN = "dry_run"
    APPLY = "apply"


@dataclass(frozen=True)
class ExecutionOptions:
    mode: ExecutionMode = ExecutionMode.DRY_RUN
    # Empty means fire-and-forget
    wait_for_states: Tuple[str, ...] = ()
    stop_on_error: bool = False

    @property
    def apply(self) -> bool:
        return self.mode == ExecutionMode.APPLY


class ChangeExecutor:
    def __init__(self, client: DataSafeClient, options: ExecutionOptions):
        self.client = client
        self.options = options

    # ------------------------------------------------------------------
    # Per-target operations
    # ------------------------------------------------------------------

    def apply_connection(self, decision: AssignmentDecision) -> TargetResult:
        """Reassign a target's connector, skipping targets already on it."""
        target = decision.target
        logger.info(
            "Connector change",
            target=target.label,
            current=decision.current_connector_name,
            desired=decision.desired_connector_name,
        )

        if decision.action == Action.NOOP:
            logger.info("Already using target connector, skipping", target=target.label)
            return TargetResult(target, OutcomeStatus.SUCCESS, "already assigned")

        if not self.options.apply:
            logger.info("Dry-run: " + decision.describe(), target=target.label)
            return TargetResult(target, OutcomeStatus.SUCCESS, decision.describe())

        try:
            # Re-read so a change made since listing is not repeated
            current = self.client.get_target(target.id)
            if current.has_connection_info and current.connector_id == decision.desired_connector_id:
                logger.info("Already using target connector, skipping", target=target.label)
                return TargetResult(target, OutcomeStatus.SUCCESS, "already assigned")
            self.client.update_target_connection(
                target.id,
                decision.desired_connector_id,
                wait_for_states=self.options.wait_for_states,
            )
        except OperationalError as e:
            logger.error("Failed to update connector", target=target.label, error=str(e))
            return TargetResult(target, OutcomeStatus.FAILED, str(e))

        logger.info("Connector updated", target=target.label, connector=decision.desired_connector_name)
        return TargetResult(target, OutcomeStatus.SUCCESS, "updated")

    def apply_credentials(
        self,
        target: Target,
        credential: Credential,
        credential_files: CredentialFileSet,
        updatable_states: Collection[str] = CREDENTIAL_UPDATABLE_STATES,
    ) -> TargetResult:
        """Update a target's database credentials if its state allows it."""
        state = target.lifecycle_state
        if self.options.apply:
            try:
                state = self.client.get_target(target.id).lifecycle_state or state
            except OperationalError as e:
                logger.error("Failed to read target state", target=target.label, error=str(e))
                return TargetResult(target, OutcomeStatus.FAILED, str(e))

        if state not in updatable_states:
            logger.warning("Target not updatable, skipping", target=target.label, lifecycle_state=state)
            return TargetResult(target, OutcomeStatus.SKIPPED, f"not updatable ({state})")

        if not self.options.apply:
            logger.info(
                "Dry-run: would update credentials",
                target=target.label,
                user=credential.user,
                scope=credential.scope.value,
            )
            return TargetResult(target, OutcomeStatus.SUCCESS, f"would update credentials for {credential.user}")

        try:
            path = credential_files.path_for(credential)
            self.client.update_target_credentials(target.id, path, wait_for_states=self.options.wait_for_states)
        except OperationalError as e:
            logger.error("Failed to update credentials", target=target.label, error=str(e))
            return TargetResult(target, OutcomeStatus.FAILED, str(e))

        logger.info("Credentials updated", target=target.label, user=credential.user)
        return TargetResult(target, OutcomeStatus.SUCCESS, "updated")

    def apply_action(self, target: Target, description: str, action: Callable[[], object]) -> TargetResult:
        """Run a single mutation (refresh, delete) under the dry-run contract."""
        if not self.options.apply:
            logger.info(f"Dry-run: would {description}", target=target.label)
            return TargetResult(target, OutcomeStatus.SUCCESS, f"would {description}")
        try:
            action()
        except OperationalError as e:
            logger.error(f"Failed to {description}", target=target.label, error=str(e))
            return TargetResult(target, OutcomeStatus.FAILED, str(e))
        logger.info(f"Done: {description}", target=target.label)
        return TargetResult(target, OutcomeStatus.SUCCESS, description)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def run_batch(
        self,
        items: Sequence[T],
        handler: Callable[[T], TargetResult],
        label: Optional[Callable[[T], str]] = None,
    ) -> RunOutcome:
        """Process items strictly in order, one blocking call at a time."""
        outcome = RunOutcome(applied=self.options.apply)
        total = len(items)
        for index, item in enumerate(items, start=1):
            name = label(item) if label else str(item)
            logger.info(f"[{index}/{total}] Processing", target=name)
            result = outcome.record(handler(item))
            if result.status == OutcomeStatus.FAILED and self.options.stop_on_error:
                logger.error("Stopping on first error", target=name, remaining=total - index)
                break
        self.log_summary(outcome)
        return outcome

    @staticmethod
    def log_summary(outcome: RunOutcome, operation: str = "Operation") -> None:
        logger.info(
            f"{operation} completed",
            success=outcome.success,
            failed=outcome.failed,
            skipped=outcome.skipped,
            applied=outcome.applied,
        )
        if not outcome.applied:
            logger.info("Dry-run mode: no changes applied. Use --apply to execute.")


def wait_states(wait: bool, states: Iterable[str]) -> Tuple[str, ...]:
    """Combine --wait and repeated --wait-for-state into one tuple."""
    selected = [s.upper() for s in states if s]
    if wait and not selected:
        selected = list(DEFAULT_WAIT_STATES)
    return tuple(dict.fromkeys(selected))
