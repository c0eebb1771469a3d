"""
Audit trail start.

Trails are listed fresh for every target. Trails that were never started
are started from the collection start time; a trail that is already
collecting needs nothing. Stopped trails are left alone (they are resumed,
not started).
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from datasafe_ops.constants import AUDIT_TRAIL_RUNNING_STATUSES, AUDIT_TRAIL_STARTABLE_STATUSES
from datasafe_ops.domain.models import OutcomeStatus, Target, TargetResult
from datasafe_ops.domain.protocols import DataSafeClient
from datasafe_ops.exceptions import OperationalError, ValidationError
from datasafe_ops.execution.dependents import DependentKind
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)


def parse_start_time(value: Optional[str], now: Optional[datetime] = None) -> str:
    """'now' (default) or an ISO 8601 / RFC 3339 time, returned as UTC Z time."""
    if not value or value.strip().lower() == "now":
        moment = now or datetime.now(timezone.utc)
    else:
        try:
            moment = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"invalid start time: {value} (use 'now' or RFC 3339)") from e
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class AuditTrailStart:
    start_time: str
    auto_purge: bool = False
    # Trail location, display name or OCID; None means every trail
    trail_location: Optional[str] = None


@dataclass
class TrailPlan:
    to_start: List[str] = field(default_factory=list)
    running: List[str] = field(default_factory=list)
    other: Dict[str, str] = field(default_factory=dict)


def _matches(trail: Dict[str, Any], location: Optional[str]) -> bool:
    if not location:
        return True
    return location in (trail.get("trail-location"), trail.get("display-name"), trail.get("id"))


def plan_trail_start(trails: Sequence[Dict[str, Any]], trail_location: Optional[str] = None) -> TrailPlan:
    plan = TrailPlan()
    for trail in trails:
        trail_id = trail.get("id")
        if not trail_id or not _matches(trail, trail_location):
            continue
        status = (trail.get("status") or "").upper()
        if status in AUDIT_TRAIL_STARTABLE_STATUSES:
            plan.to_start.append(trail_id)
        elif status in AUDIT_TRAIL_RUNNING_STATUSES:
            plan.running.append(trail_id)
        else:
            plan.other[trail_id] = status or "UNKNOWN"
    return plan


def start_audit_trails(
    client: DataSafeClient,
    target: Target,
    request: AuditTrailStart,
    dry_run: bool = True,
    wait_for_states: Sequence[str] = (),
) -> TargetResult:
    """Start every startable trail of target; one failed start fails the target."""
    try:
        trails = client.list_dependents(DependentKind.AUDIT_TRAIL.value, target.id)
    except OperationalError as e:
        logger.error("Could not list audit trails", target=target.label, error=str(e))
        return TargetResult(target, OutcomeStatus.FAILED, str(e))

    plan = plan_trail_start(trails, request.trail_location)
    if not plan.to_start:
        if plan.running:
            logger.info("Audit trail already collecting", target=target.label, trails=len(plan.running))
            return TargetResult(target, OutcomeStatus.SUCCESS, "audit trail already collecting")
        detail = ", ".join(sorted(set(plan.other.values()))) or "none found"
        logger.warning("No startable audit trail", target=target.label, statuses=detail)
        return TargetResult(target, OutcomeStatus.SKIPPED, f"no startable audit trail ({detail})")

    count = len(plan.to_start)
    if dry_run:
        logger.info(
            "Dry-run: would start audit trails",
            target=target.label,
            trails=count,
            start_time=request.start_time,
            auto_purge=request.auto_purge,
        )
        return TargetResult(target, OutcomeStatus.SUCCESS, f"would start {count} audit trail(s)")

    failed = 0
    for trail_id in plan.to_start:
        try:
            client.start_audit_trail(
                trail_id,
                request.start_time,
                auto_purge=request.auto_purge,
                wait_for_states=wait_for_states,
            )
        except OperationalError as e:
            failed += 1
            logger.error("Failed to start audit trail", target=target.label, audit_trail_id=trail_id, error=str(e))

    if failed:
        return TargetResult(target, OutcomeStatus.FAILED, f"{failed} of {count} audit trail(s) failed to start")
    logger.info("Audit trails started", target=target.label, trails=count)
    return TargetResult(target, OutcomeStatus.SUCCESS, f"started {count} audit trail(s)")
