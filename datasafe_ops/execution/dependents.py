"""
Dependent resource cleanup.

A target cannot be deleted while audit trails, security assessments or
security policies still reference it. One routine handles every kind;
listing and per-item failures are logged and counted, never raised.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from datasafe_ops.domain.models import Target
from datasafe_ops.domain.protocols import DataSafeClient
from datasafe_ops.exceptions import OperationalError
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)


class DependentKind(str, Enum):
    """OCI CLI resource group names of target dependents."""
    AUDIT_TRAIL = "audit-trail"
    SECURITY_ASSESSMENT = "security-assessment"
    SECURITY_POLICY = "security-policy"


@dataclass
class DependentCleanup:
    kind: DependentKind
    found: int = 0
    deleted: int = 0
    failed: int = 0
    listed: bool = True


def delete_dependents(
    client: DataSafeClient,
    kind: DependentKind,
    target: Target,
    dry_run: bool = True,
    wait_for_states: Sequence[str] = (),
) -> DependentCleanup:
    """Delete every dependent of kind for target, tolerating failures."""
    result = DependentCleanup(kind=kind)
    try:
        items = client.list_dependents(kind.value, target.id)
    except OperationalError as e:
        logger.warning("Could not list dependents", kind=kind.value, target=target.label, error=str(e))
        result.listed = False
        return result

    ids = [item.get("id") for item in items if item.get("id")]
    result.found = len(ids)
    if not ids:
        logger.debug("No dependents found", kind=kind.value, target=target.label)
        return result

    for resource_id in ids:
        if dry_run:
            logger.info("Dry-run: would delete dependent", kind=kind.value, resource_id=resource_id, target=target.label)
            continue
        try:
            client.delete_dependent(kind.value, resource_id, wait_for_states=wait_for_states)
            result.deleted += 1
        except OperationalError as e:
            result.failed += 1
            logger.error("Failed to delete dependent", kind=kind.value, resource_id=resource_id, error=str(e))

    logger.info(
        "Dependents processed",
        kind=kind.value,
        target=target.label,
        found=result.found,
        deleted=result.deleted,
        failed=result.failed,
    )
    return result
