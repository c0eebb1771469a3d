"""Unit tests for audit trail start."""
from datetime import datetime, timezone

import pytest

from datasafe_ops.domain.models import OutcomeStatus
from datasafe_ops.exceptions import ValidationError
from datasafe_ops.execution.audit_trails import AuditTrailStart, parse_start_time, plan_trail_start, start_audit_trails

REQUEST = AuditTrailStart(start_time="2026-01-01T00:00:00Z")


def _trail(name, status, location="UNIFIED_AUDIT_TRAIL"):
    return {"id": f"ocid1.audittrail.oc1..{name}", "display-name": name, "status": status, "trail-location": location}


def _setup(fake_client, *trails):
    target = fake_client.targets["ocid1.datasafetargetdatabase.oc1..t1"]
    fake_client.dependents[target.id] = {"audit-trail": list(trails)}
    return target


class TestStartTime:
    def test_now(self):
        now = datetime(2026, 3, 4, 5, 6, 7, 890, tzinfo=timezone.utc)
        assert parse_start_time("now", now=now) == "2026-03-04T05:06:07Z"
        assert parse_start_time(None, now=now) == "2026-03-04T05:06:07Z"

    @pytest.mark.parametrize("value, expected", [
        ("2026-01-01T00:00:00Z", "2026-01-01T00:00:00Z"),
        ("2026-01-01T02:00:00+02:00", "2026-01-01T00:00:00Z"),
        ("2026-01-01", "2026-01-01T00:00:00Z"),
    ])
    def test_explicit_times_in_utc(self, value, expected):
        assert parse_start_time(value) == expected

    def test_invalid(self):
        with pytest.raises(ValidationError, match="invalid start time"):
            parse_start_time("yesterday")


class TestPlan:
    def test_classifies_by_status(self):
        plan = plan_trail_start([_trail("a", "NOT_STARTED"), _trail("b", "COLLECTING"), _trail("c", "STOPPED")])
        assert plan.to_start == ["ocid1.audittrail.oc1..a"]
        assert plan.running == ["ocid1.audittrail.oc1..b"]
        assert plan.other == {"ocid1.audittrail.oc1..c": "STOPPED"}

    def test_location_filter(self):
        trails = [_trail("a", "NOT_STARTED"), _trail("b", "NOT_STARTED", location="TABLE:AUD$")]
        assert plan_trail_start(trails, "TABLE:AUD$").to_start == ["ocid1.audittrail.oc1..b"]
        assert plan_trail_start(trails, "a").to_start == ["ocid1.audittrail.oc1..a"]


class TestStart:
    def test_dry_run_starts_nothing(self, fake_client):
        target = _setup(fake_client, _trail("a", "NOT_STARTED"))
        result = start_audit_trails(fake_client, target, REQUEST, dry_run=True)
        assert result.status == OutcomeStatus.SUCCESS
        assert result.message == "would start 1 audit trail(s)"
        assert fake_client.mutations == []

    def test_apply(self, fake_client):
        target = _setup(fake_client, _trail("a", "NOT_STARTED"), _trail("b", "NOT_STARTED"))
        request = AuditTrailStart(start_time="2026-01-01T00:00:00Z", auto_purge=True)
        result = start_audit_trails(fake_client, target, request, dry_run=False, wait_for_states=("SUCCEEDED",))
        assert result.message == "started 2 audit trail(s)"
        assert fake_client.mutations[0] == (
            "start_audit_trail", "ocid1.audittrail.oc1..a", "2026-01-01T00:00:00Z", True, ("SUCCEEDED",)
        )

    def test_already_collecting(self, fake_client):
        target = _setup(fake_client, _trail("a", "COLLECTING"))
        result = start_audit_trails(fake_client, target, REQUEST, dry_run=False)
        assert result.status == OutcomeStatus.SUCCESS
        assert result.message == "audit trail already collecting"
        assert fake_client.mutations == []

    def test_nothing_startable_is_skipped(self, fake_client):
        target = _setup(fake_client, _trail("a", "STOPPED"))
        result = start_audit_trails(fake_client, target, REQUEST, dry_run=False)
        assert result.status == OutcomeStatus.SKIPPED
        assert result.message == "no startable audit trail (STOPPED)"

    def test_no_trails(self, fake_client):
        target = _setup(fake_client)
        result = start_audit_trails(fake_client, target, REQUEST, dry_run=False)
        assert result.message == "no startable audit trail (none found)"

    def test_start_failure_fails_target(self, fake_client):
        target = _setup(fake_client, _trail("a", "NOT_STARTED"), _trail("b", "NOT_STARTED"))
        fake_client.fail_on["start_audit_trail"] = {"ocid1.audittrail.oc1..a"}
        result = start_audit_trails(fake_client, target, REQUEST, dry_run=False)
        assert result.status == OutcomeStatus.FAILED
        assert result.message == "1 of 2 audit trail(s) failed to start"
        assert ("start_audit_trail", "ocid1.audittrail.oc1..b", REQUEST.start_time, False, ()) in fake_client.mutations

    def test_listing_failure_fails_target(self, fake_client):
        target = _setup(fake_client, _trail("a", "NOT_STARTED"))
        fake_client.fail_on["list_dependents"] = {"audit-trail"}
        result = start_audit_trails(fake_client, target, REQUEST, dry_run=False)
        assert result.status == OutcomeStatus.FAILED
