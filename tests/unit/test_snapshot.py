"""Unit tests for target selection snapshots."""
import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from datasafe_ops.catalog.snapshot import check_freshness, load_snapshot, parse_age, save_snapshot
from datasafe_ops.exceptions import SnapshotError, StaleSelectionError, ValidationError

RECORD = {
    "id": "ocid1.datasafetargetdatabase.oc1..t1",
    "display-name": "T1",
    "lifecycle-state": "ACTIVE",
    "connection-option": {
        "connection-type": "ONPREM_CONNECTOR",
        "on-prem-connector-id": "ocid1.datasafeonpremconnector.oc1..ca",
    },
}


class TestParseAge:
    @pytest.mark.parametrize(
        "raw,seconds",
        [("30m", 1800), ("24h", 86400), ("2d", 172800), ("45s", 45), ("90", 90), (" 12H ", 43200)],
    )
    def test_units(self, raw, seconds):
        assert parse_age(raw) == timedelta(seconds=seconds)

    @pytest.mark.parametrize("raw", ["off", "none", "0", "OFF"])
    def test_disabled(self, raw):
        assert parse_age(raw) is None

    @pytest.mark.parametrize("raw", ["abc", "10w", "-5m", ""])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            parse_age(raw)


class TestLoadSnapshot:
    def test_wrapped_with_captured_at(self, tmp_path):
        path = tmp_path / "sel.json"
        path.write_text(json.dumps({"captured_at": "2026-01-01T10:00:00Z", "data": [RECORD]}))
        snapshot = load_snapshot(path)
        assert snapshot.captured_at == datetime(2026, 1, 1, 10, tzinfo=timezone.utc)
        assert [t.display_name for t in snapshot.targets] == ["T1"]
        assert snapshot.targets[0].connector_id == "ocid1.datasafeonpremconnector.oc1..ca"

    def test_bare_array_uses_mtime(self, tmp_path):
        path = tmp_path / "sel.json"
        path.write_text(json.dumps([RECORD]))
        stamp = datetime(2025, 6, 1, tzinfo=timezone.utc).timestamp()
        os.utime(path, (stamp, stamp))
        assert load_snapshot(path).captured_at == datetime(2025, 6, 1, tzinfo=timezone.utc)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SnapshotError, match="not found"):
            load_snapshot(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "sel.json"
        path.write_text("{not json")
        with pytest.raises(SnapshotError):
            load_snapshot(path)

    def test_unsupported_shape(self, tmp_path):
        path = tmp_path / "sel.json"
        path.write_text(json.dumps({"items": []}))
        with pytest.raises(SnapshotError, match="unsupported"):
            load_snapshot(path)

    def test_record_without_id(self, tmp_path):
        path = tmp_path / "sel.json"
        path.write_text(json.dumps({"data": [{"display-name": "x"}]}))
        with pytest.raises(SnapshotError):
            load_snapshot(path)


class TestFreshness:
    def _snapshot(self, tmp_path, captured_at):
        path = tmp_path / "sel.json"
        path.write_text(json.dumps({"captured_at": captured_at.isoformat(), "data": [RECORD]}))
        return load_snapshot(path)

    def test_fresh_snapshot_passes(self, tmp_path):
        now = datetime(2026, 1, 2, tzinfo=timezone.utc)
        snapshot = self._snapshot(tmp_path, now - timedelta(hours=1))
        check_freshness(snapshot, timedelta(hours=24), now=now)

    def test_stale_snapshot_rejected(self, tmp_path):
        now = datetime(2026, 1, 3, tzinfo=timezone.utc)
        snapshot = self._snapshot(tmp_path, now - timedelta(days=2))
        with pytest.raises(StaleSelectionError, match="2d old"):
            check_freshness(snapshot, timedelta(hours=24), now=now)

    def test_disabled_check(self, tmp_path):
        snapshot = self._snapshot(tmp_path, datetime(2000, 1, 1, tzinfo=timezone.utc))
        check_freshness(snapshot, None)


def test_save_then_load_keeps_capture_time(tmp_path, target_factory):
    now = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    target = target_factory("T1", connector_id="ocid1.datasafeonpremconnector.oc1..ca")
    path = save_snapshot(tmp_path / "out" / "sel.json", [target], now=now)
    snapshot = load_snapshot(path)
    assert snapshot.captured_at == now
    assert snapshot.targets[0].id == target.id
    assert snapshot.targets[0].connector_id == target.connector_id
