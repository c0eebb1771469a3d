"""
Target selection snapshots.

A snapshot is a JSON file holding a previously resolved target listing,
either a bare array or `{"captured_at": ..., "data": [...]}`. The capture
time is taken from `captured_at` when present, otherwise from the file's
modification time.
"""
import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from datasafe_ops.domain.models import Target
from datasafe_ops.exceptions import SnapshotError, StaleSelectionError, ValidationError
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)

_AGE_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
_AGE_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}
# Values that switch the freshness check off
_AGE_DISABLED = {"off", "none", "0"}


def parse_age(value: str) -> Optional[timedelta]:
    """
    Parse an age such as 30m, 24h, 7d or a plain number of seconds.

    Returns None when the check is disabled ("off", "none", "0").
    """
    text = str(value).strip().lower()
    if text in _AGE_DISABLED:
        return None
    match = _AGE_RE.match(text)
    if not match:
        raise ValidationError(f"invalid snapshot age: {value!r} (expected e.g. 30m, 24h, 7d)")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _AGE_UNITS[unit.lower()])


def _parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Snapshot:
    path: Path
    captured_at: datetime
    targets: List[Target]

    def age(self, now: Optional[datetime] = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        return now - self.captured_at


def load_snapshot(path: str | Path) -> Snapshot:
    path = Path(path).expanduser()
    if not path.is_file():
        raise SnapshotError(f"input JSON file not found: {path}")
    try:
        payload = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise SnapshotError(f"cannot read input JSON {path}: {e}") from e

    captured_at = None
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict) and isinstance(payload.get("data"), list):
        records = payload["data"]
        if payload.get("captured_at"):
            try:
                captured_at = _parse_timestamp(str(payload["captured_at"]))
            except ValueError as e:
                raise SnapshotError(f"invalid captured_at in {path}: {payload['captured_at']!r}") from e
    else:
        raise SnapshotError(f"unsupported input JSON shape in {path}: expected an array or {{\"data\": [...]}}")

    if captured_at is None:
        captured_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

    targets = []
    for record in records:
        if not isinstance(record, dict) or not record.get("id"):
            raise SnapshotError(f"snapshot record without id in {path}")
        targets.append(Target.from_oci(record))
    logger.info("Loaded target snapshot", path=str(path), targets=len(targets), captured_at=captured_at.isoformat())
    return Snapshot(path=path, captured_at=captured_at, targets=targets)


def check_freshness(snapshot: Snapshot, max_age: Optional[timedelta], now: Optional[datetime] = None) -> None:
    """Raise StaleSelectionError when the snapshot is older than max_age."""
    if max_age is None:
        return
    age = snapshot.age(now)
    if age > max_age:
        raise StaleSelectionError(
            f"input JSON snapshot {snapshot.path} is {_format_age(age)} old (max {_format_age(max_age)})"
        )


def _format_age(delta: timedelta) -> str:
    seconds = int(delta.total_seconds())
    if seconds >= 86400 and seconds % 86400 == 0:
        return f"{seconds // 86400}d"
    if seconds >= 3600:
        return f"{seconds / 3600:.1f}h"
    if seconds >= 60:
        return f"{seconds // 60}m"
    return f"{seconds}s"


def save_snapshot(path: str | Path, targets: Sequence[Target], now: Optional[datetime] = None) -> Path:
    """Persist a selection for a later --input-json run."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    captured_at = (now or datetime.now(timezone.utc)).isoformat()
    payload = {"captured_at": captured_at, "data": [t.to_oci() for t in targets]}
    path.write_text(json.dumps(payload, indent=2) + "\n")
    logger.info("Saved target snapshot", path=str(path), targets=len(targets))
    return path
