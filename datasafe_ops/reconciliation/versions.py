"""
Connector Version Reconciliation.

Compares the locally installed connector version with the version the
service offers:

    LOCAL_VERSION (setup.py in the connector home)
         ↓
    AVAILABLE_VERSION (connector record: available-version, or lifecycle-details)
         ↓
    ORDER (EQUAL / LESS / GREATER)

Advisory only: the result is reported, it never drives control flow.
"""
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from datasafe_ops.domain.models import Connector
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)

_LOCAL_VERSION_RE = re.compile(
    r"""^\s*(?:version|__version__)\s*=\s*['"]([0-9]+\.[0-9]+\.[0-9]+(?:-[A-Za-z0-9]+)?)['"]""",
    re.MULTILINE,
)
_TRIPLE_RE = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+")
_LEADING_DIGITS = re.compile(r"^\d+")


class VersionOrder(str, Enum):
    """Ordering of the first version relative to the second."""
    EQUAL = "equal"
    LESS = "less"
    GREATER = "greater"


def parse_version(version: str) -> Tuple[int, int, int]:
    """
    Parse major.minor.patch, ignoring any -prerelease suffix.

    Missing or non-numeric components count as 0.
    """
    core = version.strip().split("-", 1)[0]
    parts = core.split(".")
    numbers = []
    for index in range(3):
        part = parts[index] if index < len(parts) else ""
        match = _LEADING_DIGITS.match(part)
        numbers.append(int(match.group(0)) if match else 0)
    return numbers[0], numbers[1], numbers[2]


def compare_versions(a: str, b: str) -> VersionOrder:
    """Compare a to b component by component, left to right."""
    for left, right in zip(parse_version(a), parse_version(b)):
        if left < right:
            return VersionOrder.LESS
        if left > right:
            return VersionOrder.GREATER
    return VersionOrder.EQUAL


def read_local_connector_version(connector_home: Path) -> Optional[str]:
    """Version declared in <connector_home>/setup.py, if any."""
    setup_py = Path(connector_home).expanduser() / "setup.py"
    if not setup_py.is_file():
        logger.debug("setup.py not found", path=str(setup_py))
        return None
    match = _LOCAL_VERSION_RE.search(setup_py.read_text(errors="replace"))
    if not match:
        logger.debug("Unable to determine local version from setup.py", path=str(setup_py))
        return None
    return match.group(1)


def extract_available_version(connector: Connector) -> Optional[str]:
    if connector.available_version:
        return connector.available_version
    if connector.lifecycle_details:
        match = _TRIPLE_RE.search(connector.lifecycle_details)
        if match:
            return match.group(0)
    return None


@dataclass(frozen=True)
class VersionReport:
    connector: Connector
    local_version: Optional[str]
    available_version: Optional[str]

    @property
    def order(self) -> Optional[VersionOrder]:
        if not self.local_version or not self.available_version:
            return None
        return compare_versions(self.local_version, self.available_version)

    @property
    def status(self) -> str:
        order = self.order
        if order is None:
            return "cannot compare versions (insufficient version information)"
        if order == VersionOrder.EQUAL:
            return "local version is up to date"
        if order == VersionOrder.LESS:
            return f"update available ({self.local_version} -> {self.available_version})"
        return f"local version is newer than online ({self.local_version} > {self.available_version})"

    def to_dict(self) -> dict:
        return {
            "connector": self.connector.display_name or self.connector.id,
            "connector_id": self.connector.id,
            "local_version": self.local_version,
            "available_version": self.available_version,
            "order": self.order.value if self.order else None,
            "status": self.status,
        }


def build_version_report(connector: Connector, connector_home: Optional[Path]) -> VersionReport:
    local = read_local_connector_version(connector_home) if connector_home else None
    report = VersionReport(connector=connector, local_version=local, available_version=extract_available_version(connector))
    logger.info(
        "Connector version check",
        connector=connector.display_name,
        local_version=report.local_version or "UNKNOWN",
        available_version=report.available_version or "UNKNOWN",
        status=report.status,
    )
    return report
