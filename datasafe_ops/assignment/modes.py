"""
Connector assignment modes.

Exactly one mode is built per run, each carrying only the arguments it
needs, so invalid combinations cannot be expressed.
"""
from dataclasses import dataclass
from typing import Tuple, Union

from datasafe_ops.exceptions import ValidationError


@dataclass(frozen=True)
class SetMode:
    """Assign one destination connector to every target."""
    destination: str

    def __post_init__(self):
        if not self.destination:
            raise ValidationError("set mode requires --target-connector")

    @property
    def name(self) -> str:
        return "set"


@dataclass(frozen=True)
class MigrateMode:
    """Move targets currently on source to destination."""
    source: str
    destination: str

    def __post_init__(self):
        if not self.source:
            raise ValidationError("migrate mode requires --source-connector")
        if not self.destination:
            raise ValidationError("migrate mode requires --target-connector")
        if self.source == self.destination:
            raise ValidationError("source and target connectors must be different")

    @property
    def name(self) -> str:
        return "migrate"


@dataclass(frozen=True)
class DistributeMode:
    """Round-robin targets over all ACTIVE connectors not excluded."""
    exclude: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return "distribute"


ConnectorMode = Union[SetMode, MigrateMode, DistributeMode]
