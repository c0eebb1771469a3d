"""
Target Catalog.

Resolves a selection (explicit names/ids, a compartment scope with filters,
or a saved snapshot) into canonical Target records, in listing order.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from datasafe_ops.catalog.snapshot import check_freshness, load_snapshot, parse_age
from datasafe_ops.constants import DEFAULT_AUTO_TARGET_SUFFIX, DEFAULT_MAX_SNAPSHOT_AGE
from datasafe_ops.domain.models import LifecycleState, Target, is_ocid
from datasafe_ops.domain.protocols import DataSafeClient
from datasafe_ops.exceptions import (
    CliInvocationError,
    NoMatchingTargetsError,
    ResolutionError,
    StaleSelectionError,
    ValidationError,
)
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)

_VALID_STATES = {s.value for s in LifecycleState}


def split_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated option, trimming blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def validate_filter(pattern: Optional[str]) -> Optional["re.Pattern[str]"]:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValidationError(f"invalid filter regex: {pattern} ({e})") from e


def validate_states(states: Optional[Sequence[str]]) -> Optional[List[str]]:
    if states is None:
        return None
    normalized = [s.strip().upper() for s in states if s.strip()]
    unknown = [s for s in normalized if s not in _VALID_STATES]
    if unknown:
        raise ValidationError(f"invalid lifecycle state: {', '.join(unknown)}")
    return normalized


@dataclass(frozen=True)
class TargetSelection:
    """
    How the working set of targets is chosen.

    lifecycle_states None means "use the configured default"; an explicit
    list counts as a user-supplied filter.
    """
    targets: Sequence[str] = ()
    compartment: Optional[str] = None
    lifecycle_states: Optional[Sequence[str]] = None
    name_filter: Optional[str] = None
    exclude_auto: bool = False
    input_json: Optional[str] = None
    allow_stale_selection: bool = False
    max_snapshot_age: Optional[str] = None

    def validate(self) -> None:
        validate_filter(self.name_filter)
        validate_states(self.lifecycle_states)
        if self.max_snapshot_age is not None:
            parse_age(self.max_snapshot_age)


class TargetCatalog:
    """
    Args:
        client: Data Safe client
        root_compartment: Default scope when no compartment is given
        default_states: Lifecycle filter when the selection has none
        auto_target_suffix: Name suffix dropped by exclude_auto
        default_max_snapshot_age: Freshness limit for snapshots
    """

    def __init__(
        self,
        client: DataSafeClient,
        root_compartment: Optional[str] = None,
        default_states: Sequence[str] = (LifecycleState.ACTIVE.value,),
        auto_target_suffix: str = DEFAULT_AUTO_TARGET_SUFFIX,
        default_max_snapshot_age: str = DEFAULT_MAX_SNAPSHOT_AGE,
    ):
        self.client = client
        self.root_compartment = root_compartment
        self.default_states = list(default_states)
        self.auto_target_suffix = auto_target_suffix
        self.default_max_snapshot_age = default_max_snapshot_age
        self._compartment_ids: Dict[str, str] = {}

    def compartment_id(self, compartment: Optional[str] = None) -> str:
        """Resolve a compartment name or id, falling back to the root compartment."""
        value = compartment or self.root_compartment
        if not value:
            raise ResolutionError("no compartment specified. Use -c/--compartment or set DS_ROOT_COMP")
        if value not in self._compartment_ids:
            self._compartment_ids[value] = self.client.resolve_compartment_id(value)
        return self._compartment_ids[value]

    def resolve(
        self,
        selection: TargetSelection,
        apply: bool = False,
        default_states: Optional[Sequence[str]] = None,
    ) -> List[Target]:
        """
        Return the working set for a selection.

        default_states replaces the configured lifecycle default for this
        call; an empty sequence lists every state.

        Raises:
            ValidationError: bad filter, state or age (before any query)
            ResolutionError: unknown or ambiguous target name
            StaleSelectionError: snapshot too old, or apply without override
            NoMatchingTargetsError: a filter was supplied and nothing matched
        """
        selection.validate()

        if selection.input_json:
            targets = self._from_snapshot(selection, apply)
            return self._apply_filters(targets, selection, explicit_states=selection.lifecycle_states)

        if selection.targets:
            if selection.name_filter or selection.lifecycle_states is not None or selection.exclude_auto:
                logger.warning("Explicit target list given; ignoring filter and lifecycle options")
            return self._resolve_explicit(selection)

        compartment_id = self.compartment_id(selection.compartment)
        states = validate_states(selection.lifecycle_states)
        if states is None:
            states = list(self.default_states if default_states is None else default_states)
        logger.info("Listing targets", compartment_id=compartment_id, lifecycle_states=",".join(states) or "all")
        targets = self.client.list_targets(compartment_id, states)
        return self._apply_filters(targets, selection, explicit_states=None)

    def hydrate(self, target: Target) -> Target:
        """Fetch the full record when a listing omitted connection details."""
        if target.has_connection_info:
            return target
        return self.client.get_target(target.id)

    # ------------------------------------------------------------------

    def _from_snapshot(self, selection: TargetSelection, apply: bool) -> List[Target]:
        if selection.targets or selection.compartment:
            logger.warning("Ignoring --compartment/--targets because --input-json is set")
        snapshot = load_snapshot(selection.input_json)
        max_age = parse_age(selection.max_snapshot_age or self.default_max_snapshot_age)
        check_freshness(snapshot, max_age)
        if apply and not selection.allow_stale_selection:
            raise StaleSelectionError("Refusing --apply with --input-json without --allow-stale-selection")
        return snapshot.targets

    def _resolve_explicit(self, selection: TargetSelection) -> List[Target]:
        listing: Optional[List[Target]] = None
        resolved: List[Target] = []
        seen = set()
        for item in selection.targets:
            if is_ocid(item):
                try:
                    target = self.client.get_target(item)
                except CliInvocationError as e:
                    raise ResolutionError(f"target not found: {item}") from e
            else:
                if listing is None:
                    compartment_id = self.compartment_id(selection.compartment)
                    listing = [
                        t for t in self.client.list_targets(compartment_id)
                        if t.lifecycle_state != LifecycleState.DELETED.value
                    ]
                target = self._match_name(item, listing)
            if target.id in seen:
                continue
            seen.add(target.id)
            resolved.append(target)
        return resolved

    @staticmethod
    def _match_name(name: str, listing: Sequence[Target]) -> Target:
        matches = [t for t in listing if t.display_name == name]
        if not matches:
            raise ResolutionError(f"target not found: {name}")
        if len(matches) > 1:
            raise ResolutionError(f"target name is ambiguous: {name} ({len(matches)} matches)")
        return matches[0]

    def _apply_filters(
        self,
        targets: Sequence[Target],
        selection: TargetSelection,
        explicit_states: Optional[Sequence[str]],
    ) -> List[Target]:
        result = list(targets)
        states = validate_states(explicit_states)
        if states:
            result = [t for t in result if t.lifecycle_state in states]
        if selection.exclude_auto and self.auto_target_suffix:
            before = len(result)
            result = [t for t in result if not t.display_name.endswith(self.auto_target_suffix)]
            if before != len(result):
                logger.info("Excluded auto targets", excluded=before - len(result), suffix=self.auto_target_suffix)
        pattern = validate_filter(selection.name_filter)
        if pattern is not None:
            result = [t for t in result if pattern.search(t.display_name)]
            if not result:
                raise NoMatchingTargetsError(f"No targets matched filter regex: {selection.name_filter}")
        if not result:
            logger.warning("No targets found")
        return result
