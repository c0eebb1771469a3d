"""
Environment tagging.

Targets carry DBSec defined tags describing where they run. The environment
is derived from the compartment name (cmp-<org>-<env>-projects by default);
the remaining keys get a placeholder only when they are missing, so values
set by hand are kept. The OCI update replaces the whole defined-tags map,
which is why every other namespace is carried over unchanged.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from datasafe_ops.config.config import TaggingConfig
from datasafe_ops.domain.models import Target
from datasafe_ops.exceptions import ValidationError


@dataclass(frozen=True)
class TagRule:
    namespace: str
    environment_key: str
    placeholder_keys: Tuple[str, ...]
    compartment_pattern: str
    environments: Tuple[str, ...]
    default_value: str

    def __post_init__(self):
        if not self.namespace or not self.environment_key:
            raise ValidationError("tag namespace and environment key must not be empty")
        try:
            compiled = re.compile(self.compartment_pattern)
        except re.error as e:
            raise ValidationError(f"invalid compartment pattern: {self.compartment_pattern} ({e})") from e
        if compiled.groups < 1:
            raise ValidationError("compartment pattern needs a capture group for the environment")

    @classmethod
    def from_config(
        cls,
        config: TaggingConfig,
        namespace: Optional[str] = None,
        environment_key: Optional[str] = None,
        stage_key: Optional[str] = None,
        type_key: Optional[str] = None,
        classification_key: Optional[str] = None,
    ) -> "TagRule":
        """Build from the tagging section; CLI values win when given."""
        return cls(
            namespace=namespace or config.namespace,
            environment_key=environment_key or config.environment_key,
            placeholder_keys=(
                stage_key or config.stage_key,
                type_key or config.type_key,
                classification_key or config.classification_key,
            ),
            compartment_pattern=config.compartment_pattern,
            environments=tuple(config.environments),
            default_value=config.default_value,
        )

    def environment_for(self, compartment_name: str) -> str:
        match = re.match(self.compartment_pattern, compartment_name or "")
        if match and match.group(1) in self.environments:
            return match.group(1)
        return self.default_value

    def desired_tags(self, target: Target, compartment_name: str) -> Dict[str, Dict[str, Any]]:
        tags = {ns: dict(values) for ns, values in target.defined_tags.items()}
        namespace = dict(tags.get(self.namespace, {}))
        namespace[self.environment_key] = self.environment_for(compartment_name)
        for key in self.placeholder_keys:
            namespace.setdefault(key, self.default_value)
        tags[self.namespace] = namespace
        return tags


@dataclass(frozen=True)
class TagUpdate:
    """Tag change for one target; empty changes means nothing to do."""
    target: Target
    defined_tags: Dict[str, Dict[str, Any]]
    changes: Dict[str, Tuple[Optional[Any], Any]] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return not self.changes

    def describe(self) -> str:
        parts = [f"{key}={new}" for key, (old, new) in sorted(self.changes.items())]
        return "set tags " + ", ".join(parts)


def plan_tag_update(rule: TagRule, target: Target, compartment_name: str) -> TagUpdate:
    desired = rule.desired_tags(target, compartment_name)
    current = target.defined_tags.get(rule.namespace, {})
    changes = {
        f"{rule.namespace}.{key}": (current.get(key), value)
        for key, value in desired[rule.namespace].items()
        if current.get(key) != value
    }
    return TagUpdate(target=target, defined_tags=desired, changes=changes)
