"""
Configuration models for datasafe-ops.

Uses Pydantic for validation and type safety. The resulting Config is
immutable: it is built once at startup and passed to every component, and
CLI flags produce a new object through ``Config.with_overrides``.

Load order (lowest to highest):
    model defaults -> YAML file -> legacy environment variables
    -> DSOPS_<SECTION>__<FIELD> variables -> CLI overrides
"""
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from datasafe_ops.constants import (
    DEFAULT_AUTO_TARGET_SUFFIX,
    DEFAULT_CLI_TIMEOUT,
    DEFAULT_COMMON_USER_PREFIX,
    DEFAULT_COMPARTMENT_ENV_PATTERN,
    DEFAULT_ENVIRONMENTS,
    DEFAULT_MAX_SNAPSHOT_AGE,
    DEFAULT_READ_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_ROOT_NAME_PATTERN,
    DEFAULT_TAG_NAMESPACE,
    ROOT_CONTAINER_TAG_KEYS,
    UNDEFINED_TAG_VALUE,
)
from datasafe_ops.exceptions import ValidationError

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"
ENV_PREFIX = "DSOPS_"


def _section_config(section: str) -> SettingsConfigDict:
    return SettingsConfigDict(env_prefix=f"{ENV_PREFIX}{section.upper()}__", extra="ignore", frozen=True)


class OciConfig(BaseSettings):
    """OCI CLI invocation settings."""
    model_config = _section_config("oci")

    cli_path: str = "oci"
    profile: Optional[str] = None
    region: Optional[str] = None
    config_file: Optional[str] = None
    timeout_seconds: int = Field(default=DEFAULT_CLI_TIMEOUT, ge=10, le=3600)
    read_retries: int = Field(default=DEFAULT_READ_RETRIES, ge=0, le=10, description="Retries for list/get calls")
    retry_base_delay: float = Field(default=DEFAULT_RETRY_BASE_DELAY, ge=0.0, le=60.0)


class ScopeConfig(BaseSettings):
    """Compartments used for target and connector lookups."""
    model_config = _section_config("scope")

    root_compartment: Optional[str] = None
    # Falls back to the target compartment, then root_compartment
    connector_compartment: Optional[str] = None


class CredentialsConfig(BaseSettings):
    """Credential defaults. Secrets here are never logged."""
    model_config = _section_config("credentials")

    user: Optional[str] = None
    secret: Optional[str] = Field(default=None, repr=False)
    root_secret: Optional[str] = Field(default=None, repr=False)
    common_user_prefix: str = DEFAULT_COMMON_USER_PREFIX
    root_name_pattern: str = DEFAULT_ROOT_NAME_PATTERN
    root_tag_keys: List[str] = Field(default_factory=lambda: list(ROOT_CONTAINER_TAG_KEYS))
    secret_file: Optional[str] = None
    secret_dirs: List[str] = Field(default_factory=list, description="Searched in order for <user>_pwd.b64")
    no_prompt: bool = False

    @field_validator("root_name_pattern")
    @classmethod
    def _check_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid root_name_pattern: {e}") from e
        return v


class CatalogConfig(BaseSettings):
    """Target selection defaults."""
    model_config = _section_config("catalog")

    lifecycle_states: List[str] = Field(default_factory=lambda: ["ACTIVE"])
    max_snapshot_age: str = DEFAULT_MAX_SNAPSHOT_AGE
    auto_target_suffix: str = DEFAULT_AUTO_TARGET_SUFFIX


class ExecutionConfig(BaseSettings):
    """Change execution defaults."""
    model_config = _section_config("execution")

    # Empty means fire-and-forget
    wait_for_state: List[str] = Field(default_factory=list)
    stop_on_error: bool = False


class TaggingConfig(BaseSettings):
    """Defined tags written by `targets update-tags`."""
    model_config = _section_config("tagging")

    namespace: str = DEFAULT_TAG_NAMESPACE
    environment_key: str = "Environment"
    stage_key: str = "ContainerStage"
    type_key: str = "ContainerType"
    classification_key: str = "Classification"
    # First group is the environment, e.g. cmp-<org>-<env>-projects
    compartment_pattern: str = DEFAULT_COMPARTMENT_ENV_PATTERN
    environments: List[str] = Field(default_factory=lambda: list(DEFAULT_ENVIRONMENTS))
    default_value: str = UNDEFINED_TAG_VALUE

    @field_validator("compartment_pattern")
    @classmethod
    def _check_pattern(cls, v: str) -> str:
        try:
            compiled = re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid compartment_pattern: {e}") from e
        if compiled.groups < 1:
            raise ValueError("compartment_pattern needs a capture group for the environment")
        return v


class MonitoringConfig(BaseSettings):
    """Logging configuration."""
    model_config = _section_config("monitoring")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Optional[str] = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class Config(BaseSettings):
    """Main configuration class."""
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    oci: OciConfig = Field(default_factory=OciConfig)
    scope: ScopeConfig = Field(default_factory=ScopeConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    tagging: TaggingConfig = Field(default_factory=TaggingConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # DSOPS_* variables override values passed in from YAML / legacy env
        return env_settings, init_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, yaml_path: str | Path, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Load configuration from YAML file."""
        environ = os.environ if environ is None else environ
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path, "r") as f:
            raw_content = f.read()

        config_dict = _parse_yaml(raw_content, environ)
        return cls(**_deep_merge(config_dict, legacy_env_overrides(environ)))

    def with_overrides(self, **sections: Dict[str, Any]) -> "Config":
        """
        Return a new Config with per-section values replaced.

        None values are ignored so unset CLI flags keep the loaded value.
        Each changed section is re-validated.

        Raises:
            ValidationError: If an override is not a valid value for its field
        """
        updates = {}
        for section, values in sections.items():
            current = getattr(self, section)
            changed = {k: v for k, v in values.items() if v is not None}
            if changed:
                try:
                    updates[section] = type(current).model_validate({**current.model_dump(), **changed})
                except ValueError as e:
                    raise ValidationError(f"invalid {section} option: {e}") from e
        if not updates:
            return self
        return self.model_copy(update=updates)


def _parse_yaml(raw_content: str, environ: Mapping[str, str]) -> Dict[str, Any]:
    # Regex to find ${VAR} or $VAR
    pattern = re.compile(r'\$\{([^}]+)\}|\$([a-zA-Z_][a-zA-Z0-9_]*)')

    def replace_match(match):
        var_name = match.group(1) or match.group(2)
        return environ.get(var_name, match.group(0))  # Return original if not found

    expanded_content = pattern.sub(replace_match, raw_content)
    config_dict = yaml.safe_load(expanded_content) or {}
    if not isinstance(config_dict, dict):
        raise ValidationError("configuration file must contain a mapping at the top level")
    # Unresolved ${VAR} placeholders count as unset
    return _drop_unresolved(config_dict)


def _drop_unresolved(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: _drop_unresolved(v)
            for k, v in obj.items()
            if not (isinstance(v, str) and v.startswith("$"))
        }
    return obj


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _first(environ: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


def legacy_env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """
    Map the environment variables used by the original shell tooling onto
    config sections.
    """
    sections: Dict[str, Dict[str, Any]] = {
        "oci": {
            "profile": _first(environ, "OCI_CLI_PROFILE"),
            "region": _first(environ, "OCI_CLI_REGION"),
            "config_file": _first(environ, "OCI_CLI_CONFIG_FILE"),
        },
        "scope": {
            "root_compartment": _first(environ, "DS_ROOT_COMP"),
            "connector_compartment": _first(environ, "DS_CONNECTOR_COMP"),
        },
        "credentials": {
            "user": _first(environ, "DS_USER", "DATASAFE_USER"),
            "secret": _first(environ, "DS_SECRET", "DATASAFE_SECRET", "DS_PASSWORD"),
            "secret_file": _first(environ, "DATASAFE_SECRET_FILE"),
            "common_user_prefix": _first(environ, "COMMON_USER_PREFIX"),
        },
        "monitoring": {
            "log_level": _first(environ, "LOG_LEVEL"),
        },
    }

    secret_dirs = []
    if environ.get("ORADBA_ETC"):
        secret_dirs.append(environ["ORADBA_ETC"])
    if environ.get("ODB_DATASAFE_BASE"):
        secret_dirs.append(str(Path(environ["ODB_DATASAFE_BASE"]) / "etc"))
    if secret_dirs:
        sections["credentials"]["secret_dirs"] = secret_dirs

    return {
        name: {k: v for k, v in values.items() if v is not None}
        for name, values in sections.items()
        if any(v is not None for v in values.values())
    }


def load_config(config_path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Load and validate configuration.

    Args:
        config_path: Path to a YAML file. If None, uses datasafe_ops/config/config.yaml
            when present, otherwise model defaults.
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ValidationError: If an explicitly named file is missing or invalid
    """
    environ = os.environ if environ is None else environ
    try:
        if config_path is not None:
            return Config.from_yaml(config_path, environ)
        if DEFAULT_CONFIG_PATH.exists():
            return Config.from_yaml(DEFAULT_CONFIG_PATH, environ)
        return Config(**legacy_env_overrides(environ))
    except FileNotFoundError as e:
        raise ValidationError(str(e)) from e
    except yaml.YAMLError as e:
        raise ValidationError(f"invalid configuration file: {e}") from e
    except ValueError as e:
        # pydantic.ValidationError subclasses ValueError
        raise ValidationError(f"invalid configuration: {e}") from e
