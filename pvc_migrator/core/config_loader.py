"""Configuration management for PVC Migrator."""

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..constants import (
    DEFAULT_ARGOCD_NAMESPACES,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_NAMESPACE,
    DEFAULT_STORAGE_CLASS,
    DEFAULT_TARGET_ZONE,
)
from ..models.enums import ScaleMode
from ..models.migration import MigrationConfig
from .exceptions import ConfigurationError

logger = structlog.get_logger()


class NamespaceConfig(BaseModel):
    """A namespace in scope, optionally limited to specific PVCs."""

    name: str
    pvcs: list[str] = Field(default_factory=list)  # empty = discover all


class PVCMigratorConfig(BaseModel):
    """Configuration file contents, merged with command line overrides."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    kube_context: str = Field(default="", alias="kubeContext")
    namespaces: list[NamespaceConfig] = Field(
        default_factory=lambda: [NamespaceConfig(name=DEFAULT_NAMESPACE)]
    )
    target_zone: str = Field(default=DEFAULT_TARGET_ZONE, alias="targetZone")
    storage_class: str = Field(default=DEFAULT_STORAGE_CLASS, alias="storageClass")
    max_concurrency: int = Field(default=DEFAULT_MAX_CONCURRENCY, alias="maxConcurrency")
    dry_run: bool = Field(default=False, alias="dryRun")
    skip_argocd: bool = Field(default=False, alias="skipArgoCD")
    argocd_namespaces: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ARGOCD_NAMESPACES), alias="argoCDNamespaces"
    )
    scale_mode: ScaleMode = Field(default="auto", alias="scaleMode")
    aws_region: str | None = Field(default=None, alias="awsRegion")

    @field_validator("namespaces", mode="before")
    @classmethod
    def _accept_plain_names(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    @property
    def namespace_names(self) -> list[str]:
        return [ns.name for ns in self.namespaces]

    def validate_for_run(self) -> None:
        """Check the settings a migration run cannot do without.

        Raises:
            ConfigurationError: If a required value is missing or out of range
        """
        if not self.namespaces:
            raise ConfigurationError("at least one namespace is required")
        if any(not ns.name for ns in self.namespaces):
            raise ConfigurationError("namespace name cannot be empty")
        if not self.target_zone:
            raise ConfigurationError("targetZone is required")
        if not self.storage_class:
            raise ConfigurationError("storageClass is required")
        if self.max_concurrency < 1:
            raise ConfigurationError("maxConcurrency must be at least 1")

    def apply_overrides(self, **overrides: Any) -> "PVCMigratorConfig":
        """Return a copy with explicitly given values replaced; None means "not set".

        A ``namespaces`` override is a list of names whose PVCs are discovered.
        """
        update = {key: value for key, value in overrides.items() if value is not None}
        if "namespaces" in update:
            update["namespaces"] = [NamespaceConfig(name=name) for name in update["namespaces"]]
        unknown = set(update) - set(type(self).model_fields)
        if unknown:
            raise ConfigurationError(f"unknown configuration keys: {', '.join(sorted(unknown))}")
        return self.model_validate({**self.model_dump(), **update})

    def to_migration_config(self, pvc_list: list[str]) -> MigrationConfig:
        """Build the immutable run configuration for a resolved list of "ns/pvc" ids."""
        try:
            return MigrationConfig(
                namespaces=tuple(self.namespace_names),
                target_zone=self.target_zone,
                storage_class=self.storage_class,
                max_concurrency=self.max_concurrency,
                pvc_list=tuple(pvc_list),
                dry_run=self.dry_run,
            )
        except ValidationError as e:
            raise ConfigurationError(f"invalid migration configuration: {e}") from e


def load_config(config_path: str | Path | None = None) -> PVCMigratorConfig:
    """Load configuration from an optional YAML file over the defaults.

    Args:
        config_path: Path to a YAML config file (defaults only when None)

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    load_dotenv()

    if config_path is None:
        config_path = os.getenv("PVC_MIGRATOR_CONFIG")
    if not config_path:
        return PVCMigratorConfig()

    path = Path(config_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"failed to read config file {path}: {e}") from e

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed to parse config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a mapping")

    try:
        config = PVCMigratorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid config file {path}: {e}") from e

    logger.info("Loaded configuration", path=str(path), namespaces=config.namespace_names)
    return config


_EXAMPLE_HEADER = """\
# PVC Migrator Configuration
#
# This file contains configuration for migrating PVCs between AWS Availability Zones.
#
# Each namespace can optionally specify which PVCs to migrate.
# If no PVCs are specified for a namespace, all PVCs in that namespace will be migrated.
#
# CLI flags can override some values (--zone, --storage-class, etc.)

# kubeContext: my-cluster-context  # Optional: kubectl context to use (defaults to current)

"""


def write_example_config(path: str | Path) -> Path:
    """Write an annotated example configuration file readable only by the owner."""
    example = {
        "namespaces": [
            {"name": "namespace-1", "pvcs": ["pvc-1", "pvc-2"]},
            {"name": "namespace-2"},
        ],
        "targetZone": DEFAULT_TARGET_ZONE,
        "storageClass": DEFAULT_STORAGE_CLASS,
        "maxConcurrency": DEFAULT_MAX_CONCURRENCY,
        "dryRun": False,
        "skipArgoCD": False,
        "argoCDNamespaces": list(DEFAULT_ARGOCD_NAMESPACES),
        "scaleMode": "auto",
    }

    path = Path(path)
    content = _EXAMPLE_HEADER + yaml.safe_dump(example, sort_keys=False)
    try:
        path.write_text(content, encoding="utf-8")
        path.chmod(0o600)
    except OSError as e:
        raise ConfigurationError(f"failed to write example config: {e}") from e
    return path
