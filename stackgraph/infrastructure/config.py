"""
Configuration Module

Architectural Intent:
- Centralized configuration loading from a JSON file
- Provides typed access to the scheduler's settings
- Falls back to sensible defaults when config file is absent
- Environment variables override file-based config

Design Decisions:
- Config is a frozen dataclass for immutability after load
- Nested config sections map to sub-dataclasses
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import dataclasses
import json
import logging
import os

from stackgraph.domain.entities.work_node import WorkNodeType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConcurrencyConfig:
    """Maximum number of in-flight operations per node type."""
    stack: int = 1
    asset_build: int = 1
    asset_publish: int = 1

    def as_limits(self) -> dict[WorkNodeType, int]:
        return {
            WorkNodeType.STACK: self.stack,
            WorkNodeType.ASSET_BUILD: self.asset_build,
            WorkNodeType.ASSET_PUBLISH: self.asset_publish,
        }


@dataclass(frozen=True)
class DeployConfig:
    """Deployment behaviour."""
    assembly_dir: str = "cdk.out"
    prebuild_assets: bool = True


@dataclass(frozen=True)
class TelemetryConfig:
    """OpenTelemetry configuration."""
    endpoint: str = ""
    insecure: bool = False


@dataclass(frozen=True)
class StackgraphConfig:
    """Root configuration."""
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    log_level: str = "WARNING"


def _env_override(data: dict, prefix: str = "STACKGRAPH") -> dict:
    """Override config values with environment variables.

    Environment variables follow the pattern STACKGRAPH_SECTION_KEY.
    For example: STACKGRAPH_CONCURRENCY_STACK=4, STACKGRAPH_DEPLOY_PREBUILD_ASSETS=false
    """
    for key, value in os.environ.items():
        if not key.startswith(f"{prefix}_"):
            continue
        name = key[len(prefix) + 1:].lower()
        if name == "log_level":
            data[name] = value
            continue
        parts = name.split("_", 1)
        if len(parts) == 2:
            section, field_name = parts
            if not isinstance(data.get(section), dict):
                data[section] = {}
            data[section][field_name] = value
        else:
            data[parts[0]] = value
    return data


def _parse_config_file(path: Path) -> dict:
    """Parse a JSON config file. Returns empty dict on failure."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.debug("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Invalid config file %s: top level is not an object", path)
        return {}
    return data


def _build_sub_config(cls, data: object, section: str):
    """Build a sub-config dataclass from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        logger.warning("Invalid config section %s: not an object, using defaults", section)
        data = {}
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    # Convert string numbers to int/bool
    for f in dataclasses.fields(cls):
        if f.name in filtered and isinstance(filtered[f.name], str):
            if f.type == "int":
                filtered[f.name] = int(filtered[f.name])
            elif f.type == "bool":
                filtered[f.name] = filtered[f.name].lower() in ("true", "1", "yes")

    return cls(**filtered)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "STACKGRAPH",
) -> StackgraphConfig:
    """Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (STACKGRAPH_SECTION_KEY)
    2. Config file values
    3. Defaults

    Args:
        path: Path to config file (JSON). Defaults to stackgraph.json in CWD.
        env_prefix: Environment variable prefix. Defaults to STACKGRAPH.
    """
    config_path = Path(path) if path else Path("stackgraph.json")
    data = _parse_config_file(config_path)
    data = _env_override(data, env_prefix)

    return StackgraphConfig(
        concurrency=_build_sub_config(ConcurrencyConfig, data.get("concurrency", {}), "concurrency"),
        deploy=_build_sub_config(DeployConfig, data.get("deploy", {}), "deploy"),
        telemetry=_build_sub_config(TelemetryConfig, data.get("telemetry", {}), "telemetry"),
        log_level=data.get("log_level", "WARNING"),
    )
