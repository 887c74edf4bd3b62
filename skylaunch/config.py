"""TOML-based launch configuration.

Loads ~/.skylaunch/defaults.toml (global) and skylaunch.toml (project),
merges them, and resolves the ``[instance]`` table for one region into a
ProvisionRequest.

Example skylaunch.toml:

    [instance]
    ami = "ami-0abcdef1234567890"
    instance_type = "t3.micro"
    keypair_name = "deploy"
    security_groups = ["ssh"]

    [[instance.block_devices]]
    DeviceName = "/dev/sdf"
    "Ebs.VolumeSize" = 50

    [instance.regions.eu-west-1]
    ami = "ami-0fedcba9876543210"

    [settings]
    batch_size = 5
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any

from skylaunch.constants import (
    BATCH_COOLDOWN_SECONDS,
    BATCH_SIZE,
    DEFAULT_REGION,
    READY_POLL_INTERVAL,
    REMOTE_POLL_INTERVAL,
    SSH_PORT,
    VOLUME_POLL_INTERVAL,
)
from skylaunch.exceptions import ConfigError
from skylaunch.types import (
    AllocateElasticIp,
    BlockDeviceSpec,
    ElasticIpMode,
    NoElasticIp,
    ProvisionRequest,
    UseExistingElasticIp,
)

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".skylaunch" / "defaults.toml"
PROJECT_CONFIG_NAME = "skylaunch.toml"

_TUPLE_FIELDS = ("security_groups",)
_SPECIAL_KEYS = ("regions", "block_devices", "elastic_ip", "allocate_elastic_ip", "tags")


@dataclass(frozen=True, slots=True)
class LaunchSettings:
    """Timing knobs shared by every attempt of a host."""

    batch_size: int = BATCH_SIZE
    batch_cooldown: float = BATCH_COOLDOWN_SECONDS
    ready_poll_interval: float = READY_POLL_INTERVAL
    volume_poll_interval: float = VOLUME_POLL_INTERVAL
    remote_poll_interval: float = REMOTE_POLL_INTERVAL
    ssh_port: int = SSH_PORT


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("instance", {})
    merged.setdefault("settings", {})
    return merged


def _elastic_ip_mode(raw: RawConfig) -> ElasticIpMode:
    elastic_ip = raw.get("elastic_ip")
    pool = raw.get("allocate_elastic_ip")
    match (elastic_ip, pool):
        case (None, None):
            return NoElasticIp()
        case (str(), None):
            return UseExistingElasticIp(elastic_ip)
        case (None, str()):
            return AllocateElasticIp(pool)
        case (str(), str()):
            raise ConfigError("Set either 'elastic_ip' or 'allocate_elastic_ip', not both")
        case _:
            raise ConfigError("'elastic_ip' and 'allocate_elastic_ip' must be strings")


def _known_fields(cls: type) -> set[str]:
    return {f.name for f in fields(cls)}


def build_request(raw: RawConfig, region: str | None = None) -> ProvisionRequest:
    """Resolve an ``[instance]`` table (with region overlay) into a request."""
    raw = dict(raw)
    regions = raw.pop("regions", {})
    region = region or raw.get("region") or DEFAULT_REGION
    if region in regions:
        raw = _deep_merge(raw, regions[region])
    raw["region"] = region

    for key in ("ami", "instance_type"):
        if not raw.get(key):
            raise ConfigError(f"Instance config for region '{region}' missing '{key}'")

    unknown = set(raw) - _known_fields(ProvisionRequest) - set(_SPECIAL_KEYS)
    if unknown:
        raise ConfigError(f"Unknown instance options: {', '.join(sorted(unknown))}")

    options = {k: v for k, v in raw.items() if k not in _SPECIAL_KEYS}
    for key in _TUPLE_FIELDS:
        if key in options:
            options[key] = tuple(options[key])

    return ProvisionRequest(
        tags=MappingProxyType({str(k): str(v) for k, v in raw.get("tags", {}).items()}),
        block_devices=tuple(BlockDeviceSpec.from_mapping(bd) for bd in raw.get("block_devices", [])),
        elastic_ip=_elastic_ip_mode(raw),
        **options,
    )


def build_settings(raw: RawConfig) -> LaunchSettings:
    unknown = set(raw) - _known_fields(LaunchSettings)
    if unknown:
        raise ConfigError(f"Unknown settings: {', '.join(sorted(unknown))}")
    return LaunchSettings(**raw)


def load_request(
    region: str | None = None,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> ProvisionRequest:
    config = load_config(project_dir=project_dir, global_path=global_path)
    return build_request(config["instance"], region)


def load_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> LaunchSettings:
    config = load_config(project_dir=project_dir, global_path=global_path)
    return build_settings(config["settings"])
