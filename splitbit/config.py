"""Load and validate the load balancer's YAML configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

SUPPORTED_ALGORITHMS = ("round-robin", "weighted-round-robin")
SUPPORTED_SCHEMES = ("tcp",)


class ConfigError(ValueError):
    """Raised when a configuration is malformed or invalid."""


@dataclass
class BackendConfig:
    """One backend server the balancer may forward connections to."""

    name: str = ""
    host: str = ""
    port: int = 0
    weight: int = 0
    health_check: str = ""

    def validate(self) -> None:
        """Check the backend's fields; a weight of zero becomes one."""
        if not self.name:
            raise ConfigError("name is required for the configuration")
        if not self.host:
            raise ConfigError("host is required for the configuration")
        if not 1 <= self.port <= 65535:
            raise ConfigError("a valid port is required for the configuration")
        if not self.health_check:
            raise ConfigError("health_check is required for the configuration")
        if self.weight < 0:
            raise ConfigError(
                f"weight must be a positive integer, found {self.weight} for {self.name}"
            )
        if self.weight == 0:
            self.weight = 1

    @classmethod
    def from_mapping(cls, data: Any) -> BackendConfig:
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("each backend must be a mapping")
        return cls(
            name=_as_str(data.get("name"), "name"),
            host=_as_str(data.get("host"), "host"),
            port=_as_int(data.get("port"), "port"),
            weight=_as_int(data.get("weight"), "weight"),
            health_check=_as_str(data.get("health_check"), "health_check"),
        )


@dataclass
class SplitbitConfig:
    """The whole balancer configuration."""

    name: str = ""
    algorithm: str = ""
    scheme: str = ""
    backends: list[BackendConfig] = field(default_factory=list)

    def validate(self) -> None:
        """Check the configuration and every backend in it."""
        if not self.name:
            raise ConfigError("name is required for the configuration")
        if self.algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigError(
                "only [round-robin, weighted-round-robin] are supported as algorithm"
            )
        if self.scheme not in SUPPORTED_SCHEMES:
            raise ConfigError("only [tcp] scheme are supported as backends")
        if not self.backends:
            raise ConfigError("at least one backend is required")
        for i, backend in enumerate(self.backends):
            try:
                backend.validate()
            except ConfigError as exc:
                raise ConfigError(f"backend {i} ({backend.name}): {exc}") from exc

    @classmethod
    def from_mapping(cls, data: Any) -> SplitbitConfig:
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a mapping")
        raw_backends = data.get("backends")
        if raw_backends is None:
            raw_backends = []
        if not isinstance(raw_backends, list):
            raise ConfigError("backends must be a list")
        return cls(
            name=_as_str(data.get("name"), "name"),
            algorithm=_as_str(data.get("algorithm"), "algorithm"),
            scheme=_as_str(data.get("scheme"), "scheme"),
            backends=[BackendConfig.from_mapping(item) for item in raw_backends],
        )


def _as_str(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return str(value)
    raise ConfigError(f"{field_name} must be a string")


def _as_int(value: Any, field_name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ConfigError(f"{field_name} must be an integer")


def load_config(path: str | Path) -> SplitbitConfig:
    """Read a YAML file into a configuration; it is not validated here."""
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    return SplitbitConfig.from_mapping(data)