"""YAML configuration: defaults, validation, environment overrides and path resolution."""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .loop.types import LoopConfig

__all__ = [
    "AppConfig",
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "load_config",
    "write_default_config",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "config.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "substrate": {
        "path": "substrate",
        "source_path": None,
    },
    "backend": {
        "kind": "claude",
        "model": None,
        "command": "claude",
        "base_url": "http://localhost:11434",
        "timeout_seconds": 1800,
        "idle_timeout_seconds": 300,
    },
    "session": {
        "max_retries": 3,
        "retry_delay_ms": 1000,
    },
    "loop": {
        "cycle_delay_ms": 30000,
        "audit_interval": 20,
        "max_consecutive_idle_cycles": 1,
        "evaluate_outcome_enabled": True,
        "reconsideration_quality_threshold": 70,
    },
    "escalation": {
        "consecutive_threshold": 3,
        "max_cycle_gap": 50,
    },
    "supervisor": {
        "grace_period_seconds": 600,
        "reaper_interval_seconds": 60,
    },
    "triggers": {
        "shell_enabled": True,
        "timeout_seconds": 30,
    },
    "paths": {
        "state": ".psyche",
        "logs": ".psyche/logs",
    },
    "logging": {
        "level": "INFO",
    },
}

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be loaded or validated."""


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SubstrateSettings(_Section):
    path: Path = Path("substrate")
    source_path: Optional[Path] = None


class BackendSettings(_Section):
    kind: Literal["claude", "ollama"] = "claude"
    model: Optional[str] = None
    command: str = "claude"
    base_url: str = "http://localhost:11434"
    timeout_seconds: float = Field(default=1800, gt=0)
    idle_timeout_seconds: float = Field(default=300, gt=0)


class SessionSettings(_Section):
    max_retries: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=1000, ge=0)


class EscalationSettings(_Section):
    consecutive_threshold: int = Field(default=3, ge=1)
    max_cycle_gap: int = Field(default=50, ge=0)


class SupervisorSettings(_Section):
    grace_period_seconds: float = Field(default=600, ge=0)
    reaper_interval_seconds: Optional[float] = Field(default=60, gt=0)


class TriggerSettings(_Section):
    shell_enabled: bool = True
    timeout_seconds: float = Field(default=30, gt=0)


class PathSettings(_Section):
    state: Path = Path(".psyche")
    logs: Path = Path(".psyche/logs")

    @property
    def loop_state_file(self) -> Path:
        return self.state / "loop-state.json"

    @property
    def finding_tracker_file(self) -> Path:
        return self.state / "finding-tracker.json"


class LoggingSettings(_Section):
    level: str = "INFO"


class AppConfig(_Section):
    substrate: SubstrateSettings = Field(default_factory=SubstrateSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    escalation: EscalationSettings = Field(default_factory=EscalationSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    triggers: TriggerSettings = Field(default_factory=TriggerSettings)
    paths: PathSettings = Field(default_factory=PathSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def resolve_paths(self, base_dir: Path) -> "AppConfig":
        """Return a copy with every relative path anchored at ``base_dir``."""

        def anchor(path: Path) -> Path:
            return path if path.is_absolute() else (base_dir / path).resolve()

        source = self.substrate.source_path
        return self.model_copy(
            update={
                "substrate": self.substrate.model_copy(
                    update={
                        "path": anchor(self.substrate.path),
                        "source_path": anchor(source) if source is not None else None,
                    }
                ),
                "paths": self.paths.model_copy(
                    update={"state": anchor(self.paths.state), "logs": anchor(self.paths.logs)}
                ),
            }
        )


def default_config_data() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def write_default_config(config_path: Path) -> None:
    """Persist the default template to ``config_path`` with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(default_config_data(), handle, sort_keys=False)


def load_config(config_path: Path, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load, override and validate ``config_path``; relative paths resolve against its directory."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    _apply_env_overrides(data, os.environ if environ is None else environ)

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {config_path}: {error}") from error

    return config.resolve_paths(config_path.resolve().parent)


def _apply_env_overrides(data: Dict[str, Any], environ: Mapping[str, str]) -> None:
    audit_interval = _positive_int(environ.get("PSYCHE_AUDIT_INTERVAL"), minimum=1)
    if audit_interval is not None:
        _section(data, "loop")["audit_interval"] = audit_interval

    cycle_delay = _positive_int(environ.get("PSYCHE_CYCLE_DELAY_MS"), minimum=0)
    if cycle_delay is not None:
        _section(data, "loop")["cycle_delay_ms"] = cycle_delay

    model = (environ.get("PSYCHE_MODEL") or "").strip()
    if model:
        _section(data, "backend")["model"] = model

    level = (environ.get("PSYCHE_LOG_LEVEL") or "").strip().upper()
    if level:
        if level in _LOG_LEVELS:
            _section(data, "logging")["level"] = level
        else:
            LOGGER.warning("Ignoring invalid PSYCHE_LOG_LEVEL %r", level)


def _positive_int(raw: Optional[str], *, minimum: int) -> Optional[int]:
    if not raw:
        return None
    try:
        parsed = int(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-integer override %r", raw)
        return None
    if parsed < minimum:
        return None
    return parsed


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name)
    if not isinstance(section, dict):
        section = {}
        data[name] = section
    return section
