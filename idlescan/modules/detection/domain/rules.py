"""
Detection rule models.

Rules are loaded once per process from YAML and shared read-only by every
detector, so all models here are frozen.
"""

from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from idlescan.shared.core.exceptions import ConfigurationError

logger = structlog.get_logger()

DEFAULT_RULES_PATH = Path(__file__).resolve().parent.parent / "default_rules.yaml"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd])\s*$")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

Statistic = Literal["Average", "Sum", "Minimum", "Maximum", "SampleCount"]


def parse_duration(value: Any) -> timedelta:
    """Accept seconds, a timedelta, or strings like ``"24h"`` / ``"7d"``."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            amount, unit = match.groups()
            return timedelta(seconds=float(amount) * _DURATION_UNITS[unit])
    raise ValueError(f"invalid duration: {value!r}")


class Constraint(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Not validated against the supported set here: an unknown operator only
    # disables its own rule at evaluation time.
    operator: str
    value: float


class MetricSpec(BaseModel):
    """One CloudWatch metric rule for a resource kind."""

    model_config = ConfigDict(frozen=True)

    description: str = Field(min_length=1)
    statistic: Statistic = "Average"
    period: timedelta
    start_time: timedelta
    constraint: Constraint
    enable: bool = True

    @field_validator("period", "start_time", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("period", "start_time")
    @classmethod
    def _positive(cls, value: timedelta) -> timedelta:
        if value.total_seconds() <= 0:
            raise ValueError("duration must be positive")
        return value

    @property
    def period_seconds(self) -> int:
        return int(self.period.total_seconds())


class DetectionRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    metrics: dict[str, tuple[MetricSpec, ...]] = Field(default_factory=dict)

    def for_kind(self, kind: str) -> list[MetricSpec]:
        """Enabled rules for a resource kind, in document order."""
        return [spec for spec in self.metrics.get(kind, ()) if spec.enable]


def load_rules(path: str | Path | None = None) -> DetectionRules:
    """
    Load detection rules from YAML.

    Falls back to the packaged default rule set when no path is given.
    """
    rules_path = Path(path) if path else DEFAULT_RULES_PATH
    try:
        with rules_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(
            f"Could not read detection rules from {rules_path}",
            details={"path": str(rules_path), "error": str(exc)},
        ) from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(
            "Detection rules document must be a mapping",
            details={"path": str(rules_path)},
        )

    try:
        rules = DetectionRules.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid detection rules in {rules_path}",
            details={"path": str(rules_path), "errors": exc.errors(include_url=False)},
        ) from exc

    logger.info(
        "detection_rules_loaded",
        path=str(rules_path),
        kinds=sorted(rules.metrics),
    )
    return rules
