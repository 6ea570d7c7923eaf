"""
Bridge Configuration

Loads bridge settings from a JSON file, with environment overrides.
Original plugin key names (kinesisStreamName, eventKey, ...) are accepted.
"""

from __future__ import annotations
from dataclasses import MISSING, dataclass, fields
from typing import Any, Dict, Mapping, Optional
import json
import os
from pathlib import Path

from .errors import ConfigError

ENV_PREFIX = "KINESIS_INGESTION_"

KEY_ALIASES = {
    'kinesisStreamName': 'stream_name',
    'eventKey': 'event_key',
    'additionalPropertyMappings': 'additional_property_mappings',
    'awsRegion': 'aws_region',
    'iamAccessKeyId': 'aws_access_key_id',
    'iamSecretAccessKey': 'aws_secret_access_key',
}

_INT_FIELDS = (
    'poll_budget_seconds',
    'poll_interval_seconds',
    'cursor_ttl_seconds',
    'records_limit',
)


@dataclass(frozen=True)
class BridgeConfig:
    """Everything needed to build the runtime context."""
    stream_name: str
    event_key: str
    posthog_api_key: str
    additional_property_mappings: str = ""
    aws_region: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    endpoint_url: Optional[str] = None
    posthog_host: str = "https://app.posthog.com"
    distinct_id: str = "kinesis-ingestion"
    poll_budget_seconds: int = 60
    poll_interval_seconds: int = 60
    cursor_ttl_seconds: int = 120
    records_limit: int = 100
    cache_path: str = "./data/kinesis_cursors.db"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> 'BridgeConfig':
        """Build and validate a config from a plain mapping."""
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in raw.items():
            name = KEY_ALIASES.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown config key {key!r}")
            values[name] = value

        for name in _INT_FIELDS:
            if name in values:
                try:
                    values[name] = int(values[name])
                except (TypeError, ValueError):
                    raise ConfigError(f"{name} must be an integer, got {values[name]!r}")

        missing = [
            f.name for f in fields(cls)
            if f.default is MISSING and f.name not in values
        ]
        if missing:
            raise ConfigError(f"Missing required config: {', '.join(sorted(missing))}")

        config = cls(**values)
        config.validate()
        return config

    @classmethod
    def load(cls, config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> 'BridgeConfig':
        """Load from a JSON file; KINESIS_INGESTION_* variables override file values."""
        raw: Dict[str, Any] = {}
        if config_path is not None:
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    raw = json.load(f)
            except FileNotFoundError:
                raise ConfigError(f"Config file not found: {config_path}")
            except json.JSONDecodeError as e:
                raise ConfigError(f"Config file {config_path} is not valid JSON: {e}")
            if not isinstance(raw, dict):
                raise ConfigError(f"Config file {config_path} must contain a JSON object")

        raw.update(cls.env_overrides(environ if environ is not None else os.environ))
        return cls.from_mapping(raw)

    @classmethod
    def env_overrides(cls, environ: Mapping[str, str]) -> Dict[str, str]:
        """Config values present in the environment."""
        overrides = {}
        for f in fields(cls):
            value = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if value is not None:
                overrides[f.name] = value
        return overrides

    def validate(self) -> None:
        """Raise ConfigError on values the poller cannot run with."""
        for name in ('stream_name', 'event_key', 'posthog_api_key'):
            if not getattr(self, name):
                raise ConfigError(f"{name} must not be empty")
        for name in _INT_FIELDS:
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.cursor_ttl_seconds <= self.poll_interval_seconds:
            raise ConfigError(
                "cursor_ttl_seconds must exceed poll_interval_seconds "
                "or a single missed cycle loses the checkpoint"
            )
        if bool(self.aws_access_key_id) != bool(self.aws_secret_access_key):
            raise ConfigError("aws_access_key_id and aws_secret_access_key must be set together")
