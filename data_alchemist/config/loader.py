from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.rules import RulesConfig

"""Config loader for data-alchemist.

Responsibilities:
- Load YAML config (default config/alchemist.yml, env DATA_ALCHEMIST_CONFIG)
- Validate against contracts/config_schema.json
- Apply defaults (debounce 0.3s, logs ./logs)
- Load the optional rules file (YAML or JSON) into RulesConfig
"""

# data_alchemist/config/loader.py -> data_alchemist/config -> data_alchemist
_package_root = Path(__file__).resolve().parent.parent
SCHEMA_PATH = _package_root / "contracts" / "config_schema.json"

DEFAULT_CONFIG_PATH = Path("config/alchemist.yml")
CONFIG_ENV_VAR = "DATA_ALCHEMIST_CONFIG"
DEFAULT_DEBOUNCE_SECONDS = 0.3
DEFAULT_LOGS_DIRECTORY = "./logs"


class ConfigError(Exception):
    pass

@dataclass(frozen=True)
class InputsConfig:
    clients: str
    workers: str
    tasks: str

    def path_for(self, entity: str) -> str:
        return getattr(self, str(entity))

@dataclass(frozen=True)
class AlchemistConfig:
    inputs: InputsConfig
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    logs_directory: str = DEFAULT_LOGS_DIRECTORY
    keep_na_strings: list[str] = field(default_factory=list)
    rules_file: str | None = None


def resolve_config_path(explicit: Path | None = None) -> Path:
    """Explicit path > DATA_ALCHEMIST_CONFIG > config/alchemist.yml."""
    if explicit is not None:
        return Path(explicit)
    env = os.getenv(CONFIG_ENV_VAR)
    if env:
        return Path(env)
    return DEFAULT_CONFIG_PATH


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path) -> AlchemistConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")

    _validate_config_schema(data)

    inputs = data["inputs"]
    return AlchemistConfig(
        inputs=InputsConfig(
            clients=inputs["clients"],
            workers=inputs["workers"],
            tasks=inputs["tasks"],
        ),
        debounce_seconds=float(data.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS)),
        logs_directory=data.get("logs_directory", DEFAULT_LOGS_DIRECTORY),
        keep_na_strings=list(data.get("keep_na_strings") or []),
        rules_file=data.get("rules_file"),
    )


def load_rules(path: Path) -> RulesConfig:
    """Load an exported rules file (.json / .yml / .yaml)."""
    if not path.exists():
        raise ConfigError(f"rules file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"invalid rules file: {e}") from e
    if data is not None and not isinstance(data, dict):
        raise ConfigError("invalid rules file: top level must be a mapping")
    try:
        return RulesConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid rules file: {e}") from e
