"""Configuration loader and factory for the cache facade."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jsonschema import Draft7Validator

from .cache import Cache
from .stores import MemoryStore, SQLiteStore, Store
from .stores.sqlite import DEFAULT_DB_PATH

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "store": {"type": "string", "enum": ["memory", "sqlite"]},
        "sqlite_path": {"type": "string", "minLength": 1},
        "default_ttl": {"type": ["integer", "null"], "minimum": 0},
    },
}

_validator = Draft7Validator(CONFIG_SCHEMA)


@dataclass(frozen=True)
class CacheConfig:
    store: str
    sqlite_path: Path
    default_ttl: Optional[int]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        default_ttl = data.get("default_ttl")
        return cls(
            store=data.get("store", "memory"),
            sqlite_path=Path(os.path.expanduser(data.get("sqlite_path", DEFAULT_DB_PATH))),
            default_ttl=int(default_ttl) if default_ttl else None,
        )


ENV_MAP = {
    "store": "DEPCACHE_STORE",
    "sqlite_path": "DEPCACHE_SQLITE_PATH",
    "default_ttl": "DEPCACHE_DEFAULT_TTL",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key == "default_ttl":
            value = int(value)
        merged[key] = value

    return merged


def validate_config(data: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"cache config validation failed: {messages}")


def load_config(config_path: str | Path = "config/cache.defaults.yml") -> CacheConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    validate_config(data)
    return CacheConfig.from_dict(data)


def create_store(config: CacheConfig) -> Store:
    if config.store == "sqlite":
        return SQLiteStore(str(config.sqlite_path), default_ttl=config.default_ttl)
    return MemoryStore(default_ttl=config.default_ttl)


def create_cache(config: CacheConfig) -> Cache:
    return Cache(create_store(config))
