"""
Kernel Settings (``procurement_kernel.config``).

Responsibility
--------------
Loads the runtime settings of the kernel -- database URL, pool sizing,
logging level, currency precision and scope caching -- from an optional YAML
file plus ``PROCUREMENT_*`` environment overrides, into a frozen dataclass.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or non-coercible values  -> ``ValueError``.

Usage::

    settings = load_settings(Path("procurement.yaml"))
    init_engine_from_settings(settings)
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from procurement_kernel.logging_config import get_logger

logger = get_logger("config")

ENV_PREFIX = "PROCUREMENT_"

DEFAULT_DATABASE_URL = "sqlite:///procurement.db"

_TRUTHY = {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class KernelSettings:
    """Effective kernel settings."""

    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    log_level: str = "INFO"
    pool_size: int = 10
    max_overflow: int = 5
    money_places: int = 2
    scope_cache_enabled: bool = True

    def __post_init__(self):
        if self.money_places < 0 or self.money_places > 9:
            raise ValueError(f"money_places must be between 0 and 9, got {self.money_places}")
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be positive, got {self.pool_size}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KernelSettings:
        """Create settings from a dict, coercing scalar strings."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ValueError(f"Unknown settings keys: {unknown}")

        values: dict[str, Any] = {}
        for key, raw in data.items():
            values[key] = _coerce(key, raw, known[key].type)
        return cls(**values)


def _coerce(key: str, raw: Any, type_name: Any) -> Any:
    # dataclass field types are strings under postponed annotations
    type_name = type_name if isinstance(type_name, str) else getattr(type_name, "__name__", "")
    if type_name == "bool":
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in _TRUTHY
    if type_name == "int":
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Setting {key!r} must be an integer, got {raw!r}") from exc
    return str(raw)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    # Allow the settings to live under a top-level "procurement" key
    return dict(data.get("procurement", data))


def load_settings(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> KernelSettings:
    """
    Build effective settings: defaults < YAML file < environment.

    Environment overrides use upper-case field names with the
    ``PROCUREMENT_`` prefix, e.g. ``PROCUREMENT_DATABASE_URL``.
    """
    env = os.environ if env is None else env
    data: dict[str, Any] = {}

    if path is not None:
        data.update(load_yaml_file(Path(path)))

    for f in fields(KernelSettings):
        env_key = f"{ENV_PREFIX}{f.name.upper()}"
        if env_key in env:
            data[f.name] = env[env_key]

    settings = KernelSettings.from_dict(data)
    logger.info(
        "settings_loaded",
        extra={
            "source_file": str(path) if path is not None else None,
            "checksum": settings_checksum(settings),
            "scope_cache_enabled": settings.scope_cache_enabled,
        },
    )
    return settings


def settings_checksum(settings: KernelSettings) -> str:
    """Deterministic SHA-256 of the effective settings."""
    canonical = json.dumps(asdict(settings), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
