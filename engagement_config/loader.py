"""
Configuration Loader (``engagement_config.loader``).

Responsibility
--------------
Reads the YAML file, applies ``ENGAGEMENT_*`` environment overrides and
parses the result into the frozen ``engagement_config.schema`` tree.  Not
called directly by services; the public entry point is
``engagement_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys are rejected, not ignored.
* Numeric settings are positive; secrets are non-empty.
* ``compute_checksum`` is a deterministic SHA-256 of the effective
  settings (secrets excluded) for the config trace log.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` with every problem listed.
"""

from __future__ import annotations

import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from engagement_config.schema import (
    DatabaseConfig,
    DocumentsConfig,
    EngagementConfig,
    PaymentsConfig,
    RetryConfig,
    WebhookConfig,
)
from engagement_kernel.utils.hashing import hash_payload

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "webhook": WebhookConfig,
    "retry": RetryConfig,
    "documents": DocumentsConfig,
    "payments": PaymentsConfig,
}

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ENGAGEMENT_DATABASE_URL": ("database", "url"),
    "ENGAGEMENT_WEBHOOK_SECRET": ("webhook", "secret"),
    "ENGAGEMENT_STRIPE_API_KEY": ("payments", "api_key"),
    "ENGAGEMENT_CONTRACTS_DIR": ("documents", "contracts_dir"),
}

_SECRET_KEYS = {("webhook", "secret"), ("payments", "api_key")}

_POSITIVE_INTS = {
    ("database", "pool_size"),
    ("database", "pool_timeout"),
    ("webhook", "tolerance_seconds"),
    ("retry", "max_attempts"),
}

_NON_NEGATIVE_INTS = {
    ("database", "max_overflow"),
    ("payments", "max_network_retries"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def apply_env_overrides(
    raw: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return a copy of ``raw`` with ENGAGEMENT_* variables applied."""
    environ = os.environ if environ is None else environ
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in raw.items()}
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            merged.setdefault(section, {})[key] = value
    return merged


def compute_checksum(raw: dict[str, Any]) -> str:
    redacted = {
        section: {
            k: ("<redacted>" if (section, k) in _SECRET_KEYS else v)
            for k, v in (values or {}).items()
        }
        for section, values in raw.items()
        if isinstance(values, dict)
    }
    return hash_payload(redacted)


def _coerce(section: str, key: str, value: Any, errors: list[str]) -> Any:
    if (section, key) in _POSITIVE_INTS or (section, key) in _NON_NEGATIVE_INTS:
        try:
            number = int(value)
        except (TypeError, ValueError):
            errors.append(f"{section}.{key}: expected an integer, got {value!r}")
            return value
        floor = 1 if (section, key) in _POSITIVE_INTS else 0
        if number < floor:
            errors.append(f"{section}.{key}: must be >= {floor}")
        return number
    if key == "echo":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return value


def parse_config(raw: dict[str, Any]) -> EngagementConfig:
    """
    Build an EngagementConfig from an already-merged mapping.

    Raises:
        ValueError: Listing every validation problem found.
    """
    errors: list[str] = []

    known = set(_SECTIONS) | {"config_id", "version"}
    for name in raw:
        if name not in known:
            errors.append(f"unknown section {name!r}")

    sections: dict[str, Any] = {}
    for name, schema in _SECTIONS.items():
        values = raw.get(name) or {}
        if not isinstance(values, dict):
            errors.append(f"{name}: must be a mapping")
            continue
        allowed = {f.name for f in fields(schema)}
        unknown = set(values) - allowed
        if unknown:
            errors.append(f"{name}: unknown keys {sorted(unknown)}")
            continue
        coerced = {k: _coerce(name, k, v, errors) for k, v in values.items()}
        try:
            sections[name] = schema(**coerced)
        except TypeError as e:
            errors.append(f"{name}: {e}")

    database = sections.get("database")
    if database is not None and not database.url:
        errors.append("database.url: must not be empty")
    webhook = sections.get("webhook")
    if webhook is not None and not webhook.secret:
        errors.append("webhook.secret: must not be empty (set ENGAGEMENT_WEBHOOK_SECRET)")
    payments = sections.get("payments")
    if payments is not None and payments.provider != "stripe":
        errors.append(f"payments.provider: unsupported provider {payments.provider!r}")

    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    return EngagementConfig(
        config_id=str(raw.get("config_id", "engagement")),
        version=int(raw.get("version", 1)),
        checksum=compute_checksum(raw),
        **sections,
    )
