"""
engagement_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration.  No
    other component reads configuration files or ENGAGEMENT_* environment
    variables directly.

Architecture position:
    Sits above ``engagement_kernel`` and below ``engagement_services``.  The
    kernel MUST NEVER import from this package.

Failure modes:
    - ``FileNotFoundError`` -- the YAML file does not exist.
    - ``ValueError`` -- validation failed (all problems are listed).

Audit relevance:
    Every successful call emits an ``ENGAGEMENT_CONFIG_TRACE`` log entry with
    the config id, version and checksum of the effective settings.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from engagement_config.loader import apply_env_overrides, load_yaml_file, parse_config
from engagement_config.schema import (
    DatabaseConfig,
    DocumentsConfig,
    EngagementConfig,
    PaymentsConfig,
    RetryConfig,
    WebhookConfig,
)

_logger = logging.getLogger("engagement_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "engagement.yaml"


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngagementConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults/engagement.yaml``.
        environ: Environment to read overrides from.  Defaults to
            ``os.environ``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    raw = apply_env_overrides(load_yaml_file(path), environ)
    config = parse_config(raw)

    _logger.info(
        "ENGAGEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "ENGAGEMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "DocumentsConfig",
    "EngagementConfig",
    "PaymentsConfig",
    "RetryConfig",
    "WebhookConfig",
    "get_active_config",
]
