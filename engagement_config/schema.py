"""
EngagementConfig schema.

Frozen dataclass tree produced by the loader.  Every section has defaults
except the secrets, which come from the YAML file or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class WebhookConfig:
    """Payment provider webhook verification."""

    secret: str
    tolerance_seconds: int = 300


@dataclass(frozen=True)
class RetryConfig:
    """Automatic retry of operations that lost a concurrency race."""

    max_attempts: int = 3


@dataclass(frozen=True)
class DocumentsConfig:
    contracts_dir: str = "var/contracts"


@dataclass(frozen=True)
class PaymentsConfig:
    provider: str = "stripe"
    api_key: str = ""
    max_network_retries: int = 2


@dataclass(frozen=True)
class EngagementConfig:
    """The runtime configuration artifact."""

    config_id: str
    version: int
    checksum: str
    database: DatabaseConfig
    webhook: WebhookConfig
    retry: RetryConfig
    documents: DocumentsConfig
    payments: PaymentsConfig
