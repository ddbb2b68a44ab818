"""Configuration helpers for the notification service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_SERVER_CONFIG = Path(__file__).resolve().parent / "server.yaml"


@dataclass(frozen=True)
class StorageConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class CollectionsConfig:
    auctions: str = "bids"
    listings: str = "listings"
    users: str = "users"
    orders: str = "orders"


@dataclass(frozen=True)
class MailConfig:
    backend: str
    sender: str
    username: str
    password: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class SweepConfig:
    interval_seconds: int
    batch_size: int
    max_concurrency: int
    mutation_retries: int
    retry_delay_seconds: float
    scheduler_enabled: bool
    history_size: int


@dataclass(frozen=True)
class ServerConfig:
    storage: StorageConfig
    collections: CollectionsConfig
    mail: MailConfig
    sweep: SweepConfig
    log_level: str


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def parse_server_config(data: Mapping[str, Any], env: Mapping[str, str] | None = None) -> ServerConfig:
    """Build a ServerConfig from parsed YAML. Mail credentials only come from ``env``."""
    env = os.environ if env is None else env
    storage = data.get("storage", {})
    collections = data.get("collections", {})
    mail = data.get("mail", {})
    sweep = data.get("sweep", {})
    logging_block = data.get("logging", {})
    username = env.get("EMAIL_USER", "")
    return ServerConfig(
        storage=StorageConfig(
            backend=str(storage.get("backend", "in_memory")),
            options=dict(storage.get("options") or {}),
        ),
        collections=CollectionsConfig(
            auctions=str(collections.get("auctions", "bids")),
            listings=str(collections.get("listings", "listings")),
            users=str(collections.get("users", "users")),
            orders=str(collections.get("orders", "orders")),
        ),
        mail=MailConfig(
            backend=str(mail.get("backend", "local")),
            sender=env.get("EMAIL_FROM") or username or str(mail.get("sender", "")),
            username=username,
            password=env.get("EMAIL_PASS", ""),
            options=dict(mail.get("options") or {}),
        ),
        sweep=SweepConfig(
            interval_seconds=int(sweep.get("interval_seconds", 24 * 60 * 60)),
            batch_size=max(int(sweep.get("batch_size", 200)), 1),
            max_concurrency=max(int(sweep.get("max_concurrency", 16)), 1),
            mutation_retries=max(int(sweep.get("mutation_retries", 2)), 0),
            retry_delay_seconds=float(sweep.get("retry_delay_seconds", 0.5)),
            scheduler_enabled=_as_bool(
                env.get("SWEEP_SCHEDULER_ENABLED", sweep.get("scheduler_enabled", False))
            ),
            history_size=max(int(sweep.get("history_size", 20)), 1),
        ),
        log_level=str(logging_block.get("level", "INFO")).upper(),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("MARKET_NOTIFY_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return parse_server_config(_load_yaml(path))
