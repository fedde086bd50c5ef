from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Optional
import logging
import os
import tomllib

from .errors import ConfigError

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "runtime.toml"

# DynamoDB BatchWriteItem accepts at most 25 put/delete requests.
MAX_BATCH_SIZE = 25


@dataclass(frozen=True)
class StoreConfig:
    table_name: Optional[str]
    region: str
    endpoint_url: Optional[str]
    connect_timeout: float
    read_timeout: float
    max_attempts: int

    def require_table_name(self) -> str:
        if not self.table_name:
            raise ConfigError("DYNAMODB_TABLE is not set and no store.table_name is configured")
        return self.table_name


@dataclass(frozen=True)
class UpsertConfig:
    batch_size: int
    existence_workers: int


@dataclass(frozen=True)
class SeedConfig:
    count: int
    org_count: int


@dataclass(frozen=True)
class RuntimeConfig:
    store: StoreConfig
    upsert: UpsertConfig
    seed: SeedConfig


def _default_config() -> RuntimeConfig:
    return RuntimeConfig(
        store=StoreConfig(
            table_name=None,
            region="eu-central-1",
            endpoint_url=None,
            connect_timeout=5.0,
            read_timeout=10.0,
            max_attempts=5,
        ),
        upsert=UpsertConfig(batch_size=MAX_BATCH_SIZE, existence_workers=1),
        seed=SeedConfig(count=20, org_count=5),
    )


def _safe_int(value: Any, fallback: int) -> int:
    try:
        parsed = int(value)
        return parsed if parsed > 0 else fallback
    except Exception:
        return fallback


def _safe_float(value: Any, fallback: float) -> float:
    try:
        parsed = float(value)
        return parsed if parsed > 0 else fallback
    except Exception:
        return fallback


def _str_field(d: dict, key: str, default: Optional[str]) -> Optional[str]:
    val = d.get(key, default)
    if not isinstance(val, str) or not val.strip():
        return default
    return val.strip()


def _section(raw: Any, name: str) -> dict:
    section = raw.get(name) if isinstance(raw, dict) else {}
    return section if isinstance(section, dict) else {}


def apply_env_overrides(cfg: RuntimeConfig, env: Optional[Mapping[str, str]] = None) -> RuntimeConfig:
    """Environment wins over the TOML file for the store location."""
    env = os.environ if env is None else env
    store = cfg.store
    table_name = (env.get("DYNAMODB_TABLE") or "").strip()
    region = (env.get("AWS_REGION") or "").strip()
    endpoint_url = (env.get("DYNAMO_LOCAL_URL") or "").strip()
    store = replace(
        store,
        table_name=table_name or store.table_name,
        region=region or store.region,
        endpoint_url=endpoint_url or store.endpoint_url,
    )
    return replace(cfg, store=store)


def load_runtime_config(
    config_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> RuntimeConfig:
    cfg = _default_config()
    env_path = (os.environ if env is None else env).get("WORKSPACE_USERS_CONFIG")
    path = config_path or (Path(env_path) if env_path else _DEFAULT_CONFIG_PATH)
    try:
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        logger.warning("Runtime config file not found; using defaults", extra={"path": str(path)})
        return apply_env_overrides(cfg, env)
    except tomllib.TOMLDecodeError:
        logger.exception("Runtime config parse failed; using defaults", extra={"path": str(path)})
        return apply_env_overrides(cfg, env)

    store_raw = _section(raw, "store")
    upsert_raw = _section(raw, "upsert")
    seed_raw = _section(raw, "seed")

    store = StoreConfig(
        table_name=_str_field(store_raw, "table_name", cfg.store.table_name),
        region=_str_field(store_raw, "region", cfg.store.region),
        endpoint_url=_str_field(store_raw, "endpoint_url", cfg.store.endpoint_url),
        connect_timeout=_safe_float(store_raw.get("connect_timeout", cfg.store.connect_timeout), cfg.store.connect_timeout),
        read_timeout=_safe_float(store_raw.get("read_timeout", cfg.store.read_timeout), cfg.store.read_timeout),
        max_attempts=_safe_int(store_raw.get("max_attempts", cfg.store.max_attempts), cfg.store.max_attempts),
    )

    batch_size = _safe_int(upsert_raw.get("batch_size", cfg.upsert.batch_size), cfg.upsert.batch_size)
    if batch_size > MAX_BATCH_SIZE:
        logger.warning("upsert.batch_size above DynamoDB limit; clamping", extra={"batch_size": batch_size})
        batch_size = MAX_BATCH_SIZE
    upsert = UpsertConfig(
        batch_size=batch_size,
        existence_workers=_safe_int(
            upsert_raw.get("existence_workers", cfg.upsert.existence_workers), cfg.upsert.existence_workers
        ),
    )

    seed = SeedConfig(
        count=_safe_int(seed_raw.get("count", cfg.seed.count), cfg.seed.count),
        org_count=_safe_int(seed_raw.get("org_count", cfg.seed.org_count), cfg.seed.org_count),
    )

    return apply_env_overrides(RuntimeConfig(store=store, upsert=upsert, seed=seed), env)
