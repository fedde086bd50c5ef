from __future__ import annotations

from .dynamo.client import get_dynamo_resource
from .dynamo.tables import ensure_table
from .runtime_config import StoreConfig


def init_db(store: StoreConfig, ddb=None) -> bool:
    """
    Create the users table with its indexes (no-op if it already exists).

    The CLI `init-table` command and local setups use this as a stable entrypoint.
    """
    table_name = store.require_table_name()
    return ensure_table(ddb or get_dynamo_resource(store), table_name)


__all__ = ["init_db", "get_dynamo_resource"]
