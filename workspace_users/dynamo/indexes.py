"""
Key schemas of the users table and its secondary indexes.

The access-path selector consults INDEXES to decide which attributes can be
key conditions. DynamoDB rejects a filter expression that names a key
attribute of the index being queried ("Filter Expression can only contain
non-primary key attributes"), and a key condition on an attribute outside
the key schema ("The provided key element does not match the schema"), so
this table is the single source of truth for both the query planner and the
table definition in tables.py.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class IndexKind(str, Enum):
    PRIMARY = "primary"
    LOCAL = "local_index"
    GLOBAL = "global_index"


@dataclass(frozen=True)
class KeySchema:
    partition_key: str
    sort_key: Optional[str] = None

    @property
    def attributes(self) -> Tuple[str, ...]:
        if self.sort_key:
            return (self.partition_key, self.sort_key)
        return (self.partition_key,)


@dataclass(frozen=True)
class IndexSpec:
    kind: IndexKind
    key: KeySchema
    # None for the base table
    name: Optional[str] = None


# DynamoDB scalar types of the attributes that may be keys or predicates.
ATTRIBUTE_TYPES: Dict[str, str] = {
    "workspace_hash": "S",
    "email": "S",
    "status": "S",
    "role": "S",
    "org_id": "N",
}

STATUS_INDEX = "workspace_hash-status-index"
ORG_ROLE_INDEX = "org_id-role-index"

PRIMARY = IndexSpec(kind=IndexKind.PRIMARY, key=KeySchema("workspace_hash", "email"))
STATUS_LSI = IndexSpec(kind=IndexKind.LOCAL, key=KeySchema("workspace_hash", "status"), name=STATUS_INDEX)
ORG_ROLE_GSI = IndexSpec(kind=IndexKind.GLOBAL, key=KeySchema("org_id", "role"), name=ORG_ROLE_INDEX)

# Order matters: ties in key coverage go to the earlier entry.
INDEXES: Tuple[IndexSpec, ...] = (PRIMARY, STATUS_LSI, ORG_ROLE_GSI)
