from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from boto3.dynamodb.conditions import Key

from ..logging_setup import get_logger, with_extras
from ..models import User
from ..runtime_config import MAX_BATCH_SIZE, StoreConfig
from .access_path import AccessPlan, build_request, select_access_path
from .client import get_users_table
from .indexes import PRIMARY

log = get_logger(__name__)


def _check_limit(limit: Optional[int]) -> None:
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
        raise ValueError(f"limit must be a positive integer, got {limit!r}")


@dataclass
class QueryResult:
    items: List[User]
    count: int
    plan: AccessPlan


class UsersRepo:
    """Reads and writes workspace users in a single DynamoDB table."""

    def __init__(self, table) -> None:
        self.table = table

    @classmethod
    def from_config(cls, store: StoreConfig, ddb=None) -> "UsersRepo":
        return cls(get_users_table(store, ddb))

    # --- point reads ---
    def get_by_key(self, workspace_hash: str, email: str) -> Optional[User]:
        it = self.table.get_item(Key={"workspace_hash": workspace_hash, "email": email}).get("Item")
        return User.from_item(it) if it else None

    def count_workspace(self, workspace_hash: str) -> int:
        """Number of users stored under a workspace (primary-key query, keys only)."""
        total = 0
        last_key = None
        while True:
            kwargs: Dict[str, Any] = {
                "KeyConditionExpression": Key(PRIMARY.key.partition_key).eq(workspace_hash),
                "Select": "COUNT",
            }
            if last_key:
                kwargs["ExclusiveStartKey"] = last_key
            resp = self.table.query(**kwargs)
            total += int(resp.get("Count", 0))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return total

    def stored_created_at(self, workspace_hash: str) -> Dict[str, Optional[str]]:
        """
        email -> created_at for every user stored under a workspace.

        An empty dict means the workspace is not stored yet. Only the two
        attributes are projected, so the read stays small.
        """
        out: Dict[str, Optional[str]] = {}
        last_key = None
        while True:
            kwargs: Dict[str, Any] = {
                "KeyConditionExpression": Key(PRIMARY.key.partition_key).eq(workspace_hash),
                "ProjectionExpression": "email, created_at",
            }
            if last_key:
                kwargs["ExclusiveStartKey"] = last_key
            resp = self.table.query(**kwargs)
            for it in resp.get("Items", []):
                out[it["email"]] = it.get("created_at")
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return out

    # --- planned lookups ---
    def query(
        self,
        predicate: Mapping[str, Any],
        *,
        allow_scan: bool = True,
        limit: Optional[int] = None,
    ) -> QueryResult:
        _check_limit(limit)
        plan = select_access_path(predicate, allow_scan=allow_scan)
        request = build_request(plan)
        op = self.table.scan if plan.is_scan else self.table.query

        items: List[Dict[str, Any]] = []
        last_key = None
        while True:
            kwargs = dict(request)
            if last_key:
                kwargs["ExclusiveStartKey"] = last_key
            resp = op(**kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key or (limit is not None and len(items) >= limit):
                break

        if limit is not None:
            items = items[:limit]
        users = [User.from_item(it) for it in items]
        with_extras(log, **plan.describe(), count=len(users)).debug("lookup complete")
        return QueryResult(items=users, count=len(users), plan=plan)

    # LSI: partition key + status, both key conditions
    def find_by_status(self, workspace_hash: str, status: str) -> List[User]:
        return self.query({"workspace_hash": workspace_hash, "status": status}).items

    # partition query, role applied as a filter
    def find_by_role(self, workspace_hash: str, role: str) -> List[User]:
        return self.query({"workspace_hash": workspace_hash, "role": role}).items

    # GSI partition key only
    def find_by_org_id(self, org_id: int) -> List[User]:
        return self.query({"org_id": org_id}).items

    # GSI partition key + sort key
    def find_by_org_id_and_role(self, org_id: int, role: str) -> List[User]:
        return self.query({"org_id": org_id, "role": role}).items

    def scan_some(self, limit: int) -> List[Dict[str, Any]]:
        _check_limit(limit)
        return self.table.scan(Limit=limit).get("Items", [])

    # --- writes ---
    def put(self, user: User) -> None:
        self.table.put_item(Item=user.to_item())

    def batch_put(self, users: Sequence[User]) -> int:
        """Overwrite up to 25 users in one BatchWriteItem request."""
        if len(users) > MAX_BATCH_SIZE:
            raise ValueError(f"batch_put accepts at most {MAX_BATCH_SIZE} users, got {len(users)}")
        if not users:
            return 0
        now = dt.datetime.now(dt.timezone.utc).isoformat()
        items = [u.to_item(now) for u in users]
        pkeys = list(PRIMARY.key.attributes)
        with self.table.batch_writer(overwrite_by_pkeys=pkeys) as bw:
            for item in items:
                bw.put_item(Item=item)
        return len(items)
