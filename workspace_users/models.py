from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import RecordValidationError

# role and org_id form the GSI key and are required on every write
REQUIRED_ON_WRITE = ("workspace_hash", "email", "org_id", "role")


def _strip_nones(d: Dict[str, Any]) -> Dict[str, Any]:
    """Return a shallow copy of dict without None values (DynamoDB rejects None)."""
    return {k: v for k, v in d.items() if v is not None}


def _as_int(value: Any) -> Optional[int]:
    # boto3 returns numbers as Decimal
    return None if value is None else int(value)


@dataclass
class User:
    workspace_hash: str
    email: str
    org_id: int
    role: str
    status: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "User":
        return cls(
            workspace_hash=item.get("workspace_hash"),
            email=item.get("email"),
            org_id=_as_int(item.get("org_id")),
            role=item.get("role"),
            status=item.get("status"),
            created_at=item.get("created_at"),
            updated_at=item.get("updated_at"),
        )

    def validate(self) -> None:
        missing = [name for name in REQUIRED_ON_WRITE if getattr(self, name) in (None, "")]
        if missing:
            raise RecordValidationError(
                f"user {self.workspace_hash!r}/{self.email!r} is missing required attributes: {', '.join(missing)}"
            )
        if isinstance(self.org_id, bool) or not isinstance(self.org_id, int):
            raise RecordValidationError(f"org_id must be an integer, got {type(self.org_id).__name__}")

    def to_item(self, now: Optional[str] = None) -> Dict[str, Any]:
        """Validate and build the DynamoDB item, stamping timestamps."""
        self.validate()
        now = now or dt.datetime.now(dt.timezone.utc).isoformat()
        return _strip_nones({
            "workspace_hash": self.workspace_hash,
            "email": self.email,
            "org_id": self.org_id,
            "role": self.role,
            "status": self.status or None,
            "created_at": self.created_at or now,
            "updated_at": now,
        })

    def as_dict(self) -> Dict[str, Any]:
        return {
            "workspace_hash": self.workspace_hash,
            "email": self.email,
            "status": self.status,
            "role": self.role,
            "org_id": self.org_id,
        }
