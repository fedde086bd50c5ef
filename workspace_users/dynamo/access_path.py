from __future__ import annotations

from dataclasses import dataclass, field
from functools import reduce
from typing import Any, Dict, Mapping, Optional
import operator

from boto3.dynamodb.conditions import Attr, Key

from ..errors import AccessPathError
from ..logging_setup import get_logger, with_extras
from .indexes import ATTRIBUTE_TYPES, INDEXES, IndexSpec

log = get_logger(__name__)

SCAN = "scan"


@dataclass(frozen=True)
class AccessPlan:
    """Where a lookup runs and how its equality constraints are split."""
    index: Optional[IndexSpec]
    key_conditions: Dict[str, Any] = field(default_factory=dict)
    filter_conditions: Dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return self.index.kind.value if self.index else SCAN

    @property
    def index_name(self) -> Optional[str]:
        return self.index.name if self.index else None

    @property
    def is_scan(self) -> bool:
        return self.index is None

    @property
    def costly(self) -> bool:
        return self.is_scan or bool(self.filter_conditions)

    def describe(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "index_name": self.index_name,
            "key_conditions": dict(self.key_conditions),
            "filter_conditions": dict(self.filter_conditions),
        }


def _validate_predicate(predicate: Mapping[str, Any]) -> None:
    if not predicate:
        raise AccessPathError("empty predicate: at least one equality constraint is required")
    unknown = sorted(set(predicate) - set(ATTRIBUTE_TYPES))
    if unknown:
        raise AccessPathError(
            f"unsupported access path: unknown attribute(s) {', '.join(unknown)}; "
            f"expected any of {', '.join(sorted(ATTRIBUTE_TYPES))}"
        )
    for name, value in predicate.items():
        if ATTRIBUTE_TYPES[name] == "N":
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            ok = isinstance(value, str) and value != ""
        if not ok:
            raise AccessPathError(
                f"unsupported access path: {name}={value!r} does not match attribute type {ATTRIBUTE_TYPES[name]}"
            )


def _key_coverage(spec: IndexSpec, predicate: Mapping[str, Any]) -> int:
    # a query needs the partition key; the sort key only counts alongside it
    if spec.key.partition_key not in predicate:
        return 0
    return sum(1 for attr in spec.key.attributes if attr in predicate)


def select_access_path(predicate: Mapping[str, Any], *, allow_scan: bool = True) -> AccessPlan:
    """
    Pick the physical access path for a set of equality constraints.

    The index whose key schema covers the most constrained attributes wins,
    ties going to the base table, then the local index, then the global one.
    Every constrained key attribute of the chosen index becomes a key
    condition; whatever is left is filtered after retrieval. With no
    partition key constrained the lookup degrades to a filtered scan, or
    fails when scans are not allowed.
    """
    _validate_predicate(predicate)

    best: Optional[IndexSpec] = None
    best_score = 0
    for spec in INDEXES:
        score = _key_coverage(spec, predicate)
        if score > best_score:
            best, best_score = spec, score

    if best is None:
        if not allow_scan:
            raise AccessPathError(
                "unsupported access path: no index partition key among "
                f"{', '.join(sorted(predicate))} and scans are disabled"
            )
        plan = AccessPlan(index=None, filter_conditions=dict(predicate))
    else:
        keys = {attr: predicate[attr] for attr in best.key.attributes if attr in predicate}
        filters = {attr: value for attr, value in predicate.items() if attr not in keys}
        plan = AccessPlan(index=best, key_conditions=keys, filter_conditions=filters)

    if plan.costly:
        with_extras(log, **plan.describe()).warning(
            "lookup needs a filter%s; every item read is billed before filtering",
            " over a full table scan" if plan.is_scan else " over the fetched partition",
        )
    return plan


def build_request(plan: AccessPlan) -> Dict[str, Any]:
    """Translate a plan into keyword arguments for Table.query / Table.scan."""
    kwargs: Dict[str, Any] = {}
    if plan.index_name:
        kwargs["IndexName"] = plan.index_name
    if plan.key_conditions:
        kwargs["KeyConditionExpression"] = reduce(
            operator.and_, (Key(attr).eq(value) for attr, value in plan.key_conditions.items())
        )
    if plan.filter_conditions:
        kwargs["FilterExpression"] = reduce(
            operator.and_, (Attr(attr).eq(value) for attr, value in plan.filter_conditions.items())
        )
    return kwargs
