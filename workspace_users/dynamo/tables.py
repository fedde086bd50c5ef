from botocore.exceptions import ClientError
from typing import Any, Dict, List, Tuple

from ..errors import ConfigError
from ..logging_setup import get_logger, with_extras
from .indexes import ATTRIBUTE_TYPES, INDEXES, IndexKind, IndexSpec, PRIMARY

log = get_logger(__name__)

_THROUGHPUT = {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5}


def _key_schema(spec: IndexSpec) -> List[Dict[str, str]]:
    schema = [{"AttributeName": spec.key.partition_key, "KeyType": "HASH"}]
    if spec.key.sort_key:
        schema.append({"AttributeName": spec.key.sort_key, "KeyType": "RANGE"})
    return schema


def users_table_spec() -> Dict[str, Any]:
    """CreateTable parameters (minus TableName) derived from the declared indexes."""
    key_attrs = sorted({attr for spec in INDEXES for attr in spec.key.attributes})
    spec: Dict[str, Any] = {
        "KeySchema": _key_schema(PRIMARY),
        "AttributeDefinitions": [
            {"AttributeName": attr, "AttributeType": ATTRIBUTE_TYPES[attr]} for attr in key_attrs
        ],
        "ProvisionedThroughput": dict(_THROUGHPUT),
    }
    lsis = [s for s in INDEXES if s.kind is IndexKind.LOCAL]
    gsis = [s for s in INDEXES if s.kind is IndexKind.GLOBAL]
    if lsis:
        spec["LocalSecondaryIndexes"] = [
            {"IndexName": s.name, "KeySchema": _key_schema(s), "Projection": {"ProjectionType": "ALL"}}
            for s in lsis
        ]
    if gsis:
        spec["GlobalSecondaryIndexes"] = [
            {
                "IndexName": s.name,
                "KeySchema": _key_schema(s),
                "Projection": {"ProjectionType": "ALL"},
                "ProvisionedThroughput": dict(_THROUGHPUT),
            }
            for s in gsis
        ]
    return spec


def ensure_table(ddb, table_name: str) -> bool:
    """
    Create the users table with its LSI and GSI if missing.

    An existing table must match the declared key schema, LSI and attribute
    types (ConfigError otherwise); GSIs it lacks are requested. Returns True
    when the table was created by this call.
    """
    spec = users_table_spec()
    existing = {t.name for t in ddb.tables.all()}
    created = False
    if table_name not in existing:
        try:
            ddb.create_table(TableName=table_name, **spec).wait_until_exists()
            created = True
            with_extras(log, table=table_name).info("created users table")
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceInUseException":
                raise
    client = ddb.meta.client
    desc = client.describe_table(TableName=table_name)["Table"]
    verify_table(table_name, desc, spec)
    _request_missing_gsis(client, table_name, desc, spec)
    return created


def _keys(schema) -> List[Tuple[str, str]]:
    return [(k["AttributeName"], k["KeyType"]) for k in schema or []]


def _by_name(indexes) -> Dict[str, Dict[str, Any]]:
    return {ix["IndexName"]: ix for ix in indexes or []}


def verify_table(table_name: str, desc: Dict[str, Any], spec: Dict[str, Any]) -> None:
    """Raise ConfigError when a described table cannot serve the declared access paths."""
    problems: List[str] = []

    if _keys(desc.get("KeySchema")) != _keys(spec["KeySchema"]):
        problems.append(f"key schema is {_keys(desc.get('KeySchema'))}, expected {_keys(spec['KeySchema'])}")

    want_types = {a["AttributeName"]: a["AttributeType"] for a in spec["AttributeDefinitions"]}
    for a in desc.get("AttributeDefinitions") or []:
        name = a["AttributeName"]
        if name in want_types and a.get("AttributeType") != want_types[name]:
            problems.append(f"attribute {name} has type {a.get('AttributeType')}, expected {want_types[name]}")

    # LSIs can only be declared at creation time, so a missing one is fatal
    have_lsis = _by_name(desc.get("LocalSecondaryIndexes"))
    for lsi in spec.get("LocalSecondaryIndexes", []):
        found = have_lsis.get(lsi["IndexName"])
        if found is None:
            problems.append(f"local index {lsi['IndexName']} is missing")
        elif _keys(found.get("KeySchema")) != _keys(lsi["KeySchema"]):
            problems.append(f"local index {lsi['IndexName']} has key schema {_keys(found.get('KeySchema'))}")

    have_gsis = _by_name(desc.get("GlobalSecondaryIndexes"))
    for gsi in spec.get("GlobalSecondaryIndexes", []):
        found = have_gsis.get(gsi["IndexName"])
        if found is not None and _keys(found.get("KeySchema")) != _keys(gsi["KeySchema"]):
            problems.append(f"global index {gsi['IndexName']} has key schema {_keys(found.get('KeySchema'))}")

    if problems:
        raise ConfigError(f"table {table_name!r} does not match the users layout: " + "; ".join(problems))


def _request_missing_gsis(client, table_name: str, desc: Dict[str, Any], spec: Dict[str, Any]) -> None:
    have_gsis = _by_name(desc.get("GlobalSecondaryIndexes"))
    missing = [g for g in spec.get("GlobalSecondaryIndexes", []) if g["IndexName"] not in have_gsis]
    types = {a["AttributeName"]: a["AttributeType"] for a in spec["AttributeDefinitions"]}

    for gsi in missing:
        key_attrs = [name for name, _ in _keys(gsi["KeySchema"])]
        params: Dict[str, Any] = {
            "TableName": table_name,
            "GlobalSecondaryIndexUpdates": [{"Create": gsi}],
            # UpdateTable wants definitions for every key attribute of the new index
            "AttributeDefinitions": [{"AttributeName": a, "AttributeType": types[a]} for a in key_attrs],
        }
        try:
            client.update_table(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code != "ResourceInUseException":
                raise
            # one index build at a time; the next ensure_table call picks up the rest
            with_extras(log, table=table_name, index=gsi["IndexName"]).warning("index build already in progress")
            return
        with_extras(log, table=table_name, index=gsi["IndexName"]).info("requested global index")
