"""Tests for workspace_users.dynamo.client and tables: resource construction and table definition."""
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from workspace_users.db import init_db
from workspace_users.dynamo.client import get_dynamo_resource
from workspace_users.dynamo.tables import ensure_table, users_table_spec
from workspace_users.errors import ConfigError
from workspace_users.runtime_config import StoreConfig


def _store(**overrides) -> StoreConfig:
    values = dict(
        table_name="users", region="eu-central-1", endpoint_url=None,
        connect_timeout=2.0, read_timeout=4.0, max_attempts=3,
    )
    values.update(overrides)
    return StoreConfig(**values)


class ClientTests(unittest.TestCase):
    def test_aws_resource_carries_timeouts_and_retries(self) -> None:
        with patch("workspace_users.dynamo.client.boto3.resource") as mock_resource:
            get_dynamo_resource(_store())
        args, kwargs = mock_resource.call_args
        self.assertEqual(args, ("dynamodb",))
        self.assertEqual(kwargs["region_name"], "eu-central-1")
        self.assertNotIn("endpoint_url", kwargs)
        cfg = kwargs["config"]
        self.assertEqual(cfg.connect_timeout, 2.0)
        self.assertEqual(cfg.read_timeout, 4.0)
        self.assertEqual(cfg.retries, {"max_attempts": 3, "mode": "standard"})

    def test_local_endpoint_uses_dummy_credentials(self) -> None:
        with patch.dict("os.environ", {}, clear=True), \
                patch("workspace_users.dynamo.client.boto3.resource") as mock_resource:
            get_dynamo_resource(_store(endpoint_url="http://localhost:8000"))
        kwargs = mock_resource.call_args.kwargs
        self.assertEqual(kwargs["endpoint_url"], "http://localhost:8000")
        self.assertEqual(kwargs["aws_access_key_id"], "dummy")
        self.assertEqual(kwargs["aws_secret_access_key"], "dummy")


class TableSpecTests(unittest.TestCase):
    def test_primary_key_schema(self) -> None:
        spec = users_table_spec()
        self.assertEqual(spec["KeySchema"], [
            {"AttributeName": "workspace_hash", "KeyType": "HASH"},
            {"AttributeName": "email", "KeyType": "RANGE"},
        ])

    def test_indexes_and_attribute_types(self) -> None:
        spec = users_table_spec()
        types = {a["AttributeName"]: a["AttributeType"] for a in spec["AttributeDefinitions"]}
        self.assertEqual(types, {"workspace_hash": "S", "email": "S", "status": "S", "org_id": "N", "role": "S"})

        lsi = spec["LocalSecondaryIndexes"][0]
        self.assertEqual(lsi["IndexName"], "workspace_hash-status-index")
        self.assertEqual([k["AttributeName"] for k in lsi["KeySchema"]], ["workspace_hash", "status"])

        gsi = spec["GlobalSecondaryIndexes"][0]
        self.assertEqual(gsi["IndexName"], "org_id-role-index")
        self.assertEqual([(k["AttributeName"], k["KeyType"]) for k in gsi["KeySchema"]],
                         [("org_id", "HASH"), ("role", "RANGE")])
        self.assertEqual(gsi["ProvisionedThroughput"], {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5})


def _as_schema(pairs):
    return [{"AttributeName": n, "KeyType": t} for n, t in pairs]


def _described(gsis=(), key_schema=None, lsis=None, attr_types=None):
    key_schema = key_schema or [("workspace_hash", "HASH"), ("email", "RANGE")]
    if lsis is None:
        lsis = {"workspace_hash-status-index": [("workspace_hash", "HASH"), ("status", "RANGE")]}
    attr_types = attr_types or {"workspace_hash": "S", "email": "S", "status": "S"}
    gsi_keys = {"org_id-role-index": [("org_id", "HASH"), ("role", "RANGE")]}
    return {
        "KeySchema": _as_schema(key_schema),
        "AttributeDefinitions": [{"AttributeName": n, "AttributeType": t} for n, t in attr_types.items()],
        "LocalSecondaryIndexes": [{"IndexName": n, "KeySchema": _as_schema(k)} for n, k in lsis.items()],
        "GlobalSecondaryIndexes": [
            {"IndexName": n, "KeySchema": _as_schema(gsi_keys.get(n, [("org_id", "HASH")]))} for n in gsis
        ],
    }


def _ddb(existing_tables, gsis=(), **described):
    ddb = MagicMock()
    tables = []
    for name in existing_tables:
        t = MagicMock()
        t.name = name
        tables.append(t)
    ddb.tables.all.return_value = tables
    ddb.meta.client.describe_table.return_value = {"Table": _described(gsis, **described)}
    return ddb


class EnsureTableTests(unittest.TestCase):
    def test_creates_missing_table(self) -> None:
        ddb = _ddb([], gsis=["org_id-role-index"])
        self.assertTrue(ensure_table(ddb, "users"))
        kwargs = ddb.create_table.call_args.kwargs
        self.assertEqual(kwargs["TableName"], "users")
        self.assertIn("LocalSecondaryIndexes", kwargs)
        ddb.create_table.return_value.wait_until_exists.assert_called_once()
        ddb.meta.client.update_table.assert_not_called()

    def test_existing_table_gets_missing_gsi(self) -> None:
        ddb = _ddb(["users"])
        self.assertFalse(ensure_table(ddb, "users"))
        ddb.create_table.assert_not_called()
        params = ddb.meta.client.update_table.call_args.kwargs
        self.assertEqual(params["GlobalSecondaryIndexUpdates"][0]["Create"]["IndexName"], "org_id-role-index")
        self.assertEqual({d["AttributeName"] for d in params["AttributeDefinitions"]}, {"org_id", "role"})

    def test_gsi_update_in_progress_is_skipped(self) -> None:
        ddb = _ddb(["users"])
        ddb.meta.client.update_table.side_effect = ClientError(
            {"Error": {"Code": "ResourceInUseException", "Message": "busy"}}, "UpdateTable"
        )
        with self.assertLogs("workspace_users.dynamo.tables", level="WARNING"):
            self.assertFalse(ensure_table(ddb, "users"))

    def test_other_errors_propagate(self) -> None:
        ddb = _ddb([])
        ddb.create_table.side_effect = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "no"}}, "CreateTable"
        )
        with self.assertRaises(ClientError):
            ensure_table(ddb, "users")

    def test_init_db_requires_table_name(self) -> None:
        ddb = _ddb([])
        with self.assertRaises(ConfigError):
            init_db(_store(table_name=None), ddb)
        ddb.create_table.assert_not_called()


class TableLayoutMismatchTests(unittest.TestCase):
    def _assert_rejected(self, ddb, fragment) -> None:
        with self.assertRaises(ConfigError) as ctx:
            ensure_table(ddb, "users")
        self.assertIn(fragment, str(ctx.exception))
        ddb.create_table.assert_not_called()
        ddb.meta.client.update_table.assert_not_called()

    def test_wrong_primary_key_is_rejected(self) -> None:
        ddb = _ddb(["users"], key_schema=[("workspaceHash", "HASH"), ("email", "RANGE")],
                   attr_types={"workspaceHash": "S", "email": "S"})
        self._assert_rejected(ddb, "key schema")

    def test_missing_lsi_is_rejected(self) -> None:
        ddb = _ddb(["users"], gsis=["org_id-role-index"], lsis={})
        self._assert_rejected(ddb, "local index workspace_hash-status-index is missing")

    def test_lsi_with_other_sort_key_is_rejected(self) -> None:
        ddb = _ddb(["users"], lsis={"workspace_hash-status-index": [("workspace_hash", "HASH"), ("role", "RANGE")]})
        self._assert_rejected(ddb, "local index workspace_hash-status-index has key schema")

    def test_gsi_with_other_key_is_rejected(self) -> None:
        ddb = _ddb(["users"], gsis=["org_id-role-index"])
        ddb.meta.client.describe_table.return_value["Table"]["GlobalSecondaryIndexes"][0]["KeySchema"] = [
            {"AttributeName": "role", "KeyType": "HASH"},
        ]
        self._assert_rejected(ddb, "global index org_id-role-index")

    def test_attribute_type_mismatch_is_rejected(self) -> None:
        ddb = _ddb(["users"], attr_types={"workspace_hash": "S", "email": "S", "status": "N"})
        self._assert_rejected(ddb, "attribute status has type N")

    def test_matching_table_passes(self) -> None:
        ddb = _ddb(["users"], gsis=["org_id-role-index"],
                   attr_types={"workspace_hash": "S", "email": "S", "status": "S", "org_id": "N", "role": "S"})
        self.assertFalse(ensure_table(ddb, "users"))
        ddb.meta.client.update_table.assert_not_called()


if __name__ == "__main__":
    unittest.main()
