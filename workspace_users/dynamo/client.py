import os, boto3
from botocore.config import Config

from ..runtime_config import StoreConfig


def get_dynamo_resource(store: StoreConfig):
    """
    Switches between local DynamoDB and AWS based on config.
    - For local: set DYNAMO_LOCAL_URL (e.g. http://localhost:8000)
    - For AWS:   set AWS_REGION and credentials as usual
    Every call is bounded by connect/read timeouts and standard-mode retries.
    """
    cfg = Config(
        connect_timeout=store.connect_timeout,
        read_timeout=store.read_timeout,
        retries={"max_attempts": store.max_attempts, "mode": "standard"},
    )

    if store.endpoint_url:
        return boto3.resource(
            "dynamodb",
            region_name=store.region,
            endpoint_url=store.endpoint_url,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", "dummy"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", "dummy"),
            config=cfg,
        )
    return boto3.resource("dynamodb", region_name=store.region, config=cfg)


def get_users_table(store: StoreConfig, ddb=None):
    """Build the table handle once; callers pass it around explicitly."""
    table_name = store.require_table_name()
    ddb = ddb or get_dynamo_resource(store)
    return ddb.Table(table_name)
