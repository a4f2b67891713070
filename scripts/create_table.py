"""
Create the ProcessInterview single table and switch on item expiry.

Table name, region and endpoint come from the service settings
(DYNAMODB_TABLE_NAME, AWS_REGION, DYNAMODB_ENDPOINT_URL), so the same .env
drives the app and this script.

Usage:
    python scripts/create_table.py
    DYNAMODB_ENDPOINT_URL=http://localhost:8000 python scripts/create_table.py
"""

import argparse
import sys

import boto3
from botocore.exceptions import ClientError

from template_interview.core.config import get_settings

# Item layout (see template_interview/dao/):
#   SESSION#<id>  METADATA             session snapshot, versioned
#   SESSION#<id>  CACHE#conversation   conversation mirror, expires via ttl
#   RATE#<uid>    WINDOW#<yyyymmddhh>  hourly message counter, expires via ttl

KEYS = [
    {"AttributeName": "PK", "KeyType": "HASH"},
    {"AttributeName": "SK", "KeyType": "RANGE"},
]

# Only key attributes (table and index) are declared
ATTRIBUTES = [
    {"AttributeName": "PK", "AttributeType": "S"},
    {"AttributeName": "SK", "AttributeType": "S"},
    {"AttributeName": "userId", "AttributeType": "N"},
    {"AttributeName": "createdAt", "AttributeType": "S"},
    {"AttributeName": "status", "AttributeType": "S"},
    {"AttributeName": "expiresAt", "AttributeType": "S"},
]

SESSIONS_BY_USER = {
    "IndexName": "GSI1_UserByDate",
    "KeySchema": [
        {"AttributeName": "userId", "KeyType": "HASH"},
        {"AttributeName": "createdAt", "KeyType": "RANGE"},
    ],
    "Projection": {"ProjectionType": "ALL"},
}

# Expired-session sweep: active sessions past expiry, expired ones past retention
SESSIONS_BY_EXPIRY = {
    "IndexName": "GSI2_StatusByExpiry",
    "KeySchema": [
        {"AttributeName": "status", "KeyType": "HASH"},
        {"AttributeName": "expiresAt", "KeyType": "RANGE"},
    ],
    "Projection": {"ProjectionType": "ALL"},
}

TTL_ATTRIBUTE = "ttl"


def dynamodb_client():
    settings = get_settings()
    return boto3.client(
        "dynamodb",
        region_name=settings.aws_region,
        endpoint_url=settings.dynamodb_endpoint_url or None,
    )


def ensure_table(client, table_name: str) -> bool:
    """Create the table unless it exists. Returns True when it was created."""
    try:
        client.create_table(
            TableName=table_name,
            KeySchema=KEYS,
            AttributeDefinitions=ATTRIBUTES,
            GlobalSecondaryIndexes=[SESSIONS_BY_USER, SESSIONS_BY_EXPIRY],
            BillingMode="PAY_PER_REQUEST",
        )
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceInUseException":
            return False
        raise

    client.get_waiter("table_exists").wait(
        TableName=table_name, WaiterConfig={"Delay": 2, "MaxAttempts": 30}
    )
    return True


def ensure_ttl(client, table_name: str) -> None:
    current = client.describe_time_to_live(TableName=table_name)["TimeToLiveDescription"]
    if current.get("TimeToLiveStatus") in ("ENABLED", "ENABLING"):
        return
    client.update_time_to_live(
        TableName=table_name,
        TimeToLiveSpecification={"Enabled": True, "AttributeName": TTL_ATTRIBUTE},
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the ProcessInterview DynamoDB table.")
    parser.add_argument(
        "--table-name",
        default=get_settings().dynamodb_table_name,
        help="Override the table name from settings",
    )
    args = parser.parse_args()

    client = dynamodb_client()
    try:
        created = ensure_table(client, args.table_name)
        ensure_ttl(client, args.table_name)
    except ClientError as e:
        print(f"ERROR: {e.response['Error']['Message']}", file=sys.stderr)
        sys.exit(1)

    state = "created" if created else "already exists"
    print(f"Table '{args.table_name}' {state}; TTL on '{TTL_ATTRIBUTE}'.")


if __name__ == "__main__":
    main()
