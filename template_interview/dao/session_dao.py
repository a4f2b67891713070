"""
SessionDAO

DynamoDB layout:
  PK = SESSION#<sessionId>
  SK = METADATA

GSI usage:
  GSI1_UserByDate     -> list_by_user()         query userId, filter entityType=SESSION
  GSI2_StatusByExpiry -> list_expired_before()  query status, expiresAt < cutoff

The conversation is an embedded list on the session item. Every conversation
write carries the version the writer read; the write is rejected with a
ConditionalCheckFailedException when someone else got there first.
"""

from datetime import datetime, timezone
from typing import Any

from boto3.dynamodb.conditions import Attr, Key

from template_interview.dao.base import BaseDAO, _to_dynamo


class SessionDAO(BaseDAO):

    @staticmethod
    def _pk(session_id: str) -> str:
        return f"SESSION#{session_id}"

    SK = "METADATA"

    # ── Write ─────────────────────────────────────────────────────────────────

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Store a new session.

        Required in data: sessionId, userId, createdAt, expiresAt
        Optional: status, context, conversation, extractedRequirements
        """
        now = datetime.now(timezone.utc).isoformat()
        item: dict[str, Any] = {
            "PK": self._pk(data["sessionId"]),
            "SK": self.SK,
            "entityType": "SESSION",
            "sessionId": data["sessionId"],
            "userId": data["userId"],
            "status": data.get("status", "active"),
            "context": data.get("context", {}),
            "conversation": data.get("conversation", []),
            "extractedRequirements": data.get("extractedRequirements", []),
            "generatedTemplate": data.get("generatedTemplate"),
            "feedback": data.get("feedback", []),
            "createdAt": data.get("createdAt", now),
            "updatedAt": data.get("updatedAt", now),
            "expiresAt": data["expiresAt"],
            "version": 0,
        }
        self._table.put_item(
            Item=_to_dynamo(item),
            ConditionExpression=self._item_not_exists_condition(),
        )
        return self._clean(item)

    def update(self, session_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Update any subset of session fields (status, generatedTemplate, extractedRequirements)."""
        fields["updatedAt"] = datetime.now(timezone.utc).isoformat()
        expr, names, values = self._build_update_expr(fields)
        resp = self._table.update_item(
            Key={"PK": self._pk(session_id), "SK": self.SK},
            UpdateExpression=expr,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ConditionExpression=self._item_exists_condition(),
            ReturnValues="ALL_NEW",
        )
        return self._clean(resp["Attributes"])

    def append_messages(
        self, session_id: str, messages: list[dict[str, Any]], expected_version: int
    ) -> dict[str, Any]:
        """
        Append messages to the conversation using DynamoDB list_append and bump
        the version, conditional on the stored version being expected_version.
        """
        resp = self._table.update_item(
            Key={"PK": self._pk(session_id), "SK": self.SK},
            UpdateExpression=(
                "SET conversation = list_append(conversation, :m), "
                "#v = :next, updatedAt = :now"
            ),
            ExpressionAttributeNames={"#v": "version"},
            ExpressionAttributeValues={
                ":m": _to_dynamo(messages),
                ":next": expected_version + 1,
                ":expected": expected_version,
                ":now": datetime.now(timezone.utc).isoformat(),
            },
            ConditionExpression="attribute_exists(PK) AND #v = :expected",
            ReturnValues="ALL_NEW",
        )
        return self._clean(resp["Attributes"])

    def update_generated_template(
        self, session_id: str, template: dict[str, Any]
    ) -> dict[str, Any]:
        return self.update(session_id, {"generatedTemplate": template})

    def update_requirements(
        self, session_id: str, requirements: list[dict[str, Any]]
    ) -> dict[str, Any]:
        return self.update(session_id, {"extractedRequirements": requirements})

    def update_status(self, session_id: str, status: str) -> dict[str, Any]:
        return self.update(session_id, {"status": status})

    def mark_expired(self, session_id: str) -> dict[str, Any]:
        """
        active -> expired. Conditional on the session still being active, so a
        session ended in the meantime is left alone.
        """
        resp = self._table.update_item(
            Key={"PK": self._pk(session_id), "SK": self.SK},
            UpdateExpression="SET #s = :expired, updatedAt = :now",
            ExpressionAttributeNames={"#s": "status"},
            ExpressionAttributeValues={
                ":expired": "expired",
                ":active": "active",
                ":now": datetime.now(timezone.utc).isoformat(),
            },
            ConditionExpression="attribute_exists(PK) AND #s = :active",
            ReturnValues="ALL_NEW",
        )
        return self._clean(resp["Attributes"])

    def append_feedback(self, session_id: str, entry: dict[str, Any]) -> dict[str, Any]:
        resp = self._table.update_item(
            Key={"PK": self._pk(session_id), "SK": self.SK},
            UpdateExpression=(
                "SET feedback = list_append(if_not_exists(feedback, :empty), :f), "
                "updatedAt = :now"
            ),
            ExpressionAttributeValues={
                ":f": [_to_dynamo(entry)],
                ":empty": [],
                ":now": datetime.now(timezone.utc).isoformat(),
            },
            ConditionExpression=self._item_exists_condition(),
            ReturnValues="ALL_NEW",
        )
        return self._clean(resp["Attributes"])

    def delete(self, session_id: str) -> None:
        self._table.delete_item(Key={"PK": self._pk(session_id), "SK": self.SK})

    # ── Read ──────────────────────────────────────────────────────────────────

    def get(self, session_id: str) -> dict[str, Any] | None:
        resp = self._table.get_item(
            Key={"PK": self._pk(session_id), "SK": self.SK}
        )
        item = resp.get("Item")
        return self._clean(item) if item else None

    def list_by_user(self, user_id: int) -> list[dict[str, Any]]:
        """
        GSI1_UserByDate: all SESSION items for this user, sorted by createdAt asc.
        """
        resp = self._table.query(
            IndexName="GSI1_UserByDate",
            KeyConditionExpression=Key("userId").eq(user_id),
            FilterExpression=Attr("entityType").eq("SESSION"),
        )
        return [self._clean(item) for item in resp.get("Items", [])]

    def list_expired_before(self, status: str, cutoff: str) -> list[dict[str, Any]]:
        """
        GSI2_StatusByExpiry: SESSION items in `status` whose expiresAt (ISO-8601)
        sorts before cutoff. Follows LastEvaluatedKey to the end.
        """
        kwargs: dict[str, Any] = {
            "IndexName": "GSI2_StatusByExpiry",
            "KeyConditionExpression": Key("status").eq(status) & Key("expiresAt").lt(cutoff),
            "FilterExpression": Attr("entityType").eq("SESSION"),
        }
        items: list[dict[str, Any]] = []
        while True:
            resp = self._table.query(**kwargs)
            items.extend(self._clean(item) for item in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key
