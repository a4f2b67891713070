"""
ConversationCacheDAO

DynamoDB layout:
  PK = SESSION#<sessionId>      ← same PK as the parent session
  SK = CACHE#conversation

A mirror of the latest conversation for readers outside the API. Items carry a `ttl`
epoch attribute so DynamoDB expires them on its own.
"""

import time
from typing import Any

from template_interview.dao.base import BaseDAO, _to_dynamo


class ConversationCacheDAO(BaseDAO):

    @staticmethod
    def _pk(session_id: str) -> str:
        return f"SESSION#{session_id}"

    SK = "CACHE#conversation"

    def put(self, session_id: str, messages: list[dict[str, Any]], ttl_seconds: int) -> None:
        item = {
            "PK": self._pk(session_id),
            "SK": self.SK,
            "entityType": "CONVERSATION_CACHE",
            "messages": messages,
            "ttl": int(time.time()) + ttl_seconds,
        }
        self._table.put_item(Item=_to_dynamo(item))

    def delete(self, session_id: str) -> None:
        self._table.delete_item(Key={"PK": self._pk(session_id), "SK": self.SK})
