"""
RateLimitDAO

DynamoDB layout:
  PK = RATE#<userId>
  SK = WINDOW#<yyyymmddhh>    (UTC hour)

One counter item per user per hour, incremented with an atomic ADD and
expired through `ttl` a little after its hour ends.
"""

import time
from datetime import datetime, timezone
from typing import Any

from template_interview.dao.base import BaseDAO

_WINDOW_TTL_SECONDS = 2 * 3600


class RateLimitDAO(BaseDAO):

    @staticmethod
    def _pk(user_id: int) -> str:
        return f"RATE#{user_id}"

    @staticmethod
    def _sk(now: datetime | None = None) -> str:
        now = now or datetime.now(timezone.utc)
        return f"WINDOW#{now:%Y%m%d%H}"

    def increment(self, user_id: int, now: datetime | None = None) -> int:
        """Add one to the current hour's counter and return the new count."""
        resp = self._table.update_item(
            Key={"PK": self._pk(user_id), "SK": self._sk(now)},
            UpdateExpression="ADD #c :one SET #t = if_not_exists(#t, :ttl)",
            ExpressionAttributeNames={"#c": "count", "#t": "ttl"},
            ExpressionAttributeValues={
                ":one": 1,
                ":ttl": int(time.time()) + _WINDOW_TTL_SECONDS,
            },
            ReturnValues="UPDATED_NEW",
        )
        attrs: dict[str, Any] = self._clean(resp["Attributes"])
        return int(attrs["count"])
