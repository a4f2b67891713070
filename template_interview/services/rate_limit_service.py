"""
Per-user hourly allow/deny counter.
"""

from __future__ import annotations

import abc
import logging
from collections import defaultdict
from datetime import datetime, timezone

from fastapi.concurrency import run_in_threadpool

from template_interview.core.config import get_settings
from template_interview.dao.rate_limit_dao import RateLimitDAO

logger = logging.getLogger(__name__)


class RateLimiter(abc.ABC):

    def __init__(self, limit_per_hour: int | None = None) -> None:
        self.limit_per_hour = limit_per_hour or get_settings().rate_limit_per_hour

    @abc.abstractmethod
    async def allow(self, user_id: int) -> bool:
        """Count one request for user_id; False once the hourly limit is exceeded."""


class DynamoRateLimiter(RateLimiter):

    def __init__(self, dao: RateLimitDAO | None = None, limit_per_hour: int | None = None) -> None:
        super().__init__(limit_per_hour)
        self._dao = dao or RateLimitDAO()

    async def allow(self, user_id: int) -> bool:
        count = await run_in_threadpool(self._dao.increment, user_id)
        if count > self.limit_per_hour:
            logger.info("Rate limit hit for user=%s (%d/%d).", user_id, count, self.limit_per_hour)
            return False
        return True


class InMemoryRateLimiter(RateLimiter):

    def __init__(self, limit_per_hour: int | None = None) -> None:
        super().__init__(limit_per_hour)
        self._counts: defaultdict[tuple[int, str], int] = defaultdict(int)

    async def allow(self, user_id: int) -> bool:
        window = f"{datetime.now(timezone.utc):%Y%m%d%H}"
        self._counts[(user_id, window)] += 1
        if self._counts[(user_id, window)] > self.limit_per_hour:
            logger.info("Rate limit hit for user=%s.", user_id)
            return False
        return True
