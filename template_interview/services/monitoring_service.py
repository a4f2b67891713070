"""
MonitoringService: AI usage and error reporting.

Everything goes to the application log; running totals are kept in memory
for the /health/usage view. Callers treat every method as best-effort.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class UsageStats:
    total_requests: int = 0
    failed_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0


class MonitoringService:

    def __init__(self) -> None:
        self._stats = UsageStats()

    def log_usage(self, user_id: int, session_id: str, tokens: int, cost: float) -> None:
        self._stats.total_requests += 1
        self._stats.total_tokens += tokens
        self._stats.total_cost += cost
        logger.info(
            "AI usage user=%s session=%s tokens=%d cost=%.6f",
            user_id, session_id, tokens, cost,
        )

    def log_ai_request(self, kind: str, session_id: str, **data: Any) -> None:
        logger.info("AI request kind=%s session=%s %s", kind, session_id, data)

    def log_ai_error(self, kind: str, session_id: str, error: Any) -> None:
        self._stats.failed_requests += 1
        logger.warning("AI error kind=%s session=%s error=%s", kind, session_id, error)

    def get_usage_stats(self) -> dict[str, Any]:
        return asdict(self._stats)
