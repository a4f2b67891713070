"""
FeatureFlagService: process-local feature flags.

Flags are read from the environment at startup; users may override them for
themselves through the /flags endpoints. Resolution order for
is_enabled(flag, user_id):
  1. per-user override
  2. AI_FEATURE_<NAME>=true|false environment variable
  3. defaults table below
  4. False
"""

from __future__ import annotations

import logging
import os
from typing import Mapping

logger = logging.getLogger(__name__)

ENV_PREFIX = "AI_FEATURE_"

DEFAULT_FLAGS: dict[str, bool] = {
    "ai_agent": True,
    "ai_template_generation": True,
    "entity_extraction": True,
    "requirement_analysis": True,
    "realtime_updates": True,
    # Persisting the parsed draft on every turn is opt-in
    "ai_template_draft_save": False,
    "experimental_models": False,
}


class FeatureFlagService:

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._flags: dict[str, bool] = {}
        self._user_overrides: dict[str, dict[str, bool]] = {}
        self._load(os.environ if environ is None else environ)

    def _load(self, environ: Mapping[str, str]) -> None:
        for key, value in environ.items():
            if key.startswith(ENV_PREFIX):
                self._flags[key.removeprefix(ENV_PREFIX).lower()] = value.strip().lower() == "true"
        for flag, value in DEFAULT_FLAGS.items():
            self._flags.setdefault(flag, value)
        logger.info("Loaded %d feature flags.", len(self._flags))

    @staticmethod
    def _user_key(user_id: int) -> str:
        return f"user-{user_id}"

    def is_enabled(self, flag: str, user_id: int | None = None) -> bool:
        if user_id:
            overrides = self._user_overrides.get(self._user_key(user_id), {})
            if flag in overrides:
                return overrides[flag]
        return self._flags.get(flag, False)

    def set_user_override(self, user_id: int, flag: str, enabled: bool) -> None:
        self._user_overrides.setdefault(self._user_key(user_id), {})[flag] = enabled
        logger.info("User %s override for '%s' set to %s.", user_id, flag, enabled)

    def remove_user_override(self, user_id: int, flag: str | None = None) -> None:
        """Drop one override, or all of the user's overrides when flag is None."""
        key = self._user_key(user_id)
        if flag is None:
            self._user_overrides.pop(key, None)
        else:
            self._user_overrides.get(key, {}).pop(flag, None)

    def has_flag(self, flag: str) -> bool:
        return flag in self._flags

    def get_user_flags(self, user_id: int) -> dict[str, bool]:
        return {**self._flags, **self._user_overrides.get(self._user_key(user_id), {})}
