"""
Feature flag router: /flags

Callers see their own effective flags and may override them for themselves.
"""

from fastapi import APIRouter, status
from pydantic import BaseModel

from template_interview.api.deps import CurrentUserId, FeatureFlagsDep
from template_interview.core.errors import FlagNotFoundError
from template_interview.services.feature_flags import FeatureFlagService

router = APIRouter()


class FlagOverrideRequest(BaseModel):
    enabled: bool


def _require_flag(flags: FeatureFlagService, flag: str) -> None:
    if not flags.has_flag(flag):
        raise FlagNotFoundError(f"Unknown feature flag '{flag}'")


# ── GET /flags  ───────────────────────────────────────────────────────────────

@router.get("", response_model=dict[str, bool], summary="My effective feature flags")
async def get_flags(
    current_user_id: CurrentUserId,
    flags: FeatureFlagsDep,
) -> dict[str, bool]:
    return flags.get_user_flags(current_user_id)


# ── PUT /flags/{flag}  ────────────────────────────────────────────────────────

@router.put("/{flag}", response_model=dict[str, bool], summary="Override a flag for myself")
async def set_flag_override(
    flag: str,
    body: FlagOverrideRequest,
    current_user_id: CurrentUserId,
    flags: FeatureFlagsDep,
) -> dict[str, bool]:
    _require_flag(flags, flag)
    flags.set_user_override(current_user_id, flag, body.enabled)
    return flags.get_user_flags(current_user_id)


# ── DELETE /flags[/{flag}]  ───────────────────────────────────────────────────

@router.delete("/{flag}", status_code=status.HTTP_204_NO_CONTENT, summary="Drop one override")
async def remove_flag_override(
    flag: str,
    current_user_id: CurrentUserId,
    flags: FeatureFlagsDep,
) -> None:
    _require_flag(flags, flag)
    flags.remove_user_override(current_user_id, flag)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT, summary="Drop all my overrides")
async def clear_flag_overrides(
    current_user_id: CurrentUserId,
    flags: FeatureFlagsDep,
) -> None:
    flags.remove_user_override(current_user_id)
