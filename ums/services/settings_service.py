"""
Organization settings — one JSON document stored under a fixed key.

Reads always return the defaults overlaid with whatever is stored, so new
default keys show up without a migration. Updates are deep-merged into the
current document: a partial payload only touches the keys it names.
"""

import copy
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ums.clock import utc_now
from ums.models.setting import Setting
from ums.services import audit_service

SETTINGS_KEY = "org_settings"

DEFAULT_SETTINGS: dict[str, Any] = {
    "organizationName": "Acme Corp",
    "supportEmail": "support@acme.com",
    "technicalContact": "tech@acme.com",
    "integrations": {"slackConnected": False, "githubConnected": False},
    "compliance": {"auditLogging": True, "enforceSso": False, "logRetentionDays": 365},
    "security": {
        "requireMfaAdmins": True,
        "requireMfaUsers": False,
        "passwordMinLength": 12,
        "passwordExpiryDays": 90,
        "requireSpecialChars": True,
        "preventPasswordReuse": True,
        "sso": {"google": False, "okta": False, "customSaml": False},
    },
}


def deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Return base with incoming merged in; nested dicts merge, everything else replaces."""
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


async def get_settings(db: AsyncSession) -> dict[str, Any]:
    row = await db.get(Setting, SETTINGS_KEY, populate_existing=True)
    if row is None or not isinstance(row.value, dict):
        return copy.deepcopy(DEFAULT_SETTINGS)
    return deep_merge(DEFAULT_SETTINGS, row.value)


async def update_settings(
    db: AsyncSession,
    changes: dict[str, Any],
    actor_user_id: uuid.UUID,
    ip: str | None,
) -> dict[str, Any]:
    merged = deep_merge(await get_settings(db), changes)

    row = await db.get(Setting, SETTINGS_KEY)
    if row is None:
        db.add(Setting(key=SETTINGS_KEY, value=merged, updated_at=utc_now()))
    else:
        row.value = merged
        row.updated_at = utc_now()
    await db.flush()

    await audit_service.record(
        db, "SETTINGS_UPDATED", actor_user_id=actor_user_id, ip=ip,
        metadata={"keys": sorted(changes)},
    )
    return merged
