"""Resolution of WhatsApp Business credentials from ``user_whatsapp_config``."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..errors import NoActiveConfigError
from ..models import WhatsAppConfig, isoformat
from .record_store import RecordStore

LOGGER = logging.getLogger(__name__)

CONFIG_TABLE = "user_whatsapp_config"


def _usable(row: Optional[Dict[str, Any]]) -> bool:
    return bool(row and row.get("access_token") and row.get("phone_number_id"))


def _to_config(row: Dict[str, Any], source: str) -> WhatsAppConfig:
    return WhatsAppConfig(
        access_token=row["access_token"],
        phone_number_id=row["phone_number_id"],
        whatsapp_business_account_id=row.get("whatsapp_business_account_id") or None,
        source=source,
    )


class ConfigRepository:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def resolve(self, user_id: Optional[str] = None) -> WhatsAppConfig:
        """User's own active config first, then the most recently updated active one."""

        if user_id:
            row = self._store.select_one(CONFIG_TABLE, {"user_id": user_id, "is_active": True})
            if _usable(row):
                return _to_config(row, "user_config")
            LOGGER.info("No active WhatsApp configuration for user_id=%s", user_id)
        row = self._store.select_one(
            CONFIG_TABLE,
            {"is_active": True},
            order_by="updated_at",
            descending=True,
        )
        if _usable(row):
            LOGGER.info("Using fallback WhatsApp configuration for user_id=%s", user_id)
            return _to_config(row, "fallback_user_config")
        raise NoActiveConfigError()

    def deactivate(self, phone_number_id: str) -> int:
        updated = self._store.update(
            CONFIG_TABLE,
            {"phone_number_id": phone_number_id},
            {"is_active": False, "updated_at": isoformat()},
        )
        LOGGER.warning("Deactivated %d WhatsApp configuration(s) for phone_number_id=%s", updated, phone_number_id)
        return updated

    def register(
        self,
        access_token: str,
        phone_number_id: str,
        *,
        user_id: Optional[str] = None,
        whatsapp_business_account_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Stores an active configuration; a stale or deactivated row for the same phone number id is refreshed."""

        existing = self._store.select_one(CONFIG_TABLE, {"phone_number_id": phone_number_id})
        if existing is not None and (
            not existing.get("is_active")
            or existing.get("access_token") != access_token
            or (whatsapp_business_account_id and existing.get("whatsapp_business_account_id") != whatsapp_business_account_id)
        ):
            patch: Dict[str, Any] = {"access_token": access_token, "is_active": True, "updated_at": isoformat()}
            if whatsapp_business_account_id:
                patch["whatsapp_business_account_id"] = whatsapp_business_account_id
            if user_id:
                patch["user_id"] = user_id
            self._store.update(CONFIG_TABLE, {"phone_number_id": phone_number_id}, patch)
            LOGGER.info("Refreshed WhatsApp configuration for phone_number_id=%s", phone_number_id)
            return {**existing, **patch}
        return self._store.upsert(
            CONFIG_TABLE,
            {
                "user_id": user_id,
                "access_token": access_token,
                "phone_number_id": phone_number_id,
                "whatsapp_business_account_id": whatsapp_business_account_id,
                "is_active": True,
                "updated_at": isoformat(),
            },
            on_conflict="phone_number_id",
        )
