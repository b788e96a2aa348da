"""Delivery log (``message_logs``) with its status lifecycle."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, FrozenSet, List, Optional

from ..models import DeliveryRecord, DeliveryStatus, isoformat
from .record_store import RecordStore

LOGGER = logging.getLogger(__name__)

MESSAGE_LOGS_TABLE = "message_logs"
PREVIEW_LENGTH = 100

ALLOWED_TRANSITIONS: Dict[DeliveryStatus, FrozenSet[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.SENT, DeliveryStatus.ERROR}),
    DeliveryStatus.SENT: frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}),
    DeliveryStatus.DELIVERED: frozenset(),
    DeliveryStatus.FAILED: frozenset(),
    DeliveryStatus.ERROR: frozenset(),
}


def can_transition(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class DeliveryRepository:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def record(
        self,
        phone_number: str,
        preview: str,
        status: DeliveryStatus,
        *,
        provider_message_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> DeliveryRecord:
        now = isoformat()
        record = DeliveryRecord(
            phone_number=phone_number,
            message_preview=preview[:PREVIEW_LENGTH],
            status=status,
            provider_message_id=provider_message_id,
            error=error,
            created_at=now,
            updated_at=now,
        )
        self._store.insert(MESSAGE_LOGS_TABLE, record.to_record())
        return record

    def find_by_provider_id(self, provider_message_id: str) -> Optional[DeliveryRecord]:
        row = self._store.select_one(MESSAGE_LOGS_TABLE, {"message_id": provider_message_id})
        return DeliveryRecord.from_record(row) if row else None

    def apply_status(self, provider_message_id: str, status: DeliveryStatus) -> Optional[DeliveryRecord]:
        """Moves the record to ``status``; returns None for unknown ids or refused transitions."""

        current = self.find_by_provider_id(provider_message_id)
        if current is None:
            LOGGER.warning("Status %s for unknown message_id=%s; nothing updated", status.value, provider_message_id)
            return None
        if current.status == status:
            LOGGER.debug("Status for message_id=%s already %s", provider_message_id, status.value)
            return current
        if not can_transition(current.status, status):
            LOGGER.warning(
                "Ignoring status transition %s -> %s for message_id=%s",
                current.status.value,
                status.value,
                provider_message_id,
            )
            return None
        updated_at = isoformat()
        self._store.update(
            MESSAGE_LOGS_TABLE,
            {"message_id": provider_message_id},
            {"status": status.value, "updated_at": updated_at},
        )
        LOGGER.info("message_id=%s moved %s -> %s", provider_message_id, current.status.value, status.value)
        return replace(current, status=status, updated_at=updated_at)

    def recent(self, limit: int = 20) -> List[DeliveryRecord]:
        rows = self._store.select(MESSAGE_LOGS_TABLE, order_by="created_at", descending=True, limit=limit)
        return [DeliveryRecord.from_record(row) for row in rows]
