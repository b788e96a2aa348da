"""Persistence helpers for conversation turns, student profiles and analytics."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..models import ConversationMessage, StudentProfile, isoformat
from .record_store import RecordStore

CONVERSATIONS_TABLE = "customer_conversations"
PROFILES_TABLE = "student_profiles"
ANALYTICS_TABLE = "education_analytics"

DEFAULT_PROFILE: Dict[str, Any] = {
    "level": "3ème",
    "subjects": [],
    "preferred_language": "french",
}


class ConversationRepository:
    """Append-only conversation log keyed by phone number."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def append(self, message: ConversationMessage) -> Dict[str, Any]:
        return self._store.insert(CONVERSATIONS_TABLE, message.to_record())

    def history(self, phone_number: str, limit: int = 20) -> List[ConversationMessage]:
        rows = self._store.select(
            CONVERSATIONS_TABLE,
            {"phone_number": phone_number},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [ConversationMessage.from_record(row) for row in reversed(rows)]


class ProfileRepository:
    """Student profiles, created lazily on the first message from a number."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def get_or_create(self, phone_number: str) -> StudentProfile:
        record = {
            "phone_number": phone_number,
            **DEFAULT_PROFILE,
            "subjects": list(DEFAULT_PROFILE["subjects"]),
            "last_active_at": isoformat(),
        }
        row = self._store.upsert(PROFILES_TABLE, record, on_conflict="phone_number")
        return StudentProfile.from_record(row)

    def find(self, phone_number: str) -> Optional[StudentProfile]:
        row = self._store.select_one(PROFILES_TABLE, {"phone_number": phone_number})
        return StudentProfile.from_record(row) if row else None

    def latest_analytics(self, student_id: str) -> Optional[Dict[str, Any]]:
        return self._store.select_one(
            ANALYTICS_TABLE,
            {"student_id": student_id},
            order_by="created_at",
            descending=True,
        )

    def record_analytics(
        self,
        student_id: str,
        *,
        subject: str = "general",
        message_type: str = "question",
        sentiment: float = 0.0,
        complexity: float = 0.5,
        understanding: float = 0.7,
    ) -> Dict[str, Any]:
        return self._store.insert(
            ANALYTICS_TABLE,
            {
                "student_id": student_id,
                "message_type": message_type,
                "subject": subject,
                "sentiment": sentiment,
                "complexity_level": complexity,
                "understanding_score": understanding,
                "created_at": isoformat(),
            },
        )
