"""Data transfer objects for conversations, deliveries and provider events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(dt: Optional[datetime] = None) -> str:
    value = dt or utcnow()
    return value.isoformat()


def parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


class Intent(str, Enum):
    CLIENT = "client"
    EDUCATION = "education"
    QUIZ = "quiz"


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class InboundMessageEvent:
    sender_address: str
    text: str
    timestamp: Optional[float] = None
    provider_message_id: Optional[str] = None

    def received_at(self) -> datetime:
        """Provider clock when available, local clock otherwise."""

        if self.timestamp is None:
            return utcnow()
        try:
            return datetime.fromtimestamp(int(self.timestamp), tz=timezone.utc)
        except (OverflowError, OSError, TypeError, ValueError):
            return utcnow()


@dataclass(frozen=True)
class StatusUpdateEvent:
    provider_message_id: str
    status: str
    timestamp: Optional[float] = None


@dataclass(frozen=True)
class ConversationMessage:
    phone_number: str
    content: str
    sender: Sender
    created_at: datetime
    intent: Optional[Intent] = None
    response_time_seconds: Optional[float] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "phone_number": self.phone_number,
            "content": self.content,
            "sender": self.sender.value,
            "intent": self.intent.value if self.intent else None,
            "created_at": isoformat(self.created_at),
            "response_time": self.response_time_seconds,
        }

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "ConversationMessage":
        intent = row.get("intent")
        return cls(
            phone_number=row["phone_number"],
            content=row["content"],
            sender=Sender(row["sender"]),
            created_at=parse_datetime(row.get("created_at")) or utcnow(),
            intent=Intent(intent) if intent in {i.value for i in Intent} else None,
            response_time_seconds=row.get("response_time"),
        )


@dataclass(frozen=True)
class DeliveryRecord:
    phone_number: str
    message_preview: str
    status: DeliveryStatus
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "phone_number": self.phone_number,
            "message_preview": self.message_preview,
            "message_id": self.provider_message_id,
            "status": self.status.value,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "DeliveryRecord":
        return cls(
            phone_number=row.get("phone_number", ""),
            message_preview=row.get("message_preview", ""),
            status=DeliveryStatus(row["status"]),
            provider_message_id=row.get("message_id"),
            error=row.get("error"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class WhatsAppConfig:
    access_token: str
    phone_number_id: str
    whatsapp_business_account_id: Optional[str] = None
    source: str = "user_config"


@dataclass(frozen=True)
class MediaRef:
    type: str
    url: Optional[str] = None
    data: Optional[str] = None


@dataclass(frozen=True)
class TemplateRef:
    """A pre-approved WhatsApp template and its parameter components."""

    name: str
    language: str = "fr"
    components: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class MessageResult:
    status: str
    phone_number: str
    message: str
    timestamp: datetime
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status,
            "phoneNumber": self.phone_number,
            "message": self.message,
            "timestamp": isoformat(self.timestamp),
        }
        if self.message_id:
            payload["messageId"] = self.message_id
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class OutboundItem:
    """One entry of a batch send."""

    phone_number: str
    message: str
    variables: Dict[str, str] = field(default_factory=dict)
    media: Optional[MediaRef] = None
    template: Optional[TemplateRef] = None


@dataclass(frozen=True)
class StudentProfile:
    id: str
    phone_number: str
    user_id: Optional[str] = None
    level: str = "3ème"
    subjects: List[str] = field(default_factory=list)
    preferred_language: str = "french"

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "StudentProfile":
        return cls(
            id=str(row.get("id", "")),
            phone_number=row["phone_number"],
            user_id=row.get("user_id"),
            level=row.get("level") or "3ème",
            subjects=list(row.get("subjects") or []),
            preferred_language=row.get("preferred_language") or "french",
        )


@dataclass(frozen=True)
class ConversationContext:
    channel: str = "whatsapp"
    level: Optional[str] = None
    subject: Optional[str] = None
    understanding: Optional[float] = None
    complexity: Optional[float] = None
    language: Optional[str] = None
