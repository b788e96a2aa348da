"""Service layer that handles webhook events."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from ..errors import EmptyContentError, NoActiveConfigError, StoreError, ValidationError, WhatsAppRouterError
from ..models import (
    ConversationContext,
    ConversationMessage,
    DeliveryRecord,
    DeliveryStatus,
    InboundMessageEvent,
    Intent,
    Sender,
    StatusUpdateEvent,
    StudentProfile,
    WhatsAppConfig,
    utcnow,
)
from ..repositories.config_repository import ConfigRepository
from ..repositories.conversation_repository import ConversationRepository, ProfileRepository
from ..repositories.delivery_repository import DeliveryRepository
from ..schemas import parse_webhook_event
from .delivery_channel import DeliveryChannel
from .intent_classifier import classify
from .phone_numbers import DEFAULT_COUNTRY_PREFIX, is_valid, normalize
from .responder import Responder
from .sanitizer import sanitize

LOGGER = logging.getLogger(__name__)

WebhookEvent = Union[InboundMessageEvent, StatusUpdateEvent]

# Provider statuses outside the delivery lifecycle.
STATUS_ALIASES = {"read": DeliveryStatus.DELIVERED}


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: Dict[str, Any]


def to_delivery_status(value: str) -> DeliveryStatus:
    lowered = (value or "").strip().lower()
    if lowered in STATUS_ALIASES:
        return STATUS_ALIASES[lowered]
    try:
        return DeliveryStatus(lowered)
    except ValueError:
        raise ValidationError(f"Unsupported status: {value}") from None


def _international(wa_id: Any) -> Any:
    # wa_id is already a full international number without the plus sign.
    if not isinstance(wa_id, str) or not wa_id or wa_id.startswith("+"):
        return wa_id
    return f"+{wa_id}"


def flatten_meta_payload(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Converts a Cloud API envelope into flat tagged events; non-text messages are dropped."""

    events: List[Dict[str, Any]] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value", {}) or {}
            for message in value.get("messages", []) or []:
                if message.get("type") != "text":
                    LOGGER.debug("Ignoring %s message from %s", message.get("type"), message.get("from"))
                    continue
                events.append(
                    {
                        "type": "message",
                        "from": _international(message.get("from")),
                        "text": (message.get("text") or {}).get("body"),
                        "timestamp": message.get("timestamp"),
                        "messageId": message.get("id"),
                    }
                )
            for status in value.get("statuses", []) or []:
                events.append(
                    {
                        "type": "status_update",
                        "messageId": status.get("id"),
                        "status": status.get("status"),
                        "timestamp": status.get("timestamp"),
                    }
                )
    return events


class WebhookService:
    """Coordinates webhook processing, persistence, and reply delivery."""

    def __init__(
        self,
        conversations: ConversationRepository,
        profiles: ProfileRepository,
        deliveries: DeliveryRepository,
        configs: ConfigRepository,
        responder: Responder,
        channel: DeliveryChannel,
        *,
        default_country_prefix: str = DEFAULT_COUNTRY_PREFIX,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._conversations = conversations
        self._profiles = profiles
        self._deliveries = deliveries
        self._configs = configs
        self._responder = responder
        self._channel = channel
        self._default_prefix = default_country_prefix
        self._clock = clock

    def process_webhook(self, payload: Any) -> WebhookResult:
        received = self._clock()
        if isinstance(payload, dict) and "entry" in payload:
            return self._process_envelope(payload, received)
        return self.dispatch(parse_webhook_event(payload), received)

    def dispatch(self, event: WebhookEvent, received: Optional[float] = None) -> WebhookResult:
        if isinstance(event, StatusUpdateEvent):
            return self.handle_status_update(event)
        return self.handle_message(event, self._clock() if received is None else received)

    def handle_status_update(self, event: StatusUpdateEvent) -> WebhookResult:
        status = to_delivery_status(event.status)
        record = self._deliveries.apply_status(event.provider_message_id, status)
        if record is None:
            return WebhookResult(
                200,
                {"success": True, "updated": False, "message": f"No update applied for {event.provider_message_id}"},
            )
        return WebhookResult(200, {"success": True, "updated": True, "message": f"Status updated to {status.value}"})

    def handle_message(self, event: InboundMessageEvent, received: float) -> WebhookResult:
        phone_number = normalize(event.sender_address, self._default_prefix)
        if not is_valid(phone_number):
            raise ValidationError(f"Invalid sender address: {event.sender_address}")
        content = sanitize(event.text)
        inbound_at = event.received_at()
        self._save(ConversationMessage(phone_number, content, Sender.USER, inbound_at))

        profile = self._profile(phone_number)
        intent = classify(content)
        LOGGER.info("Routing message from %s to %s chatbot", phone_number, intent.value)
        reply = self._responder.respond(intent, content, self._context(profile))
        response_time = round(self._clock() - received, 3)

        record: Optional[DeliveryRecord] = None
        delivery_error: Optional[Exception] = None
        config = self._resolve_config(profile)
        if config is not None:
            try:
                record = self._channel.send(phone_number, reply, config=config)
            except WhatsAppRouterError as exc:
                delivery_error = exc
            except Exception as exc:
                LOGGER.exception("Unexpected delivery failure for %s", phone_number)
                delivery_error = exc
        else:
            LOGGER.warning("No WhatsApp credentials resolvable; reply to %s stored only", phone_number)

        self._save(
            ConversationMessage(
                phone_number,
                self._storable(reply),
                Sender.BOT,
                max(utcnow(), inbound_at),
                intent=intent,
                response_time_seconds=response_time,
            )
        )
        if intent is Intent.EDUCATION and profile is not None:
            self._record_analytics(profile)
        if delivery_error is not None:
            raise delivery_error
        return WebhookResult(
            200,
            {
                "success": True,
                "response": reply,
                "chatbotType": intent.value,
                "delivered": record is not None,
                "messageId": record.provider_message_id if record else None,
            },
        )

    def _process_envelope(self, payload: Dict[str, Any], received: float) -> WebhookResult:
        processed = 0
        failed = 0
        for data in flatten_meta_payload(payload):
            try:
                self.dispatch(parse_webhook_event(data), received)
            except WhatsAppRouterError as exc:
                failed += 1
                LOGGER.error("Webhook event %s failed: %s", data.get("messageId"), exc)
                continue
            except Exception:
                failed += 1
                LOGGER.exception("Webhook event %s failed unexpectedly", data.get("messageId"))
                continue
            processed += 1
        LOGGER.info("Webhook envelope processed=%d failed=%d", processed, failed)
        return WebhookResult(200, {"success": True, "received": processed + failed, "processed": processed, "failed": failed})

    def _save(self, message: ConversationMessage) -> None:
        try:
            self._conversations.append(message)
        except StoreError:
            LOGGER.exception("Failed to save %s message for %s", message.sender.value, message.phone_number)

    def _profile(self, phone_number: str) -> Optional[StudentProfile]:
        try:
            return self._profiles.get_or_create(phone_number)
        except StoreError:
            LOGGER.exception("Failed to resolve profile for %s", phone_number)
            return None

    def _context(self, profile: Optional[StudentProfile]) -> ConversationContext:
        if profile is None:
            return ConversationContext()
        analytics: Dict[str, Any] = {}
        try:
            analytics = self._profiles.latest_analytics(profile.id) or {}
        except StoreError:
            LOGGER.exception("Failed to load analytics for student %s", profile.id)
        subject = profile.subjects[0] if profile.subjects else None
        if not subject and analytics.get("subject") not in (None, "", "general", "unknown"):
            subject = analytics["subject"]
        return ConversationContext(
            level=profile.level,
            subject=subject,
            understanding=analytics.get("understanding_score"),
            complexity=analytics.get("complexity_level"),
            language=profile.preferred_language,
        )

    def _resolve_config(self, profile: Optional[StudentProfile]) -> Optional[WhatsAppConfig]:
        try:
            return self._configs.resolve(profile.user_id if profile else None)
        except NoActiveConfigError:
            return None
        except StoreError:
            LOGGER.exception("Failed to resolve WhatsApp configuration")
            return None

    def _record_analytics(self, profile: StudentProfile) -> None:
        try:
            self._profiles.record_analytics(profile.id)
        except StoreError:
            LOGGER.exception("Failed to record analytics for student %s", profile.id)

    @staticmethod
    def _storable(reply: str) -> str:
        try:
            return sanitize(reply)
        except EmptyContentError:
            return reply
