"""Outbound delivery: validation, provider send, pacing and the delivery log."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Callable, List, Optional, Sequence
from urllib.parse import urlparse

import requests

from ..errors import (
    EmptyContentError,
    InvalidMediaUrlError,
    MediaUnreachableError,
    StorageError,
    StoreError,
    ValidationError,
    WhatsAppAuthError,
    WhatsAppRouterError,
)
from ..models import (
    DeliveryRecord,
    DeliveryStatus,
    MediaRef,
    MessageResult,
    OutboundItem,
    TemplateRef,
    WhatsAppConfig,
    isoformat,
    utcnow,
)
from ..repositories.config_repository import ConfigRepository
from ..repositories.delivery_repository import DeliveryRepository
from .media_storage import MediaStorage
from .phone_numbers import DEFAULT_COUNTRY_PREFIX, is_valid, normalize
from .sanitizer import render_variables, sanitize
from .whatsapp_client import WhatsAppClient

LOGGER = logging.getLogger(__name__)

MEDIA_TYPES = ("image", "video", "document")
MEDIA_FOLDER = "whatsapp-media"
PROBE_USER_AGENT = "WhatsApp-Media-Validator/1.0"

ClientFactory = Callable[[WhatsAppConfig], WhatsAppClient]


class DeliveryChannel:
    """Sends replies through WhatsApp and records every attempt in ``message_logs``."""

    def __init__(
        self,
        deliveries: DeliveryRepository,
        configs: ConfigRepository,
        *,
        client_factory: Optional[ClientFactory] = None,
        media_storage: Optional[MediaStorage] = None,
        session: Optional[requests.Session] = None,
        probe_timeout: float = 10.0,
        pacing_seconds: float = 1.0,
        default_country_prefix: str = DEFAULT_COUNTRY_PREFIX,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._deliveries = deliveries
        self._configs = configs
        self._client_factory = client_factory or WhatsAppClient.from_config
        self._media_storage = media_storage
        self._session = session or requests.Session()
        self._probe_timeout = probe_timeout
        self._pacing_seconds = pacing_seconds
        self._default_prefix = default_country_prefix
        self._sleep = sleep
        self._clock = clock

    def send(
        self,
        phone_number: str,
        message: str,
        media: Optional[MediaRef] = None,
        *,
        config: WhatsAppConfig,
    ) -> DeliveryRecord:
        """Delivers one message; the delivery log is written whether it succeeds or not."""

        preview = message if isinstance(message, str) else ""
        try:
            text = self._sanitize(message, allow_empty=media is not None)
            preview = text
            client = self._client_factory(config)
            if media is not None:
                link = self._resolve_media(media)
                preview = f"[{media.type.upper()}] {text[:80]}"
                result = client.send_media_message(phone_number, media.type, link, caption=text or None)
            else:
                result = client.send_text_message(phone_number, text)
        except Exception as exc:
            if isinstance(exc, WhatsAppAuthError):
                self._deactivate(config)
            error_text = exc.message if isinstance(exc, WhatsAppRouterError) else str(exc)
            LOGGER.error("Delivery to %s failed: %s", phone_number, error_text)
            self._record(phone_number, preview, DeliveryStatus.ERROR, error=error_text)
            raise
        message_id = WhatsAppClient.message_id(result)
        LOGGER.info("Message sent to %s message_id=%s", phone_number, message_id)
        return self._record(phone_number, preview, DeliveryStatus.SENT, provider_message_id=message_id)

    def send_template(self, phone_number: str, template: TemplateRef, *, config: WhatsAppConfig) -> DeliveryRecord:
        """Sends a pre-approved template; logged as ``Template: <name>`` either way."""

        preview = f"Template: {template.name}"
        try:
            client = self._client_factory(config)
            result = client.send_template_message(
                phone_number,
                template.name,
                template.language,
                template.components or None,
            )
        except Exception as exc:
            if isinstance(exc, WhatsAppAuthError):
                self._deactivate(config)
            error_text = exc.message if isinstance(exc, WhatsAppRouterError) else str(exc)
            LOGGER.error("Template %s to %s failed: %s", template.name, phone_number, error_text)
            self._record(phone_number, preview, DeliveryStatus.ERROR, error=error_text)
            raise
        message_id = WhatsAppClient.message_id(result)
        LOGGER.info("Template %s sent to %s message_id=%s", template.name, phone_number, message_id)
        return self._record(phone_number, preview, DeliveryStatus.SENT, provider_message_id=message_id)

    def send_many(self, items: Sequence[OutboundItem], *, config: WhatsAppConfig) -> List[MessageResult]:
        """Sends sequentially; returns exactly one result per item, in order."""

        started = self._clock()
        results: List[MessageResult] = []
        for index, item in enumerate(items):
            normalized = normalize(item.phone_number, self._default_prefix)
            if not is_valid(normalized):
                LOGGER.warning(
                    "Invalid phone number after normalization: original=%s normalized=%s",
                    item.phone_number,
                    normalized,
                )
                results.append(
                    MessageResult(
                        status="error",
                        phone_number=item.phone_number,
                        message=item.message,
                        timestamp=utcnow(),
                        error=f"Invalid phone number: {item.phone_number}",
                    )
                )
                continue
            if item.template is not None:
                text = f"Template: {item.template.name}"
            else:
                text = render_variables(item.message, item.variables)
            self._pace(started, index)
            try:
                if item.template is not None:
                    record = self.send_template(normalized, item.template, config=config)
                else:
                    record = self.send(normalized, text, item.media, config=config)
            except WhatsAppRouterError as exc:
                results.append(self._failure(normalized, text, exc.message))
                continue
            except Exception as exc:
                LOGGER.exception("Unexpected error sending batch item %d to %s", index + 1, normalized)
                results.append(self._failure(normalized, text, str(exc)))
                continue
            results.append(
                MessageResult(
                    status="success",
                    phone_number=normalized,
                    message=text,
                    timestamp=utcnow(),
                    message_id=record.provider_message_id,
                )
            )
        succeeded = sum(1 for result in results if result.ok)
        LOGGER.info("Batch complete: total=%d successful=%d failed=%d", len(results), succeeded, len(results) - succeeded)
        return results

    def check_connection(self, config: WhatsAppConfig) -> bool:
        client = self._client_factory(config)
        try:
            client.fetch_phone_number()
        except WhatsAppAuthError:
            self._deactivate(config)
            return False
        except WhatsAppRouterError as exc:
            LOGGER.warning("WhatsApp connection check failed: %s", exc)
            return False
        return True

    @staticmethod
    def _failure(phone_number: str, message: str, error: str) -> MessageResult:
        return MessageResult(
            status="error",
            phone_number=phone_number,
            message=message,
            timestamp=utcnow(),
            error=error,
        )

    def _pace(self, started: float, index: int) -> None:
        delay = started + index * self._pacing_seconds - self._clock()
        if delay > 0:
            self._sleep(delay)

    @staticmethod
    def _sanitize(message: str, *, allow_empty: bool) -> str:
        try:
            return sanitize(message)
        except EmptyContentError:
            if allow_empty:
                return ""
            raise

    def _resolve_media(self, media: MediaRef) -> str:
        if media.type not in MEDIA_TYPES:
            raise ValidationError(f"Unsupported media type: {media.type}")
        url = media.url
        if not url and media.data:
            url = self._upload(media)
        if not url:
            raise InvalidMediaUrlError("Media requires a url or data")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidMediaUrlError(f"Invalid media URL: {url}")
        self._probe(url)
        return url

    def _upload(self, media: MediaRef) -> str:
        if self._media_storage is None:
            raise StorageError("Media data provided but no media storage is configured")
        try:
            payload = base64.b64decode(media.data or "", validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("Media data is not valid base64") from None
        return self._media_storage.upload(payload, MEDIA_FOLDER)

    def _probe(self, url: str) -> None:
        try:
            response = self._session.head(
                url,
                allow_redirects=True,
                headers={"User-Agent": PROBE_USER_AGENT},
                timeout=self._probe_timeout,
            )
        except requests.RequestException as exc:
            raise MediaUnreachableError(f"Media URL not accessible: {exc}") from exc
        if not response.ok:
            raise MediaUnreachableError(f"Media URL not accessible: {response.status_code} {response.reason}")
        LOGGER.debug("Media URL validated: %s content-type=%s", url, response.headers.get("content-type"))

    def _deactivate(self, config: WhatsAppConfig) -> None:
        try:
            self._configs.deactivate(config.phone_number_id)
        except StoreError:
            LOGGER.exception("Failed to deactivate WhatsApp configuration %s", config.phone_number_id)

    def _record(
        self,
        phone_number: str,
        preview: str,
        status: DeliveryStatus,
        *,
        provider_message_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> DeliveryRecord:
        try:
            return self._deliveries.record(
                phone_number,
                preview,
                status,
                provider_message_id=provider_message_id,
                error=error,
            )
        except StoreError:
            LOGGER.exception("Failed to log delivery to %s", phone_number)
            now = isoformat()
            return DeliveryRecord(
                phone_number=phone_number,
                message_preview=preview[:100],
                status=status,
                provider_message_id=provider_message_id,
                error=error,
                created_at=now,
                updated_at=now,
            )
