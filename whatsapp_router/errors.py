"""Exception hierarchy shared by the routing pipeline."""

from __future__ import annotations

from typing import Optional


class WhatsAppRouterError(Exception):
    """Base class; ``status_code`` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WhatsAppRouterError):
    status_code = 400


class EmptyContentError(WhatsAppRouterError):
    status_code = 400

    def __init__(self, message: str = "Message is empty after sanitization") -> None:
        super().__init__(message)


class NoActiveConfigError(WhatsAppRouterError):
    status_code = 503

    def __init__(
        self,
        message: str = (
            "No active WhatsApp configuration found. "
            "Please configure your WhatsApp API credentials in the settings."
        ),
    ) -> None:
        super().__init__(message)


class InvalidMediaUrlError(WhatsAppRouterError):
    status_code = 400


class MediaUnreachableError(WhatsAppRouterError):
    status_code = 400


class DeliveryError(WhatsAppRouterError):
    """The messaging provider rejected a send."""

    status_code = 503

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        provider_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.http_status = http_status
        self.provider_code = provider_code


class WhatsAppAuthError(DeliveryError):
    """The access token is expired or invalid."""


class LLMError(WhatsAppRouterError):
    status_code = 503


class StoreError(WhatsAppRouterError):
    status_code = 503


class StorageError(WhatsAppRouterError):
    status_code = 503
