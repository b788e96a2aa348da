"""WhatsApp Cloud API client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ..errors import DeliveryError, WhatsAppAuthError
from ..models import WhatsAppConfig

LOGGER = logging.getLogger(__name__)

AUTH_ERROR_CODE = 190


def _provider_error(response: requests.Response) -> tuple[str, Optional[int]]:
    try:
        body = response.json()
    except ValueError:
        return response.reason or f"HTTP {response.status_code}", None
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return response.reason or "WhatsApp API error", None
    return error.get("message") or "WhatsApp API error", error.get("code")


class WhatsAppClient:
    """Small wrapper around the WhatsApp Cloud API."""

    API_BASE_URL = "https://graph.facebook.com/v22.0"

    def __init__(
        self,
        token: str,
        phone_number_id: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
    ) -> None:
        self._token = token
        self._phone_number_id = phone_number_id
        self._session = session or requests.Session()
        self._timeout = timeout

    @classmethod
    def from_config(
        cls,
        config: WhatsAppConfig,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
    ) -> "WhatsAppClient":
        return cls(config.access_token, config.phone_number_id, session=session, timeout=timeout)

    @property
    def phone_number_id(self) -> str:
        return self._phone_number_id

    def send_text_message(self, recipient: str, message: str) -> Dict[str, Any]:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "text",
            "text": {"preview_url": False, "body": message},
        }
        return self._post(payload)

    def send_media_message(
        self,
        recipient: str,
        media_type: str,
        link: str,
        caption: Optional[str] = None,
    ) -> Dict[str, Any]:
        media: Dict[str, Any] = {"link": link}
        if caption:
            media["caption"] = caption
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": media_type,
            media_type: media,
        }
        return self._post(payload)

    def send_template_message(
        self,
        recipient: str,
        name: str,
        language: str = "fr",
        components: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        template: Dict[str, Any] = {"name": name, "language": {"code": language}}
        if components:
            template["components"] = components
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "template",
            "template": template,
        }
        return self._post(payload)

    def fetch_phone_number(self) -> Dict[str, Any]:
        """Reads the phone number resource; used as a credentials check."""

        url = f"{self.API_BASE_URL}/{self._phone_number_id}"
        try:
            response = self._session.get(url, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as exc:
            raise DeliveryError(f"WhatsApp API unreachable: {exc}") from exc
        self._raise_for_status(response)
        return response.json()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.API_BASE_URL}/{self._phone_number_id}/messages"
        LOGGER.debug("Sending WhatsApp payload: %s", payload)
        try:
            response = self._session.post(url, json=payload, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as exc:
            LOGGER.error("WhatsApp API unreachable: %s", exc)
            raise DeliveryError(f"WhatsApp API unreachable: {exc}") from exc
        self._raise_for_status(response)
        return response.json()

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            message, code = _provider_error(response)
            LOGGER.error("WhatsApp API error: %s | Response: %s", exc, response.text)
            if code == AUTH_ERROR_CODE or response.status_code == 401:
                raise WhatsAppAuthError(message, http_status=response.status_code, provider_code=code) from exc
            raise DeliveryError(message, http_status=response.status_code, provider_code=code) from exc

    @staticmethod
    def message_id(result: Dict[str, Any]) -> Optional[str]:
        messages = result.get("messages") if isinstance(result, dict) else None
        if not messages:
            return None
        return messages[0].get("id")
