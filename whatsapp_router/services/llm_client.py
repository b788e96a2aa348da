"""HTTP client for the Groq chat-completions API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ..errors import LLMError

LOGGER = logging.getLogger(__name__)


class GroqClient:
    """Small helper around the OpenAI-compatible Groq endpoint."""

    API_URL = "https://api.groq.com/openai/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.7,
        max_tokens: int = 2048,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        api_url: Optional[str] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._session = session or requests.Session()
        self._timeout = timeout
        self._api_url = api_url or self.API_URL

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Returns the first choice's text, possibly empty."""

        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        payload = {
            "model": model or self._model,
            "messages": messages,
            "temperature": self._temperature if temperature is None else temperature,
            "max_tokens": self._max_tokens if max_tokens is None else max_tokens,
        }
        data = self._request(payload)
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            LOGGER.warning("Groq response without choices for model=%s", payload["model"])
            return ""
        message = choices[0].get("message") or {}
        return (message.get("content") or "").strip()

    def _request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        LOGGER.debug("Groq request: model=%s messages=%d", payload["model"], len(payload["messages"]))
        try:
            response = self._session.post(self._api_url, json=payload, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            LOGGER.error("Groq request failed: %s", exc)
            raise LLMError(f"LLM request failed: {exc}") from exc
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            LOGGER.error("Groq API error: %s | Response: %s", exc, response.text)
            raise LLMError(f"LLM API error: {response.status_code}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise LLMError("LLM API returned a non-JSON body") from exc
