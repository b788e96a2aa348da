"""Fakes shared by the test modules."""

from unittest.mock import Mock

import requests

from whatsapp_router.services.whatsapp_client import WhatsAppClient


class FakeLLM:
    """Completion client returning a canned reply and remembering the prompts."""

    def __init__(self, reply="Bonjour ! Comment puis-je vous aider ?", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, system_prompt, user_message):
        self.calls.append((system_prompt, user_message))
        if self.error is not None:
            raise self.error
        return self.reply


def make_whatsapp_client(message_id="wamid.TEST"):
    client = Mock(spec=WhatsAppClient)
    client.send_text_message.return_value = {"messages": [{"id": message_id}]}
    client.send_media_message.return_value = {"messages": [{"id": message_id}]}
    client.send_template_message.return_value = {"messages": [{"id": message_id}]}
    client.fetch_phone_number.return_value = {"id": "123456"}
    return client


def make_response(status_code=200, json_data=None, reason="OK", text=""):
    """Builds a ``requests.Response`` stand-in; ``json_data`` may be an exception to raise."""

    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = reason
    response.text = text
    response.headers = {}
    response.content = b"" if json_data is None else b"{}"
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data if json_data is not None else {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} {reason}")
    return response
