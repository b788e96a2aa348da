from unittest.mock import Mock

import pytest
import requests

from whatsapp_router.errors import DeliveryError, WhatsAppAuthError
from whatsapp_router.models import WhatsAppConfig
from whatsapp_router.services.whatsapp_client import WhatsAppClient

from tests.helpers import make_response


def _client(session):
    return WhatsAppClient("token-abc", "123456", session=session)


class TestSendMessages:
    def test_text_payload(self):
        session = Mock()
        session.post.return_value = make_response(json_data={"messages": [{"id": "wamid.1"}]})

        result = _client(session).send_text_message("+242551234567", "Bonjour")

        assert WhatsAppClient.message_id(result) == "wamid.1"
        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url == "https://graph.facebook.com/v22.0/123456/messages"
        assert kwargs["headers"]["Authorization"] == "Bearer token-abc"
        assert kwargs["json"] == {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": "+242551234567",
            "type": "text",
            "text": {"preview_url": False, "body": "Bonjour"},
        }

    def test_media_payload_carries_caption(self):
        session = Mock()
        session.post.return_value = make_response(json_data={"messages": [{"id": "wamid.2"}]})

        _client(session).send_media_message("+242551234567", "image", "https://cdn.example.com/a.png", caption="Voici")

        payload = session.post.call_args.kwargs["json"]
        assert payload["type"] == "image"
        assert payload["image"] == {"link": "https://cdn.example.com/a.png", "caption": "Voici"}

    def test_media_payload_without_caption(self):
        session = Mock()
        session.post.return_value = make_response(json_data={"messages": [{"id": "wamid.2"}]})

        _client(session).send_media_message("+242551234567", "document", "https://cdn.example.com/a.pdf")

        assert session.post.call_args.kwargs["json"]["document"] == {"link": "https://cdn.example.com/a.pdf"}

    def test_template_payload(self):
        session = Mock()
        session.post.return_value = make_response(json_data={"messages": [{"id": "wamid.3"}]})
        components = [{"type": "body", "parameters": [{"type": "text", "text": "Awa"}]}]

        _client(session).send_template_message("+242551234567", "rappel_cours", components=components)

        assert session.post.call_args.kwargs["json"] == {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": "+242551234567",
            "type": "template",
            "template": {"name": "rappel_cours", "language": {"code": "fr"}, "components": components},
        }

    def test_template_without_components(self):
        session = Mock()
        session.post.return_value = make_response(json_data={"messages": [{"id": "wamid.3"}]})

        _client(session).send_template_message("+242551234567", "hello_world", "en_US")

        assert session.post.call_args.kwargs["json"]["template"] == {"name": "hello_world", "language": {"code": "en_US"}}

    def test_from_config(self):
        client = WhatsAppClient.from_config(WhatsAppConfig(access_token="t", phone_number_id="999"), session=Mock())

        assert client.phone_number_id == "999"


class TestErrors:
    def test_expired_token_raises_auth_error(self):
        session = Mock()
        session.post.return_value = make_response(
            status_code=400,
            reason="Bad Request",
            json_data={"error": {"message": "Error validating access token", "code": 190}},
        )

        with pytest.raises(WhatsAppAuthError) as excinfo:
            _client(session).send_text_message("+242551234567", "Bonjour")

        assert excinfo.value.provider_code == 190
        assert excinfo.value.message == "Error validating access token"

    def test_unauthorized_status_raises_auth_error(self):
        session = Mock()
        session.post.return_value = make_response(status_code=401, reason="Unauthorized", json_data=ValueError("no json"))

        with pytest.raises(WhatsAppAuthError):
            _client(session).send_text_message("+242551234567", "Bonjour")

    def test_provider_rejection_raises_delivery_error(self):
        session = Mock()
        session.post.return_value = make_response(
            status_code=400,
            reason="Bad Request",
            json_data={"error": {"message": "Recipient not in allowed list", "code": 131030}},
        )

        with pytest.raises(DeliveryError) as excinfo:
            _client(session).send_text_message("+242551234567", "Bonjour")

        assert not isinstance(excinfo.value, WhatsAppAuthError)
        assert excinfo.value.message == "Recipient not in allowed list"
        assert excinfo.value.http_status == 400

    def test_network_failure_raises_delivery_error(self):
        session = Mock()
        session.post.side_effect = requests.Timeout("timed out")

        with pytest.raises(DeliveryError):
            _client(session).send_text_message("+242551234567", "Bonjour")

    def test_message_id_missing(self):
        assert WhatsAppClient.message_id({}) is None
