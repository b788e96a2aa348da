from datetime import datetime, timezone

import pytest

from whatsapp_router.errors import ValidationError
from whatsapp_router.models import InboundMessageEvent, StatusUpdateEvent
from whatsapp_router.schemas import parse_send_request, parse_webhook_event


class TestParseWebhookEvent:
    def test_tagged_message(self):
        event = parse_webhook_event(
            {"type": "message", "from": "242551234567", "text": "Bonjour", "timestamp": 1700000000, "messageId": "wamid.in"}
        )

        assert event == InboundMessageEvent("242551234567", "Bonjour", 1700000000, "wamid.in")

    def test_untagged_message_with_sender_and_text(self):
        event = parse_webhook_event({"from": "242551234567", "text": "Bonjour"})

        assert isinstance(event, InboundMessageEvent)

    def test_fractional_timestamp_is_accepted(self):
        event = parse_webhook_event({"type": "message", "from": "242551234567", "text": "Bonjour", "timestamp": 1700000000.5})

        assert event.timestamp == 1700000000.5
        assert event.received_at() == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_invalid_timestamp_names_the_field(self):
        with pytest.raises(ValidationError, match="Invalid field timestamp"):
            parse_webhook_event({"type": "message", "from": "242551234567", "text": "Bonjour", "timestamp": "soon"})

    def test_status_update(self):
        event = parse_webhook_event({"type": "status_update", "messageId": "wamid.1", "status": "delivered"})

        assert event == StatusUpdateEvent("wamid.1", "delivered")

    def test_untagged_status_payload_is_rejected(self):
        with pytest.raises(ValidationError, match="Missing required fields: from, text"):
            parse_webhook_event({"messageId": "wamid.1", "status": "delivered"})

    def test_status_update_without_status(self):
        with pytest.raises(ValidationError, match="Missing required fields: messageId, status"):
            parse_webhook_event({"type": "status_update", "messageId": "wamid.1"})

    def test_tagged_message_without_text(self):
        with pytest.raises(ValidationError, match="Missing required fields: from, text"):
            parse_webhook_event({"type": "message", "from": "242551234567"})

    def test_unknown_type(self):
        with pytest.raises(ValidationError, match="Unsupported event type"):
            parse_webhook_event({"type": "reaction", "from": "242551234567", "text": "x"})

    def test_non_object_body(self):
        with pytest.raises(ValidationError):
            parse_webhook_event(["not", "an", "object"])


class TestParseSendRequest:
    def test_single_message_is_wrapped(self):
        request = parse_send_request({"messages": {"phoneNumber": "0551234567", "message": "Salut"}, "userId": "u1"})

        items = request.items()
        assert request.user_id == "u1"
        assert len(items) == 1
        assert items[0].phone_number == "0551234567"

    def test_variables_as_list_or_mapping(self):
        request = parse_send_request(
            {
                "messages": [
                    {"phoneNumber": "1", "message": "{{a}}", "variables": [{"name": "a", "value": "x"}]},
                    {"phoneNumber": "2", "message": "{{b}}", "variables": {"b": "y"}},
                ]
            }
        )

        assert [item.variables for item in request.items()] == [{"a": "x"}, {"b": "y"}]

    def test_media_is_converted(self):
        request = parse_send_request(
            {"messages": [{"phoneNumber": "1", "media": {"type": "image", "url": "https://cdn.example.com/a.png"}}]}
        )

        media = request.items()[0].media
        assert media.type == "image"
        assert media.url == "https://cdn.example.com/a.png"

    def test_template_is_converted(self):
        request = parse_send_request(
            {"messages": [{"phoneNumber": "1", "template": {"name": "rappel_cours", "components": [{"type": "body"}]}}]}
        )

        template = request.items()[0].template
        assert template.name == "rappel_cours"
        assert template.language == "fr"
        assert template.components == [{"type": "body"}]

    def test_template_requires_a_name(self):
        with pytest.raises(ValidationError, match="Invalid message payload"):
            parse_send_request({"messages": [{"phoneNumber": "1", "template": {"language": "fr"}}]})

    def test_missing_messages(self):
        with pytest.raises(ValidationError, match="No messages provided"):
            parse_send_request({"messages": []})

    def test_unsupported_media_type(self):
        with pytest.raises(ValidationError, match="Invalid message payload"):
            parse_send_request({"messages": [{"phoneNumber": "1", "media": {"type": "sticker"}}]})
