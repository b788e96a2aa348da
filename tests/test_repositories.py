from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from whatsapp_router.errors import NoActiveConfigError
from whatsapp_router.models import ConversationMessage, DeliveryStatus, Intent, Sender
from whatsapp_router.repositories.config_repository import CONFIG_TABLE
from whatsapp_router.repositories.conversation_repository import PROFILES_TABLE, ConversationRepository
from whatsapp_router.repositories.delivery_repository import MESSAGE_LOGS_TABLE, can_transition


class TestDeliveryRepository:
    def test_record_truncates_preview(self, deliveries, store):
        record = deliveries.record("+242551234567", "x" * 300, DeliveryStatus.SENT, provider_message_id="wamid.1")

        assert len(record.message_preview) == 100
        assert store.select_one(MESSAGE_LOGS_TABLE)["message_id"] == "wamid.1"

    def test_sent_moves_to_delivered(self, deliveries):
        deliveries.record("+242551234567", "Hi", DeliveryStatus.SENT, provider_message_id="wamid.1")

        updated = deliveries.apply_status("wamid.1", DeliveryStatus.DELIVERED)

        assert updated.status is DeliveryStatus.DELIVERED
        assert deliveries.find_by_provider_id("wamid.1").status is DeliveryStatus.DELIVERED

    def test_unknown_message_id_changes_nothing(self, deliveries, store):
        deliveries.record("+242551234567", "Hi", DeliveryStatus.SENT, provider_message_id="wamid.1")

        assert deliveries.apply_status("wamid.unknown", DeliveryStatus.DELIVERED) is None
        assert store.select_one(MESSAGE_LOGS_TABLE)["status"] == "sent"

    def test_terminal_status_is_not_reopened(self, deliveries):
        deliveries.record("+242551234567", "Hi", DeliveryStatus.ERROR, provider_message_id="wamid.1", error="boom")

        assert deliveries.apply_status("wamid.1", DeliveryStatus.DELIVERED) is None
        assert deliveries.find_by_provider_id("wamid.1").status is DeliveryStatus.ERROR

    def test_same_status_is_a_no_op(self, deliveries):
        deliveries.record("+242551234567", "Hi", DeliveryStatus.SENT, provider_message_id="wamid.1")

        assert deliveries.apply_status("wamid.1", DeliveryStatus.SENT).status is DeliveryStatus.SENT

    @pytest.mark.parametrize(
        "current, target, allowed",
        [
            (DeliveryStatus.PENDING, DeliveryStatus.SENT, True),
            (DeliveryStatus.PENDING, DeliveryStatus.ERROR, True),
            (DeliveryStatus.SENT, DeliveryStatus.FAILED, True),
            (DeliveryStatus.PENDING, DeliveryStatus.DELIVERED, False),
            (DeliveryStatus.DELIVERED, DeliveryStatus.SENT, False),
            (DeliveryStatus.FAILED, DeliveryStatus.DELIVERED, False),
        ],
    )
    def test_transitions(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_recent_honours_limit(self, deliveries):
        deliveries.record("+242551234567", "first", DeliveryStatus.SENT, provider_message_id="wamid.1")
        deliveries.record("+242551234567", "second", DeliveryStatus.SENT, provider_message_id="wamid.2")

        records = deliveries.recent(1)

        assert len(records) == 1


class TestConfigRepository:
    def test_user_config_takes_precedence(self, configs):
        configs.register("fallback-token", "111")
        configs.register("user-token", "222", user_id="user-1")

        config = configs.resolve("user-1")

        assert config.access_token == "user-token"
        assert config.source == "user_config"

    def test_falls_back_to_latest_active_config(self, configs, store):
        store.insert(
            CONFIG_TABLE,
            {"access_token": "old", "phone_number_id": "111", "is_active": True, "updated_at": "2024-01-01T00:00:00+00:00"},
        )
        store.insert(
            CONFIG_TABLE,
            {"access_token": "new", "phone_number_id": "222", "is_active": True, "updated_at": "2024-06-01T00:00:00+00:00"},
        )

        config = configs.resolve("someone-else")

        assert config.access_token == "new"
        assert config.source == "fallback_user_config"

    def test_no_active_config_raises(self, configs):
        with pytest.raises(NoActiveConfigError):
            configs.resolve()

    def test_deactivated_config_is_not_resolved(self, configs):
        configs.register("token", "111")

        assert configs.deactivate("111") == 1
        with pytest.raises(NoActiveConfigError):
            configs.resolve()

    def test_register_is_idempotent_per_phone_number_id(self, configs, store):
        configs.register("token", "111")
        configs.register("token", "111")

        assert store.count(CONFIG_TABLE) == 1

    def test_register_reactivates_with_rotated_token(self, configs, store):
        configs.register("old-token", "111")
        configs.deactivate("111")

        configs.register("new-token", "111")
        config = configs.resolve()

        assert config.access_token == "new-token"
        assert store.count(CONFIG_TABLE) == 1

    def test_register_replaces_token_of_active_row(self, configs):
        configs.register("old-token", "111")

        configs.register("new-token", "111")

        assert configs.resolve().access_token == "new-token"


class TestConversationRepositories:
    def test_history_is_chronological(self, conversations):
        start = datetime(2024, 5, 1, tzinfo=timezone.utc)
        conversations.append(ConversationMessage("+242551234567", "Bonjour", Sender.USER, start))
        conversations.append(
            ConversationMessage(
                "+242551234567",
                "Salut",
                Sender.BOT,
                start + timedelta(seconds=2),
                intent=Intent.CLIENT,
                response_time_seconds=1.5,
            )
        )

        history = conversations.history("+242551234567")

        assert [message.sender for message in history] == [Sender.USER, Sender.BOT]
        assert history[1].intent is Intent.CLIENT
        assert history[1].response_time_seconds == 1.5

    def test_profile_created_once(self, profiles, store):
        first = profiles.get_or_create("+242551234567")
        second = profiles.get_or_create("+242551234567")

        assert first.id == second.id
        assert first.level == "3ème"
        assert first.subjects == []
        assert first.preferred_language == "french"
        assert store.count(PROFILES_TABLE) == 1

    def test_latest_analytics(self, profiles):
        profile = profiles.get_or_create("+242551234567")
        profiles.record_analytics(profile.id, understanding=0.4)

        analytics = profiles.latest_analytics(profile.id)

        assert analytics["understanding_score"] == 0.4
        assert analytics["complexity_level"] == 0.5

    def test_find_missing_profile(self, profiles):
        assert profiles.find("+242000000000") is None

    def test_history_uses_store_query(self):
        store = Mock()
        store.select.return_value = []

        assert ConversationRepository(store).history("+242551234567", limit=5) == []
        assert store.select.call_args.kwargs["limit"] == 5
