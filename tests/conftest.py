from unittest.mock import Mock

import pytest

from whatsapp_router.config import Settings
from whatsapp_router.models import WhatsAppConfig
from whatsapp_router.repositories.config_repository import ConfigRepository
from whatsapp_router.repositories.conversation_repository import ConversationRepository, ProfileRepository
from whatsapp_router.repositories.delivery_repository import DeliveryRepository
from whatsapp_router.repositories.record_store import InMemoryRecordStore

from tests.helpers import make_whatsapp_client


@pytest.fixture
def settings():
    return Settings(
        groq_api_key="test-groq-key",
        verify_token="verify-me",
        send_pacing_seconds=0.0,
    )


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def deliveries(store):
    return DeliveryRepository(store)


@pytest.fixture
def configs(store):
    return ConfigRepository(store)


@pytest.fixture
def conversations(store):
    return ConversationRepository(store)


@pytest.fixture
def profiles(store):
    return ProfileRepository(store)


@pytest.fixture
def whatsapp_config():
    return WhatsAppConfig(access_token="token-abc", phone_number_id="123456")


@pytest.fixture
def active_config(configs):
    configs.register("token-abc", "123456")
    return configs.resolve()


@pytest.fixture
def whatsapp_client():
    return make_whatsapp_client()


@pytest.fixture
def probe_session():
    session = Mock()
    session.head.return_value = Mock(ok=True, status_code=200, reason="OK", headers={"content-type": "image/png"})
    return session
