"""Flask application entry point for the WhatsApp router."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from whatsapp_router.config import Settings
from whatsapp_router.errors import StoreError, ValidationError, WhatsAppRouterError
from whatsapp_router.repositories.config_repository import ConfigRepository
from whatsapp_router.repositories.conversation_repository import ConversationRepository, ProfileRepository
from whatsapp_router.repositories.delivery_repository import DeliveryRepository
from whatsapp_router.repositories.record_store import InMemoryRecordStore, RecordStore, SupabaseRecordStore
from whatsapp_router.schemas import parse_send_request
from whatsapp_router.services.delivery_channel import ClientFactory, DeliveryChannel
from whatsapp_router.services.llm_client import GroqClient
from whatsapp_router.services.media_storage import MediaStorage, SupabaseStorage
from whatsapp_router.services.responder import CompletionClient, Responder
from whatsapp_router.services.webhook_service import WebhookService
from whatsapp_router.services.whatsapp_client import WhatsAppClient

LOGGER = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
}
DEFAULT_LOG_LIMIT = 20


def _error(message: str, status_code: int) -> Tuple[Any, int]:
    return jsonify({"success": False, "error": message}), status_code


def _json_body() -> Any:
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Invalid request body")
    return payload


def _seed_config(configs: ConfigRepository, settings: Settings) -> None:
    if not (settings.whatsapp_token and settings.phone_number_id):
        return
    try:
        configs.register(
            settings.whatsapp_token,
            settings.phone_number_id,
            whatsapp_business_account_id=settings.whatsapp_business_account_id,
        )
    except StoreError:
        LOGGER.exception("Failed to seed WhatsApp configuration from the environment")
        return
    LOGGER.info("Seeded WhatsApp configuration for phone_number_id=%s", settings.phone_number_id)


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[RecordStore] = None,
    llm: Optional[CompletionClient] = None,
    media_storage: Optional[MediaStorage] = None,
    client_factory: Optional[ClientFactory] = None,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Flask:
    """Builds the application; collaborators default to the ones described by ``settings``."""

    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    if store is None:
        if settings.uses_supabase:
            store = SupabaseRecordStore(settings.supabase_url, settings.supabase_key)
        else:
            LOGGER.warning("Supabase is not configured; records are kept in memory")
            store = InMemoryRecordStore()
    if media_storage is None and settings.uses_supabase:
        media_storage = SupabaseStorage(settings.supabase_url, settings.supabase_key, settings.storage_bucket)
    if llm is None:
        llm = GroqClient(
            settings.groq_api_key,
            model=settings.groq_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout,
        )
    if client_factory is None:

        def client_factory(config):
            return WhatsAppClient.from_config(config, session=session, timeout=settings.whatsapp_timeout)

    conversations = ConversationRepository(store)
    profiles = ProfileRepository(store)
    deliveries = DeliveryRepository(store)
    configs = ConfigRepository(store)
    channel = DeliveryChannel(
        deliveries,
        configs,
        client_factory=client_factory,
        media_storage=media_storage,
        session=session,
        probe_timeout=settings.media_probe_timeout,
        pacing_seconds=settings.send_pacing_seconds,
        default_country_prefix=settings.default_country_prefix,
        sleep=sleep,
        clock=clock,
    )
    webhook_service = WebhookService(
        conversations,
        profiles,
        deliveries,
        configs,
        Responder(llm),
        channel,
        default_country_prefix=settings.default_country_prefix,
        clock=clock,
    )
    _seed_config(configs, settings)

    app = Flask(__name__)

    @app.after_request
    def add_cors_headers(response):
        response.headers.update(CORS_HEADERS)
        return response

    @app.errorhandler(WhatsAppRouterError)
    def handle_router_error(exc: WhatsAppRouterError):
        LOGGER.warning("%s: %s", type(exc).__name__, exc.message)
        return _error(exc.message, exc.status_code)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        if exc.code == 405:
            return _error("Method not allowed", 405)
        return _error(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        LOGGER.exception("Unhandled error on %s %s", request.method, request.path)
        return _error("Internal server error", 500)

    @app.route("/health", methods=["GET"])
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    # OPTIONS on /webhook belongs to the POST view.
    @app.route("/webhook", methods=["GET"], provide_automatic_options=False)
    def verify() -> Any:
        mode = request.args.get("hub.mode")
        token = request.args.get("hub.verify_token")
        challenge = request.args.get("hub.challenge")
        if mode == "subscribe" and settings.verify_token and token == settings.verify_token:
            return challenge or ""
        LOGGER.warning("Webhook verification rejected for mode=%s", mode)
        return _error("Verification failed", 403)

    @app.route("/webhook", methods=["POST", "OPTIONS"])
    def webhook() -> Any:
        if request.method == "OPTIONS":
            return "", 204
        result = webhook_service.process_webhook(_json_body())
        return jsonify(result.body), result.status_code

    @app.route("/messages", methods=["POST", "OPTIONS"])
    def send_messages() -> Any:
        if request.method == "OPTIONS":
            return "", 204
        send_request = parse_send_request(_json_body())
        config = configs.resolve(send_request.user_id)
        results = channel.send_many(send_request.items(), config=config)
        successful = sum(1 for result in results if result.ok)
        app.logger.info("Batch send returned %d/%d successful", successful, len(results))
        return {
            "success": True,
            "results": [result.as_dict() for result in results],
            "summary": {
                "total": len(results),
                "successful": successful,
                "failed": len(results) - successful,
            },
        }

    @app.route("/messages/<message_id>/status", methods=["GET"])
    def message_status(message_id: str) -> Any:
        record = deliveries.find_by_provider_id(message_id)
        if record is None:
            return _error(f"Unknown message id: {message_id}", 404)
        return {"success": True, "result": record.to_record()}

    @app.route("/logs", methods=["GET"])
    def logs() -> Dict[str, Any]:
        limit_param = request.args.get("limit", str(DEFAULT_LOG_LIMIT))
        try:
            limit = max(1, int(limit_param))
        except ValueError:
            raise ValidationError("limit must be numeric") from None
        records = deliveries.recent(limit)
        app.logger.info("Logs endpoint returning %d entries", len(records))
        return {"success": True, "logs": [record.to_record() for record in records]}

    @app.route("/media", methods=["POST", "OPTIONS"])
    def upload_media() -> Any:
        if request.method == "OPTIONS":
            return "", 204
        upload = request.files.get("file")
        if upload is None:
            raise ValidationError("No file provided")
        if media_storage is None:
            return _error("Media storage is not configured", 503)
        folder = request.form.get("folder") or "whatsapp-media"
        url = media_storage.upload(
            upload.read(),
            folder,
            filename=upload.filename or None,
            content_type=upload.mimetype or None,
        )
        return {"success": True, "url": url}

    @app.route("/whatsapp/connection", methods=["GET"])
    def connection() -> Dict[str, Any]:
        config = configs.resolve(request.args.get("userId"))
        connected = channel.check_connection(config)
        return {
            "success": True,
            "connected": connected,
            "source": config.source,
            "phoneNumberId": config.phone_number_id,
        }

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
