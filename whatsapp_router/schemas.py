"""Request models validated at the HTTP boundary."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import InboundMessageEvent, MediaRef, OutboundItem, StatusUpdateEvent, TemplateRef

LOGGER = logging.getLogger(__name__)

MISSING_MESSAGE_FIELDS = "Missing required fields: from, text"
MISSING_STATUS_FIELDS = "Missing required fields: messageId, status"
REQUIRED_FIELDS = {"message": ("from", "text"), "status_update": ("messageId", "status")}


class MessageEventIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["message"]
    sender: str = Field(..., alias="from", min_length=1)
    text: str = Field(..., min_length=1)
    timestamp: Optional[float] = None
    message_id: Optional[str] = Field(None, alias="messageId")


class StatusUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["status_update"]
    message_id: str = Field(..., alias="messageId", min_length=1)
    status: str = Field(..., min_length=1)
    timestamp: Optional[float] = None


WebhookEventIn = Annotated[Union[MessageEventIn, StatusUpdateIn], Field(discriminator="type")]
_EVENT_ADAPTER: TypeAdapter = TypeAdapter(WebhookEventIn)


class MediaIn(BaseModel):
    type: Literal["image", "video", "document"]
    url: Optional[str] = None
    data: Optional[str] = None


class VariableIn(BaseModel):
    name: str
    value: str


class TemplateIn(BaseModel):
    name: str = Field(..., min_length=1)
    language: str = "fr"
    components: Optional[List[Dict[str, Any]]] = None


class OutboundMessageIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    phone_number: str = Field(..., alias="phoneNumber", min_length=1)
    message: str = ""
    variables: Union[Dict[str, str], List[VariableIn], None] = None
    media: Optional[MediaIn] = None
    template: Optional[TemplateIn] = None

    def to_item(self) -> OutboundItem:
        if isinstance(self.variables, list):
            variables = {variable.name: variable.value for variable in self.variables}
        else:
            variables = dict(self.variables or {})
        media = MediaRef(type=self.media.type, url=self.media.url, data=self.media.data) if self.media else None
        template = None
        if self.template is not None:
            template = TemplateRef(
                name=self.template.name,
                language=self.template.language,
                components=list(self.template.components or []),
            )
        return OutboundItem(
            phone_number=self.phone_number,
            message=self.message,
            variables=variables,
            media=media,
            template=template,
        )


class SendRequestIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    messages: Union[List[OutboundMessageIn], OutboundMessageIn]
    user_id: Optional[str] = Field(None, alias="userId")

    def items(self) -> List[OutboundItem]:
        messages = self.messages if isinstance(self.messages, list) else [self.messages]
        return [message.to_item() for message in messages]


def parse_webhook_event(payload: Any) -> Union[InboundMessageEvent, StatusUpdateEvent]:
    """Turns a flat webhook payload into its tagged event type."""

    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    data = dict(payload)
    if "type" not in data:
        # Untagged payloads are only accepted as messages.
        if not (data.get("from") and data.get("text")):
            raise ValidationError(MISSING_MESSAGE_FIELDS)
        data["type"] = "message"
    try:
        event = _EVENT_ADAPTER.validate_python(data)
    except PydanticValidationError as exc:
        errors = exc.errors(include_url=False)
        LOGGER.info("Rejected webhook payload: %s", errors)
        event_type = data.get("type")
        required = REQUIRED_FIELDS.get(event_type) if isinstance(event_type, str) else None
        if required is None:
            raise ValidationError(f"Unsupported event type: {event_type}") from None
        for error in errors:
            field = str(error["loc"][-1]) if error.get("loc") else ""
            if field not in required:
                raise ValidationError(f"Invalid field {field}: {error.get('msg', '')}") from None
        if event_type == "status_update":
            raise ValidationError(MISSING_STATUS_FIELDS) from None
        raise ValidationError(MISSING_MESSAGE_FIELDS) from None
    if isinstance(event, StatusUpdateIn):
        return StatusUpdateEvent(
            provider_message_id=event.message_id,
            status=event.status,
            timestamp=event.timestamp,
        )
    return InboundMessageEvent(
        sender_address=event.sender,
        text=event.text,
        timestamp=event.timestamp,
        provider_message_id=event.message_id,
    )


def parse_send_request(payload: Any) -> SendRequestIn:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    if not payload.get("messages"):
        raise ValidationError("No messages provided")
    try:
        return SendRequestIn.model_validate(payload)
    except PydanticValidationError as exc:
        errors = exc.errors(include_url=False)
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"Invalid message payload: {location} {first.get('msg', '')}".strip()) from None
