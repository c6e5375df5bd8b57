"""Wire messages exchanged with the host.

Both directions are closed tagged unions on ``type``. Inbound data that does
not parse into one of the known messages is rejected (``parse_inbound``
returns ``None``); outbound requests with an unknown type cannot be built.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

RESULT = "RESULT"
ERROR = "ERROR"
HOST_CONTEXT = "HOST_CONTEXT"
BRIDGE_READY = "BRIDGE_READY"

APP_READY = "APP_READY"
REQUEST_HOST_CONTEXT = "REQUEST_HOST_CONTEXT"
GET_USER_PROFILE = "GET_USER_PROFILE"
CREATE_EXPENSE = "CREATE_EXPENSE"
CREATE_INCOME = "CREATE_INCOME"

HANDSHAKE_TYPES = frozenset({HOST_CONTEXT, BRIDGE_READY})

UNKNOWN_ERROR_CODE = "UNKNOWN"
UNKNOWN_ERROR_MESSAGE = "Unknown host error"


class _Message(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    request_id: str | None = Field(default=None, alias="requestId")


# Inbound (host -> app)


class ResultMessage(_Message):
    type: Literal["RESULT"]
    result: Any = None


class ErrorMessage(_Message):
    type: Literal["ERROR"]
    error: Any = None

    @property
    def error_code(self) -> str:
        code = self.error.get("code") if isinstance(self.error, dict) else None
        return code if isinstance(code, str) else UNKNOWN_ERROR_CODE

    @property
    def error_message(self) -> str:
        message = self.error.get("message") if isinstance(self.error, dict) else None
        return message if isinstance(message, str) else UNKNOWN_ERROR_MESSAGE


class HostContextMessage(_Message):
    type: Literal["HOST_CONTEXT"]
    payload: Any = None


class BridgeReadyMessage(_Message):
    type: Literal["BRIDGE_READY"]


InboundMessage = Annotated[
    Union[ResultMessage, ErrorMessage, HostContextMessage, BridgeReadyMessage],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


def parse_inbound(data: object) -> InboundMessage | None:
    """Parse raw inbound data, returning ``None`` for anything unrecognized."""
    if not isinstance(data, dict):
        return None
    if not isinstance(data.get("type"), str):
        return None
    request_id = data.get("requestId")
    if request_id is not None and not isinstance(request_id, str):
        return None
    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError:
        return None


# Outbound (app -> host)


class AppReadyRequest(_Message):
    type: Literal["APP_READY"] = APP_READY


class HostContextRequest(_Message):
    type: Literal["REQUEST_HOST_CONTEXT"] = REQUEST_HOST_CONTEXT


class UserProfileRequest(_Message):
    type: Literal["GET_USER_PROFILE"] = GET_USER_PROFILE


class CreateExpenseRequest(_Message):
    type: Literal["CREATE_EXPENSE"] = CREATE_EXPENSE
    payload: dict[str, Any]


class CreateIncomeRequest(_Message):
    type: Literal["CREATE_INCOME"] = CREATE_INCOME
    payload: dict[str, Any]


OutboundMessage = Annotated[
    Union[
        AppReadyRequest,
        HostContextRequest,
        UserProfileRequest,
        CreateExpenseRequest,
        CreateIncomeRequest,
    ],
    Field(discriminator="type"),
]

_outbound_adapter: TypeAdapter[OutboundMessage] = TypeAdapter(OutboundMessage)


def build_outbound(
    message_type: str,
    payload: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Build a wire envelope for an outbound message.

    Raises ``ValueError`` for unknown message types or payloads that do not
    fit the message.
    """
    data: dict[str, Any] = {"type": message_type}
    if payload is not None:
        data["payload"] = payload
    if request_id is not None:
        data["requestId"] = request_id
    try:
        message = _outbound_adapter.validate_python(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid outbound message {message_type!r}: {exc}") from exc
    return message.model_dump(by_alias=True, exclude_none=True)
