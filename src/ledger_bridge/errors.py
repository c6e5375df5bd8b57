"""Exception hierarchy and send error taxonomy."""

from __future__ import annotations

from enum import Enum


class LedgerBridgeError(Exception):
    """Base exception for the ledger bridge."""

    pass


class ConfigurationError(LedgerBridgeError):
    """Raised when the channel cannot be established (origin or counterpart).

    Fatal at construction time; never retried.
    """

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


class ChannelClosed(LedgerBridgeError):
    """Raised when sending on a channel that has been closed."""

    code = "ChannelClosed"


class RpcError(LedgerBridgeError):
    """Base class for failures of a single correlated call."""

    code = "RpcError"

    def __init__(
        self,
        message: str,
        *,
        request_id: str | None = None,
        request_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.request_type = request_type


class RpcTimeoutError(RpcError):
    """Raised when no response arrives within the call's bound."""

    code = "Timeout"

    def __init__(self, request_type: str, timeout_ms: int, request_id: str) -> None:
        super().__init__(
            f"{request_type} timed out after {timeout_ms} ms",
            request_id=request_id,
            request_type=request_type,
        )
        self.timeout_ms = timeout_ms


class HostRejectedError(RpcError):
    """Raised when the host answers with an error.

    ``code`` and ``message`` are the host's own values, unmodified.
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        raw: object = None,
        response_payload: object = None,
        request_id: str | None = None,
        request_type: str | None = None,
    ) -> None:
        super().__init__(message, request_id=request_id, request_type=request_type)
        self.code = code
        self.raw = raw
        self.response_payload = response_payload


class DestroyedError(RpcError):
    """Raised for calls outstanding at, or issued after, client teardown."""

    code = "Destroyed"


class PayloadValidationError(RpcError):
    """Raised when a host-facing payload does not match its schema."""

    code = "InvalidPayload"

    def __init__(self, errors: list[str], *, request_type: str | None = None) -> None:
        super().__init__(
            "Invalid submission payload: " + "; ".join(errors),
            request_type=request_type,
        )
        self.errors = errors


class StoreError(LedgerBridgeError):
    """Base exception for record store operations."""

    pass


class UnknownCollectionError(StoreError):
    """Raised when a collection name is not part of the schema."""

    def __init__(self, collection: str) -> None:
        super().__init__(f"Unknown collection: {collection}")
        self.collection = collection


class DuplicateKeyError(StoreError):
    """Raised by ``add`` when the key already exists."""

    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"Duplicate key {key!r} in {collection}")
        self.collection = collection
        self.key = key


class RecordNotFoundError(LedgerBridgeError):
    """Raised when a record id does not exist."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class RecordValidationError(LedgerBridgeError):
    """Raised for invalid record field values or edits."""

    pass


class SendErrorKind(str, Enum):
    """Error classification returned by the send pipeline."""

    VALIDATION = "ValidationError"
    IN_PROGRESS = "InProgress"
    HOST_UNREACHABLE = "HostUnreachable"
    TIMEOUT = "Timeout"
    HOST_REJECTED = "HostRejected"
    INVALID_ACKNOWLEDGEMENT = "InvalidAcknowledgement"
