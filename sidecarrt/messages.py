"""Status codes, status errors and the message templates used by the runtime API."""

from __future__ import annotations

from enum import IntEnum

__all__ = [
    "Code",
    "StatusError",
    "ERR_PUBSUB_EMPTY",
    "ERR_PUBSUB_NOT_FOUND",
    "ERR_TOPIC_EMPTY",
    "ERR_PUBSUB_CLOUD_EVENTS_SER",
    "ERR_PUBSUB_PUBLISH_MESSAGE",
    "ERR_PUBSUB_CLOUD_EVENT_CREATION",
    "ERR_STATE_STORES_NOT_CONFIGURED",
    "ERR_STATE_STORE_NOT_FOUND",
    "ERR_STATE_GET",
    "ERR_STATE_DELETE",
    "ERR_STATE_SAVE",
    "ERR_STATE_STORE_NOT_SUPPORTED",
    "ERR_NOT_SUPPORTED_STATE_OPERATION",
    "ERR_STATE_TRANSACTION",
    "ERR_LOCK_STORES_NOT_CONFIGURED",
    "ERR_RESOURCE_ID_EMPTY",
    "ERR_LOCK_OWNER_EMPTY",
    "ERR_EXPIRE_NOT_POSITIVE",
    "ERR_LOCK_STORE_NOT_FOUND",
]

# PubSub
ERR_PUBSUB_EMPTY = "pubsub name is empty"
ERR_PUBSUB_NOT_FOUND = "pubsub %s not found"
ERR_TOPIC_EMPTY = "topic is empty in pubsub %s"
ERR_PUBSUB_CLOUD_EVENTS_SER = (
    "error when marshalling cloud event envelope for topic %s pubsub %s: %s"
)
ERR_PUBSUB_PUBLISH_MESSAGE = "error when publish to topic %s in pubsub %s: %s"
ERR_PUBSUB_CLOUD_EVENT_CREATION = "cannot create cloudevent: %s"

# State
ERR_STATE_STORES_NOT_CONFIGURED = "state store is not configured"
ERR_STATE_STORE_NOT_FOUND = "state store %s is not found"
ERR_STATE_GET = "fail to get %s from state store %s: %s"
ERR_STATE_DELETE = "failed deleting state with key %s: %s"
ERR_STATE_SAVE = "failed saving state in state store %s: %s"

# State transactions
ERR_STATE_STORE_NOT_SUPPORTED = "state store %s doesn't support transaction"
ERR_NOT_SUPPORTED_STATE_OPERATION = "operation type %s not supported"
ERR_STATE_TRANSACTION = "error while executing state transaction: %s"

# Lock
ERR_LOCK_STORES_NOT_CONFIGURED = "lock store is not configured"
ERR_RESOURCE_ID_EMPTY = "ResourceId is empty in lock store %s"
ERR_LOCK_OWNER_EMPTY = "LockOwner is empty in lock store %s"
ERR_EXPIRE_NOT_POSITIVE = "Expire is not positive in lock store %s"
ERR_LOCK_STORE_NOT_FOUND = "lock store %s not found"


class Code(IntEnum):
    """Canonical RPC status codes."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class StatusError(Exception):
    """An error that carries a status code alongside its message."""

    def __init__(self, code: Code, message: str) -> None:
        super().__init__(message)
        self.code = Code(code)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"StatusError(code={self.code.name}, message={self.message!r})"