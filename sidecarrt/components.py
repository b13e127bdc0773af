"""Requests, responses and helpers shared with state, lock, pubsub, rpc and config components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from sidecarrt.spec import Concurrency, Consistency, UnlockStatus

KEY_SEPARATOR = "||"


class OperationType(str, Enum):
    """Kind of operation inside a state transaction."""

    UPSERT = "upsert"
    DELETE = "delete"


class Feature(str, Enum):
    """Optional capabilities a component may declare."""

    ETAG = "ETAG"
    TRANSACTIONAL = "TRANSACTIONAL"
    MESSAGE_TTL = "MESSAGE_TTL"

    def is_present(self, features: Optional[Iterable["Feature"]]) -> bool:
        """Whether this feature is among ``features``."""
        return any(feature == self for feature in features or ())


class ETagErrorKind(str, Enum):
    MISMATCH = "possible etag mismatch. error from state store"
    INVALID = "invalid etag value"


class ETagError(Exception):
    """A state store rejected an operation because of its etag."""

    def __init__(self, kind: ETagErrorKind, err: Optional[BaseException] = None) -> None:
        self.kind = ETagErrorKind(kind)
        self.err = err
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.err is not None:
            return f"{self.kind.value}: {self.err}"
        return self.kind.value


@dataclass
class StateOption:
    consistency: str = ""
    concurrency: str = ""


@dataclass
class GetRequest:
    key: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)
    options: StateOption = field(default_factory=StateOption)


@dataclass
class GetResponse:
    data: bytes = b""
    etag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class BulkGetResponse:
    key: str = ""
    data: bytes = b""
    etag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    error: str = ""


@dataclass
class SetRequest:
    key: str = ""
    value: bytes = b""
    etag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    options: StateOption = field(default_factory=StateOption)


@dataclass
class DeleteRequest:
    key: str = ""
    etag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    options: StateOption = field(default_factory=StateOption)


@dataclass
class TransactionalOperation:
    operation: OperationType
    request: object


@dataclass
class TransactionalStateRequest:
    operations: List[TransactionalOperation] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class LockRequest:
    resource_id: str = ""
    lock_owner: str = ""
    expire: int = 0


@dataclass
class LockResponse:
    success: bool = False


@dataclass
class ReleaseRequest:
    resource_id: str = ""
    lock_owner: str = ""


@dataclass
class ReleaseResponse:
    status: int = UnlockStatus.SUCCESS


@dataclass
class PublishRequest:
    pubsub_name: str = ""
    topic: str = ""
    data: bytes = b""
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class RPCRequest:
    id: str = ""
    method: str = ""
    content_type: str = ""
    data: bytes = b""
    header: Dict[str, List[str]] = field(default_factory=dict)
    timeout: int = 0


@dataclass
class RPCResponse:
    content_type: str = ""
    header: Optional[Dict[str, List[str]]] = None
    data: bytes = b""


@dataclass
class ConfigItem:
    key: str = ""
    content: str = ""
    group: str = ""
    label: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ConfigGetRequest:
    app_id: str = ""
    group: str = ""
    label: str = ""
    keys: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ConfigSetRequest:
    app_id: str = ""
    store_name: str = ""
    items: List[ConfigItem] = field(default_factory=list)


@dataclass
class ConfigDeleteRequest:
    app_id: str = ""
    group: str = ""
    label: str = ""
    keys: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ConfigSubscribeRequest:
    app_id: str = ""
    group: str = ""
    label: str = ""
    keys: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ConfigSubscribeResponse:
    store_name: str = ""
    app_id: str = ""
    items: List[ConfigItem] = field(default_factory=list)


_CONSISTENCY_NAMES = {
    Consistency.CONSISTENCY_EVENTUAL: "eventual",
    Consistency.CONSISTENCY_STRONG: "strong",
}

_CONCURRENCY_NAMES = {
    Concurrency.CONCURRENCY_FIRST_WRITE: "first-write",
    Concurrency.CONCURRENCY_LAST_WRITE: "last-write",
}


def consistency_to_string(consistency: Consistency) -> str:
    """Component name of a consistency level; empty when unspecified."""
    return _CONSISTENCY_NAMES.get(consistency, "")


def concurrency_to_string(concurrency: Concurrency) -> str:
    """Component name of a concurrency mode; empty when unspecified."""
    return _CONCURRENCY_NAMES.get(concurrency, "")


def modified_key(key: str, store_name: str, app_id: str) -> str:
    """Prefix ``key`` with the app id; raise ValueError if it holds the separator."""
    if KEY_SEPARATOR in key:
        raise ValueError(f"input key/keyPrefix '{key}' can't contain '{KEY_SEPARATOR}'")
    if not app_id:
        return key
    return f"{app_id}{KEY_SEPARATOR}{key}"


def original_key(key: str) -> str:
    """Strip the app-id prefix added by :func:`modified_key`."""
    parts = key.split(KEY_SEPARATOR)
    if len(parts) <= 1:
        return key
    return parts[1]