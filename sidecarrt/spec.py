"""Request and response messages of the runtime API."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional


def _dict() -> Any:
    return field(default_factory=dict)


def _list() -> Any:
    return field(default_factory=list)


class UnlockStatus(IntEnum):
    """Outcome of an unlock request."""

    SUCCESS = 0
    LOCK_UNEXIST = 1
    LOCK_BELONG_TO_OTHERS = 2
    INTERNAL_ERROR = 3


class Consistency(IntEnum):
    """Requested consistency of a state operation."""

    CONSISTENCY_UNSPECIFIED = 0
    CONSISTENCY_EVENTUAL = 1
    CONSISTENCY_STRONG = 2


class Concurrency(IntEnum):
    """Requested concurrency mode of a state operation."""

    CONCURRENCY_UNSPECIFIED = 0
    CONCURRENCY_FIRST_WRITE = 1
    CONCURRENCY_LAST_WRITE = 2


@dataclass
class StateOptions:
    concurrency: Concurrency = Concurrency.CONCURRENCY_UNSPECIFIED
    consistency: Consistency = Consistency.CONSISTENCY_UNSPECIFIED


@dataclass
class Etag:
    value: str = ""


@dataclass
class StateItem:
    key: str = ""
    value: bytes = b""
    etag: Optional[Etag] = None
    metadata: Dict[str, str] = _dict()
    options: Optional[StateOptions] = None


@dataclass
class GetStateRequest:
    store_name: str = ""
    key: str = ""
    consistency: Consistency = Consistency.CONSISTENCY_UNSPECIFIED
    metadata: Dict[str, str] = _dict()


@dataclass
class GetStateResponse:
    data: bytes = b""
    etag: str = ""
    metadata: Dict[str, str] = _dict()


@dataclass
class BulkStateItem:
    key: str = ""
    data: bytes = b""
    etag: str = ""
    error: str = ""
    metadata: Dict[str, str] = _dict()


@dataclass
class GetBulkStateRequest:
    store_name: str = ""
    keys: List[str] = _list()
    parallelism: int = 0
    metadata: Dict[str, str] = _dict()


@dataclass
class GetBulkStateResponse:
    items: List[BulkStateItem] = _list()


@dataclass
class _StateBatch:
    store_name: str = ""
    states: List[StateItem] = _list()


class SaveStateRequest(_StateBatch):
    """State items to save in one store."""


class DeleteBulkStateRequest(_StateBatch):
    """State items to delete from one store."""


@dataclass
class DeleteStateRequest:
    store_name: str = ""
    key: str = ""
    etag: Optional[Etag] = None
    options: Optional[StateOptions] = None
    metadata: Dict[str, str] = _dict()


@dataclass
class TransactionalStateOperation:
    operation_type: str = ""
    request: Optional[StateItem] = None


@dataclass
class ExecuteStateTransactionRequest:
    store_name: str = ""
    operations: List[TransactionalStateOperation] = _list()
    metadata: Dict[str, str] = _dict()


@dataclass
class _LockTarget:
    store_name: str = ""
    resource_id: str = ""
    lock_owner: str = ""


@dataclass
class TryLockRequest(_LockTarget):
    expire: int = 0


class UnlockRequest(_LockTarget):
    """Release of a lock held by an owner."""


@dataclass
class TryLockResponse:
    success: bool = False


@dataclass
class UnlockResponse:
    status: UnlockStatus = UnlockStatus.SUCCESS


@dataclass
class SayHelloRequest:
    service_name: str = ""
    name: str = ""


@dataclass
class SayHelloResponse:
    hello: str = ""


@dataclass
class ConfigurationItem:
    key: str = ""
    content: str = ""
    group: str = ""
    label: str = ""
    tags: Dict[str, str] = _dict()
    metadata: Dict[str, str] = _dict()


@dataclass
class _ConfigurationQuery:
    store_name: str = ""
    app_id: str = ""
    group: str = ""
    label: str = ""
    keys: List[str] = _list()
    metadata: Dict[str, str] = _dict()


class GetConfigurationRequest(_ConfigurationQuery):
    """Keys to read from a configuration store."""


class DeleteConfigurationRequest(_ConfigurationQuery):
    """Keys to delete from a configuration store."""


class SubscribeConfigurationRequest(_ConfigurationQuery):
    """Keys to watch in a configuration store."""


@dataclass
class GetConfigurationResponse:
    items: List[ConfigurationItem] = _list()


@dataclass
class SaveConfigurationRequest:
    store_name: str = ""
    app_id: str = ""
    items: List[ConfigurationItem] = _list()
    metadata: Dict[str, str] = _dict()


@dataclass
class SubscribeConfigurationResponse:
    store_name: str = ""
    app_id: str = ""
    items: List[ConfigurationItem] = _list()


@dataclass
class PublishEventRequest:
    pubsub_name: str = ""
    topic: str = ""
    data: bytes = b""
    data_content_type: str = ""
    metadata: Dict[str, str] = _dict()


@dataclass
class HTTPExtension:
    """HTTP verb (such as ``GET``) and query string of an invocation."""

    verb: str = "NONE"
    querystring: str = ""


@dataclass
class InvokeRequest:
    method: str = ""
    data: bytes = b""
    content_type: str = ""
    http_extension: Optional[HTTPExtension] = None


@dataclass
class InvokeServiceRequest:
    id: str = ""
    message: Optional[InvokeRequest] = None


@dataclass
class InvokeResponse:
    data: bytes = b""
    content_type: str = ""