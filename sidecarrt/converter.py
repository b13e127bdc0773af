"""Conversions between runtime API messages and component requests."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from sidecarrt.components import (
    BulkGetResponse,
    DeleteRequest,
    GetResponse,
    LockRequest,
    LockResponse,
    ReleaseRequest,
    ReleaseResponse,
    SetRequest,
    StateOption,
    concurrency_to_string,
    consistency_to_string,
    original_key,
)
from sidecarrt.spec import (
    BulkStateItem,
    DeleteStateRequest,
    GetStateResponse,
    StateItem,
    StateOptions,
    TryLockRequest,
    TryLockResponse,
    UnlockRequest,
    UnlockResponse,
    UnlockStatus,
)


def try_lock_request_to_component(request: Optional[TryLockRequest]) -> LockRequest:
    if request is None:
        return LockRequest()
    return LockRequest(
        resource_id=request.resource_id,
        lock_owner=request.lock_owner,
        expire=request.expire,
    )


def try_lock_response_to_grpc(response: Optional[LockResponse]) -> TryLockResponse:
    if response is None:
        return TryLockResponse()
    return TryLockResponse(success=response.success)


def unlock_request_to_component(request: Optional[UnlockRequest]) -> ReleaseRequest:
    if request is None:
        return ReleaseRequest()
    return ReleaseRequest(resource_id=request.resource_id, lock_owner=request.lock_owner)


def unlock_response_to_grpc(response: Optional[ReleaseResponse]) -> UnlockResponse:
    if response is None:
        return UnlockResponse()
    return UnlockResponse(status=UnlockStatus(response.status))


def _read_fields(response: Union[GetResponse, BulkGetResponse]) -> Dict[str, Any]:
    """Fields shared by every state read result."""
    return {
        "data": response.data,
        "etag": response.etag or "",
        "metadata": dict(response.metadata or {}),
    }


def get_response_to_get_state_response(response: Optional[GetResponse]) -> GetStateResponse:
    if response is None:
        return GetStateResponse()
    return GetStateResponse(**_read_fields(response))


def get_response_to_bulk_state_item(response: Optional[GetResponse], key: str) -> BulkStateItem:
    if response is None:
        return BulkStateItem(key=key)
    return BulkStateItem(key=key, **_read_fields(response))


def bulk_get_response_to_bulk_state_item(response: Optional[BulkGetResponse]) -> BulkStateItem:
    if response is None:
        return BulkStateItem()
    return BulkStateItem(
        key=original_key(response.key), error=response.error, **_read_fields(response)
    )


def _options(options: Optional[StateOptions]) -> StateOption:
    if options is None:
        return StateOption()
    return StateOption(
        consistency=consistency_to_string(options.consistency),
        concurrency=concurrency_to_string(options.concurrency),
    )


def _write_fields(source: Union[StateItem, DeleteStateRequest]) -> Dict[str, Any]:
    """Etag, metadata and options shared by every state write request."""
    return {
        "etag": source.etag.value if source.etag is not None else None,
        "metadata": dict(source.metadata or {}),
        "options": _options(source.options),
    }


def _delete_request(
    source: Union[StateItem, DeleteStateRequest, None], key: str
) -> DeleteRequest:
    if source is None:
        return DeleteRequest(key=key)
    return DeleteRequest(key=key, **_write_fields(source))


def state_item_to_set_request(item: Optional[StateItem], key: str) -> SetRequest:
    if item is None:
        return SetRequest(key=key)
    return SetRequest(key=key, value=item.value, **_write_fields(item))


def delete_state_request_to_delete_request(
    request: Optional[DeleteStateRequest], key: str
) -> DeleteRequest:
    return _delete_request(request, key)


def state_item_to_delete_request(item: Optional[StateItem], key: str) -> DeleteRequest:
    return _delete_request(item, key)