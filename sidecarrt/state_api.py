"""State management part of the runtime API: get, save, delete and transactions."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional

from sidecarrt import messages
from sidecarrt.components import (
    DeleteRequest,
    ETagError,
    ETagErrorKind,
    Feature,
    GetRequest,
    OperationType,
    StateOption,
    TransactionalOperation,
    TransactionalStateRequest,
    consistency_to_string,
    modified_key,
    original_key,
)
from sidecarrt.converter import (
    bulk_get_response_to_bulk_state_item,
    delete_state_request_to_delete_request,
    get_response_to_bulk_state_item,
    get_response_to_get_state_response,
    state_item_to_delete_request,
    state_item_to_set_request,
)
from sidecarrt.messages import Code, StatusError
from sidecarrt.spec import (
    BulkStateItem,
    DeleteBulkStateRequest,
    DeleteStateRequest,
    ExecuteStateTransactionRequest,
    GetBulkStateRequest,
    GetBulkStateResponse,
    GetStateRequest,
    GetStateResponse,
    SaveStateRequest,
)

logger = logging.getLogger(__name__)


def _supports_transactions(store: Any) -> bool:
    features = getattr(store, "features", None)
    if not callable(features):
        return False
    return Feature.TRANSACTIONAL.is_present(features())


def _wrap_component_error(err: BaseException, template: str, *args: Any) -> StatusError:
    """Turn a component error into a status error, keeping etag failures apart."""
    message = template % args
    if isinstance(err, ETagError):
        if err.kind is ETagErrorKind.MISMATCH:
            return StatusError(Code.ABORTED, message)
        if err.kind is ETagErrorKind.INVALID:
            return StatusError(Code.INVALID_ARGUMENT, message)
    return StatusError(Code.INTERNAL, message)


class StateAPI:
    """Serves state requests by delegating to the configured state stores.

    Keys are prefixed with the app id before reaching a store. Stores that
    declare the transactional feature also serve state transactions.
    """

    def __init__(self, app_id: str, state_stores: Optional[Mapping[str, Any]] = None) -> None:
        self.app_id = app_id
        self.state_stores: Dict[str, Any] = dict(state_stores or {})
        self.transactional_state_stores: Dict[str, Any] = {
            name: store
            for name, store in self.state_stores.items()
            if store is not None and _supports_transactions(store)
        }

    def _get_store(self, name: str) -> Any:
        if not self.state_stores:
            raise StatusError(Code.FAILED_PRECONDITION, messages.ERR_STATE_STORES_NOT_CONFIGURED)
        store = self.state_stores.get(name)
        if store is None:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_STATE_STORE_NOT_FOUND % name)
        return store

    def _store_or_log(self, name: str, operation: str) -> Any:
        try:
            return self._get_store(name)
        except StatusError as exc:
            logger.error("[runtime] [grpc.%s] error: %s", operation, exc)
            raise

    def get_state(self, request: GetStateRequest) -> GetStateResponse:
        """Fetch the state stored under one key."""
        store = self._store_or_log(request.store_name, "GetState")
        key = modified_key(request.key, request.store_name, self.app_id)
        component_request = GetRequest(
            key=key,
            metadata=request.metadata,
            options=StateOption(consistency=consistency_to_string(request.consistency)),
        )
        try:
            response = store.get(component_request)
        except Exception as exc:
            err = StatusError(
                Code.INTERNAL,
                messages.ERR_STATE_GET % (request.key, request.store_name, exc),
            )
            logger.error("[runtime] [grpc.GetState] %s", err)
            raise err from exc
        return get_response_to_get_state_response(response)

    def get_bulk_state(self, request: GetBulkStateRequest) -> GetBulkStateResponse:
        """Fetch several keys, in parallel when the store has no bulk get of its own."""
        store = self._store_or_log(request.store_name, "GetBulkState")
        result = GetBulkStateResponse()
        if not request.keys:
            return result
        requests = [
            GetRequest(
                key=modified_key(key, request.store_name, self.app_id),
                metadata=request.metadata,
            )
            for key in request.keys
        ]
        supported, responses = store.bulk_get(requests)
        if supported:
            result.items = [bulk_get_response_to_bulk_state_item(r) for r in responses]
            return result
        workers = max(1, int(request.parallelism))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            result.items = list(pool.map(lambda r: self._get_one(store, r), requests))
        return result

    @staticmethod
    def _get_one(store: Any, request: GetRequest) -> BulkStateItem:
        key = original_key(request.key)
        try:
            response = store.get(request)
        except Exception as exc:
            return BulkStateItem(key=key, error=str(exc))
        return get_response_to_bulk_state_item(response, key)

    def save_state(self, request: SaveStateRequest) -> None:
        """Save every state item of the request in one bulk call."""
        store = self._store_or_log(request.store_name, "SaveState")
        requests = [
            state_item_to_set_request(
                item, modified_key(item.key, request.store_name, self.app_id)
            )
            for item in request.states
        ]
        try:
            store.bulk_set(requests)
        except Exception as exc:
            err = _wrap_component_error(exc, messages.ERR_STATE_SAVE, request.store_name, exc)
            logger.error("[runtime] [grpc.SaveState] error: %s", err)
            raise err from exc

    def delete_state(self, request: DeleteStateRequest) -> None:
        """Delete the state stored under one key."""
        store = self._store_or_log(request.store_name, "DeleteState")
        key = modified_key(request.key, request.store_name, self.app_id)
        try:
            store.delete(delete_state_request_to_delete_request(request, key))
        except Exception as exc:
            err = _wrap_component_error(exc, messages.ERR_STATE_DELETE, request.key, exc)
            logger.error("[runtime] [grpc.DeleteState] error: %s", err)
            raise err from exc

    def delete_bulk_state(self, request: DeleteBulkStateRequest) -> None:
        """Delete several keys in one bulk call; store errors pass through unchanged."""
        store = self._store_or_log(request.store_name, "DeleteBulkState")
        requests: List[DeleteRequest] = [
            state_item_to_delete_request(
                item, modified_key(item.key, request.store_name, self.app_id)
            )
            for item in request.states
        ]
        try:
            store.bulk_delete(requests)
        except Exception as exc:
            logger.error("[runtime] [grpc.DeleteBulkState] error: %s", exc)
            raise

    def execute_state_transaction(self, request: ExecuteStateTransactionRequest) -> None:
        """Run upserts and deletes as one transaction in a transactional store."""
        if not self.state_stores:
            err = StatusError(Code.FAILED_PRECONDITION, messages.ERR_STATE_STORES_NOT_CONFIGURED)
            logger.error("[runtime] [grpc.ExecuteStateTransaction] error: %s", err)
            raise err
        store_name = request.store_name
        if self.state_stores.get(store_name) is None:
            err = StatusError(Code.INVALID_ARGUMENT, messages.ERR_STATE_STORE_NOT_FOUND % store_name)
            logger.error("[runtime] [grpc.ExecuteStateTransaction] error: %s", err)
            raise err
        store = self.transactional_state_stores.get(store_name)
        if store is None:
            err = StatusError(Code.UNIMPLEMENTED, messages.ERR_STATE_STORE_NOT_SUPPORTED % store_name)
            logger.error("[runtime] [grpc.ExecuteStateTransaction] error: %s", err)
            raise err

        operations: List[TransactionalOperation] = []
        for op in request.operations:
            item = op.request
            if item is None:
                logger.warning(
                    "[runtime] [grpc.ExecuteStateTransaction] one of TransactionalStateOperation.Request is nil"
                )
                continue
            key = modified_key(item.key, store_name, self.app_id)
            try:
                kind = OperationType(op.operation_type)
            except ValueError:
                err = StatusError(
                    Code.UNIMPLEMENTED,
                    messages.ERR_NOT_SUPPORTED_STATE_OPERATION % op.operation_type,
                )
                logger.error("[runtime] [grpc.ExecuteStateTransaction] error: %s", err)
                raise err from None
            if kind is OperationType.UPSERT:
                component_request: Any = state_item_to_set_request(item, key)
            else:
                component_request = state_item_to_delete_request(item, key)
            operations.append(TransactionalOperation(operation=kind, request=component_request))

        try:
            store.multi(TransactionalStateRequest(operations=operations, metadata=request.metadata))
        except Exception as exc:
            err = StatusError(Code.INTERNAL, messages.ERR_STATE_TRANSACTION % exc)
            logger.error("[runtime] [grpc.ExecuteStateTransaction] error: %s", err)
            raise err from exc