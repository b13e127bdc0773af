"""The runtime API: hello, invocation, configuration, pub/sub, state and locks."""

from __future__ import annotations

import base64
import json
import logging
import queue
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sidecarrt import messages
from sidecarrt.components import (
    ConfigDeleteRequest,
    ConfigGetRequest,
    ConfigItem,
    ConfigSetRequest,
    ConfigSubscribeRequest,
    Feature,
    PublishRequest,
    RPCRequest,
    modified_key,
)
from sidecarrt.converter import (
    try_lock_request_to_component,
    try_lock_response_to_grpc,
    unlock_request_to_component,
    unlock_response_to_grpc,
)
from sidecarrt.messages import Code, StatusError
from sidecarrt.spec import (
    ConfigurationItem,
    DeleteConfigurationRequest,
    GetConfigurationRequest,
    GetConfigurationResponse,
    InvokeResponse,
    InvokeServiceRequest,
    PublishEventRequest,
    SaveConfigurationRequest,
    SayHelloRequest,
    SayHelloResponse,
    SubscribeConfigurationResponse,
    TryLockRequest,
    TryLockResponse,
    UnlockRequest,
    UnlockResponse,
)
from sidecarrt.state_api import StateAPI

logger = logging.getLogger(__name__)

MOSN_INVOKER_NAME = "mosn"

DEFAULT_CLOUD_EVENT_TYPE = "com.dapr.event.sent"
DEFAULT_CLOUD_EVENT_DATA_CONTENT_TYPE = "text/plain"
CLOUD_EVENTS_SPEC_VERSION = "1.0"
TTL_METADATA_KEY = "ttlInSeconds"

_WRITER_POLL_INTERVAL = 0.05


class NoInstanceError(LookupError):
    """No component instance is registered under the requested name."""

    def __init__(self, message: str = "no instance found") -> None:
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


class UnsupportedStoreError(LookupError):
    """The requested configuration store is not configured."""

    def __init__(self, store_name: str) -> None:
        super().__init__(f"configure store [{store_name}] don't support now")
        self.store_name = store_name

    def __str__(self) -> str:
        return self.args[0]


@dataclass
class HelloRequest:
    """Request handed to a hello component."""

    name: str = ""


@dataclass
class HelloResponse:
    """Response a hello component returns."""

    hello_string: str = ""


def _is_blank(value: str) -> bool:
    return not (value or "").replace(" ", "")


def _to_spec_item(item: ConfigItem) -> ConfigurationItem:
    return ConfigurationItem(
        key=item.key,
        content=item.content,
        group=item.group,
        label=item.label,
        tags=item.tags,
        metadata=item.metadata,
    )


def _is_cloud_event_content_type(content_type: str) -> bool:
    return (content_type or "").lower().startswith("application/cloudevents")


def _is_json_content_type(content_type: str) -> bool:
    lowered = content_type.lower()
    return lowered.startswith("application/json") or lowered.endswith("+json")


def _is_binary_content_type(content_type: str) -> bool:
    return content_type.lower().startswith("application/octet-stream")


def _from_cloud_event(data: bytes, topic: str, pubsub_name: str, trace_id: str) -> Dict[str, Any]:
    envelope = json.loads(data)
    if not isinstance(envelope, dict):
        raise ValueError("cloud event must be a JSON object")
    envelope["traceid"] = trace_id
    envelope["topic"] = topic
    envelope["pubsubname"] = pubsub_name
    return envelope


def _new_cloud_event(
    event_id: str, topic: str, pubsub_name: str, content_type: str, data: bytes
) -> Dict[str, Any]:
    content_type = content_type or DEFAULT_CLOUD_EVENT_DATA_CONTENT_TYPE
    data_field = "data"
    if _is_json_content_type(content_type):
        try:
            payload: Any = json.loads(data)
        except ValueError:
            payload = data.decode("utf-8", errors="replace")
    elif _is_binary_content_type(content_type):
        payload = base64.b64encode(data).decode("ascii")
        data_field = "data_base64"
    else:
        payload = data.decode("utf-8", errors="replace")
    return {
        "id": event_id,
        "specversion": CLOUD_EVENTS_SPEC_VERSION,
        "datacontenttype": content_type,
        "source": "",
        "type": DEFAULT_CLOUD_EVENT_TYPE,
        "topic": topic,
        "pubsubname": pubsub_name,
        "traceid": "",
        data_field: payload,
    }


def _apply_metadata(envelope: Dict[str, Any], features: Any, metadata: Mapping[str, str]) -> None:
    raw = (metadata or {}).get(TTL_METADATA_KEY)
    if raw is None:
        return
    try:
        seconds = int(raw)
    except ValueError:
        return
    if Feature.MESSAGE_TTL.is_present(features):
        return
    expires = datetime.now(timezone.utc) + timedelta(seconds=max(seconds, 0))
    envelope["expiration"] = expires.strftime("%Y-%m-%dT%H:%M:%SZ")


class RuntimeAPI(StateAPI):
    """Serves every runtime request by delegating to the configured components."""

    def __init__(
        self,
        app_id: str = "",
        hellos: Optional[Mapping[str, Any]] = None,
        config_stores: Optional[Mapping[str, Any]] = None,
        rpcs: Optional[Mapping[str, Any]] = None,
        pubsubs: Optional[Mapping[str, Any]] = None,
        state_stores: Optional[Mapping[str, Any]] = None,
        lock_stores: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(app_id, state_stores)
        self.hellos: Dict[str, Any] = dict(hellos or {})
        self.config_stores: Dict[str, Any] = dict(config_stores or {})
        self.rpcs: Dict[str, Any] = dict(rpcs or {})
        self.pubsubs: Dict[str, Any] = dict(pubsubs or {})
        self.lock_stores: Dict[str, Any] = dict(lock_stores or {})

    # hello ---------------------------------------------------------------

    def say_hello(self, request: SayHelloRequest) -> SayHelloResponse:
        """Ask the named hello component to greet ``request.name``."""
        service = self.hellos.get(request.service_name)
        if service is None:
            err = NoInstanceError()
            logger.error("[runtime] [grpc.say_hello] get hello error: %s", err)
            raise err
        try:
            response = service.hello(HelloRequest(name=request.name))
        except Exception as exc:
            logger.error("[runtime] [grpc.say_hello] request hello error: %s", exc)
            raise
        return SayHelloResponse(hello=response.hello_string)

    # invocation ----------------------------------------------------------

    def invoke_service(
        self,
        request: InvokeServiceRequest,
        metadata: Optional[Mapping[str, List[str]]] = None,
    ) -> Tuple[InvokeResponse, Dict[str, List[str]]]:
        """Make an RPC call; return the response and the headers to send back."""
        message = request.message
        header: Dict[str, List[str]] = {k: list(v) for k, v in (metadata or {}).items()}
        rpc_request = RPCRequest(
            id=request.id,
            method=message.method if message else "",
            content_type=message.content_type if message else "",
            data=message.data if message else b"",
            header=header,
        )
        extension = message.http_extension if message else None
        if extension is not None:
            header["verb"] = [extension.verb]
            header["query_string"] = [extension.querystring]

        invoker = self.rpcs.get(MOSN_INVOKER_NAME)
        if invoker is None:
            raise RuntimeError("invoker not init")
        response = invoker.invoke(rpc_request)

        headers: Dict[str, List[str]] = {}
        for key, values in (response.header or {}).items():
            headers.setdefault(key.lower(), []).extend(values)
        return InvokeResponse(data=response.data, content_type=response.content_type), headers

    # configuration -------------------------------------------------------

    def _config_store(self, name: str) -> Any:
        store = self.config_stores.get(name)
        if store is None:
            raise UnsupportedStoreError(name)
        return store

    def get_configuration(self, request: GetConfigurationRequest) -> GetConfigurationResponse:
        """Read configuration items; blank group and label fall back to the store defaults."""
        store = self._config_store(request.store_name)
        group = store.get_default_group() if _is_blank(request.group) else request.group
        label = store.get_default_label() if _is_blank(request.label) else request.label
        try:
            items = store.get(
                ConfigGetRequest(
                    app_id=request.app_id,
                    group=group,
                    label=label,
                    keys=request.keys,
                    metadata=request.metadata,
                )
            )
        except Exception as exc:
            raise RuntimeError(f"get configuration failed with error: {exc}") from exc
        return GetConfigurationResponse(items=[_to_spec_item(item) for item in items or ()])

    def save_configuration(self, request: SaveConfigurationRequest) -> None:
        """Write configuration items into the store."""
        store = self._config_store(request.store_name)
        items = [
            ConfigItem(
                key=item.key,
                content=item.content,
                group=store.get_default_group() if _is_blank(item.group) else item.group,
                label=store.get_default_label() if _is_blank(item.label) else item.label,
                tags=item.tags,
                metadata=item.metadata,
            )
            for item in request.items
        ]
        store.set(ConfigSetRequest(app_id=request.app_id, store_name=request.store_name, items=items))

    def delete_configuration(self, request: DeleteConfigurationRequest) -> None:
        """Delete configuration keys from the store."""
        store = self._config_store(request.store_name)
        group = store.get_default_group() if _is_blank(request.group) else request.group
        label = store.get_default_label() if _is_blank(request.label) else request.label
        store.delete(
            ConfigDeleteRequest(
                app_id=request.app_id,
                group=group,
                label=label,
                keys=request.keys,
                metadata=request.metadata,
            )
        )

    def subscribe_configuration(self, stream: Any) -> None:
        """Subscribe for every request read from ``stream`` and forward updates to it.

        Runs until reading from the stream fails or a request names an unknown
        store; all subscriptions are then stopped and the error is raised.
        """
        updates: "queue.Queue[Any]" = queue.Queue()
        stop = threading.Event()
        subscribed: List[Any] = []
        writer = threading.Thread(
            target=self._forward_updates, args=(stream, updates, stop), daemon=True
        )
        writer.start()
        try:
            while True:
                try:
                    request = stream.recv()
                except Exception as exc:
                    logger.error("occur error in subscribe, err: %s", exc)
                    raise
                store = self.config_stores.get(request.store_name)
                if store is None:
                    logger.error("configure store [%s] don't support now", request.store_name)
                    raise UnsupportedStoreError(request.store_name)
                group = store.get_default_group() if _is_blank(request.group) else request.group
                label = store.get_default_label() if _is_blank(request.label) else request.label
                store.subscribe(
                    ConfigSubscribeRequest(
                        app_id=request.app_id,
                        group=group,
                        label=label,
                        keys=request.keys,
                        metadata=request.metadata,
                    ),
                    updates,
                )
                subscribed.append(store)
        finally:
            for store in subscribed:
                store.stop_subscribe()
            stop.set()
            writer.join()
            logger.warning("subscribe goroutine exit")

    @staticmethod
    def _forward_updates(stream: Any, updates: "queue.Queue[Any]", stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                update = updates.get(timeout=_WRITER_POLL_INTERVAL)
            except queue.Empty:
                continue
            if update is None:
                return
            stream.send(
                SubscribeConfigurationResponse(
                    store_name=update.store_name,
                    app_id=update.store_name,
                    items=[_to_spec_item(item) for item in update.items],
                )
            )

    # pub/sub -------------------------------------------------------------

    def publish_event(self, request: PublishEventRequest) -> None:
        """Wrap the data in a cloud event and publish it to the topic."""
        try:
            self._publish(
                request.pubsub_name,
                request.topic,
                request.data,
                request.data_content_type,
                request.metadata,
            )
        except StatusError as exc:
            logger.error("[runtime] [grpc.PublishEvent] %s", exc)
            raise

    def _publish(
        self,
        pubsub_name: str,
        topic: str,
        data: Optional[bytes],
        content_type: str,
        metadata: Mapping[str, str],
    ) -> None:
        if not pubsub_name:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_PUBSUB_EMPTY)
        if not topic:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_TOPIC_EMPTY % pubsub_name)
        component = self.pubsubs.get(pubsub_name)
        if component is None:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_PUBSUB_NOT_FOUND % pubsub_name)

        data = data or b""
        if _is_cloud_event_content_type(content_type):
            try:
                envelope = _from_cloud_event(data, topic, pubsub_name, "")
            except (ValueError, UnicodeDecodeError) as exc:
                raise StatusError(
                    Code.INVALID_ARGUMENT, messages.ERR_PUBSUB_CLOUD_EVENT_CREATION % exc
                ) from exc
        else:
            envelope = _new_cloud_event(str(uuid.uuid4()), topic, pubsub_name, content_type, data)

        features = component.features() if callable(getattr(component, "features", None)) else []
        _apply_metadata(envelope, features, metadata)

        try:
            body = json.dumps(envelope).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise StatusError(
                Code.INVALID_ARGUMENT,
                messages.ERR_PUBSUB_CLOUD_EVENTS_SER % (topic, pubsub_name, exc),
            ) from exc

        try:
            component.publish(
                PublishRequest(
                    pubsub_name=pubsub_name,
                    topic=topic,
                    data=body,
                    metadata=dict(metadata or {}),
                )
            )
        except Exception as exc:
            raise StatusError(
                Code.INTERNAL,
                messages.ERR_PUBSUB_PUBLISH_MESSAGE % (topic, pubsub_name, exc),
            ) from exc

    # locks ---------------------------------------------------------------

    def try_lock(self, request: TryLockRequest) -> TryLockResponse:
        """Try to acquire a distributed lock."""
        if not self.lock_stores:
            err = StatusError(Code.FAILED_PRECONDITION, messages.ERR_LOCK_STORES_NOT_CONFIGURED)
            logger.error("[runtime] [grpc.TryLock] error: %s", err)
            raise err
        if not request.resource_id:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_RESOURCE_ID_EMPTY % request.store_name)
        if not request.lock_owner:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_LOCK_OWNER_EMPTY % request.store_name)
        if request.expire <= 0:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_EXPIRE_NOT_POSITIVE % request.store_name)
        store = self.lock_stores.get(request.store_name)
        if store is None:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_LOCK_STORE_NOT_FOUND % request.store_name)

        component_request = try_lock_request_to_component(request)
        try:
            component_request.resource_id = modified_key(
                component_request.resource_id, request.store_name, self.app_id
            )
            response = store.try_lock(component_request)
        except Exception as exc:
            logger.error("[runtime] [grpc.TryLock] error: %s", exc)
            raise
        return try_lock_response_to_grpc(response)

    def unlock(self, request: UnlockRequest) -> UnlockResponse:
        """Release a distributed lock."""
        if not self.lock_stores:
            err = StatusError(Code.FAILED_PRECONDITION, messages.ERR_LOCK_STORES_NOT_CONFIGURED)
            logger.error("[runtime] [grpc.Unlock] error: %s", err)
            raise err
        if not request.resource_id:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_RESOURCE_ID_EMPTY % request.store_name)
        if not request.lock_owner:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_RESOURCE_ID_EMPTY % request.store_name)
        store = self.lock_stores.get(request.store_name)
        if store is None:
            raise StatusError(Code.INVALID_ARGUMENT, messages.ERR_LOCK_STORE_NOT_FOUND % request.store_name)

        component_request = unlock_request_to_component(request)
        try:
            component_request.resource_id = modified_key(
                component_request.resource_id, request.store_name, self.app_id
            )
            response = store.unlock(component_request)
        except Exception as exc:
            logger.error("[runtime] [grpc.Unlock] error: %s", exc)
            raise
        return unlock_response_to_grpc(response)