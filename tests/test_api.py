import json
import threading
from types import SimpleNamespace

import pytest

from sidecarrt.api import NoInstanceError, RuntimeAPI, UnsupportedStoreError
from sidecarrt.components import (
    ConfigItem,
    ConfigSubscribeResponse,
    Feature,
    LockResponse,
    ReleaseResponse,
    RPCResponse,
)
from sidecarrt.messages import Code, StatusError
from sidecarrt.spec import (
    ConfigurationItem,
    DeleteConfigurationRequest,
    GetConfigurationRequest,
    GetStateRequest,
    HTTPExtension,
    InvokeRequest,
    InvokeServiceRequest,
    PublishEventRequest,
    SaveConfigurationRequest,
    SayHelloRequest,
    SubscribeConfigurationRequest,
    TryLockRequest,
    UnlockRequest,
    UnlockStatus,
)
from sidecarrt.components import GetResponse


class FakeHello:
    def __init__(self):
        self.calls = []

    def hello(self, request):
        self.calls.append(request)
        return SimpleNamespace(hello_string="mock hello")


class FakeConfigStore:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.get_requests = []
        self.set_requests = []
        self.delete_requests = []
        self.subscriptions = []
        self.stopped = 0

    def get_default_group(self):
        return "default"

    def get_default_label(self):
        return "default-label"

    def get(self, request):
        self.get_requests.append(request)
        if self.error:
            raise self.error
        return self.items

    def set(self, request):
        self.set_requests.append(request)

    def delete(self, request):
        self.delete_requests.append(request)

    def subscribe(self, request, updates):
        self.subscriptions.append(request)
        updates.put(ConfigSubscribeResponse(store_name="mock", items=[ConfigItem(key="sofa", content="v")]))

    def stop_subscribe(self):
        self.stopped += 1


class StreamClosed(Exception):
    pass


class FakeStream:
    def __init__(self, requests, error):
        self.requests = list(requests)
        self.error = error
        self.sent = []
        self.got_update = threading.Event()

    def recv(self):
        if self.requests:
            return self.requests.pop(0)
        self.got_update.wait(timeout=5)
        raise self.error

    def send(self, response):
        self.sent.append(response)
        self.got_update.set()


class FakePubSub:
    def __init__(self, features=(), error=None):
        self._features = list(features)
        self.error = error
        self.published = []

    def features(self):
        return self._features

    def publish(self, request):
        if self.error:
            raise self.error
        self.published.append(request)


class FakeLockStore:
    def __init__(self):
        self.requests = []

    def try_lock(self, request):
        self.requests.append(request)
        return LockResponse(success=True)

    def unlock(self, request):
        self.requests.append(request)
        return ReleaseResponse(status=UnlockStatus.LOCK_BELONG_TO_OTHERS)


class FakeInvoker:
    def __init__(self):
        self.requests = []

    def invoke(self, request):
        self.requests.append(request)
        return RPCResponse(content_type="text/plain", header={"X-Out": ["1", "2"]}, data=b"pong")


# hello -------------------------------------------------------------------


def test_say_hello_ok():
    service = FakeHello()
    api = RuntimeAPI(hellos={"mock": service})
    resp = api.say_hello(SayHelloRequest(service_name="mock", name="Layotto"))
    assert resp.hello == "mock hello"
    assert service.calls[0].name == "Layotto"


def test_say_hello_not_registered():
    api = RuntimeAPI(hellos={"mock": FakeHello()})
    with pytest.raises(NoInstanceError, match="no instance found"):
        api.say_hello(SayHelloRequest(service_name="no register"))


def test_say_hello_empty():
    api = RuntimeAPI(hellos={})
    with pytest.raises(NoInstanceError):
        api.say_hello(SayHelloRequest(service_name="mock"))


# configuration -----------------------------------------------------------


def test_get_configuration():
    store = FakeConfigStore(items=[ConfigItem(key="sofa", content="sofa1")])
    api = RuntimeAPI("", None, {"mock": store})
    res = api.get_configuration(GetConfigurationRequest(store_name="mock", app_id="mosn", keys=["sofa"]))
    assert res.items[0].key == "sofa"
    assert res.items[0].content == "sofa1"
    assert store.get_requests[0].group == "default"
    assert store.get_requests[0].label == "default-label"
    with pytest.raises(UnsupportedStoreError) as info:
        api.get_configuration(GetConfigurationRequest(store_name="etcd", app_id="mosn", keys=["sofa"]))
    assert str(info.value) == "configure store [etcd] don't support now"


def test_get_configuration_store_error():
    api = RuntimeAPI("", None, {"mock": FakeConfigStore(error=ValueError("boom"))})
    with pytest.raises(RuntimeError, match="get configuration failed with error: boom"):
        api.get_configuration(GetConfigurationRequest(store_name="mock"))


def test_get_configuration_keeps_given_group():
    store = FakeConfigStore()
    api = RuntimeAPI("", None, {"mock": store})
    api.get_configuration(GetConfigurationRequest(store_name="mock", group="g", label=" "))
    assert store.get_requests[0].group == "g"
    assert store.get_requests[0].label == "default-label"


def test_save_configuration_unsupported():
    api = RuntimeAPI("", None, {"mock": FakeConfigStore()})
    with pytest.raises(UnsupportedStoreError) as info:
        api.save_configuration(SaveConfigurationRequest(store_name="etcd"))
    assert str(info.value) == "configure store [etcd] don't support now"


def test_save_configuration_applies_defaults():
    store = FakeConfigStore()
    api = RuntimeAPI("", None, {"mock": store})
    api.save_configuration(
        SaveConfigurationRequest(
            store_name="mock", app_id="app", items=[ConfigurationItem(key="k", content="c", group="de fault")]
        )
    )
    saved = store.set_requests[0]
    assert saved.app_id == "app"
    assert saved.store_name == "mock"
    assert (saved.items[0].key, saved.items[0].group, saved.items[0].label) == ("k", "de fault", "default-label")


def test_delete_configuration_unsupported():
    api = RuntimeAPI("", None, {"mock": FakeConfigStore()})
    with pytest.raises(UnsupportedStoreError) as info:
        api.delete_configuration(DeleteConfigurationRequest(store_name="etcd"))
    assert str(info.value) == "configure store [etcd] don't support now"


def test_delete_configuration():
    store = FakeConfigStore()
    api = RuntimeAPI("", None, {"mock": store})
    api.delete_configuration(DeleteConfigurationRequest(store_name="mock", keys=["a"]))
    assert store.delete_requests[0].keys == ["a"]
    assert store.delete_requests[0].group == "default"


def test_subscribe_configuration_unsupported_store():
    api = RuntimeAPI("", None, {"mock": FakeConfigStore()})
    stream = FakeStream([SubscribeConfigurationRequest()], StreamClosed("exit"))
    with pytest.raises(UnsupportedStoreError) as info:
        api.subscribe_configuration(stream)
    assert str(info.value) == "configure store [] don't support now"


def test_subscribe_configuration_recv_error():
    api = RuntimeAPI("", None, {"mock": FakeConfigStore()})
    stream = FakeStream([], StreamClosed("exit"))
    stream.got_update.set()
    with pytest.raises(StreamClosed, match="exit"):
        api.subscribe_configuration(stream)


def test_subscribe_configuration_forwards_updates():
    store = FakeConfigStore()
    api = RuntimeAPI("", None, {"mock": store})
    stream = FakeStream([SubscribeConfigurationRequest(store_name="mock", keys=["sofa"])], StreamClosed("exit"))
    with pytest.raises(StreamClosed):
        api.subscribe_configuration(stream)
    assert stream.sent[0].store_name == "mock"
    assert stream.sent[0].items[0].key == "sofa"
    assert store.subscriptions[0].group == "default"
    assert store.stopped == 1


# invocation --------------------------------------------------------------


def test_invoke_service():
    invoker = FakeInvoker()
    api = RuntimeAPI(rpcs={"mosn": invoker})
    request = InvokeServiceRequest(
        id="svc",
        message=InvokeRequest(
            method="m",
            data=b"ping",
            content_type="text/plain",
            http_extension=HTTPExtension(verb="GET", querystring="q=1"),
        ),
    )
    response, headers = api.invoke_service(request, {"a": ["b"]})
    sent = invoker.requests[0]
    assert (sent.id, sent.method, sent.data) == ("svc", "m", b"ping")
    assert sent.header == {"a": ["b"], "verb": ["GET"], "query_string": ["q=1"]}
    assert response.data == b"pong"
    assert response.content_type == "text/plain"
    assert headers == {"x-out": ["1", "2"]}


def test_invoke_service_without_invoker():
    api = RuntimeAPI()
    with pytest.raises(RuntimeError, match="invoker not init"):
        api.invoke_service(InvokeServiceRequest(id="svc", message=InvokeRequest()))


# pub/sub -----------------------------------------------------------------


@pytest.mark.parametrize(
    "request_, code, message",
    [
        (PublishEventRequest(pubsub_name="", topic="t"), Code.INVALID_ARGUMENT, "pubsub name is empty"),
        (PublishEventRequest(pubsub_name="p", topic=""), Code.INVALID_ARGUMENT, "topic is empty in pubsub p"),
        (PublishEventRequest(pubsub_name="x", topic="t"), Code.INVALID_ARGUMENT, "pubsub x not found"),
    ],
)
def test_publish_event_validation(request_, code, message):
    api = RuntimeAPI(pubsubs={"p": FakePubSub()})
    with pytest.raises(StatusError) as info:
        api.publish_event(request_)
    assert info.value.code == code
    assert str(info.value) == message


def test_publish_event_json_envelope():
    pubsub = FakePubSub()
    api = RuntimeAPI(pubsubs={"p": pubsub})
    api.publish_event(
        PublishEventRequest(pubsub_name="p", topic="t", data=b'{"a": 1}', data_content_type="application/json")
    )
    published = pubsub.published[0]
    assert (published.pubsub_name, published.topic) == ("p", "t")
    envelope = json.loads(published.data)
    assert envelope["data"] == {"a": 1}
    assert envelope["topic"] == "t"
    assert envelope["pubsubname"] == "p"
    assert envelope["specversion"] == "1.0"
    assert envelope["type"] == "com.dapr.event.sent"
    assert "expiration" not in envelope


def test_publish_event_text_default_content_type():
    pubsub = FakePubSub()
    api = RuntimeAPI(pubsubs={"p": pubsub})
    api.publish_event(PublishEventRequest(pubsub_name="p", topic="t", data=b"hello"))
    envelope = json.loads(pubsub.published[0].data)
    assert envelope["data"] == "hello"
    assert envelope["datacontenttype"] == "text/plain"


def test_publish_event_cloud_event():
    pubsub = FakePubSub()
    api = RuntimeAPI(pubsubs={"p": pubsub})
    api.publish_event(
        PublishEventRequest(
            pubsub_name="p",
            topic="t",
            data=b'{"id": "1", "data": "x"}',
            data_content_type="application/cloudevents+json",
        )
    )
    envelope = json.loads(pubsub.published[0].data)
    assert envelope == {"id": "1", "data": "x", "traceid": "", "topic": "t", "pubsubname": "p"}


def test_publish_event_invalid_cloud_event():
    api = RuntimeAPI(pubsubs={"p": FakePubSub()})
    with pytest.raises(StatusError) as info:
        api.publish_event(
            PublishEventRequest(
                pubsub_name="p", topic="t", data=b"not json", data_content_type="application/cloudevents+json"
            )
        )
    assert info.value.code == Code.INVALID_ARGUMENT
    assert str(info.value).startswith("cannot create cloudevent: ")


def test_publish_event_ttl_applied_only_without_feature():
    plain = FakePubSub()
    with_ttl = FakePubSub(features=[Feature.MESSAGE_TTL])
    api = RuntimeAPI(pubsubs={"plain": plain, "ttl": with_ttl})
    api.publish_event(PublishEventRequest(pubsub_name="plain", topic="t", metadata={"ttlInSeconds": "10"}))
    api.publish_event(PublishEventRequest(pubsub_name="ttl", topic="t", metadata={"ttlInSeconds": "10"}))
    assert "expiration" in json.loads(plain.published[0].data)
    assert "expiration" not in json.loads(with_ttl.published[0].data)
    assert plain.published[0].metadata == {"ttlInSeconds": "10"}


def test_publish_event_component_error():
    api = RuntimeAPI(pubsubs={"p": FakePubSub(error=ValueError("boom"))})
    with pytest.raises(StatusError) as info:
        api.publish_event(PublishEventRequest(pubsub_name="p", topic="t"))
    assert info.value.code == Code.INTERNAL
    assert str(info.value) == "error when publish to topic t in pubsub p: boom"


# locks -------------------------------------------------------------------


def test_try_lock_without_stores():
    api = RuntimeAPI()
    with pytest.raises(StatusError) as info:
        api.try_lock(TryLockRequest(store_name="redis", resource_id="r", lock_owner="o", expire=1))
    assert info.value.code == Code.FAILED_PRECONDITION
    assert str(info.value) == "lock store is not configured"


@pytest.mark.parametrize(
    "request_, message",
    [
        (TryLockRequest(store_name="redis", lock_owner="o", expire=1), "ResourceId is empty in lock store redis"),
        (TryLockRequest(store_name="redis", resource_id="r", expire=1), "LockOwner is empty in lock store redis"),
        (TryLockRequest(store_name="redis", resource_id="r", lock_owner="o"), "Expire is not positive in lock store redis"),
        (TryLockRequest(store_name="etcd", resource_id="r", lock_owner="o", expire=1), "lock store etcd not found"),
    ],
)
def test_try_lock_validation(request_, message):
    api = RuntimeAPI(lock_stores={"redis": FakeLockStore()})
    with pytest.raises(StatusError) as info:
        api.try_lock(request_)
    assert info.value.code == Code.INVALID_ARGUMENT
    assert str(info.value) == message


def test_try_lock_success():
    store = FakeLockStore()
    api = RuntimeAPI("app", lock_stores={"redis": store})
    resp = api.try_lock(TryLockRequest(store_name="redis", resource_id="res", lock_owner="owner1", expire=1000))
    assert resp.success is True
    assert store.requests[0].resource_id == "app||res"
    assert store.requests[0].lock_owner == "owner1"
    assert store.requests[0].expire == 1000


def test_unlock_success():
    store = FakeLockStore()
    api = RuntimeAPI("app", lock_stores={"redis": store})
    resp = api.unlock(UnlockRequest(store_name="redis", resource_id="res", lock_owner="owner1"))
    assert resp.status == UnlockStatus.LOCK_BELONG_TO_OTHERS
    assert store.requests[0].resource_id == "app||res"


def test_unlock_empty_owner_reports_resource_message():
    api = RuntimeAPI(lock_stores={"redis": FakeLockStore()})
    with pytest.raises(StatusError) as info:
        api.unlock(UnlockRequest(store_name="redis", resource_id="res"))
    assert str(info.value) == "ResourceId is empty in lock store redis"


def test_unlock_unknown_store():
    api = RuntimeAPI(lock_stores={"redis": FakeLockStore()})
    with pytest.raises(StatusError) as info:
        api.unlock(UnlockRequest(store_name="etcd", resource_id="res", lock_owner="o"))
    assert str(info.value) == "lock store etcd not found"


# state -------------------------------------------------------------------


def test_state_requests_are_served():
    class Store:
        def get(self, request):
            return GetResponse(data=request.key.encode(), etag="1")

    api = RuntimeAPI("app", state_stores={"redis": Store()})
    resp = api.get_state(GetStateRequest(store_name="redis", key="k"))
    assert resp.data == b"app||k"
    assert resp.etag == "1"