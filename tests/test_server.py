import pytest

from sidecarrt.messages import Code, StatusError
from sidecarrt.server import (
    RuntimeServer,
    default_server,
    new_server,
    with_api,
    with_new_server,
    with_server_options,
)


class EchoAPI:
    def say_hello(self, request):
        return f"hello {request}"


def test_new_grpc_server():
    api = EchoAPI()
    server = new_server(with_api(api), with_new_server(default_server), with_server_options())
    assert isinstance(server, RuntimeServer)
    assert server.api is api
    assert server.options == ()


def test_default_maker_used_when_none_given():
    api = EchoAPI()
    server = new_server(with_api(api), with_server_options("a"), with_server_options("b", "c"))
    assert server.api is api
    assert server.options == ("a", "b", "c")


def test_custom_maker_receives_api_and_options():
    calls = []

    def maker(api, *options):
        calls.append((api, options))
        return "custom"

    api = EchoAPI()
    assert new_server(with_server_options(1), with_api(api), with_new_server(maker)) == "custom"
    assert calls == [(api, (1,))]


def test_invoke_dispatches_to_api():
    server = default_server(EchoAPI())
    assert server.invoke("SayHello", "world") == "hello world"


def test_invoke_missing_api_method():
    server = default_server(EchoAPI())
    with pytest.raises(StatusError) as info:
        server.invoke("TryLock", None)
    assert info.value.code == Code.UNIMPLEMENTED


def test_invoke_unknown_method():
    server = default_server(EchoAPI())
    with pytest.raises(StatusError) as info:
        server.invoke("Nope")
    assert info.value.code == Code.UNIMPLEMENTED
    assert "Nope" in str(info.value)


def test_method_names_cover_service():
    names = default_server(EchoAPI()).method_names
    assert names[0] == "SayHello"
    assert "ExecuteStateTransaction" in names
    assert len(names) == 15