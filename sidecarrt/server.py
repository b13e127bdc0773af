"""Building the runtime server from options."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from sidecarrt.messages import Code, StatusError

SERVICE_NAME = "spec.proto.runtime.v1.Runtime"

_METHODS: Dict[str, str] = {
    "SayHello": "say_hello",
    "InvokeService": "invoke_service",
    "GetConfiguration": "get_configuration",
    "SaveConfiguration": "save_configuration",
    "DeleteConfiguration": "delete_configuration",
    "SubscribeConfiguration": "subscribe_configuration",
    "PublishEvent": "publish_event",
    "GetState": "get_state",
    "GetBulkState": "get_bulk_state",
    "SaveState": "save_state",
    "DeleteState": "delete_state",
    "DeleteBulkState": "delete_bulk_state",
    "ExecuteStateTransaction": "execute_state_transaction",
    "TryLock": "try_lock",
    "Unlock": "unlock",
}


class RuntimeServer:
    """The runtime service with an API registered on it."""

    def __init__(self, api: Any, options: Tuple[Any, ...] = ()) -> None:
        self.api = api
        self.options = tuple(options)

    @property
    def method_names(self) -> List[str]:
        """Names of the service methods, in declaration order."""
        return list(_METHODS)

    def invoke(self, method: str, *args: Any) -> Any:
        """Dispatch a call of a service method to the registered API."""
        attribute = _METHODS.get(method)
        handler = getattr(self.api, attribute, None) if attribute else None
        if handler is None:
            raise StatusError(Code.UNIMPLEMENTED, f"unknown method {method} for service {SERVICE_NAME}")
        return handler(*args)


ServerMaker = Callable[..., Any]


@dataclass
class _ServerOptions:
    api: Any = None
    maker: Optional[ServerMaker] = None
    options: List[Any] = field(default_factory=list)


Option = Callable[[_ServerOptions], None]


def default_server(api: Any, *args: Any) -> RuntimeServer:
    """Create a runtime server with ``api`` registered and the given server options."""
    return RuntimeServer(api, args)


def with_api(api: Any) -> Option:
    """Set the API the server serves; it must not be None."""

    def apply(options: _ServerOptions) -> None:
        options.api = api

    return apply


def with_new_server(maker: ServerMaker) -> Option:
    """Use ``maker`` instead of :func:`default_server` to build the server."""

    def apply(options: _ServerOptions) -> None:
        options.maker = maker

    return apply


def with_server_options(*args: Any) -> Option:
    """Add server options, appended after any given before."""

    def apply(options: _ServerOptions) -> None:
        options.options.extend(args)

    return apply


def new_server(*args: Option) -> Any:
    """Apply the options and build the server."""
    options = _ServerOptions()
    for option in args:
        option(options)
    maker = options.maker or default_server
    return maker(options.api, *options.options)