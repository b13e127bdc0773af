# sidecarrt

`sidecarrt` is the core of an application runtime sidecar. It is a library. You register your own components with it, and one API object serves requests by passing them to those components:

- **State** (`sidecarrt.state_api.StateAPI`, inherited by `RuntimeAPI`): `get_state`, `get_bulk_state`, `save_state`, `delete_state`, `delete_bulk_state` and `execute_state_transaction` against named state stores. Keys are prefixed with the application id as `"<app_id>||<key>"`. A key that already contains `||` is rejected with `ValueError`.
- **Distributed locks**: `try_lock` and `unlock` against named lock stores.
- **Configuration**: `get_configuration`, `save_configuration`, `delete_configuration` and `subscribe_configuration` against configuration stores. A group or label that is blank (empty or only spaces) is replaced by the store's default.
- **Pub/sub**: `publish_event` wraps the data in a CloudEvents envelope as JSON and publishes it to a topic.
- **RPC**: `invoke_service` calls the invoker registered in `rpcs` under `sidecarrt.api.MOSN_INVOKER_NAME`.
- **Hello**: `say_hello` calls a named greeting component.

The package also includes:

- **Actuator** (`sidecarrt.actuator`):
  - readiness and liveness indicators;
  - process-wide application info;
  - an HTTP dispatch filter that routes `/actuator/{endpoint}/...` paths to registered endpoints and builds JSON responses.
- **Traffic sampling** (`sidecarrt.tcpcopy`):
  - a dump strategy with an on/off switch, a sampling interval and window, and CPU/memory fuses measured with `psutil`;
  - a network filter and a portrait-data uploader that pass samples to a pool of background workers;
  - the workers append the samples to dump log files.
- **Server builder** (`sidecarrt.server`): assembles a `RuntimeServer` from option functions.

## Installation

```
pip install sidecarrt
```

With test dependencies:

```
pip install "sidecarrt[test]"
```

Python 3.10 or later is required.

## Usage

### The runtime API

```python
from sidecarrt.api import RuntimeAPI
from sidecarrt.spec import TryLockRequest

api = RuntimeAPI(
    app_id="demo",
    hellos={},
    config_stores={},
    rpcs={},
    pubsubs={},
    state_stores={"redis": my_state_store},
    lock_stores={"redis": my_lock_store},
)

response = api.try_lock(
    TryLockRequest(store_name="redis", resource_id="order-1", lock_owner="worker-a", expire=10)
)
print(response.success)
```

Requests and responses are dataclasses in `sidecarrt.spec`. The requests passed to components are dataclasses in `sidecarrt.components`. `sidecarrt.converter` translates between the two.

Errors are raised as exceptions:

- `sidecarrt.messages.StatusError` carries a `Code` (for example `INVALID_ARGUMENT`, `FAILED_PRECONDITION`, `ABORTED`, `INTERNAL`) and a message. State, lock and pub/sub failures raise it.
- `sidecarrt.api.NoInstanceError` is raised when `say_hello` names an unknown service.
- `sidecarrt.api.UnsupportedStoreError` is raised for an unknown configuration store. Its message is `configure store [<name>] don't support now`.

### Components you supply

The API calls these methods on the objects you register:

- **State store**:
  - `get(request)`, `delete(request)`;
  - `bulk_get(requests)`, which returns `(supported, responses)`;
  - `bulk_set(requests)`, `bulk_delete(requests)`;
  - optionally `features()`; a store whose features include `Feature.TRANSACTIONAL` also serves `multi(request)` for transactions.

  When `bulk_get` reports that it is not supported, the keys are fetched one by one with `get`, in parallel.

  An `ETagError` raised by `bulk_set` or `delete` becomes `ABORTED` (mismatch) or `INVALID_ARGUMENT` (invalid etag).
- **Lock store**: `try_lock(request)` and `unlock(request)`.
- **Configuration store**:
  - `get_default_group()`, `get_default_label()`;
  - `get(request)`, `set(request)`, `delete(request)`;
  - `subscribe(request, updates_queue)`, `stop_subscribe()`.
- **Pub/sub component**: `publish(request)`, and optionally `features()`.
- **Invoker**: `invoke(rpc_request)`.
- **Hello component**: `hello(request)`, returning an object with a `hello_string` attribute.

### Building a server

```python
from sidecarrt.server import new_server, with_api, with_server_options

server = new_server(with_api(api), with_server_options("opt-a"))
server.invoke("TryLock", request)   # dispatches to api.try_lock(request)
```

`with_new_server(maker)` replaces `default_server` as the function that builds the server. A method name the server does not know raises `StatusError` with `Code.UNIMPLEMENTED`.

### Health indicators and application info

```python
from sidecarrt.actuator.runtime_indicator import get_runtime_readiness_indicator
from sidecarrt.actuator.app_info import AppInfo, set_app_info_singleton, get_app_contributor

readiness = get_runtime_readiness_indicator()
status, details = readiness.report()   # HealthStatus.INIT, {"reason": "starting"}
readiness.set_started()
status, details = readiness.report()   # HealthStatus.UP

set_app_info_singleton(AppInfo(name="demo", version="1.0"))
info = get_app_contributor().get_info()   # a copy of the stored AppInfo
```

An indicator marked with `set_unhealthy(reason)` reports `HealthStatus.DOWN` with that reason until `set_healthy(reason)` is called.

### Actuator dispatch

```python
from sidecarrt.actuator.dispatch_filter import Actuator, DispatchFilter
from sidecarrt.actuator.path_resolver import PathResolver

class Health:
    def handle(self, context, resolver):
        return {"status": "UP", "rest": resolver.unresolved_path()}

actuator = Actuator()
actuator.add_endpoint("health", Health())
response = DispatchFilter(actuator).on_receive("/actuator/health/liveness")
# response.status_code == 200, response.body is the JSON of the returned dict
```

`on_receive` returns a status code:

- 404 when the path does not start with `/actuator` or names no registered endpoint;
- 503 when the endpoint raises, or when its result cannot be encoded as JSON;
- 200 otherwise.

`PathResolver` walks a path one segment at a time:

```python
resolver = PathResolver("/a/b/c")
resolver.next()              # "a"
resolver.unresolved_path()   # "/b/c"
```

### Traffic sampling

```python
from sidecarrt.tcpcopy.strategy import get_default_strategy

strategy = get_default_strategy()
strategy.update_app_dump_config(
    '{"switch":"ON","interval":30,"duration":10,"cpu_max_rate":80,"mem_max_rate":80}'
)
```

A config update returns `False` and is ignored when it is invalid. It is invalid if it is not JSON, if its switch is not allowed, if `interval` is outside 30–3600, if `duration` is not between 0 and `interval`, or if a rate is not strictly between 0 and 100. The app-level switch accepts `ON` and `OFF`; the global switch also accepts `FORCE_OFF`.

Once dumping is switched on, a background thread repeats this cycle:

1. wait one interval;
2. open a sampling window for `duration` seconds, if CPU and memory usage are below their maximum rates;
3. close the window.

`TcpCopyFilter.on_data` and `upload_portrait_data` hand samples to a `WorkPool` only while a window is open. `upload_portrait_data` accepts one report per business type per window.

`DumpPersistence` appends records below its `log_dir`:

- `dump/dump_tcp_copy.log`
- `dump/dump_portrait_data.log`
- `dump/dump_mem_dump.log`, only when a `config_dumper` is given. The dumped configuration is written when it changed since the last record; otherwise `no_change` is written.

## What this package does not do

- It opens no network listener. `RuntimeServer` dispatches calls to the API in process; serving them over the network is left to you.
- It ships no concrete state, lock, configuration, pub/sub, RPC or hello components. You supply them.
- It has no command-line program.

## Running the tests

```
pytest
```