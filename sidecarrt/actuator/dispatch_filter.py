"""HTTP filter that dispatches /actuator/{endpoint} requests to endpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

from sidecarrt.actuator.path_resolver import (
    HTTP_NOT_FOUND_CODE,
    HTTP_SUCCESS_CODE,
    HTTP_UNAVAILABLE_CODE,
    PathResolver,
)

logger = logging.getLogger(__name__)


class Endpoint(Protocol):
    def handle(self, context: Any, resolver: PathResolver) -> Optional[Dict[str, Any]]:
        ...


class Actuator:
    """A registry of named endpoints."""

    def __init__(self) -> None:
        self._endpoints: Dict[str, Endpoint] = {}

    def add_endpoint(self, name: str, endpoint: Endpoint) -> None:
        self._endpoints[name] = endpoint

    def get_endpoint(self, name: str) -> Optional[Endpoint]:
        """Return the endpoint registered under ``name``, or None."""
        return self._endpoints.get(name)


@dataclass
class DirectResponse:
    """A response written straight back to the client."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class DispatchFilter:
    """Routes a request path to an actuator endpoint and builds the JSON response.

    An endpoint signals failure by raising; if the exception carries a
    ``result`` attribute, that result is still written with status 503.
    """

    def __init__(self, actuator: Optional[Actuator]) -> None:
        self.actuator = actuator

    def on_receive(self, path: Optional[str], context: Any = None) -> DirectResponse:
        logger.debug("[actuator] receive actuator pkt, path: %s", path)
        if path is None:
            return self._not_found()
        resolver = PathResolver(path)
        # The path must be /actuator/{endpoint_name}/{params}.
        if resolver.next() != "actuator":
            return self._not_found()
        if self.actuator is None:
            return self._not_found()
        endpoint = self.actuator.get_endpoint(resolver.next())
        if endpoint is None:
            return self._not_found()
        try:
            result = endpoint.handle(context, resolver)
        except Exception as exc:
            return self._json_result(getattr(exc, "result", None), HTTP_UNAVAILABLE_CODE)
        return self._json_result(result, HTTP_SUCCESS_CODE)

    def _not_found(self) -> DirectResponse:
        return self._json_result(None, HTTP_NOT_FOUND_CODE)

    @staticmethod
    def _json_result(result: Optional[Mapping[str, Any]], code: int) -> DirectResponse:
        if not code:
            code = HTTP_SUCCESS_CODE
        body = b""
        if result is not None:
            try:
                body = json.dumps(result).encode("utf-8")
            except (TypeError, ValueError) as exc:
                logger.error("[actuator][dispatch_filter]error when marshal result:%s", exc)
                code = HTTP_UNAVAILABLE_CODE
                body = b""
        return DirectResponse(
            status_code=code,
            headers={"Content-Type": "application/json"},
            body=body,
        )


class _ServiceFactory:
    """Creates a dispatch filter for each new stream."""

    def __init__(self, config: Optional[Mapping[str, Any]]) -> None:
        self.config = dict(config or {})

    def create_filter(self, actuator: Optional[Actuator]) -> DispatchFilter:
        return DispatchFilter(actuator)


def create_actuator_filter_factory(config: Optional[Mapping[str, Any]]) -> _ServiceFactory:
    """Build the factory of actuator dispatch filters."""
    logger.info("[actuator] create filter factory")
    return _ServiceFactory(config)