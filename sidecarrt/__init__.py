"""Application runtime sidecar: state, lock, configuration, pub/sub and RPC APIs, actuator and traffic sampling."""

__version__ = "0.1.0"