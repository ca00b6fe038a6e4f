from .server import (
    ConfigError,
    DispatchError,
    Dispatcher,
    Endpoint,
    NoArguments,
    NotFound,
    NotImplementedVerb,
    QueryExecutionError,
    Reply,
    Verb,
    load_endpoints,
)
from .db import Config, load_config
from .http import create_app, serve

__all__ = [
    "Config", "ConfigError", "DispatchError", "Dispatcher", "Endpoint", "NoArguments",
    "NotFound", "NotImplementedVerb", "QueryExecutionError", "Reply", "Verb",
    "create_app", "load_config", "load_endpoints", "serve",
]
