"""Contract for the distributed cache backend.

The facade talks to the backend only through this protocol. Every call
records a result code that can be read back through ``result_code``, in the
style of memcached clients: the return value says what happened, the result
code says why.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 6379


class ResultCode(str, Enum):
    """Outcome of the last backend operation."""

    SUCCESS = "success"
    NOT_STORED = "not_stored"
    NOT_FOUND = "not_found"
    DATA_EXISTS = "data_exists"
    FAILURE = "failure"


RESULT_MESSAGES: dict[ResultCode, str] = {
    ResultCode.SUCCESS: "SUCCESS",
    ResultCode.NOT_STORED: "NOT STORED",
    ResultCode.NOT_FOUND: "NOT FOUND",
    ResultCode.DATA_EXISTS: "DATA EXISTS",
    ResultCode.FAILURE: "FAILURE",
}


class ClientOption(str, Enum):
    """Tunable client options."""

    PREFIX_KEY = "prefix_key"
    SOCKET_TIMEOUT = "socket_timeout"
    CONNECT_TIMEOUT = "connect_timeout"


@dataclass(frozen=True)
class ServerSpec:
    """One backend server in the pool."""

    host: str
    port: int
    weight: int = 1

    @property
    def label(self) -> str:
        return f"{self.host}:{self.port}"

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port, "weight": self.weight}


@dataclass(frozen=True)
class Fetched:
    """Value read from the backend, with its cas token when one was asked for."""

    value: Any
    cas_token: str | None = None


# Called on a miss with (client, key); returns (found, value). A found value
# is stored in the backend and returned as a hit.
ReadThroughCallback = Callable[[Any, str], tuple[bool, Any]]

# Receives each result of a delayed fetch: {"key": ..., "value": ..., "cas": ...}
DelayedValueCallback = Callable[[Any, dict[str, Any]], None]


class DistributedCacheClient(Protocol):
    """Operations the facade needs from a distributed key-value store."""

    @property
    def result_code(self) -> ResultCode:
        """Result of the most recent operation."""
        ...

    @property
    def result_message(self) -> str:
        ...

    def add(
        self, key: str, value: Any, expiration: int = 0, server_key: str | None = None
    ) -> bool:
        """Store only if the key is absent."""
        ...

    def set(
        self, key: str, value: Any, expiration: int = 0, server_key: str | None = None
    ) -> bool:
        ...

    def replace(
        self, key: str, value: Any, expiration: int = 0, server_key: str | None = None
    ) -> bool:
        """Store only if the key is present."""
        ...

    def delete(self, key: str, time: int = 0, server_key: str | None = None) -> bool:
        """Delete now, or after ``time`` seconds."""
        ...

    def get(
        self,
        key: str,
        cache_cb: ReadThroughCallback | None = None,
        with_cas: bool = False,
        server_key: str | None = None,
    ) -> Fetched:
        ...

    def get_multi(
        self,
        keys: Iterable[str],
        with_cas: bool = False,
        preserve_order: bool = False,
        server_key: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, str]]:
        """Return ``(values, cas_tokens)`` for the keys that exist."""
        ...

    def set_multi(
        self,
        items: Mapping[str, Any],
        expiration: int = 0,
        server_key: str | None = None,
    ) -> bool:
        ...

    def increment(self, key: str, offset: int = 1, server_key: str | None = None) -> int | None:
        ...

    def decrement(self, key: str, offset: int = 1, server_key: str | None = None) -> int | None:
        ...

    def append(self, key: str, value: Any, server_key: str | None = None) -> bool:
        ...

    def prepend(self, key: str, value: Any, server_key: str | None = None) -> bool:
        ...

    def cas(
        self,
        cas_token: str,
        key: str,
        value: Any,
        expiration: int = 0,
        server_key: str | None = None,
    ) -> bool:
        """Store only if the entry is unchanged since ``cas_token`` was issued."""
        ...

    def flush(self, delay: int = 0) -> bool:
        ...

    def get_delayed(
        self,
        keys: Iterable[str],
        with_cas: bool = False,
        value_cb: DelayedValueCallback | None = None,
        server_key: str | None = None,
    ) -> bool:
        ...

    def fetch(self) -> dict[str, Any] | None:
        ...

    def fetch_all(self) -> list[dict[str, Any]]:
        ...

    def add_server(self, host: str, port: int, weight: int = 1) -> bool:
        ...

    def add_servers(self, servers: Iterable[Any]) -> bool:
        ...

    def get_server_list(self) -> list[dict[str, Any]]:
        ...

    def get_server_by_key(self, server_key: str) -> dict[str, Any] | None:
        ...

    def get_stats(self) -> dict[str, dict[str, Any]]:
        ...

    def get_version(self) -> dict[str, str]:
        ...

    def get_option(self, option: ClientOption | str) -> Any:
        ...

    def set_option(self, option: ClientOption | str, value: Any) -> bool:
        ...
