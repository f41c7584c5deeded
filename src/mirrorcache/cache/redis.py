"""Redis implementation of the distributed cache client.

Uses the redis-py sync client, one connection pool per configured server.
Values are stored with the tagged codec from ``mirrorcache.cache.values`` so
their kind survives the round trip. Conditional and read-modify-write
operations (add, replace, increment, append, cas, ...) keep memcached
semantics on top of Redis primitives: SET NX/XX for add/replace, WATCH
transactions for the rest.

Backend errors never escape: they are logged, recorded as
``ResultCode.FAILURE`` and turned into a failure return value.
"""

from __future__ import annotations

import hashlib
import logging
import time
import zlib
from collections import deque
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import redis

from mirrorcache.cache.backend import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    RESULT_MESSAGES,
    ClientOption,
    DelayedValueCallback,
    Fetched,
    ReadThroughCallback,
    ResultCode,
    ServerSpec,
)
from mirrorcache.cache.expiration import ttl_seconds
from mirrorcache.cache.values import (
    Direction,
    as_number,
    combine,
    decode,
    encode,
    is_scalar_operand,
)
from mirrorcache.config import settings
from mirrorcache.observability.metrics import record_backend_operation

if TYPE_CHECKING:
    from redis import Redis
    from redis.client import Pipeline

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ServerSpec], "Redis"]

# Module-level client shared by every facade in the process
_cache_client: RedisCacheClient | None = None


class NoServersConfigured(redis.ConnectionError):
    """Raised internally when an operation needs a server and the pool is empty."""


def cas_token_for(payload: bytes) -> str:
    """Cas token of a stored payload: its SHA-256 digest."""
    return hashlib.sha256(payload).hexdigest()


def _coerce_server(server: Any) -> tuple[Any, Any, Any]:
    if isinstance(server, ServerSpec):
        return server.host, server.port, server.weight
    if isinstance(server, Mapping):
        return server.get("host"), server.get("port"), server.get("weight", 1)
    parts = list(server)
    while len(parts) < 3:
        parts.append(None)
    return parts[0], parts[1], parts[2]


class RedisCacheClient:
    """Memcached-style cache client over a pool of Redis servers.

    Keys are routed to a server by a weighted CRC32 of the routing key: the
    ``server_key`` hint when given, otherwise the key itself.
    """

    def __init__(
        self,
        servers: Iterable[Any] | None = None,
        *,
        client_factory: ClientFactory | None = None,
        prefix_key: str = "",
        socket_timeout: float | None = None,
        connect_timeout: float | None = None,
    ) -> None:
        self._servers: list[ServerSpec] = []
        self._ring: list[ServerSpec] = []
        self._clients: dict[str, Redis] = {}
        self._factory = client_factory
        self._options: dict[ClientOption, Any] = {
            ClientOption.PREFIX_KEY: prefix_key,
            ClientOption.SOCKET_TIMEOUT: socket_timeout,
            ClientOption.CONNECT_TIMEOUT: connect_timeout,
        }
        self._result_code = ResultCode.SUCCESS
        self._delayed: deque[dict[str, Any]] = deque()
        if servers:
            self.add_servers(servers)

    # -------------------------------------------------------------------------
    # Result codes
    # -------------------------------------------------------------------------

    @property
    def result_code(self) -> ResultCode:
        return self._result_code

    @property
    def result_message(self) -> str:
        return RESULT_MESSAGES[self._result_code]

    @contextmanager
    def _call(self, operation: str) -> Iterator[None]:
        """Time a backend call and turn backend errors into FAILURE."""
        self._result_code = ResultCode.FAILURE
        start = time.perf_counter()
        try:
            yield
        except redis.RedisError as e:
            self._result_code = ResultCode.FAILURE
            logger.warning(f"Cache backend {operation} failed: {e}")
        except (TypeError, ValueError) as e:
            self._result_code = ResultCode.FAILURE
            logger.warning(f"Cache backend {operation} rejected value: {e}")
        finally:
            record_backend_operation(
                operation, self._result_code.value, time.perf_counter() - start
            )

    # -------------------------------------------------------------------------
    # Server pool
    # -------------------------------------------------------------------------

    def _connect(self, spec: ServerSpec) -> Redis:
        if self._factory is not None:
            return self._factory(spec)
        return redis.Redis(
            host=spec.host,
            port=spec.port,
            socket_timeout=self._options[ClientOption.SOCKET_TIMEOUT],
            socket_connect_timeout=self._options[ClientOption.CONNECT_TIMEOUT],
            decode_responses=False,  # payloads are tagged bytes
        )

    def _client(self, spec: ServerSpec) -> Redis:
        client = self._clients.get(spec.label)
        if client is None:
            client = self._connect(spec)
            self._clients[spec.label] = client
        return client

    def _spec_for(self, routing_key: str) -> ServerSpec:
        if not self._ring:
            raise NoServersConfigured("no cache servers configured")
        if len(self._servers) == 1:
            return self._servers[0]
        index = zlib.crc32(routing_key.encode("utf-8")) % len(self._ring)
        return self._ring[index]

    def _client_for(self, key: str, server_key: str | None) -> Redis:
        return self._client(self._spec_for(server_key or key))

    def _rebuild_ring(self) -> None:
        self._ring = [spec for spec in self._servers for _ in range(spec.weight)]

    def add_server(self, host: Any, port: Any, weight: Any = 1) -> bool:
        """Add a server to the pool, falling back to defaults for bad values."""
        host = host if isinstance(host, str) and host else DEFAULT_HOST
        port = int(port) if isinstance(port, (int, float)) and port > 0 else DEFAULT_PORT
        weight = int(weight) if isinstance(weight, (int, float)) and weight > 0 else 1

        spec = ServerSpec(host=host, port=port, weight=weight)
        if any(existing.label == spec.label for existing in self._servers):
            logger.debug(f"Cache server {spec.label} already in pool")
            return True

        self._servers.append(spec)
        self._rebuild_ring()
        logger.info(f"Added cache server {spec.label} (weight {spec.weight})")
        return True

    def add_servers(self, servers: Iterable[Any]) -> bool:
        """Add servers given as (host, port[, weight]) tuples, dicts or ServerSpec."""
        for server in servers:
            self.add_server(*_coerce_server(server))
        return True

    def get_server_list(self) -> list[dict[str, Any]]:
        return [spec.to_dict() for spec in self._servers]

    def get_server_by_key(self, server_key: str) -> dict[str, Any] | None:
        if not self._ring:
            return None
        return self._spec_for(server_key).to_dict()

    def get_stats(self) -> dict[str, dict[str, Any]]:
        """``INFO`` output per reachable server."""
        stats: dict[str, dict[str, Any]] = {}
        with self._call("stats"):
            for spec in self._servers:
                stats[spec.label] = dict(self._client(spec).info())
            self._result_code = ResultCode.SUCCESS
        return stats

    def get_version(self) -> dict[str, str]:
        versions: dict[str, str] = {}
        with self._call("version"):
            for spec in self._servers:
                info = self._client(spec).info("server")
                versions[spec.label] = str(info.get("redis_version", ""))
            self._result_code = ResultCode.SUCCESS
        return versions

    def _option(self, option: ClientOption | str) -> ClientOption | None:
        try:
            return ClientOption(option)
        except ValueError:
            self._result_code = ResultCode.FAILURE
            logger.warning(f"Unknown cache client option {option!r}")
            return None

    def get_option(self, option: ClientOption | str) -> Any:
        """Current value of an option; None with FAILURE for unknown options."""
        known = self._option(option)
        if known is None:
            return None
        self._result_code = ResultCode.SUCCESS
        return self._options[known]

    def set_option(self, option: ClientOption | str, value: Any) -> bool:
        """Change a client option. Timeout changes reconnect lazily.

        Unknown options and values of the wrong type are refused with FAILURE.
        """
        known = self._option(option)
        if known is None:
            return False
        if known is ClientOption.PREFIX_KEY:
            valid = isinstance(value, str)
        else:
            valid = value is None or (
                isinstance(value, (int, float)) and not isinstance(value, bool)
            )
        if not valid:
            self._result_code = ResultCode.FAILURE
            logger.warning(f"Rejected value {value!r} for cache option {known.value}")
            return False

        self._options[known] = value
        if known is not ClientOption.PREFIX_KEY:
            self.close()
        self._result_code = ResultCode.SUCCESS
        return True

    def close(self) -> None:
        """Close all server connections."""
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def _k(self, key: str) -> str:
        return f"{self._options[ClientOption.PREFIX_KEY]}{key}"

    def _store(
        self,
        key: str,
        value: Any,
        expiration: int,
        server_key: str | None,
        *,
        nx: bool = False,
        xx: bool = False,
    ) -> bool:
        client = self._client_for(key, server_key)
        payload = encode(value)
        ttl = ttl_seconds(expiration)

        if ttl is not None and ttl <= 0:
            # Stored and expired at once: honour the precondition, leave nothing behind
            exists = bool(client.exists(self._k(key)))
            if (nx and exists) or (xx and not exists):
                self._result_code = ResultCode.NOT_STORED
                return False
            client.delete(self._k(key))
            self._result_code = ResultCode.SUCCESS
            return True

        stored = client.set(self._k(key), payload, ex=ttl, nx=nx, xx=xx)
        if not stored:
            self._result_code = ResultCode.NOT_STORED
            return False
        self._result_code = ResultCode.SUCCESS
        return True

    def add(
        self, key: str, value: Any, expiration: int = 0, server_key: str | None = None
    ) -> bool:
        result = False
        with self._call("add"):
            result = self._store(key, value, expiration, server_key, nx=True)
        return result

    def set(
        self, key: str, value: Any, expiration: int = 0, server_key: str | None = None
    ) -> bool:
        result = False
        with self._call("set"):
            result = self._store(key, value, expiration, server_key)
        return result

    def replace(
        self, key: str, value: Any, expiration: int = 0, server_key: str | None = None
    ) -> bool:
        result = False
        with self._call("replace"):
            result = self._store(key, value, expiration, server_key, xx=True)
        return result

    def set_multi(
        self,
        items: Mapping[str, Any],
        expiration: int = 0,
        server_key: str | None = None,
    ) -> bool:
        result = False
        with self._call("set_multi"):
            ttl = ttl_seconds(expiration)
            pipelines: dict[str, Pipeline] = {}
            for key, value in items.items():
                spec = self._spec_for(server_key or key)
                pipe = pipelines.get(spec.label)
                if pipe is None:
                    pipe = self._client(spec).pipeline(transaction=False)
                    pipelines[spec.label] = pipe
                if ttl is not None and ttl <= 0:
                    pipe.delete(self._k(key))
                else:
                    pipe.set(self._k(key), encode(value), ex=ttl)
            for pipe in pipelines.values():
                pipe.execute()
            self._result_code = ResultCode.SUCCESS
            result = True
        return result

    def delete(self, key: str, time: int = 0, server_key: str | None = None) -> bool:
        """Delete a key; with ``time`` > 0 it expires after that many seconds instead."""
        result = False
        with self._call("delete"):
            client = self._client_for(key, server_key)
            if time and time > 0:
                removed = bool(client.expire(self._k(key), int(time)))
            else:
                removed = client.delete(self._k(key)) > 0
            self._result_code = ResultCode.SUCCESS if removed else ResultCode.NOT_FOUND
            result = removed
        return result

    def flush(self, delay: int = 0) -> bool:
        """Invalidate every entry, now or after ``delay`` seconds.

        With a key prefix configured only prefixed keys are touched.
        """
        result = False
        with self._call("flush"):
            prefix = self._options[ClientOption.PREFIX_KEY]
            for spec in self._servers:
                client = self._client(spec)
                if not prefix and delay <= 0:
                    client.flushdb()
                    continue
                pipe = client.pipeline(transaction=False)
                for raw_key in client.scan_iter(match=f"{prefix}*"):
                    if delay > 0:
                        pipe.expire(raw_key, int(delay))
                    else:
                        pipe.delete(raw_key)
                pipe.execute()
            self._result_code = ResultCode.SUCCESS
            result = True
        return result

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    def get(
        self,
        key: str,
        cache_cb: ReadThroughCallback | None = None,
        with_cas: bool = False,
        server_key: str | None = None,
    ) -> Fetched:
        fetched = Fetched(None)
        with self._call("get"):
            client = self._client_for(key, server_key)
            raw = client.get(self._k(key))

            if raw is None and cache_cb is not None:
                found, value = cache_cb(self, key)
                if found:
                    raw = encode(value)
                    client.set(self._k(key), raw)

            if raw is None:
                self._result_code = ResultCode.NOT_FOUND
            else:
                token = cas_token_for(raw) if with_cas else None
                fetched = Fetched(decode(raw), token)
                self._result_code = ResultCode.SUCCESS
        return fetched

    def get_multi(
        self,
        keys: Iterable[str],
        with_cas: bool = False,
        preserve_order: bool = False,
        server_key: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, str]]:
        """Fetch many keys with one MGET per server.

        Results always follow the requested key order, so ``preserve_order``
        needs no extra work here. A payload that cannot be decoded is left
        out like a missing key; the rest of the batch is still returned.
        """
        values: dict[str, Any] = {}
        tokens: dict[str, str] = {}
        with self._call("get_multi"):
            wanted = list(dict.fromkeys(keys))
            by_server: dict[str, tuple[ServerSpec, list[str]]] = {}
            for key in wanted:
                spec = self._spec_for(server_key or key)
                by_server.setdefault(spec.label, (spec, []))[1].append(key)

            raw_values: dict[str, bytes] = {}
            for spec, server_keys in by_server.values():
                found = self._client(spec).mget([self._k(key) for key in server_keys])
                for key, raw in zip(server_keys, found):
                    if raw is not None:
                        raw_values[key] = raw

            for key in wanted:
                raw = raw_values.get(key)
                if raw is None:
                    continue
                try:
                    values[key] = decode(raw)
                except ValueError as e:
                    logger.warning(f"Dropping undecodable cache entry {key}: {e}")
                    continue
                if with_cas:
                    tokens[key] = cas_token_for(raw)

            if wanted and not values:
                self._result_code = ResultCode.NOT_FOUND
            else:
                self._result_code = ResultCode.SUCCESS
        return values, tokens

    def get_delayed(
        self,
        keys: Iterable[str],
        with_cas: bool = False,
        value_cb: DelayedValueCallback | None = None,
        server_key: str | None = None,
    ) -> bool:
        """Fetch keys now and queue the results for ``fetch``/``fetch_all``.

        With ``value_cb`` every result is handed to the callback instead of
        being queued.
        """
        values, tokens = self.get_multi(keys, with_cas=with_cas, server_key=server_key)
        if self._result_code is ResultCode.FAILURE:
            return False

        items = [
            {"key": key, "value": value, "cas": tokens.get(key)} for key, value in values.items()
        ]
        if value_cb is not None:
            for item in items:
                value_cb(self, item)
        else:
            self._delayed.extend(items)
        self._result_code = ResultCode.SUCCESS
        return True

    def fetch(self) -> dict[str, Any] | None:
        if not self._delayed:
            self._result_code = ResultCode.NOT_FOUND
            return None
        self._result_code = ResultCode.SUCCESS
        return self._delayed.popleft()

    def fetch_all(self) -> list[dict[str, Any]]:
        items = list(self._delayed)
        self._delayed.clear()
        self._result_code = ResultCode.SUCCESS
        return items

    # -------------------------------------------------------------------------
    # Read-modify-write
    # -------------------------------------------------------------------------

    def _read_modify_write(
        self,
        key: str,
        server_key: str | None,
        mutate: Callable[[bytes | None], tuple[ResultCode, bytes | None, Any]],
        expiration: int | None = None,
    ) -> Any:
        """Run ``mutate`` on the current payload inside a WATCH transaction.

        ``mutate`` returns ``(result_code, new_payload, return_value)``; a
        ``new_payload`` of None writes nothing. The remaining TTL is kept
        unless an ``expiration`` is given.
        """
        client = self._client_for(key, server_key)
        storage_key = self._k(key)

        def apply(pipe: Pipeline) -> tuple[ResultCode, Any]:
            code, payload, value = mutate(pipe.get(storage_key))
            if payload is None:
                return code, value
            pipe.multi()
            if expiration is None:
                pipe.set(storage_key, payload, keepttl=True)
                return code, value
            ttl = ttl_seconds(expiration)
            if ttl is not None and ttl <= 0:
                pipe.delete(storage_key)
            else:
                pipe.set(storage_key, payload, ex=ttl)
            return code, value

        code, value = client.transaction(apply, storage_key, value_from_callable=True)
        self._result_code = code
        return value

    def _counter(self, operation: str, key: str, delta: int, server_key: str | None) -> int | None:
        def mutate(raw: bytes | None) -> tuple[ResultCode, bytes | None, int | None]:
            if raw is None:
                return ResultCode.NOT_FOUND, None, None
            current = as_number(decode(raw))
            if current is None or current < 0:
                return ResultCode.FAILURE, None, None
            updated = max(0, int(current) + delta)
            return ResultCode.SUCCESS, encode(updated), updated

        result = None
        with self._call(operation):
            result = self._read_modify_write(key, server_key, mutate)
        return result

    def increment(self, key: str, offset: int = 1, server_key: str | None = None) -> int | None:
        return self._counter("increment", key, int(offset), server_key)

    def decrement(self, key: str, offset: int = 1, server_key: str | None = None) -> int | None:
        """Decrement a counter; the result never drops below zero."""
        return self._counter("decrement", key, -int(offset), server_key)

    def _pend(
        self, operation: str, key: str, value: Any, direction: Direction, server_key: str | None
    ) -> bool:
        if not is_scalar_operand(value):
            self._result_code = ResultCode.FAILURE
            return False

        def mutate(raw: bytes | None) -> tuple[ResultCode, bytes | None, bool]:
            if raw is None:
                return ResultCode.NOT_STORED, None, False
            try:
                combined = combine(decode(raw), value, direction)
            except TypeError:
                return ResultCode.FAILURE, None, False
            return ResultCode.SUCCESS, encode(combined), True

        result = False
        with self._call(operation):
            result = self._read_modify_write(key, server_key, mutate)
        return result

    def append(self, key: str, value: Any, server_key: str | None = None) -> bool:
        return self._pend("append", key, value, Direction.APPEND, server_key)

    def prepend(self, key: str, value: Any, server_key: str | None = None) -> bool:
        return self._pend("prepend", key, value, Direction.PREPEND, server_key)

    def cas(
        self,
        cas_token: str,
        key: str,
        value: Any,
        expiration: int = 0,
        server_key: str | None = None,
    ) -> bool:
        """Compare-and-swap against the token issued by a ``with_cas`` read."""

        def mutate(raw: bytes | None) -> tuple[ResultCode, bytes | None, bool]:
            if raw is None:
                return ResultCode.NOT_FOUND, None, False
            if cas_token_for(raw) != cas_token:
                return ResultCode.DATA_EXISTS, None, False
            return ResultCode.SUCCESS, payload, True

        result = False
        with self._call("cas"):
            payload = encode(value)
            result = self._read_modify_write(
                key, server_key, mutate, expiration=int(expiration or 0)
            )
        return result


def get_client() -> RedisCacheClient:
    """Get or create the process-wide cache client from settings."""
    global _cache_client
    if _cache_client is None:
        _cache_client = RedisCacheClient(
            settings.server_specs(),
            socket_timeout=settings.socket_timeout,
            connect_timeout=settings.connect_timeout,
        )
    return _cache_client


def close_client() -> None:
    """Close backend connections."""
    global _cache_client
    if _cache_client is not None:
        _cache_client.close()
        _cache_client = None
