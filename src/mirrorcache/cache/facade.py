"""Two-tier cache facade.

A ``CacheFacade`` puts a ``RuntimeMirror`` in front of a distributed cache
client. Every operation derives the storage key, classifies the group and
then either serves the mirror alone (local-only groups) or calls the backend
and brings the mirror in line with what the backend reported.

The backend's answer is authoritative: the mirror changes only after the
backend reports success. For local-only groups the mirror is the only tier,
so the facade emulates the backend's preconditions on it (add-if-absent,
replace-if-present, clamped counters, type-preserving concatenation).

One facade serves one request or unit of work and is not thread-safe.

Example:
    cache = CacheFacade.from_settings()

    cache.set("greeting", "hello", group="posts", expiration=300)
    result = cache.get("greeting", group="posts")
    if result.found:
        print(result.value)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from mirrorcache.cache.backend import (
    ClientOption,
    DelayedValueCallback,
    DistributedCacheClient,
    ReadThroughCallback,
    ResultCode,
)
from mirrorcache.cache.expiration import ExpirationPolicy
from mirrorcache.cache.groups import GroupRegistry
from mirrorcache.cache.keys import DEFAULT_GROUP, KeyBuilder
from mirrorcache.cache.mirror import RuntimeMirror
from mirrorcache.cache.redis import RedisCacheClient, get_client
from mirrorcache.cache.results import CacheStatus, GetResult, MultiGetResult
from mirrorcache.cache.values import Direction, as_number, combine, is_scalar_operand
from mirrorcache.observability.logging import LogContext
from mirrorcache.observability.metrics import record_mirror_hit, record_mirror_miss

if TYPE_CHECKING:
    from mirrorcache.config import Settings

logger = logging.getLogger(__name__)


class CacheFacade:
    """Runtime mirror layered over a distributed cache backend.

    Args:
        client: Backend client
        salt: Prepended to every derived key
        global_prefix: Key prefix for global groups
        namespace: Namespace whose prefix applies to all other groups
        groups: Group registry (defaults to the built-in group sets)
        now: Reference timestamp for expiration handling (defaults to now)
        suspend_addition: When set, ``add`` refuses every write
    """

    def __init__(
        self,
        client: DistributedCacheClient,
        *,
        salt: str = "",
        global_prefix: str = "",
        namespace: str = "",
        groups: GroupRegistry | None = None,
        now: int | None = None,
        suspend_addition: bool = False,
    ) -> None:
        self.client = client
        self.groups = groups if groups is not None else GroupRegistry()
        self.keys = KeyBuilder(
            self.groups, salt=salt, global_prefix=global_prefix, namespace=namespace
        )
        self.expiration = ExpirationPolicy(now=now)
        self.mirror = RuntimeMirror()
        self.namespace = str(namespace)
        self.suspend_addition = suspend_addition
        self.status = CacheStatus.SUCCESS

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        client: DistributedCacheClient | None = None,
    ) -> CacheFacade:
        """Build a facade from settings.

        Without an explicit config the process-wide client is reused.
        """
        if config is None:
            from mirrorcache.config import settings as config_settings

            config = config_settings
            if client is None:
                client = get_client()
        elif client is None:
            client = RedisCacheClient(
                config.server_specs(),
                socket_timeout=config.socket_timeout,
                connect_timeout=config.connect_timeout,
            )

        groups = GroupRegistry(
            global_groups=config.extra_global_groups(),
            local_only_groups=config.extra_non_persistent_groups(),
        )
        return cls(
            client,
            salt=config.key_salt,
            global_prefix=config.global_prefix,
            namespace=config.namespace,
            groups=groups,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _group(group: Any) -> str:
        return str(group) if group else DEFAULT_GROUP

    def _is_local_only(self, group: Any) -> bool:
        return self.groups.is_local_only(self._group(group))

    def _backend_succeeded(self) -> bool:
        """Record the backend's last result as our status; True on success."""
        code = self.client.result_code
        self.status = CacheStatus.from_result_code(code)
        return code is ResultCode.SUCCESS

    def _done(self, status: CacheStatus, result: Any) -> Any:
        self.status = status
        return result

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def add_global_groups(self, groups: str | Iterable[str]) -> None:
        self.groups.add_global_groups(groups)

    def add_non_persistent_groups(self, groups: str | Iterable[str]) -> None:
        self.groups.add_non_persistent_groups(groups)

    def switch_namespace(self, namespace: str | int) -> None:
        """Derive non-global keys under another namespace from now on.

        The mirror is not touched: entries derived under the previous
        namespace keep their keys.
        """
        self.keys.switch_namespace(namespace)
        self.namespace = str(namespace)
        with self.log_context():
            logger.debug(f"Switched cache namespace to {namespace}")

    def log_context(self) -> LogContext:
        """Log context carrying this facade's namespace."""
        return LogContext(namespace=self.namespace)

    def build_key(self, key: Any, group: Any = DEFAULT_GROUP) -> str:
        return self.keys.derive(key, group)

    def build_keys(self, keys: Any, groups: Any = DEFAULT_GROUP) -> list[str]:
        return self.keys.derive_batch(keys, groups)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add(
        self,
        key: Any,
        value: Any,
        group: Any = DEFAULT_GROUP,
        expiration: int = 0,
        *,
        server_key: str | None = None,
    ) -> bool:
        """Store a value only if the key does not exist yet."""
        if self.suspend_addition:
            return self._done(CacheStatus.NOT_STORED, False)

        derived = self.keys.derive(key, group)
        expiration = self.expiration.normalize(expiration)

        if self._is_local_only(group):
            if derived in self.mirror:
                return self._done(CacheStatus.NOT_STORED, False)
            self.mirror.put(derived, value)
            return self._done(CacheStatus.SUCCESS, True)

        result = self.client.add(derived, value, expiration, server_key)
        if self._backend_succeeded():
            self.mirror.put(derived, value)
        return result

    def set(
        self,
        key: Any,
        value: Any,
        group: Any = DEFAULT_GROUP,
        expiration: int = 0,
        *,
        server_key: str | None = None,
    ) -> bool:
        """Store a value unconditionally."""
        derived = self.keys.derive(key, group)
        expiration = self.expiration.normalize(expiration)

        if self._is_local_only(group):
            self.mirror.put(derived, value)
            return self._done(CacheStatus.SUCCESS, True)

        result = self.client.set(derived, value, expiration, server_key)
        if self._backend_succeeded():
            self.mirror.put(derived, value)
        return result

    def replace(
        self,
        key: Any,
        value: Any,
        group: Any = DEFAULT_GROUP,
        expiration: int = 0,
        *,
        server_key: str | None = None,
    ) -> bool:
        """Store a value only if the key already exists."""
        derived = self.keys.derive(key, group)
        expiration = self.expiration.normalize(expiration)

        if self._is_local_only(group):
            if derived not in self.mirror:
                return self._done(CacheStatus.NOT_STORED, False)
            self.mirror.put(derived, value)
            return self._done(CacheStatus.SUCCESS, True)

        result = self.client.replace(derived, value, expiration, server_key)
        if self._backend_succeeded():
            self.mirror.put(derived, value)
        return result

    def cas(
        self,
        cas_token: str,
        key: Any,
        value: Any,
        group: Any = DEFAULT_GROUP,
        expiration: int = 0,
        *,
        server_key: str | None = None,
    ) -> bool:
        """Store a value only if it is unchanged since ``cas_token`` was issued.

        Local-only groups cannot check the token: the mirror keeps no
        versions, so the write always goes through and the token is ignored.
        """
        derived = self.keys.derive(key, group)
        expiration = self.expiration.normalize(expiration)

        if self._is_local_only(group):
            self.mirror.put(derived, value)
            return self._done(CacheStatus.SUCCESS, True)

        result = self.client.cas(cas_token, derived, value, expiration, server_key)
        if self._backend_succeeded():
            self.mirror.put(derived, value)
        return result

    def set_multi(
        self,
        items: Mapping[Any, Any],
        groups: Any = DEFAULT_GROUP,
        expiration: int = 0,
        *,
        server_key: str | None = None,
    ) -> bool:
        """Store many values in one backend call.

        Items in local-only groups go straight to the mirror and are left out
        of the backend call.
        """
        expiration = self.expiration.normalize(expiration)
        pairs = self.keys.pair(list(items), groups)
        if items and not pairs:
            return self._done(CacheStatus.NOT_STORED, False)

        backend_items: dict[str, Any] = {}
        for key, group in pairs:
            derived = self.keys.derive(key, group)
            if self._is_local_only(group):
                self.mirror.put(derived, items[key])
            else:
                backend_items[derived] = items[key]

        if not backend_items:
            return self._done(CacheStatus.SUCCESS, True)

        result = self.client.set_multi(backend_items, expiration, server_key)
        if self._backend_succeeded():
            self.mirror.update(backend_items)
        return result

    def delete(
        self,
        key: Any,
        group: Any = DEFAULT_GROUP,
        time: int = 0,
        *,
        server_key: str | None = None,
    ) -> bool:
        """Delete a key, optionally after ``time`` seconds on the backend."""
        derived = self.keys.derive(key, group)

        if self._is_local_only(group):
            self.mirror.delete(derived)
            return self._done(CacheStatus.SUCCESS, True)

        result = self.client.delete(derived, time, server_key)
        if self._backend_succeeded():
            self.mirror.delete(derived)
        return result

    def flush(self, delay: int = 0) -> bool:
        """Flush the backend; the mirror is cleared only if that worked.

        Flushing is global: local-only entries go too.
        """
        result = self.client.flush(delay)
        if self._backend_succeeded():
            self.mirror.clear()
            with self.log_context():
                logger.info("Cache flushed")
        return result

    # -------------------------------------------------------------------------
    # Counters
    # -------------------------------------------------------------------------

    def _local_counter(self, derived: str, delta: int) -> int | float | None:
        current, found = self.mirror.get(derived)
        if not found:
            return self._done(CacheStatus.NOT_FOUND, None)

        number = as_number(current)
        if number is None:
            # Non-numeric values count as zero
            self.mirror.put(derived, 0)
            return self._done(CacheStatus.SUCCESS, 0)
        if number < 0:
            return self._done(CacheStatus.NOT_STORED, None)

        updated = number + delta
        if updated < 0:
            updated = 0
        self.mirror.put(derived, updated)
        return self._done(CacheStatus.SUCCESS, updated)

    def increment(
        self,
        key: Any,
        offset: int = 1,
        group: Any = DEFAULT_GROUP,
        *,
        server_key: str | None = None,
    ) -> int | float | None:
        """Increment a counter. Returns the new value, or None on failure."""
        derived = self.keys.derive(key, group)
        if self._is_local_only(group):
            return self._local_counter(derived, int(offset))

        result = self.client.increment(derived, int(offset), server_key)
        if self._backend_succeeded():
            self.mirror.put(derived, result)
        return result

    def decrement(
        self,
        key: Any,
        offset: int = 1,
        group: Any = DEFAULT_GROUP,
        *,
        server_key: str | None = None,
    ) -> int | float | None:
        """Decrement a counter, never below zero. Returns None on failure."""
        derived = self.keys.derive(key, group)
        if self._is_local_only(group):
            return self._local_counter(derived, -int(offset))

        result = self.client.decrement(derived, int(offset), server_key)
        if self._backend_succeeded():
            self.mirror.put(derived, result)
        return result

    incr = increment
    decr = decrement

    # -------------------------------------------------------------------------
    # Append / prepend
    # -------------------------------------------------------------------------

    def _pend(
        self,
        key: Any,
        value: Any,
        group: Any,
        direction: Direction,
        server_key: str | None,
    ) -> bool:
        if not is_scalar_operand(value):
            return self._done(CacheStatus.REJECTED, False)

        derived = self.keys.derive(key, group)

        if self._is_local_only(group):
            original, found = self.mirror.get(derived)
            if not found:
                return self._done(CacheStatus.NOT_STORED, False)
            try:
                combined = combine(original, value, direction)
            except TypeError:
                return self._done(CacheStatus.REJECTED, False)
            self.mirror.put(derived, combined)
            return self._done(CacheStatus.SUCCESS, True)

        if direction is Direction.PREPEND:
            result = self.client.prepend(derived, value, server_key)
        else:
            result = self.client.append(derived, value, server_key)

        if self._backend_succeeded():
            # Recompute from what the mirror last saw rather than refetching
            original, found = self.mirror.get(derived)
            if found:
                try:
                    self.mirror.put(derived, combine(original, value, direction))
                except TypeError:
                    self.mirror.delete(derived)
        return result

    def append(
        self,
        key: Any,
        value: Any,
        group: Any = DEFAULT_GROUP,
        *,
        server_key: str | None = None,
    ) -> bool:
        """Append a scalar to an existing entry, keeping the entry's type."""
        return self._pend(key, value, group, Direction.APPEND, server_key)

    def prepend(
        self,
        key: Any,
        value: Any,
        group: Any = DEFAULT_GROUP,
        *,
        server_key: str | None = None,
    ) -> bool:
        """Prepend a scalar to an existing entry, keeping the entry's type."""
        return self._pend(key, value, group, Direction.PREPEND, server_key)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(
        self,
        key: Any,
        group: Any = DEFAULT_GROUP,
        force: bool = False,
        *,
        server_key: str | None = None,
        cache_cb: ReadThroughCallback | None = None,
        with_cas: bool = False,
    ) -> GetResult:
        """Read a value, from the mirror when possible.

        A read-through callback or a cas token request sends the read to the
        backend even if the mirror holds the key. ``force`` does the same:
        unlike the read-through and cas cases it is not needed for
        correctness, but it lets a caller pick up writes made by other
        processes since the mirror was filled. Local-only groups are only ever
        read from the mirror.
        """
        derived = self.keys.derive(key, group)
        group_name = self._group(group)
        local_only = self.groups.is_local_only(group_name)
        bypass_mirror = force or cache_cb is not None or with_cas

        if local_only or not bypass_mirror:
            value, found = self.mirror.get(derived)
            if found:
                record_mirror_hit(group_name)
                return self._done(CacheStatus.SUCCESS, GetResult(value, True))
            record_mirror_miss(group_name)
            if local_only:
                return self._done(CacheStatus.NOT_FOUND, GetResult(None, False))

        fetched = self.client.get(
            derived, cache_cb=cache_cb, with_cas=with_cas, server_key=server_key
        )
        if not self._backend_succeeded():
            return GetResult(None, False)

        self.mirror.put(derived, fetched.value)
        return GetResult(fetched.value, True, fetched.cas_token)

    def get_from_runtime_cache(self, key: Any, group: Any = DEFAULT_GROUP) -> GetResult:
        """Look a key up in the mirror only."""
        value, found = self.mirror.get(self.keys.derive(key, group))
        return GetResult(value, found)

    def get_multi(
        self,
        keys: Any,
        groups: Any = DEFAULT_GROUP,
        *,
        server_key: str | None = None,
        with_cas: bool = False,
        preserve_order: bool = False,
    ) -> MultiGetResult:
        """Read many keys, fetching from the backend only what the mirror lacks.

        When cas tokens or ordering are requested and no local-only group is
        involved, the mirror is skipped and every key comes from the backend.
        Results are keyed by derived key; keys that were not found are listed
        in ``missing``.
        """
        pairs = self.keys.pair(keys, groups)
        involved = [self._group(group) for _, group in pairs]
        derived_keys = [self.keys.derive(key, group) for key, group in pairs]
        local_keys = {
            derived
            for derived, group in zip(derived_keys, involved)
            if self.groups.is_local_only(group)
        }

        values: dict[str, Any] = {}
        tokens: dict[str, str] = {}
        backend_failed = False

        if (with_cas or preserve_order) and not self.groups.contains_local_only(involved):
            values, tokens = self.client.get_multi(
                derived_keys,
                with_cas=with_cas,
                preserve_order=preserve_order,
                server_key=server_key,
            )
            backend_failed = self.client.result_code is ResultCode.FAILURE
        else:
            need_to_get: dict[str, None] = {}
            for derived in derived_keys:
                value, found = self.mirror.get(derived)
                if found:
                    values[derived] = value
                elif derived not in local_keys:
                    need_to_get[derived] = None

            if need_to_get:
                fetched, _ = self.client.get_multi(list(need_to_get), server_key=server_key)
                if self.client.result_code is ResultCode.SUCCESS:
                    values.update(fetched)
                backend_failed = self.client.result_code is ResultCode.FAILURE

            if preserve_order:
                values = {derived: values[derived] for derived in derived_keys if derived in values}

        self.mirror.update(values)

        missing = [derived for derived in dict.fromkeys(derived_keys) if derived not in values]
        result = MultiGetResult(values=values, cas_tokens=tokens, missing=missing)
        self.status = CacheStatus.BACKEND_FAILURE if backend_failed else result.status
        return result

    def get_delayed(
        self,
        keys: Any,
        groups: Any = DEFAULT_GROUP,
        *,
        server_key: str | None = None,
        with_cas: bool = False,
        value_cb: DelayedValueCallback | None = None,
    ) -> bool:
        """Request many keys from the backend; collect them with ``fetch``."""
        derived_keys = self.keys.derive_batch(keys, groups)
        result = self.client.get_delayed(
            derived_keys, with_cas=with_cas, value_cb=value_cb, server_key=server_key
        )
        self._backend_succeeded()
        return result

    def fetch(self) -> dict[str, Any] | None:
        """Next result of ``get_delayed``, or None when there are no more."""
        item = self.client.fetch()
        self._backend_succeeded()
        return item

    def fetch_all(self) -> list[dict[str, Any]]:
        items = self.client.fetch_all()
        self._backend_succeeded()
        return items

    # -------------------------------------------------------------------------
    # Backend passthrough
    # -------------------------------------------------------------------------

    def add_server(self, host: str, port: int, weight: int = 1) -> bool:
        return self.client.add_server(host, port, weight)

    def add_servers(self, servers: Iterable[Any]) -> bool:
        return self.client.add_servers(servers)

    def get_server_list(self) -> list[dict[str, Any]]:
        return self.client.get_server_list()

    def get_server_by_key(self, server_key: str) -> dict[str, Any] | None:
        return self.client.get_server_by_key(server_key)

    def get_stats(self) -> dict[str, dict[str, Any]]:
        return self.client.get_stats()

    def get_version(self) -> dict[str, str]:
        return self.client.get_version()

    def get_option(self, option: ClientOption | str) -> Any:
        value = self.client.get_option(option)
        self._backend_succeeded()
        return value

    def set_option(self, option: ClientOption | str, value: Any) -> bool:
        result = self.client.set_option(option, value)
        self._backend_succeeded()
        return result

    def get_result_code(self) -> ResultCode:
        """Result code of the last backend call."""
        return self.client.result_code

    def get_result_message(self) -> str:
        return self.client.result_message
