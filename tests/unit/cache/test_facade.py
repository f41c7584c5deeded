"""Tests for the two-tier cache facade."""

from dataclasses import dataclass
from unittest.mock import MagicMock, patch

import pytest

from mirrorcache.cache.backend import Fetched, ResultCode
from mirrorcache.cache.facade import CacheFacade
from mirrorcache.cache.groups import GroupRegistry
from mirrorcache.cache.redis import RedisCacheClient
from mirrorcache.cache.results import CacheStatus
from mirrorcache.config import Settings

NOW = 1_700_000_000


@dataclass
class Post:
    title: str
    views: int = 0


@pytest.fixture
def mock_client() -> MagicMock:
    """Backend double that reports success for every call."""
    client = MagicMock(spec=RedisCacheClient)
    client.result_code = ResultCode.SUCCESS
    return client


class TestWrites:
    """Test add, set, replace and delete through both tiers."""

    def test_add_twice(self, cache) -> None:
        assert cache.add("k", "first", "posts") is True
        assert cache.add("k", "second", "posts") is False
        assert cache.status is CacheStatus.NOT_STORED
        assert cache.get("k", "posts").value == "first"

    def test_replace_missing(self, cache) -> None:
        assert cache.replace("k", "v", "posts") is False
        assert cache.status is CacheStatus.NOT_STORED
        assert not cache.get_from_runtime_cache("k", "posts").found

    def test_set_populates_mirror(self, cache) -> None:
        cache.set("k", {"a": 1}, "posts")
        assert cache.get_from_runtime_cache("k", "posts").value == {"a": 1}

    def test_write_visible_without_backend_read(self, cache, redis_client) -> None:
        """A value just written is served from the mirror."""
        cache.set("k", "v", "posts")
        with patch.object(redis_client, "get", wraps=redis_client.get) as backend_get:
            result = cache.get("k", "posts")

        assert result.value == "v"
        backend_get.assert_not_called()

    def test_failed_backend_write_leaves_mirror(self, cache, mock_client) -> None:
        facade = CacheFacade(mock_client, namespace="site1")
        mock_client.result_code = ResultCode.FAILURE
        mock_client.set.return_value = False

        assert facade.set("k", "v", "posts") is False
        assert facade.status is CacheStatus.BACKEND_FAILURE
        assert "site1:posts:k" not in facade.mirror

    def test_long_expiration_becomes_absolute(self, mock_client) -> None:
        facade = CacheFacade(mock_client, namespace="site1", now=NOW)
        forty_days = 40 * 86400

        facade.set("k", "v", "posts", forty_days)

        mock_client.set.assert_called_once_with("site1:posts:k", "v", forty_days + NOW, None)

    def test_suspend_addition(self, redis_client) -> None:
        facade = CacheFacade(redis_client, suspend_addition=True)
        assert facade.add("k", "v") is False
        assert facade.status is CacheStatus.NOT_STORED

    def test_delete(self, cache) -> None:
        cache.set("k", "v", "posts")
        assert cache.delete("k", "posts") is True
        assert not cache.get("k", "posts").found
        assert cache.delete("k", "posts") is False
        assert cache.status is CacheStatus.NOT_FOUND

    def test_flush_clears_mirror(self, cache) -> None:
        cache.set("k", "v", "posts")
        cache.set("c", 1, "comment")

        assert cache.flush() is True
        assert len(cache.mirror) == 0

    def test_record_type_shared_between_instances(self, cache, redis_client) -> None:
        """A record read by another facade comes back with its own type."""
        cache.set("p", Post("hi", 3), "posts")
        other = CacheFacade(redis_client, namespace="site1")

        result = other.get("p", "posts")

        assert result.value == Post("hi", 3)
        assert type(result.value) is type(cache.get("p", "posts").value)

    def test_set_record_json_cannot_represent(self, cache, redis_client) -> None:
        assert cache.set("s", {1, 2}, "posts") is True
        other = CacheFacade(redis_client, namespace="site1")
        assert other.get("s", "posts").value == {1, 2}

    def test_cas(self, cache) -> None:
        cache.set("k", "v1", "posts")
        token = cache.get("k", "posts", with_cas=True).cas_token

        assert cache.cas(token, "k", "v2", "posts") is True
        assert cache.get_from_runtime_cache("k", "posts").value == "v2"
        assert cache.cas(token, "k", "v3", "posts") is False
        assert cache.status is CacheStatus.NOT_STORED


class TestLocalOnlyGroups:
    """Test that local-only groups never reach the backend."""

    def test_operations_stay_local(self, mock_client) -> None:
        facade = CacheFacade(mock_client)

        assert facade.add("k", "v", "comment") is True
        assert facade.add("k", "v", "comment") is False
        assert facade.set("k", 3, "comment") is True
        assert facade.replace("k", 4, "comment") is True
        assert facade.increment("k", 1, "comment") == 5
        assert facade.append("k", 1, "comment") is True
        assert facade.get("k", "comment", force=True).value == 51
        assert facade.delete("k", "comment") is True
        assert not facade.get("k", "comment").found

        assert mock_client.mock_calls == []

    def test_cas_ignores_token(self, cache) -> None:
        """Without versions in the mirror, cas writes unconditionally."""
        cache.set("c", 1, "comment")
        assert cache.cas("bogus", "c", 2, "comment") is True
        assert cache.status is CacheStatus.SUCCESS
        assert cache.get("c", "comment").value == 2

    def test_counter_clamps_at_zero(self, cache) -> None:
        cache.set("c", 2, "comment")
        assert cache.decrement("c", 5, "comment") == 0

    def test_counter_missing(self, cache) -> None:
        assert cache.increment("c", 1, "comment") is None
        assert cache.status is CacheStatus.NOT_FOUND

    def test_counter_non_numeric_resets(self, cache) -> None:
        cache.set("c", "abc", "comment")
        assert cache.incr("c", 3, "comment") == 0
        assert cache.get("c", "comment").value == 0

    def test_counter_negative_refused(self, cache) -> None:
        cache.set("c", -3, "comment")
        assert cache.decr("c", 1, "comment") is None
        assert cache.status is CacheStatus.NOT_STORED

    def test_replace_missing(self, cache) -> None:
        assert cache.replace("k", "v", "counts") is False

    def test_append_missing(self, cache) -> None:
        assert cache.append("k", "v", "counts") is False
        assert cache.status is CacheStatus.NOT_STORED

    def test_added_group(self, mock_client) -> None:
        facade = CacheFacade(mock_client)
        facade.add_non_persistent_groups("scratch")
        facade.set("k", "v", "scratch")
        mock_client.set.assert_not_called()


class TestCounters:
    """Test backend counters and mirror sync."""

    def test_increment_updates_mirror(self, cache) -> None:
        cache.set("n", 1, "posts")
        assert cache.increment("n", 2, "posts") == 3
        assert cache.get_from_runtime_cache("n", "posts").value == 3

    def test_decrement_clamps(self, cache) -> None:
        cache.set("n", 2, "posts")
        assert cache.decrement("n", 5, "posts") == 0

    def test_missing_counter(self, cache) -> None:
        assert cache.increment("n", 1, "posts") is None
        assert cache.status is CacheStatus.NOT_FOUND


class TestAppendPrepend:
    """Test type-preserving concatenation through the facade."""

    def test_prepend_keeps_integer(self, cache) -> None:
        cache.set("n", 23, "posts")
        assert cache.prepend("n", "45.", "posts") is True
        assert cache.get("n", "posts").value == 45
        assert cache.get("n", "posts", force=True).value == 45

    def test_rejects_non_scalar(self, cache) -> None:
        cache.set("s", "x", "posts")
        assert cache.append("s", ["y"], "posts") is False
        assert cache.status is CacheStatus.REJECTED

    def test_append_without_mirror_entry(self, cache, redis_client) -> None:
        """A backend-only entry is appended without creating a mirror entry."""
        redis_client.set(cache.build_key("s", "posts"), "foo")

        assert cache.append("s", "bar", "posts") is True
        assert not cache.get_from_runtime_cache("s", "posts").found
        assert cache.get("s", "posts").value == "foobar"


class TestReads:
    """Test single-key reads."""

    def test_miss(self, cache) -> None:
        result = cache.get("k", "posts")
        assert not result
        assert result.value is None
        assert cache.status is CacheStatus.NOT_FOUND

    def test_backend_hit_fills_mirror(self, cache, redis_client) -> None:
        redis_client.set(cache.build_key("k", "posts"), "v")
        assert cache.get("k", "posts").value == "v"
        assert cache.get_from_runtime_cache("k", "posts").value == "v"

    def test_stored_none_is_found(self, cache) -> None:
        cache.set("k", None, "posts")
        result = cache.get("k", "posts", force=True)
        assert result.found
        assert result.value is None

    def test_force_bypasses_mirror(self, cache, redis_client) -> None:
        cache.set("k", "old", "posts")
        redis_client.set(cache.build_key("k", "posts"), "new")

        assert cache.get("k", "posts").value == "old"
        assert cache.get("k", "posts", force=True).value == "new"

    def test_read_through_callback(self, cache) -> None:
        callback = MagicMock(return_value=(True, "built"))
        result = cache.get("k", "posts", cache_cb=callback)
        assert result.value == "built"
        assert callback.call_count == 1

    def test_mirror_returns_copies(self, cache) -> None:
        cache.set("k", {"items": [1]}, "posts")
        cache.get("k", "posts").value["items"].append(2)
        assert cache.get("k", "posts").value == {"items": [1]}

    def test_server_key_passed_through(self, mock_client) -> None:
        mock_client.get.return_value = Fetched("v")
        facade = CacheFacade(mock_client, namespace="site1")

        facade.get("k", "posts", server_key="shard")

        mock_client.get.assert_called_once_with(
            "site1:posts:k", cache_cb=None, with_cas=False, server_key="shard"
        )


class TestMultiKey:
    """Test get_multi and set_multi."""

    def test_set_multi_splits_local_only(self, cache, redis_client) -> None:
        assert cache.set_multi({"a": 1, "b": 2}, ["posts", "comment"]) is True

        assert redis_client.get(cache.build_key("a", "posts")).value == 1
        assert redis_client.get(cache.build_key("b", "comment")).value is None
        assert cache.get("b", "comment").value == 2

    def test_set_multi_more_groups_than_keys(self, cache) -> None:
        assert cache.set_multi({"a": 1}, ["posts", "pages"]) is False
        assert cache.status is CacheStatus.NOT_STORED

    def test_get_multi_uses_mirror_first(self, cache, redis_client) -> None:
        cache.set("a", 1, "posts")
        redis_client.set(cache.build_key("b", "posts"), 2)

        with patch.object(redis_client, "get_multi", wraps=redis_client.get_multi) as backend:
            result = cache.get_multi(["a", "b", "c"], "posts")

        a, b, c = cache.build_keys(["a", "b", "c"], "posts")
        backend.assert_called_once_with([b, c], server_key=None)
        assert result.values == {a: 1, b: 2}
        assert result.missing == [c]
        assert cache.status is CacheStatus.PARTIAL_BATCH

    def test_get_multi_preserve_order(self, cache) -> None:
        cache.set_multi({"a": 1, "b": 2, "c": 3}, "posts")
        cache.mirror.clear()
        cache.set("a", 10, "posts")

        result = cache.get_multi(["c", "a", "b"], "posts", preserve_order=True)

        assert list(result.values) == [cache.build_key(key, "posts") for key in ("c", "a", "b")]
        assert list(result.values.values()) == [3, 10, 2]

    def test_get_multi_fetches_duplicates_once(self, cache, redis_client) -> None:
        b = cache.build_key("b", "posts")
        redis_client.set(b, 2)
        with patch.object(redis_client, "get_multi", wraps=redis_client.get_multi) as backend:
            result = cache.get_multi(["b", "b"], "posts")

        backend.assert_called_once_with([b], server_key=None)
        assert result.values == {b: 2}
        assert result.missing == []

    def test_get_multi_preserve_order_with_gap(self, cache, redis_client) -> None:
        """A key missing in the middle is reported and the rest keep their order."""
        a, b, c = cache.build_keys(["a", "b", "c"], "posts")
        redis_client.set_multi({a: 1, c: 3})

        result = cache.get_multi(["a", "b", "c"], "posts", preserve_order=True)

        assert list(result.values.items()) == [(a, 1), (c, 3)]
        assert result.missing == [b]
        assert result.status is CacheStatus.PARTIAL_BATCH
        assert cache.status is CacheStatus.PARTIAL_BATCH

    def test_get_multi_keeps_decodable_entries(self, cache, redis_client, raw_redis) -> None:
        a, b = cache.build_keys(["a", "b"], "posts")
        redis_client.set(a, 1)
        raw_redis.set(b, b"i:notanint")

        result = cache.get_multi(["a", "b"], "posts")

        assert result.values == {a: 1}
        assert result.missing == [b]

    def test_get_multi_with_cas(self, cache) -> None:
        cache.set("a", 1, "posts")
        result = cache.get_multi(["a"], "posts", with_cas=True)
        assert cache.build_key("a", "posts") in result.cas_tokens

    def test_get_multi_local_only_never_fetched(self, cache, redis_client) -> None:
        cache.set("a", 1, "counts")
        with patch.object(redis_client, "get_multi", wraps=redis_client.get_multi) as backend:
            result = cache.get_multi(["a", "b"], "counts", preserve_order=True)

        backend.assert_not_called()
        assert result.values == {cache.build_key("a", "counts"): 1}
        assert result.missing == [cache.build_key("b", "counts")]

    def test_get_multi_fills_mirror(self, cache, redis_client) -> None:
        redis_client.set(cache.build_key("a", "posts"), "v")
        cache.get_multi(["a"], "posts")
        assert cache.get_from_runtime_cache("a", "posts").value == "v"

    def test_get_delayed_and_fetch(self, cache) -> None:
        cache.set("a", 1, "posts")
        assert cache.get_delayed(["a"], "posts") is True
        assert cache.fetch() == {"key": cache.build_key("a", "posts"), "value": 1, "cas": None}
        assert cache.fetch() is None
        assert cache.fetch_all() == []


class TestNamespacesAndGroups:
    """Test key derivation as seen through the facade."""

    def test_global_group_shared_across_namespaces(self, redis_client) -> None:
        first = CacheFacade(redis_client, namespace="blog1")
        second = CacheFacade(redis_client, namespace="blog2")

        first.set("1", "alice", "users")
        first.set("p", "post", "posts")

        assert second.get("1", "users").value == "alice"
        assert not second.get("p", "posts").found

    def test_switch_namespace(self, cache) -> None:
        cache.set("p", "post", "posts")
        cache.switch_namespace("site2")
        assert not cache.get("p", "posts").found
        assert cache.build_key("p", "posts") == "site2:posts:p"

    def test_add_global_groups(self, cache) -> None:
        cache.add_global_groups(["themes"])
        assert cache.build_key("t", "themes") == "themes:t"

    def test_build_keys(self, cache) -> None:
        assert cache.build_keys(["a", "b"], "posts") == ["site1:posts:a", "site1:posts:b"]


class TestPassthrough:
    """Test backend passthrough operations."""

    def test_server_list(self, cache) -> None:
        assert cache.get_server_list() == [{"host": "127.0.0.1", "port": 6379, "weight": 1}]
        assert cache.get_server_by_key("anything")["port"] == 6379

    def test_result_code_and_message(self, cache) -> None:
        cache.get("missing", "posts")
        assert cache.get_result_code() is ResultCode.NOT_FOUND
        assert cache.get_result_message() == "NOT FOUND"

    def test_options(self, cache) -> None:
        assert cache.set_option("prefix_key", "x:") is True
        assert cache.get_option("prefix_key") == "x:"

    def test_unknown_option(self, cache) -> None:
        assert cache.get_option("bogus") is None
        assert cache.set_option("bogus", 1) is False
        assert cache.status is CacheStatus.BACKEND_FAILURE
        assert cache.get_result_code() is ResultCode.FAILURE


class TestFromSettings:
    """Test construction from settings."""

    def test_explicit_config(self) -> None:
        config = Settings(
            key_salt="salt_",
            namespace="7",
            global_groups="themes",
            non_persistent_groups="scratch",
            servers="cache1:6380:2,cache2",
        )
        facade = CacheFacade.from_settings(config)

        assert facade.build_key("k", "posts") == "salt_7:posts:k"
        assert facade.build_key("k", "themes") == "salt_themes:k"
        assert facade.groups.is_local_only("scratch")
        assert facade.get_server_list() == [
            {"host": "cache1", "port": 6380, "weight": 2},
            {"host": "cache2", "port": 6379, "weight": 1},
        ]

    def test_explicit_client(self, mock_client) -> None:
        facade = CacheFacade.from_settings(Settings(), client=mock_client)
        assert facade.client is mock_client
        assert isinstance(facade.groups, GroupRegistry)
