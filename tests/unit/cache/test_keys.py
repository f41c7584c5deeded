"""Tests for cache key derivation."""

from mirrorcache.cache.groups import GroupRegistry
from mirrorcache.cache.keys import DEFAULT_GROUP, KeyBuilder


def _builder(**kwargs) -> KeyBuilder:
    kwargs.setdefault("namespace", "site1")
    return KeyBuilder(GroupRegistry(), **kwargs)


class TestDerive:
    """Test single key derivation."""

    def test_namespaced_key(self) -> None:
        """Ordinary groups are prefixed with the namespace."""
        assert _builder().derive("greeting", "posts") == "site1:posts:greeting"

    def test_global_group_uses_global_prefix(self) -> None:
        """Global groups ignore the namespace."""
        builder = _builder(global_prefix="net_")
        assert builder.derive(42, "users") == "net_users:42"

    def test_salt_comes_first(self) -> None:
        """The salt precedes every other part."""
        builder = _builder(salt="abc", global_prefix="net_")
        assert builder.derive("k", "posts") == "abcsite1:posts:k"
        assert builder.derive("k", "users") == "abcnet_users:k"

    def test_empty_group_falls_back_to_default(self) -> None:
        """Empty and None groups map to the default group."""
        builder = _builder()
        assert builder.derive("k", "") == f"site1:{DEFAULT_GROUP}:k"
        assert builder.derive("k", None) == f"site1:{DEFAULT_GROUP}:k"

    def test_whitespace_is_stripped(self) -> None:
        """All whitespace is removed from the derived key."""
        builder = _builder(salt=" s ")
        assert builder.derive("my key\twith\nspaces", "my group") == "ssite1:mygroup:mykeywithspaces"

    def test_switch_namespace(self) -> None:
        """Switching namespace changes the prefix of later keys only."""
        builder = _builder()
        before = builder.derive("k", "posts")
        builder.switch_namespace(7)

        assert before == "site1:posts:k"
        assert builder.derive("k", "posts") == "7:posts:k"
        assert builder.derive("k", "users") == "users:k"


class TestPair:
    """Test matching key lists against group lists."""

    def test_equal_lengths_zip(self) -> None:
        """Equal-length lists pair up element by element."""
        pairs = _builder().pair(["a", "b"], ["g1", "g2"])
        assert pairs == [("a", "g1"), ("b", "g2")]

    def test_single_group_broadcasts(self) -> None:
        """A single group applies to every key."""
        pairs = _builder().pair(["a", "b", "c"], "posts")
        assert pairs == [("a", "posts"), ("b", "posts"), ("c", "posts")]

    def test_short_group_list_falls_back_to_default(self) -> None:
        """Keys beyond the group list use the default group."""
        pairs = _builder().pair(["a", "b", "c"], ["g1", "g2"])
        assert pairs == [("a", "g1"), ("b", "g2"), ("c", DEFAULT_GROUP)]

    def test_more_groups_than_keys_yields_nothing(self) -> None:
        """Surplus groups produce an empty pairing."""
        assert _builder().pair(["a"], ["g1", "g2"]) == []

    def test_scalar_key(self) -> None:
        """A scalar key is treated as a one-element list."""
        assert _builder().pair("a", "posts") == [("a", "posts")]

    def test_derive_batch(self) -> None:
        """Batch derivation keeps input order."""
        keys = _builder().derive_batch(["b", "a"], ["posts", "users"])
        assert keys == ["site1:posts:b", "users:a"]
