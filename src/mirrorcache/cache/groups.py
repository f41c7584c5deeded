"""Group classification for cache keys.

Two kinds of groups get special treatment:
- global groups share one key prefix across every namespace
- local-only (non-persistent) groups never reach the backend and live in the
  runtime mirror only
"""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_GLOBAL_GROUPS: frozenset[str] = frozenset(
    {
        "users",
        "userlogins",
        "usermeta",
        "site-options",
        "site-lookup",
        "blog-lookup",
        "blog-details",
        "rss",
    }
)

DEFAULT_LOCAL_ONLY_GROUPS: frozenset[str] = frozenset({"comment", "counts"})


def _as_group_list(groups: str | Iterable[str]) -> list[str]:
    if isinstance(groups, str):
        return [groups]
    return [str(group) for group in groups]


class GroupRegistry:
    """Global and local-only group sets owned by one cache instance."""

    def __init__(
        self,
        global_groups: Iterable[str] | None = None,
        local_only_groups: Iterable[str] | None = None,
    ) -> None:
        self._global: set[str] = set(DEFAULT_GLOBAL_GROUPS)
        self._local_only: set[str] = set(DEFAULT_LOCAL_ONLY_GROUPS)
        if global_groups:
            self.add_global_groups(global_groups)
        if local_only_groups:
            self.add_non_persistent_groups(local_only_groups)

    @property
    def global_groups(self) -> frozenset[str]:
        return frozenset(self._global)

    @property
    def local_only_groups(self) -> frozenset[str]:
        return frozenset(self._local_only)

    def add_global_groups(self, groups: str | Iterable[str]) -> None:
        """Register groups shared across namespaces. Re-registering is a no-op."""
        self._global.update(_as_group_list(groups))

    def add_non_persistent_groups(self, groups: str | Iterable[str]) -> None:
        """Register groups that are kept out of the backend."""
        self._local_only.update(_as_group_list(groups))

    add_local_only_groups = add_non_persistent_groups

    def is_global(self, group: str) -> bool:
        return group in self._global

    def is_local_only(self, group: str) -> bool:
        return group in self._local_only

    def contains_local_only(self, groups: object) -> bool:
        """True if a scalar group, or any member of a collection, is local-only."""
        if isinstance(groups, (str, int, float, bool)):
            return str(groups) in self._local_only
        if not isinstance(groups, Iterable):
            return False
        return any(str(group) in self._local_only for group in groups)
