"""Cache key derivation for mirrorcache.

Key format: {salt}{prefix}{group}:{key}

Where:
- salt: process-wide salt, used for bulk invalidation and for sharing one
  backend between several installations
- prefix: the global prefix for global groups, "{namespace}:" otherwise
- group: logical group name ("default" when empty)
- key: the caller's logical key

All whitespace is stripped from the final key.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from mirrorcache.cache.groups import GroupRegistry

DEFAULT_GROUP = "default"

_WHITESPACE = re.compile(r"\s+")


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return [value]
    return list(value)


class KeyBuilder:
    """Derives storage keys from (key, group) pairs."""

    def __init__(
        self,
        registry: GroupRegistry,
        salt: str = "",
        global_prefix: str = "",
        namespace: str = "",
    ) -> None:
        self.registry = registry
        self.salt = salt
        self.global_prefix = global_prefix
        self.namespace_prefix = f"{namespace}:"

    def switch_namespace(self, namespace: str | int) -> None:
        """Use a different namespace prefix for subsequent non-global keys.

        Keys derived earlier, and anything already mirrored under them, are
        left alone.
        """
        self.namespace_prefix = f"{namespace}:"

    def derive(self, key: Any, group: Any = DEFAULT_GROUP) -> str:
        """Build the storage key for a logical key in a group."""
        group = str(group) if group else DEFAULT_GROUP
        if self.registry.is_global(group):
            prefix = self.global_prefix
        else:
            prefix = self.namespace_prefix
        return _WHITESPACE.sub("", f"{self.salt}{prefix}{group}:{key}")

    def pair(self, keys: Any, groups: Any = DEFAULT_GROUP) -> list[tuple[Any, Any]]:
        """Match a key list against a group list.

        Equal lengths are zipped. With more keys than groups, a single group
        applies to every key; otherwise groups are used while they last and the
        remaining keys fall back to the default group. More groups than keys
        yields no pairs at all.
        """
        key_list = _as_list(keys)
        group_list = _as_list(groups)

        if len(key_list) == len(group_list):
            return list(zip(key_list, group_list))

        if len(key_list) > len(group_list):
            pairs = []
            for i, key in enumerate(key_list):
                if i < len(group_list):
                    pairs.append((key, group_list[i]))
                elif len(group_list) == 1:
                    pairs.append((key, group_list[0]))
                else:
                    pairs.append((key, DEFAULT_GROUP))
            return pairs

        return []

    def derive_batch(self, keys: Any, groups: Any = DEFAULT_GROUP) -> list[str]:
        """Derive storage keys for many keys at once, in input order."""
        return [self.derive(key, group) for key, group in self.pair(keys, groups)]
