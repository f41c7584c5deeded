"""Cache layer for mirrorcache.

Provides a two-tier cache:
- RuntimeMirror: per-request in-process copy of everything read or written
- RedisCacheClient: distributed backend shared between processes
- CacheFacade: ties both together with group-aware key derivation
"""

from mirrorcache.cache.backend import (
    ClientOption,
    DistributedCacheClient,
    Fetched,
    ResultCode,
    ServerSpec,
)
from mirrorcache.cache.expiration import THIRTY_DAYS, ExpirationPolicy
from mirrorcache.cache.facade import CacheFacade
from mirrorcache.cache.groups import (
    DEFAULT_GLOBAL_GROUPS,
    DEFAULT_LOCAL_ONLY_GROUPS,
    GroupRegistry,
)
from mirrorcache.cache.keys import DEFAULT_GROUP, KeyBuilder
from mirrorcache.cache.mirror import RuntimeMirror
from mirrorcache.cache.redis import RedisCacheClient, close_client, get_client
from mirrorcache.cache.results import CacheStatus, GetResult, MultiGetResult
from mirrorcache.cache.values import Direction, ValueKind, combine

__all__ = [
    # Facade
    "CacheFacade",
    "CacheStatus",
    "GetResult",
    "MultiGetResult",
    # Keys and groups
    "DEFAULT_GROUP",
    "DEFAULT_GLOBAL_GROUPS",
    "DEFAULT_LOCAL_ONLY_GROUPS",
    "GroupRegistry",
    "KeyBuilder",
    # Mirror and values
    "RuntimeMirror",
    "Direction",
    "ValueKind",
    "combine",
    "ExpirationPolicy",
    "THIRTY_DAYS",
    # Backend
    "ClientOption",
    "DistributedCacheClient",
    "Fetched",
    "ResultCode",
    "ServerSpec",
    "RedisCacheClient",
    "get_client",
    "close_client",
]
