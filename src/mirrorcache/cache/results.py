"""Result records returned by the cache facade."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mirrorcache.cache.backend import ResultCode


class CacheStatus(str, Enum):
    """Outcome of the last facade operation."""

    SUCCESS = "success"
    NOT_STORED = "not_stored"  # add on existing key, replace on missing key
    NOT_FOUND = "not_found"
    REJECTED = "rejected"  # value of the wrong type for the operation
    BACKEND_FAILURE = "backend_failure"
    PARTIAL_BATCH = "partial_batch"  # some keys of a batch missed

    @classmethod
    def from_result_code(cls, code: ResultCode) -> CacheStatus:
        return _FROM_RESULT_CODE[code]


_FROM_RESULT_CODE: dict[ResultCode, CacheStatus] = {
    ResultCode.SUCCESS: CacheStatus.SUCCESS,
    ResultCode.NOT_STORED: CacheStatus.NOT_STORED,
    ResultCode.NOT_FOUND: CacheStatus.NOT_FOUND,
    ResultCode.DATA_EXISTS: CacheStatus.NOT_STORED,
    ResultCode.FAILURE: CacheStatus.BACKEND_FAILURE,
}


@dataclass(frozen=True)
class GetResult:
    """Single-key read.

    Attributes:
        value: Cached value, None on a miss
        found: Whether the key was found; check this rather than ``value``
        cas_token: Token for a later ``cas`` call, when one was requested
    """

    value: Any
    found: bool
    cas_token: str | None = None

    def __bool__(self) -> bool:
        return self.found


@dataclass(frozen=True)
class MultiGetResult:
    """Multi-key read, keyed by derived key."""

    values: dict[str, Any] = field(default_factory=dict)
    cas_tokens: dict[str, str] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)

    @property
    def status(self) -> CacheStatus:
        if not self.missing:
            return CacheStatus.SUCCESS
        if self.values:
            return CacheStatus.PARTIAL_BATCH
        return CacheStatus.NOT_FOUND
