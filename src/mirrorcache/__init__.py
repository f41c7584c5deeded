"""mirrorcache: a request-scoped mirror in front of a distributed cache."""

__version__ = "0.1.0"
