"""Persistent resolver cache with recursive fallback."""

from .cache import NULL_ADDRESS, ResolverCache, preferred_address
from .store import CacheRow, ResolverStore
from .trace import DigTraceResolver, Resolver, TraceResult, parse_trace_output

__all__ = [
    "NULL_ADDRESS",
    "CacheRow",
    "DigTraceResolver",
    "Resolver",
    "ResolverCache",
    "ResolverStore",
    "TraceResult",
    "parse_trace_output",
    "preferred_address",
]
