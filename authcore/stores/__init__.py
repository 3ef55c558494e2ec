"""Reference store implementations."""

from authcore.stores.memory_store import (
    LoggingAuditSink,
    MemoryAuditSink,
    MemoryIdentityStore,
    MemoryOtpStore,
    MemoryRateLimiter,
    MemorySecondFactorStore,
    MemorySessionStore,
    MemoryTokenStore,
)

__all__ = [
    "LoggingAuditSink",
    "MemoryAuditSink",
    "MemoryIdentityStore",
    "MemoryOtpStore",
    "MemoryRateLimiter",
    "MemorySecondFactorStore",
    "MemorySessionStore",
    "MemoryTokenStore",
]
