"""Audit sink interface."""

from __future__ import annotations

from typing import Protocol

from authcore.models import AuditEvent


class AuditSink(Protocol):
    async def write(self, event: AuditEvent) -> None:
        ...
