"""Audit emission.

Services record events on an :class:`AuditTrail` while they run; the
facade hands the finished trail to :class:`AuditEmitter`, which writes it
in the background. A failing sink is logged and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from authcore.interfaces.audit_sink import AuditSink
from authcore.models import AuditEvent, ClientMeta, Identity
from authcore.security import Clock, utc_now

logger = logging.getLogger(__name__)


class AuditTrail:
    def __init__(self, client: ClientMeta | None = None, clock: Clock = utc_now) -> None:
        self.client = client or ClientMeta()
        self.events: list[AuditEvent] = []
        self._clock = clock

    def record(
        self,
        action: str,
        *,
        actor: Identity | str | None = None,
        target: Identity | str | None = None,
        **metadata: Any,
    ) -> AuditEvent:
        actor_id = actor.id if isinstance(actor, Identity) else actor
        target_id = target.id if isinstance(target, Identity) else target
        event = AuditEvent(
            action=action,
            occurred_at=self._clock(),
            actor_id=actor_id,
            actor_type="user" if actor_id else "system",
            target_id=target_id,
            metadata=metadata,
            client=self.client,
        )
        self.events.append(event)
        return event

    def login_failed(self, reason: str, *, identity: Identity | None = None, **metadata: Any) -> AuditEvent:
        return self.record("auth.login.failed", actor=identity, target=identity, reason=reason, **metadata)

    def actions(self) -> list[str]:
        return [event.action for event in self.events]


class AuditEmitter:
    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink
        self._pending: set[asyncio.Task] = set()

    def flush(self, trail: AuditTrail) -> None:
        """Schedule the trail's events for writing without waiting on the sink."""
        if not trail.events:
            return
        events = list(trail.events)
        trail.events.clear()
        task = asyncio.get_running_loop().create_task(self._write_all(events))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_all(self, events: list[AuditEvent]) -> None:
        for event in events:
            try:
                await self._sink.write(event)
            except Exception:
                logger.exception("Failed to write audit event %s", event.action)

    async def drain(self) -> None:
        """Wait until every scheduled write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
