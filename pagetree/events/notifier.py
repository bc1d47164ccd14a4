"""Notification boundary: hands committed changes to an external notifier.

Delivery is best-effort. A notifier that raises is logged and skipped; the
change it was told about has already committed and stays committed.
"""

import logging
from collections.abc import Iterable
from typing import Protocol

from pagetree.models import EventEnvelope

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, event: EventEnvelope) -> None: ...


class LoggingNotifier:
    """Default notifier: writes one log line per change."""

    async def notify(self, event: EventEnvelope) -> None:
        payload = event.payload
        logger.info(
            "%s in workspace %s by %s: %s %r",
            event.event_type,
            event.workspace_id,
            event.actor or "anonymous",
            payload.get("node_id") or payload.get("block_id") or payload.get("page_id"),
            payload.get("title", ""),
        )


async def dispatch(notifier: Notifier | None, events: Iterable[EventEnvelope]) -> None:
    """Deliver each event, logging (not raising) delivery failures."""
    if notifier is None:
        return
    for event in events:
        try:
            await notifier.notify(event)
        except Exception:
            logger.exception(
                "Notifier failed for %s (event %s); change remains committed",
                event.event_type,
                event.event_id,
            )
