"""
Change events emitted by gated mutations.

Every successful lifecycle change or approval decision yields a
``ChangeEvent``; the blueprint publishes it after commit through the app's
``EventDispatcher``. Subscribers (the in-app notification service, e-mail
senders) run in-process. A failing subscriber is logged and skipped: the
mutation is already committed and is not rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "plm.event_dispatcher"


@dataclass(frozen=True)
class ChangeEvent:
    """One observable transition on a model.

    ``subject`` is ``"lifecycle"`` or the approval track name.
    """
    model_id: int
    subject: str
    old_value: str | None
    new_value: str
    actor_id: int
    comment: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_approval(self) -> bool:
        return self.subject != "lifecycle"

    def to_dict(self) -> dict:
        d = {
            "model_id": self.model_id,
            "subject": self.subject,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "actor_id": self.actor_id,
            "occurred_at": self.occurred_at.isoformat(),
        }
        if self.comment is not None:
            d["comment"] = self.comment
        return d


class EventDispatcher:
    """Minimal synchronous publish/subscribe."""

    def __init__(self):
        self._subscribers: list[Callable[[ChangeEvent], None]] = []

    def subscribe(self, handler: Callable[[ChangeEvent], None]) -> None:
        self._subscribers.append(handler)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every subscriber; returns how many succeeded."""
        delivered = 0
        for handler in self._subscribers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Event subscriber %s failed", getattr(handler, "__name__", handler),
                    extra={"model_id": event.model_id, "event_type": f"{event.subject}.change"},
                )
        return delivered


def init_app(app) -> EventDispatcher:
    dispatcher = EventDispatcher()
    app.extensions[EXTENSION_KEY] = dispatcher
    return dispatcher


def current_dispatcher() -> EventDispatcher:
    return current_app.extensions[EXTENSION_KEY]
