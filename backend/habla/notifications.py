"""Notification fan-out for progress events (XP, level-ups, achievements, goals)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Literal

logger = logging.getLogger("habla.notifications")

NotificationKind = Literal["xp_gained", "level_up", "achievement_unlocked", "goal_complete"]

XP_GAINED: NotificationKind = "xp_gained"
LEVEL_UP: NotificationKind = "level_up"
ACHIEVEMENT_UNLOCKED: NotificationKind = "achievement_unlocked"
GOAL_COMPLETE: NotificationKind = "goal_complete"


@dataclass(frozen=True)
class NotificationEvent:
    kind: NotificationKind
    payload: Dict[str, Any]


class NotificationHub:
    """Delivers progress notifications to in-process listeners.

    ``permission`` stands in for the platform notification permission. When it
    reports ``False`` events still reach listeners (the presentation layer may
    render them in-app) but are logged as undelivered to the system tray.
    """

    def __init__(self, permission: Callable[[], bool] | None = None) -> None:
        self._listeners: List[Callable[[NotificationEvent], None]] = []
        self._lock = RLock()
        self._permission = permission or (lambda: False)

    def register_listener(self, listener: Callable[[NotificationEvent], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def clear_listeners(self) -> None:
        with self._lock:
            self._listeners.clear()

    def set_permission(self, permission: Callable[[], bool]) -> None:
        self._permission = permission

    def emit(self, kind: NotificationKind, **fields: Any) -> NotificationEvent:
        event = NotificationEvent(kind=kind, payload=_sanitize(fields))

        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Notification listener failed for %s", kind)

        try:
            delivered = bool(self._permission())
        except Exception:  # noqa: BLE001
            logger.exception("Notification permission check failed for %s", kind)
            delivered = False
        structured = {"kind": kind, "delivered": delivered, **event.payload}
        logger.info("NOTIFY %s", json.dumps(structured, default=_json_default))
        return event


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            sanitized[key] = value.isoformat()
        else:
            sanitized[key] = value
    return sanitized


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


__all__ = [
    "ACHIEVEMENT_UNLOCKED",
    "GOAL_COMPLETE",
    "LEVEL_UP",
    "NotificationEvent",
    "NotificationHub",
    "NotificationKind",
    "XP_GAINED",
]
