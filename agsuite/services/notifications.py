"""
Notification service for AG Suite.

Registration events (created, auto-approved, approved, rejected) are handed to
a pluggable notifier. The default notifier logs the event and, in debug mode,
appends it to a local file instead of sending email; providers (SMTP, SES, ...)
can be plugged in by implementing `Notifier`.

Delivery is fire-and-forget: `dispatch` never raises, so a failing provider
cannot roll back the state change that triggered the event.
"""
import enum
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol

from agsuite.core.config import settings

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    REGISTRATION_CREATED = "registration_created"
    REGISTRATION_AUTO_APPROVED = "registration_auto_approved"
    REGISTRATION_APPROVED = "registration_approved"
    REGISTRATION_REJECTED = "registration_rejected"


class Notifier(Protocol):
    async def notify(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        ...


class LogNotifier:
    """
    Development notifier.

    Writes each event to the application log and, when DEBUG is on, to
    NOTIFICATION_LOG_PATH.
    """

    def __init__(self, log_path: Optional[str] = None, debug: Optional[bool] = None):
        path = log_path if log_path is not None else settings.NOTIFICATION_LOG_PATH
        self.log_path = Path(path) if path else None
        self.debug = settings.DEBUG if debug is None else debug

    def _write_log(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        timestamp = datetime.now().isoformat()
        entry = (
            "================================================================================\n"
            f"NOTIFICATION: {kind.value} at {timestamp}\n"
            "--------------------------------------------------------------------------------\n"
            f"{json.dumps(payload, default=str, indent=2, ensure_ascii=False)}\n"
        )
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(entry)

    async def notify(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        logger.info(
            "Notification %s: registration=%s to=%s",
            kind.value, payload.get("registration_id"), payload.get("email"),
        )
        if self.debug and self.log_path is not None:
            self._write_log(kind, payload)


async def dispatch(notifier: Optional[Notifier], kind: NotificationKind, payload: dict[str, Any]) -> bool:
    """
    Deliver a notification without propagating failures.

    Returns:
        True if the notifier accepted the event
    """
    if notifier is None:
        return False
    try:
        await notifier.notify(kind, payload)
        return True
    except Exception as e:
        logger.error(f"Failed to deliver {kind.value} notification: {e}")
        return False


def registration_payload(registration, modality=None) -> dict[str, Any]:
    """Common payload fields for registration events."""
    payload: dict[str, Any] = {
        "registration_id": registration.id,
        "assembly_id": registration.assembly_id,
        "participant_id": registration.participant_id,
        "participant_name": registration.participant_name,
        "email": registration.email,
        "status": registration.status.value,
    }
    if modality is not None:
        payload["modality_name"] = modality.name
        payload["modality_price"] = modality.price
    return payload
