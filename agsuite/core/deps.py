"""
FastAPI dependencies shared by the API routers.

Authentication happens upstream: the gateway places the caller's opaque user
id in the X-User-Id header. Notification and receipt-storage ports are
provided here so tests can override them.
"""
from typing import Optional
from fastapi import Depends, Header, HTTPException, status

from agsuite.core.config import Settings, get_settings
from agsuite.services.notifications import LogNotifier, Notifier
from agsuite.services.storage import LocalReceiptStorage, ReceiptStorage


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id")
) -> str:
    """Get the caller's user id (required)."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity"
        )
    return x_user_id.strip()


def get_notifier(settings: Settings = Depends(get_settings)) -> Notifier:
    return LogNotifier(log_path=settings.NOTIFICATION_LOG_PATH, debug=settings.DEBUG)


def get_receipt_storage(settings: Settings = Depends(get_settings)) -> ReceiptStorage:
    return LocalReceiptStorage(upload_dir=settings.UPLOAD_DIR)
