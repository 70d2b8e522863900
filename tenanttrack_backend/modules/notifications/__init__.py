"""Notification outbox, dispatcher and email collaborator."""

from .dispatcher import DispatchReport, NotificationDispatcher
from .email_client import EmailClient
from .models import NotificationJob, NotificationKind, NotificationStatus
from .routers import router
from .services import enqueue_notification

__all__ = [
    "DispatchReport",
    "EmailClient",
    "NotificationDispatcher",
    "NotificationJob",
    "NotificationKind",
    "NotificationStatus",
    "enqueue_notification",
    "router",
]
