"""
Receipt hook definition.

The platform's webhook service watches receipts and, once ``delay`` has
passed, queues an unread-message job for every message whose recipients
still match ``recipient_status_filter``. This module only describes that
hook; registering it is the webhook service's job.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from smsbridge.config import Settings

EVENTS = ("message.sent", "message.read", "message.delivered", "message.deleted")


def humanize_seconds(seconds: int) -> str:
    """3600 -> '1 hour', 90 -> '90 seconds', 172800 -> '2 days'."""
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size and seconds % size == 0:
            count = seconds // size
            return f"{count} {unit}" + ("s" if count != 1 else "")
    return f"{seconds} second" + ("s" if seconds != 1 else "")


@dataclass(frozen=True)
class ReceiptHook:
    name: str
    path: str
    delay_seconds: int = 3600
    # 'sent' or 'delivered' (not 'read'). Use ('sent',) to only notify
    # when a message was never delivered.
    recipient_status_filter: Tuple[str, ...] = ("sent", "delivered")
    events: Tuple[str, ...] = EVENTS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "events": list(self.events),
            "delay": humanize_seconds(self.delay_seconds),
            "receipts": {"recipient_status_filter": list(self.recipient_status_filter)},
        }


def build_receipt_hook(settings: Settings) -> ReceiptHook:
    return ReceiptHook(
        name=settings.name,
        path=settings.unread_hook_path,
        delay_seconds=settings.unread_delay_seconds,
        recipient_status_filter=settings.recipient_status_filter,
    )
