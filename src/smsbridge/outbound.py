import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

from smsbridge.allocator import NumberPoolAllocator
from smsbridge.config import DEFAULT_TEMPLATE
from smsbridge.jobs import QueuedJob
from smsbridge.models import Identity, Message, UnreadMessage
from smsbridge.store import ChannelStore
from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.outbound")

# Per-recipient outcomes
SENT = "sent"
NO_PHONE = "no_phone"
EMPTY_TEXT = "empty_text"
POOL_EXHAUSTED = "pool_exhausted"

IdentityResolver = Callable[[str], Awaitable[Identity]]
Introducer = Callable[[Message], Awaitable[str]]


def extract_text(message: Message) -> str:
    """Concatenate every text/plain part; other mime types are ignored."""
    return message.text


def render(template: str, sender: Identity, recipient: Identity, message: Message, text: str) -> str:
    """
    Build the SMS body from a ``str.format`` template.

    Available fields: ``sender``, ``recipient`` (Identity), ``message``
    (Message) and ``text``, e.g. ``"{sender.display_name}: {text}"``.
    """
    return template.format(sender=sender, recipient=recipient, message=message, text=text)


class OutboundRelayWorker:
    """
    Texts every recipient that has not read a message yet.

    Each recipient is texted from the pool number bound to their
    (user, conversation) pair, so that a reply can be routed back.
    """

    def __init__(
        self,
        store: ChannelStore,
        allocator: NumberPoolAllocator,
        resolve_identity: IdentityResolver,
        sms_sender,
        template: str = DEFAULT_TEMPLATE,
        introducer: Optional[Introducer] = None,
    ):
        self._store = store
        self._allocator = allocator
        self._resolve_identity = resolve_identity
        self._sms = sms_sender
        self._template = template
        self._introducer = introducer

    async def _identity(self, user_id: str, job: UnreadMessage) -> Identity:
        if user_id in job.identities:
            return Identity.from_dict(user_id, job.identities[user_id])
        return await self._resolve_identity(user_id)

    async def handle(self, queued: QueuedJob) -> Dict[str, str]:
        return await self.process(UnreadMessage.from_dict(queued.data))

    async def process(self, job: UnreadMessage) -> Dict[str, str]:
        """
        Notify all recipients of ``job``.

        Returns recipient id -> outcome. Every recipient is attempted; if
        any of them failed, the first failure is raised afterwards so the
        job as a whole fails.
        """
        message = job.message
        logger.info(
            "outbound.job_start",
            extra={"message_id": message.id, "recipients": job.recipients},
        )

        sender = await self._identity(message.sender_id, job)

        results = await asyncio.gather(
            *(self._notify(job, sender, recipient_id) for recipient_id in job.recipients),
            return_exceptions=True,
        )

        outcomes: Dict[str, str] = {}
        failures: List[BaseException] = []
        for recipient_id, result in zip(job.recipients, results):
            if isinstance(result, BaseException):
                logger.error(
                    "outbound.recipient_failed",
                    extra={"message_id": message.id, "recipient": recipient_id, "error": str(result)},
                )
                failures.append(result)
            else:
                outcomes[recipient_id] = result

        if failures:
            raise failures[0]
        return outcomes

    async def _notify(self, job: UnreadMessage, sender: Identity, recipient_id: str) -> str:
        message = job.message
        recipient = await self._identity(recipient_id, job)

        phone = recipient.phone_number
        if not phone:
            logger.info("outbound.no_phone", extra={"recipient": recipient_id})
            return NO_PHONE

        # Cache this so replies from the phone can be routed back
        await self._store.remember_phone(phone, recipient_id)

        text = extract_text(message)
        if not text.strip():
            logger.info(
                "outbound.empty_text",
                extra={"message_id": message.id, "recipient": recipient_id},
            )
            return EMPTY_TEXT

        acquisition = await self._allocator.acquire(recipient_id, message.conversation_id)
        if acquisition.number is None:
            logger.warning(
                "outbound.pool_exhausted: skipping unread message notification",
                extra={"recipient": recipient_id, "conversation_id": message.conversation_id},
            )
            return POOL_EXHAUSTED

        body = render(self._template, sender, recipient, message, text)
        intro = acquisition.is_new_binding and self._introducer is not None
        if intro:
            intro_text = await self._introducer(message)
            if intro_text:
                body = f"{intro_text}\n\n{body}"

        logger.info(
            "outbound.sending",
            extra={"from": acquisition.number, "to": phone, "message_id": message.id, "intro": intro},
        )
        await asyncio.to_thread(self._sms.send, acquisition.number, phone, body)
        return SENT
