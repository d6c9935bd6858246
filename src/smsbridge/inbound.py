from typing import Optional

from smsbridge.allocator import NumberPoolAllocator
from smsbridge.errors import RoutingError
from smsbridge.jobs import QueuedJob
from smsbridge.models import InboundSms
from smsbridge.store import ChannelStore
from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.inbound")


class InboundRelayWorker:
    """
    Posts an SMS reply into the conversation it answers.

    The sender's phone identifies the user (reverse index, written when we
    last texted them); the pool number it was sent to identifies which of
    that user's conversations it belongs to.
    """

    def __init__(self, store: ChannelStore, allocator: NumberPoolAllocator, platform):
        self._store = store
        self._allocator = allocator
        self._platform = platform

    async def handle(self, queued: QueuedJob) -> Optional[str]:
        return await self.process(InboundSms.from_dict(queued.data))

    async def process(self, sms: InboundSms) -> Optional[str]:
        """
        Route ``sms`` and return the conversation id it was posted to, or
        None when no conversation currently claims the number.

        Raises RoutingError when the sender is unknown, StorageError when the
        user's channel map cannot be read, DispatchError when posting fails.
        """
        # 1) Who is texting us? Written every time we text a user.
        user_id = await self._store.get_user_for_phone(sms.from_)
        if not user_id:
            raise RoutingError(f"No user is associated with phone {sms.from_}")

        # 2) Which conversations is this user bound to?
        channel_map = await self._store.load_channel_map(user_id)
        if channel_map is None:
            raise RoutingError(f"No channel map for user {user_id}")

        # 3) Which conversation uses the number they texted?
        conversation_id = channel_map.conversation_for_number(sms.to)
        if conversation_id is None:
            logger.warning(
                "inbound.no_conversation",
                extra={"user_id": user_id, "to": sms.to, "conversations": list(channel_map.bindings)},
            )
            return None

        # 4) Keep the binding alive while the user is replying on it
        await self._allocator.refresh(channel_map, conversation_id)

        # 5) Post the reply as the user
        await self._platform.send_text_from_user(conversation_id, user_id, sms.text)
        logger.info(
            "inbound.reply_posted",
            extra={"conversation_id": conversation_id, "user_id": user_id},
        )
        return conversation_id
