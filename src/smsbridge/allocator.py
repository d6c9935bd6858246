"""
Number pool allocation.

Each (user, conversation) pair is bound to one pool number so that a user
always receives texts for a given conversation from the same number, and
replies to that number route back to the same conversation. Bindings are
refreshed every time they are used and reclaimed lazily: expired bindings
for other conversations are dropped the next time the user is notified.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from smsbridge.models import ChannelBinding, UserChannelMap
from smsbridge.store import ChannelStore
from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.allocator")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Acquisition:
    number: Optional[str]
    is_new_binding: bool = False


def reclaim_expired(channel_map: UserChannelMap, keep: str, now: int) -> bool:
    """
    Drop expired bindings, except the one for conversation ``keep``.

    Returns True if anything was removed.
    """
    expired = [
        cid
        for cid, binding in channel_map.bindings.items()
        if cid != keep and binding.is_expired(now)
    ]
    for cid in expired:
        logger.info(
            "allocator.binding_expired",
            extra={"user_id": channel_map.user_id, "conversation_id": cid},
        )
        del channel_map.bindings[cid]
    return bool(expired)


def find_available_number(channel_map: UserChannelMap, pool: Sequence[str]) -> Optional[str]:
    """First pool number not bound to any of the user's conversations."""
    in_use = set(channel_map.numbers_in_use())
    for number in pool:
        if number not in in_use:
            return number
    return None


class NumberPoolAllocator:
    def __init__(
        self,
        store: ChannelStore,
        pool: Sequence[str],
        ttl_seconds: int,
        clock: Callable[[], int] = now_ms,
    ):
        self._store = store
        self._pool = tuple(pool)
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock

    async def acquire(self, user_id: str, conversation_id: str) -> Acquisition:
        """
        Find, reuse or assign the number used to text ``user_id`` about
        ``conversation_id``.

        An existing binding keeps its number and gets a fresh expiry. A new
        conversation takes the first free pool number. If every number is
        already bound for this user, ``Acquisition.number`` is None and the
        caller should skip the notification.
        """
        channel_map = await self._store.load_channel_map(user_id)
        if channel_map is None:
            channel_map = UserChannelMap(user_id=user_id)

        now = self._clock()
        expires_at = now + self._ttl_ms

        changed = reclaim_expired(channel_map, conversation_id, now)

        binding = channel_map.bindings.get(conversation_id)
        if binding is not None:
            binding.expires_at = expires_at
            result = Acquisition(binding.number, is_new_binding=False)
            changed = True
        else:
            number = find_available_number(channel_map, self._pool)
            if number is not None:
                channel_map.bindings[conversation_id] = ChannelBinding(number=number, expires_at=expires_at)
                changed = True
                logger.info(
                    "allocator.bound",
                    extra={"user_id": user_id, "conversation_id": conversation_id, "number": number},
                )
            result = Acquisition(number, is_new_binding=number is not None)

        if changed:
            await self._store.save_channel_map(channel_map)

        return result

    async def refresh(self, channel_map: UserChannelMap, conversation_id: str) -> None:
        """Restart the TTL for an existing binding and persist it."""
        channel_map.bindings[conversation_id].expires_at = self._clock() + self._ttl_ms
        await self._store.save_channel_map(channel_map)
