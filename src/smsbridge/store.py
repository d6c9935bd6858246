"""
Correlation store.

Two layers:

- KeyValueStore: string get/set against a single DynamoDB table
  (partition key ``pk``, payload attribute ``value``). No schema awareness.
- ChannelStore: per-user channel maps and the phone -> user reverse index,
  serialized through KeyValueStore.

Writes are plain read-modify-write with no conditional expression: two
jobs racing on the same user key resolve last-write-wins.
"""

import asyncio
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from smsbridge.errors import StorageError
from smsbridge.models import UserChannelMap
from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.store")


class KeyValueStore:
    def __init__(self, dynamodb_client, table_name: str):
        self._ddb = dynamodb_client
        self._table = table_name

    def _get(self, key: str) -> Optional[str]:
        try:
            resp = self._ddb.get_item(
                TableName=self._table,
                Key={"pk": {"S": key}},
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("store.get_error", extra={"key": key, "error": str(e)})
            raise StorageError(f"Unable to read {key}: {e}") from e

        item = resp.get("Item")
        if not item:
            return None
        return item.get("value", {}).get("S")

    def _set(self, key: str, value: str) -> None:
        try:
            self._ddb.put_item(
                TableName=self._table,
                Item={"pk": {"S": key}, "value": {"S": value}},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("store.set_error", extra={"key": key, "error": str(e)})
            raise StorageError(f"Unable to write {key}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)


class ChannelStore:
    """Typed access to channel maps and the reverse index."""

    def __init__(self, kv: KeyValueStore, user_prefix: str = "smsbridge-user-",
                 phone_prefix: str = "smsbridge-phone-"):
        self._kv = kv
        self._user_prefix = user_prefix
        self._phone_prefix = phone_prefix

    def user_key(self, user_id: str) -> str:
        return self._user_prefix + user_id

    def phone_key(self, phone: str) -> str:
        return self._phone_prefix + phone

    async def load_channel_map(self, user_id: str) -> Optional[UserChannelMap]:
        raw = await self._kv.get(self.user_key(user_id))
        if raw is None:
            return None
        return UserChannelMap.from_json(user_id, raw)

    async def save_channel_map(self, channel_map: UserChannelMap) -> None:
        await self._kv.set(self.user_key(channel_map.user_id), channel_map.to_json())

    async def get_user_for_phone(self, phone: str) -> Optional[str]:
        return await self._kv.get(self.phone_key(phone))

    async def remember_phone(self, phone: str, user_id: str) -> None:
        # Overwritten on every notification; the most recent user wins.
        await self._kv.set(self.phone_key(phone), user_id)
