"""
Messaging platform boundary (Layer Platform API).

Three calls are needed by the relay:

- post an SMS reply into a conversation as the replying user
- fetch a conversation (for the introduction text of a new binding)
- fetch a user's identity (display name and phone number)

Requests go through httpx; failures are mapped to the relay's error
types so a job handler only ever sees RelayError subclasses.
"""

from typing import Any, Dict, Optional

import httpx

from smsbridge.errors import DispatchError, IdentityResolutionError, IntroductionError
from smsbridge.models import Identity, Message
from smsbridge.utils.logger import get_logger
from smsbridge.utils.secrets import get_secret, require_fields

logger = get_logger("smsbridge.platform")

API_URL = "https://api.layer.com"
MEDIA_TYPE = "application/vnd.layer+json; version=1.0"
UNNAMED_CONVERSATION = "Unnamed Conversation"


def _uuid(layer_id: str) -> str:
    """'layer:///conversations/abc' -> 'abc'; bare ids pass through."""
    return layer_id.rstrip("/").rsplit("/", 1)[-1]


class LayerPlatformClient:
    def __init__(
        self,
        app_id: str,
        token: str,
        base_url: str = API_URL,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base = f"{base_url.rstrip('/')}/apps/{_uuid(app_id)}"
        self._headers = {
            "Accept": MEDIA_TYPE,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_secret(cls, secret_name: Optional[str], region: Optional[str] = None) -> "LayerPlatformClient":
        secrets = get_secret(secret_name, region)
        require_fields(secret_name or "platform", secrets, ("app_id", "token"))
        return cls(secrets["app_id"], secrets["token"], base_url=secrets.get("base_url") or API_URL)

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            timeout=self._timeout, headers=self._headers, transport=self._transport
        ) as client:
            resp = await client.request(method, f"{self._base}{path}", json=json)
            resp.raise_for_status()
            return resp.json() if resp.content else {}

    async def send_text_from_user(self, conversation_id: str, user_id: str, text: str) -> Dict[str, Any]:
        body = {
            "sender": {"user_id": user_id},
            "parts": [{"body": text, "mime_type": "text/plain"}],
            "notification": {"text": text},
        }
        try:
            result = await self._request("POST", f"/conversations/{_uuid(conversation_id)}/messages", body)
        except httpx.HTTPError as e:
            logger.error(
                "platform.send_error",
                extra={"conversation_id": conversation_id, "user_id": user_id, "error": str(e)},
            )
            raise DispatchError(f"Failed to post message to {conversation_id}: {e}") from e

        logger.info(
            "platform.message_posted",
            extra={"conversation_id": conversation_id, "user_id": user_id},
        )
        return result

    async def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/conversations/{_uuid(conversation_id)}")

    async def get_identity(self, user_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/users/{user_id}/identity")


class PlatformIdentityResolver:
    """Resolves user ids through the platform's identity endpoint."""

    def __init__(self, client: LayerPlatformClient):
        self._client = client

    async def __call__(self, user_id: str) -> Identity:
        try:
            data = await self._client.get_identity(user_id)
        except httpx.HTTPError as e:
            raise IdentityResolutionError(f"Unable to resolve identity for {user_id}: {e}") from e
        return Identity.from_dict(user_id, data)


class ConversationIntroducer:
    """Introduction text naming the conversation a new number belongs to."""

    def __init__(self, client: LayerPlatformClient):
        self._client = client

    async def __call__(self, message: Message) -> str:
        try:
            conversation = await self._client.get_conversation(message.conversation_id)
        except httpx.HTTPError as e:
            raise IntroductionError(
                f"Unable to fetch conversation {message.conversation_id}: {e}"
            ) from e

        metadata = conversation.get("metadata") or {}
        name = metadata.get("conversationName") or UNNAMED_CONVERSATION
        return f'You have new messages in Conversation "{name}"'
