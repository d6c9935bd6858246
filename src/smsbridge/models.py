import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from smsbridge.errors import StorageError

CHANNEL_MAP_VERSION = 1


@dataclass
class ChannelBinding:
    """A pool number bound to one of a user's conversations."""

    number: str
    expires_at: int  # epoch milliseconds

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at < now_ms


@dataclass
class UserChannelMap:
    """
    Per-user map of conversation id -> ChannelBinding.

    Serialized as::

        {"version": 1,
         "conversations": {"<conversation id>": {"number": "+1555...", "expires_at": 1700000000000}}}

    The unversioned layout ``{"<conversation id>": {"phone": ..., "expires": ...}}``
    written by earlier deployments is still accepted on load.
    """

    user_id: str
    bindings: Dict[str, ChannelBinding] = field(default_factory=dict)

    def conversation_for_number(self, number: str) -> Optional[str]:
        for conversation_id, binding in self.bindings.items():
            if binding.number == number:
                return conversation_id
        return None

    def numbers_in_use(self) -> List[str]:
        return [binding.number for binding in self.bindings.values()]

    def to_json(self) -> str:
        return json.dumps(
            {
                "version": CHANNEL_MAP_VERSION,
                "conversations": {
                    conversation_id: {"number": b.number, "expires_at": b.expires_at}
                    for conversation_id, b in self.bindings.items()
                },
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, user_id: str, raw: str) -> "UserChannelMap":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Unable to parse channel map for {user_id}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Channel map for {user_id} is not a JSON object")

        try:
            if "version" in data and "conversations" in data:
                if data["version"] != CHANNEL_MAP_VERSION:
                    raise StorageError(
                        f"Unsupported channel map version {data['version']!r} for {user_id}"
                    )
                bindings = {
                    str(cid): ChannelBinding(number=str(b["number"]), expires_at=int(b["expires_at"]))
                    for cid, b in data["conversations"].items()
                }
            else:
                bindings = {
                    str(cid): ChannelBinding(number=str(b["phone"]), expires_at=int(b["expires"]))
                    for cid, b in data.items()
                }
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StorageError(f"Malformed channel map for {user_id}: {e}") from e

        return cls(user_id=user_id, bindings=bindings)


@dataclass
class Identity:
    """Display identity of a platform user, as returned by the identity resolver."""

    user_id: str
    display_name: str = ""
    phone_number: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.display_name

    @classmethod
    def from_dict(cls, user_id: str, data: Dict[str, Any]) -> "Identity":
        known = ("user_id", "display_name", "name", "phone_number", "phone")
        return cls(
            user_id=user_id,
            display_name=data.get("display_name") or data.get("name") or user_id,
            phone_number=data.get("phone_number") or data.get("phone") or None,
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class MessagePart:
    mime_type: str
    body: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessagePart":
        return cls(
            mime_type=data.get("mime_type") or data.get("mime") or "",
            body=data.get("body") or "",
        )


@dataclass
class Message:
    """The subset of a platform message the relay needs."""

    id: str
    conversation_id: str
    sender_id: str
    parts: List[MessagePart] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """All text/plain parts, newline-joined."""
        return "\n".join(p.body for p in self.parts if p.mime_type == "text/plain")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=data.get("id", ""),
            conversation_id=(data.get("conversation") or {}).get("id", ""),
            sender_id=(data.get("sender") or {}).get("user_id", ""),
            parts=[MessagePart.from_dict(p) for p in data.get("parts") or []],
            raw=data,
        )


@dataclass
class InboundSms:
    """Job payload: an SMS the gateway received on one of our pool numbers."""

    from_: str
    to: str
    text: str

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.from_, "to": self.to, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InboundSms":
        return cls(from_=data["from"], to=data["to"], text=data.get("text") or "")


@dataclass
class UnreadMessage:
    """Job payload: a message still unread by ``recipients`` after the receipt delay."""

    message: Message
    recipients: List[str]
    identities: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnreadMessage":
        return cls(
            message=Message.from_dict(data["message"]),
            recipients=list(data.get("recipients") or []),
            identities=dict(data.get("identities") or {}),
        )
