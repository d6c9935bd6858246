import asyncio
import json

import httpx
import pytest

from smsbridge.errors import DispatchError, IdentityResolutionError, IntroductionError
from smsbridge.models import Message
from smsbridge.platform_api import ConversationIntroducer, LayerPlatformClient, PlatformIdentityResolver


def _client(handler):
    return LayerPlatformClient("layer:///apps/staging/app-1", "tok", transport=httpx.MockTransport(handler))


def test_reply_is_posted_as_the_user():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"id": "layer:///messages/m9"})

    asyncio.run(_client(handler).send_text_from_user("layer:///conversations/c1", "bob", "Sure"))

    request = requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.layer.com/apps/app-1/conversations/c1/messages"
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.headers["Accept"] == "application/vnd.layer+json; version=1.0"
    assert json.loads(request.content) == {
        "sender": {"user_id": "bob"},
        "parts": [{"body": "Sure", "mime_type": "text/plain"}],
        "notification": {"text": "Sure"},
    }


def test_send_failure_is_a_dispatch_error():
    client = _client(lambda request: httpx.Response(500))

    with pytest.raises(DispatchError):
        asyncio.run(client.send_text_from_user("c1", "bob", "Sure"))


def test_identity_resolver_maps_platform_identity():
    def handler(request):
        assert request.url.path == "/apps/app-1/users/bob/identity"
        return httpx.Response(200, json={"display_name": "Bob", "phone_number": "+15550001", "avatar_url": "x"})

    identity = asyncio.run(PlatformIdentityResolver(_client(handler))("bob"))

    assert identity.display_name == "Bob"
    assert identity.phone_number == "+15550001"
    assert identity.extra == {"avatar_url": "x"}


def test_unknown_identity_is_an_identity_error():
    resolver = PlatformIdentityResolver(_client(lambda request: httpx.Response(404)))

    with pytest.raises(IdentityResolutionError):
        asyncio.run(resolver("ghost"))


@pytest.mark.parametrize("conversation, expected", [
    ({"metadata": {"conversationName": "Team"}}, 'You have new messages in Conversation "Team"'),
    ({"metadata": {}}, 'You have new messages in Conversation "Unnamed Conversation"'),
    ({}, 'You have new messages in Conversation "Unnamed Conversation"'),
])
def test_introduction_names_the_conversation(conversation, expected):
    introducer = ConversationIntroducer(_client(lambda request: httpx.Response(200, json=conversation)))
    message = Message.from_dict({"conversation": {"id": "layer:///conversations/c1"}})

    assert asyncio.run(introducer(message)) == expected


def test_introduction_failure_is_an_introduction_error():
    introducer = ConversationIntroducer(_client(lambda request: httpx.Response(503)))
    message = Message.from_dict({"conversation": {"id": "c1"}})

    with pytest.raises(IntroductionError):
        asyncio.run(introducer(message))
