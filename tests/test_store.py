import asyncio
import json

import pytest

from smsbridge.errors import StorageError
from smsbridge.models import ChannelBinding, UserChannelMap


def test_channel_map_round_trip(store):
    original = UserChannelMap("U", {
        "layer:///conversations/b": ChannelBinding("+1555001", 200),
        "layer:///conversations/a": ChannelBinding("+1555000", 100),
    })

    asyncio.run(store.save_channel_map(original))
    loaded = asyncio.run(store.load_channel_map("U"))

    assert loaded == original


def test_missing_channel_map_is_none(store):
    assert asyncio.run(store.load_channel_map("nobody")) is None


def test_serialized_layout_is_versioned(store, ddb):
    asyncio.run(store.save_channel_map(UserChannelMap("U", {"c": ChannelBinding("+1", 7)})))

    assert json.loads(ddb.value("u-U")) == {
        "version": 1,
        "conversations": {"c": {"number": "+1", "expires_at": 7}},
    }


def test_legacy_unversioned_layout_is_readable():
    raw = json.dumps({"c1": {"phone": "+1555000", "expires": 1234}})

    loaded = UserChannelMap.from_json("U", raw)

    assert loaded.bindings == {"c1": ChannelBinding("+1555000", 1234)}


def test_legacy_conversation_named_version_is_not_mistaken_for_a_header():
    raw = json.dumps({"version": {"phone": "+1555000", "expires": 1234}})

    loaded = UserChannelMap.from_json("U", raw)

    assert loaded.bindings == {"version": ChannelBinding("+1555000", 1234)}


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    json.dumps({"version": 1, "conversations": {"c": {"number": "+1"}}}),
    json.dumps({"version": 99, "conversations": {}}),
    json.dumps({"c": "+1"}),
])
def test_unparsable_channel_map_raises_storage_error(store, ddb, raw):
    ddb.items["u-U"] = {"pk": {"S": "u-U"}, "value": {"S": raw}}

    with pytest.raises(StorageError):
        asyncio.run(store.load_channel_map("U"))


def test_reverse_index_keeps_most_recent_user(store, ddb):
    asyncio.run(store.remember_phone("+15550123", "alice"))
    asyncio.run(store.remember_phone("+15550123", "bob"))

    assert ddb.value("p-+15550123") == "bob"
    assert asyncio.run(store.get_user_for_phone("+15550123")) == "bob"
    assert asyncio.run(store.get_user_for_phone("+19999999")) is None


def test_dynamodb_errors_become_storage_errors(store, ddb):
    ddb.fail_with = "ProvisionedThroughputExceededException"

    with pytest.raises(StorageError):
        asyncio.run(store.get_user_for_phone("+1"))
    with pytest.raises(StorageError):
        asyncio.run(store.remember_phone("+1", "U"))
