"""Shared stubs for AWS, Twilio and the messaging platform."""

import json

import pytest
from botocore.exceptions import ClientError

from smsbridge.allocator import NumberPoolAllocator
from smsbridge.config import Settings
from smsbridge.errors import DispatchError, IdentityResolutionError
from smsbridge.models import Identity
from smsbridge.store import ChannelStore, KeyValueStore

POOL = ("+1555000", "+1555001")
WEEK_MS = 7 * 24 * 60 * 60 * 1000


class StubDynamoDB:
    """Just enough of the DynamoDB client API for KeyValueStore."""

    def __init__(self):
        self.items = {}
        self.puts = []
        self.fail_with = None

    def _maybe_fail(self, op):
        if self.fail_with:
            raise ClientError({"Error": {"Code": self.fail_with, "Message": "boom"}}, op)

    def get_item(self, TableName, Key, ConsistentRead=False):
        self._maybe_fail("GetItem")
        item = self.items.get(Key["pk"]["S"])
        return {"Item": item} if item else {}

    def put_item(self, TableName, Item):
        self._maybe_fail("PutItem")
        self.items[Item["pk"]["S"]] = Item
        self.puts.append(Item["pk"]["S"])
        return {}

    def value(self, key):
        item = self.items.get(key)
        return item["value"]["S"] if item else None


class StubSQS:
    def __init__(self):
        self.sent = []
        self.deleted = []
        self.visibility = []
        self.inbox = []
        self.fail = False
        # operation name -> exception raised on its next call
        self.errors = {}

    def _raise_once(self, op):
        error = self.errors.pop(op, None)
        if error is not None:
            raise error

    def send_message(self, QueueUrl, MessageBody, DelaySeconds=0):
        if self.fail:
            raise RuntimeError("sqs down")
        self.sent.append({"QueueUrl": QueueUrl, "MessageBody": MessageBody, "DelaySeconds": DelaySeconds})
        return {"MessageId": f"msg-{len(self.sent)}"}

    def receive_message(self, QueueUrl, MaxNumberOfMessages, WaitTimeSeconds, AttributeNames):
        self._raise_once("ReceiveMessage")
        messages, self.inbox = self.inbox[:MaxNumberOfMessages], self.inbox[MaxNumberOfMessages:]
        return {"Messages": messages} if messages else {}

    def delete_message(self, QueueUrl, ReceiptHandle):
        self._raise_once("DeleteMessage")
        self.deleted.append(ReceiptHandle)

    def change_message_visibility(self, QueueUrl, ReceiptHandle, VisibilityTimeout):
        self._raise_once("ChangeMessageVisibility")
        self.visibility.append((ReceiptHandle, VisibilityTimeout))


def throttled(op):
    return ClientError({"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, op)


class StubSmsSender:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, from_, to, text):
        if to in self.fail_for:
            raise DispatchError(f"cannot text {to}")
        self.sent.append({"from": from_, "to": to, "text": text})
        return "SM123"


class StubPlatform:
    def __init__(self, fail=False):
        self.posted = []
        self.fail = fail

    async def send_text_from_user(self, conversation_id, user_id, text):
        if self.fail:
            raise DispatchError("platform down")
        self.posted.append({"conversation_id": conversation_id, "user_id": user_id, "text": text})
        return {}


class StubDirectory:
    """Identity resolver backed by a dict."""

    def __init__(self, users):
        self.users = users
        self.calls = []

    async def __call__(self, user_id):
        self.calls.append(user_id)
        if user_id not in self.users:
            raise IdentityResolutionError(f"unknown user {user_id}")
        return Identity.from_dict(user_id, self.users[user_id])


class Clock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


def sqs_record(envelope, message_id="m-1", receive_count=1):
    return {
        "messageId": message_id,
        "receiptHandle": f"rh-{message_id}",
        "body": json.dumps(envelope),
        "attributes": {"ApproximateReceiveCount": str(receive_count)},
    }


@pytest.fixture
def ddb():
    return StubDynamoDB()


@pytest.fixture
def store(ddb):
    return ChannelStore(KeyValueStore(ddb, "correlation"), "u-", "p-")


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def allocator(store, clock):
    return NumberPoolAllocator(store, POOL, ttl_seconds=7 * 24 * 60 * 60, clock=clock)


@pytest.fixture
def settings():
    return Settings(
        correlation_table="correlation",
        inbound_queue_url="https://sqs.us-east-1.amazonaws.com/1/inbound",
        unread_queue_url="https://sqs.us-east-1.amazonaws.com/1/unread",
        pool_numbers=POOL,
    )
