"""
Dependency wiring for the Lambda entry points.

Workers and the allocator take their collaborators as constructor
arguments; this module is the one place that builds real ones from
Settings. Clients are created lazily so a handler only pays for (and only
needs credentials for) what it uses.
"""

from functools import cached_property, lru_cache

import boto3

from smsbridge.allocator import NumberPoolAllocator
from smsbridge.config import Settings, load_settings
from smsbridge.inbound import InboundRelayWorker
from smsbridge.jobs import JobQueue, JobRunner
from smsbridge.outbound import OutboundRelayWorker
from smsbridge.platform_api import ConversationIntroducer, LayerPlatformClient, PlatformIdentityResolver
from smsbridge.receipts import ReceiptHook, build_receipt_hook
from smsbridge.store import ChannelStore, KeyValueStore
from smsbridge.utils.logger import get_logger
from smsbridge.utils.twilio_client import TwilioSmsSender, build_client

logger = get_logger("smsbridge.runtime")

# Inbound SMS jobs: 10 attempts, exponential backoff from one second.
INBOUND_ATTEMPTS = 10
INBOUND_BACKOFF = {"type": "exponential", "delay": 1000}


class Runtime:
    def __init__(self, settings: Settings):
        self.settings = settings

    @cached_property
    def sqs(self):
        return boto3.client("sqs", region_name=self.settings.region)

    @cached_property
    def dynamodb(self):
        return boto3.client("dynamodb", region_name=self.settings.region)

    @cached_property
    def store(self) -> ChannelStore:
        kv = KeyValueStore(self.dynamodb, self.settings.correlation_table)
        return ChannelStore(kv, self.settings.user_key_prefix, self.settings.phone_key_prefix)

    @cached_property
    def allocator(self) -> NumberPoolAllocator:
        return NumberPoolAllocator(
            self.store,
            self.settings.pool_numbers,
            self.settings.number_expiration_seconds,
        )

    @cached_property
    def inbound_queue(self) -> JobQueue:
        return JobQueue(self.sqs, self.settings.inbound_queue_url)

    @cached_property
    def unread_queue(self) -> JobQueue:
        return JobQueue(self.sqs, self.settings.unread_queue_url)

    @cached_property
    def platform(self) -> LayerPlatformClient:
        return LayerPlatformClient.from_secret(self.settings.platform_secret_name, self.settings.region)

    @cached_property
    def sms_sender(self) -> TwilioSmsSender:
        return TwilioSmsSender(build_client(secret_name=self.settings.twilio_secret_name))

    @cached_property
    def receipt_hook(self) -> ReceiptHook:
        return build_receipt_hook(self.settings)

    def outbound_runner(self) -> JobRunner:
        worker = OutboundRelayWorker(
            self.store,
            self.allocator,
            PlatformIdentityResolver(self.platform),
            self.sms_sender,
            template=self.settings.message_template,
            introducer=ConversationIntroducer(self.platform) if self.settings.introduce_conversations else None,
        )
        return JobRunner(
            self.unread_queue,
            worker.handle,
            concurrency=self.settings.outbound_concurrency,
            name="outbound",
        )

    def inbound_runner(self) -> JobRunner:
        worker = InboundRelayWorker(self.store, self.allocator, self.platform)
        return JobRunner(self.inbound_queue, worker.handle, concurrency=1, name="inbound")

    def enqueue_inbound_sms(self, data) -> str:
        return self.inbound_queue.enqueue(
            self.settings.inbound_job_type,
            data,
            attempts=INBOUND_ATTEMPTS,
            backoff=INBOUND_BACKOFF,
        )


@lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    """One Runtime per Lambda container."""
    settings = load_settings()
    logger.info(
        "runtime.ready",
        extra={"integration": settings.name, "pool_size": len(settings.pool_numbers)},
    )
    return Runtime(settings)
