"""
SQS-backed job queue.

Every message body is a JSON envelope::

    {"type": "SMS Integration new-sms",
     "data": {...},
     "attempts": 10,                                   # optional
     "backoff": {"type": "exponential", "delay": 1000}}  # optional, ms

Jobs that declare ``attempts`` are retried by this module: after a failure
the message is hidden for the backoff delay, and once the receive count
reaches ``attempts`` it is deleted. Jobs without ``attempts`` are left to
the queue's own redrive policy.
"""

import asyncio
import json
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.jobs")

# SQS caps VisibilityTimeout at 12 hours.
MAX_VISIBILITY_SECONDS = 12 * 60 * 60

DONE = "done"
RETRY = "retry"
DROPPED = "dropped"


@dataclass
class QueuedJob:
    id: str
    receipt_handle: str
    type: str
    data: Dict[str, Any]
    attempts: Optional[int] = None
    backoff: Dict[str, Any] = field(default_factory=dict)
    receive_count: int = 1

    def retry_delay_seconds(self) -> int:
        """
        Delay before the next attempt, from the envelope's backoff.

        exponential: delay * 2 ** (attempt - 1); fixed: delay. Milliseconds
        are rounded up to whole seconds since SQS works in seconds.
        """
        delay_ms = int(self.backoff.get("delay") or 0)
        if self.backoff.get("type") == "exponential":
            delay_ms = delay_ms * 2 ** (max(self.receive_count, 1) - 1)
        return min(MAX_VISIBILITY_SECONDS, math.ceil(delay_ms / 1000))

    @classmethod
    def _from_parts(cls, message_id: str, receipt: str, body: str, attributes: Dict[str, Any]) -> "QueuedJob":
        envelope = json.loads(body)
        if not isinstance(envelope, dict) or "type" not in envelope:
            raise ValueError("job envelope must be an object with a 'type'")
        attempts = envelope.get("attempts")
        return cls(
            id=message_id,
            receipt_handle=receipt,
            type=envelope["type"],
            data=envelope.get("data") or {},
            attempts=int(attempts) if attempts is not None else None,
            backoff=envelope.get("backoff") or {},
            receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
        )

    @classmethod
    def from_lambda_record(cls, record: Dict[str, Any]) -> "QueuedJob":
        return cls._from_parts(
            record.get("messageId", "<no-id>"),
            record.get("receiptHandle", "<no-handle>"),
            record.get("body") or "",
            record.get("attributes") or {},
        )

    @classmethod
    def from_sqs_message(cls, message: Dict[str, Any]) -> "QueuedJob":
        return cls._from_parts(
            message.get("MessageId", "<no-id>"),
            message.get("ReceiptHandle", "<no-handle>"),
            message.get("Body") or "",
            message.get("Attributes") or {},
        )


class JobQueue:
    def __init__(self, sqs_client, queue_url: str):
        self._sqs = sqs_client
        self.queue_url = queue_url

    def enqueue(
        self,
        job_type: str,
        data: Dict[str, Any],
        attempts: Optional[int] = None,
        backoff: Optional[Dict[str, Any]] = None,
        delay_seconds: int = 0,
    ) -> str:
        envelope: Dict[str, Any] = {"type": job_type, "data": data}
        if attempts is not None:
            envelope["attempts"] = attempts
        if backoff:
            envelope["backoff"] = backoff

        resp = self._sqs.send_message(
            QueueUrl=self.queue_url,
            MessageBody=json.dumps(envelope),
            DelaySeconds=delay_seconds,
        )
        return resp["MessageId"]

    async def receive(self, max_messages: int = 10, wait_seconds: int = 20) -> List[QueuedJob]:
        resp = await asyncio.to_thread(
            self._sqs.receive_message,
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=min(max_messages, 10),
            WaitTimeSeconds=wait_seconds,
            AttributeNames=["ApproximateReceiveCount"],
        )
        jobs = []
        for message in resp.get("Messages", []):
            try:
                jobs.append(QueuedJob.from_sqs_message(message))
            except (ValueError, TypeError) as e:
                logger.warning(
                    "jobs.invalid_envelope",
                    extra={"preview": str(message.get("Body"))[:200], "error": str(e)},
                )
                await self.delete(message.get("ReceiptHandle", ""))
        return jobs

    async def delete(self, receipt_handle: str) -> None:
        await asyncio.to_thread(
            self._sqs.delete_message,
            QueueUrl=self.queue_url,
            ReceiptHandle=receipt_handle,
        )

    async def retry_later(self, job: QueuedJob, delay_seconds: int) -> None:
        await asyncio.to_thread(
            self._sqs.change_message_visibility,
            QueueUrl=self.queue_url,
            ReceiptHandle=job.receipt_handle,
            VisibilityTimeout=delay_seconds,
        )


JobHandler = Callable[[QueuedJob], Awaitable[Any]]


def lambda_response(failed: List[QueuedJob]) -> Dict[str, Any]:
    """SQS partial batch response: only the listed records are redelivered."""
    return {"batchItemFailures": [{"itemIdentifier": job.id} for job in failed]}


class JobRunner:
    """
    Runs a job handler over SQS messages with at most ``concurrency``
    handlers in flight.
    """

    def __init__(self, queue: JobQueue, handler: JobHandler, concurrency: int = 1, name: str = "jobs"):
        self._queue = queue
        self._handler = handler
        self._concurrency = concurrency
        self._name = name

    async def run_job(self, job: QueuedJob) -> str:
        try:
            await self._handler(job)
        except Exception as e:
            logger.exception(
                f"{self._name}.job_failed",
                extra={"job_id": job.id, "attempt": job.receive_count, "error": str(e)},
            )
            try:
                return await self._settle_failure(job)
            except (ClientError, BotoCoreError) as settle_error:
                # Leave the message as is; SQS redelivers it after the visibility timeout.
                logger.error(
                    f"{self._name}.settle_failed",
                    extra={"job_id": job.id, "attempt": job.receive_count, "error": str(settle_error)},
                )
                return RETRY

        logger.info(f"{self._name}.job_done", extra={"job_id": job.id})
        return DONE

    async def _settle_failure(self, job: QueuedJob) -> str:
        if job.attempts is None:
            return RETRY

        if job.receive_count >= job.attempts:
            logger.error(
                f"{self._name}.job_exhausted",
                extra={"job_id": job.id, "attempts": job.attempts, "data": job.data},
            )
            await self._queue.delete(job.receipt_handle)
            return DROPPED

        delay = job.retry_delay_seconds()
        logger.info(
            f"{self._name}.job_retry_scheduled",
            extra={"job_id": job.id, "attempt": job.receive_count, "delay_seconds": delay},
        )
        await self._queue.retry_later(job, delay)
        return RETRY

    async def run_batch(self, jobs: List[QueuedJob]) -> List[QueuedJob]:
        """Process ``jobs`` and return those that should be redelivered."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(job: QueuedJob) -> str:
            async with semaphore:
                return await self.run_job(job)

        outcomes = await asyncio.gather(*(_bounded(job) for job in jobs))
        return [job for job, outcome in zip(jobs, outcomes) if outcome == RETRY]

    async def handle_lambda_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        records = event.get("Records", [])
        logger.info(f"{self._name}.lambda_start", extra={"records": len(records)})

        jobs = []
        for rec in records:
            try:
                jobs.append(QueuedJob.from_lambda_record(rec))
            except (ValueError, TypeError) as e:
                # Unparsable envelopes can never succeed; let them be deleted.
                logger.warning(
                    f"{self._name}.invalid_envelope",
                    extra={"preview": str(rec.get("body"))[:200], "error": str(e)},
                )

        failed = await self.run_batch(jobs)
        return lambda_response(failed)

    async def _ack(self, job: QueuedJob) -> None:
        try:
            await self._queue.delete(job.receipt_handle)
        except (ClientError, BotoCoreError) as e:
            # The job will be redelivered and run again.
            logger.error(f"{self._name}.ack_failed", extra={"job_id": job.id, "error": str(e)})

    async def poll(
        self,
        stop: Optional[asyncio.Event] = None,
        wait_seconds: int = 20,
        error_backoff_seconds: float = 5,
    ) -> None:
        """
        Long-poll the queue until ``stop`` is set.

        Queue errors are logged and retried after ``error_backoff_seconds``.
        """
        stop = stop or asyncio.Event()
        logger.info(f"{self._name}.poll_start", extra={"queue_url": self._queue.queue_url})

        while not stop.is_set():
            try:
                jobs = await self._queue.receive(self._concurrency, wait_seconds)
            except (ClientError, BotoCoreError) as e:
                logger.error(
                    f"{self._name}.receive_failed",
                    extra={"queue_url": self._queue.queue_url, "error": str(e)},
                )
                await asyncio.sleep(error_backoff_seconds)
                continue
            if not jobs:
                continue

            semaphore = asyncio.Semaphore(self._concurrency)

            async def _run_and_ack(job: QueuedJob) -> None:
                async with semaphore:
                    if await self.run_job(job) == DONE:
                        await self._ack(job)

            await asyncio.gather(*(_run_and_ack(job) for job in jobs))

        logger.info(f"{self._name}.poll_stop")
