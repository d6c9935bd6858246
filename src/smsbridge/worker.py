"""
SQS consumers.

``unread_handler`` and ``reply_handler`` are Lambda entry points for the
unread-message and inbound-SMS queues (event source mappings must enable
ReportBatchItemFailures). ``main`` runs both as long-polling consumers for
deployments outside Lambda.
"""

import asyncio

from smsbridge.runtime import get_runtime
from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.worker")


def unread_handler(event, context):
    runner = get_runtime().outbound_runner()
    return asyncio.run(runner.handle_lambda_event(event))


def reply_handler(event, context):
    runner = get_runtime().inbound_runner()
    return asyncio.run(runner.handle_lambda_event(event))


async def serve(stop: asyncio.Event = None) -> None:
    runtime = get_runtime()
    stop = stop or asyncio.Event()
    logger.info("worker.serve", extra={"receipt_hook": runtime.receipt_hook.to_dict()})
    await asyncio.gather(
        runtime.outbound_runner().poll(stop),
        runtime.inbound_runner().poll(stop),
    )


def main() -> None:
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("worker.shutdown")


if __name__ == "__main__":
    main()
