from typing import Any, Dict

from smsbridge.runtime import get_runtime
from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.ingest")


def _ok() -> Dict[str, Any]:
    # The gateway only needs an acknowledgement; it retries on anything else.
    return {"statusCode": 200, "body": ""}


def _path(event: Dict[str, Any]) -> str:
    """HttpApi (v2) sends rawPath; REST API (v1) sends path."""
    return event.get("rawPath") or event.get("path") or ""


def _query(event: Dict[str, Any]) -> Dict[str, str]:
    return event.get("queryStringParameters") or {}


def lambda_handler(event, context):
    """
    Inbound SMS callback from the gateway (GET <INBOUND_SMS_PATH>).

    Query parameters: ``msisdn`` (sender; ``from`` is also accepted),
    ``to`` (our pool number) and ``text``. Each SMS becomes an inbound job
    with its own retry policy; the gateway always gets a 200 so that it
    never redelivers a callback we have already queued.
    """
    try:
        runtime = get_runtime()
    except RuntimeError as e:
        # Misconfigured deployment; the SMS is lost either way.
        logger.error("ingest.config_error", extra={"error": str(e)})
        return _ok()
    settings = runtime.settings

    logger.info(
        "ingest.lambda_start",
        extra={
            "request_id": getattr(context, "aws_request_id", None),
            "path": _path(event),
        },
    )

    # 1) Only answer on the configured path
    if _path(event).rstrip("/") != settings.inbound_sms_path.rstrip("/"):
        logger.warning("ingest.unknown_path", extra={"path": _path(event)})
        return {"statusCode": 404, "body": ""}

    # 2) Delivery receipts and other callbacks carry no text; nothing to do
    params = _query(event)
    text = params.get("text")
    if not text:
        return _ok()

    data = {
        "from": params.get("msisdn") or params.get("from") or "",
        "to": params.get("to") or "",
        "text": text,
    }

    # 3) Enqueue for the inbound worker; failures are logged, never surfaced
    try:
        message_id = runtime.enqueue_inbound_sms(data)
        logger.info(
            "ingest.enqueued",
            extra={"queue_url": settings.inbound_queue_url, "message_id": message_id, "from": data["from"]},
        )
    except Exception as e:
        logger.error(
            "ingest.queue_error",
            extra={"error": str(e), "queue_url": settings.inbound_queue_url},
        )

    return _ok()
