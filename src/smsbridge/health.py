import json

from smsbridge import __version__
from smsbridge.runtime import get_runtime
from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.health")


def _json(status: int, body) -> dict:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def lambda_handler(event, context):
    """
    /healthz  -> liveness plus version and pool size
    /receipt-hook -> the receipt hook definition to register with the
                     platform's webhook service
    """
    path = event.get("rawPath") or event.get("path") or "/healthz"
    method = event.get("requestContext", {}).get("http", {}).get("method", "GET")
    logger.info("health.check", extra={"path": path, "method": method})

    settings = get_runtime().settings

    if path.rstrip("/").endswith("/receipt-hook"):
        return _json(200, get_runtime().receipt_hook.to_dict())

    return _json(200, {"status": "ok", "version": __version__, "pool_size": len(settings.pool_numbers)})
