import json
import os
from typing import Any, Dict, Optional

import boto3

from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.secrets")


def _region() -> str:
    return os.getenv("AWS_REGION", "us-east-1")


def get_secret(secret_name: Optional[str], region_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Fetch a JSON secret from AWS Secrets Manager.

    Used for both credential bundles this service needs:

        TWILIO_SECRET_NAME   -> {"account_sid": "...", "auth_token": "..."}
        PLATFORM_SECRET_NAME -> {"app_id": "...", "token": "..."}

    Raises RuntimeError if the name is not configured or the secret is empty,
    and json.JSONDecodeError if the payload is not a JSON object.
    """
    if not secret_name:
        msg = "Missing secret name; set TWILIO_SECRET_NAME / PLATFORM_SECRET_NAME"
        logger.error(msg)
        raise RuntimeError(msg)

    region_name = region_name or _region()

    logger.info(
        "secrets.fetch",
        extra={"secret_name": secret_name, "region": region_name},
    )

    client = boto3.client("secretsmanager", region_name=region_name)

    resp = client.get_secret_value(SecretId=secret_name)
    secret_str = resp.get("SecretString")

    if not secret_str:
        msg = f"Secret '{secret_name}' has no SecretString payload"
        logger.error(msg)
        raise RuntimeError(msg)

    try:
        data = json.loads(secret_str)
    except json.JSONDecodeError as e:
        logger.error(
            "secrets.invalid_json",
            extra={"secret_name": secret_name, "error": str(e)},
        )
        raise

    if not isinstance(data, dict):
        msg = f"Secret '{secret_name}' must be a JSON object"
        logger.error(msg)
        raise RuntimeError(msg)

    return data


def require_fields(secret_name: str, data: Dict[str, Any], fields) -> None:
    """Raise RuntimeError listing every field missing from a secret payload."""
    missing = [field for field in fields if not data.get(field)]
    if missing:
        logger.error(
            "secrets.missing_fields",
            extra={"secret_name": secret_name, "missing": missing},
        )
        raise RuntimeError(f"Secret '{secret_name}' is missing: {', '.join(missing)}")
