import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from smsbridge.utils.logger import get_logger

logger = get_logger("smsbridge.config")

ONE_WEEK_SECONDS = 7 * 24 * 60 * 60
ONE_HOUR_SECONDS = 60 * 60

DEFAULT_NAME = "SMS Integration"
DEFAULT_TEMPLATE = "{sender.display_name}: {text}"
DEFAULT_INBOUND_SMS_PATH = "/nexmo-new-sms"
DEFAULT_UNREAD_HOOK_PATH = "/nexmo-new-message"
DEFAULT_STATUS_FILTER = ("sent", "delivered")


@dataclass(frozen=True)
class Settings:
    """Deployment configuration, read once per Lambda container."""

    correlation_table: str
    inbound_queue_url: str
    unread_queue_url: str
    pool_numbers: Tuple[str, ...]
    name: str = DEFAULT_NAME
    number_expiration_seconds: int = ONE_WEEK_SECONDS
    unread_delay_seconds: int = ONE_HOUR_SECONDS
    recipient_status_filter: Tuple[str, ...] = DEFAULT_STATUS_FILTER
    outbound_concurrency: int = 10
    message_template: str = DEFAULT_TEMPLATE
    introduce_conversations: bool = True
    inbound_sms_path: str = DEFAULT_INBOUND_SMS_PATH
    unread_hook_path: str = DEFAULT_UNREAD_HOOK_PATH
    user_key_prefix: str = "smsbridge-user-"
    phone_key_prefix: str = "smsbridge-phone-"
    twilio_secret_name: Optional[str] = None
    platform_secret_name: Optional[str] = None
    region: str = "us-east-1"

    @property
    def inbound_job_type(self) -> str:
        return f"{self.name} new-sms"

    @property
    def unread_job_type(self) -> str:
        return self.name


def _split(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _int(env: Mapping[str, str], name: str, default: int, errors: list) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        errors.append(f"Invalid {name}='{raw}'. Must be an integer.")
        return default
    if value <= 0:
        errors.append(f"Invalid {name}='{raw}'. Must be positive.")
        return default
    return value


def _bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Load settings from environment variables.

    CORRELATION_TABLE:  DynamoDB table backing the correlation store
    INBOUND_QUEUE_URL:  SQS queue for inbound SMS jobs
    UNREAD_QUEUE_URL:   SQS queue for unread-message jobs
    SMS_POOL_NUMBERS:   comma separated pool, in allocation order

    Everything else has a default. Raises RuntimeError naming every
    missing or invalid variable at once.
    """
    env = os.environ if env is None else env
    errors = []

    required = {}
    for name in ("CORRELATION_TABLE", "INBOUND_QUEUE_URL", "UNREAD_QUEUE_URL", "SMS_POOL_NUMBERS"):
        value = (env.get(name) or "").strip()
        if not value:
            errors.append(f"Missing required environment variable: {name}")
        required[name] = value

    pool_numbers = _split(required["SMS_POOL_NUMBERS"])
    if required["SMS_POOL_NUMBERS"] and not pool_numbers:
        errors.append("SMS_POOL_NUMBERS must list at least one number")
    if len(set(pool_numbers)) != len(pool_numbers):
        errors.append("SMS_POOL_NUMBERS contains duplicate numbers")

    status_filter = _split(env.get("RECIPIENT_STATUS_FILTER") or ",".join(DEFAULT_STATUS_FILTER))

    settings_kwargs = dict(
        correlation_table=required["CORRELATION_TABLE"],
        inbound_queue_url=required["INBOUND_QUEUE_URL"],
        unread_queue_url=required["UNREAD_QUEUE_URL"],
        pool_numbers=pool_numbers,
        name=env.get("INTEGRATION_NAME") or DEFAULT_NAME,
        number_expiration_seconds=_int(env, "NUMBER_EXPIRATION_SECONDS", ONE_WEEK_SECONDS, errors),
        unread_delay_seconds=_int(env, "UNREAD_DELAY_SECONDS", ONE_HOUR_SECONDS, errors),
        recipient_status_filter=status_filter,
        outbound_concurrency=_int(env, "OUTBOUND_CONCURRENCY", 10, errors),
        message_template=env.get("MESSAGE_TEMPLATE") or DEFAULT_TEMPLATE,
        introduce_conversations=_bool(env.get("INTRODUCE_CONVERSATIONS"), True),
        inbound_sms_path=env.get("INBOUND_SMS_PATH") or DEFAULT_INBOUND_SMS_PATH,
        unread_hook_path=env.get("UNREAD_HOOK_PATH") or DEFAULT_UNREAD_HOOK_PATH,
        user_key_prefix=env.get("USER_KEY_PREFIX") or "smsbridge-user-",
        phone_key_prefix=env.get("PHONE_KEY_PREFIX") or "smsbridge-phone-",
        twilio_secret_name=env.get("TWILIO_SECRET_NAME"),
        platform_secret_name=env.get("PLATFORM_SECRET_NAME"),
        region=env.get("AWS_REGION") or "us-east-1",
    )

    if errors:
        msg = "; ".join(errors)
        logger.error(msg)
        raise RuntimeError(msg)

    return Settings(**settings_kwargs)
