# utils/twilio_client.py

from typing import Any, Dict, Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from smsbridge.errors import DispatchError
from smsbridge.utils.logger import get_logger
from smsbridge.utils.secrets import get_secret, require_fields

logger = get_logger("smsbridge.twilio")


def build_client(secrets: Optional[Dict[str, Any]] = None, secret_name: Optional[str] = None) -> TwilioClient:
    """
    Build and return an authenticated Twilio client.

    Secrets are expected to be a dict like:
    {
      "account_sid": "...",
      "auth_token": "..."
    }
    Pass them in directly, or give the Secrets Manager name to fetch them.
    """
    if secrets is None:
        secrets = get_secret(secret_name)

    require_fields(secret_name or "twilio", secrets, ("account_sid", "auth_token"))

    client = TwilioClient(secrets["account_sid"], secrets["auth_token"])
    logger.info("Twilio client initialized successfully")
    return client


class TwilioSmsSender:
    """
    SMS send boundary.

    Every message goes out from an explicit pool number, so we use ``from_``
    rather than a messaging service SID: the recipient must see the number
    their conversation is bound to.
    """

    def __init__(self, client: TwilioClient):
        self._client = client

    def send(self, from_: str, to: str, text: str) -> str:
        try:
            resp = self._client.messages.create(from_=from_, to=to, body=text)
        except TwilioException as e:
            logger.error(
                "twilio.send_error",
                extra={"error": str(e), "from": from_, "to": to},
            )
            raise DispatchError(f"Twilio rejected SMS from {from_} to {to}: {e}") from e

        sid = getattr(resp, "sid", "<no-sid>")
        logger.info("twilio.sent", extra={"sid": sid, "from": from_, "to": to})
        return sid
