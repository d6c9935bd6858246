"""
SMS Bridge Utilities
====================

Shared helper modules:

- logger.py          → structured JSON logging
- secrets.py         → AWS Secrets Manager integration
- twilio_client.py   → authenticated Twilio client and SMS sender

All functions in this package are stateless and thread-safe, suitable for
AWS Lambda execution.
"""

from smsbridge.utils.logger import get_logger

__all__ = [
    "get_logger",
]
