"""
SMS Bridge
==========

Relays unread conversation messages to participants by SMS and routes
their SMS replies back into the originating conversation. A small pool of
phone numbers is multiplexed across conversations: each (user,
conversation) pair keeps the same number while it is in use.

Modules under this package:
- ingest.py     → inbound SMS callback (GET /nexmo-new-sms) → inbound queue
- worker.py     → SQS consumers for unread-message and inbound-SMS jobs
- health.py     → health check and receipt hook definition
- outbound.py   → unread message → SMS relay
- inbound.py    → SMS reply → conversation relay
- allocator.py  → number pool allocation and lazy reclaim
- store.py      → DynamoDB correlation store
- jobs.py       → SQS job envelope, retry/backoff, batch runner
- receipts.py   → receipt hook definition (events, delay, status filter)
- platform_api.py → messaging platform REST client
- utils/        → logging, secrets, Twilio client

Environment variables are documented in config.py.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
