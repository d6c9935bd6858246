"""
Failure taxonomy for the relay pipeline.

Anything raised from a job handler fails that job; whether the job is
retried is decided by the queue envelope (see smsbridge.jobs), never here.
Outcomes that are not failures (pool exhausted, blank text, no phone on
file, no conversation claiming an inbound number) are logged and
completed as no-ops instead of raising.
"""


class RelayError(Exception):
    """Base class for every error the relay workers raise."""


class StorageError(RelayError):
    """Correlation store read, write or parse failure."""


class RoutingError(RelayError):
    """An inbound SMS cannot be matched to a user."""


class IdentityResolutionError(RelayError):
    """A platform user could not be resolved to an identity."""


class IntroductionError(RelayError):
    """The introduction text for a new binding could not be produced."""


class DispatchError(RelayError):
    """Sending an SMS or a platform message failed."""
