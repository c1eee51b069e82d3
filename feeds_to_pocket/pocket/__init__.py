"""Pocket API client and its retry policy."""

from .client import (
    REDIRECT_URI,
    AccessGrant,
    AuthError,
    AuthNotAuthorizedError,
    AuthRemoteError,
    MissingAccessTokenError,
    MissingConsumerKeyError,
    PocketClient,
    PocketError,
    PocketSetupError,
    SubmitError,
    SubmitRejectedError,
    SubmitTransientError,
)
from .retry import Outcome, RetryContext, RetryPolicy, classify_response

__all__ = [
    "AccessGrant",
    "AuthError",
    "AuthNotAuthorizedError",
    "AuthRemoteError",
    "MissingAccessTokenError",
    "MissingConsumerKeyError",
    "Outcome",
    "PocketClient",
    "PocketError",
    "PocketSetupError",
    "REDIRECT_URI",
    "RetryContext",
    "RetryPolicy",
    "SubmitError",
    "SubmitRejectedError",
    "SubmitTransientError",
    "classify_response",
]
