"""Pocket v3 API: OAuth-style login handshake and the ``add`` endpoint."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable
from urllib.parse import urlencode

import httpx
import structlog

from .. import USER_AGENT
from ..config import Configuration
from ..engine.parser import clean_link
from .retry import (
    X_ERROR_CODE,
    Outcome,
    RetryPolicy,
    classify_response,
    is_credentials_failure,
)

REQUEST_TOKEN_URL = "https://getpocket.com/v3/oauth/request"
CONVERT_TOKEN_URL = "https://getpocket.com/v3/oauth/authorize"
ADD_URL = "https://getpocket.com/v3/add"
AUTHORIZE_PAGE_URL = "https://getpocket.com/auth/authorize"

# The final period is encoded as %2E because some terminals (e.g. Konsole)
# leave a trailing period out of the URL when it is Ctrl+clicked.
REDIRECT_URI = (
    "data:text/plain,Return%20to%20feeds-to-pocket%20and%20press%20Enter%20to%20finish%2E"
)

X_ERROR = "X-Error"
# Pocket answers 403 with one of these while the request token is not approved.
NOT_AUTHORIZED_CODES = frozenset({"158", "159"})

DEFAULT_TIMEOUT = 30.0


class PocketSetupError(Exception):
    """A credential needed for the requested operation is missing."""


class MissingConsumerKeyError(PocketSetupError):
    def __init__(self) -> None:
        super().__init__(
            "The consumer key is not set in the configuration file. "
            "Run `feeds-to-pocket CONFIG set-customer-key --help` for instructions."
        )


class MissingAccessTokenError(PocketSetupError):
    def __init__(self) -> None:
        super().__init__(
            "The access token is not set in the configuration file. "
            "Run `feeds-to-pocket CONFIG login --help` for instructions."
        )


class PocketError(Exception):
    """Base class for failed Pocket API calls."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class AuthError(PocketError):
    """The login handshake failed."""


class AuthRemoteError(AuthError):
    """Pocket refused the request or could not be reached."""


class AuthNotAuthorizedError(AuthError):
    """The user has not approved the request token (yet)."""


class SubmitError(PocketError):
    """Adding an item failed."""


class SubmitTransientError(SubmitError):
    """Every attempt failed with a retryable condition."""

    def __init__(self, message: str, attempts: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts


class SubmitRejectedError(SubmitError):
    """Pocket definitively refused the item; retrying would not help."""

    def __init__(self, message: str, credentials: bool = False, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.credentials = credentials


@dataclass(frozen=True, slots=True)
class AccessGrant:
    access_token: str
    username: str | None = None


def describe_response(response: httpx.Response) -> str:
    """Human readable summary of a failed response, Pocket error headers first."""

    code = response.headers.get(X_ERROR_CODE)
    if code is not None:
        message = response.headers.get(X_ERROR, "unknown protocol error")
        summary = f"{message} (code {code})"
    else:
        summary = f"HTTP {response.status_code} {response.reason_phrase}".rstrip()
    body = response.text.strip()
    if body:
        summary = f"{summary}\n{body}"
    return summary


class PocketClient:
    """Thin synchronous client for the three Pocket endpoints we use."""

    def __init__(
        self,
        consumer_key: str,
        access_token: str | None = None,
        client: httpx.Client | None = None,
        retry: RetryPolicy | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.consumer_key = consumer_key
        self.access_token = access_token
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("feeds_to_pocket.pocket").bind(
            component="pocket"
        )
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_config(
        cls,
        config: Configuration,
        require_access_token: bool = True,
        **kwargs: Any,
    ) -> "PocketClient":
        if not config.consumer_key:
            raise MissingConsumerKeyError()
        if require_access_token and not config.access_token:
            raise MissingAccessTokenError()
        kwargs.setdefault("retry", RetryPolicy.from_settings(config.settings))
        kwargs.setdefault("timeout", config.settings.request_timeout)
        return cls(config.consumer_key, config.access_token, **kwargs)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "PocketClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        return self._client.post(
            url,
            json=payload,
            headers={
                "X-Accept": "application/json",
                "Content-Type": "application/json; charset=UTF-8",
                "User-Agent": USER_AGENT,
            },
            timeout=self.timeout,
        )

    @staticmethod
    def _decode(response: httpx.Response, key: str) -> Any:
        try:
            data = response.json()
        except ValueError as exc:
            raise AuthRemoteError(
                f"Pocket returned an undecodable response: {exc}",
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict) or not data.get(key):
            raise AuthRemoteError(
                f"Pocket response is missing `{key}`: {response.text.strip()}",
                status_code=response.status_code,
            )
        return data

    def _auth_call(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        try:
            response = self._post(url, payload)
        except httpx.HTTPError as exc:
            raise AuthRemoteError(f"request to {url} failed: {exc}") from exc
        if classify_response(response) is not Outcome.SUCCESS:
            code = response.headers.get(X_ERROR_CODE)
            message = describe_response(response)
            if url == CONVERT_TOKEN_URL and response.status_code == 403 and (
                code is None or code in NOT_AUTHORIZED_CODES
            ):
                raise AuthNotAuthorizedError(
                    message, status_code=response.status_code, error_code=code
                )
            raise AuthRemoteError(message, status_code=response.status_code, error_code=code)
        return response

    # ------------------------------------------------------------------
    # Authorization handshake
    # ------------------------------------------------------------------
    def request_token(self, redirect_uri: str = REDIRECT_URI) -> str:
        """Step 1: obtain a request token to be approved by the user."""

        response = self._auth_call(
            REQUEST_TOKEN_URL,
            {"consumer_key": self.consumer_key, "redirect_uri": redirect_uri},
        )
        return str(self._decode(response, "code")["code"])

    @staticmethod
    def authorization_url(request_token: str, redirect_uri: str = REDIRECT_URI) -> str:
        """Step 2: the page where the user approves ``request_token``."""

        query = urlencode({"request_token": request_token, "redirect_uri": redirect_uri})
        return f"{AUTHORIZE_PAGE_URL}?{query}"

    def convert_token(self, request_token: str) -> AccessGrant:
        """Step 3: exchange an approved request token for an access token."""

        response = self._auth_call(
            CONVERT_TOKEN_URL,
            {"consumer_key": self.consumer_key, "code": request_token},
        )
        data = self._decode(response, "access_token")
        grant = AccessGrant(access_token=str(data["access_token"]), username=data.get("username"))
        self.access_token = grant.access_token
        return grant

    # ------------------------------------------------------------------
    # Item submission
    # ------------------------------------------------------------------
    def add_item(self, url: str, tags: Iterable[str] = (), title: str | None = None) -> None:
        """Add ``url`` to the list, retrying transient failures.

        Raises:
            MissingAccessTokenError: No access token is configured.
            SubmitRejectedError: Pocket refused the item, or the URL is invalid.
            SubmitTransientError: The retry budget ran out.
        """
        if not self.access_token:
            raise MissingAccessTokenError()
        target = clean_link(url)
        if target is None:
            raise SubmitRejectedError(f"refusing to submit invalid URL: {url!r}")

        payload: dict[str, Any] = {
            "consumer_key": self.consumer_key,
            "access_token": self.access_token,
            "url": target,
        }
        tag_list = [tag for tag in tags if tag]
        if tag_list:
            payload["tags"] = ",".join(tag_list)
        if title:
            payload["title"] = title

        context = self.retry.new_context()
        while True:
            response: httpx.Response | None = None
            error: Exception | None = None
            try:
                response = self._post(ADD_URL, payload)
            except httpx.RequestError as exc:
                error = exc
            outcome = classify_response(response, error)
            if outcome is Outcome.SUCCESS:
                return
            if outcome is Outcome.REJECTED and response is not None:
                raise SubmitRejectedError(
                    f"error while adding URL {target} to Pocket: {describe_response(response)}",
                    credentials=is_credentials_failure(response),
                    status_code=response.status_code,
                    error_code=response.headers.get(X_ERROR_CODE),
                )

            context.record(response, error)
            reason = str(error) if error is not None else describe_response(response)
            if not self.retry.should_retry(context):
                raise SubmitTransientError(
                    f"giving up on {target} after {context.attempt} attempt(s): {reason}",
                    attempts=context.attempt,
                    status_code=response.status_code if response is not None else None,
                )
            delay = self.retry.delay(context)
            self.logger.info(
                "pocket_retry",
                url=target,
                attempt=context.attempt,
                delay=delay,
                reason=reason,
            )
            self._sleep(delay)
            context.attempt += 1


__all__ = [
    "ADD_URL",
    "AUTHORIZE_PAGE_URL",
    "AccessGrant",
    "AuthError",
    "AuthNotAuthorizedError",
    "AuthRemoteError",
    "CONVERT_TOKEN_URL",
    "MissingAccessTokenError",
    "MissingConsumerKeyError",
    "PocketClient",
    "PocketError",
    "PocketSetupError",
    "REDIRECT_URI",
    "REQUEST_TOKEN_URL",
    "SubmitError",
    "SubmitRejectedError",
    "SubmitTransientError",
    "describe_response",
]
