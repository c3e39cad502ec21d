"""Replay of the request that woke the backend.

The placeholder Lambda captures the inbound ALB request, and once routing
points at the backend again the request is re-issued until the backend gives
a definitive answer:

* 2xx is returned at once.
* 502/503 and connection-level failures are retried after a fixed interval.
* Any other status is returned at once; a deterministic backend error is
  surfaced, not retried.
* Any other exception becomes a synthetic 502.

The attempt budget is capped; exhausting it raises
:class:`ReplayBudgetExhaustedError`.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Any, Callable, Mapping, Optional, Union

import requests
from aws_lambda_powertools.utilities.data_classes import ALBEvent

from ..exceptions import ConfigurationError, ReplayBudgetExhaustedError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({502, 503})
PROGRESS_LOG_EVERY = 10

# Request headers that belong to the placeholder hop, not to the client.
STRIPPED_REQUEST_HEADERS = frozenset(
    {"host", "connection", "keep-alive", "transfer-encoding", "te", "upgrade", "content-length"}
)
STRIPPED_REQUEST_PREFIXES = ("x-amz-", "x-amzn-", "proxy-")

# Response headers describing an encoding requests has already undone.
STRIPPED_RESPONSE_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "connection"}
)

TEXT_CONTENT_TYPES = (
    "text/",
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-www-form-urlencoded",
    "+json",
    "+xml",
)

STARTING_UP_MESSAGE = "Service is starting up, please try again in a moment"
FORWARD_ERROR_MESSAGE = "Error forwarding request to backend service"


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def should_strip_request_header(name: str) -> bool:
    lowered = name.lower()
    return lowered in STRIPPED_REQUEST_HEADERS or lowered.startswith(STRIPPED_REQUEST_PREFIXES)


@dataclass
class InboundRequest:
    """Request captured from the placeholder invocation."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    @classmethod
    def from_alb_event(
        cls, event: Union[ALBEvent, Mapping[str, Any]], base_url: Optional[str]
    ) -> "InboundRequest":
        """Capture the request carried by an ALB Lambda target event.

        Args:
            event: ALB event, raw or wrapped in the powertools data class.
            base_url: ``scheme://host`` used when the event only carries a path.

        Raises:
            ConfigurationError: If the event has no absolute URL and no base
                URL is configured.
        """
        if not isinstance(event, ALBEvent):
            event = ALBEvent(dict(event))

        return cls(
            method=(event.get("httpMethod") or "GET").upper(),
            url=_request_url(event, base_url),
            headers=_request_headers(event),
            body=_request_body(event),
        )

    def replay_headers(self) -> dict[str, str]:
        """Headers to send to the backend, without hop-specific ones."""
        return {
            name: value
            for name, value in self.headers.items()
            if value and not should_strip_request_header(name)
        }


def _request_url(event: ALBEvent, base_url: Optional[str]) -> str:
    url = event.get("url")
    if url and url.startswith(("http://", "https://")):
        return url
    if not base_url:
        raise ConfigurationError("DOMAIN_NAME is required to rebuild the backend URL")

    path = event.get("path") or "/"
    if not path.startswith("/"):
        path = f"/{path}"

    # ALB delivers query values still percent-encoded; pass them through as-is.
    multi_query = event.get("multiValueQueryStringParameters")
    if multi_query:
        pairs = [f"{k}={v}" for k, values in multi_query.items() for v in values]
    else:
        pairs = [f"{k}={v}" for k, v in (event.get("queryStringParameters") or {}).items()]
    query = "&".join(pairs)
    return f"{base_url}{path}?{query}" if query else f"{base_url}{path}"


def _request_headers(event: ALBEvent) -> dict[str, str]:
    multi = event.get("multiValueHeaders")
    if multi:
        return {
            name: ("; " if name.lower() == "cookie" else ", ").join(values)
            for name, values in multi.items()
            if values
        }
    return dict(event.get("headers") or {})


def _request_body(event: ALBEvent) -> Optional[bytes]:
    body = event.get("body")
    if not body:
        return None
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8")


class ReplayOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


@dataclass(frozen=True)
class ReplayAttempt:
    attempt: int
    elapsed_seconds: float
    outcome: ReplayOutcome
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class BackendResponse:
    """Response returned to the placeholder's caller."""

    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    attempts: int = 0
    history: list[ReplayAttempt] = field(default_factory=list, compare=False)

    @classmethod
    def from_requests(
        cls, response: requests.Response, attempts: int, history: list[ReplayAttempt]
    ) -> "BackendResponse":
        raw_headers = getattr(response.raw, "headers", None)
        if raw_headers is not None and hasattr(raw_headers, "items"):
            pairs = list(raw_headers.items())
        else:
            pairs = list(response.headers.items())
        return cls(
            status_code=response.status_code,
            headers=[(k, v) for k, v in pairs if k.lower() not in STRIPPED_RESPONSE_HEADERS],
            body=response.content or b"",
            attempts=attempts,
            history=list(history),
        )

    @classmethod
    def json_error(
        cls,
        status_code: int,
        message: str,
        error: Union[BaseException, str],
        extra_headers: Optional[Mapping[str, str]] = None,
        attempts: int = 0,
    ) -> "BackendResponse":
        headers = [("Content-Type", "application/json")]
        headers.extend((extra_headers or {}).items())
        payload = {"message": message, "error": str(error) or type(error).__name__}
        return cls(
            status_code=status_code,
            headers=headers,
            body=json.dumps(payload).encode("utf-8"),
            attempts=attempts,
        )

    @classmethod
    def service_unavailable(
        cls, error: Union[BaseException, str], retry_after: int = 30, attempts: int = 0
    ) -> "BackendResponse":
        """503 telling the caller to come back to the placeholder later."""
        return cls.json_error(
            503,
            STARTING_UP_MESSAGE,
            error,
            extra_headers={"Retry-After": str(retry_after)},
            attempts=attempts,
        )

    @classmethod
    def bad_gateway(cls, error: Union[BaseException, str], attempts: int = 0) -> "BackendResponse":
        return cls.json_error(502, FORWARD_ERROR_MESSAGE, error, attempts=attempts)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def grouped_headers(self) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        names: dict[str, str] = {}
        for key, value in self.headers:
            canonical = names.setdefault(key.lower(), key)
            grouped.setdefault(canonical, []).append(value)
        return grouped

    def is_text(self) -> bool:
        content_type = (self.header("Content-Type") or "").lower()
        if not self.body:
            return True
        if not any(marker in content_type for marker in TEXT_CONTENT_TYPES):
            return False
        try:
            self.body.decode("utf-8")
        except UnicodeDecodeError:
            return False
        return True

    def to_alb_response(self, multi_value_headers: bool = False) -> dict[str, Any]:
        """Render the response in the shape an ALB Lambda target must return."""
        try:
            reason = HTTPStatus(self.status_code).phrase
        except ValueError:
            reason = ""
        text = self.is_text()
        result: dict[str, Any] = {
            "statusCode": self.status_code,
            "statusDescription": f"{self.status_code} {reason}".strip(),
            "isBase64Encoded": not text,
            "body": self.body.decode("utf-8") if text else base64.b64encode(self.body).decode(),
        }
        grouped = self.grouped_headers()
        if multi_value_headers:
            result["multiValueHeaders"] = grouped
        else:
            result["headers"] = {name: ", ".join(values) for name, values in grouped.items()}
        return result


class RequestReplayer:
    """Re-issues a captured request until the backend gives a definitive answer."""

    def __init__(
        self,
        session: requests.Session,
        retry_interval: float = 5.0,
        max_attempts: int = 50,
        request_timeout: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session = session
        self.retry_interval = retry_interval
        self.max_attempts = max_attempts
        self.request_timeout = request_timeout
        self._sleep = sleep
        self._clock = clock

    def replay(
        self,
        request: InboundRequest,
        success_predicate: Callable[[int], bool] = is_success,
        retry_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> BackendResponse:
        """Replay ``request`` against the backend.

        Args:
            request: Captured inbound request.
            success_predicate: Status codes accepted as success.
            retry_interval: Seconds between retryable attempts.
            max_attempts: Attempt cap for this call.

        Returns:
            The first successful or definitive backend response, or a
            synthetic 502 for an unexpected error.

        Raises:
            ReplayBudgetExhaustedError: If every attempt was retryable.
        """
        interval = self.retry_interval if retry_interval is None else retry_interval
        budget = max_attempts or self.max_attempts
        headers = request.replay_headers()
        history: list[ReplayAttempt] = []
        started = self._clock()

        def record(attempt: int, outcome: ReplayOutcome, **kwargs: Any) -> None:
            history.append(
                ReplayAttempt(attempt, self._clock() - started, outcome, **kwargs)
            )

        logger.info(
            "Forwarding request to backend",
            extra={"method": request.method, "url": request.url, "max_attempts": budget},
        )

        for attempt in range(1, budget + 1):
            try:
                response = self._session.request(
                    request.method,
                    request.url,
                    headers=headers,
                    data=request.body,
                    timeout=self.request_timeout,
                    allow_redirects=False,
                )
            except requests.ConnectionError as e:
                record(attempt, ReplayOutcome.RETRYABLE_FAILURE, error=str(e))
                logger.warning(
                    "Backend unreachable; retrying",
                    extra={"attempt": attempt, "error": str(e), "retry_in": interval},
                )
            except Exception as e:
                record(attempt, ReplayOutcome.TERMINAL_FAILURE, error=str(e))
                logger.exception(
                    "Unexpected error forwarding request", extra={"attempt": attempt}
                )
                failure = BackendResponse.bad_gateway(e, attempts=attempt)
                failure.history = list(history)
                return failure
            else:
                status = response.status_code
                if success_predicate(status):
                    record(attempt, ReplayOutcome.SUCCESS, status_code=status)
                    logger.info(
                        "Request successful",
                        extra={"attempt": attempt, "status_code": status},
                    )
                    return BackendResponse.from_requests(response, attempt, history)
                if status not in RETRYABLE_STATUS_CODES:
                    record(attempt, ReplayOutcome.TERMINAL_FAILURE, status_code=status)
                    logger.warning(
                        "Backend returned a definitive error response",
                        extra={"attempt": attempt, "status_code": status},
                    )
                    return BackendResponse.from_requests(response, attempt, history)
                record(attempt, ReplayOutcome.RETRYABLE_FAILURE, status_code=status)
                logger.warning(
                    "Backend not ready; retrying",
                    extra={"attempt": attempt, "status_code": status, "retry_in": interval},
                )

            if attempt % PROGRESS_LOG_EVERY == 0:
                logger.info("Still retrying", extra={"attempt": attempt, "max_attempts": budget})
            if attempt < budget:
                self._sleep(interval)

        raise ReplayBudgetExhaustedError(
            f"Backend did not answer definitively within {budget} attempts", attempts=budget
        )
