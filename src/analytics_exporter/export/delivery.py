"""
HTTP delivery of payload documents to the remote receiver.

Protocol:
  POST <receiver_url>
  Content-Type: application/json; charset=UTF-8
  body = serialized document (serialized once, re-sent verbatim on retry)

Response handling, per attempt:
  202        → success, body parsed into an Acknowledgement
  5xx        → transient, sleep RETRY_DELAY_SECONDS and retry while attempts remain
  4xx        → permanent, raise ClientError immediately
  other      → raise UnexpectedResponseError immediately
  transport  → retried only if should_retry() recognises a transient network
               condition, otherwise re-raised immediately

The body is sent at most MAX_RETRIES times. After the last transient failure
RetriesExhaustedError is raised, chained to the last failure.
"""
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import BaseModel, ValidationError

from analytics_exporter.config import DEFAULT_RECEIVER_URL
from analytics_exporter.export.errors import (
    ClientError,
    DeliveryError,
    RetriesExhaustedError,
    ServerError,
    UnexpectedResponseError,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 2.0
CONNECT_TIMEOUT_SECONDS = 30.0
READ_TIMEOUT_SECONDS = 60.0
CONTENT_TYPE = "application/json; charset=UTF-8"

RETRYABLE_KEYWORDS = ("timeout", "connection", "network", "server error")


class Acknowledgement(BaseModel):
    """Receiver reply to an accepted payload. Unknown fields are ignored."""

    status: Optional[str] = None
    job_id: Optional[str] = None
    message: Optional[str] = None
    queue_position: Optional[int] = None
    error: Optional[str] = None


def should_retry(exc: BaseException) -> bool:
    """True if the exception looks like a transient network condition."""
    text = f"{type(exc).__name__} {exc}".lower()
    return any(keyword in text for keyword in RETRYABLE_KEYWORDS)


class ReceiverClient:
    """Sends serialized documents to the receiver with bounded retries."""

    def __init__(
        self,
        receiver_url: Optional[str] = None,
        *,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        read_timeout: float = READ_TIMEOUT_SECONDS,
    ):
        """
        Args:
            receiver_url: Collector endpoint. Blank falls back to the default.
            http_client: httpx.Client to use (tests pass one with a MockTransport).
            sleep: Called with the backoff in seconds between attempts.
        """
        self.receiver_url = (
            receiver_url.strip() if receiver_url and receiver_url.strip() else DEFAULT_RECEIVER_URL
        )
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout)
        )
        self._sleep = sleep
        logger.debug("ReceiverClient initialized with URL: %s", self.receiver_url)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ReceiverClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def send(self, document: Dict[str, Any]) -> Acknowledgement:
        """Serialize the document once and deliver it."""
        return self.send_json(json.dumps(document, ensure_ascii=False))

    def send_json(self, body: str) -> Acknowledgement:
        payload = body.encode("utf-8")
        logger.debug("Payload size: %d bytes", len(payload))

        last_error: Optional[BaseException] = None
        for attempt in range(1, MAX_RETRIES + 1):
            logger.debug("Attempt %d/%d to send data to receiver", attempt, MAX_RETRIES)
            try:
                response = self._post(payload)
            except (httpx.TransportError, OSError) as exc:
                last_error = exc
                logger.error("Error on attempt %d/%d: %s", attempt, MAX_RETRIES, exc)
                if not should_retry(exc):
                    raise
                self._backoff(attempt)
                continue

            status = response.status_code
            text = response.text
            logger.debug("Receiver responded with status code %d: %s", status, text)

            if status == 202:
                ack = self._parse_acknowledgement(text, status)
                logger.debug("Data accepted successfully. Job ID: %s", ack.job_id)
                return ack

            if status >= 500:
                last_error = ServerError(
                    f"Server error: {status} - {text}", status_code=status, body=text
                )
                logger.warning("Server error (%d), will retry. Response: %s", status, text)
                self._backoff(attempt)
                continue

            if status >= 400:
                message = f"Client error: {status} - {text}"
                logger.error(message)
                raise ClientError(message, status_code=status, body=text)

            logger.warning("Unexpected response code: %d", status)
            raise UnexpectedResponseError(
                f"Unexpected response code: {status}", status_code=status, body=text
            )

        message = f"Failed to send data after {MAX_RETRIES} attempts"
        logger.error(message)
        raise RetriesExhaustedError(
            message,
            attempts=MAX_RETRIES,
            status_code=getattr(last_error, "status_code", None),
            body=getattr(last_error, "body", None),
        ) from last_error

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _post(self, payload: bytes) -> httpx.Response:
        return self._http.post(
            self.receiver_url,
            content=payload,
            headers={"Content-Type": CONTENT_TYPE},
        )

    def _backoff(self, attempt: int) -> None:
        if attempt < MAX_RETRIES:
            logger.debug("Waiting %.1f s before retry...", RETRY_DELAY_SECONDS)
            self._sleep(RETRY_DELAY_SECONDS)

    def _parse_acknowledgement(self, text: str, status: int) -> Acknowledgement:
        try:
            return Acknowledgement.model_validate_json(text)
        except ValidationError as exc:
            raise DeliveryError(
                f"Invalid acknowledgement from receiver: {exc}", status_code=status, body=text
            ) from exc
