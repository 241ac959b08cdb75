"""Exception types raised by the export pipeline."""
from typing import Optional


class ExportError(Exception):
    """Base class for export pipeline failures."""


class ExtractionError(ExportError):
    """Raised when the data source cannot produce records."""


class DeliveryError(ExportError):
    """Raised when a payload could not be delivered to the receiver."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ClientError(DeliveryError):
    """4xx from the receiver. Permanent: never retried."""


class ServerError(DeliveryError):
    """5xx from the receiver. Transient: retried up to the bound."""


class UnexpectedResponseError(DeliveryError):
    """Any non-202 status below 400. Permanent."""


class RetriesExhaustedError(DeliveryError):
    """Every attempt hit a transient failure."""

    def __init__(self, message: str, *, attempts: int, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts
