"""
Delete-response translation into Kubernetes Status envelopes.

kubectl expects a metav1.Status body from DELETE calls, while the
backend answers with an empty object on success and a
{"error": {...}} document on failure. The helpers here turn either
into the Status shape.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SUCCESS_BODY = b'{"apiVersion":"v1","kind":"Status","status":"Success"}'

RAW_BODY_PREFIX = "original response from Cloud Run API: "


@dataclass
class StatusEnvelope:
    """A metav1.Status document."""

    status: str
    code: Optional[int] = None
    message: Optional[str] = None
    reason: Optional[str] = None
    api_version: str = "v1"
    kind: str = "Status"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "status": self.status,
        }
        if self.code is not None:
            data["code"] = self.code
        if self.message is not None:
            data["message"] = self.message
        if self.reason is not None:
            data["reason"] = self.reason
        return data

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")


@dataclass
class BackendError:
    """The fields kubectl cares about from a backend error document."""

    message: str = ""
    status: str = ""


def parse_backend_error(body: bytes) -> Optional[BackendError]:
    """Parse an {"error": {"message": ..., "status": ...}} document.

    Args:
        body: Raw backend response body

    Returns:
        BackendError with whatever string fields were present, or None
        if the body is not a JSON object of that shape
    """
    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None

    if not isinstance(document, dict):
        return None

    error = document.get("error", {})
    if not isinstance(error, dict):
        return None

    message = error.get("message")
    status = error.get("status")
    return BackendError(
        message=message if isinstance(message, str) else "",
        status=status if isinstance(status, str) else "",
    )


def success_envelope() -> bytes:
    """Body returned for every successful delete, whatever the backend sent."""
    return SUCCESS_BODY


def failure_envelope(status_code: int, body: bytes) -> StatusEnvelope:
    """Build the Failure envelope for a non-200 delete response.

    Args:
        status_code: HTTP status code returned by the backend
        body: Complete backend response body

    Returns:
        StatusEnvelope carrying the backend code, message and reason
    """
    error = parse_backend_error(body) or BackendError()

    if error.message:
        message = error.message
    else:
        message = RAW_BODY_PREFIX + body.decode("utf-8", errors="replace")

    if error.status:
        reason = error.status
    elif status_code == 404:
        reason = "NotFound"
    else:
        reason = "Unknown"

    return StatusEnvelope(
        status="Failure",
        code=status_code,
        message=message,
        reason=reason,
    )


def failure_body(status_code: int, body: bytes) -> bytes:
    """Serialized Failure envelope for a non-success delete response."""
    envelope = failure_envelope(status_code, body)
    logger.debug(f"Translated delete response ({status_code}): {envelope.to_dict()}")
    return envelope.to_json()
