from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class FcmError(Exception):
    """Base class for delivery-engine failures."""


class ConfigurationError(FcmError):
    """Credentials are missing or unusable (including assertion signing failures)."""


class TokenExchangeError(FcmError):
    """The authorization endpoint did not return a usable access token."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ErrorCategory(str, Enum):
    UNREGISTERED = "unregistered"
    INVALID_TOKEN = "invalid_token"
    INVALID_ARGUMENT = "invalid_argument"
    SENDER_MISMATCH = "sender_mismatch"
    QUOTA_EXCEEDED = "quota_exceeded"
    AUTH_EXPIRED = "auth_expired"
    UNAUTHORIZED = "unauthorized"
    BAD_REQUEST = "bad_request"
    SERVER_ERROR = "server_error"
    THIRD_PARTY_AUTH_ERROR = "third_party_auth_error"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


INVALID_TOKEN_CATEGORIES = frozenset(
    category.value
    for category in (ErrorCategory.UNREGISTERED, ErrorCategory.INVALID_TOKEN, ErrorCategory.SENDER_MISMATCH)
)

# FcmError.errorCode values documented by the v1 send API.
PROVIDER_ERROR_CODES: dict[str, tuple[ErrorCategory, str]] = {
    "UNREGISTERED": (ErrorCategory.UNREGISTERED, "Registration token is unregistered or expired"),
    "INVALID_ARGUMENT": (ErrorCategory.INVALID_ARGUMENT, "Invalid message format or parameters"),
    "SENDER_ID_MISMATCH": (ErrorCategory.SENDER_MISMATCH, "Registration token belongs to a different sender"),
    "QUOTA_EXCEEDED": (ErrorCategory.QUOTA_EXCEEDED, "Sending limit exceeded for the message target"),
    "UNAVAILABLE": (ErrorCategory.SERVER_ERROR, "Gateway is temporarily overloaded"),
    "INTERNAL": (ErrorCategory.SERVER_ERROR, "Gateway encountered an internal error"),
    "THIRD_PARTY_AUTH_ERROR": (
        ErrorCategory.THIRD_PARTY_AUTH_ERROR,
        "APNs certificate or web push auth key was invalid or missing",
    ),
    "UNSPECIFIED_ERROR": (ErrorCategory.UNKNOWN, "Gateway did not specify the error"),
}

ACCESS_TOKEN_EXPIRED_REASON = "ACCESS_TOKEN_EXPIRED"


def category_value(category: ErrorCategory | str) -> str:
    return category.value if isinstance(category, ErrorCategory) else str(category)


@dataclass(frozen=True)
class Classification:
    category: str
    message: str
    provider_code: str | None = None
    evict_access_token: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", category_value(self.category))


def parse_error_body(body: str | dict | None) -> dict[str, Any]:
    if isinstance(body, dict):
        return body
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_details(payload: dict[str, Any]) -> list[dict[str, Any]]:
    error = payload.get("error")
    if not isinstance(error, dict):
        return []
    details = error.get("details")
    if not isinstance(details, list):
        return []
    return [d for d in details if isinstance(d, dict)]


def _provider_code(details: list[dict[str, Any]]) -> str | None:
    for detail in details:
        code = detail.get("errorCode")
        if isinstance(code, str) and code:
            return code
    return None


def _names_registration_token(details: list[dict[str, Any]]) -> bool:
    # Wording-dependent: the gateway only says so in the human-readable description.
    for detail in details:
        for violation in detail.get("fieldViolations") or []:
            if not isinstance(violation, dict):
                continue
            field = str(violation.get("field", ""))
            description = str(violation.get("description", "")).lower()
            if field.endswith("token") and "registration token" in description:
                return True
    return False


def _has_expired_access_token(details: list[dict[str, Any]]) -> bool:
    return any(detail.get("reason") == ACCESS_TOKEN_EXPIRED_REASON for detail in details)


def classify(status_code: int, body: str | dict | None) -> Classification:
    payload = parse_error_body(body)
    details = _error_details(payload)

    code = _provider_code(details)
    if code:
        if code == "INVALID_ARGUMENT" and _names_registration_token(details):
            return Classification(ErrorCategory.INVALID_TOKEN, "Registration token is not a valid FCM token", code)
        known = PROVIDER_ERROR_CODES.get(code)
        if known:
            return Classification(known[0], known[1], code)
        return Classification(code.lower(), f"FCM API error: {code}", code)

    if _has_expired_access_token(details):
        return Classification(
            ErrorCategory.AUTH_EXPIRED,
            "Access token expired",
            ACCESS_TOKEN_EXPIRED_REASON,
            evict_access_token=True,
        )

    if status_code == 401:
        return Classification(
            ErrorCategory.UNAUTHORIZED,
            "FCM authentication failed - invalid access token",
            evict_access_token=True,
        )
    if status_code == 404:
        return Classification(ErrorCategory.UNREGISTERED, "Registration token not found")
    if status_code == 400:
        return Classification(ErrorCategory.BAD_REQUEST, "FCM bad request - invalid message format")
    if status_code >= 500:
        return Classification(ErrorCategory.SERVER_ERROR, "FCM server error - temporary issue")
    return Classification(ErrorCategory.UNKNOWN, f"FCM API error (HTTP {status_code})")
