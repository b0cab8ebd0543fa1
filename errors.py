"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
PERMISSION_DENIED = "PERMISSION_DENIED"
TRANSPORT_ERROR = "TRANSPORT_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
DECODE_ERROR = "DECODE_ERROR"

ERROR_MESSAGES = {
    MISSING_CREDENTIAL: "API key is missing, please configure it first.",
    DEVICE_UNAVAILABLE: "No microphone is available.",
    PERMISSION_DENIED: "Microphone permission is required.",
    TRANSPORT_ERROR: "Connection error occurred.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    DECODE_ERROR: "Received malformed audio from the model.",
}


class PulseError(Exception):
    code = TRANSPORT_ERROR

    def __init__(self, message: str = "", code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        super().__init__(self.message)


class ConfigurationError(PulseError):
    code = MISSING_CREDENTIAL


class MissingCredentialError(ConfigurationError):
    pass


class DeviceError(PulseError):
    code = DEVICE_UNAVAILABLE


class TransportError(PulseError):
    code = TRANSPORT_ERROR


class DecodeError(PulseError):
    code = DECODE_ERROR


def classify_transport_error(exc: BaseException) -> str:
    """Map an SDK/network exception to an error code."""
    low = str(exc).lower()
    if "401" in low or "403" in low or "auth" in low or "api key" in low or "apikey" in low:
        return AUTH_FAILED
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return NETWORK_ERROR
    if "timeout" in low or "network" in low or "connection" in low:
        return NETWORK_ERROR
    return TRANSPORT_ERROR


def describe(exc: BaseException) -> tuple[str, str]:
    """Return ``(code, message)`` for reporting ``exc`` to the caller."""
    if isinstance(exc, PulseError):
        return exc.code, exc.message
    message = str(exc) or exc.__class__.__name__
    return classify_transport_error(exc), message
