from __future__ import annotations

from typing import Iterable, Optional


class ParcelError(Exception):
    """Base class for every error raised by epost_parcel."""


# --- Configuration / caller input --------------------------------------------

class ConfigurationError(ParcelError, RuntimeError):
    """Missing or invalid carrier configuration. Fatal; never retried automatically."""

    def __init__(self, message: str, *, variable: Optional[str] = None) -> None:
        super().__init__(message)
        self.variable = variable


class InvalidParameterError(ParcelError, ValueError):
    """Caller-supplied data failed validation; nothing was sent upstream."""

    def __init__(self, problems: Iterable[str] | str) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems: list[str] = list(problems)
        super().__init__("Invalid parameter values: " + ", ".join(self.problems))


# --- Transport (transient, safe to retry by the caller) ----------------------

class UpstreamError(ParcelError):
    """Base for transport-level failures talking to the carrier."""


class UpstreamTimeoutError(UpstreamError):
    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(f"No response from carrier within {timeout:g}s: {url}")
        self.url = url
        self.timeout = timeout


class UpstreamNetworkError(UpstreamError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Network error calling carrier ({reason}): {url}")
        self.url = url
        self.reason = reason


class UpstreamHttpError(UpstreamError):
    def __init__(self, status: int, body: str) -> None:
        preview = body[:500] if body else ""
        super().__init__(f"Carrier HTTP error {status}: {preview}")
        self.status = status
        self.body = body


# --- Carrier business rejections ---------------------------------------------

class CarrierApiError(ParcelError):
    """The carrier answered, but rejected the request. Shown to operators verbatim."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"EPost API Error: {code} - {message}")
        self.code = code
        self.message = message


class InvalidCustomerNumberError(CarrierApiError):
    hint = (
        "The carrier does not recognise the customer number (custNo). "
        "Check EPOST_CUSTOMER_ID against the number issued with the parcel contract."
    )

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message)
        self.args = (f"EPost API Error: {code} - {message}. {self.hint}",)


# --- State preconditions -------------------------------------------------------

class ShipmentStateError(ParcelError):
    """A state precondition was violated. Reported, never retried."""


class CannotCancelError(ShipmentStateError):
    pass


class AlreadyBookedError(ShipmentStateError):
    pass


class MissingTrackingNumberError(ShipmentStateError):
    pass


class ShipmentNotFoundError(ShipmentStateError, LookupError):
    pass


__all__ = [
    "ParcelError",
    "ConfigurationError",
    "InvalidParameterError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "UpstreamNetworkError",
    "UpstreamHttpError",
    "CarrierApiError",
    "InvalidCustomerNumberError",
    "ShipmentStateError",
    "CannotCancelError",
    "AlreadyBookedError",
    "MissingTrackingNumberError",
    "ShipmentNotFoundError",
]
