from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from cryptography.exceptions import UnsupportedAlgorithm

from epost_parcel.models import CarrierCredentials, CarrierSettings

CIPHER_KEY = "0123456789abcdef"


class FakeResponse:
    def __init__(self, text: str = "", status_code: int = 200) -> None:
        self.text = text
        self.status_code = status_code


class FakeTransport:
    """Records GETs and answers from a queue (or one fixed body)."""

    def __init__(self, *bodies: str, status_code: int = 200, error: Optional[Exception] = None) -> None:
        self.bodies: List[str] = list(bodies)
        self.status_code = status_code
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, *, headers=None, params=None):
        self.calls.append({"url": url, "headers": headers, "params": dict(params or {})})
        if self.error is not None:
            raise self.error
        body = self.bodies.pop(0) if len(self.bodies) > 1 else (self.bodies[0] if self.bodies else "")
        return FakeResponse(body, self.status_code)


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def credentials() -> CarrierCredentials:
    return CarrierCredentials(api_key="test-api-key-1234", cipher_key=CIPHER_KEY, customer_no="C0001")


@pytest.fixture
def settings() -> CarrierSettings:
    return CarrierSettings(base_url="http://ship.test", approval_no="A123", office_ser="OFF1")


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 14, 9, 30, 0)


@pytest.fixture
def require_seed():
    """Skip when the linked OpenSSL build has no SEED cipher."""
    from epost_parcel.api.codec import RequestCodec

    try:
        RequestCodec(CIPHER_KEY).encrypt("probe")
    except UnsupportedAlgorithm:
        pytest.skip("SEED cipher not available in this OpenSSL build")


@pytest.fixture(autouse=True)
def _propagate_package_logs(monkeypatch):
    """get_logger() turns propagation off; caplog listens on the root logger."""
    monkeypatch.setattr(logging.getLogger("epost_parcel"), "propagate", True)


def _make_record(
    order_id: str = "ORD-1",
    status=None,
    pickup_tracking_no: Optional[str] = "60125031412345",
    mock: bool = False,
    **overrides: Any,
):
    from epost_parcel.models import BookingContext, ShipmentRecord, ShipmentStatus

    ctx = BookingContext(
        order_no=order_id,
        request_id="2503146403648011",
        reservation_id="250314521191234",
        approval_no="A123",
        req_type="1",
        pay_type="1",
        req_ymd="20250314",
        mock=mock,
    )
    fields: Dict[str, Any] = {
        "order_id": order_id,
        "status": status or ShipmentStatus.BOOKED,
        "user_id": "user-1",
        "pickup_tracking_no": pickup_tracking_no,
        "booking_context": ctx,
    }
    fields.update(overrides)
    return ShipmentRecord(**fields)


@pytest.fixture
def make_record():
    return _make_record
