from dataclasses import replace

import pytest

from epost_parcel.errors import (
    CannotCancelError,
    CarrierApiError,
    ConfigurationError,
    InvalidCustomerNumberError,
    ShipmentNotFoundError,
)
from epost_parcel.api.client import EPostClient
from epost_parcel.api.orders import ParcelOrders
from epost_parcel.io.store import InMemoryShipmentRepository
from epost_parcel.models import CancelOrderResponse, ShipmentRecord, ShipmentStatus
from epost_parcel.pipelines.cancellation import Canceller, is_no_reservation

CANCELLED = CancelOrderResponse(
    req_no="2503146403648011",
    res_no="250314521191234",
    cancel_regi_no="60125031412345",
    cancel_date="20250314",
    canceled_yn="Y",
)


class FakeOrders:
    def __init__(self, answer=CANCELLED, error=None):
        self.answer = answer
        self.error = error
        self.calls = []

    def cancel_order(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def repo(make_record):
    r = InMemoryShipmentRepository()
    r.add(make_record())
    return r


def test_cancel_replays_booking_identifiers(repo):
    orders = FakeOrders()
    result = Canceller(repo, orders).cancel("ORD-1")

    assert result.cancelled and not result.deleted and not result.soft_success
    assert orders.calls == [
        {
            "appr_no": "A123",
            "req_type": "1",
            "pay_type": "1",
            "req_no": "2503146403648011",
            "res_no": "250314521191234",
            "regi_no": "60125031412345",
            "req_ymd": "20250314",
            "delete": False,
        }
    ]
    rec = repo.get("ORD-1")
    assert rec.status is ShipmentStatus.CANCELLED
    assert rec.pickup_tracking_no is None


def test_return_parcel_flags_are_replayed(make_record):
    repo = InMemoryShipmentRepository()
    rec = make_record()
    rec.booking_context = replace(rec.booking_context, req_type="2", pay_type="2")
    repo.add(rec)
    orders = FakeOrders()

    Canceller(repo, orders).cancel("ORD-1")

    assert orders.calls[0]["req_type"] == "2"
    assert orders.calls[0]["pay_type"] == "2"


def test_delete_after_cancel_removes_record(repo):
    orders = FakeOrders(answer=CancelOrderResponse("", "", "", "", canceled_yn="D"))
    result = Canceller(repo, orders).cancel("ORD-1", delete_after_cancel=True)

    assert result.deleted
    assert orders.calls[0]["delete"] is True
    assert repo.get("ORD-1") is None


@pytest.mark.parametrize(
    "error",
    [
        CarrierApiError("ERR-321", "해당 신청정보가 없습니다"),
        CarrierApiError("ERR-999", "신청정보가 없습니다"),
    ],
)
def test_no_reservation_is_a_soft_success(repo, error):
    result = Canceller(repo, FakeOrders(error=error)).cancel("ORD-1")
    assert result.soft_success
    assert repo.get("ORD-1").status is ShipmentStatus.CANCELLED


def test_hard_carrier_failure_leaves_record_untouched(repo):
    with pytest.raises(CarrierApiError):
        Canceller(repo, FakeOrders(error=CarrierApiError("ERR-500", "system error"))).cancel("ORD-1")
    rec = repo.get("ORD-1")
    assert rec.status is ShipmentStatus.BOOKED
    assert rec.pickup_tracking_no == "60125031412345"


def test_carrier_refusal_is_an_error(repo):
    refused = CancelOrderResponse("", "", "", "", canceled_yn="N", not_cancel_reason="이미 집하됨")
    with pytest.raises(CarrierApiError) as e:
        Canceller(repo, FakeOrders(answer=refused)).cancel("ORD-1")
    assert e.value.code == "NOT_CANCELLED"
    assert "이미 집하됨" in str(e.value)
    assert repo.get("ORD-1").status is ShipmentStatus.BOOKED


@pytest.mark.parametrize("status", [ShipmentStatus.PICKED_UP, ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED])
def test_only_uncollected_orders_can_be_cancelled(make_record, status):
    repo = InMemoryShipmentRepository()
    repo.add(make_record(status=status))
    orders = FakeOrders()

    with pytest.raises(CannotCancelError):
        Canceller(repo, orders).cancel("ORD-1")

    assert orders.calls == []
    assert repo.get("ORD-1").status is status


def test_missing_context_cannot_be_cancelled():
    repo = InMemoryShipmentRepository()
    repo.add(ShipmentRecord(order_id="ORD-1", pickup_tracking_no="601"))
    with pytest.raises(CannotCancelError):
        Canceller(repo, FakeOrders()).cancel("ORD-1")
    assert repo.get("ORD-1").status is ShipmentStatus.BOOKED


def test_mock_booking_cancels_without_carrier(make_record):
    repo = InMemoryShipmentRepository()
    repo.add(make_record(mock=True))
    result = Canceller(repo, None).cancel("ORD-1")
    assert result.soft_success and result.carrier_result is None


def test_real_booking_needs_credentials(repo):
    with pytest.raises(ConfigurationError):
        Canceller(repo, None).cancel("ORD-1")


def test_unknown_order(repo):
    with pytest.raises(ShipmentNotFoundError):
        Canceller(repo, FakeOrders()).cancel("nope")


def test_is_no_reservation():
    assert is_no_reservation(CarrierApiError("ERR-321", ""))
    assert is_no_reservation(CarrierApiError("X", "해당 신청 정보가 없습니다"))
    assert not is_no_reservation(CarrierApiError("ERR-211", "고객번호 오류"))
    assert not is_no_reservation(InvalidCustomerNumberError("ERR-321", "신청정보가 없습니다"))
    assert not is_no_reservation(CarrierApiError("ERR-105", "승인번호가 존재하지 않습니다"))
    assert not is_no_reservation(CarrierApiError("ERR-404", "office code not found"))


def test_handle_cancel_request(repo):
    from epost_parcel.models import CancelRequest

    orders = FakeOrders()
    result = Canceller(repo, orders).handle(CancelRequest("ORD-1", delete_after_cancel=True))
    assert result.deleted
    assert orders.calls[0]["delete"] is True


@pytest.mark.usefixtures("require_seed")
@pytest.mark.parametrize(
    "body, expected",
    [
        (
            "<error><error_code>ERR-211</error_code>"
            "<message><![CDATA[고객번호가 존재하지 않습니다]]></message></error>",
            InvalidCustomerNumberError,
        ),
        (
            "<error><error_code>ERR-105</error_code><message>승인번호가 존재하지 않습니다</message></error>",
            CarrierApiError,
        ),
        (
            "<Error><ErrorCode>ERR-404</ErrorCode><ErrorMessage>office code not found</ErrorMessage></Error>",
            CarrierApiError,
        ),
    ],
)
def test_unrelated_does_not_exist_errors_keep_the_booking(
    repo, fake_transport, credentials, settings, body, expected
):
    orders = ParcelOrders(EPostClient(credentials, settings, fake_transport(body)))

    with pytest.raises(expected):
        Canceller(repo, orders).cancel("ORD-1")

    rec = repo.get("ORD-1")
    assert rec.status is ShipmentStatus.BOOKED
    assert rec.pickup_tracking_no == "60125031412345"


@pytest.mark.usefixtures("require_seed")
def test_carrier_no_reservation_answer_is_soft_success(repo, fake_transport, credentials, settings):
    body = "<error><error_code>ERR-321</error_code><message>해당 신청정보가 없습니다</message></error>"
    orders = ParcelOrders(EPostClient(credentials, settings, fake_transport(body)))

    result = Canceller(repo, orders).cancel("ORD-1")

    assert result.soft_success
    assert repo.get("ORD-1").status is ShipmentStatus.CANCELLED
