import logging
from datetime import datetime

import pytest

from epost_parcel.api.scraper import ScrapeResult
from epost_parcel.errors import (
    CarrierApiError,
    MissingTrackingNumberError,
    ShipmentNotFoundError,
    UpstreamTimeoutError,
)
from epost_parcel.io.store import InMemoryShipmentRepository
from epost_parcel.models import ResInfo, ShipmentStatus as S, TrackingEvent
from epost_parcel.notifications import ORDER_DELIVERED, ORDER_PICKED_UP
from epost_parcel.pipelines.tracking import TrackingReconciler


def _page(*statuses, tracking_no="60125031412345"):
    events = tuple(
        TrackingEvent(date="2025.03.14", time=f"1{i}:00", location="나주우체국", status=s)
        for i, s in enumerate(statuses)
    )
    return ScrapeResult(tracking_no=tracking_no, events=events)


class FakeScraper:
    def __init__(self, result=None, error=None):
        self.result = result if result is not None else _page()
        self.error = error
        self.fetched = []

    def fetch(self, tracking_no):
        self.fetched.append(tracking_no)
        if self.error is not None:
            raise self.error
        return self.result


class FakeOrders:
    def __init__(self, code="00", error=None):
        self.code = code
        self.error = error
        self.calls = []

    def get_res_info(self, *, req_type, order_no, req_ymd):
        self.calls.append((req_type, order_no, req_ymd))
        if self.error is not None:
            raise self.error
        return ResInfo("R", "S", "60125031412345", "나주우체국", "20250314", "3300", treat_stus_cd=self.code)


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def notify(self, user_id, type, title, body, order_id):
        if self.fail:
            raise RuntimeError("bridge offline")
        self.sent.append((user_id, type, order_id))


@pytest.fixture
def repo(make_record):
    r = InMemoryShipmentRepository()
    r.add(make_record())
    return r


def _reconciler(repo, scraper, orders=None, notifier=None, now=datetime(2025, 3, 14, 12, 0)):
    return TrackingReconciler(repo, scraper, orders, notifier=notifier, clock=lambda: now)


def test_pickup_scan_moves_booked_to_picked_up(repo):
    notifier = RecordingNotifier()
    outcome = _reconciler(repo, FakeScraper(_page("접수")), notifier=notifier).poll("60125031412345")

    assert outcome.transitioned
    assert (outcome.previous_status, outcome.status) == (S.BOOKED, S.PICKED_UP)
    assert outcome.source == "scrape"
    rec = repo.get("ORD-1")
    assert rec.status is S.PICKED_UP
    assert rec.pickup_completed_at == datetime(2025, 3, 14, 12, 0)
    assert rec.tracking_events[-1].description == "BOOKED -> PICKED_UP"
    assert notifier.sent == [("user-1", ORDER_PICKED_UP, "ORD-1")]


def test_pickup_leg_delivered_means_inbound(repo):
    outcome = _reconciler(repo, FakeScraper(_page("접수", "배달완료"))).poll("60125031412345")
    assert outcome.status is S.INBOUND
    assert repo.get("ORD-1").delivery_completed_at is None


def test_no_backward_move(repo):
    rec = repo.get("ORD-1")
    rec.status = S.IN_TRANSIT
    repo.save(rec)

    outcome = _reconciler(repo, FakeScraper(_page("접수"))).poll("60125031412345")

    assert not outcome.transitioned
    assert repo.get("ORD-1").tracking_events == ()


def test_scrape_failure_falls_back_to_api(repo, caplog):
    caplog.set_level(logging.WARNING)
    orders = FakeOrders(code="04")
    scraper = FakeScraper(error=UpstreamTimeoutError("https://trace", 30))

    outcome = _reconciler(repo, scraper, orders).poll("60125031412345")

    assert outcome.status is S.IN_TRANSIT
    assert outcome.source == "api"
    assert outcome.scrape_error and "30s" in outcome.scrape_error
    assert orders.calls == [("1", "ORD-1", "20250314")]
    assert repo.get("ORD-1").tracking_events[-1].status == "배송중"
    assert "Trace page unavailable" in caplog.text


def test_api_not_called_when_page_has_events(repo):
    orders = FakeOrders(code="05")
    _reconciler(repo, FakeScraper(_page("접수")), orders).poll("60125031412345")
    assert orders.calls == []


@pytest.mark.parametrize(
    "error",
    [CarrierApiError("ERR-500", "down"), UpstreamTimeoutError("http://ship.test", 30)],
)
def test_api_failure_is_recorded_and_poll_continues(repo, caplog, error):
    caplog.set_level(logging.WARNING)
    orders = FakeOrders(error=error)

    outcome = _reconciler(repo, FakeScraper(_page()), orders).poll("60125031412345")

    assert not outcome.transitioned
    assert outcome.api_error == str(error)
    assert outcome.scrape_error is None
    assert repo.get("ORD-1").status is S.BOOKED
    assert "GetResInfo failed for order ORD-1" in caplog.text


def test_api_failure_after_page_failure_keeps_both_errors(repo):
    scraper = FakeScraper(error=UpstreamTimeoutError("https://trace", 30))
    orders = FakeOrders(error=CarrierApiError("ERR-500", "down"))

    outcome = _reconciler(repo, scraper, orders).poll("60125031412345")

    assert outcome.scrape_error and outcome.api_error
    assert outcome.to_dict()["api_error"] == "EPost API Error: ERR-500 - down"
    assert repo.get("ORD-1").status is S.BOOKED


def test_mock_booking_skips_api(make_record):
    repo = InMemoryShipmentRepository()
    repo.add(make_record(mock=True))
    orders = FakeOrders(code="05")

    outcome = _reconciler(repo, FakeScraper(_page()), orders).poll("60125031412345")

    assert not outcome.transitioned
    assert orders.calls == []


def test_terminal_records_are_not_polled(make_record):
    repo = InMemoryShipmentRepository()
    repo.add(make_record(status=S.CANCELLED))
    scraper = FakeScraper(_page("배달완료"))

    outcome = _reconciler(repo, scraper).poll("60125031412345")

    assert outcome.status is S.CANCELLED
    assert scraper.fetched == []


def test_failing_notifier_keeps_transition(repo):
    notifier = RecordingNotifier(fail=True)
    outcome = _reconciler(repo, FakeScraper(_page("발송")), notifier=notifier).poll("60125031412345")
    assert outcome.status is S.IN_TRANSIT
    assert repo.get("ORD-1").status is S.IN_TRANSIT


def test_delivery_leg_through_poll_order(make_record):
    repo = InMemoryShipmentRepository()
    repo.add(make_record(status=S.OUT_FOR_DELIVERY, delivery_tracking_no="60225031500001"))
    notifier = RecordingNotifier()
    scraper = FakeScraper(_page("배달완료", tracking_no="60225031500001"))

    outcome = _reconciler(repo, scraper, notifier=notifier).poll_order("ORD-1")

    assert scraper.fetched == ["60225031500001"]
    assert outcome.leg.value == "delivery"
    assert outcome.status is S.DELIVERED
    rec = repo.get("ORD-1")
    assert rec.delivery_completed_at == datetime(2025, 3, 14, 12, 0)
    assert rec.delivery_started_at == datetime(2025, 3, 14, 12, 0)
    assert notifier.sent[-1][1] == ORDER_DELIVERED


def test_existing_timestamp_is_kept(make_record):
    first = datetime(2025, 3, 13, 8, 0)
    repo = InMemoryShipmentRepository()
    repo.add(make_record(status=S.PICKED_UP, pickup_completed_at=first))

    _reconciler(repo, FakeScraper(_page("발송"))).poll("60125031412345")

    assert repo.get("ORD-1").pickup_completed_at == first


def test_unknown_tracking_number(repo):
    with pytest.raises(ShipmentNotFoundError):
        _reconciler(repo, FakeScraper()).poll("999")


def test_order_without_numbers(make_record):
    repo = InMemoryShipmentRepository()
    repo.add(make_record(pickup_tracking_no=None))
    with pytest.raises(MissingTrackingNumberError):
        _reconciler(repo, FakeScraper()).poll_order("ORD-1")


def test_outcome_to_dict(repo):
    out = _reconciler(repo, FakeScraper(_page("접수"))).poll("60125031412345").to_dict()
    assert out["status"] == "PICKED_UP"
    assert out["previous_status"] == "BOOKED"
    assert out["leg"] == "pickup"
    assert out["transitioned"] is True
    assert out["latest_event"]["status"] == "접수"


def test_delivered_repoll_appends_nothing_and_stays_quiet(make_record):
    repo = InMemoryShipmentRepository()
    repo.add(make_record(status=S.DELIVERED, delivery_tracking_no="602"))
    notifier = RecordingNotifier()

    outcome = _reconciler(repo, FakeScraper(_page("배달완료")), notifier=notifier).poll("602")

    assert not outcome.transitioned
    assert repo.get("ORD-1").tracking_events == ()
    assert notifier.sent == []
