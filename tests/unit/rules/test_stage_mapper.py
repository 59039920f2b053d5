import pytest

from epost_parcel.models import ResInfo, TrackingEvent
from epost_parcel.rules.stage_mapper import (
    DELIVERED,
    IN_TRANSIT,
    PICKED_UP,
    SOURCE_API,
    SOURCE_SCRAPE,
    derive_stage,
    stage_from_api,
    stage_from_events,
    stage_from_text,
    treat_status_name,
)


def _ev(status):
    return TrackingEvent(date="2025.03.14", time="10:00", location="나주우체국", status=status)


def _info(code):
    return ResInfo(req_no="", res_no="", regi_no="", regi_po_nm="", res_date="", price="0", treat_stus_cd=code)


@pytest.mark.parametrize(
    "text, stage",
    [
        ("배달완료", DELIVERED),
        ("배달완료(수령인: 본인)", DELIVERED),
        ("배달준비", IN_TRANSIT),
        ("배달중", IN_TRANSIT),
        ("발송", IN_TRANSIT),
        ("도착", IN_TRANSIT),
        ("집하완료", PICKED_UP),
        ("접수", PICKED_UP),
        ("기타", None),
        ("", None),
        (None, None),
    ],
)
def test_stage_from_text(text, stage):
    assert stage_from_text(text) == stage


def test_latest_event_decides():
    assert stage_from_events([_ev("접수"), _ev("발송")]) == IN_TRANSIT
    assert stage_from_events([_ev("발송"), _ev("배달완료")]) == DELIVERED


def test_unmatched_event_falls_back_to_marker_then_picked_up():
    assert stage_from_events([_ev("미배달")], "배달완료") == DELIVERED
    assert stage_from_events([_ev("미배달")], None) == PICKED_UP
    assert stage_from_events([], "배달완료") is None


@pytest.mark.parametrize("code, stage", [("03", "03"), ("05", "05"), ("00", "00"), ("09", None), ("", None)])
def test_stage_from_api(code, stage):
    assert stage_from_api(_info(code)) == stage


def test_scrape_wins_over_api():
    assert derive_stage([_ev("집하")], None, _info("05")) == (PICKED_UP, SOURCE_SCRAPE)
    assert derive_stage([], None, _info("04")) == (IN_TRANSIT, SOURCE_API)
    assert derive_stage([], None, None) == (None, None)


@pytest.mark.parametrize(
    "code, name",
    [(None, "신청준비"), ("", "신청준비"), ("01", "소포신청"), ("03", "집하완료"), ("05", "배송완료"), ("77", "77")],
)
def test_treat_status_name(code, name):
    assert treat_status_name(code) == name
