# src/epost_parcel/rules/stage_mapper.py
from __future__ import annotations

from typing import Optional, Sequence, Tuple

from epost_parcel.models import ResInfo, TrackingEvent

NOT_SUBMITTED = "00"
APPLIED = "01"
WAYBILL_PRINTED = "02"
PICKED_UP = "03"
IN_TRANSIT = "04"
DELIVERED = "05"

SOURCE_SCRAPE = "scrape"
SOURCE_API = "api"

_TREAT_STATUS_NAMES = {
    NOT_SUBMITTED: "신청준비",
    APPLIED: "소포신청",
    WAYBILL_PRINTED: "운송장출력",
    PICKED_UP: "집하완료",
    IN_TRANSIT: "배송중",
    DELIVERED: "배송완료",
}

# First matching group wins; order matters ("배달완료" also contains "배달").
_TEXT_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (DELIVERED, ("배달완료", "수령")),
    (IN_TRANSIT, ("배달중", "배달준비", "도착", "발송", "출발", "이동")),
    (PICKED_UP, ("집하", "접수")),
)


def treat_status_name(code: Optional[str]) -> str:
    """Korean label for a treatStusCd; unknown codes come back unchanged."""
    if not code:
        return _TREAT_STATUS_NAMES[NOT_SUBMITTED]
    return _TREAT_STATUS_NAMES.get(code, code)


def stage_from_text(text: Optional[str]) -> Optional[str]:
    """Keyword match on carrier free text; None when nothing matches."""
    if not text:
        return None
    for code, keywords in _TEXT_RULES:
        if any(k in text for k in keywords):
            return code
    return None


def stage_from_events(
    events: Sequence[TrackingEvent], delivery_status: Optional[str] = None
) -> Optional[str]:
    """
    Stage implied by the latest scraped event.

    - no events: None
    - latest event text matches a keyword group: that stage
    - else the page's delivery marker, if it matches
    - else 03, since any event at all means the carrier has the parcel
    """
    if not events:
        return None
    return stage_from_text(events[-1].status) or stage_from_text(delivery_status) or PICKED_UP


def stage_from_api(info: Optional[ResInfo]) -> Optional[str]:
    if info is None:
        return None
    code = (info.treat_stus_cd or "").strip()
    return code if code in _TREAT_STATUS_NAMES else None


def derive_stage(
    events: Sequence[TrackingEvent],
    delivery_status: Optional[str],
    api: Optional[ResInfo],
) -> Tuple[Optional[str], Optional[str]]:
    """(stage, source). Scraped events win over the API's treatStusCd."""
    stage = stage_from_events(events, delivery_status)
    if stage is not None:
        return stage, SOURCE_SCRAPE
    stage = stage_from_api(api)
    if stage is not None:
        return stage, SOURCE_API
    return None, None
