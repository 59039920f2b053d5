from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple
import logging
import re

from bs4 import BeautifulSoup

from epost_parcel.models import TrackingEvent
from epost_parcel.models.env_cfg import DEFAULT_TRACE_URL

from .client import Transport
from .transport import RequestsTransport

NO_RESULT_PHRASES = ("조회된 결과가 없습니다", "조회하신 우편물 정보가 없습니다")

HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml",
    "User-Agent": "Mozilla/5.0 (compatible; epost-parcel/1.0)",
}

_DATE = re.compile(r"^\d{4}\.\d{2}\.\d{2}$")
_TIME = re.compile(r"^\d{2}:\d{2}$")
_GO_POST_DETAIL = re.compile(r"goPostDetail\([^,]+,\s*'([^']+)'")


@dataclass(frozen=True)
class ScrapeResult:
    tracking_no: str
    events: Tuple[TrackingEvent, ...] = ()
    delivery_status: Optional[str] = None
    no_result: bool = False
    raw_length: int = field(default=0, compare=False)

    @property
    def latest(self) -> Optional[TrackingEvent]:
        return self.events[-1] if self.events else None


def tracking_page_url(tracking_no: str, trace_url: str = DEFAULT_TRACE_URL) -> str:
    """Public trace page a customer can open for this number."""
    return f"{trace_url}?sid1={tracking_no}"


def _clean(text: str) -> str:
    return " ".join(text.replace("\xa0", " ").split())


def parse_trace_page(html: str, tracking_no: str = "") -> ScrapeResult:
    """Rows look like: date | time | location (with goPostDetail link) | status."""
    if any(phrase in html for phrase in NO_RESULT_PHRASES):
        return ScrapeResult(tracking_no=tracking_no, no_result=True, raw_length=len(html))

    soup = BeautifulSoup(html, "html.parser")
    events: list[TrackingEvent] = []

    for tr in soup.find_all("tr"):
        cells = tr.find_all("td")
        if len(cells) < 4:
            continue
        date = _clean(cells[0].get_text())
        time = _clean(cells[1].get_text())
        if not (_DATE.match(date) and _TIME.match(time)):
            continue

        location = _clean(cells[2].get_text())
        hit = _GO_POST_DETAIL.search(str(cells[2]))
        status = hit.group(1).strip() if hit else _clean(cells[3].get_text())

        events.append(TrackingEvent(date=date, time=time, location=location, status=status))

    delivery_status = None
    marker = soup.find("input", id="deliveryVal")
    if marker is not None and marker.get("value") is not None:
        delivery_status = marker["value"].strip() or None

    return ScrapeResult(
        tracking_no=tracking_no,
        events=tuple(events),
        delivery_status=delivery_status,
        raw_length=len(html),
    )


class TracePageScraper:
    """Fetches and parses the public tracking page. Upstream errors propagate to the caller."""

    def __init__(
        self,
        trace_url: str = DEFAULT_TRACE_URL,
        transport: Optional[Transport] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.trace_url = trace_url
        self.transport = transport or RequestsTransport(max_retries=1)
        self.logger = logger or logging.getLogger("epost_parcel.api.scraper")

    def fetch(self, tracking_no: str) -> ScrapeResult:
        resp = self.transport.get(
            self.trace_url,
            headers=HTML_HEADERS,
            params={"sid1": tracking_no, "displayHeader": "N"},
        )
        html = resp.text or ""
        result = parse_trace_page(html, tracking_no)
        if result.no_result:
            self.logger.info(
                "Trace page has no record yet for %s (%s)",
                tracking_no,
                tracking_page_url(tracking_no, self.trace_url),
            )
        else:
            self.logger.debug(
                "Trace page for %s: %d event(s), deliveryVal=%s",
                tracking_no,
                len(result.events),
                result.delivery_status,
            )
        return result
