import pytest

from epost_parcel.api.scraper import (
    HTML_HEADERS,
    TracePageScraper,
    parse_trace_page,
    tracking_page_url,
)
from epost_parcel.errors import UpstreamNetworkError

TRACE_HTML = """
<html><body>
<table class="table_col detail_off">
  <thead><tr><th>날짜</th><th>시간</th><th>발생국</th><th>처리현황</th></tr></thead>
  <tbody>
    <tr>
      <td>2025.03.14</td><td>10:12</td>
      <td><a href="#" onclick="goPostDetail('60125031412345', '접수')">나주우체국</a></td>
      <td>접수</td>
    </tr>
    <tr>
      <td>2025.03.14</td><td>18:40</td>
      <td><a href="#" onclick="goPostDetail('60125031412345', '발송')">나주우체국</a></td>
      <td><span>발송&nbsp;</span></td>
    </tr>
    <tr>
      <td>2025.03.15</td><td>03:05</td>
      <td>광주우편집중국</td>
      <td>도착</td>
    </tr>
  </tbody>
</table>
<input type="hidden" id="deliveryVal" value=" 배달준비 "/>
</body></html>
"""

NO_RESULT_HTML = "<html><body><p>조회된 결과가 없습니다.</p></body></html>"


def test_rows_become_events_in_page_order():
    result = parse_trace_page(TRACE_HTML, "60125031412345")

    assert [e.status for e in result.events] == ["접수", "발송", "도착"]
    assert result.events[0].location == "나주우체국"
    assert result.latest.date == "2025.03.15"
    assert result.latest.time == "03:05"
    assert result.latest.location == "광주우편집중국"
    assert result.delivery_status == "배달준비"
    assert not result.no_result


def test_status_prefers_the_detail_link_text():
    html = """<table><tr><td>2025.03.16</td><td>09:00</td>
    <td><a onclick="goPostDetail('1', '배달완료')">강남우체국</a></td><td>배달중</td></tr></table>"""
    assert parse_trace_page(html).latest.status == "배달완료"


def test_header_and_malformed_rows_are_skipped():
    html = """<table>
    <tr><td>날짜</td><td>시간</td><td>발생국</td><td>처리현황</td></tr>
    <tr><td>2025.03.16</td><td>09:00</td><td>only three</td></tr>
    <tr><td>yesterday</td><td>09:00</td><td>a</td><td>b</td></tr>
    </table>"""
    result = parse_trace_page(html)
    assert result.events == ()
    assert result.latest is None


def test_no_result_page():
    result = parse_trace_page(NO_RESULT_HTML, "601")
    assert result.no_result
    assert result.events == ()
    assert result.delivery_status is None


def test_empty_delivery_marker_is_none():
    html = '<input id="deliveryVal" value="   ">'
    assert parse_trace_page(html).delivery_status is None


def test_fetch_sends_tracking_number(fake_transport):
    t = fake_transport(TRACE_HTML)
    scraper = TracePageScraper("https://trace.test/page", transport=t)

    result = scraper.fetch("60125031412345")

    assert result.tracking_no == "60125031412345"
    assert len(result.events) == 3
    (call,) = t.calls
    assert call["url"] == "https://trace.test/page"
    assert call["params"] == {"sid1": "60125031412345", "displayHeader": "N"}
    assert call["headers"] == HTML_HEADERS


def test_fetch_propagates_upstream_errors(fake_transport):
    t = fake_transport(error=UpstreamNetworkError("https://trace.test/page", "ConnectionError"))
    with pytest.raises(UpstreamNetworkError):
        TracePageScraper("https://trace.test/page", transport=t).fetch("601")


def test_tracking_page_url():
    assert tracking_page_url("601", "https://trace.test/p") == "https://trace.test/p?sid1=601"
