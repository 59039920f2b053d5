"""
Carrier XML answers and how we classify them.

The gateway has shipped several error shapes over the years:

    <error><error_code>ERR-211</error_code><message>...</message></error>
    <Error><ErrorCode>...</ErrorCode><ErrorMessage>...</ErrorMessage></Error>
    <root><error_code>...</error_code>...</root>
    <root><result>N</result><message>...</message></root>

Each shape has one matcher; they run in a fixed order and the first hit wins.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
import re
import xml.etree.ElementTree as ET

from epost_parcel.errors import CarrierApiError, InvalidCustomerNumberError

INVALID_CUSTOMER_CODE = "ERR-211"
NO_RESERVATION_CODE = "ERR-321"
INVALID_RESPONSE_CODE = "INVALID_RESPONSE"

_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
_CUSTOMER_HINTS = ("고객번호", "custNo")


@dataclass(frozen=True)
class ErrorMatch:
    code: str
    message: str


Matcher = Callable[[ET.Element], Optional[ErrorMatch]]


def parse_xml(raw: str) -> ET.Element:
    """Parse a carrier body; bodies that are not XML become CarrierApiError(INVALID_RESPONSE)."""
    text = _DECLARATION.sub("", raw or "", count=1).strip()
    if not text:
        raise CarrierApiError(INVALID_RESPONSE_CODE, "empty response body")
    try:
        return ET.fromstring(text)
    except ET.ParseError:
        pass
    # Some answers are a bare run of sibling elements without a root.
    try:
        return ET.fromstring(f"<response>{text}</response>")
    except ET.ParseError as ex:
        raise CarrierApiError(INVALID_RESPONSE_CODE, f"response is not XML ({ex})") from ex


def _iter_named(root: ET.Element, names: Iterable[str]):
    wanted = set(names)
    for el in root.iter():
        if el.tag in wanted:
            yield el


def _first_text(root: ET.Element, names: Sequence[str]) -> Optional[str]:
    for name in names:
        for el in root.iter(name):
            if el.text is not None and el.text.strip():
                return el.text.strip()
    return None


def _block_matcher(block: str, code_tags: Sequence[str], msg_tags: Sequence[str]) -> Matcher:
    def match(root: ET.Element) -> Optional[ErrorMatch]:
        for el in _iter_named(root, [block]):
            code = _first_text(el, code_tags)
            message = _first_text(el, msg_tags)
            if code or message:
                return ErrorMatch(code or "UNKNOWN", message or "")
        return None

    match.__name__ = f"match_{block}_block"
    return match


match_lower_error_block = _block_matcher("error", ("error_code",), ("message", "error_message"))
match_upper_error_block = _block_matcher(
    "Error", ("ErrorCode",), ("ErrorMessage", "ErrorMsg", "Message")
)


def match_bare_error_code(root: ET.Element) -> Optional[ErrorMatch]:
    code = _first_text(root, ("error_code", "ErrorCode"))
    if not code:
        return None
    message = _first_text(root, ("message", "error_message", "ErrorMessage", "ErrorMsg")) or ""
    return ErrorMatch(code, message)


def match_result_sentinel(root: ET.Element) -> Optional[ErrorMatch]:
    for el in _iter_named(root, ("result", "success")):
        if (el.text or "").strip().upper() == "N":
            message = _first_text(root, ("message", "resultMsg", "error_message")) or "request failed"
            code = _first_text(root, ("resultCode", "code")) or "RESULT_N"
            return ErrorMatch(code, message)
    return None


DEFAULT_MATCHERS: Tuple[Matcher, ...] = (
    match_lower_error_block,
    match_upper_error_block,
    match_bare_error_code,
    match_result_sentinel,
)


def find_error(root: ET.Element, matchers: Sequence[Matcher] = DEFAULT_MATCHERS) -> Optional[ErrorMatch]:
    for matcher in matchers:
        hit = matcher(root)
        if hit is not None:
            return hit
    return None


def _is_customer_number_error(match: ErrorMatch, raw: str) -> bool:
    if match.code == INVALID_CUSTOMER_CODE or INVALID_CUSTOMER_CODE in raw:
        return True
    return any(hint in match.message for hint in _CUSTOMER_HINTS)


def raise_for_error(raw: str, matchers: Sequence[Matcher] = DEFAULT_MATCHERS) -> ET.Element:
    """
    Raise CarrierApiError for any recognised error shape; otherwise return the parsed root.

    The customer-number check also scans the raw body, so the outcome does not depend
    on which matcher fired first.
    """
    root = parse_xml(raw)
    hit = find_error(root, matchers)
    if hit is None:
        return root
    if _is_customer_number_error(hit, raw):
        code = hit.code if hit.code == INVALID_CUSTOMER_CODE else INVALID_CUSTOMER_CODE
        raise InvalidCustomerNumberError(code, hit.message)
    raise CarrierApiError(hit.code, hit.message)


def extract_field(xml: str | ET.Element, tag: str, *aliases: str) -> Optional[str]:
    """Stripped text of the first element named `tag` (or an alias). CDATA reads like text."""
    root = parse_xml(xml) if isinstance(xml, str) else xml
    for name in (tag, *aliases):
        el = root.find(f".//{name}") if root.tag != name else root
        if el is not None and el.text is not None:
            return el.text.strip()
    return None


def extract_all(xml: str | ET.Element, tag: str) -> List[str]:
    root = parse_xml(xml) if isinstance(xml, str) else xml
    return [el.text.strip() for el in root.iter(tag) if el.text and el.text.strip()]


__all__ = [
    "ErrorMatch",
    "DEFAULT_MATCHERS",
    "INVALID_CUSTOMER_CODE",
    "NO_RESERVATION_CODE",
    "INVALID_RESPONSE_CODE",
    "parse_xml",
    "find_error",
    "raise_for_error",
    "extract_field",
    "extract_all",
]
